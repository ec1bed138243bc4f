"""Translate PyGithub / requests failures into the prwarden error taxonomy."""

from __future__ import annotations

import contextlib

import requests
from github import GithubException, RateLimitExceededException

from prwarden_core.errors import IntegrationError, TransientIntegrationError

_TRANSIENT_STATUSES = {408, 429, 500, 502, 503, 504}


def translate_github_error(e: Exception, action: str) -> IntegrationError:
    if isinstance(e, RateLimitExceededException):
        return TransientIntegrationError(f"{action}: GitHub rate limit exceeded")
    if isinstance(e, GithubException):
        if e.status in _TRANSIENT_STATUSES:
            return TransientIntegrationError(f"{action}: GitHub returned {e.status}")
        return IntegrationError(f"{action}: GitHub returned {e.status}: {e.data}")
    if isinstance(e, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return TransientIntegrationError(f"{action}: {e}")
    return IntegrationError(f"{action}: {e}")


@contextlib.contextmanager
def github_errors(action: str):
    """Re-raise GitHub and network errors as IntegrationError subclasses."""
    try:
        yield
    except (GithubException, requests.exceptions.RequestException) as e:
        raise translate_github_error(e, action) from e
