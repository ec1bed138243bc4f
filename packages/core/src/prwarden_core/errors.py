"""Error taxonomy shared by the planner, reconciler and transports.

Transports translate SDK-specific exceptions (PyGithub, anthropic, openai)
into these classes so the retry policy and the per-unit isolation logic
never need to know which SDK raised.
"""

from __future__ import annotations


class PrWardenError(Exception):
    """Base class for all prwarden errors."""


class ConfigError(PrWardenError):
    """Configuration values are missing or out of range."""


class IntegrationError(PrWardenError):
    """An external call failed in a way that retrying will not fix."""


class TransientIntegrationError(IntegrationError):
    """Timeouts, rate limits, temporary unavailability. Safe to retry."""


class MalformedIssueError(PrWardenError):
    """A raw issue from the model cannot be safely defaulted (e.g. no title)."""
