"""Base reviewer implementing the Template Method pattern.

All providers share the same review algorithm:
    review_file() / review_metadata()
             → cached system prompt + per-call user prompt
             → retry_policy.call(_call_api)   ← only _call_api differs per provider
             → _parse()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response, raising
    TransientIntegrationError for failures worth retrying

Prompt construction, JSON parsing and retry wiring live here so they are
defined once and inherited consistently by every provider.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod

from prwarden_core.models import FileDiff, PullRequestMetadata, RawIssue
from prwarden_core.providers.prompts import (
    PromptCache,
    build_file_system_prompt,
    build_file_user_prompt,
    build_metadata_system_prompt,
    build_metadata_user_prompt,
)
from prwarden_core.retry import RetryPolicy

logger = logging.getLogger(__name__)

_MAX_TOKENS = 4096


class BaseReviewer(ABC):
    MAX_TOKENS: int = _MAX_TOKENS

    def __init__(self, retry_policy: RetryPolicy | None = None, prompt_cache: PromptCache | None = None):
        self.retry_policy = retry_policy or RetryPolicy()
        self.prompt_cache = prompt_cache if prompt_cache is not None else PromptCache()

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def review_file(self, policy: str, diff: FileDiff, language: str) -> list[RawIssue]:
        """Review one file diff and return raw issue candidates.

        Raises the last error if every attempt failed — the planner isolates
        that failure to this file.
        """
        system = self.prompt_cache.get_or_build(
            ("file", policy, language), lambda: build_file_system_prompt(policy, language)
        )
        user = build_file_user_prompt(diff)
        raw = self.retry_policy.call(
            self._call_api, system, user, description=f"{self.__class__.__name__} review of {diff.path}"
        )
        return self._parse(raw)

    def review_metadata(self, policy: str, metadata: PullRequestMetadata, language: str) -> list[RawIssue]:
        system = self.prompt_cache.get_or_build(
            ("metadata", policy, language), lambda: build_metadata_system_prompt(policy, language)
        )
        user = build_metadata_user_prompt(metadata)
        raw = self.retry_policy.call(
            self._call_api, system, user, description=f"{self.__class__.__name__} metadata review"
        )
        return self._parse(raw)

    # ------------------------------------------------------------------ #
    # Abstract — implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        This is the only method subclasses must implement. It should raise
        on failure — the retry policy decides whether to try again.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _parse(self, raw: str | None) -> list[RawIssue]:
        """Parse the model's raw text response into RawIssue objects.

        Accepts either ``{"issues": [...]}`` or a bare list. Entries that are
        not JSON objects are ignored; field-level validation is the
        planner's job.
        """
        if not raw:
            return []
        try:
            # Strip only the outer ```json ... ``` fence that the model wraps
            # the response in — NOT backticks inside string values.
            cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
            cleaned = re.sub(r"\s*```$", "", cleaned.strip())
            data = json.loads(cleaned)
        except json.JSONDecodeError:
            logger.warning(
                "%s: failed to parse response as JSON: %s",
                self.__class__.__name__,
                raw[:200],
            )
            return []

        if isinstance(data, dict):
            data = data.get("issues", [])
        if not isinstance(data, list):
            logger.warning("%s: unexpected response shape %s", self.__class__.__name__, type(data).__name__)
            return []
        return [RawIssue.from_dict(item) for item in data if isinstance(item, dict)]
