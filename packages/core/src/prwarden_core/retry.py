"""Retry policy for every external call.

The policy is a plain value — a predicate over exceptions plus a backoff
schedule — injected into the reviewers, the reconciler and the approval
decider. Business logic never builds its own retry loop, and tests swap in
a policy whose sleep is a no-op.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from prwarden_core.errors import TransientIntegrationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_EXCEPTIONS: tuple[type[BaseException], ...] = (
    TransientIntegrationError,
    TimeoutError,
    ConnectionError,
)


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, TRANSIENT_EXCEPTIONS)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 2.0
    max_delay: float = 30.0
    retry_on: Callable[[BaseException], bool] = is_transient
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    @classmethod
    def from_config(cls, config: dict) -> RetryPolicy:
        return cls(
            max_attempts=config.get("retry_max_attempts", 5),
            base_delay=config.get("retry_base_delay", 2.0),
            max_delay=config.get("retry_max_delay", 30.0),
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (0-based)."""
        return min(self.base_delay * (2**attempt), self.max_delay)

    def call(self, fn: Callable[..., T], *args, description: str = "", **kwargs) -> T:
        """Run ``fn`` until it succeeds, a non-retryable error occurs, or attempts run out.

        Non-transient exceptions propagate immediately. After the last
        attempt the final transient exception is re-raised so the caller can
        decide whether to skip the unit of work.
        """
        label = description or getattr(fn, "__qualname__", repr(fn))
        attempts = max(1, self.max_attempts)
        for attempt in range(attempts):
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                if not self.retry_on(e):
                    raise
                if attempt == attempts - 1:
                    logger.error("%s failed after %d attempts: %s", label, attempts, e)
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s transient failure (attempt %d/%d): %s. Retrying in %.1fs...",
                    label,
                    attempt + 1,
                    attempts,
                    e,
                    delay,
                )
                self.sleep(delay)
