"""No-op history store — the default when no history backend is configured.

Using a NoOpRunStore rather than None lets the CLI always call
store.save() without conditional checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prwarden_store.base import RunHistoryStore

if TYPE_CHECKING:
    from prwarden_store.models import RunRecord


class NoOpRunStore(RunHistoryStore):
    """Silently discards all records — zero configuration required."""

    def save(self, record: RunRecord) -> None:
        pass  # intentional no-op

    def list_runs(self, repo: str, pr_number: int | None = None) -> list[RunRecord]:
        return []
