"""Run history data models.

Decoupled from prwarden_core's RunSummary so the history layer can be used
on its own; the CLI maps one onto the other.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class RunRecord:
    """A completed review run persisted to the history store."""

    repo: str
    pr_number: int
    iteration_id: int
    reviewed_at: str  # ISO-8601 UTC timestamp
    vote: str  # "APPROVE" | "HOLD"
    error_count: int
    warning_count: int
    warn_budget: int
    created: int = 0
    retriggered: int = 0
    resolved: int = 0
    failed: int = 0
    dry_run: bool = False
    open_fingerprints: list[str] = field(default_factory=list)
