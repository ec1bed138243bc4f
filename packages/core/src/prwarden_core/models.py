"""Shared review and thread data models.

Issues are transient — rebuilt from scratch on every run. Threads are the
durable side: they live on the pull request, are owned by the hosting
platform, and only the ones tagged with bot metadata are ever mutated here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prwarden_core.metrics import ReviewMetrics


class Severity(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class Category(str, Enum):
    SECURITY = "security"
    CORRECTNESS = "correctness"
    PERFORMANCE = "performance"
    DOCS = "docs"
    TESTS = "tests"
    STYLE = "style"  # lowest priority; fallback for unknown values


class ThreadStatus(str, Enum):
    ACTIVE = "active"
    FIXED = "fixed"
    CLOSED = "closed"
    BY_DESIGN = "by_design"
    PENDING = "pending"
    WONT_FIX = "wont_fix"


# A resolved thread reopens when its fingerprint comes back. BY_DESIGN,
# WONT_FIX and PENDING are human dispositions and are never overwritten.
RESOLVED_STATUSES = frozenset({ThreadStatus.FIXED, ThreadStatus.CLOSED})


class Vote(int, Enum):
    """Reviewer vote values. HOLD means "wait for author", not "reject"."""

    APPROVE = 10
    HOLD = -5


@dataclass(frozen=True)
class PullRequestRef:
    """Identity of a change request. Every store call is keyed by this."""

    repo: str
    number: int

    def __str__(self) -> str:
        return f"{self.repo}#{self.number}"


@dataclass(frozen=True)
class FileDiff:
    path: str
    diff_text: str
    content_hash: str


@dataclass(frozen=True)
class PullRequestMetadata:
    title: str = ""
    description: str = ""
    commit_messages: list[str] = field(default_factory=list)


@dataclass
class RawIssue:
    """An issue candidate exactly as a review model produced it.

    Fields are deliberately loose (strings / whatever the model sent) —
    normalisation into an Issue happens in the planner so one malformed
    field never drops an otherwise valid issue.
    """

    id: str = ""
    title: str = ""
    severity: str = "info"
    category: str = "style"
    file: str = ""
    line: object = 0
    rationale: str = ""
    recommendation: str = ""
    fix_example: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> RawIssue:
        return cls(
            id=str(data.get("id") or ""),
            title=str(data.get("title") or ""),
            severity=str(data.get("severity") or "info"),
            category=str(data.get("category") or "style"),
            file=str(data.get("file") or ""),
            line=data.get("line", 0),
            rationale=str(data.get("rationale") or ""),
            recommendation=str(data.get("recommendation") or ""),
            fix_example=normalise_fix_example(data.get("fixExample", data.get("fix_example"))),
        )


def normalise_fix_example(value) -> str | None:
    """Keep a fix example only when it is non-blank text."""
    if isinstance(value, str) and value.strip():
        return value
    return None


@dataclass(frozen=True)
class Issue:
    title: str
    severity: Severity
    category: Category
    file_path: str
    line: int  # 0 = not line-specific
    rationale: str
    recommendation: str
    fingerprint: str
    issue_id: str = ""
    fix_example: str | None = None


@dataclass
class ReviewPlanResult:
    issues: list[Issue]
    error_count: int
    warning_count: int
    warn_budget: int
    reviewed_files: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)
    failed_files: list[str] = field(default_factory=list)
    metrics: ReviewMetrics | None = None

    @property
    def should_approve(self) -> bool:
        return self.error_count == 0 and self.warning_count <= self.warn_budget


@dataclass(frozen=True)
class ThreadMetadata:
    """Typed bot tag carried by every thread this engine owns."""

    is_bot: bool = False
    fingerprint: str | None = None
    iteration_id: int | None = None
    is_state_thread: bool = False


@dataclass
class Thread:
    id: int | None
    status: ThreadStatus
    comments: list[str] = field(default_factory=list)
    metadata: ThreadMetadata = field(default_factory=ThreadMetadata)
    file_path: str = ""
    line: int = 0

    @property
    def is_issue_thread(self) -> bool:
        """True for bot-owned threads that track a fingerprint."""
        return self.metadata.is_bot and not self.metadata.is_state_thread and bool(self.metadata.fingerprint)

    @property
    def is_state_thread(self) -> bool:
        return self.metadata.is_bot and self.metadata.is_state_thread


@dataclass(frozen=True)
class ThreadUpdate:
    """A single mutation of an existing thread.

    ``append_comment`` adds a new comment; ``replace_body`` overwrites the
    last comment in place (used only for the snapshot thread).
    """

    thread_id: int
    status: ThreadStatus | None = None
    metadata: ThreadMetadata | None = None
    append_comment: str | None = None
    replace_body: str | None = None


@dataclass
class ReviewerEntry:
    id: str
    identity: str
    vote: Vote
