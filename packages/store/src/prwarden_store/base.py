"""Abstract store interfaces.

Three kinds of external state are involved in a review run:

- ThreadStore     — discussion threads on the pull request
- VoteStore       — this reviewer's vote on the pull request
- RunHistoryStore — optional record of completed runs

prwarden_core depends only on these interfaces, so the hosting platform
(GitHub today, anything with threads and votes tomorrow) and the history
backend are swappable without touching reconciliation code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prwarden_core.models import PullRequestRef, ReviewerEntry, Thread, ThreadUpdate, Vote
    from prwarden_store.models import RunRecord


class ThreadStore(ABC):
    """CRUD and status transitions over the threads of a pull request.

    Implementations raise prwarden_core.errors.IntegrationError (or its
    TransientIntegrationError subclass) on failure so that callers can
    retry and isolate failures without knowing the backend.
    """

    @abstractmethod
    def list_threads(self, request: PullRequestRef) -> list[Thread]:
        """Return every thread on the pull request, human-authored ones included."""

    @abstractmethod
    def create_thread(self, request: PullRequestRef, thread: Thread) -> Thread:
        """Create ``thread`` and return it with its assigned id."""

    @abstractmethod
    def update_thread(self, request: PullRequestRef, update: ThreadUpdate) -> None:
        """Apply a status / metadata change, append a comment, or overwrite the last one."""


class VoteStore(ABC):
    @abstractmethod
    def get_identity(self) -> str:
        """Return the identity this reviewer votes as."""

    @abstractmethod
    def get_reviewer_entry(self, request: PullRequestRef, identity: str) -> ReviewerEntry | None:
        """Return the current vote entry for ``identity``, or None if it has not voted."""

    @abstractmethod
    def create_reviewer_entry(self, request: PullRequestRef, identity: str, vote: Vote) -> None: ...

    @abstractmethod
    def update_reviewer_vote(self, request: PullRequestRef, entry_id: str, vote: Vote) -> None: ...


class RunHistoryStore(ABC):
    """Pluggable persistence layer for review run history.

    Implementations must be safe to call from CI environments where no
    interactive credentials are available.
    """

    @abstractmethod
    def save(self, record: RunRecord) -> None:
        """Persist a completed run record."""

    @abstractmethod
    def list_runs(self, repo: str, pr_number: int | None = None) -> list[RunRecord]:
        """Return runs for a repo, optionally filtered by PR number.

        Returns an empty list if no runs exist — never raises.
        """

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional — subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """
