"""In-memory thread and vote stores.

Used for dry runs and tests. Every mutation is appended to ``calls`` so a
test can assert exactly how many writes a reconciliation or approval pass
performed. Reads return copies: callers can never mutate stored state by
reference, which mirrors how a remote API behaves.
"""

from __future__ import annotations

import copy
import itertools
from dataclasses import replace

from prwarden_core.errors import IntegrationError
from prwarden_core.models import PullRequestRef, ReviewerEntry, Thread, ThreadUpdate, Vote
from prwarden_store.base import ThreadStore, VoteStore


class InMemoryThreadStore(ThreadStore):
    def __init__(self, threads: dict[PullRequestRef, list[Thread]] | None = None):
        self._threads: dict[PullRequestRef, dict[int, Thread]] = {}
        self._ids = itertools.count(1)
        self.calls: list[tuple] = []
        for request, items in (threads or {}).items():
            for thread in items:
                thread_id = thread.id if thread.id is not None else next(self._ids)
                self._threads.setdefault(request, {})[thread_id] = replace(copy.deepcopy(thread), id=thread_id)

    @property
    def mutation_count(self) -> int:
        return len(self.calls)

    def list_threads(self, request: PullRequestRef) -> list[Thread]:
        return [copy.deepcopy(t) for t in self._threads.get(request, {}).values()]

    def get(self, request: PullRequestRef, thread_id: int) -> Thread:
        return copy.deepcopy(self._threads[request][thread_id])

    def create_thread(self, request: PullRequestRef, thread: Thread) -> Thread:
        bucket = self._threads.setdefault(request, {})
        thread_id = next(self._ids)
        while thread_id in bucket:
            thread_id = next(self._ids)
        stored = replace(copy.deepcopy(thread), id=thread_id)
        bucket[thread_id] = stored
        self.calls.append(("create", request, thread_id))
        return copy.deepcopy(stored)

    def update_thread(self, request: PullRequestRef, update: ThreadUpdate) -> None:
        thread = self._threads.get(request, {}).get(update.thread_id)
        if thread is None:
            raise IntegrationError(f"thread {update.thread_id} not found on {request}")
        if update.status is not None:
            thread.status = update.status
        if update.metadata is not None:
            thread.metadata = update.metadata
        if update.append_comment is not None:
            thread.comments.append(update.append_comment)
        if update.replace_body is not None:
            if thread.comments:
                thread.comments[-1] = update.replace_body
            else:
                thread.comments.append(update.replace_body)
        self.calls.append(("update", request, update.thread_id))


class InMemoryVoteStore(VoteStore):
    def __init__(self, identity: str = "prwarden[bot]", entries: dict[PullRequestRef, ReviewerEntry] | None = None):
        self.identity = identity
        self.entries: dict[PullRequestRef, ReviewerEntry] = dict(entries or {})
        self.calls: list[tuple] = []

    @property
    def mutation_count(self) -> int:
        return len(self.calls)

    def get_identity(self) -> str:
        return self.identity

    def get_reviewer_entry(self, request: PullRequestRef, identity: str) -> ReviewerEntry | None:
        entry = self.entries.get(request)
        if entry is None or entry.identity != identity:
            return None
        return copy.copy(entry)

    def create_reviewer_entry(self, request: PullRequestRef, identity: str, vote: Vote) -> None:
        self.entries[request] = ReviewerEntry(id=f"{request}:{identity}", identity=identity, vote=vote)
        self.calls.append(("create", request, vote))

    def update_reviewer_vote(self, request: PullRequestRef, entry_id: str, vote: Vote) -> None:
        entry = self.entries.get(request)
        if entry is None or entry.id != entry_id:
            raise IntegrationError(f"reviewer entry {entry_id} not found on {request}")
        entry.vote = vote
        self.calls.append(("update", request, vote))
