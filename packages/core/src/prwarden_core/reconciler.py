"""Reconcile the current issue set with the bot threads already on a PR.

Reconciliation is split in two:

  plan_reconciliation()  — pure: (issues, threads, iteration) → mutations
  ReconciliationEngine.apply() — executes each mutation through the retry
                                 policy, isolating failures per mutation

Per fingerprint, once per run:

  no thread,   fingerprint present → create an active thread
  thread,      fingerprint present → reopen if fixed/closed and append a
                                     re-triggered comment; an active thread
                                     gets one re-triggered comment per
                                     iteration; human dispositions
                                     (by design / won't fix / pending) are left alone
  thread,      fingerprint absent  → active threads become fixed

Finally the singleton snapshot thread is created, or its body overwritten,
when the sorted list of active fingerprints changed. Because every decision
is derived from the thread state itself, running the same plan twice
produces no mutations the second time, and a partially applied run is
repaired by the next one.

Not safe for concurrent runs on the same pull request: there is no
optimistic-concurrency token on the read-modify-write cycle, so callers must
serialise work per PR.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable

from prwarden_core.errors import IntegrationError
from prwarden_core.formatter import format_issue, format_retriggered_issue, format_state, parse_state
from prwarden_core.models import (
    RESOLVED_STATUSES,
    Issue,
    PullRequestRef,
    Thread,
    ThreadMetadata,
    ThreadStatus,
    ThreadUpdate,
)
from prwarden_core.retry import RetryPolicy

if TYPE_CHECKING:
    from prwarden_store.base import ThreadStore

logger = logging.getLogger(__name__)


class MutationKind(str, Enum):
    CREATE = "create"
    RETRIGGER = "retrigger"
    RESOLVE = "resolve"
    CLOSE_DUPLICATE = "close_duplicate"
    CREATE_STATE = "create_state"
    UPDATE_STATE = "update_state"


@dataclass(frozen=True)
class Mutation:
    kind: MutationKind
    fingerprint: str | None = None
    thread: Thread | None = None  # CREATE / CREATE_STATE
    update: ThreadUpdate | None = None  # everything else
    # Effect on the set of active fingerprints once the mutation succeeds.
    opens: bool = False
    resolves: bool = False


@dataclass
class ReconciliationPlan:
    mutations: list[Mutation] = field(default_factory=list)
    state_thread: Thread | None = None
    recorded_fingerprints: list[str] | None = None  # what the snapshot says now
    initial_active: frozenset[str] = frozenset()

    def expected_active(self) -> list[str]:
        active = set(self.initial_active)
        for m in self.mutations:
            if m.opens:
                active.add(m.fingerprint)
            elif m.resolves:
                active.discard(m.fingerprint)
        return sorted(active)

    def snapshot_mutation(self, active: list[str], now: datetime) -> Mutation | None:
        """The snapshot write needed for ``active``, or None if already current."""
        body = format_state(active, now)
        if self.state_thread is None:
            return Mutation(
                kind=MutationKind.CREATE_STATE,
                thread=Thread(
                    id=None,
                    status=ThreadStatus.CLOSED,
                    comments=[body],
                    metadata=ThreadMetadata(is_bot=True, is_state_thread=True),
                ),
            )
        if self.recorded_fingerprints == sorted(active):
            return None
        return Mutation(
            kind=MutationKind.UPDATE_STATE,
            update=ThreadUpdate(thread_id=self.state_thread.id, replace_body=body),
        )

    def all_mutations(self, now: datetime | None = None) -> list[Mutation]:
        now = now or datetime.now(timezone.utc)
        snapshot = self.snapshot_mutation(self.expected_active(), now)
        return self.mutations + ([snapshot] if snapshot else [])

    @property
    def is_noop(self) -> bool:
        return not self.all_mutations()


@dataclass
class ReconciliationReport:
    created: list[str] = field(default_factory=list)
    retriggered: list[str] = field(default_factory=list)
    resolved: list[str] = field(default_factory=list)
    closed_duplicates: list[int] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    open_fingerprints: list[str] = field(default_factory=list)
    snapshot_written: bool = False

    @property
    def mutation_count(self) -> int:
        return (
            len(self.created)
            + len(self.retriggered)
            + len(self.resolved)
            + len(self.closed_duplicates)
            + int(self.snapshot_written)
        )


def _canonical_sort_key(thread: Thread):
    # Prefer an already-active thread, then the oldest one.
    return (thread.status is not ThreadStatus.ACTIVE, thread.id if thread.id is not None else 0)


def plan_reconciliation(issues: list[Issue], threads: list[Thread], iteration_id: int) -> ReconciliationPlan:
    """Compute the mutations that bring ``threads`` in line with ``issues``.

    Pure function: no I/O, no clock. Human threads are ignored entirely.
    """
    by_fingerprint: dict[str, list[Thread]] = {}
    state_threads: list[Thread] = []
    for thread in threads:
        if thread.is_state_thread:
            state_threads.append(thread)
        elif thread.is_issue_thread:
            by_fingerprint.setdefault(thread.metadata.fingerprint, []).append(thread)

    canonical: dict[str, Thread] = {}
    mutations: list[Mutation] = []
    for fp, group in by_fingerprint.items():
        group = sorted(group, key=_canonical_sort_key)
        canonical[fp] = group[0]
        for duplicate in group[1:]:
            if duplicate.status is ThreadStatus.ACTIVE:
                mutations.append(
                    Mutation(
                        kind=MutationKind.CLOSE_DUPLICATE,
                        fingerprint=fp,
                        update=ThreadUpdate(thread_id=duplicate.id, status=ThreadStatus.CLOSED),
                    )
                )

    initial_active = frozenset(fp for fp, t in canonical.items() if t.status is ThreadStatus.ACTIVE)

    current: dict[str, Issue] = {}
    for issue in issues:
        current.setdefault(issue.fingerprint, issue)

    for fp, issue in current.items():
        thread = canonical.get(fp)
        if thread is None:
            mutations.append(
                Mutation(
                    kind=MutationKind.CREATE,
                    fingerprint=fp,
                    thread=Thread(
                        id=None,
                        status=ThreadStatus.ACTIVE,
                        comments=[format_issue(issue)],
                        metadata=ThreadMetadata(is_bot=True, fingerprint=fp, iteration_id=iteration_id),
                        file_path=issue.file_path,
                        line=issue.line,
                    ),
                    opens=True,
                )
            )
            continue

        metadata = replace(thread.metadata, iteration_id=iteration_id)
        if thread.status in RESOLVED_STATUSES:
            mutations.append(
                Mutation(
                    kind=MutationKind.RETRIGGER,
                    fingerprint=fp,
                    update=ThreadUpdate(
                        thread_id=thread.id,
                        status=ThreadStatus.ACTIVE,
                        metadata=metadata,
                        append_comment=format_retriggered_issue(issue),
                    ),
                    opens=True,
                )
            )
        elif thread.status is ThreadStatus.ACTIVE and thread.metadata.iteration_id != iteration_id:
            mutations.append(
                Mutation(
                    kind=MutationKind.RETRIGGER,
                    fingerprint=fp,
                    update=ThreadUpdate(
                        thread_id=thread.id,
                        metadata=metadata,
                        append_comment=format_retriggered_issue(issue),
                    ),
                )
            )
        # ACTIVE at this iteration: already reported. Human dispositions: leave.

    for fp, thread in canonical.items():
        if fp not in current and thread.status is ThreadStatus.ACTIVE:
            mutations.append(
                Mutation(
                    kind=MutationKind.RESOLVE,
                    fingerprint=fp,
                    update=ThreadUpdate(thread_id=thread.id, status=ThreadStatus.FIXED),
                    resolves=True,
                )
            )

    state_thread = min(state_threads, key=lambda t: t.id if t.id is not None else 0) if state_threads else None
    recorded = None
    if state_thread is not None and state_thread.comments:
        recorded = parse_state(state_thread.comments[-1])
        if recorded is not None:
            recorded = sorted(recorded)

    return ReconciliationPlan(
        mutations=mutations,
        state_thread=state_thread,
        recorded_fingerprints=recorded,
        initial_active=initial_active,
    )


class ReconciliationEngine:
    """Applies reconciliation plans against a ThreadStore."""

    def __init__(
        self,
        store: ThreadStore,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def reconcile(self, request: PullRequestRef, issues: list[Issue], iteration_id: int) -> ReconciliationReport:
        threads = self.retry_policy.call(self.store.list_threads, request, description=f"list threads on {request}")
        plan = plan_reconciliation(issues, threads, iteration_id)
        return self.apply(request, plan)

    def apply(self, request: PullRequestRef, plan: ReconciliationPlan) -> ReconciliationReport:
        report = ReconciliationReport()
        active = set(plan.initial_active)

        for mutation in plan.mutations:
            if not self._execute(request, mutation, report):
                continue
            if mutation.opens:
                active.add(mutation.fingerprint)
            elif mutation.resolves:
                active.discard(mutation.fingerprint)

        report.open_fingerprints = sorted(active)
        snapshot = plan.snapshot_mutation(report.open_fingerprints, self.clock())
        if snapshot is not None:
            report.snapshot_written = self._execute(request, snapshot, report)

        if report.resolved:
            logger.info("Resolved %d thread(s) on %s", len(report.resolved), request)
        if report.failed:
            logger.warning("%d thread mutation(s) failed on %s; next run will retry", len(report.failed), request)
        return report

    def _execute(self, request: PullRequestRef, mutation: Mutation, report: ReconciliationReport) -> bool:
        label = f"{mutation.kind.value} {(mutation.fingerprint or 'state')[:12]} on {request}"
        try:
            if mutation.thread is not None:
                created = self.retry_policy.call(self.store.create_thread, request, mutation.thread, description=label)
                logger.info("Created thread %s for %s", created.id, (mutation.fingerprint or "state snapshot")[:12])
            else:
                self.retry_policy.call(self.store.update_thread, request, mutation.update, description=label)
                logger.debug("Updated thread %s (%s)", mutation.update.thread_id, mutation.kind.value)
        except IntegrationError as e:
            logger.error("Thread mutation failed (%s): %s", label, e)
            report.failed.append(mutation.fingerprint or "state")
            return False

        if mutation.kind is MutationKind.CREATE:
            report.created.append(mutation.fingerprint)
        elif mutation.kind is MutationKind.RETRIGGER:
            report.retriggered.append(mutation.fingerprint)
        elif mutation.kind is MutationKind.RESOLVE:
            report.resolved.append(mutation.fingerprint)
        elif mutation.kind is MutationKind.CLOSE_DUPLICATE:
            report.closed_duplicates.append(mutation.update.thread_id)
        return True
