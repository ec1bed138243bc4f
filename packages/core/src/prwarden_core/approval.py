"""Approve/hold decision, applied idempotently to the reviewer vote."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from prwarden_core.models import PullRequestRef, ReviewPlanResult, Vote
from prwarden_core.retry import RetryPolicy

if TYPE_CHECKING:
    from prwarden_store.base import VoteStore

logger = logging.getLogger(__name__)


def decide_vote(error_count: int, warning_count: int, warn_budget: int) -> Vote:
    """APPROVE iff there are no errors and warnings stay within budget."""
    if error_count == 0 and warning_count <= warn_budget:
        return Vote.APPROVE
    return Vote.HOLD


@dataclass(frozen=True)
class ApprovalOutcome:
    vote: Vote
    action: str  # "created" | "updated" | "unchanged"


class ApprovalDecider:
    def __init__(self, store: VoteStore, retry_policy: RetryPolicy | None = None):
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy()

    def apply(self, request: PullRequestRef, result: ReviewPlanResult) -> ApprovalOutcome:
        desired = decide_vote(result.error_count, result.warning_count, result.warn_budget)
        logger.info(
            "Approval decision for %s: %s (errors: %d, warnings: %d/%d)",
            request,
            desired.name,
            result.error_count,
            result.warning_count,
            result.warn_budget,
        )

        call = self.retry_policy.call
        identity = call(self.store.get_identity, description="resolve reviewer identity")
        entry = call(self.store.get_reviewer_entry, request, identity, description=f"read vote on {request}")

        if entry is None:
            call(self.store.create_reviewer_entry, request, identity, desired, description=f"create vote on {request}")
            logger.info("Created reviewer entry with vote %s", desired.name)
            return ApprovalOutcome(vote=desired, action="created")

        if entry.vote != desired:
            call(self.store.update_reviewer_vote, request, entry.id, desired, description=f"update vote on {request}")
            logger.info("Updated reviewer vote from %s to %s", entry.vote.name, desired.name)
            return ApprovalOutcome(vote=desired, action="updated")

        logger.info("Reviewer vote already set to %s", desired.name)
        return ApprovalOutcome(vote=desired, action="unchanged")
