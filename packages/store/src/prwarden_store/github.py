"""GitHub-backed thread and vote stores.

Threads: GitHub PR conversation comments have no status or metadata, so a
bot thread is one issue comment whose body starts with a hidden marker
carrying the typed metadata and status as JSON:

    <!-- prwarden-thread: {"fingerprint": "...", "iteration": 3, "state": false,
                           "status": "active", "path": "src/app.py", "line": 12} -->
    **Status:** 🔴 active
    <first comment>
    <!-- prwarden-comment -->
    <re-triggered comment>

Appending a comment or changing status edits that single comment in place.
A comment is a bot thread only when it carries the marker and was written by
the authenticated user. Anything else is a human thread (read-only, status
active), even if someone else pasted a marker into it.

Votes: the latest APPROVED / CHANGES_REQUESTED review submitted by the
authenticated user is the reviewer entry. GitHub reviews cannot be edited,
so "updating" a vote submits a new review with the new event; GitHub
always treats the most recent review as the reviewer's state.
"""

from __future__ import annotations

import json
import logging
import re

from prwarden_core.errors import IntegrationError
from prwarden_core.gh.errors import github_errors
from prwarden_core.gh.pull_request import PullCache
from prwarden_core.models import (
    PullRequestRef,
    ReviewerEntry,
    Thread,
    ThreadMetadata,
    ThreadStatus,
    ThreadUpdate,
    Vote,
)
from prwarden_store.base import ThreadStore, VoteStore

logger = logging.getLogger(__name__)

_MARKER_RE = re.compile(r"^<!-- prwarden-thread: (\{.*?\}) -->\n", re.DOTALL)
_COMMENT_SEPARATOR = "\n\n<!-- prwarden-comment -->\n\n"

_STATUS_BADGE = {
    ThreadStatus.ACTIVE: "🔴 active",
    ThreadStatus.FIXED: "✅ fixed",
    ThreadStatus.CLOSED: "⚪ closed",
    ThreadStatus.BY_DESIGN: "🔵 by design",
    ThreadStatus.PENDING: "🟡 pending",
    ThreadStatus.WONT_FIX: "⚫ won't fix",
}

_VOTE_EVENTS = {Vote.APPROVE: "APPROVE", Vote.HOLD: "REQUEST_CHANGES"}
_REVIEW_STATES = {"APPROVED": Vote.APPROVE, "CHANGES_REQUESTED": Vote.HOLD}
_VOTE_BODIES = {
    Vote.APPROVE: "prwarden: no blocking issues found.",
    Vote.HOLD: "prwarden: waiting for the author to address the open review threads.",
}


def render_thread(thread: Thread) -> str:
    meta = {
        "fingerprint": thread.metadata.fingerprint,
        "iteration": thread.metadata.iteration_id,
        "state": thread.metadata.is_state_thread,
        "status": thread.status.value,
        "path": thread.file_path,
        "line": thread.line,
    }
    header = f"<!-- prwarden-thread: {json.dumps(meta, separators=(',', ':'))} -->\n"
    badge = "" if thread.metadata.is_state_thread else f"**Status:** {_STATUS_BADGE[thread.status]}\n\n"
    return header + badge + _COMMENT_SEPARATOR.join(thread.comments)


def parse_thread(comment_id: int, body: str, owned: bool = True) -> Thread:
    """Rebuild a Thread from a GitHub issue comment body.

    ``owned`` is False for comments written by anyone other than the
    authenticated user; those are always human threads.
    """
    body = body or ""
    match = _MARKER_RE.match(body) if owned else None
    meta = None
    if match:
        try:
            meta = json.loads(match.group(1))
        except json.JSONDecodeError:
            logger.warning("Comment %s has an unreadable prwarden marker; treating as human", comment_id)
    if not isinstance(meta, dict):
        return Thread(id=comment_id, status=ThreadStatus.ACTIVE, comments=[body])

    rest = body[match.end() :]
    if rest.startswith("**Status:**"):
        rest = rest.split("\n\n", 1)[1] if "\n\n" in rest else ""
    try:
        status = ThreadStatus(meta.get("status", "active"))
    except ValueError:
        status = ThreadStatus.ACTIVE
    return Thread(
        id=comment_id,
        status=status,
        comments=rest.split(_COMMENT_SEPARATOR) if rest else [],
        metadata=ThreadMetadata(
            is_bot=True,
            fingerprint=meta.get("fingerprint"),
            iteration_id=meta.get("iteration"),
            is_state_thread=bool(meta.get("state")),
        ),
        file_path=meta.get("path") or "",
        line=meta.get("line") or 0,
    )


class _AuthenticatedStore:
    """Shared PR cache and authenticated-user lookup for the GitHub stores."""

    def __init__(self, github):
        self._github = github
        self._pulls = PullCache(github)
        self._login: str | None = None

    def get_identity(self) -> str:
        if self._login is None:
            with github_errors("resolve authenticated user"):
                self._login = self._github.get_user().login
        return self._login

    def _is_own(self, comment) -> bool:
        return comment.user is not None and comment.user.login == self.get_identity()


class GitHubThreadStore(_AuthenticatedStore, ThreadStore):
    def list_threads(self, request: PullRequestRef) -> list[Thread]:
        pull = self._pulls.pull(request)
        with github_errors(f"list comments on {request}"):
            return [parse_thread(c.id, c.body, owned=self._is_own(c)) for c in pull.get_issue_comments()]

    def create_thread(self, request: PullRequestRef, thread: Thread) -> Thread:
        pull = self._pulls.pull(request)
        with github_errors(f"create comment on {request}"):
            comment = pull.create_issue_comment(render_thread(thread))
        return parse_thread(comment.id, comment.body)

    def update_thread(self, request: PullRequestRef, update: ThreadUpdate) -> None:
        pull = self._pulls.pull(request)
        with github_errors(f"update comment {update.thread_id} on {request}"):
            comment = pull.get_issue_comment(update.thread_id)
            thread = parse_thread(comment.id, comment.body, owned=self._is_own(comment))
            if not thread.metadata.is_bot:
                raise IntegrationError(f"comment {update.thread_id} is not a prwarden thread")
            if update.status is not None:
                thread.status = update.status
            if update.metadata is not None:
                thread.metadata = update.metadata
            if update.append_comment is not None:
                thread.comments.append(update.append_comment)
            if update.replace_body is not None:
                thread.comments = thread.comments[:-1] + [update.replace_body]
            comment.edit(render_thread(thread))


class GitHubVoteStore(_AuthenticatedStore, VoteStore):
    def get_reviewer_entry(self, request: PullRequestRef, identity: str) -> ReviewerEntry | None:
        pull = self._pulls.pull(request)
        entry = None
        with github_errors(f"list reviews on {request}"):
            for review in pull.get_reviews():
                if review.user is None or review.user.login != identity:
                    continue
                if review.state in _REVIEW_STATES:
                    entry = ReviewerEntry(id=str(review.id), identity=identity, vote=_REVIEW_STATES[review.state])
                elif review.state == "DISMISSED":
                    entry = None
        return entry

    def create_reviewer_entry(self, request: PullRequestRef, identity: str, vote: Vote) -> None:
        self._submit(request, vote)

    def update_reviewer_vote(self, request: PullRequestRef, entry_id: str, vote: Vote) -> None:
        self._submit(request, vote)

    def _submit(self, request: PullRequestRef, vote: Vote) -> None:
        pull = self._pulls.pull(request)
        with github_errors(f"submit {_VOTE_EVENTS[vote]} review on {request}"):
            pull.create_review(body=_VOTE_BODIES[vote], event=_VOTE_EVENTS[vote])
