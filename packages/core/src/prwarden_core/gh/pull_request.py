from __future__ import annotations

import logging

from github import Github

from prwarden_core.fingerprint import hash_content
from prwarden_core.gh.errors import github_errors
from prwarden_core.models import FileDiff, PullRequestMetadata, PullRequestRef

logger = logging.getLogger(__name__)


class PullCache:
    """Loads each pull request once per client; every later call reuses it."""

    def __init__(self, github: Github):
        self._github = github
        self._pulls: dict[PullRequestRef, object] = {}

    def pull(self, request: PullRequestRef):
        pull = self._pulls.get(request)
        if pull is None:
            with github_errors(f"load {request}"):
                pull = self._github.get_repo(request.repo).get_pull(request.number)
            self._pulls[request] = pull
        return pull


class GitHubDiffSource:
    """Reads diffs and PR metadata through the GitHub REST API.

    GitHub has no native notion of PR iterations, so the iteration id is the
    number of commits on the PR: it advances every time new commits are
    pushed. Content hashes cover (iteration, path, patch), matching what a
    fingerprint needs to notice that the code under an issue changed.
    """

    def __init__(self, github: Github):
        self._pulls = PullCache(github)

    def get_iteration_id(self, request: PullRequestRef) -> int:
        pull = self._pulls.pull(request)
        return max(int(pull.commits or 0), 1)

    def get_metadata(self, request: PullRequestRef) -> PullRequestMetadata:
        pull = self._pulls.pull(request)
        with github_errors(f"list commits of {request}"):
            messages = [c.commit.message or "" for c in pull.get_commits()]
        return PullRequestMetadata(title=pull.title or "", description=pull.body or "", commit_messages=messages)

    def get_diffs(self, request: PullRequestRef, iteration_id: int) -> list[FileDiff]:
        pull = self._pulls.pull(request)
        with github_errors(f"list files of {request}"):
            files = list(pull.get_files())

        diffs = []
        for f in files:
            if f.status == "removed":
                continue
            patch = f.patch or ""
            if not patch:
                # Binary files and very large diffs come back without a patch.
                logger.info("Skipping %s (no textual patch)", f.filename)
                continue
            diffs.append(
                FileDiff(
                    path=f.filename,
                    diff_text=patch,
                    content_hash=hash_content(f"{iteration_id}:{f.filename}:{patch}"),
                )
            )
        logger.info("Prepared %d diff(s) for %s iteration %d", len(diffs), request, iteration_id)
        return diffs
