"""Turn a pull request's diffs into a budgeted, fingerprinted review plan.

Files are reviewed concurrently on a fixed-size thread pool. Each task is
independent: a failing file is logged and contributes nothing, and results
are put back in input order before aggregation so identical inputs always
produce an identical issue list.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace

from prwarden_core.errors import MalformedIssueError
from prwarden_core.fingerprint import compute_fingerprint, compute_metadata_fingerprint
from prwarden_core.metrics import METADATA_UNIT, ReviewMetrics
from prwarden_core.models import (
    Category,
    FileDiff,
    Issue,
    PullRequestMetadata,
    RawIssue,
    ReviewPlanResult,
    Severity,
    normalise_fix_example,
)

logger = logging.getLogger(__name__)

HYGIENE_ISSUE_ID = "PR-HYGIENE"


@dataclass(frozen=True)
class PlannerLimits:
    max_files_to_review: int = 50
    max_issues_per_file: int = 5
    max_diff_bytes: int = 500_000
    max_commit_messages: int = 20
    max_workers: int = 4
    warn_budget: int = 3

    @classmethod
    def from_config(cls, config: dict) -> PlannerLimits:
        return cls(
            max_files_to_review=config.get("max_files_to_review", 50),
            max_issues_per_file=config.get("max_issues_per_file", 5),
            max_diff_bytes=config.get("max_diff_bytes", 500_000),
            max_commit_messages=config.get("max_commit_messages", 20),
            max_workers=config.get("max_workers", 4),
            warn_budget=config.get("warn_budget", 3),
        )


def parse_severity(value: str) -> Severity:
    try:
        return Severity(str(value).strip().lower())
    except ValueError:
        return Severity.INFO


def parse_category(value: str) -> Category:
    try:
        return Category(str(value).strip().lower())
    except ValueError:
        return Category.STYLE


def _parse_line(value) -> int:
    try:
        line = int(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(line, 0)


def _normalise_title(raw: RawIssue) -> str:
    return str(raw.title or "").strip()


def metadata_needs_attention(metadata: PullRequestMetadata) -> bool:
    """True when the title, the description, or every commit message is blank."""
    return (
        not metadata.title.strip()
        or not metadata.description.strip()
        or all(not m.strip() for m in metadata.commit_messages)
    )


def _dedupe(issues: list[Issue]) -> list[Issue]:
    """Keep the first issue per fingerprint; one fingerprint maps to one thread."""
    seen: set[str] = set()
    unique: list[Issue] = []
    for issue in issues:
        if issue.fingerprint in seen:
            logger.debug("Dropping duplicate issue %s (%s)", issue.fingerprint[:12], issue.title)
            continue
        seen.add(issue.fingerprint)
        unique.append(issue)
    return unique


def to_issue(raw: RawIssue, fingerprint: str, default_path: str = "") -> Issue:
    """Normalise a RawIssue; raises MalformedIssueError when it has no title."""
    title = _normalise_title(raw)
    if not title:
        raise MalformedIssueError(f"issue {raw.id or '<no id>'} has no title")
    return Issue(
        title=title,
        severity=parse_severity(raw.severity),
        category=parse_category(raw.category),
        file_path=raw.file or default_path,
        line=_parse_line(raw.line),
        rationale=raw.rationale,
        recommendation=raw.recommendation,
        fingerprint=fingerprint,
        issue_id=raw.id,
        fix_example=normalise_fix_example(raw.fix_example),
    )


class IssuePlanner:
    """Drives per-file and metadata review for one iteration of a PR."""

    def __init__(self, model, limits: PlannerLimits | None = None):
        self.model = model
        self.limits = limits or PlannerLimits()

    def plan(
        self,
        diffs: list[FileDiff],
        iteration_id: int,
        metadata: PullRequestMetadata,
        policy: str,
        language: str = "en",
    ) -> ReviewPlanResult:
        limits = self.limits
        metrics = ReviewMetrics()
        candidates = diffs[: limits.max_files_to_review]
        if len(diffs) > len(candidates):
            logger.warning(
                "Reviewing first %d of %d files (max_files_to_review)", len(candidates), len(diffs)
            )

        to_review: list[FileDiff] = []
        skipped: list[str] = []
        for diff in candidates:
            size = len(diff.diff_text.encode("utf-8"))
            if size > limits.max_diff_bytes:
                logger.warning("Skipping large diff %s (%d bytes)", diff.path, size)
                skipped.append(diff.path)
                continue
            to_review.append(diff)

        per_file = self._review_files(to_review, iteration_id, policy, language, metrics)

        issues: list[Issue] = []
        reviewed: list[str] = []
        failed: list[str] = []
        for diff, file_issues in zip(to_review, per_file):
            if file_issues is None:
                failed.append(diff.path)
                continue
            reviewed.append(diff.path)
            issues.extend(file_issues)

        issues.extend(self._review_metadata(metadata, iteration_id, policy, language, metrics))
        issues = _dedupe(issues)
        metrics.finish()
        metrics.log_summary()

        error_count = sum(1 for i in issues if i.severity is Severity.ERROR)
        warning_count = sum(1 for i in issues if i.severity is Severity.WARN)
        logger.info(
            "Planned %d issue(s) for iteration %d (%d error, %d warn, %d file(s) reviewed)",
            len(issues),
            iteration_id,
            error_count,
            warning_count,
            len(reviewed),
        )
        return ReviewPlanResult(
            issues=issues,
            error_count=error_count,
            warning_count=warning_count,
            warn_budget=limits.warn_budget,
            reviewed_files=reviewed,
            skipped_files=skipped,
            failed_files=failed,
            metrics=metrics,
        )

    # ------------------------------------------------------------------ #

    def _review_files(
        self, diffs: list[FileDiff], iteration_id: int, policy: str, language: str, metrics: ReviewMetrics
    ) -> list[list[Issue] | None]:
        """Review every diff concurrently; result[i] belongs to diffs[i].

        ``None`` marks a file whose review failed.
        """
        if not diffs:
            return []
        results: list[list[Issue] | None] = [None] * len(diffs)
        workers = min(self.limits.max_workers, len(diffs))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="prwarden-review") as executor:
            futures = {
                executor.submit(self._review_one, diff, iteration_id, policy, language, metrics): index
                for index, diff in enumerate(diffs)
            }
            for future, index in futures.items():
                try:
                    results[index] = future.result()
                except Exception:
                    logger.exception("Review of %s failed; skipping file", diffs[index].path)
        return results

    def _review_one(
        self, diff: FileDiff, iteration_id: int, policy: str, language: str, metrics: ReviewMetrics
    ) -> list[Issue]:
        started = metrics.start_timer()
        try:
            raw_issues = self.model.review_file(policy, diff, language)
        except Exception:
            metrics.record_failure(diff.path, metrics.elapsed_ms(started))
            raise

        issues: list[Issue] = []
        for raw in raw_issues:
            fingerprint = compute_fingerprint(
                diff.path, _parse_line(raw.line), raw.id, _normalise_title(raw), iteration_id, diff.content_hash
            )
            try:
                issues.append(to_issue(raw, fingerprint, default_path=diff.path))
            except MalformedIssueError as e:
                logger.warning("Dropping issue from %s: %s", diff.path, e)

        if len(issues) > self.limits.max_issues_per_file:
            logger.info(
                "Truncating %s from %d to %d issue(s)", diff.path, len(issues), self.limits.max_issues_per_file
            )
            issues = issues[: self.limits.max_issues_per_file]

        metrics.record(diff.path, issues, metrics.elapsed_ms(started))
        return issues

    def _review_metadata(
        self,
        metadata: PullRequestMetadata,
        iteration_id: int,
        policy: str,
        language: str,
        metrics: ReviewMetrics,
    ) -> list[Issue]:
        commits = metadata.commit_messages[: self.limits.max_commit_messages]
        metadata = PullRequestMetadata(metadata.title, metadata.description, commits)

        issues: list[Issue] = []
        if metadata_needs_attention(metadata):
            title = "PR metadata needs attention"
            issues.append(
                Issue(
                    title=title,
                    severity=Severity.WARN,
                    category=Category.DOCS,
                    file_path="",
                    line=0,
                    rationale="The pull request title, description or commit messages are empty.",
                    recommendation="Describe what the change does and why, and use meaningful commit messages.",
                    fingerprint=compute_metadata_fingerprint(HYGIENE_ISSUE_ID, title, iteration_id),
                    issue_id=HYGIENE_ISSUE_ID,
                )
            )

        started = metrics.start_timer()
        try:
            raw_issues = self.model.review_metadata(policy, metadata, language)
        except Exception:
            logger.exception("PR metadata review failed; continuing without metadata issues")
            metrics.record_failure(METADATA_UNIT, metrics.elapsed_ms(started))
            return issues

        for raw in raw_issues:
            fingerprint = compute_metadata_fingerprint(raw.id, _normalise_title(raw), iteration_id)
            try:
                issue = to_issue(raw, fingerprint)
            except MalformedIssueError as e:
                logger.warning("Dropping metadata issue: %s", e)
                continue
            # Metadata issues are never tied to a file or line.
            issues.append(replace(issue, file_path="", line=0))
        metrics.record(METADATA_UNIT, issues, metrics.elapsed_ms(started))
        return issues
