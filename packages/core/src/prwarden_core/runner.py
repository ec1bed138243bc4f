"""Core PR review orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from rich.console import Console

from prwarden_core.approval import ApprovalDecider, decide_vote
from prwarden_core.config import load_policy
from prwarden_core.errors import IntegrationError
from prwarden_core.models import Issue, PullRequestRef, Severity
from prwarden_core.planner import IssuePlanner, PlannerLimits
from prwarden_core.providers.anthropic import AnthropicReviewer
from prwarden_core.providers.openai import OpenAIReviewer
from prwarden_core.providers.prompts import PromptCache
from prwarden_core.reconciler import MutationKind, ReconciliationEngine, plan_reconciliation
from prwarden_core.retry import RetryPolicy
from prwarden_core.utils.code import should_review
from prwarden_core.utils.language import resolve_language

if TYPE_CHECKING:
    from prwarden_core.gh.pull_request import GitHubDiffSource
    from prwarden_core.providers.base import BaseReviewer
    from prwarden_store.base import ThreadStore, VoteStore

console = Console()
logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Result returned by run_review — carries enough data for the CLI to persist history.

    Decoupled from prwarden_store so the CLI converts this to a RunRecord
    before persisting.
    """

    repo: str
    pr_number: int
    iteration_id: int
    vote: str  # "APPROVE" | "HOLD"
    error_count: int = 0
    warning_count: int = 0
    warn_budget: int = 0
    issues: list[Issue] = field(default_factory=list)
    open_fingerprints: list[str] = field(default_factory=list)
    created: int = 0
    retriggered: int = 0
    resolved: int = 0
    failed: int = 0
    vote_action: str = "none"  # "created" | "updated" | "unchanged" | "failed" | "none"
    dry_run: bool = False
    reviewed_files: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)
    failed_reviews: list[str] = field(default_factory=list)  # files, or the PR metadata
    review_duration_ms: int = 0
    reviewed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def get_reviewer(
    config: dict, retry_policy: RetryPolicy | None = None, prompt_cache: PromptCache | None = None
) -> BaseReviewer:
    model = config["model"]
    if model == "anthropic":
        return AnthropicReviewer(
            api_key=config.get("anthropic_api_key"), retry_policy=retry_policy, prompt_cache=prompt_cache
        )
    if model == "openai":
        return OpenAIReviewer(api_key=config.get("openai_api_key"), retry_policy=retry_policy, prompt_cache=prompt_cache)
    raise ValueError(f"Unknown model provider: {model!r}. Choose 'anthropic' or 'openai'.")


_SEVERITY_COLOR = {Severity.ERROR: "red", Severity.WARN: "yellow", Severity.INFO: "blue"}


def print_issues(issues: list[Issue]) -> None:
    """Print planned issues to the terminal without posting them."""
    if not issues:
        console.print("[green]No issues found.[/green]")
        return
    console.print(f"\n[bold]{len(issues)} issue(s)[/bold]\n")
    for issue in issues:
        color = _SEVERITY_COLOR.get(issue.severity, "white")
        location = issue.file_path or "(pull request)"
        if issue.line:
            location += f"  line [bold]{issue.line}[/bold]"
        console.print(
            f"[bold cyan]{location}[/bold cyan]  [{color}]{issue.severity.name}[/{color}]  "
            f"[dim]{issue.category.value}[/dim]"
        )
        console.print(f"  {issue.title}")
        if issue.recommendation:
            console.print(f"  [dim]{issue.recommendation}[/dim]")
        console.print()


def _preview_reconciliation(request: PullRequestRef, thread_store: ThreadStore, issues: list[Issue], iteration_id: int):
    """Print what a real run would change, reading but never writing threads."""
    try:
        threads = thread_store.list_threads(request)
    except IntegrationError as e:
        console.print(f"[yellow]Could not read existing threads: {e}[/yellow]")
        return
    plan = plan_reconciliation(issues, threads, iteration_id)
    counts: dict[MutationKind, int] = {}
    for mutation in plan.all_mutations():
        counts[mutation.kind] = counts.get(mutation.kind, 0) + 1
    if not counts:
        console.print("[dim]Threads are already up to date.[/dim]")
        return
    parts = [f"{n} {kind.value.replace('_', ' ')}" for kind, n in counts.items()]
    console.print(f"[dim]Would apply: {', '.join(parts)}[/dim]")


def run_review(
    request: PullRequestRef,
    config: dict,
    diff_source: GitHubDiffSource,
    reviewer: BaseReviewer,
    thread_store: ThreadStore,
    vote_store: VoteStore,
    retry_policy: RetryPolicy | None = None,
) -> RunSummary:
    """Run the full review pipeline for one iteration of a pull request.

    Thread and vote failures are logged and counted, never raised: the
    decision is still reported, and the next run repairs whatever was
    left half-applied. Failing to read the PR itself does raise.
    """
    retry_policy = retry_policy or RetryPolicy.from_config(config)
    dry_run = bool(config.get("dry_run"))
    policy = load_policy(config)

    iteration_id = retry_policy.call(diff_source.get_iteration_id, request, description=f"read iteration of {request}")
    metadata = retry_policy.call(diff_source.get_metadata, request, description=f"read metadata of {request}")
    diffs = retry_policy.call(diff_source.get_diffs, request, iteration_id, description=f"read diffs of {request}")

    exclude = config.get("exclude") or []
    excluded = [d.path for d in diffs if not should_review(d.path, exclude)]
    for path in excluded:
        console.print(f"  Skipping: {path}")
    diffs = [d for d in diffs if should_review(d.path, exclude)]

    language = resolve_language(
        config.get("language", "auto"),
        metadata.description,
        config.get("japanese_detection_threshold", 0.3),
    )
    console.print(
        f"\n[bold]Reviewing {request}[/bold] iteration {iteration_id}: "
        f"{len(diffs)} file(s), language {language}"
    )

    planner = IssuePlanner(reviewer, PlannerLimits.from_config(config))
    result = planner.plan(diffs, iteration_id, metadata, policy, language)
    vote = decide_vote(result.error_count, result.warning_count, result.warn_budget)

    summary = RunSummary(
        repo=request.repo,
        pr_number=request.number,
        iteration_id=iteration_id,
        vote=vote.name,
        error_count=result.error_count,
        warning_count=result.warning_count,
        warn_budget=result.warn_budget,
        issues=result.issues,
        dry_run=dry_run,
        reviewed_files=result.reviewed_files,
        skipped_files=excluded + result.skipped_files,
        failed_reviews=result.metrics.failed_units if result.metrics else [],
        review_duration_ms=result.metrics.total_duration_ms if result.metrics else 0,
    )

    if dry_run:
        print_issues(result.issues)
        _print_review_stats(summary)
        _preview_reconciliation(request, thread_store, result.issues, iteration_id)
        summary.open_fingerprints = sorted(i.fingerprint for i in result.issues)
        console.print(f"[bold]Dry run complete. Vote would be {vote.name}; nothing was posted.[/bold]")
        return summary

    engine = ReconciliationEngine(thread_store, retry_policy)
    try:
        report = engine.reconcile(request, result.issues, iteration_id)
    except IntegrationError as e:
        logger.error("Could not reconcile threads on %s: %s", request, e)
        summary.failed += 1
    else:
        summary.open_fingerprints = report.open_fingerprints
        summary.created = len(report.created)
        summary.retriggered = len(report.retriggered)
        summary.resolved = len(report.resolved)
        summary.failed += len(report.failed)

    try:
        outcome = ApprovalDecider(vote_store, retry_policy).apply(request, result)
        summary.vote_action = outcome.action
    except IntegrationError as e:
        logger.error("Could not apply vote on %s: %s", request, e)
        summary.vote_action = "failed"
        summary.failed += 1

    _print_summary(summary)
    return summary


def _print_review_stats(summary: RunSummary) -> None:
    console.print(
        f"[dim]Reviewed {len(summary.reviewed_files)} file(s) in {summary.review_duration_ms / 1000:.1f}s[/dim]"
    )
    if summary.failed_reviews:
        console.print(f"[red]Review failed for: {', '.join(summary.failed_reviews)}[/red]")


def _print_summary(summary: RunSummary) -> None:
    _print_review_stats(summary)
    color = "green" if summary.vote == "APPROVE" else "yellow"
    console.print(
        f"\n[{color}]Vote: {summary.vote}[/{color}] ({summary.vote_action})  "
        f"errors {summary.error_count} · warnings {summary.warning_count}/{summary.warn_budget}"
    )
    console.print(
        f"Threads: {summary.created} created, {summary.retriggered} re-triggered, "
        f"{summary.resolved} resolved · {len(summary.open_fingerprints)} open"
    )
    if summary.failed:
        console.print(f"[red]{summary.failed} operation(s) failed; they will be retried on the next run.[/red]")
