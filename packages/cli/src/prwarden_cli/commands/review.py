"""review command — review a pull request and reconcile its threads."""

from __future__ import annotations

import logging

import click
from github import Github
from rich.console import Console

from prwarden_core.errors import ConfigError, IntegrationError
from prwarden_core.runner import RunSummary
from prwarden_store.models import RunRecord

console = Console()
logger = logging.getLogger(__name__)


def _summary_to_record(summary: RunSummary) -> RunRecord:
    """Map a RunSummary returned by run_review() to a RunRecord for the history store."""
    return RunRecord(
        repo=summary.repo,
        pr_number=summary.pr_number,
        iteration_id=summary.iteration_id,
        reviewed_at=summary.reviewed_at,
        vote=summary.vote,
        error_count=summary.error_count,
        warning_count=summary.warning_count,
        warn_budget=summary.warn_budget,
        created=summary.created,
        retriggered=summary.retriggered,
        resolved=summary.resolved,
        failed=summary.failed,
        dry_run=summary.dry_run,
        open_fingerprints=list(summary.open_fingerprints),
    )


@click.command("review")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="AI model provider. Overrides config file.",
)
@click.option(
    "--policy",
    "policy_path",
    default=None,
    help="Path to a Markdown review policy. Overrides config file.",
)
@click.option(
    "--config",
    "config_path",
    default=None,
    help="Path to the configuration file. Overrides the group-level --config.",
)
@click.option("--warn-budget", type=int, default=None, help="Warnings tolerated before holding approval.")
@click.option(
    "--dry-run",
    "dry_run",
    is_flag=True,
    help="Print the planned issues and vote without touching the pull request.",
)
@click.pass_context
def review_cmd(
    ctx,
    repo: str,
    pr_number: int,
    model: str | None,
    policy_path: str | None,
    config_path: str | None,
    warn_budget: int | None,
    dry_run: bool,
):
    """Review a pull request, reconcile review threads and set the vote.

    Re-running on the same iteration changes nothing. New issues open
    threads, fixed issues resolve them, and issues that come back reopen
    their thread.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
      ANTHROPIC_API_KEY    Required when using --model anthropic
      OPENAI_API_KEY       Required when using --model openai
    """
    from prwarden_cli.auth import resolve_github_token
    from prwarden_core.config import load_config, validate_config
    from prwarden_core.gh.pull_request import GitHubDiffSource
    from prwarden_core.models import PullRequestRef
    from prwarden_core.providers.prompts import PromptCache
    from prwarden_core.retry import RetryPolicy
    from prwarden_core.runner import get_reviewer, run_review
    from prwarden_store.github import GitHubThreadStore, GitHubVoteStore

    obj = ctx.obj or {}
    config = load_config(
        config_path or obj.get("config_path", ".prwarden.yml"),
        cli_overrides={"model": model, "policy": policy_path, "warn_budget": warn_budget, "dry_run": dry_run or None},
    )
    try:
        validate_config(config)
    except ConfigError as e:
        raise click.UsageError(str(e))

    token = resolve_github_token()
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    config["github_token"] = token

    if config["model"] == "anthropic" and not config.get("anthropic_api_key"):
        raise click.UsageError("ANTHROPIC_API_KEY environment variable is not set.")
    if config["model"] == "openai" and not config.get("openai_api_key"):
        raise click.UsageError("OPENAI_API_KEY environment variable is not set.")

    github = Github(token)
    retry_policy = RetryPolicy.from_config(config)
    reviewer = get_reviewer(config, retry_policy=retry_policy, prompt_cache=PromptCache())

    try:
        summary = run_review(
            request=PullRequestRef(repo=repo, number=pr_number),
            config=config,
            diff_source=GitHubDiffSource(github),
            reviewer=reviewer,
            thread_store=GitHubThreadStore(github),
            vote_store=GitHubVoteStore(github),
            retry_policy=retry_policy,
        )
    except (IntegrationError, FileNotFoundError) as e:
        raise click.ClickException(str(e))

    history = obj.get("history")
    if history is not None:
        try:
            history.save(_summary_to_record(summary))
        except Exception:
            logger.exception("Could not save run history")
            console.print("[yellow]Review finished but the run could not be saved to history.[/yellow]")
