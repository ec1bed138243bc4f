"""history command — display past runs from the history store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()

_VOTE_STYLE = {"APPROVE": "green", "HOLD": "yellow"}


@click.command("history")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, default=None, help="Filter by PR number.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of runs to show.")
@click.pass_context
def history_cmd(ctx, repo: str, pr_number: int | None, limit: int):
    """Show past review runs for a repository.

    Reads from the configured history store. Add `history: sqlite` to
    .prwarden.yml to start recording runs.
    """
    from prwarden_store.noop import NoOpRunStore

    history = ctx.obj.get("history") if ctx.obj else None
    if history is None or isinstance(history, NoOpRunStore):
        raise click.UsageError("No history store configured. Add 'history: sqlite' to .prwarden.yml.")

    records = history.list_runs(repo, pr_number=pr_number)
    if not records:
        console.print("[yellow]No runs recorded.[/yellow]")
        return

    records = list(reversed(records))[:limit]

    caption = "* dry run" if any(r.dry_run for r in records) else None
    table = Table(title=f"Run History — {repo}", caption=caption, show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold")
    table.add_column("Iter", justify="right")
    table.add_column("Vote")
    table.add_column("Err", justify="right")
    table.add_column("Warn", justify="right")
    table.add_column("New/Re/Fix", justify="right")
    table.add_column("Open", justify="right")
    table.add_column("Reviewed At", no_wrap=True)

    for r in records:
        style = _VOTE_STYLE.get(r.vote, "white")
        vote = f"[{style}]{r.vote}[/{style}]" + ("*" if r.dry_run else "")
        table.add_row(
            f"#{r.pr_number}",
            str(r.iteration_id),
            vote,
            str(r.error_count),
            f"{r.warning_count}/{r.warn_budget}",
            f"{r.created}/{r.retriggered}/{r.resolved}",
            str(len(r.open_fingerprints)),
            r.reviewed_at[:19].replace("T", " "),
        )

    console.print(table)
