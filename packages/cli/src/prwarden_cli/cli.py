"""CLI entry point for prwarden.

Commands:
  review   — review a pull request, reconcile its threads and cast the vote
  history  — display past runs from the configured history store
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prwarden_cli.commands.history import history_cmd
from prwarden_cli.commands.review import review_cmd

console = Console()


def _build_history_store(config: dict):
    """Instantiate the configured run history store from .prwarden.yml settings.

      history: sqlite → SQLiteRunStore (history_path, default .prwarden.db)
      (default)       → NoOpRunStore   (no persistence)
    """
    from prwarden_store.noop import NoOpRunStore

    if config.get("history", "noop") == "sqlite":
        from prwarden_store.sqlite import SQLiteRunStore

        return SQLiteRunStore(db_path=config.get("history_path", ".prwarden.db"))

    return NoOpRunStore()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("prwarden"),
    prog_name="prwarden",
)
@click.option(
    "--config",
    "config_path",
    default=".prwarden.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRWARDEN_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Reconciling AI reviewer for GitHub pull requests."""
    from prwarden_core.config import load_config

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)
    history = _build_history_store(config)
    ctx.obj["config_path"] = config_path
    ctx.obj["config"] = config
    ctx.obj["history"] = history
    ctx.call_on_close(history.close)


main.add_command(review_cmd)
main.add_command(history_cmd)
