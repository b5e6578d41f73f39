"""CLI entry point for burgai.

Commands:
  review    run the AI review pipeline on a pull request and post the result
  history   display past review records from the configured store
  stats     aggregate comment patterns, fallback rate and feedback
  feedback  record how a user reacted to a posted comment
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from burgai_cli.commands.feedback import feedback_cmd
from burgai_cli.commands.history import history_cmd
from burgai_cli.commands.review import review_cmd
from burgai_cli.commands.stats import stats_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .burgai.yml settings.

    Store selection:
      store: sqlite → SQLiteStore (uses store_path or .burgai.db)
      (default)     → NoOpStore  (no persistence)

    This factory lives in cli.py so neither burgai_core nor burgai_store
    know about the CLI config format.
    """
    from burgai_store.noop import NoOpStore

    store_type = config.get("store", "noop")

    if store_type == "sqlite":
        from burgai_store.sqlite import SQLiteStore

        db_path = config.get("store_path", ".burgai.db")
        return SQLiteStore(db_path=db_path)

    if store_type not in ("noop", None):
        console.print(f"[yellow]Unknown store {store_type!r}. Falling back to no store.[/yellow]")
    return NoOpStore()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("burgai"),
    prog_name="burgai",
)
@click.option(
    "--config",
    "config_path",
    default=".burgai.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="BURGAI_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log pipeline progress (retries, recovery, filtering).")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """AI pull request reviewer that always leaves a usable review."""
    from burgai_cli.auth import resolve_github_token
    from burgai_core.config import load_config
    from burgai_core.errors import ConfigurationError

    _setup_logging(verbose)
    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(review_cmd)
main.add_command(history_cmd)
main.add_command(stats_cmd)
main.add_command(feedback_cmd)
