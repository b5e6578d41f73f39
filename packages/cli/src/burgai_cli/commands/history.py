"""history command: display past review records from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from burgai_cli.commands._store import require_store

console = Console()

_EVENT_STYLE = {
    "COMMENT": "yellow",
    "REQUEST_CHANGES": "red",
}


def _status(record) -> str:
    if not record.success:
        return "[red]failed[/red]"
    if record.used_fallback:
        return "[yellow]fallback[/yellow]"
    return "[green]ok[/green]"


@click.command("history")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, default=None, help="Filter by PR number.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.pass_context
def history_cmd(ctx, repo: str, pr_number: int | None, limit: int):
    """Show past AI review records for a repository, most recent first."""
    store = require_store(ctx)

    records = store.list_reviews(repo, pr_number=pr_number)
    if not records:
        console.print("[yellow]No review records found.[/yellow]")
        return

    records = list(reversed(records))[:limit]

    table = Table(title=f"Review History: {repo}", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=6)
    table.add_column("Title", max_width=40)
    table.add_column("SHA", width=8)
    table.add_column("Status", width=9)
    table.add_column("Event", width=16)
    table.add_column("Comments", justify="right", width=10)
    table.add_column("Reviewed At", width=20)

    for r in records:
        event_style = _EVENT_STYLE.get(r.event, "white")
        table.add_row(
            f"#{r.pr_number}",
            r.pr_title[:40] if r.pr_title else "",
            r.head_sha[:7],
            _status(r),
            f"[{event_style}]{r.event or '-'}[/{event_style}]",
            str(r.total_comments),
            r.reviewed_at[:19].replace("T", " "),
        )

    console.print(table)
