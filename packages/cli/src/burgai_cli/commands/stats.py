"""stats command: aggregate patterns across review history and feedback."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

from burgai_cli.commands._store import require_store
from burgai_core.config import repo_review_config
from burgai_core.errors import ConfigurationError
from burgai_core.filtering import resolve_thresholds
from burgai_core.schema import SEVERITIES

console = Console()

_SEV_STYLE = {"critical": "red", "major": "yellow", "minor": "blue"}


@click.command("stats")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--top", default=10, show_default=True, help="Number of top entries to show per category.")
@click.pass_context
def stats_cmd(ctx, repo: str, top: int):
    """Show aggregated review statistics for a repository.

    Reports severity distribution, the most frequently flagged files, how
    often the fallback path was used, how users reacted to comments, and the
    filter thresholds the next review will apply.
    """
    store = require_store(ctx)

    records = store.list_reviews(repo)
    feedback = store.list_feedback(repo)
    if not records and not feedback:
        console.print("[yellow]No review records found for this repository.[/yellow]")
        return

    total_reviews = len(records)
    total_comments = sum(r.total_comments for r in records)
    failed = sum(1 for r in records if not r.success)
    fallback = sum(1 for r in records if r.used_fallback)
    severity_counter: Counter[str] = Counter()
    file_counter: Counter[str] = Counter()

    for record in records:
        for comment in record.comments:
            severity_counter[comment.severity] += 1
            file_counter[comment.file] += 1

    # --- Summary ---
    console.print(f"\n[bold]Review stats for [cyan]{repo}[/cyan][/bold]")
    console.print(f"  Total reviews:  {total_reviews}")
    console.print(f"  Total comments: {total_comments}")
    if total_reviews:
        console.print(f"  Avg per review: {total_comments / total_reviews:.1f}")
        console.print(f"  Fallback rate:  {fallback / total_reviews * 100:.1f}%")
        console.print(f"  Failed reviews: {failed}")

    # --- Severity breakdown ---
    if severity_counter:
        sev_table = Table(title="Severity Breakdown", show_header=True)
        sev_table.add_column("Severity", style="bold")
        sev_table.add_column("Count", justify="right")
        sev_table.add_column("% of total", justify="right")
        counted = sum(severity_counter.values())
        for sev in SEVERITIES:
            count = severity_counter.get(sev, 0)
            pct = f"{count / counted * 100:.1f}%" if counted else "0%"
            style = _SEV_STYLE[sev]
            sev_table.add_row(f"[{style}]{sev}[/{style}]", str(count), pct)
        console.print(sev_table)

    # --- Most flagged files ---
    if file_counter:
        file_table = Table(title=f"Top {top} Most Flagged Files", show_header=True)
        file_table.add_column("File")
        file_table.add_column("Comments", justify="right")
        for file_path, count in file_counter.most_common(top):
            file_table.add_row(file_path, str(count))
        console.print(file_table)

    # --- Feedback ---
    if feedback:
        actions = sorted({f.action for f in feedback})
        fb_table = Table(title="Comment Feedback", show_header=True)
        fb_table.add_column("Severity", style="bold")
        for action in actions:
            fb_table.add_column(action.capitalize(), justify="right")
        for sev in SEVERITIES:
            row = Counter(f.action for f in feedback if f.severity == sev)
            style = _SEV_STYLE[sev]
            fb_table.add_row(f"[{style}]{sev}[/{style}]", *(str(row.get(a, 0)) for a in actions))
        console.print(fb_table)

    # --- Thresholds the next review will use ---
    try:
        effective = resolve_thresholds(repo_review_config(ctx.obj["config"]), feedback)
    except ConfigurationError as e:
        raise click.UsageError(str(e))
    console.print(
        f"\n  Ignore thresholds: minor {effective.ignore_minor_threshold:.2f}, "
        f"major {effective.ignore_major_threshold:.2f}"
        + (" (adaptive)" if effective.adaptive_thresholds else "")
    )
