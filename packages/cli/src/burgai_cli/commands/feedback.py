"""feedback command: record a user's reaction to a posted review comment."""

from __future__ import annotations

import getpass

import click
from rich.console import Console

from burgai_cli.commands._store import require_store
from burgai_core.schema import SEVERITIES
from burgai_store.models import FeedbackRecord

console = Console()

FEEDBACK_ACTIONS = ("accepted", "ignored", "rejected", "dismissed")


@click.command("feedback")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option("--comment-id", required=True, help="ID of the review comment on GitHub.")
@click.option("--action", type=click.Choice(FEEDBACK_ACTIONS), required=True, help="How the comment was handled.")
@click.option("--severity", type=click.Choice(SEVERITIES), required=True, help="Severity of the comment.")
@click.option("--file", "file_path", default="", help="File the comment was left on.")
@click.option("--user", default=None, help="Who reacted. Defaults to the current OS user.")
@click.pass_context
def feedback_cmd(
    ctx,
    repo: str,
    pr_number: int,
    comment_id: str,
    action: str,
    severity: str,
    file_path: str,
    user: str | None,
):
    """Record feedback on a review comment.

    Ignored comments raise the chance that future comments of the same
    severity are filtered out once the repository has enough feedback.
    """
    store = require_store(ctx)
    store.record_feedback(
        FeedbackRecord(
            repo=repo,
            pr_number=pr_number,
            comment_id=comment_id,
            user=user or getpass.getuser(),
            action=action,
            severity=severity,
            file=file_path,
        )
    )
    console.print(f"[green]Recorded '{action}' for comment {comment_id} on {repo}#{pr_number}.[/green]")
