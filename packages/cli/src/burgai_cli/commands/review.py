"""review command: run the AI review pipeline on a pull request."""

from __future__ import annotations

import logging

import click
from rich.console import Console

from burgai_core.config import PROVIDERS, repo_review_config
from burgai_core.errors import ConfigurationError
from burgai_core.gh.pull_request import get_pull_requests, get_repo
from burgai_core.prompts import PastFinding
from burgai_core.providers.registry import get_client
from burgai_core.reviewer import ReviewSummary, run_review
from burgai_store.models import CommentRecord, ReviewRecord

console = Console()
logger = logging.getLogger(__name__)

HISTORY_REVIEWS = 10


def _summary_to_record(summary: ReviewSummary, model: str) -> ReviewRecord:
    """Map a ReviewSummary returned by run_review() to a ReviewRecord for the store.

    The CLI layer owns this mapping: burgai_core has no store knowledge and
    burgai_store has no core knowledge. The CLI bridges the two.
    """
    return ReviewRecord(
        repo=summary.repo,
        pr_number=summary.pr_number,
        pr_title=summary.pr_title,
        reviewer_model=model,
        head_sha=summary.head_sha,
        reviewed_at=summary.reviewed_at,
        event=summary.event,
        total_comments=summary.total_comments,
        files_reviewed=len(summary.reviewed_files),
        success=summary.success,
        used_fallback=summary.used_fallback,
        retry_count=summary.retry_count,
        summary=summary.summary,
        error=summary.error,
        comments=[
            CommentRecord(
                file=c.get("path", ""),
                line=c.get("line", 0),
                severity=c.get("severity", "minor"),
                comment=c.get("message", ""),
                rationale=c.get("rationale") or "",
                suggestion=c.get("suggestion"),
            )
            for c in summary.comments
        ],
    )


def _history_from_store(store, repo: str) -> list[PastFinding]:
    return [
        PastFinding(file=c.file, severity=c.severity, message=c.comment)
        for record in store.recent_reviews(repo, limit=HISTORY_REVIEWS)
        for c in record.comments
    ]


@click.command("review")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option(
    "--pr",
    "pr_number",
    type=int,
    default=None,
    help="Pull request number. Omit to list open PRs interactively.",
)
@click.option(
    "--provider",
    type=click.Choice(list(PROVIDERS)),
    default=None,
    help="AI model provider. Overrides config file.",
)
@click.option("--model", default=None, help="Model name for the provider. Overrides config file.")
@click.option(
    "--guidelines",
    "guidelines_path",
    default=None,
    help="Path to a Markdown guidelines file. Overrides config file.",
)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts.")
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print review comments without posting to GitHub.",
)
@click.option("--seed", type=int, default=None, help="Seed for probabilistic comment filtering.")
@click.pass_context
def review_cmd(
    ctx,
    repo: str,
    pr_number: int | None,
    provider: str | None,
    model: str | None,
    guidelines_path: str | None,
    yes: bool,
    shadow: bool,
    seed: int | None,
):
    """Review a GitHub pull request and post the findings.

    Calls the configured model once per review with bounded retries. When
    the model output cannot be recovered, file-level fallback findings are
    posted instead so the PR never goes without feedback.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub token (GH_TOKEN or the gh CLI session also work)
      GEMINI_API_KEY       Required for --provider gemini (default)
      OPENAI_API_KEY       Required for --provider openai
      OPENROUTER_API_KEY   Required for --provider openrouter
      ANTHROPIC_API_KEY    Required for --provider anthropic
    """
    config = dict(ctx.obj["config"])
    overrides = {"provider": provider, "model": model, "guidelines": guidelines_path, "filter_seed": seed}
    config.update({k: v for k, v in overrides.items() if v is not None})

    token = config.get("github_token")
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )

    # Pre-flight: bad settings or a missing API key stop here, before any request.
    try:
        repo_config = repo_review_config(config)
        client = get_client(repo_config, config)
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    this_repo = get_repo(repo, token=token)

    if pr_number is None:
        prs = list(get_pull_requests(this_repo))
        if not prs:
            console.print("[yellow]No open pull requests found.[/yellow]")
            return
        console.print("\nOpen pull requests:")
        for pr in prs:
            console.print(f"  [bold]#{pr.number}[/bold]  {pr.title}")
        pr_number = click.prompt("\nEnter the pull request number", type=int)

    store = ctx.obj["store"]
    feedback = store.list_feedback(repo)
    history = _history_from_store(store, repo)
    logger.info("Loaded %d feedback entries and %d past findings for %s", len(feedback), len(history), repo)

    try:
        summary = run_review(
            repo=repo,
            pr_number=pr_number,
            config=config,
            auto_confirm=yes,
            shadow=shadow,
            repo_obj=this_repo,
            client=client,
            feedback=feedback,
            history=history,
        )
    except ValueError as e:
        raise click.UsageError(str(e))

    # Nothing to persist on draft-skip, empty PR or declined confirmation.
    if summary is None:
        return

    if not shadow:
        record = _summary_to_record(summary, f"{repo_config.provider}/{repo_config.model}")
        try:
            store.save(record)
        except Exception as e:
            logger.warning("Could not save review history: %s", e)
            console.print(f"[yellow]Warning: review history was not saved ({e}).[/yellow]")

    if summary.error:
        ctx.exit(1)
