"""Core PR review orchestration: fetch, run the pipeline, post to GitHub."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable

from github import GithubException
from rich.console import Console

from burgai_core.config import repo_review_config
from burgai_core.context import PRContext, build_pr_context
from burgai_core.gh.pull_request import get_pull, get_repo, get_review_comments, is_self_authored
from burgai_core.pipeline import PipelineResult, review_pull_request
from burgai_core.providers.registry import get_client
from burgai_core.schema import SEVERITIES, SEVERITY_RANK, ReviewComment
from burgai_core.utils.diff import get_diff_positions, get_patch_line_content

if TYPE_CHECKING:
    from burgai_core.breaker import CircuitBreakerState
    from burgai_core.filtering import FeedbackLike
    from burgai_core.prompts import PastFinding
    from burgai_core.providers.base import BaseModelClient

console = Console()
logger = logging.getLogger(__name__)

FALLBACK_NOTICE = (
    "**Manual review recommended.** The automated review could not be completed normally, "
    "so the findings below were generated without a full model analysis."
)


@dataclass
class ReviewSummary:
    """Result returned by run_review, carrying enough data for the CLI to persist history.

    Decoupled from burgai_store so burgai_core has no dependency on the store layer.
    The CLI converts this to a ReviewRecord before persisting.
    """

    repo: str
    pr_number: int
    head_sha: str
    event: str  # "COMMENT" | "REQUEST_CHANGES", "" when nothing was posted
    pr_title: str = ""
    summary: str = ""
    success: bool = True
    used_fallback: bool = False
    error: str | None = None
    retry_count: int = 0
    processing_time_ms: float = 0.0
    reviewed_files: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)
    total_comments: int = 0
    comments: list[dict] = field(default_factory=list)
    reviewed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def _determine_event(comments: list[dict], self_authored: bool = False) -> str:
    """REQUEST_CHANGES for any critical or major finding on someone else's PR, else COMMENT."""
    if self_authored:
        return "COMMENT"
    severities = {c.get("severity", "minor") for c in comments}
    if severities & {"critical", "major"}:
        return "REQUEST_CHANGES"
    return "COMMENT"


def format_comment_body(comment: ReviewComment) -> str:
    body = f"**[{comment.severity.upper()}]** {comment.message}\n\n**Why it matters:** {comment.rationale}"
    if comment.suggestion:
        body += f"\n\n**Suggestion:**\n```\n{comment.suggestion}\n```"
    return body


def already_commented(
    existing_comments,
    file_path: str,
    file_line: int,
    comment_text: str,
    queued: set[tuple] | None = None,
) -> bool:
    """Check whether an identical comment already exists on the PR for this file+line.

    Checks both GitHub's existing review comments and any comments queued in the
    current run (to catch duplicates across batch boundaries or within a single file).
    """
    text = comment_text.strip()
    if queued is not None and (file_path, file_line, text) in queued:
        return True
    for c in existing_comments:
        # c.line is None for comments whose line no longer exists in the current diff
        # (e.g. after a force-push). Fall back to original_line in that case.
        comment_line = c.line if c.line is not None else getattr(c, "original_line", None)
        if c.path == file_path and comment_line == file_line and text in c.body.strip():
            return True
    return False


def place_comments(
    comments: Iterable[ReviewComment],
    pr_context: PRContext,
    existing_comments: list,
) -> tuple[list[dict], list[dict]]:
    """Split comments into inline ones (anchored to a diff position) and body-only ones.

    A comment whose line is not an added line of its file's patch cannot be
    posted inline and is listed in the review body instead. Comments already
    present on the PR are dropped.
    """
    patches = {f.path: f.patch for f in pr_context.changed_files}
    inline: list[dict] = []
    outside: list[dict] = []
    queued: set[tuple] = set()

    for comment in comments:
        patch = patches.get(comment.file_path, "")
        entry = {
            "path": comment.file_path,
            "line": comment.line,
            "severity": comment.severity,
            "message": comment.message,
            "rationale": comment.rationale,
            "suggestion": comment.suggestion,
            "body": format_comment_body(comment),
            "code": get_patch_line_content(patch, comment.line) if patch else "",
        }
        positions = get_diff_positions(patch) if patch else {}
        if comment.line not in positions:
            logger.debug("%s:%d is not an added line; listing it in the review body", comment.file_path, comment.line)
            outside.append(entry)
            continue
        if already_commented(existing_comments, comment.file_path, comment.line, comment.message, queued):
            logger.debug("Skipping duplicate comment for %s:%d", comment.file_path, comment.line)
            continue
        entry["position"] = positions[comment.line]
        inline.append(entry)
        queued.add((comment.file_path, comment.line, comment.message.strip()))

    return inline, outside


def _build_summary(result: PipelineResult, pr_context: PRContext, inline: list[dict], outside: list[dict]) -> str:
    """Build the top-level review body posted as the GitHub review description."""
    all_comments = inline + outside
    file_counts: dict[str, dict[str, int]] = {}
    for c in all_comments:
        counts = file_counts.setdefault(c["path"], {s: 0 for s in SEVERITIES})
        counts[c["severity"]] += 1
    totals = {s: sum(counts[s] for counts in file_counts.values()) for s in SEVERITIES}

    lines = ["## BurgAI review summary\n"]
    if result.used_fallback:
        lines.append(f"{FALLBACK_NOTICE}\n")
    lines.append(f"> {result.review.summary}\n")

    elapsed_seconds = result.envelope.processing_time_ms / 1000
    time_str = f"{int(elapsed_seconds)}s" if elapsed_seconds < 60 else f"{elapsed_seconds / 60:.1f} min"
    lines.append(
        f"**{len(pr_context.changed_files)}** file(s) reviewed"
        + (f", **{len(pr_context.skipped_files)}** skipped" if pr_context.skipped_files else "")
        + f" · **{len(all_comments)}** comment(s) · reviewed in {time_str}\n"
    )

    if file_counts:
        lines.append("| File | Critical | Major | Minor | Total |")
        lines.append("|------|:--------:|:-----:|:-----:|:-----:|")
        for path in sorted(file_counts, key=lambda p: sum(file_counts[p].values()), reverse=True):
            fc = file_counts[path]
            lines.append(
                f"| `{path}` "
                f"| {fc['critical'] or '—'} "
                f"| {fc['major'] or '—'} "
                f"| {fc['minor'] or '—'} "
                f"| {sum(fc.values())} |"
            )
        lines.append(
            f"\n_Totals: {totals['critical']} critical, {totals['major']} major, {totals['minor']} minor._"
        )

    if outside:
        lines.append("\n### Findings outside the diff\n")
        for c in sorted(outside, key=lambda c: SEVERITY_RANK[c["severity"]], reverse=True):
            lines.append(f"- `{c['path']}` line {c['line']}: **[{c['severity'].upper()}]** {c['message']}")
            lines.append(f"  - Why it matters: {c['rationale']}")
            if c.get("suggestion"):
                lines.append(f"  - Suggestion: {c['suggestion']}")

    return "\n".join(lines)


def print_shadow_comments(comments: list[dict]) -> None:
    """Print review comments to the terminal without posting to GitHub."""
    _severity_color = {"critical": "red", "major": "yellow", "minor": "blue"}
    if not comments:
        console.print("[yellow]Shadow mode: no comments generated.[/yellow]")
        return
    console.print(f"\n[bold]Shadow review: {len(comments)} comment(s) (not posted)[/bold]\n")
    for c in comments:
        severity = c.get("severity", "minor")
        color = _severity_color.get(severity, "white")
        console.print(
            f"[bold cyan]{c['path']}[/bold cyan]  line [bold]{c['line']}[/bold]  "
            f"[{color}]{severity.upper()}[/{color}]"
            + ("" if "position" in c else "  [dim](outside diff)[/dim]")
        )
        code = (c.get("code") or "").strip()
        if code:
            console.print(f"  [dim]{code}[/dim]")
        console.print(f"  {c['body']}")
        console.print()


def run_review(
    repo: str,
    pr_number: int,
    config: dict,
    auto_confirm: bool = False,
    shadow: bool = False,
    repo_obj=None,
    client: BaseModelClient | None = None,
    feedback: Iterable[FeedbackLike] | None = None,
    history: Iterable[PastFinding] | None = None,
    breaker: CircuitBreakerState | None = None,
    rng: random.Random | None = None,
) -> ReviewSummary | None:
    """Run the full PR review pipeline and return a ReviewSummary.

    Returns None on early exits (draft skip, nothing reviewable, declined
    confirmation). A fatal model error returns a summary with ``error`` set
    and posts nothing. Raises ConfigurationError when credentials or settings
    are unusable, before anything is fetched from the model.
    """
    repo_config = repo_review_config(config)
    if client is None:
        client = get_client(repo_config, config)

    this_repo = repo_obj if repo_obj is not None else get_repo(repo, token=config["github_token"])
    try:
        this_pr = get_pull(this_repo, pr_number)
    except GithubException:
        raise ValueError(f"PR #{pr_number} not found in {repo}.")

    if this_pr.draft and not config.get("review_draft_prs", False):
        console.print("[yellow]Skipping draft PR. Set review_draft_prs: true in .burgai.yml to review drafts.[/yellow]")
        return None

    pr_context = build_pr_context(repo, this_pr, config)
    for path in pr_context.skipped_files:
        console.print(f"  Skipping: {path}")
    if not pr_context.changed_files:
        console.print("[yellow]No reviewable files in this pull request.[/yellow]")
        return None

    console.print(
        f"Reviewing {len(pr_context.changed_files)} file(s) in {repo}#{pr_number} "
        f"with {repo_config.provider}/{repo_config.model}..."
    )
    result = review_pull_request(
        pr_context,
        repo_config,
        client,
        feedback=feedback,
        history=history,
        breaker=breaker,
        rng=rng,
    )

    base = dict(
        repo=repo,
        pr_number=pr_number,
        head_sha=pr_context.head_sha,
        pr_title=pr_context.title,
        success=result.success,
        used_fallback=result.used_fallback,
        error=result.error,
        retry_count=result.envelope.retry_count,
        processing_time_ms=result.envelope.processing_time_ms,
        reviewed_files=[f.path for f in pr_context.changed_files],
        skipped_files=list(pr_context.skipped_files),
    )

    if result.fatal:
        console.print(f"[red]Review failed: {result.error}. Nothing was posted.[/red]")
        return ReviewSummary(event="", **base)

    if result.used_fallback:
        console.print("[yellow]Model output was unusable; posting fallback findings for manual review.[/yellow]")

    existing_comments = get_review_comments(this_pr)
    inline, outside = place_comments(result.review.comments, pr_context, existing_comments)
    all_comments = inline + outside
    event = _determine_event(all_comments, self_authored=is_self_authored(this_pr, repo))
    summary_body = _build_summary(result, pr_context, inline, outside)

    summary = ReviewSummary(
        event=event,
        summary=result.review.summary,
        total_comments=len(all_comments),
        comments=all_comments,
        **base,
    )

    if shadow:
        print_shadow_comments(all_comments)
        console.print(f"[bold]Shadow review complete. {len(all_comments)} comment(s) would be posted.[/bold]")
        return summary

    if not auto_confirm:
        answer = input(f"Post {len(all_comments)} comment(s) as {event}? (y/n): ").strip().lower()
        if answer != "y":
            return None

    batch_limit = config.get("batch_limit", 60)
    batches = [inline[i : i + batch_limit] for i in range(0, len(inline), batch_limit)] or [[]]
    total_posted = 0
    for idx, batch in enumerate(batches):
        is_last = idx == len(batches) - 1
        batch_body = (
            summary_body if is_last else f"Review in progress ({total_posted + len(batch)}/{len(inline)} comments)..."
        )
        batch_event = event if is_last else "COMMENT"
        api_comments = [{"path": c["path"], "position": c["position"], "body": c["body"]} for c in batch]
        this_pr.create_review(body=batch_body, event=batch_event, comments=api_comments)
        total_posted += len(batch)

    console.print(
        f"\n[green]Review posted: {event}. {total_posted} inline comment(s), "
        f"{len(outside)} in the summary.[/green]"
    )
    return summary
