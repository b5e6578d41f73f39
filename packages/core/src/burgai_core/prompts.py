"""Prompt construction for a whole-PR review request.

The pipeline treats prompts as opaque text; only the output contract at the
bottom of the user prompt has to agree with ``burgai_core.schema``.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from burgai_core.config import RepoReviewConfig
    from burgai_core.context import PRContext

_HISTORY_PATTERN_LIMIT = 5
_PATTERN_PREFIX_CHARS = 50


@dataclass(frozen=True)
class PastFinding:
    """A comment from an earlier completed review of the same repository."""

    file: str
    severity: str
    message: str


def build_system_prompt(repo_config: RepoReviewConfig) -> str:
    if repo_config.system_prompt:
        return repo_config.system_prompt
    return """You are BurgAI, a strict and precise senior code reviewer.
Focus on security vulnerabilities, correctness, architecture and performance.

Security checks: SQL injection, XSS, CSRF, authentication bypass, data exposure,
command injection, path traversal, race conditions.
Performance checks: N+1 queries, memory leaks, inefficient algorithms, blocking I/O.

Rules:
- Comment on added lines (starting with '+'); consider what removed lines ('-') take away,
  e.g. deleted null checks or dropped permission guards.
- Do not comment on code that already follows best practices.
- Avoid assumptions when context is unclear. Be concise and actionable.
- Respond with a single JSON object and nothing else."""


def build_history_section(history: Iterable[PastFinding] | None) -> str:
    """Summarise the most frequent findings from past reviews, or '' when there are none."""
    if not history:
        return ""
    patterns: Counter[str] = Counter()
    for finding in history:
        patterns[f"{finding.severity}: {finding.message[:_PATTERN_PREFIX_CHARS]}"] += 1
    if not patterns:
        return ""
    lines = [f"- {pattern} ({count} occurrence(s))" for pattern, count in patterns.most_common(_HISTORY_PATTERN_LIMIT)]
    return (
        "## Common issues from past reviews of this repository\n"
        + "\n".join(lines)
        + "\nStay consistent with how these were flagged before.\n"
    )


def build_review_prompt(
    pr_context: PRContext,
    repo_config: RepoReviewConfig,
    history: Iterable[PastFinding] | None = None,
) -> str:
    files_section = "\n\n".join(
        f"### File: {f.path} (+{f.additions} -{f.deletions})\n```diff\n{f.patch or 'No patch available'}\n```"
        for f in pr_context.changed_files
    )
    guidelines = f"## Repository guidelines\n{repo_config.review_guidelines}\n" if repo_config.review_guidelines else ""
    history_section = build_history_section(history)

    return f"""Review pull request #{pr_context.pr_number} in {pr_context.repo}.

## Title
{pr_context.title}

## Description
{pr_context.description or "No description provided."}

{guidelines}{history_section}
## Changes
{files_section or "No reviewable file changes."}

## Severity guide
- critical: security vulnerability, data corruption, crash
- major: logic error, performance bottleneck, missing error handling
- minor: code style, naming, documentation

## Output format
Respond with ONLY a JSON object, starting with {{ and ending with }}:

{{
  "summary": "<overall assessment, 10-2000 characters>",
  "comments": [
    {{
      "filePath": "<path exactly as shown above>",
      "line": <line number in the new file, integer >= 1>,
      "severity": "<critical|major|minor>",
      "message": "<the problem, at most 500 characters>",
      "rationale": "<why it matters, 10-1000 characters>",
      "suggestion": "<optional replacement code only, no markdown fences>"
    }}
  ]
}}

Return between 1 and 50 comments. For a clean change, one minor comment on the most notable added line is enough."""
