"""Review history and feedback data models.

Decoupled from burgai_core so the store layer can be used independently
and burgai_core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class CommentRecord:
    """A single review comment persisted to the store."""

    file: str
    line: int
    severity: str
    comment: str
    rationale: str = ""
    suggestion: str | None = None


@dataclass
class ReviewRecord:
    """A completed PR review persisted to the store.

    Created by the CLI layer after run_review() returns a ReviewSummary.
    The CLI maps ReviewSummary → ReviewRecord before calling store.save().
    """

    repo: str
    pr_number: int
    pr_title: str
    reviewer_model: str
    head_sha: str
    reviewed_at: str  # ISO-8601 UTC timestamp
    event: str  # "COMMENT" | "REQUEST_CHANGES", "" when nothing was posted
    total_comments: int
    files_reviewed: int
    success: bool = True
    used_fallback: bool = False
    retry_count: int = 0
    summary: str = ""
    error: str | None = None
    comments: list[CommentRecord] = field(default_factory=list)


@dataclass
class FeedbackRecord:
    """A user's reaction to one posted comment.

    ``action`` is one of "accepted", "ignored", "rejected" or "dismissed";
    only "ignored" counts towards the adaptive filter thresholds.
    """

    repo: str
    pr_number: int
    comment_id: str
    user: str
    action: str
    severity: str
    file: str = ""
    recorded_at: str = field(default_factory=_utcnow)
