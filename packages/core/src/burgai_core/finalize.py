"""Final validation gate between the orchestrator and anything that persists or posts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from burgai_core.schema import (
    DEFAULT_SUMMARY,
    MAX_COMMENTS,
    ReviewComment,
    StructuredReview,
    build_metadata,
    normalize_summary,
    validate_comment,
    validate_review,
)

logger = logging.getLogger(__name__)

EMERGENCY_COMMENT = ReviewComment(
    file_path="unknown",
    line=1,
    severity="minor",
    message="Automated code review system encountered an error. Manual review required.",
    rationale="The automated review pipeline could not produce any valid findings for this pull request.",
    suggestion="Please conduct a manual code review for this pull request.",
)


@dataclass(frozen=True)
class FinalizedReview:
    validated: StructuredReview
    used_fallback: bool


def _revalidate(comments: Iterable) -> tuple[list[ReviewComment], list[str]]:
    kept, errors = [], []
    for i, comment in enumerate(comments):
        candidate = comment.model_dump(by_alias=True) if isinstance(comment, ReviewComment) else comment
        result = validate_comment(candidate)
        if result.ok:
            kept.append(result.value)
        else:
            errors.extend(f"comments.{i}.{e}" for e in result.errors)
    return kept, errors


def _assemble(summary: str | None, comments: list[ReviewComment], metadata_errors: list[str] | None, analysis_time):
    if len(comments) > MAX_COMMENTS:
        comments = comments[:MAX_COMMENTS]
    result = validate_review(
        {
            "summary": normalize_summary(summary),
            "comments": [c.model_dump(by_alias=True, exclude_none=True) for c in comments],
            "metadata": build_metadata(comments, analysis_time, metadata_errors).model_dump(by_alias=True),
        }
    )
    return result


def finalize(parsed: StructuredReview | None, fallback: Iterable[ReviewComment]) -> FinalizedReview:
    """Return a review that is guaranteed to pass validate_review.

    A parsed review is re-checked comment by comment and invalid comments are
    dropped; if none remain it is treated as invalid. In that case the fallback
    comments are used, or a single emergency comment when there are none.
    """
    if parsed is not None:
        comments, errors = _revalidate(parsed.comments)
        if comments:
            analysis_time = parsed.metadata.analysis_time if parsed.metadata else 0
            previous = (parsed.metadata.validation_errors or []) if parsed.metadata else []
            result = _assemble(parsed.summary, comments, previous + errors or None, analysis_time)
            if result.ok:
                return FinalizedReview(validated=result.value, used_fallback=False)
            errors = result.errors
        logger.warning("Parsed review failed final validation (%d error(s)); using fallback", len(errors))

    comments, errors = _revalidate(fallback)
    if not comments:
        logger.warning("No usable fallback comments; emitting emergency comment")
        comments = [EMERGENCY_COMMENT]

    result = _assemble(DEFAULT_SUMMARY, comments, errors or None, 0)
    if not result.ok:
        # Only reachable if a fallback comment fails the bulk check; the emergency review cannot.
        result = _assemble(DEFAULT_SUMMARY, [EMERGENCY_COMMENT], result.errors, 0)
    return FinalizedReview(validated=result.value, used_fallback=True)
