"""Per-repository comment filtering and prioritisation.

filter_comments does not know whether its thresholds were configured by hand
or derived from feedback; resolve_thresholds makes that choice beforehand.
"""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING, Iterable, Protocol

from burgai_core.schema import SEVERITY_RANK, ReviewComment

if TYPE_CHECKING:
    from burgai_core.config import RepoReviewConfig

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_MINOR = 0.7
DEFAULT_IGNORE_MAJOR = 0.3
# Adaptive thresholds only kick in once there is more feedback than this.
MIN_FEEDBACK_FOR_ADAPTIVE = 10

IGNORED_ACTIONS = frozenset({"ignored"})


class FeedbackLike(Protocol):
    severity: str
    action: str


def filter_comments(
    comments: Iterable[ReviewComment],
    repo_config: RepoReviewConfig,
    rng: random.Random | None = None,
) -> list[ReviewComment]:
    """Apply enabled severities, probabilistic dropping and the per-review cap.

    Minor comments are dropped with probability ``ignore_minor_threshold`` and
    major ones with ``ignore_major_threshold``; critical comments are never
    dropped at random. Pass ``rng`` (or set ``filter_seed``) for a
    reproducible result.
    """
    if rng is None:
        rng = random.Random(repo_config.filter_seed)
    drop_probability = {
        "minor": repo_config.ignore_minor_threshold,
        "major": repo_config.ignore_major_threshold,
    }

    kept = []
    for comment in comments:
        if comment.severity not in repo_config.enabled_severities:
            continue
        threshold = drop_probability.get(comment.severity, 0.0)
        if threshold > 0 and rng.random() < threshold:
            continue
        kept.append(comment)

    limit = repo_config.max_comments_per_review
    if len(kept) > limit:
        logger.info("Truncating %d comments to the per-review limit of %d", len(kept), limit)
        # sorted() is stable, so equal ranks keep their original order.
        kept = sorted(kept, key=lambda c: SEVERITY_RANK[c.severity], reverse=True)[:limit]
    return kept


def adaptive_thresholds(
    feedback: Iterable[FeedbackLike],
    defaults: tuple[float, float] = (DEFAULT_IGNORE_MINOR, DEFAULT_IGNORE_MAJOR),
) -> tuple[float, float]:
    """Return ``(ignore_minor, ignore_major)`` learned from user feedback.

    Each threshold is the share of feedback on that severity that was
    ignored. With too little feedback overall, or none for a severity, the
    corresponding default is kept.
    """
    feedback = list(feedback)
    default_minor, default_major = defaults
    if len(feedback) <= MIN_FEEDBACK_FOR_ADAPTIVE:
        return default_minor, default_major

    def ratio(severity: str, default: float) -> float:
        bucket = [f for f in feedback if f.severity == severity]
        if not bucket:
            return default
        return sum(1 for f in bucket if f.action in IGNORED_ACTIONS) / len(bucket)

    return ratio("minor", default_minor), ratio("major", default_major)


def resolve_thresholds(repo_config: RepoReviewConfig, feedback: Iterable[FeedbackLike] | None) -> RepoReviewConfig:
    """Swap in adaptive thresholds when the repository has them switched on."""
    if not repo_config.adaptive_thresholds:
        return repo_config
    minor, major = adaptive_thresholds(
        feedback or [],
        defaults=(repo_config.ignore_minor_threshold, repo_config.ignore_major_threshold),
    )
    logger.debug("Adaptive thresholds: minor=%.2f major=%.2f", minor, major)
    return repo_config.with_thresholds(minor, major)
