"""One PR event end to end: generate → finalize → resolve thresholds → filter."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from burgai_core.filtering import FeedbackLike, filter_comments, resolve_thresholds
from burgai_core.finalize import finalize
from burgai_core.orchestrator import ReviewEnvelope, generate_review
from burgai_core.schema import StructuredReview, build_metadata

if TYPE_CHECKING:
    from burgai_core.breaker import CircuitBreakerState
    from burgai_core.config import RepoReviewConfig
    from burgai_core.context import PRContext
    from burgai_core.prompts import PastFinding
    from burgai_core.providers.base import BaseModelClient

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    envelope: ReviewEnvelope
    review: StructuredReview | None  # None only when the model call failed fatally
    used_fallback: bool
    effective_config: RepoReviewConfig

    @property
    def success(self) -> bool:
        return self.envelope.success

    @property
    def fatal(self) -> bool:
        return self.envelope.fatal

    @property
    def error(self) -> str | None:
        return self.envelope.metadata.get("error")


def review_pull_request(
    pr_context: PRContext,
    repo_config: RepoReviewConfig,
    client: BaseModelClient,
    *,
    feedback: Iterable[FeedbackLike] | None = None,
    history: Iterable[PastFinding] | None = None,
    breaker: CircuitBreakerState | None = None,
    rng: random.Random | None = None,
) -> PipelineResult:
    envelope = generate_review(pr_context, repo_config, client, history=history, breaker=breaker)
    effective = resolve_thresholds(repo_config, feedback)

    if envelope.fatal:
        logger.error("Review of %s#%d aborted: %s", pr_context.repo, pr_context.pr_number, envelope.metadata["error"])
        return PipelineResult(envelope=envelope, review=None, used_fallback=False, effective_config=effective)

    finalized = finalize(envelope.parsed, envelope.fallback_comments)
    validated = finalized.validated
    kept = filter_comments(validated.comments, effective, rng=rng)

    errors = (validated.metadata.validation_errors if validated.metadata else None) or []
    if finalized.used_fallback and envelope.validation_errors:
        errors = list(envelope.validation_errors) + list(errors)
    metadata = build_metadata(kept, envelope.metadata["total_duration_ms"], errors or None)
    review = validated.model_copy(update={"comments": kept, "metadata": metadata})

    logger.info(
        "Review of %s#%d: %d comment(s) after filtering (%d before)%s",
        pr_context.repo,
        pr_context.pr_number,
        len(kept),
        len(validated.comments),
        ", fallback used" if finalized.used_fallback else "",
    )
    return PipelineResult(
        envelope=envelope,
        review=review,
        used_fallback=finalized.used_fallback,
        effective_config=effective,
    )
