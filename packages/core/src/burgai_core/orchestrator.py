"""Model call orchestration: one ReviewEnvelope per PR event.

Each attempt is reduced to an ``AttemptOutcome`` whose ``error`` is an
``ErrorKind``; the retry loop in generate_review is a plain branch over that
value. Two independent budgets apply:

    generic    parse failures, validation failures, HTTP 500/502/503, timeouts
               8 attempts, 3000ms * 2**min(i, 3) between them
    rate limit HTTP 429 only
               5 extra retries, 8000ms * 2**i between them

Any other error is fatal: the loop stops, nothing is synthesised and the
envelope carries the error. When the generic budget runs out the envelope
carries fallback comments instead of a parsed review.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable

from burgai_core.breaker import CircuitBreakerState, allow_request, record_failure, record_success
from burgai_core.errors import ModelAPIError, ModelTimeoutError
from burgai_core.fallback import coerce_comment, generate_fallback_comments
from burgai_core.prompts import build_review_prompt, build_system_prompt
from burgai_core.recovery import extract_valid_json
from burgai_core.schema import (
    MAX_COMMENTS,
    ReviewComment,
    StructuredReview,
    ValidationResult,
    build_metadata,
    normalize_summary,
    to_wire,
    validate_review,
)

if TYPE_CHECKING:
    from burgai_core.config import RepoReviewConfig
    from burgai_core.context import PRContext
    from burgai_core.prompts import PastFinding
    from burgai_core.providers.base import BaseModelClient

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 8
MAX_RATE_LIMIT_RETRIES = 5
RETRY_DELAY_MS = 3000
RATE_LIMIT_BACKOFF_MS = 8000
TRANSIENT_STATUS_CODES = frozenset({500, 502, 503})
_REVIEW_KEYS = frozenset({"summary", "comments", "metadata"})


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    PARSE_FAILURE = "parse_failure"
    VALIDATION_FAILURE = "validation_failure"
    FATAL = "fatal"


@dataclass(frozen=True)
class AttemptOutcome:
    raw: str = ""
    review: StructuredReview | None = None
    error: ErrorKind | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None and self.review is not None

    @property
    def response_received(self) -> bool:
        return self.error in (None, ErrorKind.PARSE_FAILURE, ErrorKind.VALIDATION_FAILURE)


@dataclass
class RetryState:
    attempts: int = 0
    generic_failures: int = 0
    rate_limit_retries: int = 0
    last_raw: str = ""
    last_error: str | None = None
    validation_errors: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)
    api_time_ms: float = 0.0

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000


@dataclass(frozen=True)
class ModelRequest:
    provider: str
    model: str
    temperature: float
    max_tokens: int
    system_prompt: str
    prompt: str
    timestamp: str


@dataclass
class ReviewEnvelope:
    """Everything one generate_review call asked, received and concluded."""

    request: ModelRequest
    raw: str
    parsed: StructuredReview | None
    validation_errors: list[str] | None
    fallback_comments: list[ReviewComment]
    retry_count: int
    response_timestamp: str
    processing_time_ms: float
    breaker: CircuitBreakerState
    metadata: dict = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return bool(self.metadata.get("success"))

    @property
    def fatal(self) -> bool:
        return bool(self.metadata.get("fatal"))


def backoff_delay_ms(index: int) -> int:
    return RETRY_DELAY_MS * 2 ** min(index, 3)


def rate_limit_delay_ms(index: int) -> int:
    return RATE_LIMIT_BACKOFF_MS * 2**index


def classify_error(exc: BaseException) -> ErrorKind:
    if isinstance(exc, ModelTimeoutError):
        return ErrorKind.SERVER_ERROR
    if isinstance(exc, ModelAPIError):
        if exc.status_code == 429:
            return ErrorKind.RATE_LIMITED
        if exc.status_code in TRANSIENT_STATUS_CODES:
            return ErrorKind.SERVER_ERROR
    return ErrorKind.FATAL


def parse_model_json(raw: str) -> Any | None:
    """Parse raw model text, running JSON recovery when a direct parse fails."""
    try:
        return json.loads(raw)
    except (ValueError, RecursionError):
        pass
    recovered = extract_valid_json(raw)
    if recovered is None:
        return None
    return json.loads(recovered)


def coerce_review(data: Any) -> ValidationResult[StructuredReview]:
    """Turn parsed model JSON into a StructuredReview.

    The document must be an object with a string ``summary`` and a list of
    ``comments``. Comments that cannot be accepted are dropped and their
    errors kept in ``metadata.validationErrors``. Unknown top-level keys
    reject the document. So does a ``comments`` list that is empty or has no
    surviving comment.
    """
    if not isinstance(data, dict):
        return ValidationResult(errors=[f"<root>: expected an object, got {type(data).__name__}"])
    summary = data.get("summary")
    raw_comments = data.get("comments")
    errors = []
    if not isinstance(summary, str):
        errors.append("summary: expected a string")
    if not isinstance(raw_comments, list):
        errors.append("comments: expected a list")
    errors.extend(f"{key}: unknown field" for key in data if key not in _REVIEW_KEYS)
    if errors:
        return ValidationResult(errors=errors)

    survivors: list[ReviewComment] = []
    dropped: list[str] = []
    for i, raw in enumerate(raw_comments):
        comment, comment_errors = coerce_comment(raw)
        if comment is None:
            dropped.extend(f"comments.{i}.{e}" for e in comment_errors)
        else:
            survivors.append(comment)

    if not raw_comments:
        return ValidationResult(errors=["comments: at least one comment is required"])
    if not survivors:
        return ValidationResult(errors=dropped or ["comments: no valid comments"])
    if len(survivors) > MAX_COMMENTS:
        logger.warning("Model returned %d comments; keeping the first %d", len(survivors), MAX_COMMENTS)
        survivors = survivors[:MAX_COMMENTS]

    return validate_review(
        {
            "summary": normalize_summary(summary),
            "comments": [to_wire(c) for c in survivors],
            "metadata": build_metadata(survivors, validation_errors=dropped).model_dump(by_alias=True),
        }
    )


def _attempt(client: BaseModelClient, system_prompt: str, user_prompt: str, state: RetryState) -> AttemptOutcome:
    state.attempts += 1
    started = time.monotonic()
    try:
        raw = client.complete(system_prompt, user_prompt)
    except ModelAPIError as e:
        return AttemptOutcome(error=classify_error(e), detail=str(e))
    except Exception as e:
        logger.error("Unexpected %s from model client: %s", type(e).__name__, e)
        return AttemptOutcome(error=ErrorKind.FATAL, detail=f"{type(e).__name__}: {e}")
    finally:
        state.api_time_ms += (time.monotonic() - started) * 1000

    state.last_raw = raw
    if not raw.strip():
        return AttemptOutcome(raw=raw, error=ErrorKind.PARSE_FAILURE, detail="Empty response from model")

    data = parse_model_json(raw)
    if data is None:
        return AttemptOutcome(raw=raw, error=ErrorKind.PARSE_FAILURE, detail="Response is not recoverable JSON")

    result = coerce_review(data)
    if not result.ok:
        state.validation_errors.extend(result.errors)
        return AttemptOutcome(
            raw=raw,
            error=ErrorKind.VALIDATION_FAILURE,
            detail=f"Schema validation failed: {'; '.join(result.errors[:3])}",
        )
    return AttemptOutcome(raw=raw, review=result.value)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _envelope(
    state: RetryState,
    request: ModelRequest,
    breaker: CircuitBreakerState,
    *,
    parsed: StructuredReview | None = None,
    fallback: list[ReviewComment] | None = None,
    fatal: bool = False,
) -> ReviewEnvelope:
    success = parsed is not None
    total_ms = state.elapsed_ms
    return ReviewEnvelope(
        request=request,
        raw=state.last_raw,
        parsed=parsed,
        validation_errors=None if success else list(state.validation_errors),
        fallback_comments=fallback or [],
        retry_count=max(state.attempts - 1, 0),
        response_timestamp=_now(),
        processing_time_ms=total_ms,
        breaker=breaker,
        metadata={
            "success": success,
            "fatal": fatal,
            "error": None if success else state.last_error,
            "attempts": state.attempts,
            "rate_limit_retries": state.rate_limit_retries,
            "api_call_duration_ms": round(state.api_time_ms, 1),
            "total_duration_ms": round(total_ms, 1),
        },
    )


def generate_review(
    pr_context: PRContext,
    repo_config: RepoReviewConfig,
    client: BaseModelClient,
    *,
    prompt: str | None = None,
    history: Iterable[PastFinding] | None = None,
    breaker: CircuitBreakerState | None = None,
) -> ReviewEnvelope:
    """Ask the model for a review of ``pr_context`` and return the envelope.

    Never raises for model or response problems; those end up in
    ``envelope.metadata``. ``breaker`` gates entry only: an open breaker skips
    the model entirely and returns fallback comments straight away.
    """
    system_prompt = build_system_prompt(repo_config)
    user_prompt = prompt if prompt is not None else build_review_prompt(pr_context, repo_config, history)
    request = ModelRequest(
        provider=getattr(client, "provider", repo_config.provider),
        model=getattr(client, "model", repo_config.model),
        temperature=repo_config.temperature,
        max_tokens=repo_config.max_tokens,
        system_prompt=system_prompt,
        prompt=user_prompt,
        timestamp=_now(),
    )
    state = RetryState()
    breaker = breaker or CircuitBreakerState()

    allowed, breaker = allow_request(breaker)
    if not allowed:
        logger.warning("Circuit breaker open; skipping model call for %s#%d", pr_context.repo, pr_context.pr_number)
        state.last_error = "Circuit breaker open: model API unavailable"
        fallback = generate_fallback_comments(state.last_raw, pr_context.changed_files)
        return _envelope(state, request, breaker, fallback=fallback)

    while True:
        outcome = _attempt(client, system_prompt, user_prompt, state)

        if outcome.error is ErrorKind.SERVER_ERROR:
            breaker = record_failure(breaker)
        elif outcome.response_received:
            breaker = record_success(breaker)

        if outcome.ok:
            review = outcome.review
            review = review.model_copy(
                update={"metadata": review.metadata.model_copy(update={"analysis_time": round(state.elapsed_ms, 1)})}
            )
            logger.info(
                "Review generated on attempt %d with %d comment(s)",
                state.attempts,
                len(review.comments),
            )
            return _envelope(state, request, breaker, parsed=review)

        state.last_error = f"{outcome.error.value}: {outcome.detail}"

        if outcome.error is ErrorKind.FATAL:
            logger.error("Model request failed fatally on attempt %d: %s", state.attempts, outcome.detail)
            return _envelope(state, request, breaker, fatal=True)

        if outcome.error is ErrorKind.RATE_LIMITED:
            if state.rate_limit_retries >= MAX_RATE_LIMIT_RETRIES:
                logger.error("Still rate limited after %d retries; giving up", MAX_RATE_LIMIT_RETRIES)
                break
            delay_ms = rate_limit_delay_ms(state.rate_limit_retries)
            state.rate_limit_retries += 1
            logger.warning(
                "Rate limited (429). Retrying in %ds (rate-limit retry %d/%d)...",
                delay_ms // 1000,
                state.rate_limit_retries,
                MAX_RATE_LIMIT_RETRIES,
            )
            time.sleep(delay_ms / 1000)
            continue

        state.generic_failures += 1
        if state.generic_failures >= MAX_ATTEMPTS:
            logger.error("Model review failed after %d attempts: %s", state.generic_failures, outcome.detail)
            break
        delay_ms = backoff_delay_ms(state.generic_failures - 1)
        logger.warning(
            "%s (attempt %d/%d). Retrying in %ds...",
            state.last_error,
            state.generic_failures,
            MAX_ATTEMPTS,
            delay_ms // 1000,
        )
        time.sleep(delay_ms / 1000)

    fallback = generate_fallback_comments(state.last_raw, pr_context.changed_files)
    return _envelope(state, request, breaker, fallback=fallback)
