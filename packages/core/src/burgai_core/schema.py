"""Structural contract for model-produced reviews.

``ReviewComment`` and ``StructuredReview`` are the only shapes that leave the
pipeline. Both are frozen pydantic models using the camelCase field names the
model is prompted with (``filePath``, ``severityBreakdown`` ...) as aliases, so
``model_dump(by_alias=True)`` round-trips to the wire format.

validate_comment / validate_review never raise: they return a
``ValidationResult`` carrying either the model instance or a list of
``"field: reason"`` strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Generic, Iterable, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StringConstraints, ValidationError

Severity = Literal["critical", "major", "minor"]

SEVERITIES: tuple[str, ...] = ("critical", "major", "minor")
SEVERITY_RANK = {"critical": 3, "major": 2, "minor": 1}

MAX_COMMENTS = 50
SUMMARY_MIN, SUMMARY_MAX = 10, 2000
MESSAGE_MAX = 500
RATIONALE_MIN, RATIONALE_MAX = 10, 1000
SUGGESTION_MAX = 2000

# Checked in order; the first tier with a hit wins.
_CRITICAL_KEYWORDS = (
    "security",
    "vulnerability",
    "security-issue",
    "bug",
    "error",
    "runtime-error",
    "null-pointer",
    "infinite-loop",
    "crash",
    "deadlock",
)
_MAJOR_KEYWORDS = (
    "performance",
    "memory-leak",
    "optimization",
    "complexity",
    "maintainability",
    "code-smell",
    "technical-debt",
    "scalability",
    "reliability",
    "error-handling",
)

T = TypeVar("T")

_MODEL_CONFIG = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)


class ReviewComment(BaseModel):
    """One inline finding anchored to a file and a line of the new file."""

    model_config = _MODEL_CONFIG

    file_path: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)] = Field(alias="filePath")
    line: Annotated[StrictInt, Field(ge=1)]
    severity: Severity
    message: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=MESSAGE_MAX)]
    rationale: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=RATIONALE_MIN, max_length=RATIONALE_MAX)
    ]
    suggestion: Annotated[str, StringConstraints(max_length=SUGGESTION_MAX)] | None = None


class SeverityBreakdown(BaseModel):
    model_config = _MODEL_CONFIG

    critical: int = Field(default=0, ge=0)
    major: int = Field(default=0, ge=0)
    minor: int = Field(default=0, ge=0)


class ReviewMetadata(BaseModel):
    model_config = _MODEL_CONFIG

    total_comments: int = Field(alias="totalComments", ge=0)
    severity_breakdown: SeverityBreakdown = Field(alias="severityBreakdown")
    analysis_time: float = Field(default=0, alias="analysisTime", ge=0)  # milliseconds
    validation_errors: list[str] | None = Field(default=None, alias="validationErrors")


class StructuredReview(BaseModel):
    """The review document produced for one PR event."""

    model_config = _MODEL_CONFIG

    summary: Annotated[str, StringConstraints(min_length=SUMMARY_MIN, max_length=SUMMARY_MAX)]
    comments: list[ReviewComment] = Field(default_factory=list, max_length=MAX_COMMENTS)
    metadata: ReviewMetadata | None = None


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    value: T | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.value is not None


def format_errors(exc: ValidationError) -> list[str]:
    """Flatten a pydantic ValidationError into ``"path: message"`` strings."""
    errors = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
        errors.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return errors


def validate_comment(candidate: Any) -> ValidationResult[ReviewComment]:
    if isinstance(candidate, ReviewComment):
        return ValidationResult(value=candidate)
    if not isinstance(candidate, dict):
        return ValidationResult(errors=[f"<root>: expected an object, got {type(candidate).__name__}"])
    try:
        return ValidationResult(value=ReviewComment.model_validate(candidate))
    except ValidationError as e:
        return ValidationResult(errors=format_errors(e))


def validate_review(candidate: Any, analysis_time_ms: float = 0) -> ValidationResult[StructuredReview]:
    """Validate a whole review, deriving ``metadata`` when the candidate has none."""
    if isinstance(candidate, StructuredReview):
        review = candidate
    elif not isinstance(candidate, dict):
        return ValidationResult(errors=[f"<root>: expected an object, got {type(candidate).__name__}"])
    else:
        try:
            review = StructuredReview.model_validate(candidate)
        except ValidationError as e:
            return ValidationResult(errors=format_errors(e))

    if review.metadata is None:
        review = review.model_copy(update={"metadata": build_metadata(review.comments, analysis_time_ms)})
    return ValidationResult(value=review)


def severity_breakdown(comments: Iterable[ReviewComment]) -> SeverityBreakdown:
    counts = {s: 0 for s in SEVERITIES}
    for c in comments:
        counts[c.severity] += 1
    return SeverityBreakdown(**counts)


def build_metadata(
    comments: list[ReviewComment],
    analysis_time_ms: float = 0,
    validation_errors: list[str] | None = None,
) -> ReviewMetadata:
    return ReviewMetadata(
        total_comments=len(comments),
        severity_breakdown=severity_breakdown(comments),
        analysis_time=max(analysis_time_ms, 0),
        validation_errors=validation_errors or None,
    )


def classify_severity(message: str | None, rationale: str | None = None) -> str:
    """Guess a severity from free text when the model gave none we can use.

    Only ever a fallback: an explicit, valid severity label is never
    second-guessed by this function.
    """
    text = f"{message or ''} {rationale or ''}".lower()
    if any(keyword in text for keyword in _CRITICAL_KEYWORDS):
        return "critical"
    if any(keyword in text for keyword in _MAJOR_KEYWORDS):
        return "major"
    return "minor"


DEFAULT_SUMMARY = "Automated code review encountered technical difficulties. Manual review recommended."


def normalize_summary(summary: str | None) -> str:
    """Bring a summary inside the 10-2000 character bound without losing its text."""
    text = (summary or "").strip()
    if not text:
        return DEFAULT_SUMMARY
    if len(text) < SUMMARY_MIN:
        text = f"Review summary: {text}"
    if len(text) > SUMMARY_MAX:
        text = text[: SUMMARY_MAX - 3].rstrip() + "..."
    return text


def to_wire(comment: ReviewComment) -> dict:
    """Serialise a comment with camelCase keys, omitting an absent suggestion."""
    return comment.model_dump(by_alias=True, exclude_none=True)
