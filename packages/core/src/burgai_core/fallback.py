"""Comment repair and fallback synthesis.

Two guarantees live here. repair_comment turns any loosely-shaped comment the
model produced into a valid ``ReviewComment`` and never raises.
generate_fallback_comments produces at least one valid comment for a PR even
when nothing usable came back from the model at all.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from burgai_core.context import ChangedFile
from burgai_core.schema import (
    MESSAGE_MAX,
    RATIONALE_MAX,
    RATIONALE_MIN,
    SEVERITIES,
    SUGGESTION_MAX,
    ReviewComment,
    classify_severity,
    validate_comment,
)
from burgai_core.utils.code import CONFIG_EXTENSIONS, file_extension, is_high_risk
from burgai_core.utils.diff import first_added_line

logger = logging.getLogger(__name__)

LEGACY_SEVERITY = {"high": "critical", "medium": "major", "low": "minor"}

_GENERATED_MESSAGE = {
    "critical": "Critical issue detected in {file}. Manual review required for security and correctness concerns.",
    "major": "Significant issue detected in {file}. Review recommended for maintainability and performance.",
    "minor": "Minor improvement suggested for {file}. Consider reviewing for code quality.",
}
_GENERATED_RATIONALE = {
    "critical": (
        "Flagged by automated analysis as a potential security or correctness problem that can break production."
    ),
    "major": "Flagged by automated analysis as likely to hurt performance or maintainability if left as is.",
    "minor": "AI-generated code review suggestion based on automated analysis.",
}

_LANGUAGE_MESSAGE = {
    "ts": "TypeScript file {name} has {n} changes. Manual review recommended for type safety and code quality.",
    "tsx": "TypeScript file {name} has {n} changes. Manual review recommended for type safety and code quality.",
    "js": "JavaScript file {name} has {n} changes. Manual review recommended for runtime errors and best practices.",
    "jsx": "JavaScript file {name} has {n} changes. Manual review recommended for runtime errors and best practices.",
    "py": "Python file {name} has {n} changes. Manual review recommended for error handling and code style.",
    "java": (
        "Java file {name} has {n} changes. "
        "Manual review recommended for object-oriented design and exception handling."
    ),
    "go": "Go file {name} has {n} changes. Manual review recommended for concurrency and error handling.",
    "rs": "Rust file {name} has {n} changes. Manual review recommended for ownership and memory safety.",
    "md": "Documentation file {name} has {n} changes. Review for accuracy and clarity.",
}
_CONFIG_MESSAGE = "Configuration file {name} has {n} changes. Verify the settings are correct and secure."
_DEFAULT_MESSAGE = "File {name} has {n} changes. Manual review recommended."

_PARTIAL_MESSAGE = (
    "AI analysis partially completed for {name}. The response was truncated but indicates potential issues exist."
)
_PARTIAL_RATIONALE = (
    "The AI model generated a response but it was incomplete or malformed. Manual review is strongly recommended."
)
_EMPTY_MESSAGE = "AI review failed for {name} due to API communication issues. Manual inspection required."
_EMPTY_RATIONALE = (
    "The AI service returned an incomplete or empty response, indicating a technical issue with the analysis."
)
_PARSE_RATIONALE = (
    "Automated code review encountered a parsing error. Manual code review is recommended to ensure code quality."
)

_PARTIAL_RESPONSE_MIN_CHARS = 1000
_EMPTY_RESPONSE_MAX_CHARS = 100


def clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def normalise_severity(value: Any, message: str | None = None, rationale: str | None = None) -> str:
    """Map a model-supplied severity label onto critical/major/minor.

    Canonical labels pass through, the legacy low/medium/high scale is mapped,
    and anything else is classified from the comment text.
    """
    if isinstance(value, str):
        label = value.strip().lower()
        if label in SEVERITIES:
            return label
        if label in LEGACY_SEVERITY:
            return LEGACY_SEVERITY[label]
    return classify_severity(message, rationale)


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _line(value: Any) -> int:
    if isinstance(value, bool):
        return 1
    if isinstance(value, int):
        return value if value >= 1 else 1
    if isinstance(value, str) and value.strip().isdigit():
        return max(int(value.strip()), 1)
    return 1


def repair_comment(raw: Any) -> ReviewComment:
    """Adapt a legacy or partially valid comment into a valid ``ReviewComment``.

    Accepts ``code`` in place of ``suggestion`` and the low/medium/high scale.
    A missing or too-short message or rationale is replaced with text suited
    to the comment's severity; over-long text is clipped to its bound.
    """
    if not isinstance(raw, dict):
        raw = {}

    file_path = _text(raw.get("filePath")) or "unknown"
    suggestion = _text(raw.get("suggestion")) or _text(raw.get("code"))
    message = _text(raw.get("message"))
    rationale = _text(raw.get("rationale"))
    severity = normalise_severity(raw.get("severity"), message or suggestion, rationale)

    if not message:
        message = suggestion or _GENERATED_MESSAGE[severity].format(file=file_path)
    if len(rationale) < RATIONALE_MIN:
        rationale = _GENERATED_RATIONALE[severity]

    return ReviewComment(
        file_path=file_path,
        line=_line(raw.get("line")),
        severity=severity,
        message=clip(message, MESSAGE_MAX),
        rationale=clip(rationale, RATIONALE_MAX),
        suggestion=clip(suggestion, SUGGESTION_MAX) if suggestion else None,
    )


def is_legacy_form(raw: dict) -> bool:
    """True for the older comment shape: a ``code`` field or the low/medium/high scale."""
    severity = raw.get("severity")
    if isinstance(severity, str) and severity.strip().lower() in LEGACY_SEVERITY:
        return True
    return "code" in raw


def coerce_comment(raw: Any) -> tuple[ReviewComment | None, list[str]]:
    """Accept one raw model comment in either shape, or explain why it was dropped.

    Canonical comments are validated strictly; the only thing patched up is
    a missing or unusable severity, which is classified from the text.
    Legacy comments must carry a usable ``filePath`` and ``line`` and are then
    adapted by repair_comment.
    """
    if not isinstance(raw, dict):
        return None, [f"expected an object, got {type(raw).__name__}"]

    if is_legacy_form(raw):
        errors = []
        if not _text(raw.get("filePath")):
            errors.append("filePath: missing or empty")
        line = raw.get("line")
        if isinstance(line, bool) or not isinstance(line, int) or line < 1:
            errors.append("line: must be an integer >= 1")
        if errors:
            return None, errors
        return repair_comment(raw), []

    result = validate_comment(raw)
    if result.ok:
        return result.value, []
    if all(e.startswith("severity:") for e in result.errors):
        relabelled = {**raw, "severity": classify_severity(raw.get("message"), raw.get("rationale"))}
        retry = validate_comment(relabelled)
        if retry.ok:
            return retry.value, []
    return None, result.errors


def fallback_severity(file_path: str, changes: int) -> str:
    high_risk = is_high_risk(file_path)
    if high_risk and changes > 100:
        return "critical"
    if high_risk and changes > 20:
        return "major"
    if changes > 200:
        return "major"
    return "minor"


def _file_message(name: str, ext: str, changes: int) -> str:
    if ext in CONFIG_EXTENSIONS:
        template = _CONFIG_MESSAGE
    else:
        template = _LANGUAGE_MESSAGE.get(ext, _DEFAULT_MESSAGE)
    return template.format(name=name, n=changes)


def _unique_files(changed_files: Iterable[ChangedFile]) -> list[ChangedFile]:
    seen: dict[str, ChangedFile] = {}
    for f in changed_files:
        if f.path and f.path not in seen:
            seen[f.path] = f
    return list(seen.values())


def generate_fallback_comments(raw_response: str | None, changed_files: Iterable[ChangedFile]) -> list[ReviewComment]:
    """Synthesise one comment per distinct changed file; never returns an empty list.

    The wording depends on what the model sent back: a long response that
    looks like a review was cut off, a near-empty one points at the API, and
    anything else gets a message specific to the file's language.
    """
    raw = raw_response or ""
    looks_partial = ('"summary"' in raw or '"comments"' in raw) and len(raw) > _PARTIAL_RESPONSE_MIN_CHARS
    looks_empty = len(raw) < _EMPTY_RESPONSE_MAX_CHARS

    comments = []
    for f in _unique_files(changed_files):
        name = f.path.rsplit("/", 1)[-1] or f.path
        if looks_partial:
            message, rationale = _PARTIAL_MESSAGE.format(name=name), _PARTIAL_RATIONALE
        elif looks_empty:
            message, rationale = _EMPTY_MESSAGE.format(name=name), _EMPTY_RATIONALE
        else:
            message, rationale = _file_message(name, file_extension(f.path), f.changes), _PARSE_RATIONALE

        comments.append(
            ReviewComment(
                file_path=f.path,
                line=first_added_line(f.patch) or 1,
                severity=fallback_severity(f.path, f.changes),
                message=clip(message, MESSAGE_MAX),
                rationale=rationale,
                suggestion=(
                    f"Please manually review {name} for potential issues, especially in areas with "
                    f"significant changes ({f.additions} additions, {f.deletions} deletions)."
                ),
            )
        )

    if not comments:
        comments.append(
            ReviewComment(
                file_path="unknown",
                line=1,
                severity="minor",
                message="Automated code review encountered technical difficulties. Manual review recommended.",
                rationale="The AI review system was unable to complete analysis due to technical issues.",
                suggestion="Please conduct a comprehensive manual code review for this pull request.",
            )
        )

    logger.info("Generated %d fallback comment(s)", len(comments))
    return comments
