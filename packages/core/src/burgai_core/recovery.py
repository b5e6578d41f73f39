"""Staged recovery of a JSON document from raw model output.

Models wrap their JSON in markdown fences, forget to quote keys, leave
trailing commas, stutter tokens ("criticalcriticalcritical") and get cut off
mid-array. extract_valid_json escalates through four stages, each more
aggressive than the last, and stops at the first one that yields text
``json.loads`` accepts:

    1. the raw text as-is
    2. fences and backticks stripped, sliced from the first ``{`` to the last ``}``,
       then stuttered tokens collapsed
    3. bare keys quoted, trailing commas dropped, non-JSON lines filtered
    4. summary and comment fragments pulled out textually and re-assembled

The result is always either ``None`` or a string that parses as JSON.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Iterator

logger = logging.getLogger(__name__)

RECONSTRUCTED_SUMMARY = "Code review completed with automated analysis"
PLACEHOLDER_COMMENT = {
    "filePath": "unknown",
    "line": 1,
    "code": "Manual review recommended due to incomplete AI response",
    "severity": "medium",
}

_FENCE_RE = re.compile(r"```(?:jsonc|json)?", re.IGNORECASE)
_JSONC_RUN_RE = re.compile(r"(?<=\w)(?:jsonc)+\b")
_STUTTER_RE = re.compile(r"\b([A-Za-z_]{2,}?)\1{2,}\b")
_STRING_RE = re.compile(r'"(?:[^"\\]|\\.)*"', re.DOTALL)
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_$][A-Za-z0-9_$]*)\s*:")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")

_JSON_STRING = r'"((?:[^"\\]|\\.)*)"'
_SUMMARY_RE = re.compile(r'"summary"\s*:\s*' + _JSON_STRING, re.DOTALL)
_COMMENTS_START_RE = re.compile(r'"comments"\s*:\s*\[')
_FIELD_RES = {
    "filePath": re.compile(r'"filePath"\s*:\s*' + _JSON_STRING, re.DOTALL),
    "severity": re.compile(r'"severity"\s*:\s*"(\w+)"'),
    "message": re.compile(r'"message"\s*:\s*' + _JSON_STRING, re.DOTALL),
    "rationale": re.compile(r'"rationale"\s*:\s*' + _JSON_STRING, re.DOTALL),
    "code": re.compile(r'"(?:code|suggestion)"\s*:\s*' + _JSON_STRING, re.DOTALL),
}
_LINE_RE = re.compile(r'"line"\s*:\s*"?(\d+)')


def extract_valid_json(raw_text: str | None) -> str | None:
    if not raw_text:
        return None

    # Stage 1
    if _parses(raw_text):
        return raw_text

    # Stage 2
    cleaned = _FENCE_RE.sub("", raw_text).replace("`", "")
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end < start:
        logger.debug("No JSON object delimiters in model response (%d chars)", len(raw_text))
        return None
    candidate = cleaned[start : end + 1]
    if _parses(candidate):
        return candidate

    collapsed = _collapse_repeats(candidate)
    if collapsed != candidate and _parses(collapsed):
        logger.debug("Recovered JSON after collapsing repeated tokens")
        return collapsed

    # Stage 3
    repaired = _outside_strings(collapsed, _quote_keys_and_drop_trailing_commas)
    if _parses(repaired):
        logger.debug("Recovered JSON after key quoting and trailing comma removal")
        return repaired
    filtered = _filter_lines(repaired)
    if filtered and _parses(filtered):
        logger.debug("Recovered JSON after filtering non-JSON lines")
        return filtered

    # Stage 4
    logger.debug("Falling back to fragment reconstruction")
    return json.dumps(reconstruct_from_fragments(_collapse_repeats(raw_text)))


def _collapse_repeats(text: str) -> str:
    return _STUTTER_RE.sub(r"\1", _JSONC_RUN_RE.sub("", text))


def reconstruct_from_fragments(text: str) -> dict:
    """Rebuild a legacy-form review document from whatever fragments survive.

    Comments missing ``filePath`` or ``line`` are discarded; when none are
    left a single placeholder comment is emitted.
    """
    summary_match = _SUMMARY_RE.search(text)
    summary = _unescape(summary_match.group(1)).strip() if summary_match else ""

    comments = []
    array_start = _COMMENTS_START_RE.search(text)
    if array_start:
        for fragment in _iter_objects(text[array_start.end() :]):
            comment = _comment_from_fragment(fragment)
            if comment is not None:
                comments.append(comment)

    if not comments:
        comments = [dict(PLACEHOLDER_COMMENT)]
    return {"summary": summary or RECONSTRUCTED_SUMMARY, "comments": comments}


def _comment_from_fragment(fragment: str) -> dict | None:
    path_match = _FIELD_RES["filePath"].search(fragment)
    line_match = _LINE_RE.search(fragment)
    if not path_match or not line_match:
        return None
    file_path = _unescape(path_match.group(1)).strip()
    if not file_path:
        return None

    comment: dict = {"filePath": file_path, "line": int(line_match.group(1))}
    for key in ("message", "rationale", "code", "severity"):
        match = _FIELD_RES[key].search(fragment)
        if match:
            comment[key] = _unescape(match.group(1))
    comment.setdefault("code", "Review this code section for potential improvements")
    comment.setdefault("severity", "medium")
    return comment


def _iter_objects(text: str) -> Iterator[str]:
    """Yield each complete top-level ``{...}`` span, honouring string literals.

    An object left open at the end of the text (a truncated response) is not
    yielded.
    """
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start : i + 1]


def _outside_strings(text: str, transform) -> str:
    """Apply ``transform`` to the parts of ``text`` not inside string literals."""
    parts = []
    pos = 0
    for match in _STRING_RE.finditer(text):
        parts.append(transform(text[pos : match.start()]))
        parts.append(match.group(0))
        pos = match.end()
    parts.append(transform(text[pos:]))
    return "".join(parts)


def _quote_keys_and_drop_trailing_commas(segment: str) -> str:
    segment = _BARE_KEY_RE.sub(r'\1"\2":', segment)
    return _TRAILING_COMMA_RE.sub(r"\1", segment)


def _filter_lines(text: str) -> str:
    kept = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped[0] in '{}[]",-' or stripped[0].isdigit() or stripped.endswith((":", ",")):
            kept.append(line)
    return "\n".join(kept)


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except ValueError:
        return value


def _parses(text: str) -> bool:
    try:
        json.loads(text)
    except (ValueError, RecursionError):
        return False
    return True
