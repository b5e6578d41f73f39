"""Unified-diff helpers shared by comment placement and fallback synthesis."""

from __future__ import annotations

import re

_HUNK_RE = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,\d+)? @@")


def _hunk_start(header: str) -> int | None:
    match = _HUNK_RE.match(header)
    return int(match.group(1)) if match else None


def get_diff_positions(patch_text: str) -> dict[int, int]:
    """
    Maps new-file line numbers of added lines to their cumulative GitHub diff positions.

    GitHub's review comment API requires positions that are cumulative across
    the entire patch, not reset per hunk. The @@ header line is NOT counted;
    position 1 is the first content line immediately below the @@ header.
    """
    positions: dict[int, int] = {}
    diff_position = 0
    file_line: int | None = None

    for line in patch_text.splitlines():
        if line.startswith("@@"):
            file_line = _hunk_start(line)
            continue

        diff_position += 1

        if line.startswith("+") and not line.startswith("+++"):
            if file_line is not None:
                positions[file_line] = diff_position
                file_line += 1
        elif line.startswith("-") and not line.startswith("---"):
            pass  # removed line, no new-file line number
        elif file_line is not None:
            file_line += 1

    return positions


def get_patch_line_content(patch_text: str, target_line: int) -> str:
    """Return the source content of a specific new-file line number from a patch."""
    file_line: int | None = None
    for line in patch_text.splitlines():
        if line.startswith("@@"):
            file_line = _hunk_start(line)
            continue
        if line.startswith("-") and not line.startswith("---"):
            continue
        if file_line is not None:
            if file_line == target_line:
                return line[1:] if line and line[0] in ("+", " ") else line
            file_line += 1
    return ""


def first_added_line(patch_text: str | None) -> int | None:
    """New-file line number of the first added line, or None for a patch with no additions."""
    positions = get_diff_positions(patch_text or "")
    return min(positions) if positions else None
