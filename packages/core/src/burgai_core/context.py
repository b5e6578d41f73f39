"""Pull-request context handed to the review pipeline.

The pipeline never talks to GitHub itself: build_pr_context reads a PyGithub
pull request once, applies the repository's exclude rules and size limits,
and freezes the result into a ``PRContext``. Everything downstream (prompt,
orchestrator, fallback synthesis) works from that snapshot.
"""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field

from burgai_core.gh.pull_request import get_diff
from burgai_core.utils.code import is_code_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangedFile:
    path: str
    patch: str = ""
    additions: int = 0
    deletions: int = 0

    @property
    def changes(self) -> int:
        return self.additions + self.deletions


@dataclass(frozen=True)
class PRContext:
    repo: str
    pr_number: int
    title: str = ""
    description: str = ""
    author: str = ""
    head_sha: str = ""
    changed_files: tuple[ChangedFile, ...] = ()
    skipped_files: tuple[str, ...] = field(default=(), compare=False)

    @property
    def owner(self) -> str:
        return self.repo.split("/", 1)[0]


def is_excluded(filename: str, patterns: list[str]) -> bool:
    """Return True if filename matches any exclude pattern.

    Supports:
    - fnmatch globs on the full path: "src/generated/*.py"
    - fnmatch globs on the basename: "*.lock", "*.min.js"
    - Directory names/prefixes: "migrations/", "tests" (matches any file within that tree)
    """
    for pattern in patterns:
        if fnmatch.fnmatch(filename, pattern):
            return True
        if fnmatch.fnmatch(filename.rsplit("/", 1)[-1], pattern):
            return True
        prefix = pattern.rstrip("/") + "/"
        if filename.startswith(prefix) or ("/" + prefix) in filename:
            return True
    return False


def build_pr_context(repo_name: str, pr, config: dict) -> PRContext:
    """Snapshot a PyGithub pull request into a PRContext.

    Removed files and non-code files are skipped, as is anything matching
    ``exclude``. Patches longer than ``max_chars_per_file`` are truncated.
    """
    max_chars = config.get("max_chars_per_file", 20000)
    exclude_patterns = config.get("exclude", [])

    changed: list[ChangedFile] = []
    skipped: list[str] = []
    for f in sorted(get_diff(pr), key=lambda f: f.filename):
        if f.status == "removed" or is_excluded(f.filename, exclude_patterns) or not is_code_file(f.filename):
            skipped.append(f.filename)
            continue
        patch = f.patch or ""
        if len(patch) > max_chars:
            patch = patch[:max_chars] + "\n... [diff truncated]"
        changed.append(ChangedFile(path=f.filename, patch=patch, additions=f.additions, deletions=f.deletions))

    logger.info("PR %s#%d: %d file(s) to review, %d skipped", repo_name, pr.number, len(changed), len(skipped))
    return PRContext(
        repo=repo_name,
        pr_number=pr.number,
        title=pr.title or "",
        description=pr.body or "",
        author=pr.user.login if pr.user is not None else "",
        head_sha=pr.head.sha,
        changed_files=tuple(changed),
        skipped_files=tuple(skipped),
    )
