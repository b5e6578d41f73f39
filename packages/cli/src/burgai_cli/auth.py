"""GitHub token lookup for the CLI.

Sources are tried in order and the first non-empty one wins:
GITHUB_TOKEN, GH_TOKEN, then the token stored by ``gh auth login``.
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")
GH_CLI_TIMEOUT = 5


def _token_from_gh_cli() -> str | None:
    try:
        proc = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, timeout=GH_CLI_TIMEOUT)
    except FileNotFoundError:
        logger.debug("gh CLI not installed")
        return None
    except subprocess.TimeoutExpired:
        logger.debug("gh auth token timed out after %ds", GH_CLI_TIMEOUT)
        return None
    if proc.returncode != 0:
        logger.debug("gh auth token exited with %d", proc.returncode)
        return None
    return proc.stdout.strip() or None


def resolve_github_token() -> str | None:
    """Return a GitHub token, or None when no source has one. Never raises."""
    for var in TOKEN_ENV_VARS:
        value = os.environ.get(var)
        if value:
            logger.debug("GitHub token taken from %s", var)
            return value
    token = _token_from_gh_cli()
    if token:
        logger.debug("GitHub token taken from the gh CLI session")
    return token
