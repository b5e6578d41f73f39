from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

import yaml

from burgai_core.errors import ConfigurationError
from burgai_core.schema import SEVERITIES

PROVIDERS = ("gemini", "openai", "openrouter", "anthropic")

DEFAULT_MODELS = {
    "gemini": "gemini-1.5-flash",
    "openai": "gpt-4o",
    "openrouter": "openai/gpt-4o-mini",
    "anthropic": "claude-sonnet-4-20250514",
}

DEFAULT_CONFIG: dict = {
    "provider": "gemini",
    "model": None,  # None = the provider's default model
    "temperature": 0.1,
    "max_tokens": 4000,
    "request_timeout": 30,  # seconds per model call
    "max_chars_per_file": 20000,
    "batch_limit": 60,
    "guidelines": None,  # path to a Markdown file appended to the review prompt
    "system_prompt": None,
    "exclude": [],  # fnmatch patterns or directory names to skip (e.g. "migrations/", "*.min.js")
    "review_draft_prs": False,
    "enabled_severities": list(SEVERITIES),
    "adaptive_thresholds": True,
    "ignore_minor_threshold": 0.7,
    "ignore_major_threshold": 0.3,
    "max_comments_per_review": 20,
    "filter_seed": None,  # set an int to make probabilistic comment dropping reproducible
    "store": "noop",
    "store_path": ".burgai.db",
}

_LIST_KEYS = ("exclude", "enabled_severities")

_CREDENTIAL_ENV = {
    "github_token": "GITHUB_TOKEN",
    "gemini_api_key": "GEMINI_API_KEY",
    "openai_api_key": "OPENAI_API_KEY",
    "openrouter_api_key": "OPENROUTER_API_KEY",
    "anthropic_api_key": "ANTHROPIC_API_KEY",
}


def load_config(config_path: str = ".burgai.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .burgai.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG}
    for key in _LIST_KEYS:
        config[key] = list(DEFAULT_CONFIG[key])

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping, got {type(file_config).__name__}")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    for key, env_var in _CREDENTIAL_ENV.items():
        config[key] = os.environ.get(env_var)

    return config


def load_guidelines(config: dict) -> str | None:
    """Return the repository's review guidelines, or None when none are configured."""
    custom_path = config.get("guidelines")
    if not custom_path:
        return None
    p = Path(custom_path)
    if not p.exists():
        raise ConfigurationError(f"Guidelines file not found: {custom_path}")
    return p.read_text()


@dataclass(frozen=True)
class RepoReviewConfig:
    """Per-repository review settings, read-only to the pipeline."""

    enabled_severities: tuple[str, ...] = SEVERITIES
    adaptive_thresholds: bool = True
    ignore_minor_threshold: float = 0.7
    ignore_major_threshold: float = 0.3
    max_comments_per_review: int = 20
    provider: str = "gemini"
    model: str = DEFAULT_MODELS["gemini"]
    temperature: float = 0.1
    max_tokens: int = 4000
    request_timeout: float = 30.0
    system_prompt: str | None = None
    review_guidelines: str | None = None
    filter_seed: int | None = None

    def with_thresholds(self, minor: float, major: float) -> RepoReviewConfig:
        return replace(self, ignore_minor_threshold=minor, ignore_major_threshold=major)


def _check_range(name: str, value, low, high):
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not low <= value <= high:
        raise ConfigurationError(f"{name} must be between {low} and {high}, got {value!r}")
    return value


def repo_review_config(config: dict) -> RepoReviewConfig:
    """Build a RepoReviewConfig from a merged config dict, range-checking every number."""
    provider = config.get("provider", "gemini")
    if provider not in PROVIDERS:
        raise ConfigurationError(f"Unknown provider {provider!r}. Choose one of: {', '.join(PROVIDERS)}.")

    enabled = config.get("enabled_severities", SEVERITIES) or ()
    severities = tuple(s for s in SEVERITIES if s in enabled)
    unknown = set(enabled) - set(SEVERITIES)
    if unknown:
        raise ConfigurationError(f"Unknown severities in enabled_severities: {', '.join(sorted(unknown))}")

    max_comments = _check_range("max_comments_per_review", config.get("max_comments_per_review", 20), 1, 50)
    if not isinstance(max_comments, int):
        raise ConfigurationError("max_comments_per_review must be an integer")
    seed = config.get("filter_seed")
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        raise ConfigurationError(f"filter_seed must be an integer, got {seed!r}")

    minor = _check_range("ignore_minor_threshold", config.get("ignore_minor_threshold", 0.7), 0, 1)
    major = _check_range("ignore_major_threshold", config.get("ignore_major_threshold", 0.3), 0, 1)

    return RepoReviewConfig(
        enabled_severities=severities,
        adaptive_thresholds=bool(config.get("adaptive_thresholds", True)),
        ignore_minor_threshold=float(minor),
        ignore_major_threshold=float(major),
        max_comments_per_review=max_comments,
        provider=provider,
        model=config.get("model") or DEFAULT_MODELS[provider],
        temperature=float(_check_range("temperature", config.get("temperature", 0.1), 0, 2)),
        max_tokens=int(_check_range("max_tokens", config.get("max_tokens", 4000), 1000, 8000)),
        request_timeout=float(_check_range("request_timeout", config.get("request_timeout", 30), 1, 600)),
        system_prompt=config.get("system_prompt"),
        review_guidelines=load_guidelines(config),
        filter_seed=seed,
    )
