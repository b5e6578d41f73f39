from __future__ import annotations

from typing import TYPE_CHECKING

from burgai_core.errors import ConfigurationError
from burgai_core.providers.anthropic import AnthropicClient
from burgai_core.providers.openai import GEMINI_BASE_URL, OPENROUTER_BASE_URL, OpenAIClient

if TYPE_CHECKING:
    from burgai_core.config import RepoReviewConfig
    from burgai_core.providers.base import BaseModelClient

# provider -> (credential key in the loaded config, env var named in errors)
_CREDENTIALS = {
    "gemini": ("gemini_api_key", "GEMINI_API_KEY"),
    "openai": ("openai_api_key", "OPENAI_API_KEY"),
    "openrouter": ("openrouter_api_key", "OPENROUTER_API_KEY"),
    "anthropic": ("anthropic_api_key", "ANTHROPIC_API_KEY"),
}

_BASE_URLS = {
    "gemini": GEMINI_BASE_URL,
    "openai": None,
    "openrouter": OPENROUTER_BASE_URL,
}


def get_client(repo_config: RepoReviewConfig, config: dict) -> BaseModelClient:
    """Build the model client for the configured provider.

    Raises ConfigurationError before any request is made when the provider is
    unknown or its API key is missing.
    """
    provider = repo_config.provider
    if provider not in _CREDENTIALS:
        raise ConfigurationError(f"Unknown model provider: {provider!r}.")

    key_name, env_var = _CREDENTIALS[provider]
    api_key = config.get(key_name)
    if not api_key:
        raise ConfigurationError(f"{env_var} environment variable is not set.")

    settings = {
        "model": repo_config.model,
        "temperature": repo_config.temperature,
        "max_tokens": repo_config.max_tokens,
        "timeout": repo_config.request_timeout,
    }
    if provider == "anthropic":
        return AnthropicClient(api_key=api_key, **settings)
    return OpenAIClient(api_key=api_key, base_url=_BASE_URLS[provider], provider=provider, **settings)
