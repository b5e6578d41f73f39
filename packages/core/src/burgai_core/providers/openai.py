from __future__ import annotations

import openai

from burgai_core.errors import ModelAPIError, ModelTimeoutError
from burgai_core.providers.base import BaseModelClient

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def translate_error(exc: openai.APIError) -> ModelAPIError:
    # APITimeoutError subclasses APIConnectionError; both are transient.
    if isinstance(exc, openai.APIConnectionError):
        return ModelTimeoutError(str(exc) or type(exc).__name__)
    if isinstance(exc, openai.APIStatusError):
        return ModelAPIError(exc.status_code, exc.message)
    return ModelAPIError(getattr(exc, "status_code", None), str(exc))


class OpenAIClient(BaseModelClient):
    """Chat-completions client for OpenAI and OpenAI-compatible endpoints (Gemini, OpenRouter)."""

    PROVIDER = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        temperature: float = 0.1,
        max_tokens: int = 4000,
        timeout: float = 30.0,
        base_url: str | None = None,
        provider: str = "openai",
    ):
        super().__init__(model, temperature, max_tokens, timeout)
        self.provider = provider
        # SDK-level retries are disabled; the orchestrator owns the retry budget.
        self.client = openai.OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.APIError as e:
            raise translate_error(e) from e
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
