from __future__ import annotations

import anthropic
from anthropic.types import TextBlock

from burgai_core.errors import ModelAPIError, ModelTimeoutError
from burgai_core.providers.base import BaseModelClient


def translate_error(exc: anthropic.APIError) -> ModelAPIError:
    if isinstance(exc, anthropic.APIConnectionError):
        return ModelTimeoutError(str(exc) or type(exc).__name__)
    if isinstance(exc, anthropic.APIStatusError):
        return ModelAPIError(exc.status_code, exc.message)
    return ModelAPIError(getattr(exc, "status_code", None), str(exc))


class AnthropicClient(BaseModelClient):
    PROVIDER = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        temperature: float = 0.1,
        max_tokens: int = 4000,
        timeout: float = 30.0,
    ):
        super().__init__(model, temperature, max_tokens, timeout)
        self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        try:
            response = self.client.messages.create(
                model=self.model,
                # No JSON mode here; the prompt alone asks for a bare JSON object.
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except anthropic.APIError as e:
            raise translate_error(e) from e
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()
