"""Model client seam.

Every provider makes exactly one request per complete() call and translates
its SDK's exceptions into ``ModelAPIError`` / ``ModelTimeoutError``. Retry,
backoff and parsing belong to the orchestrator, not to the clients:

    generate_review() → client.complete() → _call_api()   ← only this differs per provider
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseModelClient(ABC):
    PROVIDER: str = "base"

    def __init__(self, model: str, temperature: float = 0.1, max_tokens: int = 4000, timeout: float = 30.0):
        self.provider = self.PROVIDER
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Make one request and return the raw text, or '' when the model sent nothing."""
        return self._call_api(system_prompt, user_prompt) or ""

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        Must raise ModelAPIError (or ModelTimeoutError) on failure; any other
        exception is treated as fatal by the orchestrator.
        """
