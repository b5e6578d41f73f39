"""Exception types shared by the review pipeline and its providers."""

from __future__ import annotations


class BurgAIError(Exception):
    """Base exception for all burgai errors."""


class ConfigurationError(BurgAIError):
    """Missing credentials or an out-of-range repository setting.

    Raised before any model request is made; this is the one error the
    review pipeline lets escape to its caller.
    """


class ModelAPIError(BurgAIError):
    """A model provider returned an error response."""

    def __init__(self, status_code: int | None, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"[{status_code}] {message}" if status_code is not None else message)


class ModelTimeoutError(ModelAPIError):
    """The request timed out or the connection dropped before a response."""

    def __init__(self, message: str = "Request timed out") -> None:
        super().__init__(None, message)
