"""Failure taxonomy shared by the transport, retry policy and orchestrator."""
from __future__ import annotations


class TranslationError(RuntimeError):
    retryable = False
    label = "error"


class NetworkError(TranslationError):
    """Connection failure or a single call that ran past its timeout."""

    retryable = True
    label = "network"


class RateLimitError(TranslationError):
    retryable = True
    label = "rate_limit"

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ServerError(TranslationError):
    retryable = True
    label = "server"

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MalformedResponseError(TranslationError):
    label = "malformed_response"


class CancelledError(TranslationError):
    label = "cancelled"

    def __init__(self, message: str = "Translation cancelled") -> None:
        super().__init__(message)


class ConfigurationError(TranslationError):
    """Missing or unusable settings, detected before any remote call."""

    label = "configuration"
