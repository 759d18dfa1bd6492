"""Custom exceptions for LinkDok."""

from typing import Optional


class LinkDokError(Exception):
    """Base exception for LinkDok."""
    pass

class ConfigurationError(LinkDokError):
    """Configuration related errors."""
    pass

class ValidationError(LinkDokError):
    """Input validation errors. Never retried."""
    pass

class InputValidationError(ValidationError):
    """Request payload validation failed."""
    pass

class UnknownModelError(ValidationError):
    """Model identifier has no registry entry."""
    pass

class LLMError(LinkDokError):
    """Provider and orchestration related errors."""
    pass

class ProviderError(LLMError):
    """A single candidate failed (transport, non-2xx, empty answer)."""

    def __init__(self, message: str, model: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.model = model
        self.status = status

class RateLimitedError(LLMError):
    """The provider (or our own gate) throttled the client."""

    def __init__(self, retry_after: int = 60, message: str = "RATE_LIMITED"):
        super().__init__(message)
        self.retry_after = retry_after

class RequestCancelledError(LLMError):
    """The request was aborted by the caller or by a timeout."""

    USER = "user"
    TIMEOUT = "timeout"

    def __init__(self, reason: str = USER, model: Optional[str] = None):
        if reason == self.TIMEOUT:
            message = f"Request to {model or 'provider'} timed out"
        else:
            message = "Request cancelled by caller"
        super().__init__(message)
        self.reason = reason
        self.model = model

    @property
    def timed_out(self) -> bool:
        return self.reason == self.TIMEOUT

class ExhaustionError(LLMError):
    """Every candidate on every provider failed."""

    def __init__(self, last_error: Optional[BaseException] = None):
        detail = str(last_error) if last_error else "no candidates were tried"
        super().__init__(f"All models failed. Last: {detail}")
        self.last_error = last_error
