"""Core domain logic for LinkDok."""

from .cancellation import CancellationToken
from .models import (
    Intent,
    ThinkingMode,
    ModelProfile,
    Attachment,
    ChatMessage,
    ResourceContent,
    TutorResult,
)
from .exceptions import (
    LinkDokError,
    ConfigurationError,
    ValidationError,
    InputValidationError,
    UnknownModelError,
    LLMError,
    ProviderError,
    RateLimitedError,
    RequestCancelledError,
    ExhaustionError,
)

__all__ = [
    "CancellationToken",
    "Intent",
    "ThinkingMode",
    "ModelProfile",
    "Attachment",
    "ChatMessage",
    "ResourceContent",
    "TutorResult",
    "LinkDokError",
    "ConfigurationError",
    "ValidationError",
    "InputValidationError",
    "UnknownModelError",
    "LLMError",
    "ProviderError",
    "RateLimitedError",
    "RequestCancelledError",
    "ExhaustionError",
]
