"""
Exception hierarchy for the PortföyAI allocation engine.

Only two failure kinds are meant to leave the engine boundary: an invalid AI
credential and an exhausted AI rate limit. Everything else (malformed model
output, missing prices, corrupt stored values) is recovered locally and
recorded as a ProcessingError for diagnostics.
"""

import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ErrorSeverity(Enum):
    """Categorizes the severity of errors for handling decisions."""

    CRITICAL = "critical"
    """The caller must be told; the analysis cannot proceed as requested"""

    WARNING = "warning"
    """Log and degrade; a fallback result is produced"""

    INFO = "info"
    """Track but don't alarm; this is informational"""


@dataclass
class ProcessingError:
    """
    Structured record of a recovered failure.

    The AI engine produces one of these every time it falls back to the
    rule-based engine, so the reason ends up in the log instead of in front
    of the user.
    """

    source: str
    """Component that recovered from the failure (e.g. "ai_allocator")"""

    error_type: str
    """Category of error (e.g. "NO_JSON_OBJECT", "SCHEMA_MISMATCH")"""

    message: str
    """Human-readable error message"""

    severity: ErrorSeverity

    traceback_str: Optional[str] = None

    context: dict = field(default_factory=dict)
    """Additional context data (model, status code, symbol count, ...)"""

    @classmethod
    def from_exception(
        cls,
        source: str,
        error_type: str,
        exception: Exception,
        severity: ErrorSeverity = ErrorSeverity.WARNING,
        context: Optional[dict] = None,
    ) -> "ProcessingError":
        """Create a ProcessingError from a caught exception."""
        tb_str = traceback.format_exc() if severity is ErrorSeverity.CRITICAL else None
        return cls(
            source=source,
            error_type=error_type,
            message=str(exception),
            severity=severity,
            traceback_str=tb_str,
            context=context or {},
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/serialization."""
        return {
            "source": self.source,
            "error_type": self.error_type,
            "message": self.message,
            "severity": self.severity.value,
            "traceback": self.traceback_str,
            "context": self.context,
        }


# ============================================================================
# BASE EXCEPTION CLASSES
# ============================================================================

class PortfoyAIException(Exception):
    """
    Base exception for all PortföyAI errors.

    Inheriting from this allows catching all engine errors:
        try:
            ...
        except PortfoyAIException as e:
            ...
    """

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__


class LLMError(PortfoyAIException):
    """Base class for failures talking to the language model."""
    pass


class StorageError(PortfoyAIException):
    """
    Raised when a value cannot be written to the key-value store.

    Reads never raise: a corrupt or missing value is treated as empty.
    """
    pass


# ============================================================================
# LLM EXCEPTIONS
# ============================================================================

class InvalidCredentialError(LLMError):
    """
    Raised when the model provider rejects the API key (HTTP 401).

    Propagates to the caller so it can prompt for a new key; never silently
    replaced by the rule-based result.
    """

    def __init__(self, message: str = "Claude API key rejected"):
        super().__init__(message, error_code="CLAUDE_KEY_INVALID")


class RateLimitExceededError(LLMError):
    """
    Raised when the model provider answers HTTP 429.

    Propagates to the caller, which owns the backoff / stale-data policy.
    """

    def __init__(self, message: str = "Claude API rate limit exceeded"):
        super().__init__(message, error_code="CLAUDE_RATE_LIMIT")


class AIResponseError(LLMError):
    """
    Raised inside the response validation pipeline when model output is
    unusable (no JSON object, bad JSON, schema mismatch).

    Always caught by the AI engine and converted to a rule-based fallback.

    Example:
        raise AIResponseError("no JSON object in response", error_type="NO_JSON_OBJECT")
    """

    def __init__(self, message: str, error_type: str = "MALFORMED_RESPONSE"):
        super().__init__(message, error_code=error_type)
        self.error_type = error_type
