"""Core exception hierarchy for Storylines.

This module defines the base exception classes used throughout Storylines.
All Storylines exceptions inherit from StorylinesError, enabling both specific
and broad exception handling.

Exception Hierarchy:
    StorylinesError (base)
    ├── ValidationError - Malformed input to a public operation
    │   └── InvalidInputError
    ├── UpstreamError - Generative or bibliographic service issues
    │   ├── UpstreamTransientError (rate limit, 5xx - retried)
    │   └── UpstreamFatalError (anything else - not retried)
    ├── ParseError - Structured response was not valid JSON
    ├── RateLimitExceeded - Client-side limiter refused the call
    └── ConfigurationError - Config issues
        ├── MissingConfigError
        └── InvalidConfigError
"""

from typing import Any, Dict, Optional


class StorylinesError(Exception):
    """Base exception for all Storylines errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "UPSTREAM_FATAL")
        details: Optional dict with additional context
    """

    error_code: str = "STORYLINES_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dict for status reporting."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


# Validation Errors
class ValidationError(StorylinesError):
    """Base class for input validation errors."""
    error_code = "VALIDATION_ERROR"


class InvalidInputError(ValidationError):
    """A field of a public operation's input is invalid."""
    error_code = "INVALID_INPUT"

    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Invalid input for '{field}': {reason}",
            details={"field": field, "reason": reason}
        )


# Upstream Errors
class UpstreamError(StorylinesError):
    """Base class for failures reported by an upstream service."""
    error_code = "UPSTREAM_ERROR"

    def __init__(
        self,
        message: str,
        service: str = "unknown",
        status_code: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.service = service
        self.status_code = status_code
        self.original_error = original_error
        super().__init__(
            message,
            details={"service": service, "status_code": status_code}
        )


class UpstreamTransientError(UpstreamError):
    """Rate limit, resource exhaustion or 5xx; safe to retry."""
    error_code = "UPSTREAM_TRANSIENT"


class UpstreamFatalError(UpstreamError):
    """Any other upstream failure; never retried."""
    error_code = "UPSTREAM_FATAL"


class ParseError(StorylinesError):
    """A structured response could not be parsed as JSON.

    The raw response text is kept on the exception for diagnostics.
    """
    error_code = "PARSE_ERROR"

    def __init__(self, message: str, raw_text: Optional[str] = None):
        self.raw_text = raw_text
        preview = (raw_text or "")[:200]
        super().__init__(message, details={"raw_text": preview})


class RateLimitExceeded(StorylinesError):
    """Client-side rate limiter refused an outbound call."""
    error_code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, scope: str, retry_after: float):
        self.scope = scope
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded for {scope}. Retry after {retry_after:.1f} seconds.",
            details={"scope": scope, "retry_after": retry_after}
        )


# Configuration Errors
class ConfigurationError(StorylinesError):
    """Base class for configuration errors."""
    error_code = "CONFIG_ERROR"


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""
    error_code = "MISSING_CONFIG"

    def __init__(self, config_key: str, source: str = "environment"):
        super().__init__(
            f"Required configuration '{config_key}' not found in {source}.",
            details={"config_key": config_key, "source": source}
        )


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""
    error_code = "INVALID_CONFIG"

    def __init__(self, config_key: str, value: Any, reason: str):
        super().__init__(
            f"Invalid value for '{config_key}': {reason}",
            details={"config_key": config_key, "value": str(value), "reason": reason}
        )
