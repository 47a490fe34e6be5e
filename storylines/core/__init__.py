"""Core building blocks: errors, constants, settings, staleness and timers."""

from .commands import DelayedCommands
from .errors import (
    ConfigurationError,
    InvalidConfigError,
    InvalidInputError,
    MissingConfigError,
    ParseError,
    RateLimitExceeded,
    StorylinesError,
    UpstreamError,
    UpstreamFatalError,
    UpstreamTransientError,
    ValidationError,
)
from .generations import GenerationCounter, Ticket

__all__ = [
    "ConfigurationError",
    "DelayedCommands",
    "GenerationCounter",
    "InvalidConfigError",
    "InvalidInputError",
    "MissingConfigError",
    "ParseError",
    "RateLimitExceeded",
    "StorylinesError",
    "Ticket",
    "UpstreamError",
    "UpstreamFatalError",
    "UpstreamTransientError",
    "ValidationError",
]
