"""Shared utilities: retry, caching, rate limiting, validation, JSON parsing."""

from .cache import LRUCache
from .json_parsing import parse_llm_json
from .rate_limiter import RateLimiter, RateLimitResult, Throttle
from .retry import RetryPolicy, classify_failure, is_transient, retry_with_backoff

__all__ = [
    "LRUCache",
    "RateLimitResult",
    "RateLimiter",
    "RetryPolicy",
    "Throttle",
    "classify_failure",
    "is_transient",
    "parse_llm_json",
    "retry_with_backoff",
]
