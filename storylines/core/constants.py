"""Central configuration constants for Storylines.

This module defines the tunable thresholds used throughout the codebase.
Constants can be overridden via environment variables using the
STORYLINES_* prefix convention.

Usage:
    from storylines.core.constants import NODE_MAX_SIZE, load_config

    # Load config with environment overrides
    load_config()

Environment Variables:
    STORYLINES_LAYOUT_BASE_RADIUS - Sphere radius of the first node (default: 15)
    STORYLINES_LAYOUT_RADIUS_GROWTH - Radius growth per cube root of index (default: 5)
    STORYLINES_NODE_BASE_SIZE - Size of an unconnected node (default: 0.6)
    STORYLINES_NODE_SIZE_GROWTH - Size added per sqrt(degree) (default: 0.18)
    STORYLINES_NODE_MIN_SIZE - Lower size clamp (default: 0.6)
    STORYLINES_NODE_MAX_SIZE - Upper size clamp (default: 1.6)
    STORYLINES_RETRY_ATTEMPTS - Attempts per upstream call (default: 3)
    STORYLINES_RETRY_INITIAL_DELAY - First backoff delay in seconds (default: 1.0)
    STORYLINES_RETRY_MAX_DELAY - Backoff ceiling in seconds (default: 10.0)
    STORYLINES_THROTTLE_INTERVAL - Seconds between bibliographic calls (default: 0.2)
    STORYLINES_NETWORK_RETRY_DELAY - Delay before the manual network retry (default: 1.0)
    STORYLINES_STATUS_DISMISS_DELAY - Seconds before a status caption hides (default: 6.0)
"""

import os

from storylines.core.errors import InvalidConfigError

# =============================================================================
# Layout
# =============================================================================

LAYOUT_BASE_RADIUS: float = 15.0

LAYOUT_RADIUS_GROWTH: float = 5.0

# =============================================================================
# Node appearance
# =============================================================================

NODE_BASE_SIZE: float = 0.6

NODE_SIZE_GROWTH: float = 0.18

NODE_MIN_SIZE: float = 0.6

NODE_MAX_SIZE: float = 1.6

NODE_COLORS: dict = {
    "book": "#0891b2",
    "author": "#f59e0b",
    "theme": "#2dd4bf",
}

DEFAULT_NODE_COLOR: str = "#ffffff"

# Node types that carry an Open Library key
KEYED_NODE_TYPES: frozenset = frozenset({"book", "author"})

# Timestamp passed by bootstrap loads; nodes created with it get no animate-in origin
BOOTSTRAP_TIMESTAMP: int = 0

# =============================================================================
# Book grid
# =============================================================================

GRID_SIZE: int = 100

GRID_CENTER_INDEX: int = 45

# =============================================================================
# Upstream resilience
# =============================================================================

RETRY_ATTEMPTS: int = 3

RETRY_INITIAL_DELAY: float = 1.0

RETRY_MAX_DELAY: float = 10.0

# Minimum seconds between two bibliographic network calls (process-wide)
THROTTLE_INTERVAL: float = 0.2

# Fixed delay before the single manual retry after a network failure
NETWORK_RETRY_DELAY: float = 1.0

# =============================================================================
# Caches (max entries, TTL seconds)
# =============================================================================

API_CACHE_MAX: int = 100
API_CACHE_TTL: float = 2 * 3600.0

LLM_CACHE_MAX: int = 50
LLM_CACHE_TTL: float = 2 * 3600.0

IMAGE_CACHE_MAX: int = 200
IMAGE_CACHE_TTL: float = 24 * 3600.0

# =============================================================================
# Client-side rate limits (max calls per window seconds)
# =============================================================================

SEARCH_RATE_LIMIT: int = 10
EXPANSION_RATE_LIMIT: int = 20
API_RATE_LIMIT: int = 50
RATE_LIMIT_WINDOW: float = 60.0

# =============================================================================
# Foreground timers
# =============================================================================

STATUS_DISMISS_DELAY: float = 6.0


# =============================================================================
# Helper Functions for Environment Variable Loading
# =============================================================================

def _get_env_int(key: str, default: int) -> int:
    """Get integer from environment variable with validation.

    Raises:
        InvalidConfigError: If value is not a valid non-negative integer
    """
    value = os.getenv(key)
    if value is None:
        return default

    try:
        result = int(value)
    except ValueError:
        raise InvalidConfigError(key, value, "must be an integer")
    if result < 0:
        raise InvalidConfigError(key, value, "must be non-negative")
    return result


def _get_env_float(key: str, default: float) -> float:
    """Get float from environment variable with validation.

    Raises:
        InvalidConfigError: If value is not a valid non-negative number
    """
    value = os.getenv(key)
    if value is None:
        return default

    try:
        result = float(value)
    except ValueError:
        raise InvalidConfigError(key, value, "must be a number")
    if result < 0:
        raise InvalidConfigError(key, value, "must be non-negative")
    return result


def load_config() -> None:
    """Load configuration with environment variable overrides.

    Raises:
        InvalidConfigError: If any environment variable has an invalid value

    Example:
        >>> import os
        >>> os.environ["STORYLINES_NODE_MAX_SIZE"] = "2.0"
        >>> load_config()
        >>> NODE_MAX_SIZE
        2.0
    """
    global LAYOUT_BASE_RADIUS, LAYOUT_RADIUS_GROWTH
    global NODE_BASE_SIZE, NODE_SIZE_GROWTH, NODE_MIN_SIZE, NODE_MAX_SIZE
    global RETRY_ATTEMPTS, RETRY_INITIAL_DELAY, RETRY_MAX_DELAY
    global THROTTLE_INTERVAL, NETWORK_RETRY_DELAY, STATUS_DISMISS_DELAY

    LAYOUT_BASE_RADIUS = _get_env_float("STORYLINES_LAYOUT_BASE_RADIUS", 15.0)
    LAYOUT_RADIUS_GROWTH = _get_env_float("STORYLINES_LAYOUT_RADIUS_GROWTH", 5.0)

    NODE_BASE_SIZE = _get_env_float("STORYLINES_NODE_BASE_SIZE", 0.6)
    NODE_SIZE_GROWTH = _get_env_float("STORYLINES_NODE_SIZE_GROWTH", 0.18)
    NODE_MIN_SIZE = _get_env_float("STORYLINES_NODE_MIN_SIZE", 0.6)
    NODE_MAX_SIZE = _get_env_float("STORYLINES_NODE_MAX_SIZE", 1.6)
    if NODE_MIN_SIZE > NODE_MAX_SIZE:
        raise InvalidConfigError(
            "STORYLINES_NODE_MIN_SIZE", NODE_MIN_SIZE, "must not exceed STORYLINES_NODE_MAX_SIZE"
        )

    RETRY_ATTEMPTS = _get_env_int("STORYLINES_RETRY_ATTEMPTS", 3)
    if RETRY_ATTEMPTS < 1:
        raise InvalidConfigError("STORYLINES_RETRY_ATTEMPTS", RETRY_ATTEMPTS, "must be at least 1")
    RETRY_INITIAL_DELAY = _get_env_float("STORYLINES_RETRY_INITIAL_DELAY", 1.0)
    RETRY_MAX_DELAY = _get_env_float("STORYLINES_RETRY_MAX_DELAY", 10.0)

    THROTTLE_INTERVAL = _get_env_float("STORYLINES_THROTTLE_INTERVAL", 0.2)
    NETWORK_RETRY_DELAY = _get_env_float("STORYLINES_NETWORK_RETRY_DELAY", 1.0)
    STATUS_DISMISS_DELAY = _get_env_float("STORYLINES_STATUS_DISMISS_DELAY", 6.0)
