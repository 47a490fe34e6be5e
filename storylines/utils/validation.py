"""Validation for user-supplied queries and node ids."""

import re

from storylines.core.errors import InvalidInputError

MAX_QUERY_LENGTH = 500
MIN_QUERY_LENGTH = 1

SUSPICIOUS_PATTERNS = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),  # inline event handlers like onclick=
    re.compile(r"<iframe", re.IGNORECASE),
    re.compile(r"eval\(", re.IGNORECASE),
]

NODE_ID_PATTERN = re.compile(r"^(book|author|theme):.+$", re.DOTALL)


def validate_search_query(query) -> str:
    """Validate a free-text search query.

    Returns:
        The query with surrounding whitespace removed

    Raises:
        InvalidInputError: If the query is empty, too long, or looks like markup
    """
    if not query or not isinstance(query, str):
        raise InvalidInputError("query", "must be a non-empty string")

    trimmed = query.strip()
    if len(trimmed) < MIN_QUERY_LENGTH:
        raise InvalidInputError("query", "is too short")
    if len(trimmed) > MAX_QUERY_LENGTH:
        raise InvalidInputError("query", f"is too long (max {MAX_QUERY_LENGTH} characters)")

    for pattern in SUSPICIOUS_PATTERNS:
        if pattern.search(trimmed):
            raise InvalidInputError("query", "contains invalid characters")

    return trimmed


def sanitize_input(text) -> str:
    """Strip markup and unusual characters from free text.

    Examples:
        >>> sanitize_input("  <b>Dune</b>   by Frank Herbert ")
        'Dune by Frank Herbert'
    """
    if not text or not isinstance(text, str):
        return ""

    cleaned = text.strip()
    cleaned = re.sub(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"<[^>]*>", "", cleaned)
    cleaned = re.sub(r"[^\w\s\-.,!?'\":;()]", "", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned.strip()[:MAX_QUERY_LENGTH]


def validate_node_id(node_id) -> str:
    """Check that ``node_id`` has the form ``type:label`` for a known type.

    Raises:
        InvalidInputError: If the id is malformed
    """
    if not node_id or not isinstance(node_id, str):
        raise InvalidInputError("node_id", "must be a non-empty string")
    if not NODE_ID_PATTERN.match(node_id):
        raise InvalidInputError("node_id", "invalid node id format")
    return node_id
