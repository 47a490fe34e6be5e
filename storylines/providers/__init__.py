"""External data clients: generative (Gemini) and bibliographic (Open Library)."""

from .base import (
    BibliographicProvider,
    GenerationRequest,
    GenerationResponse,
    GenerativeProvider,
    OutputMode,
)
from .gemini_provider import GeminiProvider
from .openlibrary_provider import OpenLibraryClient

__all__ = [
    "BibliographicProvider",
    "GeminiProvider",
    "GenerationRequest",
    "GenerationResponse",
    "GenerativeProvider",
    "OpenLibraryClient",
    "OutputMode",
]
