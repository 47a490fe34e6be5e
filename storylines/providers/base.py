"""Abstract base classes for the external data clients."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple

from storylines.graph.models import BookData, GroundingSource
from storylines.utils.json_parsing import parse_llm_json


class OutputMode(str, Enum):
    TEXT = "text"
    JSON = "json"


@dataclass(frozen=True)
class GenerationRequest:
    """Request object for one generative call.

    Attributes:
        prompt: Full prompt text
        model: Model name (None selects the provider default)
        output_mode: TEXT for free text, JSON for structured output
        schema: Optional response schema (pydantic model class or dict) for JSON mode
        grounded: Enable web-search grounding; sources come back on the response
        thinking_budget: Reasoning token budget for models that think
    """

    prompt: str
    model: Optional[str] = None
    output_mode: OutputMode = OutputMode.TEXT
    schema: Any = None
    grounded: bool = False
    thinking_budget: Optional[int] = None

    def cache_key(self, model: str) -> Tuple[Any, ...]:
        schema_name = getattr(self.schema, "__name__", None) or repr(self.schema)
        return (model, self.output_mode.value, schema_name, self.thinking_budget, self.prompt)


@dataclass
class GenerationResponse:
    """Response object from a generative call."""

    text: str
    grounding_sources: List[GroundingSource] = field(default_factory=list)

    def json(self) -> Any:
        """Parse structured output.

        Raises:
            ParseError: If the text holds no valid JSON; carries the raw text
        """
        return parse_llm_json(self.text)


class GenerativeProvider(ABC):
    """Interface every generative text/structured-output client supports."""

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """
        Run one generation.

        Args:
            request: Generation request

        Returns:
            Response text and any grounding sources

        Raises:
            RateLimitExceeded: If the client-side limiter refuses the call
            UpstreamTransientError: If transient failures outlast the retry policy
            UpstreamFatalError: On any other upstream failure
        """
        pass

    async def generate_json(self, request: GenerationRequest) -> Any:
        """Run a generation and parse its text as JSON.

        Raises:
            ParseError: If the output is not valid JSON
        """
        response = await self.generate(request)
        return response.json()


class BibliographicProvider(ABC):
    """Interface of the read-only bibliographic lookup service."""

    @abstractmethod
    async def get_json(self, path: str) -> Any:
        """Fetch ``path`` and return the decoded JSON body."""
        pass

    @abstractmethod
    async def find_key_for_node(self, label: str, node_type: str) -> Optional[str]:
        """Look up the external key for a book or author by label."""
        pass

    @abstractmethod
    async def book_cover_url(self, external_key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def author_photo_url(self, external_key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def find_book_for_grid(self, title: str, author: str = "") -> Optional[BookData]:
        """Resolve a title (and optional author) to the best-matching book."""
        pass


__all__ = [
    "BibliographicProvider",
    "GenerationRequest",
    "GenerationResponse",
    "GenerativeProvider",
    "OutputMode",
]
