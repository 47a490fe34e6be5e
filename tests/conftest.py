"""Pytest configuration and fixtures."""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from storylines.core.errors import UpstreamFatalError
from storylines.core.settings import Settings
from storylines.graph.models import BookData
from storylines.graph.store import GraphStore
from storylines.providers.base import (
    BibliographicProvider,
    GenerationRequest,
    GenerationResponse,
    GenerativeProvider,
)
from storylines.providers.openlibrary_provider import OpenLibraryClient
from storylines.utils.cache import LRUCache
from storylines.utils.rate_limiter import Throttle
from storylines.utils.retry import RetryPolicy


async def no_sleep(_delay: float) -> None:
    return None


class FakeGenerator(GenerativeProvider):
    """Scripted generative provider.

    Each queued item answers one call, in order: a dict or list is returned
    as JSON text, a string as raw text, an exception is raised, and an
    asyncio.Future is awaited first (for controlling completion order).
    """

    def __init__(self, *responses: Any):
        self.responses: List[Any] = list(responses)
        self.requests: List[GenerationRequest] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.requests.append(request)
        if not self.responses:
            raise UpstreamFatalError("no scripted response", service="fake")

        item = self.responses.pop(0)
        if isinstance(item, asyncio.Future):
            item = await item
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, GenerationResponse):
            return item
        if isinstance(item, (dict, list)):
            return GenerationResponse(text=json.dumps(item))
        return GenerationResponse(text=str(item))


class FakeLibrary(BibliographicProvider):
    """Dictionary-backed bibliographic provider."""

    def __init__(
        self,
        keys: Optional[Dict[Tuple[str, str], str]] = None,
        covers: Optional[Dict[str, str]] = None,
        photos: Optional[Dict[str, str]] = None,
        books: Optional[Dict[str, BookData]] = None,
        failing: Optional[set] = None,
    ):
        self.keys = keys or {}
        self.covers = covers or {}
        self.photos = photos or {}
        self.books = {title.casefold(): book for title, book in (books or {}).items()}
        self.failing = failing or set()
        self.gates: Dict[str, asyncio.Future] = {}
        self.calls: List[Tuple[str, str]] = []

    def _maybe_fail(self, what: str) -> None:
        if what in self.failing:
            raise UpstreamFatalError(f"lookup failed for {what}", service="fake")

    async def get_json(self, path: str) -> Any:
        self.calls.append(("get_json", path))
        return {}

    async def find_key_for_node(self, label: str, node_type: str) -> Optional[str]:
        self.calls.append(("find_key_for_node", label))
        self._maybe_fail(label)
        return self.keys.get((label, node_type))

    async def book_cover_url(self, external_key: str) -> Optional[str]:
        self.calls.append(("book_cover_url", external_key))
        self._maybe_fail(external_key)
        return self.covers.get(external_key)

    async def author_photo_url(self, external_key: str) -> Optional[str]:
        self.calls.append(("author_photo_url", external_key))
        self._maybe_fail(external_key)
        return self.photos.get(external_key)

    async def find_book_for_grid(self, title: str, author: str = "") -> Optional[BookData]:
        self.calls.append(("find_book_for_grid", title))
        gate = self.gates.get(title)
        if gate is not None:
            await gate
        self._maybe_fail(title)
        return self.books.get(title.casefold())


def make_openlibrary(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> OpenLibraryClient:
    """Open Library client over an httpx.MockTransport with no delays or shared state."""
    params = dict(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        cache=LRUCache(max=100, ttl=3600),
        image_urls=LRUCache(max=100, ttl=3600),
        throttle=Throttle(interval=0),
        retry_policy=RetryPolicy(retries=3, initial_delay=0, max_delay=0, sleep=no_sleep),
        network_retry_delay=0,
        sleep=no_sleep,
    )
    params.update(kwargs)
    return OpenLibraryClient(**params)


@pytest.fixture(autouse=True)
def reset_settings():
    """Keep the settings singleton from leaking between tests."""
    Settings.reset()
    yield
    Settings.reset()


@pytest.fixture
def mock_env(monkeypatch):
    """Mock environment variables for testing."""
    test_env = {
        "GEMINI_API_KEY": "test-gemini-key",
        "STORYLINES_LOG_LEVEL": "DEBUG",
        "STORYLINES_THROTTLE_INTERVAL": "0",
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    return test_env


@pytest.fixture
def settings(tmp_path):
    """Default settings with a temporary data dir and a short status delay."""
    return Settings(data_dir=str(tmp_path), status_dismiss_delay=0.05)


@pytest.fixture
def store():
    return GraphStore(clock=lambda: 1_000)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def library():
    return FakeLibrary()


@pytest.fixture
def sample_batch():
    """A small search result: Dune, its author, and two themes."""
    return {
        "nodes": [
            {"label": "Dune", "type": "book", "description": "Desert planet epic.", "publicationYear": 1965},
            {"label": "Frank Herbert", "type": "author", "description": "American novelist."},
            {"label": "Ecology", "type": "theme", "description": "Living systems."},
            {"label": "Messianism", "type": "theme", "description": "Chosen ones."},
        ],
        "edges": [
            {"source": "Frank Herbert", "target": "Dune"},
            {"source": "Dune", "target": "Ecology"},
            {"source": "Dune", "target": "Messianism"},
        ],
        "commentary": "Dune braids ecology and prophecy.",
    }
