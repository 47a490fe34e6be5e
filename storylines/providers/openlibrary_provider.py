"""Open Library bibliographic client.

Every network call passes the process-wide throttle. Successful responses are
cached under ``openlib:{path}``; a cache hit skips both throttle and network.
A transport failure gets one manual retry after a fixed delay, and the whole
fetch runs inside the shared retry policy so 429 and 5xx responses back off.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from storylines.core import constants
from storylines.core.errors import ParseError, UpstreamFatalError, UpstreamTransientError
from storylines.graph.models import BookData
from storylines.utils.cache import LRUCache, api_cache, image_cache
from storylines.utils.rate_limiter import Throttle, library_throttle
from storylines.utils.retry import RetryPolicy

from .base import BibliographicProvider

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openlibrary.org"
DEFAULT_COVERS_URL = "https://covers.openlibrary.org"

UNKNOWN_AUTHOR = "Unknown Author"

WORK_SEARCH_FIELDS = (
    "key,title,author_name,author_key,first_publish_year,first_sentence,"
    "cover_i,description,subjects,series"
)


class OpenLibraryClient(BibliographicProvider):
    """Read-only client for the Open Library JSON API."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        covers_url: str = DEFAULT_COVERS_URL,
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
        cache: Optional[LRUCache] = None,
        image_urls: Optional[LRUCache] = None,
        throttle: Optional[Throttle] = None,
        retry_policy: Optional[RetryPolicy] = None,
        network_retry_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.covers_url = covers_url.rstrip("/")
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": "storylines (literary graph explorer)"},
            follow_redirects=True,
        )
        self._owns_http = http_client is None
        self.cache = cache if cache is not None else api_cache
        self.image_urls = image_urls if image_urls is not None else image_cache
        self.throttle = throttle or library_throttle
        self.retry_policy = retry_policy or RetryPolicy()
        self.network_retry_delay = (
            constants.NETWORK_RETRY_DELAY if network_retry_delay is None else network_retry_delay
        )
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "OpenLibraryClient":
        bibliographic = settings.bibliographic
        throttle = kwargs.pop("throttle", library_throttle)
        throttle.interval = bibliographic.throttle_interval
        return cls(
            base_url=bibliographic.base_url,
            covers_url=bibliographic.covers_url,
            timeout=bibliographic.timeout,
            retry_policy=RetryPolicy.from_settings(settings.retry),
            network_retry_delay=bibliographic.network_retry_delay,
            throttle=throttle,
            **kwargs,
        )

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "OpenLibraryClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    async def get_json(self, path: str) -> Any:
        """Fetch ``path`` (relative to the base URL, or absolute) as JSON.

        Raises:
            UpstreamTransientError: 429/5xx persisted through every retry
            UpstreamFatalError: Any other non-success status or network failure
            ParseError: The body was not JSON
        """
        cache_key = f"openlib:{path}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s", path)
            return cached

        data = await self.retry_policy.run(
            lambda: self._fetch_with_network_retry(path), service="openlibrary"
        )
        self.cache.set(cache_key, data)
        return data

    async def _fetch_with_network_retry(self, path: str) -> Any:
        try:
            return await self._request(path)
        except httpx.TransportError as e:
            logger.warning("Network error for %s (%s), retrying once...", path, e)
            await self._sleep(self.network_retry_delay)
            return await self._request(path)

    async def _request(self, path: str) -> Any:
        url = path if path.startswith("http") else f"{self.base_url}{path}"

        await self.throttle.wait()
        response = await self._http.get(url)

        status = response.status_code
        if status == 429 or status >= 500:
            raise UpstreamTransientError(
                f"Open Library request failed for {path} with status: {status}",
                service="openlibrary",
                status_code=status,
            )
        if not response.is_success:
            raise UpstreamFatalError(
                f"Open Library request failed for {path} with status: {status}",
                service="openlibrary",
                status_code=status,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"Open Library returned invalid JSON for {path}", raw_text=response.text) from e

    # ------------------------------------------------------------------
    # Searches
    # ------------------------------------------------------------------

    async def search_works(self, query: str, limit: int = 5) -> List[Dict[str, Any]]:
        data = await self.get_json(
            f"/search.json?q={quote(query)}&limit={limit}&fields={WORK_SEARCH_FIELDS}"
        )
        return data.get("docs") or []

    async def search_authors(self, query: str, limit: int = 1) -> List[Dict[str, Any]]:
        data = await self.get_json(f"/search/authors.json?q={quote(query)}&limit={limit}")
        return data.get("docs") or []

    async def get_author(self, author_key: str) -> Dict[str, Any]:
        return await self.get_json(f"{normalize_author_key(author_key)}.json")

    async def get_author_works(self, author_key: str, limit: int = 5) -> List[Dict[str, Any]]:
        data = await self.get_json(f"{normalize_author_key(author_key)}/works.json?limit={limit}")
        return data.get("entries") or []

    # ------------------------------------------------------------------
    # Enrichment lookups
    # ------------------------------------------------------------------

    async def find_key_for_node(self, label: str, node_type: str) -> Optional[str]:
        """Return the Open Library key for a book or author, or None.

        Author keys are always returned in ``/authors/...`` form.
        """
        if node_type == "book":
            path = f"/search.json?title={quote(label)}&limit=1"
        elif node_type == "author":
            path = f"/search/authors.json?q={quote(label)}&limit=1"
        else:
            return None

        data = await self.get_json(path)
        docs = data.get("docs") or []
        if not docs or not docs[0].get("key"):
            return None

        key = docs[0]["key"]
        if node_type == "author":
            return normalize_author_key(key)
        return key

    async def book_cover_url(self, external_key: str) -> Optional[str]:
        cached = self.image_urls.get(external_key)
        if cached is not None:
            return cached

        work = await self.get_json(f"{external_key}.json")
        covers = work.get("covers") or []
        if not covers:
            return None

        url = self.cover_url(covers[0])
        self.image_urls.set(external_key, url)
        return url

    async def author_photo_url(self, external_key: str) -> Optional[str]:
        key = normalize_author_key(external_key)
        cached = self.image_urls.get(key)
        if cached is not None:
            return cached

        author = await self.get_json(f"{key}.json")
        photos = author.get("photos") or []
        if not photos:
            return None

        url = self.author_photo(photos[0])
        self.image_urls.set(key, url)
        return url

    async def find_book_for_grid(self, title: str, author: str = "") -> Optional[BookData]:
        """Find one book for the recommendation wall, preferring a result with a cover."""
        query = f"{title} {author}" if author else title
        data = await self.get_json(
            f"/search.json?q={quote(query)}&limit=5&fields=key,title,author_name,cover_i"
        )
        docs = data.get("docs") or []
        if not docs:
            return None

        doc = next((d for d in docs if d.get("cover_i")), docs[0])
        authors = doc.get("author_name")
        return BookData(
            title=doc.get("title") or title,
            author=", ".join(authors) if authors else UNKNOWN_AUTHOR,
            cover_url=self.cover_url(doc["cover_i"]) if doc.get("cover_i") else None,
            external_key=doc.get("key"),
        )

    # ------------------------------------------------------------------
    # URL helpers
    # ------------------------------------------------------------------

    def cover_url(self, cover_id: Any) -> str:
        return f"{self.covers_url}/b/id/{cover_id}-L.jpg"

    def author_photo(self, photo_id: Any) -> str:
        return f"{self.covers_url}/a/id/{photo_id}-L.jpg"


def normalize_author_key(key: str) -> str:
    if key.startswith("/authors/"):
        return key
    return f"/authors/{key.lstrip('/')}"


def normalize_work_key(key: str) -> str:
    if key.startswith("/"):
        return key
    return f"/works/{key}"
