"""Tests for the Open Library client over a mocked transport."""

import httpx
import pytest

from conftest import make_openlibrary
from storylines.core.errors import ParseError, UpstreamFatalError, UpstreamTransientError
from storylines.core.settings import Settings
from storylines.providers.openlibrary_provider import (
    UNKNOWN_AUTHOR,
    OpenLibraryClient,
    normalize_author_key,
    normalize_work_key,
)
from storylines.utils.rate_limiter import Throttle


class Router:
    """Answers requests by URL path and records every request."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.routes.get(request.url.path)
        if answer is None:
            return httpx.Response(404, json={"error": "notfound"})
        if callable(answer):
            return answer(request)
        if isinstance(answer, httpx.Response):
            return httpx.Response(answer.status_code, content=answer.content, headers=answer.headers)
        return httpx.Response(200, json=answer)


class TestKeyNormalization:
    def test_author_keys(self):
        assert normalize_author_key("OL26320A") == "/authors/OL26320A"
        assert normalize_author_key("/authors/OL26320A") == "/authors/OL26320A"

    def test_work_keys(self):
        assert normalize_work_key("OL893415W") == "/works/OL893415W"
        assert normalize_work_key("/works/OL893415W") == "/works/OL893415W"


@pytest.mark.asyncio
class TestFromSettings:
    async def test_bibliographic_settings_reach_the_client(self):
        settings = Settings()
        settings.bibliographic.throttle_interval = 0.0
        settings.bibliographic.network_retry_delay = 0.5
        throttle = Throttle()

        client = OpenLibraryClient.from_settings(settings, throttle=throttle)

        assert client.throttle is throttle
        assert client.throttle.interval == 0.0
        assert client.network_retry_delay == 0.5
        await client.close()


@pytest.mark.asyncio
class TestFetch:
    async def test_successful_responses_are_cached(self):
        router = Router({"/works/OL1W.json": {"title": "Dune"}})
        client = make_openlibrary(router)

        first = await client.get_json("/works/OL1W.json")
        second = await client.get_json("/works/OL1W.json")

        assert first == second == {"title": "Dune"}
        assert len(router.requests) == 1
        assert client.cache.has("openlib:/works/OL1W.json")

    async def test_server_errors_are_retried(self):
        responses = [httpx.Response(503), httpx.Response(500), httpx.Response(200, json={"ok": True})]
        router = Router({"/x.json": lambda request: responses.pop(0)})
        client = make_openlibrary(router)

        assert await client.get_json("/x.json") == {"ok": True}
        assert len(router.requests) == 3

    async def test_persistent_rate_limit_raises_transient(self):
        router = Router({"/x.json": httpx.Response(429)})
        client = make_openlibrary(router)

        with pytest.raises(UpstreamTransientError) as exc_info:
            await client.get_json("/x.json")
        assert exc_info.value.status_code == 429
        assert len(router.requests) == 3

    async def test_not_found_is_fatal_and_not_retried(self):
        router = Router({})
        client = make_openlibrary(router)

        with pytest.raises(UpstreamFatalError) as exc_info:
            await client.get_json("/missing.json")
        assert exc_info.value.status_code == 404
        assert len(router.requests) == 1
        assert not client.cache.has("openlib:/missing.json")

    async def test_invalid_json_raises_parse_error(self):
        router = Router({"/x.json": httpx.Response(200, text="<html>")})
        client = make_openlibrary(router)

        with pytest.raises(ParseError):
            await client.get_json("/x.json")

    async def test_network_error_gets_one_manual_retry(self):
        attempts = []

        def flaky(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, json={"ok": True})

        client = make_openlibrary(flaky)
        assert await client.get_json("/x.json") == {"ok": True}
        assert len(attempts) == 2


@pytest.mark.asyncio
class TestLookups:
    async def test_find_key_for_book(self):
        router = Router({"/search.json": {"docs": [{"key": "/works/OL893415W"}]}})
        client = make_openlibrary(router)

        assert await client.find_key_for_node("Dune", "book") == "/works/OL893415W"
        assert router.requests[0].url.params["title"] == "Dune"

    async def test_find_key_for_author_is_normalized(self):
        router = Router({"/search/authors.json": {"docs": [{"key": "OL79034A"}]}})
        client = make_openlibrary(router)

        assert await client.find_key_for_node("Frank Herbert", "author") == "/authors/OL79034A"

    async def test_find_key_for_theme_skips_network(self):
        router = Router({})
        client = make_openlibrary(router)

        assert await client.find_key_for_node("Ecology", "theme") is None
        assert router.requests == []

    async def test_find_key_without_results(self):
        client = make_openlibrary(Router({"/search.json": {"docs": []}}))
        assert await client.find_key_for_node("Nothing", "book") is None

    async def test_book_cover_url_is_cached_by_key(self):
        router = Router({"/works/OL1W.json": {"covers": [12345, 678]}})
        client = make_openlibrary(router)

        url = await client.book_cover_url("/works/OL1W")
        client.cache.clear()
        again = await client.book_cover_url("/works/OL1W")

        assert url == again == "https://covers.openlibrary.org/b/id/12345-L.jpg"
        assert len(router.requests) == 1

    async def test_author_photo_url(self):
        router = Router({"/authors/OL79034A.json": {"photos": [999]}})
        client = make_openlibrary(router)

        assert await client.author_photo_url("OL79034A") == "https://covers.openlibrary.org/a/id/999-L.jpg"

    async def test_missing_cover(self):
        client = make_openlibrary(Router({"/works/OL1W.json": {"title": "No cover"}}))
        assert await client.book_cover_url("/works/OL1W") is None

    async def test_find_book_for_grid_prefers_a_cover(self):
        router = Router({"/search.json": {"docs": [
            {"key": "/works/OL1W", "title": "Piranesi", "author_name": ["Susanna Clarke"]},
            {"key": "/works/OL2W", "title": "Piranesi", "author_name": ["Susanna Clarke"], "cover_i": 42},
        ]}})
        client = make_openlibrary(router)

        book = await client.find_book_for_grid("Piranesi", "Susanna Clarke")

        assert book.external_key == "/works/OL2W"
        assert book.cover_url == "https://covers.openlibrary.org/b/id/42-L.jpg"
        assert book.identity == "Piranesi by Susanna Clarke"
        assert router.requests[0].url.params["q"] == "Piranesi Susanna Clarke"

    async def test_find_book_for_grid_unknown_author(self):
        client = make_openlibrary(Router({"/search.json": {"docs": [{"key": "/works/OL1W", "title": "Beowulf"}]}}))

        book = await client.find_book_for_grid("Beowulf")
        assert book.author == UNKNOWN_AUTHOR
        assert book.cover_url is None

    async def test_find_book_for_grid_no_results(self):
        client = make_openlibrary(Router({"/search.json": {"docs": []}}))
        assert await client.find_book_for_grid("Nonexistent") is None

    async def test_author_works(self):
        router = Router({"/authors/OL1A/works.json": {"entries": [{"title": "A"}, {"title": "B"}]}})
        client = make_openlibrary(router)

        works = await client.get_author_works("OL1A", limit=2)
        assert [w["title"] for w in works] == ["A", "B"]
