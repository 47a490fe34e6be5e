"""Tests for Gemini provider implementation."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import no_sleep
from storylines.core.errors import (
    MissingConfigError,
    ParseError,
    RateLimitExceeded,
    UpstreamFatalError,
)
from storylines.core.settings import Settings
from storylines.providers.base import GenerationRequest, OutputMode
from storylines.providers.gemini_provider import GeminiProvider
from storylines.services.prompts import GraphSchema
from storylines.utils.cache import LRUCache, llm_cache
from storylines.utils.rate_limiter import RateLimiter
from storylines.utils.retry import RetryPolicy


def make_raw(text, sources=()):
    chunks = [SimpleNamespace(web=SimpleNamespace(uri=uri, title=title)) for uri, title in sources]
    candidate = SimpleNamespace(grounding_metadata=SimpleNamespace(grounding_chunks=chunks))
    return SimpleNamespace(text=text, candidates=[candidate])


def make_client(*results):
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(side_effect=list(results))
    return client


def make_provider(client, **kwargs):
    kwargs.setdefault("retry_policy", RetryPolicy(retries=3, initial_delay=0, max_delay=0, sleep=no_sleep))
    return GeminiProvider(client=client, **kwargs)


class TestGeminiConfig:
    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(MissingConfigError):
            GeminiProvider()

    def test_from_settings_requires_api_key(self):
        with pytest.raises(MissingConfigError):
            GeminiProvider.from_settings(Settings())

    def test_from_settings_wires_limiter_and_cache(self):
        settings = Settings()
        settings.generative.api_key = "test-gemini-key"
        settings.rate_limits.api_max = 7

        provider = GeminiProvider.from_settings(settings, client=MagicMock())

        assert provider.rate_limiter.max == 7
        assert provider.rate_limiter.scope == "api"
        assert provider.cache is llm_cache

    def test_json_request_config(self):
        provider = make_provider(MagicMock())
        config = provider._build_config(
            GenerationRequest(prompt="p", output_mode=OutputMode.JSON, schema=GraphSchema)
        )

        assert config.response_mime_type == "application/json"
        assert config.tools is None

    def test_grounded_request_uses_search_tool_without_json_mime(self):
        provider = make_provider(MagicMock())
        config = provider._build_config(
            GenerationRequest(prompt="p", output_mode=OutputMode.JSON, grounded=True)
        )

        assert config.tools and config.tools[0].google_search is not None
        assert config.response_mime_type is None

    def test_thinking_budget(self):
        provider = make_provider(MagicMock())
        config = provider._build_config(GenerationRequest(prompt="p", thinking_budget=1024))

        assert config.thinking_config.thinking_budget == 1024

    def test_plain_text_request_has_no_config(self):
        provider = make_provider(MagicMock())
        assert provider._build_config(GenerationRequest(prompt="p")) is None


@pytest.mark.asyncio
class TestGeminiGenerate:
    async def test_generate_json(self):
        client = make_client(make_raw('{"themes": ["exile", "memory"]}'))
        provider = make_provider(client)

        data = await provider.generate_json(
            GenerationRequest(prompt="themes please", model="gemini-2.5-flash-lite", output_mode=OutputMode.JSON)
        )

        assert data == {"themes": ["exile", "memory"]}
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash-lite"
        assert kwargs["contents"] == "themes please"

    async def test_default_model(self):
        client = make_client(make_raw("hello"))
        provider = make_provider(client, default_model="gemini-test")

        await provider.generate(GenerationRequest(prompt="p"))
        assert client.aio.models.generate_content.call_args.kwargs["model"] == "gemini-test"

    async def test_grounding_sources_are_returned(self):
        raw = make_raw('{"nodes": []}', sources=[("https://a.example", "A"), ("https://b.example", None)])
        provider = make_provider(make_client(raw))

        response = await provider.generate(GenerationRequest(prompt="p", grounded=True))

        assert [s.uri for s in response.grounding_sources] == ["https://a.example", "https://b.example"]
        assert response.grounding_sources[0].title == "A"

    async def test_transient_failures_are_retried(self):
        client = make_client(RuntimeError("503 UNAVAILABLE"), RuntimeError("429 RESOURCE_EXHAUSTED"), make_raw("ok"))
        provider = make_provider(client)

        response = await provider.generate(GenerationRequest(prompt="p"))

        assert response.text == "ok"
        assert client.aio.models.generate_content.await_count == 3

    async def test_fatal_failure_is_not_retried(self):
        client = make_client(RuntimeError("400 INVALID_ARGUMENT"), make_raw("never"))
        provider = make_provider(client)

        with pytest.raises(UpstreamFatalError):
            await provider.generate(GenerationRequest(prompt="p"))
        assert client.aio.models.generate_content.await_count == 1

    async def test_invalid_json_raises_parse_error(self):
        provider = make_provider(make_client(make_raw("I cannot answer that.")))

        with pytest.raises(ParseError) as exc_info:
            await provider.generate_json(GenerationRequest(prompt="p", output_mode=OutputMode.JSON))
        assert exc_info.value.raw_text == "I cannot answer that."

    async def test_cache_short_circuits_repeat_requests(self):
        client = make_client(make_raw('{"a": 1}'))
        provider = make_provider(client, cache=LRUCache(max=10, ttl=60))
        request = GenerationRequest(prompt="same", output_mode=OutputMode.JSON)

        first = await provider.generate_json(request)
        second = await provider.generate_json(request)

        assert first == second == {"a": 1}
        assert client.aio.models.generate_content.await_count == 1

    async def test_grounded_requests_are_not_cached(self):
        client = make_client(make_raw("one"), make_raw("two"))
        provider = make_provider(client, cache=LRUCache(max=10, ttl=60))
        request = GenerationRequest(prompt="same", grounded=True)

        assert (await provider.generate(request)).text == "one"
        assert (await provider.generate(request)).text == "two"

    async def test_rate_limiter_refuses_before_calling(self):
        client = make_client(make_raw("ok"), make_raw("ok"))
        provider = make_provider(client, rate_limiter=RateLimiter(max=1, window=60))

        await provider.generate(GenerationRequest(prompt="p"))
        with pytest.raises(RateLimitExceeded):
            await provider.generate(GenerationRequest(prompt="p"))
        assert client.aio.models.generate_content.await_count == 1
