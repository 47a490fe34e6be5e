"""Google Gemini generative client.

One call shape serves every generative use in Storylines:
- free text or structured JSON output (optionally with a response schema)
- Google Search grounding, with cited sources returned on the response
- a thinking budget for reasoning-heavy requests such as path finding

Every call goes through the shared retry policy. An optional client-side
rate limiter refuses calls before they leave the process, and an optional
response cache short-circuits repeated non-grounded requests.
"""

import logging
import os
from typing import Any, List, Optional

from google import genai
from google.genai import types

from storylines.core.errors import MissingConfigError
from storylines.graph.models import GroundingSource
from storylines.utils.cache import LRUCache, llm_cache
from storylines.utils.rate_limiter import RateLimiter
from storylines.utils.retry import RetryPolicy

from .base import GenerationRequest, GenerationResponse, GenerativeProvider, OutputMode

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


class GeminiProvider(GenerativeProvider):
    """Google Gemini implementation of the generative provider."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Any = None,
        default_model: str = DEFAULT_MODEL,
        retry_policy: Optional[RetryPolicy] = None,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[LRUCache] = None,
    ):
        """
        Initialize Gemini provider.

        Args:
            api_key: Google Gemini API key (defaults to GEMINI_API_KEY env var)
            client: Pre-built genai client, mainly for tests
            default_model: Model used when a request names none
            retry_policy: Backoff policy (defaults to RetryPolicy())
            rate_limiter: Client-side limiter checked before every call
            cache: Response cache for non-grounded requests
        """
        if client is None:
            self.api_key = api_key or os.getenv("GEMINI_API_KEY")
            if not self.api_key:
                raise MissingConfigError("GEMINI_API_KEY")
            client = genai.Client(api_key=self.api_key)
        else:
            self.api_key = api_key

        self.client = client
        self.default_model = default_model
        self.retry_policy = retry_policy or RetryPolicy()
        self.rate_limiter = rate_limiter
        self.cache = cache

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "GeminiProvider":
        limits = settings.rate_limits
        kwargs.setdefault("rate_limiter", RateLimiter(max=limits.api_max, window=limits.window, scope="api"))
        kwargs.setdefault("cache", llm_cache)
        return cls(
            api_key=settings.require_api_key(),
            default_model=settings.generative.default_model,
            retry_policy=RetryPolicy.from_settings(settings.retry),
            **kwargs,
        )

    def _build_config(self, request: GenerationRequest) -> Optional[types.GenerateContentConfig]:
        config_params = {}

        # Gemini does not combine search grounding with a JSON mime type;
        # grounded JSON is requested through the prompt and parsed leniently.
        if request.grounded:
            config_params["tools"] = [{"google_search": {}}]
        elif request.output_mode == OutputMode.JSON:
            config_params["response_mime_type"] = "application/json"
            if request.schema is not None:
                config_params["response_schema"] = request.schema

        if request.thinking_budget is not None:
            config_params["thinking_config"] = types.ThinkingConfig(
                thinking_budget=request.thinking_budget
            )

        return types.GenerateContentConfig(**config_params) if config_params else None

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        if self.rate_limiter is not None:
            self.rate_limiter.acquire()

        model = request.model or self.default_model
        cache_key = None
        if self.cache is not None and not request.grounded:
            cache_key = request.cache_key(model)
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Generation cache hit for %s", model)
                return cached

        config = self._build_config(request)

        async def _call():
            return await self.client.aio.models.generate_content(
                model=model,
                contents=request.prompt,
                config=config,
            )

        raw = await self.retry_policy.run(_call, service="gemini")
        response = GenerationResponse(
            text=raw.text or "",
            grounding_sources=_extract_grounding_sources(raw),
        )

        if cache_key is not None and response.text:
            self.cache.set(cache_key, response)
        return response


def _extract_grounding_sources(raw: Any) -> List[GroundingSource]:
    """Collect web sources from the first candidate's grounding metadata."""
    candidates = getattr(raw, "candidates", None)
    if not candidates:
        return []

    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    sources = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None)
        if uri:
            sources.append(GroundingSource(uri=uri, title=getattr(web, "title", None)))
    return sources
