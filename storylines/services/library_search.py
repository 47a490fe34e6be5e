"""Turn Open Library search results into graph batches.

A query is tried as a work search first, then as an author search. The best
hit becomes a small batch: the book (or author) as primary node, up to two
authors (or up to five works), and up to three themes. When the catalogue
lists fewer than three subjects, themes are extracted from the description by
the generative service.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from storylines.core.errors import StorylinesError
from storylines.graph.models import GraphPayload
from storylines.providers.base import GenerationRequest, GenerativeProvider, OutputMode
from storylines.providers.openlibrary_provider import (
    OpenLibraryClient,
    normalize_author_key,
    normalize_work_key,
)
from storylines.services.prompts import ThemesSchema, extract_themes_prompt

logger = logging.getLogger(__name__)

DESCRIPTION_LIMIT = 200
MAX_AUTHORS = 2
MAX_THEMES = 3
MAX_AUTHOR_WORKS = 5
MIN_THEME_TEXT = 50
NO_DESCRIPTION = "No description available."


def _text_of(value: Any) -> Optional[str]:
    """Open Library text fields are either plain strings or {"type", "value"} objects."""
    if isinstance(value, dict):
        value = value.get("value")
    if isinstance(value, str) and value.strip():
        return value
    return None


def _truncate(text: str, limit: int = DESCRIPTION_LIMIT) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


class LibrarySearch:
    """Builds graph batches from the bibliographic service.

    Args:
        library: Open Library client
        generator: Generative provider for theme extraction (optional)
        theme_model: Model used for theme extraction
    """

    def __init__(
        self,
        library: OpenLibraryClient,
        generator: Optional[GenerativeProvider] = None,
        theme_model: str = "gemini-2.5-flash-lite",
    ):
        self.library = library
        self.generator = generator
        self.theme_model = theme_model

    async def search(self, query: str) -> Optional[GraphPayload]:
        """Return a batch for ``query``, or None when nothing was found or the lookup failed."""
        try:
            works = await self.library.search_works(query)
            if works:
                return await self.from_work(works[0])

            authors = await self.library.search_authors(query, limit=1)
            if authors and authors[0].get("key"):
                author_key = normalize_author_key(authors[0]["key"])
                author = await self.library.get_author(author_key)
                author_works = await self.library.get_author_works(author_key, limit=MAX_AUTHOR_WORKS)
                return await self.from_author(author, author_works)
        except StorylinesError as e:
            logger.error("Open Library search failed for %r: %s", query, e)
            return None

        return None

    async def extract_themes(self, label: str, text: Optional[str]) -> List[str]:
        """Ask the generative service for 2 to 4 themes; empty on short text or failure."""
        if self.generator is None or not text or len(text) < MIN_THEME_TEXT:
            return []

        request = GenerationRequest(
            prompt=extract_themes_prompt(label, text),
            model=self.theme_model,
            output_mode=OutputMode.JSON,
            schema=ThemesSchema,
        )
        try:
            data = await self.generator.generate_json(request)
            return [theme for theme in ThemesSchema.model_validate(data).themes if theme]
        except (StorylinesError, PydanticValidationError) as e:
            logger.error("Failed to extract themes for %s: %s", label, e)
            return []

    async def from_work(self, doc: Dict[str, Any]) -> GraphPayload:
        title = doc.get("title") or "Untitled"
        first_sentence = doc.get("first_sentence")
        if isinstance(first_sentence, list):
            first_sentence = " ".join(str(part) for part in first_sentence)
        full_text = _text_of(doc.get("description")) or _text_of(first_sentence)

        cover_id = doc.get("cover_i") or next(iter(doc.get("covers") or []), None)
        series = doc.get("series") or []

        nodes: List[Dict[str, Any]] = [{
            "label": title,
            "type": "book",
            "description": _truncate(full_text or NO_DESCRIPTION),
            "publication_year": doc.get("first_publish_year") or doc.get("first_publish_date"),
            "series": series[0] if series else None,
            "external_key": normalize_work_key(doc["key"]) if doc.get("key") else None,
            "image_url": self.library.cover_url(cover_id) if cover_id else None,
        }]
        edges: List[Dict[str, str]] = []

        author_keys = [
            entry["author"]["key"]
            for entry in doc.get("authors") or []
            if isinstance(entry, dict) and isinstance(entry.get("author"), dict) and entry["author"].get("key")
        ] or [normalize_author_key(key) for key in doc.get("author_key") or []]

        if author_keys:
            for author_key in author_keys[:MAX_AUTHORS]:
                try:
                    author = await self.library.get_author(author_key)
                except StorylinesError as e:
                    logger.error("Error fetching author details for %s: %s", author_key, e)
                    continue
                name = author.get("name")
                if not name:
                    continue
                photo_id = next(iter(author.get("photos") or []), None)
                nodes.append({
                    "label": name,
                    "type": "author",
                    "description": _text_of(author.get("bio")) or f'Author of "{title}".',
                    "external_key": normalize_author_key(author_key),
                    "image_url": self.library.author_photo(photo_id) if photo_id else None,
                })
                edges.append({"source": name, "target": title})
        else:
            for name in (doc.get("author_name") or [])[:MAX_AUTHORS]:
                nodes.append({"label": name, "type": "author", "description": f'The author of "{title}".'})
                edges.append({"source": name, "target": title})

        themes = list(dict.fromkeys(doc.get("subjects") or []))
        if full_text and len(themes) < MAX_THEMES:
            for theme in await self.extract_themes(title, full_text):
                if theme not in themes:
                    themes.append(theme)

        for theme in themes[:MAX_THEMES]:
            nodes.append({"label": theme, "type": "theme", "description": f'A theme related to "{title}".'})
            edges.append({"source": title, "target": theme})

        return GraphPayload.model_validate({
            "nodes": nodes,
            "edges": edges,
            "commentary": f'Found "{title}" on Open Library.',
        })

    async def from_author(self, author: Dict[str, Any], works: List[Dict[str, Any]]) -> GraphPayload:
        name = author.get("name") or "Unknown Author"
        bio = _text_of(author.get("bio")) or f"The author {name}."
        photo_id = next(iter(author.get("photos") or []), None)

        nodes: List[Dict[str, Any]] = [{
            "label": name,
            "type": "author",
            "description": bio,
            "external_key": normalize_author_key(author["key"]) if author.get("key") else None,
            "image_url": self.library.author_photo(photo_id) if photo_id else None,
        }]
        edges: List[Dict[str, str]] = []

        for work in works:
            if not work.get("title"):
                continue
            nodes.append({
                "label": work["title"],
                "type": "book",
                "description": f"A book by {name}.",
                "publication_year": work.get("first_publish_year"),
                "external_key": normalize_work_key(work["key"]) if work.get("key") else None,
            })
            edges.append({"source": name, "target": work["title"]})

        for theme in (await self.extract_themes(name, bio))[:MAX_THEMES]:
            nodes.append({
                "label": theme,
                "type": "theme",
                "description": f"A theme associated with the work of {name}.",
            })
            edges.append({"source": name, "target": theme})

        return GraphPayload.model_validate({
            "nodes": nodes,
            "edges": edges,
            "commentary": f"Found author {name} on Open Library.",
        })
