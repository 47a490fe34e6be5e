"""Session wiring shared by the CLI commands."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from storylines.core.settings import Settings, get_settings
from storylines.providers.gemini_provider import GeminiProvider
from storylines.providers.openlibrary_provider import OpenLibraryClient
from storylines.services.explorer import GraphExplorer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_session(
    graph_path: Optional[Path] = None,
    settings: Optional[Settings] = None,
    save: bool = True,
) -> AsyncIterator[GraphExplorer]:
    """Open an exploration session, optionally backed by a graph file.

    The graph file is loaded on entry when it exists and written back on a
    clean exit. Background enrichment is drained before saving.
    """
    settings = settings or get_settings()
    generator = GeminiProvider.from_settings(settings)
    library = OpenLibraryClient.from_settings(settings)
    explorer = GraphExplorer(generator, library, settings=settings)

    try:
        if graph_path is not None and graph_path.exists():
            result = await explorer.load(graph_path)
            logger.info("Loaded %d nodes from %s", len(result.new_ids), graph_path)

        yield explorer

        await explorer.enrichment.drain()
        if save and graph_path is not None:
            await explorer.save(graph_path)
            logger.info("Saved graph to %s", graph_path)
    finally:
        await explorer.close()
        await library.close()
