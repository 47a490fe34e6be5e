"""Background enrichment of newly created nodes.

For each node, best effort and in order:
1. A book or author without an external key gets one from the bibliographic service.
2. A node without an image gets a cover (books) or photo (authors) using that key.

Failures are logged and never abort the remaining steps or nodes. The
bibliographic client already runs every fetch through the shared retry policy.
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Iterable, List, Optional, Set

from storylines.core import constants
from storylines.graph.store import GraphStore
from storylines.providers.base import BibliographicProvider

logger = logging.getLogger(__name__)


class EnrichmentScheduler:
    """Fire-and-forget enrichment queue drained by a single worker task."""

    def __init__(self, store: GraphStore, library: BibliographicProvider):
        self.store = store
        self.library = library
        self._queue: Deque[str] = deque()
        self._queued: Set[str] = set()
        self._worker: Optional[asyncio.Task] = None

    @property
    def pending(self) -> List[str]:
        return list(self._queue)

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def schedule(self, node_ids: Iterable[str]) -> int:
        """Queue ids for enrichment without waiting. Returns how many were queued.

        Ids already queued or in progress are skipped. Must be called from
        within a running event loop.
        """
        added = 0
        for node_id in node_ids:
            if node_id in self._queued:
                continue
            self._queue.append(node_id)
            self._queued.add(node_id)
            added += 1

        if added and not self.is_running:
            self._worker = asyncio.create_task(self._run())
        return added

    async def _run(self) -> None:
        while self._queue:
            node_id = self._queue.popleft()
            try:
                await self.enrich_node(node_id)
            except Exception:
                logger.exception("Enrichment failed for %s", node_id)
            finally:
                self._queued.discard(node_id)

    async def enrich(self, node_ids: Iterable[str]) -> None:
        """Enrich ``node_ids`` sequentially and wait for completion."""
        for node_id in node_ids:
            await self.enrich_node(node_id)

    async def enrich_node(self, node_id: str) -> None:
        node = self.store.get_node(node_id)
        if node is None:
            return

        if node.type in constants.KEYED_NODE_TYPES and not node.external_key:
            try:
                key = await self.library.find_key_for_node(node.label, node.type)
            except Exception as e:
                logger.warning("Failed to find external key for %s: %s", node.label, e)
                key = None
            if key:
                await self.store.set_external_key(node_id, key)

        # Re-read: the key lookup may have filled the node in
        node = self.store.get_node(node_id)
        if node is None or node.image_url or not node.external_key:
            return

        try:
            if node.type == "book":
                image_url = await self.library.book_cover_url(node.external_key)
            elif node.type == "author":
                image_url = await self.library.author_photo_url(node.external_key)
            else:
                return
        except Exception as e:
            logger.warning("Failed to fetch image for %s: %s", node.label, e)
            return

        if image_url:
            await self.store.set_image_url(node_id, image_url)

    async def drain(self) -> None:
        """Wait until the queue is empty and the worker has finished."""
        while self.is_running:
            await asyncio.wait({self._worker})

    async def close(self) -> None:
        """Cancel the worker and drop anything still queued."""
        self._queue.clear()
        self._queued.clear()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
        self._worker = None
