"""Foreground exploration session.

GraphExplorer owns one graph store and the services around it, and exposes
the user-facing operations: bootstrap and journeys, search, expansion, node
selection, summaries, the connection mode, the book wall, reset, and
export/import.

Each foreground query takes a ticket from the session's generation counter
before calling upstream; a result that comes back after a newer query was
dispatched is dropped. Failures are reduced to a status caption. The caption
hides itself after a delay unless another user action cancels the timer.
"""

import asyncio
import logging
import math
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Set, Union

from pydantic import ValidationError as PydanticValidationError

from storylines.core import constants
from storylines.core.commands import DelayedCommands
from storylines.core.errors import InvalidInputError, StorylinesError
from storylines.core.generations import GenerationCounter, Ticket
from storylines.core.settings import Settings, get_settings
from storylines.graph import persistence
from storylines.graph.clustering import ClusteringResult, detect_clusters
from storylines.graph.models import (
    ORIGIN,
    BatchResult,
    GraphPayload,
    GraphSnapshot,
    Summary,
    SummaryFailed,
    SummaryPending,
    SummaryReady,
    Vector3,
)
from storylines.graph.store import GraphStore
from storylines.providers.base import GenerationRequest, GenerativeProvider, OutputMode
from storylines.providers.openlibrary_provider import OpenLibraryClient
from storylines.services.book_grid import BookGrid
from storylines.services.enrichment import EnrichmentScheduler
from storylines.services.library_search import LibrarySearch
from storylines.services.path_finder import ConnectionMode, ConnectionPathFinder
from storylines.services.prompts import (
    GraphSchema,
    SummarySchema,
    create_expansion_prompt,
    create_summary_prompt,
    query_prompt,
)
from storylines.utils.rate_limiter import RateLimiter
from storylines.utils.validation import validate_node_id, validate_search_query

logger = logging.getLogger(__name__)

HIDE_STATUS = "hide_status"
INITIAL_GRAPH_FILE = "initial-graph.json"

SEARCH_FAILED = "Sorry, I had trouble with that request."
EXPANSION_FAILED = "Sorry, I had trouble expanding on that."
LIBRARY_FALLBACK = "No results from public libraries, asking AI..."
SUMMARY_FAILED = "Failed to generate analysis. Please try again."
RESET_CAPTION = "Universe reset. Choose a journey or start a new search."


class VisualizationMode(str, Enum):
    GRAPH = "graph"
    BOOK_GRID = "bookgrid"


def journey_filename(name: str) -> str:
    """``"Science Fiction"`` -> ``"journey-science-fiction.json"``."""
    slug = re.sub(r"\s", "-", name.strip().lower())
    return f"journey-{slug}.json"


class GraphExplorer:
    """One exploration session over a single graph."""

    def __init__(
        self,
        generator: GenerativeProvider,
        library: OpenLibraryClient,
        store: Optional[GraphStore] = None,
        settings: Optional[Settings] = None,
        enrichment: Optional[EnrichmentScheduler] = None,
    ):
        self.settings = settings or get_settings()
        self.generator = generator
        self.library = library
        self.store = store if store is not None else GraphStore()
        self.generations = GenerationCounter()
        self.commands = DelayedCommands()

        generative = self.settings.generative
        limits = self.settings.rate_limits

        self.enrichment = enrichment if enrichment is not None else EnrichmentScheduler(self.store, library)
        self.library_search = LibrarySearch(library, generator, theme_model=generative.theme_model)
        self.path_finder = ConnectionPathFinder(
            self.store,
            generator,
            schedule_enrichment=self.enrichment.schedule,
            on_status=self._set_caption,
            model=generative.connection_model,
            thinking_budget=generative.connection_thinking_budget,
            generations=self.generations,
        )
        self.book_grid = BookGrid(self.store, library, generator, model=generative.grid_model)

        self.search_limiter = RateLimiter(max=limits.search_max, window=limits.window, scope="search")
        self.expansion_limiter = RateLimiter(max=limits.expansion_max, window=limits.window, scope="expansion")

        self.mode = VisualizationMode.GRAPH
        self.grounded = False
        self.caption: Optional[str] = None
        self.selected_id: Optional[str] = None
        self.expanding_node_id: Optional[str] = None
        self._fetching = 0
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def is_fetching(self) -> bool:
        return self._fetching > 0 or self.path_finder.busy

    def _set_caption(self, message: Optional[str]) -> None:
        self.caption = message

    def _hide_caption(self) -> None:
        self.caption = None

    def _schedule_status_hide(self) -> None:
        self.commands.schedule(HIDE_STATUS, self.settings.status_dismiss_delay, self._hide_caption)

    def _user_action(self) -> None:
        self.commands.cancel_all()

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _issue(self) -> Ticket:
        ticket = self.generations.issue()
        self.store.mark_query(ticket.timestamp)
        return ticket

    def _rate_limited(self, limiter: RateLimiter, what: str) -> bool:
        result = limiter.check()
        if result.allowed:
            return False
        wait = math.ceil(result.retry_after or 0)
        logger.warning("%s rate limit reached, retry in %ss", what, wait)
        self._set_caption(f"Too many {what} requests. Please wait {wait} seconds and try again.")
        self._schedule_status_hide()
        return True

    async def _merge(
        self,
        payload: GraphPayload,
        ticket: Ticket,
        source_position: Vector3 = ORIGIN,
        grounding_sources=None,
    ) -> BatchResult:
        result = await self.store.add_batch(
            payload.nodes,
            payload.edges,
            source_position=source_position,
            timestamp=ticket.timestamp,
            grounding_sources=grounding_sources,
        )
        if result.new_ids:
            self.enrichment.schedule(result.new_ids)
        return result

    # ------------------------------------------------------------------
    # Bootstrap and journeys
    # ------------------------------------------------------------------

    async def bootstrap(self, source: Union[str, Path, Dict[str, Any], None] = None) -> BatchResult:
        """Load a bootstrap document without animation or enrichment.

        Args:
            source: A document dict, a path, or None for the initial graph in the data dir

        Raises:
            InvalidInputError: If the document does not have the batch shape
        """
        if source is None:
            source = Path(self.settings.data_dir) / INITIAL_GRAPH_FILE
        data = source if isinstance(source, dict) else await persistence.read_json(source)

        try:
            payload = GraphPayload.model_validate(data)
        except PydanticValidationError as e:
            raise InvalidInputError("bootstrap", str(e)) from e

        result = await self.store.add_batch(
            payload.nodes, payload.edges, timestamp=constants.BOOTSTRAP_TIMESTAMP
        )
        if payload.commentary:
            self._set_caption(payload.commentary)
        logger.info("Bootstrapped %d nodes", len(result.new_ids))
        return result

    async def load_journey(self, name: str, directory: Union[str, Path, None] = None) -> BatchResult:
        """Replace the graph with a curated journey file."""
        self._user_action()
        if self.path_finder.is_active:
            self.path_finder.toggle()
        self.generations.invalidate()
        await self.store.reset()
        self.selected_id = None
        self.mode = VisualizationMode.GRAPH

        path = Path(directory or self.settings.data_dir) / journey_filename(name)
        self._fetching += 1
        try:
            return await self.bootstrap(path)
        except (OSError, StorylinesError) as e:
            logger.error("Failed to load journey %r: %s", name, e)
            self._set_caption(f"Could not load the {name} journey. Please try again.")
            return BatchResult()
        finally:
            self._fetching -= 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def search(self, query: str, grounded: Optional[bool] = None) -> Optional[str]:
        """Search for ``query`` and merge the result.

        In book-wall mode the query seeds the wall instead. Otherwise the
        bibliographic service is tried first with a generative fallback, or
        the generative service answers directly with web grounding.

        Returns:
            The primary node id, or None

        Raises:
            InvalidInputError: If the query is malformed
        """
        self._user_action()
        query = validate_search_query(query)

        if self.mode == VisualizationMode.BOOK_GRID:
            await self.book_grid.seed(query)
            return None

        if self._rate_limited(self.search_limiter, "search"):
            return None

        if self.path_finder.is_active:
            self.path_finder.toggle()

        grounded = self.grounded if grounded is None else grounded
        ticket = self._issue()
        self._fetching += 1
        self.selected_id = None
        self._set_caption(
            f'Searching the web for "{query}"...' if grounded else f'Searching for "{query}"...'
        )

        try:
            sources = None
            if grounded:
                response = await self.generator.generate(GenerationRequest(
                    prompt=query_prompt(query),
                    model=self.settings.generative.default_model,
                    grounded=True,
                ))
                payload = GraphPayload.model_validate(response.json())
                sources = response.grounding_sources or None
            else:
                payload = await self.library_search.search(query)
                if not self.generations.is_current(ticket):
                    return None
                if payload is None or not payload.nodes:
                    self._set_caption(LIBRARY_FALLBACK)
                    data = await self.generator.generate_json(GenerationRequest(
                        prompt=query_prompt(query),
                        model=self.settings.generative.default_model,
                        output_mode=OutputMode.JSON,
                        schema=GraphSchema,
                    ))
                    payload = GraphPayload.model_validate(data)

            if not self.generations.is_current(ticket):
                logger.info("Discarding stale search result for %r", query)
                return None

            result = await self._merge(payload, ticket, grounding_sources=sources)
            self._set_caption(payload.commentary)
            if result.primary_id:
                self.selected_id = result.primary_id
            return result.primary_id

        except (StorylinesError, PydanticValidationError) as e:
            logger.error("Search failed for %r: %s", query, e)
            if self.generations.is_current(ticket):
                self._set_caption(SEARCH_FAILED)
            return None

        finally:
            self._fetching -= 1
            self._schedule_status_hide()

    async def expand(self, node_id: str) -> BatchResult:
        """Ask for 2 to 4 new neighbors of ``node_id`` and merge them around it."""
        if self.mode == VisualizationMode.BOOK_GRID:
            return BatchResult()
        node = self.store.get_node(node_id)
        if node is None:
            return BatchResult()
        prompt = create_expansion_prompt(node)
        if not prompt:
            return BatchResult()

        if self._rate_limited(self.expansion_limiter, "expansion"):
            return BatchResult()

        ticket = self._issue()
        self._fetching += 1
        self.expanding_node_id = node_id
        self._set_caption(f'Expanding on "{node.label}"...')

        try:
            data = await self.generator.generate_json(GenerationRequest(
                prompt=prompt,
                model=self.settings.generative.default_model,
                output_mode=OutputMode.JSON,
                schema=GraphSchema,
            ))
            if not self.generations.is_current(ticket):
                logger.info("Discarding stale expansion of %s", node_id)
                return BatchResult()

            payload = GraphPayload.model_validate(data)
            result = await self._merge(payload, ticket, source_position=node.position)
            self._set_caption(payload.commentary)
            return result

        except (StorylinesError, PydanticValidationError) as e:
            logger.error("Expansion failed for %s: %s", node_id, e)
            if self.generations.is_current(ticket):
                self._set_caption(EXPANSION_FAILED)
            return BatchResult()

        finally:
            self._fetching -= 1
            if self.expanding_node_id == node_id:
                self.expanding_node_id = None
            self._schedule_status_hide()

    def select_node(self, node_id: Optional[str]) -> Optional[asyncio.Task]:
        """Handle a node click.

        In connection mode the click goes to the path finder. Otherwise
        clicking the selected node deselects it, and clicking another node
        selects and expands it. Returns the background task launched, if any.
        """
        self._user_action()
        if self.is_fetching and self.expanding_node_id != node_id:
            return None

        if self.path_finder.is_active:
            if node_id is None:
                return None
            if self.path_finder.mode == ConnectionMode.SELECTING_START:
                self.selected_id = node_id
            task = self.path_finder.handle_click(node_id)
            if task is not None:
                self._track(task)
                task.add_done_callback(lambda _: self._schedule_status_hide())
            return task

        if node_id == self.selected_id:
            self.selected_id = None
            return None

        self.selected_id = node_id
        if node_id is None:
            return None
        return self._track(asyncio.create_task(self.expand(node_id)))

    async def generate_summary(self, node_id: str) -> Optional[Summary]:
        """Generate the AI summary of a node once.

        A pending or ready summary is returned as is; a failed one may be retried.
        """
        validate_node_id(node_id)
        node = self.store.get_node(node_id)
        if node is None:
            return None
        if isinstance(node.summary, (SummaryPending, SummaryReady)):
            return node.summary

        await self.store.set_summary(node_id, SummaryPending())

        prompt = create_summary_prompt(node)
        summary: Summary
        try:
            if not prompt:
                raise InvalidInputError("node_id", f"no summary available for type {node.type}")
            data = await self.generator.generate_json(GenerationRequest(
                prompt=prompt,
                model=self.settings.generative.default_model,
                output_mode=OutputMode.JSON,
                schema=SummarySchema,
            ))
            parsed = SummarySchema.model_validate(data)
            summary = SummaryReady(summary=parsed.summary, analysis=parsed.analysis)
        except (StorylinesError, PydanticValidationError) as e:
            logger.error("AI summary generation failed for %s: %s", node_id, e)
            summary = SummaryFailed(error=SUMMARY_FAILED)

        await self.store.set_summary(node_id, summary)
        return summary

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def toggle_mode(self) -> VisualizationMode:
        """Switch between the graph and the book wall."""
        self._user_action()
        if self.mode == VisualizationMode.GRAPH:
            self.mode = VisualizationMode.BOOK_GRID
            self.selected_id = None
        else:
            self.mode = VisualizationMode.GRAPH
        return self.mode

    def toggle_grounded(self) -> bool:
        self.grounded = not self.grounded
        return self.grounded

    def toggle_connection_mode(self) -> ConnectionMode:
        self._user_action()
        self.selected_id = None
        return self.path_finder.toggle()

    async def add_to_grid(self, node_id: str) -> bool:
        self._user_action()
        return await self.book_grid.add_node(node_id)

    async def reset(self) -> None:
        """Clear the graph, the book wall, and any selection."""
        self._user_action()
        if self.path_finder.is_active:
            self.path_finder.toggle()
        self.generations.invalidate()
        await self.enrichment.close()
        await self.store.reset()
        await self.book_grid.reset()
        self.selected_id = None
        self.mode = VisualizationMode.GRAPH
        self._set_caption(RESET_CAPTION)

    # ------------------------------------------------------------------
    # Rendering and persistence boundary
    # ------------------------------------------------------------------

    def snapshot(self) -> GraphSnapshot:
        return self.store.snapshot(grid_slots=self.book_grid.slots)

    def clusters(self) -> ClusteringResult:
        return detect_clusters(self.store.nodes, self.store.edges)

    def export_graph(self) -> Dict[str, Any]:
        return persistence.export_graph(self.snapshot())

    async def import_graph(self, data: Dict[str, Any]) -> BatchResult:
        return await persistence.import_graph(self.store, data)

    async def save(self, path: Union[str, Path]) -> Path:
        return await persistence.save_graph(self.snapshot(), path)

    async def load(self, path: Union[str, Path]) -> BatchResult:
        return await persistence.load_graph(self.store, path)

    def summary_text(self) -> str:
        return persistence.graph_summary(self.snapshot())

    async def close(self) -> None:
        """Cancel timers and background work."""
        self.commands.cancel_all()
        await self.enrichment.close()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
