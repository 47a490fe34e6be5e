"""Two-click connection mode and the path query behind it.

States:
    INACTIVE --toggle--> SELECTING_START --click--> SELECTING_END --click other--> (query) --> INACTIVE
    any active state --toggle--> INACTIVE (clears selection, invalidates an in-flight query)

The path query asks the generative service for intermediate nodes, edges, and
an ordered label path, merges the batch at the midpoint of the two endpoints,
and resolves the labels to node ids. A path whose labels cannot all be
resolved, or that does not run from the start node to the end node, is
rejected. Missing edges between consecutive path nodes are inserted.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from storylines.core.errors import StorylinesError
from storylines.core.generations import GenerationCounter, Ticket
from storylines.graph.layout import midpoint
from storylines.graph.models import GraphPayload, Node
from storylines.graph.store import GraphStore
from storylines.providers.base import GenerationRequest, GenerativeProvider, OutputMode
from storylines.services.prompts import ConnectionSchema, find_connection_prompt

logger = logging.getLogger(__name__)

CONNECTION_FAILED = "Sorry, I could not find a connection."


class ConnectionMode(str, Enum):
    INACTIVE = "inactive"
    SELECTING_START = "selecting_start"
    SELECTING_END = "selecting_end"


class ConnectionPathFinder:
    """State machine for choosing two nodes and connecting them.

    Args:
        store: Graph store the path batch is merged into
        generator: Generative provider answering the path query
        schedule_enrichment: Called with newly created node ids
        on_status: Receives status captions (None clears the caption)
        model: Model for path queries
        thinking_budget: Reasoning budget for path queries
        generations: Staleness counter, shared with the session when given
    """

    def __init__(
        self,
        store: GraphStore,
        generator: GenerativeProvider,
        schedule_enrichment: Optional[Callable[[List[str]], object]] = None,
        on_status: Optional[Callable[[Optional[str]], None]] = None,
        model: str = "gemini-2.5-pro",
        thinking_budget: Optional[int] = 32768,
        generations: Optional[GenerationCounter] = None,
    ):
        self.store = store
        self.generator = generator
        self.schedule_enrichment = schedule_enrichment
        self.on_status = on_status
        self.model = model
        self.thinking_budget = thinking_budget
        self.generations = generations or GenerationCounter()

        self.mode = ConnectionMode.INACTIVE
        self.start_id: Optional[str] = None
        self.end_id: Optional[str] = None
        self.path: List[str] = []
        self.busy = False
        self.status: Optional[str] = None
        self._in_flight: Optional[Ticket] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def is_active(self) -> bool:
        return self.mode != ConnectionMode.INACTIVE

    def _set_status(self, message: Optional[str]) -> None:
        self.status = message
        if self.on_status is not None:
            self.on_status(message)

    def _clear_selection(self) -> None:
        self.mode = ConnectionMode.INACTIVE
        self.start_id = None
        self.end_id = None

    def toggle(self) -> ConnectionMode:
        """Enter connection mode, or leave it and abandon any in-flight query."""
        if self.mode == ConnectionMode.INACTIVE:
            self.mode = ConnectionMode.SELECTING_START
            self.start_id = None
            self.end_id = None
            self.path = []
            self._set_status("Select a starting node.")
        else:
            self.generations.invalidate()
            self._in_flight = None
            self._clear_selection()
            self.path = []
            self.busy = False
            self._set_status(None)
        return self.mode

    def handle_click(self, node_id: str) -> Optional[asyncio.Task]:
        """Route a node click. Returns the path query task when one is launched."""
        if self.mode == ConnectionMode.INACTIVE or self.busy:
            return None

        if self.mode == ConnectionMode.SELECTING_START:
            node = self.store.get_node(node_id)
            if node is None:
                return None
            self.start_id = node_id
            self.mode = ConnectionMode.SELECTING_END
            self._set_status(f'Connecting from "{node.label}". Select a destination node.')
            return None

        if node_id == self.start_id or self.store.get_node(node_id) is None:
            return None

        self.end_id = node_id
        task = asyncio.create_task(self.find_connection(self.start_id, node_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def find_connection(self, start_id: str, end_id: str) -> List[str]:
        """Query, merge, and highlight a path between two existing nodes.

        Returns:
            The resolved path of node ids, empty on failure or rejection
        """
        start = self.store.get_node(start_id)
        end = self.store.get_node(end_id)
        if start is None or end is None:
            logger.error("Start or end node not found for connection: %s, %s", start_id, end_id)
            self._clear_selection()
            return []

        ticket = self.generations.issue()
        self._in_flight = ticket
        self.store.mark_query(ticket.timestamp)
        self.busy = True
        self.path = []
        self._set_status(f'Thinking of a connection between "{start.label}" and "{end.label}"...')

        try:
            request = GenerationRequest(
                prompt=find_connection_prompt(start, end),
                model=self.model,
                output_mode=OutputMode.JSON,
                schema=ConnectionSchema,
                thinking_budget=self.thinking_budget,
            )
            data = await self.generator.generate_json(request)
            if not self.generations.is_current(ticket):
                logger.info("Discarding stale connection result for %s -> %s", start_id, end_id)
                return []

            payload = GraphPayload.model_validate(data)
            result = await self.store.add_batch(
                payload.nodes,
                payload.edges,
                source_position=midpoint(start.position, end.position),
                timestamp=ticket.timestamp,
            )
            if result.new_ids and self.schedule_enrichment is not None:
                self.schedule_enrichment(result.new_ids)

            if not self.generations.is_current(ticket):
                return []

            path = await self._resolve_path(payload.path, start, end)
            self.path = path
            self._set_status(payload.commentary if path else CONNECTION_FAILED)
            return path

        except (StorylinesError, PydanticValidationError) as e:
            logger.error("Connection query failed: %s", e)
            if self.generations.is_current(ticket):
                self.path = []
                self._set_status(CONNECTION_FAILED)
            return []

        finally:
            if self._in_flight is ticket:
                self._in_flight = None
                self.busy = False
                self._clear_selection()

    async def _resolve_path(self, labels: List[str], start: Node, end: Node) -> List[str]:
        if len(labels) < 2:
            logger.warning("Rejecting path with fewer than two labels: %r", labels)
            return []

        ids: List[str] = []
        last = len(labels) - 1
        for position, label in enumerate(labels):
            if position == 0 and label == start.label:
                ids.append(start.id)
                continue
            if position == last and label == end.label:
                ids.append(end.id)
                continue
            node = self.store.find_by_label(label)
            if node is None:
                logger.warning("Rejecting path: unknown label %r", label)
                return []
            ids.append(node.id)

        if ids[0] != start.id or ids[-1] != end.id:
            logger.warning("Rejecting path that does not run from %s to %s", start.id, end.id)
            return []

        for a, b in zip(ids, ids[1:]):
            if a != b and not self.store.has_edge(a, b):
                logger.info("Inserting missing path edge %s -> %s", a, b)
                await self.store.connect(a, b)

        return ids
