"""Canonical in-memory graph and the batch merger.

Every entity batch (search, expansion, path query, bootstrap, import) enters
through ``GraphStore.add_batch``:

1. New entities become nodes placed by the layout engine.
2. Known entities are merged; merging only fills missing fields.
3. Edges are resolved by label against the whole graph and de-duplicated
   regardless of direction.
4. Every node's size is recomputed from its degree.

All mutations hold one asyncio.Lock (``write_lock``), which the book grid
shares, so the graph has a single writer at a time.
"""

import asyncio
import dataclasses
import logging
import math
import time
from collections import defaultdict
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from pydantic import ValidationError as PydanticValidationError

from storylines.core import constants
from storylines.graph import layout
from storylines.graph.models import (
    ORIGIN,
    BatchResult,
    Edge,
    EdgeInput,
    EntityInput,
    GraphSnapshot,
    GridSlot,
    GroundingSource,
    Node,
    Summary,
    Vector3,
    color_for_type,
)

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


def node_size(degree: int) -> float:
    """Size of a node with ``degree`` connections, clamped to the configured bounds."""
    size = constants.NODE_BASE_SIZE + math.sqrt(degree) * constants.NODE_SIZE_GROWTH
    return max(constants.NODE_MIN_SIZE, min(constants.NODE_MAX_SIZE, size))


def _coerce_entities(entities: Optional[Iterable[Any]]) -> List[EntityInput]:
    if not entities:
        return []
    try:
        return [
            entity if isinstance(entity, EntityInput) else EntityInput.model_validate(entity)
            for entity in entities
        ]
    except (PydanticValidationError, TypeError) as e:
        logger.warning("Discarding malformed entity batch: %s", e)
        return []


def _coerce_edges(edges: Optional[Iterable[Any]]) -> List[EdgeInput]:
    result = []
    for edge in edges or ():
        if isinstance(edge, EdgeInput):
            result.append(edge)
            continue
        try:
            result.append(EdgeInput.model_validate(edge))
        except (PydanticValidationError, TypeError):
            logger.debug("Skipping malformed edge: %r", edge)
    return result


def _merge(existing: Node, entity: EntityInput, timestamp: int) -> Node:
    """Fill fields the existing node lacks; never overwrite a present value."""
    updates: Dict[str, Any] = {"last_updated": timestamp}
    for name in ("description", "publication_year", "series", "external_key", "image_url"):
        incoming = getattr(entity, name)
        if incoming is not None and incoming != "" and getattr(existing, name) is None:
            updates[name] = incoming
    return dataclasses.replace(existing, **updates)


class GraphStore:
    """The canonical node and edge sets.

    Args:
        clock: Wall-clock milliseconds, used when a batch carries no timestamp
    """

    def __init__(self, clock: Callable[[], int] = _wall_clock_ms):
        self._clock = clock
        self._nodes: Dict[str, Node] = {}
        self._edges: List[Edge] = []
        self._edge_keys: Set[frozenset] = set()
        self._latest_query_timestamp: Optional[int] = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def write_lock(self) -> asyncio.Lock:
        return self._lock

    @property
    def nodes(self) -> Mapping[str, Node]:
        return MappingProxyType(self._nodes)

    @property
    def edges(self) -> Tuple[Edge, ...]:
        return tuple(self._edges)

    @property
    def latest_query_timestamp(self) -> Optional[int]:
        return self._latest_query_timestamp

    def mark_query(self, timestamp: int) -> None:
        """Record the timestamp of the newest dispatched foreground query."""
        self._latest_query_timestamp = timestamp

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def find_by_label(self, label: str) -> Optional[Node]:
        """First node (in insertion order) whose label is exactly ``label``."""
        for node in self._nodes.values():
            if node.label == label:
                return node
        return None

    def neighbors(self, node_id: str) -> List[str]:
        return [edge.other(node_id) for edge in self._edges if node_id in (edge.source, edge.target)]

    def degree(self, node_id: str) -> int:
        return sum(1 for edge in self._edges if node_id in (edge.source, edge.target))

    def has_edge(self, a: str, b: str) -> bool:
        return frozenset((a, b)) in self._edge_keys

    def snapshot(self, grid_slots: Sequence[GridSlot] = ()) -> GraphSnapshot:
        return GraphSnapshot(
            nodes=MappingProxyType(dict(self._nodes)),
            edges=tuple(self._edges),
            grid_slots=tuple(grid_slots),
        )

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    # ------------------------------------------------------------------
    # Batch merge
    # ------------------------------------------------------------------

    async def add_batch(
        self,
        entities: Optional[Iterable[Any]],
        edges: Optional[Iterable[Any]] = (),
        source_position: Vector3 = ORIGIN,
        timestamp: Optional[int] = None,
        grounding_sources: Optional[Iterable[GroundingSource]] = None,
    ) -> BatchResult:
        """Merge a batch of entities and edges into the graph.

        Args:
            entities: Ordered entities; the first one is the batch's primary node
            edges: Label-referenced edges, resolved against the whole graph
            source_position: Animate-in origin for newly created nodes
            timestamp: Logical query timestamp. None falls back to the latest
                marked query, then wall-clock time. BOOTSTRAP_TIMESTAMP creates
                nodes without an animate-in origin.
            grounding_sources: Web sources attached to the primary node if it is new

        Returns:
            BatchResult with the primary id and ids of nodes created by this batch.
            A missing or malformed entity list is a no-op returning an empty result.
        """
        batch = _coerce_entities(entities)
        if not batch:
            return BatchResult()

        edge_inputs = _coerce_edges(edges)
        sources = tuple(grounding_sources) if grounding_sources else None

        async with self._lock:
            return self._apply_batch(batch, edge_inputs, tuple(source_position), timestamp, sources)

    def _apply_batch(
        self,
        batch: List[EntityInput],
        edge_inputs: List[EdgeInput],
        source_position: Vector3,
        timestamp: Optional[int],
        sources: Optional[Tuple[GroundingSource, ...]],
    ) -> BatchResult:
        if timestamp is not None:
            query_timestamp = timestamp
        elif self._latest_query_timestamp is not None:
            query_timestamp = self._latest_query_timestamp
        else:
            query_timestamp = self._clock()

        is_bootstrap = timestamp == constants.BOOTSTRAP_TIMESTAMP
        new_ids: List[str] = []

        for position_in_batch, entity in enumerate(batch):
            entity_id = entity.id
            existing = self._nodes.get(entity_id)
            if existing is not None:
                self._nodes[entity_id] = _merge(existing, entity, query_timestamp)
                continue

            index = len(self._nodes)
            self._nodes[entity_id] = Node(
                id=entity_id,
                label=entity.label,
                type=entity.type,
                description=entity.description,
                publication_year=entity.publication_year,
                series=entity.series,
                external_key=entity.external_key,
                image_url=entity.image_url,
                position=layout.position(index, index + len(batch)),
                initial_position=None if is_bootstrap else source_position,
                color=color_for_type(entity.type),
                last_updated=query_timestamp,
                grounding_sources=sources if position_in_batch == 0 else None,
            )
            new_ids.append(entity_id)

        added_edges = self._link(edge_inputs)
        self._resize_nodes()

        logger.debug(
            "Merged batch of %d entities (%d new, %d new edges)",
            len(batch), len(new_ids), added_edges,
        )
        return BatchResult(primary_id=batch[0].id, new_ids=new_ids)

    def _label_index(self) -> Dict[str, str]:
        index: Dict[str, str] = {}
        for node in self._nodes.values():
            index.setdefault(node.label, node.id)
        return index

    def _link(self, edge_inputs: List[EdgeInput]) -> int:
        if not edge_inputs:
            return 0

        by_label = self._label_index()
        added = 0
        for edge in edge_inputs:
            source_id = by_label.get(edge.source)
            target_id = by_label.get(edge.target)
            if source_id is None or target_id is None:
                logger.debug("Skipping edge with unknown endpoint: %s -> %s", edge.source, edge.target)
                continue
            if self._insert_edge(source_id, target_id):
                added += 1
        return added

    def _insert_edge(self, source_id: str, target_id: str) -> bool:
        if source_id == target_id:
            return False
        key = frozenset((source_id, target_id))
        if key in self._edge_keys:
            return False
        self._edges.append(Edge(source=source_id, target=target_id))
        self._edge_keys.add(key)
        return True

    def _resize_nodes(self) -> None:
        degrees: Dict[str, int] = defaultdict(int)
        for edge in self._edges:
            degrees[edge.source] += 1
            degrees[edge.target] += 1

        for node_id, node in list(self._nodes.items()):
            size = node_size(degrees[node_id])
            if size != node.size:
                self._nodes[node_id] = dataclasses.replace(node, size=size)

    async def connect(self, source_id: str, target_id: str) -> bool:
        """Insert an edge between two existing node ids. Returns True if added."""
        async with self._lock:
            if source_id not in self._nodes or target_id not in self._nodes:
                return False
            added = self._insert_edge(source_id, target_id)
            if added:
                self._resize_nodes()
            return added

    # ------------------------------------------------------------------
    # Single-field writes
    # ------------------------------------------------------------------

    async def _fill(self, node_id: str, field_name: str, value: Optional[str]) -> bool:
        if not value:
            return False
        async with self._lock:
            node = self._nodes.get(node_id)
            if node is None or getattr(node, field_name) is not None:
                return False
            self._nodes[node_id] = dataclasses.replace(node, **{field_name: value})
            return True

    async def set_external_key(self, node_id: str, external_key: Optional[str]) -> bool:
        """Store an external key if the node has none. Returns True if written."""
        return await self._fill(node_id, "external_key", external_key)

    async def set_image_url(self, node_id: str, image_url: Optional[str]) -> bool:
        """Store an image URL if the node has none. Returns True if written."""
        return await self._fill(node_id, "image_url", image_url)

    async def set_summary(self, node_id: str, summary: Summary) -> bool:
        async with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                return False
            self._nodes[node_id] = dataclasses.replace(node, summary=summary)
            return True

    async def reset(self) -> None:
        """Drop every node and edge."""
        async with self._lock:
            self._nodes.clear()
            self._edges.clear()
            self._edge_keys.clear()
            self._latest_query_timestamp = None
        logger.info("Graph reset")
