"""The literary graph: models, layout, store, persistence, and clustering."""

from .models import (
    BatchResult,
    BookData,
    Edge,
    EdgeInput,
    EntityInput,
    GraphPayload,
    GraphSnapshot,
    GridSlot,
    GroundingSource,
    Node,
    SlotStatus,
    Summary,
    SummaryFailed,
    SummaryPending,
    SummaryReady,
    SummaryUnrequested,
    node_id,
)
from .store import GraphStore

__all__ = [
    "BatchResult",
    "BookData",
    "Edge",
    "EdgeInput",
    "EntityInput",
    "GraphPayload",
    "GraphSnapshot",
    "GraphStore",
    "GridSlot",
    "GroundingSource",
    "Node",
    "SlotStatus",
    "Summary",
    "SummaryFailed",
    "SummaryPending",
    "SummaryReady",
    "SummaryUnrequested",
    "node_id",
]
