"""Canonical types for the literary graph.

Defines the shapes that flow through the graph store:
- EntityInput / EdgeInput / GraphPayload: loosely-typed batches as they arrive
  from the generative service, the bibliographic service, or a bootstrap file
- Node / Edge: merged canonical graph records (immutable, replaced on write)
- Summary states: the lifecycle of an on-demand AI summary
- BookData / GridSlot: the book recommendation wall
- BatchResult / GraphSnapshot: what the store hands back to callers

Inputs are pydantic models so camelCase and snake_case keys are both
accepted. Canonical records are frozen dataclasses with to_dict().
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from storylines.core import constants

Vector3 = Tuple[float, float, float]

ORIGIN: Vector3 = (0.0, 0.0, 0.0)


def node_id(node_type: str, label: str) -> str:
    """Composite identity key of a node: ``"{type}:{label}"``."""
    return f"{node_type}:{label}"


def color_for_type(node_type: str) -> str:
    return constants.NODE_COLORS.get(node_type, constants.DEFAULT_NODE_COLOR)


# =============================================================================
# Inputs
# =============================================================================

class EntityInput(BaseModel):
    """One entity of an incoming batch, before merging."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    label: str = Field(min_length=1)
    type: str = Field(min_length=1)
    description: Optional[str] = None
    publication_year: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("publication_year", "publicationYear")
    )
    series: Optional[str] = None
    external_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("external_key", "externalKey", "api_key", "apiKey"),
    )
    image_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("image_url", "imageUrl")
    )

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("publication_year", mode="before")
    @classmethod
    def _coerce_year(cls, value: Any) -> Optional[int]:
        # Models and catalogues return years as ints, strings, or prose like "c. 1605"
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value)
        match = re.search(r"-?\d{1,4}", str(value))
        return int(match.group(0)) if match else None

    @field_validator("series", mode="before")
    @classmethod
    def _first_series(cls, value: Any) -> Any:
        if isinstance(value, list):
            return value[0] if value else None
        return value

    @property
    def id(self) -> str:
        return node_id(self.type, self.label)


class EdgeInput(BaseModel):
    """An edge between two entities, referenced by label."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    source: str
    target: str


class GraphPayload(BaseModel):
    """A whole batch: the shape of bootstrap files and structured model output."""

    model_config = ConfigDict(extra="ignore")

    nodes: List[EntityInput] = Field(default_factory=list)
    edges: List[EdgeInput] = Field(default_factory=list)
    commentary: Optional[str] = None
    path: List[str] = Field(default_factory=list)


# =============================================================================
# Canonical records
# =============================================================================

@dataclass(frozen=True)
class GroundingSource:
    """A web source the generative service cited for a grounded answer."""

    uri: str
    title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"uri": self.uri, "title": self.title}


@dataclass(frozen=True)
class SummaryUnrequested:
    state: str = "unrequested"


@dataclass(frozen=True)
class SummaryPending:
    state: str = "pending"


@dataclass(frozen=True)
class SummaryReady:
    summary: str
    analysis: str
    state: str = "ready"


@dataclass(frozen=True)
class SummaryFailed:
    error: str
    state: str = "failed"


Summary = Union[SummaryUnrequested, SummaryPending, SummaryReady, SummaryFailed]


def summary_to_dict(summary: Summary) -> Dict[str, Any]:
    data: Dict[str, Any] = {"state": summary.state}
    if isinstance(summary, SummaryReady):
        data["summary"] = summary.summary
        data["analysis"] = summary.analysis
    elif isinstance(summary, SummaryFailed):
        data["error"] = summary.error
    return data


@dataclass(frozen=True)
class Node:
    """A merged graph node.

    Attributes:
        id: ``"{type}:{label}"``
        position: Authoritative rest position, assigned once at creation
        initial_position: Animate-in origin, None for bootstrap loads
        size: Derived from degree, recomputed after every batch
        last_updated: Logical timestamp of the last batch that touched the node
    """

    id: str
    label: str
    type: str
    position: Vector3
    color: str
    last_updated: int
    description: Optional[str] = None
    publication_year: Optional[int] = None
    series: Optional[str] = None
    external_key: Optional[str] = None
    image_url: Optional[str] = None
    summary: Summary = field(default_factory=SummaryUnrequested)
    initial_position: Optional[Vector3] = None
    size: float = constants.NODE_BASE_SIZE
    grounding_sources: Optional[Tuple[GroundingSource, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "type": self.type,
            "description": self.description,
            "publication_year": self.publication_year,
            "series": self.series,
            "external_key": self.external_key,
            "image_url": self.image_url,
            "summary": summary_to_dict(self.summary),
            "position": list(self.position),
            "initial_position": list(self.initial_position) if self.initial_position else None,
            "color": self.color,
            "size": self.size,
            "last_updated": self.last_updated,
            "grounding_sources": (
                [source.to_dict() for source in self.grounding_sources]
                if self.grounding_sources else None
            ),
        }


@dataclass(frozen=True)
class Edge:
    """An undirected connection between two node ids."""

    source: str
    target: str

    @property
    def key(self) -> frozenset:
        return frozenset((self.source, self.target))

    def other(self, node_id: str) -> str:
        return self.target if node_id == self.source else self.source

    def to_dict(self) -> Dict[str, str]:
        return {"source": self.source, "target": self.target}


# =============================================================================
# Book grid
# =============================================================================

class SlotStatus(str, Enum):
    EMPTY = "empty"
    SUGGESTED = "suggested"
    LOCKED = "locked"


@dataclass(frozen=True)
class BookData:
    title: str
    author: str
    cover_url: Optional[str] = None
    external_key: Optional[str] = None

    @property
    def identity(self) -> str:
        return f"{self.title} by {self.author}"

    @property
    def identity_key(self) -> str:
        """Case-insensitive form of ``identity`` used for de-duplication."""
        return self.identity.casefold()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "author": self.author,
            "cover_url": self.cover_url,
            "external_key": self.external_key,
        }


@dataclass(frozen=True)
class GridSlot:
    index: int
    status: SlotStatus = SlotStatus.EMPTY
    book: Optional[BookData] = None

    @property
    def is_empty(self) -> bool:
        return self.status == SlotStatus.EMPTY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "status": self.status.value,
            "book": self.book.to_dict() if self.book else None,
        }


# =============================================================================
# Store results
# =============================================================================

@dataclass
class BatchResult:
    primary_id: Optional[str] = None
    new_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class GraphSnapshot:
    """Read-only view handed to renderers and exporters."""

    nodes: Mapping[str, Node] = field(default_factory=lambda: MappingProxyType({}))
    edges: Tuple[Edge, ...] = ()
    grid_slots: Tuple[GridSlot, ...] = ()
