"""Persistence boundary: export, import, and JSON files on disk.

Exports are plain JSON-serializable dicts:

    {"nodes": {id: node}, "edges": [{source, target}], "metadata": {...}}

Imports go back through ``GraphStore.add_batch`` so merge, de-duplication,
and layout rules apply exactly as for any other batch. Positions are
recomputed on import rather than restored.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiofiles
from pydantic import ValidationError as PydanticValidationError

from storylines.core import constants
from storylines.core.errors import InvalidInputError, ParseError
from storylines.graph.models import BatchResult, EntityInput, GraphSnapshot, SummaryReady
from storylines.graph.store import GraphStore

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
FEATURED_BOOK_LIMIT = 10


def export_graph(snapshot: GraphSnapshot, exported_at: Optional[datetime] = None) -> Dict[str, Any]:
    """Serialize a snapshot into the export document."""
    exported_at = exported_at or datetime.now(timezone.utc)
    return {
        "nodes": {node_id: node.to_dict() for node_id, node in snapshot.nodes.items()},
        "edges": [edge.to_dict() for edge in snapshot.edges],
        "metadata": {
            "exported_at": exported_at.isoformat(),
            "version": EXPORT_VERSION,
            "node_count": len(snapshot.nodes),
            "edge_count": len(snapshot.edges),
        },
    }


def _node_records(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    nodes = data.get("nodes") or []
    if isinstance(nodes, dict):
        return [record for record in nodes.values() if isinstance(record, dict)]
    if isinstance(nodes, list):
        return [record for record in nodes if isinstance(record, dict)]
    raise InvalidInputError("nodes", "must be a list or an object keyed by node id")


def _edge_labels(data: Dict[str, Any], records: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    # Exported edges reference node ids; batches reference labels.
    labels_by_id = {
        record["id"]: record.get("label")
        for record in records
        if record.get("id") and record.get("label")
    }
    edges = []
    for edge in data.get("edges") or []:
        if not isinstance(edge, dict):
            continue
        source, target = edge.get("source"), edge.get("target")
        if not source or not target:
            continue
        edges.append({
            "source": labels_by_id.get(source, source),
            "target": labels_by_id.get(target, target),
        })
    return edges


async def import_graph(store: GraphStore, data: Dict[str, Any]) -> BatchResult:
    """Merge an exported document (or a bootstrap document) into ``store``.

    Ready summaries in the document are restored onto their nodes.

    Raises:
        InvalidInputError: If the document is not a mapping with usable nodes
    """
    if not isinstance(data, dict):
        raise InvalidInputError("data", "must be a JSON object")

    records = _node_records(data)
    result = await store.add_batch(
        records,
        _edge_labels(data, records),
        timestamp=constants.BOOTSTRAP_TIMESTAMP,
    )

    for record in records:
        summary = record.get("summary")
        if isinstance(summary, dict) and summary.get("state") == "ready":
            try:
                entity_id = EntityInput.model_validate(record).id
            except PydanticValidationError:
                continue
            if entity_id in store:
                await store.set_summary(
                    entity_id,
                    SummaryReady(summary=summary.get("summary", ""), analysis=summary.get("analysis", "")),
                )

    logger.info("Imported %d nodes (%d new)", len(records), len(result.new_ids))
    return result


async def read_json(path: Union[str, Path]) -> Any:
    """Read and decode a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        ParseError: If the file is not valid JSON
    """
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        content = await f.read()
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in {path}: {e}", raw_text=content) from e


async def save_graph(snapshot: GraphSnapshot, path: Union[str, Path]) -> Path:
    """Write the export document for ``snapshot`` to ``path``."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write(json.dumps(export_graph(snapshot), indent=2, ensure_ascii=False))
    logger.info("Saved graph with %d nodes to %s", len(snapshot.nodes), path)
    return path


async def load_graph(store: GraphStore, path: Union[str, Path]) -> BatchResult:
    return await import_graph(store, await read_json(path))


def graph_summary(snapshot: GraphSnapshot) -> str:
    """Plain-text digest of the graph: totals per type and featured books."""
    nodes = list(snapshot.nodes.values())
    books = [node for node in nodes if node.type == "book"]
    authors = [node for node in nodes if node.type == "author"]
    themes = [node for node in nodes if node.type == "theme"]

    lines = [
        "My Storylines Graph",
        "",
        f"Total: {len(nodes)} nodes, {len(snapshot.edges)} connections",
        f"Books: {len(books)}",
        f"Authors: {len(authors)}",
        f"Themes: {len(themes)}",
    ]

    if books:
        lines.append("")
        lines.append("Featured Books:")
        for book in books[:FEATURED_BOOK_LIMIT]:
            year = f" ({book.publication_year})" if book.publication_year else ""
            lines.append(f"  - {book.label}{year}")
        if len(books) > FEATURED_BOOK_LIMIT:
            lines.append(f"  ... and {len(books) - FEATURED_BOOK_LIMIT} more")

    return "\n".join(lines) + "\n"
