"""Connected-component clustering of the graph."""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence

from storylines.graph.models import Edge, Node, Vector3

CLUSTER_COLORS = [
    "#a78bfa",
    "#10b981",
    "#06b6d4",
    "#f59e0b",
    "#ef4444",
    "#8b5cf6",
    "#ec4899",
    "#14b8a6",
]


@dataclass(frozen=True)
class Cluster:
    id: str
    nodes: List[str]
    center: Vector3
    color: str
    label: str


@dataclass
class ClusteringResult:
    clusters: List[Cluster] = field(default_factory=list)
    node_to_cluster: Dict[str, str] = field(default_factory=dict)


def detect_clusters(nodes: Mapping[str, Node], edges: Sequence[Edge]) -> ClusteringResult:
    """Group nodes into connected components, in node insertion order."""
    adjacency: Dict[str, List[str]] = {node_id: [] for node_id in nodes}
    for edge in edges:
        if edge.source in adjacency and edge.target in adjacency:
            adjacency[edge.source].append(edge.target)
            adjacency[edge.target].append(edge.source)

    result = ClusteringResult()
    visited = set()

    for start in nodes:
        if start in visited:
            continue

        # Iterative DFS
        members = []
        stack = [start]
        visited.add(start)
        while stack:
            current = stack.pop()
            members.append(current)
            for neighbor in adjacency[current]:
                if neighbor not in visited:
                    visited.add(neighbor)
                    stack.append(neighbor)

        index = len(result.clusters)
        cluster_id = f"cluster-{index}"
        result.clusters.append(Cluster(
            id=cluster_id,
            nodes=members,
            center=_centroid([nodes[member] for member in members]),
            color=CLUSTER_COLORS[index % len(CLUSTER_COLORS)],
            label=_cluster_label([nodes[member] for member in members]),
        ))
        for member in members:
            result.node_to_cluster[member] = cluster_id

    return result


def _centroid(members: List[Node]) -> Vector3:
    count = len(members)
    return (
        sum(node.position[0] for node in members) / count,
        sum(node.position[1] for node in members) / count,
        sum(node.position[2] for node in members) / count,
    )


def _cluster_label(members: List[Node]) -> str:
    """Name a cluster after its first theme, else its first author, else its dominant type."""
    for node in members:
        if node.type == "theme":
            return node.label
    for node in members:
        if node.type == "author":
            return f"{node.label} cluster"

    counts = Counter(node.type for node in members)
    dominant = counts.most_common(1)[0][0]
    return f"{dominant.capitalize()} cluster"


def cluster_stats(clusters: Sequence[Cluster]) -> Dict[str, float]:
    if not clusters:
        return {"total_clusters": 0, "average_size": 0.0, "largest": 0, "smallest": 0}

    sizes = [len(cluster.nodes) for cluster in clusters]
    return {
        "total_clusters": len(clusters),
        "average_size": sum(sizes) / len(sizes),
        "largest": max(sizes),
        "smallest": min(sizes),
    }
