"""Services built on the graph store and the external data clients."""

from .book_grid import BookGrid
from .enrichment import EnrichmentScheduler
from .explorer import GraphExplorer, VisualizationMode
from .library_search import LibrarySearch
from .path_finder import ConnectionMode, ConnectionPathFinder

__all__ = [
    "BookGrid",
    "ConnectionMode",
    "ConnectionPathFinder",
    "EnrichmentScheduler",
    "GraphExplorer",
    "LibrarySearch",
    "VisualizationMode",
]
