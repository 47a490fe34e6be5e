"""Storylines package exports.

Keep package import lightweight by lazily importing heavy modules.
"""

from typing import TYPE_CHECKING, Any

__version__ = "1.0.0"

if TYPE_CHECKING:
    from .core.settings import Settings
    from .graph.store import GraphStore
    from .services.explorer import GraphExplorer

__all__ = ["GraphExplorer", "GraphStore", "Settings", "get_settings"]


def __getattr__(name: str) -> Any:
    """Lazily resolve top-level exports."""
    if name in {"Settings", "get_settings"}:
        from .core.settings import Settings, get_settings

        return Settings if name == "Settings" else get_settings

    if name == "GraphStore":
        from .graph.store import GraphStore

        return GraphStore

    if name == "GraphExplorer":
        from .services.explorer import GraphExplorer

        return GraphExplorer

    if name in {"core", "graph", "providers", "services", "utils"}:
        import importlib

        return importlib.import_module(f".{name}", __name__)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
