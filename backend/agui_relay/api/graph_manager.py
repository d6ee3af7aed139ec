"""
Graph management and initialization.

Provides thread-safe lazy initialization of the LangGraph graph named by the
``AGENT_GRAPH`` setting (``module:attribute``). The attribute may be a
compiled graph or a zero-argument factory returning one.
"""
from __future__ import annotations

import importlib
import threading
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


def load_graph(import_path: str) -> Any:
    """Import and, if needed, build the graph at ``module:attribute``.

    Raises:
        ValueError: If the path is malformed or cannot be imported.
    """
    module_path, sep, attr = import_path.partition(":")
    if not sep or not module_path or not attr:
        raise ValueError(f"AGENT_GRAPH must look like 'module:attribute', got {import_path!r}")

    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        raise ValueError(f"Failed to import graph module '{module_path}': {e}") from e

    target = getattr(module, attr, None)
    if target is None:
        raise ValueError(f"Graph module '{module_path}' does not export '{attr}'")

    # Compiled graphs are not plain callables but do expose astream_events
    if callable(target) and not hasattr(target, "astream_events"):
        target = target()
    if not hasattr(target, "astream_events"):
        raise ValueError(f"'{import_path}' did not produce a runnable graph")
    return target


_graphs: dict[str, Any] = {}
_graph_lock = threading.Lock()


def get_graph(import_path: str | None = None) -> Any:
    """Get or create the compiled graph, cached per import path.

    Uses double-check locking to ensure thread-safe lazy initialization.
    """
    if import_path is None:
        from agui_relay.config import get_settings

        import_path = get_settings().AGENT_GRAPH

    graph = _graphs.get(import_path)
    if graph is None:
        with _graph_lock:
            graph = _graphs.get(import_path)
            if graph is None:
                logger.info("graph_initializing", agent_graph=import_path)
                graph = load_graph(import_path)
                _graphs[import_path] = graph
                logger.info("graph_initialized", agent_graph=import_path)
    return graph


def reset_graphs() -> None:
    """Drop cached graphs."""
    with _graph_lock:
        _graphs.clear()
