"""JSON file persistence for exploration graphs and sessions.

A snapshot file holds a bare graph (GraphSnapshot.to_dict()). A session file
additionally holds the navigation state, so the CLI can carry one
exploration across separate invocations:

    session.json
    |-- version                  # SESSION_VERSION
    |-- graph                    # {nodes: [...], edges: [...]}
    |-- navigation               # {selected_id, history}

Security:
    Path validation is performed to prevent path traversal attacks.
    All paths are resolved to absolute paths and validated.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .core import GraphSnapshot, GraphStore
from .navigation import NavigationState

SESSION_VERSION = "1.0"


def _validate_path(path: str, base_dir: Path | None = None) -> Path:
    """Validate and resolve a file path.

    Args:
        path: The path to validate
        base_dir: Optional base directory that the path must be within

    Returns:
        Resolved absolute Path

    Raises:
        ValueError: If path is invalid or attempts path traversal
    """
    # Check for null bytes before any path operations (common attack vector)
    if "\x00" in path:
        raise ValueError(f"Invalid path (contains null bytes): {path!r}")

    resolved = Path(path).resolve()

    if base_dir is not None:
        base_resolved = base_dir.resolve()
        try:
            resolved.relative_to(base_resolved)
        except ValueError:
            raise ValueError(
                f"Path traversal detected: {path} is outside base directory {base_dir}"
            )

    return resolved


def _write_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def save_snapshot(store: GraphStore, path: str) -> None:
    """Save a store's graph to a JSON file.

    Raises:
        ValueError: If path is invalid
    """
    _write_json(_validate_path(path), store.to_dict())


def load_snapshot(path: str) -> GraphStore:
    """Load a graph saved with save_snapshot().

    Raises:
        ValueError: If path is invalid
        FileNotFoundError: If file does not exist
        DanglingReferenceError: If the file holds an edge to a missing node
    """
    validated_path = _validate_path(path)
    with open(validated_path, encoding="utf-8") as f:
        data = json.load(f)
    return GraphStore.from_snapshot(GraphSnapshot.from_dict(data))


def save_session(store: GraphStore, navigation: NavigationState, path: str) -> None:
    """Save graph and navigation state to a session file."""
    data = {
        "version": SESSION_VERSION,
        "graph": store.to_dict(),
        "navigation": navigation.to_dict(),
    }
    _write_json(_validate_path(path), data)


def load_session(path: str) -> tuple[GraphStore, NavigationState]:
    """Load a session file, or start an empty session if it does not exist yet.

    Raises:
        ValueError: If path is invalid or the file is not a session file
    """
    validated_path = _validate_path(path)
    if not validated_path.exists():
        return GraphStore(), NavigationState()

    with open(validated_path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict) or "graph" not in data:
        raise ValueError(f"Not a session file: {path}")

    store = GraphStore.from_dict(data["graph"])
    navigation = NavigationState.from_dict(data.get("navigation", {}))
    # History may name nodes removed by hand-edited files
    navigation.forget(
        nid for nid in [navigation.selected_id, *navigation.history]
        if nid is not None and not store.has_node(nid)
    )
    return store, navigation
