"""Selection and back-navigation state for one exploration session."""

from __future__ import annotations

import threading
from collections.abc import Iterable

from rabbithole.engine.core import GraphStore, Node


class NavigationState:
    """Currently selected node plus a stack of previously selected node ids.

    Selecting a different node pushes the previous selection onto the history;
    go_back() pops it again. Ids of nodes deleted from the graph are skipped
    when going back and can be purged eagerly with forget().
    """

    def __init__(self) -> None:
        self._selected_id: str | None = None
        self._history: list[str] = []
        self._lock = threading.Lock()

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @property
    def history(self) -> list[str]:
        """History ids, oldest first."""
        with self._lock:
            return list(self._history)

    def select(self, node_id: str) -> None:
        """Select a node, pushing the previous selection if it differs."""
        with self._lock:
            if self._selected_id is not None and self._selected_id != node_id:
                self._history.append(self._selected_id)
            self._selected_id = node_id

    def visit(self, node_id: str, from_id: str) -> None:
        """Switch view to node_id after following a link out of from_id.

        from_id is recorded on the history so go_back() returns to it, even
        when it was not the current selection.
        """
        with self._lock:
            if from_id != node_id:
                self._history.append(from_id)
            self._selected_id = node_id

    def go_back(self, store: GraphStore) -> Node | None:
        """Pop history until an id still present in store is found and select it.

        Returns:
            The newly selected node, or None if history held no live node
        """
        with self._lock:
            while self._history:
                node_id = self._history.pop()
                node = store.get_node(node_id)
                if node is not None:
                    self._selected_id = node_id
                    return node
            return None

    def clear(self) -> None:
        """Drop selection and history."""
        with self._lock:
            self._selected_id = None
            self._history.clear()

    def deselect(self) -> None:
        with self._lock:
            self._selected_id = None

    def forget(self, node_ids: Iterable[str]) -> None:
        """Remove deleted node ids from the selection and history."""
        gone = set(node_ids)
        with self._lock:
            if self._selected_id in gone:
                self._selected_id = None
            self._history = [nid for nid in self._history if nid not in gone]

    def to_dict(self) -> dict:
        with self._lock:
            return {"selected_id": self._selected_id, "history": list(self._history)}

    @classmethod
    def from_dict(cls, data: dict) -> NavigationState:
        state = cls()
        state._selected_id = data.get("selected_id")
        state._history = list(data.get("history", []))
        return state
