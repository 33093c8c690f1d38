"""Core graph data structures and operations.

An in-memory directed graph of articles (nodes) and hyperlinks (edges).
GraphStore is the sole owner of both collections; every mutation goes through
it so that the identity and referential invariants hold:

- at most one Node per canonical title (node id)
- at most one Edge per ordered (source, target) pair, keyed "{source}->{target}"
- a committed edge always references two existing nodes

Thread Safety:
    All operations on GraphStore are protected by an internal RLock. Callers
    that need a check-then-commit sequence to be atomic (the linker does, after
    every fetch) wrap it in the batch() context manager:

        with store.batch():
            if not store.has_node(title):
                store.upsert_node(node)
            store.add_edge_if_absent(source_id, title)

Change notifications:
    subscribe() registers listeners that receive a GraphChange after each
    committed mutation. Changes made inside a batch are delivered once the
    outermost batch exits, after the lock is released.
"""

import copy
import dataclasses
import logging
import threading
from collections import defaultdict, deque
from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from rabbithole.engine.errors import DanglingReferenceError
from rabbithole.engine.weights import color_seed, compute_weight

logger = logging.getLogger(__name__)

EDGE_SEPARATOR = "->"


def edge_id(source_id: str, target_id: str) -> str:
    """Deterministic edge key for an ordered (source, target) pair."""
    return f"{source_id}{EDGE_SEPARATOR}{target_id}"


@dataclass(frozen=True)
class Node:
    """An article vertex.

    Attributes:
        id: Canonical article title; primary key across the graph
        title: Display title (equal to id unless explicitly given)
        content: Summary text; its length drives the weight
        full_document: Full article body, opaque to the engine
        source_url: Canonical external URL
        outgoing_link_titles: Raw link targets as returned by the data source
        expanded: Whether outgoing links were bulk-materialized into the graph
        weight: Derived size in [6, 40]; computed when not supplied
        color_seed: Derived stable hue in [0, 360); computed when not supplied

    Raises:
        TypeError: If id is not a string
        ValueError: If id is empty
    """

    id: str
    title: str = ""
    content: str = ""
    full_document: str = ""
    source_url: str = ""
    outgoing_link_titles: tuple[str, ...] = ()
    expanded: bool = False
    weight: int | None = None
    color_seed: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.id, str):
            raise TypeError(f"Node id must be a string, got: {type(self.id).__name__}")
        if not self.id:
            raise ValueError("Node id must be a non-empty string")
        # Frozen dataclass: derived fields are filled through object.__setattr__
        if not self.title:
            object.__setattr__(self, "title", self.id)
        if not isinstance(self.outgoing_link_titles, tuple):
            object.__setattr__(self, "outgoing_link_titles", tuple(self.outgoing_link_titles))
        if self.weight is None:
            object.__setattr__(
                self, "weight", compute_weight(self.content, self.outgoing_link_titles)
            )
        if self.color_seed is None:
            object.__setattr__(self, "color_seed", color_seed(self.id))


@dataclass(frozen=True)
class Edge:
    """A directed hyperlink between two article nodes.

    Endpoints are always plain node ids.

    Raises:
        TypeError: If an endpoint is not a string
        ValueError: If id does not match "{source_id}->{target_id}"
    """

    id: str
    source_id: str
    target_id: str

    def __post_init__(self) -> None:
        for name in ("source_id", "target_id"):
            value = getattr(self, name)
            if not isinstance(value, str):
                raise TypeError(f"Edge {name} must be a string, got: {type(value).__name__}")
        expected = edge_id(self.source_id, self.target_id)
        if self.id != expected:
            raise ValueError(f"Edge id must be {expected!r}, got: {self.id!r}")

    @classmethod
    def between(cls, source_id: str, target_id: str) -> "Edge":
        return cls(edge_id(source_id, target_id), source_id, target_id)


@dataclass(frozen=True)
class GraphSnapshot:
    """Immutable, fully-materialized copy of a GraphStore's nodes and edges.

    Nodes and edges keep insertion order. Suitable for persistence, forking
    and BFS replay.
    """

    nodes: tuple[Node, ...] = ()
    edges: tuple[Edge, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Export to a JSON-compatible dict."""
        return {
            "nodes": [
                {
                    "id": n.id,
                    "title": n.title,
                    "content": n.content,
                    "full_document": n.full_document,
                    "source_url": n.source_url,
                    "outgoing_link_titles": list(n.outgoing_link_titles),
                    "expanded": n.expanded,
                    "weight": n.weight,
                    "color_seed": n.color_seed,
                }
                for n in self.nodes
            ],
            "edges": [
                {"id": e.id, "source_id": e.source_id, "target_id": e.target_id}
                for e in self.edges
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphSnapshot":
        """Import from a dict produced by to_dict().

        Edge ids are recomputed from their endpoints, and repeated
        (source, target) pairs collapse to one edge. A repeated node id keeps
        its first position and its last value, as add_node() does.
        """
        nodes: dict[str, Node] = {}
        for nd in data.get("nodes", []):
            nodes[nd["id"]] = Node(
                id=nd["id"],
                title=nd.get("title", ""),
                content=nd.get("content", ""),
                full_document=nd.get("full_document", ""),
                source_url=nd.get("source_url", ""),
                outgoing_link_titles=tuple(nd.get("outgoing_link_titles", ())),
                expanded=bool(nd.get("expanded", False)),
                weight=nd.get("weight"),
                color_seed=nd.get("color_seed"),
            )
        edges: dict[str, Edge] = {}
        for ed in data.get("edges", []):
            edge = Edge.between(ed["source_id"], ed["target_id"])
            edges.setdefault(edge.id, edge)
        return cls(nodes=tuple(nodes.values()), edges=tuple(edges.values()))


@dataclass(frozen=True)
class GraphChange:
    """Notification delivered to subscribers after a committed mutation.

    kind is one of "node_upserted", "edge_added", "nodes_removed",
    "node_restored" or "cleared".
    """

    kind: str
    node_ids: tuple[str, ...] = ()
    edge_ids: tuple[str, ...] = ()


@dataclass
class RemovalResult:
    """What a cascade removal deleted, in deletion order."""

    removed_nodes: list[Node] = field(default_factory=list)
    removed_edges: list[Edge] = field(default_factory=list)

    @property
    def removed_node_ids(self) -> list[str]:
        return [n.id for n in self.removed_nodes]


GraphListener = Callable[[GraphChange], None]


class GraphStore:
    """Directed article graph with indexed edge lookups.

    Design principles:
    - Canonical title is the only node identity
    - Deterministic edge ids; add_edge_if_absent is idempotent
    - O(1) incoming/outgoing lookups via maintained indexes
    - Root nodes derived from the live edge set, never cached
    """

    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}
        self._edges: dict[str, Edge] = {}
        # Indexes for fast lookup: node id -> {edge id: edge}, insertion ordered
        self._outgoing: dict[str, dict[str, Edge]] = defaultdict(dict)
        self._incoming: dict[str, dict[str, Edge]] = defaultdict(dict)
        # Reentrant because batch() wraps calls that take the lock again
        self._lock = threading.RLock()
        self._batch_depth = 0
        self._pending: list[GraphChange] = []
        self._listeners: list[GraphListener] = []

    def __getstate__(self) -> dict[str, Any]:
        """Support for pickle - exclude the lock and listeners."""
        state = self.__dict__.copy()
        del state["_lock"]
        state["_listeners"] = []
        state["_pending"] = []
        state["_batch_depth"] = 0
        return state

    def __setstate__(self, state: dict[str, Any]) -> None:
        """Support for pickle - recreate the lock."""
        self.__dict__.update(state)
        self._lock = threading.RLock()

    def __deepcopy__(self, memo: dict) -> "GraphStore":
        """Support for copy.deepcopy - create new instance with copied data.

        Listeners are not copied: a copy is a new, unobserved graph.
        """
        with self._lock:
            new_store = GraphStore.__new__(GraphStore)
            memo[id(self)] = new_store

            new_store._nodes = copy.deepcopy(self._nodes, memo)
            new_store._edges = copy.deepcopy(self._edges, memo)
            new_store._outgoing = copy.deepcopy(self._outgoing, memo)
            new_store._incoming = copy.deepcopy(self._incoming, memo)

            new_store._lock = threading.RLock()
            new_store._batch_depth = 0
            new_store._pending = []
            new_store._listeners = []

            return new_store

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    # ========== Thread Safety & Notifications ==========

    @contextmanager
    def batch(self) -> Generator[None, None, None]:
        """Hold lock for multiple operations - provides isolation, NOT rollback.

        Other threads see either none or all of the changes made inside the
        block. Notifications are delivered once, after the outermost batch.

        Yields:
            None
        """
        with self._lock:
            self._batch_depth += 1
            try:
                yield
            finally:
                self._batch_depth -= 1
                pending: list[GraphChange] = []
                if self._batch_depth == 0:
                    pending, self._pending = self._pending, []
                listeners = list(self._listeners)
        for change in pending:
            for listener in listeners:
                try:
                    listener(change)
                except Exception:
                    logger.exception("Graph listener failed on %s", change.kind)

    def subscribe(self, listener: GraphListener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _record(self, kind: str, node_ids: Iterable[str] = (), edge_ids: Iterable[str] = ()) -> None:
        """Queue a change notification. Caller holds the lock inside batch()."""
        self._pending.append(GraphChange(kind, tuple(node_ids), tuple(edge_ids)))

    # ========== Node Operations ==========

    def upsert_node(self, data: Node) -> Node:
        """Insert a new node or merge fresh article data into an existing one.

        Existing node: content, full_document and outgoing_link_titles are
        replaced (last write wins), source_url is replaced when provided, and
        expanded is raised but never lowered. New node: created with
        expanded=False. Weight is recomputed either way.

        Args:
            data: Node carrying the article data

        Returns:
            The resulting stored node
        """
        with self.batch():
            existing = self._nodes.get(data.id)
            if existing is None:
                node = dataclasses.replace(data, expanded=False, weight=None, color_seed=None)
            else:
                node = dataclasses.replace(
                    existing,
                    content=data.content,
                    full_document=data.full_document,
                    outgoing_link_titles=data.outgoing_link_titles,
                    source_url=data.source_url or existing.source_url,
                    expanded=existing.expanded or data.expanded,
                    weight=None,
                )
            self._nodes[node.id] = node
            self._record("node_upserted", [node.id])
            return node

    def add_node(self, node: Node) -> None:
        """Store a node verbatim, overwriting any node with the same id.

        Used to restore nodes from a snapshot, where derived fields and the
        expanded flag must be kept as saved.
        """
        with self.batch():
            self._nodes[node.id] = node
            self._record("node_restored", [node.id])

    def mark_expanded(self, node_id: str) -> Node | None:
        """Raise a node's expanded flag. Returns the node, or None if absent."""
        with self.batch():
            node = self._nodes.get(node_id)
            if node is None or node.expanded:
                return node
            node = dataclasses.replace(node, expanded=True)
            self._nodes[node_id] = node
            self._record("node_upserted", [node_id])
            return node

    def get_node(self, node_id: str) -> Node | None:
        """Get a node by ID, or None if not found."""
        with self._lock:
            return self._nodes.get(node_id)

    def has_node(self, node_id: str) -> bool:
        """Check if a node exists. O(1)."""
        with self._lock:
            return node_id in self._nodes

    def get_all_nodes(self) -> list[Node]:
        """Get all nodes in insertion order."""
        with self._lock:
            return list(self._nodes.values())

    def find_node_by_title(self, title: str) -> Node | None:
        """Find a node whose display title equals ``title``."""
        with self._lock:
            node = self._nodes.get(title)
            if node is not None:
                return node
            for candidate in self._nodes.values():
                if candidate.title == title:
                    return candidate
            return None

    # ========== Edge Operations ==========

    def add_edge_if_absent(self, source_id: str, target_id: str) -> Edge | None:
        """Insert the edge source->target unless it already exists.

        Idempotent: repeated calls with the same pair leave exactly one edge.

        Args:
            source_id: ID of the linking node
            target_id: ID of the linked node

        Returns:
            The new edge, or None if it already existed

        Raises:
            DanglingReferenceError: If either endpoint is not in the store
        """
        with self.batch():
            eid = edge_id(source_id, target_id)
            if eid in self._edges:
                return None
            missing = [nid for nid in (source_id, target_id) if nid not in self._nodes]
            if missing:
                raise DanglingReferenceError(eid, sorted(set(missing)))
            edge = Edge(eid, source_id, target_id)
            self._edges[eid] = edge
            self._outgoing[source_id][eid] = edge
            self._incoming[target_id][eid] = edge
            self._record("edge_added", edge_ids=[eid])
            return edge

    def get_edge(self, eid: str) -> Edge | None:
        """Get an edge by ID, or None if not found."""
        with self._lock:
            return self._edges.get(eid)

    def has_edge(self, source_id: str, target_id: str) -> bool:
        """Check if the edge source->target exists. O(1)."""
        with self._lock:
            return edge_id(source_id, target_id) in self._edges

    def get_all_edges(self) -> list[Edge]:
        """Get all edges in insertion order."""
        with self._lock:
            return list(self._edges.values())

    def find_outgoing_edges(self, node_id: str) -> list[Edge]:
        """Edges whose source is node_id. O(out-degree) via index."""
        with self._lock:
            index = self._outgoing.get(node_id)
            return list(index.values()) if index else []

    def find_incoming_edges(self, node_id: str) -> list[Edge]:
        """Edges whose target is node_id. O(in-degree) via index."""
        with self._lock:
            index = self._incoming.get(node_id)
            return list(index.values()) if index else []

    def in_degree(self, node_id: str) -> int:
        with self._lock:
            index = self._incoming.get(node_id)
            return len(index) if index else 0

    def out_degree(self, node_id: str) -> int:
        with self._lock:
            index = self._outgoing.get(node_id)
            return len(index) if index else 0

    def _delete_edge(self, edge: Edge) -> None:
        """Drop an edge and its index entries. Caller holds the lock."""
        del self._edges[edge.id]
        out_index = self._outgoing.get(edge.source_id)
        if out_index is not None:
            out_index.pop(edge.id, None)
            # Clean up empty index dicts to prevent memory leaks
            if not out_index:
                del self._outgoing[edge.source_id]
        in_index = self._incoming.get(edge.target_id)
        if in_index is not None:
            in_index.pop(edge.id, None)
            if not in_index:
                del self._incoming[edge.target_id]

    # ========== Structure ==========

    def root_nodes(self) -> list[Node]:
        """Nodes with zero incoming edges, in insertion order.

        Recomputed from the live edge indexes on every call.
        """
        with self._lock:
            return [n for nid, n in self._nodes.items() if not self._incoming.get(nid)]

    def _reachable_from(self, anchors: Iterable[str]) -> set[str]:
        """Node ids reachable by forward paths from anchors. Caller holds the lock."""
        seen: set[str] = set()
        queue: deque[str] = deque()
        for anchor in anchors:
            if anchor in self._nodes and anchor not in seen:
                seen.add(anchor)
                queue.append(anchor)
        while queue:
            current = queue.popleft()
            for edge in self._outgoing.get(current, {}).values():
                if edge.target_id not in seen:
                    seen.add(edge.target_id)
                    queue.append(edge.target_id)
        return seen

    def _anchor_ids(self) -> list[str]:
        """Roots of the current graph, or the earliest node if there are none."""
        roots = [nid for nid in self._nodes if not self._incoming.get(nid)]
        if roots:
            return roots
        return [next(iter(self._nodes))] if self._nodes else []

    def _remove_nodes(self, node_ids: Iterable[str], result: RemovalResult) -> None:
        """Delete nodes and every edge touching them. Caller holds the lock."""
        for nid in node_ids:
            node = self._nodes.get(nid)
            if node is None:
                continue
            touching = list(self._outgoing.get(nid, {}).values())
            touching.extend(
                e for e in self._incoming.get(nid, {}).values() if e.source_id != nid
            )
            for edge in touching:
                if edge.id in self._edges:
                    self._delete_edge(edge)
                    result.removed_edges.append(edge)
            del self._nodes[nid]
            result.removed_nodes.append(node)

    def remove_node_cascade(self, node_id: str) -> RemovalResult:
        """Remove a node, its edges, and every node orphaned by the removal.

        A node is orphaned when it was reachable from the graph's anchors
        (the roots before the removal, or the earliest node in a root-less
        graph) and no longer is. Nodes that become roots only because their
        last incoming edge was removed do not count as anchors. Passes repeat
        until no further orphan is found. Nodes still reachable from another
        root survive. Nodes in components no anchor ever reached are left
        untouched.

        Removing an id that is not present is a no-op.

        Args:
            node_id: The node ID to remove

        Returns:
            RemovalResult listing removed nodes and edges
        """
        result = RemovalResult()
        with self.batch():
            if node_id not in self._nodes:
                return result

            anchors = self._anchor_ids()
            reachable_before = self._reachable_from(anchors)

            self._remove_nodes([node_id], result)
            surviving_anchors = [a for a in anchors if a in self._nodes]

            while True:
                reachable = self._reachable_from(surviving_anchors)
                orphans = [
                    nid
                    for nid in self._nodes
                    if nid in reachable_before and nid not in reachable
                ]
                if not orphans:
                    break
                self._remove_nodes(orphans, result)

            self._record(
                "nodes_removed",
                [n.id for n in result.removed_nodes],
                [e.id for e in result.removed_edges],
            )
            logger.debug(
                "Cascade removal of %r removed %d nodes and %d edges",
                node_id,
                len(result.removed_nodes),
                len(result.removed_edges),
            )
            return result

    def clear(self) -> None:
        """Remove every node and edge."""
        with self.batch():
            self._nodes.clear()
            self._edges.clear()
            self._outgoing.clear()
            self._incoming.clear()
            self._record("cleared")

    # ========== Statistics & Validation ==========

    def stats(self) -> dict[str, Any]:
        """Get graph statistics.

        Returns:
            Dict with num_nodes, num_edges, num_roots, num_expanded
        """
        with self._lock:
            return {
                "num_nodes": len(self._nodes),
                "num_edges": len(self._edges),
                "num_roots": sum(1 for nid in self._nodes if not self._incoming.get(nid)),
                "num_expanded": sum(1 for n in self._nodes.values() if n.expanded),
            }

    def validate(self) -> dict[str, Any]:
        """Validate graph integrity.

        Checks for:
        - Edges referencing non-existent nodes (dangling edges)
        - Edge ids that do not match their endpoints
        - Outgoing/incoming index consistency

        Returns:
            Dict with 'valid' (bool), 'errors' (list of error descriptions),
            and 'dangling_edges' (list of edge IDs with missing endpoints)
        """
        with self._lock:
            errors: list[str] = []
            dangling_edges: list[str] = []

            for eid, edge in self._edges.items():
                missing = [
                    nid for nid in (edge.source_id, edge.target_id) if nid not in self._nodes
                ]
                if missing:
                    dangling_edges.append(eid)
                    errors.append(f"Edge '{eid}' references non-existent nodes: {missing}")
                if eid != edge_id(edge.source_id, edge.target_id):
                    errors.append(f"Edge '{eid}' id does not match its endpoints")
                if eid not in self._outgoing.get(edge.source_id, {}):
                    errors.append(f"Outgoing index for '{edge.source_id}' is missing '{eid}'")
                if eid not in self._incoming.get(edge.target_id, {}):
                    errors.append(f"Incoming index for '{edge.target_id}' is missing '{eid}'")

            for label, index in (("Outgoing", self._outgoing), ("Incoming", self._incoming)):
                for nid, edges in index.items():
                    if nid not in self._nodes:
                        errors.append(f"{label} index contains non-existent node: '{nid}'")
                    for eid in edges:
                        if eid not in self._edges:
                            errors.append(
                                f"{label} index for '{nid}' references non-existent edge: '{eid}'"
                            )

            return {
                "valid": len(errors) == 0,
                "errors": errors,
                "dangling_edges": dangling_edges,
            }

    # ========== Snapshots ==========

    def snapshot(self) -> GraphSnapshot:
        """Immutable copy of the current nodes and edges."""
        with self._lock:
            return GraphSnapshot(
                nodes=tuple(self._nodes.values()),
                edges=tuple(self._edges.values()),
            )

    def to_dict(self) -> dict[str, Any]:
        """Export to a JSON-compatible dict."""
        return self.snapshot().to_dict()

    @classmethod
    def from_snapshot(cls, snapshot: GraphSnapshot) -> "GraphStore":
        """Hydrate a store from a snapshot, nodes verbatim.

        Raises:
            DanglingReferenceError: If the snapshot holds an edge to a missing node
        """
        store = cls()
        with store.batch():
            for node in snapshot.nodes:
                store.add_node(node)
            for edge in snapshot.edges:
                store.add_edge_if_absent(edge.source_id, edge.target_id)
        return store

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphStore":
        """Import from a dict produced by to_dict()."""
        return cls.from_snapshot(GraphSnapshot.from_dict(data))
