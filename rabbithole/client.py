"""Rabbithole client: the primary interface for exploring and sharing article graphs."""

from __future__ import annotations

from pathlib import Path

from rabbithole.config import Settings, get_settings
from rabbithole.engine.analytics import summarize
from rabbithole.engine.core import Edge as CoreEdge
from rabbithole.engine.core import GraphListener, GraphSnapshot, GraphStore
from rabbithole.engine.core import Node as CoreNode
from rabbithole.engine.linker import ExpandResult, IncrementalLinker, LinkResult
from rabbithole.engine.navigation import NavigationState
from rabbithole.engine.replay import ReplayScheduler, replay_all
from rabbithole.engine.resolver import ArticleResolver, WikipediaResolver
from rabbithole.engine.seeder import BFSSeeder
from rabbithole.engine.storage import SQLiteStorage
from rabbithole.models import (
    ArticleStats,
    ConnectionStats,
    GlobalStats,
    GraphData,
    GraphEdge,
    GraphNode,
    GraphStats,
    NodeStats,
    ShareReceipt,
    SharedSnapshot,
    SnapshotInfo,
    SnapshotSummary,
    ValidationResult,
)

# --- Conversion helpers: engine core types <-> pydantic models ---


def _core_node_to_model(cn: CoreNode) -> GraphNode:
    return GraphNode(
        id=cn.id,
        title=cn.title,
        content=cn.content,
        full_document=cn.full_document,
        source_url=cn.source_url,
        outgoing_link_titles=list(cn.outgoing_link_titles),
        expanded=cn.expanded,
        weight=cn.weight,
        color_seed=cn.color_seed,
    )


def _core_edge_to_model(ce: CoreEdge) -> GraphEdge:
    return GraphEdge(id=ce.id, source_id=ce.source_id, target_id=ce.target_id)


def snapshot_to_graph(snapshot: GraphSnapshot) -> GraphData:
    return GraphData(
        nodes=[_core_node_to_model(n) for n in snapshot.nodes],
        edges=[_core_edge_to_model(e) for e in snapshot.edges],
    )


def graph_to_snapshot(graph: GraphData) -> GraphSnapshot:
    return GraphSnapshot.from_dict(graph.model_dump())


# --- Share metadata defaults ---


def default_share_title(store: GraphStore) -> str:
    """Title derived from the first root (or first node) and the graph size."""
    nodes = store.get_all_nodes()
    if not nodes:
        raise ValueError("Cannot share an empty graph")
    roots = store.root_nodes()
    lead = (roots[0] if roots else nodes[0]).title
    if len(nodes) == 1:
        return f"{lead} - Wikipedia Rabbit Hole"
    return f"{lead} and {len(nodes) - 1} more articles"


def default_share_description(store: GraphStore) -> str:
    stats = store.stats()
    return (
        f"A Wikipedia rabbit hole with {stats['num_nodes']} articles "
        f"and {stats['num_edges']} connections."
    )


class Rabbithole:
    """A Wikipedia rabbit hole explorer.

    Owns one exploration session: the live graph, the selection/back history,
    the linker that feeds article fetches into the graph, and the SQLite
    storage used for sharing.

    Constructor patterns:
        - ``Rabbithole()`` — shares kept in memory (SQLite ``:memory:``)
        - ``Rabbithole("shares.db")`` — shares persisted to a local SQLite file
        - ``Rabbithole(resolver=fake)`` — any ArticleResolver instead of Wikipedia

    Example:
        ```python
        with Rabbithole("shares.db") as rh:
            rh.search("Albert Einstein")
            rh.follow("Albert Einstein", "Photoelectric effect")
            receipt = rh.share(creator_name="ada")
        ```
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        *,
        resolver: ArticleResolver | None = None,
        settings: Settings | None = None,
        store: GraphStore | None = None,
        navigation: NavigationState | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._store = store if store is not None else GraphStore()
        self._navigation = navigation if navigation is not None else NavigationState()
        self._resolver = resolver or WikipediaResolver(
            base_url=self.settings.wikipedia_base_url,
            timeout=self.settings.request_timeout,
            max_links=self.settings.max_links,
            user_agent=self.settings.user_agent,
        )
        self._linker = IncrementalLinker(
            self._store,
            self._resolver,
            self._navigation,
            expand_limit=self.settings.expand_limit,
        )
        self._storage = SQLiteStorage(
            str(db_path) if db_path else ":memory:", ttl=self.settings.share_ttl
        )
        self._replay = ReplayScheduler(self.settings.replay_interval)

    @property
    def store(self) -> GraphStore:
        return self._store

    @property
    def navigation(self) -> NavigationState:
        return self._navigation

    @property
    def storage(self) -> SQLiteStorage:
        return self._storage

    def close(self) -> None:
        """Stop any running replay and release the SQLite connection."""
        self._replay.cancel()
        self._storage.close()

    def __enter__(self) -> Rabbithole:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # --- Exploration ---

    def search(self, query: str) -> LinkResult:
        """Add an article (title or URL) as a root of exploration and select it.

        Raises:
            ValueError: If the query is empty
            NotFoundError: If the article does not exist
            SourceUnavailableError: On transient data source failures
        """
        return self._linker.search(query)

    def follow(self, source_id: str, title: str) -> LinkResult:
        """Follow a link out of source_id and switch view to the target."""
        return self._linker.follow(source_id, title)

    def augment(self, source_id: str, title: str) -> LinkResult:
        """Add a linked article in the background, leaving the selection alone."""
        return self._linker.augment(source_id, title)

    def expand(self, node_id: str, limit: int | None = None) -> ExpandResult:
        """Materialize the first ``limit`` outgoing links of a node."""
        return self._linker.expand(node_id, limit)

    def remove(self, node_id: str) -> list[str]:
        """Remove a node and everything orphaned by its removal.

        Returns:
            Ids of every removed node; empty if node_id was not present.
        """
        result = self._store.remove_node_cascade(node_id)
        self._navigation.forget(result.removed_node_ids)
        return result.removed_node_ids

    def select(self, node_id: str) -> GraphNode:
        """Select a node, pushing the previous selection onto the history.

        Raises:
            ValueError: If node_id is not in the graph
        """
        node = self._store.get_node(node_id)
        if node is None:
            raise ValueError(f"Node not found: {node_id!r}")
        self._navigation.select(node_id)
        return _core_node_to_model(node)

    def back(self) -> GraphNode | None:
        """Return to the most recent previously selected node that still exists."""
        node = self._navigation.go_back(self._store)
        return _core_node_to_model(node) if node else None

    @property
    def selected(self) -> GraphNode | None:
        node_id = self._navigation.selected_id
        node = self._store.get_node(node_id) if node_id else None
        return _core_node_to_model(node) if node else None

    def subscribe(self, listener: GraphListener):
        """Register a graph change listener. Returns an unsubscribe callable."""
        return self._store.subscribe(listener)

    # --- Graph queries ---

    def node(self, id: str) -> GraphNode | None:
        cn = self._store.get_node(id)
        return _core_node_to_model(cn) if cn else None

    def nodes(self) -> list[GraphNode]:
        return [_core_node_to_model(n) for n in self._store.get_all_nodes()]

    def edges(self) -> list[GraphEdge]:
        return [_core_edge_to_model(e) for e in self._store.get_all_edges()]

    def roots(self) -> list[GraphNode]:
        """Nodes with no incoming links, in insertion order."""
        return [_core_node_to_model(n) for n in self._store.root_nodes()]

    def graph(self) -> GraphData:
        """The whole current graph."""
        return snapshot_to_graph(self._store.snapshot())

    def stats(self) -> GraphStats:
        return GraphStats.from_engine(self._store.stats())

    def validate(self) -> ValidationResult:
        return ValidationResult(**self._store.validate())

    # --- Sharing ---

    def share(
        self,
        title: str | None = None,
        creator_name: str | None = None,
        description: str | None = None,
    ) -> ShareReceipt:
        """Save the current graph under a new share id.

        Title and description default to ones derived from the graph.

        Raises:
            ValueError: If the graph is empty or metadata is invalid
        """
        title = title or default_share_title(self._store)
        description = description or default_share_description(self._store)
        return self._storage.save(self._store.snapshot(), title, creator_name, description)

    def load(self, share_id: str, *, replay: bool = False) -> SharedSnapshot:
        """Replace the current graph with a shared snapshot.

        The graph is rebuilt in BFS order from its roots. With ``replay=True``
        the steps are applied on a background thread at the configured
        interval (see wait_for_replay()); a later load cancels it.

        Raises:
            SnapshotNotFoundError: If the share is unknown or has expired
        """
        shared = self._storage.load(share_id)
        seeder = BFSSeeder(graph_to_snapshot(shared.graph))
        self._replay.cancel()
        self._store.clear()
        self._navigation.clear()
        if replay:
            self._replay.start(seeder, self._store)
        else:
            replay_all(seeder, self._store)
        return shared

    def wait_for_replay(self, timeout: float | None = None) -> bool:
        """Block until a paced replay finishes. Returns False on timeout."""
        return self._replay.wait(timeout)

    @property
    def replaying(self) -> bool:
        return self._replay.is_running

    def fork(
        self,
        share_id: str,
        title: str | None = None,
        creator_name: str | None = None,
        description: str | None = None,
    ) -> ShareReceipt:
        """Save a verbatim copy of a shared snapshot under a new id.

        Loading the original counts as a view. The current graph is untouched.

        Raises:
            SnapshotNotFoundError: If the share is unknown or has expired
        """
        original = self._storage.load(share_id)
        return self._storage.save(
            graph_to_snapshot(original.graph),
            title or f"{original.title} (fork)",
            creator_name,
            description if description is not None else original.description,
        )

    # --- Analytics ---

    def recent_shares(self, limit: int = 10) -> list[SnapshotInfo]:
        return self._storage.recent(limit)

    def popular_articles(self, limit: int = 20) -> list[ArticleStats]:
        return self._storage.popular_articles(limit)

    def most_connected_articles(self, limit: int = 20) -> list[ArticleStats]:
        return self._storage.most_connected_articles(limit)

    def popular_connections(self, limit: int = 20) -> list[ConnectionStats]:
        return self._storage.popular_connections(limit)

    def global_stats(self) -> GlobalStats:
        return self._storage.global_stats()

    def share_analytics(self, share_id: str) -> tuple[list[NodeStats], SnapshotSummary]:
        """Per-node statistics of a share and their summary.

        Raises:
            SnapshotNotFoundError: If the share is unknown or has expired
        """
        stats = self._storage.snapshot_node_stats(share_id)
        return stats, summarize(stats)
