"""Incremental linking: turn article fetches into deduplicated graph mutations.

Every user gesture that adds an article (search, follow a link, augment in the
background, expand a node) goes through IncrementalLinker. The flow is always:

1. Resolve the requested title through the ArticleResolver. This is the only
   slow step and it runs WITHOUT holding the store lock, so several fetches
   can be in flight at once.
2. Commit under GraphStore.batch(), re-checking node and edge existence
   against the live graph at that moment. A result computed from state seen
   before the fetch is never trusted, so concurrent requests for the same
   canonical title converge on one node and one edge whatever order they
   finish in.

Fetch failures propagate with the graph untouched: nodes are only upserted
after a successful resolve.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from rabbithole.engine.core import GraphStore, Node
from rabbithole.engine.errors import NotFoundError, SourceUnavailableError
from rabbithole.engine.navigation import NavigationState
from rabbithole.engine.resolver import ArticleResolver
from rabbithole.engine.titles import normalize_title
from rabbithole.models import ResolvedArticle

logger = logging.getLogger(__name__)

CREATED = "created"
LINKED = "linked"
REFRESHED = "refreshed"
NOOP = "noop"
DISCARDED = "discarded"


@dataclass
class LinkResult:
    """Outcome of a single linking operation.

    Attributes:
        outcome: "created", "linked", "refreshed", "noop" or "discarded"
        node_id: Canonical id of the article the operation targeted
        edge_ids_added: Edges committed by this operation, discovery included
        node_created: Whether a new node was inserted
    """

    outcome: str
    node_id: str | None = None
    edge_ids_added: list[str] = field(default_factory=list)
    node_created: bool = False

    @property
    def changed(self) -> bool:
        return self.node_created or bool(self.edge_ids_added) or self.outcome == REFRESHED


@dataclass
class DuplicateMutationNoop(LinkResult):
    """Node and edge were already present; the graph was not touched.

    Not an error: callers may still move the selection to node_id.
    """

    outcome: str = NOOP


@dataclass
class ExpandResult:
    """Outcome of expanding a node's outgoing links."""

    node_id: str
    already_expanded: bool = False
    results: list[LinkResult] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def edge_ids_added(self) -> list[str]:
        return [eid for result in self.results for eid in result.edge_ids_added]

    @property
    def nodes_created(self) -> list[str]:
        return [r.node_id for r in self.results if r.node_created and r.node_id]


def _to_node(article: ResolvedArticle, expanded: bool = False) -> Node:
    return Node(
        id=article.canonical_title,
        title=article.canonical_title,
        content=article.content,
        full_document=article.full_document,
        source_url=article.source_url,
        outgoing_link_titles=tuple(article.link_titles),
        expanded=expanded,
    )


class IncrementalLinker:
    """Deduplicating state machine between an ArticleResolver and a GraphStore.

    Args:
        store: Graph receiving the mutations
        resolver: Source of canonical article data
        navigation: Selection state moved by search and follow; a private
            one is created when omitted
        expand_limit: Default number of links materialized by expand()
    """

    def __init__(
        self,
        store: GraphStore,
        resolver: ArticleResolver,
        navigation: NavigationState | None = None,
        expand_limit: int = 10,
    ):
        self.store = store
        self.resolver = resolver
        self.navigation = navigation if navigation is not None else NavigationState()
        self.expand_limit = expand_limit

    # ========== Public operations ==========

    def search(self, query: str) -> LinkResult:
        """Add an article as a root of exploration and select it.

        A re-searched existing node is refreshed with the new fetch and marked
        expanded. A new node gets auto-discovered edges to and from the rest
        of the graph.

        Raises:
            ValueError: If the query is empty
            NotFoundError: If the article does not exist
            SourceUnavailableError: On transient data source failures
        """
        article = self.resolver.resolve(query)
        target = article.canonical_title

        with self.store.batch():
            if self.store.has_node(target):
                self.store.upsert_node(_to_node(article, expanded=True))
                result = LinkResult(REFRESHED, node_id=target)
            else:
                node = self.store.upsert_node(_to_node(article))
                added = self._discover_links(node)
                result = LinkResult(CREATED, node_id=target, edge_ids_added=added, node_created=True)

        self.navigation.select(target)
        logger.info("Search %r -> %s %r", query, result.outcome, target)
        return result

    def follow(self, source_id: str, title: str) -> LinkResult:
        """Link source_id to title and switch view to the target.

        The source id is pushed onto the navigation history. A discarded
        result leaves the selection alone.
        """
        result = self.link(source_id, title)
        if result.outcome != DISCARDED and result.node_id is not None:
            self.navigation.visit(result.node_id, from_id=source_id)
        return result

    def augment(self, source_id: str, title: str) -> LinkResult:
        """Link source_id to title without touching selection or history."""
        return self.link(source_id, title)

    def expand(self, node_id: str, limit: int | None = None) -> ExpandResult:
        """Materialize the first ``limit`` outgoing links of a node.

        The node is marked expanded before any fetch starts, so a second
        expand issued meanwhile is a no-op. Per-link fetch failures are
        logged and collected in the result rather than raised.

        Raises:
            ValueError: If node_id is not in the graph
        """
        limit = self.expand_limit if limit is None else limit
        with self.store.batch():
            node = self.store.get_node(node_id)
            if node is None:
                raise ValueError(f"Node not found: {node_id!r}")
            if node.expanded:
                return ExpandResult(node_id, already_expanded=True)
            self.store.mark_expanded(node_id)
            titles = list(node.outgoing_link_titles[:limit])

        result = ExpandResult(node_id)
        for title in titles:
            if not self.store.has_node(node_id):
                logger.info("Expansion of %r stopped: node was removed", node_id)
                break
            try:
                article = self.resolver.resolve(title)
            except (NotFoundError, SourceUnavailableError) as e:
                logger.warning("Expanding %r: skipping link %r: %s", node_id, title, e)
                result.failures[title] = str(e)
                continue
            # commit() re-checks the source, so a removal during the fetch is discarded
            link_result = self.commit(node_id, article)
            result.results.append(link_result)
            if link_result.outcome == DISCARDED:
                logger.info("Expansion of %r stopped: node was removed", node_id)
                break
        return result

    # ========== Linking state machine ==========

    def link(self, source_id: str, title: str) -> LinkResult:
        """Resolve title and commit the edge source_id -> canonical title.

        Raises:
            ValueError: If source_id is not in the graph when the call starts
            NotFoundError: If the article does not exist
            SourceUnavailableError: On transient data source failures
        """
        if not self.store.has_node(source_id):
            raise ValueError(f"Source node not found: {source_id!r}")
        article = self.resolver.resolve(title)
        return self.commit(source_id, article)

    def commit(self, source_id: str, article: ResolvedArticle) -> LinkResult:
        """Apply a resolved article reached from source_id to the live graph.

        Existence checks run against the store as it is now, under its lock.

        Returns:
            DuplicateMutationNoop if node and edge already exist, otherwise a
            LinkResult with outcome "linked", "created" or "discarded"
        """
        target = article.canonical_title
        with self.store.batch():
            if not self.store.has_node(source_id):
                # Source deleted while the fetch was in flight
                logger.info("Discarding %r: source %r no longer exists", target, source_id)
                return LinkResult(DISCARDED, node_id=target)

            if self.store.has_node(target):
                edge = self.store.add_edge_if_absent(source_id, target)
                if edge is None:
                    return DuplicateMutationNoop(node_id=target)
                logger.debug("Linked existing node %r from %r", target, source_id)
                return LinkResult(LINKED, node_id=target, edge_ids_added=[edge.id])

            node = self.store.upsert_node(_to_node(article))
            edge = self.store.add_edge_if_absent(source_id, target)
            added = [edge.id] if edge is not None else []
            added.extend(self._discover_links(node))
            logger.debug("Created node %r from %r with %d edges", target, source_id, len(added))
            return LinkResult(CREATED, node_id=target, edge_ids_added=added, node_created=True)

    def _discover_links(self, node: Node) -> list[str]:
        """Add edges implied by outgoing link lists between node and every other node.

        Titles are compared through normalize_title() on both sides. Caller
        holds the store batch.
        """
        own_links = {normalize_title(t) for t in node.outgoing_link_titles}
        own_key = normalize_title(node.title)
        added: list[str] = []
        for other in self.store.get_all_nodes():
            if other.id == node.id:
                continue
            if normalize_title(other.title) in own_links:
                edge = self.store.add_edge_if_absent(node.id, other.id)
                if edge is not None:
                    added.append(edge.id)
            if own_key in {normalize_title(t) for t in other.outgoing_link_titles}:
                edge = self.store.add_edge_if_absent(other.id, node.id)
                if edge is not None:
                    added.append(edge.id)
        return added
