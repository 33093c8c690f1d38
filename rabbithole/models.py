"""Pydantic models for the Rabbithole public API.

Graph models are thin wrappers over the core engine types (engine.core),
providing validation and serialization for the client-facing API. The
resolver, storage and analytics models are the value types exchanged with
external collaborators.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArticleLink(BaseModel):
    """An outgoing hyperlink as reported by the data source."""

    title: str
    url: str


class ResolvedArticle(BaseModel):
    """Output of an article resolver.

    canonical_title is the title the data source answered with, after
    redirects and normalization. It is the only valid deduplication key.
    """

    canonical_title: str = Field(min_length=1)
    content: str = ""
    full_document: str = ""
    outgoing_links: list[ArticleLink] = Field(default_factory=list)
    source_url: str = ""

    @property
    def link_titles(self) -> list[str]:
        return [link.title for link in self.outgoing_links]


class GraphNode(BaseModel):
    """An article in the exploration graph."""

    id: str
    title: str
    content: str = ""
    full_document: str = ""
    source_url: str = ""
    outgoing_link_titles: list[str] = Field(default_factory=list)
    expanded: bool = False
    weight: int = 6
    color_seed: int = 0

    @property
    def color(self) -> str:
        return f"hsl({self.color_seed}, 70%, 60%)"

    def __repr__(self) -> str:
        flag = ", expanded" if self.expanded else ""
        return f"GraphNode({self.id!r}, weight={self.weight}{flag})"


class GraphEdge(BaseModel):
    """A directed hyperlink between two articles, keyed "{source}->{target}"."""

    id: str
    source_id: str
    target_id: str

    def __repr__(self) -> str:
        return f"GraphEdge({self.source_id!r} -> {self.target_id!r})"


class GraphData(BaseModel):
    """A whole graph: the snapshot shape persisted on share."""

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return len(self.edges)


class ShareRequest(BaseModel):
    """Metadata supplied when sharing a graph."""

    title: str = Field(min_length=1, max_length=200)
    creator_name: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=500)

    @field_validator("creator_name", "description")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


class ShareReceipt(BaseModel):
    """Identity and expiry of a newly saved snapshot."""

    id: str
    expires_at: datetime


class SnapshotInfo(BaseModel):
    """Listing metadata of a shared snapshot, without its graph."""

    id: str
    title: str
    creator_name: str | None = None
    description: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    last_accessed_at: datetime = Field(default_factory=_utcnow)
    expires_at: datetime
    view_count: int = 0
    node_count: int = 0
    link_count: int = 0


class SharedSnapshot(SnapshotInfo):
    """A shared snapshot together with its graph."""

    graph: GraphData


class NodeStats(BaseModel):
    """Per-node statistics computed from a finalized snapshot."""

    article_title: str
    incoming_connections: int = 0
    outgoing_connections: int = 0
    is_root_node: bool = False
    content_length: int = 0
    node_weight: int = 0

    @property
    def total_connections(self) -> int:
        return self.incoming_connections + self.outgoing_connections


class ArticleStats(BaseModel):
    """Running cross-snapshot statistics for one article title."""

    article_title: str
    article_url: str = ""
    total_appearances: int = 0
    total_connections: int = 0
    average_connections: float = 0.0
    first_seen_at: datetime = Field(default_factory=_utcnow)
    last_seen_at: datetime = Field(default_factory=_utcnow)


class ConnectionStats(BaseModel):
    """Running cross-snapshot occurrence count for one ordered article pair."""

    source_article: str
    target_article: str
    connection_count: int = 0
    first_seen_at: datetime = Field(default_factory=_utcnow)
    last_seen_at: datetime = Field(default_factory=_utcnow)


class SnapshotSummary(BaseModel):
    """Aggregate view of a single snapshot's node statistics."""

    total_nodes: int = 0
    total_incoming: int = 0
    total_outgoing: int = 0
    average_incoming: float = 0.0
    average_outgoing: float = 0.0
    root_nodes: list[str] = Field(default_factory=list)
    max_connections: int = 0
    most_connected: str | None = None
    average_weight: float = 0.0
    total_content_length: int = 0


class GlobalStats(BaseModel):
    """Totals and averages across every live shared snapshot."""

    total_snapshots: int = 0
    total_articles: int = 0
    total_connections: int = 0
    total_views: int = 0
    average_nodes: int = 0
    average_links: int = 0
    average_views: int = 0
    max_nodes: int = 0
    max_links: int = 0
    max_views: int = 0


class ValidationResult(BaseModel):
    """Result of a graph consistency check."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    dangling_edges: list[str] = Field(default_factory=list)


class GraphStats(BaseModel):
    """Summary counts for an exploration graph."""

    node_count: int
    edge_count: int
    root_count: int
    expanded_count: int

    @classmethod
    def from_engine(cls, stats: dict[str, Any]) -> GraphStats:
        return cls(
            node_count=stats["num_nodes"],
            edge_count=stats["num_edges"],
            root_count=stats["num_roots"],
            expanded_count=stats["num_expanded"],
        )
