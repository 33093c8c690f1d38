"""Share-time graph statistics and their cross-snapshot running aggregates.

Per-node figures are counted from the committed edge set, never from
outgoing_link_titles: most raw links never became edges. Cross-snapshot
figures are online updates of the previous record, so storage never has to
rescan old snapshots.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from rabbithole.engine.core import GraphSnapshot
from rabbithole.models import ArticleStats, ConnectionStats, NodeStats, SnapshotSummary


class GraphAnalyticsAggregator:
    """Computes per-node statistics for a finalized snapshot."""

    def node_stats(self, snapshot: GraphSnapshot) -> list[NodeStats]:
        """One NodeStats per node, in snapshot order.

        Edges pointing at ids outside the snapshot are ignored.
        """
        incoming = {n.id: 0 for n in snapshot.nodes}
        outgoing = {n.id: 0 for n in snapshot.nodes}
        for edge in snapshot.edges:
            if edge.source_id in outgoing and edge.target_id in incoming:
                outgoing[edge.source_id] += 1
                incoming[edge.target_id] += 1

        return [
            NodeStats(
                article_title=node.title,
                incoming_connections=incoming[node.id],
                outgoing_connections=outgoing[node.id],
                is_root_node=incoming[node.id] == 0,
                content_length=len(node.content),
                node_weight=node.weight,
            )
            for node in snapshot.nodes
        ]


def accumulate_article(
    previous: ArticleStats | None,
    title: str,
    url: str,
    connections: int,
    now: datetime,
) -> ArticleStats:
    """Fold one more appearance of an article into its running statistics.

    Args:
        previous: Existing record, or None for the first appearance
        title: Canonical article title
        url: Article URL, kept from the first appearance
        connections: Incoming plus outgoing edges in the new snapshot
        now: Timestamp of the new appearance

    Returns:
        Updated record with average_connections recomputed from the running totals
    """
    if previous is None:
        return ArticleStats(
            article_title=title,
            article_url=url,
            total_appearances=1,
            total_connections=connections,
            average_connections=float(connections),
            first_seen_at=now,
            last_seen_at=now,
        )
    appearances = previous.total_appearances + 1
    total = previous.total_connections + connections
    return previous.model_copy(
        update={
            "total_appearances": appearances,
            "total_connections": total,
            "average_connections": total / appearances,
            "last_seen_at": now,
        }
    )


def accumulate_connection(
    previous: ConnectionStats | None,
    source: str,
    target: str,
    now: datetime,
) -> ConnectionStats:
    """Count one more snapshot containing the ordered pair source -> target."""
    if previous is None:
        return ConnectionStats(
            source_article=source,
            target_article=target,
            connection_count=1,
            first_seen_at=now,
            last_seen_at=now,
        )
    return previous.model_copy(
        update={"connection_count": previous.connection_count + 1, "last_seen_at": now}
    )


def summarize(node_stats: Sequence[NodeStats]) -> SnapshotSummary:
    """Aggregate a snapshot's node statistics."""
    if not node_stats:
        return SnapshotSummary()
    count = len(node_stats)
    total_in = sum(s.incoming_connections for s in node_stats)
    total_out = sum(s.outgoing_connections for s in node_stats)
    # First node wins ties
    most = node_stats[0]
    for stats in node_stats[1:]:
        if stats.total_connections > most.total_connections:
            most = stats
    return SnapshotSummary(
        total_nodes=count,
        total_incoming=total_in,
        total_outgoing=total_out,
        average_incoming=total_in / count,
        average_outgoing=total_out / count,
        root_nodes=[s.article_title for s in node_stats if s.is_root_node],
        max_connections=most.total_connections,
        most_connected=most.article_title,
        average_weight=sum(s.node_weight for s in node_stats) / count,
        total_content_length=sum(s.content_length for s in node_stats),
    )
