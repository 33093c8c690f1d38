"""SQLite persistence for shared snapshots and cross-snapshot analytics.

The in-memory GraphStore (from core.py) is the real engine; this adapter only
stores finished snapshots under short share ids, tracks their views and
expiry, and keeps the running article/connection analytics updated in the
same transaction as each save.

Expiry:
    A snapshot lives for ``ttl`` after its last load. Expired rows are swept
    lazily, before every load and listing, never by a background job.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

from rabbithole.engine.analytics import (
    GraphAnalyticsAggregator,
    accumulate_article,
    accumulate_connection,
)
from rabbithole.engine.core import GraphSnapshot
from rabbithole.engine.errors import SnapshotNotFoundError
from rabbithole.models import (
    ArticleStats,
    ConnectionStats,
    GlobalStats,
    GraphData,
    NodeStats,
    ShareReceipt,
    ShareRequest,
    SharedSnapshot,
    SnapshotInfo,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1"
SHARE_ID_LENGTH = 12
DEFAULT_TTL = timedelta(days=7)
MAX_LIMIT = 100

_SCHEMA_V1 = """
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS shared_snapshot (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    creator_name TEXT,
    description TEXT,
    graph_data TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT,
    last_accessed_at TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    view_count INTEGER NOT NULL DEFAULT 0,
    node_count INTEGER NOT NULL DEFAULT 0,
    link_count INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS node_analytics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    snapshot_id TEXT NOT NULL,
    article_title TEXT NOT NULL,
    incoming_connections INTEGER NOT NULL DEFAULT 0,
    outgoing_connections INTEGER NOT NULL DEFAULT 0,
    node_size INTEGER NOT NULL DEFAULT 0,
    content_length INTEGER NOT NULL DEFAULT 0,
    is_root_node INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    FOREIGN KEY (snapshot_id) REFERENCES shared_snapshot(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS article_analytics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    article_title TEXT NOT NULL UNIQUE,
    article_url TEXT NOT NULL,
    total_appearances INTEGER NOT NULL DEFAULT 1,
    total_connections INTEGER NOT NULL DEFAULT 0,
    average_connections REAL NOT NULL DEFAULT 0,
    first_seen_at TEXT NOT NULL,
    last_seen_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS connection_analytics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_article TEXT NOT NULL,
    target_article TEXT NOT NULL,
    connection_count INTEGER NOT NULL DEFAULT 1,
    first_seen_at TEXT NOT NULL,
    last_seen_at TEXT NOT NULL,
    UNIQUE (source_article, target_article)
);

CREATE INDEX IF NOT EXISTS idx_snapshot_expires ON shared_snapshot(expires_at);
CREATE INDEX IF NOT EXISTS idx_snapshot_accessed ON shared_snapshot(last_accessed_at);
CREATE INDEX IF NOT EXISTS idx_snapshot_created ON shared_snapshot(created_at);
CREATE INDEX IF NOT EXISTS idx_node_snapshot ON node_analytics(snapshot_id, article_title);
CREATE INDEX IF NOT EXISTS idx_article_appearances ON article_analytics(total_appearances);
CREATE INDEX IF NOT EXISTS idx_article_average ON article_analytics(average_connections);
CREATE INDEX IF NOT EXISTS idx_connection_count ON connection_analytics(connection_count);
"""

_INFO_COLUMNS = (
    "id, title, creator_name, description, created_at, last_accessed_at,"
    " expires_at, view_count, node_count, link_count"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: datetime) -> str:
    """Fixed-width UTC ISO timestamp, so text comparison orders correctly."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _dt(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _check_limit(limit: int) -> int:
    if not isinstance(limit, int) or not 1 <= limit <= MAX_LIMIT:
        raise ValueError(f"limit must be an integer between 1 and {MAX_LIMIT}, got: {limit!r}")
    return limit


def new_share_id() -> str:
    """Short, URL-friendly share id."""
    return uuid.uuid4().hex[:SHARE_ID_LENGTH]


class SQLiteStorage:
    """SQLite store for shared snapshots and their analytics.

    Args:
        path: Database file, or ":memory:"
        ttl: Lifetime of a snapshot after save or load
        clock: Returns the current timezone-aware UTC time
        id_factory: Generates share ids
    """

    def __init__(
        self,
        path: str | Path = ":memory:",
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = new_share_id,
    ) -> None:
        self._path = str(path)
        self.ttl = ttl
        self._clock = clock
        self._id_factory = id_factory
        self._aggregator = GraphAnalyticsAggregator()
        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._init_schema()

    def _init_schema(self) -> None:
        conn = self._conn
        has_meta = conn.execute(
            "SELECT count(*) FROM sqlite_master WHERE type='table' AND name='meta'"
        ).fetchone()[0]

        if has_meta:
            row = conn.execute("SELECT value FROM meta WHERE key = 'schema_version'").fetchone()
            if row is None:
                raise ValueError(
                    f"Database has meta table but no schema_version key. "
                    f"The database at '{self._path}' may be corrupted."
                )
            if row[0] != SCHEMA_VERSION:
                raise ValueError(
                    f"Unsupported schema version '{row[0]}' in database "
                    f"'{self._path}'. Expected version {SCHEMA_VERSION}. "
                    f"This database may have been created by a newer version of rabbithole."
                )
            return

        conn.executescript(_SCHEMA_V1)
        conn.execute(
            "INSERT OR IGNORE INTO meta (key, value) VALUES ('schema_version', ?)",
            (SCHEMA_VERSION,),
        )
        conn.commit()

    def close(self) -> None:
        self._conn.close()

    # --- Shared snapshots ---

    def save(
        self,
        snapshot: GraphSnapshot,
        title: str,
        creator_name: str | None = None,
        description: str | None = None,
    ) -> ShareReceipt:
        """Persist a snapshot under a new share id and record its analytics.

        Edges are deduplicated by id before storing. The snapshot row and all
        analytics updates commit together or not at all.

        Raises:
            pydantic.ValidationError: If title, creator_name or description
                violate their length limits
        """
        request = ShareRequest(title=title, creator_name=creator_name, description=description)
        edges = list({e.id: e for e in snapshot.edges}.values())
        snapshot = GraphSnapshot(nodes=snapshot.nodes, edges=tuple(edges))

        now = self._clock()
        expires_at = now + self.ttl
        share_id = self._id_factory()
        conn = self._conn
        try:
            conn.execute(
                "INSERT INTO shared_snapshot (id, title, creator_name, description, graph_data,"
                " created_at, updated_at, last_accessed_at, expires_at, view_count,"
                " node_count, link_count) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)",
                (
                    share_id,
                    request.title,
                    request.creator_name,
                    request.description,
                    json.dumps(snapshot.to_dict(), ensure_ascii=False),
                    _ts(now),
                    _ts(now),
                    _ts(now),
                    _ts(expires_at),
                    len(snapshot.nodes),
                    len(snapshot.edges),
                ),
            )
            self._record_analytics(share_id, snapshot, now)
            conn.commit()
        except Exception:
            conn.rollback()
            raise

        logger.info(
            "Saved snapshot %s (%d nodes, %d edges)", share_id, len(snapshot.nodes), len(edges)
        )
        return ShareReceipt(id=share_id, expires_at=expires_at)

    def load(self, snapshot_id: str) -> SharedSnapshot:
        """Load a live snapshot, counting the view and extending its expiry.

        Raises:
            SnapshotNotFoundError: If the id is unknown or has expired
        """
        self.sweep_expired()
        row = self._conn.execute(
            f"SELECT {_INFO_COLUMNS}, graph_data FROM shared_snapshot WHERE id = ?",
            (snapshot_id,),
        ).fetchone()
        if row is None:
            raise SnapshotNotFoundError(snapshot_id)

        info = self.record_view(snapshot_id)
        graph = GraphData.model_validate(json.loads(row[10]))
        return SharedSnapshot(**info.model_dump(), graph=graph)

    def record_view(self, snapshot_id: str) -> SnapshotInfo:
        """Increment the view count, touch last access, and extend expiry.

        Raises:
            SnapshotNotFoundError: If the id is unknown
        """
        now = self._clock()
        conn = self._conn
        cursor = conn.execute(
            "UPDATE shared_snapshot SET view_count = view_count + 1,"
            " last_accessed_at = ?, expires_at = ?, updated_at = ? WHERE id = ?",
            (_ts(now), _ts(now + self.ttl), _ts(now), snapshot_id),
        )
        conn.commit()
        if cursor.rowcount == 0:
            raise SnapshotNotFoundError(snapshot_id)
        return self.get_info(snapshot_id)

    def get_info(self, snapshot_id: str) -> SnapshotInfo:
        """Snapshot metadata without counting a view.

        Raises:
            SnapshotNotFoundError: If the id is unknown or has expired
        """
        row = self._conn.execute(
            f"SELECT {_INFO_COLUMNS} FROM shared_snapshot WHERE id = ? AND expires_at > ?",
            (snapshot_id, _ts(self._clock())),
        ).fetchone()
        if row is None:
            raise SnapshotNotFoundError(snapshot_id)
        return self._info_from_row(row)

    def sweep_expired(self) -> int:
        """Delete expired snapshots and their node analytics. Returns rows deleted."""
        conn = self._conn
        cursor = conn.execute(
            "DELETE FROM shared_snapshot WHERE expires_at < ?", (_ts(self._clock()),)
        )
        conn.commit()
        if cursor.rowcount:
            logger.info("Swept %d expired snapshots", cursor.rowcount)
        return cursor.rowcount

    def recent(self, limit: int = 10) -> list[SnapshotInfo]:
        """Most recently created live snapshots."""
        _check_limit(limit)
        self.sweep_expired()
        rows = self._conn.execute(
            f"SELECT {_INFO_COLUMNS} FROM shared_snapshot ORDER BY created_at DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._info_from_row(r) for r in rows]

    @staticmethod
    def _info_from_row(row: tuple) -> SnapshotInfo:
        return SnapshotInfo(
            id=row[0],
            title=row[1],
            creator_name=row[2],
            description=row[3],
            created_at=_dt(row[4]),
            last_accessed_at=_dt(row[5]),
            expires_at=_dt(row[6]),
            view_count=row[7],
            node_count=row[8],
            link_count=row[9],
        )

    # --- Analytics ---

    def _record_analytics(self, snapshot_id: str, snapshot: GraphSnapshot, now: datetime) -> None:
        """Insert node analytics and fold the snapshot into the running aggregates (no commit)."""
        conn = self._conn
        stats = self._aggregator.node_stats(snapshot)
        for node, node_stats in zip(snapshot.nodes, stats):
            conn.execute(
                "INSERT INTO node_analytics (snapshot_id, article_title, incoming_connections,"
                " outgoing_connections, node_size, content_length, is_root_node, created_at)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    snapshot_id,
                    node_stats.article_title,
                    node_stats.incoming_connections,
                    node_stats.outgoing_connections,
                    node_stats.node_weight,
                    node_stats.content_length,
                    int(node_stats.is_root_node),
                    _ts(now),
                ),
            )
            article = accumulate_article(
                self._article(node_stats.article_title),
                node_stats.article_title,
                node.source_url,
                node_stats.total_connections,
                now,
            )
            conn.execute(
                "INSERT INTO article_analytics (article_title, article_url, total_appearances,"
                " total_connections, average_connections, first_seen_at, last_seen_at)"
                " VALUES (?, ?, ?, ?, ?, ?, ?)"
                " ON CONFLICT(article_title) DO UPDATE SET"
                " total_appearances = excluded.total_appearances,"
                " total_connections = excluded.total_connections,"
                " average_connections = excluded.average_connections,"
                " last_seen_at = excluded.last_seen_at",
                (
                    article.article_title,
                    article.article_url,
                    article.total_appearances,
                    article.total_connections,
                    article.average_connections,
                    _ts(article.first_seen_at),
                    _ts(article.last_seen_at),
                ),
            )

        for edge in snapshot.edges:
            connection = accumulate_connection(
                self._connection(edge.source_id, edge.target_id),
                edge.source_id,
                edge.target_id,
                now,
            )
            conn.execute(
                "INSERT INTO connection_analytics (source_article, target_article,"
                " connection_count, first_seen_at, last_seen_at) VALUES (?, ?, ?, ?, ?)"
                " ON CONFLICT(source_article, target_article) DO UPDATE SET"
                " connection_count = excluded.connection_count,"
                " last_seen_at = excluded.last_seen_at",
                (
                    connection.source_article,
                    connection.target_article,
                    connection.connection_count,
                    _ts(connection.first_seen_at),
                    _ts(connection.last_seen_at),
                ),
            )

    _ARTICLE_COLUMNS = (
        "article_title, article_url, total_appearances, total_connections,"
        " average_connections, first_seen_at, last_seen_at"
    )

    @staticmethod
    def _article_from_row(row: tuple) -> ArticleStats:
        return ArticleStats(
            article_title=row[0],
            article_url=row[1],
            total_appearances=row[2],
            total_connections=row[3],
            average_connections=row[4],
            first_seen_at=_dt(row[5]),
            last_seen_at=_dt(row[6]),
        )

    @staticmethod
    def _connection_from_row(row: tuple) -> ConnectionStats:
        return ConnectionStats(
            source_article=row[0],
            target_article=row[1],
            connection_count=row[2],
            first_seen_at=_dt(row[3]),
            last_seen_at=_dt(row[4]),
        )

    def _article(self, title: str) -> ArticleStats | None:
        row = self._conn.execute(
            f"SELECT {self._ARTICLE_COLUMNS} FROM article_analytics WHERE article_title = ?",
            (title,),
        ).fetchone()
        return self._article_from_row(row) if row else None

    def _connection(self, source: str, target: str) -> ConnectionStats | None:
        row = self._conn.execute(
            "SELECT source_article, target_article, connection_count, first_seen_at,"
            " last_seen_at FROM connection_analytics"
            " WHERE source_article = ? AND target_article = ?",
            (source, target),
        ).fetchone()
        return self._connection_from_row(row) if row else None

    def article_stats(self, title: str) -> ArticleStats | None:
        """Running statistics for one article, or None if never shared."""
        return self._article(title)

    def connection_stats(self, source: str, target: str) -> ConnectionStats | None:
        """Running occurrence count for one ordered pair, or None if never shared."""
        return self._connection(source, target)

    def popular_articles(self, limit: int = 20) -> list[ArticleStats]:
        """Articles appearing in the most snapshots, then with most connections."""
        _check_limit(limit)
        rows = self._conn.execute(
            f"SELECT {self._ARTICLE_COLUMNS} FROM article_analytics"
            " ORDER BY total_appearances DESC, total_connections DESC, id LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._article_from_row(r) for r in rows]

    def most_connected_articles(self, limit: int = 20) -> list[ArticleStats]:
        """Articles with the highest average connections, then total connections."""
        _check_limit(limit)
        rows = self._conn.execute(
            f"SELECT {self._ARTICLE_COLUMNS} FROM article_analytics"
            " ORDER BY average_connections DESC, total_connections DESC, id LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._article_from_row(r) for r in rows]

    def popular_connections(self, limit: int = 20) -> list[ConnectionStats]:
        """Ordered article pairs seen in the most snapshots."""
        _check_limit(limit)
        rows = self._conn.execute(
            "SELECT source_article, target_article, connection_count, first_seen_at,"
            " last_seen_at FROM connection_analytics"
            " ORDER BY connection_count DESC, id LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._connection_from_row(r) for r in rows]

    def snapshot_node_stats(self, snapshot_id: str) -> list[NodeStats]:
        """Per-node statistics recorded when a snapshot was saved.

        Raises:
            SnapshotNotFoundError: If the id is unknown or has expired
        """
        self.get_info(snapshot_id)
        rows = self._conn.execute(
            "SELECT article_title, incoming_connections, outgoing_connections,"
            " is_root_node, content_length, node_size FROM node_analytics"
            " WHERE snapshot_id = ? ORDER BY id",
            (snapshot_id,),
        ).fetchall()
        return [
            NodeStats(
                article_title=r[0],
                incoming_connections=r[1],
                outgoing_connections=r[2],
                is_root_node=bool(r[3]),
                content_length=r[4],
                node_weight=r[5],
            )
            for r in rows
        ]

    def global_stats(self) -> GlobalStats:
        """Totals and averages over live snapshots; article/connection totals over all time."""
        conn = self._conn
        now = _ts(self._clock())
        row = conn.execute(
            "SELECT count(*), coalesce(sum(view_count), 0),"
            " avg(node_count), avg(link_count), avg(view_count),"
            " coalesce(max(node_count), 0), coalesce(max(link_count), 0),"
            " coalesce(max(view_count), 0)"
            " FROM shared_snapshot WHERE expires_at > ?",
            (now,),
        ).fetchone()
        total_articles = conn.execute("SELECT count(*) FROM article_analytics").fetchone()[0]
        total_connections = conn.execute("SELECT count(*) FROM connection_analytics").fetchone()[0]
        return GlobalStats(
            total_snapshots=row[0],
            total_views=row[1],
            average_nodes=round(row[2] or 0),
            average_links=round(row[3] or 0),
            average_views=round(row[4] or 0),
            max_nodes=row[5],
            max_links=row[6],
            max_views=row[7],
            total_articles=total_articles,
            total_connections=total_connections,
        )
