"""Error types raised by the graph engine and its collaborators.

Fetch-layer failures (NotFoundError, SourceUnavailableError) leave the graph
untouched and propagate to the caller. DanglingReferenceError signals a
caller ordering bug: a node must be upserted before an edge can point at it.
"""

from __future__ import annotations


class RabbitholeError(Exception):
    """Base class for all Rabbithole errors."""


class NotFoundError(RabbitholeError):
    """The requested article does not exist at the data source."""

    def __init__(self, title: str, message: str | None = None) -> None:
        self.title = title
        super().__init__(message or f"Article not found: {title!r}")


class SnapshotNotFoundError(NotFoundError):
    """A shared snapshot is absent or has expired."""

    def __init__(self, snapshot_id: str) -> None:
        self.snapshot_id = snapshot_id
        super().__init__(
            snapshot_id, f"Shared snapshot not found or expired: {snapshot_id!r}"
        )


class SourceUnavailableError(RabbitholeError):
    """Transient failure talking to the data source (network, 429, 5xx)."""


class DanglingReferenceError(RabbitholeError):
    """Edge insertion attempted against a node id that is not in the store."""

    def __init__(self, edge_id: str, missing: list[str]) -> None:
        self.edge_id = edge_id
        self.missing = missing
        super().__init__(f"Edge '{edge_id}' references non-existent nodes: {missing}")
