"""Rabbithole — Wikipedia rabbit hole explorer with deduplicated article graphs and sharing."""

__version__ = "0.1.0"

from rabbithole.client import Rabbithole
from rabbithole.engine.errors import (
    NotFoundError,
    RabbitholeError,
    SnapshotNotFoundError,
    SourceUnavailableError,
)
from rabbithole.models import GraphData, GraphEdge, GraphNode, GraphStats, ShareReceipt, ValidationResult

__all__ = [
    "GraphData",
    "GraphEdge",
    "GraphNode",
    "GraphStats",
    "NotFoundError",
    "Rabbithole",
    "RabbitholeError",
    "ShareReceipt",
    "SnapshotNotFoundError",
    "SourceUnavailableError",
    "ValidationResult",
    "__version__",
]
