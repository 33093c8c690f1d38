from rabbithole.engine.core import Edge, GraphChange, GraphSnapshot, GraphStore, Node, RemovalResult
from rabbithole.engine.errors import (
    DanglingReferenceError,
    NotFoundError,
    RabbitholeError,
    SnapshotNotFoundError,
    SourceUnavailableError,
)
from rabbithole.engine.linker import DuplicateMutationNoop, ExpandResult, IncrementalLinker, LinkResult
from rabbithole.engine.persistence import load_session, load_snapshot, save_session, save_snapshot
from rabbithole.engine.seeder import BFSSeeder, SeedStep

__all__ = [
    "Node",
    "Edge",
    "GraphStore",
    "GraphSnapshot",
    "GraphChange",
    "RemovalResult",
    "IncrementalLinker",
    "LinkResult",
    "DuplicateMutationNoop",
    "ExpandResult",
    "BFSSeeder",
    "SeedStep",
    "RabbitholeError",
    "NotFoundError",
    "SnapshotNotFoundError",
    "SourceUnavailableError",
    "DanglingReferenceError",
    "save_snapshot",
    "load_snapshot",
    "save_session",
    "load_session",
]
