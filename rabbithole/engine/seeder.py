"""Breadth-first replay ordering for a finished graph.

A loaded share is not dropped into the renderer all at once: it is rebuilt
node by node in BFS order from its roots. BFSSeeder computes that order from
an immutable GraphSnapshot, so iterating it twice gives the same steps and
nothing done to a live store meanwhile can change them.
"""

from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Iterator
from dataclasses import dataclass

from rabbithole.engine.core import Edge, GraphSnapshot, GraphStore, Node


@dataclass(frozen=True)
class SeedStep:
    """One replay step: a node plus the edges whose endpoints are now both emitted."""

    index: int
    node: Node
    edges: tuple[Edge, ...] = ()


class BFSSeeder:
    """Deterministic, restartable BFS ordering over a snapshot.

    Order rules:
    - Start from the snapshot's roots (zero incoming edges) in insertion order,
      or from the first-inserted node when there are none.
    - From each node, enqueue targets of outgoing edges, then sources of
      incoming edges.
    - When the queue runs dry with nodes left over (disconnected components),
      continue from the earliest unvisited node.
    - An edge is attached to the step at which its second endpoint is emitted.

    Every node is emitted exactly once and every edge is attached exactly once.

    Example:
        >>> seeder = BFSSeeder.from_store(store)
        >>> for step in seeder:
        ...     print(step.node.id, [e.id for e in step.edges])
    """

    def __init__(self, snapshot: GraphSnapshot):
        self.snapshot = snapshot
        self._outgoing: dict[str, list[Edge]] = defaultdict(list)
        self._incoming: dict[str, list[Edge]] = defaultdict(list)
        for edge in snapshot.edges:
            self._outgoing[edge.source_id].append(edge)
            self._incoming[edge.target_id].append(edge)

    @classmethod
    def from_store(cls, store: GraphStore) -> BFSSeeder:
        return cls(store.snapshot())

    def __len__(self) -> int:
        return len(self.snapshot.nodes)

    def roots(self) -> list[Node]:
        """Seed nodes: snapshot roots, or the first node of a root-less graph."""
        roots = [n for n in self.snapshot.nodes if not self._incoming.get(n.id)]
        if not roots and self.snapshot.nodes:
            return [self.snapshot.nodes[0]]
        return roots

    def order(self) -> list[str]:
        """Node ids in emission order."""
        return [step.node.id for step in self]

    def __iter__(self) -> Iterator[SeedStep]:
        nodes = {n.id: n for n in self.snapshot.nodes}
        emitted: set[str] = set()
        attached: set[str] = set()
        visited: set[str] = set()
        queue: deque[str] = deque()
        leftovers = iter(nodes)
        index = 0

        for root in self.roots():
            if root.id in visited:
                continue
            visited.add(root.id)
            queue.append(root.id)

        while len(emitted) < len(nodes):
            if not queue:
                # Disconnected component: seed from the next unvisited node
                for candidate in leftovers:
                    if candidate not in visited:
                        visited.add(candidate)
                        queue.append(candidate)
                        break
                else:
                    return

            current = queue.popleft()
            emitted.add(current)

            satisfied: list[Edge] = []
            for edge in self._outgoing.get(current, []) + self._incoming.get(current, []):
                if edge.id in attached:
                    continue
                other = edge.target_id if edge.source_id == current else edge.source_id
                if other in emitted:
                    attached.add(edge.id)
                    satisfied.append(edge)

            for edge in self._outgoing.get(current, []):
                if edge.target_id in nodes and edge.target_id not in visited:
                    visited.add(edge.target_id)
                    queue.append(edge.target_id)
            for edge in self._incoming.get(current, []):
                if edge.source_id in nodes and edge.source_id not in visited:
                    visited.add(edge.source_id)
                    queue.append(edge.source_id)

            yield SeedStep(index, nodes[current], tuple(satisfied))
            index += 1
