"""Benchmark fixtures for article graph performance tests."""

import random

import pytest

from rabbithole.engine import GraphStore, Node


def generate_random_graph(
    num_nodes: int,
    extra_edges: int,
    num_roots: int = 1,
    seed: int = 42,
) -> GraphStore:
    """Generate a random exploration-shaped graph for benchmarking.

    Every non-root node is first linked from an earlier node, the way an
    exploration grows, so the whole graph is reachable from the roots. Extra
    random edges then add back-links and cross-links.

    Args:
        num_nodes: Number of article nodes to create
        extra_edges: Number of additional random edges to attempt
        num_roots: Number of search roots among the first nodes
        seed: Random seed for reproducibility

    Returns:
        GraphStore with random data
    """
    rng = random.Random(seed)
    store = GraphStore()
    node_ids = [f"Article {i}" for i in range(num_nodes)]

    with store.batch():
        for i, node_id in enumerate(node_ids):
            store.upsert_node(Node(node_id, content="x" * rng.randint(0, 5000)))
            if i >= num_roots:
                store.add_edge_if_absent(node_ids[rng.randrange(i)], node_id)

        for _ in range(extra_edges):
            source, target = rng.sample(range(num_nodes), 2)
            # Keep the roots free of incoming links
            if target < num_roots:
                continue
            store.add_edge_if_absent(node_ids[source], node_ids[target])

    return store


@pytest.fixture
def graph_1k() -> GraphStore:
    """1K nodes, ~3K edges - small benchmark graph."""
    return generate_random_graph(num_nodes=1000, extra_edges=2000, num_roots=3, seed=42)


@pytest.fixture
def graph_10k() -> GraphStore:
    """10K nodes, ~30K edges - medium benchmark graph."""
    return generate_random_graph(num_nodes=10000, extra_edges=20000, num_roots=5, seed=42)


@pytest.fixture
def chain_graph_5k() -> GraphStore:
    """A single 5K-long chain - worst case for cascade depth."""
    store = GraphStore()
    with store.batch():
        for i in range(5000):
            store.upsert_node(Node(f"Article {i}"))
            if i:
                store.add_edge_if_absent(f"Article {i - 1}", f"Article {i}")
    return store
