"""Performance benchmarks for basic article graph operations."""

import time

import pytest

from rabbithole.engine import BFSSeeder, GraphStore, Node
from rabbithole.engine.replay import replay_all

pytestmark = pytest.mark.benchmark


class TestNodeOperationsPerformance:
    """Benchmarks for node operations."""

    def test_upsert_node_performance(self, graph_10k):
        """Inserting new nodes should be fast."""
        start = time.perf_counter()
        for i in range(1000):
            graph_10k.upsert_node(Node(f"New article {i}", content="text"))
        elapsed = time.perf_counter() - start

        # 1000 upserts should take < 500ms
        assert elapsed < 0.5, f"Upserting 1000 nodes took {elapsed:.3f}s"

    def test_get_node_performance(self, graph_10k):
        """Getting a node by ID should be O(1)."""
        start = time.perf_counter()
        for i in range(10000):
            _ = graph_10k.get_node(f"Article {i}")
        elapsed = time.perf_counter() - start

        # 10K lookups should take < 200ms
        assert elapsed < 0.2, f"10K node lookups took {elapsed:.3f}s"


class TestEdgeOperationsPerformance:
    """Benchmarks for edge operations."""

    def test_add_edge_if_absent_duplicate_performance(self, graph_10k):
        """Re-adding existing edges is an O(1) no-op."""
        edges = graph_10k.get_all_edges()[:10000]
        start = time.perf_counter()
        for edge in edges:
            graph_10k.add_edge_if_absent(edge.source_id, edge.target_id)
        elapsed = time.perf_counter() - start

        # 10K duplicate inserts should take < 500ms
        assert elapsed < 0.5, f"10K duplicate edge inserts took {elapsed:.3f}s"

    def test_index_lookup_performance(self, graph_10k):
        """Incoming/outgoing lookups go through the indexes, not full scans."""
        start = time.perf_counter()
        for i in range(10000):
            graph_10k.find_incoming_edges(f"Article {i}")
            graph_10k.find_outgoing_edges(f"Article {i}")
        elapsed = time.perf_counter() - start

        # 20K index lookups should take < 500ms
        assert elapsed < 0.5, f"20K index lookups took {elapsed:.3f}s"

    def test_root_nodes_performance(self, graph_10k):
        start = time.perf_counter()
        for _ in range(20):
            roots = graph_10k.root_nodes()
        elapsed = time.perf_counter() - start

        assert len(roots) == 5
        assert elapsed < 0.5, f"20 root scans took {elapsed:.3f}s"


class TestCascadePerformance:
    """Benchmarks for cascade removal."""

    def test_cascade_on_random_graph(self, graph_10k):
        start = time.perf_counter()
        graph_10k.remove_node_cascade("Article 7")
        elapsed = time.perf_counter() - start

        assert graph_10k.validate()["valid"]
        assert elapsed < 2.0, f"Cascade removal took {elapsed:.3f}s"

    def test_cascade_on_long_chain(self, chain_graph_5k):
        start = time.perf_counter()
        result = chain_graph_5k.remove_node_cascade("Article 1")
        elapsed = time.perf_counter() - start

        assert len(result.removed_nodes) == 4999
        assert [n.id for n in chain_graph_5k.get_all_nodes()] == ["Article 0"]
        assert elapsed < 2.0, f"Chain cascade took {elapsed:.3f}s"


class TestSeederPerformance:
    """Benchmarks for BFS ordering and replay."""

    def test_bfs_order_performance(self, graph_10k):
        seeder = BFSSeeder.from_store(graph_10k)
        start = time.perf_counter()
        order = seeder.order()
        elapsed = time.perf_counter() - start

        assert len(order) == len(graph_10k)
        assert elapsed < 3.0, f"BFS ordering of 10K nodes took {elapsed:.3f}s"

    def test_replay_all_performance(self, graph_1k):
        target = GraphStore()
        start = time.perf_counter()
        replay_all(BFSSeeder.from_store(graph_1k), target)
        elapsed = time.perf_counter() - start

        assert len(target) == len(graph_1k)
        assert elapsed < 1.0, f"Replaying 1K nodes took {elapsed:.3f}s"
