"""Tests for BFS replay ordering and the paced replay scheduler."""

from __future__ import annotations

import random
import threading

import pytest

from rabbithole.engine.core import Edge, GraphSnapshot, GraphStore, Node
from rabbithole.engine.replay import ReplayScheduler, apply_step, replay_all
from rabbithole.engine.seeder import BFSSeeder


def build(edges, extra=()):
    store = GraphStore()
    for nid in [n for pair in edges for n in pair] + list(extra):
        if not store.has_node(nid):
            store.upsert_node(Node(nid, content="x" * len(nid) * 40))
    for source, target in edges:
        store.add_edge_if_absent(source, target)
    return store


def random_store(seed: int, num_nodes: int = 40, num_edges: int = 80) -> GraphStore:
    rng = random.Random(seed)
    store = GraphStore()
    ids = [f"N{i}" for i in range(num_nodes)]
    for nid in ids:
        store.upsert_node(Node(nid))
    for _ in range(num_edges):
        store.add_edge_if_absent(rng.choice(ids), rng.choice(ids))
    return store


class TestBFSOrder:
    def test_roots_first_then_neighbors(self):
        store = build([("R", "A"), ("C", "D"), ("D", "C"), ("C", "A")])
        assert BFSSeeder.from_store(store).order() == ["R", "A", "C", "D"]

    def test_disconnected_component_seeded_from_leftovers(self):
        store = build([("R", "A"), ("X", "Y"), ("Y", "X")])
        assert BFSSeeder.from_store(store).order() == ["R", "A", "X", "Y"]

    def test_root_less_graph_starts_at_first_node(self):
        store = build([("X", "Y"), ("Y", "Z"), ("Z", "X")])
        seeder = BFSSeeder.from_store(store)
        assert [n.id for n in seeder.roots()] == ["X"]
        assert seeder.order() == ["X", "Y", "Z"]

    def test_isolated_nodes_are_roots(self):
        store = build([], extra=("A", "B"))
        assert BFSSeeder.from_store(store).order() == ["A", "B"]

    def test_edges_attached_when_second_endpoint_emitted(self):
        store = build([("R", "A"), ("C", "D"), ("D", "C"), ("C", "A")])
        steps = {step.node.id: [e.id for e in step.edges] for step in BFSSeeder.from_store(store)}
        assert steps == {
            "R": [],
            "A": ["R->A"],
            "C": ["C->A"],
            "D": ["D->C", "C->D"],
        }

    def test_self_loop_attached_at_its_node(self):
        store = build([("A", "A")])
        steps = list(BFSSeeder.from_store(store))
        assert [e.id for e in steps[0].edges] == ["A->A"]

    def test_empty_graph(self):
        seeder = BFSSeeder.from_store(GraphStore())
        assert list(seeder) == []
        assert len(seeder) == 0

    @pytest.mark.parametrize("seed", range(10))
    def test_every_node_and_edge_exactly_once(self, seed):
        store = random_store(seed)
        emitted: list[str] = []
        attached: list[str] = []
        for i, step in enumerate(BFSSeeder.from_store(store)):
            assert step.index == i
            emitted.append(step.node.id)
            for edge in step.edges:
                assert edge.source_id in emitted
                assert edge.target_id in emitted
                assert step.node.id in (edge.source_id, edge.target_id)
                attached.append(edge.id)
        assert sorted(emitted) == sorted(n.id for n in store.get_all_nodes())
        assert len(emitted) == len(set(emitted))
        assert sorted(attached) == sorted(e.id for e in store.get_all_edges())

    def test_duplicated_root_emitted_once(self):
        snapshot = GraphSnapshot(nodes=(Node("R"), Node("A"), Node("R")), edges=(Edge.between("R", "A"),))
        assert BFSSeeder(snapshot).order() == ["R", "A"]

    def test_restartable_and_independent_of_live_store(self):
        store = random_store(3)
        seeder = BFSSeeder.from_store(store)
        first = seeder.order()
        store.upsert_node(Node("Late"))
        store.remove_node_cascade(first[0])
        assert seeder.order() == first
        assert "Late" not in first


class TestApply:
    def test_replay_all_rebuilds_graph_verbatim(self):
        source = random_store(7)
        source.mark_expanded("N0")
        target = GraphStore()
        count = replay_all(BFSSeeder.from_store(source), target)
        assert count == len(source)
        assert {n.id: n for n in target.get_all_nodes()} == {n.id: n for n in source.get_all_nodes()}
        assert {e.id for e in target.get_all_edges()} == {e.id for e in source.get_all_edges()}
        assert target.validate()["valid"]

    def test_partial_replay_never_dangles(self):
        source = random_store(11)
        target = GraphStore()
        for step in BFSSeeder.from_store(source):
            apply_step(step, target)
            assert target.validate()["valid"]

    def test_step_skips_edges_to_removed_nodes(self):
        steps = list(BFSSeeder.from_store(build([("A", "B")])))
        target = GraphStore()
        apply_step(steps[0], target)
        target.remove_node_cascade("A")
        apply_step(steps[1], target)
        assert [n.id for n in target.get_all_nodes()] == ["B"]
        assert target.get_all_edges() == []


class TestReplayScheduler:
    def test_runs_to_completion(self):
        source = random_store(1, num_nodes=15, num_edges=25)
        target = GraphStore()
        steps = []
        scheduler = ReplayScheduler(interval=0.0, on_step=steps.append)
        scheduler.start(BFSSeeder.from_store(source), target)
        assert scheduler.wait(5)
        assert scheduler.applied == len(source)
        assert len(steps) == len(source)
        assert len(target) == len(source)
        assert not scheduler.is_running

    def test_cancel_stops_further_steps(self):
        source = random_store(2, num_nodes=10, num_edges=15)
        target = GraphStore()
        first_step = threading.Event()
        scheduler = ReplayScheduler(interval=10.0, on_step=lambda step: first_step.set())
        scheduler.start(BFSSeeder.from_store(source), target)
        assert first_step.wait(5)
        scheduler.cancel()
        assert scheduler.wait(5)
        assert scheduler.applied == 1
        assert len(target) == 1

    def test_new_replay_supersedes_running_one(self):
        first_source = build([("A", "B"), ("B", "C")])
        second_source = build([("X", "Y")])
        first_target = GraphStore()
        second_target = GraphStore()
        first_step = threading.Event()
        scheduler = ReplayScheduler(interval=10.0, on_step=lambda step: first_step.set())

        scheduler.start(BFSSeeder.from_store(first_source), first_target)
        assert first_step.wait(5)
        scheduler.interval = 0.0
        scheduler.start(BFSSeeder.from_store(second_source), second_target)
        assert scheduler.wait(5)

        assert [n.id for n in first_target.get_all_nodes()] == ["A"]
        assert [n.id for n in second_target.get_all_nodes()] == ["X", "Y"]
        assert scheduler.applied == 2

    def test_wait_without_replay(self):
        assert ReplayScheduler().wait(0.1) is True

    def test_removal_during_replay_does_not_stop_it(self):
        source = build([("A", "B"), ("B", "C")])
        target = GraphStore()

        def remove_root(step):
            if step.index == 0:
                target.remove_node_cascade("A")

        scheduler = ReplayScheduler(interval=0.0, on_step=remove_root)
        scheduler.start(BFSSeeder.from_store(source), target)
        assert scheduler.wait(5)

        assert scheduler.applied == 3
        assert [n.id for n in target.get_all_nodes()] == ["B", "C"]
        assert [e.id for e in target.get_all_edges()] == ["B->C"]
        assert target.validate()["valid"]
