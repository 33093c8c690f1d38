"""Tests for the Rabbithole MCP server tools and resources."""

from __future__ import annotations

import pytest

from rabbithole import Rabbithole
from rabbithole.config import Settings
from rabbithole.mcp import server as mcp_server
from rabbithole.mcp.server import (
    augment_link,
    expand_article,
    follow_link,
    fork_share,
    get_graph,
    load_share,
    mcp,
    popular_articles,
    popular_connections,
    remove_article,
    search_article,
    share_graph,
    stats_resource,
)

AE = "Albert Einstein"


@pytest.fixture(autouse=True)
def _patch_client(monkeypatch, fake_resolver):
    """Patch the module-level _CLIENT with a fresh in-memory Rabbithole for each test."""
    client = Rabbithole(resolver=fake_resolver, settings=Settings(replay_interval=0.0))
    monkeypatch.setattr(mcp_server, "_CLIENT", client)
    yield
    client.close()


class TestExplorationTools:
    def test_search_article(self):
        result = search_article(query="https://en.wikipedia.org/wiki/Albert_Einstein")
        assert result["outcome"] == "created"
        assert result["node_id"] == AE
        assert result["node"]["url"] == "https://en.wikipedia.org/wiki/Albert_Einstein"
        assert result["node"]["outgoing_links"] == ["Physics", "Theory of relativity", "Photoelectric effect"]
        assert result["selected"] == AE

    def test_search_not_found_returns_error(self):
        result = search_article(query="Nonexistent article")
        assert result["error"] is True
        assert "NotFoundError" in result["message"]

    def test_follow_link(self):
        search_article(query="Einstein")
        result = follow_link(source_id=AE, title="Physics")
        assert result["outcome"] == "created"
        assert result["edges_added"] == ["Albert Einstein->Physics", "Physics->Albert Einstein"]
        assert result["selected"] == "Physics"

    def test_follow_duplicate_is_noop(self):
        search_article(query="Einstein")
        follow_link(source_id=AE, title="Relativity")
        result = follow_link(source_id=AE, title="Theory_of_relativity")
        assert result["outcome"] == "noop"
        assert result["node_created"] is False
        assert result["edges_added"] == []

    def test_augment_link_keeps_selection(self):
        search_article(query="Einstein")
        result = augment_link(source_id=AE, title="Physics")
        assert result["selected"] == AE

    def test_follow_from_missing_source(self):
        result = follow_link(source_id="Ghost", title="Physics")
        assert result["error"] is True
        assert "ValueError" in result["message"]

    def test_expand_article(self):
        search_article(query="Einstein")
        result = expand_article(node_id=AE, limit=2)
        assert result["already_expanded"] is False
        assert result["nodes_created"] == ["Physics", "Theory of relativity"]
        assert expand_article(node_id=AE)["already_expanded"] is True

    def test_remove_article(self):
        search_article(query="Energy")
        search_article(query="Einstein")
        follow_link(source_id=AE, title="Photoelectric effect")
        result = remove_article(node_id=AE)
        assert result["count"] == 2
        assert get_graph()["node_count"] == 1

    def test_get_graph(self):
        search_article(query="Einstein")
        follow_link(source_id=AE, title="Physics")
        graph = get_graph()
        assert graph["node_count"] == 2
        assert graph["edge_count"] == 2
        assert graph["roots"] == []
        assert graph["selected"] == "Physics"
        assert graph["history"] == [AE]
        assert "content" not in graph["nodes"][0]
        assert "content" in get_graph(include_content=True)["nodes"][0]


class TestSharingTools:
    def test_share_load_fork(self):
        search_article(query="Einstein")
        shared = share_graph(title="Einstein hole", creator_name="ada")
        assert len(shared["id"]) == 12

        loaded = load_share(share_id=shared["id"])
        assert loaded["title"] == "Einstein hole"
        assert loaded["node_count"] == 1
        assert loaded["view_count"] == 1

        forked = fork_share(share_id=shared["id"])
        assert forked["forked_from"] == shared["id"]
        assert load_share(share_id=forked["id"])["title"] == "Einstein hole (fork)"

    def test_share_empty_graph(self):
        result = share_graph()
        assert result["error"] is True

    def test_load_unknown_share(self):
        result = load_share(share_id="missing")
        assert result["error"] is True
        assert "SnapshotNotFoundError" in result["message"]


class TestAnalyticsTools:
    def test_popular_articles_and_connections(self):
        search_article(query="Einstein")
        follow_link(source_id=AE, title="Physics")
        share_graph()
        share_graph()
        articles = popular_articles(limit=5)
        assert articles["count"] == 2
        assert articles["articles"][0]["appearances"] == 2
        by_connections = popular_articles(by="connections")
        assert by_connections["articles"][0]["average_connections"] == 2.0
        connections = popular_connections()
        assert connections["connections"][0]["count"] == 2

    def test_unknown_ordering(self):
        result = popular_articles(by="alphabetical")
        assert result["error"] is True

    def test_limit_out_of_range(self):
        assert popular_connections(limit=0)["error"] is True


class TestResources:
    def test_stats_resource(self):
        search_article(query="Einstein")
        share_graph()
        text = stats_resource()
        assert "Articles: 1" in text
        assert "Live shares: 1" in text

    def test_server_registered(self):
        assert mcp.name == "Rabbithole"
