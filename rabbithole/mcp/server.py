"""Rabbithole MCP server — exposes rabbit hole exploration as tools for AI agents."""

from __future__ import annotations

import functools
import logging
import sys
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP

from rabbithole.client import Rabbithole
from rabbithole.config import get_settings

# All logging goes to stderr; stdout is reserved for JSON-RPC
logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger("rabbithole.mcp")

# ---------------------------------------------------------------------------
# Client singleton, safe for single-process stdio MCP
# ---------------------------------------------------------------------------

_CLIENT: Rabbithole | None = None


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict]:
    global _CLIENT
    settings = get_settings()
    logger.info("Opening Rabbithole share database: %s", settings.db_path)
    _CLIENT = Rabbithole(settings.db_path, settings=settings)
    try:
        yield {}
    finally:
        if _CLIENT is not None:
            _CLIENT.close()
            _CLIENT = None


mcp = FastMCP(
    "Rabbithole",
    instructions=(
        "Rabbithole builds a graph of Wikipedia articles as you explore. "
        "Start with search_article, then follow_link from an article already in the graph. "
        "Node ids are canonical article titles as returned by Wikipedia, so redirects and "
        "underscore/space variants land on the same node. "
        "expand_article adds the first outgoing links of a node in one go. "
        "remove_article also removes every article only reachable through the removed one. "
        "share_graph saves the graph and returns a share id that load_share and fork_share accept."
    ),
    lifespan=app_lifespan,
)


def _get_client() -> Rabbithole:
    """Return the active Rabbithole client."""
    if _CLIENT is None:
        raise RuntimeError("Rabbithole client is not initialized")
    return _CLIENT


def _safe_tool(fn: Callable[..., dict]) -> Callable[..., dict]:
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> dict:
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            logger.exception("Tool %s failed", fn.__name__)
            return {"error": True, "message": f"{type(exc).__name__}: {exc}"}
    return wrapper


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def _node_dict(node: Any, full: bool = False) -> dict:
    data = {
        "id": node.id,
        "title": node.title,
        "url": node.source_url,
        "expanded": node.expanded,
        "weight": node.weight,
        "color": node.color,
        "link_count": len(node.outgoing_link_titles),
    }
    if full:
        data["content"] = node.content
        data["outgoing_links"] = node.outgoing_link_titles
    return data


def _edge_dict(edge: Any) -> dict:
    return {"id": edge.id, "source": edge.source_id, "target": edge.target_id}


def _result_dict(result: Any) -> dict:
    rh = _get_client()
    node = rh.node(result.node_id) if result.node_id else None
    return {
        "outcome": result.outcome,
        "node_id": result.node_id,
        "node_created": result.node_created,
        "edges_added": result.edge_ids_added,
        "node": _node_dict(node, full=True) if node else None,
        "selected": rh.navigation.selected_id,
    }


# ===================================================================
# Exploration tools (5)
# ===================================================================


@mcp.tool()
@_safe_tool
def search_article(query: str) -> dict:
    """Add a Wikipedia article to the graph as a new starting point and select it.

    Args:
        query: Article title ("Albert Einstein", "Albert_Einstein") or full article URL.
    """
    return _result_dict(_get_client().search(query))


@mcp.tool()
@_safe_tool
def follow_link(source_id: str, title: str) -> dict:
    """Follow a link from an article in the graph and select the linked article.

    Args:
        source_id: Id of the article the link appears in.
        title: Title of the linked article.
    """
    return _result_dict(_get_client().follow(source_id, title))


@mcp.tool()
@_safe_tool
def augment_link(source_id: str, title: str) -> dict:
    """Add a linked article to the graph without changing the selection.

    Args:
        source_id: Id of the article the link appears in.
        title: Title of the linked article.
    """
    return _result_dict(_get_client().augment(source_id, title))


@mcp.tool()
@_safe_tool
def expand_article(node_id: str, limit: int | None = None) -> dict:
    """Add the first outgoing links of an article to the graph.

    An article can only be expanded once.

    Args:
        node_id: Id of the article to expand.
        limit: Number of links to add (default from settings, 10).
    """
    result = _get_client().expand(node_id, limit)
    return {
        "node_id": node_id,
        "already_expanded": result.already_expanded,
        "nodes_created": result.nodes_created,
        "edges_added": result.edge_ids_added,
        "failures": result.failures,
    }


@mcp.tool()
@_safe_tool
def remove_article(node_id: str) -> dict:
    """Remove an article and every article only reachable through it.

    Args:
        node_id: Id of the article to remove.
    """
    removed = _get_client().remove(node_id)
    return {"removed": removed, "count": len(removed)}


@mcp.tool()
@_safe_tool
def get_graph(include_content: bool = False) -> dict:
    """Get the current graph: articles, links, roots and selection.

    Args:
        include_content: Include article summaries and raw link lists.
    """
    rh = _get_client()
    graph = rh.graph()
    return {
        "node_count": graph.node_count,
        "edge_count": graph.edge_count,
        "nodes": [_node_dict(n, full=include_content) for n in graph.nodes],
        "edges": [_edge_dict(e) for e in graph.edges],
        "roots": [n.id for n in rh.roots()],
        "selected": rh.navigation.selected_id,
        "history": rh.navigation.history,
    }


# ===================================================================
# Sharing tools (3)
# ===================================================================


@mcp.tool()
@_safe_tool
def share_graph(
    title: str | None = None,
    creator_name: str | None = None,
    description: str | None = None,
) -> dict:
    """Save the current graph and return a share id valid for 7 days after last load.

    Args:
        title: Share title (derived from the graph when omitted).
        creator_name: Optional creator name.
        description: Optional description.
    """
    receipt = _get_client().share(title, creator_name, description)
    return {"id": receipt.id, "expires_at": receipt.expires_at.isoformat()}


@mcp.tool()
@_safe_tool
def load_share(share_id: str) -> dict:
    """Replace the current graph with a shared snapshot.

    Args:
        share_id: Id returned by share_graph.
    """
    shared = _get_client().load(share_id)
    return {
        "id": shared.id,
        "title": shared.title,
        "creator_name": shared.creator_name,
        "description": shared.description,
        "node_count": shared.node_count,
        "link_count": shared.link_count,
        "view_count": shared.view_count,
        "expires_at": shared.expires_at.isoformat(),
    }


@mcp.tool()
@_safe_tool
def fork_share(share_id: str, title: str | None = None, creator_name: str | None = None) -> dict:
    """Save a copy of a shared snapshot under a new share id.

    Args:
        share_id: Id of the snapshot to copy.
        title: Title of the copy (defaults to the original title plus " (fork)").
        creator_name: Optional creator name.
    """
    receipt = _get_client().fork(share_id, title, creator_name)
    return {"id": receipt.id, "forked_from": share_id, "expires_at": receipt.expires_at.isoformat()}


# ===================================================================
# Analytics tools (2)
# ===================================================================


@mcp.tool()
@_safe_tool
def popular_articles(limit: int = 20, by: str = "appearances") -> dict:
    """Articles that appear most often across shared rabbit holes.

    Args:
        limit: Number of articles (1-100).
        by: "appearances" or "connections" (highest average connections).
    """
    rh = _get_client()
    if by == "appearances":
        rows = rh.popular_articles(limit)
    elif by == "connections":
        rows = rh.most_connected_articles(limit)
    else:
        raise ValueError(f"Unknown ordering: {by!r}")
    return {
        "count": len(rows),
        "articles": [
            {
                "title": a.article_title,
                "url": a.article_url,
                "appearances": a.total_appearances,
                "total_connections": a.total_connections,
                "average_connections": a.average_connections,
            }
            for a in rows
        ],
    }


@mcp.tool()
@_safe_tool
def popular_connections(limit: int = 20) -> dict:
    """Links between articles that appear most often across shared rabbit holes.

    Args:
        limit: Number of links (1-100).
    """
    rows = _get_client().popular_connections(limit)
    return {
        "count": len(rows),
        "connections": [
            {"source": c.source_article, "target": c.target_article, "count": c.connection_count}
            for c in rows
        ],
    }


# ===================================================================
# Resources (1)
# ===================================================================


@mcp.resource("rabbithole://stats")
def stats_resource() -> str:
    """Current graph statistics and global share statistics."""
    if _CLIENT is None:
        raise RuntimeError("Rabbithole client is not initialized")
    graph = _CLIENT.stats()
    shares = _CLIENT.global_stats()
    lines = [
        "# Rabbithole Statistics\n",
        "## Current Graph",
        f"Articles: {graph.node_count}",
        f"Links: {graph.edge_count}",
        f"Roots: {graph.root_count}",
        f"Expanded: {graph.expanded_count}",
        "\n## Shared Rabbit Holes",
        f"Live shares: {shares.total_snapshots}",
        f"Total views: {shares.total_views}",
        f"Distinct articles: {shares.total_articles}",
        f"Distinct links: {shares.total_connections}",
        f"Average size: {shares.average_nodes} articles, {shares.average_links} links",
    ]
    return "\n".join(lines)


# ===================================================================
# Entry point
# ===================================================================


def run_server() -> None:
    """Run the Rabbithole MCP server over stdio."""
    mcp.run(transport="stdio")
