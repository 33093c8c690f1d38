"""Rabbithole CLI — explore Wikipedia rabbit holes from the command line.

The exploration graph lives in a session file between invocations; shared
snapshots and analytics live in the SQLite database.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from functools import wraps
from typing import Any

import click

from rabbithole.client import Rabbithole
from rabbithole.config import get_settings
from rabbithole.engine.errors import RabbitholeError
from rabbithole.engine.persistence import load_session, save_session

DEFAULT_SESSION = "rabbithole-session.json"


def _get_client(ctx: click.Context) -> Rabbithole:
    store, navigation = load_session(ctx.obj["session"])
    return Rabbithole(
        ctx.obj["db"],
        resolver=ctx.obj.get("resolver"),
        store=store,
        navigation=navigation,
    )


def _save(ctx: click.Context, rh: Rabbithole) -> None:
    save_session(rh.store, rh.navigation, ctx.obj["session"])


def _handle_errors(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Report library errors as clean CLI errors instead of tracebacks."""

    @wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except (RabbitholeError, ValueError) as e:
            raise click.ClickException(str(e)) from e

    return wrapper


def _echo_result(result: Any) -> None:
    added = len(result.edge_ids_added)
    click.echo(f"{result.outcome}: {result.node_id} (+{added} edges)")


@click.group()
@click.option("--db", default=None, help="Share database path (overrides RABBITHOLE_DB_PATH).")
@click.option("--session", default=DEFAULT_SESSION, help="Session file holding the current graph.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, db: str | None, session: str, verbose: bool) -> None:
    """Rabbithole CLI — build, share and replay Wikipedia link graphs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["db"] = db or get_settings().db_path
    ctx.obj["session"] = session


@cli.command()
@click.argument("query")
@click.pass_context
@_handle_errors
def search(ctx: click.Context, query: str) -> None:
    """Add an article (title or URL) as a new root and select it."""
    with _get_client(ctx) as rh:
        result = rh.search(query)
        _save(ctx, rh)
    _echo_result(result)


@cli.command()
@click.argument("source_id")
@click.argument("title")
@click.option("--background", is_flag=True, help="Add the article without switching view.")
@click.pass_context
@_handle_errors
def follow(ctx: click.Context, source_id: str, title: str, background: bool) -> None:
    """Follow a link from SOURCE_ID to TITLE."""
    with _get_client(ctx) as rh:
        result = rh.augment(source_id, title) if background else rh.follow(source_id, title)
        _save(ctx, rh)
    _echo_result(result)


@cli.command()
@click.argument("node_id")
@click.option("--limit", default=None, type=click.IntRange(min=1), help="Links to add.")
@click.pass_context
@_handle_errors
def expand(ctx: click.Context, node_id: str, limit: int | None) -> None:
    """Add the first outgoing links of NODE_ID to the graph."""
    with _get_client(ctx) as rh:
        result = rh.expand(node_id, limit)
        _save(ctx, rh)
    if result.already_expanded:
        click.echo(f"{node_id} is already expanded.")
        return
    click.echo(
        f"Expanded {node_id}: {len(result.nodes_created)} new articles, "
        f"{len(result.edge_ids_added)} new links"
    )
    for title, message in result.failures.items():
        click.echo(f"  skipped {title}: {message}")


@cli.command()
@click.argument("node_id")
@click.pass_context
@_handle_errors
def remove(ctx: click.Context, node_id: str) -> None:
    """Remove NODE_ID and every article only reachable through it."""
    with _get_client(ctx) as rh:
        removed = rh.remove(node_id)
        _save(ctx, rh)
    if not removed:
        click.echo(f"{node_id} is not in the graph.")
        return
    click.echo(f"Removed {len(removed)} articles: {', '.join(removed)}")


@cli.command()
@click.pass_context
@_handle_errors
def back(ctx: click.Context) -> None:
    """Go back to the previously selected article."""
    with _get_client(ctx) as rh:
        node = rh.back()
        _save(ctx, rh)
    click.echo(f"Selected: {node.id}" if node else "No history.")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the graph as JSON.")
@click.pass_context
@_handle_errors
def show(ctx: click.Context, as_json: bool) -> None:
    """Show the current graph."""
    with _get_client(ctx) as rh:
        graph = rh.graph()
        roots = [n.id for n in rh.roots()]
        selected = rh.navigation.selected_id
    if as_json:
        click.echo(json.dumps(graph.model_dump(), indent=2, ensure_ascii=False))
        return
    if not graph.nodes:
        click.echo("Graph is empty.")
        return
    click.echo(f"Articles: {graph.node_count}  Links: {graph.edge_count}")
    for n in graph.nodes:
        marks = "".join(
            [
                "*" if n.id == selected else " ",
                "R" if n.id in roots else " ",
                "E" if n.expanded else " ",
            ]
        )
        click.echo(f"  {marks} {n.id}  weight={n.weight}")
    for e in graph.edges:
        click.echo(f"  {e.source_id} -> {e.target_id}")


@cli.command()
@click.option("--title", default=None, help="Share title (derived from the graph by default).")
@click.option("--creator", default=None, help="Creator name.")
@click.option("--description", default=None, help="Description.")
@click.pass_context
@_handle_errors
def share(ctx: click.Context, title: str | None, creator: str | None, description: str | None) -> None:
    """Share the current graph."""
    with _get_client(ctx) as rh:
        receipt = rh.share(title, creator, description)
    click.echo(f"Shared: {receipt.id} (expires {receipt.expires_at.isoformat()})")


@cli.command()
@click.argument("share_id")
@click.pass_context
@_handle_errors
def load(ctx: click.Context, share_id: str) -> None:
    """Replace the session graph with a shared snapshot."""
    with _get_client(ctx) as rh:
        shared = rh.load(share_id)
        _save(ctx, rh)
    click.echo(
        f"Loaded {shared.title!r}: {shared.node_count} articles, "
        f"{shared.link_count} links, {shared.view_count} views"
    )


@cli.command()
@click.argument("share_id")
@click.option("--title", default=None, help="Title of the fork.")
@click.option("--creator", default=None, help="Creator name.")
@click.pass_context
@_handle_errors
def fork(ctx: click.Context, share_id: str, title: str | None, creator: str | None) -> None:
    """Save a copy of a shared snapshot under a new id."""
    with _get_client(ctx) as rh:
        receipt = rh.fork(share_id, title, creator)
    click.echo(f"Forked {share_id} -> {receipt.id}")


@cli.command()
@click.option("--limit", default=20, type=click.IntRange(1, 100), help="Rows to show.")
@click.option("--connections", is_flag=True, help="Show popular links instead of articles.")
@click.option("--connected", is_flag=True, help="Order articles by average connections.")
@click.pass_context
@_handle_errors
def popular(ctx: click.Context, limit: int, connections: bool, connected: bool) -> None:
    """Show the most shared articles or links."""
    with _get_client(ctx) as rh:
        if connections:
            rows = rh.popular_connections(limit)
            for c in rows:
                click.echo(f"  {c.connection_count:>4}  {c.source_article} -> {c.target_article}")
        else:
            articles = rh.most_connected_articles(limit) if connected else rh.popular_articles(limit)
            rows = articles
            for a in articles:
                click.echo(
                    f"  {a.total_appearances:>4}  {a.article_title}"
                    f"  (avg {a.average_connections:.1f} connections)"
                )
    if not rows:
        click.echo("No analytics yet.")


@cli.command()
@click.argument("share_id", required=False)
@click.pass_context
@_handle_errors
def stats(ctx: click.Context, share_id: str | None) -> None:
    """Show global share statistics, or the analytics of SHARE_ID."""
    with _get_client(ctx) as rh:
        if share_id is None:
            s = rh.global_stats()
            click.echo(
                f"Shares: {s.total_snapshots}  Views: {s.total_views}  "
                f"Articles: {s.total_articles}  Links: {s.total_connections}"
            )
            click.echo(
                f"Average nodes: {s.average_nodes}  links: {s.average_links}  "
                f"views: {s.average_views}"
            )
            return
        node_stats, summary = rh.share_analytics(share_id)
    click.echo(
        f"Articles: {summary.total_nodes}  Roots: {', '.join(summary.root_nodes)}  "
        f"Most connected: {summary.most_connected} ({summary.max_connections})"
    )
    for ns in node_stats:
        click.echo(
            f"  {ns.article_title}  in={ns.incoming_connections} "
            f"out={ns.outgoing_connections} weight={ns.node_weight}"
        )


@cli.command()
@click.pass_context
@_handle_errors
def validate(ctx: click.Context) -> None:
    """Validate internal consistency of the session graph."""
    with _get_client(ctx) as rh:
        result = rh.validate()
    if result.valid:
        click.echo("Graph is valid.")
    else:
        click.echo("Validation errors:")
        for err in result.errors:
            click.echo(f"  ERROR: {err}")


@cli.command()
@click.option("--db", default=None, help="Database path (overrides RABBITHOLE_DB_PATH).")
def mcp(db: str | None) -> None:
    """Start the MCP server for AI agent integration."""
    import os

    if db:
        os.environ["RABBITHOLE_DB_PATH"] = db
        get_settings.cache_clear()
    from rabbithole.mcp.server import run_server

    run_server()


if __name__ == "__main__":
    cli()
