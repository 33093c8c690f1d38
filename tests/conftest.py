"""Shared fixtures for Rabbithole tests."""

from __future__ import annotations

import threading

import pytest

from rabbithole import Rabbithole
from rabbithole.config import Settings
from rabbithole.engine.core import GraphStore
from rabbithole.engine.errors import NotFoundError, SourceUnavailableError
from rabbithole.engine.linker import IncrementalLinker
from rabbithole.engine.titles import article_url, normalize_title, title_from_query
from rabbithole.models import ArticleLink, ResolvedArticle


class Gate:
    """Holds a resolve() call until released; ``entered`` fires once it is waiting."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()


class FakeResolver:
    """In-memory stand-in for Wikipedia.

    Supports redirects (aliases), missing pages, failure injection, and gates
    or a barrier that hold resolve() calls so tests can interleave them.
    """

    def __init__(self) -> None:
        self.articles: dict[str, ResolvedArticle] = {}
        self.aliases: dict[str, str] = {}
        self.failing: set[str] = set()
        self.gates: dict[str, Gate] = {}
        self.barrier: threading.Barrier | None = None
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def add(
        self,
        title: str,
        links: list[str] | tuple[str, ...] = (),
        content: str = "",
        aliases: tuple[str, ...] = (),
    ) -> ResolvedArticle:
        article = ResolvedArticle(
            canonical_title=title,
            content=content or f"{title} is an article.",
            full_document=f"<p>{title}</p>",
            outgoing_links=[ArticleLink(title=t, url=article_url(t)) for t in links],
            source_url=article_url(title),
        )
        self.articles[title] = article
        for alias in aliases:
            self.aliases[normalize_title(alias)] = title
        return article

    def fail(self, title: str) -> None:
        self.failing.add(normalize_title(title))

    def block(self, title: str) -> Gate:
        gate = Gate()
        self.gates[normalize_title(title)] = gate
        return gate

    def resolve(self, query: str) -> ResolvedArticle:
        key = title_from_query(query)
        with self._lock:
            self.calls.append(key)
        gate = self.gates.get(key)
        if gate is not None:
            gate.entered.set()
            assert gate.release.wait(5), f"gate for {key!r} never released"
        if self.barrier is not None:
            self.barrier.wait(5)
        if key in self.failing:
            raise SourceUnavailableError(f"Injected failure for {key!r}")
        canonical = self.aliases.get(key, key)
        article = self.articles.get(canonical)
        if article is None:
            raise NotFoundError(key)
        return article


def build_wiki() -> FakeResolver:
    """A small linked wiki.

    Albert Einstein -> Physics, Theory of relativity, Photoelectric effect
    Physics -> Albert Einstein, Energy
    Theory of relativity -> Albert Einstein, Spacetime
    Photoelectric effect -> Physics
    Spacetime -> Theory of relativity
    Energy -> (none)

    Aliases: "Einstein" -> Albert Einstein, "Relativity" -> Theory of relativity
    """
    wiki = FakeResolver()
    wiki.add(
        "Albert Einstein",
        ["Physics", "Theory of relativity", "Photoelectric effect"],
        content="Albert Einstein was a theoretical physicist." * 20,
        aliases=("Einstein",),
    )
    wiki.add("Physics", ["Albert Einstein", "Energy"])
    wiki.add(
        "Theory of relativity",
        ["Albert_Einstein", "Spacetime"],
        aliases=("Relativity",),
    )
    wiki.add("Photoelectric effect", ["Physics"])
    wiki.add("Spacetime", ["Theory of relativity"])
    wiki.add("Energy")
    return wiki


@pytest.fixture()
def store():
    """Fresh empty GraphStore."""
    return GraphStore()


@pytest.fixture()
def fake_resolver():
    """FakeResolver preloaded with the small wiki from build_wiki()."""
    return build_wiki()


@pytest.fixture()
def linker(store, fake_resolver):
    """IncrementalLinker over the empty store and the fake wiki."""
    return IncrementalLinker(store, fake_resolver)


@pytest.fixture()
def settings():
    """Settings with unpaced replay."""
    return Settings(replay_interval=0.0)


@pytest.fixture()
def explorer(fake_resolver, settings):
    """In-memory Rabbithole client over the fake wiki."""
    rh = Rabbithole(resolver=fake_resolver, settings=settings)
    yield rh
    rh.close()


@pytest.fixture()
def tmp_db_path(tmp_path):
    """Temporary database path with automatic cleanup."""
    return str(tmp_path / "test.db")


def is_reachable_from_roots(store: GraphStore) -> bool:
    """True if every node is a root or forward-reachable from one."""
    roots = [n.id for n in store.root_nodes()]
    seen = set(roots)
    frontier = list(roots)
    while frontier:
        current = frontier.pop()
        for edge in store.find_outgoing_edges(current):
            if edge.target_id not in seen:
                seen.add(edge.target_id)
                frontier.append(edge.target_id)
    return all(n.id in seen for n in store.get_all_nodes())


@pytest.fixture()
def empty_resolver():
    """FakeResolver with no articles."""
    return FakeResolver()


@pytest.fixture()
def reachable():
    """The root-reachability check, for cascade removal assertions."""
    return is_reachable_from_roots
