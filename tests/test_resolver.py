"""Tests for WikipediaResolver against a stubbed HTTP session."""

from __future__ import annotations

import json

import pytest
import requests

from rabbithole.engine.errors import NotFoundError, SourceUnavailableError
from rabbithole.engine.resolver import NO_CONTENT, WikipediaResolver

BASE = "https://en.wikipedia.org"


def make_response(status: int = 200, payload=None, text: str | None = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.encoding = "utf-8"
    if payload is not None:
        response._content = json.dumps(payload).encode("utf-8")
    else:
        response._content = (text or "").encode("utf-8")
    return response


class StubSession:
    """Routes GETs to canned responses by URL; records every call."""

    def __init__(self) -> None:
        self.headers: dict[str, str] = {}
        self.routes: dict[str, object] = {}
        self.calls: list[tuple[str, dict | None]] = []

    def route(self, url: str, response) -> None:
        self.routes[url] = response

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        response = self.routes.get(url)
        if response is None:
            return make_response(404)
        if isinstance(response, Exception):
            raise response
        return response


def summary_url(slug: str) -> str:
    return f"{BASE}/api/rest_v1/page/summary/{slug}"


def html_url(slug: str) -> str:
    return f"{BASE}/api/rest_v1/page/html/{slug}"


def links_payload(*titles: str) -> dict:
    return {
        "query": {
            "pages": {
                "736": {"pageid": 736, "title": "Albert Einstein", "links": [{"ns": 0, "title": t} for t in titles]}
            }
        }
    }


@pytest.fixture()
def session():
    s = StubSession()
    s.route(
        summary_url("Albert_Einstein"),
        make_response(
            payload={
                "title": "Albert Einstein",
                "extract": "German-born theoretical physicist.",
                "content_urls": {"desktop": {"page": "https://en.wikipedia.org/wiki/Albert_Einstein"}},
            }
        ),
    )
    s.route(html_url("Albert_Einstein"), make_response(text="<html>Einstein</html>"))
    s.route(
        f"{BASE}/w/api.php",
        make_response(payload=links_payload("Physics", "Category:Physicists", "1905", "Energy", "Physics")),
    )
    return s


class TestResolve:
    def test_resolves_summary_document_and_links(self, session):
        resolver = WikipediaResolver(session=session)
        article = resolver.resolve("Albert_Einstein")
        assert article.canonical_title == "Albert Einstein"
        assert article.content == "German-born theoretical physicist."
        assert article.full_document == "<html>Einstein</html>"
        assert article.link_titles == ["Physics", "Energy"]
        assert article.outgoing_links[0].url == "https://en.wikipedia.org/wiki/Physics"
        assert article.source_url == "https://en.wikipedia.org/wiki/Albert_Einstein"

    def test_accepts_article_url(self, session):
        resolver = WikipediaResolver(session=session)
        article = resolver.resolve("https://en.wikipedia.org/wiki/Albert_Einstein")
        assert article.canonical_title == "Albert Einstein"

    def test_redirect_uses_canonical_title(self, session):
        session.route(
            summary_url("Einstein"),
            make_response(payload={"title": "Albert Einstein", "extract": "Physicist."}),
        )
        resolver = WikipediaResolver(session=session)
        article = resolver.resolve("Einstein")
        assert article.canonical_title == "Albert Einstein"
        # Document and links are fetched for the canonical title
        assert session.calls[1][0] == html_url("Albert_Einstein")
        assert session.calls[2][1]["titles"] == "Albert Einstein"

    def test_link_query_parameters(self, session):
        WikipediaResolver(session=session).resolve("Albert Einstein")
        _, params = session.calls[2]
        assert params["action"] == "query"
        assert params["prop"] == "links"
        assert params["plnamespace"] == 0
        assert params["pllimit"] == 500

    def test_missing_extract_and_url_fallbacks(self, session):
        session.route(summary_url("Energy"), make_response(payload={"title": "Energy"}))
        article = WikipediaResolver(session=session).resolve("Energy")
        assert article.content == NO_CONTENT
        assert article.source_url == "https://en.wikipedia.org/wiki/Energy"

    def test_missing_document_is_empty(self, session):
        session.route(summary_url("Energy"), make_response(payload={"title": "Energy", "extract": "E"}))
        article = WikipediaResolver(session=session).resolve("Energy")
        assert article.full_document == ""

    def test_max_links(self, session):
        resolver = WikipediaResolver(session=session, max_links=1)
        assert resolver.resolve("Albert Einstein").link_titles == ["Physics"]

    def test_user_agent_header(self, session):
        WikipediaResolver(session=session, user_agent="tests/1.0")
        assert session.headers["User-Agent"] == "tests/1.0"


class TestFailureClassification:
    def test_not_found(self, session):
        with pytest.raises(NotFoundError) as exc:
            WikipediaResolver(session=session).resolve("Nonexistent article")
        assert exc.value.title == "Nonexistent article"

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_transient_statuses(self, session, status):
        session.route(summary_url("Physics"), make_response(status))
        with pytest.raises(SourceUnavailableError):
            WikipediaResolver(session=session).resolve("Physics")

    def test_other_client_error(self, session):
        session.route(summary_url("Physics"), make_response(403))
        with pytest.raises(SourceUnavailableError) as exc:
            WikipediaResolver(session=session).resolve("Physics")
        assert isinstance(exc.value.__cause__, requests.HTTPError)

    def test_transport_error(self, session):
        session.route(summary_url("Physics"), requests.ConnectionError("network down"))
        with pytest.raises(SourceUnavailableError) as exc:
            WikipediaResolver(session=session).resolve("Physics")
        assert isinstance(exc.value.__cause__, requests.ConnectionError)

    def test_malformed_json(self, session):
        session.route(summary_url("Physics"), make_response(text="<not json>"))
        with pytest.raises(SourceUnavailableError):
            WikipediaResolver(session=session).resolve("Physics")

    def test_api_error_payload(self, session):
        session.route(
            f"{BASE}/w/api.php",
            make_response(payload={"error": {"code": "maxlag", "info": "Waiting for replicas"}}),
        )
        with pytest.raises(SourceUnavailableError, match="Waiting for replicas"):
            WikipediaResolver(session=session).resolve("Albert Einstein")

    def test_empty_query(self, session):
        with pytest.raises(ValueError):
            WikipediaResolver(session=session).resolve("")
        assert session.calls == []
