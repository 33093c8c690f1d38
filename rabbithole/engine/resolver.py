"""Article resolution against a Wikipedia-like data source.

The resolver turns a user query (plain title, underscored title, or full
article URL) into a ResolvedArticle whose canonical_title is the only valid
deduplication key. The data source may answer under a different title than
the one requested (redirects, capitalization), so callers must never key
nodes on the raw query.

Public Interface:
    - ArticleResolver: protocol consumed by the linker
    - WikipediaResolver: REST + Action API implementation over requests

Example:
    >>> resolver = WikipediaResolver()
    >>> article = resolver.resolve("https://en.wikipedia.org/wiki/Albert_Einstein")
    >>> article.canonical_title
    'Albert Einstein'
"""

from __future__ import annotations

import logging
from typing import Any, Protocol
from urllib.parse import quote

import requests

from rabbithole.engine.errors import NotFoundError, SourceUnavailableError
from rabbithole.engine.titles import (
    DEFAULT_BASE_URL,
    article_url,
    filter_article_links,
    normalize_title,
    title_from_query,
)
from rabbithole.models import ArticleLink, ResolvedArticle

logger = logging.getLogger(__name__)

NO_CONTENT = "No content available"


class ArticleResolver(Protocol):
    """Anything that can turn a query into a canonical article."""

    def resolve(self, query: str) -> ResolvedArticle:
        """Resolve a query.

        Raises:
            NotFoundError: If the article does not exist
            SourceUnavailableError: On transient data source failures
        """
        ...


class WikipediaResolver:
    """Resolver backed by the Wikipedia REST and Action APIs.

    Three requests per article: the page summary (canonical title, extract,
    URL), the page HTML (full document) and the namespace-0 link list.
    Failures are classified but never retried; retry policy belongs to the
    caller.

    Args:
        session: requests.Session to use; a new one is created when omitted
        base_url: Wiki root, e.g. "https://en.wikipedia.org"
        timeout: Seconds per HTTP request
        max_links: Outgoing links kept per article after filtering
        user_agent: HTTP User-Agent header
    """

    USER_AGENT = "Rabbithole/0.1 (graph explorer)"

    def __init__(
        self,
        session: requests.Session | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        max_links: int = 50,
        user_agent: str | None = None,
    ):
        self.session = session if session is not None else requests.Session()
        self.session.headers.update({"User-Agent": user_agent or self.USER_AGENT})
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_links = max_links

    def _get(self, url: str, title: str, params: dict[str, Any] | None = None) -> requests.Response:
        """GET with failure classification.

        Raises:
            NotFoundError: On HTTP 404
            SourceUnavailableError: On transport errors, 429 and other non-2xx codes
        """
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise SourceUnavailableError(f"Request failed for {title!r}: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(title)
        if response.status_code == 429:
            raise SourceUnavailableError(f"Rate limited while fetching {title!r}")
        if response.status_code >= 500:
            raise SourceUnavailableError(
                f"Server error {response.status_code} while fetching {title!r}"
            )
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise SourceUnavailableError(
                f"Unexpected status {response.status_code} while fetching {title!r}"
            ) from e
        return response

    def _json(self, response: requests.Response, title: str) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise SourceUnavailableError(f"Malformed response for {title!r}") from e
        if not isinstance(data, dict):
            raise SourceUnavailableError(f"Malformed response for {title!r}")
        return data

    def _rest_url(self, endpoint: str, title: str) -> str:
        slug = quote(title.replace(" ", "_"), safe="")
        return f"{self.base_url}/api/rest_v1/page/{endpoint}/{slug}"

    def fetch_summary(self, title: str) -> dict[str, Any]:
        """Page summary: canonical title, extract and desktop URL."""
        return self._json(self._get(self._rest_url("summary", title), title), title)

    def fetch_document(self, title: str) -> str:
        """Full page HTML, or "" when the HTML endpoint has no page."""
        try:
            return self._get(self._rest_url("html", title), title).text
        except NotFoundError:
            logger.debug("No HTML document for %r", title)
            return ""

    def fetch_link_titles(self, title: str) -> list[str]:
        """Raw namespace-0 link titles, in the order the API returns them."""
        params = {
            "action": "query",
            "format": "json",
            "prop": "links",
            "titles": title,
            "pllimit": 500,
            "plnamespace": 0,
            "redirects": 1,
        }
        data = self._json(self._get(f"{self.base_url}/w/api.php", title, params), title)
        if "error" in data:
            info = data["error"].get("info", "Unknown error")
            raise SourceUnavailableError(f"API error for {title!r}: {info}")

        pages = data.get("query", {}).get("pages", {})
        titles: list[str] = []
        for page in pages.values():
            for link in page.get("links", []):
                link_title = link.get("title")
                if link_title:
                    titles.append(link_title)
        return titles

    def resolve(self, query: str) -> ResolvedArticle:
        """Resolve a query into a canonical article.

        Args:
            query: Plain title, underscored title, or full article URL

        Returns:
            ResolvedArticle keyed by the title the data source answered with

        Raises:
            ValueError: If the query is empty
            NotFoundError: If the article does not exist
            SourceUnavailableError: On network, rate limit or server failures
        """
        requested = title_from_query(query)
        summary = self.fetch_summary(requested)
        canonical = normalize_title(summary.get("title") or requested)
        if canonical != requested:
            logger.debug("Resolved %r to canonical title %r", requested, canonical)

        document = self.fetch_document(canonical)
        link_titles = filter_article_links(self.fetch_link_titles(canonical), self.max_links)
        source_url = (
            summary.get("content_urls", {}).get("desktop", {}).get("page")
            or article_url(canonical, self.base_url)
        )

        return ResolvedArticle(
            canonical_title=canonical,
            content=summary.get("extract") or NO_CONTENT,
            full_document=document,
            outgoing_links=[
                ArticleLink(title=t, url=article_url(t, self.base_url)) for t in link_titles
            ],
            source_url=source_url,
        )
