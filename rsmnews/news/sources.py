"""
Portal and article scraping.

Two capabilities feed the refresh pipeline:

- fetch_portal_candidates(portal_url): headline links from a portal home page.
  Raises SourceError on network/HTTP failure; the orchestrator isolates it.
- fetch_article_detail(url): full text of one article. Never raises; failures
  come back as an ArticleDetail with `error` set.

Both are blocking (requests) and are run through asyncio.to_thread by the
orchestrator. HTML parsing lives in parse_* helpers so it can be tested on
fixtures without the network.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup, Tag

from rsmnews.config import (
    ARTICLE_GOOD_CONTENT_CHARS,
    ARTICLE_MIN_PARAGRAPH_CHARS,
    ARTICLE_TIMEOUT_SECONDS,
    CANDIDATE_TITLE_MAX_CHARS,
    CANDIDATE_TITLE_MIN_CHARS,
    PORTAL_MAX_CANDIDATES,
    PORTAL_TIMEOUT_SECONDS,
    SCRAPER_USER_AGENT,
)
from rsmnews.news.models import ArticleCandidate, ArticleDetail
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter

logger = get_logger(__name__)

REQUEST_HEADERS = {
    "User-Agent": SCRAPER_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "es-AR,es;q=0.9,en;q=0.8",
}

# Page chrome removed before any extraction
NOISE_SELECTOR = "script, style, nav, footer, header, iframe, noscript, aside, .ad, .ads, .advertisement"
CONTENT_NOISE_SELECTOR = "button, form"
CONTENT_SELECTORS = (
    "article",
    ".article-content",
    ".story-content",
    ".post-content",
    "main",
    ".entry-content",
    '[itemprop="articleBody"]',
)
CONTAINER_CLASSES = {"article", "story", "card", "news"}
HEADING_SELECTOR = "h1, h2, h3, h4, .title, .headline"
EXCERPT_SELECTOR = "p, .summary, .description, .excerpt, .deck"

NON_ARTICLE_PATH = re.compile(r"/(tag|category|autor|author|seccion|section)/", re.IGNORECASE)
TITLE_PORTAL_SUFFIX = re.compile(r"\s*[-|–—]\s*[^-|–—]+$")
WHITESPACE = re.compile(r"\s+")


class SourceError(Exception):
    """A portal could not be fetched."""


def portal_name(portal_url: str) -> str:
    """Hostname without a leading www. (e.g. "infobae.com")."""
    host = urlparse(portal_url).hostname or portal_url
    return host.removeprefix("www.")


def normalize_url(href: str | None, base_url: str) -> str | None:
    """Make a link absolute against the portal's scheme://host."""
    if not href:
        return None
    href = href.strip()
    if href.startswith("http"):
        return href
    if href.startswith("//"):
        return f"https:{href}"
    if href.startswith("/"):
        return f"{base_url}{href}"
    return f"{base_url}/{href}"


def _clean_text(text: str) -> str:
    return WHITESPACE.sub(" ", text).strip()


def _closest_container(link: Tag) -> Tag | None:
    """Nearest ancestor that looks like a news card."""
    for parent in link.parents:
        if not isinstance(parent, Tag):
            continue
        if parent.name == "article":
            return parent
        if CONTAINER_CLASSES.intersection(parent.get("class") or []):
            return parent
    return None


# ============================================================================
# Portal home pages
# ============================================================================


def parse_portal_html(html: str, portal_url: str) -> list[ArticleCandidate]:
    """Extract headline candidates from a portal home page.

    A link qualifies when it stays on the portal's host, has no fragment, is
    not a tag/section/author listing, and carries a title between
    CANDIDATE_TITLE_MIN_CHARS and CANDIDATE_TITLE_MAX_CHARS characters (taken
    from the link text, or from the nearest card heading when the link text is
    too short).
    """
    parsed = urlparse(portal_url)
    base_url = f"{parsed.scheme}://{parsed.netloc}"
    name = portal_name(portal_url)

    soup = BeautifulSoup(html, "html.parser")
    for element in soup.select(NOISE_SELECTOR):
        element.decompose()

    candidates: list[ArticleCandidate] = []
    seen: set[str] = set()

    for link in soup.find_all("a", href=True):
        url = normalize_url(link.get("href"), base_url)
        if not url or url in seen:
            continue
        if name not in url or "#" in url or NON_ARTICLE_PATH.search(url):
            continue

        container = _closest_container(link)

        title = _clean_text(link.get_text(" "))
        if len(title) < CANDIDATE_TITLE_MIN_CHARS and container is not None:
            heading = container.select_one(HEADING_SELECTOR)
            title = _clean_text(heading.get_text(" ")) if heading else ""

        excerpt = ""
        if container is not None:
            teaser = container.select_one(EXCERPT_SELECTOR)
            if teaser is not None:
                excerpt = _clean_text(teaser.get_text(" "))

        if not CANDIDATE_TITLE_MIN_CHARS <= len(title) <= CANDIDATE_TITLE_MAX_CHARS:
            continue

        seen.add(url)
        candidates.append(
            ArticleCandidate(
                title=title,
                url=url,
                excerpt=excerpt if excerpt != title else "",
                portal=name,
            )
        )
        if len(candidates) >= PORTAL_MAX_CANDIDATES:
            break

    return candidates


def fetch_portal_candidates(
    portal_url: str,
    session: requests.Session | None = None,
    timeout: float = PORTAL_TIMEOUT_SECONDS,
) -> list[ArticleCandidate]:
    """Download a portal home page and return its headline candidates.

    Raises:
        SourceError: On timeout, connection error or non-2xx response
    """
    http = session or requests
    try:
        response = http.get(portal_url, headers=REQUEST_HEADERS, timeout=timeout)
        response.raise_for_status()
    except requests.Timeout as e:
        counter("sources.portal_timeout")
        raise SourceError(f"Timed out after {timeout:.0f}s fetching {portal_url}") from e
    except requests.RequestException as e:
        counter("sources.portal_error")
        raise SourceError(f"Failed to fetch {portal_url}: {e}") from e

    candidates = parse_portal_html(response.text, portal_url)
    counter("sources.candidates", len(candidates))
    logger.info("Found %d candidates on %s", len(candidates), portal_url)
    return candidates


# ============================================================================
# Article pages
# ============================================================================


def parse_article_html(html: str, url: str) -> ArticleDetail:
    """Extract title and body text from an article page.

    Paragraphs shorter than ARTICLE_MIN_PARAGRAPH_CHARS are skipped. Content
    selectors are tried in order until one yields ARTICLE_GOOD_CONTENT_CHARS;
    below that the whole body text is used.
    """
    soup = BeautifulSoup(html, "html.parser")
    for element in soup.select(NOISE_SELECTOR):
        element.decompose()

    title = ""
    h1 = soup.find("h1")
    if h1 is not None:
        title = _clean_text(h1.get_text(" "))
    if not title and soup.title is not None:
        title = _clean_text(soup.title.get_text())
    if not title:
        og_title = soup.find("meta", attrs={"property": "og:title"})
        if og_title is not None:
            title = _clean_text(og_title.get("content", ""))
    title = TITLE_PORTAL_SUFFIX.sub("", title).strip()

    content = ""
    for selector in CONTENT_SELECTORS:
        block = soup.select_one(selector)
        if block is None:
            continue
        for element in block.select(CONTENT_NOISE_SELECTOR):
            element.decompose()
        paragraphs = [_clean_text(p.get_text(" ")) for p in block.find_all("p")]
        content = "\n\n".join(p for p in paragraphs if len(p) > ARTICLE_MIN_PARAGRAPH_CHARS)
        if len(content) > ARTICLE_GOOD_CONTENT_CHARS:
            break

    if len(content) < ARTICLE_GOOD_CONTENT_CHARS and soup.body is not None:
        content = _clean_text(soup.body.get_text(" "))

    if not content:
        return ArticleDetail(url=url, title=title, error="No article text found")

    return ArticleDetail(url=url, title=title, content=content)


def fetch_article_detail(
    url: str,
    session: requests.Session | None = None,
    timeout: float = ARTICLE_TIMEOUT_SECONDS,
) -> ArticleDetail:
    """Download one article. Failures are returned as ArticleDetail.error."""
    http = session or requests
    try:
        response = http.get(url, headers=REQUEST_HEADERS, timeout=timeout)
        response.raise_for_status()
    except requests.Timeout:
        counter("sources.article_timeout")
        logger.warning("Timed out fetching article %s", url)
        return ArticleDetail(url=url, error=f"Timed out after {timeout:.0f}s")
    except requests.RequestException as e:
        counter("sources.article_error")
        logger.warning("Failed to fetch article %s: %s", url, e)
        return ArticleDetail(url=url, error=str(e))

    detail = parse_article_html(response.text, url)
    if detail.error:
        counter("sources.article_empty")
        logger.warning("No text extracted from %s", url)
    else:
        logger.debug("Fetched article %s (%d chars)", url, len(detail.content))
    return detail
