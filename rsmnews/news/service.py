"""
News service - the refresh pipeline and the cache read path.

    portals --(parallel)--> candidates --(one call)--> selection
        --(parallel)--> article details --(parallel, bounded)--> enrichment
        --> new CacheEntry --> prune history

Source failures are isolated per portal/url. Enrichment failures degrade to
fallback text. A RefreshError (no candidates, malformed selection, nothing
survived) falls back to the last good entry when there is one. Persistence
errors propagate.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime

from rsmnews.config import (
    CACHE_HISTORY_SIZE,
    LLM_DEADLINE_SECONDS,
    LLM_MAX_WORKERS,
    PRINCIPAL_CATEGORY,
    get_news_portals,
)
from rsmnews.news.errors import EmptyRefreshError, NoContentError, RefreshError, SelectionError
from rsmnews.news.models import (
    Article,
    ArticleCandidate,
    ArticleDetail,
    CacheEntry,
    Enrichment,
    SelectedArticle,
    is_stale,
    utc_now,
)
from rsmnews.news.repository import NewsCacheRepository
from rsmnews.news.sources import fetch_article_detail, fetch_portal_candidates
from rsmnews.news.transform import ContentTransformer, fallback_enrichment
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter, log_event, time_block

logger = get_logger(__name__)


class NewsService:
    """
    Owns the news cache: refreshes it and serves it.

    Collaborators are injected so tests can replace the network, the model and
    the clock. Concurrent refresh() calls run one at a time, and every model
    call is cut off after llm_deadline seconds so a stalled call cannot hold
    the refresh lock.
    """

    def __init__(
        self,
        repository: NewsCacheRepository | None = None,
        transformer: ContentTransformer | None = None,
        fetch_candidates: Callable[[str], list[ArticleCandidate]] = fetch_portal_candidates,
        fetch_detail: Callable[[str], ArticleDetail] = fetch_article_detail,
        portals: Callable[[], Sequence[str]] = get_news_portals,
        clock: Callable[[], datetime] = utc_now,
        max_workers: int = LLM_MAX_WORKERS,
        history_size: int = CACHE_HISTORY_SIZE,
        llm_deadline: float = LLM_DEADLINE_SECONDS,
    ):
        self.repository = repository or NewsCacheRepository()
        self.transformer = transformer or ContentTransformer()
        self._fetch_candidates = fetch_candidates
        self._fetch_detail = fetch_detail
        self._portals = portals
        self._clock = clock
        self._max_workers = max_workers
        self._history_size = history_size
        self._llm_deadline = llm_deadline
        self._refresh_lock = asyncio.Lock()

    # ============================================================================
    # Read path
    # ============================================================================

    async def get_latest(self) -> CacheEntry | None:
        """Latest entry without ever refreshing."""
        return await asyncio.to_thread(self.repository.get_latest)

    async def get_current(self) -> CacheEntry:
        """
        Latest entry regardless of age; refreshes only when the cache is empty.

        Raises:
            RefreshError: If the cache is empty and the refresh fails
        """
        entry = await self.get_latest()
        if entry is not None:
            return entry

        async with self._refresh_lock:
            # another caller may have filled the cache while we waited
            entry = await self.get_latest()
            if entry is not None:
                return entry
            logger.info("News cache is empty, running first refresh")
            return await self._refresh_with_fallback()

    async def needs_refresh(self, now: datetime | None = None) -> bool:
        entry = await self.get_latest()
        return entry is None or is_stale(entry, now or self._clock())

    # ============================================================================
    # Refresh
    # ============================================================================

    async def refresh(self) -> CacheEntry:
        """
        Run the pipeline and persist a new entry.

        Returns:
            The new entry, or the previous one if this attempt failed

        Raises:
            RefreshError: If the attempt failed and there is no previous entry
        """
        async with self._refresh_lock:
            return await self._refresh_with_fallback()

    async def _refresh_with_fallback(self) -> CacheEntry:
        try:
            with time_block("news.refresh"):
                return await self._run_pipeline()
        except RefreshError as e:
            counter("news.refresh.failed")
            previous = await self.get_latest()
            if previous is None:
                logger.error("Refresh failed and no cached news exists: %s", e)
                raise
            logger.warning(
                "Refresh failed (%s), falling back to cache entry %s from %s",
                e,
                previous.id,
                previous.created_at.isoformat(),
            )
            log_event("news.refresh.fallback", error=type(e).__name__, entry_id=previous.id)
            return previous

    async def _run_pipeline(self) -> CacheEntry:
        candidates = await self._collect_candidates()
        if not candidates:
            raise NoContentError("No candidates scraped from any portal")

        try:
            selection = await asyncio.wait_for(
                asyncio.to_thread(self.transformer.select_and_categorize, candidates),
                timeout=self._llm_deadline,
            )
        except TimeoutError as e:
            counter("news.refresh.selection_timeout")
            raise SelectionError(f"Selection call exceeded {self._llm_deadline:g}s") from e
        by_url = {candidate.url: candidate for candidate in candidates}
        pairs = self._filter_selection(selection, by_url)

        details = await self._fetch_details(list(dict.fromkeys(pair.url for pair in pairs)))
        fetched = {url: detail for url, detail in details.items() if detail.ok}
        dropped = sum(1 for pair in pairs if pair.url not in fetched)
        if dropped:
            counter("news.refresh.dropped_articles", dropped)
            logger.warning("Dropping %d selected articles whose detail fetch failed", dropped)

        enrichments = await self._enrich(fetched, by_url)

        articles = [
            Article(
                category=pair.category,
                title=enrichments[pair.url].title,
                description=enrichments[pair.url].description,
                url=pair.url,
                explained=enrichments[pair.url].explanation,
                portal=by_url[pair.url].portal,
                content=fetched[pair.url].content,
            )
            for pair in pairs
            if pair.url in fetched
        ]
        if not articles:
            raise EmptyRefreshError(f"None of the {len(pairs)} selected articles could be fetched")

        entry = await asyncio.to_thread(self.repository.save, articles, self._clock())
        await self._prune()

        counter("news.refresh.success")
        log_event(
            "news.refresh.complete",
            entry_id=entry.id,
            candidates=len(candidates),
            selected=len(pairs),
            articles=entry.article_count,
        )
        return entry

    async def _collect_candidates(self) -> list[ArticleCandidate]:
        portals = list(self._portals())
        if not portals:
            logger.error("No news portals configured (NEWS_PORTALS is empty)")
            return []

        results = await asyncio.gather(
            *(asyncio.to_thread(self._fetch_candidates, portal) for portal in portals),
            return_exceptions=True,
        )

        candidates: list[ArticleCandidate] = []
        seen: set[str] = set()
        for portal, result in zip(portals, results, strict=True):
            if isinstance(result, BaseException):
                counter("news.refresh.portal_failed")
                logger.warning("Portal %s failed: %s", portal, result)
                continue
            for candidate in result:
                if candidate.url not in seen:
                    seen.add(candidate.url)
                    candidates.append(candidate)

        logger.info("Collected %d candidates from %d portals", len(candidates), len(portals))
        return candidates

    @staticmethod
    def _filter_selection(
        selection: Sequence[SelectedArticle],
        by_url: dict[str, ArticleCandidate],
    ) -> list[SelectedArticle]:
        """Drop unknown urls and duplicates.

        A url appears at most once per category and in at most one topical
        category; a PRINCIPALES url may also appear in one topical category.
        """
        kept: list[SelectedArticle] = []
        seen_pairs: set[tuple[str, str]] = set()
        topical_owner: dict[str, str] = {}

        for pair in selection:
            if pair.url not in by_url:
                counter("news.selection.unknown_url")
                logger.warning("Selection returned a url that was not a candidate: %s", pair.url)
                continue
            if (pair.category, pair.url) in seen_pairs:
                continue
            if pair.category != PRINCIPAL_CATEGORY:
                owner = topical_owner.setdefault(pair.url, pair.category)
                if owner != pair.category:
                    counter("news.selection.cross_category_duplicate")
                    logger.debug("Dropping %s from %s, already in %s", pair.url, pair.category, owner)
                    continue
            seen_pairs.add((pair.category, pair.url))
            kept.append(pair)

        return kept

    async def _fetch_details(self, urls: list[str]) -> dict[str, ArticleDetail]:
        results = await asyncio.gather(
            *(asyncio.to_thread(self._fetch_detail, url) for url in urls),
            return_exceptions=True,
        )
        details: dict[str, ArticleDetail] = {}
        for url, result in zip(urls, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Detail fetch for %s raised: %s", url, result)
                result = ArticleDetail(url=url, error=str(result) or type(result).__name__)
            details[url] = result
        return details

    async def _enrich(
        self,
        fetched: dict[str, ArticleDetail],
        by_url: dict[str, ArticleCandidate],
    ) -> dict[str, Enrichment]:
        semaphore = asyncio.Semaphore(self._max_workers)

        async def enrich_one(url: str) -> Enrichment:
            detail = fetched[url]
            title = detail.title or by_url[url].title
            async with semaphore:
                return await asyncio.wait_for(
                    asyncio.to_thread(self.transformer.enrich_article, title, detail.content, by_url[url].excerpt),
                    timeout=self._llm_deadline,
                )

        urls = list(fetched)
        results = await asyncio.gather(*(enrich_one(url) for url in urls), return_exceptions=True)

        enrichments: dict[str, Enrichment] = {}
        for url, result in zip(urls, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Enrichment for %s raised, using fallback: %s", url, result)
                detail = fetched[url]
                result = fallback_enrichment(detail.title or by_url[url].title, detail.content, by_url[url].excerpt)
            enrichments[url] = result
        return enrichments

    async def _prune(self) -> None:
        try:
            await asyncio.to_thread(self.repository.prune, self._history_size)
        except Exception:
            # a later refresh prunes again
            counter("news.refresh.prune_failed")
            logger.exception("Failed to prune news cache history")
