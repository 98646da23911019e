"""
RateMyProfessor review fetcher.

Resolves professor review-page URLs to ProfessorReview records:
1. Serves what it can from the ReviewCache
2. Scrapes the rest in small sequential batches (bounded fan-out, per-request
   timeout, pause between batches) so RMP is not hammered
3. Caches every outcome, failures included, as an error marker

Concurrent turns asking for the same professor share one in-flight scrape.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

import aiohttp

from ..core.config import settings
from ..core.review_cache import ReviewCache
from ..models.schema import ReviewEntry, ReviewFetchError
from .rmp_page_parser import parse_professor_page, professor_id_from_url

logger = logging.getLogger(__name__)


class ReviewFetcher:
    """Fetches RMP professor pages through a shared ReviewCache"""

    def __init__(
        self,
        cache: ReviewCache,
        concurrency: int = settings.scrape_concurrency,
        timeout: float = settings.scrape_timeout,
        batch_delay: float = settings.scrape_batch_delay,
        user_agent: str = settings.user_agent,
    ):
        self.cache = cache
        self.concurrency = max(1, concurrency)
        self.timeout = timeout
        self.batch_delay = batch_delay
        self.headers = {"User-Agent": user_agent}
        self._in_flight: Dict[str, "asyncio.Future[ReviewEntry]"] = {}

    async def fetch_page(self, session: aiohttp.ClientSession, url: str) -> str:
        """GET a professor page and return its HTML."""
        async with session.get(url) as response:
            response.raise_for_status()
            return await response.text()

    async def fetch_reviews(self, urls: List[Optional[str]]) -> Dict[str, ReviewEntry]:
        """Return professor id -> review record (or error marker) for urls."""
        results: Dict[str, ReviewEntry] = {}
        urls_to_scrape: Dict[str, str] = {}
        cache_hits = 0

        for url in urls:
            if not url:
                continue
            prof_id = professor_id_from_url(url)
            if prof_id in results or prof_id in urls_to_scrape:
                continue

            cached = self.cache.get(prof_id)
            if cached is not None:
                results[prof_id] = cached
                cache_hits += 1
            else:
                urls_to_scrape[prof_id] = url

        logger.info(
            f"Cache check complete: {cache_hits} cache hits, {len(urls_to_scrape)} URLs need scraping"
        )
        if not urls_to_scrape:
            return results

        scraping_start = time.time()
        pending = list(urls_to_scrape.items())
        batches = [
            pending[i : i + self.concurrency]
            for i in range(0, len(pending), self.concurrency)
        ]

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(headers=self.headers, timeout=timeout) as session:
            for i, batch in enumerate(batches):
                logger.info(f"Processing batch {i + 1}/{len(batches)} ({len(batch)} URLs)")
                entries = await asyncio.gather(
                    *(self._scrape_shared(session, prof_id, url) for prof_id, url in batch)
                )
                for (prof_id, _), entry in zip(batch, entries):
                    results[prof_id] = entry

                if i < len(batches) - 1 and self.batch_delay > 0:
                    await asyncio.sleep(self.batch_delay)

        logger.info(
            f"RMP scraping complete in {(time.time() - scraping_start) * 1000:.0f}ms: "
            f"{cache_hits} cache hits, {len(urls_to_scrape)} cache misses"
        )
        return results

    async def _scrape_shared(
        self, session: aiohttp.ClientSession, prof_id: str, url: str
    ) -> ReviewEntry:
        """Scrape once per professor id across concurrent callers."""
        in_flight = self._in_flight.get(prof_id)
        if in_flight is not None:
            logger.debug(f"Joining in-flight scrape for professor {prof_id}")
            try:
                return await asyncio.shield(in_flight)
            except asyncio.CancelledError:
                if not in_flight.cancelled():
                    raise
                # The owning turn was cancelled, not us: scrape it ourselves

        # Another turn may have filled the cache since our cache check
        cached = self.cache.get(prof_id)
        if cached is not None:
            return cached

        future: "asyncio.Future[ReviewEntry]" = asyncio.get_running_loop().create_future()
        self._in_flight[prof_id] = future
        try:
            entry = await self._scrape_professor(session, prof_id, url)
            future.set_result(entry)
            return entry
        except asyncio.CancelledError:
            future.cancel()
            raise
        finally:
            if self._in_flight.get(prof_id) is future:
                del self._in_flight[prof_id]

    async def _scrape_professor(
        self, session: aiohttp.ClientSession, prof_id: str, url: str
    ) -> ReviewEntry:
        logger.info(f"Scraping fresh data for professor {prof_id}")
        entry: ReviewEntry
        try:
            html = await self.fetch_page(session, url)
            entry = parse_professor_page(html, url)
            logger.info(f"Successfully scraped professor {prof_id}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"Error scraping professor {prof_id}: {message}")
            entry = ReviewFetchError(error=message)

        # Errors are cached too to avoid repeated failed requests
        self.cache.put(prof_id, entry)
        return entry
