"""
Feed Aggregator
===============

Refresh cycle: fetch every configured source concurrently, normalize their
entries, deduplicate by canonical link, order by date and atomically publish
the result as the new Cache snapshot.

A refresh never raises. Failing sources are logged and contribute no items;
if every source fails the cycle still publishes an empty, valid Cache.
"""

import asyncio
import ssl
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

import aiohttp
import certifi

from multifeed.config.settings import MultiFeedSettings, get_settings
from multifeed.ingestion.source_adapter import SourceAdapter
from multifeed.models import Cache, FetchedSource, Item, SourceReport
from multifeed.processing.cache import CacheHolder
from multifeed.processing.normalizer import normalize
from multifeed.utils.exceptions import (
    ErrorCode,
    FeedFetchError,
    MultiFeedError,
    handle_exception,
)
from multifeed.utils.logging import PerformanceLogger, get_logger_for_component

BODY_READ_GRACE_SECONDS = 5


@dataclass
class SourceResult:
    """Result of fetching one source."""

    source: str
    success: bool
    fetched: Optional[FetchedSource] = None
    error: Optional[str] = None
    fetch_time: Optional[datetime] = None

    def __post_init__(self):
        if not self.fetch_time:
            self.fetch_time = datetime.now(timezone.utc)

    @property
    def item_count(self) -> int:
        return len(self.fetched.items) if self.fetched else 0

    def to_report(self) -> SourceReport:
        return SourceReport(
            source=self.source,
            success=self.success,
            item_count=self.item_count,
            format=self.fetched.format if self.fetched else None,
            error=self.error,
            fetched_at=self.fetch_time,
        )


def deduplicate(items: Iterable[Item]) -> List[Item]:
    """Keep the first Item seen for every canonical link, in input order."""
    seen = set()
    unique = []
    for item in items:
        key = item.link.strip()
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def sort_by_date(items: Iterable[Item]) -> List[Item]:
    """Newest first; equal dates keep their input (first-seen) order.

    ``sorted`` is stable even with ``reverse=True``.
    """
    return sorted(items, key=lambda item: item.date, reverse=True)


class Aggregator:
    """Runs refresh cycles and publishes the results to a CacheHolder."""

    def __init__(
        self,
        cache_holder: CacheHolder,
        sources: Optional[Sequence[str]] = None,
        adapter: Optional[SourceAdapter] = None,
        settings: Optional[MultiFeedSettings] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize aggregator.

        Args:
            cache_holder: Where finished snapshots are published
            sources: Source locators in priority order (default from config)
            adapter: Source adapter (default built from config)
            settings: Application settings (default global settings)
            session: Shared HTTP session; when omitted one is opened per refresh
        """
        self.settings = settings or get_settings()
        self.cache_holder = cache_holder
        self.sources = list(sources) if sources is not None else list(self.settings.sources)
        self.max_concurrent = self.settings.fetch.parallel_feeds
        self.timeout = self.settings.fetch.request_timeout
        # Hard bound per source, covering slow body reads after the request timeout
        self.source_deadline = self.timeout + BODY_READ_GRACE_SECONDS
        self.adapter = adapter or SourceAdapter(
            user_agent=self.settings.fetch.user_agent, timeout=self.timeout
        )
        self.session = session
        self.logger = get_logger_for_component("aggregator")

        self._refreshing = False

    @property
    def refreshing(self) -> bool:
        """True while a refresh cycle is in flight."""
        return self._refreshing

    @asynccontextmanager
    async def get_session(self):
        """Yield the injected session, or a configured aiohttp session for one cycle."""
        if self.session is not None:
            yield self.session
            return

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(
            ssl=ssl_context,
            limit=self.max_concurrent * 2,
            limit_per_host=5,
        )
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        async with aiohttp.ClientSession(connector=connector, timeout=timeout) as session:
            yield session

    async def fetch_one(self, source: str, session: aiohttp.ClientSession) -> SourceResult:
        """Fetch a single source, converting every failure into a failed result."""
        start_time = datetime.now(timezone.utc)
        try:
            fetched = await asyncio.wait_for(
                self.adapter.fetch_source(source, session), timeout=self.source_deadline
            )
            return SourceResult(
                source=source, success=True, fetched=fetched, fetch_time=start_time
            )

        except asyncio.TimeoutError:
            error = FeedFetchError(
                f"Source did not complete within {self.source_deadline}s",
                feed_url=source,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            )
            self.logger.warning(f"Failed to read {source}: {error}")
            return SourceResult(
                source=source, success=False, error=str(error), fetch_time=start_time
            )

        except MultiFeedError as e:
            self.logger.warning(f"Failed to read {source}: {e}")
            return SourceResult(
                source=source, success=False, error=str(e), fetch_time=start_time
            )

        except Exception as e:
            error = handle_exception(e, self.logger, "fetch_source", {"feed_url": source})
            return SourceResult(
                source=source, success=False, error=str(error), fetch_time=start_time
            )

    async def fetch_all(self, sources: Sequence[str]) -> List[SourceResult]:
        """Fetch all sources concurrently.

        Returns:
            One SourceResult per source, in the same order as ``sources``
        """
        if not sources:
            return []

        self.logger.info(f"Starting concurrent fetch of {len(sources)} sources")

        async with self.get_session() as session:
            semaphore = asyncio.Semaphore(self.max_concurrent)

            async def fetch_with_semaphore(url: str) -> SourceResult:
                async with semaphore:
                    return await self.fetch_one(url, session)

            results = await asyncio.gather(*(fetch_with_semaphore(url) for url in sources))

        successful = sum(1 for r in results if r.success)
        total_items = sum(r.item_count for r in results)
        self.logger.info(
            f"Source fetch complete: {successful}/{len(results)} sources successful, "
            f"{total_items} raw items"
        )
        return list(results)

    def merge(self, results: Sequence[SourceResult]) -> List[Item]:
        """Normalize, deduplicate and order the items of ``results``.

        Iteration order is source order, then feed order within a source,
        which is what decides which duplicate survives.
        """
        normalized: List[Item] = []
        for result in results:
            if not result.fetched:
                continue
            for raw in result.fetched.items:
                try:
                    item = normalize(raw, result.source)
                except (AttributeError, KeyError, TypeError, ValueError) as e:
                    self.logger.warning(
                        f"Skipping malformed entry from {result.source}: {e}",
                        extra={"entry_title": raw.title or "Unknown"},
                    )
                    continue
                if item is not None:
                    normalized.append(item)

        return sort_by_date(deduplicate(normalized))

    async def refresh(self, sources: Optional[Sequence[str]] = None) -> Cache:
        """Run one refresh cycle and publish the new Cache.

        If a cycle is already running the trigger is skipped and the current
        snapshot is returned unchanged.

        Args:
            sources: Override the configured source list for this cycle

        Returns:
            The published (or, when skipped, current) Cache snapshot
        """
        if self._refreshing:
            self.logger.warning("Refresh already in progress, skipping this trigger")
            return self.cache_holder.snapshot()

        sources = list(sources) if sources is not None else self.sources
        self._refreshing = True
        try:
            with PerformanceLogger(self.logger, "refresh cycle", source_count=len(sources)) as perf:
                try:
                    results = await self.fetch_all(sources)
                except Exception as e:
                    # Session setup failed; every source counts as failed
                    error = handle_exception(e, self.logger, "fetch_all")
                    results = [
                        SourceResult(source=s, success=False, error=str(error)) for s in sources
                    ]

                items = self.merge(results)
                cache = Cache(
                    items=tuple(items),
                    last_build=datetime.now(timezone.utc),
                    source_reports=tuple(r.to_report() for r in results),
                )
                self.cache_holder.replace(cache)
                perf.add_context(item_count=cache.count, failed_sources=len(cache.failed_sources))

            self.logger.info(
                f"Refreshed {cache.count} items @ {cache.last_build.isoformat()}"
            )
            return cache
        finally:
            self._refreshing = False
