"""
Unit Tests for the Aggregator
=============================

Tests for concurrent fetching, merge semantics (dedup, ordering, link
filtering) and refresh cycle behaviour.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeResponse, FakeSession, SAMPLE_JSON_FEED, SAMPLE_RSS_FEED
from multifeed.models import Cache, FetchedSource, RawItem
from multifeed.processing.aggregator import (
    Aggregator,
    SourceResult,
    deduplicate,
    sort_by_date,
)
from multifeed.processing.cache import CacheHolder

RSS_URL = "https://rss.example.com/feed.xml"
JSON_URL = "https://json.example.com/feed.json"

SCENARIO_RSS = '''<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
    <channel>
        <title>Scenario RSS</title>
        <link>https://rss.example.com/</link>
        <description>One item</description>
        <item>
            <title>A from RSS</title>
            <link>https://example.com/a</link>
            <pubDate>Mon, 01 Jan 2024 00:00:00 GMT</pubDate>
        </item>
    </channel>
</rss>'''

SCENARIO_JSON = '''{
    "version": "https://jsonfeed.org/version/1.1",
    "title": "Scenario JSON",
    "items": [
        {"id": "a", "url": "https://example.com/a", "title": "A from JSON", "date_published": "2024-01-02T00:00:00Z"},
        {"id": "b", "url": "https://example.com/b", "title": "B from JSON", "date_published": "2023-12-01T00:00:00Z"}
    ]
}'''

NO_LINK_RSS = '''<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
    <channel>
        <title>Linkless</title>
        <link>https://linkless.example.com/</link>
        <description>Items without links</description>
        <item>
            <title>Orphan</title>
            <description>No link and no guid</description>
            <pubDate>Mon, 01 Jan 2024 00:00:00 GMT</pubDate>
        </item>
        <item>
            <title>Has link</title>
            <link>https://linkless.example.com/kept</link>
            <pubDate>Mon, 01 Jan 2024 00:00:00 GMT</pubDate>
        </item>
    </channel>
</rss>'''


def assert_cache_invariants(cache: Cache):
    links = [item.link for item in cache.items]
    assert all(links), "every item has a link"
    assert len(links) == len(set(links)), "links are unique"
    dates = [item.date for item in cache.items]
    assert all(a >= b for a, b in zip(dates, dates[1:])), "dates are descending"


def scenario_session():
    return FakeSession({
        RSS_URL: FakeResponse(SCENARIO_RSS),
        JSON_URL: FakeResponse(SCENARIO_JSON, content_type="application/feed+json"),
    })


class TestMergeFunctions:

    def test_deduplicate_first_seen_wins(self, make_item):
        first = make_item("https://example.com/a", title="first")
        second = make_item("https://example.com/a", title="second")
        other = make_item("https://example.com/b")

        assert deduplicate([first, other, second]) == [first, other]

    def test_sort_is_descending_and_stable(self, make_item):
        day = datetime(2024, 1, 1, tzinfo=timezone.utc)
        old = make_item("https://example.com/old", date=day - timedelta(days=1))
        tie_one = make_item("https://example.com/tie-1", date=day)
        tie_two = make_item("https://example.com/tie-2", date=day)
        new = make_item("https://example.com/new", date=day + timedelta(days=1))

        assert sort_by_date([old, tie_one, tie_two, new]) == [new, tie_one, tie_two, old]
        assert sort_by_date([tie_two, tie_one]) == [tie_two, tie_one]

    def test_merge_skips_failed_sources(self, cache_holder, test_settings):
        aggregator = Aggregator(cache_holder, settings=test_settings, session=FakeSession())
        results = [
            SourceResult(source=RSS_URL, success=False, error="boom"),
            SourceResult(
                source=JSON_URL,
                success=True,
                fetched=FetchedSource(
                    title="t",
                    items=[RawItem(link="https://example.com/x", published="2024-01-01")],
                ),
            ),
        ]

        [item] = aggregator.merge(results)
        assert item.link == "https://example.com/x"
        assert item.source == JSON_URL

    def test_source_result_report(self):
        result = SourceResult(
            source=RSS_URL,
            success=True,
            fetched=FetchedSource(title="t", items=[RawItem(link="a"), RawItem(link="b")], format="rss20"),
        )
        report = result.to_report()
        assert report.item_count == 2
        assert report.format == "rss20"
        assert report.success
        assert report.fetched_at == result.fetch_time


class TestRefresh:

    @pytest.mark.asyncio
    async def test_refresh_merges_all_sources(self, aggregator, cache_holder):
        cache = await aggregator.refresh()

        assert cache_holder.snapshot() is cache
        assert [item.link for item in cache.items] == [
            "https://json.example.com/first",   # 2024-09-06
            "https://rss.example.com/one",      # 2024-09-05
            "https://rss.example.com/two",      # 2024-09-04
            "https://json.example.com/second",  # 2024-09-01
        ]
        assert [r.source for r in cache.source_reports] == [RSS_URL, JSON_URL]
        assert cache.failed_sources == []
        assert_cache_invariants(cache)

    @pytest.mark.asyncio
    async def test_two_source_scenario(self, cache_holder, test_settings):
        """RSS ``a`` is seen first and kept; result is ``a`` (2024-01-01) then ``b``."""
        aggregator = Aggregator(
            cache_holder, sources=[RSS_URL, JSON_URL], settings=test_settings, session=scenario_session()
        )

        cache = await aggregator.refresh()

        assert cache.count == 2
        a, b = cache.items
        assert a.link == "https://example.com/a"
        assert a.title == "A from RSS"
        assert a.date == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert a.source == RSS_URL
        assert b.link == "https://example.com/b"
        assert b.date == datetime(2023, 12, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_source_order_decides_duplicates(self, cache_holder, test_settings):
        aggregator = Aggregator(
            cache_holder, sources=[JSON_URL, RSS_URL], settings=test_settings, session=scenario_session()
        )

        cache = await aggregator.refresh()

        assert [item.title for item in cache.items] == ["A from JSON", "B from JSON"]

    @pytest.mark.asyncio
    async def test_idempotent(self, aggregator):
        first = await aggregator.refresh()
        second = await aggregator.refresh()

        assert [(i.link, i.date) for i in first.items] == [(i.link, i.date) for i in second.items]
        assert second.last_build >= first.last_build

    @pytest.mark.asyncio
    async def test_items_without_link_are_dropped(self, cache_holder, test_settings):
        url = "https://linkless.example.com/feed"
        aggregator = Aggregator(
            cache_holder,
            sources=[url],
            settings=test_settings,
            session=FakeSession({url: FakeResponse(NO_LINK_RSS)}),
        )

        cache = await aggregator.refresh()

        assert [item.link for item in cache.items] == ["https://linkless.example.com/kept"]
        assert cache.source_reports[0].item_count == 2

    @pytest.mark.asyncio
    async def test_partial_failure(self, cache_holder, test_settings):
        broken = "https://broken.example.com/feed"
        session = FakeSession({
            RSS_URL: FakeResponse(SAMPLE_RSS_FEED),
            broken: FakeResponse("Server Error", status=500, reason="Internal Server Error"),
        })
        aggregator = Aggregator(
            cache_holder, sources=[broken, RSS_URL], settings=test_settings, session=session
        )

        cache = await aggregator.refresh()

        assert cache.count == 2
        assert cache.failed_sources == [broken]
        failed = cache.source_reports[0]
        assert not failed.success
        assert "500" in failed.error
        assert failed.item_count == 0

    @pytest.mark.asyncio
    async def test_total_failure_publishes_empty_cache(self, test_settings):
        previous = Cache(last_build=datetime(2020, 1, 1, tzinfo=timezone.utc))
        holder = CacheHolder(previous)
        aggregator = Aggregator(
            holder, sources=[RSS_URL, JSON_URL], settings=test_settings, session=FakeSession()
        )

        cache = await aggregator.refresh()

        assert cache.count == 0
        assert cache.last_build > previous.last_build
        assert cache.failed_sources == [RSS_URL, JSON_URL]
        assert holder.snapshot() is cache

    @pytest.mark.asyncio
    async def test_parse_failure_is_isolated(self, cache_holder, test_settings):
        garbage = "https://garbage.example.com/feed"
        session = FakeSession({
            garbage: FakeResponse("<html><body>maintenance", content_type="text/html"),
            JSON_URL: FakeResponse(SAMPLE_JSON_FEED, content_type="application/json"),
        })
        aggregator = Aggregator(
            cache_holder, sources=[garbage, JSON_URL], settings=test_settings, session=session
        )

        cache = await aggregator.refresh()

        assert cache.count == 2
        assert cache.failed_sources == [garbage]

    @pytest.mark.asyncio
    async def test_source_override(self, aggregator, fake_session):
        cache = await aggregator.refresh(["https://video.example.com/feed.xml"])

        assert fake_session.requested == ["https://video.example.com/feed.xml"]
        [item] = cache.items
        assert item.video.mime_type == "text/html"
        assert item.image_url == "https://i.ytimg.com/vi/abc123/hqdefault.jpg"

    @pytest.mark.asyncio
    async def test_overlapping_refresh_is_skipped(self, cache_holder, test_settings):
        gate = asyncio.Event()
        session = FakeSession({RSS_URL: FakeResponse(SAMPLE_RSS_FEED, gate=gate)})
        aggregator = Aggregator(
            cache_holder, sources=[RSS_URL], settings=test_settings, session=session
        )
        initial = cache_holder.snapshot()

        in_flight = asyncio.create_task(aggregator.refresh())
        while not session.requested:
            await asyncio.sleep(0)
        assert aggregator.refreshing

        skipped = await aggregator.refresh()
        assert skipped is initial
        assert session.requested == [RSS_URL]

        gate.set()
        published = await in_flight

        assert published.count == 2
        assert cache_holder.snapshot() is published
        assert not aggregator.refreshing

    @pytest.mark.asyncio
    async def test_results_keep_configured_order(self, cache_holder, test_settings):
        gate = asyncio.Event()
        slow = "https://slow.example.com/feed"
        session = FakeSession({
            slow: FakeResponse(SCENARIO_RSS, gate=gate),
            JSON_URL: FakeResponse(SCENARIO_JSON, content_type="application/feed+json"),
        })
        aggregator = Aggregator(cache_holder, settings=test_settings, session=session)

        fetch = asyncio.create_task(aggregator.fetch_all([slow, JSON_URL]))
        await asyncio.sleep(0.01)
        gate.set()
        results = await fetch

        assert [r.source for r in results] == [slow, JSON_URL]
        assert all(r.success for r in results)

    @pytest.mark.asyncio
    async def test_malformed_json_items_do_not_abort_refresh(self, cache_holder, test_settings):
        mixed = json.dumps({
            "version": "https://jsonfeed.org/version/1.1",
            "title": 42,
            "items": [
                {"url": 123},
                {
                    "url": "https://json.example.com/survivor",
                    "title": ["not", "a", "string"],
                    "content_html": ["<p>x</p>"],
                    "attachments": {"url": "https://json.example.com/a.mp4"},
                    "authors": "Someone",
                    "date_published": "2024-09-10T00:00:00Z",
                },
                "not an object",
            ],
        })
        session = FakeSession({
            RSS_URL: FakeResponse(SAMPLE_RSS_FEED),
            JSON_URL: FakeResponse(mixed, content_type="application/feed+json"),
        })
        aggregator = Aggregator(
            cache_holder, sources=[RSS_URL, JSON_URL], settings=test_settings, session=session
        )

        cache = await aggregator.refresh()

        assert cache_holder.snapshot() is cache
        assert cache.failed_sources == []
        assert [item.link for item in cache.items] == [
            "https://json.example.com/survivor",
            "https://rss.example.com/one",
            "https://rss.example.com/two",
        ]
        survivor = cache.items[0]
        assert survivor.title == "(untitled)"
        assert survivor.description == ""
        assert survivor.enclosure is None
        assert survivor.author_name == ""

    @pytest.mark.asyncio
    async def test_stalled_source_is_cut_off(self, cache_holder, test_settings):
        stalled = "https://stalled.example.com/feed"
        session = FakeSession({
            stalled: FakeResponse(SCENARIO_RSS, gate=asyncio.Event()),
            JSON_URL: FakeResponse(SCENARIO_JSON, content_type="application/feed+json"),
        })
        aggregator = Aggregator(
            cache_holder, sources=[stalled, JSON_URL], settings=test_settings, session=session
        )
        aggregator.source_deadline = 0.05

        cache = await asyncio.wait_for(aggregator.refresh(), timeout=5)

        assert [item.link for item in cache.items] == [
            "https://example.com/a", "https://example.com/b"
        ]
        report = cache.source_reports[0]
        assert report.source == stalled
        assert not report.success
        assert "F002" in report.error
        assert report.item_count == 0
        assert cache.source_reports[1].success


class TestMergeRobustness:

    def test_entry_rejected_by_normalizer_is_skipped(self, cache_holder, test_settings):
        aggregator = Aggregator(cache_holder, settings=test_settings, session=FakeSession())
        results = [
            SourceResult(
                source=JSON_URL,
                success=True,
                fetched=FetchedSource(
                    title="t",
                    items=[
                        RawItem(link=123),
                        RawItem(link="https://example.com/fine", published="2024-01-01"),
                    ],
                ),
            ),
        ]

        assert [item.link for item in aggregator.merge(results)] == ["https://example.com/fine"]
