"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for MultiFeed tests.

Network access is replaced by FakeSession, which serves canned responses
through the same ``async with session.get(...)`` protocol aiohttp uses.
"""

import asyncio
import os
import sys
import tempfile
from pathlib import Path
from typing import Dict, Optional, Union

import aiohttp
import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
_test_log_dir = Path(tempfile.gettempdir()) / "multifeed_tests"
os.environ["MULTIFEED_LOGGING__FILE_PATH"] = str(_test_log_dir / "multifeed_test.log")
os.environ["MULTIFEED_FEED__SITE_URL"] = "https://feeds.example.org"
os.environ.pop("PORT", None)


# ============================================================================
# Sample Documents
# ============================================================================

SAMPLE_RSS_FEED = '''<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:content="http://purl.org/rss/1.0/modules/content/"
     xmlns:dc="http://purl.org/dc/elements/1.1/">
    <channel>
        <title>Test RSS Feed</title>
        <link>https://rss.example.com/</link>
        <description>Test feed for unit testing</description>
        <item>
            <title>RSS Article One</title>
            <link>https://rss.example.com/one</link>
            <description>Short &lt;b&gt;teaser&lt;/b&gt; text</description>
            <content:encoded><![CDATA[<p>Full body</p><img src="https://rss.example.com/one.png" />]]></content:encoded>
            <dc:creator>Alice Writer</dc:creator>
            <pubDate>Thu, 05 Sep 2024 12:00:00 GMT</pubDate>
            <guid>rss-one</guid>
        </item>
        <item>
            <title>RSS Article Two</title>
            <link>https://rss.example.com/two</link>
            <description>Plain description only</description>
            <enclosure url="https://rss.example.com/two.mp3" length="1234" type="audio/mpeg" />
            <pubDate>Wed, 04 Sep 2024 15:30:00 GMT</pubDate>
        </item>
    </channel>
</rss>'''

SAMPLE_ATOM_FEED = '''<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom"
      xmlns:media="http://search.yahoo.com/mrss/"
      xmlns:yt="http://www.youtube.com/xml/schemas/2015">
    <title>Test Video Channel</title>
    <link href="https://www.youtube.com/channel/UC_test"/>
    <id>yt:channel:UC_test</id>
    <updated>2024-09-07T00:00:01Z</updated>
    <entry>
        <id>yt:video:abc123</id>
        <title>Channel Upload</title>
        <link rel="alternate" href="https://www.youtube.com/watch?v=abc123"/>
        <author><name>Test Channel</name></author>
        <published>2024-09-06T10:00:00Z</published>
        <updated>2024-09-06T11:00:00Z</updated>
        <media:group>
            <media:title>Channel Upload</media:title>
            <media:content url="https://www.youtube.com/v/abc123?version=3" type="application/x-shockwave-flash" width="640" height="390"/>
            <media:thumbnail url="https://i.ytimg.com/vi/abc123/hqdefault.jpg" width="480" height="360"/>
            <media:description>Video description text</media:description>
        </media:group>
    </entry>
</feed>'''

SAMPLE_JSON_FEED = '''{
    "version": "https://jsonfeed.org/version/1.1",
    "title": "Test JSON Feed",
    "home_page_url": "https://json.example.com/",
    "items": [
        {
            "id": "1",
            "url": "https://json.example.com/first",
            "title": "JSON First",
            "content_html": "<p>JSON body</p>",
            "summary": "JSON summary",
            "date_published": "2024-09-06T08:00:00Z",
            "image": "https://json.example.com/first.jpg",
            "authors": [{"name": "Jay Son"}]
        },
        {
            "id": "2",
            "url": "https://json.example.com/second",
            "title": "JSON Second",
            "content_text": "Plain text body",
            "date_published": "2024-09-01T08:00:00Z",
            "attachments": [{"url": "https://json.example.com/clip.webm", "mime_type": "video/webm"}]
        }
    ]
}'''


# ============================================================================
# HTTP Fakes
# ============================================================================


class FakeResponse:
    """Stand-in for ``aiohttp.ClientResponse`` used as an async context manager."""

    def __init__(
        self,
        body: Union[str, bytes],
        status: int = 200,
        content_type: str = "application/rss+xml",
        reason: str = "OK",
        gate: Optional[asyncio.Event] = None,
    ):
        self.status = status
        self.reason = reason
        self.headers = {"Content-Type": content_type} if content_type else {}
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        self._gate = gate

    async def read(self) -> bytes:
        if self._gate is not None:
            await self._gate.wait()
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Maps URLs to FakeResponses or exceptions; unknown URLs fail to connect."""

    def __init__(self, routes: Optional[Dict[str, Union[FakeResponse, Exception]]] = None):
        self.routes = dict(routes or {})
        self.requested = []

    def get(self, url, **kwargs):
        self.requested.append(url)
        outcome = self.routes.get(url)
        if outcome is None:
            raise aiohttp.ClientConnectionError(f"Cannot connect to {url}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


# ============================================================================
# Settings and Component Fixtures
# ============================================================================


@pytest.fixture
def test_settings():
    """Settings with deterministic feed metadata and a short source list."""
    from multifeed.config.settings import MultiFeedSettings

    return MultiFeedSettings(
        sources=["https://rss.example.com/feed.xml", "https://json.example.com/feed.json"],
        feed={"site_url": "https://feeds.example.org/"},
        fetch={"parallel_feeds": 2, "request_timeout": 5},
    )


@pytest.fixture
def fake_session():
    """Session serving the sample RSS, Atom and JSON documents."""
    return FakeSession({
        "https://rss.example.com/feed.xml": FakeResponse(SAMPLE_RSS_FEED),
        "https://video.example.com/feed.xml": FakeResponse(
            SAMPLE_ATOM_FEED, content_type="application/atom+xml; charset=utf-8"
        ),
        "https://json.example.com/feed.json": FakeResponse(
            SAMPLE_JSON_FEED, content_type="application/feed+json"
        ),
    })


@pytest.fixture
def cache_holder():
    from multifeed.processing.cache import CacheHolder

    return CacheHolder()


@pytest.fixture
def aggregator(cache_holder, test_settings, fake_session):
    """Aggregator wired to the fake session."""
    from multifeed.processing.aggregator import Aggregator

    return Aggregator(cache_holder, settings=test_settings, session=fake_session)


@pytest.fixture
def make_item():
    """Factory for canonical Items with sensible defaults."""
    from datetime import datetime, timezone

    from multifeed.models import Item

    def _make(link="https://example.com/item", **overrides):
        fields = {
            "title": "Item",
            "link": link,
            "date": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "source": "https://example.com/feed.xml",
        }
        fields.update(overrides)
        return Item(**fields)

    return _make
