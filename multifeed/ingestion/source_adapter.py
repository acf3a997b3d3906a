"""
Source Adapter
==============

Fetches one feed source and turns its body into raw, format-specific items.

A source is interpreted as JSON Feed first when the response declares a JSON
media type and the body carries a top-level ``items`` array. Anything else,
including JSON-typed responses that turn out not to be JSON Feeds, goes through
feedparser as RSS/Atom. Both paths work on the same downloaded body.
"""

import asyncio
import calendar
import io
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import feedparser

from multifeed.models import FetchedSource, RawItem
from multifeed.utils.logging import get_logger_for_component
from multifeed.utils.exceptions import ErrorCode, FeedFetchError, FeedParseError

JSON_CONTENT_TYPES = ("application/json", "text/json", "+json")

ACCEPT_HEADER = (
    "application/feed+json, application/json, application/rss+xml, "
    "application/atom+xml, application/xml, text/xml, */*"
)

# media:content entries with these mediums/types are never used as images
NON_IMAGE_MEDIUMS = {"video", "audio", "document", "executable"}
NON_IMAGE_TYPE_PREFIXES = ("video/", "audio/", "application/")


def is_json_content_type(content_type: Optional[str]) -> bool:
    """True when a Content-Type header announces a JSON document."""
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return any(marker in media_type for marker in JSON_CONTENT_TYPES)


def _text(data: Dict[str, Any], key: str) -> Optional[str]:
    """String value of ``data[key]``, or None for missing or non-string values."""
    value = data.get(key)
    return value if isinstance(value, str) and value else None


def _first_object(value: Any) -> Optional[Dict[str, Any]]:
    """First element of a JSON array when it is an object."""
    if isinstance(value, list) and value and isinstance(value[0], dict):
        return value[0]
    return None


class SourceAdapter:
    """Fetch a feed source and produce ``RawItem``s tagged with their origin."""

    def __init__(self, user_agent: str = "MultiFeed/1.0", timeout: int = 30):
        """Initialize source adapter.

        Args:
            user_agent: User-Agent header sent upstream
            timeout: Per-request timeout in seconds
        """
        self.user_agent = user_agent
        self.timeout = timeout
        self.logger = get_logger_for_component("source_adapter")

    async def fetch_source(
        self, feed_url: str, session: aiohttp.ClientSession
    ) -> FetchedSource:
        """Fetch and interpret a single source.

        Args:
            feed_url: Source locator
            session: aiohttp session for requests

        Returns:
            FetchedSource with raw items in feed order

        Raises:
            FeedFetchError: If the source cannot be downloaded
            FeedParseError: If the body is neither a JSON Feed nor RSS/Atom
        """
        body, content_type = await self._download(feed_url, session)

        if is_json_content_type(content_type):
            fetched = self.parse_json_feed(body, feed_url)
            if fetched is not None:
                self.logger.info(
                    f"Parsed {len(fetched.items)} JSON Feed items from {feed_url}"
                )
                return fetched
            self.logger.debug(
                f"{feed_url} declared {content_type} but is not a JSON Feed, trying RSS/Atom"
            )

        fetched = self.parse_xml_feed(body, feed_url)
        self.logger.info(f"Parsed {len(fetched.items)} RSS/Atom items from {feed_url}")
        return fetched

    async def _download(
        self, feed_url: str, session: aiohttp.ClientSession
    ) -> Tuple[bytes, str]:
        """GET the source and return its body and declared content type."""
        headers = {"User-Agent": self.user_agent, "Accept": ACCEPT_HEADER}
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with session.get(feed_url, headers=headers, timeout=timeout) as response:
                if response.status != 200:
                    raise FeedFetchError(
                        f"HTTP {response.status}: {response.reason}",
                        feed_url=feed_url,
                        error_code=ErrorCode.FEED_HTTP_ERROR,
                    )
                body = await response.read()
                return body, response.headers.get("Content-Type", "")

        except asyncio.TimeoutError as e:
            raise FeedFetchError(
                f"Request timeout after {self.timeout}s",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            ) from e
        except aiohttp.ClientError as e:
            raise FeedFetchError(
                f"Failed to fetch feed: {e}",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_NETWORK_ERROR,
            ) from e

    def parse_json_feed(self, body: bytes, feed_url: str) -> Optional[FetchedSource]:
        """Interpret ``body`` as JSON Feed 1.x.

        Returns:
            FetchedSource, or None when the body is not JSON or has no ``items`` array
        """
        try:
            data = json.loads(body)
        except ValueError:
            return None

        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            return None

        items: List[RawItem] = []
        for entry in data["items"]:
            if not isinstance(entry, dict):
                self.logger.warning(f"Skipping non-object item in JSON Feed {feed_url}")
                continue
            try:
                items.append(self._json_item(entry, feed_url))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                self.logger.warning(
                    f"Failed to parse item in JSON Feed {feed_url}: {e}",
                    extra={"entry_title": _text(entry, "title") or "Unknown"},
                )
                continue

        return FetchedSource(
            title=_text(data, "title") or feed_url, items=items, format="json"
        )

    def _json_item(self, entry: Dict[str, Any], feed_url: str) -> RawItem:
        """Map one JSON Feed item onto a RawItem.

        Only string values are taken; anything else counts as missing.
        """
        enclosure = None
        attachment = _first_object(entry.get("attachments"))
        if attachment and _text(attachment, "url"):
            enclosure = {
                "url": _text(attachment, "url"),
                "type": _text(attachment, "mime_type") or "",
            }

        # 1.0 has a single ``author``; 1.1 replaced it with ``authors``
        author = entry.get("author")
        if not isinstance(author, dict):
            author = _first_object(entry.get("authors"))

        authors = []
        if author and (_text(author, "name") or _text(author, "url")):
            authors.append({"name": _text(author, "name"), "link": _text(author, "url")})

        return RawItem(
            title=_text(entry, "title") or "(untitled)",
            link=_text(entry, "url") or _text(entry, "external_url") or "",
            published=_text(entry, "date_published") or _text(entry, "date_modified"),
            content=_text(entry, "content_html") or _text(entry, "content_text") or "",
            snippet=_text(entry, "summary") or "",
            enclosure=enclosure,
            image=_text(entry, "image") or _text(entry, "banner_image"),
            authors=authors,
            source=feed_url,
        )

    def parse_xml_feed(self, body: bytes, feed_url: str) -> FetchedSource:
        """Interpret ``body`` as RSS/Atom with feedparser.

        Raises:
            FeedParseError: If nothing feed-like could be recovered
        """
        parsed = feedparser.parse(io.BytesIO(body))

        if parsed.bozo and not parsed.entries:
            reason = parsed.get("bozo_exception") or "Invalid XML structure"
            raise FeedParseError(f"Feed parse error: {reason}", feed_url=feed_url)

        if not parsed.entries and not parsed.get("version"):
            raise FeedParseError("Body is not a recognizable feed", feed_url=feed_url)

        if parsed.bozo:
            # Many feeds have minor formatting issues; keep what parsed
            self.logger.warning(
                f"Feed has parse warnings but contains entries: {feed_url}: "
                f"{parsed.get('bozo_exception')}"
            )

        items: List[RawItem] = []
        for entry in parsed.entries:
            try:
                items.append(self._xml_item(entry, feed_url))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                self.logger.warning(
                    f"Failed to parse entry in feed {feed_url}: {e}",
                    extra={"entry_title": entry.get("title", "Unknown")},
                )
                continue

        title = parsed.feed.get("title") or feed_url
        return FetchedSource(title=title, items=items, format=parsed.get("version") or "xml")

    def _xml_item(self, entry: Any, feed_url: str) -> RawItem:
        """Map one feedparser entry onto a RawItem."""
        content_encoded = None
        for content in entry.get("content") or []:
            if content.get("value"):
                content_encoded = content["value"]
                break

        enclosure = None
        for link in entry.get("enclosures") or []:
            href = link.get("href") or link.get("url")
            if href:
                enclosure = {"url": href, "type": link.get("type") or ""}
                break

        authors = [
            {"name": author.get("name"), "link": author.get("href")}
            for author in entry.get("authors") or []
            if author.get("name")
        ]
        creator = (entry.get("author_detail") or {}).get("name") or entry.get("author")

        # feedparser flattens media:group into media_content, so the raw list
        # doubles as the media group and images are filtered out of it
        all_media = [dict(m) for m in entry.get("media_content") or [] if m.get("url")]
        media_group = list(all_media)
        if entry.get("media_player"):
            media_group.append(dict(entry["media_player"]))

        return RawItem(
            title=entry.get("title"),
            link=entry.get("link"),
            guid=entry.get("id"),
            published=self._entry_date(entry),
            content_encoded=content_encoded,
            content=entry.get("description") if content_encoded is None else None,
            snippet=entry.get("summary"),
            enclosure=enclosure,
            creator=creator,
            authors=authors,
            media_content=[m for m in all_media if self._is_image_media(m)],
            media_thumbnail=[
                dict(m) for m in entry.get("media_thumbnail") or [] if m.get("url")
            ],
            media_group=media_group,
            source=feed_url,
        )

    @staticmethod
    def _is_image_media(media: Dict[str, Any]) -> bool:
        medium = (media.get("medium") or "").lower()
        mime_type = (media.get("type") or "").lower()
        if medium in NON_IMAGE_MEDIUMS:
            return False
        return not mime_type.startswith(NON_IMAGE_TYPE_PREFIXES)

    @staticmethod
    def _entry_date(entry: Any) -> Optional[Any]:
        """Publication date as UTC datetime, the raw string, or None."""
        for field in ("published_parsed", "updated_parsed", "created_parsed"):
            date_tuple = entry.get(field)
            if date_tuple:
                try:
                    # feedparser normalizes parsed dates to UTC struct_time
                    return datetime.fromtimestamp(calendar.timegm(date_tuple), tz=timezone.utc)
                except (ValueError, OverflowError):
                    continue

        return entry.get("published") or entry.get("updated")
