"""
Item Normalizer
===============

Maps adapter-specific RawItems onto the canonical Item model.

Normalization is a pure function of the raw record, with one deliberate
exception: an item without a parseable date is stamped with the current time.
"""

import time
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as date_parser

from multifeed.models import Item, MediaReference, RawItem
from multifeed.ingestion.media_extractor import pick_image, pick_video
from multifeed.utils.logging import get_logger_for_component

UNTITLED = "(untitled)"

logger = get_logger_for_component("normalizer")


def parse_date(value: Any) -> Optional[datetime]:
    """Parse a feed date into an aware UTC datetime.

    Accepts datetimes, ``time.struct_time`` (assumed UTC, as feedparser emits)
    and ISO 8601 / RFC 822 strings. Naive results are taken to be UTC.

    Returns:
        Parsed datetime or None if nothing usable was given
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, time.struct_time):
        parsed = datetime(*value[:6], tzinfo=timezone.utc)
    elif isinstance(value, str):
        try:
            parsed = date_parser.parse(value.strip())
        except (ValueError, OverflowError):
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def canonical_link(raw: RawItem) -> str:
    """Identity key: explicit link, else the guid, stripped of whitespace."""
    for candidate in (raw.link, raw.guid):
        if candidate and candidate.strip():
            return candidate.strip()
    return ""


def author_name(raw: RawItem) -> str:
    """Explicit creator, else the first structured author's name."""
    if raw.creator:
        return raw.creator
    for author in raw.authors:
        if author.get("name"):
            return author["name"]
    return ""


def normalize(raw: RawItem, source: Optional[str] = None) -> Optional[Item]:
    """Build the canonical Item for ``raw``.

    Args:
        raw: Adapter output
        source: Source locator; defaults to the one recorded on ``raw``

    Returns:
        Item, or None if the entry has no link to identify it by
    """
    link = canonical_link(raw)
    if not link:
        logger.debug(f"Dropping entry without link: {raw.title or UNTITLED}")
        return None

    enclosure = None
    if raw.enclosure and raw.enclosure.get("url"):
        enclosure = MediaReference(
            url=raw.enclosure["url"], mime_type=raw.enclosure.get("type") or ""
        )

    return Item(
        title=raw.title or UNTITLED,
        link=link,
        date=parse_date(raw.published) or datetime.now(timezone.utc),
        description=raw.content_encoded or raw.content or raw.snippet or "",
        author_name=author_name(raw),
        image_url=pick_image(raw),
        video=pick_video(raw),
        enclosure=enclosure,
        source=source or raw.source,
    )
