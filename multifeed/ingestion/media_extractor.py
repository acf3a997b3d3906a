"""
Media Extractor
===============

Best-effort recovery of a representative image and video for a raw item.

Feeds rarely declare media consistently, so each heuristic is a small pure
function and the priority policy is just the order of the rule lists below:
structured signals (enclosures, media extensions) come before scraping HTML.
The first rule that returns something wins; ``None`` from every rule is a
normal outcome.
"""

import json
from typing import Callable, List, Optional, TypeVar

from multifeed.models import MediaReference, RawItem
from multifeed.ingestion.content_cleaner import get_content_cleaner

T = TypeVar("T")

ImageRule = Callable[[RawItem], Optional[str]]
VideoRule = Callable[[RawItem], Optional[MediaReference]]

# Watch pages we hand back as a link rather than a playable file
VIDEO_WATCH_PATTERNS = ("youtube.com/watch",)


def _enclosure_of_kind(raw: RawItem, prefix: str) -> Optional[MediaReference]:
    enclosure = raw.enclosure or {}
    url = enclosure.get("url")
    mime_type = enclosure.get("type") or ""
    if url and mime_type.startswith(prefix):
        return MediaReference(url=url, mime_type=mime_type)
    return None


# Image rules


def image_from_enclosure(raw: RawItem) -> Optional[str]:
    """An enclosure declared as ``image/*``."""
    ref = _enclosure_of_kind(raw, "image/")
    return ref.url if ref else None


def image_from_media_extensions(raw: RawItem) -> Optional[str]:
    """First ``media:content`` URL, then first ``media:thumbnail`` URL."""
    for entries in (raw.media_content, raw.media_thumbnail):
        if entries and entries[0].get("url"):
            return entries[0]["url"]
    return None


def image_from_html(raw: RawItem) -> Optional[str]:
    """First ``<img src>`` in the full HTML body."""
    return get_content_cleaner().first_image(raw.html)


def image_from_json_fields(raw: RawItem) -> Optional[str]:
    """JSON Feed ``image``/``banner_image``."""
    return raw.image or None


IMAGE_RULES: List[ImageRule] = [
    image_from_enclosure,
    image_from_media_extensions,
    image_from_html,
    image_from_json_fields,
]


# Video rules


def video_from_enclosure(raw: RawItem) -> Optional[MediaReference]:
    """An enclosure declared as ``video/*``, keeping its declared type."""
    return _enclosure_of_kind(raw, "video/")


def video_from_media_group(raw: RawItem) -> Optional[MediaReference]:
    """Direct ``.mp4``/``.webm`` URL anywhere in the media group data."""
    if not raw.media_group:
        return None
    found = get_content_cleaner().find_video_url(json.dumps(raw.media_group, default=str))
    if found:
        return MediaReference(url=found[0], mime_type=found[1])
    return None


def video_from_watch_link(raw: RawItem) -> Optional[MediaReference]:
    """Item link is a video-hosting watch page; readers follow it to view."""
    link = raw.link or ""
    if any(pattern in link for pattern in VIDEO_WATCH_PATTERNS):
        return MediaReference(url=link, mime_type="text/html")
    return None


def video_from_html(raw: RawItem) -> Optional[MediaReference]:
    """Direct ``.mp4``/``.webm`` URL in the HTML body."""
    found = get_content_cleaner().find_video_url(raw.html)
    if found:
        return MediaReference(url=found[0], mime_type=found[1])
    return None


VIDEO_RULES: List[VideoRule] = [
    video_from_enclosure,
    video_from_media_group,
    video_from_watch_link,
    video_from_html,
]


def first_match(rules: List[Callable[[RawItem], Optional[T]]], raw: RawItem) -> Optional[T]:
    """Evaluate ``rules`` in order and return the first non-None result."""
    for rule in rules:
        result = rule(raw)
        if result is not None:
            return result
    return None


def pick_image(raw: RawItem) -> Optional[str]:
    """Best-guess image URL for ``raw`` or None."""
    return first_match(IMAGE_RULES, raw)


def pick_video(raw: RawItem) -> Optional[MediaReference]:
    """Best-guess video reference for ``raw`` or None."""
    return first_match(VIDEO_RULES, raw)
