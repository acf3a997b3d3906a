"""
Feed Renderer
=============

Serializes a Cache snapshot into RSS 2.0, Atom 1.0 and JSON Feed 1.1.

Rendering is a pure function of the snapshot and the feed settings. Every
well-formed Cache, including an empty one, renders to three valid documents.
"""

import html
import re
from dataclasses import dataclass
from typing import List, Optional

from feedgen.entry import FeedEntry
from feedgen.feed import FeedGenerator
from pydantic import BaseModel, Field

from multifeed.config.settings import FeedSettings, MultiFeedSettings, get_settings
from multifeed.ingestion.content_cleaner import get_content_cleaner
from multifeed.models import Cache, Item, MediaReference
from multifeed.processing.normalizer import UNTITLED
from multifeed.utils.exceptions import ErrorCode, RenderError
from multifeed.utils.logging import get_logger_for_component

JSON_FEED_VERSION = "https://jsonfeed.org/version/1.1"

RSS_PATH = "rss.xml"
ATOM_PATH = "atom.xml"
JSON_PATH = "feed.json"

# lxml refuses C0 control characters other than tab, LF and CR
XML_INVALID_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

FALLBACK_ENCLOSURE_TYPE = "application/octet-stream"
IMAGE_ENCLOSURE_TYPE = "image/jpeg"


def xml_safe(text: Optional[str]) -> str:
    """Drop characters that cannot appear in an XML document."""
    if not text:
        return ""
    return XML_INVALID_CHARS.sub("", text)


class AtomLinkEntry(FeedEntry):
    """FeedEntry that always writes the rel, type and length of its Atom links.

    feedgen 1.0 drops every link attribute except ``href`` on entries.
    """

    LINK_ATTRIBUTES = ("rel", "type", "hreflang", "title", "length")

    def atom_entry(self, extensions=True):
        element = super().atom_entry(extensions=extensions)
        link_elements = [
            child for child in element
            if isinstance(child.tag, str) and child.tag.rsplit("}", 1)[-1] == "link"
        ]
        for link_element, data in zip(link_elements, self.link() or []):
            for key in self.LINK_ATTRIBUTES:
                if data.get(key):
                    link_element.set(key, str(data[key]))
        return element


class JsonFeedAuthor(BaseModel):
    name: str


class JsonFeedAttachment(BaseModel):
    url: str
    mime_type: str


class JsonFeedItem(BaseModel):
    id: str
    url: str
    title: str
    content_html: str
    summary: Optional[str] = None
    date_published: str
    date_modified: str
    authors: Optional[List[JsonFeedAuthor]] = None
    image: Optional[str] = None
    attachments: Optional[List[JsonFeedAttachment]] = None


class JsonFeedDocument(BaseModel):
    """Top-level JSON Feed 1.1 object."""

    version: str = JSON_FEED_VERSION
    title: str
    home_page_url: str
    feed_url: str
    description: Optional[str] = None
    language: Optional[str] = None
    authors: Optional[List[JsonFeedAuthor]] = None
    items: List[JsonFeedItem] = Field(default_factory=list)


@dataclass(frozen=True)
class RenderedFeeds:
    """The three serialized documents for one snapshot."""

    rss: str
    atom: str
    json: str


class FeedRenderer:
    """Builds the published documents from a Cache snapshot."""

    def __init__(self, settings: Optional[MultiFeedSettings] = None):
        self.settings = settings or get_settings()
        self.feed_settings: FeedSettings = self.settings.feed
        self.cleaner = get_content_cleaner()
        self.logger = get_logger_for_component("feed_renderer")

    @property
    def home_url(self) -> str:
        return self.settings.feed_link("")

    def build_content(self, item: Item) -> str:
        """HTML body: image, video, original description, then source attribution."""
        blocks = []
        if item.image_url:
            blocks.append(f'<p><img src="{html.escape(item.image_url)}" alt="" /></p>')

        if item.video:
            video_url = html.escape(item.video.url)
            if item.video.is_direct_video:
                blocks.append(
                    f'<p><video controls src="{video_url}" style="max-width:100%"></video></p>'
                )
            else:
                blocks.append(f'<p><a href="{video_url}">Watch video</a></p>')

        if item.description:
            blocks.append(item.description)

        blocks.append(f"<p><small>Source: {html.escape(item.source)}</small></p>")
        return "\n".join(blocks)

    def summary(self, item: Item) -> str:
        """Plain-text excerpt of the description."""
        return self.cleaner.summarize(item.description, self.feed_settings.summary_length)

    @staticmethod
    def primary_enclosure(item: Item) -> Optional[MediaReference]:
        """Video first, then the original enclosure, then the image."""
        if item.video:
            return item.video
        if item.enclosure:
            return MediaReference(
                url=item.enclosure.url,
                mime_type=item.enclosure.mime_type or FALLBACK_ENCLOSURE_TYPE,
            )
        if item.image_url:
            return MediaReference(url=item.image_url, mime_type=IMAGE_ENCLOSURE_TYPE)
        return None

    def render(self, cache: Cache) -> RenderedFeeds:
        """Render ``cache`` in every published format.

        Raises:
            RenderError: If a document could not be serialized
        """
        return RenderedFeeds(
            rss=self.render_rss(cache),
            atom=self.render_atom(cache),
            json=self.render_json(cache),
        )

    def render_rss(self, cache: Cache) -> str:
        return self._render_xml(cache, RSS_PATH, "rss")

    def render_atom(self, cache: Cache) -> str:
        return self._render_xml(cache, ATOM_PATH, "atom")

    def render_json(self, cache: Cache) -> str:
        """JSON Feed 1.1 document for ``cache``."""
        feed = self.feed_settings
        try:
            document = JsonFeedDocument(
                title=feed.title,
                home_page_url=self.home_url,
                feed_url=self.settings.feed_link(JSON_PATH),
                description=feed.description or None,
                language=feed.language or None,
                authors=[JsonFeedAuthor(name=feed.author_name)] if feed.author_name else None,
                items=[self._json_item(item) for item in cache.items],
            )
            return document.model_dump_json(exclude_none=True, indent=2)
        except ValueError as e:
            raise RenderError(
                f"Failed to render JSON Feed: {e}",
                feed_format="json",
                error_code=ErrorCode.RENDER_FAILED,
            ) from e

    def _json_item(self, item: Item) -> JsonFeedItem:
        enclosure = self.primary_enclosure(item)
        date = item.date.isoformat()
        return JsonFeedItem(
            id=item.link,
            url=item.link,
            title=item.title,
            content_html=self.build_content(item),
            summary=self.summary(item) or None,
            date_published=date,
            date_modified=date,
            authors=[JsonFeedAuthor(name=item.author_name)] if item.author_name else None,
            image=item.image_url,
            attachments=(
                [JsonFeedAttachment(url=enclosure.url, mime_type=enclosure.mime_type)]
                if enclosure else None
            ),
        )

    def _render_xml(self, cache: Cache, self_path: str, feed_format: str) -> str:
        try:
            generator = self._feed_generator(cache, self_path)
            if feed_format == "rss":
                document = generator.rss_str(pretty=True)
            else:
                document = generator.atom_str(pretty=True)
            return document.decode("utf-8")
        except (ValueError, TypeError) as e:
            self.logger.error(f"Error rendering {feed_format} feed with {cache.count} items: {e}")
            raise RenderError(
                f"Failed to render {feed_format} feed: {e}",
                feed_format=feed_format,
                error_code=ErrorCode.RENDER_FAILED,
            ) from e

    def _feed_generator(self, cache: Cache, self_path: str) -> FeedGenerator:
        feed = self.feed_settings
        generator = FeedGenerator()
        generator.id(self.home_url)
        generator.title(xml_safe(feed.title) or self.settings.app_name)
        generator.description(xml_safe(feed.description) or xml_safe(feed.title))
        if feed.language:
            generator.language(feed.language)
        if feed.author_name:
            generator.author({"name": xml_safe(feed.author_name)})
        generator.generator(self.settings.app_name, self.settings.version)
        generator.updated(cache.last_build)

        # The channel <link> comes from the last link set, so alternate goes last
        generator.link(href=self.settings.feed_link(self_path), rel="self", replace=True)
        generator.link(href=self.home_url, rel="alternate")

        generator.entry([self._feed_entry(item) for item in cache.items], replace=True)
        return generator

    def _feed_entry(self, item: Item) -> FeedEntry:
        entry = AtomLinkEntry()
        entry.id(xml_safe(item.link))
        entry.title(xml_safe(item.title) or UNTITLED)
        entry.link(href=xml_safe(item.link), rel="alternate")
        entry.published(item.date)
        entry.updated(item.date)

        summary = xml_safe(self.summary(item))
        if summary:
            entry.description(summary, isSummary=True)
        entry.content(xml_safe(self.build_content(item)), type="html")

        if item.author_name:
            entry.author({"name": xml_safe(item.author_name)})

        enclosure = self.primary_enclosure(item)
        if enclosure:
            entry.enclosure(xml_safe(enclosure.url), "0", enclosure.mime_type)
        return entry
