"""
MultiFeed Data Models
====================

Raw adapter records and the canonical, immutable models the rest of the
application works with. Canonical models are frozen Pydantic models so a
published Cache snapshot can be shared between request handlers without copying.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator


@dataclass
class RawItem:
    """Adapter output: one entry as the origin format described it.

    Only lives between the source adapter and the normalizer. Fields are
    optional because no two formats agree on which of them exist.
    """

    title: Optional[str] = None
    link: Optional[str] = None
    guid: Optional[str] = None
    published: Union[str, datetime, None] = None
    content_encoded: Optional[str] = None
    content: Optional[str] = None
    snippet: Optional[str] = None
    enclosure: Optional[Dict[str, str]] = None
    image: Optional[str] = None
    creator: Optional[str] = None
    authors: List[Dict[str, Optional[str]]] = field(default_factory=list)
    media_content: List[Dict[str, Any]] = field(default_factory=list)
    media_thumbnail: List[Dict[str, Any]] = field(default_factory=list)
    media_group: List[Dict[str, Any]] = field(default_factory=list)
    source: str = ""

    @property
    def html(self) -> str:
        """Full HTML body, encoded content preferred over plain content."""
        return self.content_encoded or self.content or ""


@dataclass
class FetchedSource:
    """Result of interpreting one source: its title and raw entries."""

    title: str
    items: List[RawItem] = field(default_factory=list)
    format: str = "xml"


class MediaReference(BaseModel):
    """A discovered image, video or attachment."""

    url: str = Field(..., min_length=1)
    mime_type: str = Field(default="")

    model_config = {"frozen": True}

    @property
    def is_direct_video(self) -> bool:
        """True for a playable file, False for a watch page or unknown type."""
        return self.mime_type.startswith("video/")


class Item(BaseModel):
    """Canonical feed entry; ``link`` is the identity key."""

    title: str = Field(default="(untitled)")
    link: str = Field(..., min_length=1, description="Canonical link, unique within a Cache")
    date: datetime
    description: str = Field(default="")
    author_name: str = Field(default="")
    image_url: Optional[str] = None
    video: Optional[MediaReference] = None
    enclosure: Optional[MediaReference] = None
    source: str

    model_config = {"frozen": True}

    @field_validator('link')
    @classmethod
    def validate_link(cls, v):
        """Links are compared stripped; an all-whitespace link is no link."""
        v = v.strip()
        if not v:
            raise ValueError("Item link cannot be empty")
        return v

    @field_validator('date')
    @classmethod
    def ensure_timezone(cls, v):
        """Naive timestamps are taken to be UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def __str__(self) -> str:
        return f"Item({self.title[:50]}:{self.link})"


class SourceReport(BaseModel):
    """Outcome of fetching one source during a refresh cycle."""

    source: str
    success: bool
    item_count: int = Field(default=0, ge=0)
    format: Optional[str] = None
    error: Optional[str] = None
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}


class Cache(BaseModel):
    """Merged, deduplicated, date-descending snapshot of all sources."""

    items: Tuple[Item, ...] = ()
    last_build: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_reports: Tuple[SourceReport, ...] = ()

    model_config = {"frozen": True}

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def failed_sources(self) -> List[str]:
        return [r.source for r in self.source_reports if not r.success]
