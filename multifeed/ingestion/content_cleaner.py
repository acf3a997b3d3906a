"""
Content Cleaner
===============

HTML helpers shared by media extraction and feed rendering.

This module provides:
- Plain text extraction from item HTML
- Summary truncation
- Image and direct video URL discovery inside HTML bodies
"""

import re
import html
from typing import Optional, Tuple

from bs4 import BeautifulSoup

from multifeed.utils.logging import get_logger_for_component


class ContentCleaner:
    """
    Stateless HTML helper built on BeautifulSoup.

    Every method is total: malformed markup degrades to a regex fallback
    instead of raising, since item bodies come straight from upstream feeds.
    """

    # Elements whose text never belongs in a summary
    NON_CONTENT_ELEMENTS = {"script", "style", "noscript", "iframe", "template"}

    WHITESPACE_PATTERN = re.compile(r"\s+", re.MULTILINE)
    TAG_PATTERN = re.compile(r"<[^>]+>")
    IMG_SRC_PATTERN = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)
    DATA_URL_PATTERN = re.compile(r"^\s*data:", re.IGNORECASE)

    # Direct video files; group 2 is the container used for the MIME subtype
    VIDEO_URL_PATTERN = re.compile(r"""(https?://[^\s"'<>]+\.(mp4|webm))""", re.IGNORECASE)

    def __init__(self):
        self.logger = get_logger_for_component("content_cleaner")
        self.parser = "html.parser"  # Built-in parser, no external deps

    def extract_text_only(self, html_content: Optional[str]) -> str:
        """
        Extract only text content from HTML, removing all markup.

        Args:
            html_content: HTML content to process

        Returns:
            Plain text content with all HTML removed
        """
        if not html_content or not html_content.strip():
            return ""

        try:
            soup = BeautifulSoup(html_content, self.parser)

            for element in soup(self.NON_CONTENT_ELEMENTS):
                element.decompose()

            text = soup.get_text(separator=" ", strip=True)
            return self.WHITESPACE_PATTERN.sub(" ", text).strip()

        except Exception as e:
            self.logger.warning(f"Failed to extract text, using fallback: {e}")
            return self._extract_text_fallback(html_content)

    def summarize(self, html_content: Optional[str], max_length: int = 280) -> str:
        """Plain-text version of ``html_content`` cut to ``max_length`` characters."""
        return self.extract_text_only(html_content)[:max_length]

    def first_image(self, html_content: Optional[str]) -> Optional[str]:
        """
        Return the ``src`` of the first ``<img>`` in the HTML.

        Inline ``data:`` images are skipped since they make poor enclosures.
        """
        if not html_content or "<img" not in html_content.lower():
            return None

        try:
            soup = BeautifulSoup(html_content, self.parser)
            for img_tag in soup.find_all("img", src=True):
                src = img_tag.get("src", "").strip()
                if src and not self.DATA_URL_PATTERN.match(src):
                    return src
            return None

        except Exception as e:
            self.logger.warning(f"Failed to extract images, using fallback: {e}")
            match = self.IMG_SRC_PATTERN.search(html_content)
            return match.group(1) if match else None

    def find_video_url(self, text: Optional[str]) -> Optional[Tuple[str, str]]:
        """
        Scan arbitrary text for a direct ``.mp4``/``.webm`` URL.

        Returns:
            ``(url, mime_type)`` or None
        """
        if not text:
            return None

        match = self.VIDEO_URL_PATTERN.search(text)
        if not match:
            return None
        return match.group(1), f"video/{match.group(2).lower()}"

    def _extract_text_fallback(self, html_content: str) -> str:
        """Fallback text extraction using regex when BeautifulSoup fails."""
        content = re.sub(
            r"<(script|style)[^>]*>.*?</\1>",
            "",
            html_content,
            flags=re.IGNORECASE | re.DOTALL,
        )
        content = self.TAG_PATTERN.sub("", content)
        content = html.unescape(content)
        return self.WHITESPACE_PATTERN.sub(" ", content).strip()


_cleaner: Optional[ContentCleaner] = None


def get_content_cleaner() -> ContentCleaner:
    """Shared ContentCleaner instance."""
    global _cleaner
    if _cleaner is None:
        _cleaner = ContentCleaner()
    return _cleaner
