"""
MultiFeed Ingestion Module
=========================

Source fetching and raw content interpretation.

This module handles:
- Downloading sources and choosing between JSON Feed and RSS/Atom parsing
- HTML text, image and video discovery
- Media extraction priority rules
"""

from .source_adapter import SourceAdapter
from .content_cleaner import ContentCleaner, get_content_cleaner
from .media_extractor import pick_image, pick_video

__all__ = [
    'SourceAdapter',
    'ContentCleaner',
    'get_content_cleaner',
    'pick_image',
    'pick_video',
]
