"""
MultiFeed Input Validators
=========================

Validation utilities for feed source URLs supplied through configuration.
"""

import re
from urllib.parse import urlparse, urlunparse
from typing import List

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and sanitization utilities."""

    # Allowed schemes for feed sources
    ALLOWED_SCHEMES = {'http', 'https'}

    # Common RSS/Atom/JSON feed patterns
    FEED_PATTERNS = [
        r'\.rss$', r'\.xml$', r'\.atom$', r'\.json$',
        r'/rss/?$', r'/feed/?$', r'/feeds/?$',
        r'/atom/?$', r'/json/?$', r'/frontpage/?$',
    ]

    @classmethod
    def validate_feed_url(cls, url: str) -> str:
        """Validate and normalize a feed source URL.

        Args:
            url: URL to validate

        Returns:
            Normalized URL

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url"
            )

        url = url.strip()

        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {str(e)}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                f"URL scheme must be {' or '.join(sorted(cls.ALLOWED_SCHEMES))}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        # Query strings are significant (YouTube channel feeds), only scheme/host are folded
        return urlunparse(parsed._replace(
            scheme=parsed.scheme.lower(),
            netloc=parsed.netloc.lower(),
            path=parsed.path or '/',
            fragment=''
        ))

    @classmethod
    def is_likely_feed_url(cls, url: str) -> bool:
        """Check if URL looks like an RSS/Atom/JSON feed."""
        path = urlparse(url.lower()).path
        return any(re.search(pattern, path) for pattern in cls.FEED_PATTERNS)


def validate_source_list(urls: List[str]) -> List[str]:
    """Validate and normalize an ordered list of source URLs.

    Order is preserved and exact duplicates are dropped after normalization.

    Raises:
        ValidationError: If any entry is not a valid feed URL
    """
    normalized: List[str] = []
    for url in urls:
        clean = URLValidator.validate_feed_url(url)
        if clean not in normalized:
            normalized.append(clean)
    return normalized
