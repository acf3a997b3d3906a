"""
Item Cache
==========

Holder for the single in-memory Cache snapshot.

The snapshot itself is immutable. A refresh builds a complete new Cache and
swaps the holder's reference in one assignment, so readers always see either
the old or the new snapshot and never a partial merge.
"""

from typing import Optional

from multifeed.models import Cache


class CacheHolder:
    """Process-wide container for the current Cache snapshot."""

    def __init__(self, initial: Optional[Cache] = None):
        self._cache = initial if initial is not None else Cache()

    def snapshot(self) -> Cache:
        """Return the current snapshot; callers keep using it for a whole request."""
        return self._cache

    def replace(self, cache: Cache) -> Cache:
        """Publish ``cache`` and return the snapshot it replaced."""
        previous = self._cache
        self._cache = cache
        return previous

    def __repr__(self) -> str:
        cache = self._cache
        return f"CacheHolder(items={cache.count}, last_build={cache.last_build.isoformat()})"
