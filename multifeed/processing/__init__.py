"""
MultiFeed Processing Module
==========================

Turns raw source items into the published Cache snapshot: normalization,
deduplication, ordering and atomic publication.
"""

from .normalizer import normalize
from .cache import CacheHolder
from .aggregator import Aggregator, SourceResult

__all__ = [
    'normalize',
    'CacheHolder',
    'Aggregator',
    'SourceResult',
]
