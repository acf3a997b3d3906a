"""
MultiFeed - Multi-Source Feed Aggregator
========================================

Merges RSS, Atom and JSON Feed sources into one deduplicated, date-ordered
feed and republishes it as RSS 2.0, Atom 1.0 and JSON Feed 1.1.

Main Components:
- Ingestion: source fetching, format detection, media extraction
- Processing: normalization, merge engine, snapshot cache
- Delivery: feed rendering for every published format
- Web: aiohttp server with periodic background refresh
"""

__version__ = "1.0.0"
__author__ = "MultiFeed Development Team"
__description__ = "Multi-source RSS/Atom/JSON feed aggregator"

# Core imports for easy access
from .config.settings import get_settings
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import MultiFeedError

__all__ = [
    "get_settings",
    "configure_application_logging",
    "get_logger_for_component",
    "MultiFeedError",
]
