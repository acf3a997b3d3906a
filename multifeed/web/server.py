"""
MultiFeed Web Server
====================

aiohttp application publishing the current Cache snapshot.

Routes:
- ``/``          plain-text index with endpoints, last build and item count
- ``/rss.xml``   RSS 2.0
- ``/atom.xml``  Atom 1.0
- ``/feed.json`` JSON Feed 1.1
- ``/health``    liveness and refresh status as JSON

Every handler reads one snapshot and renders from it, so a refresh finishing
mid-request never mixes two Caches in one response.
"""

from typing import Optional

from aiohttp import web

from ..config.settings import MultiFeedSettings, get_settings
from ..delivery.feed_renderer import FeedRenderer
from ..models import Cache
from ..processing.aggregator import Aggregator
from ..processing.cache import CacheHolder
from ..scheduler.refresh_scheduler import RefreshScheduler
from ..utils.exceptions import RenderError
from ..utils.logging import get_logger_for_component

RSS_CONTENT_TYPE = "application/rss+xml"
ATOM_CONTENT_TYPE = "application/atom+xml"
JSON_FEED_CONTENT_TYPE = "application/feed+json"

SETTINGS_KEY = web.AppKey("settings", MultiFeedSettings)
CACHE_KEY = web.AppKey("cache_holder", CacheHolder)
RENDERER_KEY = web.AppKey("renderer", FeedRenderer)
AGGREGATOR_KEY = web.AppKey("aggregator", Aggregator)
SCHEDULER_KEY = web.AppKey("scheduler", RefreshScheduler)

logger = get_logger_for_component("web")


def _render_document(request: web.Request, feed_format: str) -> str:
    """Render one format from the current snapshot.

    A snapshot that fails to serialize falls back to an empty feed with the
    same build time, so clients always receive a valid document.
    """
    renderer = request.app[RENDERER_KEY]
    cache = request.app[CACHE_KEY].snapshot()
    render = getattr(renderer, f"render_{feed_format}")

    try:
        return render(cache)
    except RenderError as e:
        logger.error(f"Serving empty {feed_format} feed: {e}", extra=e.to_dict())
        return render(Cache(last_build=cache.last_build))


async def index(request: web.Request) -> web.Response:
    settings = request.app[SETTINGS_KEY]
    cache = request.app[CACHE_KEY].snapshot()
    lines = [
        f"{settings.feed.title} is running.",
        "",
        "Endpoints:",
        "  /rss.xml",
        "  /atom.xml",
        "  /feed.json",
        "  /health",
        "",
        f"Last build: {cache.last_build.isoformat()}",
        f"Items: {cache.count}",
    ]
    return web.Response(text="\n".join(lines) + "\n", content_type="text/plain", charset="utf-8")


async def rss_feed(request: web.Request) -> web.Response:
    return web.Response(
        text=_render_document(request, "rss"), content_type=RSS_CONTENT_TYPE, charset="utf-8"
    )


async def atom_feed(request: web.Request) -> web.Response:
    return web.Response(
        text=_render_document(request, "atom"), content_type=ATOM_CONTENT_TYPE, charset="utf-8"
    )


async def json_feed(request: web.Request) -> web.Response:
    return web.Response(
        text=_render_document(request, "json"),
        content_type=JSON_FEED_CONTENT_TYPE,
        charset="utf-8",
    )


async def health(request: web.Request) -> web.Response:
    cache = request.app[CACHE_KEY].snapshot()
    return web.json_response(
        {
            "ok": True,
            "lastBuild": cache.last_build.isoformat(),
            "count": cache.count,
            "failedSources": len(cache.failed_sources),
        }
    )


async def _scheduler_context(app: web.Application):
    """Run the refresh schedule for the lifetime of the application."""
    scheduler = app.get(SCHEDULER_KEY)
    if scheduler is None:
        yield
        return

    scheduler.start()
    try:
        yield
    finally:
        await scheduler.stop()


def create_app(
    settings: Optional[MultiFeedSettings] = None,
    cache_holder: Optional[CacheHolder] = None,
    aggregator: Optional[Aggregator] = None,
    enable_scheduler: bool = True,
) -> web.Application:
    """Build the web application.

    Args:
        settings: Application settings (default global settings)
        cache_holder: Snapshot holder shared with the aggregator
        aggregator: Refresh engine; built from settings when omitted
        enable_scheduler: Start periodic refreshes with the app

    Returns:
        Configured aiohttp application
    """
    settings = settings or get_settings()
    cache_holder = cache_holder or CacheHolder()

    app = web.Application()
    app[SETTINGS_KEY] = settings
    app[CACHE_KEY] = cache_holder
    app[RENDERER_KEY] = FeedRenderer(settings)

    if enable_scheduler:
        aggregator = aggregator or Aggregator(cache_holder, settings=settings)
        app[AGGREGATOR_KEY] = aggregator
        app[SCHEDULER_KEY] = RefreshScheduler(
            aggregator,
            interval_minutes=settings.scheduler.refresh_interval_minutes,
            refresh_on_startup=settings.scheduler.refresh_on_startup,
        )
        app.cleanup_ctx.append(_scheduler_context)

    app.router.add_get("/", index)
    app.router.add_get("/rss.xml", rss_feed)
    app.router.add_get("/atom.xml", atom_feed)
    app.router.add_get("/feed.json", json_feed)
    app.router.add_get("/health", health)
    return app


def run(settings: Optional[MultiFeedSettings] = None):
    """Serve until interrupted."""
    settings = settings or get_settings()
    app = create_app(settings)
    logger.info(f"Listening on http://{settings.host}:{settings.port}")
    web.run_app(app, host=settings.host, port=settings.port, print=None)
