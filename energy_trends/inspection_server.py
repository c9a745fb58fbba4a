"""Debug and inspection HTTP surface for the projection-and-cache engine.

Exposes the resolved entry the rendering host would display next to the raw
cache records it was derived from, so a stale or corrupt record can be spotted
without attaching a debugger to the host:

* ``GET /health`` liveness probe.
* ``GET /entry`` resolves an entry (optionally ``?at=<ISO instant>``) and runs
  the goal-crossing notifier on it.
* ``GET /timeline`` resolves the entries for the next refresh window.
* ``GET /cache/today``, ``/cache/average/{weekday}``, ``/cache/averages`` and
  ``/cache/projection`` return raw snapshots with their validity.
* ``DELETE /cache/projection`` clears the projection baseline.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from aiohttp import web

from .cache_store import LayeredCacheStore
from .config import Settings
from .models import Weekday
from .notifications import ProjectionNotifier, scheduler_from_settings
from .providers import HealthDataProvider, HttpHealthDataProvider
from .resolver import EntryResolver

LOGGER = logging.getLogger(__name__)


def parse_instant(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise web.HTTPBadRequest(
            text=f"Invalid instant {value!r}, expected ISO 8601", content_type="text/plain"
        ) from exc


def parse_weekday(value: str) -> Weekday:
    """Accept ``1``..``7`` (1 = Sunday) or a weekday name."""
    if value.isdigit():
        try:
            return Weekday(int(value))
        except ValueError as exc:
            raise web.HTTPNotFound(text=f"Unknown weekday {value!r}") from exc
    try:
        return Weekday[value.upper()]
    except KeyError as exc:
        raise web.HTTPNotFound(text=f"Unknown weekday {value!r}") from exc


class InspectionApplication:
    """Encapsulates the aiohttp application and inspection handlers."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        provider: Optional[HealthDataProvider] = None,
        store: Optional[LayeredCacheStore] = None,
        notifier: Optional[ProjectionNotifier] = None,
    ) -> None:
        self.settings = settings or Settings.from_environment()
        self.store = store or LayeredCacheStore.from_settings(self.settings)
        self.provider = provider or HttpHealthDataProvider.from_settings(self.settings)
        self.resolver = EntryResolver.from_settings(self.settings, self.provider, self.store)
        self.notifier = notifier or ProjectionNotifier(self.store, scheduler_from_settings(self.settings))

        self.app = web.Application()
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_get("/entry", self.handle_entry)
        self.app.router.add_get("/timeline", self.handle_timeline)
        self.app.router.add_get("/cache/today", self.handle_cache_today)
        self.app.router.add_get("/cache/averages", self.handle_cache_averages)
        self.app.router.add_get("/cache/average/{weekday}", self.handle_cache_average)
        self.app.router.add_get("/cache/projection", self.handle_cache_projection)
        self.app.router.add_delete("/cache/projection", self.handle_clear_projection)

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def handle_entry(self, request: web.Request) -> web.Response:
        now = parse_instant(request.query.get("at")) or datetime.now()
        entry = await self.resolver.resolve(now)
        event = await self.notifier.handle(entry)
        payload = entry.to_dict()
        payload["goal_crossing"] = event.to_dict() if event is not None else None
        return web.json_response(payload)

    async def handle_timeline(self, request: web.Request) -> web.Response:
        now = parse_instant(request.query.get("at")) or datetime.now()
        next_refresh = parse_instant(request.query.get("next_refresh"))
        timeline = await self.resolver.resolve_timeline(now, next_refresh)
        return web.json_response(
            {
                "entries": [entry.to_dict() for entry in timeline.entries],
                "refresh_at": timeline.refresh_at.isoformat() if timeline.refresh_at else None,
            }
        )

    async def handle_cache_today(self, request: web.Request) -> web.Response:
        now = datetime.now()
        snapshot = self.store.read_today()
        if snapshot is None:
            return web.json_response({"cached": False}, status=404)
        return web.json_response(
            {"cached": True, "valid": snapshot.is_valid_for(now), "snapshot": snapshot.to_dict()}
        )

    def _average_payload(self, weekday: Weekday, now: datetime) -> Dict[str, Any]:
        snapshot = self.store.read_average(weekday)
        if snapshot is None:
            return {"weekday": weekday.value, "cached": False}
        return {
            "weekday": weekday.value,
            "cached": True,
            "expired": self.store.is_average_expired(snapshot, now),
            "should_refresh": self.store.should_refresh_average(weekday, now),
            "snapshot": snapshot.to_dict(),
        }

    async def handle_cache_average(self, request: web.Request) -> web.Response:
        weekday = parse_weekday(request.match_info["weekday"])
        payload = self._average_payload(weekday, datetime.now())
        return web.json_response(payload, status=200 if payload["cached"] else 404)

    async def handle_cache_averages(self, request: web.Request) -> web.Response:
        now = datetime.now()
        return web.json_response(
            {weekday.name.lower(): self._average_payload(weekday, now) for weekday in Weekday}
        )

    async def handle_cache_projection(self, request: web.Request) -> web.Response:
        snapshot = self.store.read_projection()
        if snapshot is None:
            return web.json_response({"cached": False}, status=404)
        return web.json_response({"cached": True, "snapshot": snapshot.to_dict()})

    async def handle_clear_projection(self, request: web.Request) -> web.Response:
        self.notifier.clear_for_new_day()
        return web.json_response({"status": "cleared"})


def create_app(settings: Optional[Settings] = None) -> web.Application:
    settings = settings or Settings.from_environment()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    LOGGER.info(f"Cache backend: {settings.cache_backend}")
    if not settings.health_api_url:
        LOGGER.warning("HEALTH_API_URL not set, entries will come from the cache only")

    server = InspectionApplication(settings)
    return server.app


def main() -> None:
    settings = Settings.from_environment()
    app = create_app(settings)
    web.run_app(app, host=settings.inspection_host, port=settings.inspection_port)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
