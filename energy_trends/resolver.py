"""
Entry Resolver Module
Chooses between live, cached, degraded and empty data for each rendered entry
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from .cache_store import LayeredCacheStore
from .errors import AuthorizationDeniedError, ProviderError
from .interpolation import interpolate
from .models import (
    DaySeries,
    EntrySource,
    ResolvedEntry,
    TodayReading,
    TodaySnapshot,
    Weekday,
    WeekdayAverageSnapshot,
    same_day,
)
from .providers import HealthDataProvider
from .refresh_window import RefreshPlanner
from .weekday_average import WeekdayAverager, pattern_for_day

logger = logging.getLogger(__name__)

DEFAULT_LIVE_TIMEOUT = 8.0


@dataclass(frozen=True)
class Timeline:
    """Entries for the host to render, and when to ask again"""

    entries: List[ResolvedEntry] = field(default_factory=list)
    refresh_at: Optional[datetime] = None


class EntryResolver:
    """Builds ResolvedEntry values from the provider, falling back to the cache"""

    def __init__(self, provider: HealthDataProvider, store: LayeredCacheStore,
                 averager: Optional[WeekdayAverager] = None,
                 planner: Optional[RefreshPlanner] = None,
                 live_timeout: float = DEFAULT_LIVE_TIMEOUT):
        """
        Initialize resolver

        Args:
            provider: Live data source
            store: Snapshot cache shared with the rendering host
            averager: Weekday averaging engine
            planner: Refresh planner used for timelines
            live_timeout: Seconds allowed for each provider round trip
        """
        self.provider = provider
        self.store = store
        self.averager = averager or WeekdayAverager()
        self.planner = planner or RefreshPlanner(window_start_hour=store.refresh_window_start_hour)
        self.live_timeout = live_timeout

    @classmethod
    def from_settings(cls, settings, provider: HealthDataProvider,
                      store: Optional[LayeredCacheStore] = None) -> "EntryResolver":
        return cls(
            provider,
            store or LayeredCacheStore.from_settings(settings),
            planner=RefreshPlanner.from_settings(settings),
            live_timeout=settings.live_query_timeout,
        )

    async def resolve(self, now: Optional[datetime] = None,
                      weekday: Optional[Weekday] = None) -> ResolvedEntry:
        """
        Resolve the entry to display at ``now``

        Args:
            now: Reference instant (default: current time)
            weekday: Weekday whose average is charted (default: ``now``'s weekday)

        Returns:
            ResolvedEntry tagged with the branch that produced it
        """
        if now is None:
            now = datetime.now()
        if weekday is None:
            weekday = Weekday.from_date(now)

        try:
            reading, goal = await self._fetch_live(now)
        except AuthorizationDeniedError as e:
            logger.warning(f"Health data access denied: {e}")
            return ResolvedEntry.unauthorized(now)
        except (ProviderError, asyncio.TimeoutError) as e:
            logger.error(f"Live query failed, falling back to cache: {e!r}")
            return self._fallback_entry(now, weekday)
        except Exception as e:
            logger.error(f"Health data provider failed unexpectedly, falling back to cache: {e!r}", exc_info=True)
            return self._fallback_entry(now, weekday)

        return await self._live_entry(now, weekday, reading, goal)

    async def _fetch_live(self, now: datetime) -> Tuple[TodayReading, float]:
        today_result, goal_result = await asyncio.wait_for(
            asyncio.gather(
                self.provider.fetch_today_hourly(now),
                self.provider.fetch_goal(),
                return_exceptions=True,
            ),
            timeout=self.live_timeout,
        )

        if isinstance(today_result, BaseException):
            raise today_result

        if isinstance(goal_result, BaseException):
            if not isinstance(goal_result, ProviderError):
                raise goal_result
            logger.warning(f"Goal query failed, using cached goal: {goal_result}")
            goal_result = self._cached_goal()

        return today_result, goal_result

    def _cached_goal(self) -> float:
        snapshot = self.store.read_today()
        return snapshot.goal if snapshot is not None else 0.0

    def _live_as_of(self, reading: TodayReading, now: datetime) -> datetime:
        latest = reading.latest_sample_timestamp
        if latest is not None and same_day(latest, now) and latest <= now:
            return latest
        return now

    async def _live_entry(self, now: datetime, weekday: Weekday, reading: TodayReading,
                          goal: float) -> ResolvedEntry:
        as_of = self._live_as_of(reading, now)
        snapshot = TodaySnapshot.from_series(reading.series, goal, reading.latest_sample_timestamp)
        self.store.save_today(snapshot, now)

        average = await self._weekday_average(weekday, now)
        logger.info(f"Resolved live entry as of {as_of.isoformat()} (total {snapshot.total:.1f})")
        return self._entry(as_of, reading.series, goal, average, EntrySource.LIVE)

    async def _weekday_average(self, weekday: Weekday, now: datetime) -> Optional[WeekdayAverageSnapshot]:
        """
        Refresh the ``weekday`` average when due, else use whatever the cache holds

        Order: freshly built, cached within the staleness window, expired cached.
        """
        if self.store.should_refresh_average(weekday, now):
            try:
                samples = await asyncio.wait_for(
                    self.provider.fetch_historical_for_weekday(weekday, now),
                    timeout=self.live_timeout,
                )
            except (ProviderError, asyncio.TimeoutError) as e:
                logger.warning(f"Could not refresh {weekday.name} average: {e!r}")
            except Exception as e:
                logger.error(f"Unexpected failure refreshing {weekday.name} average: {e!r}", exc_info=True)
            else:
                snapshot = self.averager.build_snapshot(samples, weekday, now)
                self.store.save_average(snapshot)
                return snapshot

        return self._cached_average(weekday, now)

    def _cached_average(self, weekday: Weekday, now: datetime) -> Optional[WeekdayAverageSnapshot]:
        snapshot = self.store.load_average(weekday, now)
        if snapshot is not None:
            return snapshot

        snapshot = self.store.read_average(weekday)
        if snapshot is not None:
            logger.warning(f"Using expired {weekday.name} average")
        return snapshot

    def _fallback_entry(self, now: datetime, weekday: Weekday) -> ResolvedEntry:
        average = self._cached_average(weekday, now)
        cached_today = self.store.load_today(now)

        if cached_today is not None:
            logger.info("Serving cached today snapshot")
            return self._entry(
                cached_today.latest_sample_timestamp,
                cached_today.hourly_pattern,
                cached_today.goal,
                average,
                EntrySource.CACHED,
            )

        stale_today = self.store.read_today()
        if average is not None or stale_today is not None:
            logger.info("Serving degraded entry without today data")
            return self._entry(
                now,
                DaySeries.zero(now),
                stale_today.goal if stale_today is not None else 0.0,
                average,
                EntrySource.DEGRADED,
            )

        logger.warning("No live data and nothing cached, treating as unauthorized")
        return ResolvedEntry.unauthorized(now)

    def _entry(self, as_of: datetime, today_series: DaySeries, goal: float,
               average: Optional[WeekdayAverageSnapshot], source: EntrySource) -> ResolvedEntry:
        if average is not None and average.hourly_pattern:
            average_series = pattern_for_day(average.hourly_pattern, as_of)
            average_at_as_of = interpolate(average_series, as_of) or 0.0
            projected_total = average.projected_total
        else:
            average_series = DaySeries.empty()
            average_at_as_of = 0.0
            projected_total = 0.0

        return ResolvedEntry(
            as_of=as_of,
            authorized=True,
            today_total=today_series.total,
            average_at_as_of=average_at_as_of,
            projected_total=projected_total,
            goal=goal,
            today_series=today_series,
            average_series=average_series,
            source=source,
        )

    def midnight_entry(self, midnight: datetime) -> ResolvedEntry:
        """
        Zero-state entry for exactly 00:00, built without a live query

        The average comes from the new day's weekday slot.
        """
        weekday = Weekday.from_date(midnight)
        average = self._cached_average(weekday, midnight)
        stale_today = self.store.read_today()

        if average is None and stale_today is None:
            return ResolvedEntry.unauthorized(midnight)

        return self._entry(
            midnight,
            DaySeries.zero(midnight),
            stale_today.goal if stale_today is not None else 0.0,
            average,
            EntrySource.MIDNIGHT,
        )

    async def resolve_timeline(self, now: Optional[datetime] = None,
                               next_refresh: Optional[datetime] = None) -> Timeline:
        """
        Resolve the current entry plus a midnight entry when the next refresh is tomorrow

        Args:
            now: Reference instant (default: current time)
            next_refresh: When the host will ask again (default: one refresh interval later)

        Returns:
            Timeline whose entries are in display order
        """
        if now is None:
            now = datetime.now()
        if next_refresh is None:
            next_refresh = self.planner.next_refresh(now)

        entries = [await self.resolve(now)]
        midnight = self.planner.straddled_midnight(now, next_refresh)
        if midnight is not None:
            logger.info(f"Refresh window crosses midnight, adding zero-state entry at {midnight.isoformat()}")
            entries.append(self.midnight_entry(midnight))

        return Timeline(entries=entries, refresh_at=next_refresh)
