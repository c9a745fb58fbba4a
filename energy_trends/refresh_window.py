"""
Refresh Window Module
Decides when the host should next ask for an entry and when a cached
weekday average may be rebuilt
"""

from datetime import datetime, time, timedelta
from typing import Optional

from .models import start_of_day

DEFAULT_REFRESH_INTERVAL_MINUTES = 15
DEFAULT_WINDOW_START_HOUR = 6


def in_refresh_window(current_time: datetime, start_hour: int = DEFAULT_WINDOW_START_HOUR) -> bool:
    """
    Check whether heavy cache rebuilds are allowed at ``current_time``

    Early-morning hours are skipped so that a rebuild right after midnight
    doesn't average against a day whose data hasn't synced yet.
    """
    return current_time.time() >= time(start_hour, 0)


def next_midnight(current_time: datetime) -> datetime:
    return start_of_day(current_time) + timedelta(days=1)


class RefreshPlanner:
    """Plans refresh instants for the rendering host"""

    def __init__(self, interval_minutes: int = DEFAULT_REFRESH_INTERVAL_MINUTES,
                 window_start_hour: int = DEFAULT_WINDOW_START_HOUR):
        """
        Initialize planner

        Args:
            interval_minutes: Minutes between regular refreshes
            window_start_hour: First hour of the day a weekday average may be rebuilt
        """
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")
        self.interval = timedelta(minutes=interval_minutes)
        self.window_start_hour = window_start_hour

    @classmethod
    def from_settings(cls, settings) -> "RefreshPlanner":
        return cls(settings.refresh_interval_minutes, settings.refresh_window_start_hour)

    def next_refresh(self, current_time: Optional[datetime] = None) -> datetime:
        """Instant of the next regular refresh after ``current_time``"""
        if current_time is None:
            current_time = datetime.now()
        return current_time + self.interval

    def in_refresh_window(self, current_time: Optional[datetime] = None) -> bool:
        if current_time is None:
            current_time = datetime.now()
        return in_refresh_window(current_time, self.window_start_hour)

    def straddled_midnight(self, current_time: datetime,
                           next_refresh: Optional[datetime] = None) -> Optional[datetime]:
        """
        Midnight inside ``(current_time, next_refresh]``, if any

        Args:
            current_time: Instant of the entry being produced now
            next_refresh: Instant of the following refresh (default: one interval later)

        Returns:
            The midnight the host must render a zero-state entry for, or None
        """
        if next_refresh is None:
            next_refresh = self.next_refresh(current_time)
        midnight = next_midnight(current_time)
        if current_time < midnight <= next_refresh:
            return midnight
        return None
