"""
Energy Trends - Projection and Cache Engine
"""

from .models import (
    DaySeries,
    EntrySource,
    HourlyPoint,
    ProjectionSnapshot,
    ResolvedEntry,
    Sample,
    TodaySnapshot,
    Weekday,
    WeekdayAverageSnapshot,
)
from .series_builder import CumulativeSeriesBuilder
from .interpolation import interpolate
from .weekday_average import WeekdayAverager
from .cache_store import LayeredCacheStore
from .resolver import EntryResolver, Timeline
from .goal_crossing import GoalCrossingDirection, GoalCrossingEvent, detect_crossing
from .notifications import ProjectionNotifier

__all__ = [
    'DaySeries',
    'EntrySource',
    'HourlyPoint',
    'ProjectionSnapshot',
    'ResolvedEntry',
    'Sample',
    'TodaySnapshot',
    'Weekday',
    'WeekdayAverageSnapshot',
    'CumulativeSeriesBuilder',
    'interpolate',
    'WeekdayAverager',
    'LayeredCacheStore',
    'EntryResolver',
    'Timeline',
    'GoalCrossingDirection',
    'GoalCrossingEvent',
    'detect_crossing',
    'ProjectionNotifier',
]

__version__ = '0.1.0'
