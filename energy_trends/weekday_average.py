"""
Weekday Averaging Engine
Projects today's energy pattern from previous occurrences of the same weekday
"""

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from .interpolation import interpolate
from .models import DaySeries, HourlyPoint, Weekday, WeekdayAverageSnapshot, start_of_day
from .series_builder import ONE_HOUR, CumulativeSeriesBuilder, Observation, unpack_observation

HOURS_PER_DAY = 24
DEFAULT_HISTORY_WEEKS = 10


def history_window(reference: datetime, weeks: int = DEFAULT_HISTORY_WEEKS) -> Tuple[datetime, datetime]:
    """
    Query window covering the previous ``weeks`` occurrences of ``reference``'s weekday

    Returns:
        ``(start, end)`` where end is the start of ``reference``'s day (exclusive)
    """
    end = start_of_day(reference)
    return end - timedelta(weeks=weeks), end


def pattern_for_day(pattern: DaySeries, as_of: datetime) -> DaySeries:
    """
    Place a stored average pattern on ``as_of``'s day and add the as-of marker

    Args:
        pattern: Hour-boundary averaged pattern (no as-of point)
        as_of: Instant the caller's data is current to

    Returns:
        Series charted against ``as_of``'s day with an interpolated point at ``as_of``
    """
    if not pattern:
        return pattern
    series = pattern.rebased(as_of)
    value = interpolate(series, as_of)
    if value is None:
        return series
    if any(point.timestamp == as_of for point in series):
        return series
    return series.with_point(HourlyPoint(as_of, value))


class WeekdayAverager:
    """Averages cumulative-by-hour tables across days of one weekday"""

    def __init__(self, builder: Optional[CumulativeSeriesBuilder] = None):
        self.builder = builder or CumulativeSeriesBuilder()

    def daily_tables(self, observations: Iterable[Observation], weekday: Weekday,
                     before: Optional[date] = None) -> Dict[date, List[float]]:
        """
        Build each matching day's cumulative-by-hour table

        Args:
            observations: Historical samples, any weekday, any order
            weekday: Only days falling on this weekday are kept
            before: Days on or after this date are dropped (today is never history)

        Returns:
            Mapping of calendar date to 24 cumulative values (index = hour)
        """
        by_day: Dict[date, list] = defaultdict(list)
        for observation in observations:
            start, _, _ = unpack_observation(observation)
            day = start.date()
            if not weekday.matches(day):
                continue
            if before is not None and day >= before:
                continue
            by_day[day].append(observation)

        tables: Dict[date, List[float]] = {}
        for day in sorted(by_day):
            day_start = datetime.combine(day, datetime.min.time())
            buckets = self.builder.hourly_buckets(by_day[day], day_start, day_start + 24 * ONE_HOUR)
            running_total = 0.0
            cumulative = []
            for hour in range(HOURS_PER_DAY):
                running_total += buckets.get(hour, 0.0)
                cumulative.append(running_total)
            tables[day] = cumulative

        return tables

    def hourly_averages(self, tables: Dict[date, List[float]]) -> List[float]:
        """
        Average each hour over the days that have a non-zero value at that hour

        A day that had not synced by hour H is left out of H's average rather
        than counted as zero. An hour with no qualifying day averages to 0.
        """
        averages = []
        previous = 0.0
        for hour in range(HOURS_PER_DAY):
            values = [tables[day][hour] for day in sorted(tables) if tables[day][hour] > 0]
            value = sum(values) / len(values) if values else 0.0
            # Days joining a later hour can pull the mean below the previous hour
            value = max(value, previous)
            averages.append(value)
            previous = value
        return averages

    def projected_total(self, tables: Dict[date, List[float]]) -> float:
        """Mean of complete daily totals across every matching day"""
        if not tables:
            return 0.0
        totals = [tables[day][-1] for day in sorted(tables)]
        return sum(totals) / len(totals)

    def hourly_pattern(self, averages: List[float], day: datetime) -> DaySeries:
        day_start = start_of_day(day)
        points = [HourlyPoint(day_start, 0.0)]
        points.extend(
            HourlyPoint(day_start + (hour + 1) * ONE_HOUR, value) for hour, value in enumerate(averages)
        )
        return DaySeries(points)

    def average(self, observations: Iterable[Observation], weekday: Weekday,
                as_of: datetime) -> Tuple[DaySeries, float]:
        """
        Averaged pattern for ``weekday`` charted against ``as_of``'s day

        Args:
            observations: Historical samples (roughly the last ten weeks)
            weekday: Weekday being projected
            as_of: Instant the caller's data is current to

        Returns:
            ``(averaged_series_with_as_of_point, projected_total)``
        """
        tables = self.daily_tables(observations, weekday, before=as_of.date())
        pattern = self.hourly_pattern(self.hourly_averages(tables), as_of)
        return pattern_for_day(pattern, as_of), self.projected_total(tables)

    def build_snapshot(self, observations: Iterable[Observation], weekday: Weekday,
                       now: datetime) -> WeekdayAverageSnapshot:
        """Cacheable snapshot; the stored pattern carries hour boundaries only"""
        tables = self.daily_tables(observations, weekday, before=now.date())
        return WeekdayAverageSnapshot(
            weekday=weekday,
            hourly_pattern=self.hourly_pattern(self.hourly_averages(tables), now),
            projected_total=self.projected_total(tables),
            written_at=now,
        )
