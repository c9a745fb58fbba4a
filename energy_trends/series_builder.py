"""
Cumulative Series Builder
Turns unordered energy samples into a running-total series for one day
"""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional, Tuple, Union

from .models import DaySeries, HourlyPoint, Sample, TodayReading, start_of_day

ONE_HOUR = timedelta(hours=1)
ONE_DAY = timedelta(days=1)

Observation = Union[Sample, Tuple[datetime, float]]


def unpack_observation(observation: Observation) -> Tuple[datetime, float, Optional[datetime]]:
    if isinstance(observation, Sample):
        return observation.start, observation.amount, observation.end
    start, amount = observation
    return start, amount, None


class CumulativeSeriesBuilder:
    """Builds cumulative-by-hour series from raw observations"""

    def hourly_buckets(self, observations: Iterable[Observation], day_start: datetime,
                       as_of: datetime) -> Dict[int, float]:
        """
        Sum observation amounts per hour-of-day

        Args:
            observations: Samples or ``(start, amount)`` pairs in any order
            day_start: Any instant on the day being built
            as_of: Observations starting after this instant are ignored

        Returns:
            Mapping of hour (0-23) to the amount burned in that hour
        """
        day_start = start_of_day(day_start)
        window_end = min(as_of, day_start + ONE_DAY)
        buckets: Dict[int, float] = defaultdict(float)

        for observation in observations:
            start, amount, _ = unpack_observation(observation)
            if start < day_start or start > window_end or start >= day_start + ONE_DAY:
                continue
            hour = int((start - day_start) // ONE_HOUR)
            # A cumulative series can't go backwards
            buckets[hour] += max(float(amount), 0.0)

        return buckets

    def build(self, observations: Iterable[Observation], day_start: datetime,
              as_of: datetime) -> DaySeries:
        """
        Build the cumulative series for the day containing ``day_start``

        Each completed hour H emits a point at H+1:00 holding the running total
        by the end of that hour. Contributions in the still-running hour are
        emitted as one final point stamped at ``as_of``.

        Args:
            observations: Samples or ``(start, amount)`` pairs in any order
            day_start: Any instant on the day being built
            as_of: Instant the series is current to (not after now)

        Returns:
            DaySeries starting with a zero point at midnight
        """
        day_start = start_of_day(day_start)
        points = [HourlyPoint(day_start, 0.0)]

        if as_of <= day_start:
            return DaySeries(points)

        buckets = self.hourly_buckets(observations, day_start, as_of)
        if not buckets:
            return DaySeries(points)

        elapsed = as_of - day_start
        completed_hours = min(int(elapsed // ONE_HOUR), 24)

        running_total = 0.0
        for hour in range(completed_hours):
            running_total += buckets.get(hour, 0.0)
            points.append(HourlyPoint(day_start + (hour + 1) * ONE_HOUR, running_total))

        current_hour_amount = buckets.get(completed_hours, 0.0) if completed_hours < 24 else 0.0
        if current_hour_amount > 0:
            current = HourlyPoint(as_of, running_total + current_hour_amount)
            if points[-1].timestamp == as_of:
                points[-1] = current
            else:
                points.append(current)

        return DaySeries(points)

    def latest_sample_timestamp(self, observations: Iterable[Observation], day_start: datetime,
                                as_of: datetime) -> Optional[datetime]:
        """Most recent sample instant inside ``[day_start, as_of]``, or None"""
        day_start = start_of_day(day_start)
        latest: Optional[datetime] = None

        for observation in observations:
            start, _, end = unpack_observation(observation)
            if start < day_start or start > as_of:
                continue
            moment = min(end or start, as_of)
            if latest is None or moment > latest:
                latest = moment

        return latest

    def today_reading(self, observations: Iterable[Observation], now: datetime) -> TodayReading:
        """
        Series for ``now``'s day, ending at the freshest sample rather than at ``now``

        When samples lag the wall clock the series stops at the latest sample,
        so no flat hour-boundary points are drawn past the data.
        """
        observations = list(observations)
        day_start = start_of_day(now)
        latest = self.latest_sample_timestamp(observations, day_start, now)
        return TodayReading(
            series=self.build(observations, day_start, latest or now),
            latest_sample_timestamp=latest,
        )
