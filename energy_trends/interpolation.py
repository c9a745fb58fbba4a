"""
Series Interpolation
Estimates a cumulative value between two known points
"""

from bisect import bisect_right
from datetime import datetime
from typing import Optional

from .models import DaySeries


def interpolate(series: DaySeries, at: datetime) -> Optional[float]:
    """
    Linearly interpolate the cumulative value of ``series`` at ``at``

    Args:
        series: Ordered cumulative series
        at: Instant to estimate the value for

    Returns:
        The first value before the series starts, the last value after it ends,
        the exact point value on a point, otherwise ``v0 + (v1 - v0) * progress``
        between the bracketing points. ``None`` for an empty series.
    """
    points = series.points
    if not points:
        return None

    if at <= points[0].timestamp:
        return points[0].cumulative_amount
    if at >= points[-1].timestamp:
        return points[-1].cumulative_amount

    timestamps = [point.timestamp for point in points]
    index = bisect_right(timestamps, at)
    lower = points[index - 1]
    upper = points[index]

    if lower.timestamp == at:
        return lower.cumulative_amount

    span = (upper.timestamp - lower.timestamp).total_seconds()
    if span <= 0:
        return upper.cumulative_amount

    # For hour-spaced points this is minutes_into_hour / 60
    progress = (at - lower.timestamp).total_seconds() / span
    return lower.cumulative_amount + (upper.cumulative_amount - lower.cumulative_amount) * progress
