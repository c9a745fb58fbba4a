"""
Energy Data Models
Immutable value types shared by the builder, averaging engine, cache and resolver
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple


def start_of_day(moment: datetime) -> datetime:
    """Midnight at the start of ``moment``'s calendar day"""
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def same_day(first: datetime, second: datetime) -> bool:
    return first.date() == second.date()


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class Weekday(Enum):
    """Day of week used to partition history (1 = Sunday, 7 = Saturday)"""

    SUNDAY = 1
    MONDAY = 2
    TUESDAY = 3
    WEDNESDAY = 4
    THURSDAY = 5
    FRIDAY = 6
    SATURDAY = 7

    @classmethod
    def from_date(cls, moment: date) -> "Weekday":
        # isoweekday(): Monday=1 .. Sunday=7
        return cls(moment.isoweekday() % 7 + 1)

    def matches(self, moment: date) -> bool:
        return Weekday.from_date(moment) is self


class EntrySource(Enum):
    """Which resolver branch produced an entry"""

    LIVE = "live"
    CACHED = "cached"
    DEGRADED = "degraded"
    EMPTY = "empty"
    MIDNIGHT = "midnight"


@dataclass(frozen=True)
class Sample:
    """A raw provider observation: energy burned in ``[start, end)``"""

    start: datetime
    amount: float
    end: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat() if self.end else None,
            "amount": self.amount,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Sample":
        return cls(
            start=datetime.fromisoformat(payload["start"]),
            amount=float(payload["amount"]),
            end=_parse_datetime(payload.get("end")),
        )


@dataclass(frozen=True)
class HourlyPoint:
    """Cumulative amount burned as of ``timestamp``"""

    timestamp: datetime
    cumulative_amount: float

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "cumulative_amount": self.cumulative_amount}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "HourlyPoint":
        return cls(
            timestamp=datetime.fromisoformat(payload["timestamp"]),
            cumulative_amount=float(payload["cumulative_amount"]),
        )


@dataclass(frozen=True)
class DaySeries:
    """Ordered cumulative points for a single calendar day"""

    points: Tuple[HourlyPoint, ...] = ()

    def __post_init__(self) -> None:
        # Accept any iterable but always store a tuple
        object.__setattr__(self, "points", tuple(self.points))

    @classmethod
    def empty(cls) -> "DaySeries":
        return cls(())

    @classmethod
    def zero(cls, day_start: datetime) -> "DaySeries":
        return cls((HourlyPoint(start_of_day(day_start), 0.0),))

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self):
        return iter(self.points)

    def __bool__(self) -> bool:
        return bool(self.points)

    @property
    def total(self) -> float:
        return self.points[-1].cumulative_amount if self.points else 0.0

    @property
    def start(self) -> Optional[datetime]:
        return self.points[0].timestamp if self.points else None

    @property
    def end(self) -> Optional[datetime]:
        return self.points[-1].timestamp if self.points else None

    def is_monotonic(self) -> bool:
        return all(
            later.cumulative_amount >= earlier.cumulative_amount and later.timestamp >= earlier.timestamp
            for earlier, later in zip(self.points, self.points[1:])
        )

    def with_point(self, point: HourlyPoint) -> "DaySeries":
        """Return a new series with ``point`` inserted in timestamp order"""
        points = [existing for existing in self.points if existing.timestamp != point.timestamp]
        points.append(point)
        points.sort(key=lambda item: item.timestamp)
        return DaySeries(points)

    def rebased(self, day: datetime) -> "DaySeries":
        """
        Shift the series onto ``day`` keeping each point's offset from its own midnight

        A point at 24:00 (next midnight) keeps its one-day offset, so an averaged
        pattern cached last week still ends at the end of the target day.
        """
        if not self.points:
            return self
        origin = start_of_day(self.points[0].timestamp)
        target = start_of_day(day)
        if origin == target:
            return self
        shift = target - origin
        return DaySeries(
            HourlyPoint(point.timestamp + shift, point.cumulative_amount) for point in self.points
        )

    def to_list(self) -> List[Dict[str, Any]]:
        return [point.to_dict() for point in self.points]

    @classmethod
    def from_list(cls, payload: Iterable[Dict[str, Any]]) -> "DaySeries":
        return cls(HourlyPoint.from_dict(item) for item in payload)


@dataclass(frozen=True)
class TodayReading:
    """What the provider returns for the live today query"""

    series: DaySeries
    latest_sample_timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class TodaySnapshot:
    """Cached copy of the last successful live today query"""

    total: float
    hourly_pattern: DaySeries
    goal: float
    latest_sample_timestamp: Optional[datetime] = None

    @classmethod
    def from_series(
        cls, series: DaySeries, goal: float, latest_sample_timestamp: Optional[datetime]
    ) -> "TodaySnapshot":
        return cls(
            total=series.total,
            hourly_pattern=series,
            goal=goal,
            latest_sample_timestamp=latest_sample_timestamp,
        )

    def is_valid_for(self, reference: datetime) -> bool:
        # A snapshot without a sample timestamp can't prove it belongs to today
        if self.latest_sample_timestamp is None:
            return False
        return same_day(self.latest_sample_timestamp, reference)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "hourly_pattern": self.hourly_pattern.to_list(),
            "goal": self.goal,
            "latest_sample_timestamp": (
                self.latest_sample_timestamp.isoformat() if self.latest_sample_timestamp else None
            ),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "TodaySnapshot":
        return cls(
            total=float(payload["total"]),
            hourly_pattern=DaySeries.from_list(payload["hourly_pattern"]),
            goal=float(payload["goal"]),
            latest_sample_timestamp=_parse_datetime(payload.get("latest_sample_timestamp")),
        )


@dataclass(frozen=True)
class WeekdayAverageSnapshot:
    """Averaged cumulative pattern and projected total for one weekday"""

    weekday: Weekday
    hourly_pattern: DaySeries
    projected_total: float
    written_at: datetime

    def age(self, now: datetime) -> timedelta:
        return now - self.written_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weekday": self.weekday.value,
            "hourly_pattern": self.hourly_pattern.to_list(),
            "projected_total": self.projected_total,
            "written_at": self.written_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "WeekdayAverageSnapshot":
        return cls(
            weekday=Weekday(int(payload["weekday"])),
            hourly_pattern=DaySeries.from_list(payload["hourly_pattern"]),
            projected_total=float(payload["projected_total"]),
            written_at=datetime.fromisoformat(payload["written_at"]),
        )


@dataclass(frozen=True)
class ProjectionSnapshot:
    """Last projected end-of-day total the notifier acted on"""

    projected_total: float
    observed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"projected_total": self.projected_total, "observed_at": self.observed_at.isoformat()}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ProjectionSnapshot":
        return cls(
            projected_total=float(payload["projected_total"]),
            observed_at=datetime.fromisoformat(payload["observed_at"]),
        )


@dataclass(frozen=True)
class ResolvedEntry:
    """Everything the rendering surface needs for one point in time"""

    as_of: datetime
    authorized: bool
    today_total: float
    average_at_as_of: float
    projected_total: float
    goal: float
    today_series: DaySeries = field(default_factory=DaySeries.empty)
    average_series: DaySeries = field(default_factory=DaySeries.empty)
    source: EntrySource = EntrySource.LIVE

    @classmethod
    def unauthorized(cls, as_of: datetime) -> "ResolvedEntry":
        return cls(
            as_of=as_of,
            authorized=False,
            today_total=0.0,
            average_at_as_of=0.0,
            projected_total=0.0,
            goal=0.0,
            source=EntrySource.EMPTY,
        )

    @property
    def projected_end_of_day(self) -> float:
        """Today's total plus what the average day still burns after ``as_of``"""
        remaining = self.projected_total - self.average_at_as_of
        return self.today_total + max(remaining, 0.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "authorized": self.authorized,
            "source": self.source.value,
            "today_total": self.today_total,
            "average_at_as_of": self.average_at_as_of,
            "projected_total": self.projected_total,
            "projected_end_of_day": self.projected_end_of_day,
            "goal": self.goal,
            "today_series": self.today_series.to_list(),
            "average_series": self.average_series.to_list(),
        }
