"""
Layered Cache Store
Persists the today snapshot, one averaged pattern per weekday and the last
acted-on projection, each with its own staleness rule
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, TypeVar

from .containers import BlobContainer, container_from_settings
from .errors import CacheCorruptedError, ContainerUnavailableError
from .models import ProjectionSnapshot, TodaySnapshot, Weekday, WeekdayAverageSnapshot, same_day
from .refresh_window import DEFAULT_WINDOW_START_HOUR, in_refresh_window

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1
DEFAULT_AVERAGE_MAX_AGE_DAYS = 30

TODAY_RECORD = "today-energy.json"
PROJECTION_RECORD = "projection-state.json"

KIND_TODAY = "today"
KIND_AVERAGE = "weekday-average"
KIND_PROJECTION = "projection"

T = TypeVar("T")


def average_record_name(weekday: Weekday) -> str:
    return f"weekday-average-{weekday.value}.json"


class LayeredCacheStore:
    """Staleness-aware snapshot cache over a blob container"""

    def __init__(self, container: BlobContainer,
                 average_max_age_days: int = DEFAULT_AVERAGE_MAX_AGE_DAYS,
                 refresh_window_start_hour: int = DEFAULT_WINDOW_START_HOUR):
        """
        Initialize store

        Args:
            container: Where the JSON records live
            average_max_age_days: Days a weekday average stays usable after it was written
            refresh_window_start_hour: Hour from which a previous day's average may be rebuilt
        """
        self.container = container
        self.average_max_age = timedelta(days=average_max_age_days)
        self.refresh_window_start_hour = refresh_window_start_hour

    @classmethod
    def from_settings(cls, settings) -> "LayeredCacheStore":
        return cls(
            container_from_settings(settings),
            average_max_age_days=settings.average_max_age_days,
            refresh_window_start_hour=settings.refresh_window_start_hour,
        )

    # Record plumbing

    def _encode(self, kind: str, data: Dict[str, Any], written_at: datetime) -> bytes:
        envelope = {
            "version": CACHE_FORMAT_VERSION,
            "kind": kind,
            "written_at": written_at.isoformat(),
            "data": data,
        }
        return json.dumps(envelope, sort_keys=True).encode("utf-8")

    def _decode(self, name: str, kind: str, raw: bytes, parse: Callable[[Dict[str, Any]], T]) -> T:
        try:
            envelope = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CacheCorruptedError(f"{name} is not valid JSON: {e}") from e

        if not isinstance(envelope, dict):
            raise CacheCorruptedError(f"{name} does not hold a record envelope")
        if envelope.get("version") != CACHE_FORMAT_VERSION:
            raise CacheCorruptedError(f"{name} has unsupported version {envelope.get('version')!r}")
        if envelope.get("kind") != kind:
            raise CacheCorruptedError(f"{name} holds a {envelope.get('kind')!r} record, expected {kind!r}")

        try:
            return parse(envelope["data"])
        except (KeyError, TypeError, ValueError) as e:
            raise CacheCorruptedError(f"{name} has malformed data: {e}") from e

    def _read_record(self, name: str, kind: str, parse: Callable[[Dict[str, Any]], T]) -> Optional[T]:
        try:
            raw = self.container.read(name)
        except ContainerUnavailableError as e:
            logger.critical(f"Cache container unavailable while reading {name}: {e}")
            return None

        if raw is None:
            return None

        try:
            return self._decode(name, kind, raw, parse)
        except CacheCorruptedError as e:
            logger.warning(f"Ignoring corrupt cache record: {e}")
            return None

    def _write_record(self, name: str, kind: str, data: Dict[str, Any],
                      written_at: Optional[datetime] = None) -> bool:
        payload = self._encode(kind, data, written_at or datetime.now())
        try:
            self.container.write(name, payload)
        except ContainerUnavailableError as e:
            logger.critical(f"Cache container unavailable while writing {name}: {e}")
            return False

        logger.info(f"Cached {kind} record {name}")
        return True

    def _delete_record(self, name: str) -> bool:
        try:
            self.container.delete(name)
        except ContainerUnavailableError as e:
            logger.critical(f"Cache container unavailable while deleting {name}: {e}")
            return False
        return True

    # Today snapshot

    def read_today(self) -> Optional[TodaySnapshot]:
        """Raw today snapshot regardless of its day"""
        return self._read_record(TODAY_RECORD, KIND_TODAY, TodaySnapshot.from_dict)

    def load_today(self, reference: datetime) -> Optional[TodaySnapshot]:
        """Today snapshot, only if its latest sample falls on ``reference``'s day"""
        snapshot = self.read_today()
        if snapshot is None:
            return None
        if not snapshot.is_valid_for(reference):
            logger.info("Cached today snapshot belongs to another day")
            return None
        return snapshot

    def save_today(self, snapshot: TodaySnapshot, now: Optional[datetime] = None) -> bool:
        return self._write_record(TODAY_RECORD, KIND_TODAY, snapshot.to_dict(), now)

    def should_refresh_today(self, now: datetime) -> bool:
        return self.load_today(now) is None

    # Weekday averages

    def read_average(self, weekday: Weekday) -> Optional[WeekdayAverageSnapshot]:
        """Raw averaged snapshot for ``weekday`` regardless of age"""
        snapshot = self._read_record(
            average_record_name(weekday), KIND_AVERAGE, WeekdayAverageSnapshot.from_dict
        )
        if snapshot is not None and snapshot.weekday is not weekday:
            logger.warning(
                f"Cache slot for {weekday.name} holds a {snapshot.weekday.name} average, ignoring"
            )
            return None
        return snapshot

    def is_average_expired(self, snapshot: WeekdayAverageSnapshot, now: datetime) -> bool:
        return snapshot.age(now) > self.average_max_age

    def load_average(self, weekday: Weekday, now: datetime) -> Optional[WeekdayAverageSnapshot]:
        """Averaged snapshot for ``weekday`` while it is inside the staleness window"""
        snapshot = self.read_average(weekday)
        if snapshot is None:
            return None
        if self.is_average_expired(snapshot, now):
            logger.warning(
                f"Cached {weekday.name} average expired (written {snapshot.written_at.isoformat()})"
            )
            return None
        return snapshot

    def save_average(self, snapshot: WeekdayAverageSnapshot) -> bool:
        return self._write_record(
            average_record_name(snapshot.weekday), KIND_AVERAGE, snapshot.to_dict(), snapshot.written_at
        )

    def should_refresh_average(self, weekday: Weekday, now: datetime) -> bool:
        """
        Check if the ``weekday`` average should be rebuilt from history

        Returns:
            True when the slot is empty or expired, or when it was written on an
            earlier day and ``now`` is inside the refresh window
        """
        snapshot = self.read_average(weekday)
        if snapshot is None:
            return True
        if self.is_average_expired(snapshot, now):
            return True
        if snapshot.written_at.date() < now.date():
            return in_refresh_window(now, self.refresh_window_start_hour)
        return False

    def averages(self, now: datetime) -> Dict[Weekday, Optional[WeekdayAverageSnapshot]]:
        """Every weekday slot, None where missing or expired"""
        return {weekday: self.load_average(weekday, now) for weekday in Weekday}

    # Projection state

    def read_projection(self) -> Optional[ProjectionSnapshot]:
        return self._read_record(PROJECTION_RECORD, KIND_PROJECTION, ProjectionSnapshot.from_dict)

    def load_projection(self, reference: datetime) -> Optional[ProjectionSnapshot]:
        """Projection snapshot observed on ``reference``'s day; older ones are cleared"""
        snapshot = self.read_projection()
        if snapshot is None:
            return None
        if not same_day(snapshot.observed_at, reference):
            logger.info("Clearing projection state from a previous day")
            self.clear_projection()
            return None
        return snapshot

    def save_projection(self, snapshot: ProjectionSnapshot) -> bool:
        return self._write_record(
            PROJECTION_RECORD, KIND_PROJECTION, snapshot.to_dict(), snapshot.observed_at
        )

    def clear_projection(self) -> bool:
        return self._delete_record(PROJECTION_RECORD)
