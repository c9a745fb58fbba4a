"""Shared pytest configuration for the project test suite."""
from __future__ import annotations

import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List

import pytest


# Ensure the repository root (which contains the ``energy_trends`` package) is importable.
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from energy_trends.cache_store import LayeredCacheStore  # noqa: E402
from energy_trends.containers import MemoryContainer  # noqa: E402
from energy_trends.models import Sample  # noqa: E402

# Saturday 20 January 2024, 15:40 local time
SCENARIO_NOW = datetime(2024, 1, 20, 15, 40)
SCENARIO_GOAL = 900.0


@pytest.fixture
def scenario_now() -> datetime:
    return SCENARIO_NOW


@pytest.fixture
def scenario_goal() -> float:
    return SCENARIO_GOAL


@pytest.fixture
def memory_store() -> LayeredCacheStore:
    return LayeredCacheStore(MemoryContainer())


@pytest.fixture
def sample_factory() -> Callable[..., Sample]:
    """Build a sample from a day, an ``HH:MM`` start and an amount."""

    def _make(day: datetime, start: str, amount: float, minutes: int = 10) -> Sample:
        hour, minute = (int(part) for part in start.split(":"))
        begin = day.replace(hour=hour, minute=minute, second=0, microsecond=0)
        return Sample(start=begin, amount=amount, end=begin + timedelta(minutes=minutes))

    return _make


@pytest.fixture
def today_samples(sample_factory) -> List[Sample]:
    """550 kcal burned by 15:40 on the scenario Saturday; last sample ends at 15:40."""
    day = SCENARIO_NOW
    return [
        sample_factory(day, "07:00", 100.0, minutes=30),
        sample_factory(day, "09:00", 150.0),
        sample_factory(day, "12:00", 200.0),
        sample_factory(day, "15:30", 100.0),
    ]


@pytest.fixture
def saturday_history(sample_factory) -> List[Sample]:
    """
    Ten previous Saturdays

    Five days reach 500 by 08:00 and five reach 520; nothing more until 18:00
    when each day adds 503. The hourly average through the afternoon is 510
    and the mean complete daily total is 1013.
    """
    samples = []
    for weeks_back in range(1, 11):
        day = SCENARIO_NOW - timedelta(weeks=weeks_back)
        morning = 500.0 if weeks_back % 2 else 520.0
        samples.append(sample_factory(day, "08:00", morning))
        samples.append(sample_factory(day, "18:00", 503.0))
    return samples
