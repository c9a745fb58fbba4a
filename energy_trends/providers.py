"""Async-friendly access to the health data source that supplies energy samples."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import requests

from .errors import AuthorizationDeniedError, ProviderUnavailableError
from .models import Sample, TodayReading, Weekday, start_of_day
from .series_builder import CumulativeSeriesBuilder
from .weekday_average import DEFAULT_HISTORY_WEEKS, history_window

LOGGER = logging.getLogger(__name__)

ACTIVE_ENERGY_TYPE = "active_energy_burned"


class HealthDataProvider(ABC):
    """Source of raw active-energy samples and the user's daily goal."""

    @abstractmethod
    async def fetch_today_hourly(self, now: datetime) -> TodayReading:
        """Cumulative series for ``now``'s day plus the latest sample instant."""

    @abstractmethod
    async def fetch_historical_for_weekday(self, weekday: Weekday, now: datetime) -> List[Sample]:
        """Samples from prior occurrences of ``weekday`` inside the history window."""

    @abstractmethod
    async def fetch_goal(self) -> float:
        """Daily active-energy goal; 0 when the user has none."""


class HealthApiClient:
    """Blocking JSON client for the health data API."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10.0,
                 session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = self.session.get(
            f"{self.base_url}{path}",
            params=params,
            headers=self._headers(),
            timeout=self.timeout,
        )

        if response.status_code in (401, 403):
            raise AuthorizationDeniedError(f"Health API refused access to {path}")
        if response.status_code != 200:
            raise ProviderUnavailableError(
                f"Health API {path} returned {response.status_code}: {response.text[:200]}"
            )
        return response.json()

    def get_samples(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        """
        Fetch active-energy samples starting inside ``[start, end]``

        Returns:
            List of ``{"start", "end", "amount"}`` dicts
        """
        payload = self._get(
            "/samples",
            params={"type": ACTIVE_ENERGY_TYPE, "start": start.isoformat(), "end": end.isoformat()},
        )
        if isinstance(payload, dict):
            return payload.get("samples", [])
        return payload

    def get_goal(self) -> Dict[str, Any]:
        return self._get("/goal", params={"type": ACTIVE_ENERGY_TYPE})


def _parse_samples(records: Iterable[Dict[str, Any]]) -> List[Sample]:
    try:
        return [Sample.from_dict(record) for record in records]
    except (KeyError, TypeError, ValueError) as exc:
        raise ProviderUnavailableError(f"Health API returned malformed samples: {exc}") from exc


class HttpHealthDataProvider(HealthDataProvider):
    """Provider backed by the health data API; blocking calls run in worker threads."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 10.0,
        history_weeks: int = DEFAULT_HISTORY_WEEKS,
        builder: Optional[CumulativeSeriesBuilder] = None,
        client: Optional[HealthApiClient] = None,
    ) -> None:
        self.base_url = base_url
        self.token = token
        self.timeout = timeout
        self.history_weeks = history_weeks
        self.builder = builder or CumulativeSeriesBuilder()
        self._client_instance = client

    @property
    def is_configured(self) -> bool:
        return bool(self._client_instance or self.base_url)

    @classmethod
    def from_settings(cls, settings) -> "HttpHealthDataProvider":
        return cls(
            base_url=settings.health_api_url,
            token=settings.health_api_token,
            timeout=settings.health_api_timeout,
            history_weeks=settings.history_weeks,
        )

    def _client(self) -> HealthApiClient:
        if not self.is_configured:
            raise ProviderUnavailableError("Health API not configured. Set HEALTH_API_URL.")
        if self._client_instance is None:
            self._client_instance = HealthApiClient(self.base_url, self.token, self.timeout)
        return self._client_instance

    async def _samples(self, start: datetime, end: datetime) -> List[Sample]:
        client = self._client()
        try:
            records = await asyncio.to_thread(client.get_samples, start, end)
        except requests.RequestException as exc:
            LOGGER.error("Health API samples call failed: %s", exc)
            raise ProviderUnavailableError("Failed to fetch energy samples") from exc
        return _parse_samples(records)

    async def fetch_today_hourly(self, now: datetime) -> TodayReading:
        day_start = start_of_day(now)
        samples = await self._samples(day_start, now)
        return self.builder.today_reading(samples, now)

    async def fetch_historical_for_weekday(self, weekday: Weekday, now: datetime) -> List[Sample]:
        start, end = history_window(now, self.history_weeks)
        samples = await self._samples(start, end)
        return [sample for sample in samples if weekday.matches(sample.start.date()) and sample.start < end]

    async def fetch_goal(self) -> float:
        client = self._client()
        try:
            payload = await asyncio.to_thread(client.get_goal)
        except requests.RequestException as exc:
            LOGGER.error("Health API goal call failed: %s", exc)
            raise ProviderUnavailableError("Failed to fetch energy goal") from exc

        try:
            return max(float(payload.get("goal") or 0.0), 0.0)
        except (AttributeError, TypeError, ValueError) as exc:
            raise ProviderUnavailableError(f"Health API returned a malformed goal: {exc}") from exc


class FixtureHealthDataProvider(HealthDataProvider):
    """In-memory provider for tests and offline demos."""

    def __init__(
        self,
        samples: Optional[Iterable[Sample]] = None,
        goal: float = 0.0,
        *,
        history_weeks: int = DEFAULT_HISTORY_WEEKS,
        today_error: Optional[Exception] = None,
        history_error: Optional[Exception] = None,
        goal_error: Optional[Exception] = None,
        builder: Optional[CumulativeSeriesBuilder] = None,
    ) -> None:
        self.samples: List[Sample] = list(samples or [])
        self.goal = goal
        self.history_weeks = history_weeks
        self.today_error = today_error
        self.history_error = history_error
        self.goal_error = goal_error
        self.builder = builder or CumulativeSeriesBuilder()
        self.calls: Dict[str, int] = {"today": 0, "history": 0, "goal": 0}

    async def fetch_today_hourly(self, now: datetime) -> TodayReading:
        self.calls["today"] += 1
        if self.today_error is not None:
            raise self.today_error
        return self.builder.today_reading(self.samples, now)

    async def fetch_historical_for_weekday(self, weekday: Weekday, now: datetime) -> List[Sample]:
        self.calls["history"] += 1
        if self.history_error is not None:
            raise self.history_error
        start, end = history_window(now, self.history_weeks)
        return [
            sample for sample in self.samples
            if start <= sample.start < end and weekday.matches(sample.start.date())
        ]

    async def fetch_goal(self) -> float:
        self.calls["goal"] += 1
        if self.goal_error is not None:
            raise self.goal_error
        return self.goal
