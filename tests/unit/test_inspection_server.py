from __future__ import annotations

from datetime import timedelta

import pytest
from aiohttp import test_utils, web

from energy_trends.config import Settings
from energy_trends.inspection_server import InspectionApplication, create_app, parse_weekday
from energy_trends.models import ProjectionSnapshot, Weekday
from energy_trends.providers import FixtureHealthDataProvider


@pytest.fixture
def inspection(memory_store, today_samples, saturday_history) -> InspectionApplication:
    provider = FixtureHealthDataProvider(today_samples + saturday_history, goal=900.0)
    return InspectionApplication(Settings(cache_backend="memory"), provider=provider, store=memory_store)


@pytest.mark.asyncio
async def test_health(inspection):
    async with test_utils.TestClient(test_utils.TestServer(inspection.app)) as client:
        response = await client.get("/health")
        assert response.status == 200
        assert await response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_entry_resolves_and_records_projection(inspection, memory_store, scenario_now):
    async with test_utils.TestClient(test_utils.TestServer(inspection.app)) as client:
        response = await client.get("/entry", params={"at": scenario_now.isoformat()})
        payload = await response.json()

    assert response.status == 200
    assert payload["source"] == "live"
    assert payload["today_total"] == 550.0
    assert payload["average_at_as_of"] == 510.0
    assert payload["projected_end_of_day"] == 1053.0
    assert payload["goal_crossing"] is None
    assert memory_store.read_projection().projected_total == 1053.0


@pytest.mark.asyncio
async def test_entry_reports_goal_crossing(inspection, memory_store, scenario_now):
    memory_store.save_projection(ProjectionSnapshot(850.0, scenario_now - timedelta(minutes=15)))

    async with test_utils.TestClient(test_utils.TestServer(inspection.app)) as client:
        response = await client.get("/entry", params={"at": scenario_now.isoformat()})
        payload = await response.json()

    assert payload["goal_crossing"]["direction"] == "below_to_above"


@pytest.mark.asyncio
async def test_entry_rejects_bad_instant(inspection):
    async with test_utils.TestClient(test_utils.TestServer(inspection.app)) as client:
        response = await client.get("/entry", params={"at": "yesterday-ish"})
        assert response.status == 400


@pytest.mark.asyncio
async def test_timeline(inspection):
    async with test_utils.TestClient(test_utils.TestServer(inspection.app)) as client:
        response = await client.get(
            "/timeline", params={"at": "2024-01-20T23:50:00", "next_refresh": "2024-01-21T00:05:00"}
        )
        payload = await response.json()

    assert [entry["source"] for entry in payload["entries"]] == ["live", "midnight"]
    assert payload["refresh_at"] == "2024-01-21T00:05:00"


@pytest.mark.asyncio
async def test_cache_endpoints(inspection, scenario_now):
    async with test_utils.TestClient(test_utils.TestServer(inspection.app)) as client:
        assert (await client.get("/cache/today")).status == 404
        assert (await client.get("/cache/average/7")).status == 404

        await client.get("/entry", params={"at": scenario_now.isoformat()})

        today = await (await client.get("/cache/today")).json()
        average = await (await client.get("/cache/average/saturday")).json()
        averages = await (await client.get("/cache/averages")).json()
        projection = await (await client.get("/cache/projection")).json()

    assert today["cached"] is True
    assert today["snapshot"]["total"] == 550.0
    assert average["weekday"] == 7
    assert average["snapshot"]["projected_total"] == 1013.0
    assert set(averages) == {weekday.name.lower() for weekday in Weekday}
    assert averages["monday"]["cached"] is False
    assert projection["snapshot"]["projected_total"] == 1053.0


@pytest.mark.asyncio
async def test_clear_projection(inspection, memory_store, scenario_now):
    memory_store.save_projection(ProjectionSnapshot(850.0, scenario_now))

    async with test_utils.TestClient(test_utils.TestServer(inspection.app)) as client:
        response = await client.delete("/cache/projection")
        assert response.status == 200
        assert (await client.get("/cache/projection")).status == 404


@pytest.mark.asyncio
async def test_unknown_weekday(inspection):
    async with test_utils.TestClient(test_utils.TestServer(inspection.app)) as client:
        assert (await client.get("/cache/average/8")).status == 404
        assert (await client.get("/cache/average/funday")).status == 404


def test_parse_weekday_accepts_numbers_and_names():
    assert parse_weekday("1") is Weekday.SUNDAY
    assert parse_weekday("Saturday") is Weekday.SATURDAY
    with pytest.raises(web.HTTPNotFound):
        parse_weekday("0")


def test_create_app_uses_settings(tmp_path):
    app = create_app(Settings(cache_backend="file", cache_dir=str(tmp_path)))
    request = test_utils.make_mocked_request("GET", "/health", app=app)

    assert isinstance(app, web.Application)
    assert request.app is app
