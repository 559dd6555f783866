import asyncio
from datetime import datetime
from unittest.mock import MagicMock

import httpx
import pytest

from servicemon.api import create_app
from servicemon.config import MonitorSettings
from servicemon.events import EventLogger
from servicemon.registry import DEFAULT_SEED, ProcessClock, ServiceRegistry, ServiceSeed

pytestmark = pytest.mark.anyio


@pytest.fixture()
def settings():
    return MonitorSettings(_env_file=None, version="1.0.0")


@pytest.fixture()
def events():
    return MagicMock(spec=EventLogger)


def build_app(settings, events, seed=DEFAULT_SEED, clock=None):
    clock = clock or ProcessClock()
    registry = ServiceRegistry(seed, clock)
    return create_app(registry, settings, events, clock)


def client_for(app):
    transport = httpx.ASGITransport(app=app, client=("203.0.113.7", 51000))
    return httpx.AsyncClient(transport=transport, base_url="http://test")


def last_event(events):
    level, message, fields = events.emit.call_args.args
    return level, message, fields


async def test_home_reports_version_and_uptime(settings, events):
    app = build_app(settings, events)
    async with client_for(app) as client:
        response = await client.get("/")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    body = response.json()
    assert body["message"] == settings.welcome_message
    assert body["version"] == "1.0.0"
    assert body["uptime"]
    level, message, fields = last_event(events)
    assert (level, message) == ("info", "Home endpoint accessed")
    assert fields == {"method": "GET", "path": "/", "remote": "203.0.113.7:51000"}


async def test_home_uptime_does_not_decrease(settings, events):
    ticks = iter([0.0, 1.0, 3.5])
    clock = ProcessClock(monotonic=lambda: next(ticks))
    app = build_app(settings, events, clock=clock)
    async with client_for(app) as client:
        first = (await client.get("/")).json()["uptime"]
        second = (await client.get("/")).json()["uptime"]

    assert (first, second) == ("1s", "3.5s")


async def test_health_is_healthy_with_non_decreasing_timestamps(settings, events):
    app = build_app(settings, events)
    stamps = []
    async with client_for(app) as client:
        for _ in range(5):
            response = await client.get("/health")
            assert response.status_code == 200
            body = response.json()
            assert body["status"] == "healthy"
            assert body["version"] == "1.0.0"
            stamps.append(datetime.fromisoformat(body["timestamp"].replace("Z", "+00:00")))

    assert stamps == sorted(stamps)
    level, message, _ = last_event(events)
    assert (level, message) == ("debug", "Health check performed")


async def test_list_services_is_ordered_and_stable(settings, events):
    app = build_app(settings, events)
    async with client_for(app) as client:
        first = (await client.get("/api/services")).json()
        second = (await client.get("/api/services")).json()

    names = [item["name"] for item in first]
    assert names == ["api-server", "database", "cache"]
    assert len(set(names)) == 3
    assert [item["name"] for item in second] == names
    assert all(item["status"] == "running" for item in first)
    level, message, fields = last_event(events)
    assert (level, message) == ("info", "Services list requested")
    assert fields["service_count"] == 3


async def test_list_services_empty_registry(settings, events):
    app = build_app(settings, events, seed=[])
    async with client_for(app) as client:
        response = await client.get("/api/services")

    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.parametrize("name", ["api-server", "database", "cache"])
async def test_get_service_echoes_name(settings, events, name):
    app = build_app(settings, events)
    async with client_for(app) as client:
        response = await client.get(f"/api/services/{name}")

    assert response.status_code == 200
    assert response.json()["name"] == name
    level, message, fields = last_event(events)
    assert (level, message) == ("info", "Service status requested")
    assert fields["service"] == name
    assert fields["status"] == "running"


async def test_database_and_missing_queue_scenario(settings, events):
    app = build_app(settings, events)
    async with client_for(app) as client:
        database = await client.get("/api/services/database")
        queue = await client.get("/api/services/queue")

    assert database.status_code == 200
    body = database.json()
    assert body["name"] == "database"
    assert body["status"] == "running"
    assert body["uptime"] == "48h30m"
    assert body["timestamp"]

    assert queue.status_code == 404
    assert queue.json() == {"error": "Service 'queue' not found"}
    level, message, fields = last_event(events)
    assert (level, message) == ("warn", "Service not found")
    assert fields["service"] == "queue"


async def test_unknown_names_are_echoed(settings, events):
    app = build_app(settings, events)
    async with client_for(app) as client:
        for name in ["nonexistent", "Database", "api%20server"]:
            response = await client.get(f"/api/services/{name}")
            assert response.status_code == 404
            expected = name.replace("%20", " ")
            assert response.json() == {"error": f"Service '{expected}' not found"}


async def test_non_running_status_is_reported(settings, events):
    seed = [ServiceSeed(name="legacy", status="degraded", uptime="5m")]
    app = build_app(settings, events, seed=seed)
    async with client_for(app) as client:
        response = await client.get("/api/services/legacy")

    assert response.json()["status"] == "degraded"


async def test_concurrent_lookups(settings, events):
    app = build_app(settings, events)
    names = ["api-server", "database", "cache"] * 20
    async with client_for(app) as client:
        responses = await asyncio.gather(*(client.get(f"/api/services/{name}") for name in names))

    assert all(response.status_code == 200 for response in responses)
    assert [response.json()["name"] for response in responses] == names


async def test_unmatched_routes_use_framework_defaults(settings, events):
    app = build_app(settings, events)
    async with client_for(app) as client:
        missing = await client.get("/api/unknown")
        wrong_method = await client.post("/api/services")

    assert missing.status_code == 404
    assert wrong_method.status_code == 405
    events.emit.assert_not_called()


async def test_metrics_exposes_runtime_and_request_counters(settings, events):
    app = build_app(settings, events)
    async with client_for(app) as client:
        await client.get("/api/services/queue")
        response = await client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    text = response.text
    assert "python_info" in text
    assert 'http_requests_total{method="GET",route="/api/services/{name}",status="404"} 1.0' in text
