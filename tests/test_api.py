from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api.app import Broadcaster, create_app
from api.routers.harvest import set_runner
from core.models import HarvestedItem, HarvestMode, HarvestResult, StopReason
from harvesting.harvester import InvalidCutoffError
from harvesting.runner import ReviewCheckError


class FakeRunner:
    busy = False

    def __init__(self) -> None:
        self.calls = []

    def _result(self, mode):
        item = HarvestedItem(
            identity="ana_Cold food",
            author_name="ana",
            rating_value=1,
            rating_label="1 star",
            body_text="Cold food",
            posted_at_raw="2 days ago",
        )
        return HarvestResult(
            mode=mode, items=[item], errors=[], stop_reason=StopReason.STALLED, iterations=4
        )

    async def harvest_lowest(self, url):
        self.calls.append(("lowest", url))
        return self._result(HarvestMode.SATURATION)

    async def harvest_since(self, url, since):
        self.calls.append(("newest", url, since))
        if since == "whenever":
            raise InvalidCutoffError("Cutoff must look like '3 days ago'")
        return self._result(HarvestMode.CUTOFF)

    async def check_deleted(self, url):
        if url.endswith("timeout"):
            raise ReviewCheckError(f"{url}: page did not load")
        return url.endswith("gone")


@pytest.fixture
def runner():
    fake = FakeRunner()
    set_runner(fake)
    yield fake
    set_runner(None)


@pytest.fixture
def client():
    return TestClient(create_app())


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_harvest_lowest(client, runner):
    resp = client.post("/api/harvest/lowest", json={"url": "https://maps.example/p"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["mode"] == "saturation"
    assert body["stop_reason"] == "stalled"
    assert body["items"][0]["identity"] == "ana_Cold food"
    assert runner.calls == [("lowest", "https://maps.example/p")]


def test_harvest_newest(client, runner):
    resp = client.post(
        "/api/harvest/newest", json={"url": "https://maps.example/p", "since": "a week ago"}
    )

    assert resp.status_code == 200
    assert resp.json()["mode"] == "cutoff"
    assert runner.calls == [("newest", "https://maps.example/p", "a week ago")]


def test_harvest_newest_rejects_bad_cutoff(client, runner):
    resp = client.post(
        "/api/harvest/newest", json={"url": "https://maps.example/p", "since": "whenever"}
    )

    assert resp.status_code == 422
    assert "3 days ago" in resp.json()["detail"]


def test_harvest_newest_requires_since(client, runner):
    resp = client.post("/api/harvest/newest", json={"url": "https://maps.example/p"})
    assert resp.status_code == 422


def test_deleted(client, runner):
    resp = client.get("/api/harvest/deleted", params={"url": "https://maps.example/r/gone"})
    assert resp.json() == {"url": "https://maps.example/r/gone", "deleted": True}


def test_deleted_check_failure_is_bad_gateway(client, runner):
    resp = client.get("/api/harvest/deleted", params={"url": "https://maps.example/r/timeout"})

    assert resp.status_code == 502
    assert "page did not load" in resp.json()["detail"]


def test_status(client, runner):
    assert client.get("/api/harvest/status").json() == {"ready": True, "busy": False}


def test_unavailable_without_runner(client):
    set_runner(None)
    resp = client.post("/api/harvest/lowest", json={"url": "https://maps.example/p"})

    assert resp.status_code == 503
    assert client.get("/api/harvest/status").json() == {"ready": False, "busy": False}


async def test_broadcaster_fans_out_and_unsubscribes():
    broadcaster = Broadcaster()
    first = broadcaster.subscribe()
    second = broadcaster.subscribe()

    await broadcaster.broadcast({"event": "harvest_complete"})
    broadcaster.unsubscribe(second)
    await broadcaster.broadcast({"event": "ping"})

    assert first.qsize() == 2
    assert second.qsize() == 1
