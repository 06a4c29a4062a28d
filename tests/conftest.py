"""Shared fixtures: a fake relay service and controllable clocks."""

import json
from datetime import datetime, timedelta

import httpx
import pytest

from crs_status.sdk.relay_client import UsageClient
from crs_status.storage.cache import UsageCache


class FakeRelay:
    """In-process stand-in for the relay service stats API.

    Carries the base URL and API key tests should configure, and the
    account id it resolves that key to.
    """

    base_url = "https://relay.test"
    api_key = "cr_test_key"
    api_id = "key-123"

    def __init__(self):
        self.requests = []
        self.key_id_response = {"success": True, "data": {"id": self.api_id}}
        self.stats_response = {
            "success": True,
            "data": {
                "usage": {"total": {"allTokens": 50000}},
                "limits": {
                    "currentDailyCost": 7.5,
                    "dailyCostLimit": 10,
                    "currentTotalCost": 42.0,
                },
            },
        }
        self.model_stats_response = {
            "success": True,
            "data": [
                {"allTokens": 10000, "costs": {"total": 2.0}},
                {"allTokens": 2345, "costs": {"total": 1.2}},
            ],
        }
        self.status_codes = {}
        self.network_error = False

    @property
    def paths(self):
        return [request.url.path for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.network_error:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        responses = {
            "/apiStats/api/get-key-id": self.key_id_response,
            "/apiStats/api/user-stats": self.stats_response,
            "/apiStats/api/user-model-stats": self.model_stats_response,
        }
        if path not in responses:
            return httpx.Response(404, json={"success": False})
        return httpx.Response(self.status_codes.get(path, 200), json=responses[path])

    def body(self, index: int) -> dict:
        return json.loads(self.requests[index].content)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """Wall clock that ticks one second per reading."""

    def __init__(self, start: datetime = datetime(2026, 10, 18, 14, 5, 0)):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def relay():
    return FakeRelay()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return FakeWallClock()


@pytest.fixture
def client(relay, clock, wall_clock):
    """Usage client wired to the fake relay and fake clocks."""
    return UsageClient(
        cache=UsageCache(clock=clock),
        transport=httpx.MockTransport(relay.handler),
        now=wall_clock,
    )
