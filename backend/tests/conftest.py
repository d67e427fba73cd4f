"""
Pytest configuration and fixtures for the MFL Proxy Backend.

This module provides:
- Controllable clocks for cache and session expiry
- A fake MFL upstream built on httpx.MockTransport
- Wired service fixtures (cache, rate limiter, MFL service, auth service)
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional
from urllib.parse import parse_qsl

import httpx
import pytest

# Set test mode before importing app modules
os.environ["MODE"] = "TEST"

from app.services.auth_service import AuthService
from app.services.mfl import InMemoryCache, MFLHTTPClient, MFLService, RateLimiter
from app.services.session_store import LeagueMembership


MFL_BASE_URL = "https://api.myfantasyleague.com/2025"

# Fast enough for tests, slow enough to measure spacing
TEST_REQUESTS_PER_SECOND = 50.0


# ============================================================================
# Clocks
# ============================================================================


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDateTimeClock:
    """Manually advanced clock returning aware datetimes."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 9, 7, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def datetime_clock() -> FakeDateTimeClock:
    return FakeDateTimeClock()


# ============================================================================
# Fake MFL upstream
# ============================================================================


def mfl_envelope(name: str, payload) -> Dict:
    """Wrap a payload the way MFL export responses do."""
    return {"version": "1.0", "encoding": "utf-8", name: payload}


def form_of(request: httpx.Request) -> Dict[str, str]:
    """Decode a form-encoded request body."""
    return dict(parse_qsl(request.content.decode()))


class FakeMFL:
    """
    Routes MFL requests by their TYPE parameter (or the /login path) to
    canned responses and records every request it sees.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def route(self, route_type: str, response) -> None:
        """
        Register a response for a TYPE (or "login").

        Args:
            route_type: MFL TYPE value or "login"
            response: httpx.Response, or callable taking the request
        """
        if callable(response):
            self.routes[route_type] = response
        else:
            self.routes[route_type] = lambda request: response

    @staticmethod
    def route_type(request: httpx.Request) -> str:
        if request.url.path.endswith("/login"):
            return "login"
        if request.method == "GET":
            return request.url.params.get("TYPE", "")
        return form_of(request).get("TYPE", "")

    def calls(self, route_type: Optional[str] = None) -> List[httpx.Request]:
        if route_type is None:
            return list(self.requests)
        return [request for request in self.requests if self.route_type(request) == route_type]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(self.route_type(request))
        if handler is None:
            return httpx.Response(404, text="no route")
        return handler(request)


@pytest.fixture
def fake_mfl() -> FakeMFL:
    return FakeMFL()


@pytest.fixture
def mfl_client(fake_mfl: FakeMFL) -> MFLHTTPClient:
    return MFLHTTPClient(
        base_url=MFL_BASE_URL,
        timeout=2.0,
        transport=httpx.MockTransport(fake_mfl),
    )


@pytest.fixture
def cache(clock: FakeClock) -> InMemoryCache:
    return InMemoryCache(clock=clock)


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(max_requests_per_second=TEST_REQUESTS_PER_SECOND)


@pytest.fixture
def mfl_service(mfl_client, cache, rate_limiter) -> MFLService:
    return MFLService(client=mfl_client, cache=cache, rate_limiter=rate_limiter)


@pytest.fixture
def auth_service(mfl_client, mfl_service) -> AuthService:
    return AuthService(client=mfl_client, mfl_service=mfl_service, login_timeout=2.0)


@pytest.fixture
def league_membership() -> LeagueMembership:
    return LeagueMembership(
        league_id="12345",
        league_name="Dynasty Degenerates",
        franchise_id="0003",
        franchise_name="Gridiron Gurus",
        url="https://www43.myfantasyleague.com/2025/home/12345",
    )
