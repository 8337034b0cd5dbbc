"""Shared fixtures for gateway tests."""

import asyncio
from typing import List

import httpx
import pytest

from manga_gateway import ProviderGateway, RateLimiter, load_provider_configs

MANGADEX_URL = "https://api.mangadex.test"
KITSU_URL = "https://kitsu.test/api/edge"


class FakeClock:
    """Monotonic clock whose sleep advances time instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it was asked to send."""

    def __init__(self, handler):
        self.requests: List[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def environ():
    return {"MANGADEX_API_URL": MANGADEX_URL, "KITSU_API_URL": KITSU_URL + "/"}


@pytest.fixture
def make_gateway(environ, clock):
    """Build a gateway whose upstream is served by ``handler``."""

    def factory(handler=None, env=None, limiter=None):
        if handler is None:
            handler = lambda request: httpx.Response(200, json={"result": "ok"})
        transport = RecordingTransport(handler)
        gateway = ProviderGateway(
            providers=load_provider_configs(environ if env is None else env),
            client=httpx.AsyncClient(transport=transport),
            page_limiter=limiter
            or RateLimiter(limit=40, window_seconds=60, clock=clock, sleep=clock.sleep),
        )
        gateway.transport = transport
        return gateway

    return factory
