"""Shared fixtures for reader tests: a fake pair of upstream providers."""

import asyncio
from typing import Dict, List, Tuple

import httpx
import pytest

from manga_gateway import ProviderGateway, RateLimiter, load_provider_configs

from sample_data import kitsu_manga, mangadex_chapter, mangadex_manga

MANGADEX_HOST = "api.mangadex.test"
KITSU_HOST = "kitsu.test"


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class Upstream:
    """Routes (host, path) to canned JSON responses and records requests."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], httpx.Response] = {}
        self.requests: List[httpx.Request] = []

    def add(self, host: str, path: str, payload=None, status: int = 200, text=None):
        if text is not None:
            self.routes[(host, path)] = httpx.Response(status, text=text)
        else:
            self.routes[(host, path)] = httpx.Response(status, json=payload)

    def mangadex(self, path: str, payload=None, **kwargs):
        self.add(MANGADEX_HOST, path, payload, **kwargs)

    def kitsu(self, path: str, payload=None, **kwargs):
        self.add(KITSU_HOST, f"/api/edge{path}", payload, **kwargs)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.url.host, request.url.path))
        if response is None:
            return httpx.Response(404, text=f"no route for {request.url.path}")
        return httpx.Response(
            response.status_code, content=response.content, headers=response.headers
        )

    def params_for(self, path: str) -> List[str]:
        """Raw query strings sent to a path, in order."""
        paths = (path, f"/api/edge{path}")
        return [r.url.query.decode() for r in self.requests if r.url.path in paths]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def gateway(upstream, clock):
    return ProviderGateway(
        providers=load_provider_configs(
            {
                "MANGADEX_API_URL": f"https://{MANGADEX_HOST}",
                "KITSU_API_URL": f"https://{KITSU_HOST}/api/edge",
            }
        ),
        client=httpx.AsyncClient(transport=httpx.MockTransport(upstream)),
        page_limiter=RateLimiter(limit=40, window_seconds=60, clock=clock, sleep=clock.sleep),
    )


@pytest.fixture
def naruto(upstream):
    """A manga present on both providers with three chapters."""
    upstream.kitsu("/manga", {"data": [kitsu_manga("11", "naruto", "Naruto")]})
    upstream.mangadex(
        "/manga",
        {
            "data": [
                mangadex_manga("md-boruto", "Boruto: Naruto Next Generations"),
                mangadex_manga("md-naruto", "Naruto", cover="cover.jpg"),
            ],
            "total": 2,
        },
    )
    upstream.mangadex("/manga/md-naruto", {"data": mangadex_manga("md-naruto", "Naruto")})
    upstream.mangadex(
        "/chapter",
        {
            "data": [
                mangadex_chapter("ch-2", "1", "2"),
                mangadex_chapter("ch-10", "2", "10", "The Test"),
                mangadex_chapter("ch-1", "1", "1", "Uzumaki Naruto"),
            ]
        },
    )
    upstream.mangadex(
        "/chapter/ch-2", {"data": mangadex_chapter("ch-2", "1", "2", "Sasuke Uchiha")}
    )
    upstream.mangadex(
        "/at-home/server/ch-2",
        {
            "baseUrl": "https://node.mangadex.test",
            "chapter": {
                "hash": "abc123",
                "data": ["1.png", "2.png", "3.png"],
                "dataSaver": ["1.jpg", "2.jpg", "3.jpg"],
            },
        },
    )
    return upstream
