"""Shared fixtures: a controllable clock, an in-memory cache and a fake upstream."""

import json

import httpx
import pytest

from menu_site.catalog import CatalogClient
from menu_site.database import MemoryCacheStore

BASE_URL = "https://upstream.test/v5/"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """
    Routes requests by path (and `page` query param) to canned JSON bodies.
    `fail_with` makes every request fail: an int is returned as that HTTP
    status, an exception instance is raised as a transport error.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []
        self.fail_with = None

    def add(self, path, body, page=None, status=200):
        self.routes[(path, page)] = (status, body)

    def add_pages(self, path, pages):
        for i, items in enumerate(pages, start=1):
            nxt = f"{BASE_URL}{path}?page={i + 1}" if i < len(pages) else None
            self.add(path, {"data": items, "links": {"next": nxt}}, page=str(i))

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.split("/v5/", 1)[-1]
        page = request.url.params.get("page")
        self.calls.append((path, page))
        if isinstance(self.fail_with, Exception):
            raise self.fail_with
        if isinstance(self.fail_with, int):
            return httpx.Response(self.fail_with, json={"message": "upstream unhappy"})
        status, body = self.routes.get((path, page), (404, {"message": "not found"}))
        if isinstance(body, str):
            return httpx.Response(status, content=body.encode(), headers={"Content-Type": "application/json"})
        return httpx.Response(status, content=json.dumps(body).encode(), headers={"Content-Type": "application/json"})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryCacheStore(clock=clock)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def catalog(upstream, cache):
    http = httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))
    return CatalogClient(BASE_URL, "test-token", cache, http=http)
