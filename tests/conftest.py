"""
Shared pytest fixtures for empolis-sync tests.

HTTP traffic is simulated with httpx.MockTransport; higher layers use
small in-memory fakes so no test touches the network.
"""

import json
from pathlib import Path
from typing import Callable

import httpx
import pytest

from empolis_sync.config import ApiSettings
from empolis_sync.errors import NotFound
from empolis_sync.types import Credentials, DataSourceSelection

BASE_URL = "https://empolis.test"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTokens:
    """Token source that always returns the same token."""

    def __init__(self, token: str = "test-token"):
        self.token = token
        self.calls = 0

    async def get_token(self) -> str:
        self.calls += 1
        return self.token


class RecordingTransport:
    """
    MockTransport handler that records requests and answers from a routing function.

    The routing function gets the request and returns an httpx.Response
    (or raises an httpx exception).
    """

    def __init__(self, route: Callable[[httpx.Request], httpx.Response]):
        self.route = route
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.route(request)

    def json_bodies(self) -> list:
        return [json.loads(r.content) for r in self.requests if r.content]


class FakeGateway:
    """
    In-memory stand-in for ApiGateway.

    ``store`` maps store paths to metadata. Search finds a document when its
    path equals the exact-query value. Edits replace the stored metadata,
    so a second reconciliation sees the result of the first.
    """

    def __init__(self, store: dict | None = None, edit_status: int = 202):
        self.store = store if store is not None else {}
        self.edit_status = edit_status
        self.searches: list = []
        self.metadata_requests: list[str] = []
        self.edits: list[dict] = []
        self.health_checks = 0
        self.search_error: Exception | None = None
        self.metadata_error: Exception | None = None
        self.health_error: Exception | None = None

    async def check_service_health(self, services=("ingest", "ias", "store")):
        self.health_checks += 1
        if self.health_error:
            raise self.health_error

    async def search(self, query, result_attributes=(), max_results=10):
        self.searches.append((query, max_results))
        if self.search_error:
            raise self.search_error
        if query.value in self.store:
            return [{"DownloadLink": query.value, "Title": self.store[query.value].get("Title")}]
        return []

    async def get_metadata(self, path):
        self.metadata_requests.append(path)
        if self.metadata_error:
            raise self.metadata_error
        if path not in self.store:
            raise NotFound(f"No file at {path}")
        return dict(self.store[path])

    async def edit_metadata(self, metadata):
        self.edits.append(dict(metadata))
        if self.edit_status == 202:
            self.store[metadata["FilePath"]] = dict(metadata)
        return self.edit_status


def make_client(handler) -> httpx.AsyncClient:
    """AsyncClient against the fake tenant, served by ``handler``."""
    return httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


@pytest.fixture
def settings():
    return ApiSettings(
        base_url=BASE_URL,
        scope="empolis-api",
        project="project1_p",
        index="project1_p",
        versions={"ingest": "v1", "ias": "v2", "store": "v1"},
    )


@pytest.fixture
def credentials():
    return Credentials(
        client_id="client",
        client_secret="secret",
        username="user",
        password="pass",
        scope="empolis-api",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def data_source():
    return DataSourceSelection(
        name="icube",
        root="box/help/icube",
        help_dir=Path("/nonexistent"),
        description="Help files for iCube Engineer",
    )
