"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest
from qdrant_client import AsyncQdrantClient

from hookrelay.config import Settings
from hookrelay.service import WebhookService
from hookrelay.storage import HookRelayStorage


class RecordingEndpoint:
    """Fake webhook receiver for httpx.MockTransport.

    Records every request and answers with a fixed status, or raises a
    transport error when ``error`` is set.
    """

    def __init__(
        self,
        status_code: int = 200,
        body: str = "ok",
        error: Callable[[httpx.Request], Exception] | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error(request)
        return httpx.Response(self.status_code, text=self.body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def endpoint() -> RecordingEndpoint:
    """An endpoint that accepts every delivery with 200."""
    return RecordingEndpoint()


@pytest.fixture
def make_endpoint() -> type[RecordingEndpoint]:
    """Factory for endpoints with a custom status, body or transport error."""
    return RecordingEndpoint


@pytest.fixture
def test_settings() -> Settings:
    """Settings for tests: auth off, no background sweeper."""
    return Settings(env="test", sweep_enabled=False, auth_enabled=False)


@pytest.fixture
async def storage():
    """In-memory storage backed by qdrant-client's local mode."""
    store = HookRelayStorage(prefix="test")
    store._client = AsyncQdrantClient(location=":memory:")
    await store._ensure_collections()
    store._collections_initialized = True

    yield store

    await store.close()


@pytest.fixture
async def service(storage: HookRelayStorage, endpoint: RecordingEndpoint, test_settings: Settings):
    """WebhookService over in-memory storage with a mocked outbound transport."""
    svc = WebhookService(storage=storage, settings=test_settings, transport=endpoint.transport)
    await svc.dispatcher.start()

    yield svc

    await svc.sweeper.stop()
    await svc.dispatcher.stop()
