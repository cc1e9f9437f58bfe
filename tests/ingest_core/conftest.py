from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import pytest
import pytest_asyncio

from ingest_core.circuit_breaker import BreakerRegistry
from ingest_core.settings import IngestSettings
from ingest_core.sources import FetchContext
from ingest_core.store import InMemoryContentStore
from tests.ingest_core.support.fakes import FakeClock, FakeLogger


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a manually advanced clock per test."""
    return FakeClock()


@pytest.fixture
def settings() -> IngestSettings:
    """Settings with fixed endpoints, independent of the environment."""
    return IngestSettings(
        nasa_api_key="TEST_KEY",
        open_notify_base_url="http://open-notify.test",
        nasa_neows_base_url="https://neows.test/neo/rest/v1",
        celestrak_base_url="https://celestrak.test/NORAD/elements",
        usaspending_base_url="https://usaspending.test/api/v2",
        patentsview_base_url="https://patentsview.test",
        wheretheiss_base_url="https://wheretheiss.test/v1",
        celestrak_request_interval_seconds=2.0,
    )


@pytest.fixture
def store() -> InMemoryContentStore:
    return InMemoryContentStore()


@pytest.fixture
def registry(fake_clock: FakeClock, fake_logger: FakeLogger) -> BreakerRegistry:
    return BreakerRegistry(clock=fake_clock, logger=fake_logger)


@pytest_asyncio.fixture
async def http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def fetch_context(
    http_client: httpx.AsyncClient,
    store: InMemoryContentStore,
    registry: BreakerRegistry,
    settings: IngestSettings,
    fake_clock: FakeClock,
    fake_logger: FakeLogger,
) -> FetchContext:
    """Fetcher collaborators wired to in-memory doubles."""
    return FetchContext(
        client=http_client,
        store=store,
        registry=registry,
        settings=settings,
        clock=fake_clock,
        logger=fake_logger,
    )
