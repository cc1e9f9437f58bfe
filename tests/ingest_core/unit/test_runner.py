from __future__ import annotations

from collections.abc import Iterator

import httpx
import pytest

from ingest_core import runner
from ingest_core.circuit_breaker import (
    BreakerRegistry,
    CircuitBreakerConfig,
    CircuitState,
)
from ingest_core.settings import IngestSettings
from ingest_core.sources import (
    CONSTELLATION_GROUPS,
    FetchContext,
    build_default_fetchers,
    build_high_frequency_fetchers,
)
from ingest_core.store import InMemoryContentStore, RefreshStatus
from tests.ingest_core.support.fakes import FakeClock

pytestmark = pytest.mark.asyncio


class _Upstreams:
    """Route requests by host to canned JSON payloads."""

    def __init__(self, *, failing_hosts: frozenset[str] = frozenset()) -> None:
        self.failing_hosts = failing_hosts
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host in self.failing_hosts:
            return httpx.Response(503)
        if host == "open-notify.test":
            return httpx.Response(
                200,
                json={
                    "message": "success",
                    "number": 2,
                    "people": [
                        {"name": "A", "craft": "ISS"},
                        {"name": "B", "craft": "Tiangong"},
                    ],
                },
            )
        if host == "neows.test":
            return httpx.Response(
                200,
                json={"element_count": 0, "near_earth_objects": {}},
            )
        if host == "celestrak.test":
            return httpx.Response(
                200,
                json=[{"OBJECT_NAME": "SAT", "NORAD_CAT_ID": 1}],
            )
        if host == "usaspending.test":
            return httpx.Response(
                200,
                json={"name": "NASA", "total_obligations": 1, "fiscal_year": 2024},
            )
        if host == "patentsview.test":
            return httpx.Response(200, json={"patents": [], "total_patent_count": 0})
        if host == "wheretheiss.test":
            return httpx.Response(200, json={"latitude": 1.0, "longitude": 2.0})
        return httpx.Response(404)


@pytest.fixture(autouse=True)
def _clear_process_defaults() -> Iterator[None]:
    runner.default_settings.cache_clear()
    runner.default_registry.cache_clear()
    runner.default_store.cache_clear()
    yield
    runner.default_settings.cache_clear()
    runner.default_registry.cache_clear()
    runner.default_store.cache_clear()


async def test_refresh_all_external_sources_runs_every_source_in_order(
    settings: IngestSettings,
    store: InMemoryContentStore,
    registry: BreakerRegistry,
    fake_clock: FakeClock,
) -> None:
    upstreams = _Upstreams()

    summary = await runner.refresh_all_external_sources(
        settings=settings,
        store=store,
        registry=registry,
        clock=fake_clock,
        transport=httpx.MockTransport(upstreams),
    )

    assert list(summary.results) == [
        "iss-crew",
        "neo-objects",
        "satellite-counts",
        "defense-spending",
        "patents",
        "iss-position",
    ]
    assert dict(summary.results) == {
        "iss-crew": 3,
        "neo-objects": 2,
        "satellite-counts": len(CONSTELLATION_GROUPS),
        "defense-spending": 1,
        "patents": 2,
        "iss-position": 1,
    }
    assert summary.total_updated == 9 + len(CONSTELLATION_GROUPS)
    assert registry.names() == [
        "open-notify",
        "nasa-neows",
        "celestrak-gp",
        "usaspending",
        "uspto-patentsview",
        "wheretheiss",
    ]
    assert len(await store.refresh_outcomes()) == 6
    assert all(
        request.headers["User-Agent"] == settings.user_agent
        for request in upstreams.requests
    )
    assert all(
        request.headers["Accept"] == "application/json"
        for request in upstreams.requests
    )


async def test_failing_source_does_not_stop_the_run(
    settings: IngestSettings,
    store: InMemoryContentStore,
    registry: BreakerRegistry,
    fake_clock: FakeClock,
) -> None:
    summary = await runner.refresh_all_external_sources(
        settings=settings,
        store=store,
        registry=registry,
        clock=fake_clock,
        transport=httpx.MockTransport(
            _Upstreams(failing_hosts=frozenset({"neows.test"}))
        ),
    )

    assert summary.results["neo-objects"] == 0
    assert summary.results["iss-position"] == 1
    assert summary.total_updated == 7 + len(CONSTELLATION_GROUPS)
    [neo_outcome] = await store.refresh_outcomes(source_name="neo-objects")
    assert neo_outcome.status == RefreshStatus.FAILED
    assert neo_outcome.error_message == (
        "HTTP 503 from https://neows.test/neo/rest/v1/feed"
    )
    assert registry.get_or_create("nasa-neows").failure_count == 1
    assert registry.get_or_create("nasa-neows").state == CircuitState.CLOSED


async def test_high_frequency_refresh_only_touches_iss_position(
    settings: IngestSettings,
    store: InMemoryContentStore,
    registry: BreakerRegistry,
    fake_clock: FakeClock,
) -> None:
    upstreams = _Upstreams()

    summary = await runner.refresh_high_frequency_sources(
        settings=settings,
        store=store,
        registry=registry,
        clock=fake_clock,
        transport=httpx.MockTransport(upstreams),
    )

    assert dict(summary.results) == {"iss-position": 1}
    assert {request.url.host for request in upstreams.requests} == {"wheretheiss.test"}


async def test_process_defaults_are_shared_between_runs(
    settings: IngestSettings,
    fake_clock: FakeClock,
) -> None:
    transport = httpx.MockTransport(
        _Upstreams(failing_hosts=frozenset({"wheretheiss.test"}))
    )

    for _ in range(5):
        await runner.refresh_high_frequency_sources(
            settings=settings,
            clock=fake_clock,
            transport=transport,
        )

    registry = runner.default_registry(settings.breaker_defaults(), fake_clock)
    breaker = registry.get("wheretheiss")
    assert breaker is not None
    assert breaker.state == CircuitState.OPEN
    assert runner.default_registry.cache_info().currsize == 1
    outcomes = await runner.default_store().refresh_outcomes(source_name="iss-position")
    assert len(outcomes) == 5


async def test_breaker_settings_reach_the_default_registry(
    settings: IngestSettings,
    fake_clock: FakeClock,
) -> None:
    custom = settings.model_copy(
        update={
            "breaker_failure_threshold": 1,
            "breaker_reset_timeout_seconds": 30.0,
            "fetch_max_attempts": 1,
        }
    )

    summary = await runner.refresh_high_frequency_sources(
        settings=custom,
        clock=fake_clock,
        transport=httpx.MockTransport(
            _Upstreams(failing_hosts=frozenset({"wheretheiss.test"}))
        ),
    )

    assert dict(summary.results) == {"iss-position": 0}
    breaker = runner.default_registry(custom.breaker_defaults(), fake_clock).get(
        "wheretheiss"
    )
    assert breaker is not None
    assert breaker.config == CircuitBreakerConfig(
        failure_threshold=1,
        reset_timeout=30.0,
    )
    assert breaker.state == CircuitState.OPEN


async def test_default_registry_breakers_use_the_injected_clock(
    settings: IngestSettings,
    fake_clock: FakeClock,
) -> None:
    custom = settings.model_copy(
        update={"breaker_failure_threshold": 1, "fetch_max_attempts": 1}
    )
    await runner.refresh_high_frequency_sources(
        settings=custom,
        clock=fake_clock,
        transport=httpx.MockTransport(
            _Upstreams(failing_hosts=frozenset({"wheretheiss.test"}))
        ),
    )
    breaker = runner.default_registry(custom.breaker_defaults(), fake_clock).get(
        "wheretheiss"
    )
    assert breaker is not None
    assert breaker.state == CircuitState.OPEN

    fake_clock.advance(custom.breaker_reset_timeout_seconds)

    assert breaker.get_status().state == CircuitState.HALF_OPEN
    summary = await runner.refresh_high_frequency_sources(
        settings=custom,
        clock=fake_clock,
        transport=httpx.MockTransport(_Upstreams()),
    )
    assert dict(summary.results) == {"iss-position": 1}
    assert breaker.state == CircuitState.CLOSED


async def test_default_fetcher_lists(fetch_context: FetchContext) -> None:
    assert [fetcher.name for fetcher in build_default_fetchers(fetch_context)] == [
        "iss-crew",
        "neo-objects",
        "satellite-counts",
        "defense-spending",
        "patents",
        "iss-position",
    ]
    assert [
        fetcher.name for fetcher in build_high_frequency_fetchers(fetch_context)
    ] == ["iss-position"]


async def test_http_client_uses_settings(settings: IngestSettings) -> None:
    async with runner.build_http_client(settings) as client:
        assert client.timeout == httpx.Timeout(settings.http_timeout_seconds)
        assert client.headers["User-Agent"] == settings.user_agent
        assert client.follow_redirects is True
