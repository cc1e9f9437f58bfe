"""Entry points for scheduled refresh jobs."""

from __future__ import annotations

from collections.abc import Callable
from functools import lru_cache

import httpx

from ingest_core.circuit_breaker import BreakerRegistry, CircuitBreakerConfig
from ingest_core.clock import Clock, SystemClock
from ingest_core.fetch import DEFAULT_HEADERS
from ingest_core.logging import get_logger
from ingest_core.orchestrator import RefreshOrchestrator, RefreshSummary
from ingest_core.settings import IngestSettings
from ingest_core.sources import (
    FetchContext,
    SourceFetcher,
    build_default_fetchers,
    build_high_frequency_fetchers,
)
from ingest_core.store import AbstractContentStore, InMemoryContentStore

FetcherFactory = Callable[[FetchContext], list[SourceFetcher]]

_SYSTEM_CLOCK = SystemClock()


@lru_cache(maxsize=1)
def default_settings() -> IngestSettings:
    """Load settings from the environment once per process."""
    return IngestSettings()


@lru_cache(maxsize=None)
def default_registry(
    default_config: CircuitBreakerConfig,
    clock: Clock,
) -> BreakerRegistry:
    """Process-wide breaker registry for one breaker default and clock.

    Runs resolving to the same default config and clock share breaker state.
    """
    return BreakerRegistry(default_config=default_config, clock=clock)


@lru_cache(maxsize=1)
def default_store() -> InMemoryContentStore:
    """Process-wide content store used when none is injected."""
    return InMemoryContentStore()


def build_http_client(
    settings: IngestSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build the shared async HTTP client for one refresh run."""
    return httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        headers={**DEFAULT_HEADERS, **settings.http_headers()},
        transport=transport,
        follow_redirects=True,
    )


async def _refresh(
    build_fetchers: FetcherFactory,
    *,
    settings: IngestSettings | None,
    store: AbstractContentStore | None,
    registry: BreakerRegistry | None,
    clock: Clock | None,
    transport: httpx.AsyncBaseTransport | None,
) -> RefreshSummary:
    resolved_settings = default_settings() if settings is None else settings
    resolved_clock: Clock = _SYSTEM_CLOCK if clock is None else clock
    if registry is None:
        registry = default_registry(
            resolved_settings.breaker_defaults(),
            resolved_clock,
        )
    async with build_http_client(resolved_settings, transport=transport) as client:
        context = FetchContext(
            client=client,
            store=default_store() if store is None else store,
            registry=registry,
            settings=resolved_settings,
            clock=resolved_clock,
            logger=get_logger("ingest_core.sources"),
        )
        orchestrator = RefreshOrchestrator(
            build_fetchers(context),
            clock=resolved_clock,
            delay_between_sources=resolved_settings.delay_between_sources_seconds,
        )
        return await orchestrator.refresh_all()


async def refresh_all_external_sources(
    *,
    settings: IngestSettings | None = None,
    store: AbstractContentStore | None = None,
    registry: BreakerRegistry | None = None,
    clock: Clock | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RefreshSummary:
    """Refresh every external source once, in the default order."""
    return await _refresh(
        build_default_fetchers,
        settings=settings,
        store=store,
        registry=registry,
        clock=clock,
        transport=transport,
    )


async def refresh_high_frequency_sources(
    *,
    settings: IngestSettings | None = None,
    store: AbstractContentStore | None = None,
    registry: BreakerRegistry | None = None,
    clock: Clock | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RefreshSummary:
    """Refresh only the sources that change every few seconds."""
    return await _refresh(
        build_high_frequency_fetchers,
        settings=settings,
        store=store,
        registry=registry,
        clock=clock,
        transport=transport,
    )
