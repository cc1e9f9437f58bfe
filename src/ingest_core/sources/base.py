"""Shared plumbing for per-dependency source fetchers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, cast

import httpx

from ingest_core.circuit_breaker import (
    NO_FALLBACK,
    BreakerRegistry,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    NoFallback,
)
from ingest_core.clock import Clock, SystemClock
from ingest_core.errors import SourcePayloadError
from ingest_core.fetch import QueryParams, fetch_json
from ingest_core.freshness import expires_at
from ingest_core.logging import AnyLogger, get_logger, log_error, log_info, log_warning
from ingest_core.settings import IngestSettings
from ingest_core.store import (
    AbstractContentStore,
    ContentRecord,
    RefreshOutcome,
    RefreshStatus,
)


@dataclass(frozen=True)
class FetchContext:
    """Collaborators shared by every fetcher in one process."""

    client: httpx.AsyncClient
    store: AbstractContentStore
    registry: BreakerRegistry
    settings: IngestSettings
    clock: Clock = field(default_factory=SystemClock)
    logger: AnyLogger = field(default_factory=lambda: get_logger("ingest_core.sources"))


@dataclass(frozen=True)
class CollectResult:
    """What one ``collect()`` pass produced, before timing is attached."""

    items_updated: int
    items_checked: int = 0
    status: RefreshStatus = RefreshStatus.SUCCESS
    error_message: str | None = None


def require_mapping(payload: object, description: str) -> dict[str, Any]:
    """Return ``payload`` as a dict or raise ``SourcePayloadError``."""
    if not isinstance(payload, dict):
        raise SourcePayloadError(f"{description} is not a JSON object.")
    return cast(dict[str, Any], payload)


def require_list(payload: object, description: str) -> list[Any]:
    """Return ``payload`` as a list or raise ``SourcePayloadError``."""
    if not isinstance(payload, list):
        raise SourcePayloadError(f"{description} is not a JSON array.")
    return payload


class SourceFetcher(ABC):
    """Fetch one external dependency, normalize it, and store the records.

    Subclasses implement ``collect()``. ``run()`` wraps it so that no network
    or payload error escapes: failures become a ``failed`` outcome that is
    persisted and logged like any other, or ``partial`` when records were
    already stored before the error.
    """

    name: ClassVar[str]
    module: ClassVar[str]
    breaker_name: ClassVar[str]
    breaker_config: ClassVar[CircuitBreakerConfig | None] = None
    request_interval: ClassVar[float] = 0.0

    def __init__(
        self,
        context: FetchContext,
        *,
        request_interval: float | None = None,
    ) -> None:
        """Bind the fetcher to shared collaborators.

        Args:
            context: Shared HTTP client, store, breaker registry, and settings.
            request_interval: Seconds to wait between this source's own
                requests within one run. Defaults to the class attribute.
        """
        if request_interval is None:
            request_interval = self.request_interval
        if request_interval < 0:
            raise ValueError("request_interval must be >= 0")
        self._context = context
        self._request_interval = request_interval
        self._breaker = context.registry.get_or_create(
            self.breaker_name,
            self.breaker_config,
        )
        self._api_calls = 0
        self._records_written = 0

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def settings(self) -> IngestSettings:
        return self._context.settings

    @abstractmethod
    async def collect(self) -> CollectResult:
        """Fetch, transform, and store this source's records."""

    async def run(self) -> RefreshOutcome:
        """Refresh this source once and persist the outcome."""
        clock = self._context.clock
        logger = self._context.logger
        started = clock.monotonic()
        self._api_calls = 0
        self._records_written = 0
        try:
            result = await self.collect()
        except CircuitOpenError as exc:
            log_warning(
                logger,
                "source_skipped_circuit_open",
                source=self.name,
                breaker=exc.breaker_name,
                retry_after=exc.retry_after,
            )
            result = self._interrupted(str(exc))
        except Exception as exc:
            log_error(
                logger,
                "source_refresh_failed",
                source=self.name,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            result = self._interrupted(str(exc))

        duration_ms = int(round((clock.monotonic() - started) * 1000))
        outcome = RefreshOutcome(
            source_name=self.name,
            module=self.module,
            status=result.status,
            items_updated=(
                0 if result.status == RefreshStatus.FAILED else result.items_updated
            ),
            items_checked=result.items_checked,
            api_calls_made=self._api_calls,
            duration_ms=duration_ms,
            recorded_at=clock.now(),
            error_message=result.error_message,
        )
        await self._context.store.record_refresh(outcome)
        log_info(
            logger,
            "source_refreshed",
            source=self.name,
            status=outcome.status.value,
            items_updated=outcome.items_updated,
            items_checked=outcome.items_checked,
            api_calls_made=outcome.api_calls_made,
            duration_ms=outcome.duration_ms,
        )
        return outcome

    def _interrupted(self, error_message: str) -> CollectResult:
        # Records stored before the error stay counted.
        return CollectResult(
            items_updated=self._records_written,
            status=(
                RefreshStatus.PARTIAL if self._records_written else RefreshStatus.FAILED
            ),
            error_message=error_message,
        )

    async def _request_json(
        self,
        url: str,
        *,
        params: QueryParams | None = None,
        fallback: object | NoFallback = NO_FALLBACK,
    ) -> object:
        """GET ``url`` through this source's breaker and decode the JSON body."""

        async def _call() -> object:
            self._api_calls += 1
            return await fetch_json(
                self._context.client,
                url,
                params=params,
                max_attempts=self._context.settings.fetch_max_attempts,
                clock=self._context.clock,
                logger=self._context.logger,
            )

        return await self._breaker.execute(_call, fallback)

    async def _upsert(
        self,
        key: str,
        *,
        section: str | None,
        data: Mapping[str, object],
        source_url: str,
    ) -> ContentRecord:
        """Store one normalized record under ``<module>:<key>``."""
        now = self._context.clock.now()
        record = await self._context.store.upsert_content(
            f"{self.module}:{key}",
            module=self.module,
            section=section,
            data={**data, "fetchedAt": now.isoformat()},
            refreshed_at=now,
            expires_at=expires_at(self.module, now),
            source_type="api",
            source_url=source_url,
        )
        self._records_written += 1
        return record

    async def _throttle(self) -> None:
        if self._request_interval > 0:
            await self._context.clock.sleep(self._request_interval)
