"""Sequential refresh of every registered source."""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Protocol

import structlog

from ingest_core.clock import Clock, SystemClock
from ingest_core.logging import AnyLogger, get_logger, log_exception, log_info
from ingest_core.store import RefreshOutcome


class RefreshableSource(Protocol):
    """Anything the orchestrator can refresh."""

    @property
    def name(self) -> str: ...

    async def run(self) -> RefreshOutcome: ...


@dataclass(frozen=True)
class RefreshSummary:
    """Items updated per source for one orchestrator run."""

    total_updated: int
    results: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "results", MappingProxyType(dict(self.results)))


class RefreshOrchestrator:
    """Run each source once, in order, isolating their failures."""

    def __init__(
        self,
        fetchers: Sequence[RefreshableSource],
        *,
        clock: Clock | None = None,
        logger: AnyLogger | None = None,
        delay_between_sources: float = 0.0,
    ) -> None:
        """Build an orchestrator over a fixed, ordered list of sources.

        Args:
            fetchers: Sources refreshed in list order.
            clock: Time source for the inter-source delay.
            logger: Structured logger. Defaults to this module's logger.
            delay_between_sources: Seconds to wait between consecutive sources.

        Raises:
            ValueError: If two sources share a name or the delay is negative.
        """
        names = [fetcher.name for fetcher in fetchers]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate source names: {', '.join(duplicates)}")
        if delay_between_sources < 0:
            raise ValueError("delay_between_sources must be >= 0")
        self._fetchers = tuple(fetchers)
        self._clock: Clock = SystemClock() if clock is None else clock
        self._logger: AnyLogger = get_logger(__name__) if logger is None else logger
        self._delay = delay_between_sources

    @property
    def source_names(self) -> tuple[str, ...]:
        return tuple(fetcher.name for fetcher in self._fetchers)

    async def refresh_all(self) -> RefreshSummary:
        """Refresh every source once and summarize items updated per source."""
        results: dict[str, int] = {}
        with structlog.contextvars.bound_contextvars(refresh_run_id=uuid.uuid4().hex):
            for index, fetcher in enumerate(self._fetchers):
                if index > 0 and self._delay > 0:
                    await self._clock.sleep(self._delay)
                try:
                    outcome = await fetcher.run()
                except Exception:
                    log_exception(
                        self._logger,
                        "source_refresh_crashed",
                        source=fetcher.name,
                    )
                    results[fetcher.name] = 0
                else:
                    results[fetcher.name] = outcome.items_updated

            summary = RefreshSummary(
                total_updated=sum(results.values()),
                results=results,
            )
            log_info(
                self._logger,
                "external_refresh_complete",
                total_updated=summary.total_updated,
                results=dict(summary.results),
            )
        return summary
