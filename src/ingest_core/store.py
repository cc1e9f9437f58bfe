"""Persistent store interface for normalized content and refresh outcomes.

Storage is decoupled from fetching. Content is created or updated by its
natural key (``content_key``), never duplicated. Refresh outcomes are append-only
records, one per source per orchestrator run.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from enum import StrEnum
from typing import Any, cast


class RefreshStatus(StrEnum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class RefreshOutcome:
    """Result of refreshing one source during one orchestrator run.

    Attributes:
        source_name: Fetcher name, also the orchestrator result key.
        module: Content module the source writes into.
        status: Overall outcome.
        items_updated: Content records written.
        items_checked: Upstream items inspected, when the source reports it.
        api_calls_made: Logical API calls attempted; retries of one call count once.
        duration_ms: Wall time spent on the refresh.
        error_message: Failure description for ``failed`` outcomes.
        recorded_at: When the outcome was produced.
    """

    source_name: str
    module: str
    status: RefreshStatus
    items_updated: int
    items_checked: int
    api_calls_made: int
    duration_ms: int
    recorded_at: datetime
    error_message: str | None = None


@dataclass(frozen=True)
class ContentRecord:
    """One stored content item, keyed by ``content_key``."""

    content_key: str
    module: str
    section: str | None
    data: Mapping[str, Any]
    source_type: str
    source_url: str | None
    refreshed_at: datetime
    expires_at: datetime
    version: int = 1
    is_active: bool = True


def _normalize_payload(data: Mapping[str, object]) -> dict[str, Any]:
    """Round-trip through JSON so stored payloads are detached and serializable."""
    return cast(dict[str, Any], json.loads(json.dumps(data)))


class AbstractContentStore(ABC):
    """Abstract content store interface."""

    @abstractmethod
    async def upsert_content(
        self,
        content_key: str,
        *,
        module: str,
        section: str | None,
        data: Mapping[str, object],
        refreshed_at: datetime,
        expires_at: datetime,
        source_type: str = "api",
        source_url: str | None = None,
    ) -> ContentRecord:
        """Create or update the record for ``content_key``."""

    @abstractmethod
    async def get_content(self, content_key: str) -> ContentRecord | None:
        """Return the active record for ``content_key``, if any."""

    @abstractmethod
    async def expire_stale_content(
        self,
        now: datetime,
        *,
        module: str | None = None,
    ) -> int:
        """Deactivate records whose expiry is before ``now``; return the count."""

    @abstractmethod
    async def record_refresh(self, outcome: RefreshOutcome) -> None:
        """Persist one refresh outcome."""


class InMemoryContentStore(AbstractContentStore):
    """In-memory store guarded by one cooperative lock."""

    def __init__(self) -> None:
        self._records: dict[str, ContentRecord] = {}
        self._outcomes: list[RefreshOutcome] = []
        self._lock = asyncio.Lock()

    async def upsert_content(
        self,
        content_key: str,
        *,
        module: str,
        section: str | None,
        data: Mapping[str, object],
        refreshed_at: datetime,
        expires_at: datetime,
        source_type: str = "api",
        source_url: str | None = None,
    ) -> ContentRecord:
        payload = _normalize_payload(data)
        async with self._lock:
            existing = self._records.get(content_key)
            if existing is None:
                record = ContentRecord(
                    content_key=content_key,
                    module=module,
                    section=section,
                    data=payload,
                    source_type=source_type,
                    source_url=source_url,
                    refreshed_at=refreshed_at,
                    expires_at=expires_at,
                )
            else:
                record = replace(
                    existing,
                    data=payload,
                    source_type=source_type,
                    source_url=source_url,
                    refreshed_at=refreshed_at,
                    expires_at=expires_at,
                    version=existing.version + 1,
                    is_active=True,
                )
            self._records[content_key] = record
            return record

    async def get_content(self, content_key: str) -> ContentRecord | None:
        async with self._lock:
            record = self._records.get(content_key)
        if record is None or not record.is_active:
            return None
        return record

    async def module_content(
        self,
        module: str,
        *,
        section: str | None = None,
    ) -> list[ContentRecord]:
        """Return active records of ``module`` ordered by key."""
        async with self._lock:
            records = list(self._records.values())
        return sorted(
            (
                record
                for record in records
                if record.module == module
                and record.is_active
                and (section is None or record.section == section)
            ),
            key=lambda record: record.content_key,
        )

    async def expire_stale_content(
        self,
        now: datetime,
        *,
        module: str | None = None,
    ) -> int:
        expired = 0
        async with self._lock:
            for key, record in self._records.items():
                if not record.is_active or record.expires_at >= now:
                    continue
                if module is not None and record.module != module:
                    continue
                self._records[key] = replace(record, is_active=False)
                expired += 1
        return expired

    async def record_refresh(self, outcome: RefreshOutcome) -> None:
        async with self._lock:
            self._outcomes.append(outcome)

    async def refresh_outcomes(
        self,
        *,
        source_name: str | None = None,
    ) -> list[RefreshOutcome]:
        """Return recorded outcomes in insertion order."""
        async with self._lock:
            outcomes = list(self._outcomes)
        if source_name is None:
            return outcomes
        return [outcome for outcome in outcomes if outcome.source_name == source_name]
