"""Crewed-station sources: people in space and live ISS position."""

from __future__ import annotations

import re
from typing import ClassVar

from ingest_core.circuit_breaker import CircuitBreakerConfig
from ingest_core.errors import SourcePayloadError
from ingest_core.sources.base import (
    CollectResult,
    SourceFetcher,
    require_list,
    require_mapping,
)

ISS_NORAD_ID = 25544
_POSITION_FIELDS = (
    "altitude",
    "velocity",
    "visibility",
    "footprint",
    "timestamp",
    "units",
)


def _slug(value: str) -> str:
    return re.sub(r"\s+", "-", value.strip().lower())


class IssCrewFetcher(SourceFetcher):
    """People currently in space, grouped by craft (Open Notify)."""

    name = "iss-crew"
    module = "space-stations"
    breaker_name = "open-notify"
    breaker_config: ClassVar[CircuitBreakerConfig] = CircuitBreakerConfig(
        failure_threshold=3,
        reset_timeout=120.0,
    )

    async def collect(self) -> CollectResult:
        url = f"{self.settings.open_notify_base_url}/astros.json"
        data = require_mapping(await self._request_json(url), "Open Notify response")
        if data.get("message") != "success":
            raise SourcePayloadError(
                f"Open Notify returned message={data.get('message')!r}."
            )
        people = require_list(data.get("people"), "Open Notify people")

        by_craft: dict[str, list[dict[str, str]]] = {}
        for person in people:
            if not isinstance(person, dict):
                continue
            craft = str(person.get("craft", "unknown"))
            by_craft.setdefault(craft, []).append(
                {"name": str(person.get("name", "")), "craft": craft}
            )

        updated = 0
        for craft, crew in by_craft.items():
            await self._upsert(
                f"crew-{_slug(craft)}",
                section="crew",
                data={"craft": craft, "crewCount": len(crew), "members": crew},
                source_url=url,
            )
            updated += 1

        await self._upsert(
            "people-in-space",
            section="overview",
            data={
                "totalPeopleInSpace": data.get("number", len(people)),
                "crafts": list(by_craft),
                "breakdown": [
                    {"craft": craft, "count": len(crew)}
                    for craft, crew in by_craft.items()
                ],
            },
            source_url=url,
        )
        updated += 1
        return CollectResult(items_updated=updated, items_checked=len(people))


class IssPositionFetcher(SourceFetcher):
    """Live ISS ground track position (Where The ISS At).

    Uses the registry default breaker config, so it follows the
    ``breaker_failure_threshold`` and ``breaker_reset_timeout_seconds`` settings.
    """

    name = "iss-position"
    module = "space-stations"
    breaker_name = "wheretheiss"

    async def collect(self) -> CollectResult:
        url = f"{self.settings.wheretheiss_base_url}/satellites/{ISS_NORAD_ID}"
        data = require_mapping(await self._request_json(url), "ISS position response")
        latitude = data.get("latitude")
        longitude = data.get("longitude")
        if not isinstance(latitude, (int, float)) or not isinstance(
            longitude, (int, float)
        ):
            raise SourcePayloadError("ISS position response has no coordinates.")

        position: dict[str, object] = {
            "name": data.get("name"),
            "satelliteId": data.get("id", ISS_NORAD_ID),
            "latitude": latitude,
            "longitude": longitude,
            "solarLat": data.get("solar_lat"),
            "solarLon": data.get("solar_lon"),
        }
        for field_name in _POSITION_FIELDS:
            position[field_name] = data.get(field_name)

        await self._upsert(
            "iss-position",
            section="iss-position",
            data=position,
            source_url=url,
        )
        return CollectResult(items_updated=1, items_checked=1)
