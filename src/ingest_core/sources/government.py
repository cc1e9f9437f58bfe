"""US government open-data sources: agency spending and space patents."""

from __future__ import annotations

import json
from collections import Counter
from typing import Any, ClassVar, NamedTuple

from ingest_core.circuit_breaker import CircuitBreakerConfig
from ingest_core.errors import SourcePayloadError
from ingest_core.sources.base import (
    CollectResult,
    SourceFetcher,
    require_list,
    require_mapping,
)
from ingest_core.store import RefreshStatus

PATENT_PAGE_SIZE = 25
ABSTRACT_MAX_CHARS = 300
TOP_ASSIGNEES = 10
# Cosmonautics and space vehicles.
SPACE_CPC_GROUP = "B64G"


class Agency(NamedTuple):
    code: str
    name: str


SPACE_AGENCIES = (
    Agency("080", "NASA"),
    Agency("057", "Department of the Air Force"),
    Agency("097", "Department of Defense"),
)


class DefenseSpendingFetcher(SourceFetcher):
    """Total obligations of the space-relevant federal agencies."""

    name = "defense-spending"
    module = "space-defense"
    breaker_name = "usaspending"
    breaker_config: ClassVar[CircuitBreakerConfig] = CircuitBreakerConfig(
        failure_threshold=3,
        reset_timeout=120.0,
    )

    async def collect(self) -> CollectResult:
        base_url = self.settings.usaspending_base_url
        agencies: list[dict[str, object]] = []
        for agency in SPACE_AGENCIES:
            data = await self._request_json(
                f"{base_url}/agency/{agency.code}/",
                fallback=None,
            )
            if not isinstance(data, dict):
                continue
            agencies.append(
                {
                    "agency": data.get("name") or agency.name,
                    "agencyCode": agency.code,
                    "totalObligations": data.get("total_obligations") or 0,
                    "fiscalYear": data.get("fiscal_year")
                    or self._context.clock.now().year,
                }
            )

        if not agencies:
            return CollectResult(
                items_updated=0,
                items_checked=len(SPACE_AGENCIES),
                status=RefreshStatus.PARTIAL,
                error_message="No agency spending data returned.",
            )

        await self._upsert(
            "agency-spending",
            section="budgets",
            data={"agencies": agencies, "source": "USAspending.gov"},
            source_url=base_url,
        )
        return CollectResult(items_updated=1, items_checked=len(SPACE_AGENCIES))


def _first_assignee(patent: dict[str, Any]) -> str | None:
    assignees = patent.get("assignees")
    if isinstance(assignees, list) and assignees and isinstance(assignees[0], dict):
        organization = assignees[0].get("assignee_organization")
        if organization:
            return str(organization)
    return None


class PatentsFetcher(SourceFetcher):
    """Recent space-vehicle patents and their most frequent assignees."""

    name = "patents"
    module = "patents"
    breaker_name = "uspto-patentsview"
    breaker_config: ClassVar[CircuitBreakerConfig] = CircuitBreakerConfig(
        failure_threshold=3,
        reset_timeout=120.0,
    )

    def _query_params(self, since_year: int) -> dict[str, str]:
        return {
            "q": json.dumps(
                {
                    "_and": [
                        {"_gte": {"patent_date": f"{since_year}-01-01"}},
                        {"_contains": {"cpc_group_id": SPACE_CPC_GROUP}},
                    ]
                }
            ),
            "f": json.dumps(
                [
                    "patent_number",
                    "patent_title",
                    "patent_date",
                    "patent_abstract",
                    "assignee_organization",
                ]
            ),
            "o": json.dumps({"page": 1, "per_page": PATENT_PAGE_SIZE}),
            "s": json.dumps([{"patent_date": "desc"}]),
        }

    async def collect(self) -> CollectResult:
        current_year = self._context.clock.now().year
        url = f"{self.settings.patentsview_base_url}/patent/"
        data = require_mapping(
            await self._request_json(url, params=self._query_params(current_year - 1)),
            "PatentsView response",
        )
        if data.get("patents") is None:
            raise SourcePayloadError("PatentsView returned no patents.")
        raw_patents = [
            patent
            for patent in require_list(data["patents"], "PatentsView patents")
            if isinstance(patent, dict)
        ]

        patents = [
            {
                "number": patent.get("patent_number"),
                "title": patent.get("patent_title"),
                "date": patent.get("patent_date"),
                "abstract": str(patent.get("patent_abstract") or "")[
                    :ABSTRACT_MAX_CHARS
                ],
                "assignee": _first_assignee(patent) or "Unknown",
            }
            for patent in raw_patents
        ]
        total = int(data.get("total_patent_count") or len(patents))

        await self._upsert(
            "recent-space-patents",
            section="recent-filings",
            data={
                "patents": patents,
                "totalCount": total,
                "yearRange": f"{current_year - 1}-{current_year}",
            },
            source_url=self.settings.patentsview_base_url,
        )

        counts = Counter(
            organization
            for organization in map(_first_assignee, raw_patents)
            if organization is not None
        )
        await self._upsert(
            "top-assignees",
            section="top-holders",
            data={
                "topAssignees": [
                    {"organization": organization, "patentCount": count}
                    for organization, count in counts.most_common(TOP_ASSIGNEES)
                ]
            },
            source_url=self.settings.patentsview_base_url,
        )
        return CollectResult(items_updated=2, items_checked=total)
