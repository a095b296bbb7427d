"""
iCIMS adapter.

All iCIMS resources live under ``customers/{customer_id}``. Bulk reads use
the search endpoints, which return at most 1000 ids per request with no
"has more" flag; the next page asks for ids greater than the last one seen.

iCIMS reports its rate limit in ``x-rate-limit-*`` headers, so this adapter
is always built with a ``HeaderRateLimitChecker``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from atsbridge.models import Operation, ProviderType, Scope
from atsbridge.pagination import Batch, last_id
from atsbridge.providers.base import RestAdapter

SEARCH_LIMIT = 1000
SEARCH_DATE_FORMAT = "%Y-%m-%d %I:%M %p"

JOB_FIELDS = (
    "jobtitle,positiontype,enddate,numberofpositions,joblocation,"
    "overview,responsibilities,qualifications"
)

# search profile -> field prefix used in filters
SEARCH_PROFILES = {
    "jobs": "job",
    "people": "person",
    "applicantworkflows": "applicantworkflow",
}

OPERATIONS = {
    "health_check": Operation("health_check", path="customers/{customer_id}", empty=dict),
    "get_jobs_list": Operation(
        "get_jobs_list",
        path="customers/{customer_id}/search/portals/{portal_id}",
        scope=Scope.JOBS,
        empty=dict,
    ),
    "get_job": Operation(
        "get_job",
        path="customers/{customer_id}/jobs/{job_id}",
        default_params={"fields": JOB_FIELDS},
        scope=Scope.JOBS,
        empty=dict,
    ),
    "get_person": Operation(
        "get_person",
        path="customers/{customer_id}/people/{person_id}",
        scope=Scope.CANDIDATES,
        empty=dict,
    ),
    "get_application": Operation(
        "get_application",
        path="customers/{customer_id}/applicantworkflows/{workflow_id}",
        scope=Scope.CANDIDATES,
        empty=dict,
    ),
    "search_jobs": Operation(
        "search_jobs",
        method="POST",
        path="customers/{customer_id}/search/jobs",
        scope=Scope.JOBS,
        empty=dict,
        paginated=True,
    ),
    "search_people": Operation(
        "search_people",
        method="POST",
        path="customers/{customer_id}/search/people",
        scope=Scope.CANDIDATES,
        empty=dict,
        paginated=True,
    ),
    "search_applicantworkflows": Operation(
        "search_applicantworkflows",
        method="POST",
        path="customers/{customer_id}/search/applicantworkflows",
        scope=Scope.CANDIDATES,
        empty=dict,
        paginated=True,
    ),
}


def search_filters(
    profile: str,
    *,
    cursor: Any = None,
    since: datetime | None = None,
    until: datetime | None = None,
) -> list[dict[str, Any]]:
    """
    Filters for one search page.

    Args:
        profile: Search profile ("jobs", "people", "applicantworkflows")
        cursor: Only return ids greater than this
        since: Only return records updated at or after this time
        until: Only return records updated at or before this time
    """
    try:
        prefix = SEARCH_PROFILES[profile]
    except KeyError:
        raise ValueError(f"Unknown iCIMS search profile: {profile}") from None

    filters = []
    if since is not None:
        filters.append(
            {"name": f"{prefix}.updateddate", "value": [since.strftime(SEARCH_DATE_FORMAT)], "operator": ">="}
        )
    if until is not None:
        filters.append(
            {"name": f"{prefix}.updateddate", "value": [until.strftime(SEARCH_DATE_FORMAT)], "operator": "<="}
        )
    if cursor is not None:
        filters.append({"name": f"{prefix}.id", "value": [str(cursor)], "operator": ">"})
    return filters


def _search_results(payload: Any) -> Batch:
    return payload["searchResults"]


class IcimsAdapter(RestAdapter):
    """iCIMS adapter for one customer."""

    provider = ProviderType.ICIMS
    OPERATIONS = OPERATIONS

    def path_values(self) -> dict[str, Any]:
        return {"customer_id": self._credential("customer_id", "client_id")}

    async def get_jobs_list(self, portal_id: str) -> Any:
        return await self.call("get_jobs_list", portal_id=portal_id)

    async def get_job(self, job_id: str | int) -> Any:
        return await self.call("get_job", job_id=job_id)

    async def search(
        self,
        profile: str,
        *,
        cursor: Any = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> Any:
        """One page of search results for ``profile``."""
        filters = search_filters(profile, cursor=cursor, since=since, until=until)
        return await self.call(f"search_{profile}", filters=filters, operator="&")

    async def iter_search(
        self,
        profile: str,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> AsyncIterator[Batch]:
        """
        Read every search result for ``profile`` within a date window.

        Yields:
            Batches of up to 1000 ``{"id": ..., "self": ...}`` results
        """

        async def fetch(cursor: Any) -> Any:
            return await self.search(profile, cursor=cursor, since=since, until=until)

        async for batch in self.read_pages(
            f"search_{profile}",
            fetch,
            extract=_search_results,
            page_size_limit=SEARCH_LIMIT,
            next_cursor=last_id("id"),
        ):
            yield batch

    def iter_jobs(self, **window: Any) -> AsyncIterator[Batch]:
        return self.iter_search("jobs", **window)

    def iter_candidates(self, **window: Any) -> AsyncIterator[Batch]:
        return self.iter_search("people", **window)

    def iter_applications(self, **window: Any) -> AsyncIterator[Batch]:
        return self.iter_search("applicantworkflows", **window)


__all__ = [
    "IcimsAdapter",
    "JOB_FIELDS",
    "OPERATIONS",
    "SEARCH_LIMIT",
    "search_filters",
]
