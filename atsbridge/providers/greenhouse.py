"""
Greenhouse adapter.

Greenhouse exposes two REST APIs with separate keys:

- Harvest (``api_key``): jobs, candidates and applications
- Job Board (``job_board_api_key``): published postings of one board

Both authenticate with the key as the basic-auth username. Harvest lists
are paginated with ``per_page`` (max 500) and ``page``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from atsbridge.models import Operation, ProviderType, Scope
from atsbridge.pagination import Batch, next_page
from atsbridge.providers.base import RestAdapter

HARVEST_PAGE_LIMIT = 500

HARVEST_OPERATIONS = {
    "health_check": Operation("health_check", path="jobs", default_params={"per_page": 1}),
    "get_jobs": Operation("get_jobs", path="jobs", scope=Scope.JOBS, paginated=True),
    "get_job": Operation("get_job", path="jobs/{job_id}", scope=Scope.JOBS, empty=dict),
    "get_candidates": Operation(
        "get_candidates", path="candidates", scope=Scope.CANDIDATES, paginated=True
    ),
    "get_candidate": Operation(
        "get_candidate", path="candidates/{candidate_id}", scope=Scope.CANDIDATES, empty=dict
    ),
    "get_applications": Operation(
        "get_applications", path="applications", scope=Scope.CANDIDATES, paginated=True
    ),
    "get_application": Operation(
        "get_application", path="applications/{application_id}", scope=Scope.CANDIDATES, empty=dict
    ),
}

JOB_BOARD_OPERATIONS = {
    "health_check": Operation("health_check", path="boards/{board_token}", empty=dict),
    "get_board_jobs": Operation(
        "get_board_jobs",
        path="boards/{board_token}/jobs",
        default_params={"content": "true"},
        scope=Scope.JOBS,
        empty=dict,
    ),
    "get_board_job": Operation(
        "get_board_job", path="boards/{board_token}/jobs/{job_id}", scope=Scope.JOBS, empty=dict
    ),
}


def _records(payload: Any) -> Batch:
    if not isinstance(payload, list):
        raise TypeError(f"expected a list, got {type(payload).__name__}")
    return payload


class GreenhouseAdapter(RestAdapter):
    """
    Greenhouse adapter for one API family.

    Example:
        adapter = build_adapter(integration, greenhouse_api="job_board")
        postings = await adapter.call("get_board_jobs")
    """

    provider = ProviderType.GREENHOUSE

    def __init__(self, integration, *, api: str = "harvest", **kwargs):
        super().__init__(integration, **kwargs)
        self.api = api
        self.OPERATIONS = HARVEST_OPERATIONS if api == "harvest" else JOB_BOARD_OPERATIONS

    def path_values(self) -> dict[str, Any]:
        if self.api == "job_board":
            return {"board_token": self._credential("board_token")}
        return {}

    async def iter_pages(
        self,
        name: str,
        *,
        per_page: int = HARVEST_PAGE_LIMIT,
        **params: Any,
    ) -> AsyncIterator[Batch]:
        """
        Read every page of a Harvest list operation.

        Yields:
            Batches of up to ``per_page`` records
        """
        if not self.operation(name).paginated:
            raise ValueError(f"{name} is not a paginated operation")

        async def fetch(page: int | None) -> Any:
            return await self.call(name, per_page=per_page, page=page or 1, **params)

        async for batch in self.read_pages(
            name,
            fetch,
            extract=_records,
            page_size_limit=per_page,
            next_cursor=next_page(),
        ):
            yield batch

    def iter_jobs(self, **params: Any) -> AsyncIterator[Batch]:
        return self.iter_pages("get_jobs", **params)

    def iter_candidates(self, **params: Any) -> AsyncIterator[Batch]:
        return self.iter_pages("get_candidates", **params)

    def iter_applications(self, **params: Any) -> AsyncIterator[Batch]:
        return self.iter_pages("get_applications", **params)


__all__ = ["GreenhouseAdapter", "HARVEST_OPERATIONS", "JOB_BOARD_OPERATIONS"]
