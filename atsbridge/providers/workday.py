"""
Workday adapter.

Workday's Recruiting web service is SOAP. Every operation is a message tag
plus a default message; call arguments are folded into a copy of that
default:

    per_page  -> Response_Filter.Count
    page      -> Response_Filter.Page
    job_id    -> Request_Criteria.Job_Requisition_Reference (one reference)
    job_ids   -> Request_Criteria.Job_Requisition_Reference (one per id, in order)
    email     -> Request_Criteria.Candidate_Email_Address

The service endpoint depends on the tenant:
``https://{base_url}.com/ccx/service/{external_organization_id}/{service}``.
"""

from __future__ import annotations

import copy
from collections.abc import AsyncIterator, Mapping
from typing import Any

from atsbridge.config import SoapProviderConfig
from atsbridge.models import Operation, ProviderType, RequestSpec, Scope, TransportKind
from atsbridge.pagination import Batch, next_page
from atsbridge.providers.base import ProviderAdapter

DEFAULT_COUNT = 999
ALL_CANDIDATES_COUNT = 499

_CANDIDATE_RESPONSE_GROUP = {
    "Exclude_All_Attachments": True,
    "Include_Reference": True,
}

OPERATIONS = {
    "health_check": Operation(
        "health_check",
        action="Get_Server_Timestamp",
        message_tag="Server_Timestamp_Get",
        empty=dict,
    ),
    "get_evergreen_jobs": Operation(
        "get_evergreen_jobs",
        action="Get_Evergreen_Requisitions",
        message_tag="Get_Evergreen_Requisitions_Request",
        default_message={"Response_Filter": {"Count": DEFAULT_COUNT, "Page": 1}},
        scope=Scope.JOBS,
        empty=dict,
        paginated=True,
    ),
    "get_jobs": Operation(
        "get_jobs",
        action="Get_Job_Postings",
        message_tag="Get_Job_Postings_Request",
        default_message={
            "Request_Criteria": {
                "Show_Only_Active_Job_Postings": True,
                "Show_Only_External_Job_Postings": True,
            },
            "Response_Filter": {"Count": DEFAULT_COUNT, "Page": 1},
        },
        scope=Scope.JOBS,
        empty=dict,
        paginated=True,
    ),
    "get_candidates": Operation(
        "get_candidates",
        action="Get_Candidates",
        message_tag="Get_Candidates_Request",
        default_message={
            "Response_Filter": {"Count": DEFAULT_COUNT, "Page": 1},
            "Response_Group": _CANDIDATE_RESPONSE_GROUP,
        },
        scope=Scope.CANDIDATES,
        empty=dict,
        paginated=True,
    ),
    "get_all_candidates": Operation(
        "get_all_candidates",
        action="Get_Candidates",
        message_tag="Get_Candidates_Request",
        default_message={
            "Response_Filter": {"Count": ALL_CANDIDATES_COUNT, "Page": 1},
            "Response_Group": _CANDIDATE_RESPONSE_GROUP,
        },
        scope=Scope.CANDIDATES,
        empty=dict,
        paginated=True,
    ),
    "get_candidate_by_email": Operation(
        "get_candidate_by_email",
        action="Get_Candidates",
        message_tag="Get_Candidates_Request",
        default_message={"Response_Group": _CANDIDATE_RESPONSE_GROUP},
        scope=Scope.CANDIDATES,
        empty=dict,
    ),
}

# Response element and repeated item element per paginated operation
RESPONSE_ITEMS = {
    "get_evergreen_jobs": ("Get_Evergreen_Requisitions_Response", "Evergreen_Requisition"),
    "get_jobs": ("Get_Job_Postings_Response", "Job_Posting"),
    "get_candidates": ("Get_Candidates_Response", "Candidate"),
    "get_all_candidates": ("Get_Candidates_Response", "Candidate"),
}

# Workday validates the request's child order
ELEMENT_ORDER = ("Request_References", "Request_Criteria", "Response_Filter", "Response_Group")


def _job_reference(job_id: Any, namespace_identifier: str) -> dict[str, Any]:
    return {
        "ID": {
            "content!": str(job_id),
            f"@{namespace_identifier}:type": "Job_Requisition_ID",
        }
    }


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested mappings merge, others replace."""
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def build_message(
    default_message: Mapping[str, Any],
    params: Mapping[str, Any],
    namespace_identifier: str = "ins0",
) -> dict[str, Any]:
    """
    Fold call arguments into a copy of an operation's default message.

    The default message is never mutated.
    """
    overrides: dict[str, Any] = {}
    response_filter: dict[str, Any] = {}
    criteria: dict[str, Any] = {}

    if params.get("per_page"):
        response_filter["Count"] = params["per_page"]
    if params.get("page"):
        response_filter["Page"] = params["page"]
    if params.get("job_id") not in (None, ""):
        criteria["Job_Requisition_Reference"] = _job_reference(params["job_id"], namespace_identifier)
    if params.get("job_ids"):
        criteria["Job_Requisition_Reference"] = [
            _job_reference(job_id, namespace_identifier) for job_id in params["job_ids"]
        ]
    if params.get("email"):
        criteria["Candidate_Email_Address"] = params["email"]

    if response_filter:
        overrides["Response_Filter"] = response_filter
    if criteria:
        overrides["Request_Criteria"] = criteria

    message = deep_merge(default_message, overrides)
    ordered = {key: message.pop(key) for key in ELEMENT_ORDER if key in message}
    ordered.update(message)
    return ordered


def response_items(payload: Any, response_tag: str, item_tag: str) -> Batch:
    """
    Items of a paged Workday response.

    A response without ``Response_Data`` is an empty page; a single item is
    returned as a one-element list.
    """
    response = payload[response_tag]
    data = (response or {}).get("Response_Data") or {}
    items = data.get(item_tag) or []
    return items if isinstance(items, list) else [items]


class WorkdayAdapter(ProviderAdapter):
    """Workday Recruiting adapter for one tenant."""

    provider = ProviderType.WORKDAY
    transport_kind = TransportKind.SOAP
    OPERATIONS = OPERATIONS

    def __init__(self, integration, *, config: SoapProviderConfig, **kwargs):
        super().__init__(integration, **kwargs)
        self.config = config

    def endpoint(self) -> str:
        host = self._credential("base_url")
        tenant = self._credential("external_organization_id")
        return f"https://{host}.com/ccx/service/{tenant}/{self.config.service_name}"

    def build_request(self, operation, params, auth) -> RequestSpec:
        return RequestSpec(
            operation=operation.name,
            method="POST",
            path=self.endpoint(),
            action=operation.action,
            message_tag=operation.message_tag,
            message=build_message(operation.default_message, params, self.config.namespace_identifier),
            auth=auth,
        )

    async def get_candidate_by_email(self, email: str) -> Any:
        return await self.call("get_candidate_by_email", email=email)

    async def iter_pages(self, name: str, *, per_page: int | None = None, **params: Any) -> AsyncIterator[Batch]:
        """
        Read every page of a paged operation.

        Args:
            name: A key of ``RESPONSE_ITEMS``
            per_page: Page size; defaults to the operation's Count
            **params: Other message arguments (job_ids, email)

        Yields:
            Batches of response items
        """
        try:
            response_tag, item_tag = RESPONSE_ITEMS[name]
        except KeyError:
            raise ValueError(f"{name} is not a paginated operation") from None
        limit = per_page or self.operation(name).default_message["Response_Filter"]["Count"]

        async def fetch(page: int | None) -> Any:
            return await self.call(name, per_page=limit, page=page or 1, **params)

        async for batch in self.read_pages(
            name,
            fetch,
            extract=lambda payload: response_items(payload, response_tag, item_tag),
            page_size_limit=limit,
            next_cursor=next_page(),
        ):
            yield batch

    def iter_jobs(self, **params: Any) -> AsyncIterator[Batch]:
        return self.iter_pages("get_jobs", **params)

    def iter_evergreen_jobs(self, **params: Any) -> AsyncIterator[Batch]:
        return self.iter_pages("get_evergreen_jobs", **params)

    def iter_candidates(self, **params: Any) -> AsyncIterator[Batch]:
        return self.iter_pages("get_all_candidates", **params)


__all__ = [
    "OPERATIONS",
    "RESPONSE_ITEMS",
    "WorkdayAdapter",
    "build_message",
    "deep_merge",
    "response_items",
]
