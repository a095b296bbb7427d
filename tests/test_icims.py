"""
Tests for the iCIMS adapter.
"""

import json
from datetime import datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from atsbridge.config import AtsSettings
from atsbridge.errors import (
    AuthenticationError,
    CredentialsMissing,
    ErrorKind,
    RateLimitExceeded,
    ResponseParseError,
    UnclassifiedError,
)
from atsbridge.models import HealthState, Integration, ProviderType
from atsbridge.observability import POOL_SIZE_METRIC, REQUEST_METRIC, NotificationKind
from atsbridge.providers import IcimsAdapter, build_adapter
from atsbridge.providers.icims import JOB_FIELDS, search_filters
from conftest import ScriptedResponses


def _results(start, count):
    return {"searchResults": [{"id": i, "self": f"https://api.icims.com/customers/1234/jobs/{i}"}
                              for i in range(start, start + count)]}


@pytest.fixture
def make_adapter(icims_integration, collaborators, settings):
    def _make(*responses, integration=None, settings_=None):
        script = ScriptedResponses(*responses)
        adapter = build_adapter(
            integration or icims_integration,
            collaborators=collaborators,
            settings=settings_ or settings,
            http_transport=script.transport,
        )
        adapter.executor._sleep = AsyncMock()
        return adapter, script

    return _make


# =============================================================================
# Single calls
# =============================================================================


class TestIcimsCalls:
    """Tests for single-resource calls."""

    @pytest.mark.asyncio
    async def test_health_check(self, make_adapter):
        adapter, script = make_adapter(httpx.Response(200, json={"name": "Acme"}))

        assert isinstance(adapter, IcimsAdapter)
        assert await adapter.health_check() == {"name": "Acme"}
        assert str(script.requests[0].url) == "https://api.icims.com/customers/1234"

    @pytest.mark.asyncio
    async def test_get_job_requests_fields(self, make_adapter):
        adapter, script = make_adapter(httpx.Response(200, json={"jobtitle": "Engineer"}))

        job = await adapter.get_job(77)

        assert job == {"jobtitle": "Engineer"}
        request = script.requests[0]
        assert request.url.path == "/customers/1234/jobs/77"
        assert request.url.params["fields"] == JOB_FIELDS

    @pytest.mark.asyncio
    async def test_get_jobs_list(self, make_adapter):
        adapter, script = make_adapter(httpx.Response(200, json={"searchResults": []}))

        await adapter.get_jobs_list("9")

        assert script.requests[0].url.path == "/customers/1234/search/portals/9"

    @pytest.mark.asyncio
    async def test_bearer_token(self, make_adapter):
        integration = Integration(
            id="icims-2",
            provider_type=ProviderType.ICIMS,
            credentials={"client_id": "55", "access_token": "tok"},
        )
        adapter, script = make_adapter(httpx.Response(200, json={}), integration=integration)

        await adapter.health_check()

        assert script.requests[0].headers["Authorization"] == "Bearer tok"
        assert script.requests[0].url.path == "/customers/55"

    @pytest.mark.asyncio
    async def test_missing_customer_id(self, make_adapter):
        integration = Integration(
            id="icims-3",
            provider_type=ProviderType.ICIMS,
            credentials={"username": "svc", "password": "pw"},
        )
        adapter, script = make_adapter(httpx.Response(200, json={}), integration=integration)

        with pytest.raises(CredentialsMissing) as exc_info:
            await adapter.health_check()

        assert exc_info.value.fields == ["customer_id"]
        assert script.requests == []


# =============================================================================
# Search / pagination
# =============================================================================


class TestSearchFilters:
    """Tests for search filter payloads."""

    def test_window_and_cursor(self):
        filters = search_filters(
            "jobs",
            cursor=1000,
            since=datetime(2024, 1, 2, 15, 30),
            until=datetime(2024, 1, 3, 9, 5),
        )

        assert filters == [
            {"name": "job.updateddate", "value": ["2024-01-02 03:30 PM"], "operator": ">="},
            {"name": "job.updateddate", "value": ["2024-01-03 09:05 AM"], "operator": "<="},
            {"name": "job.id", "value": ["1000"], "operator": ">"},
        ]

    def test_profile_prefix(self):
        assert search_filters("people", cursor=1)[0]["name"] == "person.id"

    def test_unknown_profile(self):
        with pytest.raises(ValueError):
            search_filters("offers")


class TestIcimsPagination:
    """Tests for id-cursor bulk reads."""

    @pytest.mark.asyncio
    async def test_three_pages(self, make_adapter):
        adapter, script = make_adapter(
            httpx.Response(200, json=_results(1, 1000)),
            httpx.Response(200, json=_results(1001, 1000)),
            httpx.Response(200, json=_results(2001, 400)),
        )

        batches = [batch async for batch in adapter.iter_jobs(since=datetime(2024, 1, 1))]

        assert [len(b) for b in batches] == [1000, 1000, 400]
        assert len(script.requests) == 3
        bodies = [json.loads(r.content) for r in script.requests]
        assert all(r.url.path == "/customers/1234/search/jobs" for r in script.requests)
        assert bodies[0]["operator"] == "&"
        assert {"name": "job.id", "value": ["1000"], "operator": ">"} in bodies[1]["filters"]
        assert {"name": "job.id", "value": ["2000"], "operator": ">"} in bodies[2]["filters"]
        assert all(f["name"] != "job.id" for f in bodies[0]["filters"])

    @pytest.mark.asyncio
    async def test_full_last_page_issues_another_request(self, make_adapter):
        adapter, script = make_adapter(
            httpx.Response(200, json=_results(1, 1000)),
            httpx.Response(200, json=_results(1001, 1000)),
            httpx.Response(200, json=_results(2001, 1000)),
            httpx.Response(200, json={"searchResults": []}),
        )

        batches = [batch async for batch in adapter.iter_candidates()]

        assert len(batches) == 3
        assert len(script.requests) == 4
        assert script.requests[0].url.path == "/customers/1234/search/people"

    @pytest.mark.asyncio
    async def test_failure_after_first_page(self, make_adapter):
        adapter, script = make_adapter(
            httpx.Response(200, json=_results(1, 1000)),
            httpx.Response(500, text="Internal error"),
        )
        seen = []

        with pytest.raises(UnclassifiedError):
            async for batch in adapter.iter_applications():
                seen.append(batch)

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_malformed_page_is_reported(self, make_adapter, icims_integration, notifications, metrics):
        adapter, _ = make_adapter(httpx.Response(200, json={"unexpected": 1}))

        with pytest.raises(ResponseParseError) as exc_info:
            async for _ in adapter.iter_jobs():
                pass

        assert exc_info.value.record is not None
        assert exc_info.value.record.kind == ErrorKind.RESPONSE_PARSE
        assert len(notifications.of_kind(NotificationKind.REQUEST_FAILED)) == 1
        assert metrics.count(
            REQUEST_METRIC, provider="icims", operation="search_jobs", outcome=ErrorKind.RESPONSE_PARSE.value
        ) == 1
        assert icims_integration.health_state.is_active

    @pytest.mark.asyncio
    async def test_undecodable_page_is_reported_once(self, make_adapter, notifications, metrics):
        adapter, _ = make_adapter(httpx.Response(200, text="<html>maintenance</html>"))

        with pytest.raises(ResponseParseError):
            async for _ in adapter.iter_candidates():
                pass

        assert len(notifications.of_kind(NotificationKind.REQUEST_FAILED)) == 1
        assert metrics.count(
            REQUEST_METRIC, provider="icims", operation="search_people", outcome=ErrorKind.RESPONSE_PARSE.value
        ) == 1


# =============================================================================
# Failures and rate limits
# =============================================================================


class TestIcimsFailures:
    """Tests for failure handling."""

    @pytest.mark.asyncio
    async def test_auth_pattern_in_body(self, make_adapter, icims_integration, notifications):
        body = {"errors": [{"errorMessage": "The provided Username is not Authorized to access Web Services"}]}
        adapter, _ = make_adapter(httpx.Response(403, json=body))

        with pytest.raises(AuthenticationError):
            await adapter.health_check()

        assert icims_integration.health_state == HealthState.unauthenticated()
        assert len(notifications.of_kind(NotificationKind.INTEGRATION_DISABLED)) == 1

    @pytest.mark.asyncio
    async def test_connect_error_deactivates(self, make_adapter, icims_integration):
        adapter, _ = make_adapter(httpx.ConnectError("Name or service not known"))

        assert await adapter.is_healthy() is False
        assert icims_integration.health_state == HealthState.unauthenticated()

    @pytest.mark.asyncio
    async def test_429_waits_and_retries(self, make_adapter):
        adapter, script = make_adapter(
            httpx.Response(429, headers={"Retry-After": "1"}),
            httpx.Response(200, json={"name": "Acme"}),
        )

        with patch.object(adapter.executor, "_sleep", new_callable=AsyncMock) as sleep:
            assert await adapter.health_check() == {"name": "Acme"}

        assert len(script.requests) == 2
        sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_429_with_zero_retry_after_is_resent(self, make_adapter):
        adapter, script = make_adapter(
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(200, json={"name": "Acme"}),
        )

        assert await adapter.health_check() == {"name": "Acme"}
        assert len(script.requests) == 2

    @pytest.mark.asyncio
    async def test_reset_beyond_max_wait(self, make_adapter, icims_integration):
        adapter, _ = make_adapter(
            httpx.Response(200, json={}, headers={"x-rate-limit-remaining": "0", "x-rate-limit-reset": "3600"})
        )

        with pytest.raises(RateLimitExceeded):
            await adapter.health_check()

        assert icims_integration.health_state.is_active

    @pytest.mark.asyncio
    async def test_pooling_reports_pool_size(self, make_adapter, metrics):
        pooled = AtsSettings(icims_connection_pooling=True)
        adapter, _ = make_adapter(httpx.Response(200, json={}), settings_=pooled)

        await adapter.health_check()

        assert metrics.gauge_value(POOL_SIZE_METRIC, integration="icims-1") == 0
        assert [v for name, v, _ in metrics.gauge_history if name == POOL_SIZE_METRIC] == [1, 0]
