"""
Transport base for atsbridge.

A transport turns a ``RequestSpec`` into a ``ResponseDescriptor`` and does
nothing else: no status interpretation, no retries. Network failures are
translated into ``TransportError`` subtypes here so that REST and SOAP
providers fail the same way:

- DNS failure, refused connection, TLS handshake failure, connect timeout,
  connection pool exhaustion -> ConnectivityError
- read/write timeouts and protocol errors -> TransportError
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

import httpx

from atsbridge.errors import ConnectivityError, TransportError
from atsbridge.models import RequestSpec, ResponseDescriptor
from atsbridge.observability import POOL_SIZE_METRIC, MetricsSink

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Sends one request and returns the provider's raw answer."""

    async def send(self, spec: RequestSpec) -> ResponseDescriptor: ...

    async def aclose(self) -> None: ...


@contextmanager
def translate_errors(provider: str, operation: str) -> Iterator[None]:
    """Re-raise httpx failures as atsbridge transport errors."""
    try:
        yield
    except httpx.PoolTimeout as e:
        raise ConnectivityError(
            f"Timed out waiting for a pooled connection: {e}", provider, operation=operation
        ) from e
    except (httpx.ConnectError, httpx.ConnectTimeout) as e:
        raise ConnectivityError(f"Connection failed: {e}", provider, operation=operation) from e
    except httpx.TimeoutException as e:
        raise TransportError(f"Request timeout: {e}", provider, operation=operation) from e
    except httpx.TransportError as e:
        raise TransportError(f"Network error: {e}", provider, operation=operation) from e


class HttpxTransport:
    """
    Owns one ``httpx.AsyncClient`` (one bounded connection pool) per
    integration.

    Subclasses implement ``send``. When ``instrument_pool`` is set, the
    number of requests holding a pooled connection is reported as a gauge.
    """

    def __init__(
        self,
        provider: str,
        *,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        pool_size: int = 10,
        pool_timeout: float = 10.0,
        keepalive_expiry: float | None = None,
        integration_id: str | None = None,
        metrics: MetricsSink | None = None,
        instrument_pool: bool = False,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provider = provider
        self.base_url = base_url
        self.headers = dict(headers or {})
        self.timeout = httpx.Timeout(timeout, pool=pool_timeout)
        limits = {"max_connections": pool_size, "max_keepalive_connections": pool_size}
        if keepalive_expiry is not None:
            limits["keepalive_expiry"] = keepalive_expiry
        self.limits = httpx.Limits(**limits)
        self.integration_id = integration_id
        self.metrics = metrics
        self.instrument_pool = instrument_pool and metrics is not None
        self._http_transport = http_transport
        self._client: httpx.AsyncClient | None = None
        self._in_flight = 0

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                limits=self.limits,
                headers=self.headers,
                transport=self._http_transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def _report_pool_size(self) -> None:
        if not self.instrument_pool:
            return
        try:
            self.metrics.gauge(
                POOL_SIZE_METRIC,
                self._in_flight,
                tags={"integration": str(self.integration_id)},
            )
        except Exception as e:
            logger.warning(f"[{self.provider}] Failed to report pool size: {e}")

    async def _request(self, spec: RequestSpec, **kwargs) -> httpx.Response:
        """Issue the HTTP call with error translation and pool accounting."""
        client = self._get_client()
        self._in_flight += 1
        self._report_pool_size()
        try:
            with translate_errors(self.provider, spec.operation):
                return await client.request(**kwargs)
        finally:
            self._in_flight -= 1
            self._report_pool_size()

    async def send(self, spec: RequestSpec) -> ResponseDescriptor:
        raise NotImplementedError

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


__all__ = ["HttpxTransport", "Transport", "translate_errors"]
