"""REST transport: method + path + query + JSON body over httpx."""

from __future__ import annotations

import logging

from atsbridge.config import RestProviderConfig
from atsbridge.models import RequestSpec, ResponseDescriptor
from atsbridge.observability import MetricsSink
from atsbridge.transport.base import HttpxTransport

logger = logging.getLogger(__name__)


class RestTransport(HttpxTransport):
    """
    Sends REST requests for one integration.

    Auth headers come from the spec's auth material and are merged over the
    provider's default headers on each request.
    """

    def __init__(
        self,
        config: RestProviderConfig,
        provider: str,
        *,
        integration_id: str | None = None,
        metrics: MetricsSink | None = None,
        http_transport=None,
        log_requests: bool = False,
    ):
        super().__init__(
            provider,
            base_url=config.base_url,
            headers=dict(config.default_headers),
            timeout=config.timeout,
            pool_size=config.pool_size,
            pool_timeout=config.pool_timeout,
            keepalive_expiry=config.keepalive_expiry,
            integration_id=integration_id,
            metrics=metrics,
            instrument_pool=config.instrument_pool,
            http_transport=http_transport,
        )
        self.config = config
        self.log_requests = log_requests

    async def send(self, spec: RequestSpec) -> ResponseDescriptor:
        headers = dict(spec.headers)
        if spec.auth is not None:
            headers.update(spec.auth.headers())

        if self.log_requests:
            logger.debug(f"[{self.provider}] {spec.method} {spec.path} params={spec.params} body={spec.json}")

        response = await self._request(
            spec,
            method=spec.method,
            url=spec.path,
            params=dict(spec.params) if spec.params else None,
            json=spec.json,
            headers=headers,
        )

        if self.log_requests:
            logger.debug(
                f"[{self.provider}] Response: status={response.status_code} "
                f"body={response.text[:500] if response.text else 'empty'}"
            )

        return ResponseDescriptor(
            status=response.status_code,
            headers=response.headers,
            content=response.content,
        )


__all__ = ["RestTransport"]
