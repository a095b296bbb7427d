"""
Adapter construction.

``build_adapter`` picks the provider variant once, from the integration's
``provider_type``, and wires its transport, authenticator and rate limiter.
No provider checks happen per call after that.

Usage:
    collaborators = Collaborators(health_recorder=recorder, notifications=sink)
    async with build_adapter(integration, collaborators=collaborators) as ats:
        await ats.health_check()
"""

from __future__ import annotations

import logging

import httpx

from atsbridge.auth import GreenhouseAuthenticator, IcimsAuthenticator, WorkdayAuthenticator
from atsbridge.collaborators import Collaborators
from atsbridge.config import AtsSettings, get_settings, greenhouse_config, icims_config, workday_config
from atsbridge.models import Integration, ProviderType
from atsbridge.providers.base import ProviderAdapter
from atsbridge.providers.greenhouse import GreenhouseAdapter
from atsbridge.providers.icims import IcimsAdapter
from atsbridge.providers.workday import WorkdayAdapter
from atsbridge.ratelimit import HeaderRateLimitChecker
from atsbridge.transport.rest import RestTransport
from atsbridge.transport.soap import SoapTransport

logger = logging.getLogger(__name__)


def build_adapter(
    integration: Integration,
    *,
    collaborators: Collaborators | None = None,
    settings: AtsSettings | None = None,
    greenhouse_api: str = "harvest",
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderAdapter:
    """
    Build the adapter for an integration.

    Args:
        integration: Integration to call
        collaborators: Shared ports; share one instance across adapters
        settings: Defaults to ``get_settings()``
        greenhouse_api: "harvest" or "job_board" for Greenhouse integrations
        http_transport: Optional httpx transport (tests use MockTransport)

    Raises:
        ValueError: If the provider type is not supported
    """
    settings = settings or get_settings()
    collaborators = collaborators or Collaborators()
    provider = ProviderType(integration.provider_type)

    if provider == ProviderType.GREENHOUSE:
        config = greenhouse_config(settings, greenhouse_api)
        adapter: ProviderAdapter = GreenhouseAdapter(
            integration,
            api=greenhouse_api,
            transport=RestTransport(
                config,
                provider.value,
                integration_id=integration.id,
                metrics=collaborators.metrics,
                http_transport=http_transport,
            ),
            authenticator=GreenhouseAuthenticator(greenhouse_api),
            collaborators=collaborators,
        )
    elif provider == ProviderType.ICIMS:
        config = icims_config(settings)
        adapter = IcimsAdapter(
            integration,
            transport=RestTransport(
                config,
                provider.value,
                integration_id=integration.id,
                metrics=collaborators.metrics,
                http_transport=http_transport,
            ),
            authenticator=IcimsAuthenticator(),
            collaborators=collaborators,
            rate_limiter=HeaderRateLimitChecker(provider.value, max_wait=config.rate_limit_max_wait),
            max_rate_limit_retries=config.rate_limit_max_retries,
        )
    elif provider == ProviderType.WORKDAY:
        config = workday_config(settings)
        adapter = WorkdayAdapter(
            integration,
            config=config,
            transport=SoapTransport(
                config,
                provider.value,
                integration_id=integration.id,
                metrics=collaborators.metrics,
                http_transport=http_transport,
            ),
            authenticator=WorkdayAuthenticator(),
            collaborators=collaborators,
        )
    else:
        raise ValueError(f"Unsupported provider: {provider}")

    logger.debug(f"[{provider.value}] Built adapter for integration {integration.id}")
    return adapter


__all__ = ["build_adapter"]
