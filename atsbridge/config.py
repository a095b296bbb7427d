"""
Configuration for atsbridge.

Two layers:

1. ``AtsSettings``: process-wide settings read once from ``ATSBRIDGE_*``
   environment variables (``get_settings()`` is a cached singleton).
2. ``RestProviderConfig`` / ``SoapProviderConfig``: immutable per-provider
   structs derived from the settings and handed to each adapter. Adapters
   never share or mutate configuration.

Credentials are not configuration; they live on the integration (or in the
credentials store) and are resolved per call.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType

from pydantic import BaseModel, Field

_JSON_HEADERS = MappingProxyType({"Content-Type": "application/json", "Accept": "application/json"})


class AtsSettings(BaseModel):
    """
    Application settings model.

    Values come from the environment via ``get_settings()``; tests build it
    directly.
    """

    # Greenhouse
    greenhouse_harvest_api_base: str = Field(
        default="https://harvest.greenhouse.io/v1", description="Greenhouse Harvest API base URL"
    )
    greenhouse_job_board_api_base: str = Field(
        default="https://boards-api.greenhouse.io/v1", description="Greenhouse Job Board API base URL"
    )

    # iCIMS
    icims_api_base: str = Field(default="https://api.icims.com/", description="iCIMS API base URL")
    icims_connection_pooling: bool = False
    icims_pool_size: int = Field(20, ge=1)
    icims_idle_timeout: float = Field(2.0, gt=0, description="Keep-alive expiry in seconds")

    # Workday
    workday_recruiting_api: str = Field(default="Recruiting", description="Recruiting web service name")
    workday_api_version: str | None = Field(None, description="bsvc:version attribute, e.g. v40.0")
    workday_read_timeout: float = Field(150.0, gt=0)

    # Shared transport
    request_timeout: float = Field(30.0, gt=0)
    pool_size: int = Field(10, ge=1)
    pool_timeout: float = Field(10.0, gt=0)

    # Rate limiting
    rate_limit_max_wait: float = Field(60.0, ge=0)
    rate_limit_max_retries: int = Field(2, ge=0)

    class Config:
        extra = "ignore"


@lru_cache()
def get_settings() -> AtsSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern.
    """
    env = {}
    for name in AtsSettings.model_fields:
        value = os.getenv(f"ATSBRIDGE_{name.upper()}")
        if value is not None and value != "":
            env[name] = value
    return AtsSettings(**env)


# =============================================================================
# Per-provider configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class RestProviderConfig:
    """Connection settings for a REST provider."""

    base_url: str
    default_headers: Mapping[str, str] = field(default_factory=lambda: _JSON_HEADERS)
    timeout: float = 30.0
    pool_size: int = 10
    pool_timeout: float = 10.0
    keepalive_expiry: float | None = None
    instrument_pool: bool = False
    rate_limit_max_wait: float = 60.0
    rate_limit_max_retries: int = 2

    def __post_init__(self):
        if not self.base_url:
            raise ValueError("base_url is required")


@dataclass(frozen=True, slots=True)
class SoapProviderConfig:
    """Connection settings for a SOAP provider."""

    service_name: str
    namespaces: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({"ins0": "urn:com.workday/bsvc"})
    )
    namespace_identifier: str = "ins0"
    api_version: str | None = None
    timeout: float = 150.0
    pool_size: int = 10
    pool_timeout: float = 10.0

    def __post_init__(self):
        if self.namespace_identifier not in self.namespaces:
            raise ValueError(f"Unknown namespace identifier: {self.namespace_identifier}")

    @property
    def namespace(self) -> str:
        return self.namespaces[self.namespace_identifier]


def greenhouse_config(settings: AtsSettings, api: str = "harvest") -> RestProviderConfig:
    """Build the config for one Greenhouse API family."""
    if api == "harvest":
        base_url = settings.greenhouse_harvest_api_base
    elif api == "job_board":
        base_url = settings.greenhouse_job_board_api_base
    else:
        raise ValueError(f"Unknown Greenhouse API: {api}")
    return RestProviderConfig(
        base_url=base_url,
        timeout=settings.request_timeout,
        pool_size=settings.pool_size,
        pool_timeout=settings.pool_timeout,
    )


def icims_config(settings: AtsSettings) -> RestProviderConfig:
    """Build the iCIMS config; pooling widens the pool and reports its size."""
    pooling = settings.icims_connection_pooling
    return RestProviderConfig(
        base_url=settings.icims_api_base,
        timeout=settings.request_timeout,
        pool_size=settings.icims_pool_size if pooling else settings.pool_size,
        pool_timeout=settings.pool_timeout,
        keepalive_expiry=settings.icims_idle_timeout if pooling else None,
        instrument_pool=pooling,
        rate_limit_max_wait=settings.rate_limit_max_wait,
        rate_limit_max_retries=settings.rate_limit_max_retries,
    )


def workday_config(settings: AtsSettings) -> SoapProviderConfig:
    return SoapProviderConfig(
        service_name=settings.workday_recruiting_api,
        api_version=settings.workday_api_version,
        timeout=settings.workday_read_timeout,
        pool_size=settings.pool_size,
        pool_timeout=settings.pool_timeout,
    )


__all__ = [
    "AtsSettings",
    "RestProviderConfig",
    "SoapProviderConfig",
    "get_settings",
    "greenhouse_config",
    "icims_config",
    "workday_config",
]
