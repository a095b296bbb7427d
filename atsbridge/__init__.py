"""
atsbridge - async client layer for applicant tracking systems.

atsbridge talks to Greenhouse, iCIMS and Workday on behalf of many tenants
and keeps one health state per integration:

- **Provider Adapters**: One declarative operation table per provider, run
  through a single executor (REST or SOAP)
- **Error Classification**: Provider faults normalized into a small error
  taxonomy; revoked scopes and deleted resources absorbed as empty results
- **Health State Machine**: Active -> Unauthorized(scopes) / Unauthenticated,
  moved forward exactly once per failure
- **Pagination**: Async generators over full-page heuristics
- **Rate Limits**: Header-driven waits for providers that report them

Quick Start:
    >>> from atsbridge import Collaborators, Integration, build_adapter
    >>>
    >>> integration = Integration(
    ...     id="int-1",
    ...     provider_type="greenhouse",
    ...     credentials={"api_key": "..."},
    ... )
    >>> async with build_adapter(integration, collaborators=Collaborators()) as ats:
    ...     async for batch in ats.iter_jobs():
    ...         print(len(batch))
"""

__version__ = "0.1.0"

from atsbridge.collaborators import Collaborators
from atsbridge.config import AtsSettings, get_settings
from atsbridge.errors import (
    AuthenticationError,
    AuthorizationError,
    ConnectivityError,
    CredentialsMissing,
    ErrorKind,
    ErrorRecord,
    IntegrationError,
    RateLimitExceeded,
    ResponseParseError,
    StaleResourceError,
    SuppressedRedirect,
    UnclassifiedError,
)
from atsbridge.models import HealthState, HealthStatus, Integration, ProviderType, Scope
from atsbridge.providers import GreenhouseAdapter, IcimsAdapter, ProviderAdapter, WorkdayAdapter, build_adapter

__all__ = [
    "__version__",
    # Wiring
    "AtsSettings",
    "Collaborators",
    "build_adapter",
    "get_settings",
    # Models
    "HealthState",
    "HealthStatus",
    "Integration",
    "ProviderType",
    "Scope",
    # Adapters
    "GreenhouseAdapter",
    "IcimsAdapter",
    "ProviderAdapter",
    "WorkdayAdapter",
    # Errors
    "AuthenticationError",
    "AuthorizationError",
    "ConnectivityError",
    "CredentialsMissing",
    "ErrorKind",
    "ErrorRecord",
    "IntegrationError",
    "RateLimitExceeded",
    "ResponseParseError",
    "StaleResourceError",
    "SuppressedRedirect",
    "UnclassifiedError",
]
