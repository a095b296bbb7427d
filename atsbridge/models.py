"""
Core data types for atsbridge.

Integrations are owned by an external store; this package only reads their
credentials and moves their health state forward. Requests and responses are
transient and live for a single call.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from atsbridge.auth import AuthMaterial

# =============================================================================
# Enums
# =============================================================================


class ProviderType(str, Enum):
    """Supported applicant tracking systems."""

    GREENHOUSE = "greenhouse"
    ICIMS = "icims"
    WORKDAY = "workday"


class TransportKind(str, Enum):
    """Wire protocol used by a provider."""

    REST = "rest"
    SOAP = "soap"


class Scope(str, Enum):
    """Resource categories a provider can revoke independently."""

    JOBS = "jobs"
    CANDIDATES = "candidates"


class HealthStatus(str, Enum):
    """Presumed validity of an integration's credentials."""

    ACTIVE = "active"
    UNAUTHENTICATED = "unauthenticated"
    UNAUTHORIZED = "unauthorized"


# =============================================================================
# Health State
# =============================================================================


@dataclass(frozen=True, slots=True)
class HealthState:
    """
    Health of one integration.

    Unauthorized carries the set of revoked scopes. Unauthenticated is
    terminal within a run; only a credential update outside this package
    returns an integration to Active.
    """

    status: HealthStatus = HealthStatus.ACTIVE
    scopes: frozenset[Scope] = frozenset()

    @classmethod
    def active(cls) -> HealthState:
        return cls()

    @classmethod
    def unauthenticated(cls) -> HealthState:
        return cls(status=HealthStatus.UNAUTHENTICATED)

    @classmethod
    def unauthorized(cls, *scopes: Scope) -> HealthState:
        return cls(status=HealthStatus.UNAUTHORIZED, scopes=frozenset(scopes))

    @property
    def is_active(self) -> bool:
        return self.status == HealthStatus.ACTIVE

    def allows(self, scope: Scope | None) -> bool:
        """Whether calls for ``scope`` are expected to succeed."""
        if self.status == HealthStatus.UNAUTHENTICATED:
            return False
        if scope is None:
            return True
        return scope not in self.scopes

    def with_unauthorized(self, scope: Scope) -> HealthState:
        return HealthState(
            status=HealthStatus.UNAUTHORIZED,
            scopes=self.scopes | {scope},
        )

    def __str__(self) -> str:
        if self.status == HealthStatus.UNAUTHORIZED:
            names = ",".join(sorted(s.value for s in self.scopes))
            return f"unauthorized({names})"
        return self.status.value


# =============================================================================
# Integration
# =============================================================================


@dataclass
class Integration:
    """
    One tenant's connection to one ATS provider.

    ``health_state`` mirrors the last state this process wrote through the
    health recorder; it is only changed by the health state machine.
    """

    id: str
    provider_type: ProviderType
    credentials: Mapping[str, Any] = field(default_factory=dict)
    health_state: HealthState = field(default_factory=HealthState.active)
    name: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.provider_type, str):
            self.provider_type = ProviderType(self.provider_type)


# =============================================================================
# Operations and Requests
# =============================================================================


@dataclass(frozen=True, slots=True)
class Operation:
    """
    Declarative request shape for one named provider call.

    REST operations use ``method``, ``path`` (a ``str.format`` template) and
    ``default_params``; SOAP operations use ``action``, ``message_tag`` and
    ``default_message``.
    """

    name: str
    method: str = "GET"
    path: str = ""
    default_params: Mapping[str, Any] = field(default_factory=dict)
    action: str | None = None
    message_tag: str | None = None
    default_message: Mapping[str, Any] = field(default_factory=dict)
    scope: Scope | None = None
    empty: Callable[[], Any] = list
    paginated: bool = False


@dataclass(frozen=True, slots=True)
class RequestSpec:
    """Fully-resolved request for a single call."""

    operation: str
    method: str = "GET"
    path: str = ""
    params: Mapping[str, Any] | None = None
    json: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    action: str | None = None
    message_tag: str | None = None
    message: Mapping[str, Any] | None = None
    auth: AuthMaterial | None = None


@dataclass(frozen=True, slots=True)
class SoapFault:
    """Fault element extracted from a SOAP response envelope."""

    code: str
    message: str


@dataclass(slots=True)
class ResponseDescriptor:
    """Provider-agnostic response produced by a transport."""

    status: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    content: bytes = b""
    data: Any = None
    fault: SoapFault | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.headers, httpx.Headers):
            self.headers = httpx.Headers(self.headers)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300 and self.fault is None

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


@dataclass(frozen=True, slots=True)
class CallContext:
    """What the classifier needs to know about the failing call."""

    integration: Integration
    operation: Operation
    job_ids: tuple[str, ...] = ()

    @property
    def provider(self) -> str:
        return self.integration.provider_type.value


__all__ = [
    "CallContext",
    "HealthState",
    "HealthStatus",
    "Integration",
    "Operation",
    "ProviderType",
    "RequestSpec",
    "ResponseDescriptor",
    "Scope",
    "SoapFault",
    "TransportKind",
]
