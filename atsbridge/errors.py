"""
Error taxonomy for atsbridge.

Every failure that reaches a caller is one of the classes below. Raw
transport exceptions (httpx, XML parsing) are wrapped at the transport
boundary and never escape.

Hierarchy:
    IntegrationError
    ├── CredentialsMissing
    ├── TransportError
    │   └── ConnectivityError
    ├── ProviderFault           # raw provider failure, pre-classification
    ├── AuthenticationError
    ├── AuthorizationError
    ├── StaleResourceError
    ├── SuppressedRedirect
    ├── RateLimitExceeded
    ├── ResponseParseError
    └── UnclassifiedError
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from atsbridge.models import Scope


class ErrorKind(str, Enum):
    """Normalized error kinds surfaced to callers and notification sinks."""

    CREDENTIALS_MISSING = "CredentialsMissing"
    CONNECTIVITY = "ConnectivityError"
    AUTHENTICATION = "AuthenticationError"
    AUTHORIZATION = "AuthorizationError"
    STALE_RESOURCE = "StaleResourceError"
    SUPPRESSED_REDIRECT = "SuppressedRedirect"
    RATE_LIMIT_EXCEEDED = "RateLimitExceeded"
    RESPONSE_PARSE = "ResponseParseError"
    UNCLASSIFIED = "UnclassifiedError"


# =============================================================================
# Exceptions
# =============================================================================


class IntegrationError(Exception):
    """Base exception for integration errors."""

    kind: ErrorKind = ErrorKind.UNCLASSIFIED

    def __init__(
        self,
        message: str,
        provider: str,
        *,
        status_code: int | None = None,
        operation: str | None = None,
        response_body: str | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.operation = operation
        self.response_body = response_body
        self.retryable = retryable
        # Set by the classifier before the error reaches the caller
        self.record: ErrorRecord | None = None

    @property
    def message(self) -> str:
        return str(self.args[0])

    def __str__(self) -> str:
        parts = [f"[{self.provider}] {self.args[0]}"]
        if self.status_code:
            parts.append(f"(status={self.status_code})")
        return " ".join(parts)


class CredentialsMissing(IntegrationError):
    """Raised when an integration lacks the secrets its provider needs."""

    kind = ErrorKind.CREDENTIALS_MISSING

    def __init__(self, message: str, provider: str, *, fields: list[str] | None = None, **kwargs):
        super().__init__(message, provider, retryable=False, **kwargs)
        self.fields = fields or []


class TransportError(IntegrationError):
    """Raised when the request never produced a provider response."""

    def __init__(self, message: str, provider: str, **kwargs):
        kwargs.setdefault("retryable", True)
        super().__init__(message, provider, **kwargs)


class ConnectivityError(TransportError):
    """Socket, DNS, TLS handshake or connection pool failure."""

    kind = ErrorKind.CONNECTIVITY


class ProviderFault(IntegrationError):
    """
    A provider answered with a failure.

    Carries the HTTP status, and for SOAP providers the fault code and
    fault string, so the classifier can map it onto an ErrorKind.
    """

    def __init__(
        self,
        message: str,
        provider: str,
        *,
        fault_code: str | None = None,
        transport: str = "rest",
        **kwargs,
    ):
        super().__init__(message, provider, **kwargs)
        self.fault_code = fault_code
        self.transport = transport

    @property
    def is_soap(self) -> bool:
        return self.transport == "soap"


class AuthenticationError(IntegrationError):
    """Raised when the provider rejects the integration's credentials."""

    kind = ErrorKind.AUTHENTICATION

    def __init__(self, message: str, provider: str, **kwargs):
        super().__init__(message, provider, retryable=False, **kwargs)


class AuthorizationError(IntegrationError):
    """A single resource scope has been revoked for the integration."""

    kind = ErrorKind.AUTHORIZATION

    def __init__(self, message: str, provider: str, *, scope: Scope, **kwargs):
        super().__init__(message, provider, retryable=False, **kwargs)
        self.scope = scope


class StaleResourceError(IntegrationError):
    """The request referenced an entity that no longer exists upstream."""

    kind = ErrorKind.STALE_RESOURCE


class SuppressedRedirect(IntegrationError):
    """A redirect status surfaced as a provider fault."""

    kind = ErrorKind.SUPPRESSED_REDIRECT


class RateLimitExceeded(IntegrationError):
    """Raised when the provider's rate limit cannot be honoured by waiting."""

    kind = ErrorKind.RATE_LIMIT_EXCEEDED

    def __init__(
        self,
        message: str,
        provider: str,
        *,
        retry_after: float | None = None,
        **kwargs,
    ):
        super().__init__(message, provider, retryable=True, **kwargs)
        self.retry_after = retry_after


class ResponseParseError(IntegrationError):
    """Raised when a response body cannot be decoded."""

    kind = ErrorKind.RESPONSE_PARSE


class UnclassifiedError(IntegrationError):
    """Any failure that matched no more specific rule."""

    kind = ErrorKind.UNCLASSIFIED


# =============================================================================
# Error Record
# =============================================================================


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    """Normalized failure shape for callers and the notification sink."""

    kind: ErrorKind
    provider: str
    operation: str
    message: str
    http_status: int | None = None
    integration_id: str | None = None
    job_ids: tuple[str, ...] = ()
    scope: str | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "kind": self.kind.value,
            "provider": self.provider,
            "operation": self.operation,
            "message": self.message,
            "http_status": self.http_status,
            "integration_id": self.integration_id,
        }
        if self.job_ids:
            data["job_ids"] = list(self.job_ids)
        if self.scope:
            data["scope"] = self.scope
        return data


__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "ConnectivityError",
    "CredentialsMissing",
    "ErrorKind",
    "ErrorRecord",
    "IntegrationError",
    "ProviderFault",
    "RateLimitExceeded",
    "ResponseParseError",
    "StaleResourceError",
    "SuppressedRedirect",
    "TransportError",
    "UnclassifiedError",
]
