"""
Base class for ATS provider adapters.

An adapter is the provider capability the executor runs against:

    authenticate()                 -> AuthMaterial
    build_request(op, params, auth) -> RequestSpec
    send(spec)                      -> ResponseDescriptor

Each subclass declares its operations as data in ``OPERATIONS`` and
implements ``build_request``; everything else (credential lookup, health
handling, metrics, rate limits) is shared here.

Usage:
    async with build_adapter(integration, collaborators=collaborators) as ats:
        jobs = await ats.call("get_jobs", per_page=100)
"""

from __future__ import annotations

import logging
import string
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from typing import Any
from urllib.parse import quote

from atsbridge.auth import AuthMaterial, Authenticator
from atsbridge.collaborators import Collaborators
from atsbridge.errors import CredentialsMissing, IntegrationError, ResponseParseError
from atsbridge.executor import RequestExecutor
from atsbridge.models import CallContext, Integration, Operation, RequestSpec, ResponseDescriptor, TransportKind
from atsbridge.pagination import Batch, FetchPage, paginate
from atsbridge.ratelimit import RateLimitChecker
from atsbridge.transport.base import Transport

logger = logging.getLogger(__name__)

_formatter = string.Formatter()


def path_fields(template: str) -> list[str]:
    """Placeholder names in a ``str.format`` path template."""
    return [name for _, name, _, _ in _formatter.parse(template) if name]


def render_path(template: str, values: Mapping[str, Any]) -> str:
    """
    Fill a path template, URL-encoding each value.

    Raises:
        ValueError: If a placeholder has no value
    """
    missing = [name for name in path_fields(template) if values.get(name) in (None, "")]
    if missing:
        raise ValueError(f"Missing path parameters: {', '.join(missing)}")
    return template.format(**{name: quote(str(values[name]), safe="") for name in path_fields(template)})


def job_ids_of(params: Mapping[str, Any]) -> tuple[str, ...]:
    """Job identifiers a call refers to, for failure context."""
    if params.get("job_ids"):
        return tuple(str(job_id) for job_id in params["job_ids"])
    if params.get("job_id") not in (None, ""):
        return (str(params["job_id"]),)
    return ()


class ProviderAdapter(ABC):
    """
    Abstract base class for provider adapters.

    Subclasses must define:
    - provider: ProviderType of the adapter
    - transport_kind: REST or SOAP
    - OPERATIONS: operation table keyed by name
    - build_request(): turn an operation plus params into a RequestSpec
    """

    OPERATIONS: Mapping[str, Operation] = {}
    transport_kind: TransportKind = TransportKind.REST

    def __init__(
        self,
        integration: Integration,
        *,
        transport: Transport,
        authenticator: Authenticator,
        collaborators: Collaborators | None = None,
        rate_limiter: RateLimitChecker | None = None,
        max_rate_limit_retries: int = 2,
    ):
        self.integration = integration
        self.transport = transport
        self.authenticator = authenticator
        self.collaborators = collaborators or Collaborators()
        self.rate_limiter = rate_limiter
        self.executor = RequestExecutor(
            self,
            self.collaborators.failures,
            rate_limiter=rate_limiter,
            metrics=self.collaborators.metrics,
            max_rate_limit_retries=max_rate_limit_retries,
        )
        self._credentials: Mapping[str, Any] | None = None

    @property
    def name(self) -> str:
        return self.integration.provider_type.value

    def operation(self, name: str) -> Operation:
        try:
            return self.OPERATIONS[name]
        except KeyError:
            raise ValueError(f"Unknown {self.name} operation: {name}") from None

    # -------------------------------------------------------------------------
    # Capability
    # -------------------------------------------------------------------------

    async def credentials(self) -> Mapping[str, Any]:
        """
        Credential fields for this integration.

        Inline credentials win; otherwise they are read once from the
        credentials store.
        """
        if self.integration.credentials:
            return self.integration.credentials
        if self._credentials is None:
            store = self.collaborators.credentials_store
            self._credentials = await store.credentials_for(self.integration.id) if store else {}
        return self._credentials

    async def authenticate(self) -> AuthMaterial:
        return self.authenticator.credentials_for(self.integration, await self.credentials())

    @abstractmethod
    def build_request(
        self,
        operation: Operation,
        params: Mapping[str, Any],
        auth: AuthMaterial,
    ) -> RequestSpec:
        """Build the request for one call."""
        ...

    async def send(self, spec: RequestSpec) -> ResponseDescriptor:
        return await self.transport.send(spec)

    def _credential(self, name: str, *fallbacks: str) -> str:
        """
        A non-secret credential field used to address the tenant.

        Only valid after ``authenticate()`` has resolved the credentials.
        """
        credentials = self.integration.credentials or self._credentials or {}
        for field_name in (name, *fallbacks):
            if credentials.get(field_name) not in (None, ""):
                return str(credentials[field_name])
        raise CredentialsMissing(
            f"Missing credentials: {name}",
            self.name,
            fields=[name],
        )

    # -------------------------------------------------------------------------
    # Calls
    # -------------------------------------------------------------------------

    async def call(self, name: str, **params: Any) -> Any:
        """
        Execute a named operation.

        Args:
            name: Key in ``OPERATIONS``
            **params: Path values, query/body parameters, paging overrides

        Returns:
            Decoded payload, or the operation's empty result when the failure
            was absorbed

        Raises:
            IntegrationError: Typed failure after health handling
            ValueError: Unknown operation or missing path parameter
        """
        operation = self.operation(name)
        context = CallContext(self.integration, operation, job_ids=job_ids_of(params))
        return await self.executor.execute(context, params)

    async def read_pages(self, name: str, fetch: FetchPage, **options: Any) -> AsyncIterator[Batch]:
        """
        Drive ``paginate`` for operation ``name``.

        A page the driver cannot interpret is handled like any other failed
        call: notification and outcome metric before the error propagates.
        Failures from ``fetch`` itself were already handled by ``call``.
        """
        pages = paginate(fetch, provider=self.name, operation=name, **options)
        try:
            async for batch in pages:
                yield batch
        except ResponseParseError as e:
            if e.record is not None:
                raise
            await self.executor.handle_failure(CallContext(self.integration, self.operation(name)), e)
        finally:
            await pages.aclose()

    async def health_check(self) -> Any:
        return await self.call("health_check")

    async def is_healthy(self) -> bool:
        """Check if the integration is reachable with its credentials."""
        try:
            await self.health_check()
            return True
        except IntegrationError as e:
            logger.warning(f"[{self.name}] Health check failed for {self.integration.id}: {e}")
            return False

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> ProviderAdapter:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


class RestAdapter(ProviderAdapter):
    """
    Adapter for REST providers with path-template operations.

    Path placeholders are filled from the call params, then from
    ``path_values()``; the remaining params become the query string for
    GET/DELETE and the JSON body otherwise.
    """

    transport_kind = TransportKind.REST

    def path_values(self) -> dict[str, Any]:
        """Tenant-level path values, such as a customer id."""
        return {}

    def build_request(self, operation, params, auth) -> RequestSpec:
        fields = path_fields(operation.path)
        values = {**self.path_values(), **{k: v for k, v in params.items() if k in fields}}
        path = render_path(operation.path, values)

        remaining = {**operation.default_params}
        remaining.update({k: v for k, v in params.items() if k not in fields and v is not None})
        remaining.pop("job_ids", None)

        if operation.method in ("GET", "DELETE"):
            return RequestSpec(
                operation=operation.name,
                method=operation.method,
                path=path,
                params=remaining or None,
                auth=auth,
            )
        return RequestSpec(
            operation=operation.name,
            method=operation.method,
            path=path,
            json=remaining,
            auth=auth,
        )


__all__ = [
    "ProviderAdapter",
    "RestAdapter",
    "job_ids_of",
    "path_fields",
    "render_path",
]
