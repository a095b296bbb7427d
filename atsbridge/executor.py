"""
Request Executor.

Runs one named operation for one integration:

    authenticate -> build request -> send -> rate limit -> check -> decode
                                   └─ any IntegrationError ─► FailureHandler

The provider-specific parts come from a ``ProviderCapability`` chosen once
when the adapter is built. The executor never retries on its own; the only
repeat is re-sending a throttled (429) request after the rate limiter's
wait, bounded by ``max_rate_limit_retries``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol

from atsbridge.errors import (
    AuthenticationError,
    IntegrationError,
    ProviderFault,
    RateLimitExceeded,
    ResponseParseError,
)
from atsbridge.models import CallContext, Operation, RequestSpec, ResponseDescriptor, TransportKind
from atsbridge.observability import MetricsSink, NullMetricsSink, record_outcome
from atsbridge.ratelimit import RateLimitChecker

if TYPE_CHECKING:
    from atsbridge.auth import AuthMaterial
    from atsbridge.classifier import FailureHandler

logger = logging.getLogger(__name__)

MAX_FAULT_BODY = 1000


class ProviderCapability(Protocol):
    """The provider-specific half of a call."""

    name: str
    transport_kind: TransportKind

    async def authenticate(self) -> AuthMaterial: ...

    def build_request(
        self,
        operation: Operation,
        params: Mapping[str, Any],
        auth: AuthMaterial,
    ) -> RequestSpec: ...

    async def send(self, spec: RequestSpec) -> ResponseDescriptor: ...


class RequestExecutor:
    """
    Executes operations for one integration.

    Args:
        capability: Provider variant (authenticate/build_request/send)
        failures: Classifies and handles failures
        rate_limiter: Consulted after every response, when set
        metrics: Receives one outcome counter per call
        max_rate_limit_retries: Re-sends allowed for a throttled request
    """

    def __init__(
        self,
        capability: ProviderCapability,
        failures: FailureHandler,
        *,
        rate_limiter: RateLimitChecker | None = None,
        metrics: MetricsSink | None = None,
        max_rate_limit_retries: int = 2,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.capability = capability
        self.failures = failures
        self.rate_limiter = rate_limiter
        self.metrics = metrics or NullMetricsSink()
        self.max_rate_limit_retries = max_rate_limit_retries
        self._sleep = sleep

    @property
    def provider(self) -> str:
        return self.capability.name

    async def execute(self, context: CallContext, params: Mapping[str, Any]) -> Any:
        """
        Execute ``context.operation`` with ``params``.

        Returns:
            The decoded payload, or the operation's empty result when the
            failure was absorbed (scope revoked, stale resource, redirect)

        Raises:
            IntegrationError: A typed failure, after health transitions and
                notifications have been applied
        """
        operation = context.operation
        try:
            auth = await self.capability.authenticate()
            spec = self.capability.build_request(operation, params, auth)
            response = await self._send(spec)
            self._require_success(response, operation)
            payload = self._decode(response, operation)
        except IntegrationError as e:
            return await self.handle_failure(context, e)

        record_outcome(self.metrics, self.provider, operation.name, "success")
        return payload

    async def handle_failure(self, context: CallContext, error: IntegrationError) -> Any:
        """
        Classify ``error``, apply its side effects and count the outcome.

        Also used for failures raised outside ``execute``, such as a page
        the pagination driver cannot interpret.

        Returns:
            The operation's empty result when the failure is swallowed

        Raises:
            IntegrationError: The typed error when the failure propagates
        """
        operation = context.operation
        try:
            record = await self.failures.handle(error, context)
        except IntegrationError as raised:
            record_outcome(self.metrics, self.provider, operation.name, raised.kind.value)
            raise
        record_outcome(self.metrics, self.provider, operation.name, record.kind.value)
        return operation.empty()

    async def _send(self, spec: RequestSpec) -> ResponseDescriptor:
        retries = 0
        while True:
            response = await self.capability.send(spec)
            if self.rate_limiter is None:
                return response

            verdict = self.rate_limiter.check(response.headers, response.status)
            if response.status != 429:
                if verdict.should_wait:
                    await self._sleep(verdict.wait_seconds)
                return response

            retries += 1
            if retries > self.max_rate_limit_retries:
                raise RateLimitExceeded(
                    f"Still throttled after {self.max_rate_limit_retries} retries",
                    self.provider,
                    status_code=429,
                    operation=spec.operation,
                    retry_after=verdict.wait_seconds,
                )
            if verdict.should_wait:
                await self._sleep(verdict.wait_seconds)
            logger.info(
                f"[{self.provider}] Retry {retries}/{self.max_rate_limit_retries} "
                f"for {spec.operation} after rate limit wait"
            )

    def _require_success(self, response: ResponseDescriptor, operation: Operation) -> None:
        """
        Raise for failed responses.

        Raises:
            AuthenticationError: For HTTP 401
            ProviderFault: For SOAP faults and any other non-2xx status
        """
        if response.is_success:
            return

        status = response.status
        body = response.text[:MAX_FAULT_BODY]

        if status == 401:
            raise AuthenticationError(
                f"Authentication failed: {body}",
                self.provider,
                status_code=status,
                operation=operation.name,
                response_body=body,
            )

        if response.fault is not None:
            message = response.fault.message or response.fault.code
        else:
            message = body or f"HTTP {status}"

        raise ProviderFault(
            message,
            self.provider,
            status_code=status,
            operation=operation.name,
            response_body=body,
            fault_code=response.fault.code if response.fault else None,
            transport=self.capability.transport_kind.value,
            retryable=status >= 500 and response.fault is None,
        )

    def _decode(self, response: ResponseDescriptor, operation: Operation) -> Any:
        if response.data is not None:
            return response.data or operation.empty()
        if not response.content.strip():
            return operation.empty()
        try:
            return json.loads(response.content)
        except ValueError as e:
            raise ResponseParseError(
                f"Invalid JSON body: {e}",
                self.provider,
                status_code=response.status,
                operation=operation.name,
                response_body=response.text[:MAX_FAULT_BODY],
            ) from e


__all__ = ["ProviderCapability", "RequestExecutor"]
