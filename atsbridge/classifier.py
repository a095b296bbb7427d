"""
Error Classifier and failure handling.

Providers signal failure in different vocabularies: HTTP status codes,
SOAP fault strings, socket exceptions. The classifier maps any of them onto
one ``ErrorKind`` and decides the outcome, first match wins:

1. Connectivity failure        -> deactivate, notify, raise
2. Authentication failure      -> deactivate, notify, raise
3. Scoped authorization fault  -> unauthorize(scope), notify, swallow
4. Stale resource reference    -> log, swallow
5. Redirect carried as a fault -> notify, swallow
6. Anything else               -> notify, raise

Swallowed calls return the operation's empty result. The fault substrings
live in ``data/fault_patterns.yaml``, not in code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from atsbridge.errors import (
    AuthenticationError,
    AuthorizationError,
    ConnectivityError,
    ErrorKind,
    ErrorRecord,
    IntegrationError,
    ProviderFault,
    StaleResourceError,
    SuppressedRedirect,
    TransportError,
    UnclassifiedError,
)
from atsbridge.health import HealthStateMachine, Transition
from atsbridge.models import CallContext
from atsbridge.observability import NotificationKind, NotificationSink

logger = logging.getLogger(__name__)


# =============================================================================
# Fault Patterns
# =============================================================================


@dataclass(frozen=True, slots=True)
class FaultPatterns:
    """Substring table mapping provider fault messages to error kinds."""

    authentication: tuple[str, ...] = ()
    authorization: tuple[str, ...] = ()
    stale_resource: tuple[str, ...] = ()
    redirect_statuses: frozenset[int] = frozenset({301, 302})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FaultPatterns:
        return cls(
            authentication=tuple(data.get("authentication") or ()),
            authorization=tuple(data.get("authorization") or ()),
            stale_resource=tuple(data.get("stale_resource") or ()),
            redirect_statuses=frozenset(int(s) for s in data.get("redirect_statuses") or (301, 302)),
        )

    @classmethod
    def load(cls, path: str | Path | None = None) -> FaultPatterns:
        """Load the table from YAML; defaults to the packaged file."""
        if path is None:
            text = resources.files("atsbridge").joinpath("data", "fault_patterns.yaml").read_text("utf-8")
        else:
            text = Path(path).read_text("utf-8")
        return cls.from_dict(yaml.safe_load(text) or {})

    @staticmethod
    def _matches(patterns: tuple[str, ...], message: str) -> bool:
        lowered = message.lower()
        return any(pattern.lower() in lowered for pattern in patterns)

    def is_authentication(self, message: str) -> bool:
        return self._matches(self.authentication, message)

    def is_authorization(self, message: str) -> bool:
        return self._matches(self.authorization, message)

    def is_stale_resource(self, message: str) -> bool:
        return self._matches(self.stale_resource, message)


# =============================================================================
# Classification
# =============================================================================


class HealthAction(str, Enum):
    NONE = "none"
    DEACTIVATE = "deactivate"
    UNAUTHORIZE = "unauthorize"


@dataclass(frozen=True, slots=True)
class Classification:
    """Pure classification result; no side effects applied yet."""

    record: ErrorRecord
    error: IntegrationError
    swallow: bool
    health_action: HealthAction = HealthAction.NONE
    notification: NotificationKind | None = None


class ErrorClassifier:
    """Maps a raised error plus call context onto a Classification."""

    def __init__(self, patterns: FaultPatterns | None = None):
        self.patterns = patterns or FaultPatterns.load()

    def classify(self, error: BaseException, context: CallContext) -> Classification:
        provider = context.provider
        operation = context.operation.name
        message = _message_of(error)
        status = getattr(error, "status_code", None)

        def record(kind: ErrorKind, scope: str | None = None) -> ErrorRecord:
            return ErrorRecord(
                kind=kind,
                provider=provider,
                operation=operation,
                message=message,
                http_status=status,
                integration_id=context.integration.id,
                job_ids=context.job_ids,
                scope=scope,
            )

        fault = error if isinstance(error, ProviderFault) else None

        # 1. Connectivity
        if isinstance(error, ConnectivityError):
            return Classification(
                record=record(ErrorKind.CONNECTIVITY),
                error=error,
                swallow=False,
                health_action=HealthAction.DEACTIVATE,
                notification=NotificationKind.INTEGRATION_DISABLED,
            )

        # 2. Authentication
        if isinstance(error, AuthenticationError) or (
            fault is not None and (status == 401 or self.patterns.is_authentication(message))
        ):
            typed = error if isinstance(error, AuthenticationError) else AuthenticationError(
                message, provider, status_code=status, operation=operation,
                response_body=fault.response_body if fault else None,
            )
            return Classification(
                record=record(ErrorKind.AUTHENTICATION),
                error=typed,
                swallow=False,
                health_action=HealthAction.DEACTIVATE,
                notification=NotificationKind.INTEGRATION_DISABLED,
            )

        # 3. Scoped authorization
        scope = context.operation.scope
        if isinstance(error, AuthorizationError) or (
            fault is not None and scope is not None and self.patterns.is_authorization(message)
        ):
            if isinstance(error, AuthorizationError):
                typed = error
            else:
                typed = AuthorizationError(
                    message, provider, scope=scope, status_code=status, operation=operation
                )
            return Classification(
                record=record(ErrorKind.AUTHORIZATION, scope=typed.scope.value),
                error=typed,
                swallow=True,
                health_action=HealthAction.UNAUTHORIZE,
                notification=NotificationKind.INTEGRATION_UNAUTHORIZED,
            )

        # 4. Stale resource
        if isinstance(error, StaleResourceError) or (
            fault is not None and self.patterns.is_stale_resource(message)
        ):
            typed = error if isinstance(error, StaleResourceError) else StaleResourceError(
                message, provider, status_code=status, operation=operation
            )
            return Classification(record=record(ErrorKind.STALE_RESOURCE), error=typed, swallow=True)

        # 5. Redirect surfaced as a SOAP fault
        if isinstance(error, SuppressedRedirect) or (
            fault is not None and fault.is_soap and status in self.patterns.redirect_statuses
        ):
            typed = error if isinstance(error, SuppressedRedirect) else SuppressedRedirect(
                message, provider, status_code=status, operation=operation
            )
            return Classification(
                record=record(ErrorKind.SUPPRESSED_REDIRECT),
                error=typed,
                swallow=True,
                notification=NotificationKind.REDIRECT_SUPPRESSED,
            )

        # 6. Everything else
        if isinstance(error, IntegrationError) and not isinstance(
            error, (ProviderFault, TransportError)
        ):
            typed = error
        else:
            typed = UnclassifiedError(
                message,
                provider,
                status_code=status,
                operation=operation,
                response_body=getattr(error, "response_body", None),
                retryable=getattr(error, "retryable", False),
            )
        return Classification(
            record=record(typed.kind),
            error=typed,
            swallow=False,
            notification=NotificationKind.REQUEST_FAILED,
        )


def _message_of(error: BaseException) -> str:
    if isinstance(error, IntegrationError):
        return error.message
    return str(error) or type(error).__name__


# =============================================================================
# Handler
# =============================================================================


class FailureHandler:
    """
    Applies a classification: health transition, notification, raise.

    Side effects run before the error is re-raised. A failing notification
    sink or health recorder is logged and never replaces the original error.
    """

    def __init__(
        self,
        state_machine: HealthStateMachine,
        notifications: NotificationSink,
        classifier: ErrorClassifier | None = None,
    ):
        self.state_machine = state_machine
        self.notifications = notifications
        self.classifier = classifier or ErrorClassifier()

    async def handle(self, error: BaseException, context: CallContext) -> ErrorRecord:
        """
        Handle a failed call.

        Returns:
            The ErrorRecord when the failure is swallowed

        Raises:
            IntegrationError: The typed error when the failure propagates
        """
        result = self.classifier.classify(error, context)
        record = result.record
        result.error.record = record

        should_notify = result.notification is not None
        if result.health_action != HealthAction.NONE:
            transition = await self._apply_health(result, context)
            # No-op transitions (already in that state) stay silent
            should_notify = should_notify and (transition is None or transition.changed)

        if result.swallow:
            self._log_swallowed(record)
        else:
            logger.error(f"[{record.provider}] {record.operation} failed: {record.kind.value}: {record.message}")

        if should_notify:
            self._notify(result.notification, record)

        if result.swallow:
            return record
        if result.error is error:
            raise result.error
        raise result.error from error

    async def _apply_health(self, result: Classification, context: CallContext) -> Transition | None:
        integration = context.integration
        try:
            if result.health_action == HealthAction.DEACTIVATE:
                return await self.state_machine.deactivate(integration)
            scope = result.error.scope  # type: ignore[attr-defined]
            return await self.state_machine.unauthorize(integration, scope)
        except Exception as e:
            logger.exception(
                f"[{context.provider}] Failed to record health state for integration "
                f"{integration.id}: {e}"
            )
            return None

    def _notify(self, kind: NotificationKind, record: ErrorRecord) -> None:
        try:
            self.notifications.notify(kind, record.to_dict())
        except Exception as e:
            logger.warning(f"[{record.provider}] Notification '{kind.value}' failed: {e}")

    def _log_swallowed(self, record: ErrorRecord) -> None:
        if record.kind == ErrorKind.STALE_RESOURCE:
            ids = ", ".join(record.job_ids) if record.job_ids else "none"
            logger.info(
                f"[{record.provider}] {record.operation} referenced a deleted resource "
                f"(job ids: {ids}): {record.message}"
            )
        elif record.kind == ErrorKind.AUTHORIZATION:
            logger.warning(
                f"[{record.provider}] {record.operation} not authorized for scope "
                f"'{record.scope}' on integration {record.integration_id}"
            )
        else:
            logger.info(f"[{record.provider}] {record.operation} suppressed {record.kind.value}: {record.message}")


__all__ = [
    "Classification",
    "ErrorClassifier",
    "FailureHandler",
    "FaultPatterns",
    "HealthAction",
]
