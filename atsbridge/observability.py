"""
Observability for atsbridge.

Provides the outbound metrics and notification contracts plus simple
implementations:

- MetricsSink: counters and gauges keyed by provider/operation/outcome
- NotificationSink: operator-visible alerts (deactivation, unauthorization)
- JSONLogger: structured logging used by the default notification sink

Backends (statsd, Datadog, paging) are plugged in by implementing the
protocols; nothing here talks to the network.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)

POOL_SIZE_METRIC = "ats.integration.http.pool.size"
REQUEST_METRIC = "ats.integration.request"


# =============================================================================
# Notification Kinds
# =============================================================================


class NotificationKind(str, Enum):
    """Alert titles sent to operators."""

    INTEGRATION_DISABLED = "ATS Integration Disabled"
    INTEGRATION_UNAUTHORIZED = "ATS Integration Unauthorized"
    REDIRECT_SUPPRESSED = "ATS Redirect Suppressed"
    REQUEST_FAILED = "ATS Request Failed"


# =============================================================================
# Protocols
# =============================================================================


class MetricsSink(Protocol):
    """Counters and gauges for integration traffic."""

    def increment(self, name: str, *, tags: dict[str, str]) -> None: ...

    def gauge(self, name: str, value: float, *, tags: dict[str, str]) -> None: ...


class NotificationSink(Protocol):
    """
    Fire-and-forget operator alerts.

    Implementations may raise; callers log and drop the failure so an alert
    outage never masks the error being reported.
    """

    def notify(self, kind: NotificationKind, context: dict[str, Any]) -> None: ...


# =============================================================================
# JSON Logger
# =============================================================================


@dataclass
class JSONLogger:
    """
    Structured logger that outputs JSON-formatted logs.

    Example output:
        {"timestamp": "2026-01-02T10:30:00Z", "level": "warning",
         "message": "ATS Integration Disabled", "provider": "icims"}
    """

    name: str = "atsbridge"
    extra_context: dict[str, Any] = field(default_factory=dict)

    def _log(self, level: int, message: str, context: dict[str, Any]) -> None:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(level).lower(),
            "message": message,
            **self.extra_context,
            **context,
        }
        logging.getLogger(self.name).log(level, json.dumps(record, default=str))

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, context)

    def error(self, message: str, **context: Any) -> None:
        self._log(logging.ERROR, message, context)

    def with_context(self, **extra: Any) -> JSONLogger:
        """Create a new logger with additional context."""
        return JSONLogger(name=self.name, extra_context={**self.extra_context, **extra})


# =============================================================================
# Implementations
# =============================================================================


class LoggingNotificationSink:
    """Writes notifications as structured log lines."""

    def __init__(self, json_logger: JSONLogger | None = None):
        self._logger = json_logger or JSONLogger(name="atsbridge.notifications")

    def notify(self, kind: NotificationKind, context: dict[str, Any]) -> None:
        if kind == NotificationKind.REQUEST_FAILED:
            self._logger.error(kind.value, **context)
        else:
            self._logger.warning(kind.value, **context)


class InMemoryNotificationSink:
    """Collects notifications; useful in tests and local runs."""

    def __init__(self) -> None:
        self.sent: list[tuple[NotificationKind, dict[str, Any]]] = []

    def notify(self, kind: NotificationKind, context: dict[str, Any]) -> None:
        self.sent.append((kind, dict(context)))

    def of_kind(self, kind: NotificationKind) -> list[dict[str, Any]]:
        return [context for sent_kind, context in self.sent if sent_kind == kind]


def _tag_key(tags: dict[str, str]) -> tuple[tuple[str, str], ...]:
    return tuple(sorted(tags.items()))


class InMemoryMetricsSink:
    """
    Thread-safe in-memory metrics.

    Counters accumulate; gauges keep the last value per tag set.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[tuple[str, tuple[tuple[str, str], ...]], int] = defaultdict(int)
        self._gauges: dict[tuple[str, tuple[tuple[str, str], ...]], float] = {}
        self.gauge_history: list[tuple[str, float, dict[str, str]]] = []

    def increment(self, name: str, *, tags: dict[str, str]) -> None:
        with self._lock:
            self._counters[(name, _tag_key(tags))] += 1

    def gauge(self, name: str, value: float, *, tags: dict[str, str]) -> None:
        with self._lock:
            self._gauges[(name, _tag_key(tags))] = value
            self.gauge_history.append((name, value, dict(tags)))

    def count(self, name: str, **tags: str) -> int:
        with self._lock:
            return self._counters.get((name, _tag_key(tags)), 0)

    def gauge_value(self, name: str, **tags: str) -> float | None:
        with self._lock:
            return self._gauges.get((name, _tag_key(tags)))

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self.gauge_history.clear()


class NullMetricsSink:
    """Discards all metrics."""

    def increment(self, name: str, *, tags: dict[str, str]) -> None:
        pass

    def gauge(self, name: str, value: float, *, tags: dict[str, str]) -> None:
        pass


def record_outcome(metrics: MetricsSink, provider: str, operation: str, outcome: str) -> None:
    """Count one call outcome; metrics failures are logged, never raised."""
    try:
        metrics.increment(
            REQUEST_METRIC,
            tags={"provider": provider, "operation": operation, "outcome": outcome},
        )
    except Exception as e:
        logger.warning(f"[{provider}] Failed to record metric for {operation}: {e}")


__all__ = [
    "InMemoryMetricsSink",
    "InMemoryNotificationSink",
    "JSONLogger",
    "LoggingNotificationSink",
    "MetricsSink",
    "NotificationKind",
    "NotificationSink",
    "NullMetricsSink",
    "POOL_SIZE_METRIC",
    "REQUEST_METRIC",
    "record_outcome",
]
