"""
Process-wide collaborators shared by every adapter.

One ``Collaborators`` instance should be shared by all adapters of a process:
the health state machine it holds serializes transitions per integration,
and that only works when every adapter goes through the same one.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from atsbridge.classifier import ErrorClassifier, FailureHandler, FaultPatterns
from atsbridge.health import HealthRecorder, HealthStateMachine, InMemoryHealthRecorder
from atsbridge.observability import (
    LoggingNotificationSink,
    MetricsSink,
    NotificationSink,
    NullMetricsSink,
)
from atsbridge.stores import CredentialsStore


@dataclass
class Collaborators:
    """
    External ports plus the failure handling built on top of them.

    Attributes:
        health_recorder: Persists health transitions
        notifications: Receives operator notifications
        metrics: Receives counters and gauges
        credentials_store: Resolves credentials not carried on the integration
        patterns: Fault substring table; defaults to the packaged YAML
    """

    health_recorder: HealthRecorder = field(default_factory=InMemoryHealthRecorder)
    notifications: NotificationSink = field(default_factory=LoggingNotificationSink)
    metrics: MetricsSink = field(default_factory=NullMetricsSink)
    credentials_store: CredentialsStore | None = None
    patterns: FaultPatterns | None = None

    def __post_init__(self) -> None:
        self.state_machine = HealthStateMachine(self.health_recorder)
        self.failures = FailureHandler(
            self.state_machine,
            self.notifications,
            ErrorClassifier(self.patterns),
        )


__all__ = ["Collaborators"]
