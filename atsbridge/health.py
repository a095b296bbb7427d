"""
Integration Health State Machine.

Health only moves forward within a run:

    Active ──► Unauthorized({scope, ...}) ──► Unauthenticated
       └────────────────────────────────────────────▲

- Active -> Unauthenticated: credentials rejected or integration unreachable
- Active/Unauthorized -> Unauthorized(+scope): one capability revoked
- Unauthenticated is terminal; returning to Active is an external action
  (credential update) and never happens here.

Transitions are compare-and-set against the integration's current state,
serialized by a per-integration asyncio lock. A transition that would not
change the state is a no-op: no recorder write, and the caller sends no
notification. Successful calls never write health state, so a late success
cannot resurrect a deactivated integration.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass
from typing import Protocol

from atsbridge.models import HealthState, HealthStatus, Integration, Scope

logger = logging.getLogger(__name__)


# =============================================================================
# Health Recorder
# =============================================================================


class HealthRecorder(Protocol):
    """Outbound contract for persisting health transitions."""

    async def set_health_state(self, integration_id: str, state: HealthState) -> None: ...


class InMemoryHealthRecorder:
    """
    Keeps the last state per integration and the ordered write history.

    Writing the state an integration already has is deduplicated.
    """

    def __init__(self) -> None:
        self.states: dict[str, HealthState] = {}
        self.history: list[tuple[str, HealthState]] = []

    async def set_health_state(self, integration_id: str, state: HealthState) -> None:
        if self.states.get(integration_id) == state:
            return
        self.states[integration_id] = state
        self.history.append((integration_id, state))

    def get(self, integration_id: str) -> HealthState | None:
        return self.states.get(integration_id)


# =============================================================================
# State Machine
# =============================================================================


@dataclass(frozen=True, slots=True)
class Transition:
    """Outcome of a transition attempt."""

    integration_id: str
    previous: HealthState
    current: HealthState
    changed: bool


def next_state(current: HealthState, target: HealthStatus, scope: Scope | None = None) -> HealthState:
    """
    Compute the state reached from ``current`` when ``target`` is requested.

    Returns ``current`` unchanged when the move is not forward.
    """
    if current.status == HealthStatus.UNAUTHENTICATED:
        return current
    if target == HealthStatus.UNAUTHENTICATED:
        return HealthState.unauthenticated()
    if target == HealthStatus.UNAUTHORIZED:
        if scope is None:
            raise ValueError("Unauthorized transition requires a scope")
        if scope in current.scopes:
            return current
        return current.with_unauthorized(scope)
    # Active is never a target here
    return current


class HealthStateMachine:
    """
    Applies health transitions for integrations.

    Safe to share across concurrent calls: each integration gets its own
    lock, and different integrations never contend. A lock lives only while
    some transition holds it, so the map does not grow with every tenant
    ever seen.
    """

    def __init__(self, recorder: HealthRecorder):
        self.recorder = recorder
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, integration_id: str) -> asyncio.Lock:
        lock = self._locks.get(integration_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[integration_id] = lock
        return lock

    async def transition(
        self,
        integration: Integration,
        target: HealthStatus,
        scope: Scope | None = None,
    ) -> Transition:
        """
        Move ``integration`` towards ``target``.

        The recorder is written before the in-memory state is updated, so a
        failed write leaves the integration unchanged and the error
        propagates.
        """
        lock = self._lock_for(integration.id)
        async with lock:
            previous = integration.health_state
            current = next_state(previous, target, scope)
            if current == previous:
                return Transition(integration.id, previous, previous, changed=False)

            await self.recorder.set_health_state(integration.id, current)
            integration.health_state = current

        logger.warning(
            f"[{integration.provider_type.value}] Integration {integration.id} "
            f"health {previous} -> {current}"
        )
        return Transition(integration.id, previous, current, changed=True)

    async def deactivate(self, integration: Integration) -> Transition:
        return await self.transition(integration, HealthStatus.UNAUTHENTICATED)

    async def unauthorize(self, integration: Integration, scope: Scope) -> Transition:
        return await self.transition(integration, HealthStatus.UNAUTHORIZED, scope)


__all__ = [
    "HealthRecorder",
    "HealthStateMachine",
    "InMemoryHealthRecorder",
    "Transition",
    "next_state",
]
