"""
Tests for the integration health state machine.
"""

import asyncio
import gc

import pytest

from atsbridge.health import HealthStateMachine, InMemoryHealthRecorder, next_state
from atsbridge.models import HealthState, HealthStatus, Integration, ProviderType, Scope


@pytest.fixture
def integration():
    return Integration(id="int-1", provider_type=ProviderType.ICIMS)


# =============================================================================
# next_state
# =============================================================================


class TestNextState:
    """Tests for the pure transition function."""

    def test_active_to_unauthenticated(self):
        assert next_state(HealthState.active(), HealthStatus.UNAUTHENTICATED) == HealthState.unauthenticated()

    def test_active_to_unauthorized(self):
        state = next_state(HealthState.active(), HealthStatus.UNAUTHORIZED, Scope.CANDIDATES)

        assert state == HealthState.unauthorized(Scope.CANDIDATES)

    def test_scopes_accumulate(self):
        state = HealthState.unauthorized(Scope.CANDIDATES)

        state = next_state(state, HealthStatus.UNAUTHORIZED, Scope.JOBS)

        assert state.scopes == frozenset({Scope.CANDIDATES, Scope.JOBS})

    def test_unauthenticated_is_terminal(self):
        current = HealthState.unauthenticated()

        assert next_state(current, HealthStatus.UNAUTHORIZED, Scope.JOBS) is current
        assert next_state(current, HealthStatus.ACTIVE) is current

    def test_unauthorized_to_unauthenticated(self):
        current = HealthState.unauthorized(Scope.JOBS)

        assert next_state(current, HealthStatus.UNAUTHENTICATED) == HealthState.unauthenticated()

    def test_unauthorized_requires_scope(self):
        with pytest.raises(ValueError):
            next_state(HealthState.active(), HealthStatus.UNAUTHORIZED)

    def test_never_moves_back_to_active(self):
        current = HealthState.unauthorized(Scope.JOBS)

        assert next_state(current, HealthStatus.ACTIVE) is current


class TestHealthState:
    """Tests for HealthState helpers."""

    def test_allows(self):
        state = HealthState.unauthorized(Scope.CANDIDATES)

        assert state.allows(Scope.JOBS)
        assert not state.allows(Scope.CANDIDATES)
        assert state.allows(None)
        assert not HealthState.unauthenticated().allows(None)

    def test_str(self):
        assert str(HealthState.active()) == "active"
        assert str(HealthState.unauthorized(Scope.JOBS, Scope.CANDIDATES)) == "unauthorized(candidates,jobs)"


# =============================================================================
# HealthStateMachine
# =============================================================================


class TestHealthStateMachine:
    """Tests for HealthStateMachine."""

    @pytest.mark.asyncio
    async def test_deactivate_writes_once(self, integration):
        recorder = InMemoryHealthRecorder()
        machine = HealthStateMachine(recorder)

        first = await machine.deactivate(integration)
        second = await machine.deactivate(integration)

        assert first.changed is True
        assert second.changed is False
        assert integration.health_state == HealthState.unauthenticated()
        assert recorder.history == [("int-1", HealthState.unauthenticated())]

    @pytest.mark.asyncio
    async def test_concurrent_deactivations_write_once(self, integration):
        recorder = InMemoryHealthRecorder()
        writes = []
        original = recorder.set_health_state

        async def slow_write(integration_id, state):
            writes.append(state)
            await asyncio.sleep(0)
            await original(integration_id, state)

        recorder.set_health_state = slow_write
        machine = HealthStateMachine(recorder)

        results = await asyncio.gather(*(machine.deactivate(integration) for _ in range(5)))

        assert sum(1 for t in results if t.changed) == 1
        assert writes == [HealthState.unauthenticated()]

    @pytest.mark.asyncio
    async def test_unauthorize_same_scope_is_noop(self, integration):
        recorder = InMemoryHealthRecorder()
        machine = HealthStateMachine(recorder)

        await machine.unauthorize(integration, Scope.CANDIDATES)
        again = await machine.unauthorize(integration, Scope.CANDIDATES)

        assert again.changed is False
        assert len(recorder.history) == 1

    @pytest.mark.asyncio
    async def test_unauthorize_after_deactivate_is_noop(self, integration):
        recorder = InMemoryHealthRecorder()
        machine = HealthStateMachine(recorder)

        await machine.deactivate(integration)
        result = await machine.unauthorize(integration, Scope.JOBS)

        assert result.changed is False
        assert integration.health_state == HealthState.unauthenticated()

    @pytest.mark.asyncio
    async def test_failed_write_leaves_state_unchanged(self, integration):
        class BrokenRecorder:
            async def set_health_state(self, integration_id, state):
                raise RuntimeError("store down")

        machine = HealthStateMachine(BrokenRecorder())

        with pytest.raises(RuntimeError):
            await machine.deactivate(integration)

        assert integration.health_state.is_active

    @pytest.mark.asyncio
    async def test_integrations_are_independent(self):
        recorder = InMemoryHealthRecorder()
        machine = HealthStateMachine(recorder)
        a = Integration(id="a", provider_type="icims")
        b = Integration(id="b", provider_type="icims")

        await machine.deactivate(a)

        assert b.health_state.is_active
        assert recorder.get("b") is None

    @pytest.mark.asyncio
    async def test_locks_released_after_transitions(self):
        machine = HealthStateMachine(InMemoryHealthRecorder())
        tenants = [Integration(id=f"t-{i}", provider_type="icims") for i in range(50)]

        await asyncio.gather(*(machine.deactivate(t) for t in tenants))
        gc.collect()

        assert len(machine._locks) == 0
