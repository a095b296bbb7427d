"""
Tests for error classification and failure handling.
"""

import logging

import pytest

from atsbridge.classifier import ErrorClassifier, FailureHandler, FaultPatterns, HealthAction
from atsbridge.errors import (
    AuthenticationError,
    AuthorizationError,
    ConnectivityError,
    CredentialsMissing,
    ErrorKind,
    ProviderFault,
    RateLimitExceeded,
    StaleResourceError,
    SuppressedRedirect,
    TransportError,
    UnclassifiedError,
)
from atsbridge.health import HealthStateMachine, InMemoryHealthRecorder
from atsbridge.models import CallContext, HealthState, Integration, Operation, ProviderType, Scope
from atsbridge.observability import InMemoryNotificationSink, NotificationKind

CANDIDATES_OP = Operation("get_candidates", scope=Scope.CANDIDATES)
HEALTH_OP = Operation("health_check")


def _context(operation=CANDIDATES_OP, job_ids=(), provider=ProviderType.WORKDAY):
    integration = Integration(id="int-1", provider_type=provider)
    return CallContext(integration, operation, job_ids=job_ids)


def _soap_fault(message, status=500):
    return ProviderFault(message, "workday", status_code=status, transport="soap")


# =============================================================================
# Fault patterns
# =============================================================================


class TestFaultPatterns:
    """Tests for the packaged fault pattern table."""

    def test_packaged_table_loads(self):
        patterns = FaultPatterns.load()

        assert patterns.is_authentication("The provided Username is not Authorized to access Web Services")
        assert patterns.is_authorization("The task submitted is not authorized.")
        assert patterns.is_stale_resource("Invalid ID value. 'X123' is not a valid ID value for type = 'Job_Requisition_ID'")
        assert patterns.redirect_statuses == frozenset({301, 302})

    def test_matching_is_case_insensitive(self):
        patterns = FaultPatterns(authentication=("invalid credentials",))

        assert patterns.is_authentication("INVALID CREDENTIALS supplied")
        assert not patterns.is_authentication("valid")

    def test_load_from_path(self, tmp_path):
        path = tmp_path / "patterns.yaml"
        path.write_text("authentication:\n  - nope\nstale_resource: []\n")

        patterns = FaultPatterns.load(path)

        assert patterns.authentication == ("nope",)
        assert patterns.stale_resource == ()
        assert patterns.redirect_statuses == frozenset({301, 302})


# =============================================================================
# Classifier
# =============================================================================


class TestErrorClassifier:
    """Tests for ErrorClassifier rule order."""

    @pytest.fixture
    def classifier(self):
        return ErrorClassifier()

    def test_connectivity(self, classifier):
        result = classifier.classify(ConnectivityError("refused", "icims"), _context())

        assert result.record.kind == ErrorKind.CONNECTIVITY
        assert result.health_action == HealthAction.DEACTIVATE
        assert result.swallow is False

    def test_http_401_is_authentication(self, classifier):
        fault = ProviderFault("nope", "icims", status_code=401)

        result = classifier.classify(fault, _context(provider=ProviderType.ICIMS))

        assert isinstance(result.error, AuthenticationError)
        assert result.notification == NotificationKind.INTEGRATION_DISABLED

    def test_auth_pattern_beats_authorization(self, classifier):
        fault = _soap_fault("The provided Username is not Authorized to access Web Services")

        result = classifier.classify(fault, _context())

        assert result.record.kind == ErrorKind.AUTHENTICATION

    def test_scoped_authorization_swallowed(self, classifier):
        result = classifier.classify(_soap_fault("The task submitted is not authorized."), _context())

        assert result.swallow is True
        assert result.health_action == HealthAction.UNAUTHORIZE
        assert result.error.scope == Scope.CANDIDATES
        assert result.record.scope == "candidates"

    def test_authorization_without_scope_is_unclassified(self, classifier):
        result = classifier.classify(
            _soap_fault("The task submitted is not authorized."),
            _context(operation=HEALTH_OP),
        )

        assert result.record.kind == ErrorKind.UNCLASSIFIED
        assert result.swallow is False
        assert result.notification == NotificationKind.REQUEST_FAILED

    def test_stale_resource(self, classifier):
        result = classifier.classify(
            _soap_fault("Invalid ID value. 'X123' is not a valid ID value"),
            _context(job_ids=("X123",)),
        )

        assert isinstance(result.error, StaleResourceError)
        assert result.swallow is True
        assert result.health_action == HealthAction.NONE
        assert result.notification is None
        assert result.record.job_ids == ("X123",)

    def test_soap_redirect_suppressed(self, classifier):
        result = classifier.classify(_soap_fault("Moved", status=302), _context())

        assert isinstance(result.error, SuppressedRedirect)
        assert result.swallow is True
        assert result.notification == NotificationKind.REDIRECT_SUPPRESSED

    def test_rest_redirect_not_suppressed(self, classifier):
        fault = ProviderFault("Moved", "greenhouse", status_code=301)

        result = classifier.classify(fault, _context(provider=ProviderType.GREENHOUSE))

        assert result.record.kind == ErrorKind.UNCLASSIFIED

    def test_read_timeout_is_unclassified(self, classifier):
        result = classifier.classify(TransportError("timeout", "icims"), _context())

        assert isinstance(result.error, UnclassifiedError)
        assert result.error.retryable is True
        assert result.health_action == HealthAction.NONE

    def test_typed_errors_kept(self, classifier):
        error = RateLimitExceeded("slow down", "icims", retry_after=90)

        result = classifier.classify(error, _context())

        assert result.error is error
        assert result.record.kind == ErrorKind.RATE_LIMIT_EXCEEDED

    def test_unexpected_exception_wrapped(self, classifier):
        result = classifier.classify(KeyError("x"), _context())

        assert isinstance(result.error, UnclassifiedError)


# =============================================================================
# Failure handler
# =============================================================================


@pytest.fixture
def recorder():
    return InMemoryHealthRecorder()


@pytest.fixture
def notifications():
    return InMemoryNotificationSink()


@pytest.fixture
def handler(recorder, notifications):
    return FailureHandler(HealthStateMachine(recorder), notifications)


class TestFailureHandler:
    """Tests for FailureHandler side effects."""

    @pytest.mark.asyncio
    async def test_auth_failure_deactivates_notifies_raises(self, handler, recorder, notifications):
        context = _context()
        fault = ProviderFault("Unauthorized", "workday", status_code=401, transport="soap")

        with pytest.raises(AuthenticationError) as exc_info:
            await handler.handle(fault, context)

        assert exc_info.value.__cause__ is fault
        assert exc_info.value.record.kind == ErrorKind.AUTHENTICATION
        assert context.integration.health_state == HealthState.unauthenticated()
        assert recorder.history == [("int-1", HealthState.unauthenticated())]
        assert len(notifications.of_kind(NotificationKind.INTEGRATION_DISABLED)) == 1

    @pytest.mark.asyncio
    async def test_second_auth_failure_is_silent(self, handler, recorder, notifications):
        context = _context()

        for _ in range(2):
            with pytest.raises(AuthenticationError):
                await handler.handle(AuthenticationError("bad key", "workday"), context)

        assert len(recorder.history) == 1
        assert len(notifications.sent) == 1

    @pytest.mark.asyncio
    async def test_scoped_authorization_returns_record(self, handler, notifications):
        context = _context()

        record = await handler.handle(_soap_fault("The task submitted is not authorized."), context)

        assert record.kind == ErrorKind.AUTHORIZATION
        assert context.integration.health_state == HealthState.unauthorized(Scope.CANDIDATES)
        sent = notifications.of_kind(NotificationKind.INTEGRATION_UNAUTHORIZED)
        assert sent[0]["scope"] == "candidates"

    @pytest.mark.asyncio
    async def test_stale_resource_logged_with_job_ids(self, handler, recorder, notifications, caplog):
        context = _context(job_ids=("X123",))

        with caplog.at_level(logging.INFO, logger="atsbridge.classifier"):
            record = await handler.handle(_soap_fault("Invalid ID value"), context)

        assert record.kind == ErrorKind.STALE_RESOURCE
        assert "X123" in caplog.text
        assert context.integration.health_state.is_active
        assert recorder.history == []
        assert notifications.sent == []

    @pytest.mark.asyncio
    async def test_credentials_missing_propagates_without_transition(self, handler, recorder, notifications):
        context = _context()

        with pytest.raises(CredentialsMissing):
            await handler.handle(CredentialsMissing("Missing credentials: password", "workday"), context)

        assert recorder.history == []
        assert notifications.sent[0][0] == NotificationKind.REQUEST_FAILED

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_mask_error(self, recorder):
        class BrokenSink:
            def notify(self, kind, context):
                raise RuntimeError("pager down")

        handler = FailureHandler(HealthStateMachine(recorder), BrokenSink())

        with pytest.raises(AuthenticationError):
            await handler.handle(AuthenticationError("bad key", "workday"), _context())

    @pytest.mark.asyncio
    async def test_recorder_failure_does_not_mask_error(self, notifications):
        class BrokenRecorder:
            async def set_health_state(self, integration_id, state):
                raise RuntimeError("db down")

        handler = FailureHandler(HealthStateMachine(BrokenRecorder()), notifications)
        context = _context()

        with pytest.raises(AuthenticationError):
            await handler.handle(AuthenticationError("bad key", "workday"), context)

        assert context.integration.health_state.is_active
        assert len(notifications.sent) == 1

    @pytest.mark.asyncio
    async def test_authorization_error_instance(self, handler):
        context = _context(operation=Operation("get_jobs", scope=Scope.JOBS))
        error = AuthorizationError("revoked", "icims", scope=Scope.JOBS)

        record = await handler.handle(error, context)

        assert record.scope == "jobs"
        assert context.integration.health_state == HealthState.unauthorized(Scope.JOBS)
