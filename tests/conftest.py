"""
Pytest configuration and fixtures for atsbridge tests.
"""

import sys
from pathlib import Path

import httpx
import pytest

# Add the repository root to path for imports
# This allows `from atsbridge.providers import ...` to work without installing
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from atsbridge.collaborators import Collaborators  # noqa: E402
from atsbridge.config import AtsSettings  # noqa: E402
from atsbridge.health import InMemoryHealthRecorder  # noqa: E402
from atsbridge.models import Integration, ProviderType  # noqa: E402
from atsbridge.observability import InMemoryMetricsSink, InMemoryNotificationSink  # noqa: E402


class ScriptedResponses:
    """
    httpx.MockTransport handler that replays scripted responses in order.

    Each entry is an httpx.Response, an exception to raise, or a callable
    taking the request. The last entry repeats once the script runs out.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        if callable(item) and not isinstance(item, httpx.Response):
            return item(request)
        return item

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def soap_envelope(body: str) -> bytes:
    """Wrap a body fragment in a SOAP 1.1 envelope."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<env:Envelope xmlns:env="http://schemas.xmlsoap.org/soap/envelope/">'
        f"<env:Body>{body}</env:Body>"
        "</env:Envelope>"
    ).encode()


def soap_fault(message: str, code: str = "SOAP-ENV:Client.validationError") -> bytes:
    return soap_envelope(
        f"<SOAP-ENV:Fault xmlns:SOAP-ENV=\"http://schemas.xmlsoap.org/soap/envelope/\">"
        f"<faultcode>{code}</faultcode><faultstring>{message}</faultstring>"
        f"</SOAP-ENV:Fault>"
    )


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def settings():
    """Settings with defaults, independent of the environment."""
    return AtsSettings()


@pytest.fixture
def recorder():
    return InMemoryHealthRecorder()


@pytest.fixture
def notifications():
    return InMemoryNotificationSink()


@pytest.fixture
def metrics():
    return InMemoryMetricsSink()


@pytest.fixture
def collaborators(recorder, notifications, metrics):
    return Collaborators(
        health_recorder=recorder,
        notifications=notifications,
        metrics=metrics,
    )


# =============================================================================
# Integrations
# =============================================================================


@pytest.fixture
def greenhouse_integration():
    return Integration(
        id="gh-1",
        provider_type=ProviderType.GREENHOUSE,
        credentials={"api_key": "gh-key", "greenhouse_user_id": "42", "board_token": "acme"},
    )


@pytest.fixture
def icims_integration():
    return Integration(
        id="icims-1",
        provider_type=ProviderType.ICIMS,
        credentials={"customer_id": "1234", "username": "svc", "password": "secret"},
    )


@pytest.fixture
def workday_integration():
    return Integration(
        id="wd-1",
        provider_type=ProviderType.WORKDAY,
        credentials={
            "username": "isu@acme",
            "password": "secret",
            "base_url": "wd5-impl-services1.workday",
            "external_organization_id": "acme",
        },
    )
