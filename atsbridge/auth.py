"""
Authentication material for ATS providers.

An ``Authenticator`` turns an integration's stored credentials into an
``AuthMaterial``. This is a pure transform: no network calls, and missing
secrets fail fast with ``CredentialsMissing``.
"""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from atsbridge.errors import CredentialsMissing
from atsbridge.models import Integration, ProviderType

# =============================================================================
# Auth Material
# =============================================================================


class AuthMaterial(ABC):
    """Credentials ready to be attached to a request."""

    @abstractmethod
    def headers(self) -> dict[str, str]:
        """HTTP headers carrying these credentials."""
        ...


@dataclass(frozen=True, slots=True)
class BasicAuth(AuthMaterial):
    username: str
    secret: str = ""

    def encoded(self) -> str:
        raw = f"{self.username}:{self.secret}".encode()
        return base64.b64encode(raw).decode("ascii")

    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Basic {self.encoded()}"}


@dataclass(frozen=True, slots=True)
class BearerToken(AuthMaterial):
    token: str

    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@dataclass(frozen=True, slots=True)
class OnBehalfOfAuth(AuthMaterial):
    """Basic auth plus the user the request is made on behalf of."""

    basic: BasicAuth
    on_behalf_of: str

    def headers(self) -> dict[str, str]:
        return {**self.basic.headers(), "On-Behalf-Of": self.on_behalf_of}


@dataclass(frozen=True, slots=True)
class WSSecurityToken(AuthMaterial):
    """UsernameToken credentials carried in the SOAP header, not in HTTP."""

    username: str
    password: str

    def headers(self) -> dict[str, str]:
        return {}


# =============================================================================
# Authenticators
# =============================================================================


class Authenticator(ABC):
    """Produces auth material for one provider."""

    provider: ProviderType

    @abstractmethod
    def credentials_for(
        self,
        integration: Integration,
        credentials: Mapping[str, Any] | None = None,
    ) -> AuthMaterial:
        """
        Build auth material for ``integration``.

        Args:
            integration: Integration being called
            credentials: Resolved credential fields; defaults to
                ``integration.credentials``

        Raises:
            CredentialsMissing: If a required field is absent or blank
        """
        ...

    def _require(self, credentials: Mapping[str, Any], *names: str) -> list[str]:
        missing = [name for name in names if not credentials.get(name)]
        if missing:
            raise CredentialsMissing(
                f"Missing credentials: {', '.join(missing)}",
                self.provider.value,
                fields=missing,
            )
        return [str(credentials[name]) for name in names]


class GreenhouseAuthenticator(Authenticator):
    """
    Greenhouse uses the API key as the basic-auth username with an empty
    password, and names the acting user in ``On-Behalf-Of``.
    """

    provider = ProviderType.GREENHOUSE

    API_KEY_FIELDS = {
        "harvest": "api_key",
        "job_board": "job_board_api_key",
    }

    def __init__(self, api: str = "harvest"):
        if api not in self.API_KEY_FIELDS:
            raise ValueError(f"Unknown Greenhouse API: {api}")
        self.api = api

    def credentials_for(self, integration, credentials=None) -> AuthMaterial:
        credentials = integration.credentials if credentials is None else credentials
        (api_key,) = self._require(credentials, self.API_KEY_FIELDS[self.api])
        user_id = credentials.get("greenhouse_user_id")
        basic = BasicAuth(username=api_key)
        if user_id in (None, ""):
            return basic
        return OnBehalfOfAuth(basic=basic, on_behalf_of=str(user_id))


class IcimsAuthenticator(Authenticator):
    """OAuth bearer token when present, otherwise username/password."""

    provider = ProviderType.ICIMS

    def credentials_for(self, integration, credentials=None) -> AuthMaterial:
        credentials = integration.credentials if credentials is None else credentials
        if credentials.get("access_token"):
            return BearerToken(token=str(credentials["access_token"]))
        username, password = self._require(credentials, "username", "password")
        return BasicAuth(username=username, secret=password)


class WorkdayAuthenticator(Authenticator):
    provider = ProviderType.WORKDAY

    def credentials_for(self, integration, credentials=None) -> AuthMaterial:
        credentials = integration.credentials if credentials is None else credentials
        username, password = self._require(credentials, "username", "password")
        return WSSecurityToken(username=username, password=password)


__all__ = [
    "AuthMaterial",
    "Authenticator",
    "BasicAuth",
    "BearerToken",
    "GreenhouseAuthenticator",
    "IcimsAuthenticator",
    "OnBehalfOfAuth",
    "WSSecurityToken",
    "WorkdayAuthenticator",
]
