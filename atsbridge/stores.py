"""
Credential storage contract.

The integration records and their secrets are owned elsewhere; adapters
only read credentials through this protocol when an integration does not
carry them inline.

Usage:
    store = InMemoryCredentialsStore()
    await store.put("int-1", {"username": "svc", "password": "..."})
    adapter = build_adapter(integration, collaborators=Collaborators(credentials_store=store))
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol


class CredentialsStore(Protocol):
    """Read-only access to an integration's credential fields."""

    async def credentials_for(self, integration_id: str) -> Mapping[str, Any]: ...


class InMemoryCredentialsStore:
    """Credentials kept in a dict; unknown integrations resolve to nothing."""

    def __init__(self, credentials: dict[str, Mapping[str, Any]] | None = None):
        self._credentials: dict[str, Mapping[str, Any]] = dict(credentials or {})
        self.reads = 0

    async def put(self, integration_id: str, credentials: Mapping[str, Any]) -> None:
        self._credentials[integration_id] = dict(credentials)

    async def credentials_for(self, integration_id: str) -> Mapping[str, Any]:
        self.reads += 1
        return self._credentials.get(integration_id, {})


__all__ = ["CredentialsStore", "InMemoryCredentialsStore"]
