"""Holder for the caller-supplied API key.

The key is discarded as soon as the API rejects it so the dashboard is forced
to ask the user for a new one instead of retrying with a bad credential.
"""
from __future__ import annotations

import logging

from pathtrack.core.errors import AuthError

logger = logging.getLogger(__name__)


class CredentialStore:
    def __init__(self, api_key: str | None = None) -> None:
        self._api_key = api_key.strip() if api_key and api_key.strip() else None

    @property
    def api_key(self) -> str | None:
        return self._api_key

    @property
    def is_configured(self) -> bool:
        return self._api_key is not None

    def set(self, api_key: str) -> None:
        if not api_key or not api_key.strip():
            raise ValueError("api key must not be empty")
        self._api_key = api_key.strip()

    def discard(self) -> None:
        if self._api_key is not None:
            logger.warning("Discarding rejected API key; re-entry required")
        self._api_key = None

    def require(self) -> str:
        if self._api_key is None:
            raise AuthError("no API key configured")
        return self._api_key


_store = CredentialStore()


def configure_api_key(api_key: str | None) -> None:
    """Install the API key used for every outgoing request."""

    if api_key:
        _store.set(api_key)
    else:
        _store.discard()


def get_credential_store() -> CredentialStore:
    """Return the process-wide credential store."""

    return _store
