"""
Street Legacy - Credential Providers

Bearer-token getters consumed by the connection manager and the action
submitter. A provider returns None when no session is available; callers
must not retry on None.
"""

from __future__ import annotations

import json
import logging
from typing import Callable

from supabase import Client

from src.database.storage import KeyValueStore

logger = logging.getLogger(__name__)

CredentialProvider = Callable[[], str | None]

AUTH_STORAGE_KEY = "auth-storage"


class StaticCredentials:
    """Always returns the same token (or None)."""

    def __init__(self, token: str | None) -> None:
        self.token = token

    def __call__(self) -> str | None:
        return self.token or None


class StoredCredentials:
    """Reads the token persisted by the auth layer.

    The auth layer stores ``{"state": {"token": "..."}}`` under
    ``auth-storage``.
    """

    def __init__(self, store: KeyValueStore, key: str = AUTH_STORAGE_KEY) -> None:
        self._store = store
        self._key = key

    def __call__(self) -> str | None:
        raw = self._store.get(self._key)
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.error("Failed to parse stored auth data under %s", self._key)
            return None
        if not isinstance(parsed, dict):
            return None
        state = parsed.get("state")
        if not isinstance(state, dict):
            return None
        token = state.get("token")
        return token if isinstance(token, str) and token else None


class SupabaseCredentials:
    """Returns the access token of the current Supabase auth session."""

    def __init__(self, client: Client) -> None:
        self._client = client

    def __call__(self) -> str | None:
        try:
            session = self._client.auth.get_session()
        except Exception:
            logger.exception("Failed to read Supabase session")
            return None
        if session is None:
            return None
        return session.access_token or None
