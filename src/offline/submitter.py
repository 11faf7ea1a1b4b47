"""
Street Legacy - Action Submitter

Posts queued actions to their type-specific game endpoints and classifies
the response. Each request carries an ``offlineSubmission`` envelope so the
server can judge staleness and honor, adjust or reject the action.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from src.core.errors import AuthenticationError, ServerRejection, TransientNetworkError
from src.database.credentials import CredentialProvider
from src.offline.models import (
    CrimePayload,
    HeistPayload,
    PropertyPayload,
    QueuedAction,
    SubmissionResult,
)

logger = logging.getLogger(__name__)

# Statuses worth retrying besides 5xx
_RETRYABLE_STATUSES = frozenset({408, 425, 429})
_AUTH_STATUSES = frozenset({401, 403})


def build_request(action: QueuedAction) -> tuple[str, dict[str, Any]]:
    """Return the endpoint path and JSON body for an action."""
    envelope = {
        "offlineSubmission": {
            "timestamp": int(action.enqueued_at * 1000),
            "localResult": action.local_result,
        }
    }
    payload = action.payload

    if isinstance(payload, CrimePayload):
        return "/api/game/crime", {
            "crimeId": payload.crime_id,
            "miniGameResult": payload.mini_game_result,
            **envelope,
        }
    if isinstance(payload, HeistPayload):
        return "/api/ops/heist/execute", {"heistId": payload.heist_id, **envelope}
    if isinstance(payload, PropertyPayload):
        return f"/api/properties/{payload.operation}/{payload.property_id}", envelope

    raise ValueError(f"Unknown action type: {action.type}")


def _error_message(body: Any, status_code: int) -> str:
    if isinstance(body, dict):
        message = body.get("error") or body.get("message")
        if isinstance(message, dict):
            message = message.get("message")
        if message:
            return str(message)
    return f"Request failed: {status_code}"


class ActionSubmitter:
    """Submits queued actions over HTTP with a bearer credential.

    Raises:
        AuthenticationError: No token, or the server refused it.
        TransientNetworkError: Unreachable server or retryable status.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialProvider,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._credentials = credentials
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def submit(self, action: QueuedAction) -> SubmissionResult:
        """Post one action and classify the server's answer."""
        token = self._credentials()
        if not token:
            raise AuthenticationError("Not authenticated")

        path, body = build_request(action)
        try:
            response = await self._client.post(
                path,
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"{type(exc).__name__}: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        status = response.status_code
        if status in _AUTH_STATUSES:
            raise AuthenticationError(_error_message(data, status))

        if isinstance(data, dict) and data.get("offlineRejected"):
            return SubmissionResult(rejected=True, error=_error_message(data, status))

        if not response.is_success:
            if status >= 500 or status in _RETRYABLE_STATUSES:
                raise TransientNetworkError(_error_message(data, status))
            rejection = ServerRejection(_error_message(data, status), status_code=status)
            logger.info("Action %s refused by server (%d): %s", action.id, status, rejection)
            return SubmissionResult(rejected=True, error=str(rejection))

        result = data.get("data") if isinstance(data, dict) and data.get("data") else data
        if not isinstance(result, dict):
            result = {"value": result}

        if result.get("offlineRejected"):
            return SubmissionResult(rejected=True, error=_error_message(result, status))

        reconciliation = result.get("offlineReconciliation")
        if not isinstance(reconciliation, dict):
            reconciliation = None

        return SubmissionResult(
            server_result=result,
            differed=bool(reconciliation and reconciliation.get("serverDiffered")),
            reconciliation=reconciliation,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
