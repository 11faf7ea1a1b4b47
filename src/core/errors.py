"""
Street Legacy - Sync Error Taxonomy

Failures the connection manager and the offline queue distinguish.
A server result that differs from the local prediction is not an error;
it is reported as a ReconciliationEvent.
"""


class SyncError(Exception):
    """Base class for client sync failures."""


class TransientNetworkError(SyncError):
    """The server could not be reached or answered with a retryable status."""


class AuthenticationError(SyncError):
    """The credential is missing or was refused. Never retried."""


class ServerRejection(SyncError):
    """The server refused the action on business-rule grounds."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(SyncError):
    """The local key-value store could not be read or written."""


class FrameDecodeError(SyncError):
    """An inbound socket frame could not be decoded."""
