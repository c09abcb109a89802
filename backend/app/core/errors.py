"""Error taxonomy shared by the sync services.

Routers translate these into HTTP status codes; the reconciler folds the
per-record ones (ProviderUnavailable, PersistenceError) into its counts.
"""


class SyncError(Exception):
    """Base class for integration errors."""


class NotConnected(SyncError):
    """The user never connected a Google account, or disconnected it."""


class NotAuthenticated(SyncError):
    """No usable access token: expired and could not be refreshed, or rejected by Google."""


class ProviderUnavailable(SyncError):
    """Transient or unexpected failure talking to Google (network, 5xx, 4xx other than 401/404)."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class RemoteNotFound(SyncError):
    """Remote resource is already gone (404/410)."""


class PersistenceError(SyncError):
    """Local write failed after the remote side already changed."""

    def __init__(self, message: str, remote_id: str | None = None):
        super().__init__(message)
        self.remote_id = remote_id


class SyncInProgress(SyncError):
    """Another sync for the same user is still running in this process."""


class RecordNotFound(SyncError):
    """Local row is missing or owned by someone else."""
