"""Domain exceptions shared by services, routers and the socket layer."""


class IssueHubError(Exception):
    """Base class for all domain errors."""

    pass


class AuthError(IssueHubError):
    """Handshake rejected: missing, malformed, expired or badly signed token."""

    pass


class NotAuthenticated(IssueHubError):
    """Room operation attempted on a connection without a resolved user."""

    pass


class TooManyConnections(IssueHubError):
    """User already holds the maximum number of live sockets."""

    pass


class Forbidden(IssueHubError):
    """Caller may not act on the target resource."""

    pass


class NotFoundError(IssueHubError):
    """Target resource does not exist."""

    pass


class StorageError(IssueHubError):
    """Activity or notification store failed to persist a row."""

    pass


class ActivityStorageError(StorageError):
    pass


class NotificationStorageError(StorageError):
    pass


class DeliveryError(IssueHubError):
    """A single socket send failed during a broadcast."""

    def __init__(self, connection_id: str, cause: Exception) -> None:
        super().__init__(f"Delivery to {connection_id} failed: {cause}")
        self.connection_id = connection_id
        self.cause = cause


class ObjectStorageError(IssueHubError):
    """Blob store operation failed."""

    pass
