"""Exceptions raised by drivesync."""


class DriveSyncError(Exception):
    """Base exception for all drivesync errors."""

    pass


class ConfigurationError(DriveSyncError):
    """Required settings or credentials are missing or invalid."""

    pass


class RemoteStoreError(DriveSyncError):
    """A request against the remote store failed."""

    pass


class AuthenticationError(RemoteStoreError):
    """The remote store rejected the credentials."""

    pass


class NotFoundError(RemoteStoreError):
    """The requested remote file or folder does not exist."""

    pass


class TransientNetworkError(RemoteStoreError):
    """A transport-level failure (reset, timeout, DNS) that is worth retrying."""

    pass


class TaskFatalError(DriveSyncError):
    """A single sync task failed for good.

    Raised when bounded retries are exhausted or when the remote parent
    folder of a path cannot be resolved.
    """

    pass


class MetadataIOError(DriveSyncError):
    """The sync metadata file could not be read or written."""

    pass
