"""drivesync - keep a local directory and a Google Drive folder in sync."""

from .api import DriveClient
from .config import Config, load_config
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    DriveSyncError,
    MetadataIOError,
    NotFoundError,
    RemoteStoreError,
    TaskFatalError,
    TransientNetworkError,
)

__version__ = "0.1.0"

__all__ = [
    "DriveClient",
    "Config",
    "load_config",
    "DriveSyncError",
    "ConfigurationError",
    "RemoteStoreError",
    "AuthenticationError",
    "NotFoundError",
    "TransientNetworkError",
    "TaskFatalError",
    "MetadataIOError",
]
