"""Reconciliation engine for drivesync."""

from .comparator import FileComparator, SyncAction, SyncTask, decide
from .engine import SyncEngine
from .operations import RemoteStore, SyncOperations
from .retry import RetryPolicy, is_network_error
from .scanner import LocalEntry, LocalScanner, RemoteEntry, RemoteScanner
from .state import RemoteTreeCache, SyncRecord, SyncStateStore
from .watcher import LocalChangeWatcher

__all__ = [
    "SyncEngine",
    "SyncAction",
    "SyncTask",
    "FileComparator",
    "decide",
    "SyncOperations",
    "RemoteStore",
    "RetryPolicy",
    "is_network_error",
    "LocalEntry",
    "LocalScanner",
    "RemoteEntry",
    "RemoteScanner",
    "SyncRecord",
    "SyncStateStore",
    "RemoteTreeCache",
    "LocalChangeWatcher",
]
