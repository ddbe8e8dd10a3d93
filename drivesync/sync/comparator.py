"""Sync decision logic: which action a path needs."""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..utils import MTIME_TOLERANCE_SECONDS
from .scanner import LocalEntry, RemoteEntry
from .state import SyncRecord


class SyncAction(str, Enum):
    """Actions that can be taken for a single path."""

    UPLOAD_NEW = "upload_new"
    """Local file has no remote counterpart"""

    UPLOAD_UPDATE = "upload_update"
    """Remote unchanged since last sync, local carries the new content"""

    UPLOAD_CONFLICT = "upload_conflict"
    """Both sides changed; local wins the tie-break"""

    DOWNLOAD_NEW = "download_new"
    """Remote file has no local counterpart"""

    DOWNLOAD_UPDATE = "download_update"
    """Remote changed since last sync and is clearly newer"""

    DELETE_LOCAL = "delete_local"
    """Remote copy was deleted after a previous sync"""

    DELETE_REMOTE = "delete_remote"
    """Local copy was deleted after a previous sync"""

    SKIP_IDENTICAL = "skip_identical"
    """Both sides hold the same content"""

    SKIP_NO_CHANGE = "skip_no_change"
    """Nothing exists on either side"""

    @property
    def is_upload(self) -> bool:
        return self in (
            SyncAction.UPLOAD_NEW,
            SyncAction.UPLOAD_UPDATE,
            SyncAction.UPLOAD_CONFLICT,
        )

    @property
    def is_download(self) -> bool:
        return self in (SyncAction.DOWNLOAD_NEW, SyncAction.DOWNLOAD_UPDATE)

    @property
    def is_skip(self) -> bool:
        return self in (SyncAction.SKIP_IDENTICAL, SyncAction.SKIP_NO_CHANGE)


@dataclass(frozen=True)
class SyncTask:
    """The unit of execution: one action for one path."""

    action: SyncAction
    relative_path: str


def decide(
    path: str,
    local: Optional[LocalEntry],
    remote: Optional[RemoteEntry],
    last_synced: Optional[SyncRecord],
    propagate_deletions: bool = False,
) -> SyncAction:
    """Determine the sync action for a single path.

    Hash equality is checked before the last-synced comparison, so two files
    that already match are never flagged as conflicts.

    Args:
        path: Relative path being decided (kept for symmetry with callers)
        local: Local entry, if the path exists locally
        remote: Remote entry, if the path exists remotely
        last_synced: Record from the last successful sync of this path
        propagate_deletions: Treat a one-sided path that was synced before
            as a deletion instead of a new file

    Returns:
        The SyncAction for this path
    """
    if local is not None and remote is None:
        if propagate_deletions and last_synced is not None:
            return SyncAction.DELETE_LOCAL
        return SyncAction.UPLOAD_NEW

    if local is None and remote is not None:
        if propagate_deletions and last_synced is not None:
            return SyncAction.DELETE_REMOTE
        return SyncAction.DOWNLOAD_NEW

    if local is not None and remote is not None:
        if local.md5 and remote.md5 and local.md5 == remote.md5:
            return SyncAction.SKIP_IDENTICAL

        last_remote_hash = last_synced.last_known_remote_hash if last_synced else None
        if last_remote_hash == remote.md5:
            # Remote unchanged since the last sync
            return SyncAction.UPLOAD_UPDATE

        # Remote changed since the last sync
        remote_mtime = remote.mtime if remote.mtime is not None else float("-inf")
        if remote_mtime > local.mtime + MTIME_TOLERANCE_SECONDS:
            return SyncAction.DOWNLOAD_UPDATE
        return SyncAction.UPLOAD_CONFLICT

    return SyncAction.SKIP_NO_CHANGE


class FileComparator:
    """Compares local and remote trees to produce the task list."""

    def __init__(self, propagate_deletions: bool = False):
        """Initialize file comparator.

        Args:
            propagate_deletions: Forwarded to :func:`decide`
        """
        self.propagate_deletions = propagate_deletions

    def compute_tasks(
        self,
        local_entries: Mapping[str, LocalEntry],
        remote_entries: Mapping[str, RemoteEntry],
        records: Mapping[str, SyncRecord],
    ) -> list[SyncTask]:
        """Decide every path seen on either side and keep the actionable ones.

        Paths that are a directory on either side never produce a task.

        Args:
            local_entries: Local scan result
            remote_entries: Remote cache contents
            records: SyncRecords by relative path

        Returns:
            Tasks sorted by relative path
        """
        tasks: list[SyncTask] = []
        all_paths = set(local_entries) | set(remote_entries)

        for path in sorted(all_paths):
            local = local_entries.get(path)
            remote = remote_entries.get(path)
            if (local and local.is_directory) or (remote and remote.is_directory):
                continue

            action = decide(
                path, local, remote, records.get(path), self.propagate_deletions
            )
            if not action.is_skip:
                tasks.append(SyncTask(action=action, relative_path=path))

        return tasks
