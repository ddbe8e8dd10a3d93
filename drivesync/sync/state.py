"""Shared sync state: the persisted SyncRecord map and the remote-tree cache.

Both stores are touched by full reconciliation cycles and by the live
watcher from different threads. Every operation takes the store's lock,
so readers always see a complete value and writers never interleave.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..exceptions import MetadataIOError
from .scanner import RemoteEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncRecord:
    """What was known about a path after its last successful sync."""

    last_known_remote_hash: Optional[str] = None
    """Remote content hash observed when the path was last synced"""

    def to_dict(self) -> dict:
        return {"last_known_remote_hash": self.last_known_remote_hash}

    @classmethod
    def from_dict(cls, data: dict) -> "SyncRecord":
        return cls(last_known_remote_hash=data.get("last_known_remote_hash"))


class SyncStateStore:
    """Thread-safe map of relative path to :class:`SyncRecord`.

    The map is persisted as a JSON list of ``[relative_path, record]``
    pairs inside the synced root.

    Changes made since the last successful :meth:`save` are tracked per
    path and survive a :meth:`load`, so a reload never reverts what the
    watcher recorded between two cycles.
    """

    def __init__(self, metadata_path: Path):
        """Initialize the store.

        Args:
            metadata_path: File the records are loaded from and saved to
        """
        self.metadata_path = metadata_path
        self._records: dict[str, SyncRecord] = {}
        # Unsaved changes: path -> new record, or None for a removal
        self._unsaved: dict[str, Optional[SyncRecord]] = {}
        self._lock = threading.Lock()

    def get(self, relative_path: str) -> Optional[SyncRecord]:
        with self._lock:
            return self._records.get(relative_path)

    def set(self, relative_path: str, remote_hash: Optional[str]) -> None:
        """Record a successful sync of ``relative_path``."""
        record = SyncRecord(remote_hash)
        with self._lock:
            self._records[relative_path] = record
            self._unsaved[relative_path] = record

    def delete(self, relative_path: str) -> None:
        with self._lock:
            self._records.pop(relative_path, None)
            self._unsaved[relative_path] = None

    def delete_tree(self, relative_path: str) -> int:
        """Remove the record of a path and of everything below it.

        Returns:
            Number of removed records
        """
        prefix = relative_path + "/"
        with self._lock:
            doomed = [
                p for p in self._records if p == relative_path or p.startswith(prefix)
            ]
            for path in doomed:
                del self._records[path]
                self._unsaved[path] = None
        return len(doomed)

    def snapshot(self) -> dict[str, SyncRecord]:
        """Return a point-in-time copy of all records."""
        with self._lock:
            return dict(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, relative_path: object) -> bool:
        with self._lock:
            return relative_path in self._records

    def load(self) -> int:
        """Replace the in-memory records with the persisted ones.

        A missing file starts an empty map. Any other read problem is
        logged and also results in an empty map. Unsaved changes are
        applied on top of what was read.

        Returns:
            Number of loaded records
        """
        try:
            records = read_metadata_file(self.metadata_path)
        except FileNotFoundError:
            logger.warning("No sync metadata file found. Starting fresh.")
            records = {}
        except MetadataIOError as e:
            logger.error(f"Error loading sync metadata: {e}")
            records = {}

        with self._lock:
            for path, record in self._unsaved.items():
                if record is None:
                    records.pop(path, None)
                else:
                    records[path] = record
            self._records = records
        logger.info(f"Loaded sync metadata ({len(records)} record(s)).")
        return len(records)

    def save(self) -> bool:
        """Persist all records, overwriting the previous file.

        Returns:
            True on success, False if writing failed (the error is logged)
        """
        with self._lock:
            items = sorted(self._records.items())
            written = dict(self._unsaved)
        payload = [[path, record.to_dict()] for path, record in items]
        tmp_path = self.metadata_path.with_name(self.metadata_path.name + ".tmp")

        try:
            self.metadata_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_path, self.metadata_path)
        except OSError as e:
            logger.error(f"Error saving sync metadata: {e}")
            return False

        with self._lock:
            # Keep changes that arrived while the file was being written
            for path, record in written.items():
                if path in self._unsaved and self._unsaved[path] is record:
                    del self._unsaved[path]
        logger.info(f"Sync metadata saved ({len(payload)} record(s)).")
        return True


def read_metadata_file(metadata_path: Path) -> dict[str, SyncRecord]:
    """Parse a persisted metadata file.

    Raises:
        FileNotFoundError: If the file does not exist
        MetadataIOError: If it cannot be read or has an unexpected layout
    """
    try:
        with open(metadata_path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MetadataIOError(f"{metadata_path}: {e}") from e

    if not isinstance(data, list):
        raise MetadataIOError(f"{metadata_path}: expected a list of entries")

    records: dict[str, SyncRecord] = {}
    for item in data:
        if (
            not isinstance(item, list)
            or len(item) != 2
            or not isinstance(item[0], str)
            or not isinstance(item[1], dict)
        ):
            raise MetadataIOError(f"{metadata_path}: malformed entry {item!r}")
        records[item[0]] = SyncRecord.from_dict(item[1])
    return records


class RemoteTreeCache:
    """Thread-safe map of relative path to the latest known :class:`RemoteEntry`."""

    def __init__(self, entries: Optional[Mapping[str, RemoteEntry]] = None):
        self._entries: dict[str, RemoteEntry] = dict(entries or {})
        self._lock = threading.Lock()

    def get(self, relative_path: str) -> Optional[RemoteEntry]:
        with self._lock:
            return self._entries.get(relative_path)

    def set(self, entry: RemoteEntry) -> None:
        with self._lock:
            self._entries[entry.relative_path] = entry

    def delete(self, relative_path: str) -> None:
        with self._lock:
            self._entries.pop(relative_path, None)

    def delete_tree(self, relative_path: str) -> int:
        """Remove an entry and every cached entry below it."""
        prefix = relative_path + "/"
        with self._lock:
            doomed = [
                p for p in self._entries if p == relative_path or p.startswith(prefix)
            ]
            for path in doomed:
                del self._entries[path]
        return len(doomed)

    def replace_all(self, entries: Mapping[str, RemoteEntry]) -> None:
        """Atomically swap in the result of a fresh remote scan."""
        new_entries = dict(entries)
        with self._lock:
            self._entries = new_entries

    def snapshot(self) -> dict[str, RemoteEntry]:
        with self._lock:
            return dict(self._entries)

    def folder_paths(self) -> set[str]:
        """Relative paths of all cached folders."""
        with self._lock:
            return {p for p, e in self._entries.items() if e.is_directory}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())
