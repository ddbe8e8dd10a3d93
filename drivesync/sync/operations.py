"""Sync operations wrapper around the remote store."""

import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import IO, Optional, Protocol, Union

from ..models import DriveListResult, UploadResult

logger = logging.getLogger(__name__)


class RemoteStore(Protocol):
    """Capability set the sync engine needs from a remote store."""

    def list_folder(
        self, folder_id: str, page_token: Optional[str] = None
    ) -> DriveListResult: ...

    def get_content(self, file_id: str) -> Iterator[bytes]: ...

    def create(self, name: str, parent_id: str, is_folder: bool = False) -> str: ...

    def create_with_content(
        self, name: str, parent_id: str, content: Union[bytes, IO[bytes]]
    ) -> UploadResult: ...

    def update(
        self, file_id: str, content: Union[bytes, IO[bytes]]
    ) -> UploadResult: ...

    def delete(self, file_id: str) -> None: ...


class SyncOperations:
    """Single-step file operations used by the engine and the watcher.

    Each method performs one remote (or local) mutation and is meant to be
    wrapped by the retry policy as a unit.
    """

    def __init__(self, store: RemoteStore):
        """Initialize sync operations.

        Args:
            store: Remote store client
        """
        self.store = store

    def create_folder(self, name: str, parent_id: str) -> str:
        """Create a remote folder and return its ID."""
        return self.store.create(name, parent_id, is_folder=True)

    def upload_new_file(
        self, local_path: Path, name: str, parent_id: str
    ) -> UploadResult:
        """Create a remote file from a local one in a single call.

        No remote file exists until its content is complete, so a failure
        never leaves an empty copy behind.

        Args:
            local_path: File to upload
            name: Name of the new remote file
            parent_id: ID of the remote folder that will contain it

        Returns:
            Remote state after the upload, including the new ID
        """
        with open(local_path, "rb") as f:
            return self.store.create_with_content(name, parent_id, f)

    def upload_content(self, local_path: Path, file_id: str) -> UploadResult:
        """Stream a local file into an existing remote file.

        Args:
            local_path: File to upload
            file_id: ID of the remote file to overwrite

        Returns:
            Remote state after the upload
        """
        with open(local_path, "rb") as f:
            return self.store.update(file_id, f)

    def download_file(self, file_id: str, local_path: Path) -> Path:
        """Download a remote file to ``local_path``.

        The content is written to a temporary sibling first and moved into
        place once complete, so an interrupted download never truncates an
        existing local file.

        Args:
            file_id: Remote file to download
            local_path: Destination path

        Returns:
            Path where the file was saved
        """
        # Ensure parent directory exists
        local_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = local_path.with_name(f".{local_path.name}.drivesync-part")

        try:
            with open(tmp_path, "wb") as f:
                for chunk in self.store.get_content(file_id):
                    f.write(chunk)
            os.replace(tmp_path, local_path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        return local_path

    def delete_remote(self, file_id: str) -> None:
        """Delete a remote file or folder."""
        self.store.delete(file_id)

    def delete_local(self, local_path: Path) -> None:
        """Delete a local file (a missing file counts as deleted)."""
        try:
            local_path.unlink()
        except FileNotFoundError:
            logger.debug(f"Local file already gone: {local_path}")
