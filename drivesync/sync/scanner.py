"""Local and remote tree scanning for sync operations."""

import logging
import os
import re
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Union

from ..models import DriveItem
from ..utils import DEFAULT_MAX_WORKERS, calculate_md5, parse_iso_timestamp
from .retry import RetryPolicy

if TYPE_CHECKING:
    from .operations import RemoteStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]
IgnorePatterns = Iterable[Union[str, "re.Pattern[str]"]]


@dataclass
class LocalEntry:
    """A file or directory found under the local root."""

    relative_path: str
    """Relative path (using forward slashes for cross-platform compatibility)"""

    mtime: float
    """Last modification time (Unix timestamp)"""

    md5: Optional[str] = None
    """Content hash, computed once per scan for files only"""

    is_directory: bool = False

    @classmethod
    def from_path(cls, path: Path, relative_path: str) -> "LocalEntry":
        """Create a LocalEntry by stat-ing (and for files hashing) a path."""
        stat = path.stat()
        is_directory = path.is_dir()
        return cls(
            relative_path=relative_path,
            mtime=stat.st_mtime,
            md5=None if is_directory else calculate_md5(path),
            is_directory=is_directory,
        )


@dataclass
class RemoteEntry:
    """A file or folder found under the remote root."""

    id: str
    """Remote ID, the only handle accepted by mutating operations"""

    relative_path: str
    name: str
    mtime: Optional[float] = None
    md5: Optional[str] = None
    is_directory: bool = False

    @classmethod
    def from_item(cls, item: DriveItem, relative_path: str) -> "RemoteEntry":
        return cls(
            id=item.id,
            relative_path=relative_path,
            name=item.name,
            mtime=parse_iso_timestamp(item.modified_time),
            md5=item.md5_checksum,
            is_directory=item.is_folder,
        )


def compile_ignore_patterns(patterns: IgnorePatterns) -> list["re.Pattern[str]"]:
    """Compile ignore patterns, passing through already compiled ones."""
    return [p if isinstance(p, re.Pattern) else re.compile(p) for p in patterns]


def is_ignored(relative_path: str, patterns: Iterable["re.Pattern[str]"]) -> bool:
    """Check whether any pattern matches anywhere in the relative path."""
    return any(pattern.search(relative_path) for pattern in patterns)


def _join(prefix: str, name: str) -> str:
    return f"{prefix}/{name}" if prefix else name


class LocalScanner:
    """Recursively scans the local root.

    Examples:
        >>> scanner = LocalScanner(ignore_patterns=[r"\\.tmp$", r"^cache/"])
        >>> entries = scanner.scan(Path("/home/user/Drive"))
        >>> entries["docs/report.pdf"].md5
        '5d41402abc4b2a76b9719d911017c592'
    """

    def __init__(
        self,
        ignore_patterns: IgnorePatterns = (),
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Initialize local scanner.

        Args:
            ignore_patterns: Regular expressions matched against relative paths
            progress_callback: Called with each directory as it is visited
        """
        self.ignore_patterns = compile_ignore_patterns(ignore_patterns)
        self.progress_callback = progress_callback

    def scan(self, root: Path) -> dict[str, LocalEntry]:
        """Scan ``root`` and return a mapping of relative path to entry.

        Ignored directories are not descended into.
        """
        entries: dict[str, LocalEntry] = {}
        self._scan_directory(root, "", entries)
        return entries

    def _scan_directory(
        self, directory: Path, prefix: str, entries: dict[str, LocalEntry]
    ) -> None:
        if self.progress_callback:
            self.progress_callback(prefix or "/")

        try:
            children = sorted(os.scandir(directory), key=lambda e: e.name)
        except PermissionError as e:
            logger.warning(f"Skipping unreadable directory {directory}: {e}")
            return

        for child in children:
            relative_path = _join(prefix, child.name)
            if is_ignored(relative_path, self.ignore_patterns):
                logger.debug(f"Ignoring local file/folder: {relative_path}")
                continue

            try:
                if child.is_dir(follow_symlinks=False):
                    entries[relative_path] = LocalEntry(
                        relative_path=relative_path,
                        mtime=child.stat(follow_symlinks=False).st_mtime,
                        is_directory=True,
                    )
                    self._scan_directory(Path(child.path), relative_path, entries)
                elif child.is_file(follow_symlinks=False):
                    entries[relative_path] = LocalEntry.from_path(
                        Path(child.path), relative_path
                    )
            except FileNotFoundError:
                # Removed between listing and stat
                logger.debug(f"Vanished during scan: {relative_path}")
            except PermissionError as e:
                logger.warning(f"Skipping unreadable file {relative_path}: {e}")


class RemoteScanner:
    """Recursively scans a remote folder through paginated listings.

    Each discovered subfolder is listed as its own job in a bounded thread
    pool, so sibling folders are scanned in parallel while the number of
    in-flight requests never exceeds ``max_workers``.
    """

    def __init__(
        self,
        store: "RemoteStore",
        ignore_patterns: IgnorePatterns = (),
        retry_policy: Optional[RetryPolicy] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Initialize remote scanner.

        Args:
            store: Remote store used for listing
            ignore_patterns: Regular expressions matched against relative paths
            retry_policy: Policy wrapping every listing request
            max_workers: Maximum number of folders listed concurrently
            progress_callback: Called with each folder as it is visited
        """
        self.store = store
        self.ignore_patterns = compile_ignore_patterns(ignore_patterns)
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_workers = max_workers
        self.progress_callback = progress_callback

    def scan(self, root_id: str) -> dict[str, RemoteEntry]:
        """Scan the folder ``root_id`` and everything below it.

        Raises:
            TaskFatalError: If a folder listing keeps failing
        """
        entries: dict[str, RemoteEntry] = {}

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="remote-scan"
        ) as executor:
            pending: set[Future] = {
                executor.submit(self._list_folder, root_id, "")
            }
            try:
                while pending:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        for entry in future.result():
                            entries[entry.relative_path] = entry
                            if entry.is_directory:
                                pending.add(
                                    executor.submit(
                                        self._list_folder,
                                        entry.id,
                                        entry.relative_path,
                                    )
                                )
            except BaseException:
                for future in pending:
                    future.cancel()
                raise

        return entries

    def _list_folder(self, folder_id: str, prefix: str) -> list[RemoteEntry]:
        """List every page of one folder, dropping ignored children."""
        if self.progress_callback:
            self.progress_callback(prefix or "/")

        children: list[RemoteEntry] = []
        page_token: Optional[str] = None

        while True:
            token = page_token
            result = self.retry_policy.run(
                lambda: self.store.list_folder(folder_id, token),
                f"List files in folder {folder_id} : /{prefix}",
            )
            for item in result.items:
                relative_path = _join(prefix, item.name)
                if is_ignored(relative_path, self.ignore_patterns):
                    logger.debug(f"Ignoring remote file/folder: {relative_path}")
                    continue
                children.append(RemoteEntry.from_item(item, relative_path))

            page_token = result.next_page_token
            if not page_token:
                break

        return children
