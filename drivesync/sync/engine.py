"""Core sync engine: full-tree reconciliation cycles and single-path actions."""

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Optional

from ..config import Config
from ..exceptions import TaskFatalError
from ..models import UploadResult
from ..output import NullStatus, StatusReporter
from ..utils import parent_of, parse_iso_timestamp, path_depth
from .comparator import FileComparator, SyncAction, SyncTask
from .operations import RemoteStore, SyncOperations
from .retry import RetryPolicy
from .scanner import (
    LocalEntry,
    LocalScanner,
    RemoteEntry,
    RemoteScanner,
    compile_ignore_patterns,
)
from .state import RemoteTreeCache, SyncStateStore

logger = logging.getLogger(__name__)

PARTIAL_DOWNLOAD_PATTERN = r"\.drivesync-part$"


class SyncEngine:
    """Core sync engine that reconciles a local root with a remote folder.

    The engine owns the two shared stores (remote-tree cache and sync
    records). The live watcher operates on the same stores through
    :meth:`upload_path` and :meth:`delete_remote_path`.
    """

    def __init__(
        self,
        store: RemoteStore,
        config: Config,
        state: Optional[SyncStateStore] = None,
        remote_cache: Optional[RemoteTreeCache] = None,
        status: Optional[StatusReporter] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """Initialize sync engine.

        Args:
            store: Remote store client
            config: Loaded configuration
            state: SyncRecord store (defaults to the configured metadata file)
            remote_cache: Shared remote-tree cache
            status: Reporter for status and user-visible events
            retry_policy: Retry policy for every remote operation
        """
        self.store = store
        self.config = config
        self.local_root: Path = config.local_path
        self.remote_root_id = config.remote_root_id
        self.state = state or SyncStateStore(config.metadata_path)
        self.remote_cache = remote_cache or RemoteTreeCache()
        self.status: StatusReporter = status or NullStatus()
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=config.max_retries,
            retry_delay=config.retry_delay_ms / 1000,
            network_retry_delay=config.network_retry_delay_ms / 1000,
        )
        self.operations = SyncOperations(store)
        self.comparator = FileComparator(config.propagate_deletions)
        self.ignore_patterns = compile_ignore_patterns(
            [
                rf"^{re.escape(config.metadata_file_name)}(\.tmp)?$",
                PARTIAL_DOWNLOAD_PATTERN,
                *config.ignore,
            ]
        )

    # =========================
    # Full reconciliation cycle
    # =========================

    def run_cycle(self) -> dict:
        """Run one full reconciliation cycle.

        Steps: load metadata, scan both trees, create missing remote
        folders, compute tasks, execute them, persist metadata.

        Returns:
            Dictionary with cycle statistics

        Raises:
            TaskFatalError: If the remote tree cannot be scanned
        """
        start_time = time.time()
        logger.info("Starting sync cycle...")
        self.status.update_status("Starting sync cycle...")
        self.local_root.mkdir(parents=True, exist_ok=True)

        # Step 1: Load metadata (records changed since the last save are kept)
        self.state.load()

        # Step 2: Scan both trees
        local_entries = self._scan()

        stats = self._create_empty_stats()

        # Step 3: Create missing remote folders
        stats["folders_created"] = self._create_missing_folders(local_entries)

        # Step 4: Compute tasks
        tasks = self.comparator.compute_tasks(
            local_entries, self.remote_cache.snapshot(), self.state.snapshot()
        )
        all_paths = set(local_entries) | set(self.remote_cache)
        stats["skips"] = len(all_paths) - len(tasks)

        # Step 5: Execute tasks
        if not tasks:
            logger.info("All files are up to date.")
        else:
            self._execute_tasks(tasks, stats)

        # Step 6: Persist metadata
        self.state.save()

        elapsed = time.time() - start_time
        logger.info(f"Sync cycle finished in {elapsed:.2f}s: {stats}")
        self.status.start_idle_countdown(self.config.periodic_interval)
        return stats

    def _create_empty_stats(self) -> dict:
        return {
            "uploads": 0,
            "downloads": 0,
            "deletes_local": 0,
            "deletes_remote": 0,
            "folders_created": 0,
            "skips": 0,
            "failed": 0,
        }

    def _scan(self) -> dict[str, LocalEntry]:
        """Scan local and remote trees concurrently.

        The remote result replaces the shared cache in one step.

        Returns:
            Local scan result
        """
        local_scanner = LocalScanner(
            ignore_patterns=self.ignore_patterns,
            progress_callback=lambda p: self.status.update_status(
                f"Scanning local: /{p.lstrip('/')}"
            ),
        )
        remote_scanner = RemoteScanner(
            self.store,
            ignore_patterns=self.ignore_patterns,
            retry_policy=self.retry_policy,
            max_workers=self.config.max_workers,
            progress_callback=lambda p: self.status.update_status(
                f"Scanning remote: /{p.lstrip('/')}"
            ),
        )

        scan_start = time.time()
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="scan") as executor:
            local_future = executor.submit(local_scanner.scan, self.local_root)
            remote_future = executor.submit(remote_scanner.scan, self.remote_root_id)
            local_entries = local_future.result()
            remote_entries = remote_future.result()

        self.remote_cache.replace_all(remote_entries)
        logger.debug(
            f"Scan took {time.time() - scan_start:.2f}s: "
            f"{len(local_entries)} local, {len(remote_entries)} remote entries"
        )
        return local_entries

    def _create_missing_folders(self, local_entries: dict[str, LocalEntry]) -> int:
        """Create local directories that are missing remotely, parents first.

        Returns:
            Number of folders created
        """
        remote_folders = self.remote_cache.folder_paths()
        to_create = sorted(
            (
                path
                for path, entry in local_entries.items()
                if entry.is_directory and path not in remote_folders
            ),
            key=lambda p: (path_depth(p), p),
        )
        if not to_create:
            return 0

        logger.info(f"Creating {len(to_create)} missing remote folders...")
        self.status.update_status(f"Creating {len(to_create)} remote folders...")
        created = 0

        for path in to_create:
            try:
                parent_id = self.resolve_parent_id(path)
            except TaskFatalError as e:
                logger.error(f"Skipping remote folder {path}: {e}")
                continue

            name = path.rsplit("/", 1)[-1]
            try:
                folder_id = self.retry_policy.run(
                    lambda: self.operations.create_folder(name, parent_id),
                    f"Create remote folder {path}",
                )
            except TaskFatalError as e:
                logger.error(f"Failed to create remote folder {path}. Error: {e}")
                continue

            self.remote_cache.set(
                RemoteEntry(
                    id=folder_id,
                    relative_path=path,
                    name=name,
                    mtime=time.time(),
                    is_directory=True,
                )
            )
            created += 1

        logger.info("Remote folder creation complete.")
        return created

    def _execute_tasks(self, tasks: list[SyncTask], stats: dict) -> None:
        """Execute tasks concurrently and wait for all of them to settle.

        A failing task never cancels its siblings; it is counted in
        ``stats["failed"]``.
        """
        logger.info(f"Executing {len(tasks)} sync tasks...")
        total = len(tasks)
        completed = 0

        with ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="sync-task"
        ) as executor:
            futures = {executor.submit(self._run_task, task): task for task in tasks}

            for future in as_completed(futures):
                task = futures[future]
                completed += 1
                try:
                    future.result()
                except Exception as e:
                    stats["failed"] += 1
                    logger.error(f"[FAILED] {task.relative_path}: {e}")
                    self.status.log_event(
                        "ERROR", f"Failed {task.action.value}: {task.relative_path}"
                    )
                    continue

                stats[_stat_key(task.action)] += 1
                self.status.update_status(
                    f"[{completed}/{total}] {task.action.value}: {task.relative_path}"
                )

    def _run_task(self, task: SyncTask) -> None:
        """Execute one task and update its SyncRecord on success."""
        path = task.relative_path
        local_path = self.local_root / path
        remote = self.remote_cache.get(path)
        logger.debug(f"{task.action.value}: {path}")

        if task.action.is_download:
            if remote is None:
                raise TaskFatalError(f"No remote entry cached for {path}")
            self.retry_policy.run(
                lambda: self.operations.download_file(remote.id, local_path),
                f"Download {path}",
            )
            self.state.set(path, remote.md5)
            self.status.log_event("SUCCESS", f"Downloaded: {path}")

        elif task.action.is_upload:
            self.upload_path(path)
            self.status.log_event("SUCCESS", f"Uploaded: {path}")

        elif task.action == SyncAction.DELETE_LOCAL:
            self.retry_policy.run(
                lambda: self.operations.delete_local(local_path),
                f"Delete local {path}",
            )
            self.state.delete(path)
            self.status.log_event("SUCCESS", f"Deleted locally: {path}")

        elif task.action == SyncAction.DELETE_REMOTE:
            self.delete_remote_path(path)
            self.status.log_event("SUCCESS", f"Deleted remotely: {path}")

    # =========================
    # Single-path actions
    # =========================

    def resolve_parent_id(self, relative_path: str) -> str:
        """Resolve the remote folder ID that should contain ``relative_path``.

        Raises:
            TaskFatalError: If the parent folder is not known remotely
        """
        parent_path = parent_of(relative_path)
        if not parent_path:
            return self.remote_root_id

        parent = self.remote_cache.get(parent_path)
        if parent is None or not parent.is_directory:
            raise TaskFatalError(
                f"Could not find remote parent folder for {relative_path}"
            )
        return parent.id

    def upload_path(self, relative_path: str) -> UploadResult:
        """Upload a local file, updating the remote copy if one is cached.

        New files are created together with their content, so a failed
        upload never leaves an empty remote copy that a later cycle could
        mistake for a remote edit.

        Returns:
            Remote state after the upload

        Raises:
            TaskFatalError: If the parent is unknown or retries are exhausted
        """
        local_path = self.local_root / relative_path
        name = relative_path.rsplit("/", 1)[-1]
        parent_id = self.resolve_parent_id(relative_path)

        remote = self.remote_cache.get(relative_path)
        if remote is None or remote.is_directory:
            result = self.retry_policy.run(
                lambda: self.operations.upload_new_file(local_path, name, parent_id),
                f"Upload new file {relative_path}",
            )
        else:
            file_id = remote.id
            result = self.retry_policy.run(
                lambda: self.operations.upload_content(local_path, file_id),
                f"Upload {relative_path}",
            )

        self.remote_cache.set(
            RemoteEntry(
                id=result.id,
                relative_path=relative_path,
                name=name,
                mtime=parse_iso_timestamp(result.modified_time),
                md5=result.md5_checksum,
            )
        )
        self.state.set(relative_path, result.md5_checksum)
        return result

    def delete_remote_path(self, relative_path: str) -> bool:
        """Delete the remote copy of a path and forget it.

        Removes the SyncRecords and cached entries of the path and of
        anything below it.

        Returns:
            False if nothing is cached for the path (nothing was deleted)
        """
        remote = self.remote_cache.get(relative_path)
        if remote is None:
            return False

        self.retry_policy.run(
            lambda: self.operations.delete_remote(remote.id),
            f"Delete remote {relative_path}",
        )
        self.state.delete_tree(relative_path)
        self.remote_cache.delete_tree(relative_path)
        return True


def _stat_key(action: SyncAction) -> str:
    if action.is_upload:
        return "uploads"
    if action.is_download:
        return "downloads"
    if action == SyncAction.DELETE_LOCAL:
        return "deletes_local"
    return "deletes_remote"
