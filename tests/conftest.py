"""Shared fixtures for drivesync tests."""

import hashlib
import threading
from datetime import datetime, timezone
from typing import Optional

import pytest

from drivesync.config import Config
from drivesync.exceptions import NotFoundError, RemoteStoreError
from drivesync.models import FOLDER_MIME_TYPE, DriveItem, DriveListResult, UploadResult
from drivesync.sync.retry import RetryPolicy

OLD_TIME = "2020-01-01T00:00:00.000Z"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class FakeDriveStore:
    """In-memory remote store with Drive-like pagination."""

    def __init__(self, root_id: str = "root", page_size: int = 2):
        self.root_id = root_id
        self.page_size = page_size
        self.items: dict[str, dict] = {}
        self.created: list[tuple[str, str, bool]] = []
        self.updated: list[str] = []
        self.deleted: list[str] = []
        self.list_calls: list[tuple[str, Optional[str]]] = []
        self.fail_create: set[str] = set()
        self.fail_update: set[str] = set()
        self._next_id = 0
        self._lock = threading.Lock()

    # ---- test helpers ----

    def _new_id(self) -> str:
        with self._lock:
            self._next_id += 1
            return f"id{self._next_id}"

    def add_folder(self, path: str) -> str:
        """Create a folder (and missing parents) at a relative path."""
        parent_id = self.root_id
        for name in path.split("/"):
            existing = self._child(parent_id, name)
            if existing is None:
                existing = self._new_id()
                self.items[existing] = {
                    "name": name,
                    "parent": parent_id,
                    "is_folder": True,
                    "content": b"",
                    "modified": OLD_TIME,
                }
            parent_id = existing
        return parent_id

    def add_file(self, path: str, content: bytes, modified: str = OLD_TIME) -> str:
        parent_path, _, name = path.rpartition("/")
        parent_id = self.add_folder(parent_path) if parent_path else self.root_id
        file_id = self._new_id()
        self.items[file_id] = {
            "name": name,
            "parent": parent_id,
            "is_folder": False,
            "content": content,
            "modified": modified,
        }
        return file_id

    def find(self, path: str) -> Optional[str]:
        parent_id = self.root_id
        for name in path.split("/"):
            found = self._child(parent_id, name)
            if found is None:
                return None
            parent_id = found
        return parent_id

    def content_of(self, path: str) -> Optional[bytes]:
        file_id = self.find(path)
        return None if file_id is None else self.items[file_id]["content"]

    def _child(self, parent_id: str, name: str) -> Optional[str]:
        for item_id, item in list(self.items.items()):
            if item["parent"] == parent_id and item["name"] == name:
                return item_id
        return None

    # ---- RemoteStore ----

    def list_folder(
        self, folder_id: str, page_token: Optional[str] = None
    ) -> DriveListResult:
        self.list_calls.append((folder_id, page_token))
        children = sorted(
            (
                (item_id, item)
                for item_id, item in list(self.items.items())
                if item["parent"] == folder_id
            ),
            key=lambda pair: pair[1]["name"],
        )
        start = int(page_token) if page_token else 0
        page = children[start : start + self.page_size]
        items = [
            DriveItem(
                id=item_id,
                name=item["name"],
                mime_type=FOLDER_MIME_TYPE if item["is_folder"] else "text/plain",
                modified_time=item["modified"],
                md5_checksum=None
                if item["is_folder"]
                else hashlib.md5(item["content"]).hexdigest(),
            )
            for item_id, item in page
        ]
        next_start = start + self.page_size
        next_token = str(next_start) if next_start < len(children) else None
        return DriveListResult(items=items, next_page_token=next_token)

    def get_content(self, file_id: str):
        if file_id not in self.items:
            raise NotFoundError("Resource not found")
        yield self.items[file_id]["content"]

    def create(self, name: str, parent_id: str, is_folder: bool = False) -> str:
        if name in self.fail_create:
            raise RemoteStoreError(f"create of {name} refused")
        file_id = self._new_id()
        self.created.append((name, parent_id, is_folder))
        self.items[file_id] = {
            "name": name,
            "parent": parent_id,
            "is_folder": is_folder,
            "content": b"",
            "modified": _now_iso(),
        }
        return file_id

    def create_with_content(self, name: str, parent_id: str, content) -> UploadResult:
        if name in self.fail_update:
            raise RemoteStoreError(f"upload of {name} refused")
        data = content if isinstance(content, bytes) else content.read()
        file_id = self._new_id()
        self.created.append((name, parent_id, False))
        self.items[file_id] = {
            "name": name,
            "parent": parent_id,
            "is_folder": False,
            "content": data,
            "modified": _now_iso(),
        }
        return UploadResult(
            id=file_id,
            modified_time=self.items[file_id]["modified"],
            md5_checksum=hashlib.md5(data).hexdigest(),
        )

    def update(self, file_id: str, content) -> UploadResult:
        item = self.items[file_id]
        if item["name"] in self.fail_update:
            raise RemoteStoreError(f"update of {item['name']} refused")
        data = content if isinstance(content, bytes) else content.read()
        item["content"] = data
        item["modified"] = _now_iso()
        self.updated.append(file_id)
        return UploadResult(
            id=file_id,
            modified_time=item["modified"],
            md5_checksum=hashlib.md5(data).hexdigest(),
        )

    def delete(self, file_id: str) -> None:
        if file_id not in self.items:
            raise NotFoundError("Resource not found")
        self.deleted.append(file_id)
        doomed = [file_id]
        while doomed:
            current = doomed.pop()
            self.items.pop(current, None)
            doomed.extend(
                i for i, it in list(self.items.items()) if it["parent"] == current
            )


@pytest.fixture
def drive():
    """Provide an empty in-memory remote store."""
    return FakeDriveStore()


@pytest.fixture
def local_root(tmp_path):
    root = tmp_path / "local"
    root.mkdir()
    return root


@pytest.fixture
def config(local_root):
    """Config pointing at the temporary local root."""
    return Config(local_root=str(local_root), max_workers=4, max_retries=2)


@pytest.fixture
def fast_retry():
    """Retry policy that never sleeps."""
    return RetryPolicy(
        max_retries=2, retry_delay=0, network_retry_delay=0, sleep=lambda s: None
    )
