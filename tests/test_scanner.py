"""Tests for the local and remote tree scanners."""

import hashlib
import threading
import time
from unittest.mock import Mock

import pytest

from drivesync.exceptions import RemoteStoreError, TaskFatalError
from drivesync.models import FOLDER_MIME_TYPE, DriveItem
from drivesync.sync.retry import RetryPolicy
from drivesync.sync.scanner import (
    LocalEntry,
    LocalScanner,
    RemoteEntry,
    RemoteScanner,
    compile_ignore_patterns,
    is_ignored,
)


class TestIgnorePatterns:
    """Tests for ignore pattern helpers."""

    def test_search_matches_anywhere(self):
        patterns = compile_ignore_patterns([r"\.tmp$", r"(^|/)node_modules(/|$)"])

        assert is_ignored("a/b.tmp", patterns)
        assert is_ignored("web/node_modules", patterns)
        assert not is_ignored("a/b.txt", patterns)

    def test_compiled_patterns_pass_through(self):
        import re

        pattern = re.compile("x")
        assert compile_ignore_patterns([pattern]) == [pattern]


class TestLocalScanner:
    """Tests for LocalScanner."""

    @pytest.fixture
    def tree(self, tmp_path):
        (tmp_path / "a.txt").write_bytes(b"alpha")
        (tmp_path / "docs" / "sub").mkdir(parents=True)
        (tmp_path / "docs" / "b.txt").write_bytes(b"beta")
        (tmp_path / "docs" / "sub" / "c.log").write_bytes(b"log")
        (tmp_path / "cache").mkdir()
        (tmp_path / "cache" / "big.bin").write_bytes(b"0" * 10)
        return tmp_path

    def test_scan_returns_files_and_directories(self, tree):
        """Test that every entry is keyed by its relative path."""
        entries = LocalScanner().scan(tree)

        assert set(entries) == {
            "a.txt",
            "docs",
            "docs/b.txt",
            "docs/sub",
            "docs/sub/c.log",
            "cache",
            "cache/big.bin",
        }
        assert entries["docs"].is_directory
        assert entries["docs"].md5 is None
        assert entries["a.txt"].md5 == hashlib.md5(b"alpha").hexdigest()
        assert entries["a.txt"].mtime == pytest.approx(
            (tree / "a.txt").stat().st_mtime
        )

    def test_ignored_directories_are_not_descended(self, tree):
        scanner = LocalScanner(ignore_patterns=[r"^cache$", r"\.log$"])

        entries = scanner.scan(tree)

        assert "cache" not in entries
        assert "cache/big.bin" not in entries
        assert "docs/sub/c.log" not in entries
        assert "docs/sub" in entries

    def test_progress_callback_per_directory(self, tree):
        visited = []

        LocalScanner(progress_callback=visited.append).scan(tree)

        assert visited[0] == "/"
        assert set(visited) == {"/", "docs", "docs/sub", "cache"}

    def test_symlinks_are_not_followed(self, tree):
        (tree / "link").symlink_to(tree / "docs", target_is_directory=True)

        entries = LocalScanner().scan(tree)

        assert "link" not in entries
        assert "link/b.txt" not in entries

    def test_empty_root(self, tmp_path):
        assert LocalScanner().scan(tmp_path) == {}

    def test_local_entry_from_path(self, tmp_path):
        path = tmp_path / "x.txt"
        path.write_bytes(b"x")

        entry = LocalEntry.from_path(path, "x.txt")

        assert entry.relative_path == "x.txt"
        assert entry.md5 == hashlib.md5(b"x").hexdigest()
        assert not entry.is_directory


def folder(id, name):
    return DriveItem(id=id, name=name, mime_type=FOLDER_MIME_TYPE)


def file(id, name, md5="m", modified="2025-01-15T10:30:00.000Z"):
    return DriveItem(
        id=id,
        name=name,
        mime_type="text/plain",
        modified_time=modified,
        md5_checksum=md5,
    )


class TestRemoteEntry:
    """Tests for RemoteEntry.from_item."""

    def test_from_file_item(self):
        entry = RemoteEntry.from_item(file("f1", "a.txt", md5="abc"), "docs/a.txt")

        assert entry.id == "f1"
        assert entry.relative_path == "docs/a.txt"
        assert entry.md5 == "abc"
        assert entry.mtime == pytest.approx(1736937000.0)
        assert not entry.is_directory

    def test_from_folder_item(self):
        entry = RemoteEntry.from_item(folder("d1", "docs"), "docs")

        assert entry.is_directory
        assert entry.mtime is None


class TestRemoteScanner:
    """Tests for RemoteScanner."""

    def test_recursive_paginated_scan(self, drive):
        """Test that every page of every folder is listed."""
        drive.add_file("a.txt", b"a")
        drive.add_file("b.txt", b"b")
        drive.add_file("c.txt", b"c")
        drive.add_file("docs/d.txt", b"d")
        drive.add_file("docs/deep/e.txt", b"e")

        entries = RemoteScanner(drive, max_workers=3).scan("root")

        assert set(entries) == {
            "a.txt",
            "b.txt",
            "c.txt",
            "docs",
            "docs/d.txt",
            "docs/deep",
            "docs/deep/e.txt",
        }
        assert entries["docs"].is_directory
        assert entries["docs/deep/e.txt"].md5 == hashlib.md5(b"e").hexdigest()
        # Root has 4 children with a page size of 2
        root_calls = [call for call in drive.list_calls if call[0] == "root"]
        assert root_calls == [("root", None), ("root", "2")]

    def test_ignored_folders_are_not_listed(self, drive):
        cache_id = drive.add_folder("cache")
        drive.add_file("cache/x.bin", b"x")
        drive.add_file("keep.txt", b"k")

        entries = RemoteScanner(drive, ignore_patterns=[r"^cache"]).scan("root")

        assert set(entries) == {"keep.txt"}
        assert all(call[0] != cache_id for call in drive.list_calls)

    def test_listing_is_retried(self, drive):
        drive.add_file("a.txt", b"a")
        original = drive.list_folder
        failures = {"left": 2}

        def flaky(folder_id, page_token=None):
            if failures["left"]:
                failures["left"] -= 1
                raise RemoteStoreError("temporary")
            return original(folder_id, page_token)

        drive.list_folder = flaky
        retry = RetryPolicy(max_retries=5, sleep=lambda s: None)

        entries = RemoteScanner(drive, retry_policy=retry).scan("root")

        assert set(entries) == {"a.txt"}

    def test_persistent_listing_failure_raises(self):
        store = Mock()
        store.list_folder.side_effect = RemoteStoreError("boom")
        retry = RetryPolicy(max_retries=1, sleep=lambda s: None)

        with pytest.raises(TaskFatalError, match="List files in folder root"):
            RemoteScanner(store, retry_policy=retry).scan("root")

    def test_concurrency_is_bounded(self, drive):
        """Test that no more than max_workers listings run at once."""
        for i in range(6):
            drive.add_file(f"dir{i}/f.txt", b"x")
        original = drive.list_folder
        lock = threading.Lock()
        state = {"active": 0, "peak": 0}

        def tracking(folder_id, page_token=None):
            with lock:
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            try:
                time.sleep(0.01)
                return original(folder_id, page_token)
            finally:
                with lock:
                    state["active"] -= 1

        drive.list_folder = tracking

        entries = RemoteScanner(drive, max_workers=2).scan("root")

        assert len(entries) == 12
        assert state["peak"] <= 2

    def test_progress_callback(self, drive):
        drive.add_folder("docs")
        visited = []

        RemoteScanner(drive, progress_callback=visited.append).scan("root")

        assert sorted(visited) == ["/", "docs"]
