"""Utility functions for drivesync."""

import hashlib
import posixpath
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

# =============================================================================
# Constants for sync operations
# =============================================================================

# Chunk size used when hashing or streaming files (1 MB)
HASH_CHUNK_SIZE: int = 1024 * 1024

# Remote must be newer than local by more than this to win a conflict
MTIME_TOLERANCE_SECONDS: float = 2.0

# Retry configuration for non-network errors
DEFAULT_MAX_RETRIES: int = 100
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Network errors are retried forever with this delay
DEFAULT_NETWORK_RETRY_DELAY: float = 10.0  # seconds

# Upper bound on concurrent remote requests
DEFAULT_MAX_WORKERS: int = 8


# =============================================================================
# Timestamp parsing utilities
# =============================================================================


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[float]:
    """Parse an RFC 3339 timestamp from the Drive API.

    Args:
        timestamp_str: ISO format timestamp string (e.g., "2025-01-15T10:30:00.000Z")

    Returns:
        Unix timestamp or None if parsing fails
    """
    if not timestamp_str:
        return None

    try:
        # The 'Z' suffix indicates UTC time
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"

        try:
            dt = datetime.fromisoformat(timestamp_str)
        except ValueError:
            # Older interpreters only accept 3 or 6 fractional digits
            if "." in timestamp_str:
                timestamp_str = timestamp_str.split(".")[0] + "+00:00"
            dt = datetime.fromisoformat(timestamp_str)
        return dt.timestamp()
    except (ValueError, AttributeError):
        return None


def format_countdown(seconds: float) -> str:
    """Format a remaining duration as ``m:ss``.

    Examples:
        >>> format_countdown(75)
        '1:15'
        >>> format_countdown(5)
        '0:05'
    """
    total = max(0, int(seconds))
    return f"{total // 60}:{total % 60:02d}"


# =============================================================================
# Path utilities
# =============================================================================


def resolve_path(path: Union[str, Path]) -> Path:
    """Expand ``~`` and make a path absolute."""
    return Path(path).expanduser().resolve()


def to_relative_path(path: Union[str, Path], root: Union[str, Path]) -> str:
    """Return ``path`` relative to ``root`` with forward slashes.

    Both local and remote scanners produce keys in this form, which is what
    makes the two trees diffable by key equality.
    """
    return Path(path).relative_to(Path(root)).as_posix()


def parent_of(relative_path: str) -> str:
    """Return the parent of a relative path, ``""`` for the sync root.

    Examples:
        >>> parent_of("a/b/c.txt")
        'a/b'
        >>> parent_of("c.txt")
        ''
    """
    return posixpath.dirname(relative_path)


def path_depth(relative_path: str) -> int:
    """Number of separators in a relative path."""
    return relative_path.count("/")


# =============================================================================
# Hash calculation utilities
# =============================================================================


def calculate_md5(file_path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Compute the MD5 hex digest of a file by streaming it.

    Args:
        file_path: File to hash
        chunk_size: Number of bytes read per iteration

    Returns:
        Lowercase hex digest, the same form the Drive API reports
    """
    digest = hashlib.md5()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()
