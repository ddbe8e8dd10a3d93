"""Data models for Drive API responses."""

from dataclasses import dataclass, field
from typing import Any, Optional

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


@dataclass
class DriveItem:
    """A file or folder as returned by a Drive listing."""

    id: str
    """Opaque Drive file ID"""

    name: str
    """Name of the item inside its parent folder"""

    mime_type: str = ""
    """MIME type; folders use the Drive folder type"""

    modified_time: Optional[str] = None
    """RFC 3339 modification timestamp"""

    md5_checksum: Optional[str] = None
    """MD5 of the content (binary files only)"""

    @property
    def is_folder(self) -> bool:
        """Whether this item is a folder."""
        return self.mime_type == FOLDER_MIME_TYPE

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "DriveItem":
        """Create a DriveItem from a ``files`` list element."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType", ""),
            modified_time=data.get("modifiedTime"),
            md5_checksum=data.get("md5Checksum") or None,
        )


@dataclass
class DriveListResult:
    """One page of a folder listing."""

    items: list[DriveItem] = field(default_factory=list)
    next_page_token: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "DriveListResult":
        return cls(
            items=[DriveItem.from_api_response(f) for f in data.get("files", [])],
            next_page_token=data.get("nextPageToken") or None,
        )


@dataclass
class UploadResult:
    """Remote state of a file after its content was uploaded."""

    id: str
    modified_time: Optional[str] = None
    md5_checksum: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "UploadResult":
        return cls(
            id=data["id"],
            modified_time=data.get("modifiedTime"),
            md5_checksum=data.get("md5Checksum") or None,
        )
