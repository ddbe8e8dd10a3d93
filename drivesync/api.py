"""API client for the Google Drive v3 REST API."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import IO, Any, Union

import httpx

from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    RemoteStoreError,
    TransientNetworkError,
)
from .models import FOLDER_MIME_TYPE, DriveListResult, UploadResult

DEFAULT_API_URL = "https://www.googleapis.com"

LIST_FIELDS = "nextPageToken, files(id, name, mimeType, modifiedTime, md5Checksum)"
UPLOAD_FIELDS = "id, name, modifiedTime, md5Checksum"

Content = Union[bytes, IO[bytes], Iterable[bytes]]


class DriveClient:
    """Client for the subset of the Drive API the sync engine needs.

    The client performs a single attempt per call. Failures are mapped onto
    the drivesync exception hierarchy so the retry policy can classify them.
    """

    def __init__(
        self,
        access_token: str | None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 60.0,
        page_size: int = 1000,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize Drive API client.

        Args:
            access_token: OAuth bearer token
            api_url: Base URL of the API (default: Google's endpoint)
            timeout: Request timeout in seconds (default: 60.0)
            page_size: Number of entries requested per listing page
            transport: Optional httpx transport (used by tests)
        """
        if not access_token:
            raise ConfigurationError(
                "Access token not configured. Run the credential setup first."
            )
        self.access_token = access_token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.page_size = page_size
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={"Authorization": f"Bearer {self.access_token}"},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def _error_from_response(self, response: httpx.Response) -> RemoteStoreError:
        """Translate an error response into an exception."""
        status_code = response.status_code

        if status_code == 401:
            return AuthenticationError("Invalid or expired access token")
        if status_code == 404:
            return NotFoundError("Resource not found")

        error_msg = f"API request failed with status {status_code}"
        try:
            if response.content:
                error_data = response.json()
                if isinstance(error_data, dict):
                    error = error_data.get("error")
                    msg = error.get("message") if isinstance(error, dict) else error
                    if msg:
                        error_msg = f"{error_msg}: {msg}"
        except ValueError:
            # Body is not JSON, keep the status-based message
            pass
        return RemoteStoreError(error_msg)

    def _send(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Make a single API request and check its status.

        Args:
            method: HTTP method
            endpoint: Path below the API URL, or an absolute URL
            **kwargs: Additional arguments passed to httpx

        Returns:
            The successful response

        Raises:
            TransientNetworkError: On transport failures
            RemoteStoreError: If the server answered with an error status
        """
        if endpoint.startswith(("http://", "https://")):
            url = endpoint
        else:
            url = f"{self.api_url}/{endpoint.lstrip('/')}"
        try:
            response = self._get_client().request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Network error: {e}") from e
        except httpx.RequestError as e:
            raise RemoteStoreError(f"Request failed: {e}") from e

        if response.is_error:
            raise self._error_from_response(response)
        return response

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make a single API request and decode its JSON body.

        Returns:
            Response JSON data, or an empty dict for empty bodies
        """
        response = self._send(method, endpoint, **kwargs)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise RemoteStoreError("Invalid JSON response from server") from e

    # =========================
    # Remote store operations
    # =========================

    def list_folder(
        self, folder_id: str, page_token: str | None = None
    ) -> DriveListResult:
        """List one page of the non-trashed children of a folder.

        Args:
            folder_id: ID of the folder to list
            page_token: Cursor returned by the previous page, if any

        Returns:
            DriveListResult with the items and the next page token
        """
        params: dict[str, Any] = {
            "q": f"'{folder_id}' in parents and trashed = false",
            "fields": LIST_FIELDS,
            "pageSize": self.page_size,
        }
        if page_token:
            params["pageToken"] = page_token
        data = self._request("GET", "/drive/v3/files", params=params)
        return DriveListResult.from_api_response(data)

    def get_content(self, file_id: str) -> Iterator[bytes]:
        """Stream the content of a file.

        Args:
            file_id: ID of the file to download

        Yields:
            Chunks of file content
        """
        url = f"{self.api_url}/drive/v3/files/{file_id}"
        try:
            with self._get_client().stream(
                "GET", url, params={"alt": "media"}
            ) as response:
                if response.is_error:
                    response.read()
                    raise self._error_from_response(response)
                yield from response.iter_bytes()
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Network error: {e}") from e

    def create(self, name: str, parent_id: str, is_folder: bool = False) -> str:
        """Create an empty file or a folder.

        Args:
            name: Name of the new item
            parent_id: ID of the folder that will contain it
            is_folder: Create a folder instead of a file

        Returns:
            ID of the created item
        """
        body: dict[str, Any] = {"name": name, "parents": [parent_id]}
        if is_folder:
            body["mimeType"] = FOLDER_MIME_TYPE
        data = self._request(
            "POST", "/drive/v3/files", params={"fields": "id"}, json=body
        )
        try:
            return str(data["id"])
        except (KeyError, TypeError) as e:
            raise RemoteStoreError(f"Create of '{name}' returned no ID") from e

    def create_with_content(
        self, name: str, parent_id: str, content: Content
    ) -> UploadResult:
        """Create a file together with its content.

        Uses a resumable upload session: the file only appears in the
        folder once the content has been received in full.

        Args:
            name: Name of the new file
            parent_id: ID of the folder that will contain it
            content: Bytes, a binary file object or an iterable of chunks

        Returns:
            UploadResult with the ID, modification time and checksum
        """
        session = self._send(
            "POST",
            "/upload/drive/v3/files",
            params={"uploadType": "resumable", "fields": UPLOAD_FIELDS},
            json={"name": name, "parents": [parent_id]},
            headers={"X-Upload-Content-Type": "application/octet-stream"},
        )
        upload_url = session.headers.get("Location")
        if not upload_url:
            raise RemoteStoreError(f"Upload session for '{name}' returned no URL")

        data = self._request(
            "PUT",
            upload_url,
            content=content,
            headers={"Content-Type": "application/octet-stream"},
        )
        return UploadResult.from_api_response(data)

    def update(self, file_id: str, content: Content) -> UploadResult:
        """Replace the content of an existing file.

        Args:
            file_id: ID of the file to overwrite
            content: Bytes, a binary file object or an iterable of chunks

        Returns:
            UploadResult with the new modification time and checksum
        """
        data = self._request(
            "PATCH",
            f"/upload/drive/v3/files/{file_id}",
            params={"uploadType": "media", "fields": UPLOAD_FIELDS},
            content=content,
            headers={"Content-Type": "application/octet-stream"},
        )
        return UploadResult.from_api_response(data)

    def delete(self, file_id: str) -> None:
        """Delete a file or folder (folders are removed with their contents)."""
        self._request("DELETE", f"/drive/v3/files/{file_id}")
