"""Cover photo upload through a pre-signed upload ticket.

1. POST /uploads/recipe-images describes the file and returns a ticket.
2. The raw bytes go to the ticket's upload URL with its method and headers.
3. The ticket's public URL is what the recipe stores as its cover image.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from whateat import config
from whateat.api_client import APIClient, APIError, DecodeError
from whateat.observable import Observable

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "image/jpeg"
DEFAULT_FILE_NAME = "cover.jpg"


class ImageUploadError(Exception):
    """Base class for cover upload failures."""
    pass


class InvalidImageDataError(ImageUploadError):
    def __init__(self):
        super().__init__("The cover photo couldn't be processed.")


class ImageTooLargeError(ImageUploadError):
    def __init__(self, max_bytes: int):
        super().__init__(f"The selected image exceeds the {format_byte_count(max_bytes)} upload limit.")
        self.max_bytes = max_bytes


class UploadFailedError(ImageUploadError):
    def __init__(self, status_code: int):
        super().__init__(f"The upload failed with status code {status_code}.")
        self.status_code = status_code


def format_byte_count(count: int) -> str:
    """Human file size, e.g. 10485760 -> "10 MB"."""
    size = float(count)
    for unit in ("bytes", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            if unit == "bytes":
                return f"{int(size)} bytes"
            return f"{size:.0f} {unit}" if size.is_integer() else f"{size:.1f} {unit}"
        size /= 1024
    return f"{count} bytes"


@dataclass
class UploadTicket:
    upload_url: str
    method: str
    public_url: str
    path: str
    max_size_bytes: int
    headers: dict[str, str] = field(default_factory=dict)
    token: str | None = field(default=None, repr=False)

    @classmethod
    def from_dict(cls, data: Any) -> "UploadTicket":
        if not isinstance(data, dict):
            raise DecodeError("upload ticket must be an object")

        def pick(*keys):
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return None

        upload_url = pick("uploadUrl", "upload_url")
        public_url = pick("publicUrl", "public_url")
        max_size = pick("maxSizeBytes", "max_size_bytes")
        if not isinstance(upload_url, str) or not isinstance(public_url, str):
            raise DecodeError("upload ticket is missing its URLs")
        try:
            max_size = int(max_size)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"upload ticket has an invalid maxSizeBytes: {max_size!r}") from e

        headers = pick("headers") or {}
        if not isinstance(headers, dict):
            raise DecodeError("upload ticket headers must be an object")

        return cls(
            upload_url=upload_url,
            method=str(pick("method") or "PUT").upper(),
            public_url=public_url,
            path=str(pick("path") or ""),
            max_size_bytes=max_size,
            headers={str(k): str(v) for k, v in headers.items()},
            token=pick("token"),
        )


class ImageUploadService:
    def __init__(self, api: APIClient, max_bytes: int = config.MAX_COVER_IMAGE_BYTES):
        self.api = api
        self.max_bytes = max_bytes

    async def upload_cover_photo(
        self,
        data: bytes,
        access_token: str,
        mime: str = DEFAULT_CONTENT_TYPE,
        file_name: str = DEFAULT_FILE_NAME,
    ) -> str:
        """Upload *data* and return its public URL."""
        if not data:
            raise InvalidImageDataError()
        if len(data) > self.max_bytes:
            raise ImageTooLargeError(self.max_bytes)

        payload = await self.api.post(
            "/uploads/recipe-images",
            {"content_type": mime, "file_name": file_name, "file_size_bytes": len(data)},
            access_token=access_token,
        )
        ticket = UploadTicket.from_dict(payload)

        if len(data) > ticket.max_size_bytes:
            raise ImageTooLargeError(ticket.max_size_bytes)

        status = await self.api.upload(ticket.method, ticket.upload_url, data, ticket.headers)
        if not 200 <= status < 300:
            logger.error("Cover upload rejected", extra={"status": status, "path": ticket.path})
            raise UploadFailedError(status)

        logger.info("Cover photo uploaded", extra={"path": ticket.path, "size_bytes": len(data)})
        return ticket.public_url


class CoverPhotoUpload(Observable):
    """The editor's cover photo: at most one upload in flight, newest selection wins."""

    def __init__(self, service: ImageUploadService, url: str | None = None):
        super().__init__()
        self.service = service
        self.url = url
        self.is_uploading = False
        self.has_selection = False  # a new image was picked in this session
        self.error_message: str | None = None
        self._task: asyncio.Task | None = None

    @property
    def is_ready_for_save(self) -> bool:
        return not self.is_uploading and (not self.has_selection or self.url is not None)

    def select(self, data: bytes, access_token: str, mime: str = DEFAULT_CONTENT_TYPE) -> asyncio.Task:
        """Start uploading *data*, cancelling any upload still running."""
        self._cancel()
        self.url = None
        self.error_message = None
        self.has_selection = True
        self.is_uploading = True
        self._task = asyncio.ensure_future(self._upload(data, access_token, mime))
        self.notify()
        return self._task

    def remove(self) -> None:
        self._cancel()
        self.url = None
        self.error_message = None
        self.has_selection = False
        self.is_uploading = False
        self.notify()

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _upload(self, data: bytes, access_token: str, mime: str) -> str | None:
        me = asyncio.current_task()
        try:
            url = await self.service.upload_cover_photo(data, access_token, mime=mime)
        except (ImageUploadError, APIError) as e:
            if self._task is not me:
                return None
            logger.warning("Cover photo upload failed", extra={"error": str(e)})
            self.error_message = str(e)
            self.is_uploading = False
            self.notify()
            return None

        if self._task is not me:
            # Superseded after the upload finished
            return None
        self.url = url
        self.is_uploading = False
        self.notify()
        return url
