"""Evidence file store: upload and delete evidence files over HTTP with httpx.

Objects live under {base_url}/storage/v1/object/{bucket}/{path} and are served
from the matching /object/public/ URL, which is what gets persisted on
evidence rows.
"""

from __future__ import annotations

import logging
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Protocol
from urllib.parse import unquote, urlparse

import httpx

from impacttrace.config import Settings, get_settings

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 25 * 1024 * 1024  # 25 MB

ALLOWED_CONTENT_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "text/plain",
        "text/csv",
        "video/mp4",
        "video/mpeg",
        "video/quicktime",
    }
)


class FileStoreError(RuntimeError):
    """Raised when the file store cannot be reached or rejects a request."""

    pass


class FileRejectedError(ValueError):
    """Raised before upload when a file is too large or of a disallowed type."""

    pass


@dataclass(frozen=True)
class StoredFile:
    url: str
    size: int


class FileStore(Protocol):
    """What the evidence services need from file storage."""

    async def upload(self, name: str, content: bytes, content_type: str) -> StoredFile: ...

    async def delete(self, url: str) -> bool: ...


def file_name_from_url(url: str, default: str = "file") -> str:
    """Last path segment of url, percent-decoded."""
    name = PurePosixPath(unquote(urlparse(url).path)).name
    return name or default


def file_type_from_url(url: str) -> str:
    """Lower-case extension of the file a URL points at, or "unknown"."""
    suffix = PurePosixPath(urlparse(url).path).suffix
    return suffix[1:].lower() if len(suffix) > 1 else "unknown"


def _safe_object_name(name: str) -> str:
    path = PurePosixPath(name)
    base = re.sub(r"[^a-zA-Z0-9]", "_", path.stem) or "file"
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}-{base}{path.suffix}"


class HttpFileStore:
    """FileStore backed by an object storage HTTP API."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        folder: str = "evidence",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or get_settings()
        if not settings.storage_base_url:
            raise FileStoreError("STORAGE_BASE_URL is not configured")
        self.base_url = settings.storage_base_url.rstrip("/")
        self.bucket = settings.storage_bucket
        self.folder = folder.strip("/")
        self._api_key = settings.storage_api_key
        self._timeout = settings.storage_timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
            headers["apikey"] = self._api_key
        return httpx.AsyncClient(timeout=self._timeout, headers=headers, transport=self._transport)

    def object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    def path_for_url(self, url: str) -> str | None:
        """Object path inside the bucket for a public URL, or None for foreign URLs."""
        marker = f"/{self.bucket}/"
        if marker not in url:
            return None
        return url.split(marker, 1)[1] or None

    async def upload(self, name: str, content: bytes, content_type: str) -> StoredFile:
        """Upload content under a fresh object name and return its public URL and size."""
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise FileRejectedError(f"Invalid file type: {content_type}")
        if len(content) > MAX_FILE_SIZE:
            raise FileRejectedError(f"{name} exceeds the {MAX_FILE_SIZE} byte limit")

        path = f"{self.folder}/{_safe_object_name(name)}" if self.folder else _safe_object_name(name)
        try:
            async with self._client() as client:
                response = await client.post(
                    self.object_url(path),
                    content=content,
                    headers={"Content-Type": content_type, "x-upsert": "false"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("HTTP %s uploading %s", exc.response.status_code, name)
            raise FileStoreError(f"Failed to upload file: HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("Upload failed for %s: %s", name, exc)
            raise FileStoreError(f"Failed to upload file: {exc}") from exc

        logger.info("Uploaded %s (%d bytes) to %s", name, len(content), path)
        return StoredFile(url=self.public_url(path), size=len(content))

    async def delete(self, url: str) -> bool:
        """Delete the object behind a public URL.

        Returns False (and logs) for URLs that do not belong to this bucket;
        raises FileStoreError when the store itself fails.
        """
        path = self.path_for_url(url)
        if path is None:
            logger.warning("Not a file store URL, skipping delete: %s", url)
            return False
        try:
            async with self._client() as client:
                response = await client.delete(self.object_url(path))
                if response.status_code == 404:
                    logger.warning("File already gone from store: %s", path)
                    return False
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FileStoreError(
                f"Failed to delete {path}: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise FileStoreError(f"Failed to delete {path}: {exc}") from exc
        return True
