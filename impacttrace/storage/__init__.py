"""Evidence file storage."""

from impacttrace.storage.file_store import (
    FileRejectedError,
    FileStore,
    FileStoreError,
    HttpFileStore,
    StoredFile,
)

__all__ = [
    "FileRejectedError",
    "FileStore",
    "FileStoreError",
    "HttpFileStore",
    "StoredFile",
]
