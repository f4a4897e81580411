"""
Blob storage for uploaded documents.

The catalog only ever sees an opaque key; the bytes live either on the local
filesystem (per-owner directories) or in an Azure Blob Storage container.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from azure.core.exceptions import ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings
from loguru import logger

from core.config import settings
from core.exceptions import ValidationError

CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class StoredBlob:
    key: str
    size: int


def _blob_name(owner_id: int, original_name: str) -> str:
    """``<owner_id>/<uuid><ext>``; the original extension is kept."""
    suffix = Path(original_name or "").suffix.lower()
    return f"{owner_id}/{uuid.uuid4()}{suffix}"


def _too_large(max_size: int) -> ValidationError:
    return ValidationError(f"File too large. Maximum size is {max_size // (1024 * 1024)}MB")


class BlobStore(ABC):
    """Interface shared by the local and Azure backends."""

    @abstractmethod
    def save(
        self,
        owner_id: int,
        original_name: str,
        stream: BinaryIO,
        max_size: int,
        content_type: Optional[str] = None,
    ) -> StoredBlob:
        """Write the stream; raises ValidationError past ``max_size`` bytes."""

    @abstractmethod
    def open_stream(self, key: str) -> Iterator[bytes]:
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a blob; a missing blob is not an error."""


class LocalBlobStore(BlobStore):
    """Filesystem backend rooted at ``UPLOAD_DIR``."""

    def __init__(self, root: str):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"✓ Local blob store at {self.root}")

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise ValueError(f"Blob key escapes the store root: {key}")
        return path

    def save(self, owner_id, original_name, stream, max_size, content_type=None) -> StoredBlob:
        key = _blob_name(owner_id, original_name)
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        size = 0
        try:
            with open(path, "wb") as out:
                while True:
                    chunk = stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > max_size:
                        raise _too_large(max_size)
                    out.write(chunk)
        except Exception:
            path.unlink(missing_ok=True)
            raise

        logger.debug(f"[BLOB] Saved {key} ({size} bytes)")
        return StoredBlob(key=key, size=size)

    def open_stream(self, key: str) -> Iterator[bytes]:
        with open(self._path(key), "rb") as f:
            while True:
                chunk = f.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
        logger.debug(f"[BLOB] Deleted {key}")


class AzureBlobStore(BlobStore):
    """Azure Blob Storage backend, one container for all owners."""

    def __init__(self, connection_string: str, container: str):
        self.client = BlobServiceClient.from_connection_string(connection_string)
        self.container = self.client.get_container_client(container)
        logger.info(f"✓ Azure Blob Storage client initialized (container={container})")

    def save(self, owner_id, original_name, stream, max_size, content_type=None) -> StoredBlob:
        key = _blob_name(owner_id, original_name)
        data = stream.read(max_size + 1)
        if len(data) > max_size:
            raise _too_large(max_size)

        self.container.get_blob_client(key).upload_blob(
            data,
            overwrite=True,
            content_settings=ContentSettings(content_type=content_type),
        )
        logger.debug(f"[BLOB] Uploaded {key} ({len(data)} bytes)")
        return StoredBlob(key=key, size=len(data))

    def open_stream(self, key: str) -> Iterator[bytes]:
        return self.container.get_blob_client(key).download_blob().chunks()

    def exists(self, key: str) -> bool:
        return self.container.get_blob_client(key).exists()

    def delete(self, key: str) -> None:
        try:
            self.container.get_blob_client(key).delete_blob()
        except ResourceNotFoundError:
            logger.debug(f"[BLOB] Delete of missing blob ignored: {key}")


_blob_store: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
    """FastAPI dependency: the configured blob store (created on first use)."""
    global _blob_store
    if _blob_store is None:
        if settings.azure_connection_string:
            _blob_store = AzureBlobStore(settings.azure_connection_string, settings.azure_container)
        else:
            _blob_store = LocalBlobStore(settings.upload_dir)
    return _blob_store
