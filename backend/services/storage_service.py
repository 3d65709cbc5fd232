"""
Storage Service
===============
Holds the bytes behind preview and download URLs.

A browser would hand out `blob:` object URLs for these; here every object is
written under the outputs directory and served by the objects router until it
is revoked. Metadata lives in memory only, so nothing outlives the process.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional
import logging
import mimetypes
import os
import uuid

from fastapi.concurrency import run_in_threadpool

from services.image_file import ImageFile

logger = logging.getLogger(__name__)


def _write_file(path: str, data: bytes) -> None:
    with open(path, "wb") as f:
        f.write(data)


def _read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _remove_file(path: str) -> None:
    if os.path.exists(path):
        os.remove(path)


@dataclass
class StoredObject:
    """Metadata for one stored blob."""
    object_id: str
    filename: str
    content_type: str
    size: int
    attachment: bool = False


@dataclass
class ObjectUrl:
    """A revocable reference handed to clients."""
    object_id: str
    url: str
    filename: str
    content_type: str


class StorageProvider(ABC):
    """Abstract base class for storage providers."""

    @abstractmethod
    async def save_bytes(
        self,
        data: bytes,
        filename: str,
        content_type: str,
        attachment: bool = False,
    ) -> StoredObject:
        """
        Store a blob and return its metadata.

        Args:
            data: Raw bytes to store
            filename: Name reported to clients when the blob is served
            content_type: MIME type of the blob
            attachment: Serve as a download rather than inline
        """
        pass

    @abstractmethod
    async def get_bytes(self, object_id: str) -> Optional[bytes]:
        """Retrieve a blob by id, or None if missing."""
        pass

    @abstractmethod
    async def delete(self, object_id: str) -> bool:
        """Delete a blob. Returns False if it was not found."""
        pass

    @abstractmethod
    def resolve(self, object_id: str) -> Optional[StoredObject]:
        """Return metadata for a live blob."""
        pass

    def get_local_path(self, object_id: str) -> Optional[str]:
        """
        Get local filesystem path for an object (if applicable).
        """
        return None


class LocalStorageProvider(StorageProvider):
    """
    Local filesystem storage.

    Stores blobs in the outputs/ directory, one file per object id.
    """

    def __init__(self, output_dir: str = "outputs"):
        """
        Initialize local storage provider.

        Args:
            output_dir: Directory to store blobs
        """
        self.output_dir = output_dir
        self._objects: Dict[str, StoredObject] = {}
        os.makedirs(output_dir, exist_ok=True)

    def _path_for(self, obj: StoredObject) -> str:
        ext = mimetypes.guess_extension(obj.content_type) or ".bin"
        return os.path.join(self.output_dir, f"{obj.object_id}{ext}")

    async def save_bytes(
        self,
        data: bytes,
        filename: str,
        content_type: str,
        attachment: bool = False,
    ) -> StoredObject:
        """Write the blob to disk and record its metadata."""
        obj = StoredObject(
            object_id=uuid.uuid4().hex,
            filename=filename,
            content_type=content_type,
            size=len(data),
            attachment=attachment,
        )
        await run_in_threadpool(_write_file, self._path_for(obj), data)
        self._objects[obj.object_id] = obj
        return obj

    async def get_bytes(self, object_id: str) -> Optional[bytes]:
        """Read a blob back from disk."""
        path = self.get_local_path(object_id)
        if path is None:
            return None
        try:
            return await run_in_threadpool(_read_file, path)
        except FileNotFoundError:
            return None

    async def delete(self, object_id: str) -> bool:
        """Remove a blob from disk and forget it."""
        obj = self._objects.pop(object_id, None)
        if obj is None:
            return False
        await run_in_threadpool(_remove_file, self._path_for(obj))
        return True

    def resolve(self, object_id: str) -> Optional[StoredObject]:
        return self._objects.get(object_id)

    def get_local_path(self, object_id: str) -> Optional[str]:
        """Get local path to a stored blob."""
        obj = self._objects.get(object_id)
        if obj is None:
            return None
        path = self._path_for(obj)
        return path if os.path.exists(path) else None

    def __len__(self) -> int:
        return len(self._objects)


class StorageService:
    """
    High-level object URL registry on top of a storage provider.

    Usage:
        preview = await storage.create_object_url(image_file)
        ...
        await storage.revoke_object_url(preview)
    """

    def __init__(
        self,
        provider: Optional[StorageProvider] = None,
        base_url: str = "http://localhost:8000",
    ):
        """
        Initialize storage service.

        Args:
            provider: Storage provider instance. Defaults to LocalStorageProvider.
            base_url: Base URL used to build preview and download links
        """
        self.provider = provider or LocalStorageProvider()
        self.base_url = base_url.rstrip("/")

    def _url_for(self, obj: StoredObject) -> str:
        route = "download" if obj.attachment else "preview"
        return f"{self.base_url}/api/{route}/{obj.object_id}"

    async def create_object_url(self, file: ImageFile) -> ObjectUrl:
        """Register an image for inline display."""
        obj = await self.provider.save_bytes(file.data, file.name, file.content_type)
        logger.debug("Created preview %s for %s", obj.object_id, file.name)
        return ObjectUrl(obj.object_id, self._url_for(obj), obj.filename, obj.content_type)

    async def publish_download(self, data: bytes, filename: str, content_type: str) -> ObjectUrl:
        """Register a blob to be served as a file download."""
        obj = await self.provider.save_bytes(data, filename, content_type, attachment=True)
        logger.info("Download ready: %s (%d bytes)", filename, obj.size)
        return ObjectUrl(obj.object_id, self._url_for(obj), obj.filename, obj.content_type)

    async def revoke_object_url(self, object_url: ObjectUrl) -> bool:
        """Release the bytes behind an object URL. Later fetches will 404."""
        revoked = await self.provider.delete(object_url.object_id)
        if revoked:
            logger.debug("Revoked %s (%s)", object_url.object_id, object_url.filename)
        return revoked

    def resolve(self, object_id: str) -> Optional[StoredObject]:
        return self.provider.resolve(object_id)

    async def get_bytes(self, object_id: str) -> Optional[bytes]:
        return await self.provider.get_bytes(object_id)

    def get_local_path(self, object_id: str) -> Optional[str]:
        """Get local file path for an object (local provider only)."""
        return self.provider.get_local_path(object_id)


def _create_storage_service() -> StorageService:
    """
    Factory function that creates the StorageService based on config.
    Called once at module load to create the singleton.
    """
    from config import settings

    # storage_service.py is at backend/services/, so project root is 3 levels up
    _THIS_DIR = os.path.dirname(os.path.abspath(__file__))
    _PROJECT_ROOT = os.path.dirname(os.path.dirname(_THIS_DIR))
    output_dir = os.path.join(_PROJECT_ROOT, settings.OUTPUTS_DIR)

    provider = LocalStorageProvider(output_dir=output_dir)
    return StorageService(provider=provider, base_url=settings.BASE_URL)


# Singleton instance (auto-configured from .env / config)
storage_service = _create_storage_service()
