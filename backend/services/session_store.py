"""
Session State Store
===================
One Session per open converter tab: the loaded image, its preview URL,
the output settings, size stats and the two busy flags.

Sessions are mutated only from the event loop thread: by user input
(load_image, settings) and by the operations in services/operations.py.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging
import uuid

from config import settings
from services.errors import (
    InvalidSettingsError,
    SessionNotFoundError,
    UnsupportedFileError,
)
from services.image_file import ImageFile, OutputFormat
from services.storage_service import ObjectUrl, StorageService, storage_service

logger = logging.getLogger(__name__)

QUALITY_MIN = 1
QUALITY_MAX = 1000


@dataclass
class Stats:
    """Sizes shown under the preview, in KB."""
    original_size_kb: float = 0.0
    optimized_size_kb: Optional[float] = None


@dataclass
class Session:
    """Mutable state for one converter session."""

    storage: StorageService = field(repr=False)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    image: Optional[ImageFile] = None
    preview: Optional[ObjectUrl] = None
    output_format: OutputFormat = OutputFormat(settings.DEFAULT_OUTPUT_FORMAT)
    quality_level: int = settings.DEFAULT_QUALITY_LEVEL
    stats: Stats = field(default_factory=Stats)
    compression_busy: bool = False
    bg_removal_busy: bool = False
    bg_removal_progress: int = 0
    downloads: List[ObjectUrl] = field(default_factory=list, repr=False)
    closed: bool = field(default=False, repr=False)

    @property
    def transparent_preview(self) -> bool:
        """True when the current image is a background-removal result."""
        return self.image is not None and self.image.name.startswith("no-bg-")

    # ---- User input ----

    async def load_image(self, file: ImageFile) -> None:
        """Replace the image with a user-selected file and reset the stats."""
        if not file.is_image:
            raise UnsupportedFileError(
                f"Unsupported file type: {file.content_type or 'unknown'}",
                hint="Choose a JPEG, PNG, AVIF or other image file.",
            )
        await self.replace_image(file)
        self.stats = Stats(original_size_kb=file.size_kb)
        logger.info("Session %s loaded %s (%.2f KB)", self.id, file.name, file.size_kb)

    def set_output_format(self, output_format: Any) -> None:
        try:
            self.output_format = OutputFormat(output_format)
        except ValueError:
            raise InvalidSettingsError(
                f"Unknown output format: {output_format}",
                hint="Use image/jpeg, image/png or image/avif.",
            ) from None

    def set_quality_level(self, level: int) -> None:
        if not QUALITY_MIN <= level <= QUALITY_MAX:
            raise InvalidSettingsError(
                f"Quality must be between {QUALITY_MIN} and {QUALITY_MAX}, got {level}"
            )
        self.quality_level = level

    # ---- Used by operations ----

    def _ensure_open(self) -> None:
        if self.closed:
            raise SessionNotFoundError(f"Session closed: {self.id}")

    async def _keep_or_revoke(self, object_url: ObjectUrl) -> None:
        """Revoke an object created while the session was being closed."""
        if self.closed:
            await self.storage.revoke_object_url(object_url)
            raise SessionNotFoundError(f"Session closed: {self.id}")

    async def replace_image(self, file: ImageFile) -> None:
        """Swap in a new image and preview, releasing the old preview."""
        self._ensure_open()
        new_preview = await self.storage.create_object_url(file)
        await self._keep_or_revoke(new_preview)
        old_preview = self.preview
        self.image = file
        self.preview = new_preview
        if old_preview is not None:
            await self.storage.revoke_object_url(old_preview)

    async def trigger_download(self, data: bytes, filename: str, content_type: str) -> ObjectUrl:
        self._ensure_open()
        download = await self.storage.publish_download(data, filename, content_type)
        await self._keep_or_revoke(download)
        self.downloads.append(download)
        return download

    async def discard_download(self, download: ObjectUrl) -> None:
        """Withdraw a download that was published for a failed operation."""
        if download in self.downloads:
            self.downloads.remove(download)
        await self.storage.revoke_object_url(download)

    def set_bg_removal_progress(self, percent: int) -> None:
        """Publish progress; clamped to [0, 100] and never lowered mid-run."""
        if not self.bg_removal_busy:
            return
        percent = max(0, min(100, int(percent)))
        self.bg_removal_progress = max(self.bg_removal_progress, percent)

    async def release(self) -> None:
        """Revoke every object URL this session still holds."""
        self.closed = True
        if self.preview is not None:
            await self.storage.revoke_object_url(self.preview)
            self.preview = None
        downloads, self.downloads = self.downloads, []
        for download in downloads:
            await self.storage.revoke_object_url(download)

    def snapshot(self) -> Dict[str, Any]:
        """Plain-dict view of the state for API responses."""
        return {
            "session_id": self.id,
            "image_name": self.image.name if self.image else None,
            "image_content_type": self.image.content_type if self.image else None,
            "preview_url": self.preview.url if self.preview else None,
            "output_format": self.output_format.value,
            "quality_level": self.quality_level,
            "original_size_kb": self.stats.original_size_kb,
            "optimized_size_kb": self.stats.optimized_size_kb,
            "compression_busy": self.compression_busy,
            "bg_removal_busy": self.bg_removal_busy,
            "bg_removal_progress": self.bg_removal_progress,
            "transparent_preview": self.transparent_preview,
        }


class SessionStore:
    """In-memory registry of open sessions."""

    def __init__(self, storage: StorageService):
        self.storage = storage
        self._sessions: Dict[str, Session] = {}

    def create(self) -> Session:
        session = Session(storage=self.storage)
        self._sessions[session.id] = session
        logger.info("Opened session %s", session.id)
        return session

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    async def close(self, session_id: str) -> None:
        session = self.get(session_id)
        del self._sessions[session_id]
        await session.release()
        logger.info("Closed session %s", session_id)

    def __len__(self) -> int:
        return len(self._sessions)


# Singleton instance
session_store = SessionStore(storage_service)
