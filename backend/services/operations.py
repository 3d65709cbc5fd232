"""
Session Operations
==================
Compress and Remove Background, run against a Session.

Each operation:
1. Checks preconditions (an image is loaded, the same kind is not running)
2. Snapshots its inputs, so a concurrent operation replacing the image
   cannot change what this one works on
3. Awaits the external service
4. Publishes a download, then updates the session
5. Clears its busy flag, whatever happened
"""

from dataclasses import dataclass
import logging
import math

from config import settings
from services.compression_service import CompressionService, compression_service
from services.errors import (
    MissingImageError,
    OperationFailedError,
    OperationInProgressError,
    XpressError,
)
from services.image_file import ImageFile
from services.rembg_service import (
    BackgroundOutput,
    BackgroundRemovalService,
    rembg_service,
)
from services.session_store import Session
from services.storage_service import ObjectUrl

logger = logging.getLogger(__name__)

NO_IMAGE_MESSAGE = "Please upload an image first!"
SAVE_FAILED_MESSAGE = "Could not save the result."
SAVE_FAILED_HINT = "The server could not write the file. Try again in a moment."


@dataclass
class DownloadResult:
    """What the client needs to save the produced file."""
    filename: str
    url: str
    content_type: str
    size_kb: float


def progress_percent(current: int, total: int) -> int:
    """current/total as a whole percentage, halves rounded up."""
    return math.floor(current / total * 100 + 0.5)


class ImageOperations:
    """Orchestrates the two long-running operations for a session."""

    def __init__(
        self,
        compressor: CompressionService,
        remover: BackgroundRemovalService,
    ):
        self.compressor = compressor
        self.remover = remover

    async def _publish(self, session: Session, data: bytes, filename: str, content_type: str) -> ObjectUrl:
        try:
            return await session.trigger_download(data, filename, content_type)
        except XpressError:
            raise
        except Exception as e:
            logger.exception("Session %s: could not publish %s", session.id, filename)
            raise OperationFailedError(SAVE_FAILED_MESSAGE, hint=SAVE_FAILED_HINT) from e

    async def compress(self, session: Session) -> DownloadResult:
        """Compress the session image with its current format and quality."""
        image = session.image
        if image is None:
            raise MissingImageError(NO_IMAGE_MESSAGE)
        if session.compression_busy:
            raise OperationInProgressError("Compression is already running.")

        target_format = session.output_format
        options = self.compressor.default_options(
            initial_quality=session.quality_level / 1000,
            target_format=target_format,
        )

        session.compression_busy = True
        logger.info("Session %s: compressing %s to %s", session.id, image.name, target_format.value)
        try:
            try:
                result = await self.compressor.compress(image, options)
            except Exception as e:
                logger.exception("Session %s: compression failed", session.id)
                raise OperationFailedError(
                    "Compression failed.",
                    hint="The image may be damaged, or the target format is not supported on this server.",
                ) from e

            filename = f"xpress-{image.basename}.{target_format.extension}"
            download = await self._publish(session, result.data, filename, target_format.value)
            if session.image is image:
                session.stats.optimized_size_kb = result.size_kb
            else:
                logger.info("Session %s: image replaced while compressing, stats left as they are", session.id)
            logger.info("Session %s: compressed to %.2f KB", session.id, result.size_kb)
            return DownloadResult(filename, download.url, download.content_type, result.size_kb)
        finally:
            session.compression_busy = False

    async def remove_background(self, session: Session) -> DownloadResult:
        """Cut the background out of the session image and make it the new image."""
        image = session.image
        if image is None:
            raise MissingImageError(NO_IMAGE_MESSAGE)
        if session.bg_removal_busy:
            raise OperationInProgressError("Background removal is already running.")

        def on_progress(stage: str, current: int, total: int) -> None:
            if total <= 0:
                return
            session.set_bg_removal_progress(progress_percent(current, total))

        output = BackgroundOutput(
            format="image/png",
            quality=settings.BG_OUTPUT_QUALITY,
        )

        session.bg_removal_busy = True
        session.bg_removal_progress = 0
        logger.info("Session %s: removing background from %s", session.id, image.name)
        try:
            try:
                blob = await self.remover.remove_background(image, progress=on_progress, output=output)
            except Exception as e:
                logger.exception("Session %s: background removal failed", session.id)
                raise OperationFailedError(
                    "AI Model Error.",
                    hint="Ensure you're online for the initial model download.",
                ) from e

            no_bg = ImageFile(
                name=f"no-bg-{image.basename}.png",
                content_type="image/png",
                data=blob,
            )
            download = await self._publish(session, no_bg.data, no_bg.name, no_bg.content_type)
            try:
                await session.replace_image(no_bg)
            except Exception as e:
                await session.discard_download(download)
                if isinstance(e, XpressError):
                    raise
                logger.exception("Session %s: could not store the cut-out preview", session.id)
                raise OperationFailedError(SAVE_FAILED_MESSAGE, hint=SAVE_FAILED_HINT) from e
            session.stats.optimized_size_kb = no_bg.size_kb
            logger.info("Session %s: background removed (%.2f KB)", session.id, no_bg.size_kb)
            return DownloadResult(no_bg.name, download.url, download.content_type, no_bg.size_kb)
        finally:
            session.bg_removal_busy = False
            session.bg_removal_progress = 0


# Singleton instance wired to the default services
image_operations = ImageOperations(compression_service, rembg_service)
