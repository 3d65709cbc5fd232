"""
Background Removal Service
==========================
Handles background removal from user photos using open-source AI models.

rembg with U²-Net (free, self-hostable). The model weights are downloaded
on first use (~170MB) and cached in ~/.u2net/ for subsequent runs.
"""

from dataclasses import dataclass
from io import BytesIO
from typing import Any, Callable, Optional
import asyncio
import logging
import threading

from fastapi.concurrency import run_in_threadpool
from PIL import Image

from config import settings
from services.errors import BackgroundRemovalError
from services.image_file import ImageFile, OutputFormat

logger = logging.getLogger(__name__)

# progress(stage, current, total)
ProgressCallback = Callable[[str, int, int], None]

STAGES = ("fetch:model", "decode", "compute:inference", "encode")


@dataclass(frozen=True)
class BackgroundOutput:
    """Encoding of the cut-out image."""
    format: str = "image/png"
    quality: float = 0.8  # 0..1, lossy formats only


class BackgroundRemovalService:
    """
    Service for removing backgrounds from photos.

    The heavy lifting runs in a worker thread. Progress is reported as
    cumulative stage counts and always delivered on the event loop thread,
    so callers may mutate loop-owned state from the callback.
    """

    def __init__(self, model_name: str = "u2net", inference: Optional[Callable[..., Any]] = None):
        """
        Initialize the background removal service.

        Args:
            model_name: rembg model to load ("u2net", "isnet-general-use", ...)
            inference: Replacement for rembg's `remove(image, session=...)`.
                       Tests use it to avoid loading a model.
        """
        self.model_name = model_name
        self._inference = inference
        self._session = None
        self._session_lock = threading.Lock()

    def _ensure_model_loaded(self):
        """
        Lazy-load the rembg session on first use.

        Note: this is where the one-time model download happens.
        """
        if self._inference is not None:
            return None
        with self._session_lock:
            if self._session is None:
                from rembg import new_session

                logger.info("Loading rembg model: %s", self.model_name)
                self._session = new_session(self.model_name)
                logger.info("rembg model ready: %s", self.model_name)
        return self._session

    def _run_model(self, image: Image.Image, session) -> Image.Image:
        if self._inference is not None:
            return self._inference(image, session=session)
        from rembg import remove

        return remove(image, session=session)

    def _remove_sync(
        self,
        file: ImageFile,
        output: BackgroundOutput,
        report: ProgressCallback,
    ) -> bytes:
        total = len(STAGES)
        session = self._ensure_model_loaded()
        report(STAGES[0], 1, total)

        input_image = Image.open(BytesIO(file.data))
        input_image.load()
        report(STAGES[1], 2, total)

        output_image = self._run_model(input_image, session)
        if output_image.mode != "RGBA":
            output_image = output_image.convert("RGBA")
        report(STAGES[2], 3, total)

        fmt = OutputFormat(output.format)
        buffer = BytesIO()
        if fmt is OutputFormat.PNG:
            output_image.save(buffer, format="PNG", optimize=True)
        else:
            output_image.save(buffer, format=fmt.pil_format, quality=round(output.quality * 100))
        report(STAGES[3], 4, total)
        return buffer.getvalue()

    async def remove_background(
        self,
        file: ImageFile,
        progress: Optional[ProgressCallback] = None,
        output: BackgroundOutput = BackgroundOutput(),
    ) -> bytes:
        """
        Remove the background from an image.

        Args:
            file: Input image (JPEG, PNG, etc.)
            progress: Called with (stage, current, total) on the event loop
                      thread; `current` never decreases
            output: Format and quality of the returned image

        Returns:
            Encoded image bytes with a transparent background

        Raises:
            BackgroundRemovalError: model fetch, decode or inference failed
        """
        loop = asyncio.get_running_loop()

        def report(stage: str, current: int, total: int) -> None:
            if progress is not None:
                loop.call_soon_threadsafe(progress, stage, current, total)

        try:
            return await run_in_threadpool(self._remove_sync, file, output, report)
        except Exception as e:
            raise BackgroundRemovalError(f"Background removal failed for {file.name}: {e}") from e


# Singleton instance for use across the application
rembg_service = BackgroundRemovalService(model_name=settings.REMBG_MODEL)
