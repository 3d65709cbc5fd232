"""
Compression Service
===================
Resizes and re-encodes images towards a size ceiling with Pillow.

Behaves like the browser-side compressor the web client used:
1. Downscale so the longest side fits `max_dimension`
2. Encode at `initial_quality` in the target format
3. While the result is over `max_size_mb`, shrink by 5% and lower the
   quality by 5%, up to `max_iterations` passes
"""

from dataclasses import dataclass
from io import BytesIO
from typing import Tuple
import logging

from fastapi.concurrency import run_in_threadpool
from PIL import Image, ImageOps, UnidentifiedImageError

from config import settings
from services.errors import CompressionError
from services.image_file import ImageFile, OutputFormat

logger = logging.getLogger(__name__)

SHRINK_FACTOR = 0.95


@dataclass(frozen=True)
class CompressionOptions:
    """Options for a single compress call."""
    max_size_mb: float = 1.0
    max_dimension: int = 1920
    use_worker: bool = True
    initial_quality: float = 0.8  # 0..1
    target_format: OutputFormat = OutputFormat.JPEG
    max_iterations: int = 10

    @property
    def max_size_bytes(self) -> int:
        return int(self.max_size_mb * 1024 * 1024)


def _encoder_quality(fmt: OutputFormat, quality: float) -> int:
    """Map a 0..1 quality fraction to the encoder's own scale."""
    ceiling = 95 if fmt is OutputFormat.JPEG else 100
    return max(1, min(ceiling, round(quality * 100)))


def _prepare(image: Image.Image, fmt: OutputFormat) -> Image.Image:
    """Convert to a mode the target encoder accepts."""
    has_alpha = image.mode in ("RGBA", "LA") or (
        image.mode == "P" and "transparency" in image.info
    )
    if fmt is OutputFormat.JPEG:
        if has_alpha:
            # JPEG has no alpha channel; flatten onto white
            rgba = image.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.getchannel("A"))
            return background
        return image.convert("RGB")
    if has_alpha:
        return image.convert("RGBA")
    return image.convert("RGB")


def _encode(image: Image.Image, fmt: OutputFormat, quality: float) -> bytes:
    buffer = BytesIO()
    if fmt is OutputFormat.PNG:
        image.save(buffer, format="PNG", optimize=True)
    elif fmt is OutputFormat.JPEG:
        image.save(
            buffer,
            format="JPEG",
            quality=_encoder_quality(fmt, quality),
            optimize=True,
            progressive=True,
        )
    else:
        image.save(buffer, format=fmt.pil_format, quality=_encoder_quality(fmt, quality))
    return buffer.getvalue()


def _fit_within(size: Tuple[int, int], max_dimension: int) -> Tuple[int, int]:
    width, height = size
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height
    scale = max_dimension / longest
    return max(1, round(width * scale)), max(1, round(height * scale))


def compress_image(file: ImageFile, options: CompressionOptions) -> ImageFile:
    """
    Compress an image synchronously.

    Args:
        file: Source image
        options: Size ceiling, dimension ceiling, quality and target format

    Returns:
        A new ImageFile with the source name and the target MIME type

    Raises:
        CompressionError: if the input cannot be decoded or the target
                          encoder is unavailable
    """
    fmt = options.target_format
    try:
        source = Image.open(BytesIO(file.data))
        source = ImageOps.exif_transpose(source)
        image = _prepare(source, fmt)
    except (UnidentifiedImageError, OSError) as e:
        raise CompressionError(f"Cannot decode {file.name}: {e}") from e

    target_size = _fit_within(image.size, options.max_dimension)
    resized = target_size != image.size
    if resized:
        image = image.resize(target_size, Image.Resampling.LANCZOS)

    quality = options.initial_quality
    try:
        data = _encode(image, fmt, quality)
        iteration = 0
        while len(data) > options.max_size_bytes and iteration < options.max_iterations:
            iteration += 1
            width = max(1, round(image.width * SHRINK_FACTOR))
            height = max(1, round(image.height * SHRINK_FACTOR))
            image = image.resize((width, height), Image.Resampling.LANCZOS)
            quality *= SHRINK_FACTOR
            data = _encode(image, fmt, quality)
            resized = True
            logger.debug(
                "Pass %d: %dx%d q=%.3f -> %d bytes", iteration, width, height, quality, len(data)
            )
    except (KeyError, OSError, ValueError) as e:
        # Pillow raises KeyError for unknown save formats
        raise CompressionError(f"Cannot encode {fmt.value}: {e}") from e

    if not resized and file.content_type == fmt.value and len(data) > file.size:
        logger.debug("Re-encoding grew %s; keeping the source bytes", file.name)
        data = file.data

    return ImageFile(name=file.name, content_type=fmt.value, data=data)


class CompressionService:
    """Async front for compress_image."""

    async def compress(self, file: ImageFile, options: CompressionOptions) -> ImageFile:
        """Compress off the event loop unless the caller opts out of the worker."""
        if options.use_worker:
            return await run_in_threadpool(compress_image, file, options)
        return compress_image(file, options)

    def default_options(self, initial_quality: float, target_format: OutputFormat) -> CompressionOptions:
        """Options with the configured ceilings."""
        return CompressionOptions(
            max_size_mb=settings.COMPRESS_MAX_SIZE_MB,
            max_dimension=settings.COMPRESS_MAX_DIMENSION,
            use_worker=True,
            initial_quality=initial_quality,
            target_format=target_format,
            max_iterations=settings.COMPRESS_MAX_ITERATIONS,
        )


# Singleton instance for use across the application
compression_service = CompressionService()
