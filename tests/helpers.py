"""Test helpers: image builders and collaborator fakes.

The fakes keep tests away from rembg model downloads and let a test hold
an operation mid-flight.
"""

from __future__ import annotations

import asyncio
from io import BytesIO
from typing import Callable, List, Optional, Sequence, Tuple

from PIL import Image

from services.compression_service import CompressionOptions, CompressionService
from services.image_file import ImageFile
from services.rembg_service import BackgroundOutput, BackgroundRemovalService


def image_bytes(
    fmt: str = "JPEG",
    size: Tuple[int, int] = (64, 48),
    color=(200, 30, 30),
    mode: str = "RGB",
    **save_kwargs,
) -> bytes:
    buffer = BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt, **save_kwargs)
    return buffer.getvalue()


def png_file(name: str = "portrait.png", size: Tuple[int, int] = (32, 32)) -> ImageFile:
    return ImageFile(name=name, content_type="image/png", data=image_bytes("PNG", size, (10, 120, 200, 255), "RGBA"))


def sized_file(name: str, content_type: str, kb: int) -> ImageFile:
    """A file of exactly `kb` KB; content is never decoded by the fakes."""
    return ImageFile(name=name, content_type=content_type, data=b"x" * (kb * 1024))


class FakeCompressor(CompressionService):
    """Returns a canned result, optionally after `gate` is set."""

    def __init__(self, result_kb: int = 120, error: Optional[Exception] = None):
        self.result_kb = result_kb
        self.error = error
        self.calls: List[Tuple[ImageFile, CompressionOptions]] = []
        self.gate: Optional[asyncio.Event] = None
        self.started: Optional[asyncio.Event] = None

    async def compress(self, file: ImageFile, options: CompressionOptions) -> ImageFile:
        self.calls.append((file, options))
        if self.started is not None:
            self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return ImageFile(
            name=file.name,
            content_type=options.target_format.value,
            data=b"y" * (self.result_kb * 1024),
        )


class FakeRemover(BackgroundRemovalService):
    """Reports `steps` as progress, then returns a small transparent PNG.

    Like FakeCompressor, it waits on `gate` when one is set.
    """

    def __init__(
        self,
        steps: Sequence[Tuple[int, int]] = ((50, 100), (100, 100)),
        error: Optional[Exception] = None,
        observer: Optional[Callable[[], None]] = None,
    ):
        super().__init__(model_name="fake")
        self.steps = list(steps)
        self.error = error
        self.observer = observer
        self.calls: List[ImageFile] = []
        self.blob = image_bytes("PNG", (16, 16), (0, 0, 0, 0), "RGBA")
        self.gate: Optional[asyncio.Event] = None
        self.started: Optional[asyncio.Event] = None

    async def remove_background(self, file, progress=None, output=BackgroundOutput()):
        self.calls.append(file)
        if self.started is not None:
            self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        for current, total in self.steps:
            if progress is not None:
                progress("compute:inference", current, total)
            if self.observer is not None:
                self.observer()
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.blob

