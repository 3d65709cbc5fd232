"""
Image File Model
================
The in-memory equivalent of a browser `File`: raw bytes plus the name and
MIME type they were uploaded (or produced) with.
"""

from dataclasses import dataclass, field
from enum import Enum


class OutputFormat(str, Enum):
    """Target formats offered by the converter."""

    JPEG = "image/jpeg"
    PNG = "image/png"
    AVIF = "image/avif"

    @property
    def extension(self) -> str:
        """File extension used for downloads (the MIME subtype)."""
        return self.value.split("/")[1]

    @property
    def pil_format(self) -> str:
        """Encoder name understood by Pillow."""
        return self.extension.upper()


@dataclass(frozen=True)
class ImageFile:
    """Immutable image payload owned by a session."""

    name: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def size_kb(self) -> float:
        return round(self.size / 1024, 2)

    @property
    def basename(self) -> str:
        """Name up to the first dot, used to build derived filenames."""
        stem = self.name.split(".")[0]
        return stem or "image"

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")
