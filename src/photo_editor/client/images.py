"""Image payloads and size-bounded re-encoding before upload.

``ImagePreparer`` wraps Pillow. An image already under the byte ceiling is
returned untouched; anything larger is flattened to RGB and re-encoded as
JPEG, first at decreasing quality and then at decreasing size, until it
fits or the configured floor is reached.

Example:
    preparer = ImagePreparer(max_bytes=4 * 1024 * 1024)
    ready = await preparer.prepare(ImagePayload.from_data_uri(uri))
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
import math
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import ImageTooLarge, InvalidInput

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(
    r"^data:(?P<mime>image/[A-Za-z0-9.+-]+);base64,(?P<data>[A-Za-z0-9+/=\s]+)$"
)

OUTPUT_MIME_TYPE = "image/jpeg"


@dataclass(frozen=True)
class ImagePayload:
    """Encoded image bytes plus their declared MIME type."""

    data: bytes
    mime_type: str

    @classmethod
    def from_data_uri(cls, uri: str) -> "ImagePayload":
        if not isinstance(uri, str):
            raise InvalidInput("Image must be a data URI string")
        match = _DATA_URI_RE.match(uri.strip())
        if match is None:
            raise InvalidInput("Invalid image data URI")
        try:
            raw = base64.b64decode(match.group("data"), validate=False)
        except (binascii.Error, ValueError) as exc:
            raise InvalidInput("Invalid base64 image data") from exc
        if not raw:
            raise InvalidInput("Image data is empty")
        return cls(data=raw, mime_type=match.group("mime").lower())

    @classmethod
    def from_file(cls, path: str | Path) -> "ImagePayload":
        file_path = Path(path)
        mime_type, _ = mimetypes.guess_type(file_path.name)
        if not mime_type or not mime_type.startswith("image/"):
            raise InvalidInput(f"Not an image file: {file_path.name}")
        data = file_path.read_bytes()
        if not data:
            raise InvalidInput(f"Image file is empty: {file_path.name}")
        return cls(data=data, mime_type=mime_type)

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"

    @property
    def encoded_size(self) -> int:
        """Length of the data URI that is actually uploaded."""

        prefix = len(f"data:{self.mime_type};base64,")
        return prefix + 4 * math.ceil(len(self.data) / 3)


class ImagePreparer:
    """Guarantee that uploaded images fit under a byte ceiling.

    Args:
        max_bytes: Default ceiling on ``ImagePayload.encoded_size``.
        max_dimension: Longest side the first re-encode is scaled down to.
        min_dimension: Longest side below which no further downscaling happens.
        quality_steps: JPEG qualities tried, in order, at each size.
        scale_step: Factor applied to the longest side between size rounds.
        background: Color used when flattening transparent images.
    """

    def __init__(
        self,
        max_bytes: int,
        *,
        max_dimension: int = 2048,
        min_dimension: int = 256,
        quality_steps: Sequence[int] = (90, 80, 70, 60, 50, 40),
        scale_step: float = 0.75,
        background: Tuple[int, int, int] = (255, 255, 255),
    ) -> None:
        if max_bytes < 1:
            raise ValueError("max_bytes must be positive")
        if not quality_steps:
            raise ValueError("quality_steps must not be empty")
        if not 0 < scale_step < 1:
            raise ValueError("scale_step must be between 0 and 1")
        if min_dimension < 1 or max_dimension < min_dimension:
            raise ValueError("dimensions must satisfy 1 <= min <= max")
        self.max_bytes = max_bytes
        self.max_dimension = max_dimension
        self.min_dimension = min_dimension
        self.quality_steps = tuple(int(q) for q in quality_steps)
        self.scale_step = scale_step
        self.background = background

    async def prepare(
        self, image: ImagePayload, max_bytes: int | None = None
    ) -> ImagePayload:
        """Return ``image`` or a re-encoded copy whose encoded size fits."""

        budget = self.max_bytes if max_bytes is None else max_bytes
        if image.encoded_size <= budget:
            return image
        return await asyncio.to_thread(self.prepare_blocking, image, budget)

    def prepare_blocking(
        self, image: ImagePayload, max_bytes: int | None = None
    ) -> ImagePayload:
        budget = self.max_bytes if max_bytes is None else max_bytes
        if image.encoded_size <= budget:
            return image

        source = self._decode(image, budget)
        smallest: int | None = None
        attempts = 0

        for width, height in self._size_ladder(source.size):
            frame = source
            if (width, height) != source.size:
                frame = source.resize((width, height), Image.LANCZOS)
            for quality in self.quality_steps:
                attempts += 1
                candidate = self._encode(frame, quality)
                size = candidate.encoded_size
                if smallest is None or size < smallest:
                    smallest = size
                if size <= budget:
                    logger.debug(
                        "Prepared image %dx%d q=%d: %d -> %d bytes in %d attempts",
                        width,
                        height,
                        quality,
                        image.encoded_size,
                        size,
                        attempts,
                    )
                    return candidate

        logger.warning(
            "Image could not be reduced below %d bytes after %d attempts",
            budget,
            attempts,
        )
        raise ImageTooLarge(budget, smallest)

    def _decode(self, image: ImagePayload, budget: int) -> Image.Image:
        try:
            src = Image.open(io.BytesIO(image.data))
            src.load()
        except Image.DecompressionBombError as exc:
            logger.warning("Refusing to decode oversized image: %s", exc)
            raise ImageTooLarge(budget) from exc
        except (UnidentifiedImageError, OSError) as exc:
            raise InvalidInput("Image data is not a supported image format") from exc

        # Bake in the EXIF orientation; re-encoding drops the tag
        src = ImageOps.exif_transpose(src)

        # Flatten alpha so the image can be stored as JPEG
        src = src.convert("RGBA")
        flattened = Image.new("RGB", src.size, self.background)
        flattened.paste(src, mask=src.split()[3])
        return flattened

    def _size_ladder(self, size: Tuple[int, int]) -> Iterator[Tuple[int, int]]:
        """Yield the sizes to try, each scaled from ``size`` directly."""

        width, height = size
        source_longest = max(width, height)
        longest = min(source_longest, self.max_dimension)
        while True:
            factor = longest / source_longest
            yield max(1, round(width * factor)), max(1, round(height * factor))
            if longest <= self.min_dimension:
                return
            longest = max(self.min_dimension, int(longest * self.scale_step))

    @staticmethod
    def _encode(frame: Image.Image, quality: int) -> ImagePayload:
        out_io = io.BytesIO()
        frame.save(out_io, format="JPEG", quality=quality, optimize=True)
        return ImagePayload(data=out_io.getvalue(), mime_type=OUTPUT_MIME_TYPE)


__all__ = ["ImagePayload", "ImagePreparer", "OUTPUT_MIME_TYPE"]
