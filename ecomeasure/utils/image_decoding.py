"""
Image decoding utilities for uploaded field photos.

Turns encoded JPEG/PNG/WebP bytes into PixelBuffers. Decoding belongs to
the caller side of the engine; analyzers only ever see decoded buffers.
"""
from typing import Iterable, Optional
import io
import logging

import numpy as np
from PIL import Image, UnidentifiedImageError

from ecomeasure.domain.errors import InvalidImageData
from ecomeasure.domain.models import PixelBuffer

logger = logging.getLogger(__name__)


def validate_upload(
    content_type: Optional[str],
    size: int,
    allowed_types: Iterable[str],
    max_bytes: int,
) -> None:
    """
    Check an upload's declared type and size before decoding.

    Args:
        content_type: Declared MIME type, if any
        size: Payload size in bytes
        allowed_types: Accepted MIME types
        max_bytes: Maximum payload size

    Raises:
        InvalidImageData: If the type is not accepted or the payload is empty or too large
    """
    allowed = set(allowed_types)
    if content_type is not None and content_type not in allowed:
        raise InvalidImageData(
            f"Invalid file type '{content_type}'. Supported types: {', '.join(sorted(allowed))}"
        )
    if size == 0:
        raise InvalidImageData("Image file is empty")
    if size > max_bytes:
        raise InvalidImageData(
            f"File too large ({size} bytes). Maximum size is {max_bytes // (1024 * 1024)}MB"
        )


def decode_image(data: bytes, max_dimension: int = 0) -> PixelBuffer:
    """
    Decode an encoded image into an RGB or RGBA PixelBuffer.

    Images with transparency keep their alpha channel; everything else is
    converted to RGB.

    Args:
        data: Encoded image bytes
        max_dimension: Downscale so the longer side is at most this many
            pixels (0 disables downscaling)

    Returns:
        PixelBuffer

    Raises:
        InvalidImageData: If the bytes cannot be decoded
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            has_alpha = img.mode in ("RGBA", "LA", "PA") or "transparency" in img.info
            converted = img.convert("RGBA" if has_alpha else "RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise InvalidImageData(f"Failed to decode image: {e}")

    if max_dimension and max(converted.size) > max_dimension:
        original_size = converted.size
        converted.thumbnail((max_dimension, max_dimension))
        logger.debug(f"Downscaled image from {original_size} to {converted.size}")

    return PixelBuffer.from_array(np.array(converted))
