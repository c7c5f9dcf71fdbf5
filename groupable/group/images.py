import io
import logging
from typing import Optional

from PIL import Image, UnidentifiedImageError

LOGGER = logging.getLogger(__name__)


def decode_image(data: Optional[bytes]) -> Optional[Image.Image]:
    """
    Decode avatar bytes into a display image.

    Returns None for empty input or bytes Pillow cannot read, so a bad
    avatar payload never blocks the write that carried it.
    """
    if not data:
        return None

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
        return image
    except (UnidentifiedImageError, OSError) as e:
        LOGGER.warning(f"Could not decode avatar image ({len(data)} bytes): {e}")
        return None


def to_bytes(image: Optional[Image.Image], format: str = "PNG") -> Optional[bytes]:
    if image is None:
        return None
    buffer = io.BytesIO()
    image.save(buffer, format=format)
    return buffer.getvalue()
