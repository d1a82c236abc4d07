"""
Floor plan image decoding.

Turns uploaded raster bytes (PNG, JPEG, ...) into a pixel-dimensioned
image record and the data URI stored in project documents. Uses Pillow.
"""

from dataclasses import dataclass
from typing import Optional
import base64
import binascii
import io
import logging
import re

from PIL import Image, UnidentifiedImageError

from ..core.errors import ImageDecodeError

logger = logging.getLogger(__name__)


DATA_URI_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^;,]+)*?);base64,(?P<data>.*)$", re.DOTALL)


@dataclass
class FloorPlanImage:
    """
    A decoded floor plan image.

    width and height are None when the stored data URI could not be decoded
    (kept so a loaded project saves back unchanged).
    """

    data_uri: str
    width: Optional[int] = None
    height: Optional[int] = None
    mime_type: Optional[str] = None

    @property
    def is_decoded(self) -> bool:
        return self.width is not None and self.height is not None

    def to_dict(self) -> dict:
        """Image metadata for API responses; the data URI itself is omitted."""
        return {
            "width": self.width,
            "height": self.height,
            "mime_type": self.mime_type,
        }


def decode_image(data: bytes, max_bytes: Optional[int] = None) -> FloorPlanImage:
    """
    Decode raw image bytes.

    Args:
        data: Raw file contents
        max_bytes: Optional upload size limit

    Returns:
        FloorPlanImage with dimensions and a base64 data URI

    Raises:
        ImageDecodeError: If the bytes are empty, too large, or not an image.
    """
    if not data:
        raise ImageDecodeError("Image data is empty")
    if max_bytes is not None and len(data) > max_bytes:
        raise ImageDecodeError(f"Image is {len(data)} bytes, limit is {max_bytes}")

    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            image_format = img.format
    except Image.DecompressionBombError as e:
        raise ImageDecodeError(f"Image has too many pixels: {e}") from e
    except (UnidentifiedImageError, OSError) as e:
        raise ImageDecodeError(f"Could not decode image: {e}") from e

    mime_type = Image.MIME.get(image_format or "", "application/octet-stream")
    encoded = base64.b64encode(data).decode("ascii")
    logger.info(f"Decoded {image_format} image: {width}x{height}")

    return FloorPlanImage(
        data_uri=f"data:{mime_type};base64,{encoded}",
        width=width,
        height=height,
        mime_type=mime_type,
    )


def decode_data_uri(src: str) -> FloorPlanImage:
    """
    Decode a base64 data URI as stored in a project document.

    Raises:
        ImageDecodeError: If src is not a base64 data URI or holds no image.
    """
    match = DATA_URI_PATTERN.match(src.strip())
    if match is None:
        raise ImageDecodeError("Image source is not a base64 data URI")

    try:
        data = base64.b64decode(match.group("data"), validate=False)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Invalid base64 image payload: {e}") from e

    image = decode_image(data)
    # Keep the caller's exact string so documents round-trip unchanged
    image.data_uri = src
    return image
