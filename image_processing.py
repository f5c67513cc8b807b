"""
Image I/O for the document scanner: decoding, orientation, encoding.
"""

import asyncio
import base64
import io
import logging
from typing import Optional, Sequence

from PIL import ExifTags, Image, UnidentifiedImageError

from scanner import ImageDecodeError, PerspectiveWarper, RasterImage
from scanner.transformer import output_size_for
from scanner.types import PointLike

logger = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY = 92

_ORIENTATION_TRANSPOSE = {
    2: Image.Transpose.FLIP_LEFT_RIGHT,
    3: Image.Transpose.ROTATE_180,
    4: Image.Transpose.FLIP_TOP_BOTTOM,
    5: Image.Transpose.TRANSPOSE,
    6: Image.Transpose.ROTATE_270,
    7: Image.Transpose.TRANSVERSE,
    8: Image.Transpose.ROTATE_90,
}


def bytes_to_base64(image_bytes: bytes) -> str:
    """Convert image bytes to base64 string."""
    return base64.b64encode(image_bytes).decode('utf-8')


def base64_to_bytes(base64_string: str) -> bytes:
    """Convert base64 string back to raw bytes."""
    return base64.b64decode(base64_string)


def fix_orientation_from_exif(image: Image.Image) -> Image.Image:
    """
    Fix image orientation based on EXIF data.

    Phone cameras store pixels in sensor order and record the rotation in
    the Orientation tag; browsers apply it when displaying, so corners are
    picked on the rotated image.

    Args:
        image: PIL Image

    Returns:
        Rotated image if EXIF orientation found
    """
    orientation = image.getexif().get(ExifTags.Base.Orientation)
    method = _ORIENTATION_TRANSPOSE.get(orientation)
    if method is None:
        return image
    logger.debug(f"Applying EXIF orientation {orientation}")
    return image.transpose(method)


def decode_image_sync(data: bytes) -> RasterImage:
    """
    Decode encoded image bytes into an RGBA raster.

    Args:
        data: Encoded image (JPEG, PNG, WebP, ...).

    Returns:
        Upright RGBA RasterImage.

    Raises:
        ImageDecodeError: If the bytes are empty or not a readable image.
    """
    if not data:
        raise ImageDecodeError("No image data")

    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            raster = RasterImage.from_pil(fix_orientation_from_exif(image))
    except (
        UnidentifiedImageError,
        OSError,
        ValueError,
        SyntaxError,
        EOFError,
        Image.DecompressionBombError,
    ) as e:
        logger.warning(f"Failed to decode {len(data)} bytes of image data: {e}")
        raise ImageDecodeError(f"Could not decode image: {e}") from e

    logger.info(f"Decoded {raster.width}x{raster.height} image")
    return raster


async def decode_image(data: bytes) -> RasterImage:
    """Decode image bytes in a worker thread. See decode_image_sync."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, decode_image_sync, data)


def encode_image(
    image: RasterImage, format: str = 'JPEG', quality: int = DEFAULT_JPEG_QUALITY
) -> bytes:
    """
    Encode a raster to bytes.

    JPEG has no alpha channel, so pixels are flattened to RGB; transparent
    pixels (outside the photo) come out black.
    """
    pil_image = image.to_pil()
    buffer = io.BytesIO()
    if format.upper() in ('JPEG', 'JPG'):
        pil_image.convert('RGB').save(buffer, format='JPEG', quality=quality)
    else:
        pil_image.save(buffer, format=format.upper())
    return buffer.getvalue()


def image_to_base64(
    image: RasterImage, format: str = 'JPEG', quality: int = DEFAULT_JPEG_QUALITY
) -> str:
    """Encode a raster and return it as a base64 string."""
    return bytes_to_base64(encode_image(image, format=format, quality=quality))


async def warp_from_quad(
    data: bytes,
    quad: Sequence[PointLike],
    quality: int = DEFAULT_JPEG_QUALITY,
    warper: Optional[PerspectiveWarper] = None,
) -> bytes:
    """
    Flatten the quad region of an encoded photo and return it as JPEG.

    The output keeps the photo's natural width and height.

    Raises:
        ImageDecodeError: If the photo cannot be decoded.
        DegenerateCorrespondenceError: If the quad is degenerate.
    """
    warper = warper or PerspectiveWarper()
    source = await decode_image(data)
    out_w, out_h = output_size_for(source)
    flattened = await warper.warp_async(source, quad, out_w, out_h)

    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, encode_image, flattened, 'JPEG', quality)
