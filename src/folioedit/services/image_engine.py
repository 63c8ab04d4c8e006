"""
FolioEdit - Image Engine

Raster primitives used by the render cache: decoding stamp artwork,
alpha-blending overlays onto page rasters, rotating, drawing text and
converting the result to a numpy pixel buffer.

All images handled here are Pillow images in RGBA mode.
"""

import io
import logging
from functools import lru_cache

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from folioedit.constants import TEXT_LINE_HEIGHT_EM

logger = logging.getLogger(__name__)

_PENDING_FILL = (235, 235, 235, 255)
_ERROR_FILL = (230, 230, 230, 255)
_ERROR_STROKE = (204, 51, 51, 255)


def decode(data: bytes) -> Image.Image:
    """Decode image bytes (PNG, JPEG, ...) into an RGBA image.

    Raises:
        ValueError: If the bytes are not a readable image
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"Cannot decode image: {e}") from e
    return img.convert("RGBA")


def encode_png(image: Image.Image) -> bytes:
    """Encode an image as PNG bytes."""
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def resize(image: Image.Image, width: int, height: int) -> Image.Image:
    """Resize *image* to exactly *width* x *height* pixels (minimum 1x1)."""
    size = (max(1, int(round(width))), max(1, int(round(height))))
    if image.size == size:
        return image
    return image.resize(size, Image.Resampling.LANCZOS)


def composite(base: Image.Image, overlay: Image.Image, offset: tuple[int, int]) -> Image.Image:
    """Alpha-blend *overlay* onto *base* with its top-left corner at *offset*.

    Parts of the overlay falling outside the base are clipped. The base
    image is not modified; a new image is returned.
    """
    result = base.convert("RGBA") if base.mode != "RGBA" else base.copy()
    x, y = int(round(offset[0])), int(round(offset[1]))

    # Clip the overlay to the base bounds; alpha_composite rejects negative offsets
    left, top = max(0, -x), max(0, -y)
    right = min(overlay.width, result.width - x)
    bottom = min(overlay.height, result.height - y)
    if right <= left or bottom <= top:
        return result

    src = overlay.convert("RGBA") if overlay.mode != "RGBA" else overlay
    if (left, top, right, bottom) != (0, 0, overlay.width, overlay.height):
        src = src.crop((left, top, right, bottom))

    result.alpha_composite(src, dest=(x + left, y + top))
    return result


def rotate(image: Image.Image, degrees: int) -> Image.Image:
    """Rotate *image* clockwise by a multiple of 90 degrees."""
    rot = degrees % 360
    if rot == 90:
        return image.transpose(Image.Transpose.ROTATE_270)
    elif rot == 180:
        return image.transpose(Image.Transpose.ROTATE_180)
    elif rot == 270:
        return image.transpose(Image.Transpose.ROTATE_90)
    return image


@lru_cache(maxsize=32)
def _load_font(size_px: int, font_file: str = "") -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    if font_file:
        try:
            return ImageFont.truetype(font_file, size_px)
        except OSError as e:
            logger.warning(f"Cannot load font {font_file}, using built-in font: {e}")
    return ImageFont.load_default(size=size_px)


def render_text(
    text: str, font_size_px: float, width: int, height: int, font_file: str = ""
) -> Image.Image:
    """Draw *text* in black on a transparent box of *width* x *height* pixels.

    Matches the PDF export layout. The first baseline sits one font size
    below the top of the box and later lines are TEXT_LINE_HEIGHT_EM apart.
    Text outside the box is clipped.
    """
    box = Image.new("RGBA", (max(1, int(width)), max(1, int(height))), (0, 0, 0, 0))
    draw = ImageDraw.Draw(box)
    font = _load_font(max(1, int(round(font_size_px))), font_file)
    baseline = font_size_px
    for line in text.splitlines() or [""]:
        draw.text((0, baseline), line, fill=(0, 0, 0, 255), font=font, anchor="ls")
        baseline += font_size_px * TEXT_LINE_HEIGHT_EM
    return box


def placeholder(width: int, height: int, error: bool = False) -> Image.Image:
    """Blank page-shaped image shown while a render is pending or after it failed."""
    width, height = max(1, int(width)), max(1, int(height))
    img = Image.new("RGBA", (width, height), _ERROR_FILL if error else _PENDING_FILL)
    if error:
        draw = ImageDraw.Draw(img)
        line_width = max(2, width // 30)
        m = int(min(width, height) * 0.2)
        draw.line((m, m, width - m, height - m), fill=_ERROR_STROKE, width=line_width)
        draw.line((width - m, m, m, height - m), fill=_ERROR_STROKE, width=line_width)
    return img


def to_buffer(image: Image.Image) -> np.ndarray:
    """Convert an image to a read-only HxWx4 uint8 RGBA array."""
    buffer = np.asarray(image.convert("RGBA"), dtype=np.uint8).copy()
    buffer.setflags(write=False)
    return buffer
