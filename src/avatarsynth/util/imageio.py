from __future__ import annotations

import io
from pathlib import Path

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import InputError
from ..schemas.image import RasterImage

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tif", ".tiff"}


def load_raster(source: bytes | bytearray | str | Path) -> RasterImage:
    """Decode PNG/JPEG/... bytes or a file path into an RGBA ``RasterImage``.

    Raises ``InputError`` for empty, unreadable, oversized or zero-size images.
    """
    if isinstance(source, (bytes, bytearray)):
        if len(source) == 0:
            raise InputError("Image payload is empty")
        fp = io.BytesIO(bytes(source))
        label = f"<{len(source)} bytes>"
    else:
        path = Path(source)
        if not path.is_file():
            raise InputError(f"Image file not found: {path}")
        if path.stat().st_size == 0:
            raise InputError(f"Image file is empty: {path}")
        fp = path
        label = str(path)

    try:
        with Image.open(fp) as im:
            im.load()
            im = ImageOps.exif_transpose(im)
            rgba = np.array(im.convert("RGBA"))
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise InputError(f"Could not decode image {label}: {type(e).__name__}: {e}") from e

    if rgba.size == 0:
        raise InputError(f"Image decode produced an empty buffer: {label}")
    return RasterImage(rgba)


def downsample(image: RasterImage, resolution: int) -> RasterImage:
    """Resize to ``resolution`` x ``resolution`` (area filter when shrinking)."""
    if image.width == resolution and image.height == resolution:
        return image
    shrinking = resolution < max(image.width, image.height)
    interp = cv2.INTER_AREA if shrinking else cv2.INTER_LINEAR
    resized = cv2.resize(np.asarray(image.pixels), (resolution, resolution), interpolation=interp)
    return RasterImage(resized)


def encode_png(image: RasterImage) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(np.ascontiguousarray(image.pixels)).save(buf, format="PNG")
    return buf.getvalue()


def iter_images(root: Path) -> list[Path]:
    if root.is_file():
        return [root]
    out = [p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in IMAGE_EXTS]
    out.sort()
    return out
