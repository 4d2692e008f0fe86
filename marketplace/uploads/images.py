"""
Local image processing for /api/upload.

Every accepted upload is re-encoded as webp: a full size copy bounded to
1600px and a 320px thumbnail, both keeping the aspect ratio and never
enlarging. The original bytes are never written to disk.
"""
import io
import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from marketplace.errors import PayloadTooLargeError, UnsupportedMediaTypeError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {"image/jpeg", "image/png", "image/webp"}
FULL_SIZE = (1600, 1600)
THUMB_SIZE = (320, 320)
FULL_QUALITY = 80
THUMB_QUALITY = 78

UNSAFE_CHARS_RE = re.compile(r"[^\w.\-]")
WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class StoredImage:
    full_name: str
    thumb_name: str
    size: int
    width: int
    height: int


def safe_stem(filename: str) -> str:
    """Filename without extension, reduced to word characters, dots and dashes."""
    stem = os.path.splitext(os.path.basename(filename or ""))[0]
    stem = UNSAFE_CHARS_RE.sub("", WHITESPACE_RE.sub("_", stem))
    return stem or "file"


def _webp_ready(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "RGBA"):
        return img
    has_alpha = img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info)
    return img.convert("RGBA" if has_alpha else "RGB")


def _save_webp(img: Image.Image, bounds: Tuple[int, int], quality: int, path: str) -> None:
    copy = img.copy()
    copy.thumbnail(bounds)
    copy.save(path, "WEBP", quality=quality, method=4)


def process_image(data: bytes, filename: str, directory: str, max_pixels: int) -> StoredImage:
    """
    Decode ``data`` and write the full size and thumbnail webp files.

    Blocking (Pillow and file I/O); call it from a worker thread.

    Raises:
        PayloadTooLargeError: more than ``max_pixels`` pixels
        UnsupportedMediaTypeError: not a decodable jpeg, png or webp
    """
    try:
        img = Image.open(io.BytesIO(data))
    except Image.DecompressionBombError:
        raise PayloadTooLargeError("Image too large")
    except (UnidentifiedImageError, OSError):
        raise UnsupportedMediaTypeError("Unsupported image format")

    if img.format not in ("JPEG", "PNG", "WEBP"):
        raise UnsupportedMediaTypeError("File type not allowed (use JPG, PNG or WEBP)")

    width, height = img.size
    if width * height > max_pixels:
        raise PayloadTooLargeError(
            f"Image too large ({width}x{height}). Limit is about {int(max_pixels ** 0.5)} px per side",
            details={"width": width, "height": height},
        )

    try:
        img = _webp_ready(ImageOps.exif_transpose(img))
    except (OSError, ValueError):
        raise UnsupportedMediaTypeError("Could not process the image")

    os.makedirs(directory, exist_ok=True)
    base = f"{int(time.time() * 1000)}_{safe_stem(filename)}"
    full_name, thumb_name = f"{base}.webp", f"{base}_sm.webp"
    full_path = os.path.join(directory, full_name)
    thumb_path = os.path.join(directory, thumb_name)

    try:
        _save_webp(img, FULL_SIZE, FULL_QUALITY, full_path)
        _save_webp(img, THUMB_SIZE, THUMB_QUALITY, thumb_path)
    except (OSError, ValueError):
        for path in (full_path, thumb_path):
            if os.path.exists(path):
                os.remove(path)
        logger.exception(f"Could not encode upload {filename!r}")
        raise UnsupportedMediaTypeError("Could not process the image")

    return StoredImage(
        full_name=full_name,
        thumb_name=thumb_name,
        size=os.path.getsize(full_path),
        width=img.width,
        height=img.height,
    )
