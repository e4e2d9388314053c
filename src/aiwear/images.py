"""Image payload helpers: data URLs, downloads, resizing and compression."""

from __future__ import annotations

import base64
import binascii
import io
import logging
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

import requests
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+/-]+);base64,(?P<data>.*)$", re.DOTALL)
DATA_URL_PREFIX_PATTERN = re.compile(r"^data:image/[\w.+-]+;base64,")
DOWNLOAD_TIMEOUT_SECONDS: int = 60


# ---------------------------------------------------------------------------
# Data URL helpers


def is_data_url(value: str) -> bool:
    return bool(value) and value.startswith("data:")


def _b64decode_lenient(payload: str) -> bytes:
    cleaned = payload.strip().replace("-", "+").replace("_", "/")
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"Failed to decode Base64: {exc}") from exc


def decode_data_url(value: str) -> Tuple[bytes, str]:
    """Return ``(bytes, mime_type)`` for a ``data:<mime>;base64,<payload>`` string."""

    match = DATA_URL_PATTERN.match(value or "")
    if not match:
        raise ValueError("Invalid Base64 string: expected a data URL with a comma separator")
    payload = match.group("data")
    if not payload.strip():
        raise ValueError("Invalid Base64 string: Empty data")
    return _b64decode_lenient(payload), match.group("mime")


def encode_data_url(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_base64_image(value: str) -> bytes:
    """Decode base64 image data with or without a ``data:image/...`` prefix."""

    stripped = DATA_URL_PREFIX_PATTERN.sub("", (value or "").strip())
    if not stripped:
        raise ValueError("Invalid Base64 string: Empty data")
    return _b64decode_lenient(stripped)


def load_image_bytes(source: str, *, timeout: int = DOWNLOAD_TIMEOUT_SECONDS) -> bytes:
    """Resolve a data URL or an http(s) URL into raw image bytes."""

    if is_data_url(source):
        data, _ = decode_data_url(source)
        return data
    if source.startswith(("http://", "https://")):
        response = requests.get(source, timeout=timeout)
        response.raise_for_status()
        return response.content
    raise ValueError("Expected an image data URL or an http(s) URL.")


def guess_mime_type(path: Path) -> str:
    mime_type, _ = mimetypes.guess_type(path.as_posix())
    if not mime_type:
        raise ValueError(
            f"Could not infer a MIME type for '{path.name}'. Rename it with a known extension."
        )
    return mime_type


# ---------------------------------------------------------------------------
# Resizing & compression


def resize_image(data: bytes, max_dim: int = 640, quality: int = 80) -> bytes:
    """Fit ``data`` inside a ``max_dim`` square and re-encode it as JPEG.

    Bytes Pillow cannot decode are returned untouched so the model can still
    have a go at them.
    """

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError):
        logger.warning("Could not decode image for resizing; sending original bytes.")
        return data

    image = image.convert("RGB")
    image.thumbnail((max_dim, max_dim), Image.Resampling.LANCZOS)
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


@dataclass(slots=True)
class OptimizedImage:
    data: bytes
    mime_type: str
    width: int
    height: int
    original_size: int
    optimized_size: int


def optimize_image(
    data: bytes,
    *,
    max_width: int = 1200,
    max_height: int = 1200,
    quality: int = 85,
    fmt: str = "webp",
) -> OptimizedImage:
    """Shrink an image to fit the bounds (keeping aspect ratio) and compress it."""

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError("Failed to load image") from exc

    width, height = image.size
    if width > max_width or height > max_height:
        ratio = min(max_width / width, max_height / height)
        width, height = round(width * ratio), round(height * ratio)
        image = image.resize((width, height), Image.Resampling.LANCZOS)

    pil_format = "WEBP" if fmt == "webp" else "JPEG"
    if pil_format == "JPEG":
        image = image.convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format=pil_format, quality=quality)
    optimized = buffer.getvalue()

    return OptimizedImage(
        data=optimized,
        mime_type="image/webp" if fmt == "webp" else "image/jpeg",
        width=width,
        height=height,
        original_size=len(data),
        optimized_size=len(optimized),
    )


def compress_for_wardrobe(data: bytes) -> OptimizedImage:
    return optimize_image(data, max_width=1200, max_height=1200, quality=85, fmt="webp")


def extension_for(fmt: str) -> str:
    return "webp" if fmt == "webp" else "jpg"
