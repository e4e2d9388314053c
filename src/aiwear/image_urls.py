"""Storage URL builders for wardrobe images.

Paths stored in ``wardrobe_items.image_url`` are bucket-relative; these
helpers turn them into public or render (resize-on-the-fly) URLs. Entries that
are already full URLs or data URLs pass through untouched.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode

from aiwear.config import WARDROBE_BUCKET, load_settings


def _base_url(base_url: Optional[str]) -> str:
    return (base_url if base_url is not None else load_settings().supabase_url).rstrip("/")


def get_storage_url(
    path: str, *, base_url: Optional[str] = None, bucket: str = WARDROBE_BUCKET
) -> str:
    return f"{_base_url(base_url)}/storage/v1/object/public/{bucket}/{path}"


def get_optimized_url(
    path: str,
    *,
    width: Optional[int] = None,
    height: Optional[int] = None,
    quality: Optional[int] = None,
    format: Optional[str] = None,
    resize: Optional[str] = None,
    base_url: Optional[str] = None,
    bucket: str = WARDROBE_BUCKET,
) -> str:
    """Return a render URL, e.g. ``.../render/image/public/wardrobe/u/item.webp?width=200``."""

    params = [
        (key, value)
        for key, value in (
            ("width", width),
            ("height", height),
            ("quality", quality),
            ("format", format),
            ("resize", resize),
        )
        if value
    ]
    url = f"{_base_url(base_url)}/storage/v1/render/image/public/{bucket}/{path}"
    return f"{url}?{urlencode(params)}" if params else url


def get_thumbnail_url(path: str, *, base_url: Optional[str] = None) -> str:
    return get_optimized_url(
        path, width=200, quality=80, format="webp", resize="cover", base_url=base_url
    )


def get_preview_url(path: str, *, base_url: Optional[str] = None) -> str:
    return get_optimized_url(
        path, width=400, quality=85, format="webp", resize="cover", base_url=base_url
    )


def get_full_url(path: str, *, base_url: Optional[str] = None) -> str:
    return get_optimized_url(path, width=800, quality=90, format="webp", base_url=base_url)


def is_storage_path(url: str) -> bool:
    return not url.startswith("http") and not url.startswith("data:")


def get_display_url(image_url: str, *, base_url: Optional[str] = None) -> str:
    # Render transforms need a paid plan; serve the plain public object.
    if not is_storage_path(image_url):
        return image_url
    return get_storage_url(image_url, base_url=base_url)
