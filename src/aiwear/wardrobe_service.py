"""Wardrobe items: the user's saved garments, accessories and shoes.

Images live in the ``wardrobe`` bucket; the row stores the bucket-relative
path (never a full URL) so the display layer can pick a URL style later.
Example items ship with external URLs and are visible to everyone.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from supabase import Client

from aiwear.config import WARDROBE_BUCKET
from aiwear.errors import AppError, ErrorCode
from aiwear.images import compress_for_wardrobe, decode_data_url, extension_for
from aiwear.supabase_client import resolve_client

logger = logging.getLogger(__name__)

CLOTHING_CATEGORIES: Tuple[str, ...] = ("tops", "bottoms", "dresses", "outerwear")
ACCESSORY_CATEGORIES: Tuple[str, ...] = ("bags", "glasses", "jewelry", "hats", "scarves")
FOOTWEAR_CATEGORIES: Tuple[str, ...] = ("heels", "flats", "sneakers", "boots")
CATEGORY_GROUPS: Dict[str, Tuple[str, ...]] = {
    "clothing": CLOTHING_CATEGORIES,
    "accessories": ACCESSORY_CATEGORIES,
    "footwear": FOOTWEAR_CATEGORIES,
}

CACHE_CONTROL_SECONDS: str = "31536000"


def category_group_for(category: str) -> str:
    for group, categories in CATEGORY_GROUPS.items():
        if category in categories:
            return group
    return "clothing"


@dataclass(slots=True)
class WardrobeItem:
    id: str
    user_id: Optional[str]
    name: str
    category: str
    category_group: str
    image_url: str
    is_example: bool = False
    ai_suggested: bool = False
    ai_confidence: Optional[float] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "WardrobeItem":
        return cls(
            id=row["id"],
            user_id=row.get("user_id"),
            name=row.get("name") or "",
            category=row.get("category") or "tops",
            category_group=row.get("category_group") or category_group_for(row.get("category") or ""),
            image_url=row.get("image_url") or "",
            is_example=bool(row.get("is_example")),
            ai_suggested=bool(row.get("ai_suggested")),
            ai_confidence=row.get("ai_confidence"),
            created_at=row.get("created_at"),
        )


@dataclass(frozen=True, slots=True)
class ExampleItem:
    name: str
    category: str
    image_url: str
    category_group: str = field(default="")

    def as_row(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category,
            "category_group": self.category_group or category_group_for(self.category),
            "image_url": self.image_url,
            "is_example": True,
            "ai_suggested": False,
        }


EXAMPLE_WARDROBE_ITEMS: Tuple[ExampleItem, ...] = (
    ExampleItem("Classic White Tee", "tops", "https://images.unsplash.com/photo-1521572163474-6864f9cf17ab?w=400"),
    ExampleItem("Blue Jeans", "bottoms", "https://images.unsplash.com/photo-1542272604-787c3835535d?w=400"),
    ExampleItem("Little Black Dress", "dresses", "https://images.unsplash.com/photo-1595777457583-95e059d581b8?w=400"),
    ExampleItem("White Sneakers", "sneakers", "https://images.unsplash.com/photo-1549298916-b41d501d3772?w=400"),
    ExampleItem("Designer Tote", "bags", "https://images.unsplash.com/photo-1584917865442-de89df76afd3?w=400"),
    ExampleItem("Classic Sunglasses", "glasses", "https://images.unsplash.com/photo-1572635196237-14b3f281503f?w=400"),
)


def get_wardrobe_items(user_id: str, *, client: Optional[Client] = None) -> List[WardrobeItem]:
    """The user's own items plus the shared examples, newest first."""

    db = resolve_client(client)
    response = (
        db.table("wardrobe_items")
        .select("*")
        .or_(f"user_id.eq.{user_id},is_example.eq.true")
        .order("created_at", desc=True)
        .execute()
    )
    return [WardrobeItem.from_row(row) for row in response.data or []]


def add_wardrobe_item(
    user_id: str,
    name: str,
    category: str,
    image: bytes,
    *,
    mime_type: str = "image/jpeg",
    category_group: Optional[str] = None,
    ai_suggested: bool = False,
    ai_confidence: Optional[float] = None,
    client: Optional[Client] = None,
) -> WardrobeItem:
    """Upload the image to storage and record the item pointing at its path."""

    db = resolve_client(client)
    extension = extension_for("webp" if "webp" in mime_type else "jpeg")
    path = f"{user_id}/{category}_{int(time.time() * 1000)}.{extension}"
    bucket = db.storage.from_(WARDROBE_BUCKET)

    try:
        bucket.upload(
            path,
            image,
            {"content-type": mime_type, "cache-control": CACHE_CONTROL_SECONDS, "upsert": "false"},
        )
    except Exception as exc:
        raise AppError(ErrorCode.UPLOAD_FAILED, f"Error uploading image: {exc}") from exc

    row = {
        "user_id": user_id,
        "name": name,
        "category": category,
        "category_group": category_group or category_group_for(category),
        "image_url": path,
        "is_example": False,
        "ai_suggested": ai_suggested,
        "ai_confidence": ai_confidence,
    }
    try:
        response = db.table("wardrobe_items").insert(row).execute()
    except Exception:
        bucket.remove([path])
        raise

    return WardrobeItem.from_row(response.data[0])


def add_wardrobe_item_from_data_url(
    user_id: str,
    name: str,
    category: str,
    data_url: str,
    *,
    client: Optional[Client] = None,
) -> WardrobeItem:
    """Compress a picked photo to WebP and add it as a wardrobe item."""

    try:
        image, _ = decode_data_url(data_url)
        optimized = compress_for_wardrobe(image)
    except ValueError as exc:
        raise AppError(ErrorCode.INVALID_IMAGE, str(exc)) from exc

    logger.info(
        "Compressed wardrobe image from %d to %d bytes",
        optimized.original_size,
        optimized.optimized_size,
    )
    return add_wardrobe_item(
        user_id, name, category, optimized.data, mime_type=optimized.mime_type, client=client
    )


def delete_wardrobe_item(item_id: str, *, client: Optional[Client] = None) -> None:
    db = resolve_client(client)
    response = db.table("wardrobe_items").select("image_url").eq("id", item_id).execute()
    rows = response.data or []
    if not rows:
        raise AppError(ErrorCode.INVALID_INPUT, f"Wardrobe item '{item_id}' was not found.")

    image_url = rows[0].get("image_url") or ""
    if image_url and not image_url.startswith("http"):
        try:
            db.storage.from_(WARDROBE_BUCKET).remove([image_url])
        except Exception:  # noqa: BLE001 - the row is still removed.
            logger.warning("Error deleting %s from storage", image_url, exc_info=True)

    db.table("wardrobe_items").delete().eq("id", item_id).execute()
