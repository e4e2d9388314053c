"""Outfits: named groups of wardrobe items for an occasion."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from supabase import Client

from aiwear.errors import AppError, ErrorCode
from aiwear.supabase_client import resolve_client
from aiwear.wardrobe_service import WardrobeItem

logger = logging.getLogger(__name__)

OCCASION_LABELS: Dict[str, str] = {
    "training": "Training",
    "outdoor": "Outdoor",
    "night_out": "Night Out",
    "date": "Date",
    "casual": "Casual",
    "work": "Work",
    "beach": "Beach",
}


@dataclass(slots=True)
class Outfit:
    id: str
    user_id: str
    name: str
    occasion: str
    created_at: Optional[str] = None
    items: List[WardrobeItem] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any], items: Iterable[WardrobeItem] = ()) -> "Outfit":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            name=row.get("name") or "",
            occasion=row.get("occasion") or "casual",
            created_at=row.get("created_at"),
            items=list(items),
        )


def _outfit_items(db: Client, outfit_id: str) -> List[WardrobeItem]:
    links = db.table("outfit_items").select("wardrobe_item_id").eq("outfit_id", outfit_id).execute()
    item_ids = [link["wardrobe_item_id"] for link in links.data or []]
    if not item_ids:
        return []
    items = db.table("wardrobe_items").select("*").in_("id", item_ids).execute()
    return [WardrobeItem.from_row(row) for row in items.data or []]


def get_outfits(user_id: str, *, client: Optional[Client] = None) -> List[Outfit]:
    """The user's outfits, newest first, each with its wardrobe items."""

    db = resolve_client(client)
    response = (
        db.table("outfits")
        .select("*")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .execute()
    )
    return [Outfit.from_row(row, _outfit_items(db, row["id"])) for row in response.data or []]


def create_outfit(
    user_id: str,
    name: str,
    occasion: str,
    item_ids: Iterable[str],
    *,
    client: Optional[Client] = None,
) -> Outfit:
    if occasion not in OCCASION_LABELS:
        raise AppError(ErrorCode.INVALID_INPUT, f"Unknown occasion '{occasion}'")

    db = resolve_client(client)
    response = (
        db.table("outfits")
        .insert({"user_id": user_id, "name": name, "occasion": occasion})
        .execute()
    )
    outfit = Outfit.from_row(response.data[0])

    links = [{"outfit_id": outfit.id, "wardrobe_item_id": item_id} for item_id in item_ids]
    if links:
        try:
            db.table("outfit_items").insert(links).execute()
        except Exception:  # noqa: BLE001 - the outfit itself was saved.
            logger.error("Error adding items to outfit %s", outfit.id, exc_info=True)

    return outfit


def delete_outfit(outfit_id: str, *, client: Optional[Client] = None) -> None:
    db = resolve_client(client)
    db.table("outfits").delete().eq("id", outfit_id).execute()
