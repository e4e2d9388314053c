"""Saved person photos, so users can reuse a picture of themselves.

Only the ten most recently used photos per user are kept.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional

from supabase import Client

from aiwear.config import PERSON_IMAGE_BUCKET
from aiwear.errors import AppError, ErrorCode
from aiwear.images import load_image_bytes
from aiwear.supabase_client import resolve_client

logger = logging.getLogger(__name__)

MAX_SAVED_IMAGES: int = 10


@dataclass(slots=True)
class PersonImage:
    id: str
    user_id: str
    storage_path: str
    created_at: Optional[str] = None
    last_used_at: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any], url: Optional[str] = None) -> "PersonImage":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            storage_path=row["storage_path"],
            created_at=row.get("created_at"),
            last_used_at=row.get("last_used_at"),
            url=url,
        )


def save_person_image(user_id: str, image: str, *, client: Optional[Client] = None) -> PersonImage:
    """Upload a person photo (data URL or http URL) and remember it for reuse."""

    db = resolve_client(client)
    try:
        data = load_image_bytes(image)
    except ValueError as exc:
        raise AppError(ErrorCode.INVALID_IMAGE, str(exc)) from exc

    path = f"{user_id}/person/{int(time.time() * 1000)}.jpg"
    try:
        db.storage.from_(PERSON_IMAGE_BUCKET).upload(
            path, data, {"content-type": "image/jpeg", "upsert": "false"}
        )
    except Exception as exc:
        raise AppError(ErrorCode.UPLOAD_FAILED, f"Upload error: {exc}") from exc

    response = db.table("person_images").insert({"user_id": user_id, "storage_path": path}).execute()
    saved = PersonImage.from_row(response.data[0])

    cleanup_old_images(user_id, client=db)
    return saved


def get_person_images(
    user_id: str, *, limit: int = 3, client: Optional[Client] = None
) -> List[PersonImage]:
    db = resolve_client(client)
    response = (
        db.table("person_images")
        .select("*")
        .eq("user_id", user_id)
        .order("last_used_at", desc=True)
        .limit(limit)
        .execute()
    )
    bucket = db.storage.from_(PERSON_IMAGE_BUCKET)
    return [
        PersonImage.from_row(row, url=bucket.get_public_url(row["storage_path"]))
        for row in response.data or []
    ]


def mark_person_image_used(image_id: str, *, client: Optional[Client] = None) -> None:
    db = resolve_client(client)
    db.table("person_images").update(
        {"last_used_at": datetime.now(UTC).isoformat()}
    ).eq("id", image_id).execute()


def delete_person_image(image_id: str, storage_path: str, *, client: Optional[Client] = None) -> None:
    db = resolve_client(client)
    db.storage.from_(PERSON_IMAGE_BUCKET).remove([storage_path])
    db.table("person_images").delete().eq("id", image_id).execute()


def cleanup_old_images(user_id: str, *, client: Optional[Client] = None) -> int:
    """Delete everything beyond the most recent ``MAX_SAVED_IMAGES``; return how many went."""

    db = resolve_client(client)
    response = (
        db.table("person_images")
        .select("id, storage_path")
        .eq("user_id", user_id)
        .order("last_used_at", desc=True)
        .range(MAX_SAVED_IMAGES, 999)
        .execute()
    )
    old_images = response.data or []
    for row in old_images:
        delete_person_image(row["id"], row["storage_path"], client=db)
    if old_images:
        logger.info("Removed %d old person images for user %s", len(old_images), user_id)
    return len(old_images)
