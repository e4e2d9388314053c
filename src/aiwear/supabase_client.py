"""Supabase client construction and the few profile/user lookups shared by services."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from supabase import Client, create_client

from aiwear.config import Settings, is_valid_supabase_url, load_settings, looks_like_jwt
from aiwear.errors import AppError, ErrorCode

logger = logging.getLogger(__name__)


def create_supabase(settings: Optional[Settings] = None, *, service_role: bool = False) -> Optional[Client]:
    """Return a client, or ``None`` when the URL or key does not look usable.

    ``service_role`` picks the service-role key, which bypasses row level
    security and must only ever be used server-side.
    """

    settings = settings or load_settings()
    key = settings.supabase_service_role_key if service_role else settings.supabase_anon_key
    if not (is_valid_supabase_url(settings.supabase_url) and looks_like_jwt(key)):
        return None
    return create_client(settings.supabase_url, key)


@lru_cache(maxsize=1)
def get_supabase() -> Optional[Client]:
    return create_supabase()


def is_supabase_configured(client: Optional[Client] = None) -> bool:
    return (client or get_supabase()) is not None


def resolve_client(client: Optional[Client] = None) -> Client:
    resolved = client or get_supabase()
    if resolved is None:
        raise AppError(ErrorCode.SERVICE_UNAVAILABLE, "Supabase not configured")
    return resolved


def current_user_id(client: Client) -> str:
    """Id of the signed-in user, or ``AUTH_REQUIRED``."""

    response = client.auth.get_user()
    user = getattr(response, "user", None)
    if user is None:
        raise AppError(ErrorCode.AUTH_REQUIRED, "Please sign in to generate images")
    return user.id


def get_profile(user_id: str, *, client: Optional[Client] = None) -> Optional[Dict[str, Any]]:
    db = resolve_client(client)
    response = (
        db.table("profiles")
        .select("credits, full_name")
        .eq("id", user_id)
        .limit(1)
        .execute()
    )
    rows = response.data or []
    if not rows:
        logger.info("No profile found for user %s", user_id)
        return None
    return rows[0]
