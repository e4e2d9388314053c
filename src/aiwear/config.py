"""Environment-backed settings shared by the services, the server and the CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import urlparse

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Storage layout

MEDIA_BUCKET: str = "aiwear-media"
WARDROBE_BUCKET: str = "wardrobe"
PERSON_IMAGE_BUCKET: str = "media"
SIGNED_URL_TTL_SECONDS: int = 3600


@dataclass(slots=True)
class Settings:
    """Keys and endpoints read from the environment (via .env)."""

    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""
    gemini_api_key: str = ""
    fal_key: str = ""
    generate_image_endpoint: str = ""
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000


def load_settings() -> Settings:
    """Build a :class:`Settings` from the current environment."""

    load_dotenv()
    supabase_url = os.getenv("SUPABASE_URL", "").strip()
    return Settings(
        supabase_url=supabase_url,
        supabase_anon_key=os.getenv("SUPABASE_ANON_KEY", "").strip(),
        supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip(),
        gemini_api_key=os.getenv("GEMINI_API_KEY", "").strip(),
        fal_key=os.getenv("FAL_KEY", os.getenv("FAL_API_KEY", "")).strip(),
        generate_image_endpoint=(
            os.getenv("GENERATE_IMAGE_ENDPOINT", "").strip()
            or (f"{supabase_url.rstrip('/')}/functions/v1/generate-image" if supabase_url else "")
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        host=os.getenv("HOST", "0.0.0.0").strip() or "0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
    )


def load_api_key() -> str:
    """Fetch the Gemini API key from the environment (via .env)."""

    load_dotenv()
    api_key = os.getenv("GEMINI_API_KEY")
    if not api_key:
        raise RuntimeError(
            "GEMINI_API_KEY was not found. Set it in your .env file before running."
        )
    return api_key


def load_fal_key() -> str:
    """Fetch the Fal.ai key and expose it as ``FAL_KEY`` for ``fal_client``."""

    load_dotenv()
    fal_key = (os.getenv("FAL_KEY") or os.getenv("FAL_API_KEY") or "").strip()
    if not fal_key:
        raise RuntimeError("FAL_KEY was not found. Set it in your .env file before running.")
    os.environ["FAL_KEY"] = fal_key
    return fal_key


def is_valid_supabase_url(url: str) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme == "https" and "supabase" in (parsed.hostname or "")


def looks_like_jwt(key: str) -> bool:
    if not key:
        return False
    parts = key.split(".")
    return len(parts) == 3 and all(len(part) > 10 for part in parts)
