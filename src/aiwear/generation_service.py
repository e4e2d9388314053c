"""Try-on generation orchestration.

One generation, start to finish:

1. Check the user's ledger balance covers the cost (1 credit, 2 for studio).
2. Create the ``generations`` row and write the ledger debit against it.
3. Route to a model: Gemini returns image bytes; Fal returns a URL (optionally
   passed through the studio enhancer) that is downloaded.
4. Upload the person photo and the result, mark the generation succeeded,
   add the result to the gallery and hand back a signed URL.

Any failure after the row exists marks it failed and, if the debit was
written, refunds it. Callers always get a :class:`GenerationResult`, never
an exception.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Dict, Optional

import requests
from supabase import Client

from aiwear import fal_service, gemini_service
from aiwear.config import MEDIA_BUCKET, SIGNED_URL_TTL_SECONDS, load_settings
from aiwear.credits import credit_cost, ledger_balance, record_ledger_entry
from aiwear.errors import AppError, ErrorCode
from aiwear.images import load_image_bytes
from aiwear.supabase_client import current_user_id, get_supabase

logger = logging.getLogger(__name__)

GEMINI_MODEL_TYPES = ("gemini2", "geminipro")
REMOTE_TIMEOUT_SECONDS: int = 300


@dataclass(slots=True)
class GenerationOptions:
    person_image: str
    dress_image: str
    quality: str = "standard"
    model_type: str = "fal"
    category: Optional[str] = None
    user_prompt: Optional[str] = None


@dataclass(slots=True)
class GenerationResult:
    success: bool
    generation_id: Optional[str] = None
    result_url: Optional[str] = None
    credits_used: Optional[int] = None
    error: Optional[AppError] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success}
        if self.generation_id:
            payload["generationId"] = self.generation_id
        if self.result_url:
            payload["resultUrl"] = self.result_url
        if self.credits_used is not None:
            payload["creditsUsed"] = self.credits_used
        if self.error is not None:
            payload["error"] = self.error.to_dict()
        return payload


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


# ---------------------------------------------------------------------------
# Generation record helpers (shared with the server)


def create_generation(client: Client, *, user_id: str, cost: int, state: str) -> str:
    response = (
        client.table("generations")
        .insert({"user_id": user_id, "state": state, "credits_cost": cost})
        .execute()
    )
    return response.data[0]["id"]


def update_generation(client: Client, generation_id: str, **fields: Any) -> None:
    client.table("generations").update(fields).eq("id", generation_id).execute()


def mark_failed(client: Client, generation_id: str, error_message: str) -> None:
    update_generation(
        client,
        generation_id,
        state="failed",
        error_message=error_message,
        updated_at=now_iso(),
    )


def settle_failed_generation(
    client: Client,
    generation_id: str,
    error_message: str,
    *,
    user_id: Optional[str] = None,
    refund: int = 0,
    reason: str = "generation_failed",
) -> None:
    """Refund ``refund`` credits (if any) and mark the generation failed.

    Both writes are attempted independently and logged on failure; this never
    raises.
    """

    if refund and user_id:
        try:
            record_ledger_entry(
                client, user_id=user_id, delta=refund, reason=reason, reference_id=generation_id
            )
        except Exception:  # noqa: BLE001
            logger.exception("Failed to refund %d credits for generation %s", refund, generation_id)
    try:
        mark_failed(client, generation_id, error_message)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to mark generation %s as failed", generation_id)


def result_path(user_id: str, generation_id: str) -> str:
    return f"{user_id}/result/{generation_id}.png"


def person_path(user_id: str, generation_id: str) -> str:
    return f"{user_id}/person/{generation_id}.png"


def upload_png(client: Client, path: str, data: bytes) -> None:
    try:
        client.storage.from_(MEDIA_BUCKET).upload(
            path, data, {"content-type": "image/png", "upsert": "true"}
        )
    except Exception as exc:
        raise AppError(ErrorCode.UPLOAD_FAILED, f"Failed to upload {path}: {exc}") from exc


def signed_result_url(client: Client, path: str) -> Optional[str]:
    bucket = client.storage.from_(MEDIA_BUCKET)
    try:
        signed = bucket.create_signed_url(path, SIGNED_URL_TTL_SECONDS) or {}
    except Exception:  # noqa: BLE001
        logger.warning("Could not sign %s, using its public URL", path, exc_info=True)
        signed = {}
    return signed.get("signedURL") or signed.get("signedUrl") or bucket.get_public_url(path)


def finalize_success(client: Client, *, user_id: str, generation_id: str, path: str) -> None:
    """Mark the generation succeeded and add the result to the gallery.

    A failed gallery insert is logged; the generation stays succeeded.
    """

    update_generation(
        client, generation_id, state="succeeded", result_path=path, updated_at=now_iso()
    )
    try:
        client.table("media_items").insert(
            {
                "user_id": user_id,
                "object_path": path,
                "kind": "result",
                "generation_id": generation_id,
            }
        ).execute()
    except Exception:  # noqa: BLE001
        logger.exception("Failed to record media item for generation %s", generation_id)


# ---------------------------------------------------------------------------
# Model routing


def _run_model(options: GenerationOptions, *, description: str, category: str) -> bytes:
    if options.model_type in GEMINI_MODEL_TYPES:
        logger.info("Using %s with user prompt: %s", options.model_type, options.user_prompt or "(none)")
        image, _ = gemini_service.virtual_try_on(
            load_image_bytes(options.person_image),
            load_image_bytes(options.dress_image),
            model_type=options.model_type,
            retries=2,
            user_prompt=options.user_prompt,
        )
        return image

    logger.info("Using Fal IDM-VTON (category=%s, quality=%s)", category, options.quality)
    result_url = fal_service.virtual_try_on(
        options.person_image,
        options.dress_image,
        description=description,
        category=category,
        quality=options.quality,
    )
    if options.quality == "studio":
        result_url = fal_service.enhance_to_studio(result_url)
    return load_image_bytes(result_url)


def generate_try_on(options: GenerationOptions, *, client: Optional[Client] = None) -> GenerationResult:
    """Run one paid try-on generation for the signed-in user."""

    db = client or get_supabase()
    if db is None:
        return GenerationResult(
            success=False,
            error=AppError(ErrorCode.SERVICE_UNAVAILABLE, "Supabase not configured"),
        )

    cost = credit_cost(options.quality)
    user_id: Optional[str] = None
    generation_id: Optional[str] = None
    charged = False

    try:
        user_id = current_user_id(db)

        balance = ledger_balance(db, user_id)
        if balance < cost:
            raise AppError(
                ErrorCode.INSUFFICIENT_CREDITS, f"Need {cost} credits (Balance: {balance})"
            )

        generation_id = create_generation(db, user_id=user_id, cost=cost, state="processing")
        record_ledger_entry(
            db, user_id=user_id, delta=-cost, reason="generation", reference_id=generation_id
        )
        charged = True

        category = options.category or "one-pieces"
        description = f"A fashionable {options.category}" if options.category else ""

        if options.model_type == "fal" and not options.category:
            raw = gemini_service.describe_garment(load_image_bytes(options.dress_image))
            garment = gemini_service.parse_garment_description(raw)
            if garment.invalid:
                logger.info("Invalid garment for generation %s, refunding", generation_id)
                charged = False
                settle_failed_generation(
                    db,
                    generation_id,
                    "Invalid garment image",
                    user_id=user_id,
                    refund=cost,
                    reason="refund_invalid_garment",
                )
                return GenerationResult(
                    success=False,
                    generation_id=generation_id,
                    error=AppError(ErrorCode.INVALID_INPUT, "Please upload a clear clothing item."),
                )
            category = garment.category or category
            description = garment.description

        result_image = _run_model(options, description=description, category=category)
        person_image = load_image_bytes(options.person_image)

        upload_png(db, person_path(user_id, generation_id), person_image)
        path = result_path(user_id, generation_id)
        upload_png(db, path, result_image)

        finalize_success(db, user_id=user_id, generation_id=generation_id, path=path)
        logger.info("Generation %s succeeded (quality=%s)", generation_id, options.quality)

        return GenerationResult(
            success=True,
            generation_id=generation_id,
            result_url=signed_result_url(db, path),
            credits_used=cost,
        )

    except Exception as exc:  # noqa: BLE001 - every failure becomes a tagged result.
        error = exc if isinstance(exc, AppError) else AppError(ErrorCode.GENERATION_FAILED, str(exc) or "Unknown error")
        logger.error("Generation %s failed: %s", generation_id or "(not created)", error.message)

        if generation_id:
            settle_failed_generation(
                db, generation_id, error.message, user_id=user_id, refund=cost if charged else 0
            )

        return GenerationResult(success=False, generation_id=generation_id, error=error)


# ---------------------------------------------------------------------------
# Server-side variant


def generate_try_on_remote(
    options: GenerationOptions,
    *,
    access_token: str,
    endpoint: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> GenerationResult:
    """Ask the ``generate-image`` endpoint to run the generation server-side."""

    endpoint = endpoint or load_settings().generate_image_endpoint
    if not endpoint:
        return GenerationResult(
            success=False,
            error=AppError(ErrorCode.SERVICE_UNAVAILABLE, "Generation endpoint not configured"),
        )

    body: Dict[str, Any] = {
        "personImageBase64": options.person_image,
        "dressImageBase64": options.dress_image,
        "quality": options.quality,
        "modelType": options.model_type,
        "category": options.category,
    }
    if options.user_prompt and options.user_prompt.strip():
        body["userPrompt"] = options.user_prompt.strip()

    post = session.post if session is not None else requests.post
    try:
        response = post(
            endpoint,
            json=body,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=REMOTE_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        return GenerationResult(success=False, error=AppError(ErrorCode.NETWORK_ERROR, str(exc)))

    try:
        payload = response.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        return GenerationResult(
            success=False,
            error=AppError(ErrorCode.GENERATION_FAILED, f"Unexpected response ({response.status_code})"),
        )

    if payload.get("success"):
        return GenerationResult(
            success=True,
            generation_id=payload.get("generationId"),
            result_url=payload.get("resultUrl"),
            credits_used=payload.get("creditsUsed"),
        )

    try:
        code = ErrorCode(payload.get("code") or ErrorCode.GENERATION_FAILED.value)
    except ValueError:
        code = ErrorCode.GENERATION_FAILED
    return GenerationResult(
        success=False,
        generation_id=payload.get("generationId"),
        error=AppError(code, payload.get("error") or "Generation failed"),
    )
