"""HTTP endpoint running try-on generation server-side.

``POST /generate-image`` mirrors :func:`aiwear.generation_service.generate_try_on`
with secrets kept on the server: it talks to Supabase with the service-role
key and calls Gemini with the server's own API key. The caller identifies
itself with its Supabase access token.

Status codes: 401 (no/invalid token), 400 (missing images), 402 (not enough
credits), 503 (Gemini not configured), 500 (generation failed, credits
refunded; or an unexpected error).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Tuple

import uvicorn
from fastapi import FastAPI, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from google import genai
from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict, Field
from supabase import Client

from aiwear import gemini_service
from aiwear.config import Settings, load_settings
from aiwear.credits import credit_cost, ledger_balance, record_ledger_entry
from aiwear.errors import ErrorCode
from aiwear.generation_service import (
    create_generation,
    finalize_success,
    result_path,
    settle_failed_generation,
    signed_result_url,
    update_generation,
    upload_png,
)
from aiwear.images import decode_base64_image
from aiwear.supabase_client import create_supabase

logger = logging.getLogger(__name__)

CORS_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]

ClientFactory = Callable[[], Optional[Client]]


class GenerationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    person_image_base64: str = Field("", alias="personImageBase64")
    dress_image_base64: str = Field("", alias="dressImageBase64")
    quality: str = "standard"
    user_prompt: Optional[str] = Field(None, alias="userPrompt")


def decode_jwt_subject(token: str) -> str:
    """Return the ``sub`` claim of a JWT without verifying its signature.

    The signature is checked by the Supabase gateway before the request gets
    here; this only needs to know who is asking.
    """

    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    subject = claims.get("sub")
    if not subject:
        raise ValueError("No user ID in token")
    return subject


def run_generation(
    client: Client,
    *,
    user_id: str,
    request: GenerationRequest,
    gemini_api_key: str,
) -> Tuple[int, Dict[str, Any]]:
    """Execute one generation and return ``(status_code, json_body)``."""

    cost = credit_cost(request.quality)

    try:
        generation_id = create_generation(client, user_id=user_id, cost=cost, state="queued")
    except Exception:  # noqa: BLE001 - reported to the caller as a 500.
        logger.exception("Failed to create generation record for user %s", user_id)
        return 500, {"error": "Failed to create generation record"}

    balance = ledger_balance(client, user_id)
    if balance < cost:
        update_generation(client, generation_id, state="failed", error_message="Insufficient credits")
        return 402, {
            "error": f"Insufficient credits. You have {balance}, need {cost}",
            "code": ErrorCode.INSUFFICIENT_CREDITS.value,
        }

    record_ledger_entry(
        client, user_id=user_id, delta=-cost, reason="generation", reference_id=generation_id
    )
    update_generation(client, generation_id, state="processing")

    if not gemini_api_key:
        record_ledger_entry(
            client,
            user_id=user_id,
            delta=cost,
            reason="service_unavailable",
            reference_id=generation_id,
        )
        update_generation(
            client, generation_id, state="failed", error_message="Service configuration error"
        )
        return 503, {"error": "Service unavailable", "code": ErrorCode.SERVICE_UNAVAILABLE.value}

    try:
        model_type = "geminipro" if request.quality == "studio" else "gemini2"
        image, _ = gemini_service.virtual_try_on(
            decode_base64_image(request.person_image_base64),
            decode_base64_image(request.dress_image_base64),
            model_type=model_type,
            user_prompt=request.user_prompt,
            client=genai.Client(api_key=gemini_api_key),
        )

        path = result_path(user_id, generation_id)
        upload_png(client, path, image)
        finalize_success(client, user_id=user_id, generation_id=generation_id, path=path)

        return 200, {
            "success": True,
            "generationId": generation_id,
            "resultUrl": signed_result_url(client, path),
            "creditsUsed": cost,
        }
    except Exception as exc:  # noqa: BLE001 - refund and report.
        logger.error("Generation %s failed: %s", generation_id, exc)
        settle_failed_generation(
            client,
            generation_id,
            str(exc) or "Generation failed",
            user_id=user_id,
            refund=cost,
        )
        return 500, {
            "error": "Generation failed. Credits have been refunded.",
            "code": ErrorCode.GENERATION_FAILED.value,
            "generationId": generation_id,
        }


def create_app(
    *,
    settings: Optional[Settings] = None,
    client_factory: Optional[ClientFactory] = None,
) -> FastAPI:
    settings = settings or load_settings()
    if client_factory is None:

        def client_factory() -> Optional[Client]:
            return create_supabase(settings, service_role=True)

    app = FastAPI(title="AIWear generation service", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "OPTIONS"],
        allow_headers=CORS_HEADERS,
    )

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/generate-image")
    def generate_image(
        request: GenerationRequest,
        authorization: Optional[str] = Header(None),
    ) -> JSONResponse:
        """Run one generation for the bearer of ``Authorization``.

        FastAPI parses the body before this runs, so a body that is not a
        JSON object gets a 422 even when the header is missing. Well-formed
        bodies are checked for the header first (401), then for both
        images (400).
        """

        if not authorization:
            return JSONResponse({"error": "Missing authorization header"}, status_code=401)

        try:
            user_id = decode_jwt_subject(authorization.replace("Bearer ", "", 1).strip())
        except ValueError:
            return JSONResponse({"error": "Invalid token"}, status_code=401)

        if not request.person_image_base64 or not request.dress_image_base64:
            return JSONResponse({"error": "Missing required images"}, status_code=400)

        try:
            client = client_factory()
            if client is None:
                raise RuntimeError("Supabase service client is not configured")
            status_code, body = run_generation(
                client,
                user_id=user_id,
                request=request,
                gemini_api_key=settings.gemini_api_key,
            )
        except Exception:  # noqa: BLE001 - last-resort 500.
            logger.exception("Unexpected error")
            return JSONResponse({"error": "Internal server error"}, status_code=500)

        return JSONResponse(body, status_code=status_code)

    return app


def main() -> None:
    """CLI entry-point: serve the app with uvicorn."""

    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
