"""Per-user client state: the credit balance and the current generation.

These are the in-process counterparts of the app's UI stores. They hold the
data a screen needs and delegate the real work to the services.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from supabase import Client

from aiwear import gemini_service
from aiwear.credits import fetch_balance
from aiwear.errors import AppError, ErrorCode
from aiwear.generation_service import GenerationOptions, generate_try_on
from aiwear.images import encode_data_url, load_image_bytes

logger = logging.getLogger(__name__)


class GenerationState(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    GENERATING = "generating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UPSCALING = "upscaling"


@dataclass(slots=True)
class CreditState:
    balance: int = 0
    is_loading: bool = False
    client: Optional[Client] = None

    def refresh(self) -> int:
        """Reload the balance; on failure the last known balance is kept."""

        self.is_loading = True
        try:
            self.balance = fetch_balance(client=self.client)
        except Exception:  # noqa: BLE001 - a stale balance is acceptable.
            logger.error("Error fetching balance", exc_info=True)
        finally:
            self.is_loading = False
        return self.balance


@dataclass(slots=True)
class GenerationSession:
    credits: CreditState = field(default_factory=CreditState)
    client: Optional[Client] = None
    state: GenerationState = GenerationState.IDLE
    current_generation_id: Optional[str] = None
    result_url: Optional[str] = None
    error: Optional[AppError] = None
    person_image: Optional[str] = None
    dress_image: Optional[str] = None
    user_prompt: str = ""

    def __post_init__(self) -> None:
        if self.credits.client is None:
            self.credits.client = self.client

    def set_person_image(self, image: str) -> None:
        self.person_image = image
        self.error = None

    def set_dress_image(self, image: str) -> None:
        self.dress_image = image
        self.error = None

    def set_user_prompt(self, prompt: str) -> None:
        self.user_prompt = prompt

    def generate(
        self,
        quality: str = "standard",
        model_type: str = "fal",
        category: Optional[str] = None,
    ) -> None:
        if not self.person_image or not self.dress_image:
            self.state = GenerationState.FAILED
            self.error = AppError(
                ErrorCode.INVALID_IMAGE,
                "Missing images",
                user_message="Please upload both a person photo and a clothing item.",
            )
            return

        self.state = GenerationState.GENERATING
        self.error = None
        self.result_url = None

        result = generate_try_on(
            GenerationOptions(
                person_image=self.person_image,
                dress_image=self.dress_image,
                quality=quality,
                model_type=model_type,
                category=category,
                user_prompt=self.user_prompt.strip() or None,
            ),
            client=self.client,
        )

        self.current_generation_id = result.generation_id
        if result.success:
            self.state = GenerationState.SUCCEEDED
            self.result_url = result.result_url
        else:
            self.state = GenerationState.FAILED
            self.error = result.error

        # Refunds may have changed the balance too.
        self.credits.refresh()

    def upscale(self) -> None:
        if not self.result_url:
            logger.error("No result to upscale")
            return

        self.state = GenerationState.UPSCALING
        self.error = None
        try:
            image, mime_type = gemini_service.upscale_image(load_image_bytes(self.result_url))
        except Exception as exc:  # noqa: BLE001 - surfaced through ``error``.
            self.state = GenerationState.FAILED
            self.error = AppError(
                ErrorCode.UPSCALE_FAILED,
                str(exc) or "Upscale failed",
                user_message="Failed to enhance image quality. Please try again.",
            )
            return

        self.state = GenerationState.SUCCEEDED
        self.result_url = encode_data_url(image, mime_type)
        self.credits.refresh()

    def clear_result(self) -> None:
        self.state = GenerationState.IDLE
        self.current_generation_id = None
        self.result_url = None
        self.error = None

    def reset(self) -> None:
        self.clear_result()
        self.person_image = None
        self.dress_image = None
