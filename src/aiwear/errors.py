"""User-facing error codes.

Every failure the user can see is tagged with an :class:`ErrorCode`. The code
selects a static, human-readable message and says whether retrying makes
sense. Services raise :class:`AppError`; the orchestration layer catches it at
the call site and hands back a tagged result instead of a traceback.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    GENERATION_FAILED = "GENERATION_FAILED"
    GENERATION_TIMEOUT = "GENERATION_TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    INVALID_IMAGE = "INVALID_IMAGE"
    INVALID_INPUT = "INVALID_INPUT"
    UPSCALE_FAILED = "UPSCALE_FAILED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


@dataclass(frozen=True, slots=True)
class ErrorMessage:
    user_message: str
    recoverable: bool


ERROR_MESSAGES: Dict[ErrorCode, ErrorMessage] = {
    ErrorCode.INSUFFICIENT_CREDITS: ErrorMessage(
        "You don't have enough credits. Purchase more to continue.", True
    ),
    ErrorCode.GENERATION_FAILED: ErrorMessage(
        "Image generation failed. Your credits have been refunded.", True
    ),
    ErrorCode.GENERATION_TIMEOUT: ErrorMessage(
        "Generation is taking too long. Please try again.", True
    ),
    ErrorCode.NETWORK_ERROR: ErrorMessage(
        "Network connection lost. Please check your internet.", True
    ),
    ErrorCode.AUTH_REQUIRED: ErrorMessage("Please sign in to continue.", True),
    ErrorCode.UPLOAD_FAILED: ErrorMessage("Failed to upload image. Please try again.", True),
    ErrorCode.INVALID_IMAGE: ErrorMessage(
        "This image format is not supported. Please use JPG or PNG.", True
    ),
    ErrorCode.SERVICE_UNAVAILABLE: ErrorMessage(
        "Service is temporarily unavailable. Please try again later.", False
    ),
    ErrorCode.INVALID_INPUT: ErrorMessage("Invalid input. Please check and try again.", True),
    ErrorCode.UPSCALE_FAILED: ErrorMessage("Failed to enhance image. Please try again.", True),
}


class AppError(Exception):
    """A failure tagged with an :class:`ErrorCode` and its user message."""

    def __init__(
        self,
        code: ErrorCode,
        message: Optional[str] = None,
        *,
        user_message: Optional[str] = None,
    ) -> None:
        config = ERROR_MESSAGES[code]
        self.code = code
        self.message = message or code.value
        self.user_message = user_message or config.user_message
        self.recoverable = config.recoverable
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "userMessage": self.user_message,
            "recoverable": self.recoverable,
        }


def create_app_error(code: ErrorCode, technical_message: Optional[str] = None) -> AppError:
    return AppError(code, technical_message)
