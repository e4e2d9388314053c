"""Unit tests for error codes and their user-facing messages."""

from __future__ import annotations

from aiwear.errors import ERROR_MESSAGES, AppError, ErrorCode, create_app_error


def test_every_code_has_a_message() -> None:
    assert set(ERROR_MESSAGES) == set(ErrorCode)


def test_only_service_unavailable_is_not_recoverable() -> None:
    unrecoverable = [code for code, config in ERROR_MESSAGES.items() if not config.recoverable]

    assert unrecoverable == [ErrorCode.SERVICE_UNAVAILABLE]


def test_app_error_defaults_to_code_and_static_user_message() -> None:
    error = AppError(ErrorCode.INSUFFICIENT_CREDITS)

    assert error.message == "INSUFFICIENT_CREDITS"
    assert error.user_message == "You don't have enough credits. Purchase more to continue."
    assert error.recoverable is True
    assert str(error) == "INSUFFICIENT_CREDITS"


def test_app_error_to_dict_uses_camel_case_keys() -> None:
    error = AppError(ErrorCode.UPLOAD_FAILED, "bucket missing", user_message="Try again later.")

    assert error.to_dict() == {
        "code": "UPLOAD_FAILED",
        "message": "bucket missing",
        "userMessage": "Try again later.",
        "recoverable": True,
    }


def test_create_app_error_keeps_technical_message() -> None:
    error = create_app_error(ErrorCode.SERVICE_UNAVAILABLE, "Supabase down")

    assert error.code is ErrorCode.SERVICE_UNAVAILABLE
    assert error.message == "Supabase down"
    assert error.recoverable is False
