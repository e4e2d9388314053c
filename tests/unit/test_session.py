"""Unit tests for the per-user credit and generation state."""

from __future__ import annotations

from typing import Any, List

import pytest

from aiwear import gemini_service, session
from aiwear.errors import AppError, ErrorCode
from aiwear.generation_service import GenerationOptions, GenerationResult
from aiwear.images import decode_data_url
from aiwear.session import CreditState, GenerationSession, GenerationState


@pytest.fixture
def balance_db(fake_db):
    fake_db.rpc_handlers["get_credit_balance"] = lambda params: 9
    return fake_db


def stub_generation(monkeypatch: pytest.MonkeyPatch, result: GenerationResult) -> List[GenerationOptions]:
    seen: List[GenerationOptions] = []

    def fake_generate(options: GenerationOptions, *, client: Any = None) -> GenerationResult:
        seen.append(options)
        return result

    monkeypatch.setattr(session, "generate_try_on", fake_generate)
    return seen


def test_credit_refresh_keeps_last_balance_on_error(fake_db) -> None:
    def broken(params: Any) -> int:
        raise RuntimeError("rpc down")

    fake_db.rpc_handlers["get_credit_balance"] = broken
    credits = CreditState(balance=4, client=fake_db)

    assert credits.refresh() == 4
    assert credits.is_loading is False


def test_generate_requires_both_images(balance_db) -> None:
    state = GenerationSession(client=balance_db)
    state.set_person_image("data:image/png;base64,aGk=")

    state.generate()

    assert state.state is GenerationState.FAILED
    assert state.error.code is ErrorCode.INVALID_IMAGE
    assert state.error.user_message == "Please upload both a person photo and a clothing item."


def test_generate_success_refreshes_balance(monkeypatch: pytest.MonkeyPatch, balance_db) -> None:
    seen = stub_generation(
        monkeypatch,
        GenerationResult(success=True, generation_id="g1", result_url="https://signed", credits_used=1),
    )
    state = GenerationSession(client=balance_db)
    state.set_person_image("person")
    state.set_dress_image("dress")
    state.set_user_prompt("   ")

    state.generate(quality="studio", model_type="gemini2")

    assert state.state is GenerationState.SUCCEEDED
    assert (state.current_generation_id, state.result_url) == ("g1", "https://signed")
    assert state.credits.balance == 9
    (options,) = seen
    assert (options.quality, options.model_type, options.user_prompt) == ("studio", "gemini2", None)


def test_generate_failure_keeps_error(monkeypatch: pytest.MonkeyPatch, balance_db) -> None:
    error = AppError(ErrorCode.INSUFFICIENT_CREDITS, "Need 1 credits (Balance: 0)")
    stub_generation(monkeypatch, GenerationResult(success=False, error=error))
    state = GenerationSession(client=balance_db)
    state.set_person_image("person")
    state.set_dress_image("dress")

    state.generate()

    assert state.state is GenerationState.FAILED
    assert state.error is error
    assert state.result_url is None


def test_upscale_replaces_result_with_data_url(monkeypatch: pytest.MonkeyPatch, balance_db) -> None:
    monkeypatch.setattr(session, "load_image_bytes", lambda url: b"standard")
    monkeypatch.setattr(gemini_service, "upscale_image", lambda image: (b"sharp:" + image, "image/png"))
    state = GenerationSession(client=balance_db, result_url="https://signed", state=GenerationState.SUCCEEDED)

    state.upscale()

    assert state.state is GenerationState.SUCCEEDED
    assert decode_data_url(state.result_url) == (b"sharp:standard", "image/png")


def test_upscale_failure(monkeypatch: pytest.MonkeyPatch, balance_db) -> None:
    def broken(image: bytes) -> Any:
        raise RuntimeError("AI Refusal: no")

    monkeypatch.setattr(session, "load_image_bytes", lambda url: b"standard")
    monkeypatch.setattr(gemini_service, "upscale_image", broken)
    state = GenerationSession(client=balance_db, result_url="https://signed")

    state.upscale()

    assert state.state is GenerationState.FAILED
    assert state.error.code is ErrorCode.UPSCALE_FAILED
    assert state.error.user_message == "Failed to enhance image quality. Please try again."


def test_upscale_without_result_is_a_no_op(balance_db) -> None:
    state = GenerationSession(client=balance_db)

    state.upscale()

    assert state.state is GenerationState.IDLE


def test_reset_clears_inputs_and_result(balance_db) -> None:
    state = GenerationSession(
        client=balance_db,
        person_image="p",
        dress_image="d",
        result_url="r",
        current_generation_id="g",
        state=GenerationState.SUCCEEDED,
    )

    state.clear_result()
    assert (state.state, state.result_url, state.person_image) == (GenerationState.IDLE, None, "p")

    state.reset()
    assert (state.person_image, state.dress_image) == (None, None)
