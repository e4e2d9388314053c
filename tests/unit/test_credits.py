"""Unit tests for the credit ledger and credit packs."""

from __future__ import annotations

import pytest

from aiwear.credits import (
    CREDIT_PACKS,
    add_purchased_credits,
    credit_cost,
    deduct_credits,
    fetch_balance,
    find_credit_pack,
    ledger_balance,
    record_ledger_entry,
    refund_credits,
)
from aiwear.errors import AppError, ErrorCode


def test_credit_cost_by_quality() -> None:
    assert credit_cost("standard") == 1
    assert credit_cost("studio") == 2
    assert credit_cost("anything-else") == 1


def test_ledger_balance_sums_deltas_for_one_user(fake_db) -> None:
    fake_db.seed_credits("user-1", 5)
    record_ledger_entry(fake_db, user_id="user-1", delta=-2, reason="generation", reference_id="g1")
    fake_db.seed_credits("someone-else", 100)

    assert ledger_balance(fake_db, "user-1") == 3


def test_record_ledger_entry_omits_missing_reference(fake_db) -> None:
    record_ledger_entry(fake_db, user_id="user-1", delta=3, reason="bonus")

    (row,) = fake_db.ledger("user-1")
    assert "reference_id" not in row
    assert row["delta"] == 3
    assert row["reason"] == "bonus"


def test_fetch_balance_uses_rpc(fake_db) -> None:
    fake_db.rpc_handlers["get_credit_balance"] = lambda params: 7

    assert fetch_balance(client=fake_db) == 7


def test_deduct_and_refund_send_prefixed_params(fake_db) -> None:
    fake_db.rpc_handlers["deduct_credits"] = lambda params: {"success": True, "balance": 4}
    fake_db.rpc_handlers["refund_credits"] = lambda params: {"success": True, "balance": 5}

    deducted = deduct_credits(1, reference_id="g1", client=fake_db)
    refunded = refund_credits(1, "g1", client=fake_db)

    assert deducted.success and deducted.balance == 4
    assert refunded.success and refunded.balance == 5
    assert fake_db.rpc_calls == [
        ("deduct_credits", {"p_amount": 1, "p_reason": "generation", "p_reference_id": "g1"}),
        ("refund_credits", {"p_amount": 1, "p_reason": "generation_failed", "p_reference_id": "g1"}),
    ]


def test_deduct_reports_database_refusal(fake_db) -> None:
    fake_db.rpc_handlers["deduct_credits"] = lambda params: {
        "success": False,
        "error": "Insufficient credits",
        "balance": 0,
    }

    result = deduct_credits(2, client=fake_db)

    assert not result.success
    assert result.error == "Insufficient credits"


def test_credit_packs_are_ordered_by_size() -> None:
    assert [pack.credits for pack in CREDIT_PACKS] == [10, 50, 150, 500]
    assert find_credit_pack("com.aiwear.credits.pro").badge == "Best Value"
    assert find_credit_pack("com.aiwear.credits.unknown") is None


def test_add_purchased_credits_records_purchase(fake_db) -> None:
    added = add_purchased_credits("com.aiwear.credits.plus", client=fake_db)

    assert added == 50
    (row,) = fake_db.ledger("user-1")
    assert row["reason"] == "Purchase: com.aiwear.credits.plus"
    assert ledger_balance(fake_db, "user-1") == 50


def test_add_purchased_credits_rejects_unknown_pack(fake_db) -> None:
    with pytest.raises(AppError) as excinfo:
        add_purchased_credits("com.aiwear.credits.free", client=fake_db)

    assert excinfo.value.code is ErrorCode.INVALID_INPUT
    assert fake_db.ledger("user-1") == []


def test_add_purchased_credits_requires_sign_in(anonymous_db) -> None:
    with pytest.raises(AppError) as excinfo:
        add_purchased_credits("com.aiwear.credits.starter", client=anonymous_db)

    assert excinfo.value.code is ErrorCode.AUTH_REQUIRED
