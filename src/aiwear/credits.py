"""Credit ledger access.

The ledger is an append-only table of signed deltas; a user's balance is the
sum of their rows. Debits and refunds for a generation reference the
generation id. Guarding against a negative balance is the job of the
``deduct_credits`` RPC on the database side.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from supabase import Client

from aiwear.errors import AppError, ErrorCode
from aiwear.supabase_client import current_user_id, resolve_client

logger = logging.getLogger(__name__)

STANDARD_COST: int = 1
STUDIO_COST: int = 2


def credit_cost(quality: str) -> int:
    return STUDIO_COST if quality == "studio" else STANDARD_COST


# ---------------------------------------------------------------------------
# Direct table access (used by the orchestration flows)


def ledger_balance(client: Client, user_id: str) -> int:
    response = client.table("credit_ledger").select("delta").eq("user_id", user_id).execute()
    return sum(int(row.get("delta") or 0) for row in response.data or [])


def record_ledger_entry(
    client: Client,
    *,
    user_id: str,
    delta: int,
    reason: str,
    reference_id: Optional[str] = None,
) -> None:
    row: Dict[str, Any] = {"user_id": user_id, "delta": delta, "reason": reason}
    if reference_id is not None:
        row["reference_id"] = reference_id
    client.table("credit_ledger").insert(row).execute()
    logger.info("Ledger %+d for user %s (%s)", delta, user_id, reason)


# ---------------------------------------------------------------------------
# RPC access (balance-aware, enforced by the database)


@dataclass(slots=True)
class LedgerResult:
    success: bool
    balance: Optional[int] = None
    error: Optional[str] = None


def fetch_balance(*, client: Optional[Client] = None) -> int:
    db = resolve_client(client)
    response = db.rpc("get_credit_balance").execute()
    return int(response.data or 0)


def _ledger_rpc(db: Client, name: str, params: Dict[str, Any]) -> LedgerResult:
    payload = db.rpc(name, params).execute().data or {}
    return LedgerResult(
        success=bool(payload.get("success")),
        balance=payload.get("balance"),
        error=payload.get("error"),
    )


def deduct_credits(
    amount: int,
    *,
    reason: str = "generation",
    reference_id: Optional[str] = None,
    client: Optional[Client] = None,
) -> LedgerResult:
    db = resolve_client(client)
    return _ledger_rpc(
        db,
        "deduct_credits",
        {"p_amount": amount, "p_reason": reason, "p_reference_id": reference_id},
    )


def refund_credits(
    amount: int,
    reference_id: str,
    *,
    reason: str = "generation_failed",
    client: Optional[Client] = None,
) -> LedgerResult:
    db = resolve_client(client)
    return _ledger_rpc(
        db,
        "refund_credits",
        {"p_amount": amount, "p_reason": reason, "p_reference_id": reference_id},
    )


# ---------------------------------------------------------------------------
# Credit packs


@dataclass(frozen=True, slots=True)
class CreditPack:
    product_id: str
    name: str
    credits: int
    price: str
    badge: Optional[str] = None


CREDIT_PACKS: Tuple[CreditPack, ...] = (
    CreditPack("com.aiwear.credits.starter", "Starter", 10, "$0.99"),
    CreditPack("com.aiwear.credits.plus", "Plus", 50, "$3.99", badge="Popular"),
    CreditPack("com.aiwear.credits.pro", "Pro", 150, "$9.99", badge="Best Value"),
    CreditPack("com.aiwear.credits.ultimate", "Ultimate", 500, "$24.99"),
)


def find_credit_pack(product_id: str) -> Optional[CreditPack]:
    return next((pack for pack in CREDIT_PACKS if pack.product_id == product_id), None)


def add_purchased_credits(product_id: str, *, client: Optional[Client] = None) -> int:
    """Credit the signed-in user for a completed purchase and return the credits added."""

    pack = find_credit_pack(product_id)
    if pack is None:
        raise AppError(ErrorCode.INVALID_INPUT, f"Unknown credit pack '{product_id}'")

    db = resolve_client(client)
    user_id = current_user_id(db)
    record_ledger_entry(db, user_id=user_id, delta=pack.credits, reason=f"Purchase: {product_id}")
    return pack.credits
