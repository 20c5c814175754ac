"""Payment obligations - enums, transition rules and schedule building.

A booking's schedule is a set of obligations: at most one security
deposit plus N monthly installments spaced 30 days apart from the
anchor (check-in) date. Refunding a deposit produces a paired
``deposit_refund`` obligation with the negated amount.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from rentledger.domain.errors import InvalidInputError, InvalidStateTransition
from rentledger.infra.time import day_start_utc

INSTALLMENT_SPACING_DAYS = 30


# ── Enums ─────────────────────────────────────────────────


class PaymentKind(str, Enum):
    DEPOSIT = "deposit"
    MONTHLY = "monthly"
    DEPOSIT_REFUND = "deposit_refund"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"


class PaymentDirection(str, Enum):
    CHARGE = "charge"
    REFUND = "refund"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    OTHER = "other"


class BillingMode(str, Enum):
    MONTHLY = "monthly"
    BIWEEKLY = "biweekly"
    MANUAL = "manual"


DEFAULT_PAYMENT_METHOD = PaymentMethod.BANK_TRANSFER

# Kinds mirrored into the revenue ledger. Deposit refunds are reported
# from the payment rows themselves.
REVENUE_KINDS = frozenset({PaymentKind.DEPOSIT.value, PaymentKind.MONTHLY.value})

_REVENUE_CATEGORIES = {
    PaymentKind.DEPOSIT.value: "Cauções",
    PaymentKind.MONTHLY.value: "Mensalidades",
}

_KIND_LABELS = {
    PaymentKind.DEPOSIT.value: "Caução",
    PaymentKind.MONTHLY.value: "Mensalidade",
    PaymentKind.DEPOSIT_REFUND.value: "Devolução de caução",
}


# ── Transition guards ────────────────────────────────────


def assert_can_mark_paid(payment: dict[str, Any]) -> None:
    """Only pending obligations can be marked as paid."""
    if payment["status"] != PaymentStatus.PENDING.value:
        raise InvalidStateTransition(payment["status"], "mark as paid")


def assert_can_refund(payment: dict[str, Any]) -> None:
    """Only deposits that are pending or completed can be refunded."""
    if payment["kind"] != PaymentKind.DEPOSIT.value:
        raise InvalidStateTransition(
            payment["status"],
            "refund",
            detail=f"Only deposits can be refunded, got kind '{payment['kind']}'",
        )
    if payment["status"] == PaymentStatus.REFUNDED.value:
        raise InvalidStateTransition(payment["status"], "refund")


def assert_can_edit(payment: dict[str, Any], new_status: str | None) -> None:
    """Direct edits are corrections of settled obligations.

    Pending obligations must go through mark-paid; the status can only be
    moved between completed and refunded, and refunded only on deposits.
    """
    if payment["status"] == PaymentStatus.PENDING.value:
        raise InvalidStateTransition(
            payment["status"],
            "edit",
            detail="Pending payments must be marked as paid before editing",
        )
    if new_status is None or new_status == payment["status"]:
        return
    if new_status == PaymentStatus.PENDING.value:
        raise InvalidStateTransition(payment["status"], "reopen")
    if (
        new_status == PaymentStatus.REFUNDED.value
        and payment["kind"] != PaymentKind.DEPOSIT.value
    ):
        raise InvalidStateTransition(
            payment["status"],
            "refund",
            detail=f"Only deposits can be refunded, got kind '{payment['kind']}'",
        )


# ── Schedule building ────────────────────────────────────


def installment_amount(total_cents: int, count: int) -> int:
    """Split a total into ``count`` equal installments, rounded half-up."""
    if count <= 0:
        raise InvalidInputError(
            f"installment count must be positive, got {count}",
            message="A estadia não tem nenhum período completo para faturar.",
        )
    return int(
        (Decimal(total_cents) / count).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )


def build_schedule(
    *,
    booking_id: str,
    amount_cents: int,
    count: int,
    anchor: date,
    include_deposit: bool,
    deposit_cents: int = 0,
    bank_account_id: str | None = None,
) -> list[dict[str, Any]]:
    """Build the obligations for a schedule, ordered by due date.

    The deposit (when included and positive) is due on the anchor date;
    installment ``i`` is due ``i * 30`` days after the anchor.

    Raises:
        InvalidInputError: Non-positive amount with installments to emit, or
            negative count.
    """
    if count > 0 and amount_cents <= 0:
        raise InvalidInputError(
            f"amount_cents must be positive, got {amount_cents}",
            message="O valor da mensalidade deve ser positivo.",
        )
    if count < 0:
        raise InvalidInputError(
            f"count must not be negative, got {count}",
            message="O número de mensalidades não pode ser negativo.",
        )

    drafts: list[dict[str, Any]] = []
    if include_deposit and deposit_cents > 0:
        drafts.append(
            _draft(
                booking_id,
                PaymentKind.DEPOSIT,
                deposit_cents,
                anchor,
                bank_account_id,
            )
        )

    for i in range(count):
        drafts.append(
            _draft(
                booking_id,
                PaymentKind.MONTHLY,
                amount_cents,
                anchor + timedelta(days=i * INSTALLMENT_SPACING_DAYS),
                bank_account_id,
            )
        )
    return drafts


def _draft(
    booking_id: str,
    kind: PaymentKind,
    amount_cents: int,
    due_date: date,
    bank_account_id: str | None,
) -> dict[str, Any]:
    return {
        "booking_id": booking_id,
        "kind": kind.value,
        "direction": PaymentDirection.CHARGE.value,
        "status": PaymentStatus.PENDING.value,
        "amount_cents": amount_cents,
        "due_date": due_date,
        "payment_method": DEFAULT_PAYMENT_METHOD.value,
        "bank_account_id": bank_account_id,
        "notes": None,
    }


def build_deposit_refund(
    deposit: dict[str, Any],
    *,
    refund_date: date,
    method: str,
    notes: str,
) -> dict[str, Any]:
    """Build the completed ``deposit_refund`` row reversing a deposit."""
    return {
        "booking_id": deposit["booking_id"],
        "kind": PaymentKind.DEPOSIT_REFUND.value,
        "direction": PaymentDirection.REFUND.value,
        "status": PaymentStatus.COMPLETED.value,
        "amount_cents": -abs(deposit["amount_cents"]),
        "due_date": refund_date,
        "paid_at": day_start_utc(refund_date),
        "payment_method": method,
        "bank_account_id": deposit.get("bank_account_id"),
        "notes": notes,
        "reverses_payment_id": deposit["id"],
    }


# ── Revenue mirroring ────────────────────────────────────


def revenue_category(kind: str) -> str:
    return _REVENUE_CATEGORIES.get(kind, "Mensalidades")


def revenue_description(payment: dict[str, Any], booking: dict[str, Any]) -> str:
    """Ledger description, e.g. 'Mensalidade - Reserva BK-1A2B3C - Quarto Azul (Nº 101)'."""
    label = _KIND_LABELS.get(payment["kind"], payment["kind"])
    room = booking.get("room_name") or "Quarto"
    room_number = booking.get("room_number")
    room_part = f"{room} (Nº {room_number})" if room_number else room
    return f"{label} - Reserva {booking.get('booking_number') or booking['id']} - {room_part}"
