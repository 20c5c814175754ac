"""Payment service - state transitions and edits of payment obligations.

Rules:
- pending -> completed via mark_paid; creates exactly one revenue record.
- deposit pending/completed -> refunded via refund_deposit; creates the
  paired completed deposit_refund obligation.
- Settled (completed/refunded) obligations can be corrected in place with
  update_payment, keeping the revenue ledger in sync.
- All amounts are Integer (cents). The caller owns the transaction.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from rentledger.domain.errors import InvalidInputError, InvalidStateTransition, NotFoundError
from rentledger.domain.payments import (
    PaymentKind,
    PaymentStatus,
    assert_can_edit,
    assert_can_mark_paid,
    assert_can_refund,
    build_deposit_refund,
)
from rentledger.infra.repositories import bookings_repository as bookings_repo
from rentledger.infra.repositories import payments_repository as payments_repo
from rentledger.infra.repositories import rooms_repository as rooms_repo
from rentledger.infra.time import day_start_utc
from rentledger.services import revenue_service

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def _require_booking(cur: PgCursor, booking_id: str, *, for_update: bool = False) -> dict:
    booking = bookings_repo.get_booking(cur, booking_id, for_update=for_update)
    if booking is None:
        raise NotFoundError("booking", booking_id)
    return booking


def mark_paid(
    cur: PgCursor,
    *,
    payment_id: str,
    paid_date: date,
    method: str,
    notes: str | None = None,
    bank_account_id: str | None = None,
) -> dict[str, Any]:
    """Mark a pending obligation as paid and mirror it into the ledger.

    Args:
        cur: Database cursor (caller manages transaction).
        payment_id: Payment UUID.
        paid_date: Date the money was received.
        method: Payment method.
        notes: Optional free text.
        bank_account_id: Receiving account; keeps the scheduled one when None.

    Returns:
        Dict with the updated ``payment`` and the created ``revenue`` record.

    Raises:
        NotFoundError: Payment does not exist.
        InvalidStateTransition: Payment is not pending.
    """
    payment = payments_repo.get_payment(cur, payment_id, for_update=True)
    if payment is None:
        raise NotFoundError("payment", payment_id)
    assert_can_mark_paid(payment)

    booking = _require_booking(cur, payment["booking_id"])

    updated = payments_repo.mark_payment_completed(
        cur,
        payment_id=payment_id,
        paid_at=day_start_utc(paid_date),
        payment_method=method,
        notes=notes or None,
        bank_account_id=bank_account_id or None,
    )
    if updated is None:
        raise InvalidStateTransition(payment["status"], "mark as paid")

    revenue = revenue_service.record_revenue_for_payment(cur, updated, booking)

    logger.info(
        "payment_marked_paid",
        extra={
            "payment_id": payment_id,
            "booking_id": updated["booking_id"],
            "kind": updated["kind"],
        },
    )
    return {"payment": updated, "revenue": revenue}


def refund_deposit(
    cur: PgCursor,
    *,
    booking_id: str,
    refund_date: date,
    method: str,
    notes: str,
) -> dict[str, Any]:
    """Refund a booking's security deposit.

    The deposit becomes ``refunded`` and a completed ``deposit_refund``
    obligation with the negated amount is created.

    Args:
        cur: Database cursor (caller manages transaction).
        booking_id: Booking UUID.
        refund_date: Date the deposit was returned.
        method: Refund method.
        notes: Room condition at check-out (mandatory).

    Returns:
        Dict with the updated ``deposit`` and the new ``refund`` obligation.

    Raises:
        InvalidInputError: Blank notes.
        NotFoundError: Booking or deposit does not exist.
        InvalidStateTransition: Deposit already refunded.
    """
    if not notes or not notes.strip():
        raise InvalidInputError(
            "notes are required when refunding a deposit",
            message="Indique o estado do quarto na devolução da caução.",
        )

    _require_booking(cur, booking_id, for_update=True)

    deposit = payments_repo.get_deposit(cur, booking_id, for_update=True)
    if deposit is None:
        raise NotFoundError("deposit", booking_id)
    assert_can_refund(deposit)

    refunded = payments_repo.mark_deposit_refunded(
        cur,
        payment_id=deposit["id"],
        refunded_at=day_start_utc(refund_date),
        payment_method=method,
        notes=notes.strip(),
    )
    if refunded is None:
        raise InvalidStateTransition(deposit["status"], "refund")

    [refund] = payments_repo.insert_payments(
        cur,
        [
            build_deposit_refund(
                refunded,
                refund_date=refund_date,
                method=method,
                notes=notes.strip(),
            )
        ],
    )

    logger.info(
        "deposit_refunded",
        extra={
            "booking_id": booking_id,
            "deposit_id": deposit["id"],
            "refund_id": refund["id"],
        },
    )
    return {"deposit": refunded, "refund": refund}


def update_payment(
    cur: PgCursor,
    *,
    payment_id: str,
    amount_cents: int | None = None,
    status: str | None = None,
    paid_date: date | None = None,
    method: str | None = None,
    notes: str | None = _UNSET,
    bank_account_id: str | None = _UNSET,
) -> dict[str, Any]:
    """Correct a settled obligation in place.

    Each field is optional and applied independently; ``notes`` and
    ``bank_account_id`` may be explicitly cleared with None. The matching
    revenue record is updated, or created when missing and the payment is
    completed.

    Returns:
        Dict with the updated ``payment`` and the ``revenue`` record created
        by the sync (None when an existing record was updated).

    Raises:
        NotFoundError: Payment does not exist.
        InvalidStateTransition: Payment is pending, or the status change is
            not allowed for its kind.
        InvalidInputError: Resulting completed payment would have no paid date,
            or an amount edit on a deposit_refund row.
    """
    payment = payments_repo.get_payment(cur, payment_id, for_update=True)
    if payment is None:
        raise NotFoundError("payment", payment_id)
    assert_can_edit(payment, status)

    fields: dict[str, Any] = {}
    if amount_cents is not None:
        if payment["kind"] == PaymentKind.DEPOSIT_REFUND.value:
            raise InvalidInputError(
                "deposit_refund amounts mirror their deposit; edit the deposit",
                message="Altere o valor da caução; a devolução acompanha-o.",
            )
        fields["amount_cents"] = amount_cents
    if status is not None:
        fields["status"] = status
    if paid_date is not None:
        fields["paid_at"] = day_start_utc(paid_date)
    if method is not None:
        fields["payment_method"] = method
    if notes is not _UNSET:
        fields["notes"] = notes or None
    if bank_account_id is not _UNSET:
        fields["bank_account_id"] = bank_account_id or None

    final_status = fields.get("status", payment["status"])
    final_paid_at = fields.get("paid_at", payment["paid_at"])
    if final_status == PaymentStatus.COMPLETED.value and final_paid_at is None:
        raise InvalidInputError(
            "completed payments require a paid date",
            message="Indique a data do pagamento.",
        )

    updated = payments_repo.update_payment_fields(cur, payment_id, fields)
    booking = _require_booking(cur, updated["booking_id"])

    if "amount_cents" in fields and updated["kind"] == PaymentKind.DEPOSIT.value:
        _mirror_deposit_refund(cur, updated)

    revenue = revenue_service.sync_revenue_after_edit(
        cur,
        updated,
        booking,
        previous_amount_cents=payment["amount_cents"],
    )

    logger.info(
        "payment_updated",
        extra={"payment_id": payment_id, "fields": sorted(fields)},
    )
    return {"payment": updated, "revenue": revenue}


def _mirror_deposit_refund(cur: PgCursor, deposit: dict[str, Any]) -> None:
    """Keep the refund row of a deposit at the negated deposit amount."""
    for row in payments_repo.list_booking_payments(cur, deposit["booking_id"]):
        if row["reverses_payment_id"] != deposit["id"]:
            continue
        payments_repo.update_payment_fields(
            cur, row["id"], {"amount_cents": -deposit["amount_cents"]}
        )
        logger.info(
            "deposit_refund_amount_mirrored",
            extra={"deposit_id": deposit["id"], "refund_id": row["id"]},
        )


def list_booking_payments(cur: PgCursor, booking_id: str) -> list[dict[str, Any]]:
    _require_booking(cur, booking_id)
    return payments_repo.list_booking_payments(cur, booking_id)


def list_pending_payments(
    cur: PgCursor,
    *,
    due_before: date | None = None,
) -> list[dict[str, Any]]:
    return payments_repo.list_pending_payments(cur, due_before=due_before)


def list_room_payments(cur: PgCursor, room_id: str) -> list[dict[str, Any]]:
    if rooms_repo.get_room(cur, room_id) is None:
        raise NotFoundError("room", room_id)
    return payments_repo.list_payments_with_context(cur, room_id=room_id)


def list_month_payments(cur: PgCursor, *, year: int, month: int) -> list[dict[str, Any]]:
    """Payments of every booking falling due within a calendar month."""
    if not 1 <= month <= 12:
        raise InvalidInputError(
            f"month must be between 1 and 12, got {month}",
            message="Mês inválido.",
        )
    last_day = calendar.monthrange(year, month)[1]
    return payments_repo.list_payments_with_context(
        cur, due_from=date(year, month, 1), due_to=date(year, month, last_day)
    )


def delete_booking_payments(cur: PgCursor, booking_id: str) -> int:
    """Remove every obligation of a booking that is being deleted."""
    _require_booking(cur, booking_id, for_update=True)
    deleted = payments_repo.delete_booking_payments(cur, booking_id)
    logger.info(
        "booking_payments_deleted",
        extra={"booking_id": booking_id, "deleted": deleted},
    )
    return deleted


def get_payment_stats(cur: PgCursor, booking_id: str) -> dict[str, Any]:
    """Summarize a booking's obligations.

    Returns:
        Dict with total_cents (all rows, refunds negative), paid_cents
        (completed), pending_cents, refunded_cents (refunded deposits) and
        deposit_status (None when the booking has no deposit).
    """
    payments = list_booking_payments(cur, booking_id)

    def _sum(status: str) -> int:
        return sum(p["amount_cents"] for p in payments if p["status"] == status)

    deposit = next(
        (p for p in payments if p["kind"] == PaymentKind.DEPOSIT.value), None
    )
    return {
        "booking_id": booking_id,
        "total_cents": sum(p["amount_cents"] for p in payments),
        "paid_cents": _sum(PaymentStatus.COMPLETED.value),
        "pending_cents": _sum(PaymentStatus.PENDING.value),
        "refunded_cents": _sum(PaymentStatus.REFUNDED.value),
        "deposit_status": deposit["status"] if deposit else None,
    }
