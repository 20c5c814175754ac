"""Schedule service - generating and regenerating payment schedules.

Rules:
- Generation is additive: it never inspects or removes existing obligations.
- Regeneration replaces only pending obligations; completed and refunded
  ones are history and are preserved.
- When a booking's installments are all settled, regeneration adjusts the
  booking total instead of emitting a new schedule.
- All amounts are Integer (cents). The caller owns the transaction.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from rentledger.domain.errors import InvalidInputError, NotFoundError
from rentledger.domain.payments import (
    INSTALLMENT_SPACING_DAYS,
    BillingMode,
    PaymentKind,
    PaymentStatus,
    build_schedule,
    installment_amount,
)
from rentledger.domain.pricing import (
    PriceTable,
    compute_pricing,
    months_equivalent,
    stay_days,
)
from rentledger.infra.repositories import bookings_repository as bookings_repo
from rentledger.infra.repositories import payments_repository as payments_repo
from rentledger.infra.repositories import rooms_repository as rooms_repo

logger = logging.getLogger(__name__)


def _require_booking(cur: PgCursor, booking_id: str) -> dict[str, Any]:
    booking = bookings_repo.get_booking(cur, booking_id, for_update=True)
    if booking is None:
        raise NotFoundError("booking", booking_id)
    return booking


def _require_room(cur: PgCursor, room_id: str) -> dict[str, Any]:
    room = rooms_repo.get_room(cur, room_id)
    if room is None:
        raise NotFoundError("room", room_id)
    return room


def generate_schedule(
    cur: PgCursor,
    *,
    booking_id: str,
    amount_cents: int,
    count: int,
    anchor: date,
    include_deposit: bool,
    deposit_cents: int = 0,
) -> list[dict[str, Any]]:
    """Emit a deposit (optional) and ``count`` monthly obligations.

    Obligations start pending, paid by bank transfer into the room's
    settlement account.

    Args:
        cur: Database cursor (caller manages transaction).
        booking_id: Booking UUID.
        amount_cents: Per-installment amount.
        count: Number of installments.
        anchor: Due date of the deposit and the first installment.
        include_deposit: Emit a deposit obligation.
        deposit_cents: Deposit amount; no deposit when not positive.

    Returns:
        The inserted obligations, ordered by due date.

    Raises:
        NotFoundError: Booking or its room does not exist.
        InvalidInputError: Non-positive amount or negative count.
    """
    booking = _require_booking(cur, booking_id)
    room = _require_room(cur, booking["room_id"])

    drafts = build_schedule(
        booking_id=booking_id,
        amount_cents=amount_cents,
        count=count,
        anchor=anchor,
        include_deposit=include_deposit,
        deposit_cents=deposit_cents,
        bank_account_id=room["bank_account_id"],
    )
    payments = payments_repo.insert_payments(cur, drafts)

    logger.info(
        "schedule_generated",
        extra={
            "booking_id": booking_id,
            "installments": count,
            "with_deposit": any(p["kind"] == PaymentKind.DEPOSIT.value for p in payments),
        },
    )
    return payments


def generate_schedule_for_booking(
    cur: PgCursor,
    *,
    booking_id: str,
    include_deposit: bool = False,
    deposit_cents: int = 0,
) -> list[dict[str, Any]]:
    """Generate a schedule from the booking's own dates and total.

    The installment count is the stay's month-equivalent count and each
    installment is the booking total divided by it.

    Raises:
        NotFoundError: Booking does not exist.
        InvalidInputError: The stay has no complete 15-day period.
    """
    booking = _require_booking(cur, booking_id)
    count = months_equivalent(stay_days(booking["check_in"], booking["check_out"]))
    amount = installment_amount(booking["total_cents"], count)

    return generate_schedule(
        cur,
        booking_id=booking_id,
        amount_cents=amount,
        count=count,
        anchor=booking["check_in"],
        include_deposit=include_deposit,
        deposit_cents=deposit_cents,
    )


def regenerate_schedule(
    cur: PgCursor,
    *,
    booking_id: str,
    amount_cents: int,
    count: int,
    anchor: date,
    deposit_cents: int | None = None,
    total_cents: int | None = None,
) -> dict[str, Any]:
    """Replace a booking's pending obligations with a new schedule.

    Steps:
    1. If the booking has installments but none pending, set the booking
       total to amount x count and stop.
    2. Delete pending obligations (completed/refunded are preserved).
    3. Generate the new schedule; a deposit is re-added only for a positive
       deposit amount when no settled deposit survives.

    ``total_cents`` is given by term changes, which already know the new
    booking total: step 1 then stores that total, and only applies when
    there is nothing left to schedule (``count == 0``).

    Returns:
        Dict with regenerated_count, deleted_count and total_adjusted.

    Raises:
        NotFoundError: Booking does not exist.
        InvalidInputError: Non-positive amount or negative count.
    """
    _require_booking(cur, booking_id)
    existing = payments_repo.list_booking_payments(cur, booking_id)

    installments = [p for p in existing if p["kind"] == PaymentKind.MONTHLY.value]
    has_pending_installment = any(
        p["status"] == PaymentStatus.PENDING.value for p in installments
    )
    settled_only = installments and not has_pending_installment
    if settled_only and (total_cents is None or count == 0):
        if total_cents is None:
            total_cents = amount_cents * count
        bookings_repo.update_booking_total(
            cur, booking_id=booking_id, total_cents=total_cents
        )
        logger.info(
            "schedule_settled_total_adjusted",
            extra={"booking_id": booking_id, "total_cents": total_cents},
        )
        return {"regenerated_count": 0, "deleted_count": 0, "total_adjusted": True}

    deleted = payments_repo.delete_pending_payments(cur, booking_id)

    settled_deposit = any(
        p["kind"] == PaymentKind.DEPOSIT.value
        and p["status"] != PaymentStatus.PENDING.value
        for p in existing
    )
    include_deposit = bool(deposit_cents and deposit_cents > 0) and not settled_deposit

    payments = generate_schedule(
        cur,
        booking_id=booking_id,
        amount_cents=amount_cents,
        count=count,
        anchor=anchor,
        include_deposit=include_deposit,
        deposit_cents=deposit_cents or 0,
    )

    logger.info(
        "schedule_regenerated",
        extra={
            "booking_id": booking_id,
            "deleted": deleted,
            "regenerated": len(payments),
        },
    )
    return {
        "regenerated_count": len(payments),
        "deleted_count": deleted,
        "total_adjusted": False,
    }


def change_booking_terms(
    cur: PgCursor,
    *,
    booking_id: str,
    check_in: date,
    check_out: date,
    monthly_amount_cents: int | None = None,
    installment_count: int | None = None,
    deposit_cents: int | None = None,
) -> dict[str, Any]:
    """Move a booking to new dates and rebuild its future schedule.

    Non-manual billing modes store the freshly computed price as the new
    total; manual bookings keep their total.

    Settled (completed/refunded) installments stay in place and count
    towards the stay: the new schedule covers only what is left. The number
    of new installments defaults to the stay's month-equivalent count minus
    the settled ones, each for the unpaid balance / count, and the first
    one falls due after the last settled installment.

    Returns:
        The regeneration result plus the new ``total_cents`` and ``quote``.

    Raises:
        NotFoundError: Booking or room does not exist.
        MissingPriceError: Room has no monthly price (non-manual modes).
        InvalidInputError: Invalid dates, or no billable period.
    """
    booking = _require_booking(cur, booking_id)
    days = stay_days(check_in, check_out)

    quote = None
    total_cents = booking["total_cents"]
    if booking["billing_mode"] != BillingMode.MANUAL.value:
        room = _require_room(cur, booking["room_id"])
        quote = compute_pricing(check_in, check_out, PriceTable.from_room(room))
        total_cents = quote.total_cents
        stay_count = quote.period_count
    else:
        stay_count = months_equivalent(days)

    if installment_count is None and stay_count <= 0:
        raise InvalidInputError(
            f"stay of {days} days has no billable period",
            message="A estadia não tem nenhum período completo para faturar.",
        )

    settled = [
        p
        for p in payments_repo.list_booking_payments(cur, booking_id)
        if p["kind"] == PaymentKind.MONTHLY.value
        and p["status"] != PaymentStatus.PENDING.value
    ]
    settled_cents = sum(p["amount_cents"] for p in settled)
    if installment_count is not None:
        count = installment_count
    else:
        count = max(stay_count - len(settled), 0)

    if quote is not None:
        bookings_repo.update_booking_total(
            cur, booking_id=booking_id, total_cents=total_cents
        )
    bookings_repo.update_booking_dates(
        cur, booking_id=booking_id, check_in=check_in, check_out=check_out
    )

    if monthly_amount_cents is not None:
        amount = monthly_amount_cents
    elif count > 0:
        amount = installment_amount(total_cents - settled_cents, count)
    else:
        amount = 0

    anchor = check_in + timedelta(days=len(settled) * INSTALLMENT_SPACING_DAYS)
    result = regenerate_schedule(
        cur,
        booking_id=booking_id,
        amount_cents=amount,
        count=count,
        anchor=anchor,
        deposit_cents=deposit_cents,
        total_cents=total_cents,
    )
    result["total_cents"] = total_cents
    result["quote"] = quote.as_dict() if quote else None
    return result
