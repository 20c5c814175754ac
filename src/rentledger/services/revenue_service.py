"""Revenue reconciler - mirrors completed payments into the revenue ledger.

Rules:
- One ledger row per completed deposit/monthly payment, linked by payment_id.
- Deposit refunds are not mirrored; reporting reads them from the payments.
- Legacy rows without a link are adopted when booking, amount and date match.
- All amounts are Integer (cents).
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Literal

from psycopg2.extensions import cursor as PgCursor

from rentledger.domain.payments import (
    REVENUE_KINDS,
    PaymentStatus,
    revenue_category,
    revenue_description,
)
from rentledger.infra.repositories import revenues_repository as revenues_repo

logger = logging.getLogger(__name__)

SyncOutcome = Literal["synced", "linked", "skipped"]


def _ledger_date(payment: dict[str, Any]) -> date | None:
    paid_at = payment.get("paid_at")
    if paid_at is None:
        return None
    return paid_at.date() if hasattr(paid_at, "date") else paid_at


def record_revenue_for_payment(
    cur: PgCursor,
    payment: dict[str, Any],
    booking: dict[str, Any],
) -> dict[str, Any] | None:
    """Create the ledger row for a payment that just became completed.

    Args:
        cur: Database cursor (caller manages transaction).
        payment: The completed payment.
        booking: Its booking, with room_name/room_number/booking_number.

    Returns:
        The created record, or None for kinds that are not mirrored.
    """
    if payment["kind"] not in REVENUE_KINDS:
        return None

    record = revenues_repo.insert_revenue_record(
        cur,
        booking_id=payment["booking_id"],
        payment_id=payment["id"],
        amount_cents=payment["amount_cents"],
        on_date=_ledger_date(payment),
        category=revenue_category(payment["kind"]),
        description=revenue_description(payment, booking),
        payment_method=payment["payment_method"],
        bank_account_id=payment["bank_account_id"],
    )
    logger.info(
        "revenue_recorded",
        extra={"payment_id": payment["id"], "revenue_id": record["id"]},
    )
    return record


def sync_revenue_after_edit(
    cur: PgCursor,
    payment: dict[str, Any],
    booking: dict[str, Any],
    *,
    previous_amount_cents: int,
) -> dict[str, Any] | None:
    """Bring the ledger row of an edited payment in line with it.

    Looks up the row linked to the payment, falling back to a legacy row of
    the same booking and previous amount. Updates it when found; creates one
    when none exists and the payment is completed.

    Returns:
        The created record, or None when an existing one was updated or
        nothing was needed.
    """
    if payment["kind"] not in REVENUE_KINDS:
        return None

    existing = revenues_repo.get_revenue_by_payment(cur, payment["id"])
    if existing is None:
        existing = revenues_repo.find_unlinked_revenue(
            cur,
            booking_id=payment["booking_id"],
            amount_cents=previous_amount_cents,
        )

    if existing is not None:
        revenues_repo.update_revenue_record(
            cur,
            existing["id"],
            payment_id=payment["id"],
            amount_cents=payment["amount_cents"],
            on_date=_ledger_date(payment),
            payment_method=payment["payment_method"],
            bank_account_id=payment["bank_account_id"],
        )
        return None

    if payment["status"] != PaymentStatus.COMPLETED.value:
        return None

    return record_revenue_for_payment(cur, payment, booking)


def sync_payment_revenue(cur: PgCursor, payment: dict[str, Any]) -> SyncOutcome:
    """Backfill step for one completed payment.

    ``payment`` must carry a ``booking`` dict (see
    ``payments_repository.list_completed_payments``).

    Returns:
        "skipped" if a linked row exists, "linked" if a legacy row was
        adopted, "synced" if a new row was created.
    """
    if revenues_repo.get_revenue_by_payment(cur, payment["id"]) is not None:
        return "skipped"

    legacy = revenues_repo.find_unlinked_revenue(
        cur,
        booking_id=payment["booking_id"],
        amount_cents=payment["amount_cents"],
        on_date=_ledger_date(payment),
    )
    if legacy is not None:
        revenues_repo.link_revenue_to_payment(cur, legacy["id"], payment["id"])
        return "linked"

    record_revenue_for_payment(cur, payment, payment["booking"])
    return "synced"
