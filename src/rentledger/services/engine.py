"""Engine facade - the operations exposed to the admin application.

Each operation runs as one unit of work (``txn``) and returns an
``OperationResult``: typed engine errors and store failures are converted
into a user-displayable error instead of propagating. Pure pricing is the
exception and raises directly.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Callable

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor
from pydantic import BaseModel

from rentledger.domain.errors import LedgerError, NotFoundError, PersistenceError
from rentledger.domain.payments import REVENUE_KINDS
from rentledger.domain.pricing import PriceQuote, PriceTable
from rentledger.domain.pricing import compute_pricing as _compute_pricing
from rentledger.infra.db import txn
from rentledger.infra.repositories import payments_repository as payments_repo
from rentledger.infra.repositories import revenues_repository as revenues_repo
from rentledger.infra.repositories import rooms_repository as rooms_repo
from rentledger.observability.logging import get_logger
from rentledger.observability.redaction import safe_log_context
from rentledger.services import payment_service, revenue_service, schedule_service

logger = get_logger(__name__)


# ── Result types ─────────────────────────────────────────


class ErrorInfo(BaseModel):
    code: str
    message: str
    detail: str | None = None


class OperationResult(BaseModel):
    success: bool
    data: Any = None
    error: ErrorInfo | None = None

    @classmethod
    def ok(cls, data: Any = None) -> OperationResult:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, exc: LedgerError) -> OperationResult:
        return cls(
            success=False,
            error=ErrorInfo(code=exc.code, message=exc.message, detail=exc.detail or None),
        )


def _run(
    operation: str,
    work: Callable[[PgCursor], Any],
    *,
    conn: PgConnection | None = None,
    **context: Any,
) -> OperationResult:
    """Run ``work`` in a transaction and wrap its outcome."""
    try:
        with txn(conn) as cur:
            data = work(cur)
    except LedgerError as exc:
        logger.warning(
            f"{operation} rejected",
            extra={
                "extra_fields": safe_log_context(
                    operation=operation, code=exc.code, detail=exc.detail, **context
                )
            },
        )
        return OperationResult.failure(exc)
    except psycopg2.Error as exc:
        logger.error(
            f"{operation} failed",
            extra={
                "extra_fields": safe_log_context(
                    operation=operation,
                    pgcode=getattr(exc, "pgcode", None),
                    error=str(exc).strip(),
                    **context,
                )
            },
        )
        return OperationResult.failure(PersistenceError(str(exc).strip()))

    logger.info(
        f"{operation} succeeded",
        extra={"extra_fields": safe_log_context(operation=operation, **context)},
    )
    return OperationResult.ok(data)


# ── Pricing ──────────────────────────────────────────────


def compute_pricing(check_in: date, check_out: date, prices: PriceTable) -> PriceQuote:
    """Price a stay from an explicit price table.

    Raises:
        MissingPriceError: Monthly price is zero or unset.
        InvalidInputError: Check-out is not after check-in.
    """
    return _compute_pricing(check_in, check_out, prices)


def quote_room(
    room_id: str,
    check_in: date,
    check_out: date,
    *,
    conn: PgConnection | None = None,
) -> OperationResult:
    """Price a stay with the room's stored price table."""

    def work(cur: PgCursor) -> dict:
        room = rooms_repo.get_room(cur, room_id)
        if room is None:
            raise NotFoundError("room", room_id)
        quote = _compute_pricing(check_in, check_out, PriceTable.from_room(room))
        return {"room_id": room_id, **quote.as_dict()}

    return _run("quote_room", work, conn=conn, room_id=room_id)


# ── Schedules ────────────────────────────────────────────


def generate_schedule(
    booking_id: str,
    amount_cents: int,
    count: int,
    anchor: date,
    include_deposit: bool,
    deposit_cents: int = 0,
    *,
    conn: PgConnection | None = None,
) -> OperationResult:
    return _run(
        "generate_schedule",
        lambda cur: {
            "payments": schedule_service.generate_schedule(
                cur,
                booking_id=booking_id,
                amount_cents=amount_cents,
                count=count,
                anchor=anchor,
                include_deposit=include_deposit,
                deposit_cents=deposit_cents,
            )
        },
        conn=conn,
        booking_id=booking_id,
        count=count,
    )


def generate_schedule_for_booking(
    booking_id: str,
    *,
    include_deposit: bool = False,
    deposit_cents: int = 0,
    conn: PgConnection | None = None,
) -> OperationResult:
    return _run(
        "generate_schedule_for_booking",
        lambda cur: {
            "payments": schedule_service.generate_schedule_for_booking(
                cur,
                booking_id=booking_id,
                include_deposit=include_deposit,
                deposit_cents=deposit_cents,
            )
        },
        conn=conn,
        booking_id=booking_id,
    )


def regenerate_schedule(
    booking_id: str,
    amount_cents: int,
    count: int,
    anchor: date,
    deposit_cents: int | None = None,
    *,
    conn: PgConnection | None = None,
) -> OperationResult:
    return _run(
        "regenerate_schedule",
        lambda cur: schedule_service.regenerate_schedule(
            cur,
            booking_id=booking_id,
            amount_cents=amount_cents,
            count=count,
            anchor=anchor,
            deposit_cents=deposit_cents,
        ),
        conn=conn,
        booking_id=booking_id,
        count=count,
    )


def change_booking_terms(
    booking_id: str,
    check_in: date,
    check_out: date,
    *,
    monthly_amount_cents: int | None = None,
    installment_count: int | None = None,
    deposit_cents: int | None = None,
    conn: PgConnection | None = None,
) -> OperationResult:
    return _run(
        "change_booking_terms",
        lambda cur: schedule_service.change_booking_terms(
            cur,
            booking_id=booking_id,
            check_in=check_in,
            check_out=check_out,
            monthly_amount_cents=monthly_amount_cents,
            installment_count=installment_count,
            deposit_cents=deposit_cents,
        ),
        conn=conn,
        booking_id=booking_id,
    )


# ── Payment transitions ──────────────────────────────────


def mark_paid(
    payment_id: str,
    paid_date: date,
    method: str,
    notes: str | None = None,
    bank_account_id: str | None = None,
    *,
    conn: PgConnection | None = None,
) -> OperationResult:
    return _run(
        "mark_paid",
        lambda cur: payment_service.mark_paid(
            cur,
            payment_id=payment_id,
            paid_date=paid_date,
            method=method,
            notes=notes,
            bank_account_id=bank_account_id,
        ),
        conn=conn,
        payment_id=payment_id,
        method=method,
    )


def refund_deposit(
    booking_id: str,
    refund_date: date,
    method: str,
    notes: str,
    *,
    conn: PgConnection | None = None,
) -> OperationResult:
    return _run(
        "refund_deposit",
        lambda cur: payment_service.refund_deposit(
            cur,
            booking_id=booking_id,
            refund_date=refund_date,
            method=method,
            notes=notes,
        ),
        conn=conn,
        booking_id=booking_id,
        method=method,
    )


def update_payment(
    payment_id: str,
    *,
    conn: PgConnection | None = None,
    **fields: Any,
) -> OperationResult:
    """Correct a settled payment; ``fields`` as in ``payment_service.update_payment``."""
    return _run(
        "update_payment",
        lambda cur: payment_service.update_payment(cur, payment_id=payment_id, **fields),
        conn=conn,
        payment_id=payment_id,
        fields=sorted(fields),
    )


# ── Queries ──────────────────────────────────────────────


def get_stats(booking_id: str, *, conn: PgConnection | None = None) -> OperationResult:
    return _run(
        "get_stats",
        lambda cur: payment_service.get_payment_stats(cur, booking_id),
        conn=conn,
        booking_id=booking_id,
    )


def list_booking_payments(
    booking_id: str, *, conn: PgConnection | None = None
) -> OperationResult:
    return _run(
        "list_booking_payments",
        lambda cur: {"payments": payment_service.list_booking_payments(cur, booking_id)},
        conn=conn,
        booking_id=booking_id,
    )


def list_booking_revenue(
    booking_id: str, *, conn: PgConnection | None = None
) -> OperationResult:
    return _run(
        "list_booking_revenue",
        lambda cur: {"revenues": revenues_repo.list_booking_revenue(cur, booking_id)},
        conn=conn,
        booking_id=booking_id,
    )


def list_pending_payments(
    *,
    due_before: date | None = None,
    conn: PgConnection | None = None,
) -> OperationResult:
    return _run(
        "list_pending_payments",
        lambda cur: {
            "payments": payment_service.list_pending_payments(cur, due_before=due_before)
        },
        conn=conn,
    )


def list_room_payments(room_id: str, *, conn: PgConnection | None = None) -> OperationResult:
    return _run(
        "list_room_payments",
        lambda cur: {"payments": payment_service.list_room_payments(cur, room_id)},
        conn=conn,
        room_id=room_id,
    )


def list_month_payments(
    year: int, month: int, *, conn: PgConnection | None = None
) -> OperationResult:
    """Obligations due within one calendar month, across all bookings."""
    return _run(
        "list_month_payments",
        lambda cur: {
            "payments": payment_service.list_month_payments(cur, year=year, month=month)
        },
        conn=conn,
        year=year,
        month=month,
    )


def delete_booking_payments(
    booking_id: str, *, conn: PgConnection | None = None
) -> OperationResult:
    return _run(
        "delete_booking_payments",
        lambda cur: {"deleted": payment_service.delete_booking_payments(cur, booking_id)},
        conn=conn,
        booking_id=booking_id,
    )


# ── Revenue backfill ─────────────────────────────────────


def sync_revenues(*, conn: PgConnection | None = None) -> OperationResult:
    """Backfill revenue records for completed payments that lack one.

    Each payment is reconciled in its own transaction so one failing row
    does not block the rest; failures are counted, logged and not retried.
    Running it again on unchanged data syncs nothing.
    """
    listing = _run(
        "list_completed_payments",
        lambda cur: payments_repo.list_completed_payments(cur, sorted(REVENUE_KINDS)),
        conn=conn,
    )
    if not listing.success:
        return listing

    counts = {"synced": 0, "linked": 0, "skipped": 0, "errors": 0}
    for payment in listing.data:
        try:
            with txn(conn) as cur:
                outcome = revenue_service.sync_payment_revenue(cur, payment)
        except psycopg2.Error as exc:
            counts["errors"] += 1
            logger.error(
                "revenue sync failed for payment",
                extra={
                    "extra_fields": safe_log_context(
                        payment_id=payment["id"], error=str(exc).strip()
                    )
                },
            )
            continue
        counts[outcome] += 1

    logger.info(
        "revenue sync finished",
        extra={"extra_fields": safe_log_context(**counts)},
    )
    return OperationResult(
        success=counts["errors"] == 0,
        data=counts,
        error=(
            None
            if counts["errors"] == 0
            else ErrorInfo(
                code=PersistenceError.code,
                message=PersistenceError.default_message,
                detail=f"{counts['errors']} payment(s) failed to sync",
            )
        ),
    )
