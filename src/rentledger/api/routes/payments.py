"""Payment schedule endpoints - schedules, transitions and edits.

Every endpoint delegates to the engine facade, which owns the transaction;
engine errors map to 404/409/422/503 through ``unwrap``.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Path, Query
from pydantic import BaseModel, ConfigDict, Field

from rentledger.api.errors import unwrap
from rentledger.domain.payments import DEFAULT_PAYMENT_METHOD, PaymentMethod, PaymentStatus
from rentledger.observability.correlation import get_correlation_id
from rentledger.observability.logging import get_logger
from rentledger.observability.redaction import safe_log_context
from rentledger.services import engine

router = APIRouter(tags=["payments"])

logger = get_logger(__name__)


# ── Request schemas ──────────────────────────────────────


class ScheduleRequest(BaseModel):
    amount_cents: int = Field(..., gt=0, description="Per-installment amount in cents")
    count: int = Field(..., ge=0)
    anchor: date
    include_deposit: bool = False
    deposit_cents: int = Field(0, ge=0)


class AutoScheduleRequest(BaseModel):
    include_deposit: bool = False
    deposit_cents: int = Field(0, ge=0)


class RegenerateRequest(BaseModel):
    amount_cents: int = Field(..., gt=0)
    count: int = Field(..., ge=0)
    anchor: date
    deposit_cents: int | None = Field(None, ge=0)


class ChangeTermsRequest(BaseModel):
    check_in: date
    check_out: date
    monthly_amount_cents: int | None = Field(None, gt=0)
    installment_count: int | None = Field(None, ge=0)
    deposit_cents: int | None = Field(None, ge=0)


class MarkPaidRequest(BaseModel):
    paid_date: date
    method: PaymentMethod = DEFAULT_PAYMENT_METHOD
    notes: str | None = None
    bank_account_id: str | None = None


class RefundDepositRequest(BaseModel):
    refund_date: date
    method: PaymentMethod = DEFAULT_PAYMENT_METHOD
    notes: str = Field(..., min_length=1, description="Room condition at check-out")


class UpdatePaymentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount_cents: int | None = Field(None, gt=0)
    status: PaymentStatus | None = None
    paid_date: date | None = None
    method: PaymentMethod | None = None
    notes: str | None = None
    bank_account_id: str | None = None


# ── Booking-scoped endpoints ─────────────────────────────


@router.get("/bookings/{booking_id}/payments")
def list_booking_payments(booking_id: str = Path(..., description="Booking UUID")) -> dict:
    return unwrap(engine.list_booking_payments(booking_id))


@router.get("/bookings/{booking_id}/payments/stats")
def get_stats(booking_id: str = Path(..., description="Booking UUID")) -> dict:
    return unwrap(engine.get_stats(booking_id))


@router.delete("/bookings/{booking_id}/payments")
def delete_booking_payments(booking_id: str = Path(..., description="Booking UUID")) -> dict:
    """Purge all obligations of a booking that is being deleted."""
    return unwrap(engine.delete_booking_payments(booking_id))


@router.post("/bookings/{booking_id}/payments/schedule", status_code=201)
def generate_schedule(
    body: ScheduleRequest,
    booking_id: str = Path(..., description="Booking UUID"),
) -> dict:
    """Append a schedule to the booking; existing obligations are kept."""
    return unwrap(
        engine.generate_schedule(
            booking_id,
            body.amount_cents,
            body.count,
            body.anchor,
            body.include_deposit,
            body.deposit_cents,
        )
    )


@router.post("/bookings/{booking_id}/payments/schedule/auto", status_code=201)
def generate_schedule_for_booking(
    body: AutoScheduleRequest,
    booking_id: str = Path(..., description="Booking UUID"),
) -> dict:
    """Append a schedule derived from the booking's dates and total."""
    return unwrap(
        engine.generate_schedule_for_booking(
            booking_id,
            include_deposit=body.include_deposit,
            deposit_cents=body.deposit_cents,
        )
    )


@router.post("/bookings/{booking_id}/payments/regenerate")
def regenerate_schedule(
    body: RegenerateRequest,
    booking_id: str = Path(..., description="Booking UUID"),
) -> dict:
    return unwrap(
        engine.regenerate_schedule(
            booking_id,
            body.amount_cents,
            body.count,
            body.anchor,
            body.deposit_cents,
        )
    )


@router.post("/bookings/{booking_id}/actions/change-terms")
def change_booking_terms(
    body: ChangeTermsRequest,
    booking_id: str = Path(..., description="Booking UUID"),
) -> dict:
    """Move the booking to new dates and rebuild its pending schedule."""
    return unwrap(
        engine.change_booking_terms(
            booking_id,
            body.check_in,
            body.check_out,
            monthly_amount_cents=body.monthly_amount_cents,
            installment_count=body.installment_count,
            deposit_cents=body.deposit_cents,
        )
    )


@router.post("/bookings/{booking_id}/deposit/refund")
def refund_deposit(
    body: RefundDepositRequest,
    booking_id: str = Path(..., description="Booking UUID"),
) -> dict:
    data = unwrap(
        engine.refund_deposit(
            booking_id, body.refund_date, body.method.value, body.notes
        )
    )
    logger.info(
        "deposit refund recorded",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                booking_id=booking_id,
                refund_id=data["refund"]["id"],
                method=body.method.value,
            )
        },
    )
    return data


# ── Payment-scoped endpoints ─────────────────────────────


@router.get("/payments")
def list_month_payments(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
) -> dict:
    return unwrap(engine.list_month_payments(year, month))


@router.get("/rooms/{room_id}/payments")
def list_room_payments(room_id: str = Path(..., description="Room UUID")) -> dict:
    return unwrap(engine.list_room_payments(room_id))


@router.get("/payments/pending")
def list_pending_payments(
    due_before: date | None = Query(None, description="Only obligations due before this date"),
) -> dict:
    return unwrap(engine.list_pending_payments(due_before=due_before))


@router.post("/payments/{payment_id}/mark-paid")
def mark_paid(
    body: MarkPaidRequest,
    payment_id: str = Path(..., description="Payment UUID"),
) -> dict:
    data = unwrap(
        engine.mark_paid(
            payment_id,
            body.paid_date,
            body.method.value,
            body.notes,
            body.bank_account_id,
        )
    )
    logger.info(
        "payment marked paid",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                payment_id=payment_id,
                method=body.method.value,
            )
        },
    )
    return data


@router.patch("/payments/{payment_id}")
def update_payment(
    body: UpdatePaymentRequest,
    payment_id: str = Path(..., description="Payment UUID"),
) -> dict:
    """Correct a completed or refunded payment.

    Only fields present in the body are changed; ``notes`` and
    ``bank_account_id`` can be cleared by sending null.
    """
    fields: dict[str, Any] = {}
    for name in body.model_fields_set:
        value = getattr(body, name)
        if name in ("status", "method") and value is not None:
            value = value.value
        fields[name] = value
    return unwrap(engine.update_payment(payment_id, **fields))
