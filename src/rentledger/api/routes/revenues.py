"""Revenue ledger endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Path

from rentledger.api.errors import unwrap
from rentledger.services import engine

router = APIRouter(tags=["revenues"])


@router.get("/bookings/{booking_id}/revenues")
def list_booking_revenue(booking_id: str = Path(..., description="Booking UUID")) -> dict:
    return unwrap(engine.list_booking_revenue(booking_id))


@router.post("/revenues/sync")
def sync_revenues() -> dict:
    """Backfill revenue records for completed payments.

    Returns synced/linked/skipped/errors counts; any failed payment turns
    the response into a 503.
    """
    return unwrap(engine.sync_revenues())
