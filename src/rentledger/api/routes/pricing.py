"""Pricing endpoints - quotes for a stay."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Path, Query
from pydantic import BaseModel, Field

from rentledger.api.errors import http_error_from_exc, unwrap
from rentledger.domain.errors import LedgerError
from rentledger.domain.pricing import PriceTable
from rentledger.services import engine

router = APIRouter(tags=["pricing"])


class QuoteRequest(BaseModel):
    check_in: date
    check_out: date
    monthly_price_cents: int | None = Field(None, ge=0)
    biweekly_price_cents: int | None = Field(None, ge=0)
    daily_price_cents: int | None = Field(None, ge=0)


@router.post("/pricing/quote")
def quote(body: QuoteRequest) -> dict:
    """Price a stay from an explicit price table."""
    prices = PriceTable(
        monthly_price_cents=body.monthly_price_cents,
        biweekly_price_cents=body.biweekly_price_cents,
        daily_price_cents=body.daily_price_cents,
    )
    try:
        result = engine.compute_pricing(body.check_in, body.check_out, prices)
    except LedgerError as exc:
        raise http_error_from_exc(exc)
    return result.as_dict()


@router.get("/rooms/{room_id}/quote")
def quote_room(
    room_id: str = Path(..., description="Room UUID"),
    check_in: date = Query(...),
    check_out: date = Query(...),
) -> dict:
    """Price a stay with the room's stored prices."""
    return unwrap(engine.quote_room(room_id, check_in, check_out))
