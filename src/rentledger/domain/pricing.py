"""Pricing calculator - stay length and room price table to a priced stay.

Stays are quantized into whole 15-day and 30-day blocks; partial periods
below the next boundary are not charged. All amounts are integer cents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal

from rentledger.domain.errors import InvalidInputError, MissingPriceError

PriceType = Literal["daily", "biweekly", "monthly"]

BIWEEKLY_DAYS = 15
MONTHLY_DAYS = 30


@dataclass(frozen=True)
class PriceTable:
    """Room price table (cents)."""

    monthly_price_cents: int | None
    biweekly_price_cents: int | None = None
    daily_price_cents: int | None = None

    @classmethod
    def from_room(cls, room: dict) -> PriceTable:
        return cls(
            monthly_price_cents=room.get("monthly_price_cents"),
            biweekly_price_cents=room.get("biweekly_price_cents"),
            daily_price_cents=room.get("daily_price_cents"),
        )


@dataclass(frozen=True)
class PriceQuote:
    total_cents: int
    period_count: int
    price_type: PriceType
    days: int
    breakdown: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "total_cents": self.total_cents,
            "period_count": self.period_count,
            "price_type": self.price_type,
            "days": self.days,
            "breakdown": list(self.breakdown),
        }


def format_eur(cents: int) -> str:
    """Render cents as a euro string, e.g. 50000 -> '€500.00'."""
    return f"€{Decimal(cents) / 100:.2f}"


def halve_cents(cents: int) -> int:
    """Half of an amount in cents, rounded half-up."""
    return int((Decimal(cents) / 2).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def stay_days(check_in: date, check_out: date) -> int:
    """Whole days between check-in and check-out.

    Raises:
        InvalidInputError: If check-out is not after check-in.
    """
    days = (check_out - check_in).days
    if days <= 0:
        raise InvalidInputError(
            f"check_out {check_out} must be after check_in {check_in}",
            message="A data de check-out deve ser posterior à data de check-in.",
        )
    return days


def months_equivalent(days: int) -> int:
    """Number of installments a stay is split into.

    Every two complete 15-day blocks make one month, rounding up, so a
    stay of 15-29 days still counts as one installment.
    """
    blocks15 = days // BIWEEKLY_DAYS
    return (blocks15 + 1) // 2


def compute_pricing(check_in: date, check_out: date, prices: PriceTable) -> PriceQuote:
    """Price a stay with the strict whole-period rule.

    - days < 30: floor(days / 15) x biweekly price
    - days >= 30: floor(days / 30) x monthly price

    The biweekly price defaults to half the monthly price when unset.

    Raises:
        MissingPriceError: Monthly price is zero or unset.
        InvalidInputError: Check-out is not after check-in.
    """
    monthly = prices.monthly_price_cents or 0
    if monthly <= 0:
        raise MissingPriceError("monthly_price_cents is not set")

    days = stay_days(check_in, check_out)
    biweekly = prices.biweekly_price_cents or halve_cents(monthly)
    period_count = months_equivalent(days)

    if days < BIWEEKLY_DAYS:
        return PriceQuote(
            total_cents=0,
            period_count=period_count,
            price_type="daily",
            days=days,
            breakdown=[
                f"{days} days < {BIWEEKLY_DAYS}: no complete period, {format_eur(0)}"
            ],
        )

    if days < MONTHLY_DAYS:
        blocks = days // BIWEEKLY_DAYS
        return PriceQuote(
            total_cents=blocks * biweekly,
            period_count=period_count,
            price_type="biweekly",
            days=days,
            breakdown=[
                f"{days} days ÷ {BIWEEKLY_DAYS} = {blocks} complete fortnight"
                f" × {format_eur(biweekly)}"
            ],
        )

    months = days // MONTHLY_DAYS
    remainder = days % MONTHLY_DAYS
    breakdown = [
        f"{days} days ÷ {MONTHLY_DAYS} = {months} complete month"
        f"{'s' if months != 1 else ''} × {format_eur(monthly)}"
    ]
    if remainder:
        breakdown.append(f"{remainder} remaining days not charged")

    return PriceQuote(
        total_cents=months * monthly,
        period_count=period_count,
        price_type="monthly",
        days=days,
        breakdown=breakdown,
    )
