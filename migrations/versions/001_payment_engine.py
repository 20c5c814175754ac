"""Booking payment engine schema.

Creates bank_accounts, guests, rooms (price table in cents), bookings,
booking_payments (deposit / monthly / deposit_refund obligations) and
revenue_records linked one-to-one to the payment they mirror.

Revision ID: 001_payment_engine
Revises:
Create Date: 2025-01-01
"""
from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "001_payment_engine"
down_revision = None
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parent.parent / "sql" / "001_payment_engine.sql"


def upgrade() -> None:
    op.execute(_SQL_FILE.read_text())


def downgrade() -> None:
    raise NotImplementedError("Downgrade not supported")
