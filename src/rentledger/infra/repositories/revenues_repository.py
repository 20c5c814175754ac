"""Revenue records repository - the reporting ledger.

Uses raw SQL with psycopg2 (no ORM). Records mirroring a payment carry
its id in ``payment_id`` (unique); older records without a link are
matched by booking, amount and date.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from rentledger.infra.db import fetchall, fetchone

_COLUMNS = """
    id, booking_id, payment_id, amount_cents, date, category,
    description, payment_method, bank_account_id, created_at
"""


def _row_to_revenue(row: tuple) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "booking_id": str(row[1]) if row[1] else None,
        "payment_id": str(row[2]) if row[2] else None,
        "amount_cents": row[3],
        "date": row[4],
        "category": row[5],
        "description": row[6],
        "payment_method": row[7],
        "bank_account_id": str(row[8]) if row[8] else None,
        "created_at": row[9],
    }


def insert_revenue_record(
    cur: PgCursor,
    *,
    booking_id: str | None,
    payment_id: str | None,
    amount_cents: int,
    on_date: date,
    category: str,
    description: str,
    payment_method: str | None,
    bank_account_id: str | None,
) -> dict[str, Any]:
    """Append a ledger row.

    Returns:
        The created record.
    """
    row = fetchone(
        cur,
        f"""
        INSERT INTO revenue_records (
            booking_id, payment_id, amount_cents, date, category,
            description, payment_method, bank_account_id
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING {_COLUMNS}
        """,
        (
            booking_id,
            payment_id,
            amount_cents,
            on_date,
            category,
            description,
            payment_method,
            bank_account_id,
        ),
    )
    return _row_to_revenue(row)


def get_revenue_by_payment(cur: PgCursor, payment_id: str) -> dict[str, Any] | None:
    """Fetch the record linked to a payment."""
    row = fetchone(
        cur,
        f"SELECT {_COLUMNS} FROM revenue_records WHERE payment_id = %s",
        (payment_id,),
    )
    return _row_to_revenue(row) if row else None


def find_unlinked_revenue(
    cur: PgCursor,
    *,
    booking_id: str,
    amount_cents: int,
    on_date: date | None = None,
) -> dict[str, Any] | None:
    """Find a legacy record (no payment link) by booking and amount.

    Args:
        cur: Database cursor.
        booking_id: Booking UUID.
        amount_cents: Exact amount in cents.
        on_date: Also require this ledger date when given.

    Returns:
        The most recent matching record, or None.
    """
    row = fetchone(
        cur,
        f"""
        SELECT {_COLUMNS}
        FROM revenue_records
        WHERE payment_id IS NULL
          AND booking_id = %s
          AND amount_cents = %s
          AND (%s::date IS NULL OR date = %s::date)
        ORDER BY created_at DESC
        LIMIT 1
        """,
        (booking_id, amount_cents, on_date, on_date),
    )
    return _row_to_revenue(row) if row else None


def update_revenue_record(
    cur: PgCursor,
    revenue_id: str,
    *,
    payment_id: str,
    amount_cents: int,
    on_date: date | None,
    payment_method: str | None,
    bank_account_id: str | None,
) -> None:
    """Rewrite a record from its payment and link it to that payment."""
    cur.execute(
        """
        UPDATE revenue_records
        SET payment_id = %s,
            amount_cents = %s,
            date = COALESCE(%s, date),
            payment_method = %s,
            bank_account_id = %s,
            updated_at = now()
        WHERE id = %s
        """,
        (
            payment_id,
            amount_cents,
            on_date,
            payment_method,
            bank_account_id,
            revenue_id,
        ),
    )


def link_revenue_to_payment(cur: PgCursor, revenue_id: str, payment_id: str) -> None:
    cur.execute(
        """
        UPDATE revenue_records
        SET payment_id = %s, updated_at = now()
        WHERE id = %s AND payment_id IS NULL
        """,
        (payment_id, revenue_id),
    )


def list_booking_revenue(cur: PgCursor, booking_id: str) -> list[dict[str, Any]]:
    rows = fetchall(
        cur,
        f"""
        SELECT {_COLUMNS}
        FROM revenue_records
        WHERE booking_id = %s
        ORDER BY date, created_at
        """,
        (booking_id,),
    )
    return [_row_to_revenue(r) for r in rows]
