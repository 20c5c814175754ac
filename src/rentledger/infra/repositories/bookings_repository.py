"""Bookings repository - read and partial update of booking records.

Uses raw SQL with psycopg2 (no ORM). Booking CRUD belongs to the admin
application; the engine only reads bookings and adjusts their totals/dates.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from psycopg2.extensions import cursor as PgCursor

_SELECT_BOOKING = """
    SELECT b.id, b.booking_number, b.room_id, b.guest_id,
           b.check_in, b.check_out, b.total_cents, b.billing_mode, b.status,
           r.name, r.room_number, g.full_name
    FROM bookings b
    JOIN rooms r ON r.id = b.room_id
    LEFT JOIN guests g ON g.id = b.guest_id
    WHERE b.id = %s
"""


def get_booking(
    cur: PgCursor,
    booking_id: str,
    *,
    for_update: bool = False,
) -> dict[str, Any] | None:
    """Fetch a booking with its room and guest joined for display.

    Args:
        cur: Database cursor.
        booking_id: Booking UUID.
        for_update: Lock the booking row until the transaction ends.

    Returns:
        Booking dict or None if not found.
    """
    query = _SELECT_BOOKING
    if for_update:
        query = query.rstrip() + " FOR UPDATE OF b"
    cur.execute(query, (booking_id,))
    row = cur.fetchone()
    if row is None:
        return None

    return {
        "id": str(row[0]),
        "booking_number": row[1],
        "room_id": str(row[2]),
        "guest_id": str(row[3]) if row[3] else None,
        "check_in": row[4],
        "check_out": row[5],
        "total_cents": row[6],
        "billing_mode": row[7],
        "status": row[8],
        "room_name": row[9],
        "room_number": row[10],
        "guest_name": row[11],
    }


def update_booking_total(
    cur: PgCursor,
    *,
    booking_id: str,
    total_cents: int,
) -> bool:
    """Overwrite the booking's total amount.

    Returns:
        True if a row was updated.
    """
    cur.execute(
        """
        UPDATE bookings
        SET total_cents = %s, updated_at = now()
        WHERE id = %s
        """,
        (total_cents, booking_id),
    )
    return cur.rowcount > 0


def update_booking_dates(
    cur: PgCursor,
    *,
    booking_id: str,
    check_in: date,
    check_out: date,
) -> bool:
    """Move a booking to new check-in/check-out dates.

    Returns:
        True if a row was updated.
    """
    cur.execute(
        """
        UPDATE bookings
        SET check_in = %s, check_out = %s, updated_at = now()
        WHERE id = %s
        """,
        (check_in, check_out, booking_id),
    )
    return cur.rowcount > 0
