"""Rooms repository - price table and settlement account lookups."""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from rentledger.infra.db import fetchone


def get_room(cur: PgCursor, room_id: str) -> dict[str, Any] | None:
    """Fetch a room's price table and settlement bank account.

    Returns:
        Dict with id, name, room_number, daily/biweekly/monthly prices
        (cents) and bank_account_id, or None if not found.
    """
    row = fetchone(
        cur,
        """
        SELECT id, name, room_number,
               daily_price_cents, biweekly_price_cents, monthly_price_cents,
               bank_account_id
        FROM rooms
        WHERE id = %s
        """,
        (room_id,),
    )
    if row is None:
        return None

    return {
        "id": str(row[0]),
        "name": row[1],
        "room_number": row[2],
        "daily_price_cents": row[3],
        "biweekly_price_cents": row[4],
        "monthly_price_cents": row[5],
        "bank_account_id": str(row[6]) if row[6] else None,
    }
