"""Booking payments repository - persistence for payment obligations.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor
from psycopg2.extras import execute_values

from rentledger.infra.db import for_update as select_for_update

_COLUMNS = """
    id, booking_id, kind, direction, status, amount_cents, due_date,
    paid_at, refunded_at, payment_method, bank_account_id, notes,
    reverses_payment_id, created_at
"""
_P_COLUMNS = ", ".join("p." + c.strip() for c in _COLUMNS.split(","))

# Columns a direct administrative edit may overwrite.
EDITABLE_FIELDS = frozenset(
    {"amount_cents", "status", "paid_at", "payment_method", "notes", "bank_account_id"}
)


def _row_to_payment(row: tuple) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "booking_id": str(row[1]),
        "kind": row[2],
        "direction": row[3],
        "status": row[4],
        "amount_cents": row[5],
        "due_date": row[6],
        "paid_at": row[7],
        "refunded_at": row[8],
        "payment_method": row[9],
        "bank_account_id": str(row[10]) if row[10] else None,
        "notes": row[11],
        "reverses_payment_id": str(row[12]) if row[12] else None,
        "created_at": row[13],
    }


def insert_payments(
    cur: PgCursor,
    drafts: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Insert a set of obligations in one statement.

    Args:
        cur: Database cursor (within transaction).
        drafts: Obligation dicts as built by ``rentledger.domain.payments``.

    Returns:
        Inserted payments, in draft order.
    """
    if not drafts:
        return []

    rows = execute_values(
        cur,
        f"""
        INSERT INTO booking_payments (
            booking_id, kind, direction, status, amount_cents, due_date,
            paid_at, payment_method, bank_account_id, notes, reverses_payment_id
        )
        VALUES %s
        RETURNING {_COLUMNS}
        """,
        [
            (
                d["booking_id"],
                d["kind"],
                d["direction"],
                d["status"],
                d["amount_cents"],
                d["due_date"],
                d.get("paid_at"),
                d["payment_method"],
                d.get("bank_account_id"),
                d.get("notes"),
                d.get("reverses_payment_id"),
            )
            for d in drafts
        ],
        fetch=True,
    )
    return [_row_to_payment(r) for r in rows]


def get_payment(
    cur: PgCursor,
    payment_id: str,
    *,
    for_update: bool = False,
) -> dict[str, Any] | None:
    """Fetch one payment, optionally locking it."""
    query = f"SELECT {_COLUMNS} FROM booking_payments WHERE id = %s"
    if for_update:
        row = select_for_update(cur, query, (payment_id,))
    else:
        cur.execute(query, (payment_id,))
        row = cur.fetchone()
    return _row_to_payment(row) if row else None


def get_deposit(
    cur: PgCursor,
    booking_id: str,
    *,
    for_update: bool = False,
) -> dict[str, Any] | None:
    """Fetch the booking's deposit obligation (at most one exists)."""
    query = (
        f"SELECT {_COLUMNS} FROM booking_payments "
        "WHERE booking_id = %s AND kind = 'deposit'"
    )
    if for_update:
        row = select_for_update(cur, query, (booking_id,))
    else:
        cur.execute(query, (booking_id,))
        row = cur.fetchone()
    return _row_to_payment(row) if row else None


def list_booking_payments(cur: PgCursor, booking_id: str) -> list[dict[str, Any]]:
    """List a booking's obligations ordered by due date."""
    cur.execute(
        f"""
        SELECT {_COLUMNS}
        FROM booking_payments
        WHERE booking_id = %s
        ORDER BY due_date, created_at
        """,
        (booking_id,),
    )
    return [_row_to_payment(r) for r in cur.fetchall()]


def delete_pending_payments(cur: PgCursor, booking_id: str) -> int:
    """Delete the booking's pending obligations.

    Completed and refunded rows are history and are never touched here.

    Returns:
        Number of rows deleted.
    """
    cur.execute(
        """
        DELETE FROM booking_payments
        WHERE booking_id = %s AND status = 'pending'
        """,
        (booking_id,),
    )
    return cur.rowcount


def delete_booking_payments(cur: PgCursor, booking_id: str) -> int:
    """Delete every obligation of a booking (booking removal).

    Revenue records keep their amounts; their payment link is cleared by
    the ON DELETE SET NULL foreign key.

    Returns:
        Number of rows deleted.
    """
    cur.execute(
        "DELETE FROM booking_payments WHERE booking_id = %s",
        (booking_id,),
    )
    return cur.rowcount


def mark_payment_completed(
    cur: PgCursor,
    *,
    payment_id: str,
    paid_at: datetime,
    payment_method: str,
    notes: str | None,
    bank_account_id: str | None,
) -> dict[str, Any] | None:
    """Transition a pending payment to completed.

    The bank account is only replaced when one is given.

    Returns:
        Updated payment, or None if the row was not pending.
    """
    cur.execute(
        f"""
        UPDATE booking_payments
        SET status = 'completed',
            paid_at = %s,
            payment_method = %s,
            notes = %s,
            bank_account_id = COALESCE(%s, bank_account_id),
            updated_at = now()
        WHERE id = %s AND status = 'pending'
        RETURNING {_COLUMNS}
        """,
        (paid_at, payment_method, notes, bank_account_id, payment_id),
    )
    row = cur.fetchone()
    return _row_to_payment(row) if row else None


def mark_deposit_refunded(
    cur: PgCursor,
    *,
    payment_id: str,
    refunded_at: datetime,
    payment_method: str,
    notes: str,
) -> dict[str, Any] | None:
    """Transition a deposit to refunded.

    Returns:
        Updated payment, or None if the row was not a refundable deposit.
    """
    cur.execute(
        f"""
        UPDATE booking_payments
        SET status = 'refunded',
            refunded_at = %s,
            payment_method = %s,
            notes = %s,
            updated_at = now()
        WHERE id = %s AND kind = 'deposit' AND status <> 'refunded'
        RETURNING {_COLUMNS}
        """,
        (refunded_at, payment_method, notes, payment_id),
    )
    row = cur.fetchone()
    return _row_to_payment(row) if row else None


def update_payment_fields(
    cur: PgCursor,
    payment_id: str,
    fields: dict[str, Any],
) -> dict[str, Any] | None:
    """Overwrite editable columns of a payment.

    Raises:
        ValueError: If a field is not editable.
    """
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not editable: {sorted(unknown)}")
    if not fields:
        return get_payment(cur, payment_id)

    columns = sorted(fields)
    assignments = ", ".join(f"{c} = %s" for c in columns)
    cur.execute(
        f"""
        UPDATE booking_payments
        SET {assignments}, updated_at = now()
        WHERE id = %s
        RETURNING {_COLUMNS}
        """,
        (*[fields[c] for c in columns], payment_id),
    )
    row = cur.fetchone()
    return _row_to_payment(row) if row else None


def list_completed_payments(cur: PgCursor, kinds: list[str]) -> list[dict[str, Any]]:
    """List completed payments of the given kinds with booking/room context.

    Used by the revenue backfill.
    """
    cur.execute(
        f"""
        SELECT {_P_COLUMNS},
               b.booking_number, r.name, r.room_number
        FROM booking_payments p
        JOIN bookings b ON b.id = p.booking_id
        JOIN rooms r ON r.id = b.room_id
        WHERE p.status = 'completed' AND p.kind = ANY(%s)
        ORDER BY p.paid_at, p.created_at
        """,
        (kinds,),
    )
    result = []
    for r in cur.fetchall():
        payment = _row_to_payment(r[:14])
        payment["booking"] = {
            "id": payment["booking_id"],
            "booking_number": r[14],
            "room_name": r[15],
            "room_number": r[16],
        }
        result.append(payment)
    return result


_CONTEXT_SELECT = f"""
        SELECT {_P_COLUMNS},
               b.booking_number, b.check_in, b.check_out,
               g.full_name, r.name, r.room_number
        FROM booking_payments p
        JOIN bookings b ON b.id = p.booking_id
        JOIN rooms r ON r.id = b.room_id
        LEFT JOIN guests g ON g.id = b.guest_id
"""


def _row_with_context(r: tuple) -> dict[str, Any]:
    payment = _row_to_payment(r[:14])
    payment["booking"] = {
        "id": payment["booking_id"],
        "booking_number": r[14],
        "check_in": r[15],
        "check_out": r[16],
        "guest_name": r[17],
        "room_name": r[18],
        "room_number": r[19],
    }
    return payment


def list_pending_payments(
    cur: PgCursor,
    *,
    due_before: date | None = None,
) -> list[dict[str, Any]]:
    """List pending payments across all bookings, oldest due first.

    Args:
        cur: Database cursor.
        due_before: Only payments due on or before this date (overdue view).
    """
    cur.execute(
        f"""
        {_CONTEXT_SELECT}
        WHERE p.status = 'pending'
          AND (%s::date IS NULL OR p.due_date <= %s::date)
        ORDER BY p.due_date, p.created_at
        """,
        (due_before, due_before),
    )
    return [_row_with_context(r) for r in cur.fetchall()]


def list_payments_with_context(
    cur: PgCursor,
    *,
    room_id: str | None = None,
    due_from: date | None = None,
    due_to: date | None = None,
) -> list[dict[str, Any]]:
    """List payments of any status, filtered by room and/or due-date range.

    Rows carry the same booking context as ``list_pending_payments``.
    """
    cur.execute(
        f"""
        {_CONTEXT_SELECT}
        WHERE (%s::uuid IS NULL OR b.room_id = %s::uuid)
          AND (%s::date IS NULL OR p.due_date >= %s::date)
          AND (%s::date IS NULL OR p.due_date <= %s::date)
        ORDER BY p.due_date, p.created_at
        """,
        (room_id, room_id, due_from, due_from, due_to, due_to),
    )
    return [_row_with_context(r) for r in cur.fetchall()]
