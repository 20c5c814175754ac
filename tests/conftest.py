"""Shared pytest fixtures for rentledger tests.

``ledger`` replaces the psycopg2 repositories with an in-memory store so
services and the engine facade run without Postgres. ``txn`` is replaced
too: the store is snapshotted on entry and restored if the block raises,
which mirrors a database rollback.
"""
import sys
sys.dont_write_bytecode = True

import copy  # noqa: E402
import itertools  # noqa: E402
from contextlib import contextmanager  # noqa: E402
from datetime import date, datetime, timezone  # noqa: E402
from typing import Any  # noqa: E402

import psycopg2  # noqa: E402
import pytest  # noqa: E402

from rentledger.infra.repositories import bookings_repository  # noqa: E402
from rentledger.infra.repositories import payments_repository  # noqa: E402
from rentledger.infra.repositories import revenues_repository  # noqa: E402
from rentledger.infra.repositories import rooms_repository  # noqa: E402

ROOM_ID = "00000000-0000-0000-0000-00000000a001"
BOOKING_ID = "00000000-0000-0000-0000-00000000b001"
BANK_ACCOUNT_ID = "00000000-0000-0000-0000-00000000c001"

_PAYMENT_DEFAULTS: dict[str, Any] = {
    "direction": "charge",
    "status": "pending",
    "paid_at": None,
    "refunded_at": None,
    "payment_method": "bank_transfer",
    "bank_account_id": None,
    "notes": None,
    "reverses_payment_id": None,
}


class FakeLedger:
    """In-memory stand-in for the bookings/rooms/payments/revenues tables."""

    def __init__(self) -> None:
        self.rooms: dict[str, dict] = {}
        self.bookings: dict[str, dict] = {}
        self.payments: dict[str, dict] = {}
        self.revenues: dict[str, dict] = {}
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)
        self.commits = 0
        self.rollbacks = 0

    # ── seeding ──────────────────────────────────────────

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids):04d}"

    def _created_at(self) -> datetime:
        return datetime(2024, 1, 1, tzinfo=timezone.utc).replace(
            microsecond=next(self._clock)
        )

    def add_room(self, room_id: str = ROOM_ID, **overrides: Any) -> str:
        self.rooms[room_id] = {
            "id": room_id,
            "name": "Quarto Azul",
            "room_number": "101",
            "daily_price_cents": None,
            "biweekly_price_cents": None,
            "monthly_price_cents": 50000,
            "bank_account_id": BANK_ACCOUNT_ID,
            **overrides,
        }
        return room_id

    def add_booking(
        self,
        booking_id: str = BOOKING_ID,
        *,
        room_id: str = ROOM_ID,
        **overrides: Any,
    ) -> str:
        if room_id not in self.rooms:
            self.add_room(room_id)
        self.bookings[booking_id] = {
            "id": booking_id,
            "booking_number": "BK-1A2B3C",
            "room_id": room_id,
            "guest_id": None,
            "check_in": date(2025, 1, 1),
            "check_out": date(2025, 3, 2),
            "total_cents": 100000,
            "billing_mode": "monthly",
            "status": "confirmed",
            "guest_name": "Ana Silva",
            **overrides,
        }
        return booking_id

    def add_payment(self, booking_id: str = BOOKING_ID, **fields: Any) -> dict:
        [payment] = self.insert_payments(
            None,
            [
                {
                    "booking_id": booking_id,
                    "kind": "monthly",
                    "amount_cents": 50000,
                    "due_date": date(2025, 1, 1),
                    **fields,
                }
            ],
        )
        return payment

    def add_revenue(self, booking_id: str = BOOKING_ID, **fields: Any) -> dict:
        return self.insert_revenue_record(
            None,
            booking_id=booking_id,
            payment_id=fields.pop("payment_id", None),
            amount_cents=fields.pop("amount_cents", 50000),
            on_date=fields.pop("on_date", date(2025, 1, 1)),
            category=fields.pop("category", "Mensalidades"),
            description=fields.pop("description", "Mensalidade"),
            payment_method=fields.pop("payment_method", "bank_transfer"),
            bank_account_id=fields.pop("bank_account_id", None),
        )

    def booking_payments(self, booking_id: str = BOOKING_ID) -> list[dict]:
        return self.list_booking_payments(None, booking_id)

    # ── transaction ──────────────────────────────────────

    @contextmanager
    def txn(self, conn=None):
        snapshot = copy.deepcopy(
            (self.rooms, self.bookings, self.payments, self.revenues)
        )
        try:
            yield object()
        except Exception:
            self.rooms, self.bookings, self.payments, self.revenues = snapshot
            self.rollbacks += 1
            raise
        self.commits += 1

    # ── bookings / rooms ─────────────────────────────────

    def get_booking(self, cur, booking_id, *, for_update=False):
        booking = self.bookings.get(booking_id)
        if booking is None:
            return None
        room = self.rooms[booking["room_id"]]
        return {
            **copy.deepcopy(booking),
            "room_name": room["name"],
            "room_number": room["room_number"],
        }

    def update_booking_total(self, cur, *, booking_id, total_cents):
        self.bookings[booking_id]["total_cents"] = total_cents
        return True

    def update_booking_dates(self, cur, *, booking_id, check_in, check_out):
        if check_out <= check_in:
            raise psycopg2.IntegrityError("bookings_dates_chk")
        self.bookings[booking_id].update(check_in=check_in, check_out=check_out)
        return True

    def get_room(self, cur, room_id):
        room = self.rooms.get(room_id)
        return copy.deepcopy(room) if room else None

    # ── payments ─────────────────────────────────────────

    def insert_payments(self, cur, drafts):
        inserted = []
        for draft in drafts:
            if draft["kind"] == "deposit" and any(
                p["booking_id"] == draft["booking_id"] and p["kind"] == "deposit"
                for p in self.payments.values()
            ):
                raise psycopg2.IntegrityError("uq_booking_payments_deposit")
            payment = {
                **_PAYMENT_DEFAULTS,
                **draft,
                "id": self._new_id("pay"),
                "created_at": self._created_at(),
            }
            if payment["status"] == "completed" and payment["paid_at"] is None:
                raise psycopg2.IntegrityError("booking_payments_completed_paid_chk")
            self.payments[payment["id"]] = payment
            inserted.append(copy.deepcopy(payment))
        return inserted

    def get_payment(self, cur, payment_id, *, for_update=False):
        payment = self.payments.get(payment_id)
        return copy.deepcopy(payment) if payment else None

    def get_deposit(self, cur, booking_id, *, for_update=False):
        for payment in self.payments.values():
            if payment["booking_id"] == booking_id and payment["kind"] == "deposit":
                return copy.deepcopy(payment)
        return None

    def list_booking_payments(self, cur, booking_id):
        rows = [p for p in self.payments.values() if p["booking_id"] == booking_id]
        rows.sort(key=lambda p: (p["due_date"], p["created_at"]))
        return copy.deepcopy(rows)

    def _delete_payments(self, predicate) -> int:
        doomed = [pid for pid, p in self.payments.items() if predicate(p)]
        for pid in doomed:
            del self.payments[pid]
            for revenue in self.revenues.values():
                if revenue["payment_id"] == pid:
                    revenue["payment_id"] = None
        return len(doomed)

    def delete_pending_payments(self, cur, booking_id):
        return self._delete_payments(
            lambda p: p["booking_id"] == booking_id and p["status"] == "pending"
        )

    def delete_booking_payments(self, cur, booking_id):
        return self._delete_payments(lambda p: p["booking_id"] == booking_id)

    def mark_payment_completed(
        self, cur, *, payment_id, paid_at, payment_method, notes, bank_account_id
    ):
        payment = self.payments.get(payment_id)
        if payment is None or payment["status"] != "pending":
            return None
        payment.update(
            status="completed",
            paid_at=paid_at,
            payment_method=payment_method,
            notes=notes,
        )
        if bank_account_id is not None:
            payment["bank_account_id"] = bank_account_id
        return copy.deepcopy(payment)

    def mark_deposit_refunded(self, cur, *, payment_id, refunded_at, payment_method, notes):
        payment = self.payments.get(payment_id)
        if payment is None or payment["kind"] != "deposit" or payment["status"] == "refunded":
            return None
        payment.update(
            status="refunded",
            refunded_at=refunded_at,
            payment_method=payment_method,
            notes=notes,
        )
        return copy.deepcopy(payment)

    def update_payment_fields(self, cur, payment_id, fields):
        unknown = set(fields) - payments_repository.EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {sorted(unknown)}")
        payment = self.payments.get(payment_id)
        if payment is None:
            return None
        payment.update(fields)
        return copy.deepcopy(payment)

    def _with_booking(self, payment: dict) -> dict:
        booking = self.get_booking(None, payment["booking_id"])
        row = copy.deepcopy(payment)
        row["booking"] = {
            "id": booking["id"],
            "booking_number": booking["booking_number"],
            "check_in": booking["check_in"],
            "check_out": booking["check_out"],
            "guest_name": booking["guest_name"],
            "room_name": booking["room_name"],
            "room_number": booking["room_number"],
        }
        return row

    def list_completed_payments(self, cur, kinds):
        rows = [
            p
            for p in self.payments.values()
            if p["status"] == "completed" and p["kind"] in kinds
        ]
        rows.sort(key=lambda p: (p["paid_at"], p["created_at"]))
        return [self._with_booking(p) for p in rows]

    def list_pending_payments(self, cur, *, due_before=None):
        rows = [
            p
            for p in self.payments.values()
            if p["status"] == "pending"
            and (due_before is None or p["due_date"] <= due_before)
        ]
        rows.sort(key=lambda p: (p["due_date"], p["created_at"]))
        return [self._with_booking(p) for p in rows]

    def list_payments_with_context(self, cur, *, room_id=None, due_from=None, due_to=None):
        rows = [
            p
            for p in self.payments.values()
            if (room_id is None or self.bookings[p["booking_id"]]["room_id"] == room_id)
            and (due_from is None or p["due_date"] >= due_from)
            and (due_to is None or p["due_date"] <= due_to)
        ]
        rows.sort(key=lambda p: (p["due_date"], p["created_at"]))
        return [self._with_booking(p) for p in rows]

    # ── revenues ─────────────────────────────────────────

    def insert_revenue_record(
        self,
        cur,
        *,
        booking_id,
        payment_id,
        amount_cents,
        on_date,
        category,
        description,
        payment_method,
        bank_account_id,
    ):
        if payment_id is not None and self.get_revenue_by_payment(cur, payment_id):
            raise psycopg2.IntegrityError("revenue_records_payment_id_key")
        record = {
            "id": self._new_id("rev"),
            "booking_id": booking_id,
            "payment_id": payment_id,
            "amount_cents": amount_cents,
            "date": on_date,
            "category": category,
            "description": description,
            "payment_method": payment_method,
            "bank_account_id": bank_account_id,
            "created_at": self._created_at(),
        }
        self.revenues[record["id"]] = record
        return copy.deepcopy(record)

    def get_revenue_by_payment(self, cur, payment_id):
        for record in self.revenues.values():
            if record["payment_id"] == payment_id:
                return copy.deepcopy(record)
        return None

    def find_unlinked_revenue(self, cur, *, booking_id, amount_cents, on_date=None):
        matches = [
            r
            for r in self.revenues.values()
            if r["payment_id"] is None
            and r["booking_id"] == booking_id
            and r["amount_cents"] == amount_cents
            and (on_date is None or r["date"] == on_date)
        ]
        if not matches:
            return None
        return copy.deepcopy(max(matches, key=lambda r: r["created_at"]))

    def update_revenue_record(
        self, cur, revenue_id, *, payment_id, amount_cents, on_date, payment_method, bank_account_id
    ):
        record = self.revenues[revenue_id]
        record.update(
            payment_id=payment_id,
            amount_cents=amount_cents,
            payment_method=payment_method,
            bank_account_id=bank_account_id,
        )
        if on_date is not None:
            record["date"] = on_date

    def link_revenue_to_payment(self, cur, revenue_id, payment_id):
        record = self.revenues[revenue_id]
        if record["payment_id"] is None:
            record["payment_id"] = payment_id

    def list_booking_revenue(self, cur, booking_id):
        rows = [r for r in self.revenues.values() if r["booking_id"] == booking_id]
        rows.sort(key=lambda r: (r["date"], r["created_at"]))
        return copy.deepcopy(rows)

    def revenue_for(self, payment_id: str) -> dict | None:
        return self.get_revenue_by_payment(None, payment_id)

    # ── wiring ───────────────────────────────────────────

    _PATCHES = {
        bookings_repository: ("get_booking", "update_booking_total", "update_booking_dates"),
        rooms_repository: ("get_room",),
        payments_repository: (
            "insert_payments",
            "get_payment",
            "get_deposit",
            "list_booking_payments",
            "delete_pending_payments",
            "delete_booking_payments",
            "mark_payment_completed",
            "mark_deposit_refunded",
            "update_payment_fields",
            "list_completed_payments",
            "list_pending_payments",
            "list_payments_with_context",
        ),
        revenues_repository: (
            "insert_revenue_record",
            "get_revenue_by_payment",
            "find_unlinked_revenue",
            "update_revenue_record",
            "link_revenue_to_payment",
            "list_booking_revenue",
        ),
    }

    def install(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for module, names in self._PATCHES.items():
            for name in names:
                monkeypatch.setattr(module, name, getattr(self, name))
        monkeypatch.setattr("rentledger.services.engine.txn", self.txn)


@pytest.fixture
def ledger(monkeypatch) -> FakeLedger:
    """In-memory ledger wired into the repositories and the engine."""
    fake = FakeLedger()
    fake.install(monkeypatch)
    fake.add_room()
    fake.add_booking()
    return fake


@pytest.fixture
def cur():
    """Placeholder cursor for service calls against the fake ledger."""
    return object()
