"""Tests for payment state transitions (mark paid, deposit refund)."""

from datetime import date, datetime, timezone

import pytest

from rentledger.domain.errors import InvalidInputError, InvalidStateTransition, NotFoundError
from rentledger.domain.payments import assert_can_edit, assert_can_mark_paid, assert_can_refund
from rentledger.services.payment_service import (
    delete_booking_payments,
    get_payment_stats,
    list_month_payments,
    list_pending_payments,
    list_room_payments,
    mark_paid,
    refund_deposit,
)

from conftest import BOOKING_ID, ROOM_ID

PAID_AT = datetime(2025, 1, 2, tzinfo=timezone.utc)


class TestMarkPaid:
    def test_completes_payment(self, ledger, cur):
        payment = ledger.add_payment()

        result = mark_paid(
            cur,
            payment_id=payment["id"],
            paid_date=date(2025, 1, 5),
            method="cash",
            notes="Recebido na receção",
        )

        updated = result["payment"]
        assert updated["status"] == "completed"
        assert updated["paid_at"] == datetime(2025, 1, 5, tzinfo=timezone.utc)
        assert updated["payment_method"] == "cash"
        assert updated["notes"] == "Recebido na receção"

    def test_creates_exactly_one_revenue_record(self, ledger, cur):
        payment = ledger.add_payment()

        result = mark_paid(
            cur, payment_id=payment["id"], paid_date=date(2025, 1, 5), method="bank_transfer"
        )

        assert len(ledger.revenues) == 1
        revenue = result["revenue"]
        assert revenue["payment_id"] == payment["id"]
        assert revenue["amount_cents"] == 50000
        assert revenue["date"] == date(2025, 1, 5)
        assert revenue["category"] == "Mensalidades"
        assert revenue["description"] == "Mensalidade - Reserva BK-1A2B3C - Quarto Azul (Nº 101)"

    def test_deposit_revenue_category(self, ledger, cur):
        deposit = ledger.add_payment(kind="deposit")
        result = mark_paid(
            cur, payment_id=deposit["id"], paid_date=date(2025, 1, 5), method="cash"
        )
        assert result["revenue"]["category"] == "Cauções"
        assert result["revenue"]["description"].startswith("Caução - Reserva BK-1A2B3C")

    def test_keeps_scheduled_bank_account_unless_given(self, ledger, cur):
        payment = ledger.add_payment(bank_account_id="acct-room")

        kept = mark_paid(
            cur, payment_id=payment["id"], paid_date=date(2025, 1, 5), method="cash"
        )
        assert kept["payment"]["bank_account_id"] == "acct-room"

        other = ledger.add_payment(bank_account_id="acct-room", due_date=date(2025, 1, 31))
        moved = mark_paid(
            cur,
            payment_id=other["id"],
            paid_date=date(2025, 2, 1),
            method="bank_transfer",
            bank_account_id="acct-other",
        )
        assert moved["payment"]["bank_account_id"] == "acct-other"
        assert moved["revenue"]["bank_account_id"] == "acct-other"

    def test_already_completed_is_rejected(self, ledger, cur):
        payment = ledger.add_payment(status="completed", paid_at=PAID_AT)

        with pytest.raises(InvalidStateTransition) as exc_info:
            mark_paid(cur, payment_id=payment["id"], paid_date=date(2025, 1, 5), method="cash")

        assert exc_info.value.code == "invalid_state_transition"
        assert ledger.revenues == {}

    def test_unknown_payment(self, ledger, cur):
        with pytest.raises(NotFoundError):
            mark_paid(cur, payment_id="missing", paid_date=date(2025, 1, 5), method="cash")


class TestRefundDeposit:
    def test_refunds_completed_deposit(self, ledger, cur):
        deposit = ledger.add_payment(kind="deposit", status="completed", paid_at=PAID_AT)

        result = refund_deposit(
            cur,
            booking_id=BOOKING_ID,
            refund_date=date(2025, 3, 2),
            method="bank_transfer",
            notes="Quarto em bom estado",
        )

        assert result["deposit"]["status"] == "refunded"
        assert result["deposit"]["refunded_at"] == datetime(2025, 3, 2, tzinfo=timezone.utc)
        refund = result["refund"]
        assert refund["kind"] == "deposit_refund"
        assert refund["direction"] == "refund"
        assert refund["status"] == "completed"
        assert refund["amount_cents"] == -deposit["amount_cents"]
        assert refund["reverses_payment_id"] == deposit["id"]
        assert refund["notes"] == "Quarto em bom estado"

    def test_refunds_pending_deposit(self, ledger, cur):
        ledger.add_payment(kind="deposit")

        result = refund_deposit(
            cur,
            booking_id=BOOKING_ID,
            refund_date=date(2025, 3, 2),
            method="cash",
            notes="Reserva cancelada",
        )
        assert result["deposit"]["status"] == "refunded"

    def test_refund_is_not_mirrored_to_revenue(self, ledger, cur):
        ledger.add_payment(kind="deposit", status="completed", paid_at=PAID_AT)
        refund_deposit(
            cur,
            booking_id=BOOKING_ID,
            refund_date=date(2025, 3, 2),
            method="cash",
            notes="ok",
        )
        assert ledger.revenues == {}

    def test_second_refund_is_rejected(self, ledger, cur):
        ledger.add_payment(kind="deposit", status="completed", paid_at=PAID_AT)
        refund_deposit(
            cur, booking_id=BOOKING_ID, refund_date=date(2025, 3, 2), method="cash", notes="ok"
        )

        with pytest.raises(InvalidStateTransition):
            refund_deposit(
                cur, booking_id=BOOKING_ID, refund_date=date(2025, 3, 3), method="cash", notes="ok"
            )
        refunds = [p for p in ledger.booking_payments() if p["kind"] == "deposit_refund"]
        assert len(refunds) == 1

    @pytest.mark.parametrize("notes", ["", "   "])
    def test_notes_are_required(self, ledger, cur, notes):
        ledger.add_payment(kind="deposit", status="completed", paid_at=PAID_AT)
        with pytest.raises(InvalidInputError):
            refund_deposit(
                cur, booking_id=BOOKING_ID, refund_date=date(2025, 3, 2), method="cash", notes=notes
            )

    def test_booking_without_deposit(self, ledger, cur):
        ledger.add_payment()
        with pytest.raises(NotFoundError) as exc_info:
            refund_deposit(
                cur, booking_id=BOOKING_ID, refund_date=date(2025, 3, 2), method="cash", notes="ok"
            )
        assert exc_info.value.entity == "deposit"


class TestTransitionGuards:
    def test_mark_paid_requires_pending(self):
        with pytest.raises(InvalidStateTransition):
            assert_can_mark_paid({"status": "refunded"})

    def test_only_deposits_refund(self):
        with pytest.raises(InvalidStateTransition):
            assert_can_refund({"kind": "monthly", "status": "completed"})

    def test_edit_requires_settled_payment(self):
        with pytest.raises(InvalidStateTransition):
            assert_can_edit({"kind": "monthly", "status": "pending"}, None)

    def test_edit_cannot_reopen(self):
        with pytest.raises(InvalidStateTransition):
            assert_can_edit({"kind": "monthly", "status": "completed"}, "pending")

    def test_edit_refunded_only_for_deposits(self):
        with pytest.raises(InvalidStateTransition):
            assert_can_edit({"kind": "monthly", "status": "completed"}, "refunded")
        assert_can_edit({"kind": "deposit", "status": "completed"}, "refunded")


class TestQueries:
    def test_stats(self, ledger, cur):
        ledger.add_payment(kind="deposit", amount_cents=30000, status="completed", paid_at=PAID_AT)
        ledger.add_payment(status="completed", paid_at=PAID_AT)
        ledger.add_payment(due_date=date(2025, 1, 31))
        refund_deposit(
            cur, booking_id=BOOKING_ID, refund_date=date(2025, 3, 2), method="cash", notes="ok"
        )

        stats = get_payment_stats(cur, BOOKING_ID)

        assert stats == {
            "booking_id": BOOKING_ID,
            "total_cents": 30000 + 50000 + 50000 - 30000,
            "paid_cents": 50000 - 30000,
            "pending_cents": 50000,
            "refunded_cents": 30000,
            "deposit_status": "refunded",
        }

    def test_pending_listing_filters_by_due_date(self, ledger, cur):
        ledger.add_payment(due_date=date(2025, 1, 1))
        ledger.add_payment(due_date=date(2025, 2, 1))
        ledger.add_payment(due_date=date(2025, 1, 15), status="completed", paid_at=PAID_AT)

        overdue = list_pending_payments(cur, due_before=date(2025, 1, 20))

        assert [p["due_date"] for p in overdue] == [date(2025, 1, 1)]
        assert overdue[0]["booking"]["guest_name"] == "Ana Silva"
        assert len(list_pending_payments(cur)) == 2

    def test_delete_booking_payments_unlinks_revenue(self, ledger, cur):
        payment = ledger.add_payment()
        mark_paid(cur, payment_id=payment["id"], paid_date=date(2025, 1, 5), method="cash")
        ledger.add_payment(due_date=date(2025, 1, 31))

        assert delete_booking_payments(cur, BOOKING_ID) == 2
        assert ledger.booking_payments() == []
        [revenue] = ledger.revenues.values()
        assert revenue["payment_id"] is None
        assert revenue["amount_cents"] == 50000

    def test_room_listing_spans_bookings_and_statuses(self, ledger, cur):
        ledger.add_booking("other-room-booking", room_id="room-2")
        ledger.add_payment(due_date=date(2025, 1, 31))
        ledger.add_payment(status="completed", paid_at=PAID_AT)
        ledger.add_payment("other-room-booking")

        rows = list_room_payments(cur, ROOM_ID)

        assert [(p["due_date"], p["status"]) for p in rows] == [
            (date(2025, 1, 1), "completed"),
            (date(2025, 1, 31), "pending"),
        ]
        assert rows[0]["booking"]["room_name"] == "Quarto Azul"

    def test_room_listing_unknown_room(self, ledger, cur):
        with pytest.raises(NotFoundError):
            list_room_payments(cur, "missing")

    def test_month_listing_covers_whole_month(self, ledger, cur):
        ledger.add_payment(due_date=date(2025, 1, 31))
        ledger.add_payment(due_date=date(2025, 2, 1))
        ledger.add_payment(due_date=date(2025, 2, 28), status="completed", paid_at=PAID_AT)
        ledger.add_payment(due_date=date(2025, 3, 1))

        rows = list_month_payments(cur, year=2025, month=2)

        assert [p["due_date"] for p in rows] == [date(2025, 2, 1), date(2025, 2, 28)]

    def test_month_listing_rejects_invalid_month(self, ledger, cur):
        with pytest.raises(InvalidInputError):
            list_month_payments(cur, year=2025, month=13)
