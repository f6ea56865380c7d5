"""Tests for the installment schedule engine."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from coop_loans.exceptions import EntityNotFoundError, PaymentAlreadyProcessedError
from coop_loans.models.enums import InstallmentStatus
from coop_loans.schedule import engine


@pytest.fixture
def schedule():
    """₦110,000 over 6 months from 30 April 2024."""
    return engine.generate(Decimal("110000"), 6, date(2024, 4, 30))


class TestRecomputeOverdue:
    """Tests for overdue derivation."""

    def test_marks_only_past_due_pending_entries(self, schedule) -> None:
        result = engine.recompute_overdue(schedule, date(2024, 6, 1))

        assert [e.status for e in result] == [
            InstallmentStatus.OVERDUE,
            InstallmentStatus.OVERDUE,
            InstallmentStatus.PENDING,
            InstallmentStatus.PENDING,
            InstallmentStatus.PENDING,
            InstallmentStatus.PENDING,
        ]

    def test_due_today_is_not_overdue_for_a_date(self, schedule) -> None:
        result = engine.recompute_overdue(schedule, date(2024, 4, 30))

        assert result[0].status == InstallmentStatus.PENDING

    def test_datetime_compares_against_midnight_of_due_date(self, schedule) -> None:
        """Later on the due day itself, the installment counts as overdue."""
        result = engine.recompute_overdue(schedule, datetime(2024, 4, 30, 9, 0))

        assert result[0].status == InstallmentStatus.OVERDUE

    def test_idempotent(self, schedule) -> None:
        """Recomputing twice with the same now equals recomputing once."""
        now = date(2024, 7, 15)
        once = engine.recompute_overdue(schedule, now)
        twice = engine.recompute_overdue(once, now)

        assert twice == once

    def test_paid_entries_untouched(self, schedule) -> None:
        paid = engine.apply_payment(
            schedule, 1, Decimal("18334"), date(2024, 4, 30), "REF-1", "admin-001"
        )
        result = engine.recompute_overdue(paid, date(2024, 12, 31))

        assert result[0].status == InstallmentStatus.PAID
        assert all(e.status == InstallmentStatus.OVERDUE for e in result[1:])

    def test_input_not_mutated(self, schedule) -> None:
        engine.recompute_overdue(schedule, date(2025, 1, 1))

        assert all(e.status == InstallmentStatus.PENDING for e in schedule)


class TestApplyPayment:
    """Tests for recording a payment on one installment."""

    def test_marks_entry_paid(self, schedule) -> None:
        processed_at = datetime(2024, 4, 30, 12, 0)
        result = engine.apply_payment(
            schedule,
            2,
            Decimal("18334"),
            date(2024, 5, 30),
            "REF-2",
            "admin-001",
            processed_at=processed_at,
        )

        entry = result[1]
        assert entry.status == InstallmentStatus.PAID
        assert entry.paid_amount == Decimal("18334")
        assert entry.paid_date == date(2024, 5, 30)
        assert entry.payment_reference == "REF-2"
        assert entry.processed_by == "admin-001"
        assert entry.processed_at == processed_at
        assert result[0] == schedule[0]

    def test_already_paid_rejected_without_change(self, schedule) -> None:
        """A second payment on a paid entry fails and leaves it as it was."""
        paid = engine.apply_payment(
            schedule, 1, Decimal("18334"), date(2024, 4, 30), "REF-1", "admin-001"
        )
        before = paid[0]

        with pytest.raises(PaymentAlreadyProcessedError):
            engine.apply_payment(paid, 1, Decimal("18334"), date(2024, 5, 2), "REF-X", "admin-002")

        assert paid[0] == before
        assert paid[0].payment_reference == "REF-1"

    def test_unknown_installment(self, schedule) -> None:
        with pytest.raises(EntityNotFoundError):
            engine.apply_payment(schedule, 7, Decimal("1"), date(2024, 4, 30), "REF", "admin")

    def test_amount_not_checked_against_installment(self, schedule) -> None:
        result = engine.apply_payment(schedule, 1, Decimal("500"), date(2024, 4, 30), None, None)

        assert result[0].paid_amount == Decimal("500")
        assert result[0].status == InstallmentStatus.PAID


class TestScheduleQueries:
    """Tests for totals, next due and statistics."""

    def test_totals(self, schedule) -> None:
        paid = engine.apply_payment(
            schedule, 1, Decimal("18334"), date(2024, 4, 30), "REF-1", "admin"
        )

        assert engine.total_paid(paid) == Decimal("18334")
        assert engine.remaining_balance(paid) == Decimal("91666")

    def test_next_due_payment_is_earliest_pending(self, schedule) -> None:
        paid = engine.apply_payment(
            schedule, 1, Decimal("18334"), date(2024, 4, 30), "REF-1", "admin"
        )

        assert engine.next_due_payment(paid).installment_number == 2

    def test_next_due_payment_none_when_nothing_pending(self, schedule) -> None:
        overdue = engine.recompute_overdue(schedule, date(2025, 1, 1))

        assert engine.next_due_payment(overdue) is None

    def test_overdue_payments(self, schedule) -> None:
        late = engine.overdue_payments(schedule, date(2024, 6, 15))

        assert [e.installment_number for e in late] == [1, 2]

    def test_statistics_progress_counts_installments(self) -> None:
        entries = engine.generate(Decimal("3000"), 3, date(2024, 4, 30))
        entries = engine.apply_payment(entries, 1, Decimal("1000"), date(2024, 4, 30), "R1", "a")

        stats = engine.statistics(entries)
        assert stats.total_amount == Decimal("3000")
        assert stats.paid_amount == Decimal("1000")
        assert stats.remaining_amount == Decimal("2000")
        assert stats.total_installments == 3
        assert stats.paid_installments == 1
        assert stats.pending_installments == 2
        assert stats.overdue_installments == 0
        assert stats.progress_percentage == 33

        entries = engine.apply_payment(entries, 2, Decimal("1000"), date(2024, 5, 30), "R2", "a")
        assert engine.statistics(entries).progress_percentage == 67

    def test_statistics_empty(self) -> None:
        stats = engine.statistics([])

        assert stats.total_installments == 0
        assert stats.progress_percentage == 0
