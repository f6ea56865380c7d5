"""Installment schedule engine.

Schedules are lists of frozen :class:`InstallmentScheduleEntry` values.
Every function here returns new entries and leaves its input untouched.
"""

import logging
from dataclasses import replace
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal

from coop_loans.exceptions import EntityNotFoundError, PaymentAlreadyProcessedError
from coop_loans.models.enums import InstallmentStatus
from coop_loans.models.schedule import InstallmentScheduleEntry, ScheduleStatistics
from coop_loans.schedule.primitives import build_schedule

logger = logging.getLogger(__name__)


def generate(
    total_payable: Decimal, period_count: int, start_date: date
) -> list[InstallmentScheduleEntry]:
    """Build a fresh schedule of ``period_count`` pending installments."""
    return build_schedule(total_payable, period_count, start_date)


def _is_past_due(due_date: date, now: date | datetime) -> bool:
    # A datetime is compared against midnight of the due date.
    if isinstance(now, datetime):
        return datetime.combine(due_date, time.min) < now
    return due_date < now


def recompute_overdue(
    entries: list[InstallmentScheduleEntry], now: date | datetime
) -> list[InstallmentScheduleEntry]:
    """Mark pending entries whose due date has passed as overdue.

    Paid and already-overdue entries are returned as they are, so calling
    this twice with the same ``now`` gives the same result.
    """
    return [
        replace(entry, status=InstallmentStatus.OVERDUE)
        if entry.status == InstallmentStatus.PENDING and _is_past_due(entry.due_date, now)
        else entry
        for entry in entries
    ]


def apply_payment(
    entries: list[InstallmentScheduleEntry],
    sequence_number: int,
    paid_amount: Decimal,
    paid_date: date,
    reference: str | None,
    processed_by: str | None,
    processed_at: datetime | None = None,
) -> list[InstallmentScheduleEntry]:
    """Record a payment against one installment.

    The amount is not checked against the installment amount.

    Raises
    ------
    EntityNotFoundError
        No entry has ``sequence_number``.
    PaymentAlreadyProcessedError
        The entry is already paid.
    """
    target = next((e for e in entries if e.installment_number == sequence_number), None)
    if target is None:
        raise EntityNotFoundError(f"Installment {sequence_number} not found")
    if target.status == InstallmentStatus.PAID:
        raise PaymentAlreadyProcessedError(
            f"Installment {sequence_number} is already paid"
        )

    paid = replace(
        target,
        status=InstallmentStatus.PAID,
        paid_date=paid_date,
        paid_amount=Decimal(paid_amount),
        payment_reference=reference,
        processed_by=processed_by,
        processed_at=processed_at or datetime.now(),
    )
    logger.debug("Installment %d marked paid (ref=%s)", sequence_number, reference)
    return [paid if e is target else e for e in entries]


def total_paid(entries: list[InstallmentScheduleEntry]) -> Decimal:
    """Sum of amounts actually paid on paid installments."""
    return sum(
        (e.paid_amount or Decimal(0) for e in entries if e.status == InstallmentStatus.PAID),
        Decimal(0),
    )


def remaining_balance(entries: list[InstallmentScheduleEntry]) -> Decimal:
    """Sum of amounts due on installments not yet paid."""
    return sum(
        (e.amount for e in entries if e.status != InstallmentStatus.PAID),
        Decimal(0),
    )


def next_due_payment(
    entries: list[InstallmentScheduleEntry],
) -> InstallmentScheduleEntry | None:
    """Earliest pending installment, or None when nothing is pending."""
    pending = [e for e in entries if e.status == InstallmentStatus.PENDING]
    if not pending:
        return None
    return min(pending, key=lambda e: e.due_date)


def overdue_payments(
    entries: list[InstallmentScheduleEntry], now: date | datetime
) -> list[InstallmentScheduleEntry]:
    """Pending installments that are past due as of ``now``."""
    return [
        e
        for e in entries
        if e.status == InstallmentStatus.PENDING and _is_past_due(e.due_date, now)
    ]


def statistics(entries: list[InstallmentScheduleEntry]) -> ScheduleStatistics:
    """Totals and status counts for a schedule.

    Progress is the share of installments paid, not of the amount.
    """
    total = len(entries)
    paid_count = sum(1 for e in entries if e.status == InstallmentStatus.PAID)

    if total:
        progress = int(
            (Decimal(100) * paid_count / total).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        )
    else:
        progress = 0

    return ScheduleStatistics(
        total_amount=sum((e.amount for e in entries), Decimal(0)),
        paid_amount=total_paid(entries),
        remaining_amount=remaining_balance(entries),
        total_installments=total,
        paid_installments=paid_count,
        pending_installments=sum(1 for e in entries if e.status == InstallmentStatus.PENDING),
        overdue_installments=sum(1 for e in entries if e.status == InstallmentStatus.OVERDUE),
        progress_percentage=progress,
    )
