"""Installment schedule models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from coop_loans.models.enums import InstallmentStatus


@dataclass(frozen=True)
class InstallmentScheduleEntry:
    """One scheduled payment within a repayment plan."""

    installment_number: int  # 1, 2, 3, ...
    amount: Decimal
    due_date: date
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_date: date | None = None
    paid_amount: Decimal | None = None
    payment_reference: str | None = None
    processed_by: str | None = None
    processed_at: datetime | None = None


@dataclass
class ScheduleStatistics:
    """Aggregate view of a schedule."""

    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    total_installments: int
    paid_installments: int
    pending_installments: int
    overdue_installments: int
    progress_percentage: int


@dataclass
class RepaymentPlan:
    """Loan repayment figures shown before submission."""

    principal: Decimal
    interest_rate: Decimal
    duration_months: int
    total_interest: Decimal
    total_amount: Decimal
    monthly_payment: Decimal
    first_deduction_date: date
    schedule: list[InstallmentScheduleEntry] = field(default_factory=list)


@dataclass
class CustomRepaymentPlan:
    """Outcome of a member-chosen (accelerated) monthly payment."""

    valid: bool
    minimum_payment: Decimal
    error: str | None = None
    total_amount: Decimal | None = None
    monthly_payment: Decimal | None = None
    duration_months: int | None = None
    total_savings: Decimal | None = None
