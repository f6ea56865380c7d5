"""Repayment arithmetic, installment schedules and their exports."""

from coop_loans.schedule.engine import (
    apply_payment,
    generate,
    next_due_payment,
    overdue_payments,
    recompute_overdue,
    remaining_balance,
    statistics,
    total_paid,
)
from coop_loans.schedule.export import export_csv, schedule_to_csv

__all__ = [
    "apply_payment",
    "export_csv",
    "generate",
    "next_due_payment",
    "overdue_payments",
    "recompute_overdue",
    "remaining_balance",
    "schedule_to_csv",
    "statistics",
    "total_paid",
]
