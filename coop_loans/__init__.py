"""Loan lifecycle, guarantor approval and installment schedules for a cooperative society."""

__version__ = "0.1.0"
