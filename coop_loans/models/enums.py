"""Enumeration types for loan domain entities."""

from enum import Enum


class LoanProduct(str, Enum):
    FIXED_RELIEF = "fixed_relief"
    SAVINGS_MULTIPLE_SHORT = "savings_multiple_short"
    SAVINGS_MULTIPLE_LONG = "savings_multiple_long"


class InterestBasis(str, Enum):
    FLAT = "flat"  # charged once on principal for the whole term
    PER_ANNUM = "per_annum"  # pro-rated by duration


class LoanStatus(str, Enum):
    AWAITING_GUARANTORS = "awaiting_guarantors"
    PENDING_ADMIN_REVIEW = "pending_admin_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    ACTIVE = "active"
    CLOSED = "closed"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class InstallmentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class Role(str, Enum):
    MEMBER = "member"
    CUSTOMER_CARE = "customer_care"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class NotificationType(str, Enum):
    LOAN_UPDATE = "loan_update"
    GUARANTOR_REQUEST = "guarantor_request"
    PAYMENT = "payment"
    DEDUCTION_FAILED = "deduction_failed"


class LedgerEntryType(str, Enum):
    DEPOSIT = "deposit"
    LOAN_REPAYMENT = "loan_repayment"
    SAVINGS_DEDUCTION = "savings_deduction"
