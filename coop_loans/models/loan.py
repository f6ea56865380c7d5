"""Loan models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from coop_loans.models.enums import InterestBasis, LoanProduct, LoanStatus


@dataclass
class Guarantor:
    """A fellow member nominated to co-sign a loan."""

    member_id: str
    name: str
    file_number: str
    email: str
    user_id: str | None = None


@dataclass
class Loan:
    """Loan document, the system of record for one credit request."""

    loan_id: str
    borrower_user_id: str
    borrower_member_id: str
    borrower_name: str
    borrower_email: str
    product: LoanProduct
    principal: Decimal
    duration_months: int
    interest_rate: Decimal  # percent, e.g. Decimal("5")
    interest_basis: InterestBasis
    purpose: str
    monthly_salary: Decimal
    guarantors_required: int
    status: LoanStatus
    created_at: datetime
    guarantors_approved: int = 0
    total_repaid: Decimal = Decimal("0")
    guarantors: list[Guarantor] = field(default_factory=list)
    supporting_documents: list[str] = field(default_factory=list)
    custom_monthly_payment: Decimal | None = None
    first_deduction_date: date | None = None
    approved_at: datetime | None = None
    approved_by: str | None = None
    approval_note: str | None = None
    rejected_at: datetime | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None
    activated_at: datetime | None = None
    activated_by: str | None = None
    activation_note: str | None = None
    closed_at: datetime | None = None
    closed_by: str | None = None
    closure_reason: str | None = None
    updated_at: datetime | None = None


@dataclass
class LoanApplication:
    """Raw loan application form input, validated before submission."""

    product: LoanProduct | None
    amount: Decimal | str | None
    duration_months: int | str | None
    purpose: str
    monthly_salary: Decimal | str | None
    guarantors: list[Guarantor] = field(default_factory=list)
    supporting_documents: list[str] = field(default_factory=list)
    agreed_to_terms: bool = False
    custom_monthly_payment: Decimal | str | None = None
