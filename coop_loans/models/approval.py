"""Guarantor approval models."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from coop_loans.models.enums import ApprovalStatus


@dataclass
class ApplicantSnapshot:
    """Applicant and loan details captured when approvals are requested."""

    user_id: str
    name: str
    email: str
    loan_amount: Decimal
    loan_purpose: str


@dataclass
class GuarantorApproval:
    """One guarantor's approval request for one loan."""

    approval_id: str
    loan_id: str
    guarantor_member_id: str
    guarantor_name: str
    guarantor_file_number: str
    guarantor_email: str
    applicant_user_id: str
    applicant_name: str
    applicant_email: str
    loan_amount: Decimal
    loan_purpose: str
    status: ApprovalStatus
    approval_token: str
    created_at: datetime
    expires_at: datetime
    guarantor_user_id: str | None = None
    rejection_reason: str | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """Expiry is derived at read time; the stored status is not changed."""
        return now > self.expires_at


@dataclass
class ApprovalRequestResult:
    """Per-guarantor outcome of a batch approval request."""

    guarantor_member_id: str
    created: bool
    emailed: bool = False
    approval_id: str | None = None
    error: str | None = None
