"""Domain models for the cooperative loan workflow."""

from coop_loans.models.approval import (
    ApplicantSnapshot,
    ApprovalRequestResult,
    GuarantorApproval,
)
from coop_loans.models.base import Event, Session
from coop_loans.models.enums import (
    ApprovalStatus,
    InstallmentStatus,
    InterestBasis,
    LedgerEntryType,
    LoanProduct,
    LoanStatus,
    NotificationType,
    Role,
)
from coop_loans.models.loan import Guarantor, Loan, LoanApplication
from coop_loans.models.member import LedgerEntry, MemberProfile, Notification
from coop_loans.models.schedule import (
    CustomRepaymentPlan,
    InstallmentScheduleEntry,
    RepaymentPlan,
    ScheduleStatistics,
)

__all__ = [
    "ApplicantSnapshot",
    "ApprovalRequestResult",
    "ApprovalStatus",
    "CustomRepaymentPlan",
    "Event",
    "Guarantor",
    "GuarantorApproval",
    "InstallmentScheduleEntry",
    "InstallmentStatus",
    "InterestBasis",
    "LedgerEntry",
    "LedgerEntryType",
    "Loan",
    "LoanApplication",
    "LoanProduct",
    "LoanStatus",
    "MemberProfile",
    "Notification",
    "NotificationType",
    "RepaymentPlan",
    "Role",
    "ScheduleStatistics",
    "Session",
]
