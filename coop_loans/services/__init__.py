"""Loan workflow services."""

from coop_loans.services.audit import AuditAction, AuditTrail
from coop_loans.services.eligibility import EligibilityDecision, EligibilityEvaluator
from coop_loans.services.guarantors import GuarantorWorkflow
from coop_loans.services.lifecycle import ALLOWED_TRANSITIONS, LoanLifecycle, validate_application
from coop_loans.services.members import MemberDirectory, StoreMemberDirectory
from coop_loans.services.payments import DeductionProcessor, DeductionRunSummary, LedgerService
from coop_loans.services.permissions import Permission, require_permission

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AuditAction",
    "AuditTrail",
    "DeductionProcessor",
    "DeductionRunSummary",
    "EligibilityDecision",
    "EligibilityEvaluator",
    "GuarantorWorkflow",
    "LedgerService",
    "LoanLifecycle",
    "MemberDirectory",
    "Permission",
    "StoreMemberDirectory",
    "require_permission",
    "validate_application",
]
