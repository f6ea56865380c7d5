"""Loan lifecycle state machine.

awaiting_guarantors -> pending_admin_review -> approved -> active -> closed,
with rejected reachable from pending_admin_review. ``ALLOWED_TRANSITIONS``
is the only place transitions are defined.
"""

import logging
import threading
import uuid
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from coop_loans.config import WorkflowConfig
from coop_loans.exceptions import (
    DeliveryError,
    EntityNotFoundError,
    InvalidEntityStateError,
    InvalidTransitionError,
    LoanValidationError,
)
from coop_loans.formatters import format_currency
from coop_loans.models.approval import ApplicantSnapshot
from coop_loans.models.base import Session
from coop_loans.models.enums import (
    ApprovalStatus,
    InstallmentStatus,
    LoanStatus,
    NotificationType,
)
from coop_loans.models.loan import Loan, LoanApplication
from coop_loans.models.schedule import InstallmentScheduleEntry
from coop_loans.notify import email as templates
from coop_loans.notify.email import EmailSender
from coop_loans.notify.notifier import Notifier
from coop_loans.products import LoanProductTerms, get_product_terms
from coop_loans.schedule import engine
from coop_loans.schedule.primitives import (
    build_schedule_with_payment,
    custom_repayment,
    first_deduction_date,
    to_money,
    total_interest,
)
from coop_loans.services.audit import AuditAction, AuditTrail
from coop_loans.services.eligibility import EligibilityEvaluator
from coop_loans.services.guarantors import GuarantorWorkflow
from coop_loans.services.permissions import Permission, require_permission
from coop_loans.store.base import LOAN_SCHEDULES, LOANS, DocumentStore
from coop_loans.store.codec import from_document, serialize_value, to_document

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[LoanStatus, frozenset[LoanStatus]] = {
    LoanStatus.AWAITING_GUARANTORS: frozenset({LoanStatus.PENDING_ADMIN_REVIEW}),
    LoanStatus.PENDING_ADMIN_REVIEW: frozenset({LoanStatus.APPROVED, LoanStatus.REJECTED}),
    LoanStatus.APPROVED: frozenset({LoanStatus.ACTIVE}),
    LoanStatus.ACTIVE: frozenset({LoanStatus.CLOSED}),
    LoanStatus.REJECTED: frozenset(),
    LoanStatus.CLOSED: frozenset(),
}

# Borrowers never see their loans while guarantors or admins are deciding
MEMBER_VISIBLE_STATUSES = frozenset(
    {LoanStatus.ACTIVE, LoanStatus.CLOSED, LoanStatus.REJECTED}
)


def _parse_decimal(value: Any) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        result = Decimal(str(value).replace(",", "").strip())
    except InvalidOperation:
        raise ValueError(f"not a number: {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"not a number: {value!r}")
    return result


def _parse_int(value: Any) -> int | None:
    number = _parse_decimal(value)
    if number is None:
        return None
    if number != number.to_integral_value():
        raise ValueError(f"not a whole number: {value!r}")
    return int(number)


def validate_application(
    application: LoanApplication,
    borrower_member_id: str,
    max_amount: Decimal | None,
    workflow_config: WorkflowConfig | None = None,
) -> dict[str, str]:
    """Collect every form error in an application.

    Returns a mapping of field name to message, empty when the application
    is valid. ``max_amount`` is the eligibility ceiling (None skips that
    check).
    """
    config = workflow_config or WorkflowConfig()
    errors: dict[str, str] = {}

    terms: LoanProductTerms | None = None
    if not application.product:
        errors["product"] = "Please select a loan type"
    else:
        try:
            terms = get_product_terms(application.product)
        except (KeyError, ValueError):
            errors["product"] = "Invalid loan type"

    amount = None
    try:
        amount = _parse_decimal(application.amount)
        if amount is None:
            errors["amount"] = "Loan amount is required"
        elif amount <= 0:
            errors["amount"] = "Loan amount must be greater than zero"
        elif terms is not None and terms.has_fixed_amount and amount != terms.fixed_amount:
            errors["amount"] = (
                f"{terms.label} loans are fixed at {format_currency(terms.fixed_amount)}"
            )
        elif max_amount is not None and amount > max_amount:
            errors["amount"] = f"Maximum eligible amount is {format_currency(max_amount)}"
    except ValueError:
        errors["amount"] = "Loan amount must be a number"

    duration = None
    try:
        duration = _parse_int(application.duration_months)
        if duration is None:
            errors["duration_months"] = "Loan duration is required"
        elif terms is not None and terms.has_fixed_duration:
            if duration != terms.min_duration_months:
                errors["duration_months"] = (
                    f"{terms.label} loans must be exactly {terms.min_duration_months} months"
                )
        elif terms is not None and not (
            terms.min_duration_months <= duration <= terms.max_duration_months
        ):
            errors["duration_months"] = (
                f"{terms.label} loans must be between {terms.min_duration_months} "
                f"and {terms.max_duration_months} months"
            )
    except ValueError:
        errors["duration_months"] = "Loan duration must be a whole number of months"

    if not (application.purpose or "").strip():
        errors["purpose"] = "Please describe the purpose of the loan"

    try:
        salary = _parse_decimal(application.monthly_salary)
    except ValueError:
        salary = None
    if salary is None or salary <= 0:
        errors["monthly_salary"] = "Current monthly salary must be greater than zero"

    if len(application.supporting_documents) < config.min_supporting_documents:
        errors["supporting_documents"] = (
            f"Please upload at least {config.min_supporting_documents} supporting documents"
        )

    member_ids = [g.member_id for g in application.guarantors]
    if not member_ids:
        errors["guarantors"] = "Please add at least one guarantor"
    elif borrower_member_id in member_ids:
        errors["guarantors"] = "You cannot be your own guarantor"
    elif len(set(member_ids)) != len(member_ids):
        errors["guarantors"] = "Each guarantor can only be added once"

    if not application.agreed_to_terms:
        errors["agreed_to_terms"] = "You must agree to the loan terms"

    if application.custom_monthly_payment not in (None, ""):
        try:
            custom = _parse_decimal(application.custom_monthly_payment)
        except ValueError:
            errors["custom_monthly_payment"] = "Monthly payment must be a number"
        else:
            if terms is not None and "amount" not in errors and "duration_months" not in errors:
                plan = custom_repayment(
                    amount,
                    duration,
                    terms.interest_rate,
                    custom,
                    terms.interest_basis,
                    max_months=config.max_custom_repayment_months,
                )
                if not plan.valid:
                    errors["custom_monthly_payment"] = plan.error

    return errors


def total_payable(loan: Loan) -> Decimal:
    """Principal plus total interest, in kobo."""
    interest = total_interest(
        loan.principal, loan.interest_rate, loan.duration_months, loan.interest_basis
    )
    return to_money(loan.principal + interest)


class LoanLifecycle:
    """Drive loans through submission, guarantor quorum, admin review and repayment."""

    def __init__(
        self,
        store: DocumentStore,
        workflow: GuarantorWorkflow,
        evaluator: EligibilityEvaluator,
        email_sender: EmailSender,
        notifier: Notifier,
        workflow_config: WorkflowConfig | None = None,
        audit: AuditTrail | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.workflow = workflow
        self.evaluator = evaluator
        self.email_sender = email_sender
        self.notifier = notifier
        self.workflow_config = workflow_config or WorkflowConfig()
        self.audit = audit or workflow.audit
        self.clock = clock

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        workflow.set_quorum_listener(self.recheck_quorum)

    # Plumbing

    def _lock_for(self, loan_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(loan_id, threading.Lock())

    @staticmethod
    def _transition(loan: Loan, target: LoanStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[loan.status]:
            raise InvalidTransitionError(
                f"Loan {loan.loan_id} cannot move from {loan.status.value} to {target.value}"
            )

    def _change_status(
        self, loan_id: str, target: LoanStatus, stamps: dict[str, Any]
    ) -> Loan:
        with self._lock_for(loan_id):
            loan = self.get_loan(loan_id)
            self._transition(loan, target)
            changes = {k: serialize_value(v) for k, v in stamps.items()}
            changes["status"] = target.value
            changes["updated_at"] = self.clock().isoformat()
            self.store.update(LOANS, loan_id, changes)
        logger.info(
            "Loan %s: %s -> %s",
            loan_id,
            loan.status.value,
            target.value,
            extra={"loan_id": loan_id, "status": target.value},
        )
        return self.get_loan(loan_id)

    def _notify(self, loan: Loan, kind: NotificationType, title: str, message: str) -> None:
        try:
            self.notifier.notify(
                [loan.borrower_user_id], kind, title, message, {"loan_id": loan.loan_id}
            )
        except DeliveryError as e:
            logger.warning("Notification for loan %s failed: %s", loan.loan_id, e)

    def _email(self, loan: Loan, message: templates.EmailMessage) -> None:
        try:
            self.email_sender.send(message)
        except DeliveryError as e:
            logger.warning("Email for loan %s failed: %s", loan.loan_id, e)

    def _load_schedule(self, loan_id: str) -> list[InstallmentScheduleEntry]:
        doc = self.store.get(LOAN_SCHEDULES, loan_id)
        if doc is None:
            return []
        entries = [from_document(InstallmentScheduleEntry, e) for e in doc.get("entries", [])]
        return sorted(entries, key=lambda e: e.installment_number)

    def _save_schedule(self, loan_id: str, entries: list[InstallmentScheduleEntry]) -> None:
        self.store.set(
            LOAN_SCHEDULES,
            loan_id,
            {
                "loan_id": loan_id,
                "entries": [to_document(e) for e in entries],
                "updated_at": self.clock().isoformat(),
            },
        )

    # Reads

    def get_loan(self, loan_id: str) -> Loan:
        doc = self.store.get(LOANS, loan_id)
        if doc is None:
            raise EntityNotFoundError(f"Loan {loan_id} not found")
        return from_document(Loan, doc)

    def member_loans(self, session: Session) -> list[Loan]:
        """The borrower's own active, closed and rejected loans, newest first."""
        docs = self.store.query(
            LOANS,
            [
                ("borrower_user_id", "==", session.user_id),
                ("status", "in", [s.value for s in MEMBER_VISIBLE_STATUSES]),
            ],
        )
        loans = [from_document(Loan, d) for d in docs]
        return sorted(loans, key=lambda l: l.created_at, reverse=True)

    def all_loans(self, session: Session, status: LoanStatus | None = None) -> list[Loan]:
        """Admin view of every loan, optionally one status only, newest first."""
        require_permission(session, Permission.VIEW_LOANS)
        filters = [("status", "==", LoanStatus(status))] if status else []
        loans = [from_document(Loan, d) for d in self.store.query(LOANS, filters)]
        return sorted(loans, key=lambda l: l.created_at, reverse=True)

    def schedule_for(
        self, loan_id: str, now: date | datetime | None = None
    ) -> list[InstallmentScheduleEntry]:
        """Stored schedule with overdue status derived as of ``now``.

        Nothing is written back.
        """
        self.get_loan(loan_id)
        return engine.recompute_overdue(self._load_schedule(loan_id), now or self.clock())

    def next_due_date(self, loan_id: str) -> date | None:
        """Due date of the earliest unpaid installment, or None."""
        unpaid = [
            e for e in self.schedule_for(loan_id) if e.status != InstallmentStatus.PAID
        ]
        return min(e.due_date for e in unpaid) if unpaid else None

    # Submission and guarantors

    def submit_application(self, session: Session, application: LoanApplication) -> Loan:
        """Validate an application, create the loan and ask its guarantors.

        Raises
        ------
        LoanValidationError
            With every failing field, before anything is written.
        """
        if not session.member_id:
            raise LoanValidationError(
                {"member": "Complete your membership registration before applying"}
            )

        max_amount = None
        if application.product:
            try:
                decision = self.evaluator.evaluate(
                    session.user_id, session.member_id, application.product
                )
            except (KeyError, ValueError):
                decision = None
            if decision is not None:
                if not decision.eligible:
                    raise LoanValidationError({"eligibility": decision.message})
                max_amount = decision.max_amount

        errors = validate_application(
            application, session.member_id, max_amount, self.workflow_config
        )
        if errors:
            logger.info(
                "Loan application from %s rejected by validation: %s",
                session.user_id,
                ", ".join(sorted(errors)),
            )
            raise LoanValidationError(errors)

        terms = get_product_terms(application.product)
        now = self.clock()
        custom = _parse_decimal(application.custom_monthly_payment)
        loan = Loan(
            loan_id=uuid.uuid4().hex,
            borrower_user_id=session.user_id,
            borrower_member_id=session.member_id,
            borrower_name=session.display_name or session.email,
            borrower_email=session.email,
            product=terms.product,
            principal=terms.fixed_amount if terms.has_fixed_amount else _parse_decimal(application.amount),
            duration_months=_parse_int(application.duration_months),
            interest_rate=terms.interest_rate,
            interest_basis=terms.interest_basis,
            purpose=application.purpose.strip(),
            monthly_salary=_parse_decimal(application.monthly_salary),
            guarantors_required=len(application.guarantors),
            status=LoanStatus.AWAITING_GUARANTORS,
            created_at=now,
            guarantors=list(application.guarantors),
            supporting_documents=list(application.supporting_documents),
            custom_monthly_payment=custom,
            first_deduction_date=first_deduction_date(now),
            updated_at=now,
        )
        self.store.set(LOANS, loan.loan_id, to_document(loan))
        logger.info(
            "Loan %s submitted by %s: %s %s over %d months",
            loan.loan_id,
            loan.borrower_member_id,
            loan.product.value,
            loan.principal,
            loan.duration_months,
        )
        self.audit.record(
            AuditAction.SUBMITTED,
            loan.loan_id,
            actor=session.user_id,
            data={
                "product": loan.product.value,
                "principal": str(loan.principal),
                "guarantors_required": loan.guarantors_required,
            },
        )

        self.workflow.request_approvals(
            loan.loan_id,
            ApplicantSnapshot(
                user_id=loan.borrower_user_id,
                name=loan.borrower_name,
                email=loan.borrower_email,
                loan_amount=loan.principal,
                loan_purpose=loan.purpose,
            ),
            loan.guarantors,
        )
        return loan

    def record_guarantor_response(
        self, token: str, decision: ApprovalStatus | str, reason: str | None = None
    ):
        """Answer a guarantor request; approvals recheck quorum."""
        return self.workflow.record_response(token, decision, reason)

    def recheck_quorum(self, loan_id: str) -> Loan:
        """Recount approvals and move the loan to admin review once quorum is met.

        The count is rebuilt from the approval records each time, under a
        per-loan lock, so concurrent approvals cannot lose an increment.
        """
        with self._lock_for(loan_id):
            loan = self.get_loan(loan_id)
            approved = sum(
                1
                for a in self.workflow.approvals_for_loan(loan_id)
                if a.status == ApprovalStatus.APPROVED
            )
            changes: dict[str, Any] = {
                "guarantors_approved": min(approved, loan.guarantors_required),
            }
            reached = (
                loan.status == LoanStatus.AWAITING_GUARANTORS
                and approved >= loan.guarantors_required
            )
            if reached:
                self._transition(loan, LoanStatus.PENDING_ADMIN_REVIEW)
                changes["status"] = LoanStatus.PENDING_ADMIN_REVIEW.value
                changes["updated_at"] = self.clock().isoformat()
            self.store.update(LOANS, loan_id, changes)

        if reached:
            logger.info(
                "Loan %s: guarantor quorum reached (%d/%d), awaiting admin review",
                loan_id,
                approved,
                loan.guarantors_required,
            )
            self.audit.record(
                AuditAction.QUORUM_REACHED,
                loan_id,
                data={"guarantors_approved": approved},
            )
            self._notify(
                loan,
                NotificationType.LOAN_UPDATE,
                "Guarantors Approved",
                "All your guarantors have approved. Your loan is now awaiting admin review.",
            )
        return self.get_loan(loan_id)

    # Admin transitions

    def approve(self, session: Session, loan_id: str, note: str = "") -> Loan:
        require_permission(session, Permission.APPROVE_LOANS)
        loan = self._change_status(
            loan_id,
            LoanStatus.APPROVED,
            {"approved_at": self.clock(), "approved_by": session.user_id, "approval_note": note},
        )
        self.audit.record(AuditAction.APPROVED, loan_id, actor=session.user_id, data={"note": note})
        self._notify(
            loan,
            NotificationType.LOAN_UPDATE,
            "Loan Approved",
            f"Your loan application for {format_currency(loan.principal)} has been approved",
        )
        self._email(
            loan,
            templates.loan_decision(
                loan.borrower_email, loan.borrower_name, loan.principal, True, note or None
            ),
        )
        return loan

    def reject(self, session: Session, loan_id: str, reason: str) -> Loan:
        require_permission(session, Permission.REJECT_LOANS)
        if not (reason or "").strip():
            raise LoanValidationError({"reason": "Please provide a reason for rejection"})
        loan = self._change_status(
            loan_id,
            LoanStatus.REJECTED,
            {
                "rejected_at": self.clock(),
                "rejected_by": session.user_id,
                "rejection_reason": reason.strip(),
            },
        )
        self.audit.record(
            AuditAction.REJECTED, loan_id, actor=session.user_id, data={"reason": reason}
        )
        self._notify(
            loan,
            NotificationType.LOAN_UPDATE,
            "Loan Rejected",
            f"Your loan application for {format_currency(loan.principal)} was rejected. "
            f"Reason: {reason.strip()}",
        )
        self._email(
            loan,
            templates.loan_decision(
                loan.borrower_email, loan.borrower_name, loan.principal, False, reason.strip()
            ),
        )
        return loan

    def repayment_schedule(
        self, loan: Loan, start_date: date | None = None
    ) -> list[InstallmentScheduleEntry]:
        """Schedule a loan would get on activation."""
        total = total_payable(loan)
        start = start_date or loan.first_deduction_date or first_deduction_date(loan.created_at)

        if loan.custom_monthly_payment:
            plan = custom_repayment(
                loan.principal,
                loan.duration_months,
                loan.interest_rate,
                loan.custom_monthly_payment,
                loan.interest_basis,
                max_months=self.workflow_config.max_custom_repayment_months,
            )
            if plan.valid:
                return build_schedule_with_payment(
                    total, plan.duration_months, loan.custom_monthly_payment, start
                )
            logger.warning(
                "Loan %s custom payment no longer valid (%s); using standard schedule",
                loan.loan_id,
                plan.error,
            )
        return engine.generate(total, loan.duration_months, start)

    def activate(
        self,
        session: Session,
        loan_id: str,
        note: str = "",
        start_date: date | None = None,
    ) -> Loan:
        """Disburse an approved loan and materialise its repayment schedule."""
        require_permission(session, Permission.APPROVE_LOANS)
        with self._lock_for(loan_id):
            loan = self.get_loan(loan_id)
            self._transition(loan, LoanStatus.ACTIVE)
            entries = self.repayment_schedule(loan, start_date)
            self._save_schedule(loan_id, entries)
            now = self.clock()
            self.store.update(
                LOANS,
                loan_id,
                {
                    "status": LoanStatus.ACTIVE.value,
                    "activated_at": now.isoformat(),
                    "activated_by": session.user_id,
                    "activation_note": note,
                    "first_deduction_date": entries[0].due_date.isoformat() if entries else None,
                    "updated_at": now.isoformat(),
                },
            )
        logger.info("Loan %s activated with %d installments", loan_id, len(entries))
        self.audit.record(
            AuditAction.ACTIVATED,
            loan_id,
            actor=session.user_id,
            data={"installments": len(entries), "total_payable": str(total_payable(loan))},
        )
        loan = self.get_loan(loan_id)
        self._notify(
            loan,
            NotificationType.LOAN_UPDATE,
            "Loan Activated",
            f"Your loan of {format_currency(loan.principal)} is now active. "
            f"First deduction is due {loan.first_deduction_date}.",
        )
        return loan

    def deactivate(self, session: Session, loan_id: str, reason: str) -> Loan:
        """Close an active loan."""
        require_permission(session, Permission.EDIT_LOANS)
        if not (reason or "").strip():
            raise LoanValidationError({"reason": "Please provide a reason for closing the loan"})
        loan = self._change_status(
            loan_id,
            LoanStatus.CLOSED,
            {
                "closed_at": self.clock(),
                "closed_by": session.user_id,
                "closure_reason": reason.strip(),
            },
        )
        self.audit.record(AuditAction.CLOSED, loan_id, actor=session.user_id, data={"reason": reason})
        return loan

    # Repayment

    def sweep_overdue(
        self, session: Session, loan_id: str, now: date | datetime | None = None
    ) -> list[InstallmentScheduleEntry]:
        """Persist the derived overdue status so list filters can see it."""
        require_permission(session, Permission.EDIT_LOANS)
        with self._lock_for(loan_id):
            self.get_loan(loan_id)
            entries = self._load_schedule(loan_id)
            updated = engine.recompute_overdue(entries, now or self.clock())
            changed = sum(1 for old, new in zip(entries, updated) if old.status != new.status)
            if changed:
                self._save_schedule(loan_id, updated)
        if changed:
            self.audit.record(
                AuditAction.OVERDUE_SWEPT, loan_id, actor=session.user_id, data={"marked": changed}
            )
            logger.info("Loan %s: %d installments marked overdue", loan_id, changed)
        return updated

    def process_installment_payment(
        self,
        session: Session,
        loan_id: str,
        sequence_number: int,
        paid_amount: Decimal,
        reference: str | None,
        paid_date: date | None = None,
    ) -> list[InstallmentScheduleEntry]:
        """Apply a payment to one installment of an active loan.

        Raises
        ------
        PaymentAlreadyProcessedError
            The installment is already paid; nothing is written.
        """
        require_permission(session, Permission.PROCESS_PAYMENTS)
        paid_amount = Decimal(paid_amount)

        with self._lock_for(loan_id):
            loan = self.get_loan(loan_id)
            if loan.status != LoanStatus.ACTIVE:
                raise InvalidEntityStateError(
                    f"Loan {loan_id} is {loan.status.value}; payments need an active loan"
                )
            now = self.clock()
            entries = engine.apply_payment(
                self._load_schedule(loan_id),
                sequence_number,
                paid_amount,
                paid_date or now.date(),
                reference,
                session.user_id,
                processed_at=now,
            )
            self._save_schedule(loan_id, entries)
            repaid = min(loan.total_repaid + paid_amount, total_payable(loan))
            self.store.update(
                LOANS,
                loan_id,
                {"total_repaid": str(repaid), "updated_at": now.isoformat()},
            )

        remaining = engine.remaining_balance(entries)
        logger.info(
            "Loan %s: installment %d paid (%s), remaining %s",
            loan_id,
            sequence_number,
            paid_amount,
            remaining,
        )
        self.audit.record(
            AuditAction.PAYMENT_RECORDED,
            loan_id,
            actor=session.user_id,
            data={
                "installment_number": sequence_number,
                "amount": str(paid_amount),
                "reference": reference,
            },
        )
        self._notify(
            loan,
            NotificationType.PAYMENT,
            "Payment Received",
            f"{format_currency(paid_amount)} received for installment #{sequence_number}",
        )
        self._email(
            loan,
            templates.payment_confirmation(
                loan.borrower_email,
                loan.borrower_name,
                paid_amount,
                sequence_number,
                reference,
                remaining,
            ),
        )
        return entries
