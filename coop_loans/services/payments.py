"""Ledger entries for gateway payments and the monthly savings deduction run."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable

from coop_loans.exceptions import (
    CoopLoansError,
    DeliveryError,
    LoanValidationError,
    PaymentAlreadyProcessedError,
)
from coop_loans.formatters import format_currency
from coop_loans.models.base import Session
from coop_loans.models.enums import InstallmentStatus, LedgerEntryType, LoanStatus, NotificationType
from coop_loans.models.member import LedgerEntry
from coop_loans.notify.notifier import Notifier
from coop_loans.services.audit import AuditAction, AuditTrail
from coop_loans.services.lifecycle import LoanLifecycle
from coop_loans.services.members import StoreMemberDirectory
from coop_loans.services.permissions import Permission, require_permission
from coop_loans.store.base import TRANSACTIONS, DocumentStore
from coop_loans.store.codec import from_document, to_document

logger = logging.getLogger(__name__)


class LedgerService:
    """Persist money movements in the ``transactions`` collection."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.clock = clock

    def check(self, amount: Decimal, reference: str) -> None:
        """Raise if an entry for ``amount`` under ``reference`` would be refused."""
        errors = {}
        if not (reference or "").strip():
            errors["reference"] = "Payment reference is required"
        if Decimal(amount) <= 0:
            errors["amount"] = "Amount must be greater than zero"
        if errors:
            raise LoanValidationError(errors)

        if self.store.query(TRANSACTIONS, [("reference", "==", reference)]):
            raise PaymentAlreadyProcessedError(f"Payment {reference} was already recorded")

    def record(
        self,
        user_id: str,
        member_id: str | None,
        entry_type: LedgerEntryType,
        amount: Decimal,
        reference: str,
        description: str,
        loan_id: str | None = None,
    ) -> LedgerEntry:
        """Write one ledger entry. A reference can be recorded only once."""
        amount = Decimal(amount)
        self.check(amount, reference)

        entry = LedgerEntry(
            entry_id=uuid.uuid4().hex,
            user_id=user_id,
            member_id=member_id,
            entry_type=entry_type,
            amount=amount,
            reference=reference,
            description=description,
            created_at=self.clock(),
            loan_id=loan_id,
        )
        self.store.set(TRANSACTIONS, entry.entry_id, to_document(entry))
        logger.info("Ledger %s %s for %s (ref=%s)", entry_type.value, amount, user_id, reference)
        return entry

    def record_gateway_payment(
        self,
        session: Session,
        reference: str,
        amount: Decimal,
        description: str = "Wallet funding",
    ) -> LedgerEntry:
        """Persist a successful payment-gateway callback against the member."""
        return self.record(
            session.user_id,
            session.member_id,
            LedgerEntryType.DEPOSIT,
            amount,
            reference,
            description,
        )

    def entries_for(self, user_id: str) -> list[LedgerEntry]:
        """A member's ledger, newest first."""
        docs = self.store.query(TRANSACTIONS, [("user_id", "==", user_id)])
        entries = [from_document(LedgerEntry, d) for d in docs]
        return sorted(entries, key=lambda e: e.created_at, reverse=True)


@dataclass
class DeductionRunSummary:
    """Outcome of one deduction run."""

    loans_processed: int = 0
    loans_failed: int = 0
    loans_skipped: int = 0
    total_deducted: Decimal = Decimal("0")
    errors: list[dict[str, Any]] = field(default_factory=list)


class DeductionProcessor:
    """Pay due installments of active loans from members' savings.

    Run on demand by an admin. For each active loan the earliest unpaid
    installment due on or before ``now`` is collected when the member's
    savings cover it; otherwise the member is told and the loan is counted
    as failed. One loan failing never stops the run.
    """

    def __init__(
        self,
        lifecycle: LoanLifecycle,
        members: StoreMemberDirectory,
        ledger: LedgerService,
        notifier: Notifier,
        audit: AuditTrail | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.lifecycle = lifecycle
        self.members = members
        self.ledger = ledger
        self.notifier = notifier
        self.audit = audit or lifecycle.audit
        self.clock = clock

    def run(self, session: Session, now: datetime | None = None) -> DeductionRunSummary:
        require_permission(session, Permission.PROCESS_PAYMENTS)
        now = now or self.clock()
        today = now.date() if isinstance(now, datetime) else now
        summary = DeductionRunSummary()

        loans = self.lifecycle.all_loans(session, LoanStatus.ACTIVE)
        logger.info("Deduction run: %d active loans", len(loans))

        for loan in loans:
            try:
                self._process_loan(session, loan, today, summary)
            except CoopLoansError as e:
                logger.error("Deduction for loan %s failed: %s", loan.loan_id, e)
                summary.loans_failed += 1
                summary.errors.append(
                    {"loan_id": loan.loan_id, "member_id": loan.borrower_member_id, "error": str(e)}
                )

        logger.info(
            "Deduction run complete: processed=%d, failed=%d, skipped=%d, total=%s",
            summary.loans_processed,
            summary.loans_failed,
            summary.loans_skipped,
            summary.total_deducted,
        )
        return summary

    def _process_loan(self, session, loan, today: date, summary: DeductionRunSummary) -> None:
        due = [
            e
            for e in self.lifecycle.schedule_for(loan.loan_id, today)
            if e.status != InstallmentStatus.PAID and e.due_date <= today
        ]
        if not due:
            summary.loans_skipped += 1
            return

        entry = min(due, key=lambda e: e.installment_number)

        # A rounded-up schedule can leave nothing (or a credit) on the last entry
        if entry.amount <= 0:
            self.lifecycle.process_installment_payment(
                session,
                loan.loan_id,
                entry.installment_number,
                Decimal("0"),
                f"DED-{loan.loan_id[:8]}-{entry.installment_number}-settled",
                paid_date=today,
            )
            logger.info(
                "Loan %s: installment %d settled without deduction (amount %s)",
                loan.loan_id,
                entry.installment_number,
                entry.amount,
            )
            summary.loans_processed += 1
            return

        balance = self.members.savings_balance(loan.borrower_member_id)

        if balance < entry.amount:
            logger.warning(
                "Insufficient balance for loan %s. Required: %s, Available: %s",
                loan.loan_id,
                entry.amount,
                balance,
            )
            summary.loans_failed += 1
            summary.errors.append(
                {
                    "loan_id": loan.loan_id,
                    "member_id": loan.borrower_member_id,
                    "reason": "insufficient_balance",
                }
            )
            self.audit.record(
                AuditAction.DEDUCTION_FAILED,
                loan.loan_id,
                actor=session.user_id,
                data={
                    "installment_number": entry.installment_number,
                    "required": str(entry.amount),
                    "available": str(balance),
                },
            )
            try:
                self.notifier.notify(
                    [loan.borrower_user_id],
                    NotificationType.DEDUCTION_FAILED,
                    "Loan Deduction Failed",
                    f"Your installment of {format_currency(entry.amount)} could not be "
                    f"deducted. Savings balance: {format_currency(balance)}",
                    {"loan_id": loan.loan_id},
                )
            except DeliveryError as e:
                logger.warning("Deduction notice for loan %s failed: %s", loan.loan_id, e)
            return

        reference = f"DED-{loan.loan_id[:8]}-{entry.installment_number}-{uuid.uuid4().hex[:6]}"
        self._collect(session, loan, entry, reference, today)
        self.audit.record(
            AuditAction.DEDUCTION_PROCESSED,
            loan.loan_id,
            actor=session.user_id,
            data={"installment_number": entry.installment_number, "amount": str(entry.amount)},
        )
        summary.loans_processed += 1
        summary.total_deducted += entry.amount

    def _collect(self, session, loan, entry, reference: str, today: date) -> None:
        """Debit savings, write the ledger entry and mark the installment paid.

        Either all three stick or the wallet is credited back (with a
        reversing ledger entry if the deduction was already written).
        """
        self.ledger.check(entry.amount, reference)
        self.members.debit_savings(loan.borrower_member_id, entry.amount)

        recorded = False
        try:
            self.ledger.record(
                loan.borrower_user_id,
                loan.borrower_member_id,
                LedgerEntryType.SAVINGS_DEDUCTION,
                entry.amount,
                reference,
                f"Monthly loan payment - {loan.product.value}",
                loan_id=loan.loan_id,
            )
            recorded = True
            self.lifecycle.process_installment_payment(
                session,
                loan.loan_id,
                entry.installment_number,
                entry.amount,
                reference,
                paid_date=today,
            )
        except CoopLoansError:
            logger.warning(
                "Deduction for loan %s not applied; returning %s to member %s",
                loan.loan_id,
                entry.amount,
                loan.borrower_member_id,
            )
            self.members.credit_savings(loan.borrower_member_id, entry.amount)
            if recorded:
                self.ledger.record(
                    loan.borrower_user_id,
                    loan.borrower_member_id,
                    LedgerEntryType.DEPOSIT,
                    entry.amount,
                    f"{reference}-REV",
                    f"Reversal of {reference}",
                    loan_id=loan.loan_id,
                )
            raise
