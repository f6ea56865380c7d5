"""End-to-end walkthrough of one loan, from application to first repayments."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any

from dateutil.relativedelta import relativedelta

from coop_loans.config import PortalConfig
from coop_loans.generators.member import MemberGenerator, as_guarantor
from coop_loans.models.base import Session
from coop_loans.models.enums import ApprovalStatus, LoanProduct, Role
from coop_loans.models.loan import Loan, LoanApplication
from coop_loans.models.member import MemberProfile
from coop_loans.notify.email import OutboxEmailSender
from coop_loans.portal import Portal, build_portal
from coop_loans.schedule import engine
from coop_loans.schedule.export import export_csv
from coop_loans.services.payments import DeductionRunSummary
from coop_loans.store.base import DocumentStore
from coop_loans.store.memory import InMemoryDocumentStore

logger = logging.getLogger(__name__)


class SimulatedClock:
    """A clock the scenario moves forward by hand."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: Any) -> datetime:
        """Move forward by a ``relativedelta`` (e.g. ``months=1``)."""
        self.current = self.current + relativedelta(**kwargs)
        return self.current


class LoanWalkthroughScenario:
    """Run a savings-multiple loan through the whole workflow in memory.

    This scenario:
    - Registers a borrower, guarantors and other members
    - Submits a Progress Plus application with two guarantors
    - Has both guarantors approve through their emailed tokens
    - Approves and activates the loan as an admin
    - Runs the monthly deduction for the first ``months_to_run`` months
    """

    def __init__(
        self,
        num_members: int = 5,
        months_to_run: int = 3,
        seed: int | None = None,
        start: datetime | None = None,
        *,
        config: PortalConfig | None = None,
        store: DocumentStore | None = None,
    ) -> None:
        """Initialize the walkthrough.

        Parameters
        ----------
        num_members : int
            Members to register (at least 3: borrower and two guarantors).
        months_to_run : int
            Monthly deduction runs after activation.
        seed : int | None
            Random seed for reproducibility.
        start : datetime | None
            Simulated date of the application.
        config : PortalConfig | None
            Portal configuration.
        store : DocumentStore | None
            Where loans and approvals are kept (in memory when omitted).
        """
        if num_members < 3:
            raise ValueError("num_members must be at least 3")

        self.num_members = num_members
        self.months_to_run = months_to_run
        self.seed = seed
        self.clock = SimulatedClock(start or datetime(2024, 3, 15, 9, 0))
        self.email_sender = OutboxEmailSender()
        self.portal: Portal = build_portal(
            config=config or PortalConfig(seed=seed),
            store=store,
            email_sender=self.email_sender,
            clock=self.clock,
        )
        self._member_gen = MemberGenerator(seed=seed, reference_date=self.clock())

        self.members: list[MemberProfile] = []
        self.loan: Loan | None = None
        self.deduction_runs: list[DeductionRunSummary] = []
        self.admin = Session(
            user_id="admin-walkthrough",
            email="admin@awslmcsl.org",
            role=Role.ADMIN,
            display_name="Loan Officer",
            email_verified=True,
            registration_fee_paid=True,
        )

    def _register_members(self) -> None:
        borrower = self._member_gen.generate(
            savings_balance=Decimal("150000"), tenure_months=12
        )
        self.members.append(borrower)
        for _ in range(self.num_members - 1):
            self.members.append(self._member_gen.generate())

        for member in self.members:
            self.portal.members.register(member)
        logger.info("Registered %d members", len(self.members))

    def generate(self) -> Loan:
        """Run the walkthrough.

        Returns
        -------
        Loan
            The loan as it stands after the last deduction run.
        """
        self._register_members()
        borrower = self.members[0]
        session = Session(
            user_id=borrower.user_id,
            email=borrower.email,
            member_id=borrower.member_id,
            display_name=borrower.name,
            email_verified=True,
            registration_fee_paid=True,
        )

        application = LoanApplication(
            product=LoanProduct.SAVINGS_MULTIPLE_LONG,
            amount=Decimal("300000"),
            duration_months=12,
            purpose="Expand poultry farm",
            monthly_salary=Decimal("250000"),
            guarantors=[as_guarantor(m) for m in self.members[1:3]],
            supporting_documents=["payslip.pdf", "id-card.pdf"],
            agreed_to_terms=True,
        )
        loan = self.portal.lifecycle.submit_application(session, application)

        self.clock.current += timedelta(hours=6)
        for approval in self.portal.guarantors.approvals_for_loan(loan.loan_id):
            self.portal.lifecycle.record_guarantor_response(
                approval.approval_token, ApprovalStatus.APPROVED
            )

        self.clock.current += timedelta(days=1)
        self.portal.lifecycle.approve(self.admin, loan.loan_id, note="Savings and guarantors verified")
        loan = self.portal.lifecycle.activate(self.admin, loan.loan_id, note="Disbursed")

        for _ in range(self.months_to_run):
            due = self.portal.lifecycle.next_due_date(loan.loan_id)
            if due is None:
                break
            self.clock.current = datetime.combine(due, datetime.min.time()) + timedelta(hours=2)
            self.deduction_runs.append(self.portal.deductions.run(self.admin))

        self.loan = self.portal.lifecycle.get_loan(loan.loan_id)
        logger.info(
            "Walkthrough complete: loan %s %s, repaid %s",
            self.loan.loan_id,
            self.loan.status.value,
            self.loan.total_repaid,
        )
        return self.loan

    def export(self, sinks: list[Any], output_dir: str | Path | None = None) -> None:
        """Export generated data to sinks, and the schedule as CSV.

        Parameters
        ----------
        sinks : list[Any]
            Sink instances (ConsoleSink, JsonFileSink, KafkaSink).
        output_dir : str | Path | None
            Where to write the installment schedule CSV, if given.
        """
        if self.loan is None:
            raise RuntimeError("Call generate() before export()")

        schedule = self.portal.lifecycle.schedule_for(self.loan.loan_id)
        for sink in sinks:
            sink.write_batch("members", self.members)
            sink.write_batch("loans", [self.loan])
            sink.write_batch("installments", schedule)
            sink.write_batch("audit_events", self.portal.audit.events)

        if output_dir is not None:
            export_csv(schedule, f"loan_{self.loan.loan_id[:8]}", output_dir)

        logger.info("Exported walkthrough to %d sinks", len(sinks))

    def get_summary(self) -> dict[str, Any]:
        """Summary of the walkthrough outcome."""
        if self.loan is None:
            return {}

        schedule = self.portal.lifecycle.schedule_for(self.loan.loan_id)
        stats = engine.statistics(schedule)
        summary = {
            "loan_id": self.loan.loan_id,
            "status": self.loan.status.value,
            "principal": str(self.loan.principal),
            "total_amount": str(stats.total_amount),
            "paid_amount": str(stats.paid_amount),
            "remaining_amount": str(stats.remaining_amount),
            "progress_percentage": stats.progress_percentage,
            "installments_paid": stats.paid_installments,
            "deductions_failed": sum(run.loans_failed for run in self.deduction_runs),
            "emails_sent": len(self.email_sender.outbox),
            "audit_events": len(self.portal.audit.events),
        }
        if isinstance(self.portal.store, InMemoryDocumentStore):
            summary["documents"] = self.portal.store.summary()
        return summary
