"""Pytest configuration and fixtures."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

import pytest
from dateutil.relativedelta import relativedelta

from coop_loans.exceptions import DeliveryError
from coop_loans.generators.member import as_guarantor
from coop_loans.models.base import Session
from coop_loans.models.enums import InterestBasis, LoanProduct, LoanStatus, Role
from coop_loans.models.loan import Loan, LoanApplication
from coop_loans.models.member import MemberProfile
from coop_loans.notify.email import EmailMessage, OutboxEmailSender
from coop_loans.portal import Portal, build_portal
from coop_loans.scenarios.loan_walkthrough import SimulatedClock
from coop_loans.store.base import LOANS
from coop_loans.store.codec import to_document
from coop_loans.store.memory import InMemoryDocumentStore


class FailingEmailSender:
    """Email sender whose every send fails."""

    def __init__(self) -> None:
        self.attempts: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        self.attempts.append(message)
        raise DeliveryError("SMTP relay unavailable")


class FailingNotifier:
    """Notifier whose every delivery fails."""

    def __init__(self) -> None:
        self.attempts = 0

    def notify(self, user_ids, kind, title, message, metadata=None) -> None:
        self.attempts += 1
        raise DeliveryError("notifications collection unavailable")


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def clock() -> SimulatedClock:
    """Clock fixed at 15 March 2024, 10:00; tests move it by hand."""
    return SimulatedClock(datetime(2024, 3, 15, 10, 0))


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def outbox() -> OutboxEmailSender:
    return OutboxEmailSender()


@pytest.fixture
def portal(store: InMemoryDocumentStore, outbox: OutboxEmailSender, clock: SimulatedClock) -> Portal:
    """Portal over an in-memory store with emails captured in ``outbox``."""
    return build_portal(store=store, email_sender=outbox, clock=clock)


@pytest.fixture
def register_member(portal: Portal, clock: SimulatedClock) -> Callable[..., MemberProfile]:
    """Factory registering a member with the given savings and tenure."""
    counter = {"n": 0}

    def _register(
        name: str = "Member",
        savings: str = "100000",
        tenure_months: int = 12,
        fee_paid: bool = True,
    ) -> MemberProfile:
        counter["n"] += 1
        n = counter["n"]
        member = MemberProfile(
            user_id=f"user-{n:03d}",
            member_id=f"AWS{100000 + n}",
            file_number=f"FN/2023/{n:04d}",
            name=f"{name} {n}",
            email=f"member{n}@example.org",
            savings_balance=Decimal(savings),
            joined_at=clock() - relativedelta(months=tenure_months),
            registration_fee_paid=fee_paid,
        )
        portal.members.register(member)
        return member

    return _register


@pytest.fixture
def borrower(register_member) -> MemberProfile:
    return register_member("Adaeze Okafor", savings="100000", tenure_months=12)


@pytest.fixture
def guarantor_a(register_member) -> MemberProfile:
    return register_member("Bola Adeyemi")


@pytest.fixture
def guarantor_b(register_member) -> MemberProfile:
    return register_member("Chidi Nwosu")


def member_session(member: MemberProfile) -> Session:
    return Session(
        user_id=member.user_id,
        email=member.email,
        member_id=member.member_id,
        display_name=member.name,
        email_verified=True,
        registration_fee_paid=member.registration_fee_paid,
    )


@pytest.fixture
def session_for() -> Callable[[MemberProfile], Session]:
    return member_session


@pytest.fixture
def borrower_session(borrower: MemberProfile) -> Session:
    return member_session(borrower)


@pytest.fixture
def admin_session() -> Session:
    return Session(
        user_id="admin-001",
        email="admin@awslmcsl.org",
        role=Role.ADMIN,
        display_name="Loan Officer",
        email_verified=True,
        registration_fee_paid=True,
    )


@pytest.fixture
def fixed_relief_application() -> Callable[..., LoanApplication]:
    """Factory for a valid Swift Relief application naming ``guarantors``."""

    def _application(*guarantors: MemberProfile, **overrides: Any) -> LoanApplication:
        fields: dict[str, Any] = {
            "product": LoanProduct.FIXED_RELIEF,
            "amount": "30000",
            "duration_months": 3,
            "purpose": "School fees",
            "monthly_salary": "120000",
            "guarantors": [as_guarantor(g) for g in guarantors],
            "supporting_documents": ["payslip.pdf", "id-card.pdf"],
            "agreed_to_terms": True,
        }
        fields.update(overrides)
        return LoanApplication(**fields)

    return _application


@pytest.fixture
def seed_loan(store: InMemoryDocumentStore, clock: SimulatedClock, borrower: MemberProfile):
    """Factory writing a loan document straight into the store."""

    def _seed(status: LoanStatus = LoanStatus.APPROVED, **overrides: Any) -> Loan:
        fields: dict[str, Any] = {
            "loan_id": uuid.uuid4().hex,
            "borrower_user_id": borrower.user_id,
            "borrower_member_id": borrower.member_id,
            "borrower_name": borrower.name,
            "borrower_email": borrower.email,
            "product": LoanProduct.SAVINGS_MULTIPLE_SHORT,
            "principal": Decimal("100000"),
            "duration_months": 6,
            "interest_rate": Decimal("10"),
            "interest_basis": InterestBasis.FLAT,
            "purpose": "Shop stock",
            "monthly_salary": Decimal("150000"),
            "guarantors_required": 1,
            "status": status,
            "created_at": clock(),
        }
        fields.update(overrides)
        loan = Loan(**fields)
        store.set(LOANS, loan.loan_id, to_document(loan))
        return loan

    return _seed


@pytest.fixture
def active_loan(portal: Portal, seed_loan, admin_session: Session) -> Loan:
    """₦100,000 over 6 months at 10% flat, activated; first due 30 April 2024."""
    loan = seed_loan()
    return portal.lifecycle.activate(admin_session, loan.loan_id, note="Disbursed")


@pytest.fixture
def failing_email() -> FailingEmailSender:
    return FailingEmailSender()


@pytest.fixture
def failing_notifier() -> FailingNotifier:
    return FailingNotifier()
