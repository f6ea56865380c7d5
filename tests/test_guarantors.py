"""Tests for the guarantor approval workflow."""

from datetime import timedelta
from decimal import Decimal

import pytest

from coop_loans.exceptions import (
    AlreadyRespondedError,
    ApprovalExpiredError,
    AuthorizationError,
    DeliveryError,
    EntityNotFoundError,
    InvalidApprovalLinkError,
    LoanValidationError,
    StoreError,
)
from coop_loans.generators.member import as_guarantor
from coop_loans.models.approval import ApplicantSnapshot
from coop_loans.models.enums import ApprovalStatus, LoanStatus, NotificationType
from coop_loans.portal import build_portal
from coop_loans.services.guarantors import GuarantorWorkflow, generate_approval_token
from coop_loans.store.base import GUARANTOR_APPROVALS, LOANS, NOTIFICATIONS
from coop_loans.store.memory import InMemoryDocumentStore


@pytest.fixture
def two_guarantor_loan(portal, borrower_session, guarantor_a, guarantor_b, fixed_relief_application):
    """A Swift Relief loan needing two guarantors."""
    return portal.lifecycle.submit_application(
        borrower_session, fixed_relief_application(guarantor_a, guarantor_b)
    )


def tokens(portal, loan_id):
    return [a.approval_token for a in portal.guarantors.approvals_for_loan(loan_id)]


class TestTokens:
    """Tests for approval tokens."""

    def test_tokens_are_long_and_distinct(self) -> None:
        generated = {generate_approval_token() for _ in range(50)}

        assert len(generated) == 50
        # 32 random bytes in URL-safe base64
        assert all(len(t) >= 43 for t in generated)

    def test_approval_link_embeds_token(self, portal) -> None:
        assert portal.guarantors.approval_link("abc") == (
            "http://localhost:3000/guarantor-approval/abc"
        )


class TestRequestApprovals:
    """Tests for creating approval requests."""

    def test_one_request_per_guarantor_with_72_hour_expiry(
        self, portal, outbox, two_guarantor_loan, guarantor_a, guarantor_b
    ) -> None:
        approvals = portal.guarantors.approvals_for_loan(two_guarantor_loan.loan_id)

        assert {a.guarantor_member_id for a in approvals} == {
            guarantor_a.member_id,
            guarantor_b.member_id,
        }
        for approval in approvals:
            assert approval.status == ApprovalStatus.PENDING
            assert approval.expires_at - approval.created_at == timedelta(hours=72)
            assert approval.loan_amount == Decimal("30000")

        assert [m.to for m in outbox.outbox] == [guarantor_a.email, guarantor_b.email]
        assert outbox.outbox[0].subject == "Guarantor Request for Loan Application"
        assert approvals[0].approval_token in outbox.outbox[0].html

    def test_in_app_request_for_guarantors_with_accounts(
        self, store, two_guarantor_loan, guarantor_a
    ) -> None:
        notes = store.query(
            NOTIFICATIONS,
            [("user_id", "==", guarantor_a.user_id), ("kind", "==", NotificationType.GUARANTOR_REQUEST)],
        )

        assert len(notes) == 1
        assert notes[0]["metadata"]["loan_id"] == two_guarantor_loan.loan_id

    def test_failed_write_reported_per_guarantor(
        self, clock, outbox, guarantor_a, guarantor_b
    ) -> None:
        """One failed approval write does not stop the others."""

        class FlakyStore(InMemoryDocumentStore):
            def set(self, collection, doc_id, data):
                if collection == GUARANTOR_APPROVALS and data["guarantor_member_id"] == guarantor_a.member_id:
                    raise StoreError("permission denied")
                super().set(collection, doc_id, data)

        store = FlakyStore()
        workflow = build_portal(store=store, email_sender=outbox, clock=clock).guarantors
        applicant = ApplicantSnapshot("user-x", "Applicant", "a@example.org", Decimal("30000"), "Rent")

        results = workflow.request_approvals(
            "loan-1", applicant, [as_guarantor(guarantor_a), as_guarantor(guarantor_b)]
        )

        assert results[0].created is False
        assert results[0].error == "permission denied"
        assert results[1].created is True
        assert results[1].emailed is True
        assert len(store.query(GUARANTOR_APPROVALS)) == 1

    def test_email_failure_keeps_approval(self, store, clock, failing_email, guarantor_a) -> None:
        workflow = build_portal(store=store, email_sender=failing_email, clock=clock).guarantors
        applicant = ApplicantSnapshot("user-x", "Applicant", "a@example.org", Decimal("30000"), "Rent")

        results = workflow.request_approvals("loan-1", applicant, [as_guarantor(guarantor_a)])

        assert results[0].created is True
        assert results[0].emailed is False
        assert len(store.query(GUARANTOR_APPROVALS)) == 1


class TestResolveByToken:
    """Tests for token resolution."""

    def test_valid_token(self, portal, two_guarantor_loan) -> None:
        token = tokens(portal, two_guarantor_loan.loan_id)[0]

        approval = portal.guarantors.resolve_by_token(token)

        assert approval.loan_id == two_guarantor_loan.loan_id

    @pytest.mark.parametrize("token", ["", "not-a-real-token"])
    def test_invalid_token(self, portal, two_guarantor_loan, token: str) -> None:
        with pytest.raises(InvalidApprovalLinkError) as exc:
            portal.guarantors.resolve_by_token(token)

        assert str(exc.value) == "Invalid or expired approval link"

    def test_loan_deleted(self, portal, store, two_guarantor_loan) -> None:
        token = tokens(portal, two_guarantor_loan.loan_id)[0]
        store._collections[LOANS].clear()

        with pytest.raises(InvalidApprovalLinkError):
            portal.guarantors.resolve_by_token(token)

    def test_expired_although_stored_status_pending(self, portal, clock, two_guarantor_loan) -> None:
        """Expiry is derived when the link is used; the record is not rewritten."""
        token = tokens(portal, two_guarantor_loan.loan_id)[0]
        clock.current += timedelta(hours=72, seconds=1)

        with pytest.raises(ApprovalExpiredError):
            portal.guarantors.resolve_by_token(token)

        stored = portal.guarantors.approvals_for_loan(two_guarantor_loan.loan_id)[0]
        assert stored.status == ApprovalStatus.PENDING

    def test_exactly_at_expiry_still_valid(self, portal, clock, two_guarantor_loan) -> None:
        token = tokens(portal, two_guarantor_loan.loan_id)[0]
        clock.current += timedelta(hours=72)

        assert portal.guarantors.resolve_by_token(token).status == ApprovalStatus.PENDING

    def test_already_responded(self, portal, two_guarantor_loan) -> None:
        token = tokens(portal, two_guarantor_loan.loan_id)[0]
        portal.guarantors.record_response(token, ApprovalStatus.APPROVED)

        with pytest.raises(AlreadyRespondedError) as exc:
            portal.guarantors.resolve_by_token(token)

        assert str(exc.value) == "You have already approved this request"

    def test_already_declined(self, portal, two_guarantor_loan) -> None:
        token = tokens(portal, two_guarantor_loan.loan_id)[0]
        portal.guarantors.record_response(token, ApprovalStatus.REJECTED, "Travelling")

        with pytest.raises(AlreadyRespondedError) as exc:
            portal.guarantors.record_response(token, ApprovalStatus.APPROVED)

        assert str(exc.value) == "This request has already been declined"


class TestRecordResponse:
    """Tests for guarantor responses and quorum."""

    def test_quorum_needs_every_required_approval(self, portal, two_guarantor_loan) -> None:
        loan_id = two_guarantor_loan.loan_id
        first, second = tokens(portal, loan_id)

        portal.guarantors.record_response(first, "approved")
        assert portal.guarantors.quorum_satisfied(loan_id) is False
        assert portal.lifecycle.get_loan(loan_id).status == LoanStatus.AWAITING_GUARANTORS
        assert portal.lifecycle.get_loan(loan_id).guarantors_approved == 1

        portal.guarantors.record_response(second, ApprovalStatus.APPROVED)
        assert portal.guarantors.quorum_satisfied(loan_id) is True
        loan = portal.lifecycle.get_loan(loan_id)
        assert loan.status == LoanStatus.PENDING_ADMIN_REVIEW
        assert loan.guarantors_approved == 2

    def test_one_rejection_blocks_quorum(self, portal, two_guarantor_loan) -> None:
        loan_id = two_guarantor_loan.loan_id
        first, second = tokens(portal, loan_id)

        portal.guarantors.record_response(first, ApprovalStatus.REJECTED, "Cannot commit")
        portal.guarantors.record_response(second, ApprovalStatus.APPROVED)

        assert portal.guarantors.quorum_satisfied(loan_id) is False
        assert portal.lifecycle.get_loan(loan_id).status == LoanStatus.AWAITING_GUARANTORS

    def test_rejection_needs_reason(self, portal, two_guarantor_loan) -> None:
        token = tokens(portal, two_guarantor_loan.loan_id)[0]

        with pytest.raises(LoanValidationError) as exc:
            portal.guarantors.record_response(token, ApprovalStatus.REJECTED, "  ")

        assert "reason" in exc.value.errors
        assert portal.guarantors.resolve_by_token(token).status == ApprovalStatus.PENDING

    def test_pending_is_not_a_decision(self, portal, two_guarantor_loan) -> None:
        token = tokens(portal, two_guarantor_loan.loan_id)[0]

        with pytest.raises(LoanValidationError):
            portal.guarantors.record_response(token, ApprovalStatus.PENDING)

    def test_unknown_decision(self, portal, two_guarantor_loan) -> None:
        token = tokens(portal, two_guarantor_loan.loan_id)[0]

        with pytest.raises(LoanValidationError) as exc:
            portal.guarantors.record_response(token, "maybe")

        assert "decision" in exc.value.errors
        assert portal.guarantors.resolve_by_token(token).status == ApprovalStatus.PENDING

    def test_rejection_recorded_and_applicant_told(
        self, portal, store, outbox, borrower, two_guarantor_loan
    ) -> None:
        token = tokens(portal, two_guarantor_loan.loan_id)[0]

        approval = portal.guarantors.record_response(token, "rejected", "Too much exposure")

        assert approval.status == ApprovalStatus.REJECTED
        assert approval.rejection_reason == "Too much exposure"
        assert approval.rejected_at is not None
        assert outbox.outbox[-1].to == borrower.email
        assert outbox.outbox[-1].subject == "Guarantor Declined Your Loan Request"
        assert "Too much exposure" in outbox.outbox[-1].html
        notes = store.query(NOTIFICATIONS, [("user_id", "==", borrower.user_id)])
        assert any(n["title"] == "Guarantor Declined" for n in notes)

    def test_audited(self, portal, two_guarantor_loan) -> None:
        token = tokens(portal, two_guarantor_loan.loan_id)[0]
        portal.guarantors.record_response(token, ApprovalStatus.APPROVED)

        types = [e.event_type for e in portal.audit.events_for(two_guarantor_loan.loan_id)]
        assert types == ["loan.submitted", "loan.guarantor_approved"]

    def test_listener_store_failure_not_raised(self, portal, two_guarantor_loan) -> None:
        def failing_listener(loan_id: str) -> None:
            raise StoreError("write timed out")

        portal.guarantors.set_quorum_listener(failing_listener)
        token = tokens(portal, two_guarantor_loan.loan_id)[0]

        approval = portal.guarantors.record_response(token, ApprovalStatus.APPROVED)

        assert approval.status == ApprovalStatus.APPROVED

    def test_email_failure_not_raised(
        self, store, clock, failing_email, register_member, fixed_relief_application, session_for
    ) -> None:
        portal = build_portal(store=store, email_sender=failing_email, clock=clock)
        borrower, guarantor = register_member("Borrower"), register_member("Guarantor")
        loan = portal.lifecycle.submit_application(
            session_for(borrower), fixed_relief_application(guarantor)
        )
        token = tokens(portal, loan.loan_id)[0]

        portal.guarantors.record_response(token, ApprovalStatus.APPROVED)

        assert portal.lifecycle.get_loan(loan.loan_id).status == LoanStatus.PENDING_ADMIN_REVIEW

    def test_quorum_for_unknown_loan(self, portal) -> None:
        with pytest.raises(EntityNotFoundError):
            portal.guarantors.quorum_satisfied("missing")


class TestGuarantorInbox:
    """Tests for listing a guarantor's requests."""

    def test_newest_first(self, portal, clock, borrower_session, guarantor_a, fixed_relief_application) -> None:
        first = portal.lifecycle.submit_application(
            borrower_session, fixed_relief_application(guarantor_a)
        )
        clock.current += timedelta(days=1)
        second = portal.lifecycle.submit_application(
            borrower_session, fixed_relief_application(guarantor_a)
        )

        inbox = portal.guarantors.approvals_for_guarantor(guarantor_a.member_id)

        assert [a.loan_id for a in inbox] == [second.loan_id, first.loan_id]


class TestResendInvitation:
    """Tests for resending an invitation."""

    def test_new_token_and_expiry(self, portal, clock, outbox, borrower, two_guarantor_loan) -> None:
        original = portal.guarantors.approvals_for_loan(two_guarantor_loan.loan_id)[0]
        clock.current += timedelta(hours=80)

        resent = portal.guarantors.resend_invitation(original.approval_id, borrower.user_id)

        assert resent.approval_token != original.approval_token
        assert resent.expires_at == clock() + timedelta(hours=72)
        assert outbox.outbox[-1].subject == "Reminder: Guarantor Request for Loan Application"
        assert resent.approval_token in outbox.outbox[-1].html
        with pytest.raises(InvalidApprovalLinkError):
            portal.guarantors.resolve_by_token(original.approval_token)
        assert portal.guarantors.resolve_by_token(resent.approval_token).approval_id == (
            original.approval_id
        )

    def test_only_applicant_may_resend(self, portal, guarantor_a, two_guarantor_loan) -> None:
        approval = portal.guarantors.approvals_for_loan(two_guarantor_loan.loan_id)[0]

        with pytest.raises(AuthorizationError):
            portal.guarantors.resend_invitation(approval.approval_id, guarantor_a.user_id)

    def test_not_after_response(self, portal, borrower, two_guarantor_loan) -> None:
        approval = portal.guarantors.approvals_for_loan(two_guarantor_loan.loan_id)[0]
        portal.guarantors.record_response(approval.approval_token, ApprovalStatus.APPROVED)

        with pytest.raises(AlreadyRespondedError):
            portal.guarantors.resend_invitation(approval.approval_id, borrower.user_id)

    def test_unknown_approval(self, portal, borrower) -> None:
        with pytest.raises(EntityNotFoundError):
            portal.guarantors.resend_invitation("missing", borrower.user_id)

    def test_email_failure_raised(
        self, store, clock, failing_email, register_member, fixed_relief_application, session_for
    ) -> None:
        portal = build_portal(store=store, email_sender=failing_email, clock=clock)
        borrower, guarantor = register_member("Borrower"), register_member("Guarantor")
        loan = portal.lifecycle.submit_application(
            session_for(borrower), fixed_relief_application(guarantor)
        )
        approval = portal.guarantors.approvals_for_loan(loan.loan_id)[0]

        with pytest.raises(DeliveryError):
            portal.guarantors.resend_invitation(approval.approval_id, borrower.user_id)


def test_workflow_defaults_without_audit(store, outbox) -> None:
    """A workflow built on its own keeps its own audit trail."""
    workflow = GuarantorWorkflow(store, outbox, notifier=None)

    assert workflow.audit.events == []
    assert workflow.workflow_config.approval_ttl_hours == 72
