"""Guarantor approval workflow.

Each nominated guarantor gets an approval record carrying an unguessable
token. Possession of the token is the guarantor's only credential: the link
emailed to them embeds it, and responses are looked up by it.
"""

import logging
import secrets
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable

from coop_loans.config import EmailConfig, WorkflowConfig
from coop_loans.exceptions import (
    AlreadyRespondedError,
    ApprovalExpiredError,
    AuthorizationError,
    CoopLoansError,
    DeliveryError,
    EntityNotFoundError,
    InvalidApprovalLinkError,
    LoanValidationError,
    StoreError,
)
from coop_loans.formatters import format_currency
from coop_loans.models.approval import (
    ApplicantSnapshot,
    ApprovalRequestResult,
    GuarantorApproval,
)
from coop_loans.models.enums import ApprovalStatus, NotificationType
from coop_loans.models.loan import Guarantor
from coop_loans.notify import email as templates
from coop_loans.notify.email import EmailSender
from coop_loans.notify.notifier import Notifier
from coop_loans.services.audit import AuditAction, AuditTrail
from coop_loans.store.base import GUARANTOR_APPROVALS, LOANS, DocumentStore
from coop_loans.store.codec import from_document, to_document

logger = logging.getLogger(__name__)


def generate_approval_token() -> str:
    """256 random bits, URL-safe."""
    return secrets.token_urlsafe(32)


class GuarantorWorkflow:
    """Create, resolve and answer guarantor approval requests."""

    def __init__(
        self,
        store: DocumentStore,
        email_sender: EmailSender,
        notifier: Notifier,
        workflow_config: WorkflowConfig | None = None,
        email_config: EmailConfig | None = None,
        audit: AuditTrail | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the workflow.

        Parameters
        ----------
        store : DocumentStore
            Holds loans and guarantor approvals.
        email_sender : EmailSender
            Sends invitation and applicant-update emails.
        notifier : Notifier
            Writes in-app notifications.
        workflow_config : WorkflowConfig | None
            Approval expiry and other policy knobs.
        email_config : EmailConfig | None
            Used for the public app URL in approval links.
        audit : AuditTrail | None
            Receives one event per guarantor response.
        clock : Callable[[], datetime]
            Source of "now".
        """
        self.store = store
        self.email_sender = email_sender
        self.notifier = notifier
        self.workflow_config = workflow_config or WorkflowConfig()
        self.email_config = email_config or EmailConfig()
        self.audit = audit or AuditTrail(clock=clock)
        self.clock = clock
        self._quorum_listener: Callable[[str], Any] | None = None
        self._respond_lock = threading.Lock()

    def set_quorum_listener(self, listener: Callable[[str], Any]) -> None:
        """Register the callback run with the loan id after each approval."""
        self._quorum_listener = listener

    def approval_link(self, token: str) -> str:
        return f"{self.email_config.app_url.rstrip('/')}/guarantor-approval/{token}"

    def request_approvals(
        self,
        loan_id: str,
        applicant: ApplicantSnapshot,
        guarantors: list[Guarantor],
    ) -> list[ApprovalRequestResult]:
        """Create one approval per guarantor and email each an approval link.

        Every guarantor is handled independently. A failed write is reported
        for that guarantor and the rest still proceed; a failed email leaves
        the approval record in place.
        """
        ttl = timedelta(hours=self.workflow_config.approval_ttl_hours)
        results = []

        for guarantor in guarantors:
            now = self.clock()
            approval = GuarantorApproval(
                approval_id=uuid.uuid4().hex,
                loan_id=loan_id,
                guarantor_member_id=guarantor.member_id,
                guarantor_name=guarantor.name,
                guarantor_file_number=guarantor.file_number,
                guarantor_email=guarantor.email,
                guarantor_user_id=guarantor.user_id,
                applicant_user_id=applicant.user_id,
                applicant_name=applicant.name,
                applicant_email=applicant.email,
                loan_amount=applicant.loan_amount,
                loan_purpose=applicant.loan_purpose,
                status=ApprovalStatus.PENDING,
                approval_token=generate_approval_token(),
                created_at=now,
                expires_at=now + ttl,
            )

            try:
                self.store.set(GUARANTOR_APPROVALS, approval.approval_id, to_document(approval))
            except CoopLoansError as e:
                logger.warning(
                    "Approval record for guarantor %s on loan %s not created: %s",
                    guarantor.member_id,
                    loan_id,
                    e,
                )
                results.append(
                    ApprovalRequestResult(
                        guarantor_member_id=guarantor.member_id, created=False, error=str(e)
                    )
                )
                continue

            emailed = self._send_invitation(approval)
            if guarantor.user_id:
                self._notify(
                    [guarantor.user_id],
                    NotificationType.GUARANTOR_REQUEST,
                    "Guarantor Request",
                    f"{applicant.name} has asked you to guarantee a loan of "
                    f"{format_currency(applicant.loan_amount)}",
                    {"loan_id": loan_id, "approval_id": approval.approval_id},
                )
            results.append(
                ApprovalRequestResult(
                    guarantor_member_id=guarantor.member_id,
                    created=True,
                    emailed=emailed,
                    approval_id=approval.approval_id,
                )
            )

        logger.info(
            "Requested %d guarantor approvals for loan %s (%d created, %d emailed)",
            len(guarantors),
            loan_id,
            sum(1 for r in results if r.created),
            sum(1 for r in results if r.emailed),
        )
        return results

    def _send_invitation(self, approval: GuarantorApproval, reminder: bool = False) -> bool:
        message = templates.guarantor_invitation(
            to=approval.guarantor_email,
            applicant_name=approval.applicant_name,
            loan_amount=approval.loan_amount,
            loan_purpose=approval.loan_purpose,
            approval_link=self.approval_link(approval.approval_token),
            expires_at=approval.expires_at,
            reminder=reminder,
        )
        try:
            self.email_sender.send(message)
        except DeliveryError as e:
            logger.warning(
                "Guarantor email to %s for loan %s failed: %s",
                approval.guarantor_email,
                approval.loan_id,
                e,
            )
            return False
        return True

    def _notify(self, user_ids, kind, title, message, metadata) -> None:
        try:
            self.notifier.notify(user_ids, kind, title, message, metadata)
        except DeliveryError as e:
            logger.warning("Notification '%s' failed: %s", title, e)

    def resolve_by_token(self, token: str) -> GuarantorApproval:
        """Find the pending, unexpired approval a link points at.

        Raises
        ------
        InvalidApprovalLinkError
            No approval has this token, or its loan no longer exists.
        AlreadyRespondedError
            The approval is no longer pending.
        ApprovalExpiredError
            The approval is still pending but past its expiry.
        """
        if not token:
            raise InvalidApprovalLinkError()
        docs = self.store.query(GUARANTOR_APPROVALS, [("approval_token", "==", token)])
        if not docs:
            raise InvalidApprovalLinkError()

        approval = from_document(GuarantorApproval, docs[0])
        if self.store.get(LOANS, approval.loan_id) is None:
            raise InvalidApprovalLinkError()

        if approval.status == ApprovalStatus.APPROVED:
            raise AlreadyRespondedError("You have already approved this request")
        if approval.status == ApprovalStatus.REJECTED:
            raise AlreadyRespondedError("This request has already been declined")
        if approval.is_expired(self.clock()):
            raise ApprovalExpiredError()
        return approval

    def record_response(
        self,
        token: str,
        decision: ApprovalStatus | str,
        reason: str | None = None,
    ) -> GuarantorApproval:
        """Record a guarantor's approval or rejection.

        The terminal status is written once; a second response on the same
        token fails with ``AlreadyRespondedError``. Applicant notification is
        best-effort. An approval then triggers the quorum listener.
        """
        try:
            decision = ApprovalStatus(decision)
        except ValueError:
            decision = ApprovalStatus.PENDING
        if decision == ApprovalStatus.PENDING:
            raise LoanValidationError({"decision": "Decision must be approved or rejected"})
        reason = (reason or "").strip()

        with self._respond_lock:
            approval = self.resolve_by_token(token)
            if decision == ApprovalStatus.REJECTED and not reason:
                raise LoanValidationError({"reason": "Please provide a reason for declining"})

            now = self.clock()
            if decision == ApprovalStatus.APPROVED:
                approval = replace(approval, status=decision, approved_at=now)
                changes = {"status": decision.value, "approved_at": now.isoformat()}
            else:
                approval = replace(
                    approval, status=decision, rejected_at=now, rejection_reason=reason
                )
                changes = {
                    "status": decision.value,
                    "rejected_at": now.isoformat(),
                    "rejection_reason": reason,
                }
            self.store.update(GUARANTOR_APPROVALS, approval.approval_id, changes)

        approved = decision == ApprovalStatus.APPROVED
        logger.info(
            "Guarantor %s %s loan %s",
            approval.guarantor_member_id,
            decision.value,
            approval.loan_id,
        )
        self.audit.record(
            AuditAction.GUARANTOR_APPROVED if approved else AuditAction.GUARANTOR_REJECTED,
            approval.loan_id,
            actor=approval.guarantor_member_id,
            data={"approval_id": approval.approval_id, "reason": reason or None},
        )

        if approved:
            title = "Guarantor Approved"
            message = (
                f"{approval.guarantor_name} has approved your loan application for "
                f"{format_currency(approval.loan_amount)}"
            )
        else:
            title = "Guarantor Declined"
            message = f"{approval.guarantor_name} has declined your loan application. Reason: {reason}"
        self._notify(
            [approval.applicant_user_id],
            NotificationType.LOAN_UPDATE,
            title,
            message,
            {"loan_id": approval.loan_id, "status": f"guarantor_{decision.value}"},
        )
        try:
            self.email_sender.send(
                templates.applicant_update(
                    to=approval.applicant_email,
                    applicant_name=approval.applicant_name,
                    guarantor_name=approval.guarantor_name,
                    approved=approved,
                    reason=reason or None,
                )
            )
        except DeliveryError as e:
            logger.warning("Applicant update email for loan %s failed: %s", approval.loan_id, e)

        if approved and self._quorum_listener is not None:
            try:
                self._quorum_listener(approval.loan_id)
            except StoreError as e:
                # The next approval or an explicit recheck recounts from scratch
                logger.error("Quorum recheck for loan %s failed: %s", approval.loan_id, e)

        return approval

    def quorum_satisfied(self, loan_id: str) -> bool:
        """Whether approved responses reach the loan's required guarantor count."""
        loan_doc = self.store.get(LOANS, loan_id)
        if loan_doc is None:
            raise EntityNotFoundError(f"Loan {loan_id} not found")
        approved = sum(
            1 for a in self.approvals_for_loan(loan_id) if a.status == ApprovalStatus.APPROVED
        )
        return approved >= int(loan_doc["guarantors_required"])

    def approvals_for_loan(self, loan_id: str) -> list[GuarantorApproval]:
        """All approvals of one loan, oldest first."""
        docs = self.store.query(GUARANTOR_APPROVALS, [("loan_id", "==", loan_id)])
        approvals = [from_document(GuarantorApproval, d) for d in docs]
        return sorted(approvals, key=lambda a: a.created_at)

    def approvals_for_guarantor(self, member_id: str) -> list[GuarantorApproval]:
        """Requests addressed to one member, newest first."""
        docs = self.store.query(
            GUARANTOR_APPROVALS, [("guarantor_member_id", "==", member_id)]
        )
        approvals = [from_document(GuarantorApproval, d) for d in docs]
        return sorted(approvals, key=lambda a: a.created_at, reverse=True)

    def resend_invitation(self, approval_id: str, requested_by: str) -> GuarantorApproval:
        """Issue a fresh token and expiry for a pending request and email it again.

        Only the applicant may resend. Unlike the first invitation, a failed
        email here is raised to the caller.
        """
        doc = self.store.get(GUARANTOR_APPROVALS, approval_id)
        if doc is None:
            raise EntityNotFoundError(f"Guarantor approval {approval_id} not found")
        approval = from_document(GuarantorApproval, doc)

        if approval.applicant_user_id != requested_by:
            raise AuthorizationError("You do not own this loan application")
        if approval.status == ApprovalStatus.APPROVED:
            raise AlreadyRespondedError("Guarantor has already approved")
        if approval.status == ApprovalStatus.REJECTED:
            raise AlreadyRespondedError("Guarantor has already declined")

        now = self.clock()
        approval = replace(
            approval,
            approval_token=generate_approval_token(),
            expires_at=now + timedelta(hours=self.workflow_config.approval_ttl_hours),
        )
        self.store.update(
            GUARANTOR_APPROVALS,
            approval_id,
            {
                "approval_token": approval.approval_token,
                "expires_at": approval.expires_at.isoformat(),
            },
        )

        self.email_sender.send(
            templates.guarantor_invitation(
                to=approval.guarantor_email,
                applicant_name=approval.applicant_name,
                loan_amount=approval.loan_amount,
                loan_purpose=approval.loan_purpose,
                approval_link=self.approval_link(approval.approval_token),
                expires_at=approval.expires_at,
                reminder=True,
            )
        )
        self.audit.record(
            AuditAction.INVITATION_RESENT,
            approval.loan_id,
            actor=requested_by,
            data={"approval_id": approval_id},
        )
        logger.info("Guarantor invitation %s resent for loan %s", approval_id, approval.loan_id)
        return approval
