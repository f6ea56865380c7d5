"""Outbound email: the sender interface, the Resend adapter and message templates."""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from html import escape
from typing import Protocol

import requests

from coop_loans.config import EmailConfig
from coop_loans.exceptions import DeliveryError
from coop_loans.formatters import format_currency, format_long_date

logger = logging.getLogger(__name__)

SOCIETY_NAME = "AWSLMCSL Cooperative Society"


@dataclass
class EmailMessage:
    """A rendered email ready to send."""

    to: str
    subject: str
    html: str


class EmailSender(Protocol):
    """Sends one email or raises ``DeliveryError``."""

    def send(self, message: EmailMessage) -> None: ...


class ResendEmailSender:
    """Send email through the Resend HTTP API."""

    def __init__(self, config: EmailConfig, session: requests.Session | None = None) -> None:
        """Initialize the sender.

        Parameters
        ----------
        config : EmailConfig
            API key, endpoint, sender address and timeout.
        session : requests.Session | None
            HTTP session to reuse (a new one is created if omitted).
        """
        self.config = config
        self.session = session or requests.Session()

    def send(self, message: EmailMessage) -> None:
        """Post the message; any failure is raised as ``DeliveryError``."""
        if not self.config.configured:
            logger.warning("Email API key not configured. Email to %s not sent.", message.to)
            raise DeliveryError("Email service not configured")

        payload = {
            "from": self.config.sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = self.session.post(
                self.config.api_url,
                json=payload,
                headers=headers,
                timeout=self.config.timeout_seconds,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise DeliveryError(f"Email to {message.to} failed: {e}") from e

        logger.info("Email sent to %s: %s", message.to, message.subject)


class OutboxEmailSender:
    """Keep messages in memory instead of sending them.

    Used by the walkthrough and in development when no API key is set.
    """

    def __init__(self) -> None:
        self.outbox: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        self.outbox.append(message)
        logger.debug("Queued email to %s: %s", message.to, message.subject)


def _layout(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><body style=\"font-family: Arial, sans-serif; color: #333;\">"
        f"<div style=\"max-width: 600px; margin: 0 auto; padding: 20px;\"><h1>{escape(title)}</h1>"
        f"<p>{SOCIETY_NAME}</p>{body}"
        f"<p style=\"color: #6b7280; font-size: 14px;\">{SOCIETY_NAME}<br>"
        "This is an automated message, please do not reply.</p></div></body></html>"
    )


def guarantor_invitation(
    to: str,
    applicant_name: str,
    loan_amount: Decimal,
    loan_purpose: str,
    approval_link: str,
    expires_at: datetime,
    reminder: bool = False,
) -> EmailMessage:
    """Ask a member to review and respond to a guarantor request."""
    body = (
        f"<p>Dear Member,</p><p><strong>{escape(applicant_name)}</strong> has requested you "
        "to be a guarantor for their loan application.</p>"
        f"<p><strong>Applicant:</strong> {escape(applicant_name)}<br>"
        f"<strong>Loan Amount:</strong> {format_currency(loan_amount)}<br>"
        f"<strong>Purpose:</strong> {escape(loan_purpose)}</p>"
        "<p><strong>Important:</strong> As a guarantor, you agree to take financial "
        "responsibility if the borrower defaults on this loan.</p>"
        f"<p><a href=\"{escape(approval_link, quote=True)}\">Review &amp; Respond to Request</a></p>"
        f"<p>This link will expire on {format_long_date(expires_at)}. "
        "If you did not expect this email, please ignore it.</p>"
    )
    return EmailMessage(
        to=to,
        subject=("Reminder: " if reminder else "") + "Guarantor Request for Loan Application",
        html=_layout("Guarantor Request", body),
    )


def applicant_update(
    to: str,
    applicant_name: str,
    guarantor_name: str,
    approved: bool,
    reason: str | None = None,
) -> EmailMessage:
    """Tell the applicant how one of their guarantors responded."""
    verb = "approved" if approved else "declined"
    body = (
        f"<p>Dear {escape(applicant_name)},</p>"
        f"<p><strong>{escape(guarantor_name)}</strong> has {verb} your guarantor request.</p>"
    )
    if not approved and reason:
        body += f"<p><strong>Reason:</strong> {escape(reason)}</p>"
    return EmailMessage(
        to=to,
        subject=f"Guarantor {verb.capitalize()} Your Loan Request",
        html=_layout(f"Guarantor {verb.capitalize()}", body),
    )


def loan_decision(
    to: str,
    borrower_name: str,
    amount: Decimal,
    approved: bool,
    note: str | None = None,
) -> EmailMessage:
    """Tell the borrower the admin decision on their loan."""
    outcome = "Approved" if approved else "Rejected"
    body = (
        f"<p>Dear {escape(borrower_name)},</p>"
        f"<p>Your loan application for {format_currency(amount)} has been "
        f"<strong>{outcome.lower()}</strong>.</p>"
    )
    if note:
        label = "Note" if approved else "Reason"
        body += f"<p><strong>{label}:</strong> {escape(note)}</p>"
    return EmailMessage(
        to=to,
        subject=f"Loan Application {outcome}",
        html=_layout(f"Loan {outcome}", body),
    )


def payment_confirmation(
    to: str,
    borrower_name: str,
    amount: Decimal,
    installment_number: int,
    reference: str | None,
    remaining: Decimal,
) -> EmailMessage:
    """Confirm an installment payment to the borrower."""
    body = (
        f"<p>Dear {escape(borrower_name)},</p>"
        f"<p>We received {format_currency(amount)} for installment #{installment_number}.</p>"
        f"<p><strong>Reference:</strong> {escape(reference or 'N/A')}<br>"
        f"<strong>Remaining balance:</strong> {format_currency(remaining)}</p>"
    )
    return EmailMessage(
        to=to,
        subject="Loan Payment Received",
        html=_layout("Payment Received", body),
    )
