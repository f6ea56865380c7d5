"""Email and in-app notification adapters."""

from coop_loans.notify.email import (
    EmailMessage,
    EmailSender,
    OutboxEmailSender,
    ResendEmailSender,
)
from coop_loans.notify.notifier import Notifier, StoreNotifier

__all__ = [
    "EmailMessage",
    "EmailSender",
    "OutboxEmailSender",
    "Notifier",
    "ResendEmailSender",
    "StoreNotifier",
]
