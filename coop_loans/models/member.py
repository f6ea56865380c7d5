"""Member, notification and ledger records."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from coop_loans.models.enums import LedgerEntryType, NotificationType, Role


@dataclass
class MemberProfile:
    """A cooperative member as held in the users/wallets collections."""

    user_id: str
    member_id: str
    file_number: str
    name: str
    email: str
    savings_balance: Decimal
    joined_at: datetime
    role: Role = Role.MEMBER
    registration_fee_paid: bool = True
    email_verified: bool = True


@dataclass
class Notification:
    """One in-app notification row for one recipient."""

    notification_id: str
    user_id: str
    kind: NotificationType
    title: str
    message: str
    created_at: datetime
    read: bool = False
    metadata: dict = field(default_factory=dict)


@dataclass
class LedgerEntry:
    """A money movement recorded against a member."""

    entry_id: str
    user_id: str
    member_id: str | None
    entry_type: LedgerEntryType
    amount: Decimal
    reference: str
    description: str
    created_at: datetime
    loan_id: str | None = None
