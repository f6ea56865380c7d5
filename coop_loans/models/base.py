"""Base models shared across the package."""

from dataclasses import dataclass, field
from datetime import datetime

from coop_loans.models.enums import Role


@dataclass
class Event:
    """Standard event envelope for the audit stream."""

    event_id: str
    event_type: str  # loan.action (e.g., loan.approved)
    event_time: datetime
    source: str  # Service/system that generated
    subject: str  # Entity ID affected
    data: dict
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Session:
    """Authenticated principal passed explicitly to service entry points.

    Claims come from the identity provider; nothing here is verified by
    this package.
    """

    user_id: str
    email: str
    role: Role = Role.MEMBER
    member_id: str | None = None
    display_name: str = ""
    email_verified: bool = False
    registration_fee_paid: bool = False

    @property
    def onboarding_complete(self) -> bool:
        """Whether the member has paid the registration fee."""
        return self.registration_fee_paid
