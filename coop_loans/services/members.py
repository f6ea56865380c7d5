"""Member profile and savings lookups."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Protocol

from dateutil.relativedelta import relativedelta

from coop_loans.exceptions import EntityNotFoundError, InvalidEntityStateError, LoanValidationError
from coop_loans.models.member import MemberProfile
from coop_loans.store.base import USERS, WALLETS, DocumentStore
from coop_loans.store.codec import from_document, normalize_timestamp, to_document

logger = logging.getLogger(__name__)


class MemberDirectory(Protocol):
    """Read access to the member facts eligibility depends on."""

    def registration_fee_paid(self, user_id: str) -> bool: ...

    def savings_balance(self, member_id: str) -> Decimal: ...

    def savings_tenure_months(self, member_id: str) -> int: ...


class StoreMemberDirectory:
    """Member directory over the ``users`` and ``wallets`` collections.

    Users are keyed by user id, wallets by member id.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.clock = clock

    def register(self, profile: MemberProfile) -> None:
        """Store a member's user document and open their savings wallet."""
        user_doc = to_document(profile)
        user_doc.pop("savings_balance")
        self.store.set(USERS, profile.user_id, user_doc)
        self.store.set(
            WALLETS,
            profile.member_id,
            {
                "member_id": profile.member_id,
                "user_id": profile.user_id,
                "balance": str(profile.savings_balance),
                "opened_at": profile.joined_at.isoformat(),
            },
        )
        logger.debug("Registered member %s (%s)", profile.member_id, profile.user_id)

    def _user(self, user_id: str) -> dict:
        doc = self.store.get(USERS, user_id)
        if doc is None:
            raise EntityNotFoundError(f"User {user_id} not found")
        return doc

    def _wallet(self, member_id: str) -> dict:
        doc = self.store.get(WALLETS, member_id)
        if doc is None:
            raise EntityNotFoundError(f"No savings wallet for member {member_id}")
        return doc

    def get_profile(self, user_id: str) -> MemberProfile:
        """Full profile including the current savings balance."""
        doc = self._user(user_id)
        wallet = self.store.get(WALLETS, doc["member_id"]) or {}
        return from_document(
            MemberProfile, {**doc, "savings_balance": wallet.get("balance", "0")}
        )

    def find_by_member_id(self, member_id: str) -> MemberProfile:
        """Look a member up by member id."""
        docs = self.store.query(USERS, [("member_id", "==", member_id)])
        if not docs:
            raise EntityNotFoundError(f"Member {member_id} not found")
        return self.get_profile(docs[0]["user_id"])

    def registration_fee_paid(self, user_id: str) -> bool:
        return bool(self._user(user_id).get("registration_fee_paid", False))

    def savings_balance(self, member_id: str) -> Decimal:
        return Decimal(str(self._wallet(member_id).get("balance", "0")))

    def savings_tenure_months(self, member_id: str) -> int:
        """Whole calendar months since the wallet was opened."""
        opened_at = normalize_timestamp(self._wallet(member_id).get("opened_at"))
        if opened_at is None:
            return 0
        delta = relativedelta(self.clock(), opened_at)
        return max(0, delta.years * 12 + delta.months)

    def credit_savings(self, member_id: str, amount: Decimal) -> Decimal:
        """Add to a wallet balance and return the new balance."""
        amount = _positive(amount)
        balance = self.savings_balance(member_id) + amount
        self.store.update(WALLETS, member_id, {"balance": str(balance)})
        return balance

    def debit_savings(self, member_id: str, amount: Decimal) -> Decimal:
        """Take from a wallet balance and return the new balance.

        Read-then-write with no version check: a concurrent update to the
        same wallet can be lost.
        """
        amount = _positive(amount)
        balance = self.savings_balance(member_id)
        if balance < amount:
            raise InvalidEntityStateError(
                f"Insufficient savings for member {member_id}: {balance} < {amount}"
            )
        balance -= amount
        self.store.update(WALLETS, member_id, {"balance": str(balance)})
        return balance


def _positive(amount: Decimal) -> Decimal:
    amount = Decimal(amount)
    if amount <= 0:
        raise LoanValidationError({"amount": "Amount must be greater than zero"})
    return amount
