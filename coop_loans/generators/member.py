"""Synthetic cooperative members."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Iterator

from dateutil.relativedelta import relativedelta

from coop_loans.generators.base import BaseGenerator
from coop_loans.models.loan import Guarantor
from coop_loans.models.member import MemberProfile


class MemberGenerator(BaseGenerator):
    """Generate members with a savings balance and a join date."""

    # Savings in naira, rounded to the nearest hundred
    SAVINGS_RANGE = (10_000, 500_000)
    # Months of membership before the reference date
    TENURE_RANGE = (1, 36)

    def __init__(
        self,
        seed: int | None = None,
        reference_date: datetime | None = None,
    ) -> None:
        super().__init__(seed)
        self.reference_date = reference_date or datetime.now()
        self._sequence = 0

    def generate(
        self,
        savings_balance: Decimal | None = None,
        tenure_months: int | None = None,
    ) -> MemberProfile:
        """Generate a single member.

        Parameters
        ----------
        savings_balance : Decimal | None
            Fixed balance instead of a random one.
        tenure_months : int | None
            Fixed membership length instead of a random one.

        Returns
        -------
        MemberProfile
            Generated member.
        """
        self._sequence += 1
        first, last = self.fake.first_name(), self.fake.last_name()

        if savings_balance is None:
            savings_balance = Decimal(self.rng.randint(*self.SAVINGS_RANGE) // 100 * 100)
        if tenure_months is None:
            tenure_months = self.rng.randint(*self.TENURE_RANGE)
        joined_at = self.reference_date - relativedelta(months=tenure_months)

        return MemberProfile(
            user_id=str(uuid.UUID(int=self.rng.getrandbits(128))),
            member_id=f"AWS{self.rng.randint(100000, 999999)}",
            file_number=f"FN/{joined_at.year}/{self._sequence:04d}",
            name=f"{first} {last}",
            email=f"{first}.{last}{self._sequence}@{self.fake.free_email_domain()}".lower(),
            savings_balance=Decimal(savings_balance),
            joined_at=joined_at,
        )

    def generate_batch(self, count: int) -> Iterator[MemberProfile]:
        """Generate multiple members."""
        for _ in range(count):
            yield self.generate()


def as_guarantor(member: MemberProfile) -> Guarantor:
    """The guarantor entry a borrower would pick for ``member``."""
    return Guarantor(
        member_id=member.member_id,
        name=member.name,
        file_number=member.file_number,
        email=member.email,
        user_id=member.user_id,
    )
