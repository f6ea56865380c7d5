"""Loan eligibility decisions."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from coop_loans.formatters import format_currency
from coop_loans.models.enums import LoanProduct
from coop_loans.products import get_product_terms
from coop_loans.services.members import MemberDirectory

logger = logging.getLogger(__name__)


@dataclass
class EligibilityDecision:
    """Whether a member may apply for a product, and for how much."""

    eligible: bool
    message: str
    max_amount: Decimal


class EligibilityEvaluator:
    """Decide eligibility from member facts. Performs no writes."""

    def __init__(self, members: MemberDirectory) -> None:
        self.members = members

    def evaluate(
        self, borrower_id: str, member_id: str, product: LoanProduct | str
    ) -> EligibilityDecision:
        """Evaluate one member against one product.

        A failed lookup never raises; it yields an ineligible decision with
        ``max_amount`` of zero so the form can show guidance.
        """
        terms = get_product_terms(product)
        try:
            return self._evaluate(borrower_id, member_id, terms)
        except Exception as e:
            logger.warning(
                "Eligibility lookup failed for member %s (%s): %s",
                member_id,
                terms.product.value,
                e,
            )
            return EligibilityDecision(
                eligible=False,
                message="We could not check your eligibility right now. Please try again later.",
                max_amount=Decimal("0"),
            )

    def _evaluate(self, borrower_id, member_id, terms) -> EligibilityDecision:
        if not self.members.registration_fee_paid(borrower_id):
            return EligibilityDecision(
                eligible=False,
                message="Registration fee must be paid before applying for loans",
                max_amount=terms.fixed_amount or Decimal("0"),
            )

        if terms.has_fixed_amount:
            return EligibilityDecision(
                eligible=True,
                message=f"You are eligible for {format_currency(terms.fixed_amount)}",
                max_amount=terms.fixed_amount,
            )

        balance = self.members.savings_balance(member_id)
        if balance <= 0:
            return EligibilityDecision(
                eligible=False,
                message="Insufficient savings. You must have a positive savings balance.",
                max_amount=Decimal("0"),
            )

        max_amount = balance * terms.savings_multiplier
        tenure = self.members.savings_tenure_months(member_id)
        if tenure < terms.min_savings_tenure_months:
            return EligibilityDecision(
                eligible=False,
                message=(
                    f"You must have saved consistently for at least "
                    f"{terms.min_savings_tenure_months} months. Current: {tenure} month(s)."
                ),
                max_amount=max_amount,
            )

        return EligibilityDecision(
            eligible=True,
            message=(
                f"You can borrow up to {format_currency(max_amount)} "
                f"({terms.savings_multiplier}x your savings)"
            ),
            max_amount=max_amount,
        )
