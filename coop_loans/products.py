"""Loan product catalogue."""

from dataclasses import dataclass
from decimal import Decimal

from coop_loans.models.enums import InterestBasis, LoanProduct


@dataclass(frozen=True)
class LoanProductTerms:
    """Borrowing rules of one loan product.

    Exactly one of ``fixed_amount`` and ``savings_multiplier`` is set.
    ``min_duration_months == max_duration_months`` means a fixed duration.
    """

    product: LoanProduct
    label: str
    interest_rate: Decimal
    interest_basis: InterestBasis
    min_duration_months: int
    max_duration_months: int
    fixed_amount: Decimal | None = None
    savings_multiplier: Decimal | None = None
    min_savings_tenure_months: int = 0

    @property
    def has_fixed_amount(self) -> bool:
        return self.fixed_amount is not None

    @property
    def has_fixed_duration(self) -> bool:
        return self.min_duration_months == self.max_duration_months


LOAN_PRODUCTS: dict[LoanProduct, LoanProductTerms] = {
    LoanProduct.FIXED_RELIEF: LoanProductTerms(
        product=LoanProduct.FIXED_RELIEF,
        label="Swift Relief",
        interest_rate=Decimal("5"),
        interest_basis=InterestBasis.FLAT,
        min_duration_months=3,
        max_duration_months=3,
        fixed_amount=Decimal("30000"),
    ),
    LoanProduct.SAVINGS_MULTIPLE_SHORT: LoanProductTerms(
        product=LoanProduct.SAVINGS_MULTIPLE_SHORT,
        label="Advancement",
        interest_rate=Decimal("12"),
        interest_basis=InterestBasis.FLAT,
        min_duration_months=6,
        max_duration_months=6,
        savings_multiplier=Decimal("2"),
        min_savings_tenure_months=3,
    ),
    LoanProduct.SAVINGS_MULTIPLE_LONG: LoanProductTerms(
        product=LoanProduct.SAVINGS_MULTIPLE_LONG,
        label="Progress Plus",
        interest_rate=Decimal("18"),
        interest_basis=InterestBasis.PER_ANNUM,
        min_duration_months=6,
        max_duration_months=12,
        savings_multiplier=Decimal("3"),
        min_savings_tenure_months=6,
    ),
}


def get_product_terms(product: LoanProduct | str) -> LoanProductTerms:
    """Look up the terms for a product enum or its string value."""
    return LOAN_PRODUCTS[LoanProduct(product)]
