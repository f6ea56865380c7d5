"""Interest, payment and due-date primitives for repayment plans.

All functions are pure. They do not validate their inputs: a zero or
negative period count is a caller error.
"""

from datetime import date, datetime, timedelta
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

from dateutil.relativedelta import relativedelta

from coop_loans.models.enums import InstallmentStatus, InterestBasis
from coop_loans.models.schedule import (
    CustomRepaymentPlan,
    InstallmentScheduleEntry,
    RepaymentPlan,
)

CENT = Decimal("0.01")


def to_money(value: Decimal | int | str) -> Decimal:
    """Quantize to kobo (2 dp), rounding half up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_flat_interest(
    principal: Decimal, annual_rate_percent: Decimal, months: int
) -> Decimal:
    """Simple interest pro-rated by duration: ``P * r * n / (100 * 12)``."""
    return Decimal(principal) * Decimal(annual_rate_percent) * months / Decimal(1200)


def standard_monthly_payment(principal: Decimal, rate: Decimal, months: int) -> Decimal:
    """``(P + interest) / n`` using :func:`compute_flat_interest`."""
    principal = Decimal(principal)
    return (principal + compute_flat_interest(principal, rate, months)) / months


def total_interest(
    principal: Decimal,
    rate: Decimal,
    months: int,
    basis: InterestBasis = InterestBasis.PER_ANNUM,
) -> Decimal:
    """Total interest for a loan, rounded to kobo.

    ``FLAT`` charges ``rate`` percent of the principal once for the whole
    term; ``PER_ANNUM`` pro-rates an annual rate over ``months``.
    """
    if basis == InterestBasis.FLAT:
        return to_money(Decimal(principal) * Decimal(rate) / 100)
    return to_money(compute_flat_interest(principal, rate, months))


def add_months(start: date, months: int) -> date:
    """Advance by calendar months, clamping to the end of shorter months."""
    return start + relativedelta(months=months)


def build_schedule(
    total: Decimal, count: int, start_date: date
) -> list[InstallmentScheduleEntry]:
    """Split ``total`` into ``count`` monthly installments.

    Every installment but the last is ``ceil(total / count)`` in whole
    currency units; the last takes the remainder so the sum is exact.
    """
    total = Decimal(total)
    installment = (total / count).to_integral_value(rounding=ROUND_CEILING)

    schedule = []
    for i in range(count):
        if i == count - 1:
            amount = total - installment * (count - 1)
        else:
            amount = installment

        schedule.append(
            InstallmentScheduleEntry(
                installment_number=i + 1,
                amount=amount,
                due_date=add_months(start_date, i),
            )
        )

    return schedule


def build_schedule_with_payment(
    total: Decimal, count: int, monthly_payment: Decimal, start_date: date
) -> list[InstallmentScheduleEntry]:
    """Schedule with a fixed monthly payment; the last installment takes what is left.

    Used for commodity orders and custom (accelerated) loan repayment.
    """
    remaining = Decimal(total)
    monthly_payment = Decimal(monthly_payment)

    schedule = []
    for i in range(count):
        if i == count - 1:
            amount = remaining
        else:
            amount = min(monthly_payment, remaining)

        schedule.append(
            InstallmentScheduleEntry(
                installment_number=i + 1,
                amount=amount,
                due_date=add_months(start_date, i),
                status=InstallmentStatus.PENDING,
            )
        )
        remaining -= amount

    return schedule


def last_day_of_month(value: date) -> date:
    """Last calendar day of the month containing ``value``."""
    return value.replace(day=1) + relativedelta(months=1) - timedelta(days=1)


def first_deduction_date(application_date: date) -> date:
    """Last day of the month after the application month.

    An application on any day in March is first billed on April 30.
    """
    if isinstance(application_date, datetime):
        application_date = application_date.date()
    return last_day_of_month(application_date.replace(day=1) + relativedelta(months=1))


def custom_repayment(
    principal: Decimal,
    months: int,
    rate: Decimal,
    custom_monthly_amount: Decimal,
    basis: InterestBasis = InterestBasis.PER_ANNUM,
    max_months: int = 12,
) -> CustomRepaymentPlan:
    """Evaluate a member-chosen monthly payment larger than the standard one."""
    total = Decimal(principal) + total_interest(principal, rate, months, basis)
    standard = total / months
    custom_monthly_amount = Decimal(custom_monthly_amount)

    if custom_monthly_amount < standard:
        return CustomRepaymentPlan(
            valid=False,
            minimum_payment=standard,
            error=f"Minimum monthly payment is ₦{to_money(standard):,.2f}",
        )

    new_duration = int((total / custom_monthly_amount).to_integral_value(rounding=ROUND_CEILING))

    if new_duration > max_months:
        return CustomRepaymentPlan(
            valid=False,
            minimum_payment=standard,
            error=f"Payment period cannot exceed {max_months} months",
        )

    return CustomRepaymentPlan(
        valid=True,
        minimum_payment=standard,
        total_amount=total,
        monthly_payment=custom_monthly_amount,
        duration_months=new_duration,
        total_savings=(months - new_duration) * standard,
    )


def repayment_plan(
    principal: Decimal,
    rate: Decimal,
    months: int,
    application_date: date,
    basis: InterestBasis = InterestBasis.PER_ANNUM,
) -> RepaymentPlan:
    """Figures and schedule for a loan as it would be activated."""
    interest = total_interest(principal, rate, months, basis)
    total = to_money(Decimal(principal) + interest)
    start = first_deduction_date(application_date)

    return RepaymentPlan(
        principal=Decimal(principal),
        interest_rate=Decimal(rate),
        duration_months=months,
        total_interest=interest,
        total_amount=total,
        monthly_payment=total / months,
        first_deduction_date=start,
        schedule=build_schedule(total, months, start),
    )
