"""Display formatting for amounts and dates."""

from datetime import date, datetime
from decimal import Decimal

CURRENCY_SYMBOL = "₦"


def format_currency(amount: Decimal | int | float) -> str:
    """Format an amount as naira with thousands separators, e.g. ``₦1,234.00``."""
    value = Decimal(str(amount))
    sign = "-" if value < 0 else ""
    return f"{sign}{CURRENCY_SYMBOL}{abs(value):,.2f}"


def format_date(value: date | datetime | None) -> str:
    """Format a date as a numeric locale date, e.g. ``4/30/2024``."""
    if value is None:
        return ""
    return f"{value.month}/{value.day}/{value.year}"


def format_long_date(value: date | datetime | None) -> str:
    """Format a date as ``Apr 30, 2024``."""
    if value is None:
        return ""
    return f"{value.strftime('%b')} {value.day}, {value.year}"
