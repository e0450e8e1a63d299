"""
Rate & Period Math

Pure helpers shared by the schedule builder and the recalculation engine:
annual-to-monthly rate conversion, the reducing-balance annuity formula and
calendar month arithmetic.
"""

from decimal import Decimal
from datetime import date
import calendar

from .currency import Money


def monthly_rate(annual_percent: Decimal) -> Decimal:
    """
    Convert an annual interest rate in percent to a monthly decimal rate

    Args:
        annual_percent: Annual rate, e.g. Decimal('12') for 12%

    Returns:
        Monthly rate, e.g. Decimal('0.01')
    """
    if not isinstance(annual_percent, Decimal):
        annual_percent = Decimal(str(annual_percent))
    if annual_percent < 0:
        raise ValueError("Interest rate cannot be negative")
    return annual_percent / Decimal('12') / Decimal('100')


def periodic_emi(principal: Money, rate: Decimal, tenure_months: int) -> Money:
    """
    Equated monthly installment for a reducing-balance loan

    Standard annuity formula: P * [r(1+r)^n] / [(1+r)^n - 1]
    Where P = principal, r = monthly rate, n = number of payments.
    An interest-free loan degenerates to P / n.

    Decimal integer powers stay exact to 28 significant digits, so long
    tenures do not overflow the way float powers would.
    """
    if tenure_months <= 0:
        raise ValueError("Tenure must be positive")
    if rate < 0:
        raise ValueError("Rate cannot be negative")

    n = Decimal(tenure_months)
    if rate == Decimal('0'):
        return Money(principal.amount / n, principal.currency)

    factor = (Decimal('1') + rate) ** tenure_months
    payment = principal.amount * (rate * factor) / (factor - Decimal('1'))
    return Money(payment, principal.currency)


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping the day to the end of the target month"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)
