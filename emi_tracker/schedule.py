"""
Schedule Builder Module

Derives the full amortization schedule of an EMI loan from its static terms:
reducing-balance interest, GST on the interest portion, interest discounts
and bill dates anchored on the loan's day of month.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import List
from enum import Enum

from .currency import Money, zero
from .rates import monthly_rate, periodic_emi, add_months


class InvalidTermsError(ValueError):
    """Raised when loan terms cannot produce a schedule"""


class DiscountType(Enum):
    """How an interest discount is applied to each period's interest"""
    PERCENT = "percent"  # Interest multiplied by (1 - discount/100)
    AMOUNT = "amount"    # Fixed amount subtracted from interest, floored at zero


@dataclass(frozen=True)
class LoanTerms:
    """Immutable terms a schedule is derived from"""
    principal: Money
    annual_interest_rate: Decimal       # Percent, e.g. Decimal('12') for 12%
    tenure_months: int
    bill_date: date                     # Day of month anchors every period
    gst_percent: Decimal = Decimal('0')
    interest_discount: Decimal = Decimal('0')
    interest_discount_type: DiscountType = DiscountType.PERCENT

    def __post_init__(self):
        for name in ('annual_interest_rate', 'gst_percent', 'interest_discount'):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, Decimal(str(value)))
        if isinstance(self.interest_discount_type, str):
            object.__setattr__(self, 'interest_discount_type', DiscountType(self.interest_discount_type))

        if not self.principal.is_positive():
            raise InvalidTermsError("Principal must be positive")
        if isinstance(self.tenure_months, bool) or not isinstance(self.tenure_months, int) or self.tenure_months <= 0:
            raise InvalidTermsError("Tenure must be a positive number of months")
        if self.annual_interest_rate < 0:
            raise InvalidTermsError("Interest rate cannot be negative")
        if self.gst_percent < 0:
            raise InvalidTermsError("GST cannot be negative")
        if self.interest_discount < 0:
            raise InvalidTermsError("Interest discount cannot be negative")
        if (self.interest_discount_type == DiscountType.PERCENT
                and self.interest_discount > Decimal('100')):
            raise InvalidTermsError("Percent interest discount cannot exceed 100")

    @property
    def currency(self):
        return self.principal.currency

    @property
    def monthly_rate(self) -> Decimal:
        return monthly_rate(self.annual_interest_rate)


@dataclass(frozen=True)
class ScheduleEntry:
    """Single period of an amortization schedule"""
    month: int
    bill_date: date
    emi_amount: Money
    interest_amount: Money
    principal_amount: Money
    balance: Money                      # Outstanding principal after this period
    gst_amount: Money

    def __post_init__(self):
        calculated = self.principal_amount + self.interest_amount
        if abs(calculated.amount - self.emi_amount.amount) > Decimal('0.01'):
            raise ValueError(f"EMI {self.emi_amount.to_string()} does not equal "
                             f"principal {self.principal_amount.to_string()} + "
                             f"interest {self.interest_amount.to_string()}")
        if self.balance.is_negative():
            raise ValueError("Schedule balance cannot be negative")

    @property
    def emi_with_gst(self) -> Money:
        """Amount billed for the period including GST"""
        return self.emi_amount + self.gst_amount


@dataclass(frozen=True)
class ScheduleSummary:
    """Aggregate figures stored alongside a loan"""
    emi: Money             # Base periodic EMI from the annuity formula
    total_interest: Money
    total_gst: Money
    total_loan: Money      # Principal + total interest + total GST
    end_date: date


def apply_interest_discount(interest: Money, terms: LoanTerms) -> Money:
    """Apply the loan's interest discount policy to one period's interest"""
    discount = terms.interest_discount
    if discount == Decimal('0'):
        return interest

    if terms.interest_discount_type == DiscountType.AMOUNT:
        discounted = interest - Money(discount, interest.currency)
        return discounted if discounted.is_positive() else zero(interest.currency)

    return interest * (Decimal('1') - discount / Decimal('100'))


def build_schedule(terms: LoanTerms) -> List[ScheduleEntry]:
    """
    Build the full amortization schedule for a loan

    Each period charges interest on the opening balance at the monthly rate.
    The discount policy is applied to that interest and the rest of the base
    EMI amortizes principal, so a discount keeps the installment fixed and
    pays the balance down faster. A loan paid off early bills nothing for its
    remaining periods. GST is charged on the discounted interest and never
    touches the balance. The final period repays whatever balance remains,
    absorbing rounding drift from earlier periods.

    Args:
        terms: Validated loan terms

    Returns:
        List of ScheduleEntry, one per month of tenure
    """
    rate = terms.monthly_rate
    base_emi = periodic_emi(terms.principal, rate, terms.tenure_months)

    schedule = []
    balance = terms.principal

    for month in range(1, terms.tenure_months + 1):
        gross_interest = balance * rate
        interest_amount = apply_interest_discount(gross_interest, terms)

        if month == terms.tenure_months:
            principal_amount = balance
        else:
            principal_amount = base_emi - interest_amount
            if principal_amount > balance:
                principal_amount = balance

        balance = balance - principal_amount

        schedule.append(ScheduleEntry(
            month=month,
            bill_date=add_months(terms.bill_date, month - 1),
            emi_amount=principal_amount + interest_amount,
            interest_amount=interest_amount,
            principal_amount=principal_amount,
            balance=balance,
            gst_amount=interest_amount.percentage(terms.gst_percent)
        ))

    return schedule


def summarize_schedule(terms: LoanTerms, schedule: List[ScheduleEntry]) -> ScheduleSummary:
    """Compute the aggregate totals of a schedule"""
    currency = terms.currency
    total_interest = zero(currency)
    total_gst = zero(currency)
    for entry in schedule:
        total_interest = total_interest + entry.interest_amount
        total_gst = total_gst + entry.gst_amount

    return ScheduleSummary(
        emi=periodic_emi(terms.principal, terms.monthly_rate, terms.tenure_months),
        total_interest=total_interest,
        total_gst=total_gst,
        total_loan=terms.principal + total_interest + total_gst,
        end_date=schedule[-1].bill_date
    )
