"""
Test suite for the schedule builder

Covers the standard amortization, GST on interest, interest discounts,
zero-rate loans, bill date anchoring and term validation.
"""

import pytest
from decimal import Decimal
from datetime import date

from emi_tracker.currency import Money, Currency
from emi_tracker.schedule import (
    LoanTerms, ScheduleEntry, DiscountType, InvalidTermsError,
    apply_interest_discount, build_schedule, summarize_schedule
)


def inr(amount: str) -> Money:
    return Money(Decimal(amount), Currency.INR)


class TestLoanTerms:
    """Test loan term validation"""

    def test_valid_terms(self):
        terms = LoanTerms(
            principal=inr('120000'),
            annual_interest_rate=Decimal('12'),
            tenure_months=12,
            bill_date=date(2024, 1, 15)
        )
        assert terms.currency == Currency.INR
        assert terms.monthly_rate == Decimal('0.01')
        assert terms.interest_discount_type == DiscountType.PERCENT

    def test_coerces_numbers_and_discount_type(self):
        terms = LoanTerms(
            principal=inr('1000'),
            annual_interest_rate=10,
            tenure_months=6,
            bill_date=date(2024, 1, 1),
            gst_percent="18",
            interest_discount="5",
            interest_discount_type="amount"
        )
        assert terms.annual_interest_rate == Decimal('10')
        assert terms.gst_percent == Decimal('18')
        assert terms.interest_discount_type == DiscountType.AMOUNT

    def test_zero_principal(self):
        with pytest.raises(InvalidTermsError, match="Principal"):
            LoanTerms(inr('0'), Decimal('12'), 12, date(2024, 1, 1))

    def test_negative_principal(self):
        with pytest.raises(InvalidTermsError):
            LoanTerms(inr('-100'), Decimal('12'), 12, date(2024, 1, 1))

    def test_zero_tenure(self):
        with pytest.raises(InvalidTermsError, match="Tenure"):
            LoanTerms(inr('1000'), Decimal('12'), 0, date(2024, 1, 1))

    def test_fractional_tenure(self):
        with pytest.raises(InvalidTermsError):
            LoanTerms(inr('1000'), Decimal('12'), 1.5, date(2024, 1, 1))

    def test_negative_rate(self):
        with pytest.raises(InvalidTermsError, match="Interest rate"):
            LoanTerms(inr('1000'), Decimal('-1'), 12, date(2024, 1, 1))

    def test_negative_gst(self):
        with pytest.raises(InvalidTermsError, match="GST"):
            LoanTerms(inr('1000'), Decimal('12'), 12, date(2024, 1, 1), gst_percent=Decimal('-5'))

    def test_percent_discount_over_hundred(self):
        with pytest.raises(InvalidTermsError):
            LoanTerms(inr('1000'), Decimal('12'), 12, date(2024, 1, 1),
                      interest_discount=Decimal('101'))

    def test_large_amount_discount_allowed(self):
        terms = LoanTerms(inr('1000'), Decimal('12'), 12, date(2024, 1, 1),
                          interest_discount=Decimal('500'),
                          interest_discount_type=DiscountType.AMOUNT)
        assert terms.interest_discount == Decimal('500')

    def test_invalid_terms_is_value_error(self):
        with pytest.raises(ValueError):
            LoanTerms(inr('0'), Decimal('12'), 12, date(2024, 1, 1))


class TestScheduleEntry:
    """Test schedule entry invariants"""

    def test_emi_must_match_components(self):
        with pytest.raises(ValueError, match="does not equal"):
            ScheduleEntry(
                month=1, bill_date=date(2024, 1, 1),
                emi_amount=inr('100'), interest_amount=inr('10'),
                principal_amount=inr('80'), balance=inr('920'),
                gst_amount=inr('0')
            )

    def test_negative_balance_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            ScheduleEntry(
                month=1, bill_date=date(2024, 1, 1),
                emi_amount=inr('100'), interest_amount=inr('10'),
                principal_amount=inr('90'), balance=inr('-1'),
                gst_amount=inr('0')
            )

    def test_emi_with_gst(self):
        entry = ScheduleEntry(
            month=1, bill_date=date(2024, 1, 1),
            emi_amount=inr('100'), interest_amount=inr('10'),
            principal_amount=inr('90'), balance=inr('910'),
            gst_amount=inr('1.80')
        )
        assert entry.emi_with_gst == inr('101.80')


class TestBuildSchedule:
    """Test the standard reducing-balance schedule"""

    def setup_method(self):
        self.terms = LoanTerms(
            principal=inr('120000'),
            annual_interest_rate=Decimal('12'),
            tenure_months=12,
            bill_date=date(2024, 1, 15)
        )
        self.schedule = build_schedule(self.terms)

    def test_one_entry_per_month(self):
        assert len(self.schedule) == 12
        assert [entry.month for entry in self.schedule] == list(range(1, 13))

    def test_first_period(self):
        first = self.schedule[0]
        assert first.bill_date == date(2024, 1, 15)
        assert first.emi_amount == inr('10661.85')
        assert first.interest_amount == inr('1200.00')
        assert first.principal_amount == inr('9461.85')
        assert first.balance == inr('110538.15')
        assert first.gst_amount == inr('0')

    def test_second_period(self):
        second = self.schedule[1]
        assert second.bill_date == date(2024, 2, 15)
        assert second.interest_amount == inr('1105.38')
        assert second.principal_amount == inr('9556.47')
        assert second.balance == inr('100981.68')

    def test_balance_reaches_zero(self):
        assert self.schedule[-1].balance.is_zero()

    def test_principal_sums_to_loan(self):
        total = sum((entry.principal_amount.amount for entry in self.schedule), Decimal('0'))
        assert total == Decimal('120000.00')

    def test_balance_strictly_decreasing(self):
        balances = [entry.balance.amount for entry in self.schedule]
        assert all(later < earlier for earlier, later in zip(balances, balances[1:]))

    def test_every_period_balances(self):
        for entry in self.schedule:
            assert entry.principal_amount + entry.interest_amount == entry.emi_amount
            assert not entry.balance.is_negative()

    def test_constant_emi_until_last_period(self):
        for entry in self.schedule[:-1]:
            assert entry.emi_amount == inr('10661.85')

    def test_last_period_absorbs_rounding(self):
        last = self.schedule[-1]
        assert abs(last.emi_amount.amount - Decimal('10661.85')) <= Decimal('0.12')

    def test_interest_decreases(self):
        interest = [entry.interest_amount.amount for entry in self.schedule]
        assert all(later < earlier for earlier, later in zip(interest, interest[1:]))

    def test_bill_dates_monthly(self):
        assert self.schedule[-1].bill_date == date(2024, 12, 15)


class TestGst:
    """Test GST charged on the interest portion"""

    def setup_method(self):
        self.terms = LoanTerms(
            principal=inr('120000'),
            annual_interest_rate=Decimal('12'),
            tenure_months=12,
            bill_date=date(2024, 1, 15),
            gst_percent=Decimal('18')
        )
        self.schedule = build_schedule(self.terms)

    def test_gst_on_interest(self):
        first = self.schedule[0]
        assert first.gst_amount == inr('216.00')
        assert first.emi_with_gst == inr('10877.85')

    def test_gst_does_not_touch_balance(self):
        plain = build_schedule(LoanTerms(
            principal=inr('120000'),
            annual_interest_rate=Decimal('12'),
            tenure_months=12,
            bill_date=date(2024, 1, 15)
        ))
        for with_gst, without in zip(self.schedule, plain):
            assert with_gst.balance == without.balance
            assert with_gst.emi_amount == without.emi_amount

    def test_summary_totals(self):
        summary = summarize_schedule(self.terms, self.schedule)
        total_gst = sum((entry.gst_amount.amount for entry in self.schedule), Decimal('0'))
        total_interest = sum((entry.interest_amount.amount for entry in self.schedule), Decimal('0'))
        assert summary.total_gst.amount == total_gst
        assert summary.total_interest.amount == total_interest
        assert summary.total_loan.amount == Decimal('120000') + total_interest + total_gst
        assert summary.emi == inr('10661.85')
        assert summary.end_date == date(2024, 12, 15)


class TestInterestDiscount:
    """Test percent and fixed-amount interest discounts"""

    def _terms(self, discount: str, discount_type: DiscountType, gst: str = '0') -> LoanTerms:
        return LoanTerms(
            principal=inr('120000'),
            annual_interest_rate=Decimal('12'),
            tenure_months=12,
            bill_date=date(2024, 1, 15),
            gst_percent=Decimal(gst),
            interest_discount=Decimal(discount),
            interest_discount_type=discount_type
        )

    def test_percent_discount_moves_interest_to_principal(self):
        first = build_schedule(self._terms('50', DiscountType.PERCENT))[0]
        assert first.interest_amount == inr('600.00')
        assert first.principal_amount == inr('10061.85')
        assert first.emi_amount == inr('10661.85')
        assert first.balance == inr('109938.15')

    def test_amount_discount(self):
        first = build_schedule(self._terms('100', DiscountType.AMOUNT))[0]
        assert first.interest_amount == inr('1100.00')
        assert first.principal_amount == inr('9561.85')
        assert first.emi_amount == inr('10661.85')

    def test_amount_discount_floors_at_zero(self):
        schedule = build_schedule(self._terms('5000', DiscountType.AMOUNT))
        assert all(entry.interest_amount.is_zero() for entry in schedule)

    def test_full_percent_discount(self):
        schedule = build_schedule(self._terms('100', DiscountType.PERCENT))
        assert all(entry.interest_amount.is_zero() for entry in schedule)
        assert schedule[-1].balance.is_zero()

    def test_discount_pays_balance_down_faster(self):
        plain = build_schedule(self._terms('0', DiscountType.PERCENT))
        discounted = build_schedule(self._terms('25', DiscountType.PERCENT))
        for before, after in zip(plain[:-1], discounted[:-1]):
            assert after.balance < before.balance
            assert after.emi_amount == before.emi_amount
        assert discounted[-1].balance.is_zero()
        assert discounted[-1].emi_amount < plain[-1].emi_amount

    def test_discount_can_pay_off_early(self):
        terms = LoanTerms(
            principal=inr('120000'),
            annual_interest_rate=Decimal('24'),
            tenure_months=12,
            bill_date=date(2024, 1, 15),
            interest_discount=Decimal('100')
        )
        schedule = build_schedule(terms)
        assert len(schedule) == 12
        assert schedule[9].balance.is_positive()
        assert schedule[10].balance.is_zero()
        assert schedule[11].emi_amount.is_zero()
        total = sum((e.principal_amount.amount for e in schedule), Decimal('0'))
        assert total == Decimal('120000.00')

    def test_gst_on_discounted_interest(self):
        first = build_schedule(self._terms('50', DiscountType.PERCENT, gst='18'))[0]
        assert first.gst_amount == inr('108.00')

    def test_apply_interest_discount_no_discount(self):
        terms = self._terms('0', DiscountType.PERCENT)
        assert apply_interest_discount(inr('123.45'), terms) == inr('123.45')


class TestEdgeSchedules:
    """Test zero-rate, single-period and end-of-month loans"""

    def test_zero_rate(self):
        terms = LoanTerms(inr('1000'), Decimal('0'), 3, date(2024, 1, 1))
        schedule = build_schedule(terms)
        assert [e.principal_amount for e in schedule] == [inr('333.33'), inr('333.33'), inr('333.34')]
        assert all(e.interest_amount.is_zero() for e in schedule)
        assert schedule[-1].balance.is_zero()
        summary = summarize_schedule(terms, schedule)
        assert summary.total_interest.is_zero()
        assert summary.total_loan == inr('1000')

    def test_zero_rate_flat_installments(self):
        terms = LoanTerms(inr('12000'), Decimal('0'), 12, date(2024, 1, 1), gst_percent=Decimal('18'))
        schedule = build_schedule(terms)
        assert all(e.emi_amount == inr('1000.00') for e in schedule)
        assert all(e.gst_amount.is_zero() for e in schedule)
        assert summarize_schedule(terms, schedule).emi == inr('1000.00')

    def test_single_period(self):
        terms = LoanTerms(inr('10000'), Decimal('12'), 1, date(2024, 5, 10))
        schedule = build_schedule(terms)
        assert len(schedule) == 1
        only = schedule[0]
        assert only.interest_amount == inr('100.00')
        assert only.principal_amount == inr('10000')
        assert only.emi_amount == inr('10100.00')
        assert only.balance.is_zero()
        assert only.bill_date == date(2024, 5, 10)

    def test_end_of_month_anchor(self):
        terms = LoanTerms(inr('3000'), Decimal('12'), 4, date(2024, 1, 31))
        dates = [entry.bill_date for entry in build_schedule(terms)]
        assert dates == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]

    def test_zero_precision_currency(self):
        terms = LoanTerms(Money(Decimal('100000'), Currency.JPY), Decimal('6'), 6, date(2024, 1, 1))
        schedule = build_schedule(terms)
        assert schedule[-1].balance.is_zero()
        for entry in schedule:
            assert entry.emi_amount.amount == entry.emi_amount.amount.to_integral_value()

    def test_deterministic(self):
        terms = LoanTerms(inr('75000'), Decimal('13.5'), 24, date(2024, 3, 5), gst_percent=Decimal('18'))
        assert build_schedule(terms) == build_schedule(terms)
