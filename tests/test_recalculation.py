"""
Tests for the recalculation engine and the daily recalculation gate
"""

import pytest
import threading
from decimal import Decimal
from datetime import date, timedelta

from emi_tracker.currency import Money, Currency
from emi_tracker.schedule import LoanTerms, build_schedule
from emi_tracker.recalculation import (
    LoanState, DailyRecalculationGate, recalculate, needs_persist,
    current_period_index, current_installment, emi_with_gst, next_bill_date
)


def inr(amount: str) -> Money:
    return Money(Decimal(amount), Currency.INR)


class TestRecalculate:
    """Test deriving loan state from schedule and date"""

    def setup_method(self):
        self.terms = LoanTerms(
            principal=inr('120000'),
            annual_interest_rate=Decimal('12'),
            tenure_months=12,
            bill_date=date(2024, 1, 15),
            gst_percent=Decimal('18')
        )
        self.schedule = build_schedule(self.terms)

    def test_before_first_bill(self):
        state = recalculate(self.terms, self.schedule, date(2024, 1, 14))
        assert state.total_paid_emis == 0
        assert state.remaining_tenure == 12
        assert state.remaining_balance == self.terms.principal
        assert not state.is_completed
        assert state.end_date == date(2024, 12, 15)

    def test_on_bill_date_counts_as_paid(self):
        state = recalculate(self.terms, self.schedule, date(2024, 1, 15))
        assert state.total_paid_emis == 1
        assert state.remaining_tenure == 11
        assert state.remaining_balance == inr('110538.15')

    def test_mid_tenure(self):
        state = recalculate(self.terms, self.schedule, date(2024, 6, 20))
        assert state.total_paid_emis == 6
        assert state.remaining_balance == self.schedule[5].balance

    def test_completed(self):
        state = recalculate(self.terms, self.schedule, date(2024, 12, 15))
        assert state.total_paid_emis == 12
        assert state.remaining_tenure == 0
        assert state.remaining_balance.is_zero()
        assert state.is_completed

    def test_long_after_completion(self):
        state = recalculate(self.terms, self.schedule, date(2030, 1, 1))
        assert state.total_paid_emis == 12
        assert state.is_completed

    def test_idempotent(self):
        today = date(2024, 4, 1)
        assert recalculate(self.terms, self.schedule, today) == recalculate(self.terms, self.schedule, today)

    def test_monotonic_over_time(self):
        previous = recalculate(self.terms, self.schedule, date(2023, 12, 1))
        day = date(2023, 12, 1)
        while day <= date(2025, 1, 31):
            state = recalculate(self.terms, self.schedule, day)
            assert state.total_paid_emis >= previous.total_paid_emis
            assert state.remaining_balance <= previous.remaining_balance
            assert state.total_paid_emis + state.remaining_tenure == 12
            previous = state
            day += timedelta(days=7)

    def test_partial_schedule_rejected(self):
        with pytest.raises(ValueError, match="expected 12"):
            recalculate(self.terms, self.schedule[:6], date(2024, 6, 1))


class TestNeedsPersist:
    """Test stale state detection"""

    def setup_method(self):
        self.state = LoanState(
            total_paid_emis=3,
            remaining_tenure=9,
            remaining_balance=inr('90000'),
            is_completed=False,
            end_date=date(2024, 12, 15)
        )

    def test_no_previous_state(self):
        assert needs_persist(None, self.state)

    def test_unchanged(self):
        same = LoanState(3, 9, inr('90000'), False, date(2024, 12, 15))
        assert not needs_persist(self.state, same)

    def test_paid_count_changed(self):
        newer = LoanState(4, 8, inr('80000'), False, date(2024, 12, 15))
        assert needs_persist(self.state, newer)

    def test_balance_changed(self):
        newer = LoanState(3, 9, inr('89999.99'), False, date(2024, 12, 15))
        assert needs_persist(self.state, newer)

    def test_completion_changed(self):
        newer = LoanState(3, 9, inr('90000'), True, date(2024, 12, 15))
        assert needs_persist(self.state, newer)


class TestCurrentInstallment:
    """Test selecting the installment currently due"""

    def setup_method(self):
        self.terms = LoanTerms(
            principal=inr('120000'),
            annual_interest_rate=Decimal('12'),
            tenure_months=12,
            bill_date=date(2024, 1, 15),
            gst_percent=Decimal('18')
        )
        self.schedule = build_schedule(self.terms)

    def test_index_clamped_low(self):
        state = recalculate(self.terms, self.schedule, date(2023, 1, 1))
        assert current_period_index(state, 12) == 0

    def test_index_clamped_high(self):
        state = recalculate(self.terms, self.schedule, date(2026, 1, 1))
        assert current_period_index(state, 12) == 11

    def test_first_unpaid_period(self):
        state = recalculate(self.terms, self.schedule, date(2024, 3, 20))
        assert current_installment(self.schedule, state).month == 4

    def test_emi_with_gst_before_start(self):
        state = recalculate(self.terms, self.schedule, date(2024, 1, 1))
        assert emi_with_gst(self.schedule, state) == inr('10877.85')

    def test_completed_uses_last_period(self):
        state = recalculate(self.terms, self.schedule, date(2025, 6, 1))
        assert emi_with_gst(self.schedule, state) == self.schedule[-1].emi_with_gst


class TestNextBillDate:
    """Test finding the next bill date"""

    def setup_method(self):
        terms = LoanTerms(inr('3000'), Decimal('12'), 3, date(2024, 1, 31))
        self.schedule = build_schedule(terms)

    def test_before_start(self):
        assert next_bill_date(self.schedule, date(2024, 1, 1)) == date(2024, 1, 31)

    def test_on_bill_date_moves_on(self):
        assert next_bill_date(self.schedule, date(2024, 1, 31)) == date(2024, 2, 29)

    def test_after_last_bill(self):
        assert next_bill_date(self.schedule, date(2024, 3, 31)) is None


class TestDailyRecalculationGate:
    """Test the once-per-day gate"""

    def setup_method(self):
        self.gate = DailyRecalculationGate()

    def test_first_run_opens(self):
        assert self.gate.should_run("user1", date(2024, 5, 1))
        assert self.gate.last_run("user1") == date(2024, 5, 1)

    def test_second_run_same_day_closed(self):
        self.gate.should_run("user1", date(2024, 5, 1))
        assert not self.gate.should_run("user1", date(2024, 5, 1))

    def test_next_day_opens(self):
        self.gate.should_run("user1", date(2024, 5, 1))
        assert self.gate.should_run("user1", date(2024, 5, 2))

    def test_force_bypasses(self):
        self.gate.should_run("user1", date(2024, 5, 1))
        assert self.gate.should_run("user1", date(2024, 5, 1), force=True)

    def test_keys_independent(self):
        self.gate.should_run("user1", date(2024, 5, 1))
        assert self.gate.should_run("user2", date(2024, 5, 1))

    def test_reset(self):
        self.gate.should_run("user1", date(2024, 5, 1))
        self.gate.should_run("user2", date(2024, 5, 1))
        self.gate.reset("user1")
        assert self.gate.last_run("user1") is None
        assert self.gate.last_run("user2") == date(2024, 5, 1)
        self.gate.reset()
        assert self.gate.last_run("user2") is None

    def test_concurrent_callers_open_once(self):
        """Only one of many simultaneous callers gets through"""
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(self.gate.should_run("shared", date(2024, 5, 1)))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1
