"""
Tests for portfolio statistics and loan list filtering
"""

import pytest
from decimal import Decimal
from datetime import date

from emi_tracker.currency import Money, Currency
from emi_tracker.storage import InMemoryStorage
from emi_tracker.schedule import LoanTerms
from emi_tracker.loans import EmiManager
from emi_tracker.stats import (
    StatusFilter, SortBy, ALL_TAGS, compute_stats, tag_statistics, filter_loans
)


def inr(amount: str) -> Money:
    return Money(Decimal(amount), Currency.INR)


class TestPortfolioStats:
    """Test aggregation over a user's loans"""

    def setup_method(self):
        self.manager = EmiManager(InMemoryStorage(), clock=lambda: date(2024, 6, 1))
        self.laptop = self.manager.create_emi("owner1", "Laptop", LoanTerms(
            inr('120000'), Decimal('12'), 12, date(2024, 1, 15)), tag="Electronics")
        self.phone = self.manager.create_emi("owner1", "Phone", LoanTerms(
            inr('30000'), Decimal('0'), 6, date(2024, 3, 10)), tag="Electronics")
        self.sofa = self.manager.create_emi("owner1", "Sofa", LoanTerms(
            inr('20000'), Decimal('0'), 2, date(2024, 1, 1)), tag="Home")
        self.bike = self.manager.create_emi("owner1", "Bike", LoanTerms(
            inr('60000'), Decimal('10'), 24, date(2024, 2, 1)), tag="Personal")
        self.manager.archive_emi(self.bike.id)
        self.loans = self.manager.list_emis(owner_id="owner1")

    def test_active_scope_excludes_archived(self):
        stats = compute_stats(self.loans, Currency.INR)
        assert stats.total_emis == 3
        assert stats.completed_emis == 1
        assert stats.active_emis == 2
        assert stats.tag_counts == {"Electronics": 2, "Home": 1}

    def test_completed_loans_contribute_nothing(self):
        stats = compute_stats(self.loans, Currency.INR)
        assert stats.total_monthly_payment == self.laptop.emi + self.phone.emi
        laptop = self.manager.get_emi(self.laptop.id)
        phone = self.manager.get_emi(self.phone.id)
        assert stats.total_remaining_balance == laptop.remaining_balance + phone.remaining_balance

    def test_tag_filter_keeps_all_tag_counts(self):
        stats = compute_stats(self.loans, Currency.INR, tag="Home")
        assert stats.total_emis == 1
        assert stats.completed_emis == 1
        assert stats.total_monthly_payment.is_zero()
        assert stats.tag_counts == {"Electronics": 2, "Home": 1}

    def test_archived_scope(self):
        stats = compute_stats(self.loans, Currency.INR, status=StatusFilter.ARCHIVED)
        assert stats.total_emis == 1
        assert stats.total_monthly_payment == self.bike.emi

    def test_all_scope(self):
        stats = compute_stats(self.loans, Currency.INR, status=StatusFilter.ALL)
        assert stats.total_emis == 4
        assert stats.tag_counts["Personal"] == 1

    def test_empty(self):
        stats = compute_stats([], Currency.INR)
        assert stats.total_emis == 0
        assert stats.total_monthly_payment.is_zero()
        assert stats.tag_counts == {}

    def test_tag_statistics(self):
        by_tag = tag_statistics(self.loans, Currency.INR)
        assert sorted(by_tag) == ["Electronics", "Home"]
        assert by_tag["Electronics"].total_emis == 2
        assert by_tag["Home"].active_emis == 0


class TestFilterLoans:
    """Test list search, filters and sorting"""

    def setup_method(self):
        self.manager = EmiManager(InMemoryStorage(), clock=lambda: date(2024, 6, 1))
        self.manager.create_emi("owner1", "Laptop", LoanTerms(
            inr('120000'), Decimal('12'), 12, date(2024, 1, 15)), tag="Electronics")
        self.manager.create_emi("owner1", "Air Conditioner", LoanTerms(
            inr('45000'), Decimal('0'), 3, date(2024, 1, 1)), tag="Home")
        bike = self.manager.create_emi("owner1", "Bike", LoanTerms(
            inr('60000'), Decimal('10'), 24, date(2024, 2, 1)))
        self.manager.archive_emi(bike.id)
        self.loans = self.manager.list_emis(owner_id="owner1")

    def names(self, loans):
        return [loan.item_name for loan in loans]

    def test_search_is_case_insensitive(self):
        assert self.names(filter_loans(self.loans, search="LAP")) == ["Laptop"]

    def test_status_filters(self):
        assert sorted(self.names(filter_loans(self.loans, status=StatusFilter.ACTIVE))) == ["Bike", "Laptop"]
        assert self.names(filter_loans(self.loans, status=StatusFilter.COMPLETED)) == ["Air Conditioner"]
        assert self.names(filter_loans(self.loans, status=StatusFilter.ARCHIVED)) == ["Bike"]

    def test_tag_filter(self):
        assert self.names(filter_loans(self.loans, tag="Home")) == ["Air Conditioner"]
        assert len(filter_loans(self.loans, tag=ALL_TAGS)) == 3

    def test_sort_by_name(self):
        assert self.names(filter_loans(self.loans, sort_by=SortBy.NAME)) == ["Air Conditioner", "Bike", "Laptop"]

    def test_sort_by_emi_descending(self):
        loans = filter_loans(self.loans, sort_by=SortBy.EMI, descending=True)
        amounts = [loan.emi.amount for loan in loans]
        assert amounts == sorted(amounts, reverse=True)

    def test_sort_by_end_date(self):
        assert self.names(filter_loans(self.loans, sort_by=SortBy.END_DATE)) == ["Air Conditioner", "Laptop", "Bike"]

    def test_sort_by_date_added(self):
        assert self.names(filter_loans(self.loans, sort_by=SortBy.DATE_ADDED)) == ["Laptop", "Air Conditioner", "Bike"]

    def test_sort_keys_from_strings(self):
        assert SortBy("dateAdded") == SortBy.DATE_ADDED
        assert StatusFilter("archived") == StatusFilter.ARCHIVED
        with pytest.raises(ValueError):
            SortBy("price")
