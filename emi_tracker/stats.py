"""
Portfolio Statistics Module

Aggregates a user's loans for dashboards: counts, monthly outflow and
outstanding balance, overall and per tag, plus list filtering and sorting.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
from enum import Enum

from .currency import Currency, Money, zero
from .loans import EmiLoan


class StatusFilter(Enum):
    """Which loans a view includes"""
    ACTIVE = "active"          # Not completed, not archived
    COMPLETED = "completed"
    ARCHIVED = "archived"
    ALL = "all"


class SortBy(Enum):
    """Sort keys for loan lists"""
    DATE_ADDED = "dateAdded"
    NAME = "name"
    BALANCE = "balance"
    EMI = "emi"
    END_DATE = "endDate"


ALL_TAGS = "All"


@dataclass
class PortfolioStats:
    """Aggregate figures over a set of loans"""
    total_emis: int
    active_emis: int
    completed_emis: int
    total_monthly_payment: Money
    total_remaining_balance: Money
    tag_counts: Dict[str, int] = field(default_factory=dict)


def _scope(loans: List[EmiLoan], status: StatusFilter) -> List[EmiLoan]:
    """Loans counted by statistics: archived ones only when asked for"""
    if status == StatusFilter.ARCHIVED:
        return [loan for loan in loans if loan.is_archived]
    if status == StatusFilter.ALL:
        return list(loans)
    return [loan for loan in loans if not loan.is_archived]


def compute_stats(loans: List[EmiLoan], currency: Currency,
                  status: StatusFilter = StatusFilter.ACTIVE,
                  tag: str = ALL_TAGS) -> PortfolioStats:
    """
    Compute portfolio statistics

    Completed loans are counted but contribute nothing to monthly payment or
    remaining balance. ``tag_counts`` always covers every tag in scope so a
    tag picker can show counts while a single tag is selected.

    Args:
        loans: Loans to aggregate (all must share ``currency``)
        currency: Currency of the totals
        status: Archive scope
        tag: Restrict to one tag, or "All"
    """
    scoped = _scope(loans, status)

    tag_counts: Dict[str, int] = {}
    for loan in scoped:
        tag_counts[loan.tag] = tag_counts.get(loan.tag, 0) + 1

    if tag != ALL_TAGS:
        scoped = [loan for loan in scoped if loan.tag == tag]

    monthly = zero(currency)
    remaining = zero(currency)
    completed = 0
    for loan in scoped:
        if loan.is_completed:
            completed += 1
            continue
        monthly = monthly + loan.emi
        remaining = remaining + loan.remaining_balance

    return PortfolioStats(
        total_emis=len(scoped),
        active_emis=len(scoped) - completed,
        completed_emis=completed,
        total_monthly_payment=monthly,
        total_remaining_balance=remaining,
        tag_counts=tag_counts
    )


def tag_statistics(loans: List[EmiLoan], currency: Currency,
                   status: StatusFilter = StatusFilter.ACTIVE) -> Dict[str, PortfolioStats]:
    """Statistics grouped by tag"""
    scoped = _scope(loans, status)
    tags = sorted({loan.tag for loan in scoped})
    return {tag: compute_stats(scoped, currency, StatusFilter.ALL, tag) for tag in tags}


def filter_loans(
    loans: List[EmiLoan],
    search: str = "",
    status: StatusFilter = StatusFilter.ALL,
    tag: str = ALL_TAGS,
    sort_by: Optional[SortBy] = None,
    descending: bool = False
) -> List[EmiLoan]:
    """
    Filter a loan list by name search, status and tag, then sort it

    Status here is per-loan: "active" means not completed, "completed" means
    completed, "archived" means archived, regardless of the other flags.
    """
    needle = search.strip().lower()

    def matches(loan: EmiLoan) -> bool:
        if needle and needle not in loan.item_name.lower():
            return False
        if tag != ALL_TAGS and loan.tag != tag:
            return False
        if status == StatusFilter.ARCHIVED:
            return loan.is_archived
        if status == StatusFilter.COMPLETED:
            return loan.is_completed
        if status == StatusFilter.ACTIVE:
            return not loan.is_completed
        return True

    result = [loan for loan in loans if matches(loan)]

    if sort_by is not None:
        keys = {
            SortBy.DATE_ADDED: lambda loan: loan.created_at,
            SortBy.NAME: lambda loan: loan.item_name.lower(),
            SortBy.BALANCE: lambda loan: loan.remaining_balance.amount,
            SortBy.EMI: lambda loan: loan.emi.amount,
            SortBy.END_DATE: lambda loan: loan.state.end_date,
        }
        result.sort(key=keys[sort_by], reverse=descending)

    return result
