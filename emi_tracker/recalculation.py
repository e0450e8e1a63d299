"""
Recalculation Engine Module

Derives a loan's running state from its schedule and the current date, and
decides whether a stored state is stale. Everything here except the daily
gate is a pure function of its arguments; "today" is always passed in.
"""

from datetime import date
from dataclasses import dataclass
from typing import Dict, List, Optional
import threading

from .currency import Money
from .schedule import LoanTerms, ScheduleEntry


@dataclass(frozen=True)
class LoanState:
    """Running state of a loan as of a given day"""
    total_paid_emis: int
    remaining_tenure: int
    remaining_balance: Money
    is_completed: bool
    end_date: date


def recalculate(terms: LoanTerms, schedule: List[ScheduleEntry], today: date) -> LoanState:
    """
    Compute loan state as of ``today``

    An installment counts as paid once its bill date is on or before today.

    Args:
        terms: Loan terms the schedule was built from
        schedule: Full schedule, ordered by month
        today: Current calendar date

    Returns:
        LoanState
    """
    if len(schedule) != terms.tenure_months:
        raise ValueError(f"Schedule has {len(schedule)} entries, "
                         f"expected {terms.tenure_months}")

    paid = 0
    for entry in schedule:
        if entry.bill_date > today:
            break
        paid += 1

    if paid:
        remaining_balance = schedule[paid - 1].balance
    else:
        remaining_balance = terms.principal

    return LoanState(
        total_paid_emis=paid,
        remaining_tenure=terms.tenure_months - paid,
        remaining_balance=remaining_balance,
        is_completed=paid >= terms.tenure_months,
        end_date=schedule[-1].bill_date
    )


def needs_persist(previous: Optional[LoanState], new: LoanState) -> bool:
    """True when the new state differs materially from the stored one"""
    if previous is None:
        return True
    return (
        previous.total_paid_emis != new.total_paid_emis
        or previous.remaining_balance != new.remaining_balance
        or previous.is_completed != new.is_completed
        or previous.remaining_tenure != new.remaining_tenure
    )


def current_period_index(state: LoanState, tenure_months: int) -> int:
    """Index of the first unpaid period, clamped to [0, tenure - 1]"""
    return max(0, min(state.total_paid_emis, tenure_months - 1))


def current_installment(schedule: List[ScheduleEntry], state: LoanState) -> ScheduleEntry:
    """Schedule entry for the installment currently due (last one once completed)"""
    return schedule[current_period_index(state, len(schedule))]


def emi_with_gst(schedule: List[ScheduleEntry], state: LoanState) -> Money:
    """Current installment including GST"""
    return current_installment(schedule, state).emi_with_gst


def next_bill_date(schedule: List[ScheduleEntry], today: date) -> Optional[date]:
    """First bill date strictly after today, or None once the schedule has run out"""
    for entry in schedule:
        if entry.bill_date > today:
            return entry.bill_date
    return None


class DailyRecalculationGate:
    """
    Opens at most once per calendar day for each collection key

    The engine itself is idempotent; the gate only keeps the daily driver from
    redoing work. ``force`` is the on-demand path and always opens.
    """

    def __init__(self):
        self._last_run: Dict[str, date] = {}
        self._lock = threading.Lock()

    def should_run(self, key: str, today: date, force: bool = False) -> bool:
        with self._lock:
            if not force and self._last_run.get(key) == today:
                return False
            self._last_run[key] = today
            return True

    def last_run(self, key: str) -> Optional[date]:
        with self._lock:
            return self._last_run.get(key)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._last_run.clear()
            else:
                self._last_run.pop(key, None)
