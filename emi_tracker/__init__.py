"""
EMI Tracker

Tracks equated monthly installment loans: amortization schedules with GST and
interest discounts, daily recalculation of payment progress, and percentage
splits of a loan between participants. All money math uses Decimal.
"""

__version__ = "1.0.0"
