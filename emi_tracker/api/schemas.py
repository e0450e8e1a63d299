"""
Pydantic schemas for API requests and responses
"""

from datetime import date
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..currency import Money, Currency, decimal_from_string
from ..schedule import LoanTerms, DiscountType, ScheduleEntry
from ..splits import SplitInput, ParticipantView
from ..loans import EmiLoan, EmiSplit
from ..stats import PortfolioStats


def money_dict(money: Money) -> Dict[str, str]:
    """Decimal amount as string plus currency code"""
    return {"amount": str(money.amount), "currency": money.currency.code}


class LoanTermsModel(BaseModel):
    principal: str = Field(..., description="Principal, e.g. \"120000\" or \"1,20,000\"")
    currency: Optional[str] = Field(None, description="Currency code, defaults to configuration")
    annual_interest_rate: str = Field(..., description="Annual rate in percent")
    tenure_months: int
    bill_date: str  # ISO date string
    gst_percent: str = "0"
    interest_discount: str = "0"
    interest_discount_type: str = Field("percent", description="percent or amount")

    def to_loan_terms(self, default_currency: str) -> LoanTerms:
        code = (self.currency or default_currency).upper()
        if code not in Currency.__members__:
            raise ValueError(f"Unsupported currency: {code}")
        currency = Currency[code]
        return LoanTerms(
            principal=Money(decimal_from_string(self.principal), currency),
            annual_interest_rate=decimal_from_string(self.annual_interest_rate),
            tenure_months=self.tenure_months,
            bill_date=date.fromisoformat(self.bill_date),
            gst_percent=decimal_from_string(self.gst_percent),
            interest_discount=decimal_from_string(self.interest_discount),
            interest_discount_type=DiscountType(self.interest_discount_type)
        )


class CreateEmiRequest(BaseModel):
    owner_id: str
    item_name: str
    tag: Optional[str] = None
    terms: LoanTermsModel


class UpdateEmiRequest(BaseModel):
    actor_id: Optional[str] = None
    item_name: Optional[str] = None
    tag: Optional[str] = None
    terms: Optional[LoanTermsModel] = None


class BulkArchiveRequest(BaseModel):
    emi_ids: List[str]
    actor_id: Optional[str] = None


class RecalculateRequest(BaseModel):
    owner_id: Optional[str] = None
    force: bool = Field(False, description="Bypass the once-per-day gate")
    as_of: Optional[str] = None  # ISO date string, defaults to today


class SplitModel(BaseModel):
    split_percentage: str
    user_id: Optional[str] = None
    participant_email: Optional[str] = None
    participant_name: Optional[str] = None
    is_owner: bool = False

    def to_split_input(self) -> SplitInput:
        return SplitInput(
            split_percentage=decimal_from_string(self.split_percentage),
            user_id=self.user_id,
            participant_email=self.participant_email,
            participant_name=self.participant_name,
            is_owner=self.is_owner
        )


class SetSplitsRequest(BaseModel):
    actor_id: Optional[str] = None
    splits: List[SplitModel]


def loan_response(loan: EmiLoan) -> Dict[str, Any]:
    terms = loan.terms
    return {
        "id": loan.id,
        "owner_id": loan.owner_id,
        "item_name": loan.item_name,
        "tag": loan.tag,
        "is_archived": loan.is_archived,
        "principal": money_dict(terms.principal),
        "annual_interest_rate": str(terms.annual_interest_rate),
        "tenure_months": terms.tenure_months,
        "bill_date": terms.bill_date.isoformat(),
        "gst_percent": str(terms.gst_percent),
        "interest_discount": str(terms.interest_discount),
        "interest_discount_type": terms.interest_discount_type.value,
        "emi": money_dict(loan.summary.emi),
        "total_interest": money_dict(loan.summary.total_interest),
        "total_gst": money_dict(loan.summary.total_gst),
        "total_loan": money_dict(loan.summary.total_loan),
        "total_paid_emis": loan.state.total_paid_emis,
        "remaining_tenure": loan.state.remaining_tenure,
        "remaining_balance": money_dict(loan.state.remaining_balance),
        "is_completed": loan.state.is_completed,
        "end_date": loan.state.end_date.isoformat(),
        "created_at": loan.created_at.isoformat(),
        "updated_at": loan.updated_at.isoformat()
    }


def entry_response(entry: ScheduleEntry) -> Dict[str, Any]:
    return {
        "month": entry.month,
        "bill_date": entry.bill_date.isoformat(),
        "emi": money_dict(entry.emi_amount),
        "interest": money_dict(entry.interest_amount),
        "principal_paid": money_dict(entry.principal_amount),
        "balance": money_dict(entry.balance),
        "gst": money_dict(entry.gst_amount)
    }


def split_response(split: EmiSplit) -> Dict[str, Any]:
    return {
        "id": split.id,
        "emi_id": split.emi_id,
        "user_id": split.user_id,
        "participant_name": split.participant_name,
        "participant_email": split.participant_email,
        "split_percentage": str(split.split_percentage),
        "is_external": split.is_external,
        "display_name": split.display_name,
        "display_email": split.display_email
    }


def participant_view_response(view: ParticipantView) -> Dict[str, Any]:
    return {
        "split_percentage": str(view.split_percentage),
        "principal": money_dict(view.principal),
        "total_loan": money_dict(view.total_loan),
        "emi": money_dict(view.emi),
        "total_interest": money_dict(view.total_interest),
        "total_gst": money_dict(view.total_gst),
        "remaining_balance": money_dict(view.remaining_balance)
    }


def stats_response(stats: PortfolioStats) -> Dict[str, Any]:
    return {
        "total_emis": stats.total_emis,
        "active_emis": stats.active_emis,
        "completed_emis": stats.completed_emis,
        "total_monthly_payment": money_dict(stats.total_monthly_payment),
        "total_remaining_balance": money_dict(stats.total_remaining_balance),
        "tag_counts": stats.tag_counts
    }
