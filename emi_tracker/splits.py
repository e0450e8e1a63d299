"""
Split Allocator Module

Validates percentage splits of a loan between participants and derives each
participant's monetary share from the loan's live schedule. Nothing here is
persisted; shares are recomputed every time they are requested.
"""

from decimal import Decimal
from dataclasses import dataclass, replace
from typing import Dict, List, Optional
from enum import Enum
import re

from .currency import Money
from .directory import ParticipantDirectory, normalize_email
from .recalculation import LoanState
from .schedule import ScheduleSummary


EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
FULL_SHARE = Decimal('100')
DEFAULT_TOLERANCE = Decimal('0.01')


class SplitErrorCode(Enum):
    """Reasons a split set is rejected"""
    EMPTY = "empty"
    PERCENTAGE_OUT_OF_RANGE = "percentage_out_of_range"
    MISSING_IDENTITY = "missing_identity"
    INVALID_EMAIL = "invalid_email"
    DUPLICATE_PARTICIPANT = "duplicate_participant"
    TOTAL_OUT_OF_RANGE = "total_out_of_range"


@dataclass(frozen=True)
class SplitInput:
    """One participant's share of a loan"""
    split_percentage: Decimal
    user_id: Optional[str] = None           # Registered participant
    participant_email: Optional[str] = None
    participant_name: Optional[str] = None
    is_owner: bool = False                  # The loan creator's own share

    def __post_init__(self):
        if not isinstance(self.split_percentage, Decimal):
            object.__setattr__(self, 'split_percentage', Decimal(str(self.split_percentage)))

    @property
    def is_external(self) -> bool:
        return not self.user_id

    @property
    def participant_key(self) -> str:
        """Stable key for allocation results: user ID, else normalized email"""
        return self.user_id or normalize_email(self.participant_email) or "owner"


@dataclass(frozen=True)
class SplitValidation:
    """Outcome of validate_splits"""
    valid: bool
    code: Optional[SplitErrorCode] = None
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid

    @classmethod
    def ok(cls) -> 'SplitValidation':
        return cls(valid=True)

    @classmethod
    def error(cls, code: SplitErrorCode, reason: str) -> 'SplitValidation':
        return cls(valid=False, code=code, reason=reason)


@dataclass(frozen=True)
class ParticipantView:
    """A participant's proportional view of a loan's totals"""
    split_percentage: Decimal
    principal: Money
    total_loan: Money
    emi: Money
    total_interest: Money
    total_gst: Money
    remaining_balance: Money


def validate_splits(splits: List[SplitInput],
                    tolerance: Decimal = DEFAULT_TOLERANCE) -> SplitValidation:
    """
    Validate a declared split set

    Rejects an empty set, percentages outside (0, 100], non-owner entries
    without a user ID or email, malformed emails, the same participant twice,
    and totals outside 100 ± tolerance.
    """
    if not splits:
        return SplitValidation.error(SplitErrorCode.EMPTY, "At least one split is required")

    seen = set()
    total = Decimal('0')
    for split in splits:
        percentage = split.split_percentage
        if percentage <= 0 or percentage > FULL_SHARE:
            return SplitValidation.error(
                SplitErrorCode.PERCENTAGE_OUT_OF_RANGE,
                f"Split percentage must be between 0 and 100. Found: {percentage}%"
            )

        email = normalize_email(split.participant_email)
        if not split.user_id and not email and not split.is_owner:
            return SplitValidation.error(
                SplitErrorCode.MISSING_IDENTITY,
                "External participants must have an email address"
            )
        if email and not EMAIL_PATTERN.match(email):
            return SplitValidation.error(
                SplitErrorCode.INVALID_EMAIL,
                f"Invalid email format for participant: {split.participant_email.strip()}"
            )

        key = split.participant_key
        if key in seen:
            return SplitValidation.error(
                SplitErrorCode.DUPLICATE_PARTICIPANT,
                f"Participant {key} appears more than once"
            )
        seen.add(key)
        total += percentage

    if total < FULL_SHARE - tolerance or total > FULL_SHARE + tolerance:
        return SplitValidation.error(
            SplitErrorCode.TOTAL_OUT_OF_RANGE,
            f"Splits must sum to 100%. Current total: {total:.2f}%"
        )

    return SplitValidation.ok()


def allocate(emi_amount: Money, splits: List[SplitInput]) -> Dict[str, Money]:
    """
    Each participant's share of the current installment

    Shares are rounded half-up independently; their sum may differ from
    ``emi_amount`` by up to one minor unit per participant.
    """
    return {
        split.participant_key: emi_amount.percentage(split.split_percentage)
        for split in splits
    }


def resolve_participants(splits: List[SplitInput],
                         directory: ParticipantDirectory) -> List[SplitInput]:
    """Attach registered user IDs to splits whose email is known to the directory"""
    resolved = []
    for split in splits:
        email = normalize_email(split.participant_email)
        user_id = split.user_id
        if not user_id and email:
            user_id = directory.resolve_email(email)
        name = split.participant_name.strip() if split.participant_name else None
        resolved.append(replace(
            split,
            user_id=user_id,
            participant_email=email,
            participant_name=name or None
        ))
    return resolved


def display_name(participant_name: Optional[str],
                 participant_email: Optional[str],
                 directory_email: Optional[str]) -> Optional[str]:
    """Participant name, else participant email, else the directory's email"""
    return participant_name or participant_email or directory_email


def display_email(participant_email: Optional[str],
                  directory_email: Optional[str]) -> Optional[str]:
    """Participant email, else the directory's email"""
    return participant_email or directory_email


def participant_view(principal: Money, summary: ScheduleSummary, state: LoanState,
                     current_emi: Money, split_percentage: Decimal) -> ParticipantView:
    """Scale a loan's totals down to one participant's percentage"""
    if not isinstance(split_percentage, Decimal):
        split_percentage = Decimal(str(split_percentage))
    return ParticipantView(
        split_percentage=split_percentage,
        principal=principal.percentage(split_percentage),
        total_loan=summary.total_loan.percentage(split_percentage),
        emi=current_emi.percentage(split_percentage),
        total_interest=summary.total_interest.percentage(split_percentage),
        total_gst=summary.total_gst.percentage(split_percentage),
        remaining_balance=state.remaining_balance.percentage(split_percentage)
    )
