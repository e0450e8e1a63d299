"""
Loan Module

Handles EMI loan creation and editing, schedule persistence, daily
recalculation of payment progress, archiving, and participant splits.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Tuple
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .config import get_config
from .directory import ParticipantDirectory, normalize_email
from .logging_config import get_logger, log_action
from .schedule import (
    LoanTerms, ScheduleEntry, ScheduleSummary, DiscountType,
    build_schedule, summarize_schedule
)
from .recalculation import (
    LoanState, DailyRecalculationGate, recalculate, needs_persist,
    emi_with_gst, next_bill_date
)
from .splits import (
    SplitInput, ParticipantView, validate_splits, allocate,
    resolve_participants, display_name, display_email, participant_view
)


@dataclass
class EmiLoan(StorageRecord):
    """An EMI loan with its terms, aggregate totals and running state"""
    owner_id: str
    item_name: str
    terms: LoanTerms
    summary: ScheduleSummary
    state: LoanState
    tag: str = "Personal"
    is_archived: bool = False

    @property
    def currency(self) -> Currency:
        return self.terms.currency

    @property
    def emi(self) -> Money:
        return self.summary.emi

    @property
    def is_completed(self) -> bool:
        return self.state.is_completed

    @property
    def remaining_balance(self) -> Money:
        return self.state.remaining_balance


@dataclass
class EmiSplit(StorageRecord):
    """A participant's stored share of a loan"""
    emi_id: str
    split_percentage: Decimal
    created_by: str
    user_id: Optional[str] = None
    participant_name: Optional[str] = None
    participant_email: Optional[str] = None
    is_external: bool = True
    position: int = 0

    # Resolved on read, never stored
    display_name: Optional[str] = field(default=None, compare=False)
    display_email: Optional[str] = field(default=None, compare=False)

    def to_input(self) -> SplitInput:
        return SplitInput(
            split_percentage=self.split_percentage,
            user_id=self.user_id,
            participant_email=self.participant_email,
            participant_name=self.participant_name
        )


@dataclass
class RecalculationResult:
    """Outcome of a recalculation pass over a collection of loans"""
    ran: bool
    as_of: date
    checked: int = 0
    updated: List[str] = field(default_factory=list)


class EmiManager:
    """
    Manages EMI loans from creation through completion
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: Optional[AuditTrail] = None,
        directory: Optional[ParticipantDirectory] = None,
        clock: Callable[[], date] = date.today,
        gate: Optional[DailyRecalculationGate] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.directory = directory
        self.clock = clock
        self.gate = gate or DailyRecalculationGate()
        self.logger = get_logger("emi_tracker.loans")

        self.emis_table = "emis"
        self.schedule_table = "amortization_schedules"
        self.splits_table = "emi_splits"

    def create_emi(
        self,
        owner_id: str,
        item_name: str,
        terms: LoanTerms,
        tag: Optional[str] = None,
        today: Optional[date] = None
    ) -> EmiLoan:
        """
        Create a loan, build its schedule and compute its state as of today

        Args:
            owner_id: Creator and owner of the loan
            item_name: What the loan paid for
            terms: Validated loan terms
            tag: Grouping label (defaults to the configured default tag)
            today: Current date (defaults to the clock)

        Returns:
            Created EmiLoan
        """
        if not item_name or not item_name.strip():
            raise ValueError("Item name is required")

        today = today or self.clock()
        now = datetime.now(timezone.utc)

        schedule = build_schedule(terms)
        loan = EmiLoan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            owner_id=owner_id,
            item_name=item_name.strip(),
            terms=terms,
            summary=summarize_schedule(terms, schedule),
            state=recalculate(terms, schedule, today),
            tag=tag or get_config().default_tag
        )

        with self.storage.atomic():
            self._save_loan(loan)
            self._replace_schedule(loan.id, schedule)

        self._audit(
            AuditEventType.EMI_CREATED, "emi", loan.id, owner_id,
            {
                "item_name": loan.item_name,
                "principal": terms.principal.to_string(),
                "annual_interest_rate": str(terms.annual_interest_rate),
                "tenure_months": terms.tenure_months,
                "bill_date": terms.bill_date.isoformat(),
                "emi": loan.emi.to_string()
            }
        )
        log_action(self.logger, "info", f"Created EMI {loan.item_name}",
                   user_id=owner_id, action="create_emi", resource=loan.id,
                   extra={"emi": str(loan.emi.amount), "tenure": terms.tenure_months})

        return loan

    def update_emi(
        self,
        emi_id: str,
        terms: Optional[LoanTerms] = None,
        item_name: Optional[str] = None,
        tag: Optional[str] = None,
        actor_id: Optional[str] = None,
        today: Optional[date] = None
    ) -> EmiLoan:
        """
        Edit a loan. New terms rebuild and replace the whole schedule.
        """
        loan = self._require_loan(emi_id)
        today = today or self.clock()

        schedule = None
        if terms is not None:
            schedule = build_schedule(terms)
            loan.terms = terms
            loan.summary = summarize_schedule(terms, schedule)
            loan.state = recalculate(terms, schedule, today)
        if item_name is not None:
            if not item_name.strip():
                raise ValueError("Item name is required")
            loan.item_name = item_name.strip()
        if tag is not None:
            loan.tag = tag or get_config().default_tag
        loan.updated_at = datetime.now(timezone.utc)

        with self.storage.atomic():
            self._save_loan(loan)
            if schedule is not None:
                self._replace_schedule(loan.id, schedule)

        self._audit(
            AuditEventType.EMI_UPDATED, "emi", loan.id, actor_id,
            {"terms_changed": terms is not None, "item_name": loan.item_name, "tag": loan.tag}
        )
        log_action(self.logger, "info", f"Updated EMI {loan.item_name}",
                   user_id=actor_id, action="update_emi", resource=loan.id,
                   extra={"schedule_rebuilt": schedule is not None})

        return loan

    def get_emi(self, emi_id: str) -> Optional[EmiLoan]:
        """Get loan by ID"""
        data = self.storage.load(self.emis_table, emi_id)
        if data:
            return self._loan_from_dict(data)
        return None

    def list_emis(self, owner_id: Optional[str] = None, include_archived: bool = True) -> List[EmiLoan]:
        """List loans, newest first"""
        filters = {"owner_id": owner_id} if owner_id else {}
        loans = [self._loan_from_dict(data) for data in self.storage.find(self.emis_table, filters)]
        if not include_archived:
            loans = [loan for loan in loans if not loan.is_archived]
        loans.sort(key=lambda x: x.created_at, reverse=True)
        return loans

    def get_schedule(self, emi_id: str) -> List[ScheduleEntry]:
        """Get the stored amortization schedule for a loan, ordered by month"""
        entries = [
            self._entry_from_dict(data)
            for data in self.storage.find(self.schedule_table, {"emi_id": emi_id})
        ]
        entries.sort(key=lambda x: x.month)
        return entries

    def delete_emi(self, emi_id: str, actor_id: Optional[str] = None) -> None:
        """Delete a loan together with its schedule and splits"""
        loan = self._require_loan(emi_id)

        with self.storage.atomic():
            self.storage.delete_matching(self.splits_table, {"emi_id": emi_id})
            self.storage.delete_matching(self.schedule_table, {"emi_id": emi_id})
            self.storage.delete(self.emis_table, emi_id)

        self._audit(AuditEventType.EMI_DELETED, "emi", emi_id, actor_id,
                    {"item_name": loan.item_name})
        log_action(self.logger, "info", f"Deleted EMI {loan.item_name}",
                   user_id=actor_id, action="delete_emi", resource=emi_id)

    def archive_emi(self, emi_id: str, actor_id: Optional[str] = None) -> EmiLoan:
        """Hide a loan from active views"""
        return self._set_archived(emi_id, True, actor_id)

    def unarchive_emi(self, emi_id: str, actor_id: Optional[str] = None) -> EmiLoan:
        """Return an archived loan to active views"""
        return self._set_archived(emi_id, False, actor_id)

    def bulk_archive(self, emi_ids: List[str], actor_id: Optional[str] = None) -> List[EmiLoan]:
        """Archive several loans at once"""
        for emi_id in emi_ids:
            self._require_loan(emi_id)
        return [self._set_archived(emi_id, True, actor_id) for emi_id in emi_ids]

    def recalculate_emi(self, emi_id: str, today: Optional[date] = None) -> Tuple[EmiLoan, bool]:
        """
        Bring one loan's state up to date

        Returns:
            (loan, persisted) where persisted is False when nothing changed
        """
        loan = self._require_loan(emi_id)
        return self._recalculate_loan(loan, today or self.clock())

    def recalculate_all(
        self,
        owner_id: Optional[str] = None,
        today: Optional[date] = None,
        force: bool = False
    ) -> RecalculationResult:
        """
        Daily recalculation driver for a collection of loans

        Runs at most once per calendar day per collection unless forced.
        Only loans whose state actually changed are written back.

        Args:
            owner_id: Restrict to one owner's loans (None for every loan)
            today: Current date (defaults to the clock)
            force: On-demand run that bypasses the daily gate
        """
        today = today or self.clock()
        key = owner_id or "*"
        if not self.gate.should_run(key, today, force=force):
            log_action(self.logger, "debug", "Recalculation already ran today",
                       user_id=owner_id, action="recalculate_all",
                       extra={"as_of": today.isoformat()})
            return RecalculationResult(ran=False, as_of=today)

        result = RecalculationResult(ran=True, as_of=today)
        for loan in self.list_emis(owner_id=owner_id):
            _, persisted = self._recalculate_loan(loan, today)
            result.checked += 1
            if persisted:
                result.updated.append(loan.id)

        log_action(self.logger, "info",
                   f"Recalculated {result.checked} EMIs, {len(result.updated)} updated",
                   user_id=owner_id, action="recalculate_all",
                   extra={"as_of": today.isoformat(), "forced": force})
        return result

    def current_emi_with_gst(self, emi_id: str, today: Optional[date] = None) -> Money:
        """Installment currently due, including GST"""
        loan = self._require_loan(emi_id)
        schedule = self._schedule_for(loan)
        state = recalculate(loan.terms, schedule, today or self.clock())
        return emi_with_gst(schedule, state)

    def next_bill_date(self, emi_id: str, today: Optional[date] = None) -> Optional[date]:
        """Next bill date after today, None once every installment is billed"""
        loan = self._require_loan(emi_id)
        return next_bill_date(self._schedule_for(loan), today or self.clock())

    def set_splits(
        self,
        emi_id: str,
        splits: List[SplitInput],
        actor_id: Optional[str] = None
    ) -> List[EmiSplit]:
        """
        Replace every split of a loan

        Raises:
            ValueError: If the split set fails validation
        """
        loan = self._require_loan(emi_id)

        splits = [
            replace(split, user_id=loan.owner_id) if split.is_owner and not split.user_id else split
            for split in splits
        ]
        if self.directory:
            splits = resolve_participants(splits, self.directory)

        # Duplicates are checked on resolved identities
        tolerance = Decimal(get_config().split_tolerance)
        validation = validate_splits(splits, tolerance=tolerance)
        if not validation:
            raise ValueError(validation.reason)

        now = datetime.now(timezone.utc)
        records = [
            EmiSplit(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                emi_id=emi_id,
                split_percentage=split.split_percentage,
                created_by=actor_id or "",
                user_id=split.user_id,
                participant_name=(split.participant_name or "").strip() or None,
                participant_email=normalize_email(split.participant_email),
                is_external=split.is_external,
                position=position
            )
            for position, split in enumerate(splits)
        ]

        with self.storage.atomic():
            self.storage.delete_matching(self.splits_table, {"emi_id": emi_id})
            for record in records:
                self.storage.save(self.splits_table, record.id, self._split_to_dict(record))

        self._audit(
            AuditEventType.SPLITS_SET, "emi", emi_id, actor_id,
            {"participants": [r.user_id or r.participant_email for r in records],
             "percentages": [r.split_percentage for r in records]}
        )
        log_action(self.logger, "info", f"Set {len(records)} splits",
                   user_id=actor_id, action="set_splits", resource=emi_id)

        return self.get_splits(emi_id)

    def get_splits(self, emi_id: str) -> List[EmiSplit]:
        """Get a loan's splits in creation order, with display fields resolved"""
        splits = [
            self._split_from_dict(data)
            for data in self.storage.find(self.splits_table, {"emi_id": emi_id})
        ]
        splits.sort(key=lambda x: (x.created_at, x.position))

        resolved = []
        for split in splits:
            directory_email = None
            if split.user_id and self.directory:
                directory_email = self.directory.email_for(split.user_id)
            resolved.append(replace(
                split,
                display_name=display_name(split.participant_name, split.participant_email, directory_email),
                display_email=display_email(split.participant_email, directory_email)
            ))
        return resolved

    def remove_split(
        self,
        emi_id: str,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
        actor_id: Optional[str] = None
    ) -> int:
        """
        Remove one participant's split, by registered user ID or external email

        Returns:
            Number of splits removed
        """
        self._require_loan(emi_id)
        if user_id:
            filters = {"emi_id": emi_id, "user_id": user_id}
        elif email:
            filters = {"emi_id": emi_id, "participant_email": normalize_email(email), "is_external": True}
        else:
            raise ValueError("Either user_id or email must be provided")

        with self.storage.atomic():
            removed = self.storage.delete_matching(self.splits_table, filters)

        self._audit(AuditEventType.SPLIT_REMOVED, "emi", emi_id, actor_id,
                    {"user_id": user_id, "email": normalize_email(email), "removed": removed})
        return removed

    def remove_all_splits(self, emi_id: str, actor_id: Optional[str] = None) -> int:
        """Remove every split; the loan reverts to sole ownership"""
        self._require_loan(emi_id)
        with self.storage.atomic():
            removed = self.storage.delete_matching(self.splits_table, {"emi_id": emi_id})
        self._audit(AuditEventType.SPLITS_CLEARED, "emi", emi_id, actor_id, {"removed": removed})
        return removed

    def split_allocation(self, emi_id: str, today: Optional[date] = None) -> Dict[str, Money]:
        """
        Each participant's share of the installment currently due (with GST)

        A loan without splits belongs wholly to its owner.
        """
        loan = self._require_loan(emi_id)
        current = self.current_emi_with_gst(emi_id, today)
        splits = self.get_splits(emi_id)
        if not splits:
            return {loan.owner_id: current}
        return allocate(current, [split.to_input() for split in splits])

    def participant_view(
        self,
        emi_id: str,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
        today: Optional[date] = None
    ) -> Optional[ParticipantView]:
        """A participant's proportional view of the loan, None when they hold no split"""
        loan = self._require_loan(emi_id)
        email = normalize_email(email)
        for split in self.get_splits(emi_id):
            if (user_id and split.user_id == user_id) or (email and split.participant_email == email):
                schedule = self._schedule_for(loan)
                state = recalculate(loan.terms, schedule, today or self.clock())
                return participant_view(
                    loan.terms.principal, loan.summary, state,
                    emi_with_gst(schedule, state),
                    split.split_percentage
                )
        return None

    def _recalculate_loan(self, loan: EmiLoan, today: date) -> Tuple[EmiLoan, bool]:
        """Recompute state and write it back only when it changed"""
        schedule = self.get_schedule(loan.id)
        rebuilt = len(schedule) != loan.terms.tenure_months
        if rebuilt:
            # A partial stored schedule is never valid
            schedule = build_schedule(loan.terms)

        new_state = recalculate(loan.terms, schedule, today)
        if not rebuilt and not needs_persist(loan.state, new_state):
            return loan, False

        previous_paid = loan.state.total_paid_emis
        loan.state = new_state
        loan.updated_at = datetime.now(timezone.utc)
        with self.storage.atomic():
            self._save_loan(loan)
            if rebuilt:
                self._replace_schedule(loan.id, schedule)

        self._audit(
            AuditEventType.EMI_RECALCULATED, "emi", loan.id, None,
            {"as_of": today.isoformat(), "previous_paid_emis": previous_paid,
             "total_paid_emis": new_state.total_paid_emis,
             "remaining_balance": new_state.remaining_balance.to_string(),
             "is_completed": new_state.is_completed, "schedule_rebuilt": rebuilt}
        )
        return loan, True

    def _schedule_for(self, loan: EmiLoan) -> List[ScheduleEntry]:
        schedule = self.get_schedule(loan.id)
        if len(schedule) != loan.terms.tenure_months:
            schedule = build_schedule(loan.terms)
        return schedule

    def _set_archived(self, emi_id: str, archived: bool, actor_id: Optional[str]) -> EmiLoan:
        loan = self._require_loan(emi_id)
        loan.is_archived = archived
        loan.updated_at = datetime.now(timezone.utc)
        self._save_loan(loan)

        event_type = AuditEventType.EMI_ARCHIVED if archived else AuditEventType.EMI_UNARCHIVED
        self._audit(event_type, "emi", emi_id, actor_id, {})
        return loan

    def _require_loan(self, emi_id: str) -> EmiLoan:
        loan = self.get_emi(emi_id)
        if not loan:
            raise ValueError(f"EMI {emi_id} not found")
        return loan

    def _audit(self, event_type: AuditEventType, entity_type: str, entity_id: str,
               user_id: Optional[str], metadata: Dict) -> None:
        if self.audit_trail and get_config().enable_audit_logging:
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                metadata=metadata,
                user_id=user_id
            )

    def _replace_schedule(self, emi_id: str, schedule: List[ScheduleEntry]) -> None:
        """Delete-then-insert every entry; callers wrap this in storage.atomic()"""
        self.storage.delete_matching(self.schedule_table, {"emi_id": emi_id})
        for entry in schedule:
            entry_id = f"{emi_id}_{entry.month}"
            self.storage.save(self.schedule_table, entry_id, self._entry_to_dict(entry, emi_id))

    def _save_loan(self, loan: EmiLoan) -> None:
        self.storage.save(self.emis_table, loan.id, self._loan_to_dict(loan))

    def _loan_to_dict(self, loan: EmiLoan) -> Dict:
        """Convert loan to dictionary"""
        terms = loan.terms
        return {
            'id': loan.id,
            'created_at': loan.created_at.isoformat(),
            'updated_at': loan.updated_at.isoformat(),
            'owner_id': loan.owner_id,
            'item_name': loan.item_name,
            'tag': loan.tag,
            'is_archived': loan.is_archived,
            'currency': terms.currency.code,
            'terms': {
                'principal': str(terms.principal.amount),
                'annual_interest_rate': str(terms.annual_interest_rate),
                'tenure_months': terms.tenure_months,
                'bill_date': terms.bill_date.isoformat(),
                'gst_percent': str(terms.gst_percent),
                'interest_discount': str(terms.interest_discount),
                'interest_discount_type': terms.interest_discount_type.value
            },
            'emi': str(loan.summary.emi.amount),
            'total_interest': str(loan.summary.total_interest.amount),
            'total_gst': str(loan.summary.total_gst.amount),
            'total_loan': str(loan.summary.total_loan.amount),
            'total_paid_emis': loan.state.total_paid_emis,
            'remaining_tenure': loan.state.remaining_tenure,
            'remaining_balance': str(loan.state.remaining_balance.amount),
            'is_completed': loan.state.is_completed,
            'end_date': loan.state.end_date.isoformat()
        }

    def _loan_from_dict(self, data: Dict) -> EmiLoan:
        """Convert dictionary to loan"""
        currency = Currency[data['currency']]
        terms_data = data['terms']

        def get_money(key: str) -> Money:
            return Money(Decimal(data[key]), currency)

        terms = LoanTerms(
            principal=Money(Decimal(terms_data['principal']), currency),
            annual_interest_rate=Decimal(terms_data['annual_interest_rate']),
            tenure_months=terms_data['tenure_months'],
            bill_date=date.fromisoformat(terms_data['bill_date']),
            gst_percent=Decimal(terms_data['gst_percent']),
            interest_discount=Decimal(terms_data['interest_discount']),
            interest_discount_type=DiscountType(terms_data['interest_discount_type'])
        )
        end_date = date.fromisoformat(data['end_date'])

        return EmiLoan(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            owner_id=data['owner_id'],
            item_name=data['item_name'],
            terms=terms,
            summary=ScheduleSummary(
                emi=get_money('emi'),
                total_interest=get_money('total_interest'),
                total_gst=get_money('total_gst'),
                total_loan=get_money('total_loan'),
                end_date=end_date
            ),
            state=LoanState(
                total_paid_emis=data['total_paid_emis'],
                remaining_tenure=data['remaining_tenure'],
                remaining_balance=get_money('remaining_balance'),
                is_completed=data['is_completed'],
                end_date=end_date
            ),
            tag=data.get('tag') or get_config().default_tag,
            is_archived=data.get('is_archived', False)
        )

    def _entry_to_dict(self, entry: ScheduleEntry, emi_id: str) -> Dict:
        """Convert schedule entry to dictionary"""
        return {
            'id': f"{emi_id}_{entry.month}",
            'emi_id': emi_id,
            'month': entry.month,
            'bill_date': entry.bill_date.isoformat(),
            'currency': entry.emi_amount.currency.code,
            'emi_amount': str(entry.emi_amount.amount),
            'interest_amount': str(entry.interest_amount.amount),
            'principal_amount': str(entry.principal_amount.amount),
            'balance': str(entry.balance.amount),
            'gst_amount': str(entry.gst_amount.amount)
        }

    def _entry_from_dict(self, data: Dict) -> ScheduleEntry:
        """Convert dictionary to schedule entry"""
        currency = Currency[data['currency']]
        return ScheduleEntry(
            month=data['month'],
            bill_date=date.fromisoformat(data['bill_date']),
            emi_amount=Money(Decimal(data['emi_amount']), currency),
            interest_amount=Money(Decimal(data['interest_amount']), currency),
            principal_amount=Money(Decimal(data['principal_amount']), currency),
            balance=Money(Decimal(data['balance']), currency),
            gst_amount=Money(Decimal(data['gst_amount']), currency)
        )

    def _split_to_dict(self, split: EmiSplit) -> Dict:
        """Convert split to dictionary (display fields are not stored)"""
        return {
            'id': split.id,
            'created_at': split.created_at.isoformat(),
            'updated_at': split.updated_at.isoformat(),
            'emi_id': split.emi_id,
            'split_percentage': str(split.split_percentage),
            'created_by': split.created_by,
            'user_id': split.user_id,
            'participant_name': split.participant_name,
            'participant_email': split.participant_email,
            'is_external': split.is_external,
            'position': split.position
        }

    def _split_from_dict(self, data: Dict) -> EmiSplit:
        """Convert dictionary to split"""
        return EmiSplit(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            emi_id=data['emi_id'],
            split_percentage=Decimal(data['split_percentage']),
            created_by=data['created_by'],
            user_id=data.get('user_id'),
            participant_name=data.get('participant_name'),
            participant_email=data.get('participant_email'),
            is_external=data.get('is_external', True),
            position=data.get('position', 0)
        )
