"""
Editing of recurring transaction series.

Three modes are supported:

- ``current``: change only this month's occurrence. The series is split into
  a past segment, a one-off transaction for this month and a continuation
  starting next month with the original values.
- ``future``: change this month's occurrence and every later one. The past
  segment is kept and a new series starts at the edited date, which must
  fall in the current month or later.
- ``all``: rewrite the rule and anchor in place, past occurrences included.

Every mode runs inside a single ``store.atomic()`` block, so a failure in any
step leaves the stored series exactly as it was.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

from app.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
    invalid_mode,
    not_recurring,
    transaction_not_found,
)
from app.logging_config import get_logger
from app.models.transaction import RecurrenceRule, Transaction
from app.services.categories import get_or_create_category
from app.store import BudgetStore
from app.utils.dates import Frequency, end_of_previous_month, first_of_month, first_of_next_month

logger = get_logger(__name__)


class ModificationMode(str, Enum):
    CURRENT = "current"
    FUTURE = "future"
    ALL = "all"


@dataclass
class SeriesChanges:
    """New values for a recurring series; None means "not provided"."""
    description: str
    amount: float
    date: date
    category: Optional[str] = None
    frequency: Optional[str] = None
    interval: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def validate(self):
        if not self.description or not str(self.description).strip():
            raise ValidationError("Missing required field: description")
        if isinstance(self.amount, bool) or not isinstance(self.amount, (int, float)):
            raise ValidationError(f"Invalid amount '{self.amount}'")
        if not isinstance(self.date, date):
            raise ValidationError("Missing required field: date")
        if self.frequency is not None and Frequency.parse(self.frequency) is None:
            raise ValidationError(f"Invalid frequency '{self.frequency}'")
        if self.interval is not None and self.interval < 1:
            raise ValidationError("Interval must be at least 1")


@dataclass
class ModificationResult:
    mode: ModificationMode
    message: str
    updated_rule: RecurrenceRule
    updated_transaction: Optional[Transaction] = None
    created_transactions: list = field(default_factory=list)
    created_rules: list = field(default_factory=list)

    def to_dict(self) -> dict:
        from app.services.transactions import serialize_transaction

        return {
            "mode": self.mode.value,
            "message": self.message,
            "updated_rule": serialize_rule(self.updated_rule),
            "updated_transaction": (
                serialize_transaction(self.updated_transaction) if self.updated_transaction else None
            ),
            "created_transactions": [serialize_transaction(t) for t in self.created_transactions],
            "created_rules": [serialize_rule(r) for r in self.created_rules],
        }


def serialize_rule(rule: RecurrenceRule) -> dict:
    return {
        "id": rule.id,
        "frequency": rule.frequency,
        "interval": rule.interval,
        "start_date": rule.start_date.isoformat(),
        "end_date": rule.end_date.isoformat() if rule.end_date else None,
    }


def modify_recurring_series(
    store: BudgetStore,
    anchor_id: str,
    mode,
    changes: SeriesChanges,
    user_id: int,
    now: Optional[date] = None,
) -> ModificationResult:
    """
    Apply ``changes`` to the recurring series anchored at ``anchor_id``.

    Args:
        store: Data store; all writes happen in one atomic block
        anchor_id: Id of the recurring anchor transaction
        mode: "current", "future" or "all"
        changes: New values for the series
        user_id: Requesting user; must own the anchor
        now: Reference day used to place the split (defaults to today)

    Raises:
        NotFoundError: anchor missing or owned by another user
        InvalidStateError: anchor has no recurrence rule, or unknown mode
        ValidationError: malformed changes
        ConflictError: another request modified the series concurrently
    """
    today = now or date.today()
    try:
        mode = ModificationMode(mode)
    except ValueError:
        raise InvalidStateError(invalid_mode(mode))
    changes.validate()

    with store.atomic():
        anchor = store.get_transaction(user_id, anchor_id, for_update=True)
        if anchor is None:
            logger.warning(f"Recurring transaction not found: {anchor_id} (user {user_id})")
            raise NotFoundError(transaction_not_found(anchor_id))
        if not anchor.recurrence_rule_id:
            logger.warning(f"Transaction {anchor_id} has no recurrence rule")
            raise InvalidStateError(not_recurring(anchor_id))
        rule = store.get_recurrence_rule(anchor.recurrence_rule_id, for_update=True)

        category_id = None
        if changes.category:
            category_id = get_or_create_category(store, user_id, changes.category).id

        logger.info(f"Modifying recurring transaction {anchor_id} (mode={mode.value}, user {user_id})")
        if mode is ModificationMode.CURRENT:
            return _modify_current(store, anchor, rule, changes, category_id, today)
        if mode is ModificationMode.FUTURE:
            return _modify_future(store, anchor, rule, changes, category_id, today)
        return _modify_all(store, anchor, rule, changes, category_id)


def _terminate(store: BudgetStore, rule: RecurrenceRule, today: date) -> RecurrenceRule:
    """
    End ``rule`` on the last day of the month before ``today``.

    A rule that already ended earlier keeps its end date. The result is never
    before the rule's start date.
    """
    boundary = end_of_previous_month(today)
    if rule.end_date is not None:
        boundary = min(boundary, rule.end_date)
    boundary = max(boundary, rule.start_date)
    return store.update_recurrence_rule(rule.id, end_date=boundary)


def _modify_current(store, anchor, rule, changes, category_id, today) -> ModificationResult:
    # Captured before the rule is truncated
    frequency = rule.frequency
    interval = rule.interval
    original_end = rule.end_date

    updated_rule = _terminate(store, rule, today)

    one_off = store.create_transaction(
        user_id=anchor.user_id,
        description=changes.description.strip(),
        amount=changes.amount,
        date=changes.date,
        category_id=category_id,
        is_recurring=False,
    )
    result = ModificationResult(
        mode=ModificationMode.CURRENT,
        message="Recurring transaction modified for the current month only",
        updated_rule=updated_rule,
        created_transactions=[one_off],
    )

    resume = first_of_next_month(today)
    if original_end is not None and original_end < resume:
        logger.info(f"Series {anchor.id} ends before {resume.isoformat()}; no continuation created")
        return result

    continuation = store.create_recurrence_rule(
        frequency=frequency,
        interval=interval,
        start_date=resume,
        end_date=original_end,
    )
    resumed_anchor = store.create_transaction(
        user_id=anchor.user_id,
        description=anchor.description,
        amount=anchor.amount,
        date=resume,
        category_id=anchor.category_id,
        is_recurring=True,
        recurrence_rule_id=continuation.id,
    )
    result.created_rules.append(continuation)
    result.created_transactions.append(resumed_anchor)
    return result


def _modify_future(store, anchor, rule, changes, category_id, today) -> ModificationResult:
    frequency = Frequency.parse(changes.frequency).value if changes.frequency else rule.frequency
    interval = changes.interval or rule.interval
    end_date = changes.end_date if changes.end_date is not None else rule.end_date
    if changes.date < first_of_month(today):
        raise ValidationError(
            "Future changes must start in the current month or later; use 'all' to rewrite past occurrences"
        )
    if end_date is not None and end_date < changes.date:
        raise ValidationError("The series ends before the new start date")

    updated_rule = _terminate(store, rule, today)

    new_rule = store.create_recurrence_rule(
        frequency=frequency,
        interval=interval,
        start_date=changes.date,
        end_date=end_date,
    )
    new_anchor = store.create_transaction(
        user_id=anchor.user_id,
        description=changes.description.strip(),
        amount=changes.amount,
        date=changes.date,
        category_id=category_id,
        is_recurring=True,
        recurrence_rule_id=new_rule.id,
    )
    return ModificationResult(
        mode=ModificationMode.FUTURE,
        message="Recurring transaction modified for the current month and the following months",
        updated_rule=updated_rule,
        created_transactions=[new_anchor],
        created_rules=[new_rule],
    )


def _modify_all(store, anchor, rule, changes, category_id) -> ModificationResult:
    start_date = changes.start_date or rule.start_date
    end_date = changes.end_date if changes.end_date is not None else rule.end_date
    if end_date is not None and end_date < start_date:
        raise ValidationError("End date must not be before the start date")

    updated_rule = store.update_recurrence_rule(
        rule.id,
        frequency=Frequency.parse(changes.frequency).value if changes.frequency else rule.frequency,
        interval=changes.interval or rule.interval,
        start_date=start_date,
        end_date=end_date,
    )
    anchor_changes = {
        "description": changes.description.strip(),
        "amount": changes.amount,
        "date": changes.date,
    }
    if category_id is not None:
        anchor_changes["category_id"] = category_id
    updated_anchor = store.update_transaction(anchor.id, **anchor_changes)

    return ModificationResult(
        mode=ModificationMode.ALL,
        message="All occurrences of the recurring transaction were modified",
        updated_rule=updated_rule,
        updated_transaction=updated_anchor,
    )
