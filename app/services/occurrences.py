"""
Projection of recurring transactions onto calendar months.

A recurring transaction (the "anchor") is stored once, together with its
recurrence rule. When a month is displayed, the rule is stepped through that
month and every step date not already covered by a stored row becomes a
``VirtualOccurrence``. Occurrences are rebuilt on every read and never
persisted.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from app.config import settings
from app.errors import IterationLimitExceeded, iteration_limit
from app.logging_config import get_logger
from app.models.transaction import RecurrenceRule, Transaction
from app.store import BudgetStore
from app.utils.dates import Frequency, OccurrenceKey

logger = get_logger(__name__)


@dataclass(frozen=True)
class VirtualOccurrence:
    """A computed, non-persisted occurrence of a recurring transaction."""
    key: OccurrenceKey
    description: str
    amount: float
    category_id: Optional[int]
    category_name: Optional[str]
    category_color: Optional[str]
    frequency: str
    is_generated: bool = True

    @property
    def id(self) -> str:
        return str(self.key)

    @property
    def anchor_id(self) -> str:
        return self.key.anchor_id

    @property
    def date(self) -> date:
        return self.key.date

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "anchor_id": self.anchor_id,
            "description": self.description,
            "amount": self.amount,
            "date": self.date.isoformat(),
            "category": self.category_name,
            "category_id": self.category_id,
            "category_color": self.category_color,
            "is_recurring": True,
            "recurrence_frequency": self.frequency,
            "is_generated": True,
        }


def step_dates(
    rule: RecurrenceRule,
    frequency: Frequency,
    period_start: date,
    period_end: date,
    max_steps: int,
    anchor_id: str = "",
) -> list[date]:
    """
    Return the rule's step dates inside ``[period_start, period_end]``.

    Stepping begins at the first step on or after ``period_start`` and stops
    once a step passes ``period_end`` or the rule's (inclusive) end date.
    Raises IterationLimitExceeded, carrying the dates found so far, if more
    than ``max_steps`` steps would be needed.
    """
    interval = max(1, rule.interval or 1)
    index = frequency.first_step_on_or_after(rule.start_date, period_start, interval)
    dates = []
    steps = 0
    while True:
        current = frequency.advance(rule.start_date, index, interval)
        if current > period_end or (rule.end_date is not None and current > rule.end_date):
            return dates
        if steps >= max_steps:
            raise IterationLimitExceeded(iteration_limit(anchor_id, max_steps), partial=dates)
        dates.append(current)
        index += 1
        steps += 1


def generate_occurrences(
    store: BudgetStore,
    user_id: int,
    period_start: date,
    period_end: date,
    target_month: int,
    target_year: int,
    max_steps: Optional[int] = None,
) -> list[VirtualOccurrence]:
    """
    Compute the virtual occurrences of all of a user's recurring transactions.

    Args:
        store: Data store to read anchors and stored transactions from
        user_id: Owner of the transactions
        period_start: First day of the query period (inclusive)
        period_end: Last day of the query period (inclusive)
        target_month: Calendar month (1-12) the caller wants populated
        target_year: Year of ``target_month``
        max_steps: Per-anchor step cap (defaults to settings.max_generation_steps)

    Returns:
        Unsorted occurrences dated inside the period and the target month,
        excluding every date already represented by a stored row.
    """
    if max_steps is None:
        max_steps = settings.max_generation_steps

    logger.info(
        f"Generating recurring occurrences for {target_month}/{target_year} "
        f"({period_start.isoformat()} to {period_end.isoformat()}) for user {user_id}"
    )

    anchors = store.find_transactions(user_id, recurring=True)
    anchor_by_rule = {anchor.recurrence_rule_id: anchor.id for anchor in anchors}

    # Dates already covered by stored rows
    occupied: set[OccurrenceKey] = set()
    for row in store.find_transactions(user_id, start=period_start, end=period_end):
        occupied.add(OccurrenceKey(row.id, row.date))
        series_anchor = anchor_by_rule.get(row.recurrence_rule_id)
        if series_anchor is not None:
            occupied.add(OccurrenceKey(series_anchor, row.date))

    generated = []
    for anchor in anchors:
        generated.extend(
            _occurrences_for_anchor(
                anchor, occupied, period_start, period_end, target_month, target_year, max_steps
            )
        )

    logger.debug(f"Generated {len(generated)} recurring occurrences from {len(anchors)} anchors")
    return generated


def _occurrences_for_anchor(
    anchor: Transaction,
    occupied: set,
    period_start: date,
    period_end: date,
    target_month: int,
    target_year: int,
    max_steps: int,
) -> list[VirtualOccurrence]:
    rule = anchor.recurrence_rule
    if rule is None:
        return []

    # The anchor's own row always represents its first date
    occupied.add(OccurrenceKey(anchor.id, rule.start_date))
    occupied.add(OccurrenceKey(anchor.id, anchor.date))

    frequency = Frequency.parse(rule.frequency)
    if frequency is None:
        logger.warning(
            f"Skipping recurring transaction {anchor.id}: unrecognized frequency '{rule.frequency}'"
        )
        return []

    try:
        dates = step_dates(rule, frequency, period_start, period_end, max_steps, anchor.id)
    except IterationLimitExceeded as exc:
        logger.warning(f"{exc}; keeping {len(exc.partial)} occurrences generated so far")
        dates = exc.partial

    occurrences = []
    for current in dates:
        if current.month != target_month or current.year != target_year:
            continue
        key = OccurrenceKey(anchor.id, current)
        if key in occupied:
            continue
        occurrences.append(VirtualOccurrence(
            key=key,
            description=anchor.description,
            amount=anchor.amount,
            category_id=anchor.category_id,
            category_name=anchor.category.name if anchor.category else None,
            category_color=anchor.category.color if anchor.category else None,
            frequency=frequency.value,
        ))
        occupied.add(key)
    return occurrences


def next_occurrence_date(
    rule: RecurrenceRule, after: date, max_steps: Optional[int] = None
) -> Optional[date]:
    """
    Return the first occurrence strictly after ``after``.

    A rule that has not started yet returns its start date. Returns None when
    the rule has ended, its frequency is unknown, or the cap is reached.
    """
    if max_steps is None:
        max_steps = settings.max_generation_steps
    frequency = Frequency.parse(rule.frequency)
    if frequency is None:
        return None
    if rule.start_date > after:
        return rule.start_date

    interval = max(1, rule.interval or 1)
    index = frequency.first_step_on_or_after(rule.start_date, after, interval)
    for _ in range(max_steps):
        candidate = frequency.advance(rule.start_date, index, interval)
        if rule.end_date is not None and candidate > rule.end_date:
            return None
        if candidate > after:
            return candidate
        index += 1
    logger.warning(f"Next occurrence of rule {rule.id} not found within {max_steps} steps")
    return None


def list_recurring_series(store: BudgetStore, user_id: int, today: date) -> list[dict]:
    """Overview of the user's recurring transactions with their next dates."""
    series = []
    for anchor in store.find_transactions(user_id, recurring=True):
        rule = anchor.recurrence_rule
        next_date = next_occurrence_date(rule, today)
        series.append({
            "id": anchor.id,
            "description": anchor.description,
            "amount": anchor.amount,
            "category": anchor.category.name if anchor.category else None,
            "frequency": rule.frequency,
            "interval": rule.interval,
            "start_date": rule.start_date.isoformat(),
            "end_date": rule.end_date.isoformat() if rule.end_date else None,
            "next_date": next_date.isoformat() if next_date else None,
        })
    series.sort(key=lambda s: (s["next_date"] is None, s["next_date"] or ""))
    return series
