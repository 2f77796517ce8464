"""
Transaction CRUD and the monthly transaction listing.

A month's listing merges the stored rows dated in that month with the
virtual occurrences projected by the user's recurring transactions.
"""

from datetime import date
from typing import Iterable, Optional

from app.config import settings
from app.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
    generated_occurrence,
    transaction_not_found,
)
from app.logging_config import get_logger
from app.models.transaction import Transaction
from app.services.categories import get_or_create_category
from app.services.occurrences import generate_occurrences
from app.store import BudgetStore
from app.utils.dates import Frequency, OccurrenceKey, month_bounds, parse_date

logger = get_logger(__name__)

UNCATEGORIZED = "Uncategorized"


def serialize_transaction(transaction: Transaction) -> dict:
    rule = transaction.recurrence_rule
    return {
        "id": transaction.id,
        "anchor_id": transaction.id if rule is not None else None,
        "description": transaction.description,
        "amount": transaction.amount,
        "date": transaction.date.isoformat(),
        "category": transaction.category_name,
        "category_id": transaction.category_id,
        "category_color": transaction.category.color if transaction.category else None,
        "is_recurring": transaction.is_recurring,
        "recurrence_frequency": rule.frequency if rule else None,
        "recurrence_interval": rule.interval if rule else None,
        "recurrence_end_date": rule.end_date.isoformat() if rule and rule.end_date else None,
        "is_generated": False,
    }


def _parse_amount(value) -> float:
    if isinstance(value, bool) or value is None or value == "":
        raise ValidationError("Missing required field: amount")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid amount '{value}'")


def _parse_interval(value) -> int:
    if value in (None, ""):
        return 1
    try:
        interval = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid interval '{value}'")
    if interval < 1:
        raise ValidationError("Interval must be at least 1")
    return interval


def _rule_fields(data: dict, default_start: date, current=None) -> dict:
    """Validated recurrence-rule columns from request data, falling back to ``current``."""
    raw_frequency = data.get("frequency") or (current.frequency if current else None)
    if not raw_frequency:
        raise ValidationError("Missing required field: frequency")
    frequency = Frequency.parse(raw_frequency)
    if frequency is None:
        raise ValidationError(f"Invalid frequency '{raw_frequency}'")

    if data.get("interval") not in (None, ""):
        interval = _parse_interval(data["interval"])
    else:
        interval = current.interval if current else 1

    if data.get("start_date"):
        start_date = parse_date(data["start_date"], "start_date")
    elif current is not None:
        start_date = current.start_date
    else:
        start_date = default_start

    if "end_date" in data:
        end_date = parse_date(data["end_date"], "end_date") if data["end_date"] else None
    else:
        end_date = current.end_date if current else None
    if end_date is not None and end_date < start_date:
        raise ValidationError("End date must not be before the start date")

    return {
        "frequency": frequency.value,
        "interval": interval,
        "start_date": start_date,
        "end_date": end_date,
    }


def create_transaction(store: BudgetStore, user_id: int, data: dict) -> Transaction:
    """
    Create a transaction, and its recurrence rule when ``is_recurring`` is set.

    The category is looked up by name and created if missing. The rule's
    start date defaults to the transaction date.
    """
    description = (data.get("description") or "").strip()
    if not description:
        raise ValidationError("Missing required field: description")
    amount = _parse_amount(data.get("amount"))
    when = parse_date(data.get("date"), "date")
    is_recurring = bool(data.get("is_recurring"))
    rule_fields = _rule_fields(data, when) if is_recurring else None

    with store.atomic():
        category_id = None
        if data.get("category"):
            category_id = get_or_create_category(store, user_id, data["category"]).id
        rule_id = None
        if rule_fields is not None:
            rule_id = store.create_recurrence_rule(**rule_fields).id
        transaction = store.create_transaction(
            user_id=user_id,
            description=description,
            amount=amount,
            date=when,
            category_id=category_id,
            is_recurring=is_recurring,
            recurrence_rule_id=rule_id,
        )

    logger.info(
        f"Transaction created for user {user_id}: {description} {amount:.2f} on {when.isoformat()}"
        + (f" ({rule_fields['frequency']})" if rule_fields else "")
    )
    return transaction


def _require_stored(store: BudgetStore, user_id: int, transaction_id: str, for_update=False) -> Transaction:
    transaction = store.get_transaction(user_id, transaction_id, for_update=for_update)
    if transaction is not None:
        return transaction
    key = OccurrenceKey.parse(transaction_id)
    if key is not None and store.get_transaction(user_id, key.anchor_id) is not None:
        raise InvalidStateError(generated_occurrence(transaction_id))
    raise NotFoundError(transaction_not_found(transaction_id))


def get_transaction(store: BudgetStore, user_id: int, transaction_id: str) -> Transaction:
    return _require_stored(store, user_id, transaction_id)


def update_transaction(
    store: BudgetStore, user_id: int, transaction_id: str, changes: dict
) -> Transaction:
    """
    Apply a partial update.

    Setting ``is_recurring`` creates a rule (or updates the existing one);
    clearing it detaches the rule. Rule fields sent without ``is_recurring``
    update the rule of an already recurring transaction.
    """
    with store.atomic():
        transaction = _require_stored(store, user_id, transaction_id, for_update=True)
        fields = {}

        if "description" in changes and changes["description"] is not None:
            description = changes["description"].strip()
            if not description:
                raise ValidationError("Description must not be empty")
            fields["description"] = description
        if "amount" in changes and changes["amount"] is not None:
            fields["amount"] = _parse_amount(changes["amount"])
        if changes.get("date"):
            fields["date"] = parse_date(changes["date"], "date")
        if "category" in changes:
            if changes["category"]:
                fields["category_id"] = get_or_create_category(store, user_id, changes["category"]).id
            else:
                fields["category_id"] = None

        rule_keys = ("frequency", "interval", "start_date", "end_date")
        wants_recurring = changes.get("is_recurring")
        current_rule = transaction.recurrence_rule
        if wants_recurring is False:
            fields["is_recurring"] = False
            fields["recurrence_rule_id"] = None
        elif wants_recurring or (current_rule is not None and any(k in changes for k in rule_keys)):
            rule_data = {k: changes[k] for k in rule_keys if k in changes}
            rule_fields = _rule_fields(rule_data, fields.get("date", transaction.date), current_rule)
            if current_rule is not None:
                store.update_recurrence_rule(current_rule.id, **rule_fields)
            else:
                fields["recurrence_rule_id"] = store.create_recurrence_rule(**rule_fields).id
            fields["is_recurring"] = True

        transaction = store.update_transaction(transaction.id, **fields)

    logger.info(f"Transaction {transaction_id} updated for user {user_id}")
    return transaction


def delete_transaction(store: BudgetStore, user_id: int, transaction_id: str) -> None:
    with store.atomic():
        transaction = _require_stored(store, user_id, transaction_id, for_update=True)
        store.delete_transaction(transaction.id)
    logger.info(f"Transaction {transaction_id} deleted for user {user_id}")


def delete_transactions(store: BudgetStore, user_id: int, ids: Iterable[str]) -> int:
    """Delete the given transactions; ids the user does not own are ignored."""
    requested = [i for i in (ids or []) if isinstance(i, str) and i]
    with store.atomic():
        owned = store.find_transactions(user_id, ids=requested) if requested else []
        if not owned:
            raise ValidationError("No valid transactions to delete")
        for transaction in owned:
            store.delete_transaction(transaction.id)
    logger.info(f"Batch delete for user {user_id}: {len(owned)} of {len(requested)} transactions removed")
    return len(owned)


def resolve_series_anchor(store: BudgetStore, user_id: int, transaction_id: str) -> Transaction:
    """
    Return the stored transaction behind ``transaction_id``.

    Accepts a stored id or the id of a generated occurrence, which resolves
    to the recurring anchor that produced it.
    """
    transaction = store.get_transaction(user_id, transaction_id)
    if transaction is not None:
        return transaction
    key = OccurrenceKey.parse(transaction_id)
    if key is not None:
        anchor = store.get_transaction(user_id, key.anchor_id)
        if anchor is not None and anchor.recurrence_rule_id:
            return anchor
    raise NotFoundError(f"Recurring transaction {transaction_id} not found")


def _matches(item: dict, search: Optional[str], categories: Optional[list]) -> bool:
    category = item["category"] or UNCATEGORIZED
    if search and search.strip():
        needle = search.strip().lower()
        if needle not in item["description"].lower() and needle not in category.lower():
            return False
    if categories and category not in categories:
        return False
    return True


def list_month_transactions(
    store: BudgetStore,
    user_id: int,
    year: int,
    month: int,
    search: Optional[str] = None,
    categories: Optional[list] = None,
    skip: int = 0,
    take: Optional[int] = None,
) -> dict:
    """
    List a month's stored and generated transactions, newest first.

    Returns ``{"expenses": [...], "total": n, "has_more": bool}`` where
    ``total`` counts the filtered rows before pagination.
    """
    if take is None:
        take = settings.page_size
    skip = max(0, skip)
    start, end = month_bounds(year, month)

    rows = [serialize_transaction(t) for t in store.find_transactions(user_id, start=start, end=end, newest_first=True)]
    rows.extend(o.to_dict() for o in generate_occurrences(store, user_id, start, end, month, year))
    rows = [row for row in rows if _matches(row, search, categories)]
    rows.sort(key=lambda row: row["date"], reverse=True)

    for row in rows:
        if row["category"] is not None and row["category_color"] is None:
            row["category_color"] = settings.default_category_color

    return {
        "expenses": rows[skip:skip + take],
        "total": len(rows),
        "has_more": len(rows) > skip + take,
    }
