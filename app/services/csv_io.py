"""
CSV export and bulk import of transactions.

Columns: date, description, category, amount, is_recurring, frequency,
interval, end_date. On import, ``expense`` and ``income`` magnitude columns
may replace ``amount``; rows starting with ``#`` and blank rows are skipped.
"""

import csv
import io
import random
from datetime import date, datetime
from typing import Optional

from app.errors import ValidationError
from app.logging_config import get_logger
from app.store import BudgetStore
from app.utils.dates import Frequency

logger = get_logger(__name__)

CSV_HEADERS = ["date", "description", "category", "amount", "is_recurring", "frequency", "interval", "end_date"]

# Colors given to categories created by an import
CATEGORY_PALETTE = [
    "#f44336", "#e91e63", "#9c27b0", "#673ab7", "#3f51b5", "#2196f3",
    "#03a9f4", "#00bcd4", "#009688", "#4caf50", "#8bc34a", "#cddc39",
    "#ffeb3b", "#ffc107", "#ff9800", "#ff5722", "#795548", "#607d8b",
]

TRUE_VALUES = {"true", "yes", "y", "1", "oui"}


def export_transactions_csv(store: BudgetStore, user_id: int, start: date, end: date) -> str:
    """Render the user's stored transactions in ``[start, end]`` as CSV, oldest first."""
    if end < start:
        raise ValidationError("End date must not be before the start date")

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADERS)

    transactions = store.find_transactions(user_id, start=start, end=end)
    for transaction in transactions:
        rule = transaction.recurrence_rule
        writer.writerow([
            transaction.date.strftime("%Y-%m-%d"),
            transaction.description,
            transaction.category_name or "",
            f"{transaction.amount:.2f}",
            "true" if transaction.is_recurring else "false",
            rule.frequency if rule else "",
            rule.interval if rule else "",
            rule.end_date.strftime("%Y-%m-%d") if rule and rule.end_date else "",
        ])

    logger.info(f"CSV export for user {user_id}: {len(transactions)} transactions")
    return output.getvalue()


def _parse_csv_date(value: str) -> date:
    text = value.strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValidationError(f"Invalid date format '{value}' (use YYYY-MM-DD)")


def _parse_money(value: str) -> float:
    text = value.strip().replace(" ", "").replace("$", "").replace("€", "")
    if "," in text and "." not in text:
        text = text.replace(",", ".")
    else:
        text = text.replace(",", "")
    try:
        return float(text)
    except ValueError:
        raise ValidationError(f"Invalid amount '{value}'")


def _row_amount(row: dict) -> float:
    if (row.get("amount") or "").strip():
        amount = _parse_money(row["amount"])
    elif (row.get("expense") or "").strip():
        amount = -abs(_parse_money(row["expense"]))
    elif (row.get("income") or "").strip():
        amount = abs(_parse_money(row["income"]))
    else:
        raise ValidationError("Missing amount")
    if amount == 0:
        raise ValidationError("Amount must not be zero")
    return amount


def _row_rule(row: dict, start: date) -> Optional[dict]:
    if (row.get("is_recurring") or "").strip().lower() not in TRUE_VALUES:
        return None
    frequency = Frequency.parse(row.get("frequency")) or Frequency.MONTHLY
    interval_text = (row.get("interval") or "").strip()
    try:
        interval = int(interval_text) if interval_text else 1
    except ValueError:
        raise ValidationError(f"Invalid interval '{interval_text}'")
    if interval < 1:
        raise ValidationError("Interval must be at least 1")
    end_date = None
    if (row.get("end_date") or "").strip():
        end_date = _parse_csv_date(row["end_date"])
        if end_date < start:
            raise ValidationError("End date is before the transaction date")
    return {"frequency": frequency.value, "interval": interval, "start_date": start, "end_date": end_date}


def import_transactions_csv(store: BudgetStore, user_id: int, content: str) -> dict:
    """
    Import transactions from CSV text.

    Invalid rows are reported as ``Row N: <reason>`` (N is the line in the file)
    and skipped; valid rows are written in a single transaction. Categories
    match case-insensitively.
    """
    reader = csv.DictReader(io.StringIO(content))
    if not reader.fieldnames or "date" not in [f.strip().lower() for f in reader.fieldnames]:
        raise ValidationError("CSV must have a header row with a 'date' column")

    results = {"imported": 0, "errors": [], "categories_created": []}

    with store.atomic():
        category_cache = {c.name.lower(): c for c in store.list_categories(user_id)}

        for raw in reader:
            row_num = reader.line_num
            row = {(k or "").strip().lower(): (v or "") for k, v in raw.items() if k is not None}

            # Skip comment and blank rows
            if (row.get("date") or "").strip().startswith("#"):
                continue
            if not any(value.strip() for value in row.values()):
                continue

            try:
                when = _parse_csv_date(row.get("date") or "")
                amount = _row_amount(row)
                rule_fields = _row_rule(row, when)
            except ValidationError as e:
                results["errors"].append(f"Row {row_num}: {e}")
                continue

            category_id = None
            category_name = (row.get("category") or "").strip()
            if category_name:
                category = category_cache.get(category_name.lower())
                if category is None:
                    category = store.create_category(user_id, category_name, random.choice(CATEGORY_PALETTE))
                    category_cache[category_name.lower()] = category
                    results["categories_created"].append(category_name)
                category_id = category.id

            rule_id = store.create_recurrence_rule(**rule_fields).id if rule_fields else None
            store.create_transaction(
                user_id=user_id,
                description=(row.get("description") or "").strip() or "Imported transaction",
                amount=amount,
                date=when,
                category_id=category_id,
                is_recurring=rule_id is not None,
                recurrence_rule_id=rule_id,
            )
            results["imported"] += 1

    logger.info(
        f"CSV import for user {user_id}: {results['imported']} imported, {len(results['errors'])} rejected"
    )
    return results
