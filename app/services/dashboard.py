"""
Monthly dashboard figures.

Balances are computed from stored transactions up to ``today``; projected
figures for the rest of a month (or for future months) add the recurring
occurrences that have not happened yet.
"""

from datetime import date

from app.config import settings
from app.logging_config import get_logger
from app.services.occurrences import generate_occurrences, list_recurring_series
from app.store import BudgetStore
from app.utils.dates import first_of_month, iter_months, last_of_month, month_bounds

logger = get_logger(__name__)


def _generated_after(store, user_id, after: date, through: date) -> float:
    """Sum of generated occurrences dated in (after, through], month by month."""
    total = 0.0
    for year, month in iter_months(after, through):
        start, end = month_bounds(year, month)
        for occurrence in generate_occurrences(store, user_id, start, end, month, year):
            if after < occurrence.date <= through:
                total += occurrence.amount
    return total


def get_dashboard_data(store: BudgetStore, user_id: int, selected: date, today: date) -> dict:
    """
    Build the dashboard for the month containing ``selected``.

    Returns current_balance, income, expenses, end_of_month_balance,
    category_expenses, recurring and selected_month.
    """
    start, end = first_of_month(selected), last_of_month(selected)
    logger.info(f"Building dashboard for user {user_id}, month {start.strftime('%Y-%m')}")

    past_rows = store.find_transactions(user_id, end=today)
    current_balance = sum(t.amount for t in past_rows)

    month_rows = store.find_transactions(user_id, start=start, end=end)
    generated = generate_occurrences(store, user_id, start, end, start.month, start.year)

    amounts = [t.amount for t in month_rows] + [o.amount for o in generated]
    income = sum(a for a in amounts if a > 0)
    expenses = sum(a for a in amounts if a < 0)

    if end < first_of_month(today):
        # Past month: undo everything recorded after it
        later = sum(t.amount for t in past_rows if t.date > end)
        end_of_month_balance = current_balance - later
    else:
        # Current or future month: add what is still to come through its end
        upcoming = store.find_transactions(user_id, start=today, end=end)
        end_of_month_balance = (
            current_balance
            + sum(t.amount for t in upcoming if t.date > today)
            + _generated_after(store, user_id, today, end)
        )

    entries = [(t.category, t.amount) for t in month_rows if t.category is not None]
    entries += [
        (store.get_category(user_id, o.category_id), o.amount)
        for o in generated if o.category_id is not None
    ]
    by_category = {}
    for category, amount in entries:
        if category is None:
            continue
        if category.id not in by_category:
            by_category[category.id] = {
                "id": category.id,
                "name": category.name,
                "amount": 0.0,
                "color": category.color or settings.default_category_color,
            }
        by_category[category.id]["amount"] += amount

    return {
        "current_balance": current_balance,
        "end_of_month_balance": end_of_month_balance,
        "income": income,
        "expenses": expenses,
        "category_expenses": sorted(by_category.values(), key=lambda c: c["amount"]),
        "recurring": list_recurring_series(store, user_id, today),
        "selected_month": start.strftime("%Y-%m"),
    }
