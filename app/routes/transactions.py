"""
Transaction routes for BudgetFlow.

The month page lists stored transactions together with the occurrences
generated by recurring ones. Recurring series are edited through the
recurring/modify endpoints, which split or rewrite the series depending on
the chosen mode.

Routes:
    GET  /transactions                              - Month page (``?month=YYYY-MM``)
    POST /transactions/add                          - Add transaction (form)
    POST /transactions/update/<id>                  - Update transaction (form)
    POST /transactions/delete/<id>                  - Delete transaction (form)
    POST /transactions/recurring/modify             - Edit recurring series (form)
    GET  /api/transactions                          - Month listing
    POST /api/transactions                          - Create transaction
    GET  /api/transactions/<id>                     - Read transaction
    PATCH /api/transactions/<id>                    - Update transaction
    DELETE /api/transactions/<id>                   - Delete transaction
    POST /api/transactions/batch-delete             - Delete several transactions
    GET  /api/transactions/recurring-parent/<id>    - Resolve the anchor of an occurrence
    POST /api/transactions/recurring/modify         - Edit recurring series
    GET  /api/recurring                             - Recurring series overview
"""

from datetime import date
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Request, Form, Depends, Query
from fastapi.responses import RedirectResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import DomainError
from app.models.user import User
from app.schemas import BatchDeleteRequest, RecurringModifyRequest, TransactionCreate, TransactionUpdate
from app.services import transactions as transaction_service
from app.services.categories import list_categories
from app.services.occurrences import list_recurring_series
from app.services.recurrence_editor import SeriesChanges, modify_recurring_series
from app.store import BudgetStore
from app.utils.auth import get_current_user, require_api_user
from app.utils.dates import Frequency, parse_date, parse_month
from app.logging_config import get_logger

# Module logger for transaction operations
logger = get_logger(__name__)

router = APIRouter()
templates = Jinja2Templates(directory="app/templates")


def _split_categories(value: Optional[str]) -> Optional[list]:
    if not value:
        return None
    return [c.strip() for c in value.split(",") if c.strip()]


def _series_changes(data: dict) -> SeriesChanges:
    return SeriesChanges(
        description=data["description"],
        amount=data["amount"],
        date=parse_date(data["date"], "date"),
        category=data.get("category") or None,
        frequency=data.get("frequency") or None,
        interval=data.get("interval") or None,
        start_date=parse_date(data["start_date"], "start_date") if data.get("start_date") else None,
        end_date=parse_date(data["end_date"], "end_date") if data.get("end_date") else None,
    )


def _error_redirect(error: DomainError) -> RedirectResponse:
    return RedirectResponse(f"/transactions?{urlencode({'error': str(error)})}", status_code=303)


def _month_redirect(month: Optional[str]) -> RedirectResponse:
    target = f"/transactions?month={month}" if month else "/transactions"
    return RedirectResponse(target, status_code=303)


# Pages and form posts

@router.get("/transactions")
def transactions_page(
    request: Request,
    db: Session = Depends(get_db),
    month: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    categories_filter: str = Query(""),  # Comma-separated category names
    error: Optional[str] = Query(None),
):
    user = get_current_user(request, db)
    if not user:
        return RedirectResponse("/login")

    store = BudgetStore(db)
    year, month_number = parse_month(month, date.today())
    listing = transaction_service.list_month_transactions(
        store, user.id, year, month_number,
        search=search,
        categories=_split_categories(categories_filter),
        take=10_000,
    )
    logger.debug(f"Transactions page for {user.username}: {listing['total']} rows in {year}-{month_number:02d}")

    return templates.TemplateResponse("transactions.html", {
        "request": request,
        "title": "Transactions",
        "user": user,
        "month": f"{year}-{month_number:02d}",
        "transactions": listing["expenses"],
        "total": listing["total"],
        "income": sum(t["amount"] for t in listing["expenses"] if t["amount"] > 0),
        "spending": sum(t["amount"] for t in listing["expenses"] if t["amount"] < 0),
        "categories": list_categories(store, user.id),
        "frequencies": [f.value for f in Frequency],
        "search": search or "",
        "categories_filter": categories_filter,
        "error": error,
    })


@router.post("/transactions/add")
def add_transaction(
    request: Request,
    db: Session = Depends(get_db),
    description: str = Form(...),
    amount: float = Form(...),
    transaction_date: str = Form(...),
    category: Optional[str] = Form(None),
    is_recurring: Optional[str] = Form(None),
    frequency: Optional[str] = Form(None),
    interval: Optional[int] = Form(None),
    end_date: Optional[str] = Form(None),
):
    """
    Add a new transaction from the month page form.

    Supports both one-time and recurring transactions. For recurring ones the
    frequency and interval specify how often the transaction repeats.
    """
    user = get_current_user(request, db)
    if not user:
        return RedirectResponse("/login")

    data = {
        "description": description,
        "amount": amount,
        "date": transaction_date,
        "category": category,
        "is_recurring": is_recurring == "yes",
        "frequency": frequency,
        "interval": interval,
        "end_date": end_date or None,
    }
    try:
        transaction = transaction_service.create_transaction(BudgetStore(db), user.id, data)
    except DomainError as e:
        logger.warning(f"Add transaction failed for {user.username}: {e}")
        return _error_redirect(e)

    return _month_redirect(transaction.date.strftime("%Y-%m"))


@router.post("/transactions/update/{transaction_id}")
def update_transaction_form(
    transaction_id: str,
    request: Request,
    db: Session = Depends(get_db),
    description: str = Form(...),
    amount: float = Form(...),
    transaction_date: str = Form(...),
    category: Optional[str] = Form(None),
):
    """Update a stored transaction."""
    user = get_current_user(request, db)
    if not user:
        return RedirectResponse("/login")

    changes = {
        "description": description,
        "amount": amount,
        "date": transaction_date,
        "category": category or None,
    }
    try:
        transaction = transaction_service.update_transaction(BudgetStore(db), user.id, transaction_id, changes)
    except DomainError as e:
        logger.warning(f"Update of {transaction_id} failed for {user.username}: {e}")
        return _error_redirect(e)

    return _month_redirect(transaction.date.strftime("%Y-%m"))


@router.post("/transactions/delete/{transaction_id}")
def delete_transaction_form(transaction_id: str, request: Request, db: Session = Depends(get_db)):
    user = get_current_user(request, db)
    if not user:
        return RedirectResponse("/login")

    try:
        transaction_service.delete_transaction(BudgetStore(db), user.id, transaction_id)
    except DomainError as e:
        logger.warning(f"Delete of {transaction_id} failed for {user.username}: {e}")
        return _error_redirect(e)
    return RedirectResponse("/transactions", status_code=303)


@router.post("/transactions/recurring/modify")
def modify_recurring_form(
    request: Request,
    db: Session = Depends(get_db),
    transaction_id: str = Form(...),
    mode: str = Form(...),
    description: str = Form(...),
    amount: float = Form(...),
    transaction_date: str = Form(...),
    category: Optional[str] = Form(None),
    frequency: Optional[str] = Form(None),
    end_date: Optional[str] = Form(None),
):
    """Edit a recurring series from one of its rows on the month page."""
    user = get_current_user(request, db)
    if not user:
        return RedirectResponse("/login")

    store = BudgetStore(db)
    try:
        anchor = transaction_service.resolve_series_anchor(store, user.id, transaction_id)
        changes = _series_changes({
            "description": description,
            "amount": amount,
            "date": transaction_date,
            "category": category,
            "frequency": frequency,
            "end_date": end_date,
        })
        modify_recurring_series(store, anchor.id, mode, changes, user.id)
    except DomainError as e:
        logger.warning(f"Recurring edit of {transaction_id} failed for {user.username}: {e}")
        return _error_redirect(e)

    return _month_redirect(transaction_date[:7])


# JSON API

@router.get("/api/transactions")
def list_transactions(
    user: User = Depends(require_api_user),
    db: Session = Depends(get_db),
    month: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    categories: Optional[str] = Query(None),  # Comma-separated category names
    skip: int = Query(0, ge=0),
    take: Optional[int] = Query(None, ge=1),
):
    year, month_number = parse_month(month, date.today())
    result = transaction_service.list_month_transactions(
        BudgetStore(db), user.id, year, month_number,
        search=search,
        categories=_split_categories(categories),
        skip=skip,
        take=take,
    )
    return JSONResponse(result)


@router.post("/api/transactions")
def create_transaction(
    body: TransactionCreate,
    user: User = Depends(require_api_user),
    db: Session = Depends(get_db),
):
    transaction = transaction_service.create_transaction(BudgetStore(db), user.id, body.model_dump())
    return JSONResponse(transaction_service.serialize_transaction(transaction), status_code=201)


@router.post("/api/transactions/batch-delete")
def batch_delete(
    body: BatchDeleteRequest,
    user: User = Depends(require_api_user),
    db: Session = Depends(get_db),
):
    count = transaction_service.delete_transactions(BudgetStore(db), user.id, body.ids)
    return JSONResponse({
        "success": True,
        "message": f"{count} transaction(s) deleted",
        "count": count,
    })


@router.get("/api/transactions/recurring-parent/{transaction_id}")
def recurring_parent(
    transaction_id: str,
    user: User = Depends(require_api_user),
    db: Session = Depends(get_db),
):
    anchor = transaction_service.resolve_series_anchor(BudgetStore(db), user.id, transaction_id)
    return JSONResponse(transaction_service.serialize_transaction(anchor))


@router.post("/api/transactions/recurring/modify")
def modify_recurring(
    body: RecurringModifyRequest,
    user: User = Depends(require_api_user),
    db: Session = Depends(get_db),
):
    store = BudgetStore(db)
    anchor = transaction_service.resolve_series_anchor(store, user.id, body.id)
    changes = _series_changes(body.model_dump())
    result = modify_recurring_series(store, anchor.id, body.mode, changes, user.id)
    return JSONResponse(result.to_dict())


@router.get("/api/transactions/{transaction_id}")
def read_transaction(
    transaction_id: str,
    user: User = Depends(require_api_user),
    db: Session = Depends(get_db),
):
    transaction = transaction_service.get_transaction(BudgetStore(db), user.id, transaction_id)
    return JSONResponse(transaction_service.serialize_transaction(transaction))


@router.patch("/api/transactions/{transaction_id}")
def patch_transaction(
    transaction_id: str,
    body: TransactionUpdate,
    user: User = Depends(require_api_user),
    db: Session = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True)
    transaction = transaction_service.update_transaction(BudgetStore(db), user.id, transaction_id, changes)
    return JSONResponse(transaction_service.serialize_transaction(transaction))


@router.delete("/api/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: str,
    user: User = Depends(require_api_user),
    db: Session = Depends(get_db),
):
    transaction_service.delete_transaction(BudgetStore(db), user.id, transaction_id)
    return JSONResponse({"success": True})


@router.get("/api/recurring")
def recurring_overview(user: User = Depends(require_api_user), db: Session = Depends(get_db)):
    return JSONResponse({"recurring": list_recurring_series(BudgetStore(db), user.id, date.today())})
