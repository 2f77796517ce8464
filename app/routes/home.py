"""
Home/Dashboard routes for BudgetFlow.

Shows the monthly dashboard: current balance, projected end-of-month
balance, the month's income and expenses, spending by category and the
user's recurring transactions.

Routes:
    GET /home           - Dashboard page (``?month=YYYY-MM``)
    GET /api/dashboard  - Dashboard data as JSON (``?date=YYYY-MM-DD``)
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Request, Depends, Query
from fastapi.responses import RedirectResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.user import User
from app.services.dashboard import get_dashboard_data
from app.store import BudgetStore
from app.utils.auth import get_current_user, require_api_user
from app.utils.dates import parse_date, parse_month
from app.logging_config import get_logger

# Module logger for home/dashboard operations
logger = get_logger(__name__)

router = APIRouter()
templates = Jinja2Templates(directory="app/templates")


@router.get("/home")
def home(request: Request, db: Session = Depends(get_db), month: Optional[str] = Query(None)):
    """Render the dashboard for the selected month (defaults to this month)."""
    logger.info("Loading home page")

    user = get_current_user(request, db)
    if not user:
        logger.debug("No authenticated user, redirecting to login")
        return RedirectResponse("/login")

    today = date.today()
    year, month_number = parse_month(month, today)
    dashboard = get_dashboard_data(BudgetStore(db), user.id, date(year, month_number, 1), today)

    return templates.TemplateResponse("home.html", {
        "request": request,
        "title": "Dashboard",
        "user": user,
        "dashboard": dashboard,
    })


@router.get("/api/dashboard")
def dashboard_data(
    date_param: Optional[str] = Query(None, alias="date"),
    user: User = Depends(require_api_user),
    db: Session = Depends(get_db),
):
    today = date.today()
    selected = parse_date(date_param, "date") if date_param else today
    return JSONResponse(get_dashboard_data(BudgetStore(db), user.id, selected, today))
