"""
CSV import/export routes for BudgetFlow.

Routes:
    GET  /data             - Import/export page
    POST /data/import      - Import CSV (form upload, redirects back)
    GET  /api/export/csv   - Download transactions as CSV (``?start=&end=``)
    POST /api/import/csv   - Import CSV (multipart upload, JSON result)
"""

import io
from datetime import date
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Request, Depends, Query, UploadFile, File
from fastapi.responses import RedirectResponse, JSONResponse, StreamingResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import DomainError, ValidationError
from app.models.user import User
from app.services.csv_io import CSV_HEADERS, export_transactions_csv, import_transactions_csv
from app.store import BudgetStore
from app.utils.auth import get_current_user, require_api_user
from app.utils.dates import parse_date
from app.logging_config import get_logger

# Module logger for import/export operations
logger = get_logger(__name__)

router = APIRouter()
templates = Jinja2Templates(directory="app/templates")


async def _read_upload(csv_file: UploadFile) -> str:
    if not csv_file.filename or not csv_file.filename.lower().endswith(".csv"):
        raise ValidationError("Please upload a CSV file")
    content = await csv_file.read()
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("CSV file must be UTF-8 encoded")


@router.get("/data")
def data_page(
    request: Request,
    db: Session = Depends(get_db),
    message: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
):
    user = get_current_user(request, db)
    if not user:
        return RedirectResponse("/login")

    today = date.today()
    return templates.TemplateResponse("data.html", {
        "request": request,
        "title": "Import / Export",
        "user": user,
        "headers": CSV_HEADERS,
        "default_start": today.replace(month=1, day=1).isoformat(),
        "default_end": today.isoformat(),
        "message": message,
        "error": error,
    })


@router.post("/data/import")
async def import_form(request: Request, db: Session = Depends(get_db), csv_file: UploadFile = File(...)):
    user = get_current_user(request, db)
    if not user:
        return RedirectResponse("/login")

    try:
        results = import_transactions_csv(BudgetStore(db), user.id, await _read_upload(csv_file))
    except DomainError as e:
        logger.warning(f"CSV import failed for {user.username}: {e}")
        return RedirectResponse(f"/data?{urlencode({'error': str(e)})}", status_code=303)

    message = f"Imported {results['imported']} transactions"
    if results["errors"]:
        message += f"; {len(results['errors'])} rows skipped ({results['errors'][0]})"
    return RedirectResponse(f"/data?{urlencode({'message': message})}", status_code=303)


@router.get("/api/export/csv")
def export_csv(
    start: str = Query(...),
    end: str = Query(...),
    user: User = Depends(require_api_user),
    db: Session = Depends(get_db),
):
    """Export the user's transactions between two dates (inclusive) as CSV."""
    start_date = parse_date(start, "start")
    end_date = parse_date(end, "end")
    content = export_transactions_csv(BudgetStore(db), user.id, start_date, end_date)

    filename = f"transactions_{start_date.isoformat()}_{end_date.isoformat()}.csv"
    return StreamingResponse(
        io.BytesIO(content.encode("utf-8")),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.post("/api/import/csv")
async def import_csv(
    csv_file: UploadFile = File(...),
    user: User = Depends(require_api_user),
    db: Session = Depends(get_db),
):
    """Bulk import transactions from a CSV upload."""
    results = import_transactions_csv(BudgetStore(db), user.id, await _read_upload(csv_file))
    return JSONResponse({
        "success": True,
        "message": f"Imported {results['imported']} transactions",
        "details": results,
    })
