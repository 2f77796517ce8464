"""
Category routes for BudgetFlow.

Routes:
    GET    /categories              - Category page
    POST   /categories/add          - Add category (form)
    POST   /categories/delete/<id>  - Delete category (form)
    GET    /api/categories          - List categories
    POST   /api/categories          - Create category
    PATCH  /api/categories/<id>     - Rename or recolor category
    DELETE /api/categories/<id>     - Delete category
"""

from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Request, Form, Depends, Query
from fastapi.responses import RedirectResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from app.config import settings
from app.db import get_db
from app.errors import DomainError
from app.models.user import User
from app.schemas import CategoryCreate, CategoryUpdate
from app.services import categories as category_service
from app.store import BudgetStore
from app.utils.auth import get_current_user, require_api_user
from app.logging_config import get_logger

# Module logger for category operations
logger = get_logger(__name__)

router = APIRouter()
templates = Jinja2Templates(directory="app/templates")


@router.get("/categories")
def categories_page(request: Request, db: Session = Depends(get_db), error: Optional[str] = Query(None)):
    user = get_current_user(request, db)
    if not user:
        return RedirectResponse("/login")

    return templates.TemplateResponse("categories.html", {
        "request": request,
        "title": "Categories",
        "user": user,
        "categories": category_service.list_categories(BudgetStore(db), user.id),
        "default_color": settings.default_category_color,
        "error": error,
    })


@router.post("/categories/add")
def add_category(
    request: Request,
    db: Session = Depends(get_db),
    category_name: str = Form(...),
    color: Optional[str] = Form(None),
):
    user = get_current_user(request, db)
    if not user:
        return RedirectResponse("/login")

    try:
        category_service.create_category(BudgetStore(db), user.id, category_name, color or None)
    except DomainError as e:
        logger.warning(f"Add category failed for {user.username}: {e}")
        return RedirectResponse(f"/categories?{urlencode({'error': str(e)})}", status_code=303)
    return RedirectResponse("/categories", status_code=303)


@router.post("/categories/delete/{category_id}")
def delete_category_form(category_id: int, request: Request, db: Session = Depends(get_db)):
    user = get_current_user(request, db)
    if not user:
        return RedirectResponse("/login")

    try:
        category_service.delete_category(BudgetStore(db), user.id, category_id)
    except DomainError as e:
        logger.warning(f"Delete category {category_id} failed for {user.username}: {e}")
        return RedirectResponse(f"/categories?{urlencode({'error': str(e)})}", status_code=303)
    return RedirectResponse("/categories", status_code=303)


@router.get("/api/categories")
def list_categories(user: User = Depends(require_api_user), db: Session = Depends(get_db)):
    categories = category_service.list_categories(BudgetStore(db), user.id)
    return JSONResponse([category_service.serialize_category(c) for c in categories])


@router.post("/api/categories")
def create_category(
    body: CategoryCreate,
    user: User = Depends(require_api_user),
    db: Session = Depends(get_db),
):
    category = category_service.create_category(BudgetStore(db), user.id, body.name, body.color)
    return JSONResponse(category_service.serialize_category(category), status_code=201)


@router.patch("/api/categories/{category_id}")
def update_category(
    category_id: int,
    body: CategoryUpdate,
    user: User = Depends(require_api_user),
    db: Session = Depends(get_db),
):
    category = category_service.update_category(
        BudgetStore(db), user.id, category_id, name=body.name, color=body.color
    )
    return JSONResponse(category_service.serialize_category(category))


@router.delete("/api/categories/{category_id}")
def delete_category(
    category_id: int,
    user: User = Depends(require_api_user),
    db: Session = Depends(get_db),
):
    category_service.delete_category(BudgetStore(db), user.id, category_id)
    return JSONResponse({"success": True})
