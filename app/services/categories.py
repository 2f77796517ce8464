"""Category management for a user's transactions."""

from typing import Optional

from app.config import settings
from app.errors import NotFoundError, ValidationError, category_not_found
from app.logging_config import get_logger
from app.models.transaction import Category
from app.store import BudgetStore

logger = get_logger(__name__)

# Color given to categories created through the API without one
API_DEFAULT_COLOR = "#000000"


def serialize_category(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "color": category.color,
    }


def get_or_create_category(store: BudgetStore, user_id: int, name: str) -> Category:
    """
    Return the user's category called ``name``, creating it if needed.

    Names match case-sensitively. A category created here has no color.
    """
    name = name.strip()
    category = store.find_category(user_id, name)
    if category is None:
        logger.info(f"Creating category '{name}' for user {user_id}")
        category = store.create_category(user_id, name, None)
    return category


def list_categories(store: BudgetStore, user_id: int) -> list[Category]:
    return store.list_categories(user_id)


def create_category(
    store: BudgetStore, user_id: int, name: str, color: Optional[str] = None
) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Missing required field: name")
    with store.atomic():
        if store.find_category(user_id, name) is not None:
            raise ValidationError(f"Category '{name}' already exists")
        category = store.create_category(user_id, name, color or API_DEFAULT_COLOR)
    logger.info(f"Category created for user {user_id}: {name}")
    return category


def update_category(
    store: BudgetStore,
    user_id: int,
    category_id: int,
    name: Optional[str] = None,
    color: Optional[str] = None,
) -> Category:
    with store.atomic():
        category = store.get_category(user_id, category_id)
        if category is None:
            raise NotFoundError(category_not_found(category_id))
        changes = {}
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Category name must not be empty")
            existing = store.find_category(user_id, name)
            if existing is not None and existing.id != category.id:
                raise ValidationError(f"Category '{name}' already exists")
            changes["name"] = name
        if color is not None:
            changes["color"] = color
        category = store.update_category(category.id, **changes)
    return category


def delete_category(store: BudgetStore, user_id: int, category_id: int) -> None:
    """Delete a category; its transactions become uncategorized."""
    with store.atomic():
        category = store.get_category(user_id, category_id)
        if category is None:
            raise NotFoundError(category_not_found(category_id))
        store.delete_category(category.id)
    logger.info(f"Category {category_id} deleted for user {user_id}")


def display_color(category: Optional[Category]) -> str:
    """Color used to render a category; uncolored ones get the default."""
    if category is not None and category.color:
        return category.color
    return settings.default_category_color
