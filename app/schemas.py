"""Request bodies of the JSON API. Dates are ISO-8601 strings."""

from typing import Optional

from pydantic import BaseModel, Field


class TransactionCreate(BaseModel):
    description: str
    amount: float
    date: str
    category: Optional[str] = None
    is_recurring: bool = False
    frequency: Optional[str] = None  # daily, weekly, monthly, yearly
    interval: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class TransactionUpdate(BaseModel):
    description: Optional[str] = None
    amount: Optional[float] = None
    date: Optional[str] = None
    category: Optional[str] = None
    is_recurring: Optional[bool] = None
    frequency: Optional[str] = None
    interval: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class BatchDeleteRequest(BaseModel):
    ids: list[str] = Field(default_factory=list)


class RecurringModifyRequest(BaseModel):
    """Edit of a recurring series; ``id`` is the anchor or one of its occurrence ids."""
    id: str
    mode: str  # current, future or all
    description: str
    amount: float
    date: str
    category: Optional[str] = None
    frequency: Optional[str] = None
    interval: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class CategoryCreate(BaseModel):
    name: str
    color: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
