import uuid

from sqlalchemy import Column, Integer, Float, String, ForeignKey, Date, DateTime, Boolean
from sqlalchemy.orm import relationship
from datetime import date, datetime
from app.models import Base


def new_id() -> str:
    return str(uuid.uuid4())


class Category(Base):
    """User-specific transaction categories."""
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    color = Column(String(20), nullable=True)  # None = no color, rendered with the default

    # Relationships
    user = relationship("User", back_populates="categories")
    transactions = relationship("Transaction", back_populates="category")


class RecurrenceRule(Base):
    """
    Repeating pattern for a recurring transaction.

    The rule is owned by one anchor transaction (the row carrying
    ``recurrence_rule_id``). ``end_date`` is inclusive: the rule may still
    produce an occurrence on that day. ``version`` is bumped on every update
    and checked by the ORM, so two concurrent edits of the same series cannot
    both commit.
    """
    __tablename__ = "recurrence_rules"

    id = Column(String(36), primary_key=True, default=new_id)
    frequency = Column(String(20), nullable=False, default="monthly")  # daily, weekly, monthly, yearly
    interval = Column(Integer, nullable=False, default=1)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    version = Column(Integer, nullable=False, default=1)

    transactions = relationship("Transaction", back_populates="recurrence_rule")

    __mapper_args__ = {"version_id_col": version}


class Transaction(Base):
    """
    Individual income or expense entries.

    Amounts are signed: negative for expenses, positive for income. A
    recurring transaction is the anchor of its recurrence rule; the
    occurrences it projects onto later dates are computed on read and never
    stored.
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    recurrence_rule_id = Column(String(36), ForeignKey("recurrence_rules.id"), nullable=True)

    description = Column(String(255), nullable=False)
    amount = Column(Float, nullable=False)
    date = Column(Date, nullable=False, default=date.today, index=True)
    is_recurring = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="transactions")
    category = relationship("Category", back_populates="transactions")
    recurrence_rule = relationship("RecurrenceRule", back_populates="transactions")

    @property
    def category_name(self):
        return self.category.name if self.category else None
