"""
Data access for transactions, categories and recurrence rules.

``BudgetStore`` wraps a SQLAlchemy session. Its write methods only flush;
nothing is committed until the outermost ``atomic()`` block exits cleanly,
so a multi-step operation either lands completely or not at all.
"""

from contextlib import contextmanager
from datetime import date
from typing import Iterable, Optional

from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.exc import StaleDataError

from app.errors import ConflictError
from app.logging_config import get_logger
from app.models.transaction import Category, RecurrenceRule, Transaction

logger = get_logger(__name__)


class BudgetStore:
    """Transactional data store over a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db
        self._depth = 0

    @contextmanager
    def atomic(self):
        """
        Run a block of writes as one database transaction.

        Nested blocks join the outer one. Any exception rolls back every
        write made since the outermost block began; a concurrent update
        detected by the rule version check is re-raised as ConflictError.
        """
        outermost = self._depth == 0
        self._depth += 1
        try:
            yield self
            if outermost:
                self.db.commit()
        except StaleDataError as exc:
            if outermost:
                self.db.rollback()
            logger.warning(f"Concurrent modification detected: {exc}")
            raise ConflictError(
                "This recurring series was modified by another request; reload and try again"
            ) from exc
        except Exception:
            if outermost:
                self.db.rollback()
            raise
        finally:
            self._depth -= 1

    # Transactions

    def _transactions(self):
        return self.db.query(Transaction).options(
            joinedload(Transaction.category),
            joinedload(Transaction.recurrence_rule),
        )

    def find_transactions(
        self,
        user_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        recurring: Optional[bool] = None,
        ids: Optional[Iterable[str]] = None,
        newest_first: bool = False,
    ) -> list[Transaction]:
        """Return the user's transactions matching every given filter."""
        query = self._transactions().filter(Transaction.user_id == user_id)
        if start is not None:
            query = query.filter(Transaction.date >= start)
        if end is not None:
            query = query.filter(Transaction.date <= end)
        if recurring is True:
            query = query.filter(
                Transaction.is_recurring.is_(True),
                Transaction.recurrence_rule_id.isnot(None),
            )
        elif recurring is False:
            query = query.filter(Transaction.is_recurring.is_(False))
        if ids is not None:
            query = query.filter(Transaction.id.in_(list(ids)))
        if newest_first:
            query = query.order_by(Transaction.date.desc(), Transaction.created_at.desc())
        else:
            query = query.order_by(Transaction.date, Transaction.created_at)
        return query.all()

    def get_transaction(
        self, user_id: int, transaction_id: str, for_update: bool = False
    ) -> Optional[Transaction]:
        query = self.db.query(Transaction).filter(
            Transaction.id == transaction_id,
            Transaction.user_id == user_id,
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def create_transaction(self, **data) -> Transaction:
        transaction = Transaction(**data)
        self.db.add(transaction)
        self.db.flush()
        return transaction

    def update_transaction(self, transaction_id: str, **data) -> Transaction:
        transaction = self.db.get(Transaction, transaction_id)
        for field, value in data.items():
            setattr(transaction, field, value)
        self.db.flush()
        return transaction

    def delete_transaction(self, transaction_id: str) -> None:
        transaction = self.db.get(Transaction, transaction_id)
        if transaction is not None:
            self.db.delete(transaction)
            self.db.flush()

    # Categories

    def list_categories(self, user_id: int) -> list[Category]:
        return self.db.query(Category).filter(Category.user_id == user_id).order_by(Category.name).all()

    def get_category(self, user_id: int, category_id: int) -> Optional[Category]:
        return self.db.query(Category).filter(
            Category.id == category_id,
            Category.user_id == user_id,
        ).first()

    def find_category(self, user_id: int, name: str) -> Optional[Category]:
        """Case-sensitive lookup of a category by name."""
        return self.db.query(Category).filter(
            Category.user_id == user_id,
            Category.name == name,
        ).first()

    def create_category(self, user_id: int, name: str, color: Optional[str] = None) -> Category:
        category = Category(user_id=user_id, name=name, color=color)
        self.db.add(category)
        self.db.flush()
        return category

    def update_category(self, category_id: int, **data) -> Category:
        category = self.db.get(Category, category_id)
        for field, value in data.items():
            setattr(category, field, value)
        self.db.flush()
        return category

    def delete_category(self, category_id: int) -> None:
        # Referencing transactions become uncategorized
        self.db.query(Transaction).filter(Transaction.category_id == category_id).update(
            {"category_id": None}, synchronize_session="fetch"
        )
        category = self.db.get(Category, category_id)
        if category is not None:
            self.db.delete(category)
        self.db.flush()

    # Recurrence rules

    def get_recurrence_rule(self, rule_id: str, for_update: bool = False) -> Optional[RecurrenceRule]:
        query = self.db.query(RecurrenceRule).filter(RecurrenceRule.id == rule_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def create_recurrence_rule(self, **data) -> RecurrenceRule:
        rule = RecurrenceRule(**data)
        self.db.add(rule)
        self.db.flush()
        return rule

    def update_recurrence_rule(self, rule_id: str, **data) -> RecurrenceRule:
        rule = self.db.get(RecurrenceRule, rule_id)
        for field, value in data.items():
            setattr(rule, field, value)
        self.db.flush()
        return rule
