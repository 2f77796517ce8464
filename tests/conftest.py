"""
Pytest fixtures and configuration for BudgetFlow tests.

This module provides common fixtures used across all test modules,
including database setup, test client, and transaction factories.
"""

import pytest
from datetime import date
from typing import Generator, Optional

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from app.main import app
from app.db import get_db, Base
from app.models.user import User
from app.models.transaction import Category, RecurrenceRule, Transaction
from app.store import BudgetStore
from app.utils.auth import hash_password


# Create in-memory SQLite database for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Test password used in fixtures
TEST_PASSWORD = "testpassword123"


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """
    Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    """
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """
    Create a test client with overridden database dependency.
    """
    app.dependency_overrides[get_db] = lambda: db_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def store(db_session: Session) -> BudgetStore:
    return BudgetStore(db_session)


def _create_user(db_session: Session, username: str, name: str) -> User:
    user = User(
        username=username,
        password_hash=hash_password(TEST_PASSWORD),
        name=name,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def test_user(db_session: Session) -> User:
    """
    Create a test user in the database.
    """
    return _create_user(db_session, "testuser", "Test User")


@pytest.fixture
def other_user(db_session: Session) -> User:
    """
    A second user, for ownership checks.
    """
    return _create_user(db_session, "otheruser", "Other User")


@pytest.fixture
def test_user_with_auth(client: TestClient, test_user: User) -> User:
    """
    Create a test user and set authentication cookie.
    """
    client.cookies.set("username", test_user.username)
    return test_user


@pytest.fixture
def test_category(db_session: Session, test_user: User) -> Category:
    """
    Create a test category.
    """
    category = Category(user_id=test_user.id, name="Housing", color="#3f51b5")
    db_session.add(category)
    db_session.commit()
    db_session.refresh(category)
    return category


@pytest.fixture
def make_transaction(db_session: Session, test_user: User):
    """
    Factory for stored transactions.

    Passing ``frequency`` creates a recurring anchor with its rule. Passing
    only ``rule`` creates a stored, non-recurring row of an existing series.
    """
    def _make(
        description: str = "Groceries",
        amount: float = -50.0,
        on: date = date(2024, 6, 10),
        category: Optional[Category] = None,
        frequency: Optional[str] = None,
        interval: int = 1,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        user: Optional[User] = None,
        rule: Optional[RecurrenceRule] = None,
    ) -> Transaction:
        if frequency is not None and rule is None:
            rule = RecurrenceRule(
                frequency=frequency,
                interval=interval,
                start_date=start_date or on,
                end_date=end_date,
            )
            db_session.add(rule)
            db_session.flush()
        transaction = Transaction(
            user_id=(user or test_user).id,
            description=description,
            amount=amount,
            date=on,
            category_id=category.id if category else None,
            is_recurring=frequency is not None,
            recurrence_rule_id=rule.id if rule is not None else None,
        )
        db_session.add(transaction)
        db_session.commit()
        db_session.refresh(transaction)
        return transaction

    return _make


@pytest.fixture
def rent_anchor(make_transaction, test_category: Category) -> Transaction:
    """
    Monthly rent of -800 starting 2024-01-01, no end date.
    """
    return make_transaction(
        description="Rent",
        amount=-800.0,
        on=date(2024, 1, 1),
        category=test_category,
        frequency="monthly",
    )
