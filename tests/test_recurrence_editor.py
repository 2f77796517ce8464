"""
Tests for editing recurring series in current, future and all modes.

All service-level tests fix ``now`` to 2024-06-15 against a monthly rent
series of -800 that started on 2024-01-01.
"""

import pytest
from datetime import date

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db import Base
from app.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.models.transaction import Category, RecurrenceRule, Transaction
from app.models.user import User
from app.services.occurrences import generate_occurrences
from app.services.recurrence_editor import ModificationMode, SeriesChanges, modify_recurring_series
from app.store import BudgetStore
from app.utils.auth import hash_password
from app.utils.dates import month_bounds

NOW = date(2024, 6, 15)


def june_rent(amount=-850.0, **kwargs):
    return SeriesChanges(description="Rent", amount=amount, date=date(2024, 6, 1), **kwargs)


def month_dates(store, user, year, month):
    start, end = month_bounds(year, month)
    return sorted(o.date for o in generate_occurrences(store, user.id, start, end, month, year))


class TestCurrentMode:
    """Test suite for changing only the current month's occurrence."""

    def test_split_into_three_segments(self, store, db_session, test_user, rent_anchor):
        """The series ends last month, June becomes a one-off and July resumes the original."""
        result = modify_recurring_series(store, rent_anchor.id, "current", june_rent(), test_user.id, now=NOW)

        assert result.mode is ModificationMode.CURRENT
        assert result.updated_rule.end_date == date(2024, 5, 31)

        one_off, resumed = result.created_transactions
        assert one_off.amount == -850.0
        assert one_off.date == date(2024, 6, 1)
        assert one_off.is_recurring is False
        assert one_off.recurrence_rule_id is None

        continuation = result.created_rules[0]
        assert continuation.start_date == date(2024, 7, 1)
        assert continuation.frequency == "monthly"
        assert continuation.end_date is None
        assert resumed.recurrence_rule_id == continuation.id
        assert resumed.amount == -800.0
        assert resumed.description == "Rent"
        assert resumed.category_id == rent_anchor.category_id
        assert resumed.date == date(2024, 7, 1)

        assert db_session.query(Transaction).count() == 3
        assert db_session.query(RecurrenceRule).count() == 2

    def test_months_after_split(self, store, test_user, rent_anchor):
        """May is still generated, June has only the one-off, August comes from the continuation."""
        modify_recurring_series(store, rent_anchor.id, "current", june_rent(), test_user.id, now=NOW)

        assert month_dates(store, test_user, 2024, 5) == [date(2024, 5, 1)]
        assert month_dates(store, test_user, 2024, 6) == []
        assert month_dates(store, test_user, 2024, 7) == []  # the resumed anchor itself
        assert month_dates(store, test_user, 2024, 8) == [date(2024, 8, 1)]

    def test_no_continuation_when_series_already_ending(self, store, test_user, make_transaction):
        """A series ending this month is not resumed."""
        anchor = make_transaction(
            description="Loan", amount=-200.0, on=date(2024, 1, 10),
            frequency="monthly", end_date=date(2024, 6, 30),
        )
        changes = SeriesChanges(description="Loan", amount=-150.0, date=date(2024, 6, 10))
        result = modify_recurring_series(store, anchor.id, "current", changes, test_user.id, now=NOW)

        assert result.created_rules == []
        assert len(result.created_transactions) == 1

    def test_earlier_end_date_is_kept(self, store, test_user, make_transaction):
        """A series that already ended is not extended to last month."""
        anchor = make_transaction(
            description="Loan", amount=-200.0, on=date(2024, 1, 10),
            frequency="monthly", end_date=date(2024, 3, 31),
        )
        changes = SeriesChanges(description="Loan", amount=-150.0, date=date(2024, 6, 10))
        result = modify_recurring_series(store, anchor.id, "current", changes, test_user.id, now=NOW)

        assert result.updated_rule.end_date == date(2024, 3, 31)
        assert result.created_rules == []
        assert month_dates(store, test_user, 2024, 4) == []
        assert month_dates(store, test_user, 2024, 5) == []

    def test_rule_starting_this_month_not_ended_before_start(self, store, test_user, make_transaction):
        """The past segment never ends before its own start date."""
        anchor = make_transaction(description="Gym", amount=-30.0, on=date(2024, 6, 3), frequency="weekly")
        changes = SeriesChanges(description="Gym", amount=-35.0, date=date(2024, 6, 10))
        result = modify_recurring_series(store, anchor.id, ModificationMode.CURRENT, changes, test_user.id, now=NOW)

        assert result.updated_rule.end_date == date(2024, 6, 3)


class TestFutureMode:
    """Test suite for changing the current and following occurrences."""

    def test_new_series_from_edited_date(self, store, test_user, rent_anchor):
        result = modify_recurring_series(
            store, rent_anchor.id, "future", june_rent(-900.0), test_user.id, now=NOW
        )

        assert result.updated_rule.end_date == date(2024, 5, 31)
        new_anchor = result.created_transactions[0]
        new_rule = result.created_rules[0]
        assert new_rule.start_date == date(2024, 6, 1)
        assert new_rule.frequency == "monthly"
        assert new_anchor.amount == -900.0
        assert new_anchor.is_recurring is True
        assert new_anchor.recurrence_rule_id == new_rule.id

    def test_original_anchor_untouched(self, store, test_user, rent_anchor):
        modify_recurring_series(store, rent_anchor.id, "future", june_rent(-900.0), test_user.id, now=NOW)

        assert rent_anchor.amount == -800.0
        assert rent_anchor.date == date(2024, 1, 1)
        assert month_dates(store, test_user, 2024, 5) == [date(2024, 5, 1)]

    def test_frequency_change(self, store, test_user, rent_anchor):
        """The new series may repeat on a different schedule."""
        changes = june_rent(frequency="weekly", interval=2)
        result = modify_recurring_series(store, rent_anchor.id, "future", changes, test_user.id, now=NOW)

        assert result.created_rules[0].frequency == "weekly"
        assert result.created_rules[0].interval == 2
        assert month_dates(store, test_user, 2024, 6) == [date(2024, 6, 15), date(2024, 6, 29)]

    def test_date_before_current_month_rejected(self, store, db_session, test_user, rent_anchor):
        """Starting the new series in a past month would overlap the kept segment."""
        changes = SeriesChanges(description="Rent", amount=-900.0, date=date(2024, 4, 1))
        with pytest.raises(ValidationError, match="current month or later"):
            modify_recurring_series(store, rent_anchor.id, "future", changes, test_user.id, now=NOW)

        assert db_session.query(RecurrenceRule).count() == 1
        assert db_session.get(RecurrenceRule, rent_anchor.recurrence_rule_id).end_date is None
        assert month_dates(store, test_user, 2024, 5) == [date(2024, 5, 1)]


class TestAllMode:
    """Test suite for rewriting a whole series in place."""

    def test_rewrites_rule_and_anchor(self, store, db_session, test_user, rent_anchor):
        changes = SeriesChanges(description="Rent", amount=-950.0, date=date(2024, 1, 1))
        result = modify_recurring_series(store, rent_anchor.id, "all", changes, test_user.id, now=NOW)

        assert result.mode is ModificationMode.ALL
        assert result.updated_transaction.id == rent_anchor.id
        assert result.updated_transaction.amount == -950.0
        assert result.created_transactions == []
        assert result.created_rules == []
        assert db_session.query(Transaction).count() == 1

        start, end = month_bounds(2024, 3)
        occurrences = generate_occurrences(store, test_user.id, start, end, 3, 2024)
        assert [o.amount for o in occurrences] == [-950.0]

    def test_schedule_change_applies_to_past(self, store, test_user, rent_anchor):
        changes = SeriesChanges(
            description="Rent", amount=-800.0, date=date(2024, 1, 1),
            interval=2, end_date=date(2024, 12, 31),
        )
        result = modify_recurring_series(store, rent_anchor.id, "all", changes, test_user.id, now=NOW)

        assert result.updated_rule.interval == 2
        assert result.updated_rule.end_date == date(2024, 12, 31)
        assert month_dates(store, test_user, 2024, 2) == []
        assert month_dates(store, test_user, 2024, 3) == [date(2024, 3, 1)]

    def test_category_and_omitted_fields(self, store, db_session, test_user, rent_anchor):
        """A supplied category replaces the anchor's; omitted rule fields keep their values."""
        changes = SeriesChanges(description="Flat", amount=-800.0, date=date(2024, 1, 1), category="Utilities")
        result = modify_recurring_series(store, rent_anchor.id, "all", changes, test_user.id, now=NOW)

        assert result.updated_transaction.category.name == "Utilities"
        assert result.updated_transaction.description == "Flat"
        assert result.updated_rule.frequency == "monthly"
        assert result.updated_rule.start_date == date(2024, 1, 1)
        assert result.updated_rule.end_date is None

    def test_end_date_checked_against_rule_start(self, store, test_user, rent_anchor):
        """The kept rule start, not the new anchor date, bounds the end date."""
        changes = SeriesChanges(
            description="Rent", amount=-800.0, date=date(2024, 7, 1), end_date=date(2024, 6, 30),
        )
        result = modify_recurring_series(store, rent_anchor.id, "all", changes, test_user.id, now=NOW)

        assert result.updated_rule.start_date == date(2024, 1, 1)
        assert result.updated_rule.end_date == date(2024, 6, 30)
        assert result.updated_transaction.date == date(2024, 7, 1)

    def test_supplied_start_after_end_rejected(self, store, test_user, rent_anchor):
        changes = SeriesChanges(
            description="Rent", amount=-800.0, date=date(2024, 1, 1),
            start_date=date(2024, 8, 1), end_date=date(2024, 6, 30),
        )
        with pytest.raises(ValidationError, match="End date must not be before the start date"):
            modify_recurring_series(store, rent_anchor.id, "all", changes, test_user.id, now=NOW)

    def test_result_serialization(self, store, test_user, rent_anchor):
        changes = SeriesChanges(description="Rent", amount=-950.0, date=date(2024, 1, 1))
        data = modify_recurring_series(store, rent_anchor.id, "all", changes, test_user.id, now=NOW).to_dict()

        assert data["mode"] == "all"
        assert data["updated_rule"]["start_date"] == "2024-01-01"
        assert data["updated_transaction"]["amount"] == -950.0
        assert data["created_transactions"] == []


class TestCategories:
    """Test suite for category handling during edits."""

    def test_existing_category_reused(self, store, db_session, test_user, rent_anchor, test_category):
        result = modify_recurring_series(
            store, rent_anchor.id, "future", june_rent(category="Housing"), test_user.id, now=NOW
        )
        assert result.created_transactions[0].category_id == test_category.id
        assert db_session.query(Category).count() == 1

    def test_new_category_created(self, store, db_session, test_user, rent_anchor):
        result = modify_recurring_series(
            store, rent_anchor.id, "current", june_rent(category="Utilities"), test_user.id, now=NOW
        )
        created = db_session.query(Category).filter(Category.name == "Utilities").one()
        assert result.created_transactions[0].category_id == created.id
        # The continuation keeps the original category
        assert result.created_transactions[1].category_id == rent_anchor.category_id


class TestErrors:
    """Test suite for rejected edits."""

    def test_unknown_anchor(self, store, test_user):
        with pytest.raises(NotFoundError):
            modify_recurring_series(store, "missing", "all", june_rent(), test_user.id, now=NOW)

    def test_other_users_anchor(self, store, other_user, rent_anchor):
        with pytest.raises(NotFoundError):
            modify_recurring_series(store, rent_anchor.id, "all", june_rent(), other_user.id, now=NOW)

    def test_not_recurring(self, store, test_user, make_transaction):
        plain = make_transaction(description="Coffee", amount=-4.0)
        with pytest.raises(InvalidStateError, match="not recurring"):
            modify_recurring_series(store, plain.id, "current", june_rent(), test_user.id, now=NOW)

    def test_invalid_mode(self, store, test_user, rent_anchor):
        with pytest.raises(InvalidStateError, match="Invalid modification mode 'sometimes'"):
            modify_recurring_series(store, rent_anchor.id, "sometimes", june_rent(), test_user.id, now=NOW)

    @pytest.mark.parametrize("changes", [
        SeriesChanges(description="  ", amount=-1.0, date=date(2024, 6, 1)),
        SeriesChanges(description="Rent", amount="lots", date=date(2024, 6, 1)),
        SeriesChanges(description="Rent", amount=-1.0, date=date(2024, 6, 1), frequency="hourly"),
        SeriesChanges(description="Rent", amount=-1.0, date=date(2024, 6, 1), interval=0),
        SeriesChanges(description="Rent", amount=-1.0, date=date(2024, 6, 1), end_date=date(2024, 5, 1)),
    ])
    def test_invalid_changes(self, store, test_user, rent_anchor, changes):
        with pytest.raises(ValidationError):
            modify_recurring_series(store, rent_anchor.id, "future", changes, test_user.id, now=NOW)

    def test_failure_rolls_back_every_step(self, store, db_session, test_user, make_transaction):
        """A failure after the category was created leaves nothing behind."""
        anchor = make_transaction(
            description="Loan", amount=-200.0, on=date(2024, 1, 10),
            frequency="monthly", end_date=date(2024, 3, 31),
        )
        changes = june_rent(category="Debt")
        with pytest.raises(ValidationError, match="ends before"):
            modify_recurring_series(store, anchor.id, "future", changes, test_user.id, now=NOW)

        assert db_session.query(Category).count() == 0
        assert db_session.query(RecurrenceRule).count() == 1
        assert db_session.get(RecurrenceRule, anchor.recurrence_rule_id).end_date == date(2024, 3, 31)


class TestConcurrentEdits:
    """Test suite for two requests editing the same series."""

    @pytest.fixture
    def file_sessions(self, tmp_path):
        """Session factory on a file-backed SQLite database, so sessions use separate connections."""
        engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False})
        Base.metadata.create_all(bind=engine)
        Sessions = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        yield Sessions
        engine.dispose()

    def _seed(self, Sessions):
        with Sessions() as setup:
            user = User(username="racer", password_hash=hash_password("racerpass1"), name="Racer")
            rule = RecurrenceRule(frequency="monthly", interval=1, start_date=date(2024, 1, 1))
            setup.add_all([user, rule])
            setup.flush()
            anchor = Transaction(
                user_id=user.id, description="Rent", amount=-800.0, date=date(2024, 1, 1),
                is_recurring=True, recurrence_rule_id=rule.id,
            )
            setup.add(anchor)
            setup.commit()
            return user.id, anchor.id, rule.id

    def test_rule_changed_after_read_is_a_conflict(self, file_sessions, monkeypatch):
        """A rule committed by another session after it was read fails the version check."""
        user_id, anchor_id, rule_id = self._seed(file_sessions)
        session = file_sessions()
        store = BudgetStore(session)
        read_rule = store.get_recurrence_rule

        def read_then_commit_elsewhere(requested_id, for_update=False):
            rule = read_rule(requested_id, for_update=for_update)
            with file_sessions() as other:
                other.get(RecurrenceRule, requested_id).end_date = date(2024, 12, 31)
                other.commit()
            return rule

        monkeypatch.setattr(store, "get_recurrence_rule", read_then_commit_elsewhere)
        try:
            with pytest.raises(ConflictError):
                modify_recurring_series(
                    store, anchor_id, "current", june_rent(category="Utilities"), user_id, now=NOW
                )
        finally:
            session.close()

        with file_sessions() as check:
            rule = check.get(RecurrenceRule, rule_id)
            assert rule.end_date == date(2024, 12, 31)
            assert rule.version == 2
            assert check.query(RecurrenceRule).count() == 1
            assert check.query(Transaction).count() == 1
            assert check.query(Category).count() == 0

    def test_sequential_edits_succeed(self, file_sessions):
        """Without interleaving, the version check lets each edit through."""
        user_id, anchor_id, rule_id = self._seed(file_sessions)
        for amount, interval in ((-850.0, 2), (-900.0, 3)):
            with file_sessions() as session:
                changes = SeriesChanges(description="Rent", amount=amount, date=date(2024, 1, 1), interval=interval)
                modify_recurring_series(BudgetStore(session), anchor_id, "all", changes, user_id, now=NOW)

        with file_sessions() as check:
            assert check.get(Transaction, anchor_id).amount == -900.0
            assert check.get(RecurrenceRule, rule_id).version == 3


class TestRecurringModifyApi:
    """Test suite for the recurring modify endpoint."""

    def test_modify_all_from_occurrence_id(self, client, test_user_with_auth, rent_anchor):
        """An occurrence id resolves to its anchor."""
        response = client.post("/api/transactions/recurring/modify", json={
            "id": f"{rent_anchor.id}-2024-6-1",
            "mode": "all",
            "description": "Rent",
            "amount": -975,
            "date": "2024-01-01",
        })
        assert response.status_code == 200
        data = response.json()
        assert data["mode"] == "all"
        assert data["updated_transaction"]["id"] == rent_anchor.id
        assert data["updated_transaction"]["amount"] == -975

    def test_invalid_mode_returns_400(self, client, test_user_with_auth, rent_anchor):
        response = client.post("/api/transactions/recurring/modify", json={
            "id": rent_anchor.id,
            "mode": "never",
            "description": "Rent",
            "amount": -800,
            "date": "2024-06-01",
        })
        assert response.status_code == 400
        assert "Invalid modification mode" in response.json()["error"]

    def test_not_recurring_returns_400(self, client, test_user_with_auth, make_transaction):
        plain = make_transaction(description="Coffee", amount=-4.0)
        response = client.post("/api/transactions/recurring/modify", json={
            "id": plain.id,
            "mode": "all",
            "description": "Coffee",
            "amount": -5,
            "date": "2024-06-10",
        })
        assert response.status_code == 400

    def test_unknown_series_returns_404(self, client, test_user_with_auth):
        response = client.post("/api/transactions/recurring/modify", json={
            "id": "does-not-exist",
            "mode": "all",
            "description": "Rent",
            "amount": -800,
            "date": "2024-06-01",
        })
        assert response.status_code == 404

    def test_requires_login(self, client, rent_anchor):
        response = client.post("/api/transactions/recurring/modify", json={
            "id": rent_anchor.id,
            "mode": "all",
            "description": "Rent",
            "amount": -800,
            "date": "2024-06-01",
        })
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}
