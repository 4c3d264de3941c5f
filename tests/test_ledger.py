import csv
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from allowancetracker.exceptions import (
    AuthorizationError,
    ChildNotFoundError,
    InsufficientFundsError,
    InvalidCategoryError,
    ValidationError,
)
from allowancetracker.models import NotificationType, TransactionCategory, TransactionType


def test_debit_reduces_balance_and_records_running_balance(tracker, household) -> None:
    transaction = tracker.ledger.create_transaction(
        household.child.id,
        30,
        TransactionType.DEBIT,
        TransactionCategory.TOYS,
        "Toy car",
        household.parent_actor,
    )

    assert transaction.amount_cents == 3000
    assert transaction.type is TransactionType.DEBIT
    assert transaction.balance_after_cents == 7000
    assert transaction.created_by_id == household.parent.id
    assert tracker.ledger.get_balance(household.child.id) == Decimal("70.00")


def test_credit_adds_to_balance(tracker, household) -> None:
    tracker.ledger.create_transaction(
        household.child.id,
        "12.50",
        TransactionType.CREDIT,
        TransactionCategory.GIFT,
        "Birthday money",
        household.parent_actor,
        notes="From grandma",
    )

    assert tracker.ledger.get_balance(household.child.id, household.child_actor) == Decimal("112.50")
    latest = tracker.ledger.list_transactions(household.child.id, household.parent_actor, limit=1)[0]
    assert latest.notes == "From grandma"
    assert latest.balance_after_cents == 11250


def test_overdraw_is_rejected_without_debt_allowance(tracker, household) -> None:
    with pytest.raises(InsufficientFundsError):
        tracker.ledger.create_transaction(
            household.child.id,
            150,
            TransactionType.DEBIT,
            TransactionCategory.GAMES,
            "Console",
            household.parent_actor,
        )

    assert tracker.ledger.get_balance(household.child.id) == Decimal("100.00")
    rows = tracker.ledger.list_transactions(household.child.id, household.parent_actor, limit=None)
    assert [row.description for row in rows] == ["Starting balance"]


def test_debt_allowance_permits_negative_balance(tracker, household) -> None:
    tracker.family.update_child_settings(household.child.id, household.parent_actor, allow_debt=True)

    transaction = tracker.ledger.create_transaction(
        household.child.id,
        150,
        TransactionType.DEBIT,
        TransactionCategory.GAMES,
        "Console",
        household.parent_actor,
    )

    assert transaction.balance_after_cents == -5000
    assert tracker.ledger.get_balance(household.child.id) == Decimal("-50.00")


def test_category_must_match_transaction_type(tracker, household) -> None:
    with pytest.raises(InvalidCategoryError):
        tracker.ledger.create_transaction(
            household.child.id,
            5,
            TransactionType.CREDIT,
            TransactionCategory.TOYS,
            "Wrong way round",
            household.parent_actor,
        )
    with pytest.raises(InvalidCategoryError):
        tracker.ledger.create_transaction(
            household.child.id,
            5,
            TransactionType.DEBIT,
            TransactionCategory.ALLOWANCE,
            "Wrong way round",
            household.parent_actor,
        )


def test_amount_and_description_are_validated(tracker, household) -> None:
    with pytest.raises(ValidationError):
        tracker.ledger.create_transaction(
            household.child.id,
            0,
            TransactionType.CREDIT,
            TransactionCategory.GIFT,
            "Nothing",
            household.parent_actor,
        )
    with pytest.raises(ValidationError):
        tracker.ledger.create_transaction(
            household.child.id,
            5,
            TransactionType.CREDIT,
            TransactionCategory.GIFT,
            "   ",
            household.parent_actor,
        )


def test_only_parents_of_the_family_post_transactions(tracker, household, new_household) -> None:
    with pytest.raises(AuthorizationError):
        tracker.ledger.create_transaction(
            household.child.id,
            5,
            TransactionType.CREDIT,
            TransactionCategory.GIFT,
            "Self gift",
            household.child_actor,
        )

    other = new_household(name="Okafor", parent_email="ada@example.com", child_email="tobi@example.com")
    with pytest.raises(AuthorizationError):
        tracker.ledger.create_transaction(
            household.child.id,
            5,
            TransactionType.CREDIT,
            TransactionCategory.GIFT,
            "Neighbourly gift",
            other.parent_actor,
        )
    with pytest.raises(AuthorizationError):
        tracker.ledger.list_transactions(household.child.id, other.child_actor)


def test_unknown_child_raises_not_found(tracker, household) -> None:
    with pytest.raises(ChildNotFoundError):
        tracker.ledger.create_transaction(
            uuid4(),
            5,
            TransactionType.CREDIT,
            TransactionCategory.GIFT,
            "Ghost",
            household.parent_actor,
        )


def test_transactions_are_listed_newest_first_with_filters(tracker, household) -> None:
    child_id = household.child.id
    parent = household.parent_actor
    tracker.ledger.create_transaction(child_id, 5, TransactionType.DEBIT, TransactionCategory.CANDY, "Lollipop", parent)
    tracker.ledger.create_transaction(child_id, 20, TransactionType.CREDIT, TransactionCategory.CHORES, "Raking", parent)
    tracker.ledger.create_transaction(child_id, 8, TransactionType.DEBIT, TransactionCategory.BOOKS, "Comic", parent)

    rows = tracker.ledger.list_transactions(child_id, household.child_actor)
    assert [row.description for row in rows] == ["Comic", "Raking", "Lollipop", "Starting balance"]
    assert [row.balance_after_cents for row in rows] == [10700, 11500, 9500, 10000]

    debits = tracker.ledger.list_transactions(child_id, parent, transaction_type=TransactionType.DEBIT)
    assert [row.description for row in debits] == ["Comic", "Lollipop"]

    candy = tracker.ledger.list_transactions(child_id, parent, category=TransactionCategory.CANDY)
    assert len(candy) == 1

    assert len(tracker.ledger.list_transactions(child_id, parent, limit=2)) == 2


def test_transaction_creates_notification_for_child(tracker, household) -> None:
    tracker.ledger.create_transaction(
        household.child.id,
        4,
        TransactionType.DEBIT,
        TransactionCategory.SNACKS,
        "Pretzel",
        household.parent_actor,
    )

    notifications = tracker.notifications.list_for_user(household.child.user_id)
    assert [item.type for item in notifications] == [NotificationType.TRANSACTION_CREATED]
    assert "$4.00" in notifications[0].title


def test_export_csv_lists_rows_in_posting_order(tracker, household) -> None:
    tracker.ledger.create_transaction(
        household.child.id,
        "2.25",
        TransactionType.DEBIT,
        TransactionCategory.SNACKS,
        "Juice",
        household.parent_actor,
    )

    export = tracker.ledger.export_csv(household.child.id, household.parent_actor)
    rows = list(csv.reader(StringIO(export)))
    assert rows[0] == ["timestamp", "type", "category", "description", "amount", "balance"]
    assert rows[1][1:] == ["credit", "other_income", "Starting balance", "100.00", "100.00"]
    assert rows[2][1:] == ["debit", "snacks", "Juice", "2.25", "97.75"]


def test_statement_summarises_recent_activity(tracker, household) -> None:
    text = tracker.ledger.statement(household.child.id, household.child_actor)

    assert "Account holder: Sam Rivera" in text
    assert "Current balance: $100.00" in text
    assert "Other Income: +$100.00 Starting balance" in text


def test_oversized_amounts_are_rejected_before_touching_the_database(tracker, household) -> None:
    for amount in ("1e20", "1000000.01", "NaN"):
        with pytest.raises(ValidationError):
            tracker.ledger.create_transaction(
                household.child.id,
                amount,
                TransactionType.CREDIT,
                TransactionCategory.GIFT,
                "Lottery",
                household.parent_actor,
            )

    assert tracker.ledger.get_balance(household.child.id) == Decimal("100.00")


def test_failed_commit_rolls_back_the_unit_of_work(tracker, household, monkeypatch) -> None:
    session = tracker.session
    real_rollback = session.rollback
    rollbacks = []

    def failing_commit() -> None:
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    def tracking_rollback() -> None:
        rollbacks.append(True)
        real_rollback()

    monkeypatch.setattr(session, "commit", failing_commit)
    monkeypatch.setattr(session, "rollback", tracking_rollback)
    with pytest.raises(OperationalError):
        tracker.ledger.create_transaction(
            household.child.id,
            5,
            TransactionType.DEBIT,
            TransactionCategory.TOYS,
            "Marbles",
            household.parent_actor,
        )
    monkeypatch.undo()

    assert rollbacks == [True]
    assert tracker.ledger.get_balance(household.child.id) == Decimal("100.00")
    tracker.ledger.create_transaction(
        household.child.id,
        5,
        TransactionType.DEBIT,
        TransactionCategory.TOYS,
        "Marbles",
        household.parent_actor,
    )
    assert tracker.ledger.get_balance(household.child.id) == Decimal("95.00")
