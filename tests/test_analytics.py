from datetime import date, timedelta
from decimal import Decimal

import pytest

from allowancetracker.exceptions import AuthorizationError, ValidationError
from allowancetracker.models import TransactionCategory, TransactionType


def _post(tracker, household, amount, kind, category, description):
    return tracker.ledger.create_transaction(
        household.child.id, amount, kind, category, description, household.parent_actor
    )


def test_balance_history_keeps_closing_balance_per_day(tracker, household, clock) -> None:
    _post(tracker, household, 5, TransactionType.DEBIT, TransactionCategory.SNACKS, "Crisps")
    clock.advance(days=1)
    _post(tracker, household, 10, TransactionType.CREDIT, TransactionCategory.CHORES, "Garden")
    _post(tracker, household, 3, TransactionType.DEBIT, TransactionCategory.CANDY, "Gum")

    history = tracker.analytics.balance_history(household.child.id, household.child_actor, days=7)

    assert [(point.day, point.balance) for point in history] == [
        (date(2024, 3, 4), Decimal("95.00")),
        (date(2024, 3, 5), Decimal("102.00")),
    ]
    with pytest.raises(ValidationError):
        tracker.analytics.balance_history(household.child.id, household.child_actor, days=0)


def test_income_vs_spending_ignores_goal_transfers(tracker, household, clock) -> None:
    _post(tracker, household, 12, TransactionType.DEBIT, TransactionCategory.BOOKS, "Novel")
    goal = tracker.goals.create_goal(household.child.id, "Bike", 100, household.child_actor)
    tracker.goals.contribute(goal.id, 40, household.child_actor)

    summary = tracker.analytics.income_vs_spending(household.child.id, household.parent_actor)

    assert summary.total_income == Decimal("100.00")
    assert summary.total_spending == Decimal("12.00")
    assert summary.net == Decimal("88.00")
    assert summary.income_count == 1
    assert summary.spending_count == 1

    later = tracker.analytics.income_vs_spending(
        household.child.id, household.parent_actor, start=clock.moment + timedelta(seconds=1)
    )
    assert later.total_income == Decimal("0.00")
    assert later.spending_count == 0


def test_category_spending_is_access_checked(tracker, household, new_household) -> None:
    _post(tracker, household, 6, TransactionType.DEBIT, TransactionCategory.CRAFTS, "Glitter")
    other = new_household(name="Okafor", parent_email="ada@example.com", child_email="tobi@example.com")

    [row] = tracker.analytics.category_spending(household.child.id, household.child_actor)
    assert row.category is TransactionCategory.CRAFTS
    assert row.display_name == "Crafts"
    assert row.percentage == Decimal("100.00")

    with pytest.raises(AuthorizationError):
        tracker.analytics.category_spending(household.child.id, other.child_actor)
