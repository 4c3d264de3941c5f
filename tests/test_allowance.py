from decimal import Decimal

import pytest

from allowancetracker.exceptions import AuthorizationError, InvalidStateError, ValidationError
from allowancetracker.models import (
    AllowanceAdjustmentType,
    AutoTransferType,
    ContributionType,
    NotificationType,
    TransactionCategory,
)


def test_pay_allowance_credits_weekly_amount_once_per_week(tracker, household, clock) -> None:
    transaction = tracker.allowance.pay_allowance(household.child.id, household.parent_actor)

    assert transaction.category is TransactionCategory.ALLOWANCE
    assert transaction.amount_cents == 1000
    assert tracker.ledger.get_balance(household.child.id) == Decimal("110.00")
    assert household.child.last_allowance_at == clock.moment

    with pytest.raises(InvalidStateError):
        tracker.allowance.pay_allowance(household.child.id, household.parent_actor)

    clock.advance(days=7)
    tracker.allowance.pay_allowance(household.child.id)
    assert tracker.ledger.get_balance(household.child.id) == Decimal("120.00")

    inbox = tracker.notifications.list_for_user(household.child.user_id)
    assert [item.type for item in inbox].count(NotificationType.ALLOWANCE_DEPOSIT) == 2


def test_children_cannot_pay_themselves(tracker, household) -> None:
    with pytest.raises(AuthorizationError):
        tracker.allowance.pay_allowance(household.child.id, household.child_actor)


def test_pause_and_resume_allowance(tracker, household, clock) -> None:
    with pytest.raises(AuthorizationError):
        tracker.allowance.pause_allowance(household.child.id, household.child_actor)

    paused = tracker.allowance.pause_allowance(household.child.id, household.parent_actor, reason="Grounded")
    assert paused.adjustment_type is AllowanceAdjustmentType.PAUSED
    assert household.child.allowance_paused is True
    assert household.child.allowance_paused_reason == "Grounded"

    with pytest.raises(InvalidStateError):
        tracker.allowance.pause_allowance(household.child.id, household.parent_actor)
    with pytest.raises(InvalidStateError):
        tracker.allowance.pay_allowance(household.child.id, household.parent_actor)

    clock.advance(minutes=5)
    resumed = tracker.allowance.resume_allowance(household.child.id, household.parent_actor)
    assert resumed.adjustment_type is AllowanceAdjustmentType.RESUMED
    assert household.child.allowance_paused is False
    assert household.child.allowance_paused_reason is None
    with pytest.raises(InvalidStateError):
        tracker.allowance.resume_allowance(household.child.id, household.parent_actor)

    history = tracker.allowance.list_adjustments(household.child.id, household.child_actor)
    assert [item.adjustment_type for item in history] == [
        AllowanceAdjustmentType.RESUMED,
        AllowanceAdjustmentType.PAUSED,
    ]
    kinds = {item.type for item in tracker.notifications.list_for_user(household.child.user_id)}
    assert {NotificationType.ALLOWANCE_PAUSED, NotificationType.ALLOWANCE_RESUMED} <= kinds


def test_adjust_allowance_amount_records_old_and_new(tracker, household) -> None:
    adjustment = tracker.allowance.adjust_allowance_amount(
        household.child.id, "12.50", household.parent_actor, reason="Birthday raise"
    )

    assert adjustment.adjustment_type is AllowanceAdjustmentType.AMOUNT_CHANGED
    assert adjustment.old_cents == 1000
    assert adjustment.new_cents == 1250
    assert household.child.weekly_allowance_cents == 1250

    with pytest.raises(ValidationError):
        tracker.allowance.adjust_allowance_amount(household.child.id, "12.50", household.parent_actor)

    tracker.allowance.adjust_allowance_amount(household.child.id, 0, household.parent_actor)
    with pytest.raises(ValidationError):
        tracker.allowance.pay_allowance(household.child.id, household.parent_actor)


def test_allowance_sweeps_auto_transfers_into_goals(tracker, household) -> None:
    half = tracker.goals.create_goal(
        household.child.id,
        "Skates",
        100,
        household.child_actor,
        auto_transfer_type=AutoTransferType.PERCENTAGE,
        auto_transfer_value=50,
    )
    fixed = tracker.goals.create_goal(
        household.child.id,
        "Stickers",
        "2",
        household.child_actor,
        priority=2,
        auto_transfer_type=AutoTransferType.FIXED_AMOUNT,
        auto_transfer_value=3,
    )

    tracker.allowance.pay_allowance(household.child.id, household.parent_actor)

    assert tracker.goals.get_goal(half.id).current_cents == 500
    # bounded by what the goal still needs
    assert tracker.goals.get_goal(fixed.id).current_cents == 200
    assert tracker.ledger.get_balance(household.child.id) == Decimal("103.00")
    transfers = tracker.goals.list_contributions(
        half.id, household.parent_actor, contribution_type=ContributionType.AUTO_TRANSFER
    )
    assert [item.amount_cents for item in transfers] == [500]


def test_auto_transfer_value_is_validated(tracker, household) -> None:
    with pytest.raises(ValidationError):
        tracker.goals.create_goal(
            household.child.id,
            "Too much",
            10,
            household.child_actor,
            auto_transfer_type=AutoTransferType.PERCENTAGE,
            auto_transfer_value=150,
        )


def test_process_pending_allowances_honours_allowance_day(tracker, household, clock) -> None:
    wednesday = tracker.family.add_child(
        household.family.id,
        "wren@example.com",
        "Wren",
        household.parent_actor,
        weekly_allowance=5,
        allowance_day=2,
    )
    paused = tracker.family.add_child(
        household.family.id,
        "max@example.com",
        "Max",
        household.parent_actor,
        weekly_allowance=5,
    )
    tracker.allowance.pause_allowance(paused.id, household.parent_actor)

    assert tracker.allowance.process_pending_allowances() == (1, 0)
    assert tracker.ledger.get_balance(household.child.id) == Decimal("110.00")
    assert tracker.ledger.get_balance(wednesday.id) == Decimal("0.00")
    assert tracker.allowance.process_pending_allowances() == (0, 0)

    clock.advance(days=2)
    assert tracker.allowance.process_pending_allowances() == (1, 0)
    assert tracker.ledger.get_balance(wednesday.id) == Decimal("5.00")
    assert tracker.ledger.get_balance(paused.id) == Decimal("0.00")
