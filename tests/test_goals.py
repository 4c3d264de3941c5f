from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import event

from allowancetracker.exceptions import (
    AuthorizationError,
    ChallengeNotFoundError,
    DuplicateError,
    InsufficientFundsError,
    InvalidStateError,
    MatchingRuleNotFoundError,
    ValidationError,
)
from allowancetracker.models import (
    AutoTransferType,
    ChallengeStatus,
    ContributionType,
    GoalStatus,
    MatchingType,
    NotificationType,
    TransactionCategory,
    TransactionType,
)
from allowancetracker.service import AllowanceTracker


def _goal(tracker, household, target="100", **kwargs):
    return tracker.goals.create_goal(household.child.id, "Bike", target, household.child_actor, **kwargs)


def test_create_goal_builds_milestones(tracker, household) -> None:
    goal = _goal(tracker, household, target="80")

    milestones = tracker.goals.milestones(goal.id)
    assert [item.percent_complete for item in milestones] == [25, 50, 75, 100]
    assert [item.target_cents for item in milestones] == [2000, 4000, 6000, 8000]
    assert milestones[-1].message == "You reached your goal!"
    assert goal.status is GoalStatus.ACTIVE

    with pytest.raises(ValidationError):
        tracker.goals.create_goal(household.child.id, "Nothing", 0, household.child_actor)
    with pytest.raises(ValidationError):
        tracker.goals.create_goal(household.child.id, " ", 10, household.child_actor)


def test_contribution_over_target_is_capped_with_surplus(tracker, household) -> None:
    goal = _goal(tracker, household)
    first = tracker.goals.contribute(goal.id, 80, household.child_actor)
    assert first.new_amount == Decimal("80.00")
    assert first.milestone_reached is not None
    assert first.milestone_reached.percent == 75
    tracker.ledger.create_transaction(
        household.child.id,
        30,
        TransactionType.CREDIT,
        TransactionCategory.GIFT,
        "Pocket money",
        household.parent_actor,
    )
    assert tracker.ledger.get_balance(household.child.id) == Decimal("50.00")

    progress = tracker.goals.contribute(goal.id, 30, household.child_actor)

    assert tracker.ledger.get_balance(household.child.id) == Decimal("20.00")
    assert progress.new_amount == Decimal("100.00")
    assert progress.surplus_amount == Decimal("10.00")
    assert progress.progress_percentage == Decimal("100.00")
    assert progress.is_completed is True
    assert progress.milestone_reached is not None
    assert progress.milestone_reached.percent == 100
    stored = tracker.goals.get_goal(goal.id)
    assert stored.current_cents == 10000
    assert stored.surplus_cents == 1000
    assert stored.status is GoalStatus.COMPLETED
    assert stored.completed_at is not None

    parent_inbox = tracker.notifications.list_for_user(household.parent.id)
    assert NotificationType.GOAL_COMPLETED in {item.type for item in parent_inbox}


def test_contribution_posts_savings_debit_and_records_deposit(tracker, household) -> None:
    goal = _goal(tracker, household)

    progress = tracker.goals.contribute(goal.id, "12.50", household.child_actor, description="Birthday")

    transaction = tracker.ledger.list_transactions(household.child.id, household.child_actor, limit=1)[0]
    assert transaction.id == progress.transaction_id
    assert transaction.type is TransactionType.DEBIT
    assert transaction.category is TransactionCategory.SAVINGS
    contributions = tracker.goals.list_contributions(goal.id, household.child_actor)
    assert len(contributions) == 1
    assert contributions[0].type is ContributionType.CHILD_DEPOSIT
    assert contributions[0].amount_cents == 1250
    assert contributions[0].goal_balance_after_cents == 1250
    assert contributions[0].source_transaction_id == transaction.id


def test_contribution_never_uses_debt(tracker, household) -> None:
    tracker.family.update_child_settings(household.child.id, household.parent_actor, allow_debt=True)
    goal = _goal(tracker, household, target="500")

    with pytest.raises(InsufficientFundsError):
        tracker.goals.contribute(goal.id, 150, household.child_actor)

    assert tracker.ledger.get_balance(household.child.id) == Decimal("100.00")
    assert tracker.goals.get_goal(goal.id).current_cents == 0


def test_allow_policy_lets_goal_exceed_target(session, settings, household) -> None:
    relaxed = AllowanceTracker(session, settings=settings.with_overrides(goal_overflow_policy="allow"))
    goal = relaxed.goals.create_goal(household.child.id, "Kite", 20, household.child_actor)

    progress = relaxed.goals.contribute(goal.id, 30, household.child_actor)

    assert progress.new_amount == Decimal("30.00")
    assert progress.surplus_amount == Decimal("0.00")
    assert progress.is_completed is True


def test_mark_purchased_returns_surplus(tracker, household) -> None:
    goal = _goal(tracker, household, target="40")
    tracker.goals.contribute(goal.id, 50, household.child_actor)
    assert tracker.ledger.get_balance(household.child.id) == Decimal("50.00")

    with pytest.raises(InvalidStateError):
        tracker.goals.pause_goal(goal.id, household.child_actor)

    purchased = tracker.goals.mark_purchased(goal.id, household.child_actor)

    assert purchased.status is GoalStatus.PURCHASED
    assert purchased.purchased_at is not None
    assert purchased.surplus_cents == 0
    assert tracker.ledger.get_balance(household.child.id) == Decimal("60.00")
    refunds = tracker.goals.list_contributions(
        goal.id, household.parent_actor, contribution_type=ContributionType.REFUND
    )
    assert [item.amount_cents for item in refunds] == [-1000]


def test_purchase_requires_completed_goal(tracker, household) -> None:
    goal = _goal(tracker, household)
    with pytest.raises(InvalidStateError):
        tracker.goals.mark_purchased(goal.id, household.child_actor)


def test_cancel_goal_refunds_everything(tracker, household) -> None:
    goal = _goal(tracker, household)
    tracker.goals.contribute(goal.id, 40, household.child_actor)

    cancelled = tracker.goals.cancel_goal(goal.id, household.child_actor)

    assert cancelled.status is GoalStatus.CANCELLED
    assert cancelled.current_cents == 0
    assert tracker.ledger.get_balance(household.child.id) == Decimal("100.00")
    with pytest.raises(InvalidStateError):
        tracker.goals.contribute(goal.id, 5, household.child_actor)


def test_pause_blocks_contributions_until_resumed(tracker, household) -> None:
    goal = _goal(tracker, household)
    tracker.goals.pause_goal(goal.id, household.child_actor)

    with pytest.raises(InvalidStateError):
        tracker.goals.contribute(goal.id, 5, household.child_actor)

    tracker.goals.resume_goal(goal.id, household.parent_actor)
    progress = tracker.goals.contribute(goal.id, 5, household.child_actor)
    assert progress.new_amount == Decimal("5.00")


def test_withdraw_is_parent_only_and_reactivates_completed_goal(tracker, household) -> None:
    goal = _goal(tracker, household, target="50")
    tracker.goals.contribute(goal.id, 50, household.child_actor)
    assert tracker.goals.get_goal(goal.id).status is GoalStatus.COMPLETED

    with pytest.raises(AuthorizationError):
        tracker.goals.withdraw(goal.id, 10, household.child_actor)
    with pytest.raises(InsufficientFundsError):
        tracker.goals.withdraw(goal.id, 60, household.parent_actor)

    updated = tracker.goals.withdraw(goal.id, 20, household.parent_actor, reason="Field trip")

    assert updated.current_cents == 3000
    assert updated.status is GoalStatus.ACTIVE
    assert updated.completed_at is None
    assert tracker.ledger.get_balance(household.child.id) == Decimal("70.00")
    assert all(item.is_achieved for item in tracker.goals.milestones(goal.id))
    withdrawals = tracker.goals.list_contributions(
        goal.id, household.parent_actor, contribution_type=ContributionType.WITHDRAWAL
    )
    assert [item.amount_cents for item in withdrawals] == [-2000]
    assert withdrawals[0].description == "Field trip"


def test_lowering_target_moves_excess_to_surplus(tracker, household) -> None:
    goal = _goal(tracker, household)
    tracker.goals.contribute(goal.id, 60, household.child_actor)

    updated = tracker.goals.update_goal(goal.id, household.child_actor, target_amount=50, name="Scooter")

    assert updated.name == "Scooter"
    assert updated.target_cents == 5000
    assert updated.current_cents == 5000
    assert updated.surplus_cents == 1000
    assert updated.status is GoalStatus.COMPLETED
    assert [item.target_cents for item in tracker.goals.milestones(goal.id)] == [1250, 2500, 3750, 5000]


def test_list_goals_hides_finished_goals_by_default(tracker, household) -> None:
    open_goal = _goal(tracker, household)
    done = tracker.goals.create_goal(household.child.id, "Book", 10, household.child_actor, priority=2)
    tracker.goals.contribute(done.id, 10, household.child_actor)

    visible = tracker.goals.list_goals(household.child.id, household.child_actor)
    assert [goal.id for goal in visible] == [open_goal.id]

    everything = tracker.goals.list_goals(household.child.id, household.parent_actor, include_completed=True)
    assert [goal.id for goal in everything] == [open_goal.id, done.id]

    completed = tracker.goals.list_goals(household.child.id, household.parent_actor, status=GoalStatus.COMPLETED)
    assert [goal.id for goal in completed] == [done.id]


def test_ratio_match_respects_lifetime_cap(tracker, household) -> None:
    goal = _goal(tracker, household)
    tracker.goals.create_matching_rule(
        goal.id,
        household.parent_actor,
        matching_type=MatchingType.RATIO_MATCH,
        ratio=1,
        max_match=15,
    )

    first = tracker.goals.contribute(goal.id, 10, household.child_actor)
    second = tracker.goals.contribute(goal.id, 10, household.child_actor)
    third = tracker.goals.contribute(goal.id, 10, household.child_actor)

    assert first.match_amount_added == Decimal("10.00")
    assert second.match_amount_added == Decimal("5.00")
    assert third.match_amount_added is None
    assert third.new_amount == Decimal("45.00")
    assert tracker.ledger.get_balance(household.child.id) == Decimal("70.00")
    rule = tracker.goals.get_matching_rule(goal.id, household.child_actor)
    assert rule.total_matched_cents == 1500
    matches = tracker.goals.list_contributions(
        goal.id, household.parent_actor, contribution_type=ContributionType.PARENT_MATCH
    )
    assert sorted(item.amount_cents for item in matches) == [500, 1000]
    assert all(item.parent_match_id == rule.id for item in matches)
    child_inbox = tracker.notifications.list_for_user(household.child.user_id)
    assert NotificationType.PARENT_MATCH_ADDED in {item.type for item in child_inbox}


def test_percentage_match_and_target_room(tracker, household) -> None:
    goal = _goal(tracker, household, target="25")
    tracker.goals.create_matching_rule(
        goal.id,
        household.parent_actor,
        matching_type=MatchingType.PERCENTAGE_MATCH,
        ratio=50,
    )

    first = tracker.goals.contribute(goal.id, 10, household.child_actor)
    assert first.match_amount_added == Decimal("5.00")
    assert first.new_amount == Decimal("15.00")

    second = tracker.goals.contribute(goal.id, 8, household.child_actor)
    assert second.match_amount_added == Decimal("2.00")
    assert second.new_amount == Decimal("25.00")
    assert second.is_completed is True


def test_fixed_match_adds_flat_amount(tracker, household) -> None:
    goal = _goal(tracker, household)
    tracker.goals.create_matching_rule(
        goal.id,
        household.parent_actor,
        matching_type=MatchingType.FIXED_MATCH,
        ratio="2.50",
    )

    progress = tracker.goals.contribute(goal.id, 1, household.child_actor)

    assert progress.match_amount_added == Decimal("2.50")
    assert progress.new_amount == Decimal("3.50")


def test_inactive_or_expired_rules_do_not_match(tracker, household, clock) -> None:
    goal = _goal(tracker, household)
    tracker.goals.create_matching_rule(
        goal.id,
        household.parent_actor,
        matching_type=MatchingType.RATIO_MATCH,
        ratio=1,
        expires_at=clock.moment + timedelta(days=1),
    )
    tracker.goals.update_matching_rule(goal.id, household.parent_actor, is_active=False)
    assert tracker.goals.contribute(goal.id, 5, household.child_actor).match_amount_added is None

    tracker.goals.update_matching_rule(goal.id, household.parent_actor, is_active=True)
    clock.advance(days=2)
    assert tracker.goals.contribute(goal.id, 5, household.child_actor).match_amount_added is None


def test_matching_rule_management(tracker, household) -> None:
    goal = _goal(tracker, household)

    with pytest.raises(AuthorizationError):
        tracker.goals.create_matching_rule(
            goal.id, household.child_actor, matching_type=MatchingType.RATIO_MATCH, ratio=1
        )
    with pytest.raises(ValidationError):
        tracker.goals.create_matching_rule(
            goal.id, household.parent_actor, matching_type=MatchingType.RATIO_MATCH, ratio=0
        )

    tracker.goals.create_matching_rule(goal.id, household.parent_actor, matching_type=MatchingType.RATIO_MATCH, ratio=1)
    with pytest.raises(DuplicateError):
        tracker.goals.create_matching_rule(
            goal.id, household.parent_actor, matching_type=MatchingType.RATIO_MATCH, ratio=2
        )

    updated = tracker.goals.update_matching_rule(
        goal.id, household.parent_actor, matching_type=MatchingType.PERCENTAGE_MATCH, ratio=25, max_match=40
    )
    assert updated.type is MatchingType.PERCENTAGE_MATCH
    assert Decimal(updated.match_ratio) == Decimal("25")
    assert updated.max_match_cents == 4000

    tracker.goals.remove_matching_rule(goal.id, household.parent_actor)
    with pytest.raises(MatchingRuleNotFoundError):
        tracker.goals.get_matching_rule(goal.id, household.parent_actor)


def test_challenge_bonus_is_credited_to_main_balance(tracker, household, clock) -> None:
    goal = _goal(tracker, household)
    challenge = tracker.goals.create_challenge(
        goal.id,
        household.parent_actor,
        target_amount=50,
        end_at=clock.moment + timedelta(days=7),
        bonus_amount=5,
        description="Half way in a week",
    )

    progress = tracker.goals.contribute(goal.id, 50, household.child_actor)

    assert progress.challenge_bonus_awarded == Decimal("5.00")
    assert progress.new_amount == Decimal("50.00")
    assert tracker.ledger.get_balance(household.child.id) == Decimal("55.00")
    assert challenge.status is ChallengeStatus.COMPLETED
    assert challenge.bonus_transaction_id is not None
    bonus = tracker.ledger.list_transactions(household.child.id, household.parent_actor, limit=1)[0]
    assert bonus.category is TransactionCategory.BONUS_REWARD
    assert tracker.goals.get_active_challenge(goal.id, household.child_actor) is None


def test_overdue_challenge_fails_without_bonus(tracker, household, clock) -> None:
    goal = _goal(tracker, household)
    challenge = tracker.goals.create_challenge(
        goal.id,
        household.parent_actor,
        target_amount=10,
        end_at=clock.moment + timedelta(days=1),
        bonus_amount=5,
    )
    clock.advance(days=2)

    progress = tracker.goals.contribute(goal.id, 20, household.child_actor)

    assert progress.challenge_bonus_awarded is None
    assert challenge.status is ChallengeStatus.FAILED
    assert tracker.ledger.get_balance(household.child.id) == Decimal("80.00")


def test_challenge_rules(tracker, household, clock) -> None:
    goal = _goal(tracker, household)
    end_at = clock.moment + timedelta(days=3)

    with pytest.raises(ValidationError):
        tracker.goals.create_challenge(
            goal.id, household.parent_actor, target_amount=10, end_at=clock.moment, bonus_amount=1
        )
    with pytest.raises(AuthorizationError):
        tracker.goals.create_challenge(
            goal.id, household.child_actor, target_amount=10, end_at=end_at, bonus_amount=1
        )

    tracker.goals.create_challenge(goal.id, household.parent_actor, target_amount=10, end_at=end_at, bonus_amount=1)
    with pytest.raises(InvalidStateError):
        tracker.goals.create_challenge(
            goal.id, household.parent_actor, target_amount=20, end_at=end_at, bonus_amount=2
        )

    cancelled = tracker.goals.cancel_challenge(goal.id, household.parent_actor)
    assert cancelled.status is ChallengeStatus.CANCELLED
    with pytest.raises(ChallengeNotFoundError):
        tracker.goals.cancel_challenge(goal.id, household.parent_actor)
    assert len(tracker.goals.list_child_challenges(household.child.id, household.child_actor)) == 1


def test_expire_challenges_marks_overdue_as_failed(tracker, household, clock) -> None:
    goal = _goal(tracker, household)
    tracker.goals.create_challenge(
        goal.id,
        household.parent_actor,
        target_amount=10,
        end_at=clock.moment + timedelta(hours=1),
        bonus_amount=1,
    )

    assert tracker.goals.expire_challenges() == 0
    clock.advance(hours=2)
    assert tracker.goals.expire_challenges() == 1
    assert tracker.goals.get_active_challenge(goal.id, household.parent_actor) is None


def test_goal_writes_lock_the_child_before_the_goal(tracker, household, monkeypatch) -> None:
    goal = _goal(tracker, household)
    order = []
    lock_child = tracker.context.lock_child
    lock_goal = tracker.goals._lock_goal

    def recording_lock_child(child_id, error):
        order.append("child")
        return lock_child(child_id, error)

    def recording_lock_goal(goal_id):
        order.append("goal")
        return lock_goal(goal_id)

    monkeypatch.setattr(tracker.context, "lock_child", recording_lock_child)
    monkeypatch.setattr(tracker.goals, "_lock_goal", recording_lock_goal)

    tracker.goals.contribute(goal.id, 10, household.child_actor)
    tracker.goals.update_goal(goal.id, household.child_actor, name="Red bike")
    tracker.goals.pause_goal(goal.id, household.child_actor)
    tracker.goals.resume_goal(goal.id, household.child_actor)
    tracker.goals.withdraw(goal.id, 5, household.parent_actor)
    tracker.goals.cancel_goal(goal.id, household.child_actor)

    assert order == ["child", "goal"] * 6


def test_auto_transfers_lock_goal_rows_after_the_child(tracker, household) -> None:
    _goal(tracker, household, auto_transfer_type=AutoTransferType.PERCENTAGE, auto_transfer_value=50)
    locked = []

    def record_locking_selects(state) -> None:
        if state.is_select and state.statement._for_update_arg is not None:
            locked.extend(mapper.class_.__name__ for mapper in state.all_mappers)

    event.listen(tracker.session, "do_orm_execute", record_locking_selects)
    try:
        tracker.allowance.pay_allowance(household.child.id, household.parent_actor)
    finally:
        event.remove(tracker.session, "do_orm_execute", record_locking_selects)

    assert "SavingsGoal" in locked
    assert locked.index("Child") < locked.index("SavingsGoal")


def test_milestone_bonus_is_paid_into_the_goal_and_can_chain(tracker, household) -> None:
    goal = _goal(tracker, household)
    milestone = tracker.goals.set_milestone_bonus(goal.id, 25, "30", household.parent_actor)
    assert milestone.bonus_cents == 3000

    progress = tracker.goals.contribute(goal.id, 25, household.child_actor)

    assert progress.new_amount == Decimal("55.00")
    assert progress.milestone_bonus_awarded == Decimal("30.00")
    assert progress.milestone_reached is not None
    assert progress.milestone_reached.percent == 50
    assert tracker.ledger.get_balance(household.child.id) == Decimal("75.00")
    bonuses = tracker.goals.list_contributions(
        goal.id, household.child_actor, contribution_type=ContributionType.MILESTONE_BONUS
    )
    assert [item.amount_cents for item in bonuses] == [3000]
    assert bonuses[0].goal_balance_after_cents == 5500
    achieved = [item.percent_complete for item in tracker.goals.milestones(goal.id) if item.is_achieved]
    assert achieved == [25, 50]


def test_milestone_bonus_is_capped_at_the_target(tracker, household) -> None:
    goal = _goal(tracker, household)
    tracker.goals.set_milestone_bonus(goal.id, 75, 50, household.parent_actor)

    progress = tracker.goals.contribute(goal.id, 80, household.child_actor)

    assert progress.milestone_bonus_awarded == Decimal("20.00")
    assert progress.new_amount == Decimal("100.00")
    assert progress.is_completed is True
    assert tracker.goals.get_goal(goal.id).surplus_cents == 0


def test_milestone_bonus_rules(tracker, household) -> None:
    goal = _goal(tracker, household)

    with pytest.raises(AuthorizationError):
        tracker.goals.set_milestone_bonus(goal.id, 50, 5, household.child_actor)
    with pytest.raises(ValidationError):
        tracker.goals.set_milestone_bonus(goal.id, 33, 5, household.parent_actor)
    with pytest.raises(ValidationError):
        tracker.goals.set_milestone_bonus(goal.id, 50, "1e20", household.parent_actor)

    tracker.goals.contribute(goal.id, 30, household.child_actor)
    with pytest.raises(InvalidStateError):
        tracker.goals.set_milestone_bonus(goal.id, 25, 5, household.parent_actor)

    cleared = tracker.goals.set_milestone_bonus(goal.id, 50, None, household.parent_actor)
    assert cleared.bonus_cents is None
