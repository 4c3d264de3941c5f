import pytest

from allowancetracker.achievements import BADGE_CATALOG, catalog_id
from allowancetracker.exceptions import (
    AuthorizationError,
    BadgeNotFoundError,
    DuplicateError,
    InsufficientFundsError,
    InsufficientPointsError,
)
from allowancetracker.models import BadgeCategory, RewardType

STARTING_BADGES = {"WELCOME", "FIRST_PURCHASE", "DOUBLE_DIGITS", "FIFTY_CLUB", "CENTURY_CLUB"}


def _codes(tracker, household, **kwargs):
    earned = tracker.achievements.child_badges(household.child.id, household.child_actor, **kwargs)
    return {entry.badge.code for entry in earned}


def _reward(name):
    return catalog_id("reward", name)


def test_new_child_with_starting_balance_earns_welcome_badges(tracker, household) -> None:
    assert _codes(tracker, household) == STARTING_BADGES
    points = tracker.achievements.points(household.child.id, household.parent_actor)
    assert points.total_points == 95
    assert points.available_points == 95
    assert points.spent_points == 0
    assert points.badges_earned == 5
    assert points.rewards_unlocked == 0

    catalog = tracker.achievements.list_badges()
    assert len(catalog) == len(BADGE_CATALOG)
    saving = tracker.achievements.list_badges(category=BadgeCategory.SAVING)
    assert {badge.category for badge in saving} == {BadgeCategory.SAVING}


def test_goal_and_savings_activity_unlock_badges(tracker, household) -> None:
    goal = tracker.goals.create_goal(household.child.id, "Bike", 100, household.child_actor)
    assert "GOAL_SETTER" in _codes(tracker, household)

    tracker.goals.contribute(goal.id, 10, household.child_actor)

    codes = _codes(tracker, household)
    assert {"FIRST_SAVER", "PENNY_PINCHER"} <= codes
    assert "MONEY_STACKER" not in codes
    assert household.child.total_points == 95 + 10 + 10 + 15

    progress = tracker.achievements.badge_progress(household.child.id, household.child_actor)
    assert progress[0].badge.code == "MONEY_STACKER"
    assert (progress[0].record.current_progress, progress[0].record.target_progress) == (10, 50)

    tracker.goals.contribute(goal.id, 90, household.child_actor)
    assert {"GOAL_CRUSHER", "SAVINGS_STAR", "MONEY_STACKER"} <= _codes(tracker, household)


def test_failed_contribution_awards_nothing(tracker, household) -> None:
    goal = tracker.goals.create_goal(household.child.id, "Console", 500, household.child_actor)
    before = household.child.total_points

    with pytest.raises(InsufficientFundsError):
        tracker.goals.contribute(goal.id, 150, household.child_actor)

    tracker.session.refresh(household.child)
    assert household.child.total_points == before
    assert "FIRST_SAVER" not in _codes(tracker, household)


def test_task_approval_unlocks_helper(tracker, household) -> None:
    task = tracker.tasks.create_task(household.child.id, "Dishes", "3", household.parent_actor)
    completion = tracker.tasks.complete_task(task.id, household.child_actor)
    assert "HELPER" not in _codes(tracker, household)

    tracker.tasks.review_completion(completion.id, True, household.parent_actor)

    earned = tracker.achievements.child_badges(
        household.child.id, household.parent_actor, category=BadgeCategory.CHORES
    )
    assert [entry.badge.code for entry in earned] == ["HELPER"]
    assert earned[0].record.is_new is True
    assert '"task_id"' in (earned[0].record.earned_context or "")


def test_badges_are_earned_once(tracker, household) -> None:
    tracker.goals.create_goal(household.child.id, "Bike", 100, household.child_actor)
    tracker.goals.create_goal(household.child.id, "Kite", 20, household.child_actor)

    codes = [entry.badge.code for entry in tracker.achievements.child_badges(household.child.id, household.child_actor)]
    assert codes.count("GOAL_SETTER") == 1
    assert household.child.total_points == 105


def test_seen_and_display_flags_belong_to_the_child(tracker, household) -> None:
    welcome = catalog_id("badge", "WELCOME")

    with pytest.raises(AuthorizationError):
        tracker.achievements.mark_seen(household.child.id, [welcome], household.parent_actor)

    assert tracker.achievements.mark_seen(household.child.id, [welcome], household.child_actor) == 1
    assert "WELCOME" not in _codes(tracker, household, new_only=True)
    assert tracker.achievements.mark_seen(household.child.id, [welcome], household.child_actor) == 0

    hidden = tracker.achievements.set_displayed(household.child.id, welcome, False, household.child_actor)
    assert hidden.record.is_displayed is False
    with pytest.raises(BadgeNotFoundError):
        tracker.achievements.set_displayed(
            household.child.id, catalog_id("badge", "GOAL_MACHINE"), True, household.child_actor
        )


def test_summary_counts_badges_by_category(tracker, household) -> None:
    summary = tracker.achievements.summary(household.child.id, household.parent_actor)

    assert summary.total_badges == len(BADGE_CATALOG)
    assert summary.earned_badges == 5
    assert summary.badges_by_category == {"milestones": 4, "special": 1}
    assert len(summary.recent_badges) == 5


def test_points_buy_and_equip_rewards(tracker, household) -> None:
    child_id = household.child.id
    actor = household.child_actor

    cat = tracker.achievements.unlock_reward(child_id, _reward("Cool Cat"), actor)
    assert cat.is_unlocked is True
    assert household.child.available_points == 70
    assert household.child.total_points == 95

    with pytest.raises(DuplicateError):
        tracker.achievements.unlock_reward(child_id, _reward("Cool Cat"), actor)
    with pytest.raises(InsufficientPointsError):
        tracker.achievements.unlock_reward(child_id, _reward("Money Dragon"), actor)
    with pytest.raises(AuthorizationError):
        tracker.achievements.unlock_reward(child_id, _reward("Saver"), household.parent_actor)

    tracker.achievements.equip_reward(child_id, _reward("Cool Cat"), actor)
    assert household.child.equipped_avatar == "avatars/cool-cat.png"

    tracker.achievements.unlock_reward(child_id, _reward("Super Star"), actor)
    tracker.achievements.equip_reward(child_id, _reward("Super Star"), actor)
    assert household.child.equipped_avatar == "avatars/super-star.png"
    owned = {offer.reward.name: offer for offer in tracker.achievements.child_rewards(child_id, actor)}
    assert owned["Super Star"].is_equipped is True
    assert owned["Cool Cat"].is_equipped is False

    tracker.achievements.unequip_reward(child_id, _reward("Super Star"), actor)
    assert household.child.equipped_avatar is None

    points = tracker.achievements.points(child_id, actor)
    assert (points.available_points, points.spent_points, points.rewards_unlocked) == (20, 75, 2)

    shop = tracker.achievements.list_rewards(reward_type=RewardType.AVATAR, child_id=child_id, actor=actor)
    affordable = {offer.reward.name for offer in shop if offer.can_afford}
    assert affordable == set()
    assert {offer.reward.name for offer in shop if offer.is_unlocked} == {"Cool Cat", "Super Star"}
