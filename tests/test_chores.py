from decimal import Decimal

import pytest

from allowancetracker.chores import describe_recurrence
from allowancetracker.exceptions import AuthorizationError, InvalidStateError, ValidationError
from allowancetracker.models import (
    CompletionStatus,
    NotificationType,
    RecurrenceType,
    TaskStatus,
    TransactionCategory,
)
from allowancetracker.webapp.persistence import ChoreTask


def _task(tracker, household, title="Feed the cat", reward="2", **kwargs):
    return tracker.tasks.create_task(household.child.id, title, reward, household.parent_actor, **kwargs)


def test_approval_pays_reward_through_ledger(tracker, household) -> None:
    task = _task(tracker, household)
    completion = tracker.tasks.complete_task(task.id, household.child_actor, notes="Done before school")
    assert completion.status is CompletionStatus.PENDING_APPROVAL
    assert tracker.ledger.get_balance(household.child.id) == Decimal("100.00")

    reviewed = tracker.tasks.review_completion(completion.id, True, household.parent_actor)

    assert reviewed.status is CompletionStatus.APPROVED
    assert reviewed.reviewed_by_id == household.parent.id
    assert reviewed.transaction_id is not None
    assert tracker.ledger.get_balance(household.child.id) == Decimal("102.00")
    reward = tracker.ledger.list_transactions(household.child.id, household.parent_actor, limit=1)[0]
    assert reward.id == reviewed.transaction_id
    assert reward.category is TransactionCategory.TASK
    kinds = {item.type for item in tracker.notifications.list_for_user(household.child.user_id)}
    assert {NotificationType.TASK_ASSIGNED, NotificationType.TASK_APPROVED} <= kinds
    parent_kinds = {item.type for item in tracker.notifications.list_for_user(household.parent.id)}
    assert NotificationType.TASK_COMPLETION_PENDING_APPROVAL in parent_kinds


def test_rejection_requires_reason_and_moves_no_money(tracker, household) -> None:
    task = _task(tracker, household)
    completion = tracker.tasks.complete_task(task.id, household.child_actor)

    with pytest.raises(ValidationError):
        tracker.tasks.review_completion(completion.id, False, household.parent_actor, rejection_reason="  ")

    reviewed = tracker.tasks.review_completion(
        completion.id, False, household.parent_actor, rejection_reason="Bowl still empty"
    )

    assert reviewed.status is CompletionStatus.REJECTED
    assert reviewed.rejection_reason == "Bowl still empty"
    assert reviewed.transaction_id is None
    assert tracker.ledger.get_balance(household.child.id) == Decimal("100.00")

    with pytest.raises(InvalidStateError):
        tracker.tasks.review_completion(completion.id, True, household.parent_actor)

    retry = tracker.tasks.complete_task(task.id, household.child_actor)
    assert retry.status is CompletionStatus.PENDING_APPROVAL


def test_review_is_parent_only(tracker, household) -> None:
    task = _task(tracker, household)
    completion = tracker.tasks.complete_task(task.id, household.child_actor)

    with pytest.raises(AuthorizationError):
        tracker.tasks.review_completion(completion.id, True, household.child_actor)


def test_one_time_task_cannot_be_completed_twice(tracker, household) -> None:
    task = _task(tracker, household)
    completion = tracker.tasks.complete_task(task.id, household.child_actor)

    with pytest.raises(InvalidStateError):
        tracker.tasks.complete_task(task.id, household.child_actor)

    tracker.tasks.review_completion(completion.id, True, household.parent_actor)
    with pytest.raises(InvalidStateError):
        tracker.tasks.complete_task(task.id, household.child_actor)


def test_recurring_task_can_be_completed_again_after_review(tracker, household) -> None:
    task = _task(tracker, household, is_recurring=True, recurrence_type=RecurrenceType.DAILY)
    first = tracker.tasks.complete_task(task.id, household.child_actor)
    tracker.tasks.review_completion(first.id, True, household.parent_actor)

    second = tracker.tasks.complete_task(task.id, household.child_actor)
    tracker.tasks.review_completion(second.id, True, household.parent_actor)

    assert tracker.ledger.get_balance(household.child.id) == Decimal("104.00")
    approved = tracker.tasks.list_completions(task.id, household.child_actor, status=CompletionStatus.APPROVED)
    assert len(approved) == 2


def test_only_the_assigned_child_completes(tracker, household) -> None:
    task = _task(tracker, household)
    sibling = tracker.family.add_child(household.family.id, "wren@example.com", "Wren", household.parent_actor)

    with pytest.raises(AuthorizationError):
        tracker.tasks.complete_task(task.id, household.parent_actor)
    with pytest.raises(AuthorizationError):
        tracker.tasks.complete_task(task.id, tracker.actor(sibling.user_id))


def test_pending_completion_blocks_edits_and_archived_tasks_are_closed(tracker, household) -> None:
    task = _task(tracker, household)
    completion = tracker.tasks.complete_task(task.id, household.child_actor)

    with pytest.raises(InvalidStateError):
        tracker.tasks.update_task(task.id, household.parent_actor, reward=5)

    tracker.tasks.review_completion(completion.id, False, household.parent_actor, rejection_reason="Try again")
    updated = tracker.tasks.update_task(task.id, household.parent_actor, reward=5, title="Feed both cats")
    assert updated.reward_cents == 500
    assert updated.title == "Feed both cats"

    archived = tracker.tasks.archive_task(task.id, household.parent_actor)
    assert archived.status is TaskStatus.ARCHIVED
    assert archived.archived_at is not None
    with pytest.raises(InvalidStateError):
        tracker.tasks.complete_task(task.id, household.child_actor)
    with pytest.raises(InvalidStateError):
        tracker.tasks.archive_task(task.id, household.parent_actor)


def test_task_creation_is_validated(tracker, household) -> None:
    with pytest.raises(AuthorizationError):
        tracker.tasks.create_task(household.child.id, "Self assigned", 1, household.child_actor)
    with pytest.raises(ValidationError):
        _task(tracker, household, reward=0)
    with pytest.raises(ValidationError):
        _task(tracker, household, is_recurring=True)
    with pytest.raises(ValidationError):
        _task(tracker, household, is_recurring=True, recurrence_type=RecurrenceType.WEEKLY, recurrence_day=7)


def test_describe_recurrence() -> None:
    assert describe_recurrence(ChoreTask(title="a", reward_cents=1, is_recurring=False)) == "One-time"
    weekly = ChoreTask(
        title="b",
        reward_cents=1,
        is_recurring=True,
        recurrence_type=RecurrenceType.WEEKLY,
        recurrence_day=5,
    )
    assert describe_recurrence(weekly) == "Weekly on Saturday"
    monthly = ChoreTask(
        title="c",
        reward_cents=1,
        is_recurring=True,
        recurrence_type=RecurrenceType.MONTHLY,
        recurrence_day_of_month=15,
    )
    assert describe_recurrence(monthly) == "Monthly on day 15"
    daily = ChoreTask(title="d", reward_cents=1, is_recurring=True, recurrence_type=RecurrenceType.DAILY)
    assert describe_recurrence(daily) == "Daily"


def test_children_only_see_their_own_tasks(tracker, household) -> None:
    sibling = tracker.family.add_child(household.family.id, "wren@example.com", "Wren", household.parent_actor)
    mine = _task(tracker, household)
    tracker.tasks.create_task(sibling.id, "Water plants", 1, household.parent_actor)

    assert [task.id for task in tracker.tasks.list_tasks(household.family.id, household.child_actor)] == [mine.id]
    assert len(tracker.tasks.list_tasks(household.family.id, household.parent_actor)) == 2
    only_sibling = tracker.tasks.list_tasks(household.family.id, household.parent_actor, child_id=sibling.id)
    assert [task.title for task in only_sibling] == ["Water plants"]


def test_pending_approvals_and_statistics(tracker, household) -> None:
    dishes = _task(tracker, household, title="Dishes", reward=3)
    bins = _task(tracker, household, title="Bins", reward=1)
    laundry = _task(tracker, household, title="Laundry", reward="1.50")
    approved = tracker.tasks.complete_task(dishes.id, household.child_actor)
    rejected = tracker.tasks.complete_task(bins.id, household.child_actor)
    tracker.tasks.complete_task(laundry.id, household.child_actor)

    pending = tracker.tasks.pending_approvals(household.family.id, household.parent_actor)
    assert len(pending) == 3
    with pytest.raises(AuthorizationError):
        tracker.tasks.pending_approvals(household.family.id, household.child_actor)

    tracker.tasks.review_completion(approved.id, True, household.parent_actor)
    tracker.tasks.review_completion(rejected.id, False, household.parent_actor, rejection_reason="Missed one")
    tracker.tasks.archive_task(bins.id, household.parent_actor)

    stats = tracker.tasks.task_statistics(household.child.id, household.child_actor)
    assert stats.total_tasks == 3
    assert stats.active_tasks == 2
    assert stats.archived_tasks == 1
    assert stats.total_completions == 3
    assert stats.pending_approvals == 1
    assert stats.approved_completions == 1
    assert stats.rejected_completions == 1
    assert stats.total_earned == Decimal("3.00")
    assert stats.pending_earnings == Decimal("1.50")
    assert stats.completion_rate == Decimal("50.00")
