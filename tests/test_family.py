from uuid import uuid4

import pytest

from allowancetracker.exceptions import (
    AuthenticationError,
    AuthorizationError,
    DuplicateError,
    FamilyNotFoundError,
    ValidationError,
)
from allowancetracker.models import NotificationType, UserRole


def test_create_family_with_first_parent(tracker) -> None:
    family, parent = tracker.family.create_family("  Nguyen ", "LAN@Example.com", "Lan", "Nguyen")

    assert family.name == "Nguyen"
    assert parent.role is UserRole.PARENT
    assert parent.email == "lan@example.com"
    assert parent.family_id == family.id
    assert parent.display_name == "Lan Nguyen"

    with pytest.raises(ValidationError):
        tracker.family.create_family(" ", "x@example.com", "X")
    with pytest.raises(ValidationError):
        tracker.family.create_family("Nguyen", "not-an-email", "Lan")


def test_duplicate_email_is_rejected(tracker, household) -> None:
    with pytest.raises(DuplicateError):
        tracker.family.add_child(household.family.id, "SAM@example.com", "Samuel", household.parent_actor)
    with pytest.raises(DuplicateError):
        tracker.family.create_family("Other", "pat@example.com", "Pat")


def test_add_child_notifies_other_parents(tracker, household) -> None:
    second = tracker.family.add_parent(household.family.id, "alex@example.com", "Alex", household.parent_actor)

    child = tracker.family.add_child(
        household.family.id,
        "wren@example.com",
        "Wren",
        household.parent_actor,
        weekly_allowance="7.50",
        allowance_day=5,
    )

    assert child.weekly_allowance_cents == 750
    assert child.allowance_day == 5
    assert child.balance_cents == 0
    inbox = tracker.notifications.list_for_user(second.id)
    assert [item.type for item in inbox] == [NotificationType.CHILD_ADDED]
    assert inbox[0].title == "Wren joined the family"
    assert tracker.notifications.list_for_user(household.parent.id) == ()


def test_children_cannot_manage_the_family(tracker, household) -> None:
    with pytest.raises(AuthorizationError):
        tracker.family.add_child(household.family.id, "wren@example.com", "Wren", household.child_actor)
    with pytest.raises(AuthorizationError):
        tracker.family.add_parent(household.family.id, "alex@example.com", "Alex", household.child_actor)
    with pytest.raises(AuthorizationError):
        tracker.family.update_child_settings(household.child.id, household.child_actor, allow_debt=True)
    with pytest.raises(ValidationError):
        tracker.family.update_child_settings(household.child.id, household.parent_actor, allowance_day=9)


def test_update_child_settings(tracker, household) -> None:
    updated = tracker.family.update_child_settings(
        household.child.id, household.parent_actor, allow_debt=True, allowance_day=4
    )
    assert updated.allow_debt is True
    assert updated.allowance_day == 4

    cleared = tracker.family.update_child_settings(household.child.id, household.parent_actor, clear_allowance_day=True)
    assert cleared.allowance_day is None
    assert cleared.allow_debt is True


def test_members_and_children_are_scoped_to_the_family(tracker, household, new_household) -> None:
    other = new_household(name="Okafor", parent_email="ada@example.com", child_email="tobi@example.com")

    members = tracker.family.list_members(household.family.id, household.child_actor)
    assert {member.email for member in members} == {"pat@example.com", "sam@example.com"}
    assert [child.id for child in tracker.family.list_children(household.family.id, household.parent_actor)] == [
        household.child.id
    ]

    with pytest.raises(AuthorizationError):
        tracker.family.list_members(household.family.id, other.parent_actor)
    with pytest.raises(AuthorizationError):
        tracker.family.get_child(household.child.id, other.parent_actor)
    with pytest.raises(FamilyNotFoundError):
        tracker.family.get_family(uuid4())


def test_actor_resolution(tracker, household) -> None:
    parent = tracker.actor(str(household.parent.id))
    assert parent.is_parent
    assert parent.family_id == household.family.id
    assert parent.child_id is None

    child = tracker.actor(household.child.user_id)
    assert child.is_child
    assert child.child_id == household.child.id
    assert child.display_name == "Sam Rivera"

    with pytest.raises(AuthenticationError):
        tracker.actor(None)
    with pytest.raises(AuthenticationError):
        tracker.actor("not-a-uuid")
    with pytest.raises(AuthenticationError):
        tracker.actor(uuid4())
