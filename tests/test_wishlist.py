from decimal import Decimal

import pytest

from allowancetracker.exceptions import AuthorizationError, InvalidStateError, ValidationError
from allowancetracker.models import TransactionCategory


def test_items_report_affordability(tracker, household, clock) -> None:
    cheap = tracker.wishlist.add_item(household.child.id, "Kite", 20, household.child_actor)
    clock.advance(minutes=1)
    pricey = tracker.wishlist.add_item(
        household.child.id, "Drone", 250, household.parent_actor, url="https://shop.example/drone"
    )

    entries = tracker.wishlist.list_items(household.child.id, household.child_actor)

    assert [entry.item.id for entry in entries] == [cheap.id, pricey.id]
    assert [entry.can_afford for entry in entries] == [True, False]
    assert entries[1].item.url == "https://shop.example/drone"


def test_purchase_debits_balance_and_can_be_undone(tracker, household) -> None:
    item = tracker.wishlist.add_item(household.child.id, "Kite", "19.99", household.child_actor)

    purchased = tracker.wishlist.mark_purchased(item.id, household.child_actor)

    assert purchased.is_purchased is True
    assert purchased.purchased_at is not None
    assert tracker.ledger.get_balance(household.child.id) == Decimal("80.01")
    debit = tracker.ledger.list_transactions(household.child.id, household.parent_actor, limit=1)[0]
    assert debit.id == purchased.purchase_transaction_id
    assert debit.category is TransactionCategory.OTHER_SPENDING
    assert debit.description == "Purchased: Kite"
    with pytest.raises(InvalidStateError):
        tracker.wishlist.mark_purchased(item.id, household.child_actor)

    entries = tracker.wishlist.list_items(household.child.id, household.child_actor)
    assert entries[0].can_afford is False

    restored = tracker.wishlist.mark_unpurchased(item.id, household.parent_actor)
    assert restored.is_purchased is False
    assert restored.purchase_transaction_id is None
    with pytest.raises(InvalidStateError):
        tracker.wishlist.mark_unpurchased(item.id, household.parent_actor)


def test_purchase_without_transaction_leaves_balance(tracker, household) -> None:
    item = tracker.wishlist.add_item(household.child.id, "Poster", 5, household.child_actor)

    tracker.wishlist.mark_purchased(item.id, household.child_actor, record_transaction=False)

    assert tracker.ledger.get_balance(household.child.id) == Decimal("100.00")


def test_update_and_delete_items(tracker, household) -> None:
    item = tracker.wishlist.add_item(household.child.id, "Kite", 20, household.child_actor, notes="Red one")

    updated = tracker.wishlist.update_item(item.id, household.child_actor, name="Box kite", price=25, notes=None)
    assert updated.name == "Box kite"
    assert updated.price_cents == 2500
    assert updated.notes is None

    with pytest.raises(ValidationError):
        tracker.wishlist.update_item(item.id, household.child_actor, price=0)

    tracker.wishlist.delete_item(item.id, household.child_actor)
    assert tracker.wishlist.list_items(household.child.id, household.child_actor) == []


def test_wishlists_are_private_to_the_family(tracker, household, new_household) -> None:
    other = new_household(name="Okafor", parent_email="ada@example.com", child_email="tobi@example.com")
    item = tracker.wishlist.add_item(household.child.id, "Kite", 20, household.child_actor)

    with pytest.raises(AuthorizationError):
        tracker.wishlist.add_item(household.child.id, "Sneaky", 1, other.child_actor)
    with pytest.raises(AuthorizationError):
        tracker.wishlist.delete_item(item.id, other.parent_actor)
