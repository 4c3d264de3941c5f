"""Wish list items a child is saving up for."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List
from uuid import UUID

from sqlmodel import col, select

from .clock import now
from .context import ServiceContext
from .exceptions import ChildNotFoundError, InvalidStateError, ValidationError, WishListItemNotFoundError
from .ledger import LedgerService
from .models import TransactionCategory, TransactionType
from .money import AmountLike, from_cents, require_positive, to_cents, to_decimal
from .security import Actor, require_child_access
from .webapp.persistence import Child, WishListItem

_UNSET = object()


@dataclass(slots=True)
class WishListEntry:
    item: WishListItem
    can_afford: bool


class WishListService:
    def __init__(self, context: ServiceContext, ledger: LedgerService) -> None:
        self._ctx = context
        self._ledger = ledger

    def add_item(
        self,
        child_id: UUID,
        name: str,
        price: AmountLike,
        actor: Actor,
        *,
        url: str | None = None,
        notes: str | None = None,
    ) -> WishListItem:
        if not name or not name.strip():
            raise ValidationError("Item name is required")
        value = require_positive(to_decimal(price))
        with self._ctx.transaction() as session:
            child = self._ctx.get(Child, child_id, ChildNotFoundError)
            require_child_access(actor, child)
            item = WishListItem(child_id=child_id, name=name.strip(), price_cents=to_cents(value), url=url, notes=notes)
            session.add(item)
            self._ctx.logger.log("wishlist_item_added", child_id=str(child_id), item_id=str(item.id), price=str(value))
            return item

    def list_items(self, child_id: UUID, actor: Actor) -> List[WishListEntry]:
        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        require_child_access(actor, child)
        statement = (
            select(WishListItem)
            .where(WishListItem.child_id == child_id)
            .order_by(col(WishListItem.is_purchased), col(WishListItem.created_at))
        )
        return [
            WishListEntry(item=item, can_afford=not item.is_purchased and item.price_cents <= child.balance_cents)
            for item in self._ctx.session.exec(statement).all()
        ]

    def update_item(
        self,
        item_id: UUID,
        actor: Actor,
        *,
        name: str | None = None,
        price: AmountLike | None = None,
        url: object = _UNSET,
        notes: object = _UNSET,
    ) -> WishListItem:
        with self._ctx.transaction() as session:
            item = self._owned(item_id, actor)
            if name is not None:
                if not name.strip():
                    raise ValidationError("Item name is required")
                item.name = name.strip()
            if price is not None:
                item.price_cents = to_cents(require_positive(to_decimal(price)))
            if url is not _UNSET:
                item.url = url  # type: ignore[assignment]
            if notes is not _UNSET:
                item.notes = notes  # type: ignore[assignment]
            session.add(item)
            return item

    def delete_item(self, item_id: UUID, actor: Actor) -> None:
        with self._ctx.transaction() as session:
            item = self._owned(item_id, actor)
            session.delete(item)
            self._ctx.logger.log("wishlist_item_deleted", item_id=str(item_id))

    def mark_purchased(self, item_id: UUID, actor: Actor, *, record_transaction: bool = True) -> WishListItem:
        """Mark an item as bought, debiting its price unless told otherwise."""

        with self._ctx.transaction() as session:
            item = self._owned(item_id, actor)
            if item.is_purchased:
                raise InvalidStateError("Item is already purchased")
            if record_transaction:
                child = self._ctx.lock_child(item.child_id, ChildNotFoundError)
                transaction = self._ledger.post(
                    child,
                    from_cents(item.price_cents),
                    TransactionType.DEBIT,
                    TransactionCategory.OTHER_SPENDING,
                    f"Purchased: {item.name}",
                    created_by_id=actor.user_id,
                )
                item.purchase_transaction_id = transaction.id
            item.is_purchased = True
            item.purchased_at = now()
            session.add(item)
            self._ctx.logger.log("wishlist_item_purchased", item_id=str(item.id), recorded=record_transaction)
            return item

    def mark_unpurchased(self, item_id: UUID, actor: Actor) -> WishListItem:
        with self._ctx.transaction() as session:
            item = self._owned(item_id, actor)
            if not item.is_purchased:
                raise InvalidStateError("Item is not purchased")
            item.is_purchased = False
            item.purchased_at = None
            item.purchase_transaction_id = None
            session.add(item)
            return item

    def _owned(self, item_id: UUID, actor: Actor) -> WishListItem:
        item = self._ctx.get(WishListItem, item_id, WishListItemNotFoundError)
        require_child_access(actor, self._ctx.get(Child, item.child_id, ChildNotFoundError))
        return item


__all__ = ["WishListEntry", "WishListService"]
