"""Append-only balance ledger for a child's main balance."""

from __future__ import annotations

import csv
from datetime import datetime
from decimal import Decimal
from io import StringIO
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import func
from sqlmodel import col, select

from .achievements import AchievementService
from .categories import BUDGET_CATEGORIES, CategoryService, display_name, ensure_category_allowed
from .clock import as_utc_naive
from .context import ServiceContext
from .exceptions import ChildNotFoundError, InsufficientFundsError, ValidationError
from .models import BadgeTrigger, NotificationType, TransactionCategory, TransactionType
from .money import AmountLike, format_currency, from_cents, require_positive, to_cents, to_decimal
from .security import Actor, require_child_access, require_family_parent
from .webapp.persistence import ApplicationUser, Child, LedgerTransaction


class LedgerService:
    """Record every change to a child's main balance.

    Each posted row stores the balance that resulted from it, and the child's
    stored balance is updated in the same unit of work. :meth:`post` is the
    primitive other services build on; it expects the child row to be locked
    already and performs no authorization.
    """

    def __init__(
        self,
        context: ServiceContext,
        categories: CategoryService,
        achievements: AchievementService,
    ) -> None:
        self._ctx = context
        self._categories = categories
        self._achievements = achievements

    def create_transaction(
        self,
        child_id: UUID,
        amount: AmountLike,
        transaction_type: TransactionType,
        category: TransactionCategory,
        description: str,
        actor: Actor,
        *,
        notes: str | None = None,
    ) -> LedgerTransaction:
        """Post a manual credit or debit on behalf of a parent."""

        with self._ctx.transaction():
            child = self._ctx.lock_child(child_id, ChildNotFoundError)
            require_family_parent(actor, child.family_id)
            transaction = self.post(
                child,
                amount,
                transaction_type,
                category,
                description,
                notes=notes,
                created_by_id=actor.user_id,
            )
            verb = "added to" if transaction.type == TransactionType.CREDIT else "spent from"
            self._ctx.notifications.send(
                child.user_id,
                NotificationType.TRANSACTION_CREATED,
                f"{format_currency(from_cents(transaction.amount_cents))} {verb} your balance",
                f"{transaction.description}. New balance: {format_currency(from_cents(transaction.balance_after_cents))}.",
                data={
                    "transaction_id": transaction.id,
                    "type": transaction.type.value,
                    "category": transaction.category.value,
                },
                related=("transaction", transaction.id),
            )
            return transaction

    def post(
        self,
        child: Child,
        amount: AmountLike,
        transaction_type: TransactionType,
        category: TransactionCategory,
        description: str,
        *,
        notes: str | None = None,
        created_by_id: UUID | None = None,
    ) -> LedgerTransaction:
        value = require_positive(to_decimal(amount))
        transaction_type = TransactionType(transaction_type)
        category = TransactionCategory(category)
        ensure_category_allowed(transaction_type, category)
        summary = (description or "").strip()
        if not summary:
            raise ValidationError("Description is required")

        cents = to_cents(value)
        if transaction_type is TransactionType.DEBIT:
            if cents > child.balance_cents and not child.allow_debt:
                raise InsufficientFundsError(
                    f"Insufficient funds: balance {format_currency(from_cents(child.balance_cents))}, "
                    f"requested {format_currency(value)}"
                )
            if category in BUDGET_CATEGORIES:
                self._categories.evaluate_debit(child, category, cents)
            child.balance_cents -= cents
        else:
            child.balance_cents += cents

        transaction = LedgerTransaction(
            child_id=child.id,
            sequence=self._next_sequence(child.id),
            amount_cents=cents,
            type=transaction_type,
            category=category,
            description=summary,
            notes=notes,
            balance_after_cents=child.balance_cents,
            created_by_id=created_by_id,
        )
        self._ctx.session.add(child)
        self._ctx.session.add(transaction)
        self._ctx.session.flush()
        self._ctx.logger.log(
            "transaction_created",
            child_id=str(child.id),
            transaction_id=str(transaction.id),
            type=transaction_type.value,
            category=category.value,
            amount=str(value),
            balance_after=str(from_cents(child.balance_cents)),
        )
        self._achievements.check(child, BadgeTrigger.TRANSACTION_CREATED, {"transaction_id": transaction.id})
        self._achievements.check(child, BadgeTrigger.BALANCE_CHANGED, {"balance": from_cents(child.balance_cents)})
        return transaction

    def get_balance(self, child_id: UUID, actor: Actor | None = None) -> Decimal:
        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        if actor is not None:
            require_child_access(actor, child)
        return from_cents(child.balance_cents)

    def list_transactions(
        self,
        child_id: UUID,
        actor: Actor,
        *,
        limit: int | None = 20,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        category: Optional[TransactionCategory] = None,
        transaction_type: Optional[TransactionType] = None,
    ) -> Sequence[LedgerTransaction]:
        """Return ledger rows newest first, optionally filtered."""

        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        require_child_access(actor, child)
        statement = select(LedgerTransaction).where(LedgerTransaction.child_id == child_id)
        if start is not None:
            statement = statement.where(col(LedgerTransaction.created_at) >= as_utc_naive(start))
        if end is not None:
            statement = statement.where(col(LedgerTransaction.created_at) <= as_utc_naive(end))
        if category is not None:
            statement = statement.where(LedgerTransaction.category == TransactionCategory(category))
        if transaction_type is not None:
            statement = statement.where(LedgerTransaction.type == TransactionType(transaction_type))
        statement = statement.order_by(col(LedgerTransaction.sequence).desc())
        if limit is not None:
            if limit < 0:
                raise ValidationError("limit must not be negative")
            statement = statement.limit(limit)
        return tuple(self._ctx.session.exec(statement).all())

    def export_csv(
        self,
        child_id: UUID,
        actor: Actor,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        category: Optional[TransactionCategory] = None,
    ) -> str:
        """Return a CSV export of the ledger in posting order."""

        rows = self.list_transactions(child_id, actor, limit=None, start=start, end=end, category=category)
        buffer = StringIO()
        writer = csv.writer(buffer)
        writer.writerow(["timestamp", "type", "category", "description", "amount", "balance"])
        for transaction in reversed(rows):
            writer.writerow(
                [
                    transaction.created_at.isoformat(),
                    transaction.type.value,
                    transaction.category.value,
                    transaction.description,
                    f"{from_cents(transaction.amount_cents):.2f}",
                    f"{from_cents(transaction.balance_after_cents):.2f}",
                ]
            )
        return buffer.getvalue()

    def statement(self, child_id: UUID, actor: Actor, *, max_transactions: int = 10) -> str:
        """Create a human-readable summary of the child's balance."""

        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        require_child_access(actor, child)
        user = self._ctx.session.get(ApplicationUser, child.user_id)
        lines = [
            f"Account holder: {user.display_name if user else child.id}",
            f"Current balance: {format_currency(from_cents(child.balance_cents))}",
            "",
            "Recent transactions:",
        ]
        transactions = self.list_transactions(child_id, actor, limit=max_transactions)
        if not transactions:
            lines.append("  (no transactions yet)")
        for transaction in reversed(transactions):
            sign = "+" if transaction.type == TransactionType.CREDIT else "-"
            lines.append(
                "  "
                f"[{transaction.created_at:%Y-%m-%d}] "
                f"{display_name(transaction.category)}: "
                f"{sign}{format_currency(from_cents(transaction.amount_cents))} "
                f"{transaction.description} "
                f"(balance {format_currency(from_cents(transaction.balance_after_cents))})"
            )
        return "\n".join(lines)

    def _next_sequence(self, child_id: UUID) -> int:
        statement = select(func.coalesce(func.max(LedgerTransaction.sequence), 0)).where(
            LedgerTransaction.child_id == child_id
        )
        return int(self._ctx.session.exec(statement).one()) + 1


__all__ = ["LedgerService"]
