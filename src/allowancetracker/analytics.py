"""Read-only reporting over a child's ledger."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID

from sqlmodel import col, select

from .categories import CategoryService
from .clock import as_utc_naive, now
from .context import ServiceContext
from .exceptions import ChildNotFoundError, ValidationError
from .models import BalancePoint, CategorySpending, IncomeSpendingSummary, TransactionCategory, TransactionType
from .money import from_cents
from .security import Actor, require_child_access
from .webapp.persistence import Child, LedgerTransaction


class AnalyticsService:
    def __init__(self, context: ServiceContext, categories: CategoryService) -> None:
        self._ctx = context
        self._categories = categories

    def balance_history(self, child_id: UUID, actor: Actor, *, days: int = 30) -> List[BalancePoint]:
        """Return the closing balance of each day with ledger activity."""

        if days <= 0:
            raise ValidationError("days must be positive")
        self._child(child_id, actor)
        since = now() - timedelta(days=days)
        statement = (
            select(LedgerTransaction)
            .where(
                LedgerTransaction.child_id == child_id,
                col(LedgerTransaction.created_at) >= since,
            )
            .order_by(col(LedgerTransaction.sequence))
        )
        closing: Dict[date, int] = {}
        for transaction in self._ctx.session.exec(statement).all():
            closing[transaction.created_at.date()] = transaction.balance_after_cents
        return [BalancePoint(day=day, balance=from_cents(cents)) for day, cents in sorted(closing.items())]

    def income_vs_spending(
        self,
        child_id: UUID,
        actor: Actor,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> IncomeSpendingSummary:
        # Savings moves money between the balance and a goal, so it is neither.
        self._child(child_id, actor)
        statement = select(LedgerTransaction).where(
            LedgerTransaction.child_id == child_id,
            LedgerTransaction.category != TransactionCategory.SAVINGS,
        )
        if start is not None:
            statement = statement.where(col(LedgerTransaction.created_at) >= as_utc_naive(start))
        if end is not None:
            statement = statement.where(col(LedgerTransaction.created_at) <= as_utc_naive(end))
        income_cents = spending_cents = income_count = spending_count = 0
        for transaction in self._ctx.session.exec(statement).all():
            if transaction.type == TransactionType.CREDIT:
                income_cents += transaction.amount_cents
                income_count += 1
            else:
                spending_cents += transaction.amount_cents
                spending_count += 1
        return IncomeSpendingSummary(
            total_income=from_cents(income_cents),
            total_spending=from_cents(spending_cents),
            net=from_cents(income_cents - spending_cents),
            income_count=income_count,
            spending_count=spending_count,
        )

    def category_spending(
        self,
        child_id: UUID,
        actor: Actor,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[CategorySpending]:
        self._child(child_id, actor)
        return self._categories.category_spending(child_id, start=start, end=end)

    def _child(self, child_id: UUID, actor: Actor) -> Child:
        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        require_child_access(actor, child)
        return child


__all__ = ["AnalyticsService"]
