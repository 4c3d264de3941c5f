"""Transaction categories, keyword suggestions and per-category budgets."""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlmodel import col, select

from .clock import as_utc_naive, now
from .context import ServiceContext
from .exceptions import (
    BudgetExceededError,
    BudgetNotFoundError,
    ChildNotFoundError,
    InvalidCategoryError,
    ValidationError,
)
from .models import (
    BudgetCheck,
    BudgetPeriod,
    BudgetStatus,
    BudgetStatusReport,
    CategorySpending,
    NotificationType,
    TransactionCategory,
    TransactionType,
)
from .money import AmountLike, ZERO, format_currency, from_cents, require_positive, to_cents, to_decimal
from .security import Actor, require_child_access, require_family_parent
from .webapp.persistence import CategoryBudget, Child, LedgerTransaction

INCOME_CATEGORIES: FrozenSet[TransactionCategory] = frozenset(
    {
        TransactionCategory.ALLOWANCE,
        TransactionCategory.CHORES,
        TransactionCategory.GIFT,
        TransactionCategory.BONUS_REWARD,
        TransactionCategory.TASK,
        TransactionCategory.OTHER_INCOME,
    }
)
SPENDING_CATEGORIES: FrozenSet[TransactionCategory] = frozenset(
    {
        TransactionCategory.TOYS,
        TransactionCategory.GAMES,
        TransactionCategory.BOOKS,
        TransactionCategory.CLOTHES,
        TransactionCategory.SNACKS,
        TransactionCategory.CANDY,
        TransactionCategory.ELECTRONICS,
        TransactionCategory.ENTERTAINMENT,
        TransactionCategory.SPORTS,
        TransactionCategory.CRAFTS,
        TransactionCategory.OTHER_SPENDING,
    }
)
GIVING_CATEGORIES: FrozenSet[TransactionCategory] = frozenset(
    {TransactionCategory.CHARITY, TransactionCategory.INVESTMENT}
)
BUDGET_CATEGORIES = SPENDING_CATEGORIES | GIVING_CATEGORIES

_ALLOWED: Dict[TransactionType, FrozenSet[TransactionCategory]] = {
    TransactionType.CREDIT: INCOME_CATEGORIES | {TransactionCategory.SAVINGS},
    TransactionType.DEBIT: BUDGET_CATEGORIES | {TransactionCategory.SAVINGS},
}

# Checked in order; the first keyword hit wins.
_CREDIT_KEYWORDS: Tuple[Tuple[Tuple[str, ...], TransactionCategory], ...] = (
    (("allowance",), TransactionCategory.ALLOWANCE),
    (("chore",), TransactionCategory.CHORES),
    (("task",), TransactionCategory.TASK),
    (("gift", "birthday"), TransactionCategory.GIFT),
    (("bonus", "reward"), TransactionCategory.BONUS_REWARD),
)
_DEBIT_KEYWORDS: Tuple[Tuple[Tuple[str, ...], TransactionCategory], ...] = (
    (("toy", "lego"), TransactionCategory.TOYS),
    (("game",), TransactionCategory.GAMES),
    (("book",), TransactionCategory.BOOKS),
    (("cloth", "shirt", "pants", "shoes"), TransactionCategory.CLOTHES),
    (("snack",), TransactionCategory.SNACKS),
    (("candy", "sweet"), TransactionCategory.CANDY),
    (("electronic", "phone", "tablet"), TransactionCategory.ELECTRONICS),
    (("entertainment", "movie", "cinema"), TransactionCategory.ENTERTAINMENT),
    (("sport", "ball"), TransactionCategory.SPORTS),
    (("craft", "art"), TransactionCategory.CRAFTS),
    (("saving",), TransactionCategory.SAVINGS),
    (("charity", "donate"), TransactionCategory.CHARITY),
    (("invest", "stock"), TransactionCategory.INVESTMENT),
)


def categories_for_type(transaction_type: TransactionType) -> List[TransactionCategory]:
    """Return the categories legal for ``transaction_type`` in declaration order."""

    allowed = _ALLOWED[TransactionType(transaction_type)]
    return [category for category in TransactionCategory if category in allowed]


def is_category_allowed(transaction_type: TransactionType, category: TransactionCategory) -> bool:
    return TransactionCategory(category) in _ALLOWED[TransactionType(transaction_type)]


def ensure_category_allowed(transaction_type: TransactionType, category: TransactionCategory) -> None:
    if not is_category_allowed(transaction_type, category):
        raise InvalidCategoryError(
            f"Category {display_name(category)} is not valid for {TransactionType(transaction_type).value} transactions"
        )


def suggest_category(description: str, transaction_type: TransactionType) -> TransactionCategory:
    lowered = (description or "").lower()
    if TransactionType(transaction_type) is TransactionType.CREDIT:
        rules, fallback = _CREDIT_KEYWORDS, TransactionCategory.OTHER_INCOME
    else:
        rules, fallback = _DEBIT_KEYWORDS, TransactionCategory.OTHER_SPENDING
    for keywords, category in rules:
        if any(keyword in lowered for keyword in keywords):
            return category
    return fallback


def display_name(category: TransactionCategory) -> str:
    return TransactionCategory(category).value.replace("_", " ").title()


def period_start(period: BudgetPeriod, moment: datetime | None = None) -> datetime:
    """Return the start of the rolling window for ``period`` ending at ``moment``."""

    moment = moment or now()
    if BudgetPeriod(period) is BudgetPeriod.WEEKLY:
        return moment - timedelta(days=7)
    year, month = (moment.year, moment.month - 1) if moment.month > 1 else (moment.year - 1, 12)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def budget_status_for(percent_used: int, alert_threshold: int) -> BudgetStatus:
    if percent_used > 100:
        return BudgetStatus.OVER_BUDGET
    if percent_used == 100:
        return BudgetStatus.AT_LIMIT
    if percent_used >= alert_threshold:
        return BudgetStatus.WARNING
    return BudgetStatus.SAFE


def _percent_used(spent_cents: int, limit_cents: int) -> int:
    if limit_cents <= 0:
        return 0
    return int(spent_cents * 100 // limit_cents)


class CategoryService:
    """Budgets and spending breakdowns for a child's ledger."""

    def __init__(self, context: ServiceContext) -> None:
        self._ctx = context

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------
    def set_budget(
        self,
        child_id: UUID,
        category: TransactionCategory,
        limit: AmountLike,
        actor: Actor,
        *,
        period: BudgetPeriod = BudgetPeriod.WEEKLY,
        alert_threshold_percent: int | None = None,
        enforce_limit: bool = False,
    ) -> CategoryBudget:
        category = TransactionCategory(category)
        if category not in BUDGET_CATEGORIES:
            raise InvalidCategoryError(f"Budgets can only be set for spending categories, not {display_name(category)}")
        value = require_positive(to_decimal(limit))
        threshold = (
            self._ctx.settings.default_budget_alert_percent
            if alert_threshold_percent is None
            else alert_threshold_percent
        )
        if not 1 <= threshold <= 100:
            raise ValidationError("Alert threshold must be between 1 and 100 percent")
        with self._ctx.transaction() as session:
            child = self._ctx.get(Child, child_id, ChildNotFoundError)
            require_family_parent(actor, child.family_id)
            budget = self._find(child_id, category)
            if budget is None:
                budget = CategoryBudget(
                    child_id=child_id,
                    category=category,
                    limit_cents=0,
                    created_by_id=actor.user_id,
                )
            budget.limit_cents = to_cents(value)
            budget.period = BudgetPeriod(period)
            budget.alert_threshold_percent = threshold
            budget.enforce_limit = enforce_limit
            budget.updated_at = now()
            session.add(budget)
            self._ctx.logger.log(
                "budget_set",
                child_id=str(child_id),
                category=category.value,
                limit=str(value),
                enforce=enforce_limit,
            )
            return budget

    def delete_budget(self, child_id: UUID, category: TransactionCategory, actor: Actor) -> None:
        with self._ctx.transaction() as session:
            child = self._ctx.get(Child, child_id, ChildNotFoundError)
            require_family_parent(actor, child.family_id)
            budget = self._find(child_id, TransactionCategory(category))
            if budget is None:
                raise BudgetNotFoundError(f"No {display_name(category)} budget for child {child_id}")
            session.delete(budget)
            self._ctx.logger.log("budget_deleted", child_id=str(child_id), category=budget.category.value)

    def list_budgets(self, child_id: UUID, actor: Actor) -> Sequence[CategoryBudget]:
        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        require_child_access(actor, child)
        budgets = self._ctx.session.exec(select(CategoryBudget).where(CategoryBudget.child_id == child_id)).all()
        return tuple(sorted(budgets, key=lambda budget: budget.category.value))

    def check_budget(self, child_id: UUID, category: TransactionCategory, amount: AmountLike) -> BudgetCheck:
        value = to_decimal(amount)
        budget = self._find(child_id, TransactionCategory(category))
        if budget is None or not budget.enforce_limit:
            return BudgetCheck(True, "No budget limit set for this category", ZERO, ZERO, ZERO)
        spent = from_cents(self._spent_cents(child_id, budget.category, period_start(budget.period)))
        limit = from_cents(budget.limit_cents)
        remaining_after = limit - (spent + value)
        if remaining_after < 0:
            message = (
                f"This transaction exceeds the {display_name(budget.category)} budget. "
                f"Budget: {format_currency(limit)}, current: {format_currency(spent)}, "
                f"transaction: {format_currency(value)}"
            )
            return BudgetCheck(False, message, spent, limit, remaining_after)
        return BudgetCheck(True, "Transaction within budget", spent, limit, remaining_after)

    def budget_status(
        self, child_id: UUID, actor: Actor, *, period: BudgetPeriod | None = None
    ) -> List[BudgetStatusReport]:
        reports: List[BudgetStatusReport] = []
        for budget in self.list_budgets(child_id, actor):
            if period is not None and budget.period != BudgetPeriod(period):
                continue
            spent_cents = self._spent_cents(child_id, budget.category, period_start(budget.period))
            percent = _percent_used(spent_cents, budget.limit_cents)
            reports.append(
                BudgetStatusReport(
                    category=budget.category,
                    limit=from_cents(budget.limit_cents),
                    spent=from_cents(spent_cents),
                    remaining=from_cents(budget.limit_cents - spent_cents),
                    percent_used=percent,
                    status=budget_status_for(percent, budget.alert_threshold_percent),
                    period=budget.period,
                )
            )
        return reports

    def evaluate_debit(self, child: Child, category: TransactionCategory, amount_cents: int) -> None:
        """Enforce the category budget for a pending debit and raise parent alerts.

        Runs inside the caller's unit of work before the debit row is added.
        """

        budget = self._find(child.id, category)
        if budget is None:
            return
        spent_cents = self._spent_cents(child.id, category, period_start(budget.period))
        after_cents = spent_cents + amount_cents
        if budget.enforce_limit and after_cents > budget.limit_cents:
            check = self.check_budget(child.id, category, from_cents(amount_cents))
            raise BudgetExceededError(check.message)
        before = _percent_used(spent_cents, budget.limit_cents)
        after = _percent_used(after_cents, budget.limit_cents)
        label = display_name(category)
        related = ("category_budget", budget.id)
        if after_cents > budget.limit_cents >= spent_cents:
            self._ctx.notifications.send_to_parents(
                child.family_id,
                NotificationType.BUDGET_EXCEEDED,
                f"{label} budget exceeded",
                f"Spending on {label} is now {format_currency(from_cents(after_cents))} "
                f"against a limit of {format_currency(from_cents(budget.limit_cents))}.",
                data={"child_id": child.id, "category": category.value, "percent_used": after},
                related=related,
            )
        elif before < budget.alert_threshold_percent <= after:
            self._ctx.notifications.send_to_parents(
                child.family_id,
                NotificationType.BUDGET_WARNING,
                f"{label} budget at {after}%",
                f"Spending on {label} has reached {after}% of the {budget.period.value} budget.",
                data={"child_id": child.id, "category": category.value, "percent_used": after},
                related=related,
            )

    # ------------------------------------------------------------------
    # Spending breakdown
    # ------------------------------------------------------------------
    def category_spending(
        self,
        child_id: UUID,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[CategorySpending]:
        statement = (
            select(
                LedgerTransaction.category,
                func.sum(LedgerTransaction.amount_cents),
                func.count(),
            )
            .where(
                LedgerTransaction.child_id == child_id,
                LedgerTransaction.type == TransactionType.DEBIT,
                LedgerTransaction.category != TransactionCategory.SAVINGS,
            )
            .group_by(LedgerTransaction.category)
        )
        if start is not None:
            statement = statement.where(col(LedgerTransaction.created_at) >= as_utc_naive(start))
        if end is not None:
            statement = statement.where(col(LedgerTransaction.created_at) <= as_utc_naive(end))
        rows = self._ctx.session.exec(statement).all()
        total_cents = sum(int(total or 0) for _, total, _ in rows)
        spending = [
            CategorySpending(
                category=TransactionCategory(category),
                display_name=display_name(category),
                total_amount=from_cents(int(total or 0)),
                transaction_count=int(count),
                percentage=(
                    (Decimal(int(total or 0)) * 100 / Decimal(total_cents)).quantize(Decimal("0.01"))
                    if total_cents
                    else ZERO
                ),
            )
            for category, total, count in rows
        ]
        spending.sort(key=lambda item: (item.total_amount, item.category.value), reverse=True)
        return spending

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _find(self, child_id: UUID, category: TransactionCategory) -> Optional[CategoryBudget]:
        return self._ctx.session.exec(
            select(CategoryBudget).where(
                CategoryBudget.child_id == child_id,
                CategoryBudget.category == category,
            )
        ).first()

    def _spent_cents(self, child_id: UUID, category: TransactionCategory, since: datetime) -> int:
        statement = select(func.coalesce(func.sum(LedgerTransaction.amount_cents), 0)).where(
            LedgerTransaction.child_id == child_id,
            LedgerTransaction.category == category,
            LedgerTransaction.type == TransactionType.DEBIT,
            col(LedgerTransaction.created_at) >= since,
        )
        return int(self._ctx.session.exec(statement).one())


__all__ = [
    "BUDGET_CATEGORIES",
    "CategoryService",
    "GIVING_CATEGORIES",
    "INCOME_CATEGORIES",
    "SPENDING_CATEGORIES",
    "budget_status_for",
    "categories_for_type",
    "display_name",
    "ensure_category_allowed",
    "is_category_allowed",
    "period_start",
    "suggest_category",
]
