"""Weekly allowance administration and payment."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence, Tuple
from uuid import UUID

from sqlmodel import col, select

from .clock import now
from .context import ServiceContext
from .exceptions import AllowanceTrackerError, ChildNotFoundError, InvalidStateError, ValidationError
from .goals import GoalService
from .ledger import LedgerService
from .models import AllowanceAdjustmentType, NotificationType, TransactionCategory, TransactionType
from .money import AmountLike, format_currency, from_cents, require_positive, to_cents, to_decimal
from .security import Actor, require_child_access, require_family_parent
from .webapp.persistence import AllowanceAdjustment, Child, LedgerTransaction


class AllowanceService:
    """Pause, resume, adjust and pay a child's recurring allowance.

    Administrative changes only touch the child record and leave an
    :class:`AllowanceAdjustment` audit row; payments go through the ledger.
    """

    def __init__(self, context: ServiceContext, ledger: LedgerService, goals: GoalService) -> None:
        self._ctx = context
        self._ledger = ledger
        self._goals = goals

    def pause_allowance(self, child_id: UUID, actor: Actor, *, reason: str | None = None) -> AllowanceAdjustment:
        with self._ctx.transaction() as session:
            child = self._ctx.lock_child(child_id, ChildNotFoundError)
            require_family_parent(actor, child.family_id)
            if child.allowance_paused:
                raise InvalidStateError("Allowance is already paused")
            child.allowance_paused = True
            child.allowance_paused_reason = reason
            session.add(child)
            adjustment = self._audit(child, AllowanceAdjustmentType.PAUSED, actor, reason=reason)
            self._ctx.notifications.send(
                child.user_id,
                NotificationType.ALLOWANCE_PAUSED,
                "Allowance paused",
                f"Your allowance has been paused{f': {reason}' if reason else '.'}",
                related=("child", child.id),
            )
            self._ctx.logger.log("allowance_paused", child_id=str(child.id), reason=reason)
            return adjustment

    def resume_allowance(self, child_id: UUID, actor: Actor, *, reason: str | None = None) -> AllowanceAdjustment:
        with self._ctx.transaction() as session:
            child = self._ctx.lock_child(child_id, ChildNotFoundError)
            require_family_parent(actor, child.family_id)
            if not child.allowance_paused:
                raise InvalidStateError("Allowance is not paused")
            child.allowance_paused = False
            child.allowance_paused_reason = None
            session.add(child)
            adjustment = self._audit(child, AllowanceAdjustmentType.RESUMED, actor, reason=reason)
            self._ctx.notifications.send(
                child.user_id,
                NotificationType.ALLOWANCE_RESUMED,
                "Allowance resumed",
                "Your allowance payments have resumed.",
                related=("child", child.id),
            )
            self._ctx.logger.log("allowance_resumed", child_id=str(child.id), reason=reason)
            return adjustment

    def adjust_allowance_amount(
        self,
        child_id: UUID,
        new_amount: AmountLike,
        actor: Actor,
        *,
        reason: str | None = None,
    ) -> AllowanceAdjustment:
        amount = require_positive(to_decimal(new_amount), allow_zero=True)
        with self._ctx.transaction() as session:
            child = self._ctx.lock_child(child_id, ChildNotFoundError)
            require_family_parent(actor, child.family_id)
            new_cents = to_cents(amount)
            if new_cents == child.weekly_allowance_cents:
                raise ValidationError(f"Allowance is already {format_currency(amount)}")
            old_cents = child.weekly_allowance_cents
            child.weekly_allowance_cents = new_cents
            session.add(child)
            adjustment = self._audit(
                child,
                AllowanceAdjustmentType.AMOUNT_CHANGED,
                actor,
                reason=reason,
                old_cents=old_cents,
                new_cents=new_cents,
            )
            self._ctx.logger.log(
                "allowance_adjusted",
                child_id=str(child.id),
                old_amount=str(from_cents(old_cents)),
                new_amount=str(amount),
            )
            return adjustment

    def list_adjustments(self, child_id: UUID, actor: Actor) -> Sequence[AllowanceAdjustment]:
        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        require_child_access(actor, child)
        statement = (
            select(AllowanceAdjustment)
            .where(AllowanceAdjustment.child_id == child_id)
            .order_by(col(AllowanceAdjustment.created_at).desc())
        )
        return tuple(self._ctx.session.exec(statement).all())

    def pay_allowance(self, child_id: UUID, actor: Actor | None = None) -> LedgerTransaction:
        """Pay the weekly allowance; ``actor=None`` means the scheduler is paying."""

        with self._ctx.transaction() as session:
            child = self._ctx.lock_child(child_id, ChildNotFoundError)
            if actor is not None:
                require_family_parent(actor, child.family_id)
            if child.allowance_paused:
                raise InvalidStateError("Allowance is paused")
            if child.weekly_allowance_cents <= 0:
                raise ValidationError("Child has no allowance amount set")
            moment = now()
            next_due = self.next_allowance_at(child)
            if next_due is not None and moment < next_due:
                raise InvalidStateError(f"Allowance already paid; next payment is due {next_due:%Y-%m-%d}")
            amount = from_cents(child.weekly_allowance_cents)
            transaction = self._ledger.post(
                child,
                amount,
                TransactionType.CREDIT,
                TransactionCategory.ALLOWANCE,
                "Weekly allowance",
                created_by_id=actor.user_id if actor else None,
            )
            child.last_allowance_at = moment
            session.add(child)
            self._ctx.notifications.send(
                child.user_id,
                NotificationType.ALLOWANCE_DEPOSIT,
                "Allowance deposited",
                f"{format_currency(amount)} was added to your balance.",
                data={"transaction_id": transaction.id, "amount": str(amount)},
                related=("transaction", transaction.id),
            )
            self._ctx.logger.log(
                "allowance_paid",
                child_id=str(child.id),
                amount=str(amount),
                scheduled=actor is None,
            )
            self._goals.process_auto_transfers(child.id, amount)
            return transaction

    def next_allowance_at(self, child: Child) -> Optional[datetime]:
        if child.last_allowance_at is None:
            return None
        return child.last_allowance_at + timedelta(days=self._ctx.settings.allowance_interval_days)

    def is_due(self, child: Child) -> bool:
        if child.allowance_paused or child.weekly_allowance_cents <= 0:
            return False
        moment = now()
        next_due = self.next_allowance_at(child)
        if next_due is not None and moment < next_due:
            return False
        if child.allowance_day is not None and moment.weekday() != child.allowance_day:
            return False
        return True

    def process_pending_allowances(self) -> Tuple[int, int]:
        """Pay every child whose allowance is due; one failure does not stop the rest."""

        children = self._ctx.session.exec(
            select(Child).where(col(Child.allowance_paused).is_(False), Child.weekly_allowance_cents > 0)
        ).all()
        due: list[UUID] = [child.id for child in children if self.is_due(child)]
        processed = failed = 0
        for child_id in due:
            try:
                self.pay_allowance(child_id)
            except AllowanceTrackerError as exc:
                failed += 1
                self._ctx.logger.log(
                    "allowance_payment_failed",
                    level=logging.WARNING,
                    child_id=str(child_id),
                    error=type(exc).__name__,
                    detail=str(exc),
                )
                continue
            processed += 1
        self._ctx.logger.log("allowances_processed", processed=processed, failed=failed)
        return processed, failed

    def _audit(
        self,
        child: Child,
        adjustment_type: AllowanceAdjustmentType,
        actor: Actor,
        *,
        reason: Optional[str] = None,
        old_cents: Optional[int] = None,
        new_cents: Optional[int] = None,
    ) -> AllowanceAdjustment:
        adjustment = AllowanceAdjustment(
            child_id=child.id,
            adjustment_type=adjustment_type,
            old_cents=old_cents,
            new_cents=new_cents,
            reason=reason,
            adjusted_by_id=actor.user_id,
        )
        self._ctx.session.add(adjustment)
        return adjustment


__all__ = ["AllowanceService"]
