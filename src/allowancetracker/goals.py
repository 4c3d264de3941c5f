"""Savings goals, parent matching, challenges and milestone tracking."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlmodel import col, select

from .achievements import AchievementService
from .clock import as_utc_naive, now
from .context import ServiceContext
from .exceptions import (
    ChallengeNotFoundError,
    ChildNotFoundError,
    DuplicateError,
    GoalNotFoundError,
    InsufficientFundsError,
    InvalidStateError,
    MatchingRuleNotFoundError,
    ValidationError,
)
from .ledger import LedgerService
from .models import (
    AutoTransferType,
    BadgeTrigger,
    ChallengeStatus,
    ContributionType,
    GoalCategory,
    GoalProgress,
    GoalStatus,
    MatchingType,
    MilestoneReached,
    NotificationType,
    TransactionCategory,
    TransactionType,
)
from .money import AmountLike, CENT, ZERO, format_currency, from_cents, percent_of, require_positive, to_cents, to_decimal
from .security import Actor, require_child_access, require_family_parent
from .webapp.persistence import (
    Child,
    GoalChallenge,
    GoalMilestone,
    MatchingRule,
    SavingsContribution,
    SavingsGoal,
)

_OPEN_STATUSES = (GoalStatus.ACTIVE, GoalStatus.PAUSED)
_WITHDRAWABLE_STATUSES = (GoalStatus.ACTIVE, GoalStatus.PAUSED, GoalStatus.COMPLETED)

_UNSET = object()


def _ratio(value: AmountLike) -> Decimal:
    try:
        ratio = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid match ratio: {value!r}") from exc
    if ratio <= 0:
        raise ValidationError("Match ratio must be greater than zero")
    return ratio


def _auto_transfer_value(transfer_type: AutoTransferType, value: AmountLike) -> Decimal:
    amount = require_positive(to_decimal(value), allow_zero=True)
    if transfer_type is AutoTransferType.PERCENTAGE and amount > 100:
        raise ValidationError("Auto-transfer percentage cannot exceed 100")
    if transfer_type is not AutoTransferType.NONE and amount == ZERO:
        raise ValidationError("Auto-transfer value must be greater than zero")
    return amount


def match_amount_for(rule: MatchingRule, deposit: Decimal) -> Decimal:
    """Return the uncapped match a rule grants for ``deposit``."""

    ratio = Decimal(rule.match_ratio)
    if rule.type == MatchingType.RATIO_MATCH:
        return to_decimal(deposit * ratio)
    if rule.type == MatchingType.PERCENTAGE_MATCH:
        return percent_of(deposit, ratio)
    return to_decimal(ratio)


def progress_percentage(goal: SavingsGoal) -> Decimal:
    if goal.target_cents <= 0:
        return ZERO
    return (Decimal(goal.current_cents) * 100 / Decimal(goal.target_cents)).quantize(CENT)


def milestone_message(percent: int) -> str:
    if percent >= 100:
        return "You reached your goal!"
    return f"You've reached {percent}% of your goal!"


class GoalService:
    """Move money between a child's main balance and their savings goals."""

    def __init__(self, context: ServiceContext, ledger: LedgerService, achievements: AchievementService) -> None:
        self._ctx = context
        self._ledger = ledger
        self._achievements = achievements

    # ------------------------------------------------------------------
    # Goal CRUD
    # ------------------------------------------------------------------
    def create_goal(
        self,
        child_id: UUID,
        name: str,
        target_amount: AmountLike,
        actor: Actor,
        *,
        description: str | None = None,
        category: GoalCategory = GoalCategory.OTHER,
        image_url: str | None = None,
        product_url: str | None = None,
        target_date: datetime | None = None,
        priority: int = 1,
        auto_transfer_type: AutoTransferType = AutoTransferType.NONE,
        auto_transfer_value: AmountLike = 0,
    ) -> SavingsGoal:
        if not name or not name.strip():
            raise ValidationError("Goal name is required")
        target = require_positive(to_decimal(target_amount))
        if priority < 1:
            raise ValidationError("Priority must be 1 or greater")
        transfer_type = AutoTransferType(auto_transfer_type)
        transfer_value = _auto_transfer_value(transfer_type, auto_transfer_value)
        with self._ctx.transaction() as session:
            child = self._ctx.lock_child(child_id, ChildNotFoundError)
            require_child_access(actor, child)
            goal = SavingsGoal(
                child_id=child_id,
                name=name.strip(),
                description=description,
                target_cents=to_cents(target),
                category=GoalCategory(category),
                image_url=image_url,
                product_url=product_url,
                target_date=as_utc_naive(target_date),
                priority=priority,
                auto_transfer_type=transfer_type,
                auto_transfer_value=str(transfer_value),
            )
            session.add(goal)
            session.flush()
            for percent in self._ctx.settings.milestone_percentages:
                session.add(
                    GoalMilestone(
                        goal_id=goal.id,
                        percent_complete=percent,
                        target_cents=to_cents(percent_of(target, percent)),
                        message=milestone_message(percent),
                    )
                )
            session.flush()
            self._achievements.check(child, BadgeTrigger.GOAL_CREATED, {"goal_id": goal.id})
            self._ctx.logger.log("goal_created", goal_id=str(goal.id), child_id=str(child_id), target=str(target))
            return goal

    def get_goal(self, goal_id: UUID, actor: Actor | None = None) -> SavingsGoal:
        goal = self._ctx.get(SavingsGoal, goal_id, GoalNotFoundError)
        if actor is not None:
            require_child_access(actor, self._child(goal))
        return goal

    def list_goals(
        self,
        child_id: UUID,
        actor: Actor,
        *,
        status: GoalStatus | None = None,
        include_completed: bool = False,
    ) -> Sequence[SavingsGoal]:
        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        require_child_access(actor, child)
        statement = select(SavingsGoal).where(SavingsGoal.child_id == child_id)
        if status is not None:
            statement = statement.where(SavingsGoal.status == GoalStatus(status))
        else:
            statuses = list(_OPEN_STATUSES)
            if include_completed:
                statuses.append(GoalStatus.COMPLETED)
            statement = statement.where(col(SavingsGoal.status).in_(statuses))
        statement = statement.order_by(col(SavingsGoal.priority), col(SavingsGoal.created_at))
        return tuple(self._ctx.session.exec(statement).all())

    def milestones(self, goal_id: UUID) -> Sequence[GoalMilestone]:
        statement = (
            select(GoalMilestone)
            .where(GoalMilestone.goal_id == goal_id)
            .order_by(col(GoalMilestone.percent_complete))
        )
        return tuple(self._ctx.session.exec(statement).all())

    def set_milestone_bonus(
        self,
        goal_id: UUID,
        percent: int,
        amount: AmountLike | None,
        actor: Actor,
    ) -> GoalMilestone:
        """Attach a bonus to a milestone that has not been reached yet; ``None`` clears it."""

        cents = to_cents(require_positive(to_decimal(amount))) if amount is not None else None
        with self._ctx.transaction() as session:
            goal = self.get_goal(goal_id)
            require_family_parent(actor, self._child(goal).family_id)
            self._require_status(goal, _OPEN_STATUSES, "given a milestone bonus")
            milestone = next((m for m in self.milestones(goal_id) if m.percent_complete == percent), None)
            if milestone is None:
                raise ValidationError(f"Goal has no {percent}% milestone")
            if milestone.is_achieved:
                raise InvalidStateError(f"The {percent}% milestone has already been reached")
            milestone.bonus_cents = cents
            session.add(milestone)
            self._ctx.logger.log(
                "milestone_bonus_set",
                goal_id=str(goal_id),
                percent=percent,
                amount=str(from_cents(cents)) if cents is not None else None,
            )
            return milestone

    def update_goal(
        self,
        goal_id: UUID,
        actor: Actor,
        *,
        name: str | None = None,
        description: object = _UNSET,
        target_amount: AmountLike | None = None,
        category: GoalCategory | None = None,
        image_url: object = _UNSET,
        product_url: object = _UNSET,
        target_date: object = _UNSET,
        priority: int | None = None,
        auto_transfer_type: AutoTransferType | None = None,
        auto_transfer_value: AmountLike | None = None,
    ) -> SavingsGoal:
        with self._ctx.transaction() as session:
            goal, child = self._lock_goal_and_child(goal_id)
            require_child_access(actor, child)
            self._require_status(goal, _OPEN_STATUSES, "updated")
            if name is not None:
                if not name.strip():
                    raise ValidationError("Goal name is required")
                goal.name = name.strip()
            if description is not _UNSET:
                goal.description = description  # type: ignore[assignment]
            if category is not None:
                goal.category = GoalCategory(category)
            if image_url is not _UNSET:
                goal.image_url = image_url  # type: ignore[assignment]
            if product_url is not _UNSET:
                goal.product_url = product_url  # type: ignore[assignment]
            if target_date is not _UNSET:
                goal.target_date = as_utc_naive(target_date)  # type: ignore[arg-type]
            if priority is not None:
                if priority < 1:
                    raise ValidationError("Priority must be 1 or greater")
                goal.priority = priority
            if auto_transfer_type is not None or auto_transfer_value is not None:
                transfer_type = AutoTransferType(auto_transfer_type or goal.auto_transfer_type)
                raw_value = auto_transfer_value if auto_transfer_value is not None else goal.auto_transfer_value
                goal.auto_transfer_type = transfer_type
                goal.auto_transfer_value = str(_auto_transfer_value(transfer_type, raw_value))
            if target_amount is not None:
                target = require_positive(to_decimal(target_amount))
                goal.target_cents = to_cents(target)
                for milestone in self.milestones(goal.id):
                    milestone.target_cents = to_cents(percent_of(target, milestone.percent_complete))
                    session.add(milestone)
                if self._ctx.settings.caps_goals and goal.current_cents > goal.target_cents:
                    goal.surplus_cents += goal.current_cents - goal.target_cents
                    goal.current_cents = goal.target_cents
            goal.updated_at = now()
            session.add(goal)
            if goal.status == GoalStatus.ACTIVE:
                self._update_milestones(goal, child)
                self._check_completion(goal, child)
            self._ctx.logger.log("goal_updated", goal_id=str(goal.id), target=str(from_cents(goal.target_cents)))
            return goal

    def pause_goal(self, goal_id: UUID, actor: Actor) -> SavingsGoal:
        return self._transition(goal_id, actor, (GoalStatus.ACTIVE,), GoalStatus.PAUSED, "goal_paused")

    def resume_goal(self, goal_id: UUID, actor: Actor) -> SavingsGoal:
        return self._transition(goal_id, actor, (GoalStatus.PAUSED,), GoalStatus.ACTIVE, "goal_resumed")

    def cancel_goal(self, goal_id: UUID, actor: Actor) -> SavingsGoal:
        """Cancel a goal and return everything it holds to the main balance."""

        with self._ctx.transaction() as session:
            goal, child = self._lock_goal_and_child(goal_id)
            require_child_access(actor, child)
            self._require_status(goal, _WITHDRAWABLE_STATUSES, "cancelled")
            refund_cents = goal.current_cents + goal.surplus_cents
            if refund_cents > 0:
                transaction = self._ledger.post(
                    child,
                    from_cents(refund_cents),
                    TransactionType.CREDIT,
                    TransactionCategory.SAVINGS,
                    f"Refund from cancelled goal: {goal.name}",
                    created_by_id=actor.user_id,
                )
                goal.current_cents = 0
                goal.surplus_cents = 0
                self._record(
                    goal,
                    -refund_cents,
                    ContributionType.REFUND,
                    created_by_id=actor.user_id,
                    source_transaction_id=transaction.id,
                    description="Goal cancelled",
                )
            self._cancel_active_challenges(goal)
            goal.status = GoalStatus.CANCELLED
            goal.updated_at = now()
            session.add(goal)
            self._ctx.logger.log("goal_cancelled", goal_id=str(goal.id), refunded=str(from_cents(refund_cents)))
            return goal

    def mark_purchased(self, goal_id: UUID, actor: Actor) -> SavingsGoal:
        with self._ctx.transaction() as session:
            goal, child = self._lock_goal_and_child(goal_id)
            require_child_access(actor, child)
            self._require_status(goal, (GoalStatus.COMPLETED,), "marked as purchased")
            self._refund_surplus(goal, child, actor.user_id)
            goal.status = GoalStatus.PURCHASED
            goal.purchased_at = now()
            goal.updated_at = goal.purchased_at
            session.add(goal)
            self._ctx.logger.log("goal_purchased", goal_id=str(goal.id))
            return goal

    # ------------------------------------------------------------------
    # Money movement
    # ------------------------------------------------------------------
    def contribute(
        self,
        goal_id: UUID,
        amount: AmountLike,
        actor: Actor,
        *,
        description: str | None = None,
    ) -> GoalProgress:
        """Move ``amount`` from the main balance into the goal.

        Contributions never draw on debt, even when the child allows it.
        """

        value = require_positive(to_decimal(amount))
        cents = to_cents(value)
        with self._ctx.transaction():
            goal, child = self._lock_goal_and_child(goal_id)
            require_child_access(actor, child)
            self._require_status(goal, (GoalStatus.ACTIVE,), "contributed to")
            if cents > child.balance_cents:
                raise InsufficientFundsError(
                    f"Insufficient funds: balance {format_currency(from_cents(child.balance_cents))}, "
                    f"requested {format_currency(value)}"
                )
            transaction = self._ledger.post(
                child,
                value,
                TransactionType.DEBIT,
                TransactionCategory.SAVINGS,
                description or f"Contribution to {goal.name}",
                created_by_id=actor.user_id,
            )
            surplus_cents = self._credit_goal(goal, cents)
            self._record(
                goal,
                cents,
                ContributionType.CHILD_DEPOSIT,
                created_by_id=actor.user_id,
                source_transaction_id=transaction.id,
                description=description,
            )
            match_cents = self._apply_match(goal, child, value)
            milestone, milestone_bonus_cents = self._update_milestones(goal, child)
            bonus_cents = self._evaluate_challenge(goal, child)
            completed = self._check_completion(goal, child)
            self._achievements.check(child, BadgeTrigger.SAVINGS_DEPOSIT, {"goal_id": goal.id})
            self._ctx.logger.log(
                "goal_contribution",
                goal_id=str(goal.id),
                child_id=str(child.id),
                amount=str(value),
                matched=str(from_cents(match_cents)),
                surplus=str(from_cents(surplus_cents)),
                goal_amount=str(from_cents(goal.current_cents)),
                completed=completed,
            )
            return GoalProgress(
                goal_id=goal.id,
                goal_name=goal.name,
                new_amount=from_cents(goal.current_cents),
                target_amount=from_cents(goal.target_cents),
                progress_percentage=progress_percentage(goal),
                milestone_reached=milestone,
                is_completed=goal.status == GoalStatus.COMPLETED,
                match_amount_added=from_cents(match_cents) if match_cents else None,
                challenge_bonus_awarded=from_cents(bonus_cents) if bonus_cents else None,
                milestone_bonus_awarded=from_cents(milestone_bonus_cents) if milestone_bonus_cents else None,
                surplus_amount=from_cents(surplus_cents),
                transaction_id=transaction.id,
            )

    def withdraw(
        self,
        goal_id: UUID,
        amount: AmountLike,
        actor: Actor,
        *,
        reason: str | None = None,
    ) -> SavingsGoal:
        value = require_positive(to_decimal(amount))
        cents = to_cents(value)
        with self._ctx.transaction() as session:
            goal, child = self._lock_goal_and_child(goal_id)
            require_family_parent(actor, child.family_id)
            self._require_status(goal, _WITHDRAWABLE_STATUSES, "withdrawn from")
            if cents > goal.current_cents:
                raise InsufficientFundsError(
                    f"Goal holds {format_currency(from_cents(goal.current_cents))}, "
                    f"cannot withdraw {format_currency(value)}"
                )
            summary = f"Withdrawal from {goal.name}"
            if reason:
                summary = f"{summary}: {reason}"
            transaction = self._ledger.post(
                child,
                value,
                TransactionType.CREDIT,
                TransactionCategory.SAVINGS,
                summary,
                created_by_id=actor.user_id,
            )
            goal.current_cents -= cents
            self._record(
                goal,
                -cents,
                ContributionType.WITHDRAWAL,
                created_by_id=actor.user_id,
                source_transaction_id=transaction.id,
                description=reason,
            )
            if goal.status == GoalStatus.COMPLETED and goal.current_cents < goal.target_cents:
                goal.status = GoalStatus.ACTIVE
                goal.completed_at = None
            goal.updated_at = now()
            session.add(goal)
            self._ctx.logger.log(
                "goal_withdrawal",
                goal_id=str(goal.id),
                amount=str(value),
                goal_amount=str(from_cents(goal.current_cents)),
            )
            return goal

    def list_contributions(
        self,
        goal_id: UUID,
        actor: Actor,
        *,
        contribution_type: ContributionType | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Sequence[SavingsContribution]:
        self.get_goal(goal_id, actor)
        statement = select(SavingsContribution).where(SavingsContribution.goal_id == goal_id)
        if contribution_type is not None:
            statement = statement.where(SavingsContribution.type == ContributionType(contribution_type))
        if start is not None:
            statement = statement.where(col(SavingsContribution.created_at) >= as_utc_naive(start))
        if end is not None:
            statement = statement.where(col(SavingsContribution.created_at) <= as_utc_naive(end))
        statement = statement.order_by(col(SavingsContribution.created_at).desc())
        return tuple(self._ctx.session.exec(statement).all())

    def allocate_gift(
        self,
        goal_id: UUID,
        child: Child,
        cents: int,
        *,
        giver_name: str,
        created_by_id: UUID | None = None,
    ) -> SavingsContribution:
        """Move part of an approved gift from the main balance into a goal.

        ``child`` must already be locked by the caller.
        """

        with self._ctx.transaction():
            goal = self._lock_goal(goal_id)
            if goal.child_id != child.id:
                raise ValidationError("Gifts can only be allocated to the recipient's own goals")
            self._require_status(goal, (GoalStatus.ACTIVE,), "given a gift")
            transaction = self._ledger.post(
                child,
                from_cents(cents),
                TransactionType.DEBIT,
                TransactionCategory.SAVINGS,
                f"Gift from {giver_name} saved to {goal.name}",
                created_by_id=created_by_id,
            )
            self._credit_goal(goal, cents)
            contribution = self._record(
                goal,
                cents,
                ContributionType.GIFT,
                created_by_id=created_by_id,
                source_transaction_id=transaction.id,
                description=f"Gift from {giver_name}",
            )
            self._update_milestones(goal, child)
            self._check_completion(goal, child)
            self._ctx.logger.log(
                "goal_gift_allocated",
                goal_id=str(goal.id),
                child_id=str(child.id),
                amount=str(from_cents(cents)),
            )
            return contribution

    def process_auto_transfers(self, child_id: UUID, allowance_amount: AmountLike) -> List[SavingsContribution]:
        """Sweep part of a fresh allowance into goals that ask for it, by priority."""

        allowance = to_decimal(allowance_amount)
        transfers: List[SavingsContribution] = []
        with self._ctx.transaction() as session:
            child = self._ctx.lock_child(child_id, ChildNotFoundError)
            statement = (
                select(SavingsGoal)
                .where(
                    SavingsGoal.child_id == child_id,
                    SavingsGoal.status == GoalStatus.ACTIVE,
                    SavingsGoal.auto_transfer_type != AutoTransferType.NONE,
                )
                .order_by(col(SavingsGoal.priority), col(SavingsGoal.created_at))
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            for goal in session.exec(statement).all():
                configured = Decimal(goal.auto_transfer_value)
                if goal.auto_transfer_type == AutoTransferType.PERCENTAGE:
                    wanted = to_cents(percent_of(allowance, configured))
                else:
                    wanted = to_cents(configured)
                cents = min(wanted, max(child.balance_cents, 0), goal.target_cents - goal.current_cents)
                if cents <= 0:
                    continue
                transaction = self._ledger.post(
                    child,
                    from_cents(cents),
                    TransactionType.DEBIT,
                    TransactionCategory.SAVINGS,
                    f"Auto-transfer to {goal.name}",
                )
                goal.current_cents += cents
                transfers.append(
                    self._record(
                        goal,
                        cents,
                        ContributionType.AUTO_TRANSFER,
                        source_transaction_id=transaction.id,
                        description="Automatic transfer from allowance",
                    )
                )
                self._update_milestones(goal, child)
                self._check_completion(goal, child)
                self._ctx.logger.log(
                    "goal_auto_transfer",
                    goal_id=str(goal.id),
                    child_id=str(child_id),
                    amount=str(from_cents(cents)),
                )
            if transfers:
                self._achievements.check(child, BadgeTrigger.SAVINGS_DEPOSIT)
        return transfers

    # ------------------------------------------------------------------
    # Matching rules
    # ------------------------------------------------------------------
    def create_matching_rule(
        self,
        goal_id: UUID,
        actor: Actor,
        *,
        matching_type: MatchingType,
        ratio: AmountLike,
        max_match: AmountLike | None = None,
        expires_at: datetime | None = None,
    ) -> MatchingRule:
        value = _ratio(ratio)
        cap = require_positive(to_decimal(max_match)) if max_match is not None else None
        with self._ctx.transaction() as session:
            goal = self.get_goal(goal_id)
            require_family_parent(actor, self._child(goal).family_id)
            self._require_status(goal, _OPEN_STATUSES, "given a matching rule")
            if self._find_rule(goal_id) is not None:
                raise DuplicateError("Goal already has a matching rule")
            rule = MatchingRule(
                goal_id=goal_id,
                created_by_id=actor.user_id,
                type=MatchingType(matching_type),
                match_ratio=str(value),
                max_match_cents=to_cents(cap) if cap is not None else None,
                expires_at=as_utc_naive(expires_at),
            )
            session.add(rule)
            self._ctx.logger.log(
                "matching_rule_created",
                goal_id=str(goal_id),
                type=rule.type.value,
                ratio=rule.match_ratio,
            )
            return rule

    def get_matching_rule(self, goal_id: UUID, actor: Actor) -> MatchingRule:
        self.get_goal(goal_id, actor)
        rule = self._find_rule(goal_id)
        if rule is None:
            raise MatchingRuleNotFoundError(f"Goal {goal_id} has no matching rule")
        return rule

    def update_matching_rule(
        self,
        goal_id: UUID,
        actor: Actor,
        *,
        matching_type: MatchingType | None = None,
        ratio: AmountLike | None = None,
        max_match: object = _UNSET,
        expires_at: object = _UNSET,
        is_active: bool | None = None,
    ) -> MatchingRule:
        with self._ctx.transaction() as session:
            goal = self.get_goal(goal_id)
            require_family_parent(actor, self._child(goal).family_id)
            rule = self.get_matching_rule(goal_id, actor)
            if matching_type is not None:
                rule.type = MatchingType(matching_type)
            if ratio is not None:
                rule.match_ratio = str(_ratio(ratio))
            if max_match is not _UNSET:
                if max_match is None:
                    rule.max_match_cents = None
                else:
                    cap_cents = to_cents(require_positive(to_decimal(max_match)))  # type: ignore[arg-type]
                    if cap_cents < rule.total_matched_cents:
                        raise ValidationError("Match cap cannot be below the amount already matched")
                    rule.max_match_cents = cap_cents
            if expires_at is not _UNSET:
                rule.expires_at = as_utc_naive(expires_at)  # type: ignore[arg-type]
            if is_active is not None:
                rule.is_active = is_active
            session.add(rule)
            self._ctx.logger.log("matching_rule_updated", goal_id=str(goal_id), active=rule.is_active)
            return rule

    def remove_matching_rule(self, goal_id: UUID, actor: Actor) -> None:
        with self._ctx.transaction() as session:
            goal = self.get_goal(goal_id)
            require_family_parent(actor, self._child(goal).family_id)
            session.delete(self.get_matching_rule(goal_id, actor))
            self._ctx.logger.log("matching_rule_removed", goal_id=str(goal_id))

    # ------------------------------------------------------------------
    # Challenges
    # ------------------------------------------------------------------
    def create_challenge(
        self,
        goal_id: UUID,
        actor: Actor,
        *,
        target_amount: AmountLike,
        end_at: datetime,
        bonus_amount: AmountLike,
        description: str | None = None,
    ) -> GoalChallenge:
        target = require_positive(to_decimal(target_amount))
        bonus = require_positive(to_decimal(bonus_amount))
        end_at = as_utc_naive(end_at)
        moment = now()
        if end_at <= moment:
            raise ValidationError("Challenge end date must be in the future")
        with self._ctx.transaction() as session:
            goal = self.get_goal(goal_id)
            require_family_parent(actor, self._child(goal).family_id)
            self._require_status(goal, (GoalStatus.ACTIVE,), "given a challenge")
            self._expire(self._active_challenges(goal_id), moment)
            if self._active_challenges(goal_id):
                raise InvalidStateError("Goal already has an active challenge")
            challenge = GoalChallenge(
                goal_id=goal_id,
                created_by_id=actor.user_id,
                target_cents=to_cents(target),
                bonus_cents=to_cents(bonus),
                start_at=moment,
                end_at=end_at,
                description=description,
            )
            session.add(challenge)
            self._ctx.logger.log(
                "challenge_created",
                goal_id=str(goal_id),
                target=str(target),
                bonus=str(bonus),
                end_at=end_at.isoformat(),
            )
            return challenge

    def get_active_challenge(self, goal_id: UUID, actor: Actor) -> Optional[GoalChallenge]:
        self.get_goal(goal_id, actor)
        active = self._active_challenges(goal_id)
        return active[0] if active else None

    def cancel_challenge(self, goal_id: UUID, actor: Actor) -> GoalChallenge:
        with self._ctx.transaction():
            goal = self.get_goal(goal_id)
            require_family_parent(actor, self._child(goal).family_id)
            active = self._active_challenges(goal_id)
            if not active:
                raise ChallengeNotFoundError(f"Goal {goal_id} has no active challenge")
            self._cancel_active_challenges(goal)
            self._ctx.logger.log("challenge_cancelled", goal_id=str(goal_id), challenge_id=str(active[0].id))
            return active[0]

    def list_child_challenges(self, child_id: UUID, actor: Actor) -> Sequence[GoalChallenge]:
        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        require_child_access(actor, child)
        statement = (
            select(GoalChallenge)
            .join(SavingsGoal, col(SavingsGoal.id) == col(GoalChallenge.goal_id))
            .where(SavingsGoal.child_id == child_id)
            .order_by(col(GoalChallenge.created_at).desc())
        )
        return tuple(self._ctx.session.exec(statement).all())

    def expire_challenges(self) -> int:
        """Mark every overdue active challenge as failed and return how many changed."""

        with self._ctx.transaction() as session:
            active = session.exec(
                select(GoalChallenge).where(GoalChallenge.status == ChallengeStatus.ACTIVE)
            ).all()
            expired = self._expire(active, now())
            if expired:
                self._ctx.logger.log("challenges_expired", count=expired)
            return expired

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _child(self, goal: SavingsGoal) -> Child:
        return self._ctx.get(Child, goal.child_id, ChildNotFoundError)

    def _lock_goal(self, goal_id: UUID) -> SavingsGoal:
        statement = (
            select(SavingsGoal)
            .where(SavingsGoal.id == goal_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        goal = self._ctx.session.exec(statement).first()
        if goal is None:
            raise GoalNotFoundError(f"Savings goal {goal_id} not found")
        return goal

    def _lock_goal_and_child(self, goal_id: UUID) -> Tuple[SavingsGoal, Child]:
        """Lock the owning child, then the goal.

        Every path that touches both rows takes them in this order, the same
        order allowance payouts use before sweeping auto-transfers.
        """

        owner_id = self._ctx.get(SavingsGoal, goal_id, GoalNotFoundError).child_id
        child = self._ctx.lock_child(owner_id, ChildNotFoundError)
        return self._lock_goal(goal_id), child

    @staticmethod
    def _require_status(goal: SavingsGoal, allowed: Iterable[GoalStatus], action: str) -> None:
        if goal.status not in tuple(allowed):
            raise InvalidStateError(f"A {goal.status.value} goal cannot be {action}")

    def _transition(
        self,
        goal_id: UUID,
        actor: Actor,
        allowed: Iterable[GoalStatus],
        target: GoalStatus,
        event: str,
    ) -> SavingsGoal:
        with self._ctx.transaction() as session:
            goal, child = self._lock_goal_and_child(goal_id)
            require_child_access(actor, child)
            self._require_status(goal, allowed, f"moved to {target.value}")
            goal.status = target
            goal.updated_at = now()
            session.add(goal)
            self._ctx.logger.log(event, goal_id=str(goal.id))
            return goal

    def _credit_goal(self, goal: SavingsGoal, cents: int) -> int:
        """Add ``cents`` to the goal and return the part diverted to surplus."""

        surplus = 0
        if self._ctx.settings.caps_goals:
            room = max(goal.target_cents - goal.current_cents, 0)
            surplus = max(cents - room, 0)
        goal.current_cents += cents - surplus
        goal.surplus_cents += surplus
        goal.updated_at = now()
        self._ctx.session.add(goal)
        return surplus

    def _record(
        self,
        goal: SavingsGoal,
        cents: int,
        contribution_type: ContributionType,
        *,
        created_by_id: UUID | None = None,
        source_transaction_id: UUID | None = None,
        parent_match_id: UUID | None = None,
        description: str | None = None,
    ) -> SavingsContribution:
        contribution = SavingsContribution(
            goal_id=goal.id,
            child_id=goal.child_id,
            amount_cents=cents,
            type=contribution_type,
            goal_balance_after_cents=goal.current_cents,
            source_transaction_id=source_transaction_id,
            parent_match_id=parent_match_id,
            description=description,
            created_by_id=created_by_id,
        )
        self._ctx.session.add(contribution)
        self._ctx.session.add(goal)
        return contribution

    def _find_rule(self, goal_id: UUID) -> Optional[MatchingRule]:
        return self._ctx.session.exec(select(MatchingRule).where(MatchingRule.goal_id == goal_id)).first()

    def _apply_match(self, goal: SavingsGoal, child: Child, deposit: Decimal) -> int:
        rule = self._find_rule(goal.id)
        if rule is None or not rule.is_active:
            return 0
        if rule.expires_at is not None and now() > rule.expires_at:
            return 0
        cents = to_cents(match_amount_for(rule, deposit))
        if rule.max_match_cents is not None:
            cents = min(cents, rule.max_match_cents - rule.total_matched_cents)
        if self._ctx.settings.caps_goals:
            cents = min(cents, goal.target_cents - goal.current_cents)
        if cents <= 0:
            return 0
        goal.current_cents += cents
        rule.total_matched_cents += cents
        self._ctx.session.add(rule)
        self._record(
            goal,
            cents,
            ContributionType.PARENT_MATCH,
            created_by_id=rule.created_by_id,
            parent_match_id=rule.id,
            description=f"Parent match for {format_currency(deposit)} deposit",
        )
        self._ctx.notifications.send(
            child.user_id,
            NotificationType.PARENT_MATCH_ADDED,
            "Parent match added",
            f"{format_currency(from_cents(cents))} was matched into {goal.name}.",
            data={"goal_id": goal.id, "amount": str(from_cents(cents))},
            related=("savings_goal", goal.id),
        )
        return cents

    def _update_milestones(self, goal: SavingsGoal, child: Child) -> Tuple[Optional[MilestoneReached], int]:
        """Mark newly crossed milestones, pay their bonuses, and report the highest one.

        A bonus can push the goal over the next milestone, so crossing repeats
        until nothing new is reached. Returns the highest milestone (or None)
        and the bonus cents credited into the goal.
        """

        crossed: List[GoalMilestone] = []
        bonus_total = 0
        moment = now()
        while True:
            fresh = [
                milestone
                for milestone in self.milestones(goal.id)
                if not milestone.is_achieved and goal.current_cents >= milestone.target_cents
            ]
            if not fresh:
                break
            for milestone in fresh:
                milestone.is_achieved = True
                milestone.achieved_at = moment
                self._ctx.session.add(milestone)
                if milestone.bonus_cents:
                    bonus_total += self._credit_milestone_bonus(goal, milestone)
            self._ctx.session.flush()
            crossed.extend(fresh)
        if not crossed:
            return None, 0
        highest = max(crossed, key=lambda milestone: milestone.percent_complete)
        reached = MilestoneReached(
            percent=highest.percent_complete,
            target_amount=from_cents(highest.target_cents),
            message=highest.message or milestone_message(highest.percent_complete),
        )
        self._ctx.notifications.send(
            child.user_id,
            NotificationType.GOAL_MILESTONE,
            f"{goal.name}: {reached.percent}% saved",
            reached.message,
            data={"goal_id": goal.id, "percent": reached.percent},
            related=("savings_goal", goal.id),
        )
        return reached, bonus_total

    def _credit_milestone_bonus(self, goal: SavingsGoal, milestone: GoalMilestone) -> int:
        cents = milestone.bonus_cents or 0
        if self._ctx.settings.caps_goals:
            cents = min(cents, max(goal.target_cents - goal.current_cents, 0))
        if cents <= 0:
            return 0
        goal.current_cents += cents
        goal.updated_at = now()
        self._record(
            goal,
            cents,
            ContributionType.MILESTONE_BONUS,
            description=f"Bonus for reaching {milestone.percent_complete}% milestone",
        )
        self._ctx.logger.log(
            "milestone_bonus_awarded",
            goal_id=str(goal.id),
            percent=milestone.percent_complete,
            amount=str(from_cents(cents)),
        )
        return cents

    def _active_challenges(self, goal_id: UUID) -> List[GoalChallenge]:
        statement = select(GoalChallenge).where(
            GoalChallenge.goal_id == goal_id,
            GoalChallenge.status == ChallengeStatus.ACTIVE,
        )
        return list(self._ctx.session.exec(statement).all())

    def _expire(self, challenges: Iterable[GoalChallenge], moment: datetime) -> int:
        expired = 0
        for challenge in challenges:
            if challenge.status == ChallengeStatus.ACTIVE and moment > challenge.end_at:
                challenge.status = ChallengeStatus.FAILED
                self._ctx.session.add(challenge)
                expired += 1
        if expired:
            self._ctx.session.flush()
        return expired

    def _evaluate_challenge(self, goal: SavingsGoal, child: Child) -> int:
        moment = now()
        awarded = 0
        for challenge in self._active_challenges(goal.id):
            if moment > challenge.end_at:
                challenge.status = ChallengeStatus.FAILED
            elif goal.current_cents >= challenge.target_cents:
                transaction = self._ledger.post(
                    child,
                    from_cents(challenge.bonus_cents),
                    TransactionType.CREDIT,
                    TransactionCategory.BONUS_REWARD,
                    f"Challenge bonus for {goal.name}",
                    created_by_id=challenge.created_by_id,
                )
                challenge.status = ChallengeStatus.COMPLETED
                challenge.completed_at = moment
                challenge.bonus_transaction_id = transaction.id
                awarded += challenge.bonus_cents
                self._ctx.notifications.send(
                    child.user_id,
                    NotificationType.CHALLENGE_COMPLETED,
                    "Challenge completed!",
                    f"You earned a {format_currency(from_cents(challenge.bonus_cents))} bonus for {goal.name}.",
                    data={"goal_id": goal.id, "challenge_id": challenge.id},
                    related=("goal_challenge", challenge.id),
                )
            self._ctx.session.add(challenge)
        return awarded

    def _cancel_active_challenges(self, goal: SavingsGoal) -> None:
        for challenge in self._active_challenges(goal.id):
            challenge.status = ChallengeStatus.CANCELLED
            self._ctx.session.add(challenge)

    def _check_completion(self, goal: SavingsGoal, child: Child) -> bool:
        if goal.status != GoalStatus.ACTIVE or goal.current_cents < goal.target_cents:
            return False
        goal.status = GoalStatus.COMPLETED
        goal.completed_at = now()
        self._ctx.session.add(goal)
        self._cancel_active_challenges(goal)
        title = f"Goal reached: {goal.name}"
        body = f"{format_currency(from_cents(goal.current_cents))} saved for {goal.name}."
        related = ("savings_goal", goal.id)
        self._ctx.notifications.send(
            child.user_id, NotificationType.GOAL_COMPLETED, title, body, data={"goal_id": goal.id}, related=related
        )
        self._ctx.notifications.send_to_parents(
            child.family_id,
            NotificationType.GOAL_COMPLETED,
            title,
            body,
            data={"goal_id": goal.id, "child_id": child.id},
            related=related,
        )
        self._ctx.logger.log("goal_completed", goal_id=str(goal.id), child_id=str(child.id))
        self._achievements.check(child, BadgeTrigger.GOAL_COMPLETED, {"goal_id": goal.id})
        return True

    def _refund_surplus(self, goal: SavingsGoal, child: Child, actor_id: UUID | None) -> int:
        surplus = goal.surplus_cents
        if surplus <= 0:
            return 0
        transaction = self._ledger.post(
            child,
            from_cents(surplus),
            TransactionType.CREDIT,
            TransactionCategory.SAVINGS,
            f"Surplus returned from {goal.name}",
            created_by_id=actor_id,
        )
        goal.surplus_cents = 0
        self._record(
            goal,
            -surplus,
            ContributionType.REFUND,
            created_by_id=actor_id,
            source_transaction_id=transaction.id,
            description="Surplus returned",
        )
        return surplus


__all__ = ["GoalService", "match_amount_for", "milestone_message", "progress_percentage"]
