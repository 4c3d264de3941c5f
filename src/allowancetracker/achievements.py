"""Badges, achievement points and the reward shop."""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
from uuid import NAMESPACE_URL, UUID, uuid5

from sqlalchemy import func
from sqlmodel import col, select

from .clock import now
from .context import ServiceContext
from .exceptions import (
    AuthorizationError,
    BadgeNotFoundError,
    ChildNotFoundError,
    DuplicateError,
    InsufficientPointsError,
    RewardNotFoundError,
)
from .models import (
    BadgeCategory,
    BadgeCriteriaType,
    BadgeRarity,
    BadgeTrigger,
    CompletionStatus,
    ContributionType,
    GoalStatus,
    PointsSummary,
    RewardType,
)
from .security import Actor, require_child_access
from .webapp.persistence import (
    Badge,
    BadgeProgress,
    Child,
    ChildBadge,
    ChildReward,
    LedgerTransaction,
    Reward,
    SavingsContribution,
    SavingsGoal,
    TaskCompletion,
)

# Measures understood by threshold badges. Amount targets are whole dollars.
TOTAL_SAVED = "total_saved"
CURRENT_BALANCE = "current_balance"
TASK_COUNT = "task_count"
TRANSACTION_COUNT = "transaction_count"
GOALS_COMPLETED = "goals_completed"

_SAVED_TYPES = (ContributionType.CHILD_DEPOSIT, ContributionType.AUTO_TRANSFER)


@dataclass(frozen=True, slots=True)
class BadgeDefinition:
    code: str
    name: str
    description: str
    category: BadgeCategory
    rarity: BadgeRarity
    points: int
    criteria_type: BadgeCriteriaType
    trigger: BadgeTrigger
    measure: Optional[str] = None
    target: Optional[int] = None
    is_secret: bool = False

    def config(self) -> str:
        payload: Dict[str, object] = {"triggers": [self.trigger.value]}
        if self.measure is not None:
            payload["measure"] = self.measure
        if self.target is not None:
            payload["target"] = self.target
        return json.dumps(payload, sort_keys=True)


@dataclass(frozen=True, slots=True)
class RewardDefinition:
    name: str
    description: str
    type: RewardType
    value: str
    points_cost: int
    preview_url: Optional[str] = None


def _single(code, name, description, category, points, trigger, rarity=BadgeRarity.COMMON):
    return BadgeDefinition(code, name, description, category, rarity, points, BadgeCriteriaType.SINGLE_ACTION, trigger)


def _threshold(code, name, description, category, rarity, points, kind, trigger, measure, target):
    return BadgeDefinition(code, name, description, category, rarity, points, kind, trigger, measure, target)


_AMOUNT = BadgeCriteriaType.AMOUNT_THRESHOLD
_COUNT = BadgeCriteriaType.COUNT_THRESHOLD
_GOALS = BadgeCriteriaType.GOAL_COMPLETION

BADGE_CATALOG: tuple[BadgeDefinition, ...] = (
    _single("FIRST_SAVER", "First Saver", "Made your first deposit to savings",
            BadgeCategory.SAVING, 10, BadgeTrigger.SAVINGS_DEPOSIT),
    _threshold("PENNY_PINCHER", "Penny Pincher", "Saved $10 total", BadgeCategory.SAVING,
               BadgeRarity.COMMON, 15, _AMOUNT, BadgeTrigger.SAVINGS_DEPOSIT, TOTAL_SAVED, 10),
    _threshold("MONEY_STACKER", "Money Stacker", "Saved $50 total", BadgeCategory.SAVING,
               BadgeRarity.UNCOMMON, 25, _AMOUNT, BadgeTrigger.SAVINGS_DEPOSIT, TOTAL_SAVED, 50),
    _threshold("SAVINGS_STAR", "Savings Star", "Saved $100 total", BadgeCategory.SAVING,
               BadgeRarity.RARE, 50, _AMOUNT, BadgeTrigger.SAVINGS_DEPOSIT, TOTAL_SAVED, 100),
    _threshold("SAVINGS_CHAMPION", "Savings Champion", "Saved $500 total", BadgeCategory.SAVING,
               BadgeRarity.EPIC, 100, _AMOUNT, BadgeTrigger.SAVINGS_DEPOSIT, TOTAL_SAVED, 500),
    _single("GOAL_SETTER", "Goal Setter", "Created your first savings goal",
            BadgeCategory.GOALS, 10, BadgeTrigger.GOAL_CREATED),
    _threshold("GOAL_CRUSHER", "Goal Crusher", "Completed your first savings goal", BadgeCategory.GOALS,
               BadgeRarity.COMMON, 20, _GOALS, BadgeTrigger.GOAL_COMPLETED, GOALS_COMPLETED, 1),
    _threshold("DREAM_ACHIEVER", "Dream Achiever", "Completed 5 savings goals", BadgeCategory.GOALS,
               BadgeRarity.RARE, 50, _GOALS, BadgeTrigger.GOAL_COMPLETED, GOALS_COMPLETED, 5),
    _threshold("GOAL_MACHINE", "Goal Machine", "Completed 10 savings goals", BadgeCategory.GOALS,
               BadgeRarity.EPIC, 100, _GOALS, BadgeTrigger.GOAL_COMPLETED, GOALS_COMPLETED, 10),
    _single("HELPER", "Helper", "Had your first task approved",
            BadgeCategory.CHORES, 10, BadgeTrigger.TASK_APPROVED),
    _threshold("HARD_WORKER", "Hard Worker", "Completed 10 tasks", BadgeCategory.CHORES,
               BadgeRarity.COMMON, 20, _COUNT, BadgeTrigger.TASK_APPROVED, TASK_COUNT, 10),
    _threshold("CHORE_CHAMPION", "Chore Champion", "Completed 50 tasks", BadgeCategory.CHORES,
               BadgeRarity.RARE, 50, _COUNT, BadgeTrigger.TASK_APPROVED, TASK_COUNT, 50),
    _threshold("TASK_MASTER", "Task Master", "Completed 100 tasks", BadgeCategory.CHORES,
               BadgeRarity.EPIC, 100, _COUNT, BadgeTrigger.TASK_APPROVED, TASK_COUNT, 100),
    _single("FIRST_PURCHASE", "First Purchase", "Made your first transaction",
            BadgeCategory.MILESTONES, 5, BadgeTrigger.TRANSACTION_CREATED),
    _threshold("DOUBLE_DIGITS", "Double Digits", "Reached $10 balance", BadgeCategory.MILESTONES,
               BadgeRarity.COMMON, 10, _AMOUNT, BadgeTrigger.BALANCE_CHANGED, CURRENT_BALANCE, 10),
    _threshold("FIFTY_CLUB", "Fifty Club", "Reached $50 balance", BadgeCategory.MILESTONES,
               BadgeRarity.UNCOMMON, 25, _AMOUNT, BadgeTrigger.BALANCE_CHANGED, CURRENT_BALANCE, 50),
    _threshold("CENTURY_CLUB", "Century Club", "Reached $100 balance", BadgeCategory.MILESTONES,
               BadgeRarity.RARE, 50, _AMOUNT, BadgeTrigger.BALANCE_CHANGED, CURRENT_BALANCE, 100),
    _threshold("HIGH_ROLLER", "High Roller", "Reached $500 balance", BadgeCategory.MILESTONES,
               BadgeRarity.EPIC, 100, _AMOUNT, BadgeTrigger.BALANCE_CHANGED, CURRENT_BALANCE, 500),
    _threshold("SMART_SPENDER", "Smart Spender", "Tracked 50 transactions", BadgeCategory.SPENDING,
               BadgeRarity.UNCOMMON, 25, _COUNT, BadgeTrigger.TRANSACTION_CREATED, TRANSACTION_COUNT, 50),
    _threshold("TRANSACTION_TRACKER", "Transaction Tracker", "Tracked 200 transactions", BadgeCategory.SPENDING,
               BadgeRarity.RARE, 50, _COUNT, BadgeTrigger.TRANSACTION_CREATED, TRANSACTION_COUNT, 200),
    _single("WELCOME", "Welcome", "Joined the app", BadgeCategory.SPECIAL, 5, BadgeTrigger.ACCOUNT_CREATED),
)

REWARD_CATALOG: tuple[RewardDefinition, ...] = (
    RewardDefinition("Cool Cat", "A stylish cat avatar", RewardType.AVATAR, "avatars/cool-cat.png", 25),
    RewardDefinition("Super Star", "A shining star avatar", RewardType.AVATAR, "avatars/super-star.png", 50),
    RewardDefinition("Piggy Pro", "A professional piggy bank", RewardType.AVATAR, "avatars/piggy-pro.png", 75),
    RewardDefinition("Money Dragon", "A dragon guarding treasure", RewardType.AVATAR, "avatars/money-dragon.png", 100),
    RewardDefinition("Ocean Blue", "A calming ocean theme", RewardType.THEME, "theme-ocean", 50),
    RewardDefinition("Forest Green", "A refreshing forest theme", RewardType.THEME, "theme-forest", 50),
    RewardDefinition("Galaxy Purple", "A cosmic galaxy theme", RewardType.THEME, "theme-galaxy", 100),
    RewardDefinition("Saver", "The 'Saver' title", RewardType.TITLE, "Saver", 25),
    RewardDefinition("Budget Master", "The 'Budget Master' title", RewardType.TITLE, "Budget Master", 50),
    RewardDefinition("Money Expert", "The 'Money Expert' title", RewardType.TITLE, "Money Expert", 100),
    RewardDefinition("Bronze Frame", "A bronze profile frame", RewardType.PROFILE_FRAME, "frame-bronze", 30),
    RewardDefinition("Gold Frame", "A gold profile frame", RewardType.PROFILE_FRAME, "frame-gold", 100),
)

_EQUIPPED_FIELDS = {
    RewardType.AVATAR: "equipped_avatar",
    RewardType.THEME: "equipped_theme",
    RewardType.TITLE: "equipped_title",
}


def catalog_id(kind: str, key: str) -> UUID:
    """Stable id for a catalog row so every database agrees on it."""

    return uuid5(NAMESPACE_URL, f"allowancetracker:{kind}:{key}")


def criteria(badge: Badge) -> Dict[str, object]:
    return json.loads(badge.criteria_config or "{}")


@dataclass(slots=True)
class EarnedBadge:
    record: ChildBadge
    badge: Badge


@dataclass(slots=True)
class BadgeProgressEntry:
    record: BadgeProgress
    badge: Badge


@dataclass(slots=True)
class RewardOffer:
    """A catalog reward as one child sees it."""

    reward: Reward
    is_unlocked: bool = False
    is_equipped: bool = False
    can_afford: bool = False


@dataclass(slots=True)
class AchievementSummary:
    total_badges: int
    earned_badges: int
    total_points: int
    available_points: int
    recent_badges: List[EarnedBadge] = field(default_factory=list)
    in_progress: List[BadgeProgressEntry] = field(default_factory=list)
    badges_by_category: Dict[str, int] = field(default_factory=dict)


class AchievementService:
    """Award badges on activity and let children spend the points they earn."""

    def __init__(self, context: ServiceContext) -> None:
        self._ctx = context

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------
    def ensure_catalog(self) -> None:
        """Seed the built-in badges and rewards into an empty database."""

        session = self._ctx.session
        if session.exec(select(Badge.id).limit(1)).first() is not None:
            return
        with self._ctx.transaction():
            for order, definition in enumerate(BADGE_CATALOG):
                session.add(
                    Badge(
                        id=catalog_id("badge", definition.code),
                        code=definition.code,
                        name=definition.name,
                        description=definition.description,
                        icon_url=f"/badges/{definition.code.lower().replace('_', '-')}.png",
                        category=definition.category,
                        rarity=definition.rarity,
                        points_value=definition.points,
                        criteria_type=definition.criteria_type,
                        criteria_config=definition.config(),
                        is_secret=definition.is_secret,
                        sort_order=order,
                    )
                )
            for order, definition in enumerate(REWARD_CATALOG):
                session.add(
                    Reward(
                        id=catalog_id("reward", definition.name),
                        name=definition.name,
                        description=definition.description,
                        type=definition.type,
                        value=definition.value,
                        preview_url=definition.preview_url,
                        points_cost=definition.points_cost,
                        sort_order=order,
                    )
                )
            session.flush()
            self._ctx.logger.log("achievement_catalog_seeded", badges=len(BADGE_CATALOG), rewards=len(REWARD_CATALOG))

    def list_badges(self, *, category: BadgeCategory | None = None, include_secret: bool = False) -> Sequence[Badge]:
        self.ensure_catalog()
        statement = select(Badge).where(col(Badge.is_active).is_(True))
        if category is not None:
            statement = statement.where(Badge.category == BadgeCategory(category))
        if not include_secret:
            statement = statement.where(col(Badge.is_secret).is_(False))
        statement = statement.order_by(col(Badge.sort_order), col(Badge.name))
        return tuple(self._ctx.session.exec(statement).all())

    def get_badge(self, badge_id: UUID) -> Badge:
        return self._ctx.get(Badge, badge_id, BadgeNotFoundError)

    # ------------------------------------------------------------------
    # Child badges
    # ------------------------------------------------------------------
    def child_badges(
        self,
        child_id: UUID,
        actor: Actor,
        *,
        category: BadgeCategory | None = None,
        new_only: bool = False,
    ) -> List[EarnedBadge]:
        self._child(child_id, actor)
        statement = (
            select(ChildBadge, Badge)
            .join(Badge, col(Badge.id) == col(ChildBadge.badge_id))
            .where(ChildBadge.child_id == child_id)
        )
        if category is not None:
            statement = statement.where(Badge.category == BadgeCategory(category))
        if new_only:
            statement = statement.where(col(ChildBadge.is_new).is_(True))
        statement = statement.order_by(col(ChildBadge.earned_at).desc(), col(Badge.sort_order).desc())
        return [EarnedBadge(record=record, badge=badge) for record, badge in self._ctx.session.exec(statement).all()]

    def badge_progress(self, child_id: UUID, actor: Actor) -> List[BadgeProgressEntry]:
        """Unfinished threshold badges, closest to done first."""

        self._child(child_id, actor)
        statement = (
            select(BadgeProgress, Badge)
            .join(Badge, col(Badge.id) == col(BadgeProgress.badge_id))
            .where(
                BadgeProgress.child_id == child_id,
                col(BadgeProgress.current_progress) < col(BadgeProgress.target_progress),
            )
        )
        entries = [
            BadgeProgressEntry(record=record, badge=badge) for record, badge in self._ctx.session.exec(statement).all()
        ]
        entries.sort(key=lambda entry: (-progress_ratio(entry.record), entry.badge.sort_order))
        return entries

    def summary(self, child_id: UUID, actor: Actor) -> AchievementSummary:
        child = self._child(child_id, actor)
        self.ensure_catalog()
        earned = self.child_badges(child_id, actor)
        total = self._ctx.session.exec(
            select(func.count()).select_from(Badge).where(col(Badge.is_active).is_(True))
        ).one()
        by_category = Counter(entry.badge.category.value for entry in earned)
        return AchievementSummary(
            total_badges=int(total),
            earned_badges=len(earned),
            total_points=child.total_points,
            available_points=child.available_points,
            recent_badges=earned[:5],
            in_progress=self.badge_progress(child_id, actor)[:5],
            badges_by_category=dict(by_category),
        )

    def set_displayed(self, child_id: UUID, badge_id: UUID, is_displayed: bool, actor: Actor) -> EarnedBadge:
        with self._ctx.transaction() as session:
            self._child(child_id, actor, owner_only=True)
            record = session.exec(
                select(ChildBadge).where(ChildBadge.child_id == child_id, ChildBadge.badge_id == badge_id)
            ).first()
            if record is None:
                raise BadgeNotFoundError(f"Badge {badge_id} has not been earned")
            record.is_displayed = is_displayed
            session.add(record)
            return EarnedBadge(record=record, badge=self.get_badge(badge_id))

    def mark_seen(self, child_id: UUID, badge_ids: Iterable[UUID], actor: Actor) -> int:
        """Clear the "new" flag on earned badges and return how many changed."""

        wanted = list(badge_ids)
        with self._ctx.transaction() as session:
            self._child(child_id, actor, owner_only=True)
            if not wanted:
                return 0
            records = session.exec(
                select(ChildBadge).where(
                    ChildBadge.child_id == child_id,
                    col(ChildBadge.badge_id).in_(wanted),
                    col(ChildBadge.is_new).is_(True),
                )
            ).all()
            for record in records:
                record.is_new = False
                session.add(record)
            return len(records)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def check(
        self,
        child: Child,
        trigger: BadgeTrigger,
        data: Mapping[str, object] | None = None,
    ) -> List[EarnedBadge]:
        """Evaluate every unearned badge listening for ``trigger``.

        ``child`` must already be loaded in the current unit of work; the
        caller holds its row lock whenever points can change.
        """

        self.ensure_catalog()
        session = self._ctx.session
        earned_ids = set(session.exec(select(ChildBadge.badge_id).where(ChildBadge.child_id == child.id)).all())
        candidates = session.exec(
            select(Badge).where(col(Badge.is_active).is_(True)).order_by(col(Badge.sort_order))
        ).all()
        unlocked: List[EarnedBadge] = []
        measures: Dict[str, int] = {}
        for badge in candidates:
            if badge.id in earned_ids:
                continue
            config = criteria(badge)
            if trigger.value not in config.get("triggers", []):
                continue
            if badge.criteria_type == BadgeCriteriaType.SINGLE_ACTION:
                unlocked.append(self._unlock(child, badge, data))
                continue
            measure = str(config.get("measure", ""))
            if measure not in measures:
                measures[measure] = self._measure(child, measure)
            current, target = self._scaled(badge, measures[measure], int(config.get("target", 0)))
            if current >= target:
                unlocked.append(self._unlock(child, badge, data))
                self._record_progress(child.id, badge, target, target)
            else:
                self._record_progress(child.id, badge, current, target)
        return unlocked

    def try_unlock(self, child: Child, code: str, data: Mapping[str, object] | None = None) -> Optional[EarnedBadge]:
        """Award the badge named ``code`` unless the child already holds it."""

        self.ensure_catalog()
        badge = self._ctx.session.exec(
            select(Badge).where(Badge.code == code, col(Badge.is_active).is_(True))
        ).first()
        if badge is None or self._holds(child.id, badge.id):
            return None
        return self._unlock(child, badge, data)

    # ------------------------------------------------------------------
    # Points and rewards
    # ------------------------------------------------------------------
    def points(self, child_id: UUID, actor: Actor) -> PointsSummary:
        child = self._child(child_id, actor)
        session = self._ctx.session
        badges = session.exec(select(func.count()).select_from(ChildBadge).where(ChildBadge.child_id == child_id)).one()
        rewards = session.exec(select(func.count()).select_from(ChildReward).where(ChildReward.child_id == child_id)).one()
        return PointsSummary(
            total_points=child.total_points,
            available_points=child.available_points,
            spent_points=child.total_points - child.available_points,
            badges_earned=int(badges),
            rewards_unlocked=int(rewards),
        )

    def list_rewards(
        self,
        *,
        reward_type: RewardType | None = None,
        child_id: UUID | None = None,
        actor: Actor | None = None,
    ) -> List[RewardOffer]:
        self.ensure_catalog()
        statement = select(Reward).where(col(Reward.is_active).is_(True))
        if reward_type is not None:
            statement = statement.where(Reward.type == RewardType(reward_type))
        statement = statement.order_by(col(Reward.sort_order), col(Reward.points_cost))
        rewards = self._ctx.session.exec(statement).all()
        available = 0
        owned: Dict[UUID, ChildReward] = {}
        if child_id is not None and actor is not None:
            child = self._child(child_id, actor)
            available = child.available_points
            owned = {record.reward_id: record for record in self._owned_rewards(child_id)}
        return [
            RewardOffer(
                reward=reward,
                is_unlocked=reward.id in owned,
                is_equipped=reward.id in owned and owned[reward.id].is_equipped,
                can_afford=available >= reward.points_cost,
            )
            for reward in rewards
        ]

    def child_rewards(self, child_id: UUID, actor: Actor) -> List[RewardOffer]:
        self._child(child_id, actor)
        statement = (
            select(ChildReward, Reward)
            .join(Reward, col(Reward.id) == col(ChildReward.reward_id))
            .where(ChildReward.child_id == child_id)
            .order_by(col(ChildReward.unlocked_at).desc(), col(Reward.sort_order))
        )
        return [
            RewardOffer(reward=reward, is_unlocked=True, is_equipped=record.is_equipped, can_afford=True)
            for record, reward in self._ctx.session.exec(statement).all()
        ]

    def unlock_reward(self, child_id: UUID, reward_id: UUID, actor: Actor) -> RewardOffer:
        self.ensure_catalog()
        with self._ctx.transaction() as session:
            child = self._ctx.lock_child(child_id, ChildNotFoundError)
            self._require_owner(actor, child)
            reward = self._ctx.get(Reward, reward_id, RewardNotFoundError)
            if self._child_reward(child_id, reward_id) is not None:
                raise DuplicateError(f"{reward.name} is already unlocked")
            if child.available_points < reward.points_cost:
                raise InsufficientPointsError(
                    f"{reward.name} costs {reward.points_cost} points, {child.available_points} available"
                )
            child.available_points -= reward.points_cost
            session.add(child)
            session.add(ChildReward(child_id=child_id, reward_id=reward_id))
            self._ctx.logger.log(
                "reward_unlocked",
                child_id=str(child_id),
                reward=reward.name,
                cost=reward.points_cost,
                available_points=child.available_points,
            )
            return RewardOffer(reward=reward, is_unlocked=True, can_afford=True)

    def equip_reward(self, child_id: UUID, reward_id: UUID, actor: Actor) -> RewardOffer:
        """Equip an unlocked reward, replacing whatever of the same type was worn."""

        with self._ctx.transaction() as session:
            child = self._ctx.lock_child(child_id, ChildNotFoundError)
            self._require_owner(actor, child)
            record = self._require_child_reward(child_id, reward_id)
            reward = self._ctx.get(Reward, reward_id, RewardNotFoundError)
            for other, _reward in session.exec(
                select(ChildReward, Reward)
                .join(Reward, col(Reward.id) == col(ChildReward.reward_id))
                .where(
                    ChildReward.child_id == child_id,
                    Reward.type == reward.type,
                    col(ChildReward.is_equipped).is_(True),
                )
            ).all():
                other.is_equipped = False
                session.add(other)
            record.is_equipped = True
            session.add(record)
            slot = _EQUIPPED_FIELDS.get(reward.type)
            if slot is not None:
                setattr(child, slot, reward.value)
                session.add(child)
            self._ctx.logger.log("reward_equipped", child_id=str(child_id), reward=reward.name)
            return RewardOffer(reward=reward, is_unlocked=True, is_equipped=True, can_afford=True)

    def unequip_reward(self, child_id: UUID, reward_id: UUID, actor: Actor) -> RewardOffer:
        with self._ctx.transaction() as session:
            child = self._ctx.lock_child(child_id, ChildNotFoundError)
            self._require_owner(actor, child)
            record = self._require_child_reward(child_id, reward_id)
            reward = self._ctx.get(Reward, reward_id, RewardNotFoundError)
            record.is_equipped = False
            session.add(record)
            slot = _EQUIPPED_FIELDS.get(reward.type)
            if slot is not None and getattr(child, slot) == reward.value:
                setattr(child, slot, None)
                session.add(child)
            return RewardOffer(reward=reward, is_unlocked=True, can_afford=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _child(self, child_id: UUID, actor: Actor, *, owner_only: bool = False) -> Child:
        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        require_child_access(actor, child)
        if owner_only:
            self._require_owner(actor, child)
        return child

    @staticmethod
    def _require_owner(actor: Actor, child: Child) -> None:
        if actor.user_id != child.user_id:
            raise AuthorizationError("Only the child can manage their own badges and rewards")

    def _holds(self, child_id: UUID, badge_id: UUID) -> bool:
        statement = select(ChildBadge.id).where(ChildBadge.child_id == child_id, ChildBadge.badge_id == badge_id)
        return self._ctx.session.exec(statement).first() is not None

    def _unlock(self, child: Child, badge: Badge, data: Mapping[str, object] | None) -> EarnedBadge:
        record = ChildBadge(
            child_id=child.id,
            badge_id=badge.id,
            earned_at=now(),
            earned_context=json.dumps(dict(data), default=str, sort_keys=True) if data else None,
        )
        child.total_points += badge.points_value
        child.available_points += badge.points_value
        self._ctx.session.add(record)
        self._ctx.session.add(child)
        self._ctx.session.flush()
        self._ctx.logger.log(
            "badge_unlocked",
            child_id=str(child.id),
            badge=badge.code,
            points=badge.points_value,
            total_points=child.total_points,
        )
        return EarnedBadge(record=record, badge=badge)

    def _measure(self, child: Child, measure: str) -> int:
        session = self._ctx.session
        if measure == CURRENT_BALANCE:
            return child.balance_cents
        if measure == TOTAL_SAVED:
            total = session.exec(
                select(func.coalesce(func.sum(SavingsContribution.amount_cents), 0)).where(
                    SavingsContribution.child_id == child.id,
                    col(SavingsContribution.type).in_(_SAVED_TYPES),
                )
            ).one()
            return int(total)
        if measure == TASK_COUNT:
            statement = select(func.count()).select_from(TaskCompletion).where(
                TaskCompletion.child_id == child.id, TaskCompletion.status == CompletionStatus.APPROVED
            )
        elif measure == TRANSACTION_COUNT:
            statement = select(func.count()).select_from(LedgerTransaction).where(
                LedgerTransaction.child_id == child.id
            )
        elif measure == GOALS_COMPLETED:
            statement = select(func.count()).select_from(SavingsGoal).where(
                SavingsGoal.child_id == child.id,
                col(SavingsGoal.status).in_((GoalStatus.COMPLETED, GoalStatus.PURCHASED)),
            )
        else:
            return 0
        return int(session.exec(statement).one())

    @staticmethod
    def _scaled(badge: Badge, measured: int, target: int) -> tuple[int, int]:
        # Amount measures come back in cents; progress is tracked in whole dollars.
        if badge.criteria_type == BadgeCriteriaType.AMOUNT_THRESHOLD:
            return max(measured, 0) // 100, target
        return measured, target

    def _record_progress(self, child_id: UUID, badge: Badge, current: int, target: int) -> None:
        session = self._ctx.session
        progress = session.exec(
            select(BadgeProgress).where(BadgeProgress.child_id == child_id, BadgeProgress.badge_id == badge.id)
        ).first()
        if progress is None:
            progress = BadgeProgress(child_id=child_id, badge_id=badge.id, target_progress=target)
        progress.current_progress = min(current, target)
        progress.target_progress = target
        progress.updated_at = now()
        session.add(progress)

    def _owned_rewards(self, child_id: UUID) -> Sequence[ChildReward]:
        return self._ctx.session.exec(select(ChildReward).where(ChildReward.child_id == child_id)).all()

    def _child_reward(self, child_id: UUID, reward_id: UUID) -> Optional[ChildReward]:
        return self._ctx.session.exec(
            select(ChildReward).where(ChildReward.child_id == child_id, ChildReward.reward_id == reward_id)
        ).first()

    def _require_child_reward(self, child_id: UUID, reward_id: UUID) -> ChildReward:
        record = self._child_reward(child_id, reward_id)
        if record is None:
            raise RewardNotFoundError(f"Reward {reward_id} has not been unlocked")
        return record


def progress_ratio(progress: BadgeProgress) -> float:
    if progress.target_progress <= 0:
        return 0.0
    return progress.current_progress / progress.target_progress


__all__ = [
    "AchievementService",
    "AchievementSummary",
    "BADGE_CATALOG",
    "BadgeDefinition",
    "BadgeProgressEntry",
    "EarnedBadge",
    "REWARD_CATALOG",
    "RewardDefinition",
    "RewardOffer",
    "catalog_id",
    "criteria",
    "progress_ratio",
]
