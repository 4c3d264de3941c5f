"""Persistence and SQLModel definitions for the AllowanceTracker service."""
from __future__ import annotations

from datetime import datetime
from typing import Iterator, Optional
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine

from ..clock import now
from ..models import (
    AllowanceAdjustmentType,
    AutoTransferType,
    BadgeCategory,
    BadgeCriteriaType,
    BadgeRarity,
    BudgetPeriod,
    ChallengeStatus,
    CompletionStatus,
    ContributionType,
    GiftLinkVisibility,
    GiftOccasion,
    GiftStatus,
    GoalCategory,
    GoalStatus,
    MatchingType,
    NotificationType,
    RecurrenceType,
    RewardType,
    TaskStatus,
    TransactionCategory,
    TransactionType,
    UserRole,
)
from .config import DATABASE_URL, SQL_ECHO


# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
class Family(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str
    created_at: datetime = Field(default_factory=now)


class ApplicationUser(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    email: str = Field(index=True, unique=True)
    first_name: str
    last_name: str = ""
    role: UserRole
    family_id: Optional[UUID] = Field(default=None, foreign_key="family.id", index=True)
    created_at: datetime = Field(default_factory=now)

    @property
    def display_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part) or self.email


class Child(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="applicationuser.id", index=True, unique=True)
    family_id: UUID = Field(foreign_key="family.id", index=True)
    weekly_allowance_cents: int = 0
    balance_cents: int = 0
    allow_debt: bool = False
    allowance_paused: bool = False
    allowance_paused_reason: Optional[str] = None
    allowance_day: Optional[int] = None  # 0=Monday .. 6=Sunday
    last_allowance_at: Optional[datetime] = None
    total_points: int = 0
    available_points: int = 0
    equipped_avatar: Optional[str] = None
    equipped_theme: Optional[str] = None
    equipped_title: Optional[str] = None
    created_at: datetime = Field(default_factory=now)


class LedgerTransaction(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("child_id", "sequence", name="uq_ledger_child_sequence"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    child_id: UUID = Field(foreign_key="child.id", index=True)
    sequence: int
    amount_cents: int
    type: TransactionType
    category: TransactionCategory
    description: str
    notes: Optional[str] = None
    balance_after_cents: int
    created_by_id: Optional[UUID] = Field(default=None, foreign_key="applicationuser.id")
    created_at: datetime = Field(default_factory=now, index=True)


class SavingsGoal(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    child_id: UUID = Field(foreign_key="child.id", index=True)
    name: str
    description: Optional[str] = None
    target_cents: int
    current_cents: int = 0
    surplus_cents: int = 0
    category: GoalCategory = GoalCategory.OTHER
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    target_date: Optional[datetime] = None
    status: GoalStatus = GoalStatus.ACTIVE
    priority: int = 1
    auto_transfer_type: AutoTransferType = AutoTransferType.NONE
    auto_transfer_value: str = "0"
    completed_at: Optional[datetime] = None
    purchased_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=now)
    updated_at: datetime = Field(default_factory=now)


class GoalMilestone(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    goal_id: UUID = Field(foreign_key="savingsgoal.id", index=True)
    percent_complete: int
    target_cents: int
    is_achieved: bool = False
    achieved_at: Optional[datetime] = None
    message: str = ""
    bonus_cents: Optional[int] = None


class SavingsContribution(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    goal_id: UUID = Field(foreign_key="savingsgoal.id", index=True)
    child_id: UUID = Field(foreign_key="child.id", index=True)
    amount_cents: int  # negative for withdrawals
    type: ContributionType
    goal_balance_after_cents: int
    source_transaction_id: Optional[UUID] = None
    parent_match_id: Optional[UUID] = None
    description: Optional[str] = None
    created_by_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=now)


class MatchingRule(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    goal_id: UUID = Field(foreign_key="savingsgoal.id", index=True, unique=True)
    created_by_id: UUID = Field(foreign_key="applicationuser.id")
    type: MatchingType
    match_ratio: str
    max_match_cents: Optional[int] = None
    total_matched_cents: int = 0
    is_active: bool = True
    expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=now)


class GoalChallenge(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    goal_id: UUID = Field(foreign_key="savingsgoal.id", index=True)
    created_by_id: UUID = Field(foreign_key="applicationuser.id")
    target_cents: int
    bonus_cents: int
    start_at: datetime = Field(default_factory=now)
    end_at: datetime
    status: ChallengeStatus = ChallengeStatus.ACTIVE
    completed_at: Optional[datetime] = None
    bonus_transaction_id: Optional[UUID] = None
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=now)


class ChoreTask(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    child_id: UUID = Field(foreign_key="child.id", index=True)
    created_by_id: UUID = Field(foreign_key="applicationuser.id")
    title: str
    description: Optional[str] = None
    reward_cents: int
    status: TaskStatus = TaskStatus.ACTIVE
    is_recurring: bool = False
    recurrence_type: Optional[RecurrenceType] = None
    recurrence_day: Optional[int] = None
    recurrence_day_of_month: Optional[int] = None
    created_at: datetime = Field(default_factory=now)
    archived_at: Optional[datetime] = None


class TaskCompletion(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    task_id: UUID = Field(foreign_key="choretask.id", index=True)
    child_id: UUID = Field(foreign_key="child.id", index=True)
    completed_at: datetime = Field(default_factory=now)
    notes: Optional[str] = None
    photo_url: Optional[str] = None
    status: CompletionStatus = CompletionStatus.PENDING_APPROVAL
    reviewed_by_id: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    transaction_id: Optional[UUID] = None


class AllowanceAdjustment(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    child_id: UUID = Field(foreign_key="child.id", index=True)
    adjustment_type: AllowanceAdjustmentType
    old_cents: Optional[int] = None
    new_cents: Optional[int] = None
    reason: Optional[str] = None
    adjusted_by_id: UUID = Field(foreign_key="applicationuser.id")
    created_at: datetime = Field(default_factory=now)


class Notification(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="applicationuser.id", index=True)
    type: NotificationType
    title: str
    body: str
    data: Optional[str] = None
    is_read: bool = False
    read_at: Optional[datetime] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=now)


class CategoryBudget(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("child_id", "category", name="uq_budget_child_category"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    child_id: UUID = Field(foreign_key="child.id", index=True)
    category: TransactionCategory
    limit_cents: int
    period: BudgetPeriod = BudgetPeriod.WEEKLY
    alert_threshold_percent: int = 80
    enforce_limit: bool = False
    created_by_id: UUID = Field(foreign_key="applicationuser.id")
    created_at: datetime = Field(default_factory=now)
    updated_at: datetime = Field(default_factory=now)


class WishListItem(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    child_id: UUID = Field(foreign_key="child.id", index=True)
    name: str
    price_cents: int
    url: Optional[str] = None
    notes: Optional[str] = None
    is_purchased: bool = False
    purchased_at: Optional[datetime] = None
    purchase_transaction_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=now)


class Badge(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    code: str = Field(index=True, unique=True)
    name: str
    description: str
    icon_url: str = ""
    category: BadgeCategory
    rarity: BadgeRarity = BadgeRarity.COMMON
    points_value: int = 0
    criteria_type: BadgeCriteriaType
    criteria_config: str = "{}"  # JSON: triggers, measure, target
    is_secret: bool = False
    is_active: bool = True
    sort_order: int = 0


class ChildBadge(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("child_id", "badge_id", name="uq_child_badge"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    child_id: UUID = Field(foreign_key="child.id", index=True)
    badge_id: UUID = Field(foreign_key="badge.id")
    earned_at: datetime = Field(default_factory=now)
    is_displayed: bool = True
    is_new: bool = True
    earned_context: Optional[str] = None


class BadgeProgress(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("child_id", "badge_id", name="uq_badge_progress"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    child_id: UUID = Field(foreign_key="child.id", index=True)
    badge_id: UUID = Field(foreign_key="badge.id")
    current_progress: int = 0
    target_progress: int
    updated_at: datetime = Field(default_factory=now)


class Reward(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(unique=True)
    description: str
    type: RewardType
    value: str
    preview_url: Optional[str] = None
    points_cost: int
    is_active: bool = True
    sort_order: int = 0


class ChildReward(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("child_id", "reward_id", name="uq_child_reward"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    child_id: UUID = Field(foreign_key="child.id", index=True)
    reward_id: UUID = Field(foreign_key="reward.id")
    unlocked_at: datetime = Field(default_factory=now)
    is_equipped: bool = False


class GiftLink(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    child_id: UUID = Field(foreign_key="child.id", index=True)
    family_id: UUID = Field(foreign_key="family.id", index=True)
    created_by_id: UUID = Field(foreign_key="applicationuser.id")
    token: str = Field(index=True, unique=True)
    name: str
    description: Optional[str] = None
    visibility: GiftLinkVisibility = GiftLinkVisibility.MINIMAL
    is_active: bool = True
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = None
    use_count: int = 0
    min_cents: Optional[int] = None
    max_cents: Optional[int] = None
    default_occasion: Optional[GiftOccasion] = None
    created_at: datetime = Field(default_factory=now)
    updated_at: datetime = Field(default_factory=now)


class Gift(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    gift_link_id: UUID = Field(foreign_key="giftlink.id", index=True)
    child_id: UUID = Field(foreign_key="child.id", index=True)
    family_id: UUID = Field(foreign_key="family.id", index=True)
    giver_name: str
    giver_email: Optional[str] = None
    giver_relationship: Optional[str] = None
    amount_cents: int
    occasion: GiftOccasion = GiftOccasion.JUST_BECAUSE
    custom_occasion: Optional[str] = None
    message: Optional[str] = None
    status: GiftStatus = GiftStatus.PENDING
    rejection_reason: Optional[str] = None
    processed_by_id: Optional[UUID] = None
    processed_at: Optional[datetime] = None
    allocate_to_goal_id: Optional[UUID] = None
    savings_percentage: Optional[int] = None
    transaction_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=now, index=True)


class ThankYouNote(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    gift_id: UUID = Field(foreign_key="gift.id", index=True, unique=True)
    child_id: UUID = Field(foreign_key="child.id", index=True)
    message: str
    image_url: Optional[str] = None
    is_sent: bool = False
    sent_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=now)
    updated_at: datetime = Field(default_factory=now)


# ---------------------------------------------------------------------------
# Engine & sessions
# ---------------------------------------------------------------------------
def build_engine(url: str = DATABASE_URL, *, echo: bool = SQL_ECHO) -> Engine:
    kwargs: dict = {"echo": echo}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in {"sqlite://", "sqlite:///:memory:"}:
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


engine = build_engine()


def create_db_and_tables(bind: Engine | None = None) -> None:
    SQLModel.metadata.create_all(bind or engine)


def get_session() -> Iterator[Session]:
    with Session(engine, expire_on_commit=False) as session:
        yield session


__all__ = [
    "engine",
    "Family",
    "ApplicationUser",
    "Child",
    "LedgerTransaction",
    "SavingsGoal",
    "GoalMilestone",
    "SavingsContribution",
    "MatchingRule",
    "GoalChallenge",
    "ChoreTask",
    "TaskCompletion",
    "AllowanceAdjustment",
    "Notification",
    "CategoryBudget",
    "WishListItem",
    "Badge",
    "ChildBadge",
    "BadgeProgress",
    "Reward",
    "ChildReward",
    "GiftLink",
    "Gift",
    "ThankYouNote",
    "build_engine",
    "create_db_and_tables",
    "get_session",
]
