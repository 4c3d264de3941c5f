"""Request and response bodies for the JSON API."""
from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlmodel import Field, SQLModel

from ..achievements import AchievementSummary, BadgeProgressEntry, EarnedBadge, RewardOffer, progress_ratio
from ..chores import describe_recurrence
from ..goals import progress_percentage
from ..models import (
    AllowanceAdjustmentType,
    AutoTransferType,
    BadgeCategory,
    BadgeRarity,
    BudgetPeriod,
    BudgetStatus,
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
from ..money import from_cents
from ..notifications import notification_data
from .persistence import (
    AllowanceAdjustment,
    ApplicationUser,
    Badge,
    CategoryBudget,
    Child,
    ChoreTask,
    Family,
    Gift,
    GiftLink,
    GoalChallenge,
    GoalMilestone,
    LedgerTransaction,
    MatchingRule,
    Notification,
    SavingsContribution,
    SavingsGoal,
    TaskCompletion,
    ThankYouNote,
    WishListItem,
)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------
class FamilyCreate(SQLModel):
    name: str = Field(min_length=1, max_length=200)
    parent_email: str
    first_name: str = Field(min_length=1)
    last_name: str = ""


class ParentCreate(SQLModel):
    email: str
    first_name: str = Field(min_length=1)
    last_name: str = ""


class ChildCreate(SQLModel):
    email: str
    first_name: str = Field(min_length=1)
    last_name: str = ""
    weekly_allowance: Decimal = Field(default=Decimal("0"), ge=0)
    allow_debt: bool = False
    allowance_day: Optional[int] = Field(default=None, ge=0, le=6)
    initial_balance: Decimal = Field(default=Decimal("0"), ge=0)


class ChildSettingsUpdate(SQLModel):
    allow_debt: Optional[bool] = None
    allowance_day: Optional[int] = Field(default=None, ge=0, le=6)
    clear_allowance_day: bool = False


class TransactionCreate(SQLModel):
    child_id: UUID
    amount: Decimal
    type: TransactionType
    category: TransactionCategory
    description: str
    notes: Optional[str] = None


class GoalCreate(SQLModel):
    child_id: UUID
    name: str = Field(min_length=1, max_length=200)
    target_amount: Decimal
    description: Optional[str] = None
    category: GoalCategory = GoalCategory.OTHER
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    target_date: Optional[datetime] = None
    priority: int = 1
    auto_transfer_type: AutoTransferType = AutoTransferType.NONE
    auto_transfer_value: Decimal = Decimal("0")


class GoalUpdate(SQLModel):
    name: Optional[str] = None
    description: Optional[str] = None
    target_amount: Optional[Decimal] = None
    category: Optional[GoalCategory] = None
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    target_date: Optional[datetime] = None
    priority: Optional[int] = None
    auto_transfer_type: Optional[AutoTransferType] = None
    auto_transfer_value: Optional[Decimal] = None


class ContributionCreate(SQLModel):
    amount: Decimal
    description: Optional[str] = None


class WithdrawalCreate(SQLModel):
    amount: Decimal
    reason: Optional[str] = None


class MatchingRuleCreate(SQLModel):
    type: MatchingType
    ratio: Decimal
    max_match: Optional[Decimal] = None
    expires_at: Optional[datetime] = None


class MatchingRuleUpdate(SQLModel):
    type: Optional[MatchingType] = None
    ratio: Optional[Decimal] = None
    max_match: Optional[Decimal] = None
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None


class ChallengeCreate(SQLModel):
    target_amount: Decimal
    end_at: datetime
    bonus_amount: Decimal
    description: Optional[str] = None


class AllowanceReason(SQLModel):
    reason: Optional[str] = None


class AllowanceAdjust(SQLModel):
    amount: Decimal
    reason: Optional[str] = None


class TaskCreate(SQLModel):
    child_id: UUID
    title: str = Field(min_length=1, max_length=200)
    reward: Decimal
    description: Optional[str] = None
    is_recurring: bool = False
    recurrence_type: Optional[RecurrenceType] = None
    recurrence_day: Optional[int] = None
    recurrence_day_of_month: Optional[int] = None


class TaskUpdate(SQLModel):
    title: Optional[str] = None
    description: Optional[str] = None
    reward: Optional[Decimal] = None
    is_recurring: Optional[bool] = None
    recurrence_type: Optional[RecurrenceType] = None
    recurrence_day: Optional[int] = None
    recurrence_day_of_month: Optional[int] = None


class TaskCompletionCreate(SQLModel):
    notes: Optional[str] = None
    photo_url: Optional[str] = None


class CompletionReview(SQLModel):
    approve: bool
    rejection_reason: Optional[str] = None


class BudgetUpsert(SQLModel):
    category: TransactionCategory
    limit: Decimal
    period: BudgetPeriod = BudgetPeriod.WEEKLY
    alert_threshold_percent: Optional[int] = None
    enforce_limit: bool = False


class WishListCreate(SQLModel):
    name: str = Field(min_length=1, max_length=200)
    price: Decimal
    url: Optional[str] = None
    notes: Optional[str] = None


class WishListUpdate(SQLModel):
    name: Optional[str] = None
    price: Optional[Decimal] = None
    url: Optional[str] = None
    notes: Optional[str] = None


class WishListPurchase(SQLModel):
    record_transaction: bool = True


class MilestoneBonusUpdate(SQLModel):
    bonus_amount: Optional[Decimal] = None


class BadgeDisplayUpdate(SQLModel):
    is_displayed: bool


class BadgesSeen(SQLModel):
    badge_ids: List[UUID] = []


class GiftLinkCreate(SQLModel):
    child_id: UUID
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    visibility: GiftLinkVisibility = GiftLinkVisibility.MINIMAL
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    default_occasion: Optional[GiftOccasion] = None


class GiftLinkUpdate(SQLModel):
    name: Optional[str] = None
    description: Optional[str] = None
    visibility: Optional[GiftLinkVisibility] = None
    is_active: Optional[bool] = None
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    default_occasion: Optional[GiftOccasion] = None


class GiftSubmit(SQLModel):
    giver_name: str = Field(min_length=1, max_length=200)
    amount: Decimal
    giver_email: Optional[str] = None
    giver_relationship: Optional[str] = None
    occasion: Optional[GiftOccasion] = None
    custom_occasion: Optional[str] = None
    message: Optional[str] = Field(default=None, max_length=1000)


class GiftApprove(SQLModel):
    allocate_to_goal_id: Optional[UUID] = None
    savings_percentage: Optional[int] = Field(default=None, ge=1, le=100)


class GiftReject(SQLModel):
    reason: Optional[str] = None


class ThankYouNoteCreate(SQLModel):
    message: str = Field(min_length=1, max_length=1000)
    image_url: Optional[str] = None


class ThankYouNoteUpdate(SQLModel):
    message: Optional[str] = None
    image_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------
class UserRead(SQLModel):
    id: UUID
    email: str
    first_name: str
    last_name: str
    role: UserRole
    family_id: Optional[UUID]

    @classmethod
    def from_record(cls, user: ApplicationUser) -> "UserRead":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            family_id=user.family_id,
        )


class FamilyRead(SQLModel):
    id: UUID
    name: str
    created_at: datetime
    members: List[UserRead] = []

    @classmethod
    def from_record(cls, family: Family, members: List[ApplicationUser] | None = None) -> "FamilyRead":
        return cls(
            id=family.id,
            name=family.name,
            created_at=family.created_at,
            members=[UserRead.from_record(user) for user in members or []],
        )


class FamilyCreated(SQLModel):
    family: FamilyRead
    parent: UserRead


class ChildRead(SQLModel):
    id: UUID
    user_id: UUID
    family_id: UUID
    first_name: str
    last_name: str
    email: str
    weekly_allowance: Decimal
    balance: Decimal
    allow_debt: bool
    allowance_paused: bool
    allowance_paused_reason: Optional[str]
    allowance_day: Optional[int]
    last_allowance_at: Optional[datetime]
    total_points: int = 0
    available_points: int = 0
    equipped_avatar: Optional[str] = None
    equipped_theme: Optional[str] = None
    equipped_title: Optional[str] = None

    @classmethod
    def from_record(cls, child: Child, user: ApplicationUser) -> "ChildRead":
        return cls(
            id=child.id,
            user_id=child.user_id,
            family_id=child.family_id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            weekly_allowance=from_cents(child.weekly_allowance_cents),
            balance=from_cents(child.balance_cents),
            allow_debt=child.allow_debt,
            allowance_paused=child.allowance_paused,
            allowance_paused_reason=child.allowance_paused_reason,
            allowance_day=child.allowance_day,
            last_allowance_at=child.last_allowance_at,
            total_points=child.total_points,
            available_points=child.available_points,
            equipped_avatar=child.equipped_avatar,
            equipped_theme=child.equipped_theme,
            equipped_title=child.equipped_title,
        )


class TransactionRead(SQLModel):
    id: UUID
    child_id: UUID
    amount: Decimal
    type: TransactionType
    category: TransactionCategory
    description: str
    notes: Optional[str]
    balance_after: Decimal
    created_by_id: Optional[UUID]
    created_at: datetime

    @classmethod
    def from_record(cls, transaction: LedgerTransaction) -> "TransactionRead":
        return cls(
            id=transaction.id,
            child_id=transaction.child_id,
            amount=from_cents(transaction.amount_cents),
            type=transaction.type,
            category=transaction.category,
            description=transaction.description,
            notes=transaction.notes,
            balance_after=from_cents(transaction.balance_after_cents),
            created_by_id=transaction.created_by_id,
            created_at=transaction.created_at,
        )


class BalanceRead(SQLModel):
    child_id: UUID
    balance: Decimal


class MilestoneRead(SQLModel):
    percent_complete: int
    target_amount: Decimal
    is_achieved: bool
    achieved_at: Optional[datetime]
    message: str
    bonus_amount: Optional[Decimal] = None

    @classmethod
    def from_record(cls, milestone: GoalMilestone) -> "MilestoneRead":
        return cls(
            percent_complete=milestone.percent_complete,
            target_amount=from_cents(milestone.target_cents),
            is_achieved=milestone.is_achieved,
            achieved_at=milestone.achieved_at,
            message=milestone.message,
            bonus_amount=from_cents(milestone.bonus_cents) if milestone.bonus_cents is not None else None,
        )


class GoalRead(SQLModel):
    id: UUID
    child_id: UUID
    name: str
    description: Optional[str]
    target_amount: Decimal
    current_amount: Decimal
    surplus_amount: Decimal
    progress_percentage: Decimal
    category: GoalCategory
    image_url: Optional[str]
    product_url: Optional[str]
    target_date: Optional[datetime]
    status: GoalStatus
    priority: int
    auto_transfer_type: AutoTransferType
    auto_transfer_value: Decimal
    completed_at: Optional[datetime]
    purchased_at: Optional[datetime]
    created_at: datetime
    milestones: List[MilestoneRead] = []

    @classmethod
    def from_record(cls, goal: SavingsGoal, milestones: List[GoalMilestone] | None = None) -> "GoalRead":
        return cls(
            id=goal.id,
            child_id=goal.child_id,
            name=goal.name,
            description=goal.description,
            target_amount=from_cents(goal.target_cents),
            current_amount=from_cents(goal.current_cents),
            surplus_amount=from_cents(goal.surplus_cents),
            progress_percentage=progress_percentage(goal),
            category=goal.category,
            image_url=goal.image_url,
            product_url=goal.product_url,
            target_date=goal.target_date,
            status=goal.status,
            priority=goal.priority,
            auto_transfer_type=goal.auto_transfer_type,
            auto_transfer_value=Decimal(goal.auto_transfer_value),
            completed_at=goal.completed_at,
            purchased_at=goal.purchased_at,
            created_at=goal.created_at,
            milestones=[MilestoneRead.from_record(item) for item in milestones or []],
        )


class MilestoneReachedRead(SQLModel):
    percent: int
    target_amount: Decimal
    message: str


class GoalProgressRead(SQLModel):
    goal_id: UUID
    goal_name: str
    new_amount: Decimal
    target_amount: Decimal
    progress_percentage: Decimal
    milestone_reached: Optional[MilestoneReachedRead] = None
    is_completed: bool
    match_amount_added: Optional[Decimal] = None
    challenge_bonus_awarded: Optional[Decimal] = None
    milestone_bonus_awarded: Optional[Decimal] = None
    surplus_amount: Decimal
    transaction_id: Optional[UUID] = None


class ContributionRead(SQLModel):
    id: UUID
    goal_id: UUID
    child_id: UUID
    amount: Decimal
    type: ContributionType
    goal_balance_after: Decimal
    source_transaction_id: Optional[UUID]
    parent_match_id: Optional[UUID]
    description: Optional[str]
    created_at: datetime

    @classmethod
    def from_record(cls, contribution: SavingsContribution) -> "ContributionRead":
        return cls(
            id=contribution.id,
            goal_id=contribution.goal_id,
            child_id=contribution.child_id,
            amount=from_cents(contribution.amount_cents),
            type=contribution.type,
            goal_balance_after=from_cents(contribution.goal_balance_after_cents),
            source_transaction_id=contribution.source_transaction_id,
            parent_match_id=contribution.parent_match_id,
            description=contribution.description,
            created_at=contribution.created_at,
        )


class MatchingRuleRead(SQLModel):
    id: UUID
    goal_id: UUID
    type: MatchingType
    ratio: Decimal
    max_match: Optional[Decimal]
    total_matched: Decimal
    is_active: bool
    expires_at: Optional[datetime]

    @classmethod
    def from_record(cls, rule: MatchingRule) -> "MatchingRuleRead":
        return cls(
            id=rule.id,
            goal_id=rule.goal_id,
            type=rule.type,
            ratio=Decimal(rule.match_ratio),
            max_match=from_cents(rule.max_match_cents) if rule.max_match_cents is not None else None,
            total_matched=from_cents(rule.total_matched_cents),
            is_active=rule.is_active,
            expires_at=rule.expires_at,
        )


class ChallengeRead(SQLModel):
    id: UUID
    goal_id: UUID
    target_amount: Decimal
    bonus_amount: Decimal
    start_at: datetime
    end_at: datetime
    status: ChallengeStatus
    completed_at: Optional[datetime]
    bonus_transaction_id: Optional[UUID]
    description: Optional[str]

    @classmethod
    def from_record(cls, challenge: GoalChallenge) -> "ChallengeRead":
        return cls(
            id=challenge.id,
            goal_id=challenge.goal_id,
            target_amount=from_cents(challenge.target_cents),
            bonus_amount=from_cents(challenge.bonus_cents),
            start_at=challenge.start_at,
            end_at=challenge.end_at,
            status=challenge.status,
            completed_at=challenge.completed_at,
            bonus_transaction_id=challenge.bonus_transaction_id,
            description=challenge.description,
        )


class AdjustmentRead(SQLModel):
    id: UUID
    child_id: UUID
    adjustment_type: AllowanceAdjustmentType
    old_amount: Optional[Decimal]
    new_amount: Optional[Decimal]
    reason: Optional[str]
    adjusted_by_id: UUID
    created_at: datetime

    @classmethod
    def from_record(cls, adjustment: AllowanceAdjustment) -> "AdjustmentRead":
        return cls(
            id=adjustment.id,
            child_id=adjustment.child_id,
            adjustment_type=adjustment.adjustment_type,
            old_amount=from_cents(adjustment.old_cents) if adjustment.old_cents is not None else None,
            new_amount=from_cents(adjustment.new_cents) if adjustment.new_cents is not None else None,
            reason=adjustment.reason,
            adjusted_by_id=adjustment.adjusted_by_id,
            created_at=adjustment.created_at,
        )


class TaskRead(SQLModel):
    id: UUID
    child_id: UUID
    created_by_id: UUID
    title: str
    description: Optional[str]
    reward: Decimal
    status: TaskStatus
    is_recurring: bool
    recurrence_type: Optional[RecurrenceType]
    recurrence_day: Optional[int]
    recurrence_day_of_month: Optional[int]
    recurrence_description: str
    created_at: datetime
    archived_at: Optional[datetime]

    @classmethod
    def from_record(cls, task: ChoreTask) -> "TaskRead":
        return cls(
            id=task.id,
            child_id=task.child_id,
            created_by_id=task.created_by_id,
            title=task.title,
            description=task.description,
            reward=from_cents(task.reward_cents),
            status=task.status,
            is_recurring=task.is_recurring,
            recurrence_type=task.recurrence_type,
            recurrence_day=task.recurrence_day,
            recurrence_day_of_month=task.recurrence_day_of_month,
            recurrence_description=describe_recurrence(task),
            created_at=task.created_at,
            archived_at=task.archived_at,
        )


class CompletionRead(SQLModel):
    id: UUID
    task_id: UUID
    child_id: UUID
    completed_at: datetime
    notes: Optional[str]
    photo_url: Optional[str]
    status: CompletionStatus
    reviewed_by_id: Optional[UUID]
    reviewed_at: Optional[datetime]
    rejection_reason: Optional[str]
    transaction_id: Optional[UUID]

    @classmethod
    def from_record(cls, completion: TaskCompletion) -> "CompletionRead":
        return cls(
            id=completion.id,
            task_id=completion.task_id,
            child_id=completion.child_id,
            completed_at=completion.completed_at,
            notes=completion.notes,
            photo_url=completion.photo_url,
            status=completion.status,
            reviewed_by_id=completion.reviewed_by_id,
            reviewed_at=completion.reviewed_at,
            rejection_reason=completion.rejection_reason,
            transaction_id=completion.transaction_id,
        )


class TaskStatisticsRead(SQLModel):
    total_tasks: int
    active_tasks: int
    archived_tasks: int
    total_completions: int
    pending_approvals: int
    approved_completions: int
    rejected_completions: int
    total_earned: Decimal
    pending_earnings: Decimal
    completion_rate: Decimal


class CategoryRead(SQLModel):
    category: TransactionCategory
    display_name: str


class BudgetRead(SQLModel):
    id: UUID
    child_id: UUID
    category: TransactionCategory
    limit: Decimal
    period: BudgetPeriod
    alert_threshold_percent: int
    enforce_limit: bool
    updated_at: datetime

    @classmethod
    def from_record(cls, budget: CategoryBudget) -> "BudgetRead":
        return cls(
            id=budget.id,
            child_id=budget.child_id,
            category=budget.category,
            limit=from_cents(budget.limit_cents),
            period=budget.period,
            alert_threshold_percent=budget.alert_threshold_percent,
            enforce_limit=budget.enforce_limit,
            updated_at=budget.updated_at,
        )


class BudgetStatusRead(SQLModel):
    category: TransactionCategory
    limit: Decimal
    spent: Decimal
    remaining: Decimal
    percent_used: int
    status: BudgetStatus
    period: BudgetPeriod


class NotificationRead(SQLModel):
    id: UUID
    type: NotificationType
    title: str
    body: str
    data: Dict[str, Any]
    is_read: bool
    read_at: Optional[datetime]
    related_entity_type: Optional[str]
    related_entity_id: Optional[UUID]
    created_at: datetime

    @classmethod
    def from_record(cls, notification: Notification) -> "NotificationRead":
        return cls(
            id=notification.id,
            type=notification.type,
            title=notification.title,
            body=notification.body,
            data=notification_data(notification),
            is_read=notification.is_read,
            read_at=notification.read_at,
            related_entity_type=notification.related_entity_type,
            related_entity_id=notification.related_entity_id,
            created_at=notification.created_at,
        )


class UnreadCount(SQLModel):
    unread: int


class MarkedRead(SQLModel):
    marked: int


class WishListItemRead(SQLModel):
    id: UUID
    child_id: UUID
    name: str
    price: Decimal
    url: Optional[str]
    notes: Optional[str]
    is_purchased: bool
    purchased_at: Optional[datetime]
    purchase_transaction_id: Optional[UUID]
    can_afford: bool = False

    @classmethod
    def from_record(cls, item: WishListItem, *, can_afford: bool = False) -> "WishListItemRead":
        return cls(
            id=item.id,
            child_id=item.child_id,
            name=item.name,
            price=from_cents(item.price_cents),
            url=item.url,
            notes=item.notes,
            is_purchased=item.is_purchased,
            purchased_at=item.purchased_at,
            purchase_transaction_id=item.purchase_transaction_id,
            can_afford=can_afford,
        )


class BalancePointRead(SQLModel):
    day: date
    balance: Decimal


class IncomeSpendingRead(SQLModel):
    total_income: Decimal
    total_spending: Decimal
    net: Decimal
    income_count: int
    spending_count: int


class CategorySpendingRead(SQLModel):
    category: TransactionCategory
    display_name: str
    total_amount: Decimal
    transaction_count: int
    percentage: Decimal


class BadgeRead(SQLModel):
    id: UUID
    code: str
    name: str
    description: str
    icon_url: str
    category: BadgeCategory
    rarity: BadgeRarity
    points_value: int
    is_secret: bool

    @classmethod
    def from_record(cls, badge: Badge) -> "BadgeRead":
        return cls(
            id=badge.id,
            code=badge.code,
            name=badge.name,
            description=badge.description,
            icon_url=badge.icon_url,
            category=badge.category,
            rarity=badge.rarity,
            points_value=badge.points_value,
            is_secret=badge.is_secret,
        )


class EarnedBadgeRead(SQLModel):
    badge: BadgeRead
    earned_at: datetime
    is_displayed: bool
    is_new: bool
    earned_context: Optional[Dict[str, Any]] = None

    @classmethod
    def from_entry(cls, entry: EarnedBadge) -> "EarnedBadgeRead":
        record = entry.record
        return cls(
            badge=BadgeRead.from_record(entry.badge),
            earned_at=record.earned_at,
            is_displayed=record.is_displayed,
            is_new=record.is_new,
            earned_context=json.loads(record.earned_context) if record.earned_context else None,
        )


class BadgeProgressRead(SQLModel):
    badge: BadgeRead
    current_progress: int
    target_progress: int
    progress_percentage: Decimal

    @classmethod
    def from_entry(cls, entry: BadgeProgressEntry) -> "BadgeProgressRead":
        record = entry.record
        return cls(
            badge=BadgeRead.from_record(entry.badge),
            current_progress=record.current_progress,
            target_progress=record.target_progress,
            progress_percentage=Decimal(str(round(progress_ratio(record) * 100, 2))),
        )


class AchievementSummaryRead(SQLModel):
    total_badges: int
    earned_badges: int
    total_points: int
    available_points: int
    recent_badges: List[EarnedBadgeRead] = []
    in_progress: List[BadgeProgressRead] = []
    badges_by_category: Dict[str, int] = {}

    @classmethod
    def from_summary(cls, summary: AchievementSummary) -> "AchievementSummaryRead":
        return cls(
            total_badges=summary.total_badges,
            earned_badges=summary.earned_badges,
            total_points=summary.total_points,
            available_points=summary.available_points,
            recent_badges=[EarnedBadgeRead.from_entry(entry) for entry in summary.recent_badges],
            in_progress=[BadgeProgressRead.from_entry(entry) for entry in summary.in_progress],
            badges_by_category=summary.badges_by_category,
        )


class PointsRead(SQLModel):
    total_points: int
    available_points: int
    spent_points: int
    badges_earned: int
    rewards_unlocked: int


class RewardRead(SQLModel):
    id: UUID
    name: str
    description: str
    type: RewardType
    value: str
    preview_url: Optional[str]
    points_cost: int
    is_unlocked: bool = False
    is_equipped: bool = False
    can_afford: bool = False

    @classmethod
    def from_offer(cls, offer: RewardOffer) -> "RewardRead":
        reward = offer.reward
        return cls(
            id=reward.id,
            name=reward.name,
            description=reward.description,
            type=reward.type,
            value=reward.value,
            preview_url=reward.preview_url,
            points_cost=reward.points_cost,
            is_unlocked=offer.is_unlocked,
            is_equipped=offer.is_equipped,
            can_afford=offer.can_afford,
        )


class GiftLinkRead(SQLModel):
    id: UUID
    child_id: UUID
    token: str
    name: str
    description: Optional[str]
    visibility: GiftLinkVisibility
    is_active: bool
    expires_at: Optional[datetime]
    max_uses: Optional[int]
    use_count: int
    min_amount: Optional[Decimal]
    max_amount: Optional[Decimal]
    default_occasion: Optional[GiftOccasion]
    created_at: datetime
    updated_at: datetime
    portal_url: str

    @classmethod
    def from_record(cls, link: GiftLink, portal_url: str) -> "GiftLinkRead":
        return cls(
            id=link.id,
            child_id=link.child_id,
            token=link.token,
            name=link.name,
            description=link.description,
            visibility=link.visibility,
            is_active=link.is_active,
            expires_at=link.expires_at,
            max_uses=link.max_uses,
            use_count=link.use_count,
            min_amount=from_cents(link.min_cents) if link.min_cents is not None else None,
            max_amount=from_cents(link.max_cents) if link.max_cents is not None else None,
            default_occasion=link.default_occasion,
            created_at=link.created_at,
            updated_at=link.updated_at,
            portal_url=portal_url,
        )


class GiftLinkStatsRead(SQLModel):
    link_id: UUID
    total_gifts: int
    pending_gifts: int
    approved_gifts: int
    rejected_gifts: int
    total_approved_amount: Decimal
    last_gift_at: Optional[datetime] = None


class PortalGoalRead(SQLModel):
    goal_id: UUID
    name: str
    target_amount: Decimal
    current_amount: Decimal
    progress_percentage: Decimal
    image_url: Optional[str] = None


class GiftPortalRead(SQLModel):
    child_first_name: str
    avatar: Optional[str]
    min_amount: Optional[Decimal]
    max_amount: Optional[Decimal]
    default_occasion: Optional[GiftOccasion]
    visibility: GiftLinkVisibility
    goals: Optional[List[PortalGoalRead]] = None


class GiftReceiptRead(SQLModel):
    gift_id: UUID
    child_first_name: str
    amount: Decimal
    message: str


class GiftRead(SQLModel):
    id: UUID
    child_id: UUID
    gift_link_id: UUID
    giver_name: str
    giver_email: Optional[str]
    giver_relationship: Optional[str]
    amount: Decimal
    occasion: GiftOccasion
    custom_occasion: Optional[str]
    message: Optional[str]
    status: GiftStatus
    rejection_reason: Optional[str]
    processed_by_id: Optional[UUID]
    processed_at: Optional[datetime]
    allocate_to_goal_id: Optional[UUID]
    savings_percentage: Optional[int]
    transaction_id: Optional[UUID]
    created_at: datetime

    @classmethod
    def from_record(cls, gift: Gift) -> "GiftRead":
        return cls(
            id=gift.id,
            child_id=gift.child_id,
            gift_link_id=gift.gift_link_id,
            giver_name=gift.giver_name,
            giver_email=gift.giver_email,
            giver_relationship=gift.giver_relationship,
            amount=from_cents(gift.amount_cents),
            occasion=gift.occasion,
            custom_occasion=gift.custom_occasion,
            message=gift.message,
            status=gift.status,
            rejection_reason=gift.rejection_reason,
            processed_by_id=gift.processed_by_id,
            processed_at=gift.processed_at,
            allocate_to_goal_id=gift.allocate_to_goal_id,
            savings_percentage=gift.savings_percentage,
            transaction_id=gift.transaction_id,
            created_at=gift.created_at,
        )


class ThankYouNoteRead(SQLModel):
    id: UUID
    gift_id: UUID
    child_id: UUID
    message: str
    image_url: Optional[str]
    is_sent: bool
    sent_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, note: ThankYouNote) -> "ThankYouNoteRead":
        return cls(
            id=note.id,
            gift_id=note.gift_id,
            child_id=note.child_id,
            message=note.message,
            image_url=note.image_url,
            is_sent=note.is_sent,
            sent_at=note.sent_at,
            created_at=note.created_at,
            updated_at=note.updated_at,
        )


class PendingThankYouRead(SQLModel):
    gift_id: UUID
    giver_name: str
    giver_relationship: Optional[str]
    amount: Decimal
    occasion: GiftOccasion
    custom_occasion: Optional[str]
    received_at: datetime
    days_since_received: int
