"""Domain enums and value objects used by the AllowanceTracker package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID


class UserRole(str, Enum):
    PARENT = "parent"
    CHILD = "child"


class TransactionType(str, Enum):
    """Direction of a ledger entry."""

    CREDIT = "credit"
    DEBIT = "debit"


class TransactionCategory(str, Enum):
    """Categories used to classify ledger entries."""

    # Income
    ALLOWANCE = "allowance"
    CHORES = "chores"
    GIFT = "gift"
    BONUS_REWARD = "bonus_reward"
    TASK = "task"
    OTHER_INCOME = "other_income"
    # Spending
    TOYS = "toys"
    GAMES = "games"
    BOOKS = "books"
    CLOTHES = "clothes"
    SNACKS = "snacks"
    CANDY = "candy"
    ELECTRONICS = "electronics"
    ENTERTAINMENT = "entertainment"
    SPORTS = "sports"
    CRAFTS = "crafts"
    OTHER_SPENDING = "other_spending"
    # Savings & giving
    SAVINGS = "savings"
    CHARITY = "charity"
    INVESTMENT = "investment"


class GoalStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    PURCHASED = "purchased"
    CANCELLED = "cancelled"


class GoalCategory(str, Enum):
    TOY = "toy"
    GAME = "game"
    ELECTRONICS = "electronics"
    CLOTHING = "clothing"
    EXPERIENCE = "experience"
    SAVINGS = "savings"
    OTHER = "other"


class AutoTransferType(str, Enum):
    NONE = "none"
    FIXED_AMOUNT = "fixed_amount"
    PERCENTAGE = "percentage"


class MatchingType(str, Enum):
    """How a parent matching rule derives its bonus from a contribution.

    ``RATIO_MATCH`` multiplies the contribution by the ratio, ``PERCENTAGE_MATCH``
    treats the ratio as a percentage and ``FIXED_MATCH`` adds the ratio as a flat
    amount per contribution.
    """

    RATIO_MATCH = "ratio_match"
    PERCENTAGE_MATCH = "percentage_match"
    FIXED_MATCH = "fixed_match"


class ChallengeStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ContributionType(str, Enum):
    CHILD_DEPOSIT = "child_deposit"
    PARENT_MATCH = "parent_match"
    AUTO_TRANSFER = "auto_transfer"
    CHALLENGE_BONUS = "challenge_bonus"
    WITHDRAWAL = "withdrawal"
    REFUND = "refund"
    MILESTONE_BONUS = "milestone_bonus"
    GIFT = "gift"


class TaskStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class RecurrenceType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class CompletionStatus(str, Enum):
    """Lifecycle of a submitted task completion."""

    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class AllowanceAdjustmentType(str, Enum):
    PAUSED = "paused"
    RESUMED = "resumed"
    AMOUNT_CHANGED = "amount_changed"


class NotificationType(str, Enum):
    TRANSACTION_CREATED = "transaction_created"
    ALLOWANCE_DEPOSIT = "allowance_deposit"
    ALLOWANCE_PAUSED = "allowance_paused"
    ALLOWANCE_RESUMED = "allowance_resumed"
    GOAL_MILESTONE = "goal_milestone"
    GOAL_COMPLETED = "goal_completed"
    PARENT_MATCH_ADDED = "parent_match_added"
    CHALLENGE_COMPLETED = "challenge_completed"
    TASK_ASSIGNED = "task_assigned"
    TASK_COMPLETION_PENDING_APPROVAL = "task_completion_pending_approval"
    TASK_APPROVED = "task_approved"
    TASK_REJECTED = "task_rejected"
    BUDGET_WARNING = "budget_warning"
    BUDGET_EXCEEDED = "budget_exceeded"
    CHILD_ADDED = "child_added"
    GIFT_RECEIVED = "gift_received"
    GIFT_APPROVED = "gift_approved"


class BudgetPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class BudgetStatus(str, Enum):
    SAFE = "safe"
    WARNING = "warning"
    AT_LIMIT = "at_limit"
    OVER_BUDGET = "over_budget"


class BadgeCategory(str, Enum):
    SAVING = "saving"
    SPENDING = "spending"
    GOALS = "goals"
    CHORES = "chores"
    STREAKS = "streaks"
    MILESTONES = "milestones"
    SPECIAL = "special"


class BadgeRarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class BadgeCriteriaType(str, Enum):
    """How a badge decides it has been earned.

    ``SINGLE_ACTION`` badges unlock the first time their trigger fires. The
    threshold kinds compare a measured value against the badge target.
    """

    SINGLE_ACTION = "single_action"
    COUNT_THRESHOLD = "count_threshold"
    AMOUNT_THRESHOLD = "amount_threshold"
    GOAL_COMPLETION = "goal_completion"


class BadgeTrigger(str, Enum):
    ACCOUNT_CREATED = "account_created"
    TRANSACTION_CREATED = "transaction_created"
    BALANCE_CHANGED = "balance_changed"
    SAVINGS_DEPOSIT = "savings_deposit"
    GOAL_CREATED = "goal_created"
    GOAL_COMPLETED = "goal_completed"
    TASK_APPROVED = "task_approved"


class RewardType(str, Enum):
    AVATAR = "avatar"
    THEME = "theme"
    TITLE = "title"
    PROFILE_FRAME = "profile_frame"


class GiftLinkVisibility(str, Enum):
    """What a gift giver may see on the portal page."""

    MINIMAL = "minimal"
    WITH_GOALS = "with_goals"
    FULL = "full"


class GiftOccasion(str, Enum):
    BIRTHDAY = "birthday"
    CHRISTMAS = "christmas"
    HANUKKAH = "hanukkah"
    EASTER = "easter"
    GRADUATION = "graduation"
    GOOD_GRADES = "good_grades"
    JUST_BECAUSE = "just_because"
    HOLIDAY = "holiday"
    ACHIEVEMENT = "achievement"
    OTHER = "other"


class GiftStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


@dataclass(slots=True)
class MilestoneReached:
    """The single milestone reported for a contribution."""

    percent: int
    target_amount: Decimal
    message: str


@dataclass(slots=True)
class GoalProgress:
    """Outcome of a contribution towards a savings goal."""

    goal_id: UUID
    goal_name: str
    new_amount: Decimal
    target_amount: Decimal
    progress_percentage: Decimal
    milestone_reached: Optional[MilestoneReached] = None
    is_completed: bool = False
    match_amount_added: Optional[Decimal] = None
    challenge_bonus_awarded: Optional[Decimal] = None
    milestone_bonus_awarded: Optional[Decimal] = None
    surplus_amount: Decimal = Decimal("0.00")
    transaction_id: Optional[UUID] = None


@dataclass(slots=True)
class BudgetCheck:
    allowed: bool
    message: str
    current_spending: Decimal
    limit: Decimal
    remaining_after: Decimal


@dataclass(slots=True)
class BudgetStatusReport:
    category: TransactionCategory
    limit: Decimal
    spent: Decimal
    remaining: Decimal
    percent_used: int
    status: BudgetStatus
    period: BudgetPeriod


@dataclass(slots=True)
class CategorySpending:
    category: TransactionCategory
    display_name: str
    total_amount: Decimal
    transaction_count: int
    percentage: Decimal


@dataclass(slots=True)
class IncomeSpendingSummary:
    total_income: Decimal
    total_spending: Decimal
    net: Decimal
    income_count: int
    spending_count: int


@dataclass(slots=True)
class BalancePoint:
    day: date
    balance: Decimal


@dataclass(slots=True)
class TaskStatistics:
    """Snapshot of a child's task activity."""

    total_tasks: int
    active_tasks: int
    archived_tasks: int
    total_completions: int
    pending_approvals: int
    approved_completions: int
    rejected_completions: int
    total_earned: Decimal
    pending_earnings: Decimal
    completion_rate: Decimal = field(default=Decimal("0.00"))


@dataclass(slots=True)
class PointsSummary:
    total_points: int
    available_points: int
    spent_points: int
    badges_earned: int
    rewards_unlocked: int



@dataclass(slots=True)
class GiftLinkStats:
    link_id: UUID
    total_gifts: int
    pending_gifts: int
    approved_gifts: int
    rejected_gifts: int
    total_approved_amount: Decimal
    last_gift_at: Optional[datetime] = None


@dataclass(slots=True)
class PortalGoal:
    goal_id: UUID
    name: str
    target_amount: Decimal
    current_amount: Decimal
    progress_percentage: Decimal
    image_url: Optional[str] = None


@dataclass(slots=True)
class GiftPortal:
    """What an outside giver sees when opening a gift link."""

    child_first_name: str
    avatar: Optional[str]
    min_amount: Optional[Decimal]
    max_amount: Optional[Decimal]
    default_occasion: Optional[GiftOccasion]
    visibility: GiftLinkVisibility
    goals: Optional[List[PortalGoal]] = None


@dataclass(slots=True)
class GiftReceipt:
    gift_id: UUID
    child_first_name: str
    amount: Decimal
    message: str


@dataclass(slots=True)
class PendingThankYou:
    gift_id: UUID
    giver_name: str
    giver_relationship: Optional[str]
    amount: Decimal
    occasion: GiftOccasion
    custom_occasion: Optional[str]
    received_at: datetime
    days_since_received: int
