"""AllowanceTracker package for family allowances, savings goals and chores."""

from .achievements import AchievementService
from .allowance import AllowanceService
from .analytics import AnalyticsService
from .categories import CategoryService, categories_for_type, suggest_category
from .chores import TaskService
from .context import ServiceContext
from .exceptions import (
    AllowanceTrackerError,
    AuthenticationError,
    AuthorizationError,
    BudgetExceededError,
    ChildNotFoundError,
    DuplicateError,
    GiftLinkNotFoundError,
    GiftNotFoundError,
    GoalNotFoundError,
    InsufficientFundsError,
    InsufficientPointsError,
    InvalidCategoryError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .family import FamilyService
from .gifts import GiftService, ThankYouNoteService
from .goals import GoalService
from .ledger import LedgerService
from .models import (
    AutoTransferType,
    BudgetPeriod,
    CompletionStatus,
    ContributionType,
    GoalProgress,
    GoalStatus,
    MatchingType,
    NotificationType,
    TransactionCategory,
    TransactionType,
    UserRole,
)
from .notifications import NotificationCenter
from .ops import HealthMonitor, StructuredLogger
from .security import Actor
from .service import AllowanceTracker
from .webapp.config import Settings, load_settings
from .wishlist import WishListService

__all__ = [
    "AchievementService",
    "Actor",
    "AllowanceService",
    "AllowanceTracker",
    "AllowanceTrackerError",
    "AnalyticsService",
    "AuthenticationError",
    "AuthorizationError",
    "AutoTransferType",
    "BudgetExceededError",
    "BudgetPeriod",
    "CategoryService",
    "ChildNotFoundError",
    "CompletionStatus",
    "ContributionType",
    "DuplicateError",
    "FamilyService",
    "GiftLinkNotFoundError",
    "GiftNotFoundError",
    "GiftService",
    "GoalNotFoundError",
    "GoalProgress",
    "GoalService",
    "GoalStatus",
    "HealthMonitor",
    "InsufficientFundsError",
    "InsufficientPointsError",
    "InvalidCategoryError",
    "InvalidStateError",
    "LedgerService",
    "MatchingType",
    "NotFoundError",
    "NotificationCenter",
    "NotificationType",
    "ServiceContext",
    "Settings",
    "StructuredLogger",
    "TaskService",
    "ThankYouNoteService",
    "TransactionCategory",
    "TransactionType",
    "UserRole",
    "ValidationError",
    "WishListService",
    "categories_for_type",
    "load_settings",
    "suggest_category",
]
