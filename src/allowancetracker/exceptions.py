"""Custom exception hierarchy for the AllowanceTracker package."""

from __future__ import annotations


class AllowanceTrackerError(Exception):
    """Base class for all AllowanceTracker specific errors."""


class NotFoundError(AllowanceTrackerError):
    """Raised when a requested record does not exist."""


class FamilyNotFoundError(NotFoundError):
    """Raised when a family lookup fails."""


class UserNotFoundError(NotFoundError):
    """Raised when a user lookup fails."""


class ChildNotFoundError(NotFoundError):
    """Raised when a child lookup fails."""


class GoalNotFoundError(NotFoundError):
    """Raised when a requested savings goal cannot be found."""


class MatchingRuleNotFoundError(NotFoundError):
    pass


class ChallengeNotFoundError(NotFoundError):
    pass


class TaskNotFoundError(NotFoundError):
    pass


class CompletionNotFoundError(NotFoundError):
    pass


class NotificationNotFoundError(NotFoundError):
    pass


class BudgetNotFoundError(NotFoundError):
    pass


class WishListItemNotFoundError(NotFoundError):
    pass


class BadgeNotFoundError(NotFoundError):
    pass


class RewardNotFoundError(NotFoundError):
    pass


class GiftLinkNotFoundError(NotFoundError):
    """Raised for an unknown gift link id or portal token."""


class GiftNotFoundError(NotFoundError):
    pass


class ThankYouNoteNotFoundError(NotFoundError):
    pass


class ValidationError(AllowanceTrackerError, ValueError):
    """Raised when a request is rejected by business validation."""


class InsufficientFundsError(ValidationError):
    """Raised when an operation would overdraw a balance."""


class BudgetExceededError(ValidationError):
    """Raised when a debit would exceed an enforced category budget."""


class InvalidCategoryError(ValidationError):
    """Raised when a category is not legal for a transaction type."""


class InvalidStateError(ValidationError):
    """Raised when a record is not in a state that allows the operation."""


class DuplicateError(ValidationError):
    """Raised when creating a record that already exists."""


class InsufficientPointsError(ValidationError):
    """Raised when a child cannot afford a reward with their points."""


class AuthorizationError(AllowanceTrackerError, PermissionError):
    """Raised when the acting user may not perform an operation."""


class AuthenticationError(AllowanceTrackerError):
    """Raised when no acting user could be resolved."""
