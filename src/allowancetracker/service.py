"""High level facade bundling the AllowanceTracker services over one session."""

from __future__ import annotations

from uuid import UUID

from sqlmodel import Session

from .achievements import AchievementService
from .allowance import AllowanceService
from .analytics import AnalyticsService
from .categories import CategoryService
from .chores import TaskService
from .context import ServiceContext
from .family import FamilyService
from .gifts import GiftService, ThankYouNoteService
from .goals import GoalService
from .ledger import LedgerService
from .notifications import NotificationCenter
from .ops import StructuredLogger
from .security import Actor, resolve_actor
from .webapp.config import Settings
from .wishlist import WishListService


class AllowanceTracker:
    """Coordinate families, ledgers, goals, allowances, tasks and gifts.

    Every service shares one :class:`ServiceContext`, so a call that spans
    services (an allowance payment that sweeps into goals, a task approval
    that posts a reward) is a single unit of work.
    """

    __slots__ = (
        "context",
        "achievements",
        "categories",
        "ledger",
        "family",
        "goals",
        "allowance",
        "tasks",
        "wishlist",
        "gifts",
        "thank_you_notes",
        "analytics",
    )

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.context = ServiceContext(session, settings=settings, logger=logger)
        self.achievements = AchievementService(self.context)
        self.categories = CategoryService(self.context)
        self.ledger = LedgerService(self.context, self.categories, self.achievements)
        self.family = FamilyService(self.context, self.ledger, self.achievements)
        self.goals = GoalService(self.context, self.ledger, self.achievements)
        self.allowance = AllowanceService(self.context, self.ledger, self.goals)
        self.tasks = TaskService(self.context, self.ledger, self.achievements)
        self.wishlist = WishListService(self.context, self.ledger)
        self.gifts = GiftService(self.context, self.ledger, self.goals)
        self.thank_you_notes = ThankYouNoteService(self.context)
        self.analytics = AnalyticsService(self.context, self.categories)

    @property
    def session(self) -> Session:
        return self.context.session

    @property
    def settings(self) -> Settings:
        return self.context.settings

    @property
    def notifications(self) -> NotificationCenter:
        return self.context.notifications

    @property
    def logger(self) -> StructuredLogger:
        return self.context.logger

    def actor(self, user_id: UUID | str | None) -> Actor:
        return resolve_actor(self.context.session, user_id)


__all__ = ["AllowanceTracker"]
