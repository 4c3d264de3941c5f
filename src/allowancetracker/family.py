"""Families, their parent and child members and per-child settings."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple
from uuid import UUID

from sqlmodel import col, select

from .achievements import AchievementService
from .context import ServiceContext
from .exceptions import ChildNotFoundError, DuplicateError, FamilyNotFoundError, ValidationError
from .ledger import LedgerService
from .models import BadgeTrigger, NotificationType, TransactionCategory, TransactionType, UserRole
from .money import AmountLike, ZERO, format_currency, require_positive, to_cents, to_decimal
from .security import Actor, require_child_access, require_family, require_family_parent
from .webapp.persistence import ApplicationUser, Child, Family


def _validate_allowance_day(day: Optional[int]) -> Optional[int]:
    if day is not None and not 0 <= day <= 6:
        raise ValidationError("Allowance day must be between 0 (Monday) and 6 (Sunday)")
    return day


class FamilyService:
    """Create families and manage their members."""

    def __init__(self, context: ServiceContext, ledger: LedgerService, achievements: AchievementService) -> None:
        self._ctx = context
        self._ledger = ledger
        self._achievements = achievements

    def create_family(
        self,
        name: str,
        parent_email: str,
        first_name: str,
        last_name: str = "",
    ) -> Tuple[Family, ApplicationUser]:
        """Create a family together with its first parent."""

        if not name or not name.strip():
            raise ValidationError("Family name is required")
        with self._ctx.transaction() as session:
            family = Family(name=name.strip())
            session.add(family)
            session.flush()
            parent = self._create_user(family.id, parent_email, first_name, last_name, UserRole.PARENT)
            self._ctx.logger.log("family_created", family_id=str(family.id), parent_id=str(parent.id))
            return family, parent

    def add_parent(
        self,
        family_id: UUID,
        email: str,
        first_name: str,
        actor: Actor,
        *,
        last_name: str = "",
    ) -> ApplicationUser:
        with self._ctx.transaction():
            self.get_family(family_id)
            require_family_parent(actor, family_id)
            parent = self._create_user(family_id, email, first_name, last_name, UserRole.PARENT)
            self._ctx.logger.log("parent_added", family_id=str(family_id), parent_id=str(parent.id))
            return parent

    def add_child(
        self,
        family_id: UUID,
        email: str,
        first_name: str,
        actor: Actor,
        *,
        last_name: str = "",
        weekly_allowance: AmountLike = 0,
        allow_debt: bool = False,
        allowance_day: Optional[int] = None,
        initial_balance: AmountLike = 0,
    ) -> Child:
        allowance = require_positive(to_decimal(weekly_allowance), allow_zero=True)
        starting = require_positive(to_decimal(initial_balance), allow_zero=True)
        _validate_allowance_day(allowance_day)
        with self._ctx.transaction() as session:
            self.get_family(family_id)
            require_family_parent(actor, family_id)
            user = self._create_user(family_id, email, first_name, last_name, UserRole.CHILD)
            child = Child(
                user_id=user.id,
                family_id=family_id,
                weekly_allowance_cents=to_cents(allowance),
                allow_debt=allow_debt,
                allowance_day=allowance_day,
            )
            session.add(child)
            session.flush()
            if starting > ZERO:
                self._ledger.post(
                    child,
                    starting,
                    TransactionType.CREDIT,
                    TransactionCategory.OTHER_INCOME,
                    "Starting balance",
                    created_by_id=actor.user_id,
                )
            self._achievements.check(child, BadgeTrigger.ACCOUNT_CREATED)
            self._ctx.notifications.send_to_parents(
                family_id,
                NotificationType.CHILD_ADDED,
                f"{user.display_name} joined the family",
                f"{user.display_name} was added with a weekly allowance of {format_currency(allowance)}.",
                data={"child_id": child.id},
                related=("child", child.id),
                exclude_user_id=actor.user_id,
            )
            self._ctx.logger.log(
                "child_added",
                family_id=str(family_id),
                child_id=str(child.id),
                weekly_allowance=str(allowance),
            )
            return child

    def get_family(self, family_id: UUID, actor: Actor | None = None) -> Family:
        family = self._ctx.get(Family, family_id, FamilyNotFoundError)
        if actor is not None:
            require_family(actor, family_id)
        return family

    def list_members(self, family_id: UUID, actor: Actor) -> Sequence[ApplicationUser]:
        self.get_family(family_id, actor)
        statement = (
            select(ApplicationUser)
            .where(ApplicationUser.family_id == family_id)
            .order_by(col(ApplicationUser.created_at))
        )
        return tuple(self._ctx.session.exec(statement).all())

    def list_children(self, family_id: UUID, actor: Actor) -> Sequence[Child]:
        self.get_family(family_id, actor)
        statement = select(Child).where(Child.family_id == family_id).order_by(col(Child.created_at))
        return tuple(self._ctx.session.exec(statement).all())

    def get_child(self, child_id: UUID, actor: Actor | None = None) -> Child:
        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        if actor is not None:
            require_child_access(actor, child)
        return child

    def child_user(self, child: Child) -> ApplicationUser:
        user = self._ctx.session.get(ApplicationUser, child.user_id)
        if user is None:
            raise ChildNotFoundError(f"User for child {child.id} not found")
        return user

    def update_child_settings(
        self,
        child_id: UUID,
        actor: Actor,
        *,
        allow_debt: Optional[bool] = None,
        allowance_day: Optional[int] = None,
        clear_allowance_day: bool = False,
    ) -> Child:
        _validate_allowance_day(allowance_day)
        with self._ctx.transaction() as session:
            child = self.get_child(child_id)
            require_family_parent(actor, child.family_id)
            if allow_debt is not None:
                child.allow_debt = allow_debt
            if clear_allowance_day:
                child.allowance_day = None
            elif allowance_day is not None:
                child.allowance_day = allowance_day
            session.add(child)
            self._ctx.logger.log(
                "child_settings_updated",
                child_id=str(child.id),
                allow_debt=child.allow_debt,
                allowance_day=child.allowance_day,
            )
            return child

    def _create_user(
        self,
        family_id: UUID,
        email: str,
        first_name: str,
        last_name: str,
        role: UserRole,
    ) -> ApplicationUser:
        address = (email or "").strip().lower()
        if "@" not in address:
            raise ValidationError("A valid email address is required")
        if not first_name or not first_name.strip():
            raise ValidationError("First name is required")
        existing = self._ctx.session.exec(select(ApplicationUser).where(ApplicationUser.email == address)).first()
        if existing is not None:
            raise DuplicateError(f"A user with email {address} already exists")
        user = ApplicationUser(
            email=address,
            first_name=first_name.strip(),
            last_name=(last_name or "").strip(),
            role=role,
            family_id=family_id,
        )
        self._ctx.session.add(user)
        self._ctx.session.flush()
        return user


__all__ = ["FamilyService"]
