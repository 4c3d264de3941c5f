"""Actor resolution and authorization guards for AllowanceTracker."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlmodel import Session, select

from .exceptions import AuthenticationError, AuthorizationError
from .models import UserRole
from .webapp.persistence import ApplicationUser, Child


@dataclass(frozen=True, slots=True)
class Actor:
    """The user performing an operation."""

    user_id: UUID
    role: UserRole
    family_id: Optional[UUID]
    child_id: Optional[UUID] = None
    display_name: str = ""

    @property
    def is_parent(self) -> bool:
        return self.role == UserRole.PARENT

    @property
    def is_child(self) -> bool:
        return self.role == UserRole.CHILD


def actor_for_user(session: Session, user: ApplicationUser) -> Actor:
    child_id = None
    if user.role == UserRole.CHILD:
        child = session.exec(select(Child).where(Child.user_id == user.id)).first()
        child_id = child.id if child else None
    return Actor(
        user_id=user.id,
        role=user.role,
        family_id=user.family_id,
        child_id=child_id,
        display_name=user.display_name,
    )


def resolve_actor(session: Session, user_id: UUID | str | None) -> Actor:
    """Return the :class:`Actor` for ``user_id`` or raise :class:`AuthenticationError`."""

    if user_id is None or (isinstance(user_id, str) and not user_id.strip()):
        raise AuthenticationError("Missing acting user")
    try:
        key = user_id if isinstance(user_id, UUID) else UUID(str(user_id).strip())
    except ValueError as exc:
        raise AuthenticationError("Acting user id is not a valid UUID") from exc
    user = session.get(ApplicationUser, key)
    if user is None:
        raise AuthenticationError("Unknown acting user")
    return actor_for_user(session, user)


def require_parent(actor: Actor) -> Actor:
    if not actor.is_parent:
        raise AuthorizationError("Only parents can perform this action")
    return actor


def require_family(actor: Actor, family_id: UUID) -> Actor:
    if actor.family_id != family_id:
        raise AuthorizationError("Actor does not belong to this family")
    return actor


def require_family_parent(actor: Actor, family_id: UUID) -> Actor:
    return require_family(require_parent(actor), family_id)


def require_child_access(actor: Actor, child: Child) -> Actor:
    """Allow a parent of the child's family or the child itself."""

    if actor.is_parent and actor.family_id == child.family_id:
        return actor
    if actor.is_child and actor.child_id == child.id:
        return actor
    raise AuthorizationError("Actor cannot access this child")


__all__ = [
    "Actor",
    "actor_for_user",
    "resolve_actor",
    "require_child_access",
    "require_family",
    "require_family_parent",
    "require_parent",
]
