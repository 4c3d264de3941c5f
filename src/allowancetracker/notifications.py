"""Notification primitives for AllowanceTracker."""

from __future__ import annotations

import json
from contextlib import AbstractContextManager
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlmodel import Session, col, select

from .clock import now
from .exceptions import AuthorizationError, NotificationNotFoundError
from .models import NotificationType, UserRole
from .webapp.persistence import ApplicationUser, Notification

Related = Tuple[str, UUID]


class NotificationCenter:
    """Database-backed inbox.

    ``send`` and ``send_to_parents`` only add rows to the session, so the
    notifications are committed or rolled back with the caller's unit of work.
    """

    def __init__(self, session: Session, transaction: Callable[[], AbstractContextManager]) -> None:
        self._session = session
        self._transaction = transaction

    def send(
        self,
        user_id: UUID,
        notification_type: NotificationType,
        title: str,
        body: str,
        *,
        data: Optional[Mapping[str, Any]] = None,
        related: Optional[Related] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            body=body,
            data=json.dumps(dict(data), default=str) if data else None,
            related_entity_type=related[0] if related else None,
            related_entity_id=related[1] if related else None,
        )
        self._session.add(notification)
        return notification

    def send_to_parents(
        self,
        family_id: UUID,
        notification_type: NotificationType,
        title: str,
        body: str,
        *,
        data: Optional[Mapping[str, Any]] = None,
        related: Optional[Related] = None,
        exclude_user_id: UUID | None = None,
    ) -> List[Notification]:
        parents = self._session.exec(
            select(ApplicationUser).where(
                ApplicationUser.family_id == family_id,
                ApplicationUser.role == UserRole.PARENT,
            )
        ).all()
        return [
            self.send(parent.id, notification_type, title, body, data=data, related=related)
            for parent in parents
            if parent.id != exclude_user_id
        ]

    def list_for_user(self, user_id: UUID, *, unread_only: bool = False, limit: int = 50) -> Sequence[Notification]:
        statement = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            statement = statement.where(col(Notification.is_read).is_(False))
        statement = statement.order_by(col(Notification.created_at).desc()).limit(limit)
        return tuple(self._session.exec(statement).all())

    def unread_count(self, user_id: UUID) -> int:
        statement = select(func.count()).select_from(Notification).where(
            Notification.user_id == user_id,
            col(Notification.is_read).is_(False),
        )
        return int(self._session.exec(statement).one())

    def mark_read(self, notification_id: UUID, user_id: UUID) -> Notification:
        with self._transaction():
            notification = self._owned(notification_id, user_id)
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = now()
                self._session.add(notification)
            return notification

    def mark_all_read(self, user_id: UUID) -> int:
        with self._transaction():
            unread = self._session.exec(
                select(Notification).where(
                    Notification.user_id == user_id,
                    col(Notification.is_read).is_(False),
                )
            ).all()
            moment = now()
            for notification in unread:
                notification.is_read = True
                notification.read_at = moment
                self._session.add(notification)
            return len(unread)

    def delete(self, notification_id: UUID, user_id: UUID) -> None:
        with self._transaction():
            self._session.delete(self._owned(notification_id, user_id))

    def _owned(self, notification_id: UUID, user_id: UUID) -> Notification:
        notification = self._session.get(Notification, notification_id)
        if notification is None:
            raise NotificationNotFoundError(f"Notification {notification_id} not found")
        if notification.user_id != user_id:
            raise AuthorizationError("Notification belongs to another user")
        return notification


def notification_data(notification: Notification) -> dict:
    if not notification.data:
        return {}
    return json.loads(notification.data)


__all__ = ["NotificationCenter", "notification_data"]
