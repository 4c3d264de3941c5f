"""Shared service context and unit-of-work handling."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional, Type, TypeVar
from uuid import UUID

from sqlmodel import Session, SQLModel, select

from .exceptions import NotFoundError
from .notifications import NotificationCenter
from .ops import StructuredLogger
from .webapp.config import Settings, load_settings
from .webapp.persistence import Child

RecordT = TypeVar("RecordT", bound=SQLModel)


class ServiceContext:
    """Everything a service needs to run one request against the database.

    Public service operations wrap their work in :meth:`transaction`. Nested
    calls join the outermost unit of work, so only the outermost call commits
    and any exception rolls the whole unit back before propagating.
    """

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or load_settings()
        self.logger = logger or StructuredLogger()
        self.notifications = NotificationCenter(session, self.transaction)
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        self._depth += 1
        try:
            yield self.session
        except Exception:
            self._depth -= 1
            if self._depth == 0:
                self.session.rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            try:
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise

    def get(self, model: Type[RecordT], record_id: UUID, error: Type[NotFoundError]) -> RecordT:
        record = self.session.get(model, record_id)
        if record is None:
            raise error(f"{model.__name__} {record_id} not found")
        return record

    def lock_child(self, child_id: UUID, error: Type[NotFoundError]) -> Child:
        """Load ``child_id`` with a row lock for a balance read-modify-write."""

        statement = (
            select(Child)
            .where(Child.id == child_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        child: Optional[Child] = self.session.exec(statement).first()
        if child is None:
            raise error(f"Child {child_id} not found")
        return child


__all__ = ["ServiceContext"]
