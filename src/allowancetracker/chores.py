"""Chore tasks and the completion approval workflow."""

from __future__ import annotations

import calendar
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

from sqlmodel import col, select

from .clock import as_utc_naive, now
from .achievements import AchievementService
from .context import ServiceContext
from .exceptions import (
    AuthorizationError,
    ChildNotFoundError,
    CompletionNotFoundError,
    InvalidStateError,
    TaskNotFoundError,
    ValidationError,
)
from .ledger import LedgerService
from .models import (
    BadgeTrigger,
    CompletionStatus,
    NotificationType,
    RecurrenceType,
    TaskStatistics,
    TaskStatus,
    TransactionCategory,
    TransactionType,
)
from .money import AmountLike, ZERO, format_currency, from_cents, require_positive, to_cents, to_decimal
from .security import Actor, require_child_access, require_family, require_family_parent
from .webapp.persistence import ChoreTask, Child, TaskCompletion

_UNSET = object()


def describe_recurrence(task: ChoreTask) -> str:
    """Return a short label such as ``"Weekly on Monday"``."""

    if not task.is_recurring or task.recurrence_type is None:
        return "One-time"
    if task.recurrence_type == RecurrenceType.DAILY:
        return "Daily"
    if task.recurrence_type == RecurrenceType.WEEKLY:
        if task.recurrence_day is None:
            return "Weekly"
        return f"Weekly on {calendar.day_name[task.recurrence_day]}"
    if task.recurrence_day_of_month is None:
        return "Monthly"
    return f"Monthly on day {task.recurrence_day_of_month}"


def _validate_recurrence(
    is_recurring: bool,
    recurrence_type: Optional[RecurrenceType],
    recurrence_day: Optional[int],
    recurrence_day_of_month: Optional[int],
) -> Optional[RecurrenceType]:
    if not is_recurring:
        return None
    if recurrence_type is None:
        raise ValidationError("Recurring tasks need a recurrence type")
    recurrence = RecurrenceType(recurrence_type)
    if recurrence is RecurrenceType.WEEKLY and recurrence_day is not None and not 0 <= recurrence_day <= 6:
        raise ValidationError("Recurrence day must be between 0 (Monday) and 6 (Sunday)")
    if (
        recurrence is RecurrenceType.MONTHLY
        and recurrence_day_of_month is not None
        and not 1 <= recurrence_day_of_month <= 28
    ):
        raise ValidationError("Day of month must be between 1 and 28")
    return recurrence


class TaskService:
    """Parent-assigned tasks whose rewards post only after parent approval."""

    def __init__(self, context: ServiceContext, ledger: LedgerService, achievements: AchievementService) -> None:
        self._ctx = context
        self._ledger = ledger
        self._achievements = achievements

    # ------------------------------------------------------------------
    # Task definitions
    # ------------------------------------------------------------------
    def create_task(
        self,
        child_id: UUID,
        title: str,
        reward: AmountLike,
        actor: Actor,
        *,
        description: str | None = None,
        is_recurring: bool = False,
        recurrence_type: RecurrenceType | None = None,
        recurrence_day: int | None = None,
        recurrence_day_of_month: int | None = None,
    ) -> ChoreTask:
        if not title or not title.strip():
            raise ValidationError("Task title is required")
        value = require_positive(to_decimal(reward))
        recurrence = _validate_recurrence(is_recurring, recurrence_type, recurrence_day, recurrence_day_of_month)
        with self._ctx.transaction() as session:
            child = self._ctx.get(Child, child_id, ChildNotFoundError)
            require_family_parent(actor, child.family_id)
            task = ChoreTask(
                child_id=child_id,
                created_by_id=actor.user_id,
                title=title.strip(),
                description=description,
                reward_cents=to_cents(value),
                is_recurring=is_recurring,
                recurrence_type=recurrence,
                recurrence_day=recurrence_day if recurrence is RecurrenceType.WEEKLY else None,
                recurrence_day_of_month=recurrence_day_of_month if recurrence is RecurrenceType.MONTHLY else None,
            )
            session.add(task)
            session.flush()
            self._ctx.notifications.send(
                child.user_id,
                NotificationType.TASK_ASSIGNED,
                f"New task: {task.title}",
                f"Complete it to earn {format_currency(value)} ({describe_recurrence(task).lower()}).",
                data={"task_id": task.id, "reward": str(value)},
                related=("task", task.id),
            )
            self._ctx.logger.log("task_created", task_id=str(task.id), child_id=str(child_id), reward=str(value))
            return task

    def get_task(self, task_id: UUID, actor: Actor | None = None) -> ChoreTask:
        task = self._ctx.get(ChoreTask, task_id, TaskNotFoundError)
        if actor is not None:
            require_child_access(actor, self._child(task))
        return task

    def list_tasks(
        self,
        family_id: UUID,
        actor: Actor,
        *,
        child_id: UUID | None = None,
        status: TaskStatus | None = None,
        is_recurring: bool | None = None,
    ) -> Sequence[ChoreTask]:
        require_family(actor, family_id)
        if actor.is_child:
            child_id = actor.child_id
        statement = (
            select(ChoreTask)
            .join(Child, col(Child.id) == col(ChoreTask.child_id))
            .where(Child.family_id == family_id)
        )
        if child_id is not None:
            statement = statement.where(ChoreTask.child_id == child_id)
        if status is not None:
            statement = statement.where(ChoreTask.status == TaskStatus(status))
        if is_recurring is not None:
            statement = statement.where(ChoreTask.is_recurring == is_recurring)
        statement = statement.order_by(col(ChoreTask.created_at).desc())
        return tuple(self._ctx.session.exec(statement).all())

    def update_task(
        self,
        task_id: UUID,
        actor: Actor,
        *,
        title: str | None = None,
        description: object = _UNSET,
        reward: AmountLike | None = None,
        is_recurring: bool | None = None,
        recurrence_type: object = _UNSET,
        recurrence_day: object = _UNSET,
        recurrence_day_of_month: object = _UNSET,
    ) -> ChoreTask:
        with self._ctx.transaction() as session:
            task = self.get_task(task_id)
            require_family_parent(actor, self._child(task).family_id)
            if task.status == TaskStatus.ARCHIVED:
                raise InvalidStateError("Archived tasks cannot be edited")
            if self._pending(task.id):
                raise InvalidStateError("Task has a completion waiting for approval")
            if title is not None:
                if not title.strip():
                    raise ValidationError("Task title is required")
                task.title = title.strip()
            if description is not _UNSET:
                task.description = description  # type: ignore[assignment]
            if reward is not None:
                task.reward_cents = to_cents(require_positive(to_decimal(reward)))
            recurring = task.is_recurring if is_recurring is None else is_recurring
            kind = task.recurrence_type if recurrence_type is _UNSET else recurrence_type
            day = task.recurrence_day if recurrence_day is _UNSET else recurrence_day
            day_of_month = task.recurrence_day_of_month if recurrence_day_of_month is _UNSET else recurrence_day_of_month
            recurrence = _validate_recurrence(recurring, kind, day, day_of_month)  # type: ignore[arg-type]
            task.is_recurring = recurring
            task.recurrence_type = recurrence
            task.recurrence_day = day if recurrence is RecurrenceType.WEEKLY else None  # type: ignore[assignment]
            task.recurrence_day_of_month = (
                day_of_month if recurrence is RecurrenceType.MONTHLY else None  # type: ignore[assignment]
            )
            session.add(task)
            self._ctx.logger.log("task_updated", task_id=str(task.id))
            return task

    def archive_task(self, task_id: UUID, actor: Actor) -> ChoreTask:
        with self._ctx.transaction() as session:
            task = self.get_task(task_id)
            require_family_parent(actor, self._child(task).family_id)
            if task.status == TaskStatus.ARCHIVED:
                raise InvalidStateError("Task is already archived")
            task.status = TaskStatus.ARCHIVED
            task.archived_at = now()
            session.add(task)
            self._ctx.logger.log("task_archived", task_id=str(task.id))
            return task

    # ------------------------------------------------------------------
    # Completion workflow
    # ------------------------------------------------------------------
    def complete_task(
        self,
        task_id: UUID,
        actor: Actor,
        *,
        notes: str | None = None,
        photo_url: str | None = None,
    ) -> TaskCompletion:
        with self._ctx.transaction() as session:
            task = self.get_task(task_id)
            if not actor.is_child or actor.child_id != task.child_id:
                raise AuthorizationError("Only the assigned child can complete this task")
            if task.status == TaskStatus.ARCHIVED:
                raise InvalidStateError("Archived tasks cannot be completed")
            if self._pending(task.id):
                raise InvalidStateError("Task already has a completion waiting for approval")
            if not task.is_recurring and self._count(task.id, CompletionStatus.APPROVED):
                raise InvalidStateError("This one-time task has already been completed")
            completion = TaskCompletion(
                task_id=task.id,
                child_id=task.child_id,
                notes=notes,
                photo_url=photo_url,
            )
            session.add(completion)
            session.flush()
            child = self._child(task)
            self._ctx.notifications.send_to_parents(
                child.family_id,
                NotificationType.TASK_COMPLETION_PENDING_APPROVAL,
                f"{actor.display_name or 'A child'} completed {task.title}",
                f"Review the completion to release the {format_currency(from_cents(task.reward_cents))} reward.",
                data={"task_id": task.id, "completion_id": completion.id},
                related=("task_completion", completion.id),
            )
            self._ctx.logger.log("task_completed", task_id=str(task.id), completion_id=str(completion.id))
            return completion

    def review_completion(
        self,
        completion_id: UUID,
        approve: bool,
        actor: Actor,
        *,
        rejection_reason: str | None = None,
    ) -> TaskCompletion:
        """Approve or reject a pending completion.

        Approval pays the task reward through the ledger and links the
        transaction; rejection records the reason and moves no money.
        """

        with self._ctx.transaction() as session:
            completion = self._ctx.get(TaskCompletion, completion_id, CompletionNotFoundError)
            task = self.get_task(completion.task_id)
            child = self._ctx.lock_child(completion.child_id, ChildNotFoundError)
            require_family_parent(actor, child.family_id)
            if completion.status != CompletionStatus.PENDING_APPROVAL:
                raise InvalidStateError(f"Completion was already {completion.status.value}")
            reason = (rejection_reason or "").strip()
            if not approve and not reason:
                raise ValidationError("A reason is required when rejecting a completion")
            completion.reviewed_by_id = actor.user_id
            completion.reviewed_at = now()
            reward = from_cents(task.reward_cents)
            if approve:
                transaction = self._ledger.post(
                    child,
                    reward,
                    TransactionType.CREDIT,
                    TransactionCategory.TASK,
                    f"Task reward: {task.title}",
                    created_by_id=actor.user_id,
                )
                completion.status = CompletionStatus.APPROVED
                completion.transaction_id = transaction.id
                self._ctx.notifications.send(
                    child.user_id,
                    NotificationType.TASK_APPROVED,
                    f"{task.title} approved",
                    f"{format_currency(reward)} was added to your balance.",
                    data={"task_id": task.id, "transaction_id": transaction.id},
                    related=("task_completion", completion.id),
                )
                session.add(completion)
                self._achievements.check(child, BadgeTrigger.TASK_APPROVED, {"task_id": task.id})
            else:
                completion.status = CompletionStatus.REJECTED
                completion.rejection_reason = reason
                self._ctx.notifications.send(
                    child.user_id,
                    NotificationType.TASK_REJECTED,
                    f"{task.title} needs another try",
                    reason,
                    data={"task_id": task.id},
                    related=("task_completion", completion.id),
                )
            session.add(completion)
            self._ctx.logger.log(
                "completion_reviewed",
                completion_id=str(completion.id),
                status=completion.status.value,
                reviewer=str(actor.user_id),
            )
            return completion

    def list_completions(
        self,
        task_id: UUID,
        actor: Actor,
        *,
        status: CompletionStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Sequence[TaskCompletion]:
        self.get_task(task_id, actor)
        statement = select(TaskCompletion).where(TaskCompletion.task_id == task_id)
        if status is not None:
            statement = statement.where(TaskCompletion.status == CompletionStatus(status))
        if start is not None:
            statement = statement.where(col(TaskCompletion.completed_at) >= as_utc_naive(start))
        if end is not None:
            statement = statement.where(col(TaskCompletion.completed_at) <= as_utc_naive(end))
        statement = statement.order_by(col(TaskCompletion.completed_at).desc())
        return tuple(self._ctx.session.exec(statement).all())

    def pending_approvals(self, family_id: UUID, actor: Actor) -> Sequence[TaskCompletion]:
        require_family_parent(actor, family_id)
        statement = (
            select(TaskCompletion)
            .join(Child, col(Child.id) == col(TaskCompletion.child_id))
            .where(
                Child.family_id == family_id,
                TaskCompletion.status == CompletionStatus.PENDING_APPROVAL,
            )
            .order_by(col(TaskCompletion.completed_at))
        )
        return tuple(self._ctx.session.exec(statement).all())

    def task_statistics(self, child_id: UUID, actor: Actor) -> TaskStatistics:
        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        require_child_access(actor, child)
        tasks = self._ctx.session.exec(select(ChoreTask).where(ChoreTask.child_id == child_id)).all()
        rewards = {task.id: task.reward_cents for task in tasks}
        completions = self._ctx.session.exec(select(TaskCompletion).where(TaskCompletion.child_id == child_id)).all()
        approved = [item for item in completions if item.status == CompletionStatus.APPROVED]
        pending = [item for item in completions if item.status == CompletionStatus.PENDING_APPROVAL]
        rejected = [item for item in completions if item.status == CompletionStatus.REJECTED]
        reviewed = len(approved) + len(rejected)
        rate = (
            (Decimal(len(approved)) * 100 / Decimal(reviewed)).quantize(Decimal("0.01"))
            if reviewed
            else ZERO
        )
        return TaskStatistics(
            total_tasks=len(tasks),
            active_tasks=sum(1 for task in tasks if task.status == TaskStatus.ACTIVE),
            archived_tasks=sum(1 for task in tasks if task.status == TaskStatus.ARCHIVED),
            total_completions=len(completions),
            pending_approvals=len(pending),
            approved_completions=len(approved),
            rejected_completions=len(rejected),
            total_earned=from_cents(sum(rewards.get(item.task_id, 0) for item in approved)),
            pending_earnings=from_cents(sum(rewards.get(item.task_id, 0) for item in pending)),
            completion_rate=rate,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _child(self, task: ChoreTask) -> Child:
        return self._ctx.get(Child, task.child_id, ChildNotFoundError)

    def _count(self, task_id: UUID, status: CompletionStatus) -> int:
        statement = select(TaskCompletion.id).where(
            TaskCompletion.task_id == task_id,
            TaskCompletion.status == status,
        )
        return len(self._ctx.session.exec(statement).all())

    def _pending(self, task_id: UUID) -> bool:
        return self._count(task_id, CompletionStatus.PENDING_APPROVAL) > 0


__all__ = ["TaskService", "describe_recurrence"]
