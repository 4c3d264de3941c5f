"""FastAPI frontend for the AllowanceTracker service.

The JSON API lives under ``/api/v1``. Every request other than family
registration, the public gift portal and the health check names its acting
user in the ``X-User-Id`` header; the services enforce parent and child permissions
from there. Deploy with ``uvicorn allowancetracker.webapp:app``.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request, status
from fastapi.responses import JSONResponse, Response
from sqlmodel import Session

from ..categories import categories_for_type, display_name
from ..exceptions import (
    AllowanceTrackerError,
    AuthenticationError,
    AuthorizationError,
    ChallengeNotFoundError,
    NotFoundError,
    ValidationError,
)
from ..models import (
    BadgeCategory,
    BudgetPeriod,
    CompletionStatus,
    ContributionType,
    GoalStatus,
    RewardType,
    TaskStatus,
    TransactionCategory,
    TransactionType,
)
from ..ops import HealthMonitor, StructuredLogger, configure_logging
from ..security import Actor
from ..service import AllowanceTracker
from .config import LOG_LEVEL, LOG_PATH, USER_HEADER, Settings, load_settings
from .persistence import Child, GiftLink, SavingsGoal, create_db_and_tables, engine, get_session
from .schemas import (
    AchievementSummaryRead,
    AdjustmentRead,
    AllowanceAdjust,
    AllowanceReason,
    BadgeDisplayUpdate,
    BadgeProgressRead,
    BadgeRead,
    BadgesSeen,
    BalancePointRead,
    BalanceRead,
    BudgetRead,
    BudgetStatusRead,
    BudgetUpsert,
    CategoryRead,
    CategorySpendingRead,
    ChallengeCreate,
    ChallengeRead,
    ChildCreate,
    ChildRead,
    ChildSettingsUpdate,
    CompletionRead,
    CompletionReview,
    ContributionCreate,
    ContributionRead,
    EarnedBadgeRead,
    FamilyCreate,
    FamilyCreated,
    FamilyRead,
    GiftApprove,
    GiftLinkCreate,
    GiftLinkRead,
    GiftLinkStatsRead,
    GiftLinkUpdate,
    GiftPortalRead,
    GiftRead,
    GiftReceiptRead,
    GiftReject,
    GiftSubmit,
    GoalCreate,
    GoalProgressRead,
    GoalRead,
    GoalUpdate,
    IncomeSpendingRead,
    MarkedRead,
    MatchingRuleCreate,
    MatchingRuleRead,
    MatchingRuleUpdate,
    MilestoneBonusUpdate,
    MilestoneRead,
    NotificationRead,
    ParentCreate,
    PendingThankYouRead,
    PointsRead,
    RewardRead,
    TaskCompletionCreate,
    TaskCreate,
    TaskRead,
    TaskStatisticsRead,
    TaskUpdate,
    ThankYouNoteCreate,
    ThankYouNoteRead,
    ThankYouNoteUpdate,
    TransactionCreate,
    TransactionRead,
    UnreadCount,
    UserRead,
    WishListCreate,
    WishListItemRead,
    WishListPurchase,
    WishListUpdate,
    WithdrawalCreate,
)

request_logger = logging.getLogger("allowancetracker.request")

_settings = load_settings()
structured_logger = StructuredLogger(path=Path(LOG_PATH) if LOG_PATH else None)
health = HealthMonitor(engine)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_logging(LOG_LEVEL)
    create_db_and_tables()
    health.mark_schema_initialized()
    structured_logger.log("startup_complete")
    yield


# ---------------------------------------------------------------------------
# FastAPI application setup
# ---------------------------------------------------------------------------
app = FastAPI(title="AllowanceTracker", lifespan=lifespan)
router = APIRouter(prefix="/api/v1")

_STATUS_BY_ERROR = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
)


@app.exception_handler(AllowanceTrackerError)
async def handle_domain_error(request: Request, exc: AllowanceTrackerError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = int((time.perf_counter() - start) * 1000)

    parts = [f"{request.method} {request.url.path}"]
    if request.url.query:
        parts.append(f"query={request.url.query}")
    status_code = response.status_code
    parts.append(f"status={status_code}")
    parts.append(f"{duration_ms}ms")
    message = " | ".join(parts)
    if status_code >= 500:
        request_logger.error(message)
    elif status_code >= 400:
        request_logger.warning(message)
    else:
        request_logger.info(message)

    response.headers["X-Request-Id"] = request_id
    return response


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_settings() -> Settings:
    return _settings


def get_health() -> HealthMonitor:
    return health


def get_tracker(
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> AllowanceTracker:
    return AllowanceTracker(session, settings=settings, logger=structured_logger)


def current_actor(
    tracker: AllowanceTracker = Depends(get_tracker),
    user_id: Optional[str] = Header(default=None, alias=USER_HEADER),
) -> Actor:
    return tracker.actor(user_id)


def _child_read(tracker: AllowanceTracker, child: Child) -> ChildRead:
    return ChildRead.from_record(child, tracker.family.child_user(child))


def _goal_read(tracker: AllowanceTracker, goal: SavingsGoal) -> GoalRead:
    return GoalRead.from_record(goal, list(tracker.goals.milestones(goal.id)))


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
@router.get("/health")
def health_status(monitor: HealthMonitor = Depends(get_health)) -> dict:
    return monitor.status()


# ---------------------------------------------------------------------------
# Families & children
# ---------------------------------------------------------------------------
@router.post("/families", response_model=FamilyCreated, status_code=status.HTTP_201_CREATED)
def create_family(payload: FamilyCreate, tracker: AllowanceTracker = Depends(get_tracker)) -> FamilyCreated:
    family, parent = tracker.family.create_family(
        payload.name, payload.parent_email, payload.first_name, payload.last_name
    )
    return FamilyCreated(family=FamilyRead.from_record(family, [parent]), parent=UserRead.from_record(parent))


@router.get("/families/{family_id}", response_model=FamilyRead)
def get_family(
    family_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> FamilyRead:
    family = tracker.family.get_family(family_id, actor)
    return FamilyRead.from_record(family, list(tracker.family.list_members(family_id, actor)))


@router.post("/families/{family_id}/parents", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def add_parent(
    family_id: UUID,
    payload: ParentCreate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> UserRead:
    parent = tracker.family.add_parent(
        family_id, payload.email, payload.first_name, actor, last_name=payload.last_name
    )
    return UserRead.from_record(parent)


@router.post("/families/{family_id}/children", response_model=ChildRead, status_code=status.HTTP_201_CREATED)
def add_child(
    family_id: UUID,
    payload: ChildCreate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> ChildRead:
    child = tracker.family.add_child(
        family_id,
        payload.email,
        payload.first_name,
        actor,
        last_name=payload.last_name,
        weekly_allowance=payload.weekly_allowance,
        allow_debt=payload.allow_debt,
        allowance_day=payload.allowance_day,
        initial_balance=payload.initial_balance,
    )
    return _child_read(tracker, child)


@router.get("/families/{family_id}/children", response_model=List[ChildRead])
def list_children(
    family_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[ChildRead]:
    return [_child_read(tracker, child) for child in tracker.family.list_children(family_id, actor)]


@router.get("/children/{child_id}", response_model=ChildRead)
def get_child(
    child_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> ChildRead:
    return _child_read(tracker, tracker.family.get_child(child_id, actor))


@router.patch("/children/{child_id}/settings", response_model=ChildRead)
def update_child_settings(
    child_id: UUID,
    payload: ChildSettingsUpdate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> ChildRead:
    child = tracker.family.update_child_settings(
        child_id,
        actor,
        allow_debt=payload.allow_debt,
        allowance_day=payload.allowance_day,
        clear_allowance_day=payload.clear_allowance_day,
    )
    return _child_read(tracker, child)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------
@router.post("/transactions", response_model=TransactionRead, status_code=status.HTTP_201_CREATED)
def create_transaction(
    payload: TransactionCreate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> TransactionRead:
    transaction = tracker.ledger.create_transaction(
        payload.child_id,
        payload.amount,
        payload.type,
        payload.category,
        payload.description,
        actor,
        notes=payload.notes,
    )
    return TransactionRead.from_record(transaction)


@router.get("/children/{child_id}/transactions", response_model=List[TransactionRead])
def list_transactions(
    child_id: UUID,
    limit: int = Query(default=20, ge=1, le=500),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    category: Optional[TransactionCategory] = None,
    type: Optional[TransactionType] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[TransactionRead]:
    transactions = tracker.ledger.list_transactions(
        child_id, actor, limit=limit, start=start, end=end, category=category, transaction_type=type
    )
    return [TransactionRead.from_record(item) for item in transactions]


@router.get("/children/{child_id}/transactions/export")
def export_transactions(
    child_id: UUID,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    category: Optional[TransactionCategory] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> Response:
    content = tracker.ledger.export_csv(child_id, actor, start=start, end=end, category=category)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="transactions-{child_id}.csv"'},
    )


@router.get("/children/{child_id}/balance", response_model=BalanceRead)
def get_balance(
    child_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> BalanceRead:
    return BalanceRead(child_id=child_id, balance=tracker.ledger.get_balance(child_id, actor))


# ---------------------------------------------------------------------------
# Savings goals
# ---------------------------------------------------------------------------
@router.post("/savings-goals", response_model=GoalRead, status_code=status.HTTP_201_CREATED)
def create_goal(
    payload: GoalCreate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GoalRead:
    goal = tracker.goals.create_goal(
        payload.child_id,
        payload.name,
        payload.target_amount,
        actor,
        description=payload.description,
        category=payload.category,
        image_url=payload.image_url,
        product_url=payload.product_url,
        target_date=payload.target_date,
        priority=payload.priority,
        auto_transfer_type=payload.auto_transfer_type,
        auto_transfer_value=payload.auto_transfer_value,
    )
    return _goal_read(tracker, goal)


@router.get("/children/{child_id}/savings-goals", response_model=List[GoalRead])
def list_goals(
    child_id: UUID,
    status_filter: Optional[GoalStatus] = Query(default=None, alias="status"),
    include_completed: bool = False,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[GoalRead]:
    goals = tracker.goals.list_goals(child_id, actor, status=status_filter, include_completed=include_completed)
    return [_goal_read(tracker, goal) for goal in goals]


@router.get("/savings-goals/{goal_id}", response_model=GoalRead)
def get_goal(
    goal_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GoalRead:
    return _goal_read(tracker, tracker.goals.get_goal(goal_id, actor))


@router.patch("/savings-goals/{goal_id}", response_model=GoalRead)
def update_goal(
    goal_id: UUID,
    payload: GoalUpdate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GoalRead:
    goal = tracker.goals.update_goal(goal_id, actor, **payload.model_dump(exclude_unset=True))
    return _goal_read(tracker, goal)


@router.post("/savings-goals/{goal_id}/contribute", response_model=GoalProgressRead)
def contribute(
    goal_id: UUID,
    payload: ContributionCreate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GoalProgressRead:
    progress = tracker.goals.contribute(goal_id, payload.amount, actor, description=payload.description)
    return GoalProgressRead(**asdict(progress))


@router.post("/savings-goals/{goal_id}/withdraw", response_model=GoalRead)
def withdraw(
    goal_id: UUID,
    payload: WithdrawalCreate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GoalRead:
    return _goal_read(tracker, tracker.goals.withdraw(goal_id, payload.amount, actor, reason=payload.reason))


@router.post("/savings-goals/{goal_id}/pause", response_model=GoalRead)
def pause_goal(
    goal_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GoalRead:
    return _goal_read(tracker, tracker.goals.pause_goal(goal_id, actor))


@router.post("/savings-goals/{goal_id}/resume", response_model=GoalRead)
def resume_goal(
    goal_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GoalRead:
    return _goal_read(tracker, tracker.goals.resume_goal(goal_id, actor))


@router.post("/savings-goals/{goal_id}/cancel", response_model=GoalRead)
def cancel_goal(
    goal_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GoalRead:
    return _goal_read(tracker, tracker.goals.cancel_goal(goal_id, actor))


@router.post("/savings-goals/{goal_id}/purchase", response_model=GoalRead)
def purchase_goal(
    goal_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GoalRead:
    return _goal_read(tracker, tracker.goals.mark_purchased(goal_id, actor))


@router.get("/savings-goals/{goal_id}/contributions", response_model=List[ContributionRead])
def list_contributions(
    goal_id: UUID,
    type: Optional[ContributionType] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[ContributionRead]:
    contributions = tracker.goals.list_contributions(
        goal_id, actor, contribution_type=type, start=start, end=end
    )
    return [ContributionRead.from_record(item) for item in contributions]


@router.post(
    "/savings-goals/{goal_id}/matching-rule",
    response_model=MatchingRuleRead,
    status_code=status.HTTP_201_CREATED,
)
def create_matching_rule(
    goal_id: UUID,
    payload: MatchingRuleCreate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> MatchingRuleRead:
    rule = tracker.goals.create_matching_rule(
        goal_id,
        actor,
        matching_type=payload.type,
        ratio=payload.ratio,
        max_match=payload.max_match,
        expires_at=payload.expires_at,
    )
    return MatchingRuleRead.from_record(rule)


@router.get("/savings-goals/{goal_id}/matching-rule", response_model=MatchingRuleRead)
def get_matching_rule(
    goal_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> MatchingRuleRead:
    return MatchingRuleRead.from_record(tracker.goals.get_matching_rule(goal_id, actor))


@router.patch("/savings-goals/{goal_id}/matching-rule", response_model=MatchingRuleRead)
def update_matching_rule(
    goal_id: UUID,
    payload: MatchingRuleUpdate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> MatchingRuleRead:
    changes = payload.model_dump(exclude_unset=True)
    if "type" in changes:
        changes["matching_type"] = changes.pop("type")
    return MatchingRuleRead.from_record(tracker.goals.update_matching_rule(goal_id, actor, **changes))


@router.delete(
    "/savings-goals/{goal_id}/matching-rule",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
def remove_matching_rule(
    goal_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> Response:
    tracker.goals.remove_matching_rule(goal_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/savings-goals/{goal_id}/challenge",
    response_model=ChallengeRead,
    status_code=status.HTTP_201_CREATED,
)
def create_challenge(
    goal_id: UUID,
    payload: ChallengeCreate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> ChallengeRead:
    challenge = tracker.goals.create_challenge(
        goal_id,
        actor,
        target_amount=payload.target_amount,
        end_at=payload.end_at,
        bonus_amount=payload.bonus_amount,
        description=payload.description,
    )
    return ChallengeRead.from_record(challenge)


@router.get("/savings-goals/{goal_id}/challenge", response_model=ChallengeRead)
def get_challenge(
    goal_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> ChallengeRead:
    challenge = tracker.goals.get_active_challenge(goal_id, actor)
    if challenge is None:
        raise ChallengeNotFoundError(f"No active challenge for goal {goal_id}")
    return ChallengeRead.from_record(challenge)


@router.delete("/savings-goals/{goal_id}/challenge", response_model=ChallengeRead)
def cancel_challenge(
    goal_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> ChallengeRead:
    return ChallengeRead.from_record(tracker.goals.cancel_challenge(goal_id, actor))


@router.put("/savings-goals/{goal_id}/milestones/{percent}/bonus", response_model=MilestoneRead)
def set_milestone_bonus(
    goal_id: UUID,
    percent: int,
    payload: MilestoneBonusUpdate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> MilestoneRead:
    milestone = tracker.goals.set_milestone_bonus(goal_id, percent, payload.bonus_amount, actor)
    return MilestoneRead.from_record(milestone)


# ---------------------------------------------------------------------------
# Allowance administration
# ---------------------------------------------------------------------------
@router.post("/children/{child_id}/allowance/pause", response_model=AdjustmentRead)
def pause_allowance(
    child_id: UUID,
    payload: Optional[AllowanceReason] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> AdjustmentRead:
    reason = payload.reason if payload else None
    return AdjustmentRead.from_record(tracker.allowance.pause_allowance(child_id, actor, reason=reason))


@router.post("/children/{child_id}/allowance/resume", response_model=AdjustmentRead)
def resume_allowance(
    child_id: UUID,
    payload: Optional[AllowanceReason] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> AdjustmentRead:
    reason = payload.reason if payload else None
    return AdjustmentRead.from_record(tracker.allowance.resume_allowance(child_id, actor, reason=reason))


@router.post("/children/{child_id}/allowance/adjust", response_model=AdjustmentRead)
def adjust_allowance(
    child_id: UUID,
    payload: AllowanceAdjust,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> AdjustmentRead:
    adjustment = tracker.allowance.adjust_allowance_amount(child_id, payload.amount, actor, reason=payload.reason)
    return AdjustmentRead.from_record(adjustment)


@router.post(
    "/children/{child_id}/allowance/pay",
    response_model=TransactionRead,
    status_code=status.HTTP_201_CREATED,
)
def pay_allowance(
    child_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> TransactionRead:
    return TransactionRead.from_record(tracker.allowance.pay_allowance(child_id, actor))


@router.get("/children/{child_id}/allowance/adjustments", response_model=List[AdjustmentRead])
def list_adjustments(
    child_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[AdjustmentRead]:
    return [AdjustmentRead.from_record(item) for item in tracker.allowance.list_adjustments(child_id, actor)]


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------
@router.post("/tasks", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> TaskRead:
    task = tracker.tasks.create_task(
        payload.child_id,
        payload.title,
        payload.reward,
        actor,
        description=payload.description,
        is_recurring=payload.is_recurring,
        recurrence_type=payload.recurrence_type,
        recurrence_day=payload.recurrence_day,
        recurrence_day_of_month=payload.recurrence_day_of_month,
    )
    return TaskRead.from_record(task)


@router.get("/tasks", response_model=List[TaskRead])
def list_tasks(
    child_id: Optional[UUID] = None,
    status_filter: Optional[TaskStatus] = Query(default=None, alias="status"),
    is_recurring: Optional[bool] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[TaskRead]:
    if actor.family_id is None:
        raise AuthorizationError("User does not belong to a family")
    tasks = tracker.tasks.list_tasks(
        actor.family_id, actor, child_id=child_id, status=status_filter, is_recurring=is_recurring
    )
    return [TaskRead.from_record(task) for task in tasks]


@router.get("/tasks/pending-approvals", response_model=List[CompletionRead])
def pending_approvals(
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[CompletionRead]:
    if actor.family_id is None:
        raise AuthorizationError("User does not belong to a family")
    return [CompletionRead.from_record(item) for item in tracker.tasks.pending_approvals(actor.family_id, actor)]


@router.put("/tasks/completions/{completion_id}/review", response_model=CompletionRead)
def review_completion(
    completion_id: UUID,
    payload: CompletionReview,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> CompletionRead:
    completion = tracker.tasks.review_completion(
        completion_id, payload.approve, actor, rejection_reason=payload.rejection_reason
    )
    return CompletionRead.from_record(completion)


@router.get("/tasks/{task_id}", response_model=TaskRead)
def get_task(
    task_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> TaskRead:
    return TaskRead.from_record(tracker.tasks.get_task(task_id, actor))


@router.put("/tasks/{task_id}", response_model=TaskRead)
def update_task(
    task_id: UUID,
    payload: TaskUpdate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> TaskRead:
    return TaskRead.from_record(tracker.tasks.update_task(task_id, actor, **payload.model_dump(exclude_unset=True)))


@router.delete("/tasks/{task_id}", response_model=TaskRead)
def archive_task(
    task_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> TaskRead:
    return TaskRead.from_record(tracker.tasks.archive_task(task_id, actor))


@router.post("/tasks/{task_id}/complete", response_model=CompletionRead, status_code=status.HTTP_201_CREATED)
def complete_task(
    task_id: UUID,
    payload: Optional[TaskCompletionCreate] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> CompletionRead:
    payload = payload or TaskCompletionCreate()
    completion = tracker.tasks.complete_task(task_id, actor, notes=payload.notes, photo_url=payload.photo_url)
    return CompletionRead.from_record(completion)


@router.get("/tasks/{task_id}/completions", response_model=List[CompletionRead])
def list_completions(
    task_id: UUID,
    status_filter: Optional[CompletionStatus] = Query(default=None, alias="status"),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[CompletionRead]:
    completions = tracker.tasks.list_completions(task_id, actor, status=status_filter, start=start, end=end)
    return [CompletionRead.from_record(item) for item in completions]


@router.get("/children/{child_id}/task-statistics", response_model=TaskStatisticsRead)
def task_statistics(
    child_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> TaskStatisticsRead:
    return TaskStatisticsRead(**asdict(tracker.tasks.task_statistics(child_id, actor)))


# ---------------------------------------------------------------------------
# Categories & budgets
# ---------------------------------------------------------------------------
@router.get("/categories", response_model=List[CategoryRead])
def list_categories(type: TransactionType = TransactionType.DEBIT) -> List[CategoryRead]:
    return [
        CategoryRead(category=category, display_name=display_name(category))
        for category in categories_for_type(type)
    ]


@router.get("/children/{child_id}/budgets", response_model=List[BudgetRead])
def list_budgets(
    child_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[BudgetRead]:
    return [BudgetRead.from_record(item) for item in tracker.categories.list_budgets(child_id, actor)]


@router.put("/children/{child_id}/budgets", response_model=BudgetRead)
def set_budget(
    child_id: UUID,
    payload: BudgetUpsert,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> BudgetRead:
    budget = tracker.categories.set_budget(
        child_id,
        payload.category,
        payload.limit,
        actor,
        period=payload.period,
        alert_threshold_percent=payload.alert_threshold_percent,
        enforce_limit=payload.enforce_limit,
    )
    return BudgetRead.from_record(budget)


@router.get("/children/{child_id}/budgets/status", response_model=List[BudgetStatusRead])
def budget_status(
    child_id: UUID,
    period: Optional[BudgetPeriod] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[BudgetStatusRead]:
    reports = tracker.categories.budget_status(child_id, actor, period=period)
    return [BudgetStatusRead(**asdict(report)) for report in reports]


@router.delete(
    "/children/{child_id}/budgets/{category}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
def delete_budget(
    child_id: UUID,
    category: TransactionCategory,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> Response:
    tracker.categories.delete_budget(child_id, category, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
@router.get("/notifications", response_model=List[NotificationRead])
def list_notifications(
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[NotificationRead]:
    notifications = tracker.notifications.list_for_user(actor.user_id, unread_only=unread_only, limit=limit)
    return [NotificationRead.from_record(item) for item in notifications]


@router.get("/notifications/unread-count", response_model=UnreadCount)
def unread_count(
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> UnreadCount:
    return UnreadCount(unread=tracker.notifications.unread_count(actor.user_id))


@router.post("/notifications/read-all", response_model=MarkedRead)
def mark_all_read(
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> MarkedRead:
    return MarkedRead(marked=tracker.notifications.mark_all_read(actor.user_id))


@router.post("/notifications/{notification_id}/read", response_model=NotificationRead)
def mark_read(
    notification_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> NotificationRead:
    return NotificationRead.from_record(tracker.notifications.mark_read(notification_id, actor.user_id))


@router.delete(
    "/notifications/{notification_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
def delete_notification(
    notification_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> Response:
    tracker.notifications.delete(notification_id, actor.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Wish list
# ---------------------------------------------------------------------------
@router.get("/children/{child_id}/wish-list", response_model=List[WishListItemRead])
def list_wish_list(
    child_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[WishListItemRead]:
    return [
        WishListItemRead.from_record(entry.item, can_afford=entry.can_afford)
        for entry in tracker.wishlist.list_items(child_id, actor)
    ]


@router.post(
    "/children/{child_id}/wish-list",
    response_model=WishListItemRead,
    status_code=status.HTTP_201_CREATED,
)
def add_wish_list_item(
    child_id: UUID,
    payload: WishListCreate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> WishListItemRead:
    item = tracker.wishlist.add_item(
        child_id, payload.name, payload.price, actor, url=payload.url, notes=payload.notes
    )
    return WishListItemRead.from_record(item)


@router.put("/wish-list/{item_id}", response_model=WishListItemRead)
def update_wish_list_item(
    item_id: UUID,
    payload: WishListUpdate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> WishListItemRead:
    item = tracker.wishlist.update_item(item_id, actor, **payload.model_dump(exclude_unset=True))
    return WishListItemRead.from_record(item)


@router.delete(
    "/wish-list/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
def delete_wish_list_item(
    item_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> Response:
    tracker.wishlist.delete_item(item_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/wish-list/{item_id}/purchase", response_model=WishListItemRead)
def purchase_wish_list_item(
    item_id: UUID,
    payload: Optional[WishListPurchase] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> WishListItemRead:
    record = payload.record_transaction if payload else True
    return WishListItemRead.from_record(tracker.wishlist.mark_purchased(item_id, actor, record_transaction=record))


# ---------------------------------------------------------------------------
# Badges & rewards
# ---------------------------------------------------------------------------
@router.get("/badges", response_model=List[BadgeRead])
def list_badges(
    category: Optional[BadgeCategory] = None,
    include_secret: bool = False,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[BadgeRead]:
    badges = tracker.achievements.list_badges(category=category, include_secret=include_secret)
    return [BadgeRead.from_record(badge) for badge in badges]


@router.get("/children/{child_id}/badges", response_model=List[EarnedBadgeRead])
def child_badges(
    child_id: UUID,
    category: Optional[BadgeCategory] = None,
    new_only: bool = False,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[EarnedBadgeRead]:
    earned = tracker.achievements.child_badges(child_id, actor, category=category, new_only=new_only)
    return [EarnedBadgeRead.from_entry(entry) for entry in earned]


@router.get("/children/{child_id}/badges/progress", response_model=List[BadgeProgressRead])
def badge_progress(
    child_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[BadgeProgressRead]:
    return [BadgeProgressRead.from_entry(entry) for entry in tracker.achievements.badge_progress(child_id, actor)]


@router.get("/children/{child_id}/badges/summary", response_model=AchievementSummaryRead)
def achievement_summary(
    child_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> AchievementSummaryRead:
    return AchievementSummaryRead.from_summary(tracker.achievements.summary(child_id, actor))


@router.patch("/children/{child_id}/badges/{badge_id}/display", response_model=EarnedBadgeRead)
def set_badge_display(
    child_id: UUID,
    badge_id: UUID,
    payload: BadgeDisplayUpdate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> EarnedBadgeRead:
    entry = tracker.achievements.set_displayed(child_id, badge_id, payload.is_displayed, actor)
    return EarnedBadgeRead.from_entry(entry)


@router.post("/children/{child_id}/badges/seen", response_model=MarkedRead)
def mark_badges_seen(
    child_id: UUID,
    payload: BadgesSeen,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> MarkedRead:
    return MarkedRead(marked=tracker.achievements.mark_seen(child_id, payload.badge_ids, actor))


@router.get("/children/{child_id}/points", response_model=PointsRead)
def child_points(
    child_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> PointsRead:
    return PointsRead(**asdict(tracker.achievements.points(child_id, actor)))


@router.get("/rewards", response_model=List[RewardRead])
def list_rewards(
    reward_type: Optional[RewardType] = Query(default=None, alias="type"),
    child_id: Optional[UUID] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[RewardRead]:
    offers = tracker.achievements.list_rewards(reward_type=reward_type, child_id=child_id, actor=actor)
    return [RewardRead.from_offer(offer) for offer in offers]


@router.get("/children/{child_id}/rewards", response_model=List[RewardRead])
def child_rewards(
    child_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[RewardRead]:
    return [RewardRead.from_offer(offer) for offer in tracker.achievements.child_rewards(child_id, actor)]


@router.post("/children/{child_id}/rewards/{reward_id}/unlock", response_model=RewardRead)
def unlock_reward(
    child_id: UUID,
    reward_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> RewardRead:
    return RewardRead.from_offer(tracker.achievements.unlock_reward(child_id, reward_id, actor))


@router.post("/children/{child_id}/rewards/{reward_id}/equip", response_model=RewardRead)
def equip_reward(
    child_id: UUID,
    reward_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> RewardRead:
    return RewardRead.from_offer(tracker.achievements.equip_reward(child_id, reward_id, actor))


@router.post("/children/{child_id}/rewards/{reward_id}/unequip", response_model=RewardRead)
def unequip_reward(
    child_id: UUID,
    reward_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> RewardRead:
    return RewardRead.from_offer(tracker.achievements.unequip_reward(child_id, reward_id, actor))


# ---------------------------------------------------------------------------
# Gift links
# ---------------------------------------------------------------------------
def _link_read(tracker: AllowanceTracker, link: GiftLink) -> GiftLinkRead:
    return GiftLinkRead.from_record(link, tracker.gifts.portal_url(link))


@router.get("/gift-links", response_model=List[GiftLinkRead])
def list_gift_links(
    child_id: Optional[UUID] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[GiftLinkRead]:
    return [_link_read(tracker, link) for link in tracker.gifts.list_links(actor, child_id=child_id)]


@router.post("/gift-links", response_model=GiftLinkRead, status_code=status.HTTP_201_CREATED)
def create_gift_link(
    payload: GiftLinkCreate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GiftLinkRead:
    link = tracker.gifts.create_link(
        payload.child_id,
        payload.name,
        actor,
        description=payload.description,
        visibility=payload.visibility,
        expires_at=payload.expires_at,
        max_uses=payload.max_uses,
        min_amount=payload.min_amount,
        max_amount=payload.max_amount,
        default_occasion=payload.default_occasion,
    )
    return _link_read(tracker, link)


@router.get("/gift-links/{link_id}", response_model=GiftLinkRead)
def get_gift_link(
    link_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GiftLinkRead:
    return _link_read(tracker, tracker.gifts.get_link(link_id, actor))


@router.put("/gift-links/{link_id}", response_model=GiftLinkRead)
def update_gift_link(
    link_id: UUID,
    payload: GiftLinkUpdate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GiftLinkRead:
    changes = payload.model_dump(exclude_unset=True)
    link = tracker.gifts.update_link(link_id, actor, **changes)
    return _link_read(tracker, link)


@router.post("/gift-links/{link_id}/deactivate", response_model=GiftLinkRead)
def deactivate_gift_link(
    link_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GiftLinkRead:
    return _link_read(tracker, tracker.gifts.deactivate_link(link_id, actor))


@router.post("/gift-links/{link_id}/regenerate-token", response_model=GiftLinkRead)
def regenerate_gift_link_token(
    link_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GiftLinkRead:
    return _link_read(tracker, tracker.gifts.regenerate_token(link_id, actor))


@router.get("/gift-links/{link_id}/stats", response_model=GiftLinkStatsRead)
def gift_link_stats(
    link_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GiftLinkStatsRead:
    return GiftLinkStatsRead(**asdict(tracker.gifts.link_stats(link_id, actor)))


# ---------------------------------------------------------------------------
# Gifts & thank-you notes
# ---------------------------------------------------------------------------
@router.get("/gifts/portal/{token}", response_model=GiftPortalRead)
def gift_portal(token: str, tracker: AllowanceTracker = Depends(get_tracker)) -> GiftPortalRead:
    return GiftPortalRead(**asdict(tracker.gifts.portal(token)))


@router.post("/gifts/portal/{token}/submit", response_model=GiftReceiptRead, status_code=status.HTTP_201_CREATED)
def submit_gift(
    token: str,
    payload: GiftSubmit,
    tracker: AllowanceTracker = Depends(get_tracker),
) -> GiftReceiptRead:
    receipt = tracker.gifts.submit(
        token,
        payload.giver_name,
        payload.amount,
        occasion=payload.occasion,
        giver_email=payload.giver_email,
        giver_relationship=payload.giver_relationship,
        custom_occasion=payload.custom_occasion,
        message=payload.message,
    )
    return GiftReceiptRead(**asdict(receipt))


@router.get("/gifts/pending", response_model=List[GiftRead])
def pending_gifts(
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[GiftRead]:
    return [GiftRead.from_record(gift) for gift in tracker.gifts.pending_gifts(actor)]


@router.get("/gifts/thank-you/pending", response_model=List[PendingThankYouRead])
def pending_thank_yous(
    child_id: Optional[UUID] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[PendingThankYouRead]:
    target = child_id or actor.child_id
    if target is None:
        raise ValidationError("child_id is required")
    return [PendingThankYouRead(**asdict(item)) for item in tracker.thank_you_notes.pending(target, actor)]


@router.get("/gifts/child/{child_id}", response_model=List[GiftRead])
def child_gifts(
    child_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[GiftRead]:
    return [GiftRead.from_record(gift) for gift in tracker.gifts.child_gifts(child_id, actor)]


@router.get("/gifts/child/{child_id}/thank-you", response_model=List[ThankYouNoteRead])
def child_thank_you_notes(
    child_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[ThankYouNoteRead]:
    return [ThankYouNoteRead.from_record(note) for note in tracker.thank_you_notes.list_for_child(child_id, actor)]


@router.get("/gifts/{gift_id}", response_model=GiftRead)
def get_gift(
    gift_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GiftRead:
    return GiftRead.from_record(tracker.gifts.get_gift(gift_id, actor))


@router.post("/gifts/{gift_id}/approve", response_model=GiftRead)
def approve_gift(
    gift_id: UUID,
    payload: Optional[GiftApprove] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GiftRead:
    payload = payload or GiftApprove()
    gift = tracker.gifts.approve(
        gift_id,
        actor,
        allocate_to_goal_id=payload.allocate_to_goal_id,
        savings_percentage=payload.savings_percentage,
    )
    return GiftRead.from_record(gift)


@router.post("/gifts/{gift_id}/reject", response_model=GiftRead)
def reject_gift(
    gift_id: UUID,
    payload: Optional[GiftReject] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> GiftRead:
    reason = payload.reason if payload else None
    return GiftRead.from_record(tracker.gifts.reject(gift_id, actor, reason=reason))


@router.get("/gifts/{gift_id}/thank-you", response_model=ThankYouNoteRead)
def get_thank_you_note(
    gift_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> ThankYouNoteRead:
    return ThankYouNoteRead.from_record(tracker.thank_you_notes.get(gift_id, actor))


@router.post("/gifts/{gift_id}/thank-you", response_model=ThankYouNoteRead, status_code=status.HTTP_201_CREATED)
def create_thank_you_note(
    gift_id: UUID,
    payload: ThankYouNoteCreate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> ThankYouNoteRead:
    note = tracker.thank_you_notes.create(gift_id, payload.message, actor, image_url=payload.image_url)
    return ThankYouNoteRead.from_record(note)


@router.put("/gifts/{gift_id}/thank-you", response_model=ThankYouNoteRead)
def update_thank_you_note(
    gift_id: UUID,
    payload: ThankYouNoteUpdate,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> ThankYouNoteRead:
    note = tracker.thank_you_notes.update(gift_id, actor, **payload.model_dump(exclude_unset=True))
    return ThankYouNoteRead.from_record(note)


@router.post("/gifts/{gift_id}/thank-you/send", response_model=ThankYouNoteRead)
def send_thank_you_note(
    gift_id: UUID,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> ThankYouNoteRead:
    return ThankYouNoteRead.from_record(tracker.thank_you_notes.send(gift_id, actor))


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------
@router.get("/children/{child_id}/analytics/balance-history", response_model=List[BalancePointRead])
def balance_history(
    child_id: UUID,
    days: int = Query(default=30, ge=1, le=366),
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[BalancePointRead]:
    return [BalancePointRead(**asdict(point)) for point in tracker.analytics.balance_history(child_id, actor, days=days)]


@router.get("/children/{child_id}/analytics/income-spending", response_model=IncomeSpendingRead)
def income_spending(
    child_id: UUID,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> IncomeSpendingRead:
    summary = tracker.analytics.income_vs_spending(child_id, actor, start=start, end=end)
    return IncomeSpendingRead(**asdict(summary))


@router.get("/children/{child_id}/analytics/categories", response_model=List[CategorySpendingRead])
def category_breakdown(
    child_id: UUID,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    tracker: AllowanceTracker = Depends(get_tracker),
    actor: Actor = Depends(current_actor),
) -> List[CategorySpendingRead]:
    spending = tracker.analytics.category_spending(child_id, actor, start=start, end=end)
    return [CategorySpendingRead(**asdict(item)) for item in spending]


app.include_router(router)


__all__ = [
    "app",
    "current_actor",
    "get_health",
    "get_settings",
    "get_tracker",
    "health",
    "structured_logger",
]
