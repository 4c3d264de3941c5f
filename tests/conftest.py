from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator

import pytest
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel

from allowancetracker.clock import set_time_provider
from allowancetracker.security import Actor
from allowancetracker.service import AllowanceTracker
from allowancetracker.webapp.config import Settings
from allowancetracker.webapp.persistence import ApplicationUser, Child, Family, build_engine


class FrozenClock:
    """Callable time source that only moves when told to."""

    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def advance(self, **delta: float) -> datetime:
        self.moment += timedelta(**delta)
        return self.moment


@dataclass
class Household:
    family: Family
    parent: ApplicationUser
    parent_actor: Actor
    child: Child
    child_actor: Actor


@pytest.fixture(autouse=True)
def clock() -> Iterator[FrozenClock]:
    # Monday morning
    frozen = FrozenClock(datetime(2024, 3, 4, 9, 0, 0))
    set_time_provider(frozen)
    yield frozen
    set_time_provider(None)


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = build_engine("sqlite://", echo=False)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session(engine: Engine) -> Iterator[Session]:
    with Session(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture()
def settings() -> Settings:
    return Settings()


@pytest.fixture()
def tracker(session: Session, settings: Settings) -> AllowanceTracker:
    return AllowanceTracker(session, settings=settings)


def make_household(
    tracker: AllowanceTracker,
    *,
    name: str = "Rivera",
    parent_email: str = "pat@example.com",
    child_email: str = "sam@example.com",
    weekly_allowance: str = "10",
    initial_balance: str = "100",
) -> Household:
    family, parent = tracker.family.create_family(name, parent_email, "Pat", name)
    parent_actor = tracker.actor(parent.id)
    child = tracker.family.add_child(
        family.id,
        child_email,
        "Sam",
        parent_actor,
        last_name=name,
        weekly_allowance=weekly_allowance,
        initial_balance=initial_balance,
    )
    return Household(
        family=family,
        parent=parent,
        parent_actor=parent_actor,
        child=child,
        child_actor=tracker.actor(child.user_id),
    )


@pytest.fixture()
def household(tracker: AllowanceTracker) -> Household:
    return make_household(tracker)


@pytest.fixture()
def new_household(tracker: AllowanceTracker):
    def factory(**overrides: str) -> Household:
        return make_household(tracker, **overrides)

    return factory
