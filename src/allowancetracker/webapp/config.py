"""Configuration constants for the AllowanceTracker web service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer") from exc


def _env_percentages(name: str, default: Tuple[int, ...]) -> Tuple[int, ...]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    values = sorted({int(part) for part in raw.split(",") if part.strip()})
    if not values or any(value <= 0 or value > 100 for value in values):
        raise RuntimeError(f"{name} must list percentages between 1 and 100")
    return tuple(values)


OVERFLOW_CAP = "cap"
OVERFLOW_ALLOW = "allow"

DATABASE_URL = os.environ.get("ALLOWANCE_DATABASE_URL", "sqlite:///allowancetracker.db")
SQL_ECHO = _env_bool("ALLOWANCE_SQL_ECHO")
LOG_PATH = os.environ.get("ALLOWANCE_LOG_PATH") or None
LOG_LEVEL = os.environ.get("ALLOWANCE_LOG_LEVEL", "INFO").upper()
GOAL_OVERFLOW_POLICY = os.environ.get("GOAL_OVERFLOW_POLICY", OVERFLOW_CAP).strip().lower()
ALLOWANCE_INTERVAL_DAYS = _env_int("ALLOWANCE_INTERVAL_DAYS", 7)
MILESTONE_PERCENTAGES: Tuple[int, ...] = _env_percentages("MILESTONE_PERCENTAGES", (25, 50, 75, 100))
DEFAULT_BUDGET_ALERT_PERCENT = _env_int("DEFAULT_BUDGET_ALERT_PERCENT", 80)
USER_HEADER = os.environ.get("USER_HEADER", "X-User-Id")
GIFT_EXPIRY_DAYS = _env_int("GIFT_EXPIRY_DAYS", 30)
GIFT_PORTAL_BASE_URL = os.environ.get("GIFT_PORTAL_BASE_URL", "https://allowance.example.com").rstrip("/")

if GOAL_OVERFLOW_POLICY not in {OVERFLOW_CAP, OVERFLOW_ALLOW}:
    raise RuntimeError("GOAL_OVERFLOW_POLICY must be 'cap' or 'allow'")


@dataclass(frozen=True, slots=True)
class Settings:
    """Runtime settings handed to the services."""

    goal_overflow_policy: str = OVERFLOW_CAP
    allowance_interval_days: int = 7
    milestone_percentages: Tuple[int, ...] = field(default=(25, 50, 75, 100))
    default_budget_alert_percent: int = 80
    gift_expiry_days: int = 30
    gift_portal_base_url: str = "https://allowance.example.com"

    @property
    def caps_goals(self) -> bool:
        return self.goal_overflow_policy == OVERFLOW_CAP

    def with_overrides(self, **changes: object) -> "Settings":
        return replace(self, **changes)


def load_settings() -> Settings:
    return Settings(
        goal_overflow_policy=GOAL_OVERFLOW_POLICY,
        allowance_interval_days=ALLOWANCE_INTERVAL_DAYS,
        milestone_percentages=MILESTONE_PERCENTAGES,
        default_budget_alert_percent=DEFAULT_BUDGET_ALERT_PERCENT,
        gift_expiry_days=GIFT_EXPIRY_DAYS,
        gift_portal_base_url=GIFT_PORTAL_BASE_URL,
    )


__all__ = [
    "OVERFLOW_CAP",
    "OVERFLOW_ALLOW",
    "DATABASE_URL",
    "SQL_ECHO",
    "LOG_PATH",
    "LOG_LEVEL",
    "GOAL_OVERFLOW_POLICY",
    "ALLOWANCE_INTERVAL_DAYS",
    "MILESTONE_PERCENTAGES",
    "DEFAULT_BUDGET_ALERT_PERCENT",
    "USER_HEADER",
    "GIFT_EXPIRY_DAYS",
    "GIFT_PORTAL_BASE_URL",
    "Settings",
    "load_settings",
]
