"""Swappable time source used by services and tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


_time_provider: Callable[[], datetime] = _utc_now


def now() -> datetime:
    """Return naive UTC time using the configured provider."""

    return _time_provider()


def as_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Return ``value`` as naive UTC, the form every stored timestamp uses.

    Offset-aware values are converted to UTC first; naive values are taken
    to be UTC already.
    """

    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def set_time_provider(provider: Callable[[], datetime] | None) -> None:
    """Install ``provider`` as the time source; ``None`` restores the system clock."""

    global _time_provider
    _time_provider = provider or _utc_now


__all__ = ["as_utc_naive", "now", "set_time_provider"]
