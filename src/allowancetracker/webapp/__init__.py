"""AllowanceTracker web application package.

``persistence`` is imported eagerly because the services share its tables.
The FastAPI application is loaded on first access to ``app`` so importing the
services does not build the HTTP layer.
"""
from __future__ import annotations

from importlib import import_module
from types import ModuleType
from typing import Any, List

from . import persistence

__all__: List[str] = [*persistence.__all__, "app"]

_IMPL_MODULE: ModuleType | None = None


def _load_impl() -> ModuleType:
    global _IMPL_MODULE
    if _IMPL_MODULE is None:
        _IMPL_MODULE = import_module(".application", __name__)
    return _IMPL_MODULE


def __getattr__(name: str) -> Any:
    if hasattr(persistence, name):
        return getattr(persistence, name)
    if name == "app":
        return _load_impl().app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> List[str]:
    return sorted(set(globals()) | set(__all__))
