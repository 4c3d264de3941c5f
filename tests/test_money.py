import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine

from allowancetracker.exceptions import ValidationError
from allowancetracker.clock import as_utc_naive
from allowancetracker.money import (
    MAX_AMOUNT,
    format_currency,
    from_cents,
    percent_of,
    require_positive,
    to_cents,
    to_decimal,
)
from allowancetracker.ops import HealthMonitor, StructuredLogger


def test_to_decimal_rounds_half_up() -> None:
    assert to_decimal(12.345) == Decimal("12.35")
    assert to_decimal("3") == Decimal("3.00")
    assert to_decimal(Decimal("0.005")) == Decimal("0.01")

    with pytest.raises(TypeError):
        to_decimal(True)
    with pytest.raises(TypeError):
        to_decimal([1])  # type: ignore[arg-type]


@pytest.mark.parametrize("raw", ["1e20", "-1e20", "1000000.01", 1e20, "NaN", "inf", "twelve", float("inf")])
def test_to_decimal_rejects_unusable_amounts(raw) -> None:
    with pytest.raises(ValidationError):
        to_decimal(raw)


def test_largest_amount_still_fits_in_cents() -> None:
    assert to_decimal(MAX_AMOUNT) == Decimal("1000000.00")
    assert to_cents(MAX_AMOUNT) == 100_000_000
    assert to_decimal(" 4.20 ") == Decimal("4.20")


def test_cents_conversion() -> None:
    assert to_cents("12.50") == 1250
    assert to_cents(0.1) == 10
    assert from_cents(1250) == Decimal("12.50")
    assert from_cents(-5) == Decimal("-0.05")
    assert from_cents(None) == Decimal("0.00")


def test_require_positive_raises_validation_error() -> None:
    assert require_positive(Decimal("1.00")) == Decimal("1.00")
    assert require_positive(Decimal("0"), allow_zero=True) == Decimal("0")

    with pytest.raises(ValidationError):
        require_positive(Decimal("0"))
    with pytest.raises(ValueError):
        require_positive(Decimal("-1"), allow_zero=True)


def test_format_currency_and_percent() -> None:
    assert format_currency(Decimal("1234.5")) == "$1,234.50"
    assert format_currency(Decimal("-3")) == "-$3.00"
    assert percent_of(Decimal("10.00"), 25) == Decimal("2.50")
    assert percent_of(Decimal("3.33"), Decimal("50")) == Decimal("1.67")


def test_structured_logger_keeps_bounded_tail_and_writes_file(tmp_path) -> None:
    log_path = tmp_path / "logs" / "events.jsonl"
    logger = StructuredLogger(path=log_path, max_entries=2)

    logger.log("first", value=1)
    logger.log("second", value=2)
    entry = logger.log("third", value=3)

    assert entry["event"] == "third"
    assert [item["event"] for item in logger.tail()] == ["second", "third"]
    lines = log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 3
    assert json.loads(lines[0])["value"] == 1


def test_health_monitor_reports_database_state() -> None:
    offline = HealthMonitor()
    assert offline.status()["status"] == "degraded"

    monitor = HealthMonitor(create_engine("sqlite://"))
    monitor.mark_schema_initialized()
    status = monitor.status()
    assert status["status"] == "ok"
    assert status["database"] == "ok"
    assert status["schema_initialized_at"] is not None


def test_as_utc_naive_converts_offsets_to_utc() -> None:
    plus_two = timezone(timedelta(hours=2))

    assert as_utc_naive(datetime(2099, 1, 1, tzinfo=timezone.utc)) == datetime(2099, 1, 1)
    assert as_utc_naive(datetime(2024, 3, 4, 12, 0, tzinfo=plus_two)) == datetime(2024, 3, 4, 10, 0)
    assert as_utc_naive(datetime(2024, 3, 4, 12, 0)) == datetime(2024, 3, 4, 12, 0)
    assert as_utc_naive(None) is None
