from __future__ import annotations

from datetime import datetime

import pytest

from pricetrend.ranges import (
    flag_enabled,
    flags_to_windows,
    normalize_symbol,
    parse_years,
    resolve,
    shift_years,
)

NOW = datetime(2026, 10, 17, 15, 30)


def test_resolve_uppercases_symbol_and_shifts_years() -> None:
    query = resolve("msft", "3", now=NOW)

    assert query.symbol == "MSFT"
    assert query.years == 3
    assert query.end == NOW
    assert query.start == datetime(2023, 10, 17, 15, 30)
    assert query.windows == ()


def test_resolve_defaults_when_inputs_absent() -> None:
    query = resolve(None, None, default_symbol="AAPL", now=NOW)

    assert query.symbol == "AAPL"
    assert query.years == 1
    assert query.start == datetime(2025, 10, 17, 15, 30)


def test_resolve_uses_configured_defaults() -> None:
    query = resolve("", "", default_symbol="spy", default_years=2, now=NOW)

    assert query.symbol == "SPY"
    assert query.years == 2


def test_unparsable_years_behaves_like_absent_years() -> None:
    assert resolve("AAPL", "abc", now=NOW) == resolve("AAPL", None, now=NOW)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("5", 5), (" 2", 2), ("3y", 3), ("7.9", 7), ("0", 0), ("-1", -1), ("abc", 1), ("", 1)],
)
def test_parse_years_reads_leading_integer(raw: str, expected: int) -> None:
    assert parse_years(raw) == expected


def test_parse_years_passes_integers_through() -> None:
    assert parse_years(4) == 4


def test_shift_years_rolls_leap_day_forward() -> None:
    assert shift_years(datetime(2024, 2, 29, 9, 0), 1) == datetime(2023, 3, 1, 9, 0)
    assert shift_years(datetime(2024, 2, 29), 4) == datetime(2020, 2, 29)


def test_shift_years_clamps_to_representable_range() -> None:
    assert shift_years(NOW, 10_000).year == 1
    assert shift_years(NOW, -10_000).year == 9999


def test_only_literal_true_enables_flag() -> None:
    assert flag_enabled("true") is True
    assert flag_enabled("TRUE") is False
    assert flag_enabled("1") is False
    assert flag_enabled(None) is False


def test_flags_to_windows() -> None:
    assert flags_to_windows({"ma30": "true"}) == (30,)
    assert flags_to_windows({"ma30": "true", "ma60": "true"}) == (30, 60)
    assert flags_to_windows({"ma30": "yes", "ma60": None}) == ()


def test_normalize_symbol_strips_whitespace() -> None:
    assert normalize_symbol("  tsla ") == "TSLA"
    assert normalize_symbol("   ", default_symbol="aapl") == "AAPL"
