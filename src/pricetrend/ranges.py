from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import MAXYEAR, MINYEAR, UTC, datetime

from pricetrend.domain.models import QueryRange

# Request flag name -> moving-average window size.
INDICATOR_FLAGS: dict[str, int] = {"ma30": 30, "ma60": 60}

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def normalize_symbol(symbol: str | None, default_symbol: str = "AAPL") -> str:
    if symbol is None or not symbol.strip():
        return default_symbol.strip().upper()
    return symbol.strip().upper()


def parse_years(raw: str | int | None, default: int = 1) -> int:
    """Parse a lookback in years, falling back to ``default`` instead of failing.

    Only the leading integer is read, so ``"3"`` and ``"3y"`` both give 3.
    """
    if raw is None:
        return default
    if isinstance(raw, int):
        return raw
    match = _LEADING_INT.match(raw)
    if match is None:
        return default
    try:
        return int(match.group(1))
    except ValueError:
        # digit strings beyond the interpreter's int conversion limit
        return default


def flag_enabled(raw: str | None) -> bool:
    return raw == "true"


def flags_to_windows(flags: Mapping[str, str | None]) -> tuple[int, ...]:
    return tuple(
        window for name, window in INDICATOR_FLAGS.items() if flag_enabled(flags.get(name))
    )


def shift_years(moment: datetime, years: int) -> datetime:
    """Move ``moment`` back by whole calendar years.

    Feb 29 landing on a non-leap year rolls over to Mar 1. The target year is
    clamped to what ``datetime`` can represent.
    """
    target_year = min(max(moment.year - years, MINYEAR), MAXYEAR)
    try:
        return moment.replace(year=target_year)
    except ValueError:
        return moment.replace(year=target_year, month=3, day=1)


def resolve(
    symbol_input: str | None,
    years_input: str | int | None,
    *,
    windows: Iterable[int] = (),
    default_symbol: str = "AAPL",
    default_years: int = 1,
    now: datetime | None = None,
) -> QueryRange:
    end = now if now is not None else datetime.now(UTC).replace(tzinfo=None)
    years = parse_years(years_input, default=default_years)
    return QueryRange(
        symbol=normalize_symbol(symbol_input, default_symbol=default_symbol),
        start=shift_years(end, years),
        end=end,
        years=years,
        windows=tuple(windows),
    )
