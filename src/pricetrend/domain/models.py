from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime


@dataclass(slots=True, frozen=True)
class Bar:
    """One daily OHLCV observation for a symbol.

    Prices are passed through as stored; OHLC consistency is not checked.
    """

    symbol: str
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: int | None = None


@dataclass(slots=True, frozen=True)
class QueryRange:
    symbol: str
    start: datetime
    end: datetime
    years: int
    windows: tuple[int, ...] = ()


@dataclass(slots=True, frozen=True)
class SyncResult:
    symbol: str
    records_inserted: int
    start: datetime
    end: datetime
    years: int
    data_source: str
