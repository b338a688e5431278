from __future__ import annotations

import asyncio
import time
from datetime import date, datetime

import pytest

from pricetrend.domain.models import Bar, QueryRange
from pricetrend.service import load_history


class _MemoryStore:
    def __init__(self, bars: list[Bar]) -> None:
        self.bars = bars
        self.calls: list[tuple[str, datetime, datetime]] = []

    def fetch_bars(self, symbol: str, start: datetime, end: datetime) -> list[Bar]:
        self.calls.append((symbol, start, end))
        return [bar for bar in self.bars if bar.symbol == symbol]


class _SlowStore:
    def fetch_bars(self, symbol: str, start: datetime, end: datetime) -> list[Bar]:
        time.sleep(0.3)
        return []


class _BrokenStore:
    def fetch_bars(self, symbol: str, start: datetime, end: datetime) -> list[Bar]:
        raise ConnectionError("store offline")


def _query(symbol: str = "AAPL", windows: tuple[int, ...] = ()) -> QueryRange:
    return QueryRange(
        symbol=symbol,
        start=datetime(2025, 10, 17),
        end=datetime(2026, 10, 17),
        years=1,
        windows=windows,
    )


def _bars(closes: list[float]) -> list[Bar]:
    return [
        Bar(symbol="AAPL", date=date(2026, 1, 1 + i), open=c, high=c, low=c, close=c)
        for i, c in enumerate(closes)
    ]


def test_load_history_computes_requested_windows() -> None:
    store = _MemoryStore(_bars([10.0, 20.0, 30.0]))

    payload = asyncio.run(load_history(store, _query(windows=(2,))))

    assert [record.get("ma2") for record in payload["data"]] == [None, 15.0, 25.0]
    assert payload["stats"]["totalRecords"] == 3
    assert store.calls == [("AAPL", datetime(2025, 10, 17), datetime(2026, 10, 17))]


def test_load_history_reports_missing_data_as_success() -> None:
    payload = asyncio.run(load_history(_MemoryStore(_bars([1.0])), _query(symbol="ZZZZ")))

    assert payload["data"] == []
    assert payload["needsSync"] is True
    assert payload["message"]


def test_load_history_times_out_without_partial_payload() -> None:
    with pytest.raises(TimeoutError):
        asyncio.run(load_history(_SlowStore(), _query(), timeout_seconds=0.05))


def test_load_history_propagates_store_failure() -> None:
    with pytest.raises(ConnectionError, match="store offline"):
        asyncio.run(load_history(_BrokenStore(), _query()))
