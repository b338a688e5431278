from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from pricetrend.assembler import NO_DATA_MESSAGE, assemble
from pricetrend.domain.models import Bar, QueryRange
from pricetrend.indicators import compute_indicators


def _query(windows: tuple[int, ...] = (), years: int = 1) -> QueryRange:
    return QueryRange(
        symbol="AAPL",
        start=datetime(2025, 1, 1),
        end=datetime(2026, 1, 1),
        years=years,
        windows=windows,
    )


def _bars(closes: list[float], volume: int | None = 1_000) -> list[Bar]:
    return [
        Bar(
            symbol="AAPL",
            date=date(2025, 3, 3) + timedelta(days=i),
            open=close - 1,
            high=close + 2,
            low=close - 2,
            close=close,
            volume=volume,
        )
        for i, close in enumerate(closes)
    ]


def test_empty_bars_yield_sync_advisory() -> None:
    payload = assemble(_query(), [], {})

    assert payload == {"data": [], "message": NO_DATA_MESSAGE, "needsSync": True}
    assert "stats" not in payload
    assert "error" not in payload


def test_records_carry_prices_and_present_indicators_only() -> None:
    bars = _bars([10.0, 20.0, 30.0])
    indicators = compute_indicators([b.close for b in bars], (2,))

    payload = assemble(_query(windows=(2,)), bars, indicators)

    first, second, third = payload["data"]
    assert first == {
        "symbol": "AAPL",
        "date": "2025-03-03",
        "open": 9.0,
        "high": 12.0,
        "low": 8.0,
        "close": 10.0,
        "volume": 1_000,
    }
    assert second["ma2"] == 15.0
    assert third["ma2"] == 25.0


def test_unrequested_window_never_appears() -> None:
    bars = _bars([float(v) for v in range(1, 41)])
    indicators = compute_indicators([b.close for b in bars], (30,))

    payload = assemble(_query(windows=(30,)), bars, indicators)

    assert all("ma60" not in record for record in payload["data"])
    assert "ma30" not in payload["data"][28]
    assert payload["data"][29]["ma30"] == pytest.approx(15.5)
    assert payload["data"][39]["date"] == "2025-04-11"
    assert payload["stats"]["endDate"] == "2025-04-11"


def test_missing_volume_is_omitted() -> None:
    payload = assemble(_query(), _bars([5.0, 6.0], volume=None), {})

    assert all("volume" not in record for record in payload["data"])


def test_zero_volume_is_kept() -> None:
    payload = assemble(_query(), _bars([5.0], volume=0), {})

    assert payload["data"][0]["volume"] == 0


def test_stats_match_data() -> None:
    payload = assemble(_query(years=3), _bars([1.0, 2.0, 3.0, 4.0]), {})

    stats = payload["stats"]
    assert stats["totalRecords"] == len(payload["data"])
    assert stats["startDate"] == payload["data"][0]["date"]
    assert stats["endDate"] == payload["data"][-1]["date"]
    assert stats["years"] == 3
    assert "needsSync" not in payload


def test_misaligned_indicator_series_is_rejected() -> None:
    with pytest.raises(ValueError, match="indicator ma2 has 1 values for 2 bars"):
        assemble(_query(windows=(2,)), _bars([1.0, 2.0]), {2: [None]})
