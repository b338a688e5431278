from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pricetrend.domain.models import Bar, QueryRange
from pricetrend.indicators import indicator_field

NO_DATA_MESSAGE = "No historical data found. Please sync data first."


def bar_record(
    bar: Bar,
    index: int,
    indicators: Mapping[int, Sequence[float | None]],
) -> dict[str, Any]:
    record: dict[str, Any] = {
        "symbol": bar.symbol,
        "date": bar.date.isoformat(),
        "open": bar.open,
        "high": bar.high,
        "low": bar.low,
        "close": bar.close,
    }
    if bar.volume is not None:
        record["volume"] = int(bar.volume)
    for window, series in indicators.items():
        value = series[index]
        if value is not None:
            record[indicator_field(window)] = value
    return record


def assemble(
    query: QueryRange,
    bars: Sequence[Bar],
    indicators: Mapping[int, Sequence[float | None]],
) -> dict[str, Any]:
    """Join bars with their indicator columns into the history payload."""
    if not bars:
        return {"data": [], "message": NO_DATA_MESSAGE, "needsSync": True}

    for window, series in indicators.items():
        if len(series) != len(bars):
            raise ValueError(
                f"indicator ma{window} has {len(series)} values for {len(bars)} bars"
            )

    data = [bar_record(bar, i, indicators) for i, bar in enumerate(bars)]
    return {
        "data": data,
        "stats": {
            "totalRecords": len(data),
            "startDate": data[0]["date"],
            "endDate": data[-1]["date"],
            "years": query.years,
        },
    }
