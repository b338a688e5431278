from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date

import pandas as pd

from pricetrend.domain.models import Bar

OHLCV_COLUMNS = ["open", "high", "low", "close", "volume"]


class MarketDataProvider(ABC):
    @abstractmethod
    def fetch_ohlcv(self, symbol: str, start: date, end: date) -> pd.DataFrame:
        """Return daily OHLCV data indexed by date, both bounds inclusive."""


def frame_to_bars(symbol: str, frame: pd.DataFrame) -> list[Bar]:
    """Convert an OHLCV frame into bars for ``symbol`` in index order."""
    normalized_symbol = symbol.strip().upper()
    bars: list[Bar] = []
    for ts, row in frame.iterrows():
        volume = row.get("volume")
        bars.append(
            Bar(
                symbol=normalized_symbol,
                date=pd.Timestamp(ts).date(),
                open=float(row["open"]),
                high=float(row["high"]),
                low=float(row["low"]),
                close=float(row["close"]),
                volume=None if pd.isna(volume) else int(volume),
            )
        )
    return bars
