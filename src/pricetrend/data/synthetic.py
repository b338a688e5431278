from __future__ import annotations

from dataclasses import dataclass
from datetime import date

import numpy as np
import pandas as pd

from pricetrend.data.base import OHLCV_COLUMNS, MarketDataProvider

TRADING_DAYS_PER_YEAR = 252
MIN_PRICE = 0.01


@dataclass(slots=True)
class SyntheticConfig:
    base_price: float = 150.0
    annual_growth: float = 0.10
    daily_volatility: float = 0.02
    intraday_range: float = 0.02
    min_volume: int = 10_000_000
    max_volume: int = 60_000_000


class SyntheticProvider(MarketDataProvider):
    """Weekday random walk that closes at ``base_price`` on the last session.

    Used when no real market data is available for a symbol.
    """

    def __init__(self, config: SyntheticConfig | None = None, seed: int | None = None) -> None:
        self.config = config or SyntheticConfig()
        if self.config.base_price <= 0:
            raise ValueError("base_price must be greater than zero")
        self._rng = np.random.default_rng(seed)

    def fetch_ohlcv(self, symbol: str, start: date, end: date) -> pd.DataFrame:
        cfg = self.config
        index = pd.bdate_range(start, end)
        n = len(index)
        if n == 0:
            return pd.DataFrame(columns=OHLCV_COLUMNS, index=index)

        daily_growth = (1 + cfg.annual_growth) ** (1 / TRADING_DAYS_PER_YEAR) - 1
        changes = (self._rng.random(n) - 0.5) * 2 * cfg.daily_volatility - daily_growth
        # Walk backwards from the last close: close[i-1] = close[i] * (1 - change[i]).
        backward = np.cumprod(np.concatenate(([1.0], (1.0 - changes[1:])[::-1])))
        close = cfg.base_price * backward[::-1]

        day_range = close * cfg.intraday_range
        open_ = close + (self._rng.random(n) - 0.5) * day_range
        high = np.maximum(open_, close) + self._rng.random(n) * day_range * 0.5
        low = np.minimum(open_, close) - self._rng.random(n) * day_range * 0.5
        volume = self._rng.integers(cfg.min_volume, cfg.max_volume, size=n)

        return pd.DataFrame(
            {
                "open": np.maximum(MIN_PRICE, open_),
                "high": np.maximum(MIN_PRICE, high),
                "low": np.maximum(MIN_PRICE, low),
                "close": np.maximum(MIN_PRICE, close),
                "volume": volume,
            },
            index=index,
        )
