from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import cast

import pandas as pd
import yfinance as yf  # type: ignore[import-untyped]

from pricetrend.data.base import OHLCV_COLUMNS, MarketDataProvider

logger = logging.getLogger(__name__)


def _single_symbol_columns(frame: pd.DataFrame, symbol: str) -> pd.DataFrame:
    """Collapse yfinance's (field, ticker) column index to plain field names."""
    if not isinstance(frame.columns, pd.MultiIndex):
        return frame
    if symbol in frame.columns.get_level_values(-1):
        return cast(pd.DataFrame, frame.xs(symbol, axis=1, level=-1))
    flattened = frame.copy()
    flattened.columns = frame.columns.get_level_values(0)
    return flattened


def _session_dates(index: pd.Index) -> pd.DatetimeIndex:
    """Exchange-local timestamps as naive midnight dates."""
    stamps = pd.DatetimeIndex(index)
    if stamps.tz is not None:
        stamps = stamps.tz_localize(None)
    return stamps.normalize()


def _no_bars_message(ticker: str, start: date, end: date) -> str:
    return f"No daily bars from Yahoo Finance for {ticker} between {start} and {end}"


class YFinanceProvider(MarketDataProvider):
    """Daily split- and dividend-adjusted bars from Yahoo Finance."""

    def _download(self, symbol: str, start: date, end: date) -> pd.DataFrame:
        # yfinance treats ``end`` as exclusive.
        end_exclusive = (end + timedelta(days=1)).isoformat()
        frame = cast(
            pd.DataFrame,
            yf.download(
                symbol,
                start=start.isoformat(),
                end=end_exclusive,
                interval="1d",
                progress=False,
                auto_adjust=True,
                threads=False,
            ),
        )
        if not frame.empty:
            return frame

        logger.debug("Bulk download empty for %s, retrying via Ticker.history", symbol)
        return cast(
            pd.DataFrame,
            yf.Ticker(symbol).history(
                start=start.isoformat(),
                end=end_exclusive,
                interval="1d",
                auto_adjust=True,
            ),
        )

    def fetch_ohlcv(self, symbol: str, start: date, end: date) -> pd.DataFrame:
        ticker = symbol.strip().upper()
        if not ticker:
            raise ValueError("Symbol is required")
        if start > end:
            raise ValueError(f"start {start} is after end {end}")

        raw = self._download(ticker, start=start, end=end)
        if raw.empty:
            raise ValueError(_no_bars_message(ticker, start, end))
        frame = _single_symbol_columns(raw, ticker)
        frame = frame.rename(columns=lambda name: str(name).strip().lower())
        missing = [column for column in OHLCV_COLUMNS if column not in frame.columns]
        if missing:
            raise ValueError(f"Yahoo Finance response for {ticker} lacks columns {missing}")

        bars = frame[OHLCV_COLUMNS].copy()
        bars.index = _session_dates(bars.index)
        bars = bars[~bars.index.duplicated(keep="last")].sort_index()
        # Halted or not-yet-settled sessions come back with no close.
        bars = bars.dropna(subset=["close"])
        bars = bars.loc[pd.Timestamp(start) : pd.Timestamp(end)]
        if bars.empty:
            raise ValueError(_no_bars_message(ticker, start, end))
        return bars
