from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from pricetrend.data.base import MarketDataProvider, frame_to_bars
from pricetrend.domain.models import SyncResult
from pricetrend.ranges import shift_years
from pricetrend.store import PriceStore

logger = logging.getLogger(__name__)


def sync_symbol(
    store: PriceStore,
    symbol: str | None,
    years: int,
    *,
    provider: MarketDataProvider,
    fallback: MarketDataProvider,
    now: datetime | None = None,
) -> SyncResult:
    """Reload the stored bars of ``symbol`` covering the last ``years`` years.

    Bars come from ``provider``; when it fails or has nothing for the range
    they are generated by ``fallback`` instead.
    """
    if symbol is None or not symbol.strip():
        raise ValueError("Symbol is required")
    if years <= 0:
        raise ValueError("years must be greater than zero")

    normalized = symbol.strip().upper()
    end = now if now is not None else datetime.now(UTC).replace(tzinfo=None)
    start = shift_years(end, years)

    data_source = "yfinance"
    try:
        frame = provider.fetch_ohlcv(normalized, start=start.date(), end=end.date())
    except Exception:
        logger.warning("Market data unavailable for %s", normalized, exc_info=True)
        frame = None

    if frame is None or frame.empty:
        logger.info("Generating simulated data for %s", normalized)
        frame = fallback.fetch_ohlcv(normalized, start=start.date(), end=end.date())
        data_source = "generated"

    bars = frame_to_bars(normalized, frame)
    inserted = store.replace_bars(normalized, bars)
    logger.info("Synced %s records for %s from %s", inserted, normalized, data_source)
    return SyncResult(
        symbol=normalized,
        records_inserted=inserted,
        start=start,
        end=end,
        years=years,
        data_source=data_source,
    )


def sync_payload(result: SyncResult) -> dict[str, Any]:
    return {
        "success": True,
        "message": f"Synced {result.records_inserted} records for {result.symbol}",
        "stats": {
            "symbol": result.symbol,
            "recordsInserted": result.records_inserted,
            "dateRange": {
                "from": result.start.isoformat(),
                "to": result.end.isoformat(),
            },
            "years": result.years,
            "dataSource": result.data_source,
        },
    }
