from __future__ import annotations

import asyncio
import logging
from typing import Any

from pricetrend.assembler import assemble
from pricetrend.domain.models import QueryRange
from pricetrend.indicators import compute_indicators
from pricetrend.store import PriceSeriesStore

logger = logging.getLogger(__name__)


async def load_history(
    store: PriceSeriesStore,
    query: QueryRange,
    *,
    timeout_seconds: float | None = None,
) -> dict[str, Any]:
    """Resolve one history request into its response payload.

    The store read runs in a worker thread and is the only step that waits.
    A timeout raises ``TimeoutError`` before anything is assembled.
    """
    bars = await asyncio.wait_for(
        asyncio.to_thread(store.fetch_bars, query.symbol, query.start, query.end),
        timeout=timeout_seconds,
    )
    logger.debug(
        "Fetched %s bars for %s between %s and %s",
        len(bars),
        query.symbol,
        query.start.date(),
        query.end.date(),
    )
    closes = [bar.close for bar in bars]
    indicators = compute_indicators(closes, query.windows) if bars else {}
    return assemble(query, bars, indicators)
