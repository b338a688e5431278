from __future__ import annotations

import logging
from datetime import date, datetime

import pandas as pd
import pytest

from pricetrend.data.synthetic import SyntheticProvider
from pricetrend.domain.models import SyncResult
from pricetrend.store import PriceStore
from pricetrend.sync import sync_payload, sync_symbol

NOW = datetime(2026, 1, 9, 12, 0)


class _Provider:
    def fetch_ohlcv(self, symbol: str, start: date, end: date) -> pd.DataFrame:
        index = pd.date_range("2026-01-05", periods=3, freq="D")
        return pd.DataFrame(
            {
                "open": [10.0, 11.0, 12.0],
                "high": [11.0, 12.0, 13.0],
                "low": [9.0, 10.0, 11.0],
                "close": [10.5, 11.5, 12.5],
                "volume": [100.0, float("nan"), 300.0],
            },
            index=index,
        )


class _EmptyProvider:
    def fetch_ohlcv(self, symbol: str, start: date, end: date) -> pd.DataFrame:
        raise ValueError(f"No data returned for symbol={symbol}")


class _OfflineProvider:
    def fetch_ohlcv(self, symbol: str, start: date, end: date) -> pd.DataFrame:
        raise ConnectionError("Failed to resolve query1.finance.yahoo.com")


def _store(tmp_path) -> PriceStore:
    store = PriceStore(f"sqlite:///{tmp_path / 'sync.db'}")
    store.init_schema()
    return store


def test_sync_symbol_stores_provider_bars(tmp_path) -> None:
    store = _store(tmp_path)

    result = sync_symbol(
        store,
        " aapl ",
        1,
        provider=_Provider(),
        fallback=SyntheticProvider(seed=1),
        now=NOW,
    )

    assert result.symbol == "AAPL"
    assert result.records_inserted == 3
    assert result.data_source == "yfinance"
    assert result.start == datetime(2025, 1, 9, 12, 0)
    bars = store.fetch_bars("AAPL", date(2026, 1, 1), date(2026, 1, 9))
    assert [bar.close for bar in bars] == [10.5, 11.5, 12.5]
    assert bars[1].volume is None


def test_sync_symbol_falls_back_to_generated_bars(tmp_path) -> None:
    store = _store(tmp_path)

    result = sync_symbol(
        store,
        "NEWCO",
        1,
        provider=_EmptyProvider(),
        fallback=SyntheticProvider(seed=7),
        now=NOW,
    )

    assert result.data_source == "generated"
    assert result.records_inserted > 250
    assert store.symbol_status("NEWCO")["recordCount"] == result.records_inserted


@pytest.mark.parametrize("symbol", [None, "", "   "])
def test_sync_symbol_requires_symbol(tmp_path, symbol: str | None) -> None:
    with pytest.raises(ValueError, match="Symbol is required"):
        sync_symbol(
            _store(tmp_path),
            symbol,
            1,
            provider=_Provider(),
            fallback=SyntheticProvider(seed=1),
        )


def test_sync_payload_shape() -> None:
    result = SyncResult(
        symbol="AAPL",
        records_inserted=5,
        start=datetime(2019, 1, 9),
        end=NOW,
        years=7,
        data_source="generated",
    )

    payload = sync_payload(result)

    assert payload["success"] is True
    assert payload["message"] == "Synced 5 records for AAPL"
    assert payload["stats"]["recordsInserted"] == 5
    assert payload["stats"]["dateRange"] == {
        "from": "2019-01-09T00:00:00",
        "to": "2026-01-09T12:00:00",
    }
    assert payload["stats"]["dataSource"] == "generated"


def test_sync_symbol_falls_back_when_provider_is_unreachable(
    tmp_path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    store = _store(tmp_path)

    with caplog.at_level(logging.WARNING, logger="pricetrend.sync"):
        result = sync_symbol(
            store,
            "AAPL",
            1,
            provider=_OfflineProvider(),
            fallback=SyntheticProvider(seed=3),
            now=NOW,
        )

    assert result.data_source == "generated"
    assert store.symbol_status("AAPL")["recordCount"] == result.records_inserted
    warning = next(r for r in caplog.records if r.levelno == logging.WARNING)
    assert warning.getMessage() == "Market data unavailable for AAPL"
    assert warning.exc_info is not None
    assert warning.exc_info[0] is ConnectionError
