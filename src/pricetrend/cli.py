from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

import pandas as pd

from pricetrend.backtest import backtest_listing, backtest_payload, backtest_symbol
from pricetrend.config import Settings
from pricetrend.data.synthetic import SyntheticConfig, SyntheticProvider
from pricetrend.data.yfinance_provider import YFinanceProvider
from pricetrend.logging_config import configure_logging
from pricetrend.ranges import INDICATOR_FLAGS, normalize_symbol, resolve
from pricetrend.service import load_history
from pricetrend.store import PriceStore
from pricetrend.sync import sync_payload, sync_symbol

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PriceTrend CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    history = subparsers.add_parser("history", help="Price history with moving averages")
    history.add_argument("--symbol", default=None)
    history.add_argument("--years", default=None)
    history.add_argument("--ma30", action="store_true")
    history.add_argument("--ma60", action="store_true")
    history.add_argument("--output", default=None, help="Write records to this CSV file")
    history.add_argument("--database-url", default=None)

    sync = subparsers.add_parser("sync", help="Reload stored bars for a symbol")
    sync.add_argument("--symbol", required=True)
    sync.add_argument("--years", type=int, default=None)
    sync.add_argument("--database-url", default=None)

    status = subparsers.add_parser("sync-status", help="Show stored bar coverage")
    status.add_argument("--symbol", default=None)
    status.add_argument("--database-url", default=None)

    backtest = subparsers.add_parser(
        "backtest",
        help="Run the moving-average strategy on stored bars",
    )
    backtest.add_argument("--symbol", required=True)
    backtest.add_argument("--years", type=int, default=3)
    backtest.add_argument("--ma-period", type=int, default=30)
    backtest.add_argument("--initial-capital", type=float, default=100_000.0)
    backtest.add_argument("--database-url", default=None)

    runs = subparsers.add_parser("backtest-runs", help="List recorded backtests")
    runs.add_argument("--symbol", default=None)
    runs.add_argument("--limit", type=int, default=20)
    runs.add_argument("--database-url", default=None)

    db_init = subparsers.add_parser("db-init", help="Initialize the price store schema")
    db_init.add_argument("--database-url", default=None)

    return parser


def _get_store(settings: Settings, override_database_url: str | None) -> PriceStore:
    store = PriceStore(override_database_url or settings.database_url)
    store.init_schema()
    return store


def _handle_history(args: argparse.Namespace, settings: Settings) -> int:
    windows = [window for flag, window in INDICATOR_FLAGS.items() if getattr(args, flag)]
    query = resolve(
        args.symbol,
        args.years,
        windows=windows,
        default_symbol=settings.default_symbol,
        default_years=settings.default_years,
    )
    store = _get_store(settings, args.database_url)
    payload = asyncio.run(
        load_history(store, query, timeout_seconds=settings.store_timeout_seconds)
    )

    if args.output and payload["data"]:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        pd.DataFrame(payload["data"]).to_csv(output, index=False)
        logger.info("Saved %s rows to %s", len(payload["data"]), output)
        return 0
    print(json.dumps(payload))
    return 0


def _handle_sync(args: argparse.Namespace, settings: Settings) -> int:
    years = settings.sync_years if args.years is None else args.years
    result = sync_symbol(
        _get_store(settings, args.database_url),
        args.symbol,
        years,
        provider=YFinanceProvider(),
        fallback=SyntheticProvider(SyntheticConfig(base_price=settings.synthetic_base_price)),
    )
    print(json.dumps(sync_payload(result)))
    return 0


def _handle_sync_status(args: argparse.Namespace, settings: Settings) -> int:
    store = _get_store(settings, args.database_url)
    if args.symbol:
        payload: dict[str, object] = store.symbol_status(normalize_symbol(args.symbol))
    else:
        payload = {"syncedSymbols": store.list_symbols()}
    print(json.dumps(payload))
    return 0


def _handle_backtest(args: argparse.Namespace, settings: Settings) -> int:
    run = backtest_symbol(
        _get_store(settings, args.database_url),
        args.symbol,
        args.years,
        ma_period=args.ma_period,
        initial_capital=args.initial_capital,
    )
    payload = backtest_payload(run)
    payload.pop("chartData")
    print(json.dumps(payload))
    return 0


def _handle_backtest_runs(args: argparse.Namespace, settings: Settings) -> int:
    store = _get_store(settings, args.database_url)
    symbol = normalize_symbol(args.symbol) if args.symbol else None
    print(json.dumps(backtest_listing(store.list_backtests(symbol=symbol, limit=args.limit))))
    return 0


def _handle_db_init(args: argparse.Namespace, settings: Settings) -> int:
    _get_store(settings, args.database_url)
    print(json.dumps({"status": "ok"}))
    return 0


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level)

    parser = _build_parser()
    args = parser.parse_args()

    try:
        if args.command == "history":
            raise SystemExit(_handle_history(args, settings))
        if args.command == "sync":
            raise SystemExit(_handle_sync(args, settings))
        if args.command == "sync-status":
            raise SystemExit(_handle_sync_status(args, settings))
        if args.command == "backtest":
            raise SystemExit(_handle_backtest(args, settings))
        if args.command == "backtest-runs":
            raise SystemExit(_handle_backtest_runs(args, settings))
        if args.command == "db-init":
            raise SystemExit(_handle_db_init(args, settings))
    except TimeoutError as exc:
        raise SystemExit("Price store read timed out") from exc
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    raise SystemExit("Unknown command")


if __name__ == "__main__":
    main()
