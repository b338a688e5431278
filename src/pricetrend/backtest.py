from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pricetrend.indicators import indicator_field, moving_average
from pricetrend.ranges import resolve

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pricetrend.domain.models import Bar, QueryRange
    from pricetrend.store import PriceStore, StoredBacktest

logger = logging.getLogger(__name__)

CLOSING_SIGNAL = "End of backtest - closing position"


class InsufficientDataError(ValueError):
    def __init__(self, needed: int, found: int) -> None:
        super().__init__(
            f"Not enough data. Need at least {needed} data points, found {found}. "
            "Please sync data first."
        )
        self.needed = needed
        self.found = found


@dataclass(slots=True, frozen=True)
class Trade:
    date: str
    side: str
    price: float
    shares: int
    value: float
    portfolio_value: float
    signal: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "type": self.side,
            "price": self.price,
            "shares": self.shares,
            "value": self.value,
            "portfolioValue": self.portfolio_value,
            "signal": self.signal,
        }


@dataclass(slots=True)
class BacktestResult:
    ma_period: int
    initial_capital: float
    final_value: float
    total_return: float
    winning_trades: int
    losing_trades: int
    max_drawdown: float
    buy_hold_return: float
    trades: list[Trade] = field(default_factory=list)
    daily: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total_trades(self) -> int:
        return len(self.trades)

    @property
    def win_rate(self) -> float:
        if not self.trades:
            return 0.0
        closed = max(1, self.winning_trades + self.losing_trades)
        return self.winning_trades / closed * 100

    @property
    def outperformance(self) -> float:
        return self.total_return - self.buy_hold_return


class BacktestEngine:
    """Long-only mean reversion against a trailing moving average.

    Buys with all available cash in whole shares when the close drops below
    the average and sells the whole position when it rises above it. Any
    open position is closed on the last bar. Returns and drawdown are in
    percent.
    """

    def __init__(self, ma_period: int = 30, initial_capital: float = 100_000.0) -> None:
        if ma_period < 1:
            raise ValueError("ma_period must be a positive integer")
        if not math.isfinite(initial_capital) or initial_capital <= 0:
            raise ValueError("initial_capital must be greater than zero")
        self.ma_period = ma_period
        self.initial_capital = float(initial_capital)

    @property
    def strategy_name(self) -> str:
        return f"MA{self.ma_period} Crossover"

    def run(self, bars: Sequence[Bar]) -> BacktestResult:
        if len(bars) < self.ma_period:
            raise InsufficientDataError(self.ma_period, len(bars))

        closes = [bar.close for bar in bars]
        averages = moving_average(closes, self.ma_period)
        ma_key = indicator_field(self.ma_period)

        trades: list[Trade] = []
        daily: list[dict[str, Any]] = []
        cash = self.initial_capital
        shares = 0
        entry_price = 0.0
        peak = self.initial_capital
        max_drawdown = 0.0
        wins = 0
        losses = 0

        for bar, price, ma in zip(bars, closes, averages, strict=True):
            day = bar.date.isoformat()
            value = cash + shares * price
            peak = max(peak, value)
            max_drawdown = max(max_drawdown, (peak - value) / peak * 100)

            signal: str | None = None
            if ma is not None:
                if price < ma and shares == 0:
                    bought = math.floor(cash / price) if price > 0 else 0
                    if bought > 0:
                        cost = bought * price
                        cash -= cost
                        shares = bought
                        entry_price = price
                        signal = "BUY"
                        trades.append(
                            Trade(
                                date=day,
                                side="buy",
                                price=price,
                                shares=shares,
                                value=cost,
                                portfolio_value=cash + shares * price,
                                signal=f"Price (${price:.2f}) < MA{self.ma_period} (${ma:.2f})",
                            )
                        )
                elif price > ma and shares > 0:
                    proceeds = shares * price
                    if proceeds - shares * entry_price > 0:
                        wins += 1
                    else:
                        losses += 1
                    cash += proceeds
                    signal = "SELL"
                    trades.append(
                        Trade(
                            date=day,
                            side="sell",
                            price=price,
                            shares=shares,
                            value=proceeds,
                            portfolio_value=cash,
                            signal=f"Price (${price:.2f}) > MA{self.ma_period} (${ma:.2f})",
                        )
                    )
                    shares = 0

            point: dict[str, Any] = {"date": day, "price": price}
            if ma is not None:
                point[ma_key] = ma
            point.update(
                {
                    "position": shares,
                    "cash": cash,
                    "portfolioValue": cash + shares * price,
                    "signal": signal,
                }
            )
            daily.append(point)

        last_price = closes[-1]
        if shares > 0:
            proceeds = shares * last_price
            if proceeds - shares * entry_price > 0:
                wins += 1
            else:
                losses += 1
            cash += proceeds
            trades.append(
                Trade(
                    date=bars[-1].date.isoformat(),
                    side="sell",
                    price=last_price,
                    shares=shares,
                    value=proceeds,
                    portfolio_value=cash,
                    signal=CLOSING_SIGNAL,
                )
            )

        first_price = closes[self.ma_period - 1]
        buy_hold = (last_price - first_price) / first_price * 100 if first_price else 0.0
        return BacktestResult(
            ma_period=self.ma_period,
            initial_capital=self.initial_capital,
            final_value=cash,
            total_return=(cash - self.initial_capital) / self.initial_capital * 100,
            winning_trades=wins,
            losing_trades=losses,
            max_drawdown=max_drawdown,
            buy_hold_return=buy_hold,
            trades=trades,
            daily=daily,
        )


@dataclass(slots=True, frozen=True)
class BacktestRun:
    query: QueryRange
    result: BacktestResult
    trading_days: int
    result_id: int


def backtest_symbol(
    store: PriceStore,
    symbol: str | None,
    years: int,
    *,
    ma_period: int = 30,
    initial_capital: float = 100_000.0,
    now: datetime | None = None,
) -> BacktestRun:
    """Run the moving-average strategy over stored bars and record the outcome."""
    if symbol is None or not symbol.strip():
        raise ValueError("Symbol is required")
    if years <= 0:
        raise ValueError("years must be greater than zero")
    engine = BacktestEngine(ma_period=ma_period, initial_capital=initial_capital)
    query = resolve(symbol, years, now=now)

    bars = store.fetch_bars(query.symbol, query.start, query.end)
    result = engine.run(bars)
    result_id = store.record_backtest(
        symbol=query.symbol,
        strategy_name=engine.strategy_name,
        start=query.start,
        end=query.end,
        metrics={
            "initial_capital": result.initial_capital,
            "final_value": result.final_value,
            "total_return": result.total_return,
            "total_trades": result.total_trades,
            "winning_trades": result.winning_trades,
            "losing_trades": result.losing_trades,
            "max_drawdown": result.max_drawdown,
        },
        trades=[trade.to_dict() for trade in result.trades],
    )
    logger.info(
        "Backtest %s for %s: %s trades, return %.2f%%",
        engine.strategy_name,
        query.symbol,
        result.total_trades,
        result.total_return,
    )
    return BacktestRun(query=query, result=result, trading_days=len(bars), result_id=result_id)


def backtest_payload(run: BacktestRun) -> dict[str, Any]:
    result = run.result
    return {
        "success": True,
        "id": run.result_id,
        "symbol": run.query.symbol,
        "strategy": {
            "name": f"MA{result.ma_period} Crossover Strategy",
            "description": (
                f"Buy when price goes below {result.ma_period}-day MA, "
                f"sell when price goes above {result.ma_period}-day MA"
            ),
            "maPeriod": result.ma_period,
        },
        "period": {
            "years": run.query.years,
            "startDate": run.query.start.isoformat(),
            "endDate": run.query.end.isoformat(),
            "tradingDays": run.trading_days,
        },
        "results": {
            "initialCapital": round(result.initial_capital, 2),
            "finalValue": round(result.final_value, 2),
            "totalReturn": round(result.total_return, 2),
            "totalTrades": result.total_trades,
            "winningTrades": result.winning_trades,
            "losingTrades": result.losing_trades,
            "winRate": round(result.win_rate, 2),
            "maxDrawdown": round(result.max_drawdown, 2),
            "buyHoldReturn": round(result.buy_hold_return, 2),
            "outperformance": round(result.outperformance, 2),
        },
        "trades": [trade.to_dict() for trade in result.trades],
        "chartData": result.daily,
    }


def backtest_listing(rows: Sequence[StoredBacktest]) -> dict[str, Any]:
    return {
        "results": [
            {
                "id": row.result_id,
                "symbol": row.symbol,
                "strategyName": row.strategy_name,
                "startDate": row.start_date,
                "endDate": row.end_date,
                "initialCapital": row.initial_capital,
                "finalValue": round(row.final_value, 2),
                "totalReturn": round(row.total_return, 2),
                "totalTrades": row.total_trades,
                "winningTrades": row.winning_trades,
                "losingTrades": row.losing_trades,
                "maxDrawdown": round(row.max_drawdown, 2),
                "createdAt": row.created_at,
            }
            for row in rows
        ]
    }
