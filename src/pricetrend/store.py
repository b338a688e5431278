from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import UTC, date, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from pricetrend.domain.models import Bar

if TYPE_CHECKING:
    from collections.abc import Sequence

INSERT_BATCH_SIZE = 100


@dataclass(slots=True, frozen=True)
class StoredBacktest:
    result_id: int
    created_at: str
    symbol: str
    strategy_name: str
    start_date: str
    end_date: str
    initial_capital: float
    final_value: float
    total_return: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    max_drawdown: float


class PriceSeriesStore(Protocol):
    def fetch_bars(self, symbol: str, start: datetime, end: datetime) -> list[Bar]:
        """Return bars for ``symbol`` dated within [start, end], ascending by date."""
        ...


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


class PriceStore:
    """Daily bars keyed by (symbol, date) in SQLite or PostgreSQL."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("database_url must be non-empty")
        self.database_url = database_url
        self._is_postgres = database_url.startswith(("postgresql://", "postgres://"))
        self._sqlite_path: str | None
        if database_url.startswith("sqlite:///"):
            self._sqlite_path = database_url.removeprefix("sqlite:///")
        elif self._is_postgres:
            self._sqlite_path = None
        else:
            raise ValueError("database_url must start with sqlite:/// or postgresql://")

    def init_schema(self) -> None:
        with self._connect() as conn:
            self._run_schema_migrations(conn)
            conn.commit()

    def fetch_bars(
        self,
        symbol: str,
        start: date | datetime,
        end: date | datetime,
    ) -> list[Bar]:
        """Read-only; the schema must already exist (see ``init_schema``)."""
        with self._connect() as conn:
            cur = conn.cursor()
            self._execute(
                cur,
                """
                SELECT symbol, date, open, high, low, close, volume
                FROM stock_prices
                WHERE symbol = ? AND date >= ? AND date <= ?
                ORDER BY date ASC
                """,
                (symbol, _as_date(start).isoformat(), _as_date(end).isoformat()),
            )
            rows = cur.fetchall()
        return [self._row_to_bar(row) for row in rows]

    def replace_bars(self, symbol: str, bars: Sequence[Bar]) -> int:
        """Drop every stored bar of ``symbol`` and insert ``bars`` in batches.

        Rows colliding on (symbol, date) are skipped. Returns the number of
        bars submitted.
        """
        if not symbol.strip():
            raise ValueError("symbol must be non-empty")
        created_at = datetime.now(UTC).isoformat()
        if self._is_postgres:
            insert = """
                INSERT INTO stock_prices
                    (symbol, date, open, high, low, close, volume, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (symbol, date) DO NOTHING
                """
        else:
            insert = """
                INSERT OR IGNORE INTO stock_prices
                    (symbol, date, open, high, low, close, volume, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """

        inserted = 0
        with self._connect() as conn:
            self._run_schema_migrations(conn)
            cur = conn.cursor()
            self._execute(cur, "DELETE FROM stock_prices WHERE symbol = ?", (symbol,))
            for offset in range(0, len(bars), INSERT_BATCH_SIZE):
                batch = bars[offset : offset + INSERT_BATCH_SIZE]
                self._executemany(
                    cur,
                    insert,
                    [
                        (
                            bar.symbol,
                            bar.date.isoformat(),
                            float(bar.open),
                            float(bar.high),
                            float(bar.low),
                            float(bar.close),
                            self._to_int_or_none(bar.volume),
                            created_at,
                        )
                        for bar in batch
                    ],
                )
                inserted += len(batch)
            conn.commit()
        return inserted

    def symbol_status(self, symbol: str) -> dict[str, Any]:
        with self._connect() as conn:
            self._run_schema_migrations(conn)
            cur = conn.cursor()
            self._execute(
                cur,
                """
                SELECT COUNT(*), MIN(date), MAX(date)
                FROM stock_prices
                WHERE symbol = ?
                """,
                (symbol,),
            )
            row = cur.fetchone()
        count = int(row[0]) if row is not None else 0
        return {
            "symbol": symbol,
            "recordCount": count,
            "dateRange": {
                "from": row[1] if row is not None else None,
                "to": row[2] if row is not None else None,
            },
            "hasData": count > 0,
        }

    def list_symbols(self) -> list[dict[str, Any]]:
        with self._connect() as conn:
            self._run_schema_migrations(conn)
            cur = conn.cursor()
            self._execute(
                cur,
                """
                SELECT symbol, COUNT(*), MIN(date), MAX(date)
                FROM stock_prices
                GROUP BY symbol
                ORDER BY symbol
                """,
                (),
            )
            rows = cur.fetchall()
        return [
            {
                "symbol": str(row[0]),
                "recordCount": int(row[1]),
                "dateRange": {"from": row[2], "to": row[3]},
            }
            for row in rows
        ]

    def record_backtest(
        self,
        symbol: str,
        strategy_name: str,
        start: datetime,
        end: datetime,
        metrics: dict[str, float | int],
        trades: Sequence[dict[str, Any]],
    ) -> int:
        if not symbol.strip():
            raise ValueError("symbol must be non-empty")
        query = """
            INSERT INTO backtest_results
                (
                    created_at,
                    symbol,
                    strategy_name,
                    start_date,
                    end_date,
                    initial_capital,
                    final_value,
                    total_return,
                    total_trades,
                    winning_trades,
                    losing_trades,
                    max_drawdown,
                    trades_json
                )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """
        if self._is_postgres:
            query += " RETURNING id"
        params = (
            datetime.now(UTC).isoformat(),
            symbol,
            strategy_name,
            start.isoformat(),
            end.isoformat(),
            float(metrics["initial_capital"]),
            float(metrics["final_value"]),
            float(metrics["total_return"]),
            int(metrics["total_trades"]),
            int(metrics["winning_trades"]),
            int(metrics["losing_trades"]),
            float(metrics["max_drawdown"]),
            json.dumps(list(trades)),
        )
        with self._connect() as conn:
            self._run_schema_migrations(conn)
            cur = conn.cursor()
            self._execute(cur, query, params)
            if self._is_postgres:
                inserted = cur.fetchone()
                if inserted is None:
                    raise ValueError("Failed to read inserted backtest id")
                result_id = int(inserted[0])
            else:
                result_id = int(cur.lastrowid)
            conn.commit()
        return result_id

    def list_backtests(
        self,
        symbol: str | None = None,
        limit: int = 20,
    ) -> list[StoredBacktest]:
        if limit <= 0:
            raise ValueError("limit must be greater than zero")
        where = "WHERE symbol = ?" if symbol else ""
        params: tuple[Any, ...] = (symbol, int(limit)) if symbol else (int(limit),)
        with self._connect() as conn:
            self._run_schema_migrations(conn)
            cur = conn.cursor()
            self._execute(
                cur,
                f"""
                SELECT id, created_at, symbol, strategy_name, start_date, end_date,
                       initial_capital, final_value, total_return, total_trades,
                       winning_trades, losing_trades, max_drawdown
                FROM backtest_results
                {where}
                ORDER BY id DESC
                LIMIT ?
                """,
                params,
            )
            rows = cur.fetchall()
        return [
            StoredBacktest(
                result_id=int(row[0]),
                created_at=str(row[1]),
                symbol=str(row[2]),
                strategy_name=str(row[3]),
                start_date=str(row[4]),
                end_date=str(row[5]),
                initial_capital=float(row[6]),
                final_value=float(row[7]),
                total_return=float(row[8]),
                total_trades=int(row[9]),
                winning_trades=int(row[10]),
                losing_trades=int(row[11]),
                max_drawdown=float(row[12]),
            )
            for row in rows
        ]

    def _connect(self) -> Any:
        if self._is_postgres:
            try:
                import psycopg
            except ImportError as exc:  # pragma: no cover
                raise ValueError(
                    "PostgreSQL URL configured but psycopg is not installed."
                ) from exc
            return psycopg.connect(self.database_url)

        assert self._sqlite_path is not None
        path = Path(self._sqlite_path)
        if str(path) != ":memory:":
            path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(str(path))

    def _run_schema_migrations(self, conn: Any) -> None:
        cur = conn.cursor()
        if self._is_postgres:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS stock_prices (
                    id BIGSERIAL PRIMARY KEY,
                    symbol TEXT NOT NULL,
                    date TEXT NOT NULL,
                    open DOUBLE PRECISION NOT NULL,
                    high DOUBLE PRECISION NOT NULL,
                    low DOUBLE PRECISION NOT NULL,
                    close DOUBLE PRECISION NOT NULL,
                    volume BIGINT,
                    created_at TEXT NOT NULL,
                    UNIQUE (symbol, date)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS backtest_results (
                    id BIGSERIAL PRIMARY KEY,
                    created_at TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    strategy_name TEXT NOT NULL,
                    start_date TEXT NOT NULL,
                    end_date TEXT NOT NULL,
                    initial_capital DOUBLE PRECISION NOT NULL,
                    final_value DOUBLE PRECISION NOT NULL,
                    total_return DOUBLE PRECISION NOT NULL,
                    total_trades INTEGER NOT NULL,
                    winning_trades INTEGER NOT NULL,
                    losing_trades INTEGER NOT NULL,
                    max_drawdown DOUBLE PRECISION NOT NULL,
                    trades_json TEXT NOT NULL
                )
                """
            )
        else:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS stock_prices (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    symbol TEXT NOT NULL,
                    date TEXT NOT NULL,
                    open REAL NOT NULL,
                    high REAL NOT NULL,
                    low REAL NOT NULL,
                    close REAL NOT NULL,
                    volume INTEGER,
                    created_at TEXT NOT NULL,
                    UNIQUE (symbol, date)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS backtest_results (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    strategy_name TEXT NOT NULL,
                    start_date TEXT NOT NULL,
                    end_date TEXT NOT NULL,
                    initial_capital REAL NOT NULL,
                    final_value REAL NOT NULL,
                    total_return REAL NOT NULL,
                    total_trades INTEGER NOT NULL,
                    winning_trades INTEGER NOT NULL,
                    losing_trades INTEGER NOT NULL,
                    max_drawdown REAL NOT NULL,
                    trades_json TEXT NOT NULL
                )
                """
            )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS stock_prices_date_idx ON stock_prices (date)"
        )

    def _execute(self, cur: Any, query: str, params: tuple[Any, ...]) -> None:
        if self._is_postgres:
            cur.execute(query.replace("?", "%s"), params)
        else:
            cur.execute(query, params)

    def _executemany(self, cur: Any, query: str, rows: list[tuple[Any, ...]]) -> None:
        if self._is_postgres:
            cur.executemany(query.replace("?", "%s"), rows)
        else:
            cur.executemany(query, rows)

    @staticmethod
    def _row_to_bar(row: Sequence[Any]) -> Bar:
        return Bar(
            symbol=str(row[0]),
            date=date.fromisoformat(str(row[1])),
            open=float(row[2]),
            high=float(row[3]),
            low=float(row[4]),
            close=float(row[5]),
            volume=PriceStore._to_int_or_none(row[6]),
        )

    @staticmethod
    def _to_int_or_none(value: Any) -> int | None:
        if value is None:
            return None
        return int(value)
