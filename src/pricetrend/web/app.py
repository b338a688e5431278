from __future__ import annotations

import hmac
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any
from uuid import uuid4

import uvicorn
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from pricetrend.backtest import (
    InsufficientDataError,
    backtest_listing,
    backtest_payload,
    backtest_symbol,
)
from pricetrend.config import Settings
from pricetrend.data.synthetic import SyntheticConfig, SyntheticProvider
from pricetrend.data.yfinance_provider import YFinanceProvider
from pricetrend.rate_limit import SlidingWindowRateLimiter
from pricetrend.ranges import flags_to_windows, normalize_symbol, resolve
from pricetrend.service import load_history
from pricetrend.store import PriceStore
from pricetrend.sync import sync_payload, sync_symbol

logger = logging.getLogger(__name__)

HISTORY_ERROR = "Failed to fetch stock history"
SYNC_ERROR = "Failed to sync stock data"
SYNC_STATUS_ERROR = "Failed to check sync status"
BACKTEST_ERROR = "Failed to run backtest"
BACKTEST_LIST_ERROR = "Failed to fetch backtest results"


class SyncRequest(BaseModel):
    symbol: str | None = None
    years: int | None = Field(default=None, gt=0)


class BacktestRequest(BaseModel):
    symbol: str | None = None
    years: int = Field(default=3, gt=0)
    ma_period: int = Field(default=30, ge=1, alias="maPeriod")
    initial_capital: float = Field(
        default=100_000.0,
        gt=0,
        allow_inf_nan=False,
        alias="initialCapital",
    )


def _error(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _require_api_key(request: Request, settings: Settings) -> None:
    if not settings.api_key:
        return
    provided = request.headers.get("X-API-Key")
    if not provided:
        auth = request.headers.get("Authorization", "")
        if auth.lower().startswith("bearer "):
            provided = auth[7:].strip()
    if not provided or not hmac.compare_digest(provided, settings.api_key):
        raise HTTPException(status_code=401, detail="Unauthorized")


def _get_store(settings: Settings) -> PriceStore:
    # No I/O here; history reads connect inside the timed fetch.
    return PriceStore(settings.database_url)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    _get_store(Settings()).init_schema()
    yield


def create_app() -> FastAPI:
    settings = Settings()
    app = FastAPI(title=f"{settings.app_name} API", version="0.1.0", lifespan=_lifespan)
    limiter = SlidingWindowRateLimiter(settings.rate_limit_per_minute)

    @app.middleware("http")
    async def request_context_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        client = request.client.host if request.client else "unknown"
        request_id = request.headers.get("X-Request-ID", uuid4().hex)
        started = time.perf_counter()
        if request.url.path.startswith("/api/"):
            allowed, retry_after = limiter.allow(client)
            if not allowed:
                response: Response = JSONResponse(
                    status_code=429,
                    content={"detail": "Rate limit exceeded"},
                )
                response.headers["Retry-After"] = str(max(1, int(retry_after)))
            else:
                response = await call_next(request)
        else:
            response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time-Ms"] = f"{elapsed_ms:.2f}"
        logger.info(
            "%s %s status=%s request_id=%s duration_ms=%.2f",
            request.method,
            request.url.path,
            response.status_code,
            request_id,
            elapsed_ms,
        )
        return response

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        current = Settings()
        return {"status": "ok", "env": current.env, "app": current.app_name}

    @app.get("/readyz")
    def readyz() -> dict[str, str]:
        return {"status": "ready"}

    @app.get("/api/stocks/history", response_model=None)
    async def stock_history(
        symbol: str | None = None,
        years: str | None = None,
        ma30: str | None = None,
        ma60: str | None = None,
    ) -> dict[str, Any] | JSONResponse:
        current = Settings()
        query = resolve(
            symbol,
            years,
            windows=flags_to_windows({"ma30": ma30, "ma60": ma60}),
            default_symbol=current.default_symbol,
            default_years=current.default_years,
        )
        try:
            return await load_history(
                _get_store(current),
                query,
                timeout_seconds=current.store_timeout_seconds,
            )
        except TimeoutError:
            logger.warning(
                "Stock history read for %s timed out after %.2fs",
                query.symbol,
                current.store_timeout_seconds,
            )
            return _error(HISTORY_ERROR)
        except Exception:
            logger.exception("Error fetching stock history for %s", query.symbol)
            return _error(HISTORY_ERROR)

    @app.post("/api/stocks/sync", response_model=None)
    def stock_sync(req: SyncRequest, request: Request) -> dict[str, Any] | JSONResponse:
        current = Settings()
        _require_api_key(request, current)
        if req.symbol is None or not req.symbol.strip():
            return _error("Symbol is required", status_code=400)
        try:
            result = sync_symbol(
                _get_store(current),
                req.symbol,
                req.years or current.sync_years,
                provider=YFinanceProvider(),
                fallback=SyntheticProvider(
                    SyntheticConfig(base_price=current.synthetic_base_price),
                ),
            )
        except ValueError as exc:
            return _error(str(exc), status_code=400)
        except Exception:
            logger.exception("Error syncing stock data for %s", req.symbol)
            return _error(SYNC_ERROR)
        return sync_payload(result)

    @app.get("/api/stocks/sync", response_model=None)
    def stock_sync_status(symbol: str | None = None) -> dict[str, Any] | JSONResponse:
        current = Settings()
        try:
            store = _get_store(current)
            if symbol and symbol.strip():
                return store.symbol_status(normalize_symbol(symbol))
            return {"syncedSymbols": store.list_symbols()}
        except Exception:
            logger.exception("Error checking sync status")
            return _error(SYNC_STATUS_ERROR)

    @app.post("/api/stocks/backtest", response_model=None)
    def stock_backtest(req: BacktestRequest, request: Request) -> dict[str, Any] | JSONResponse:
        current = Settings()
        _require_api_key(request, current)
        if req.symbol is None or not req.symbol.strip():
            return _error("Symbol is required", status_code=400)
        try:
            run = backtest_symbol(
                _get_store(current),
                req.symbol,
                req.years,
                ma_period=req.ma_period,
                initial_capital=req.initial_capital,
            )
        except InsufficientDataError as exc:
            return JSONResponse(
                status_code=400,
                content={"error": str(exc), "needsSync": True},
            )
        except ValueError as exc:
            return _error(str(exc), status_code=400)
        except Exception:
            logger.exception("Error running backtest for %s", req.symbol)
            return _error(BACKTEST_ERROR)
        return backtest_payload(run)

    @app.get("/api/stocks/backtest", response_model=None)
    def stock_backtest_results(symbol: str | None = None) -> dict[str, Any] | JSONResponse:
        current = Settings()
        selected = symbol.strip().upper() if symbol and symbol.strip() else None
        try:
            rows = _get_store(current).list_backtests(symbol=selected, limit=20)
        except Exception:
            logger.exception("Error fetching backtest results")
            return _error(BACKTEST_LIST_ERROR)
        return backtest_listing(rows)

    return app


def run() -> None:
    uvicorn.run("pricetrend.web.app:create_app", factory=True, host="127.0.0.1", port=8000)


app = create_app()
