from __future__ import annotations

import logging
import os
import re
import secrets
from typing import Any, Callable

from pydantic import TypeAdapter, ValidationError
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from folio.core.config.settings import Settings
from folio.core.marketdata.chart_fetcher import ChartFetcher
from folio.core.marketdata.market_data import MarketDataService
from folio.core.marketdata.types import normalize_period, point_to_dict, quote_to_dict
from folio.core.orchestration.time_utils import now_iso
from folio.core.portfolio.csv_positions import parse_positions_csv
from folio.core.portfolio.portfolio_schema import Position
from folio.core.portfolio.service import PortfolioService

logger = logging.getLogger(__name__)

_SYMBOL_PATTERN = re.compile(r"^[A-Z0-9.\-^=]+$")
_POSITIONS = TypeAdapter(list[Position])
_MAX_SYMBOLS = 50


def create_app(service_factory: Callable[[], PortfolioService] | None = None) -> Starlette:
    app = Starlette(debug=False, routes=[
        Route("/api/health", endpoint=_health, methods=["GET"]),
        Route("/api/stocks/quotes", endpoint=_quotes, methods=["GET"]),
        Route("/api/stocks/chart", endpoint=_chart, methods=["GET"]),
        Route("/api/portfolio/summary", endpoint=_portfolio_summary, methods=["POST"]),
        Route("/api/portfolio/history", endpoint=_portfolio_history, methods=["POST"]),
        Route("/api/portfolio/csv", endpoint=_portfolio_csv, methods=["POST"]),
    ])
    app.state.service_factory = service_factory or _default_service_factory
    app.state.service_singleton = None
    return app


async def _health(request: Request) -> JSONResponse:
    return JSONResponse({"ok": True, "service": "folio-api", "as_of": now_iso()})


async def _quotes(request: Request) -> JSONResponse:
    auth_error = _check_auth(request)
    if auth_error:
        return auth_error

    raw = str(request.query_params.get("symbols", "") or "")
    if not raw.strip():
        return _error(400, "MISSING_SYMBOLS", "Symbols parameter is required")
    symbols = [s for s in (_normalize_symbol(part) for part in raw.split(",")) if s]
    if not symbols:
        return _error(422, "INVALID_SYMBOL", "Symbols must contain A-Z, 0-9, '.', '-', '^' or '='.")
    if len(symbols) > _MAX_SYMBOLS:
        return _error(400, "TOO_MANY_SYMBOLS", f"At most {_MAX_SYMBOLS} symbols per request.")

    quotes = await run_in_threadpool(_get_service(request).quote_source.fetch_quotes, symbols)
    return JSONResponse({"ok": True, "quotes": [quote_to_dict(q) for q in quotes]})


async def _chart(request: Request) -> JSONResponse:
    auth_error = _check_auth(request)
    if auth_error:
        return auth_error

    symbol = _normalize_symbol(request.query_params.get("symbol"))
    if not symbol:
        return _error(400, "MISSING_SYMBOL", "Symbol parameter is required")
    period = normalize_period(request.query_params.get("period"))

    historical = await run_in_threadpool(_get_service(request).history_source.fetch_historical, [symbol], period)
    points = historical.get(symbol) or []
    return JSONResponse({
        "ok": True,
        "symbol": symbol,
        "period": period,
        "points": [point_to_dict(p) for p in points],
    })


async def _portfolio_summary(request: Request) -> JSONResponse:
    auth_error = _check_auth(request)
    if auth_error:
        return auth_error

    payload, error = await _read_payload(request)
    if error:
        return error
    positions, error = _positions_from_payload(payload)
    if error:
        return error

    fallback_raw = payload.get("fallback_prices") or {}
    if not isinstance(fallback_raw, dict):
        return _error(422, "INVALID_FALLBACK_PRICES", "fallback_prices must be an object of symbol to price.")
    try:
        fallback_prices = {str(k).strip().upper(): float(v) for k, v in fallback_raw.items()}
    except (TypeError, ValueError):
        return _error(422, "INVALID_FALLBACK_PRICES", "fallback_prices values must be numbers.")

    snapshot = await run_in_threadpool(_get_service(request).snapshot, positions, fallback_prices=fallback_prices)
    return JSONResponse({"ok": True, "generated_at": now_iso(), "data": snapshot.to_dict()})


async def _portfolio_history(request: Request) -> JSONResponse:
    auth_error = _check_auth(request)
    if auth_error:
        return auth_error

    payload, error = await _read_payload(request)
    if error:
        return error
    positions, error = _positions_from_payload(payload)
    if error:
        return error

    history = await run_in_threadpool(_get_service(request).history, positions, str(payload.get("period", "") or ""))
    return JSONResponse({"ok": True, "generated_at": now_iso(), "data": history.to_dict()})


async def _portfolio_csv(request: Request) -> JSONResponse:
    auth_error = _check_auth(request)
    if auth_error:
        return auth_error

    payload, error = await _read_payload(request)
    if error:
        return error
    text = payload.get("csv")
    if not isinstance(text, str):
        return _error(422, "INVALID_CSV", "Field 'csv' must be a string.")

    parsed = parse_positions_csv(text)
    rows = [
        {
            "row_index": row.row_index,
            "symbol": row.symbol,
            "quantity": row.quantity,
            "purchase_price": row.purchase_price,
            "purchase_date": row.purchase_date,
            "commission": row.commission,
            "fallback_price": row.fallback_price,
            "errors": list(row.errors),
        }
        for row in parsed.rows
    ]
    return JSONResponse({
        "ok": not parsed.header_errors,
        "header_errors": parsed.header_errors,
        "valid": len(parsed.valid_rows),
        "invalid": len(parsed.invalid_rows),
        "rows": rows,
    })


def _default_service_factory() -> PortfolioService:
    settings = Settings.load()
    fetcher = ChartFetcher(
        cache_dir=settings.cache_dir,
        cache_only=settings.cache_only,
        timeout=settings.request_timeout,
    )
    market = MarketDataService(fetcher, max_workers=settings.max_workers)
    return PortfolioService(quote_source=market, history_source=market)


def _get_service(request: Request) -> PortfolioService:
    cached = getattr(request.app.state, "service_singleton", None)
    if cached is not None:
        return cached
    factory = getattr(request.app.state, "service_factory", None)
    if not callable(factory):
        raise RuntimeError("service_factory_unavailable")
    service = factory()
    request.app.state.service_singleton = service
    return service


async def _read_payload(request: Request) -> tuple[dict[str, Any], JSONResponse | None]:
    try:
        payload = await request.json()
    except Exception:
        return {}, _error(400, "INVALID_JSON", "Request body must be valid JSON.")
    if not isinstance(payload, dict):
        return {}, _error(400, "INVALID_PAYLOAD", "Request body must be a JSON object.")
    return payload, None


def _positions_from_payload(payload: dict[str, Any]) -> tuple[list[Position], JSONResponse | None]:
    raw = payload.get("positions")
    if not isinstance(raw, list):
        return [], _error(422, "INVALID_POSITIONS", "Field 'positions' must be a list.")
    try:
        return _POSITIONS.validate_python(raw), None
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        return [], _error(422, "INVALID_POSITIONS", f"{location}: {first.get('msg', 'invalid position')}")


def _check_auth(request: Request) -> JSONResponse | None:
    configured_key = str(os.getenv("FOLIO_API_KEY", "")).strip()
    if _to_bool(os.getenv("FOLIO_API_ALLOW_UNAUTH_LOCALHOST", "0")) and _is_localhost_client(request):
        return None
    if not configured_key:
        # No key configured means the API runs without authentication.
        return None
    header_key = str(request.headers.get("x-api-key", "")).strip()
    if header_key and secrets.compare_digest(header_key, configured_key):
        return None
    auth_header = str(request.headers.get("authorization", "")).strip()
    if auth_header.lower().startswith("bearer "):
        token = auth_header[7:].strip()
        if token and secrets.compare_digest(token, configured_key):
            return None
    logger.info("rejected unauthenticated request to %s", request.url.path)
    return _error(401, "UNAUTHORIZED", "Missing or invalid API key.")


def _normalize_symbol(value: Any) -> str | None:
    text = str(value or "").strip().upper()
    if not text or not _SYMBOL_PATTERN.fullmatch(text):
        return None
    return text


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def _error(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        {"ok": False, "error": {"code": str(code), "message": str(message)}},
        status_code=int(status),
    )


def _is_localhost_client(request: Request) -> bool:
    client = getattr(request, "client", None)
    host = str(getattr(client, "host", "") or "").strip()
    return host in {"127.0.0.1", "::1", "localhost", "testclient"}


app = create_app()
