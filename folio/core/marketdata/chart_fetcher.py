from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import pandas as pd
import requests
import yfinance as yf

from folio.core.marketdata.types import normalize_period
from folio.core.orchestration.cache import DiskTTLCache
from folio.core.orchestration.time_utils import parse_iso

logger = logging.getLogger(__name__)

PERIOD_MAPPING: dict[str, dict[str, Any]] = {
    "1D": {"period": "1d", "interval": "5m", "ttl_seconds": 300},
    "5D": {"period": "5d", "interval": "1h", "ttl_seconds": 900},
    "1M": {"period": "1mo", "interval": "1d", "ttl_seconds": 3600},
    "6M": {"period": "6mo", "interval": "1d", "ttl_seconds": 3600},
    "YTD": {"period": "ytd", "interval": "1d", "ttl_seconds": 3600},
    "1Y": {"period": "1y", "interval": "1d", "ttl_seconds": 3600},
}

RETRY_DELAYS = (0.0, 0.5, 1.0)

_YAHOO_CHART_URLS = (
    "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}",
    "https://query2.finance.yahoo.com/v8/finance/chart/{symbol}",
)
_YAHOO_HEADERS = {"User-Agent": "Mozilla/5.0"}


@dataclass(frozen=True)
class ClosePoint:
    ts: datetime
    close: float


@dataclass
class CloseSeries:
    symbol: str
    period: str
    points: list[ClosePoint]
    source: str  # live | cache | none
    error: str | None = None
    quality_flags: set[str] = field(default_factory=set)
    cache_hit: bool = False
    attempts: int = 0


class ChartFetcher:
    """Close-price series per symbol and period, cached on disk.

    Order of preference: fresh cache, live provider, stale cache, empty series.
    """

    def __init__(
        self,
        cache_dir: str = ".cache/charts",
        *,
        cache_only: bool | None = None,
        timeout: float = 10.0,
        retry_delays: tuple[float, ...] = RETRY_DELAYS,
    ):
        self.cache = DiskTTLCache(base_dir=cache_dir)
        if cache_only is None:
            cache_only = str(os.getenv("MARKETDATA_CACHE_ONLY", "0")).strip().lower() in {"1", "true", "yes", "on"}
        self.cache_only = bool(cache_only)
        self.timeout = float(timeout)
        self.retry_delays = tuple(retry_delays) or (0.0,)

    def fetch_close_series(self, symbol: str, period: str, *, force_revalidate: bool = False) -> CloseSeries:
        symbol_norm = str(symbol or "").strip().upper()
        period_norm = normalize_period(period)
        mapping = period_mapping(period_norm)
        cache_key = self._cache_key(symbol_norm, period_norm)

        if not force_revalidate:
            fresh = _points_from_payload(self.cache.get(cache_key) or {})
            if fresh:
                return CloseSeries(symbol_norm, period_norm, fresh, source="cache", cache_hit=True)

        stale = _points_from_payload(self.cache.get_stale(cache_key) or {})

        if self.cache_only and not force_revalidate:
            if stale:
                return CloseSeries(
                    symbol_norm, period_norm, stale, source="cache",
                    quality_flags={"CACHE_ONLY", "STALE_CACHE"}, cache_hit=True,
                )
            return CloseSeries(
                symbol_norm, period_norm, [], source="none",
                error="cache_only_miss", quality_flags={"CACHE_ONLY", "MISSING"},
            )

        last_error: str | None = None
        attempts = 0
        for delay in self.retry_delays:
            if delay > 0:
                time.sleep(delay)
            attempts += 1
            try:
                frame = self._history_with_yfinance(
                    symbol=symbol_norm,
                    period=str(mapping["period"]),
                    interval=str(mapping["interval"]),
                )
                points = _points_from_frame(frame)
                if points:
                    payload = {"points": [point_to_payload(p) for p in points]}
                    self.cache.set(cache_key, payload, ttl_seconds=int(mapping["ttl_seconds"]))
                    return CloseSeries(symbol_norm, period_norm, points, source="live", attempts=attempts)
                last_error = "empty_live"
            except Exception as exc:  # noqa: PERF203
                last_error = _one_line_error(str(exc))
                if _is_non_retryable_error(last_error):
                    break

        logger.warning("live chart fetch failed for %s %s: %s", symbol_norm, period_norm, last_error)
        if stale:
            return CloseSeries(
                symbol_norm, period_norm, stale, source="cache", error=last_error,
                quality_flags={"EMPTY_LIVE", "STALE_CACHE"}, cache_hit=True, attempts=attempts,
            )
        return CloseSeries(
            symbol_norm, period_norm, [], source="none", error=last_error or "empty_live",
            quality_flags={"EMPTY_LIVE", "MISSING"}, attempts=attempts,
        )

    def _cache_key(self, symbol: str, period: str) -> str:
        mapping = period_mapping(period)
        return f"close-series:{symbol}:{period}:{mapping['period']}:{mapping['interval']}"

    def _history_with_yfinance(self, symbol: str, period: str, interval: str) -> pd.DataFrame:
        try:
            frame = yf.Ticker(symbol).history(period=period, interval=interval)
            if not isinstance(frame, pd.DataFrame):
                raise RuntimeError("invalid_yfinance_response")
            return frame
        except Exception as exc:
            logger.debug("yfinance history failed for %s, trying chart api: %s", symbol, exc)
            return self._history_with_yahoo_chart_api(symbol=symbol, period=period, interval=interval)

    def _history_with_yahoo_chart_api(self, symbol: str, period: str, interval: str) -> pd.DataFrame:
        end_dt = datetime.now(timezone.utc)
        start_dt = period_start(period, end_dt)
        params = {
            "period1": int(start_dt.timestamp()),
            "period2": int(end_dt.timestamp()),
            "interval": interval,
            "includePrePost": "false",
        }
        payload: dict[str, Any] | None = None
        last_error: Exception | None = None
        for url in _YAHOO_CHART_URLS:
            try:
                response = requests.get(
                    url.format(symbol=symbol), params=params, timeout=self.timeout, headers=_YAHOO_HEADERS
                )
                response.raise_for_status()
                payload = response.json() or {}
                break
            except Exception as exc:  # noqa: PERF203
                last_error = exc
                continue
        if payload is None:
            raise RuntimeError(f"provider_unavailable:{_one_line_error(str(last_error))}") from last_error

        chart = payload.get("chart", {})
        if chart.get("error"):
            raise RuntimeError("provider_unavailable:chart_error")
        results = chart.get("result") or []
        if not results:
            raise RuntimeError("no_yahoo_results")

        result = results[0]
        timestamps = result.get("timestamp") or []
        quote_items = (result.get("indicators") or {}).get("quote") or []
        if not timestamps or not quote_items:
            raise RuntimeError("invalid_yahoo_response")
        closes = quote_items[0].get("close") or []

        rows = [
            {"ts": datetime.fromtimestamp(int(ts), tz=timezone.utc), "close": float(close)}
            for ts, close in zip(timestamps, closes)
            if close is not None
        ]
        if not rows:
            raise RuntimeError("empty_live")
        return pd.DataFrame(rows)


def period_mapping(period: str) -> dict[str, Any]:
    return dict(PERIOD_MAPPING[normalize_period(period)])


def period_start(period: str, end_dt: datetime) -> datetime:
    value = str(period or "").strip().lower()
    if value == "1d":
        return end_dt - timedelta(days=1)
    if value == "5d":
        return end_dt - timedelta(days=5)
    if value == "6mo":
        return end_dt - pd.DateOffset(months=6)
    if value == "ytd":
        return datetime(end_dt.year, 1, 1, tzinfo=timezone.utc)
    if value == "1y":
        return end_dt - pd.DateOffset(years=1)
    return end_dt - pd.DateOffset(months=1)


def point_to_payload(point: ClosePoint) -> dict[str, Any]:
    return {"ts": point.ts.isoformat(), "close": float(point.close)}


def _points_from_payload(payload: dict[str, Any]) -> list[ClosePoint]:
    raw = payload.get("points", [])
    if not isinstance(raw, list):
        return []
    by_ts: dict[datetime, float] = {}
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            by_ts[parse_iso(str(item["ts"])).astimezone(timezone.utc)] = float(item["close"])
        except (KeyError, TypeError, ValueError):
            continue
    return [ClosePoint(ts=ts, close=by_ts[ts]) for ts in sorted(by_ts)]


def _points_from_frame(frame: pd.DataFrame) -> list[ClosePoint]:
    if frame is None or frame.empty:
        return []

    work = frame.rename(columns={"Close": "close", "Datetime": "ts", "Date": "ts"})
    if "ts" not in work.columns:
        work = work.reset_index()
        work = work.rename(columns={work.columns[0]: "ts"})
    if "close" not in work.columns:
        return []

    work = work.assign(
        ts=pd.to_datetime(work["ts"], utc=True, errors="coerce"),
        close=pd.to_numeric(work["close"], errors="coerce"),
    )
    work = work.dropna(subset=["ts", "close"])
    work = work.sort_values("ts", kind="mergesort").drop_duplicates(subset=["ts"], keep="last")
    return [
        ClosePoint(ts=row.ts.to_pydatetime(), close=float(row.close))
        for row in work.itertuples(index=False)
    ]


def _one_line_error(text: str) -> str:
    return " ".join(str(text).split())[:180]


def _is_non_retryable_error(error: str | None) -> bool:
    value = str(error or "").lower()
    prefixes = ("provider_unavailable", "invalid_yahoo_response", "no_yahoo_results")
    return any(value.startswith(prefix) for prefix in prefixes)
