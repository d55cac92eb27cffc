from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

from folio.core.marketdata.chart_fetcher import ChartFetcher, CloseSeries
from folio.core.marketdata.types import HistoricalPoint, Quote, normalize_period
from folio.core.orchestration.time_utils import utc_date

logger = logging.getLogger(__name__)

QUOTE_PERIOD = "5D"

T = TypeVar("T")


class MarketDataService:
    """Quote resolver and historical source backed by a ChartFetcher.

    Every symbol is fetched as its own task; the batch waits for the slowest one
    and a failing symbol degrades to a sentinel quote or an empty series.
    """

    def __init__(self, fetcher: ChartFetcher | None = None, *, max_workers: int = 8):
        self.fetcher = fetcher or ChartFetcher()
        self.max_workers = max(1, int(max_workers))

    def fetch_quotes(self, symbols: Iterable[str]) -> list[Quote]:
        wanted = normalize_symbols(symbols)
        return fan_out(wanted, self._quote_for, default=Quote.missing, max_workers=self.max_workers)

    def fetch_historical(self, symbols: Iterable[str], period: str) -> dict[str, list[HistoricalPoint]]:
        wanted = normalize_symbols(symbols)
        period_norm = normalize_period(period)
        series = fan_out(
            wanted,
            lambda symbol: self._history_for(symbol, period_norm),
            default=lambda symbol: [],
            max_workers=self.max_workers,
        )
        return dict(zip(wanted, series))

    def _quote_for(self, symbol: str) -> Quote:
        return quote_from_series(self.fetcher.fetch_close_series(symbol, QUOTE_PERIOD))

    def _history_for(self, symbol: str, period: str) -> list[HistoricalPoint]:
        series = self.fetcher.fetch_close_series(symbol, period)
        if series.error:
            logger.warning("history for %s %s degraded (%s): %s", symbol, period, series.source, series.error)
        return historical_from_series(series)


def fan_out(
    symbols: list[str],
    task: Callable[[str], T],
    *,
    default: Callable[[str], T],
    max_workers: int = 8,
) -> list[T]:
    """Run ``task`` per symbol concurrently, keeping input order.

    An exception for one symbol yields ``default(symbol)`` for that symbol only.
    """
    if not symbols:
        return []
    with ThreadPoolExecutor(max_workers=min(max_workers, len(symbols))) as pool:
        futures = [pool.submit(task, symbol) for symbol in symbols]
        results: list[T] = []
        for symbol, future in zip(symbols, futures):
            try:
                results.append(future.result())
            except Exception as exc:  # noqa: BLE001
                logger.warning("market data fetch failed for %s: %s", symbol, exc)
                results.append(default(symbol))
    return results


def normalize_symbols(symbols: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for symbol in symbols or []:
        key = str(symbol or "").strip().upper()
        if key:
            seen.setdefault(key, None)
    return list(seen)


def quote_from_series(series: CloseSeries) -> Quote:
    """Last close as price, change against the last close of the previous day."""
    if not series.points:
        return Quote.missing(series.symbol)
    last = series.points[-1]
    last_day = utc_date(last.ts)
    prev_close = next((p.close for p in reversed(series.points) if utc_date(p.ts) < last_day), None)
    if prev_close is None or prev_close == 0:
        return Quote(symbol=series.symbol, price=float(last.close), change=0.0, change_percent=0.0)
    change = float(last.close) - float(prev_close)
    return Quote(
        symbol=series.symbol,
        price=float(last.close),
        change=change,
        change_percent=change / float(prev_close) * 100.0,
    )


def historical_from_series(series: CloseSeries) -> list[HistoricalPoint]:
    return [HistoricalPoint(date=utc_date(p.ts), price=float(p.close)) for p in series.points]
