from __future__ import annotations

from folio.core.marketdata.chart_fetcher import ChartFetcher, ClosePoint, CloseSeries, period_mapping
from folio.core.marketdata.market_data import MarketDataService, fan_out, quote_from_series
from folio.core.marketdata.types import (
    PERIODS,
    HistoricalPoint,
    HistoricalSource,
    Quote,
    QuoteSource,
    normalize_period,
    point_to_dict,
    quote_to_dict,
)

__all__ = [
    "ChartFetcher",
    "ClosePoint",
    "CloseSeries",
    "HistoricalPoint",
    "HistoricalSource",
    "MarketDataService",
    "PERIODS",
    "Quote",
    "QuoteSource",
    "fan_out",
    "normalize_period",
    "period_mapping",
    "point_to_dict",
    "quote_from_series",
    "quote_to_dict",
]
