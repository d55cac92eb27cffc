from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from folio.core.marketdata.types import (
    HistoricalPoint,
    HistoricalSource,
    Quote,
    QuoteSource,
    normalize_period,
    point_to_dict,
    quote_to_dict,
)
from folio.core.portfolio.csv_positions import CsvParseResult, parse_positions_csv
from folio.core.portfolio.portfolio_schema import (
    EntryPoint,
    Holding,
    HistoryStats,
    PortfolioHistoryPoint,
    PortfolioSummary,
    Position,
)
from folio.core.portfolio.valuation import (
    aggregate,
    build_history,
    comparison_series,
    entry_points,
    history_stats,
    is_chartable,
    percent_change_series,
)

logger = logging.getLogger(__name__)


@dataclass
class PortfolioSnapshot:
    positions: list[Position]
    holdings: list[Holding]
    summary: PortfolioSummary

    def to_dict(self) -> dict[str, Any]:
        return {
            "holdings": [h.model_dump(mode="json", exclude={"positions"}) for h in self.holdings],
            "summary": self.summary.model_dump(mode="json"),
        }


@dataclass
class PortfolioHistory:
    period: str
    points: list[PortfolioHistoryPoint]
    entry_points: list[EntryPoint] = field(default_factory=list)
    stats: HistoryStats = field(default_factory=HistoryStats)

    @property
    def chartable(self) -> bool:
        return is_chartable(self.points)

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period,
            "chartable": self.chartable,
            "points": [p.model_dump(mode="json") for p in self.points],
            "entry_points": [e.model_dump(mode="json") for e in self.entry_points],
            "stats": self.stats.model_dump(mode="json"),
        }


class PortfolioService:
    """Runs the valuation core against injected quote and history sources.

    Both position sources (CSV text, backend records) end up here, so holdings,
    summaries and history are always computed by the same code.
    """

    def __init__(self, quote_source: QuoteSource, history_source: HistoricalSource):
        if quote_source is None:
            raise ValueError("quote_source is required")
        if history_source is None:
            raise ValueError("history_source is required")
        self.quote_source = quote_source
        self.history_source = history_source

    def snapshot(
        self,
        positions: Iterable[Position],
        *,
        fallback_prices: Mapping[str, float] | None = None,
    ) -> PortfolioSnapshot:
        lots = list(positions)
        symbols = list(dict.fromkeys(p.symbol for p in lots))
        quotes = self.quote_source.fetch_quotes(symbols) if symbols else []
        holdings, summary = aggregate(lots, quotes, fallback_prices=fallback_prices)
        return PortfolioSnapshot(positions=lots, holdings=holdings, summary=summary)

    def history(self, positions: Iterable[Position], period: str) -> PortfolioHistory:
        lots = list(positions)
        period_norm = normalize_period(period)
        symbols = list(dict.fromkeys(p.symbol for p in lots))
        historical = self.history_source.fetch_historical(symbols, period_norm) if symbols else {}
        points = build_history(lots, historical)
        if not is_chartable(points):
            logger.info("portfolio history for %s has %d point(s); not enough to chart", period_norm, len(points))
        return PortfolioHistory(
            period=period_norm,
            points=points,
            entry_points=entry_points(lots, points),
            stats=history_stats(points),
        )

    def compare(self, symbols: Iterable[str], period: str) -> dict[str, Any]:
        wanted = list(dict.fromkeys(str(s or "").strip().upper() for s in symbols if str(s or "").strip()))
        period_norm = normalize_period(period)
        quotes: list[Quote] = self.quote_source.fetch_quotes(wanted) if wanted else []
        by_symbol = {q.symbol: q for q in quotes}
        series: dict[str, list[HistoricalPoint]] = comparison_series(
            self.history_source.fetch_historical(wanted, period_norm) if wanted else {},
            wanted,
        )
        return {
            "period": period_norm,
            "stocks": [
                {
                    "quote": quote_to_dict(by_symbol.get(symbol) or Quote.missing(symbol)),
                    "historical": [point_to_dict(p) for p in series[symbol]],
                    "percent_change": [
                        {"date": d.isoformat(), "percent": pct} for d, pct in percent_change_series(series[symbol])
                    ],
                }
                for symbol in wanted
            ],
        }

    def load_csv_snapshot(self, raw_text: str) -> tuple[PortfolioSnapshot, CsvParseResult]:
        parsed = parse_positions_csv(raw_text)
        return self.snapshot(parsed.positions), parsed
