from __future__ import annotations

from datetime import date

import pytest

from folio.core.marketdata.types import HistoricalPoint, Quote
from folio.core.portfolio.portfolio_schema import Position
from folio.core.portfolio.service import PortfolioService


class FakeMarket:
    def __init__(self) -> None:
        self.quote_calls: list[list[str]] = []
        self.history_calls: list[tuple[list[str], str]] = []

    def fetch_quotes(self, symbols: list[str]) -> list[Quote]:
        self.quote_calls.append(list(symbols))
        prices = {"AAPL": 150.0, "MSFT": 400.0}
        return [Quote(s, prices[s], 1.0, 0.5) for s in symbols if s in prices]

    def fetch_historical(self, symbols: list[str], period: str) -> dict[str, list[HistoricalPoint]]:
        self.history_calls.append((list(symbols), period))
        return {
            "AAPL": [
                HistoricalPoint(date(2024, 1, 2), 100.0),
                HistoricalPoint(date(2024, 1, 3), 110.0),
                HistoricalPoint(date(2024, 1, 4), 120.0),
            ],
        }


def test_sources_are_required() -> None:
    with pytest.raises(ValueError):
        PortfolioService(None, FakeMarket())  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        PortfolioService(FakeMarket(), None)  # type: ignore[arg-type]


def test_snapshot_queries_each_symbol_once() -> None:
    market = FakeMarket()
    service = PortfolioService(market, market)
    positions = [
        Position(symbol="aapl", quantity=1, purchase_price=100.0),
        Position(symbol="AAPL", quantity=1, purchase_price=100.0),
        Position(symbol="XYZ", quantity=3, purchase_price=1.0, fallback_price=2.0),
    ]

    snapshot = service.snapshot(positions)

    assert market.quote_calls == [["AAPL", "XYZ"]]
    assert [h.symbol for h in snapshot.holdings] == ["AAPL", "XYZ"]
    assert snapshot.summary.total_value == 306.0
    body = snapshot.to_dict()
    assert "positions" not in body["holdings"][0]
    assert body["summary"]["total_cost"] == 203.0


def test_empty_snapshot_skips_quote_source() -> None:
    market = FakeMarket()
    snapshot = PortfolioService(market, market).snapshot([])
    assert market.quote_calls == []
    assert snapshot.summary.total_value == 0


def test_history_normalizes_period_and_builds_stats() -> None:
    market = FakeMarket()
    service = PortfolioService(market, market)
    positions = [Position(symbol="AAPL", quantity=2, purchase_price=90.0, trade_date=date(2024, 1, 3))]

    history = service.history(positions, "weird")

    assert market.history_calls == [(["AAPL"], "1M")]
    assert history.period == "1M"
    assert [p.value for p in history.points] == [0.0, 220.0, 240.0]
    assert history.chartable
    assert history.entry_points[0].value == 220.0
    assert history.stats.end_value == 240.0
    assert history.to_dict()["points"][1] == {"date": "2024-01-03", "value": 220.0}


def test_compare_returns_quotes_and_rebased_series() -> None:
    market = FakeMarket()
    result = PortfolioService(market, market).compare(["aapl", "nope"], "6M")

    assert result["period"] == "6M"
    aapl, nope = result["stocks"]
    assert aapl["quote"]["price"] == 150.0
    assert [p["price"] for p in aapl["historical"]] == [100.0, 110.0, 120.0]
    assert aapl["percent_change"][-1]["percent"] == pytest.approx(20.0)
    assert nope["quote"]["price"] == 0.0
    assert nope["historical"] == []


def test_load_csv_snapshot() -> None:
    market = FakeMarket()
    snapshot, parsed = PortfolioService(market, market).load_csv_snapshot(
        "Symbol,Quantity,Price\nMSFT,2,300\nBAD,0,1\n"
    )

    assert len(parsed.invalid_rows) == 1
    assert [h.symbol for h in snapshot.holdings] == ["MSFT"]
    assert snapshot.summary.total_gain == 200.0
