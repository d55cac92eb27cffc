from __future__ import annotations

from datetime import date

import pytest

from folio.core.marketdata.types import HistoricalPoint, Quote
from folio.core.portfolio.portfolio_schema import PortfolioHistoryPoint, PortfolioSummary, Position
from folio.core.portfolio.valuation import (
    aggregate,
    build_history,
    calculate_holdings,
    comparison_series,
    entry_points,
    group_positions_by_symbol,
    history_stats,
    is_chartable,
    percent_change_series,
)


def _pos(symbol: str, quantity: float, price: float | None = None, trade_date: date | None = None, **kwargs) -> Position:
    return Position(symbol=symbol, quantity=quantity, purchase_price=price, trade_date=trade_date, **kwargs)


def _quote(symbol: str, price: float, change: float = 0.0, change_percent: float = 0.0) -> Quote:
    return Quote(symbol=symbol, price=price, change=change, change_percent=change_percent)


def _series(*pairs: tuple[date, float]) -> list[HistoricalPoint]:
    return [HistoricalPoint(date=d, price=p) for d, p in pairs]


def test_two_lots_merge_into_one_holding() -> None:
    positions = [
        _pos("AAPL", 10, 100.0, date(2024, 1, 2)),
        _pos("AAPL", 5, 120.0, date(2024, 3, 1)),
    ]
    holdings, summary = aggregate(positions, [_quote("AAPL", 150.0)])

    assert len(holdings) == 1
    holding = holdings[0]
    assert holding.symbol == "AAPL"
    assert holding.total_quantity == 15
    assert holding.total_cost == 1600
    assert holding.avg_cost == pytest.approx(106.67, abs=0.01)
    assert holding.current_value == 2250
    assert holding.unrealized_gain == 650
    assert holding.initial_date == date(2024, 1, 2)
    assert holding.cost_basis == "complete"
    assert summary.total_value == 2250
    assert summary.total_gain == 650


def test_symbols_merge_case_insensitively() -> None:
    grouped = group_positions_by_symbol([_pos("aapl", 1, 10.0), _pos(" AAPL ", 2, 10.0)])
    assert list(grouped) == ["AAPL"]
    assert len(grouped["AAPL"]) == 2


def test_day_change_percent_is_value_weighted() -> None:
    positions = [_pos("AAA", 1, 50.0), _pos("BBB", 1, 50.0)]
    quotes = [
        _quote("AAA", 100.0, change=2.0, change_percent=2.0),
        _quote("BBB", 300.0, change=-3.0, change_percent=-1.0),
    ]
    holdings, summary = aggregate(positions, quotes)

    assert [h.symbol for h in holdings] == ["BBB", "AAA"]
    assert summary.day_change_percent == pytest.approx(-0.25)
    assert summary.day_change == pytest.approx(-1.0)


def test_total_gain_is_value_minus_cost() -> None:
    positions = [
        _pos("AAA", 3, 10.1, commission=0.7),
        _pos("BBB", 7, 33.3),
        _pos("CCC", 1.5, 0.1),
    ]
    quotes = [_quote("AAA", 12.34), _quote("BBB", 31.01), _quote("CCC", 0.3)]
    holdings, summary = aggregate(positions, quotes)

    for holding in holdings:
        assert holding.unrealized_gain == holding.current_value - holding.total_cost
    assert summary.total_gain == summary.total_value - summary.total_cost
    assert summary.total_value == sum(h.current_value for h in holdings)


def test_commission_is_added_to_cost() -> None:
    holdings, _ = aggregate([_pos("AAPL", 10, 150.0, commission=5.0)], [_quote("AAPL", 160.0)])
    assert holdings[0].total_cost == 1505.0
    assert holdings[0].avg_cost == pytest.approx(150.5)


def test_missing_quotes_fall_back_to_zero() -> None:
    holdings, summary = aggregate([_pos("AAA", 2, 10.0), _pos("BBB", 1, 5.0)], [])

    assert all(h.current_price == 0 for h in holdings)
    assert summary.total_value == 0
    assert summary.total_gain == -25.0
    assert summary.day_change_percent == 0


def test_sentinel_quote_uses_fallback_price() -> None:
    positions = [_pos("AAA", 2, 10.0, fallback_price=11.0), _pos("BBB", 1, 5.0, fallback_price=4.0)]
    holdings, _ = aggregate(
        positions,
        [Quote.missing("AAA"), Quote.missing("BBB")],
        fallback_prices={"bbb": 6.0},
    )
    by_symbol = {h.symbol: h for h in holdings}

    assert by_symbol["AAA"].current_price == 11.0
    assert by_symbol["BBB"].current_price == 6.0
    assert by_symbol["AAA"].day_change == 0


def test_cost_basis_tri_state() -> None:
    positions = [
        _pos("UNK", 3, None),
        _pos("ZERO", 3, 0.0),
        _pos("PART", 1, 10.0),
        _pos("PART", 1, None),
    ]
    quotes = [_quote("UNK", 10.0), _quote("ZERO", 10.0), _quote("PART", 20.0)]
    by_symbol = {h.symbol: h for h in calculate_holdings(group_positions_by_symbol(positions), quotes)}

    assert by_symbol["UNK"].cost_basis == "unknown"
    assert by_symbol["UNK"].unrealized_gain_percent is None
    assert by_symbol["ZERO"].cost_basis == "complete"
    assert by_symbol["ZERO"].unrealized_gain_percent == 0.0
    assert by_symbol["PART"].cost_basis == "partial"
    assert by_symbol["PART"].total_cost == 10.0
    assert by_symbol["PART"].total_quantity == 2
    assert by_symbol["PART"].unrealized_gain_percent == pytest.approx(300.0)


def test_empty_positions_give_empty_summary() -> None:
    holdings, summary = aggregate([], [])
    assert holdings == []
    assert summary == PortfolioSummary.empty()


def test_none_quotes_is_a_type_error() -> None:
    with pytest.raises(TypeError):
        aggregate([_pos("AAPL", 1, 1.0)], None)


def test_history_carries_last_price_forward() -> None:
    d1, d2, d3 = date(2024, 5, 1), date(2024, 5, 2), date(2024, 5, 3)
    historical = {
        "XXX": _series((d1, 10.0), (d3, 12.0)),
        "YYY": _series((d2, 50.0)),
    }
    history = build_history([_pos("XXX", 1, 9.0, date(2024, 4, 1))], historical)

    assert [p.date for p in history] == [d1, d2, d3]
    assert [p.value for p in history] == [10.0, 10.0, 12.0]


def test_history_gates_each_lot_by_trade_date() -> None:
    dates = [date(2024, 5, 30), date(2024, 5, 31), date(2024, 6, 1), date(2024, 6, 3)]
    historical = {"AAPL": _series(*[(d, 100.0) for d in dates])}
    positions = [
        _pos("AAPL", 2, 90.0, date(2024, 6, 1)),
        _pos("AAPL", 1, 95.0, date(2024, 6, 2)),
    ]
    values = [p.value for p in build_history(positions, historical)]

    assert values == [0.0, 0.0, 200.0, 300.0]


def test_history_skips_undated_positions_and_keeps_zero_dates() -> None:
    historical = {"AAPL": _series((date(2024, 1, 1), 10.0), (date(2024, 1, 2), 11.0))}
    history = build_history(
        [_pos("AAPL", 5, 1.0), _pos("AAPL", 1, 1.0, date(2024, 1, 2))],
        historical,
    )

    assert [p.value for p in history] == [0.0, 11.0]
    assert is_chartable(history)


def test_history_first_point_of_a_date_wins() -> None:
    day = date(2024, 2, 1)
    historical = {"AAPL": _series((day, 10.0), (day, 11.0), (date(2024, 2, 2), 12.0))}
    history = build_history([_pos("AAPL", 1, 1.0, date(2024, 1, 1))], historical)

    assert [p.value for p in history] == [10.0, 12.0]


def test_history_with_no_prices_is_empty() -> None:
    assert build_history([_pos("AAPL", 1, 1.0, date(2024, 1, 1))], {"AAPL": []}) == []
    assert not is_chartable([PortfolioHistoryPoint(date=date(2024, 1, 1), value=1.0)])


def test_entry_points_and_stats() -> None:
    history = [
        PortfolioHistoryPoint(date=date(2024, 1, 1), value=100.0),
        PortfolioHistoryPoint(date=date(2024, 1, 3), value=150.0),
        PortfolioHistoryPoint(date=date(2024, 1, 4), value=90.0),
    ]
    positions = [
        _pos("AAA", 1, 1.0, date(2024, 1, 2)),
        _pos("BBB", 1, 1.0, date(2024, 2, 1)),
        _pos("CCC", 1, 1.0),
    ]
    points = entry_points(positions, history)

    assert [(p.symbol, p.value) for p in points] == [("AAA", 150.0), ("BBB", 90.0)]

    stats = history_stats(history)
    assert stats.start_value == 100.0
    assert stats.end_value == 90.0
    assert stats.change == -10.0
    assert stats.change_percent == pytest.approx(-10.0)
    assert stats.is_positive is False
    assert stats.points == 3
    assert history_stats([]).points == 0


def test_comparison_series_and_percent_change() -> None:
    historical = {
        "aapl": _series((date(2024, 1, 2), 110.0), (date(2024, 1, 1), 100.0), (date(2024, 1, 2), 120.0)),
    }
    series = comparison_series(historical, ["AAPL", "MSFT", "aapl"])

    assert list(series) == ["AAPL", "MSFT"]
    assert [p.price for p in series["AAPL"]] == [100.0, 110.0]
    assert series["MSFT"] == []

    changes = percent_change_series(series["AAPL"])
    assert changes[0] == (date(2024, 1, 1), 0.0)
    assert changes[1][1] == pytest.approx(10.0)
