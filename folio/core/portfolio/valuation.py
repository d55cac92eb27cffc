from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import date

import pandas as pd

from folio.core.marketdata.types import HistoricalPoint, Quote
from folio.core.portfolio.portfolio_schema import (
    CostBasis,
    EntryPoint,
    Holding,
    HistoryStats,
    PortfolioHistoryPoint,
    PortfolioSummary,
    Position,
)

# A trend needs at least two points to be drawn.
MIN_CHART_POINTS = 2


def group_positions_by_symbol(positions: Iterable[Position]) -> dict[str, list[Position]]:
    grouped: dict[str, list[Position]] = {}
    for position in positions:
        grouped.setdefault(position.symbol, []).append(position)
    return grouped


def calculate_holdings(
    grouped: Mapping[str, Sequence[Position]],
    quotes: Iterable[Quote],
    *,
    fallback_prices: Mapping[str, float] | None = None,
) -> list[Holding]:
    """Value each symbol group against its quote.

    A quote that is absent or the zero sentinel counts as no quote: the holding is
    priced at the caller's fallback price (or the position source's own fallback)
    and carries no day change.
    """
    if quotes is None:
        raise TypeError("quotes must be an iterable of Quote, not None")

    quotes_by_symbol = {str(q.symbol).strip().upper(): q for q in quotes}
    fallbacks = {str(k).strip().upper(): float(v) for k, v in (fallback_prices or {}).items() if v is not None}

    holdings: list[Holding] = []
    for symbol, lots in grouped.items():
        quote = quotes_by_symbol.get(symbol)
        has_quote = quote is not None and not quote.is_missing
        if has_quote:
            current_price = float(quote.price)
            change = float(quote.change)
            day_change_percent = float(quote.change_percent)
        else:
            current_price = _fallback_price(symbol, lots, fallbacks)
            change = 0.0
            day_change_percent = 0.0

        total_quantity = float(sum(p.quantity for p in lots))
        known_costs = [p.cost for p in lots if p.cost is not None]
        total_cost = float(sum(known_costs))
        cost_basis = _cost_basis(known=len(known_costs), total=len(lots))
        avg_cost = total_cost / total_quantity if total_quantity > 0 else 0.0

        current_value = total_quantity * current_price
        unrealized_gain = current_value - total_cost
        if total_cost != 0:
            unrealized_gain_percent: float | None = unrealized_gain / total_cost * 100.0
        elif cost_basis == "unknown":
            unrealized_gain_percent = None
        else:
            unrealized_gain_percent = 0.0

        trade_dates = [p.trade_date for p in lots if p.trade_date is not None]
        holdings.append(
            Holding(
                symbol=symbol,
                positions=list(lots),
                total_quantity=total_quantity,
                avg_cost=avg_cost,
                total_cost=total_cost,
                cost_basis=cost_basis,
                current_price=current_price,
                current_value=current_value,
                unrealized_gain=unrealized_gain,
                unrealized_gain_percent=unrealized_gain_percent,
                day_change=change * total_quantity,
                day_change_percent=day_change_percent,
                initial_date=min(trade_dates) if trade_dates else None,
            )
        )

    return sorted(holdings, key=lambda h: (-h.current_value, h.symbol))


def calculate_summary(holdings: Sequence[Holding]) -> PortfolioSummary:
    if not holdings:
        return PortfolioSummary.empty()

    total_value = float(sum(h.current_value for h in holdings))
    total_cost = float(sum(h.total_cost for h in holdings))
    total_gain = total_value - total_cost
    total_gain_percent = total_gain / total_cost * 100.0 if total_cost != 0 else 0.0
    day_change = float(sum(h.day_change for h in holdings))
    # Value-weighted mean of the per-holding percentages, not day_change / total_value.
    if total_value != 0:
        day_change_percent = float(
            sum((h.current_value / total_value) * h.day_change_percent for h in holdings)
        )
    else:
        day_change_percent = 0.0

    return PortfolioSummary(
        total_value=total_value,
        total_cost=total_cost,
        total_gain=total_gain,
        total_gain_percent=total_gain_percent,
        day_change=day_change,
        day_change_percent=day_change_percent,
    )


def aggregate(
    positions: Iterable[Position],
    quotes: Iterable[Quote],
    *,
    fallback_prices: Mapping[str, float] | None = None,
) -> tuple[list[Holding], PortfolioSummary]:
    if positions is None:
        raise TypeError("positions must be an iterable of Position, not None")
    if quotes is None:
        raise TypeError("quotes must be an iterable of Quote, not None")
    holdings = calculate_holdings(
        group_positions_by_symbol(positions),
        quotes,
        fallback_prices=fallback_prices,
    )
    return holdings, calculate_summary(holdings)


def build_history(
    positions: Iterable[Position],
    historical: Mapping[str, Sequence[HistoricalPoint]],
) -> list[PortfolioHistoryPoint]:
    """Portfolio value on every date that appears in any symbol's series.

    Each lot is gated by its own trade date, so a later lot never backdates value to
    an earlier lot of the same symbol. Missing prices carry the symbol's last known
    price forward; before any price is known the symbol is worth 0. Lots without a
    trade date are left out.
    """
    prices = _price_frame(historical)
    if prices.empty:
        return []

    values = pd.Series(0.0, index=prices.index)
    for position in positions:
        if position.trade_date is None or position.quantity <= 0:
            continue
        if position.symbol not in prices.columns:
            continue
        held = prices.index >= pd.Timestamp(position.trade_date)
        values = values + prices[position.symbol].where(held, 0.0) * position.quantity

    return [PortfolioHistoryPoint(date=ts.date(), value=float(value)) for ts, value in values.items()]


def is_chartable(history: Sequence[PortfolioHistoryPoint]) -> bool:
    return len(history) >= MIN_CHART_POINTS


def entry_points(
    positions: Iterable[Position],
    history: Sequence[PortfolioHistoryPoint],
) -> list[EntryPoint]:
    if not history:
        return []
    points: list[EntryPoint] = []
    for position in positions:
        if position.trade_date is None:
            continue
        at_entry = next((p for p in history if p.date >= position.trade_date), history[-1])
        points.append(
            EntryPoint(
                symbol=position.symbol,
                date=position.trade_date,
                quantity=position.quantity,
                value=at_entry.value,
            )
        )
    return points


def history_stats(history: Sequence[PortfolioHistoryPoint]) -> HistoryStats:
    if not history:
        return HistoryStats()
    start = float(history[0].value)
    end = float(history[-1].value)
    change = end - start
    return HistoryStats(
        start_value=start,
        end_value=end,
        change=change,
        change_percent=change / start * 100.0 if start != 0 else 0.0,
        is_positive=end >= start,
        points=len(history),
    )


def comparison_series(
    historical: Mapping[str, Sequence[HistoricalPoint]],
    symbols: Iterable[str],
) -> dict[str, list[HistoricalPoint]]:
    by_symbol = {str(k).strip().upper(): v for k, v in historical.items()}
    result: dict[str, list[HistoricalPoint]] = {}
    for symbol in symbols:
        key = str(symbol or "").strip().upper()
        if not key or key in result:
            continue
        deduped: dict[date, float] = {}
        for point in by_symbol.get(key) or []:
            deduped.setdefault(point.date, float(point.price))
        result[key] = [HistoricalPoint(date=d, price=deduped[d]) for d in sorted(deduped)]
    return result


def percent_change_series(series: Sequence[HistoricalPoint]) -> list[tuple[date, float]]:
    """Rebase a price series to percent change from its first point."""
    if not series:
        return []
    base = float(series[0].price)
    if base == 0:
        return [(p.date, 0.0) for p in series]
    return [(p.date, (float(p.price) / base - 1.0) * 100.0) for p in series]


def _fallback_price(symbol: str, lots: Sequence[Position], fallbacks: Mapping[str, float]) -> float:
    if symbol in fallbacks:
        return fallbacks[symbol]
    for position in lots:
        if position.fallback_price:
            return float(position.fallback_price)
    return 0.0


def _cost_basis(*, known: int, total: int) -> CostBasis:
    if known == total:
        return "complete"
    if known == 0:
        return "unknown"
    return "partial"


def _price_frame(historical: Mapping[str, Sequence[HistoricalPoint]]) -> pd.DataFrame:
    """Wide date x symbol close frame, forward filled, 0 where nothing is known yet."""
    rows: list[tuple[str, pd.Timestamp, float]] = []
    for symbol, series in historical.items():
        key = str(symbol or "").strip().upper()
        for point in series or []:
            if point.price is None or pd.isna(point.price):
                continue
            rows.append((key, pd.Timestamp(point.date), float(point.price)))
    if not rows:
        return pd.DataFrame()

    frame = pd.DataFrame(rows, columns=["symbol", "date", "price"])
    # Several points on one date (intraday bars): the first one stands for the day.
    frame = frame.drop_duplicates(subset=["symbol", "date"], keep="first")
    wide = frame.pivot(index="date", columns="symbol", values="price").sort_index()
    return wide.ffill().fillna(0.0)
