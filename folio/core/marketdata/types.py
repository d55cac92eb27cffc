from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Literal, Protocol

Period = Literal["1D", "5D", "1M", "6M", "YTD", "1Y"]

PERIODS: tuple[str, ...] = ("1D", "5D", "1M", "6M", "YTD", "1Y")
DEFAULT_PERIOD = "1M"


@dataclass(frozen=True)
class Quote:
    symbol: str
    price: float
    change: float
    change_percent: float

    @classmethod
    def missing(cls, symbol: str) -> Quote:
        return cls(symbol=str(symbol or "").strip().upper(), price=0.0, change=0.0, change_percent=0.0)

    @property
    def is_missing(self) -> bool:
        return not self.price or self.price <= 0


@dataclass(frozen=True)
class HistoricalPoint:
    date: date
    price: float


class QuoteSource(Protocol):
    def fetch_quotes(self, symbols: list[str]) -> list[Quote]:
        """Return one quote per resolvable symbol; unresolvable symbols are absent or sentinel."""


class HistoricalSource(Protocol):
    def fetch_historical(self, symbols: list[str], period: str) -> dict[str, list[HistoricalPoint]]:
        """Return an ordered price series per symbol; an empty list is valid."""


def normalize_period(value: str | None) -> str:
    key = str(value or "").strip().upper()
    return key if key in PERIODS else DEFAULT_PERIOD


def quote_to_dict(quote: Quote) -> dict[str, object]:
    return {
        "symbol": quote.symbol,
        "price": float(quote.price),
        "change": float(quote.change),
        "changePercent": float(quote.change_percent),
    }


def point_to_dict(point: HistoricalPoint) -> dict[str, object]:
    return {"date": point.date.isoformat(), "price": float(point.price)}
