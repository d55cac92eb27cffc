from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

CostBasis = Literal["complete", "partial", "unknown"]


class Position(BaseModel):
    """One purchase lot. Immutable once constructed."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    symbol: str
    trade_date: date | None = Field(default=None, alias="tradeDate")
    quantity: float = Field(ge=0.0)
    purchase_price: float | None = Field(default=None, ge=0.0, alias="purchasePrice")
    commission: float = Field(default=0.0, ge=0.0)
    fallback_price: float | None = Field(default=None, ge=0.0, alias="fallbackPrice")
    comment: str | None = None

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, value: str) -> str:
        symbol = str(value or "").strip().upper()
        if not symbol:
            raise ValueError("symbol cannot be empty")
        return symbol

    @field_validator("commission", mode="before")
    @classmethod
    def default_commission(cls, value: object) -> object:
        return 0.0 if value is None or value == "" else value

    @property
    def cost(self) -> float | None:
        if self.purchase_price is None:
            return None
        return self.purchase_price * self.quantity + self.commission

    @property
    def effective_price(self) -> float | None:
        """Purchase price with the commission spread over the shares."""
        cost = self.cost
        if cost is None:
            return None
        if self.quantity <= 0:
            return self.purchase_price
        return cost / self.quantity


class Holding(BaseModel):
    symbol: str
    positions: list[Position] = Field(default_factory=list)
    total_quantity: float
    avg_cost: float
    total_cost: float
    cost_basis: CostBasis
    current_price: float
    current_value: float
    unrealized_gain: float
    unrealized_gain_percent: float | None
    day_change: float
    day_change_percent: float
    initial_date: date | None = None


class PortfolioSummary(BaseModel):
    total_value: float = 0.0
    total_cost: float = 0.0
    total_gain: float = 0.0
    total_gain_percent: float = 0.0
    day_change: float = 0.0
    day_change_percent: float = 0.0

    @classmethod
    def empty(cls) -> PortfolioSummary:
        return cls()


class PortfolioHistoryPoint(BaseModel):
    date: date
    value: float


class EntryPoint(BaseModel):
    symbol: str
    date: date
    quantity: float
    value: float


class HistoryStats(BaseModel):
    start_value: float = 0.0
    end_value: float = 0.0
    change: float = 0.0
    change_percent: float = 0.0
    is_positive: bool = True
    points: int = 0
