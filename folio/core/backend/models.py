from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator

from folio.core.portfolio.portfolio_schema import Position


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UserStock(_CamelModel):
    id: str
    uid: str | None = None
    symbol: str
    quantity: float = Field(ge=0.0)
    purchase_price: float | None = Field(default=None, alias="purchasePrice")
    purchase_date: date | None = Field(default=None, alias="purchaseDate")
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")

    @field_validator("purchase_date", mode="before")
    @classmethod
    def date_only(cls, value: object) -> object:
        # The backend sometimes returns full timestamps for the purchase date.
        if isinstance(value, str) and len(value) > 10:
            return value[:10]
        return value or None

    def to_position(self) -> Position:
        return Position(
            symbol=self.symbol,
            trade_date=self.purchase_date,
            quantity=self.quantity,
            purchase_price=self.purchase_price,
        )


class CreateUserStockInput(_CamelModel):
    symbol: str
    quantity: float = Field(gt=0.0)
    purchase_price: float | None = Field(default=None, ge=0.0, alias="purchasePrice")
    purchase_date: date | None = Field(default=None, alias="purchaseDate")

    @classmethod
    def from_position(cls, position: Position) -> CreateUserStockInput:
        # The backend has no commission field, so the commission rides in the price.
        return cls(
            symbol=position.symbol,
            quantity=position.quantity,
            purchase_price=position.effective_price,
            purchase_date=position.trade_date,
        )

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OverviewItem(_CamelModel):
    date: str
    total_invested: float = Field(alias="totalInvested")
    total_value: float = Field(alias="totalValue")
    total_pnl_percent: float = Field(alias="totalPnlPercent")
    total_pnl_value: float = Field(alias="totalPnlValue")


class OverviewDeltas(_CamelModel):
    delta_pnl_percent: float = Field(alias="deltaPnlPercent")
    delta_pnl_value: float = Field(alias="deltaPnlValue")
    delta_value: float = Field(alias="deltaValue")


class DashboardOverview(_CamelModel):
    today: OverviewItem
    yesterday: OverviewItem | None = None
    deltas: OverviewDeltas | None = None
