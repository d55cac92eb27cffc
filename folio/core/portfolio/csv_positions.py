from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date

import pandas as pd
from pydantic import ValidationError

from folio.core.portfolio.portfolio_schema import Position

logger = logging.getLogger(__name__)

SYMBOL_HEADERS = ("symbol", "ticker", "stock")
QUANTITY_HEADERS = ("quantity", "qty", "shares", "amount")
PRICE_HEADERS = ("purchase price", "price", "cost", "purchaseprice")
DATE_HEADERS = ("trade date", "purchase date", "date", "tradedate", "purchasedate")
COMMISSION_HEADERS = ("commission", "fee")
FALLBACK_PRICE_HEADERS = ("current price", "last price", "market price")
OPEN_PRICE_HEADERS = ("open",)
COMMENT_HEADERS = ("comment", "note")

HEADER_ERROR = "CSV must contain Symbol and Quantity columns"

_YYYYMMDD = re.compile(r"^\d{8}$")
_ISO_DASH = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ISO_SLASH = re.compile(r"^\d{4}/\d{2}/\d{2}$")


@dataclass
class ParsedRow:
    row_index: int
    symbol: str
    quantity: float | None = None
    purchase_price: float | None = None
    purchase_date: str | None = None
    commission: float = 0.0
    fallback_price: float | None = None
    comment: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_position(self) -> Position:
        return Position(
            symbol=self.symbol,
            trade_date=date.fromisoformat(self.purchase_date) if self.purchase_date else None,
            quantity=float(self.quantity or 0.0),
            purchase_price=self.purchase_price,
            commission=self.commission,
            fallback_price=self.fallback_price,
            comment=self.comment,
        )


@dataclass
class CsvParseResult:
    rows: list[ParsedRow] = field(default_factory=list)
    header_errors: list[str] = field(default_factory=list)

    @property
    def valid_rows(self) -> list[ParsedRow]:
        return [row for row in self.rows if row.is_valid]

    @property
    def invalid_rows(self) -> list[ParsedRow]:
        return [row for row in self.rows if not row.is_valid]

    @property
    def positions(self) -> list[Position]:
        return [row.to_position() for row in self.valid_rows]


def parse_positions_csv(raw_text: str) -> CsvParseResult:
    """Parse position rows out of CSV text with a header row.

    Bad rows never abort the import: every row comes back with its own list of
    errors and only rows without errors become positions.
    """
    lines = [line for line in str(raw_text or "").strip().splitlines() if line.strip()]
    if not lines:
        return CsvParseResult()

    records = list(csv.reader(io.StringIO("\n".join(lines))))
    headers = [h.strip().lower() for h in records[0]]
    columns = _resolve_columns(headers)
    if columns["symbol"] is None or columns["quantity"] is None:
        return CsvParseResult(header_errors=[HEADER_ERROR])

    result = CsvParseResult()
    for offset, record in enumerate(records[1:], start=2):
        result.rows.append(_parse_row(record, columns, row_index=offset))

    logger.info(
        "parsed %d csv rows: %d valid, %d invalid",
        len(result.rows),
        len(result.valid_rows),
        len(result.invalid_rows),
    )
    return result


def normalize_date(value: str | None) -> str | None:
    """Canonicalise a trade date to YYYY-MM-DD, or None when it cannot be read."""
    text = str(value or "").strip()
    if not text:
        return None
    if _YYYYMMDD.match(text):
        candidate = f"{text[0:4]}-{text[4:6]}-{text[6:8]}"
    elif _ISO_DASH.match(text):
        candidate = text
    elif _ISO_SLASH.match(text):
        candidate = text.replace("/", "-")
    else:
        parsed = pd.to_datetime(text, errors="coerce")
        if parsed is None or pd.isna(parsed):
            return None
        return parsed.date().isoformat()
    try:
        return date.fromisoformat(candidate).isoformat()
    except ValueError:
        return None


def _resolve_columns(headers: list[str]) -> dict[str, int | None]:
    fallback_idx = _find_column(headers, FALLBACK_PRICE_HEADERS)
    open_idx = _find_column(headers, OPEN_PRICE_HEADERS)
    taken = {idx for idx in (fallback_idx, open_idx) if idx is not None}
    return {
        "symbol": _find_column(headers, SYMBOL_HEADERS),
        "quantity": _find_column(headers, QUANTITY_HEADERS),
        "price": _find_column(headers, PRICE_HEADERS, skip=taken),
        "date": _find_column(headers, DATE_HEADERS),
        "commission": _find_column(headers, COMMISSION_HEADERS),
        "fallback_price": fallback_idx,
        "open_price": open_idx,
        "comment": _find_column(headers, COMMENT_HEADERS),
    }


def _find_column(headers: list[str], names: tuple[str, ...], *, skip: set[int] | None = None) -> int | None:
    for name in names:
        for idx, header in enumerate(headers):
            if skip and idx in skip:
                continue
            if name in header:
                return idx
    return None


def _cell(record: list[str], idx: int | None) -> str:
    if idx is None or idx >= len(record):
        return ""
    return record[idx].strip()


def _parse_row(record: list[str], columns: dict[str, int | None], *, row_index: int) -> ParsedRow:
    row = ParsedRow(row_index=row_index, symbol=_cell(record, columns["symbol"]).upper())
    if not row.symbol:
        row.errors.append("Symbol is required")

    quantity = _to_float(_cell(record, columns["quantity"]) or "0")
    if quantity is None or quantity <= 0:
        row.errors.append("Quantity must be a positive number")
    row.quantity = quantity

    price_text = _cell(record, columns["price"])
    if price_text:
        price = _to_float(price_text)
        if price is None or price < 0:
            row.errors.append("Purchase price must be a non-negative number")
        else:
            row.purchase_price = price

    commission_text = _cell(record, columns["commission"])
    if commission_text:
        commission = _to_float(commission_text)
        if commission is None or commission < 0:
            row.errors.append("Commission must be a non-negative number")
        else:
            row.commission = commission

    date_text = _cell(record, columns["date"])
    if date_text:
        row.purchase_date = normalize_date(date_text)
        if row.purchase_date is None:
            row.errors.append("Invalid date format")

    # An empty or zero current price falls back to the open price.
    for key in ("fallback_price", "open_price"):
        fallback = _to_float(_cell(record, columns[key]))
        if fallback is not None and fallback > 0:
            row.fallback_price = fallback
            break

    row.comment = _cell(record, columns["comment"]) or None

    if row.is_valid:
        try:
            row.to_position()
        except ValidationError as exc:
            row.errors.extend(err.get("msg", "Invalid row") for err in exc.errors())
    return row


def _to_float(text: str) -> float | None:
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if pd.isna(value):
        return None
    return value
