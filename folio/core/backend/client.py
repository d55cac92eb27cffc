from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import requests
from pydantic import ValidationError

from folio.core.backend.models import CreateUserStockInput, DashboardOverview, UserStock
from folio.core.portfolio.portfolio_schema import Position

logger = logging.getLogger(__name__)

STOCKS_PATH = "/api/portfolio/stocks"
OVERVIEW_PATH = "/api/dashboard/overview"

TokenProvider = Callable[[], str | None]


class BackendError(RuntimeError):
    """Raised when the portfolio backend rejects a request or returns an unusable body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class BackendClient:
    """REST client for the user-stock CRUD and dashboard endpoints.

    The identity provider stays outside: ``token_provider`` is called per request
    and its bearer token, when present, is attached to the request.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token_provider: TokenProvider | None = None,
        session: requests.Session | None = None,
        timeout: float = 10.0,
    ):
        self.base_url = str(base_url or "").rstrip("/")
        self.token_provider = token_provider
        self.session = session or requests.Session()
        self.timeout = float(timeout)

    def list_stocks(self) -> list[UserStock]:
        data = self._request("GET", STOCKS_PATH)
        stocks: list[UserStock] = []
        for idx, item in enumerate(data.get("stocks") or []):
            try:
                stocks.append(UserStock.model_validate(item))
            except ValidationError as exc:
                record_id = item.get("id") if isinstance(item, dict) else None
                logger.warning(
                    "skipping malformed stock record %s (index %d): %s",
                    record_id, idx, exc.errors()[0].get("msg") if exc.errors() else exc,
                )
        return stocks

    def list_positions(self) -> list[Position]:
        return [stock.to_position() for stock in self.list_stocks()]

    def add_stock(self, payload: CreateUserStockInput) -> UserStock:
        data = self._request("POST", STOCKS_PATH, json=payload.to_payload())
        if not data.get("stock"):
            raise BackendError("No stock returned from server")
        return UserStock.model_validate(data["stock"])

    def add_position(self, position: Position) -> UserStock:
        return self.add_stock(CreateUserStockInput.from_position(position))

    def delete_stock(self, stock_id: str) -> None:
        self._request("DELETE", f"{STOCKS_PATH}/{stock_id}", expect_body=False)

    def dashboard_overview(self) -> DashboardOverview:
        data = self._request("GET", OVERVIEW_PATH)
        try:
            return DashboardOverview.model_validate(data)
        except ValidationError as exc:
            raise BackendError("Malformed dashboard overview") from exc

    def _request(self, method: str, path: str, *, json: Any = None, expect_body: bool = True) -> dict[str, Any]:
        if not self.base_url:
            raise BackendError("Backend URL is not configured (FOLIO_BACKEND_URL)")

        headers: dict[str, str] = {}
        token = self.token_provider() if callable(self.token_provider) else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=json, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise BackendError(f"Request to {path} failed: {exc}") from exc

        if response.status_code >= 400:
            message = _error_message(response) or f"HTTP {response.status_code}"
            if response.status_code == 401:
                logger.warning("backend rejected credentials for %s %s", method, path)
            raise BackendError(message, status_code=response.status_code)

        if not expect_body or not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise BackendError(f"Invalid JSON from {path}", status_code=response.status_code) from exc
        if not isinstance(data, dict):
            raise BackendError(f"Unexpected payload from {path}", status_code=response.status_code)
        if data.get("error"):
            raise BackendError(str(data["error"]), status_code=response.status_code)
        return data


def _error_message(response: requests.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return None
