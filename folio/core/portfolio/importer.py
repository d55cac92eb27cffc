from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Literal

from folio.core.portfolio.csv_positions import ParsedRow
from folio.core.portfolio.portfolio_schema import Position

logger = logging.getLogger(__name__)

ImportStatus = Literal["pending", "importing", "success", "error"]

DEFAULT_IMPORT_DELAY_SECONDS = 0.3


@dataclass
class ImportItem:
    row_index: int
    position: Position
    status: ImportStatus = "pending"
    error: str | None = None


@dataclass(frozen=True)
class ImportReport:
    success: int
    failed: int

    @property
    def attempted(self) -> int:
        return self.success + self.failed


class BatchImporter:
    """Submit parsed positions one at a time, pausing between requests.

    Every item keeps its own status so a rerun can target only the failures.
    """

    def __init__(
        self,
        submit: Callable[[Position], Any],
        *,
        delay_seconds: float = DEFAULT_IMPORT_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not callable(submit):
            raise ValueError("submit must be callable")
        self.submit = submit
        self.delay_seconds = max(0.0, float(delay_seconds))
        self._sleep = sleep
        self.items: list[ImportItem] = []

    def load(self, rows: Iterable[ParsedRow]) -> list[ImportItem]:
        self.items = [
            ImportItem(row_index=row.row_index, position=row.to_position())
            for row in rows
            if row.is_valid
        ]
        return self.items

    def run(self) -> ImportReport:
        pending = [item for item in self.items if item.status == "pending"]
        return self._process(pending)

    def retry_failed(self) -> ImportReport:
        failed = [item for item in self.items if item.status == "error"]
        return self._process(failed)

    def retry(self, row_index: int) -> ImportItem:
        item = next((i for i in self.items if i.row_index == row_index), None)
        if item is None:
            raise KeyError(f"no import item for row {row_index}")
        self._submit_one(item)
        return item

    def items_with_status(self, status: ImportStatus) -> list[ImportItem]:
        return [item for item in self.items if item.status == status]

    def _process(self, items: list[ImportItem]) -> ImportReport:
        success = 0
        failed = 0
        for idx, item in enumerate(items):
            if idx > 0 and self.delay_seconds > 0:
                self._sleep(self.delay_seconds)
            if self._submit_one(item):
                success += 1
            else:
                failed += 1
        if failed:
            logger.warning("import finished: %d succeeded, %d failed", success, failed)
        else:
            logger.info("import finished: %d succeeded", success)
        return ImportReport(success=success, failed=failed)

    def _submit_one(self, item: ImportItem) -> bool:
        item.status = "importing"
        item.error = None
        try:
            self.submit(item.position)
        except Exception as exc:  # noqa: BLE001
            item.status = "error"
            item.error = str(exc) or "Failed to import"
            logger.warning("import failed for %s (row %d): %s", item.position.symbol, item.row_index, item.error)
            return False
        item.status = "success"
        return True
