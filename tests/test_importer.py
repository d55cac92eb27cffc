from __future__ import annotations

import pytest

from folio.core.portfolio.csv_positions import parse_positions_csv
from folio.core.portfolio.importer import BatchImporter
from folio.core.portfolio.portfolio_schema import Position

CSV_TEXT = "\n".join([
    "Symbol,Quantity,Price",
    "AAPL,10,150",
    "BAD,1,1",
    "NOPE,-1,1",
    "MSFT,2,300",
])


class FlakySubmitter:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.broken = {"BAD"}

    def __call__(self, position: Position) -> dict:
        self.calls.append(position.symbol)
        if position.symbol in self.broken:
            raise RuntimeError("Server rejected stock")
        return {"id": position.symbol}


def test_run_imports_valid_rows_with_delay_between_requests() -> None:
    submit = FlakySubmitter()
    sleeps: list[float] = []
    importer = BatchImporter(submit, delay_seconds=0.3, sleep=sleeps.append)
    importer.load(parse_positions_csv(CSV_TEXT).rows)

    report = importer.run()

    assert submit.calls == ["AAPL", "BAD", "MSFT"]
    assert sleeps == [0.3, 0.3]
    assert report.success == 2
    assert report.failed == 1
    assert report.attempted == 3
    failed = importer.items_with_status("error")
    assert [(i.row_index, i.error) for i in failed] == [(3, "Server rejected stock")]


def test_retry_failed_only_resubmits_failures() -> None:
    submit = FlakySubmitter()
    sleeps: list[float] = []
    importer = BatchImporter(submit, delay_seconds=0.3, sleep=sleeps.append)
    importer.load(parse_positions_csv(CSV_TEXT).rows)
    importer.run()

    submit.broken.clear()
    submit.calls.clear()
    sleeps.clear()
    report = importer.retry_failed()

    assert submit.calls == ["BAD"]
    assert sleeps == []
    assert report.success == 1
    assert all(item.status == "success" for item in importer.items)
    assert importer.items_with_status("error") == []


def test_retry_single_row() -> None:
    submit = FlakySubmitter()
    importer = BatchImporter(submit, delay_seconds=0, sleep=lambda _: None)
    importer.load(parse_positions_csv(CSV_TEXT).rows)
    importer.run()

    submit.broken.clear()
    item = importer.retry(3)
    assert item.status == "success"
    assert item.error is None

    with pytest.raises(KeyError):
        importer.retry(99)


def test_non_callable_submitter_is_rejected() -> None:
    with pytest.raises(ValueError):
        BatchImporter(None)  # type: ignore[arg-type]
