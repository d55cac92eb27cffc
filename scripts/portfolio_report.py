from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from folio.core.backend.client import BackendClient
from folio.core.config.settings import Settings
from folio.core.logging_utils import configure_logging
from folio.core.marketdata.chart_fetcher import ChartFetcher
from folio.core.marketdata.market_data import MarketDataService
from folio.core.marketdata.types import PERIODS
from folio.core.portfolio.importer import BatchImporter
from folio.core.portfolio.service import PortfolioService

logger = logging.getLogger("portfolio_report")


def main() -> int:
    parser = argparse.ArgumentParser(description="Value a CSV of positions and print holdings, summary and history")
    parser.add_argument("csv_path", help="CSV file with at least Symbol and Quantity columns")
    parser.add_argument("--period", default="1M", choices=PERIODS)
    parser.add_argument("--no-history", action="store_true", default=False)
    parser.add_argument("--cache-only", action="store_true", default=False)
    parser.add_argument(
        "--import-to-backend",
        action="store_true",
        default=False,
        help="Also submit valid rows to FOLIO_BACKEND_URL (bearer token from FOLIO_BACKEND_TOKEN)",
    )
    args = parser.parse_args()

    settings = Settings.load()
    configure_logging(settings.log_level)

    raw_text = Path(args.csv_path).read_text(encoding="utf-8")
    fetcher = ChartFetcher(
        cache_dir=settings.cache_dir,
        cache_only=bool(args.cache_only or settings.cache_only),
        timeout=settings.request_timeout,
    )
    market = MarketDataService(fetcher, max_workers=settings.max_workers)
    service = PortfolioService(quote_source=market, history_source=market)

    snapshot, parsed = service.load_csv_snapshot(raw_text)
    if parsed.header_errors:
        for error in parsed.header_errors:
            print(f"ERROR | {error}", file=sys.stderr)
        return 2
    for row in parsed.invalid_rows:
        print(f"row {row.row_index} | {row.symbol or '-'} | {'; '.join(row.errors)}", file=sys.stderr)

    report = snapshot.to_dict()
    if not args.no_history:
        report["history"] = service.history(snapshot.positions, args.period).to_dict()
    print(json.dumps(report, indent=2, sort_keys=True))

    if args.import_to_backend:
        client = BackendClient(
            settings.backend_url,
            token_provider=lambda: os.getenv("FOLIO_BACKEND_TOKEN"),
            timeout=settings.request_timeout,
        )
        importer = BatchImporter(client.add_position, delay_seconds=settings.import_delay_seconds)
        importer.load(parsed.valid_rows)
        result = importer.run()
        print("---")
        print(f"imported={result.success} failed={result.failed}")
        for item in importer.items_with_status("error"):
            print(f"row {item.row_index} | {item.position.symbol} | {item.error}")
        if result.failed:
            return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
