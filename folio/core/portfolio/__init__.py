from folio.core.portfolio.csv_positions import CsvParseResult, ParsedRow, parse_positions_csv
from folio.core.portfolio.importer import BatchImporter, ImportItem, ImportReport
from folio.core.portfolio.portfolio_schema import Holding, PortfolioHistoryPoint, PortfolioSummary, Position
from folio.core.portfolio.service import PortfolioHistory, PortfolioService, PortfolioSnapshot
from folio.core.portfolio.valuation import aggregate, build_history, is_chartable

__all__ = [
    "BatchImporter",
    "CsvParseResult",
    "Holding",
    "ImportItem",
    "ImportReport",
    "ParsedRow",
    "PortfolioHistory",
    "PortfolioHistoryPoint",
    "PortfolioService",
    "PortfolioSnapshot",
    "PortfolioSummary",
    "Position",
    "aggregate",
    "build_history",
    "is_chartable",
    "parse_positions_csv",
]
