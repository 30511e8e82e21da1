"""Storage layer - Database schemas and repositories."""

from wallet_insight.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from wallet_insight.storage.history import DatabaseHistorySink
from wallet_insight.storage.models import (
    AnalysisResultModel,
    Base,
    PortfolioHoldingModel,
)
from wallet_insight.storage.repos import (
    AnalysisResultDTO,
    AnalysisResultRepository,
    PortfolioHoldingDTO,
    PortfolioSnapshotRepository,
)

__all__ = [
    "AnalysisResultDTO",
    "AnalysisResultModel",
    "AnalysisResultRepository",
    "Base",
    "DatabaseHistorySink",
    "DatabaseManager",
    "PortfolioHoldingDTO",
    "PortfolioHoldingModel",
    "PortfolioSnapshotRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
