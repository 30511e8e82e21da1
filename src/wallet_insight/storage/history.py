"""Best-effort persistence of computed analyses."""

from __future__ import annotations

import logging

from wallet_insight.cache.analysis_cache import WalletState
from wallet_insight.storage.database import DatabaseManager
from wallet_insight.storage.repos import (
    AnalysisResultDTO,
    AnalysisResultRepository,
    PortfolioSnapshotRepository,
)

logger = logging.getLogger(__name__)


class DatabaseHistorySink:
    """Records every computed WalletState to the history tables.

    Writes the scored result and the newest portfolio snapshot in one
    transaction. Database failures are logged and never reach the
    analysis caller.
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def record(self, state: WalletState) -> None:
        result = state.result
        try:
            async with self._db.get_async_session() as session:
                await AnalysisResultRepository(session).upsert(AnalysisResultDTO.from_result(result))
                if state.snapshots:
                    await PortfolioSnapshotRepository(session).upsert_snapshot(state.snapshots[-1])
        except Exception as e:
            logger.warning(
                "Failed to record analysis history for %s at %s: %s",
                result.wallet_address,
                result.computed_at,
                e,
            )
