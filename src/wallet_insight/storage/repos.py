"""Repository pattern implementations for data access.

This module provides data access abstractions for analysis results and
the portfolio snapshots they were computed from.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from wallet_insight.ingestor.models import OrderingKey
from wallet_insight.profiler.models import PortfolioSnapshot
from wallet_insight.scoring.models import AnalysisResult
from wallet_insight.storage.models import AnalysisResultModel, PortfolioHoldingModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Stored frontier of a wallet that had no events when analysed.
NO_EVENTS_SLOT = -1
NO_EVENTS_INDEX = -1


def _insert_for(session: AsyncSession) -> Any:
    bind = session.get_bind()
    return pg_insert if bind.dialect.name == "postgresql" else sqlite_insert


@dataclass
class AnalysisResultDTO:
    """Data transfer object for analysis results."""

    wallet_address: str
    computed_at_slot: int
    computed_at_index: int
    score: float
    explanation: str
    degraded: bool
    risk_level: str
    features_json: str
    windows_json: str
    holdings_json: str
    recommendations_json: str = "[]"
    data_gaps_json: str = "[]"
    token_insights_json: str = "[]"
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: AnalysisResultModel) -> AnalysisResultDTO:
        return cls(
            wallet_address=model.wallet_address,
            computed_at_slot=model.computed_at_slot,
            computed_at_index=model.computed_at_index,
            score=model.score,
            explanation=model.explanation,
            degraded=model.degraded,
            risk_level=model.risk_level,
            features_json=model.features_json,
            windows_json=model.windows_json,
            holdings_json=model.holdings_json,
            recommendations_json=model.recommendations_json,
            data_gaps_json=model.data_gaps_json,
            token_insights_json=model.token_insights_json,
            created_at=model.created_at,
        )

    @classmethod
    def from_result(cls, result: AnalysisResult) -> AnalysisResultDTO:
        record = result.to_record()
        return cls(
            wallet_address=result.wallet_address,
            computed_at_slot=result.computed_at.slot if result.computed_at else NO_EVENTS_SLOT,
            computed_at_index=result.computed_at.index if result.computed_at else NO_EVENTS_INDEX,
            score=result.score,
            explanation=result.explanation,
            degraded=result.degraded,
            risk_level=result.risk_level.value,
            features_json=str(record["features_json"]),
            windows_json=str(record["windows_json"]),
            holdings_json=str(record["holdings_json"]),
            recommendations_json=str(record["recommendations_json"]),
            data_gaps_json=str(record["data_gaps_json"]),
            token_insights_json=str(record["token_insights_json"]),
        )

    @property
    def computed_at(self) -> OrderingKey | None:
        if self.computed_at_slot == NO_EVENTS_SLOT:
            return None
        return OrderingKey(self.computed_at_slot, self.computed_at_index)

    def to_result(self) -> AnalysisResult:
        computed_at = self.computed_at
        return AnalysisResult.from_record(
            {
                "wallet_address": self.wallet_address,
                "computed_at_slot": computed_at.slot if computed_at else None,
                "computed_at_index": computed_at.index if computed_at else None,
                "score": self.score,
                "explanation": self.explanation,
                "degraded": self.degraded,
                "risk_level": self.risk_level,
                "features_json": self.features_json,
                "windows_json": self.windows_json,
                "holdings_json": self.holdings_json,
                "recommendations_json": self.recommendations_json,
                "data_gaps_json": self.data_gaps_json,
                "token_insights_json": self.token_insights_json,
            }
        )


class AnalysisResultRepository:
    """Repository for persisted analysis results."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(self, dto: AnalysisResultDTO) -> AnalysisResultDTO:
        """Upsert by (wallet_address, computed_at); re-analysing a frontier overwrites it."""
        now = datetime.now(UTC)
        values = {
            "wallet_address": dto.wallet_address,
            "computed_at_slot": dto.computed_at_slot,
            "computed_at_index": dto.computed_at_index,
            "score": dto.score,
            "explanation": dto.explanation,
            "degraded": dto.degraded,
            "risk_level": dto.risk_level,
            "features_json": dto.features_json,
            "windows_json": dto.windows_json,
            "holdings_json": dto.holdings_json,
            "recommendations_json": dto.recommendations_json,
            "data_gaps_json": dto.data_gaps_json,
            "token_insights_json": dto.token_insights_json,
        }
        insert = _insert_for(self.session)
        stmt = insert(AnalysisResultModel).values(**values, created_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["wallet_address", "computed_at_slot", "computed_at_index"],
            set_={
                "score": stmt.excluded.score,
                "explanation": stmt.excluded.explanation,
                "degraded": stmt.excluded.degraded,
                "risk_level": stmt.excluded.risk_level,
                "features_json": stmt.excluded.features_json,
                "windows_json": stmt.excluded.windows_json,
                "holdings_json": stmt.excluded.holdings_json,
                "recommendations_json": stmt.excluded.recommendations_json,
                "data_gaps_json": stmt.excluded.data_gaps_json,
                "token_insights_json": stmt.excluded.token_insights_json,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return dto

    async def get(self, wallet_address: str, computed_at: OrderingKey) -> AnalysisResultDTO | None:
        result = await self.session.execute(
            select(AnalysisResultModel).where(
                AnalysisResultModel.wallet_address == wallet_address,
                AnalysisResultModel.computed_at_slot == computed_at.slot,
                AnalysisResultModel.computed_at_index == computed_at.index,
            )
        )
        model = result.scalar_one_or_none()
        return AnalysisResultDTO.from_model(model) if model else None

    async def get_latest(self, wallet_address: str) -> AnalysisResultDTO | None:
        result = await self.session.execute(
            select(AnalysisResultModel)
            .where(AnalysisResultModel.wallet_address == wallet_address)
            .order_by(
                AnalysisResultModel.computed_at_slot.desc(),
                AnalysisResultModel.computed_at_index.desc(),
            )
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return AnalysisResultDTO.from_model(model) if model else None

    async def list_history(self, wallet_address: str, *, limit: int = 100) -> list[AnalysisResultDTO]:
        """Results for a wallet, newest frontier first."""
        result = await self.session.execute(
            select(AnalysisResultModel)
            .where(AnalysisResultModel.wallet_address == wallet_address)
            .order_by(
                AnalysisResultModel.computed_at_slot.desc(),
                AnalysisResultModel.computed_at_index.desc(),
            )
            .limit(limit)
        )
        return [AnalysisResultDTO.from_model(m) for m in result.scalars().all()]


@dataclass
class PortfolioHoldingDTO:
    """Data transfer object for one snapshot holding row."""

    wallet_address: str
    as_of_slot: int
    as_of_index: int
    token_mint: str
    quantity: Decimal
    cost_basis: Decimal
    cumulative_realized_gain: Decimal
    event_count: int
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: PortfolioHoldingModel) -> PortfolioHoldingDTO:
        return cls(
            wallet_address=model.wallet_address,
            as_of_slot=model.as_of_slot,
            as_of_index=model.as_of_index,
            token_mint=model.token_mint,
            quantity=Decimal(model.quantity),
            cost_basis=Decimal(model.cost_basis),
            cumulative_realized_gain=Decimal(model.cumulative_realized_gain),
            event_count=model.event_count,
            created_at=model.created_at,
        )

    def to_record(self) -> dict[str, object]:
        return {
            "wallet_address": self.wallet_address,
            "as_of_slot": self.as_of_slot,
            "as_of_index": self.as_of_index,
            "token_mint": self.token_mint,
            "quantity": str(self.quantity),
            "cost_basis": str(self.cost_basis),
            "cumulative_realized_gain": str(self.cumulative_realized_gain),
            "event_count": self.event_count,
        }


class PortfolioSnapshotRepository:
    """Repository for persisted portfolio snapshots (one row per holding)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert_snapshot(self, snapshot: PortfolioSnapshot) -> int:
        """Upsert every holding row of a snapshot. Returns rows written."""
        now = datetime.now(UTC)
        rows = [
            {
                "wallet_address": r["wallet_address"],
                "as_of_slot": r["as_of_slot"],
                "as_of_index": r["as_of_index"],
                "token_mint": r["token_mint"],
                "quantity": str(r["quantity"]),
                "cost_basis": str(r["cost_basis"]),
                "cumulative_realized_gain": str(r["cumulative_realized_gain"]),
                "event_count": r["event_count"],
                "created_at": now,
            }
            for r in snapshot.to_records()
        ]
        insert = _insert_for(self.session)
        stmt = insert(PortfolioHoldingModel).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["wallet_address", "as_of_slot", "as_of_index", "token_mint"],
            set_={
                "quantity": stmt.excluded.quantity,
                "cost_basis": stmt.excluded.cost_basis,
                "cumulative_realized_gain": stmt.excluded.cumulative_realized_gain,
                "event_count": stmt.excluded.event_count,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return len(rows)

    async def get_snapshot(self, wallet_address: str, as_of: OrderingKey) -> PortfolioSnapshot | None:
        result = await self.session.execute(
            select(PortfolioHoldingModel)
            .where(
                PortfolioHoldingModel.wallet_address == wallet_address,
                PortfolioHoldingModel.as_of_slot == as_of.slot,
                PortfolioHoldingModel.as_of_index == as_of.index,
            )
            .order_by(PortfolioHoldingModel.token_mint)
        )
        rows = [PortfolioHoldingDTO.from_model(m) for m in result.scalars().all()]
        if not rows:
            return None
        return PortfolioSnapshot.from_records(r.to_record() for r in rows)

    async def get_latest_snapshot(self, wallet_address: str) -> PortfolioSnapshot | None:
        result = await self.session.execute(
            select(PortfolioHoldingModel.as_of_slot, PortfolioHoldingModel.as_of_index)
            .where(PortfolioHoldingModel.wallet_address == wallet_address)
            .order_by(
                PortfolioHoldingModel.as_of_slot.desc(),
                PortfolioHoldingModel.as_of_index.desc(),
            )
            .limit(1)
        )
        row = result.first()
        if row is None:
            return None
        return await self.get_snapshot(wallet_address, OrderingKey(row[0], row[1]))
