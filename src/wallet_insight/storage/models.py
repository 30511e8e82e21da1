"""SQLAlchemy models for persistent storage.

This module defines the database schema for the analysis history:
scored results per wallet frontier and the holdings snapshot behind them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class AnalysisResultModel(Base):
    """Scored analysis of a wallet at one event frontier."""

    __tablename__ = "analysis_results"

    wallet_address: Mapped[str] = mapped_column(String(64), primary_key=True, nullable=False)
    # (-1, -1) marks a wallet analysed before it had any events.
    computed_at_slot: Mapped[int] = mapped_column(BigInteger, primary_key=True, nullable=False)
    computed_at_index: Mapped[int] = mapped_column(Integer, primary_key=True, nullable=False)

    score: Mapped[float] = mapped_column(Float, nullable=False)
    explanation: Mapped[str] = mapped_column(Text, nullable=False)
    degraded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    risk_level: Mapped[str] = mapped_column(String(16), nullable=False)

    features_json: Mapped[str] = mapped_column(Text, nullable=False)
    windows_json: Mapped[str] = mapped_column(Text, nullable=False)
    holdings_json: Mapped[str] = mapped_column(Text, nullable=False)
    recommendations_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    data_gaps_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    token_insights_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_analysis_results_wallet", "wallet_address"),
        Index("idx_analysis_results_risk_level", "risk_level"),
    )


class PortfolioHoldingModel(Base):
    """One holding of a portfolio snapshot (one row per mint)."""

    __tablename__ = "portfolio_holdings"

    wallet_address: Mapped[str] = mapped_column(String(64), primary_key=True, nullable=False)
    as_of_slot: Mapped[int] = mapped_column(BigInteger, primary_key=True, nullable=False)
    as_of_index: Mapped[int] = mapped_column(Integer, primary_key=True, nullable=False)
    # Empty string for the placeholder row of an empty portfolio.
    token_mint: Mapped[str] = mapped_column(String(64), primary_key=True, nullable=False)

    # Exact decimal text; weighted-average costs carry full context precision.
    quantity: Mapped[str] = mapped_column(String(64), nullable=False)
    cost_basis: Mapped[str] = mapped_column(String(64), nullable=False)
    cumulative_realized_gain: Mapped[str] = mapped_column(String(64), nullable=False)
    event_count: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_portfolio_holdings_wallet_as_of", "wallet_address", "as_of_slot", "as_of_index"),
        Index("idx_portfolio_holdings_token_mint", "token_mint"),
    )
