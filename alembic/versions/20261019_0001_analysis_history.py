"""Analysis history: scored results and portfolio holdings.

Revision ID: 001_analysis_history
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_analysis_history"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Scored analysis per wallet frontier
    op.create_table(
        "analysis_results",
        sa.Column("wallet_address", sa.String(64), nullable=False),
        sa.Column("computed_at_slot", sa.BigInteger(), nullable=False),
        sa.Column("computed_at_index", sa.Integer(), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("explanation", sa.Text(), nullable=False),
        sa.Column("degraded", sa.Boolean(), nullable=False),
        sa.Column("risk_level", sa.String(16), nullable=False),
        sa.Column("features_json", sa.Text(), nullable=False),
        sa.Column("windows_json", sa.Text(), nullable=False),
        sa.Column("holdings_json", sa.Text(), nullable=False),
        sa.Column("recommendations_json", sa.Text(), nullable=False),
        sa.Column("data_gaps_json", sa.Text(), nullable=False),
        sa.Column("token_insights_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("wallet_address", "computed_at_slot", "computed_at_index"),
    )
    op.create_index("idx_analysis_results_wallet", "analysis_results", ["wallet_address"])
    op.create_index("idx_analysis_results_risk_level", "analysis_results", ["risk_level"])

    # Holdings behind each analysis (one row per mint)
    op.create_table(
        "portfolio_holdings",
        sa.Column("wallet_address", sa.String(64), nullable=False),
        sa.Column("as_of_slot", sa.BigInteger(), nullable=False),
        sa.Column("as_of_index", sa.Integer(), nullable=False),
        sa.Column("token_mint", sa.String(64), nullable=False),
        sa.Column("quantity", sa.String(64), nullable=False),
        sa.Column("cost_basis", sa.String(64), nullable=False),
        sa.Column("cumulative_realized_gain", sa.String(64), nullable=False),
        sa.Column("event_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("wallet_address", "as_of_slot", "as_of_index", "token_mint"),
    )
    op.create_index(
        "idx_portfolio_holdings_wallet_as_of",
        "portfolio_holdings",
        ["wallet_address", "as_of_slot", "as_of_index"],
    )
    op.create_index("idx_portfolio_holdings_token_mint", "portfolio_holdings", ["token_mint"])


def downgrade() -> None:
    op.drop_index("idx_portfolio_holdings_token_mint", table_name="portfolio_holdings")
    op.drop_index("idx_portfolio_holdings_wallet_as_of", table_name="portfolio_holdings")
    op.drop_table("portfolio_holdings")

    op.drop_index("idx_analysis_results_risk_level", table_name="analysis_results")
    op.drop_index("idx_analysis_results_wallet", table_name="analysis_results")
    op.drop_table("analysis_results")
