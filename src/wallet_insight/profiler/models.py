"""Data models for the profiler module."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType

from wallet_insight.ingestor.models import OrderingKey

# Placeholder mint used when an empty portfolio is flattened to records.
EMPTY_PORTFOLIO_MINT = ""


@dataclass(frozen=True)
class Holding:
    """Quantity and weighted-average cost of one token mint."""

    token_mint: str
    quantity: Decimal
    cost_basis: Decimal

    @property
    def cost_value(self) -> Decimal:
        """Total acquisition cost of the position."""
        return self.quantity * self.cost_basis


@dataclass(frozen=True)
class RealizedGain:
    """Gain realized by a debit under weighted-average-cost accounting."""

    event_id: str
    token_mint: str
    quantity: Decimal
    proceeds_price: Decimal
    cost_basis: Decimal

    @property
    def amount(self) -> Decimal:
        return self.quantity * (self.proceeds_price - self.cost_basis)


def _freeze_holdings(holdings: Mapping[str, Holding]) -> Mapping[str, Holding]:
    return MappingProxyType(dict(sorted(holdings.items())))


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Point-in-time holdings of a wallet after folding events up to ``as_of``.

    Attributes:
        wallet_address: Wallet the snapshot belongs to.
        as_of: Ordering key of the last event folded into this snapshot.
        holdings: Read-only mapping of token mint to holding (no zero rows).
        realized_gains: Gains realized by the events folded into this snapshot.
        cumulative_realized_gain: Realized gain since the start of the fold.
        event_count: Events folded so far, including earlier snapshots.
    """

    wallet_address: str
    as_of: OrderingKey
    holdings: Mapping[str, Holding] = field(default_factory=dict)
    realized_gains: tuple[RealizedGain, ...] = ()
    cumulative_realized_gain: Decimal = Decimal(0)
    event_count: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.holdings, MappingProxyType):
            object.__setattr__(self, "holdings", _freeze_holdings(self.holdings))

    @property
    def realized_gain(self) -> Decimal:
        """Realized gain of the events folded into this snapshot only."""
        return sum((g.amount for g in self.realized_gains), Decimal(0))

    @property
    def total_cost_basis(self) -> Decimal:
        return sum((h.cost_value for h in self.holdings.values()), Decimal(0))

    def to_records(self) -> list[dict[str, object]]:
        """Flatten to one record per holding keyed by ``(wallet_address, as_of)``.

        An empty portfolio yields a single placeholder record so the
        snapshot itself is not lost.
        """
        base: dict[str, object] = {
            "wallet_address": self.wallet_address,
            "as_of_slot": self.as_of.slot,
            "as_of_index": self.as_of.index,
            "cumulative_realized_gain": str(self.cumulative_realized_gain),
            "event_count": self.event_count,
        }
        if not self.holdings:
            return [{**base, "token_mint": EMPTY_PORTFOLIO_MINT, "quantity": "0", "cost_basis": "0"}]
        return [
            {
                **base,
                "token_mint": h.token_mint,
                "quantity": str(h.quantity),
                "cost_basis": str(h.cost_basis),
            }
            for h in self.holdings.values()
        ]

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, object]]) -> PortfolioSnapshot:
        """Rebuild a snapshot from records produced by ``to_records``.

        Per-event realized gains are not part of the flat layout and come
        back empty.
        """
        rows = list(records)
        if not rows:
            raise ValueError("at least one record is required")
        first = rows[0]
        holdings = {
            str(r["token_mint"]): Holding(
                token_mint=str(r["token_mint"]),
                quantity=Decimal(str(r["quantity"])),
                cost_basis=Decimal(str(r["cost_basis"])),
            )
            for r in rows
            if r["token_mint"] != EMPTY_PORTFOLIO_MINT
        }
        return cls(
            wallet_address=str(first["wallet_address"]),
            as_of=OrderingKey(int(str(first["as_of_slot"])), int(str(first["as_of_index"]))),
            holdings=holdings,
            cumulative_realized_gain=Decimal(str(first["cumulative_realized_gain"])),
            event_count=int(str(first["event_count"])),
        )
