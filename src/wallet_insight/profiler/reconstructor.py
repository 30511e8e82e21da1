"""Portfolio reconstruction from a canonical event sequence.

Folds ordered chain events into holdings snapshots using weighted-average
cost accounting:

    credit:  cost = (qty * cost + dq * price) / (qty + dq)
    debit:   cost unchanged, realized gain = dq * (price - cost)

A debit that would drive a quantity below zero raises
``NegativeHoldingError``. That almost always means an earlier credit is
missing from the data; the reconstructor never guesses, so repairing the
gap (e.g. with ``opening_balance_snapshot``) is the caller's decision.

This module is pure: no I/O and no shared state.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from wallet_insight.errors import NegativeHoldingError
from wallet_insight.ingestor.models import ChainEvent, EventKind, OrderingKey
from wallet_insight.profiler.models import Holding, PortfolioSnapshot, RealizedGain

ZERO = Decimal(0)


@dataclass(slots=True)
class _Position:
    """Mutable working state of one mint during a fold."""

    quantity: Decimal
    cost_basis: Decimal

    def to_holding(self, token_mint: str) -> Holding:
        return Holding(token_mint=token_mint, quantity=self.quantity, cost_basis=self.cost_basis)


class _Fold:
    def __init__(self, wallet_address: str, base: PortfolioSnapshot | None) -> None:
        self.wallet_address = wallet_address
        self.positions: dict[str, _Position] = {}
        self.cumulative_gain = ZERO
        self.event_count = 0
        self.pending_gains: list[RealizedGain] = []
        if base is not None:
            self.positions = {
                mint: _Position(h.quantity, h.cost_basis) for mint, h in base.holdings.items()
            }
            self.cumulative_gain = base.cumulative_realized_gain
            self.event_count = base.event_count

    def credit(self, mint: str, quantity: Decimal, price: Decimal | None) -> None:
        if quantity == 0:
            return
        unit_cost = price if price is not None else ZERO
        position = self.positions.get(mint)
        if position is None:
            self.positions[mint] = _Position(quantity, unit_cost)
            return
        new_quantity = position.quantity + quantity
        position.cost_basis = (
            position.quantity * position.cost_basis + quantity * unit_cost
        ) / new_quantity
        position.quantity = new_quantity

    def debit(self, event: ChainEvent, mint: str, quantity: Decimal, price: Decimal | None) -> None:
        if quantity == 0:
            return
        position = self.positions.get(mint)
        available = position.quantity if position is not None else ZERO
        if position is None or quantity > available:
            raise NegativeHoldingError(
                wallet_address=self.wallet_address,
                token_mint=mint,
                event_id=event.event_id,
                available=available,
                requested=quantity,
            )
        if price is not None:
            gain = RealizedGain(
                event_id=event.event_id,
                token_mint=mint,
                quantity=quantity,
                proceeds_price=price,
                cost_basis=position.cost_basis,
            )
            self.pending_gains.append(gain)
            self.cumulative_gain += gain.amount
        position.quantity -= quantity
        if position.quantity == 0:
            del self.positions[mint]

    def apply(self, event: ChainEvent) -> None:
        if event.kind is EventKind.SWAP:
            # Both legs are validated by the normalizer.
            self.debit(event, event.token_mint, -event.amount, event.price)
            self.credit(event.counter_mint or "", event.counter_amount or ZERO, event.counter_price)
        elif event.kind is EventKind.FEE_PAYMENT:
            self.debit(event, event.token_mint, abs(event.amount), event.price)
        elif event.amount > 0:
            self.credit(event.token_mint, event.amount, event.price)
        else:
            self.debit(event, event.token_mint, -event.amount, event.price)
        self.event_count += 1

    def snapshot(self, as_of: OrderingKey) -> PortfolioSnapshot:
        snapshot = PortfolioSnapshot(
            wallet_address=self.wallet_address,
            as_of=as_of,
            holdings={mint: p.to_holding(mint) for mint, p in self.positions.items()},
            realized_gains=tuple(self.pending_gains),
            cumulative_realized_gain=self.cumulative_gain,
            event_count=self.event_count,
        )
        self.pending_gains = []
        return snapshot


def _validate(events: Sequence[ChainEvent], base: PortfolioSnapshot | None) -> str | None:
    wallet = base.wallet_address if base is not None else None
    previous: tuple[int, int, str] | None = None
    for event in events:
        if wallet is None:
            wallet = event.wallet_address
        elif event.wallet_address != wallet:
            raise ValueError(
                f"Event {event.event_id} belongs to {event.wallet_address}, expected {wallet}"
            )
        if previous is not None and event.sort_key <= previous:
            raise ValueError(f"Events must be strictly ordered (at {event.event_id})")
        previous = event.sort_key
    if base is not None and events and events[0].ordering_key <= base.as_of:
        raise ValueError(
            f"Event {events[0].event_id} at {events[0].ordering_key} is not after base snapshot {base.as_of}"
        )
    return wallet


def reconstruct(
    events: Sequence[ChainEvent],
    base: PortfolioSnapshot | None = None,
    *,
    batch_size: int = 1,
) -> tuple[PortfolioSnapshot, ...]:
    """Fold ordered events into portfolio snapshots.

    Args:
        events: Canonical events as produced by ``normalize``.
        base: Snapshot to continue folding from (empty portfolio if None).
        batch_size: Emit one snapshot per this many events; a final
            partial batch is always emitted.

    Returns:
        Snapshots in event order. Empty if ``events`` is empty.

    Raises:
        NegativeHoldingError: If a debit exceeds the held quantity.
        ValueError: If events are unordered, span wallets, or do not
            follow ``base``.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    wallet = _validate(events, base)
    if wallet is None:
        return ()

    fold = _Fold(wallet, base)
    snapshots: list[PortfolioSnapshot] = []
    for position, event in enumerate(events, start=1):
        fold.apply(event)
        if position % batch_size == 0 or position == len(events):
            snapshots.append(fold.snapshot(event.ordering_key))
    return tuple(snapshots)


def opening_balance_snapshot(
    wallet_address: str,
    balances: Mapping[str, Decimal],
    *,
    before: OrderingKey,
) -> PortfolioSnapshot:
    """Build a zero-cost base snapshot positioned just before ``before``.

    Used by callers that treat a ``NegativeHoldingError`` as a data gap
    rather than a hard failure.
    """
    as_of = OrderingKey(before.slot, before.index - 1)
    holdings = {
        mint: Holding(token_mint=mint, quantity=quantity, cost_basis=ZERO)
        for mint, quantity in balances.items()
        if quantity > 0
    }
    return PortfolioSnapshot(wallet_address=wallet_address, as_of=as_of, holdings=holdings)
