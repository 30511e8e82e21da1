"""Data models for the ingestor module."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, fields
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from wallet_insight.errors import MalformedEventError

RawChainRecord = Mapping[str, Any]

# Epoch values above this are milliseconds rather than seconds.
_EPOCH_MILLIS_THRESHOLD = 1e12

# Non-zero quantities and prices lie within 10**-38 .. 10**38.
_MAX_ADJUSTED_EXPONENT = 38


@dataclass(frozen=True, order=True)
class OrderingKey:
    """Position of an event on chain: ``(slot, intra_slot_index)``.

    Ordering keys establish causal order independently of wall-clock time,
    which may be skewed or missing.
    """

    slot: int
    index: int = 0

    def lag_behind(self, latest: OrderingKey | None) -> int:
        """Return how many slots ``latest`` is ahead of this key.

        A strictly newer event inside the same slot counts as one slot.
        """
        if latest is None or latest <= self:
            return 0
        return max(1, latest.slot - self.slot)

    def __str__(self) -> str:
        return f"{self.slot}:{self.index}"


class EventKind(str, Enum):
    """Kinds of chain events that affect holdings."""

    TRANSFER = "transfer"
    SWAP = "swap"
    STAKE_DELTA = "stake_delta"
    FEE_PAYMENT = "fee_payment"

    @classmethod
    def parse(cls, value: object) -> EventKind:
        normalized = str(value).strip().lower().replace("-", "_")
        aliases = {"stakedelta": "stake_delta", "feepayment": "fee_payment", "fee": "fee_payment"}
        normalized = aliases.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise MalformedEventError(f"Unknown event kind: {value!r}") from None


def parse_fixed_point(value: object, *, decimals: int | None = None, field_name: str = "amount") -> Decimal:
    """Parse a quantity as an exact decimal.

    When ``decimals`` is given the value is an integer count of base units
    (e.g. lamports) and is scaled down by ``10**decimals``.
    """
    if value is None or isinstance(value, bool):
        raise MalformedEventError(f"{field_name} is not a fixed-point number: {value!r}")
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float, str)):
        try:
            parsed = Decimal(str(value).strip())
        except InvalidOperation:
            raise MalformedEventError(f"{field_name} is not a fixed-point number: {value!r}") from None
    else:
        raise MalformedEventError(f"{field_name} is not a fixed-point number: {value!r}")

    if not parsed.is_finite():
        raise MalformedEventError(f"{field_name} must be finite: {value!r}")

    if decimals is not None:
        if not 0 <= decimals <= _MAX_ADJUSTED_EXPONENT:
            raise MalformedEventError(f"{field_name} decimals out of range: {decimals!r}")
        if parsed != parsed.to_integral_value():
            raise MalformedEventError(f"{field_name} in base units must be an integer: {value!r}")
        parsed = parsed.scaleb(-decimals)
    if parsed and abs(parsed.adjusted()) > _MAX_ADJUSTED_EXPONENT:
        raise MalformedEventError(f"{field_name} is out of range: {value!r}")
    return parsed


def parse_timestamp(value: object) -> datetime | None:
    """Parse an optional timestamp (ISO string, epoch seconds/millis, or datetime)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        epoch = float(value)
        if not math.isfinite(epoch):
            raise MalformedEventError(f"Unparseable timestamp: {value!r}")
        if epoch > _EPOCH_MILLIS_THRESHOLD:
            epoch /= 1000.0
        try:
            ts = datetime.fromtimestamp(epoch, tz=UTC)
        except (OverflowError, OSError, ValueError):
            raise MalformedEventError(f"Timestamp out of range: {value!r}") from None
    elif isinstance(value, str):
        try:
            ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise MalformedEventError(f"Unparseable timestamp: {value!r}") from None
    else:
        raise MalformedEventError(f"Unparseable timestamp: {value!r}")

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def _first(data: RawChainRecord, *names: str) -> Any:
    for name in names:
        value = data.get(name)
        if value is not None and value != "":
            return value
    return None


def _require(data: RawChainRecord, *names: str, event_id: str | None = None) -> Any:
    value = _first(data, *names)
    if value is None:
        raise MalformedEventError(f"Missing required field {names[0]!r}", event_id=event_id)
    return value


def _parse_int(value: object, field_name: str, event_id: str) -> int:
    if isinstance(value, bool):
        raise MalformedEventError(f"{field_name} must be an integer: {value!r}", event_id=event_id)
    try:
        parsed = int(str(value))
    except ValueError:
        raise MalformedEventError(f"{field_name} must be an integer: {value!r}", event_id=event_id) from None
    if parsed < 0:
        raise MalformedEventError(f"{field_name} must be >= 0: {value!r}", event_id=event_id)
    return parsed


@dataclass(frozen=True)
class ChainEvent:
    """Canonical, immutable chain event for one wallet.

    ``amount`` is signed from the wallet's point of view. For swaps,
    ``token_mint``/``amount`` describe the source leg (negative) and
    ``counter_mint``/``counter_amount`` the destination leg (positive).
    """

    event_id: str
    wallet_address: str
    slot: int
    intra_slot_index: int
    kind: EventKind
    token_mint: str
    amount: Decimal
    timestamp: datetime | None = None
    counterparties: tuple[str, ...] = ()
    price: Decimal | None = None
    counter_mint: str | None = None
    counter_amount: Decimal | None = None
    counter_price: Decimal | None = None

    @property
    def ordering_key(self) -> OrderingKey:
        return OrderingKey(self.slot, self.intra_slot_index)

    @property
    def sort_key(self) -> tuple[int, int, str]:
        """Total order key with ties broken by event_id."""
        return (self.slot, self.intra_slot_index, self.event_id)

    def differing_fields(self, other: ChainEvent) -> tuple[str, ...]:
        """Names of immutable fields that differ (timestamps are metadata)."""
        return tuple(
            f.name
            for f in fields(self)
            if f.name != "timestamp" and getattr(self, f.name) != getattr(other, f.name)
        )

    @classmethod
    def from_raw(cls, data: RawChainRecord) -> ChainEvent:
        """Create a ChainEvent from a raw RPC record.

        Raises:
            MalformedEventError: If a required field is absent or unparseable.
        """
        if not isinstance(data, Mapping):
            raise MalformedEventError(f"Raw chain record must be a mapping, got {type(data).__name__}")

        event_id = str(_require(data, "event_id", "signature", "id"))
        wallet_address = str(_require(data, "wallet_address", "wallet", event_id=event_id)).strip()
        slot = _parse_int(_require(data, "slot", "block_height", event_id=event_id), "slot", event_id)
        index = _parse_int(
            _require(data, "intra_slot_index", "index", event_id=event_id), "intra_slot_index", event_id
        )
        kind = EventKind.parse(_require(data, "kind", "type", event_id=event_id))
        token_mint = str(_require(data, "token_mint", "mint", event_id=event_id))

        decimals_raw = data.get("decimals")
        decimals = _parse_int(decimals_raw, "decimals", event_id) if decimals_raw is not None else None

        try:
            amount = parse_fixed_point(
                _require(data, "amount", event_id=event_id), decimals=decimals, field_name="amount"
            )
            price_raw = data.get("price")
            price = parse_fixed_point(price_raw, field_name="price") if price_raw is not None else None

            counter_mint = _first(data, "counter_mint")
            counter_amount_raw = data.get("counter_amount")
            counter_decimals_raw = data.get("counter_decimals")
            counter_decimals = (
                _parse_int(counter_decimals_raw, "counter_decimals", event_id)
                if counter_decimals_raw is not None
                else None
            )
            counter_amount = (
                parse_fixed_point(
                    counter_amount_raw, decimals=counter_decimals, field_name="counter_amount"
                )
                if counter_amount_raw is not None
                else None
            )
            counter_price_raw = data.get("counter_price")
            counter_price = (
                parse_fixed_point(counter_price_raw, field_name="counter_price")
                if counter_price_raw is not None
                else None
            )
            timestamp = parse_timestamp(_first(data, "timestamp", "block_time"))
        except MalformedEventError as e:
            raise MalformedEventError(f"Event {event_id}: {e}", event_id=event_id) from None

        if price is not None and price < 0:
            raise MalformedEventError(f"Event {event_id}: price must be >= 0", event_id=event_id)
        if counter_price is not None and counter_price < 0:
            raise MalformedEventError(f"Event {event_id}: counter_price must be >= 0", event_id=event_id)

        if kind is EventKind.SWAP:
            if counter_mint is None or counter_amount is None:
                raise MalformedEventError(
                    f"Swap {event_id} requires counter_mint and counter_amount", event_id=event_id
                )
            if amount >= 0 or counter_amount <= 0:
                raise MalformedEventError(
                    f"Swap {event_id} must debit the source leg and credit the destination leg",
                    event_id=event_id,
                )
        elif kind is EventKind.FEE_PAYMENT and amount > 0:
            raise MalformedEventError(f"Fee payment {event_id} cannot credit the wallet", event_id=event_id)

        raw_counterparties = data.get("counterparties") or ()
        if isinstance(raw_counterparties, str):
            raw_counterparties = (raw_counterparties,)
        counterparties = tuple(sorted({str(c) for c in raw_counterparties}))

        return cls(
            event_id=event_id,
            wallet_address=wallet_address,
            slot=slot,
            intra_slot_index=index,
            kind=kind,
            token_mint=token_mint,
            amount=amount,
            timestamp=timestamp,
            counterparties=counterparties,
            price=price,
            counter_mint=str(counter_mint) if counter_mint is not None else None,
            counter_amount=counter_amount,
            counter_price=counter_price,
        )
