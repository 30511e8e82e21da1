"""Event normalization: raw chain records to a canonical event sequence.

Raw records arrive from an untrusted, rate-limited RPC source. The same
on-chain event may be returned by several overlapping calls and pages are
not guaranteed to be ordered. Normalization is a pure function:

1. Parse every record into a ``ChainEvent`` (strict, no defaults for
   required fields).
2. Deduplicate by ``event_id``. Records with the same id must agree on
   every immutable field; disagreement is a data-integrity fault.
3. Sort by ``(slot, intra_slot_index, event_id)``.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Sequence

from wallet_insight.errors import ConflictingEventError, MalformedEventError
from wallet_insight.ingestor.models import ChainEvent, RawChainRecord

logger = logging.getLogger(__name__)


def _merge_duplicate(kept: ChainEvent, incoming: ChainEvent) -> ChainEvent:
    differing = kept.differing_fields(incoming)
    if differing:
        raise ConflictingEventError(kept.event_id, differing)
    # Timestamps are skewed across RPC nodes; keep the earliest one seen.
    if incoming.timestamp is not None and (
        kept.timestamp is None or incoming.timestamp < kept.timestamp
    ):
        return dataclasses.replace(kept, timestamp=incoming.timestamp)
    return kept


def merge_events(
    existing: Iterable[ChainEvent],
    incoming: Iterable[ChainEvent],
) -> tuple[ChainEvent, ...]:
    """Merge two event collections into one canonical sequence.

    Raises:
        ConflictingEventError: If an event_id maps to different payloads.
    """
    by_id: dict[str, ChainEvent] = {}
    for event in (*existing, *incoming):
        kept = by_id.get(event.event_id)
        by_id[event.event_id] = event if kept is None else _merge_duplicate(kept, event)
    return tuple(sorted(by_id.values(), key=lambda e: e.sort_key))


def normalize(
    raw_events: Sequence[RawChainRecord],
    *,
    wallet_address: str | None = None,
) -> tuple[ChainEvent, ...]:
    """Convert raw chain records into a deduplicated, causally ordered sequence.

    Args:
        raw_events: Raw records as returned by the chain data source.
        wallet_address: If given, every record must belong to this wallet.

    Returns:
        Events ordered by ``(slot, intra_slot_index, event_id)``.

    Raises:
        MalformedEventError: If a record lacks a required field or has an
            unparseable quantity.
        ConflictingEventError: If two records share an event_id with
            differing immutable fields.
    """
    parsed = [ChainEvent.from_raw(record) for record in raw_events]

    if wallet_address is not None:
        for event in parsed:
            if event.wallet_address != wallet_address:
                raise MalformedEventError(
                    f"Event {event.event_id} belongs to wallet {event.wallet_address}, "
                    f"expected {wallet_address}",
                    event_id=event.event_id,
                )

    events = merge_events((), parsed)
    if len(events) != len(parsed):
        logger.debug("Dropped %d duplicate chain records", len(parsed) - len(events))
    return events
