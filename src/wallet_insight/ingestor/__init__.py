"""Data ingestion layer - Raw chain records to canonical events."""

from wallet_insight.ingestor.models import (
    ChainEvent,
    EventKind,
    OrderingKey,
    RawChainRecord,
    parse_fixed_point,
)
from wallet_insight.ingestor.normalizer import merge_events, normalize
from wallet_insight.ingestor.sources import ChainDataSource

__all__ = [
    "ChainDataSource",
    "ChainEvent",
    "EventKind",
    "OrderingKey",
    "RawChainRecord",
    "merge_events",
    "normalize",
    "parse_fixed_point",
]
