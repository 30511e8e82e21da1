"""Chain data source contract consumed by the analysis pipeline."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from wallet_insight.ingestor.models import OrderingKey, RawChainRecord


@runtime_checkable
class ChainDataSource(Protocol):
    """Supplies raw transaction records for a wallet.

    Implementations wrap an RPC provider and may return partial,
    duplicated, or unordered pages. Records at or after ``since`` must be
    included; earlier records may be included as well. Failures are
    raised as ``ChainDataUnavailableError``.
    """

    async def fetch(
        self,
        wallet_address: str,
        since: OrderingKey | None,
    ) -> Sequence[RawChainRecord]: ...
