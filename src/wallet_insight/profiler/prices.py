"""Price oracle contract and a Redis-backed caching wrapper."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Protocol, runtime_checkable

from redis.asyncio import Redis

from wallet_insight.ingestor.models import OrderingKey

logger = logging.getLogger(__name__)

# Historical prices do not change once observed.
DEFAULT_PRICE_CACHE_TTL_SECONDS = 24 * 3600
DEFAULT_PRICE_KEY_PREFIX = "wallet_insight:price:"


@runtime_checkable
class PriceOracle(Protocol):
    """Resolves the unit price of a token mint at a point in chain history.

    Raises ``PriceUnavailableError`` for delisted or unknown mints.
    """

    async def price_at(self, token_mint: str, ordering_key: OrderingKey) -> Decimal: ...


class CachingPriceOracle:
    """Wraps a price oracle with a Redis cache keyed by mint and slot.

    Cache failures are logged and fall through to the wrapped oracle.
    Unavailable prices are never cached.
    """

    def __init__(
        self,
        oracle: PriceOracle,
        redis: Redis,
        *,
        ttl_seconds: int = DEFAULT_PRICE_CACHE_TTL_SECONDS,
        key_prefix: str = DEFAULT_PRICE_KEY_PREFIX,
    ) -> None:
        self._oracle = oracle
        self._redis = redis
        self._ttl = ttl_seconds
        self._prefix = key_prefix

    def _cache_key(self, token_mint: str, ordering_key: OrderingKey) -> str:
        return f"{self._prefix}{token_mint}:{ordering_key.slot}"

    async def _get_cached(self, key: str) -> Decimal | None:
        try:
            value = await self._redis.get(key)
            if value is None:
                return None
            return Decimal(value.decode() if isinstance(value, bytes) else str(value))
        except (InvalidOperation, ValueError) as e:
            logger.warning("Discarding unparseable cached price %s: %s", key, e)
            return None
        except Exception as e:
            logger.warning("Price cache get failed: %s", e)
            return None

    async def _set_cached(self, key: str, price: Decimal) -> None:
        try:
            await self._redis.set(key, str(price), ex=self._ttl)
        except Exception as e:
            logger.warning("Price cache set failed: %s", e)

    async def price_at(self, token_mint: str, ordering_key: OrderingKey) -> Decimal:
        key = self._cache_key(token_mint, ordering_key)
        cached = await self._get_cached(key)
        if cached is not None:
            return cached
        price = await self._oracle.price_at(token_mint, ordering_key)
        await self._set_cached(key, price)
        return price
