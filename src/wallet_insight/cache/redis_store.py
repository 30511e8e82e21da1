"""Redis write-through store for analysis results."""

from __future__ import annotations

import json
import logging

from redis.asyncio import Redis

from wallet_insight.scoring.models import AnalysisResult

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_RESULT_TTL_SECONDS = 3600  # 1 hour
DEFAULT_RESULT_KEY_PREFIX = "wallet_insight:analysis:"


class RedisResultStore:
    """Persists the latest AnalysisResult per wallet in Redis.

    Results are stored as the JSON of ``AnalysisResult.to_record()``. Every
    Redis failure is logged and treated as a miss; the store never raises.

    Example:
        ```python
        redis = Redis.from_url("redis://localhost:6379")
        store = RedisResultStore(redis, ttl_seconds=600)
        await store.save(result)
        cached = await store.load(result.wallet_address)
        ```
    """

    def __init__(
        self,
        redis: Redis,
        *,
        ttl_seconds: int = DEFAULT_RESULT_TTL_SECONDS,
        key_prefix: str = DEFAULT_RESULT_KEY_PREFIX,
    ) -> None:
        self._redis = redis
        self._ttl = ttl_seconds
        self._prefix = key_prefix

    def _key(self, wallet_address: str) -> str:
        return f"{self._prefix}{wallet_address}"

    async def load(self, wallet_address: str) -> AnalysisResult | None:
        """Return the stored result for a wallet, or None."""
        key = self._key(wallet_address)
        try:
            value = await self._redis.get(key)
        except Exception as e:
            logger.warning("Result cache get failed: %s", e)
            return None
        if value is None:
            return None
        try:
            raw = value.decode() if isinstance(value, bytes) else str(value)
            return AnalysisResult.from_record(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable cached result %s: %s", key, e)
            return None

    async def save(self, result: AnalysisResult) -> None:
        """Write a result through to Redis with the configured TTL."""
        try:
            await self._redis.set(
                self._key(result.wallet_address),
                json.dumps(result.to_record()),
                ex=self._ttl,
            )
        except Exception as e:
            logger.warning("Result cache set failed: %s", e)

    async def delete(self, wallet_address: str) -> None:
        try:
            await self._redis.delete(self._key(wallet_address))
        except Exception as e:
            logger.warning("Result cache delete failed: %s", e)
