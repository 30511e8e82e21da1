"""Result caching layer - Single-flight per-wallet analysis cache."""

from wallet_insight.cache.analysis_cache import AnalysisCache, CacheState, WalletState
from wallet_insight.cache.redis_store import RedisResultStore

__all__ = [
    "AnalysisCache",
    "CacheState",
    "RedisResultStore",
    "WalletState",
]
