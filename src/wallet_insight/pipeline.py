"""Wallet analysis service for Wallet Insight.

This module provides the WalletAnalysisService class that wires together
the analysis components and manages the flow from raw chain records to a
cached, scored AnalysisResult.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Protocol

from redis.asyncio import Redis

from wallet_insight.cache.analysis_cache import AnalysisCache, CacheState, WalletState
from wallet_insight.cache.redis_store import RedisResultStore
from wallet_insight.config import Settings, get_settings
from wallet_insight.errors import (
    AnalysisError,
    ChainDataUnavailableError,
    InvalidWalletAddressError,
    NegativeHoldingError,
)
from wallet_insight.ingestor.models import ChainEvent, OrderingKey, RawChainRecord
from wallet_insight.ingestor.normalizer import merge_events, normalize
from wallet_insight.ingestor.sources import ChainDataSource
from wallet_insight.profiler.models import PortfolioSnapshot
from wallet_insight.profiler.prices import CachingPriceOracle, PriceOracle
from wallet_insight.profiler.reconstructor import opening_balance_snapshot, reconstruct
from wallet_insight.retry import RetryError, RetryPolicy
from wallet_insight.scoring.metrics import MetricsEngine
from wallet_insight.scoring.models import AnalysisResult
from wallet_insight.scoring.scorer import ScoringCapability, ScoringOrchestrator
from wallet_insight.scoring.serving import ModelArtifactScorer
from wallet_insight.storage.database import DatabaseManager
from wallet_insight.storage.history import DatabaseHistorySink

logger = logging.getLogger(__name__)

TRANSIENT_FETCH_ERRORS: tuple[type[Exception], ...] = (
    ChainDataUnavailableError,
    ConnectionError,
    TimeoutError,
)


class HistorySink(Protocol):
    """Receives every computed WalletState (e.g. for persistence)."""

    async def record(self, state: WalletState) -> None: ...


@dataclass
class AnalysisStats:
    """Statistics for the analysis service."""

    started_at: datetime | None = None
    requests: int = 0
    cache_hits: int = 0
    recomputations: int = 0
    degraded_results: int = 0
    errors: int = 0
    last_error: str | None = None


def _validate_wallet_address(wallet_address: object) -> str:
    if not isinstance(wallet_address, str) or not wallet_address.strip():
        raise InvalidWalletAddressError(f"Invalid wallet address: {wallet_address!r}")
    return wallet_address.strip()


class WalletAnalysisService:
    """Analysis entry point combining ingestion, profiling, scoring and caching.

    Flow:
        ChainDataSource → normalize → reconstruct → MetricsEngine
        → ScoringOrchestrator → AnalysisCache

    Example:
        ```python
        service = WalletAnalysisService(chain_source, price_oracle, capability)

        service.observe_event(wallet, OrderingKey(slot=250_000_000, index=3))
        result = await service.analyze(wallet, freshness_tolerance=10)
        print(result.score, result.risk_level, result.degraded)
        ```
    """

    def __init__(
        self,
        chain_source: ChainDataSource,
        price_oracle: PriceOracle,
        scoring_capability: ScoringCapability,
        *,
        settings: Settings | None = None,
        result_store: RedisResultStore | None = None,
        history_sink: HistorySink | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            chain_source: Supplies raw chain records per wallet.
            price_oracle: Resolves historical token prices.
            scoring_capability: External scorer (async or blocking).
            settings: Application settings. If not provided, uses get_settings().
            result_store: Optional Redis store for cross-process result reuse.
            history_sink: Optional recorder of every computed state.
        """
        self._settings = settings or get_settings()
        analysis = self._settings.analysis
        scoring = self._settings.scoring
        chain = self._settings.chain

        self._chain_source = chain_source
        self._history_sink = history_sink
        self._windows = analysis.windows
        self._metrics = MetricsEngine(
            price_oracle,
            slot_duration_seconds=analysis.slot_duration_seconds,
        )
        self._scorer = ScoringOrchestrator(
            scoring_capability,
            windows=self._windows,
            retry_policy=RetryPolicy(
                max_attempts=scoring.max_attempts,
                base_delay=scoring.retry_base_delay_seconds,
            ),
            timeout_seconds=scoring.timeout_seconds,
        )
        self._fetch_policy = RetryPolicy(
            max_attempts=chain.fetch_max_attempts,
            base_delay=chain.fetch_retry_delay_seconds,
            retry_on=TRANSIENT_FETCH_ERRORS,
        )
        self._cache = AnalysisCache(
            self.compute_state,
            result_store=result_store,
            max_wallets=analysis.cache_max_wallets,
        )
        self._stats = AnalysisStats(started_at=datetime.now(UTC))

        # Owned resources (only set by create())
        self._redis: Redis | None = None
        self._db_manager: DatabaseManager | None = None

    @classmethod
    async def create(
        cls,
        chain_source: ChainDataSource,
        price_oracle: PriceOracle,
        scoring_capability: ScoringCapability | None = None,
        *,
        settings: Settings | None = None,
    ) -> WalletAnalysisService:
        """Build a service with the optional backends enabled by settings.

        REDIS_URL enables the price and result caches, DATABASE_URL the
        history sink, and SCORING_MODEL_* a joblib model when no scoring
        capability is passed.

        Raises:
            ValueError: If no scoring capability is passed or configured.
        """
        settings = settings or get_settings()

        if scoring_capability is None:
            if not settings.scoring.model_enabled:
                raise ValueError(
                    "A scoring capability is required (or set SCORING_MODEL_ARTIFACT_PATH "
                    "and SCORING_MODEL_SCHEMA_JSON)"
                )
            scoring_capability = ModelArtifactScorer.from_artifact(
                artifact_path=settings.scoring.model_artifact_path,  # type: ignore[arg-type]
                schema_json=settings.scoring.model_schema_json,  # type: ignore[arg-type]
            )
            logger.info("Loaded scoring model from %s", settings.scoring.model_artifact_path)

        redis: Redis | None = None
        result_store: RedisResultStore | None = None
        if settings.redis.url:
            redis = Redis.from_url(settings.redis.url)
            price_oracle = CachingPriceOracle(price_oracle, redis)
            result_store = RedisResultStore(
                redis,
                ttl_seconds=settings.analysis.result_cache_ttl_seconds,
            )

        db_manager: DatabaseManager | None = None
        history_sink: HistorySink | None = None
        if settings.database.url:
            db_manager = DatabaseManager(settings.database.url)
            history_sink = DatabaseHistorySink(db_manager)

        service = cls(
            chain_source,
            price_oracle,
            scoring_capability,
            settings=settings,
            result_store=result_store,
            history_sink=history_sink,
        )
        service._redis = redis
        service._db_manager = db_manager
        logger.info("Wallet analysis service configured: %s", settings.redacted_summary())
        return service

    async def close(self) -> None:
        """Release connections opened by create()."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        if self._db_manager is not None:
            await self._db_manager.dispose_async()
            self._db_manager = None

    async def __aenter__(self) -> WalletAnalysisService:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    @property
    def stats(self) -> AnalysisStats:
        """Current service statistics."""
        return self._stats

    @property
    def cache(self) -> AnalysisCache:
        return self._cache

    def cache_state(self, wallet_address: str) -> CacheState:
        return self._cache.state(_validate_wallet_address(wallet_address))

    def observe_event(self, wallet_address: str, ordering_key: OrderingKey) -> None:
        """Record that a new event exists for a wallet (e.g. from a stream).

        Cached results older than the freshness tolerance are recomputed
        on the next analyze() call.
        """
        self._cache.observe(_validate_wallet_address(wallet_address), ordering_key)

    def invalidate(self, wallet_address: str) -> None:
        self._cache.invalidate(_validate_wallet_address(wallet_address))

    async def analyze(
        self,
        wallet_address: str,
        freshness_tolerance: int | None = None,
    ) -> AnalysisResult:
        """Return a scored analysis for a wallet.

        Args:
            wallet_address: Wallet to analyze (surrounding whitespace ignored).
            freshness_tolerance: Slots a cached result may lag the newest
                known event. Defaults to ANALYSIS_FRESHNESS_TOLERANCE_SLOTS.

        Returns:
            A complete AnalysisResult, with ``degraded=True`` when the
            heuristic score was used.

        Raises:
            AnalysisError: Typed failure; nothing partial is returned.
        """
        wallet = _validate_wallet_address(wallet_address)
        tolerance = (
            freshness_tolerance
            if freshness_tolerance is not None
            else self._settings.analysis.freshness_tolerance_slots
        )
        self._stats.requests += 1
        if self._cache.is_fresh(wallet, tolerance):
            self._stats.cache_hits += 1

        try:
            return await self._cache.get(wallet, tolerance)
        except AnalysisError as e:
            self._stats.errors += 1
            self._stats.last_error = str(e)
            raise

    async def _fetch(self, wallet_address: str, since: OrderingKey | None) -> Sequence[RawChainRecord]:
        try:
            return await self._fetch_policy.run(self._chain_source.fetch, wallet_address, since)
        except RetryError as e:
            raise ChainDataUnavailableError(
                f"Chain data unavailable for {wallet_address}: {e.last_exception}"
            ) from e.last_exception

    def _fold(
        self,
        wallet_address: str,
        events: Sequence[ChainEvent],
        base: PortfolioSnapshot | None,
    ) -> tuple[tuple[PortfolioSnapshot, ...], tuple[str, ...]]:
        """Reconstruct snapshots, repairing data gaps if configured.

        Returns:
            Snapshots and the mints that needed a synthesized opening balance.
        """
        batch_size = self._settings.analysis.snapshot_batch_size
        if not self._settings.analysis.synthesize_opening_balances or not events:
            return reconstruct(events, base, batch_size=batch_size), ()

        opening: dict[str, Decimal] = {}
        while True:
            start = self._with_opening_balances(wallet_address, base, opening, events[0].ordering_key)
            try:
                return reconstruct(events, start, batch_size=batch_size), tuple(sorted(opening))
            except NegativeHoldingError as e:
                logger.warning(
                    "Data gap for %s in %s at event %s: synthesizing opening balance of %s",
                    wallet_address,
                    e.token_mint,
                    e.event_id,
                    e.shortfall,
                )
                opening[e.token_mint] = opening.get(e.token_mint, Decimal(0)) + e.shortfall

    @staticmethod
    def _with_opening_balances(
        wallet_address: str,
        base: PortfolioSnapshot | None,
        opening: dict[str, Decimal],
        before: OrderingKey,
    ) -> PortfolioSnapshot | None:
        if not opening:
            return base
        if base is None:
            return opening_balance_snapshot(wallet_address, opening, before=before)
        synthetic = opening_balance_snapshot(wallet_address, opening, before=before)
        holdings = dict(base.holdings)
        for mint, extra in synthetic.holdings.items():
            current = holdings.get(mint)
            if current is None:
                holdings[mint] = extra
                continue
            quantity = current.quantity + extra.quantity
            holdings[mint] = dataclasses.replace(
                current,
                quantity=quantity,
                cost_basis=current.cost_value / quantity,
            )
        return dataclasses.replace(base, holdings=holdings, realized_gains=())

    async def compute_state(self, wallet_address: str, prior: WalletState | None) -> WalletState:
        """Recompute a wallet's analysis, continuing from ``prior`` when possible.

        The fold continues from the prior snapshot only when every newly
        fetched event is after the prior frontier; an out-of-order arrival
        forces a full rebuild.
        """
        self._stats.recomputations += 1
        resume = prior if prior is not None and prior.resumable and prior.frontier is not None else None
        since = resume.frontier if resume is not None else None
        logger.info("Recomputing analysis for %s since %s", wallet_address, since or "genesis")

        raw = await self._fetch(wallet_address, since)
        incoming = normalize(raw, wallet_address=wallet_address)

        if resume is None:
            events = incoming
            snapshots, gaps = self._fold(wallet_address, events, None)
        else:
            events = merge_events(resume.events, incoming)
            known = {e.event_id for e in resume.events}
            new_events = [e for e in events if e.event_id not in known]
            frontier = resume.frontier
            if resume.snapshots and all(e.ordering_key > frontier for e in new_events):  # type: ignore[operator]
                appended, new_gaps = self._fold(wallet_address, new_events, resume.snapshots[-1])
                snapshots = resume.snapshots + appended
                gaps = tuple(sorted(set(resume.result.data_gaps) | set(new_gaps)))
            else:
                logger.info(
                    "Out-of-order events for %s before %s; rebuilding from scratch",
                    wallet_address,
                    frontier,
                )
                snapshots, gaps = self._fold(wallet_address, events, None)

        holdings = snapshots[-1].holdings if snapshots else {}
        metric_windows = await self._metrics.compute(snapshots, self._windows)
        scored = await self._scorer.score(metric_windows, holdings, wallet_address=wallet_address)
        result = dataclasses.replace(
            scored,
            computed_at=events[-1].ordering_key if events else None,
            data_gaps=gaps,
        )
        if result.degraded:
            self._stats.degraded_results += 1

        state = WalletState(result=result, events=tuple(events), snapshots=tuple(snapshots))
        if self._history_sink is not None:
            await self._history_sink.record(state)
        return state
