"""Per-wallet analysis cache with single-flight recomputation.

Each wallet moves through a small state machine::

    EMPTY -> COMPUTING -> READY -> STALE -> COMPUTING -> READY -> ...

Every transition is made synchronously inside one method, so no other
task can observe a half-updated entry. Concurrent callers for a wallet
that is COMPUTING join the in-flight task instead of starting a second
one; a failed computation leaves the previous state in place.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from wallet_insight.cache.redis_store import RedisResultStore
from wallet_insight.errors import AnalysisError, CacheComputationFailedError
from wallet_insight.ingestor.models import ChainEvent, OrderingKey
from wallet_insight.profiler.models import PortfolioSnapshot
from wallet_insight.scoring.models import AnalysisResult

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_TOLERANCE_SLOTS = 0
DEFAULT_MAX_WALLETS = 10_000


class CacheState(str, Enum):
    EMPTY = "empty"
    COMPUTING = "computing"
    READY = "ready"
    STALE = "stale"


@dataclass(frozen=True)
class WalletState:
    """Immutable product of one computation.

    Carries the canonical events and snapshots behind ``result`` so the
    next computation can continue from them instead of starting over.
    ``resumable`` is False for states rebuilt from a stored result alone.
    """

    result: AnalysisResult
    events: tuple[ChainEvent, ...] = ()
    snapshots: tuple[PortfolioSnapshot, ...] = ()
    resumable: bool = True

    @property
    def frontier(self) -> OrderingKey | None:
        return self.result.computed_at

    @classmethod
    def from_result(cls, result: AnalysisResult) -> WalletState:
        return cls(result=result, resumable=False)


ComputeFn = Callable[[str, WalletState | None], Awaitable[WalletState]]


def _is_older(candidate: OrderingKey | None, current: OrderingKey | None) -> bool:
    if current is None:
        return False
    return candidate is None or candidate < current


@dataclass
class _Entry:
    state: WalletState | None = None
    latest_known: OrderingKey | None = None
    task: asyncio.Task[AnalysisResult] | None = None
    waiters: int = 0
    generation: int = 0
    hydrated: bool = False


class AnalysisCache:
    """Memoizes AnalysisResults per wallet, keyed by the newest known event.

    Example:
        ```python
        cache = AnalysisCache(service.compute_state)
        cache.observe(wallet, OrderingKey(slot=250_000_000, index=3))
        result = await cache.get(wallet, freshness_tolerance=10)
        ```
    """

    def __init__(
        self,
        compute: ComputeFn,
        *,
        result_store: RedisResultStore | None = None,
        max_wallets: int = DEFAULT_MAX_WALLETS,
    ) -> None:
        """Initialize the cache.

        Args:
            compute: Coroutine producing a new WalletState from the prior one.
            result_store: Optional Redis store used to hydrate cold entries
                and to write successful results through.
            max_wallets: Entries kept in memory. Least recently used idle
                entries are evicted beyond this; an evicted wallet starts
                over from the result store or a full recomputation.
        """
        if max_wallets < 1:
            raise ValueError("max_wallets must be >= 1")
        self._compute = compute
        self._store = result_store
        self._max_wallets = max_wallets
        self._entries: OrderedDict[str, _Entry] = OrderedDict()

    def _entry(self, wallet_address: str) -> _Entry:
        entry = self._entries.get(wallet_address)
        if entry is None:
            entry = _Entry()
            self._entries[wallet_address] = entry
            self._evict()
        else:
            self._entries.move_to_end(wallet_address)
        return entry

    def _evict(self) -> None:
        # Entries with a running computation or waiters are never evicted.
        excess = len(self._entries) - self._max_wallets
        if excess <= 0:
            return
        for wallet_address in list(self._entries)[:-1]:
            entry = self._entries[wallet_address]
            if entry.waiters or self._active_task(entry) is not None:
                continue
            del self._entries[wallet_address]
            logger.debug("Evicted cached analysis for %s", wallet_address)
            excess -= 1
            if excess == 0:
                return

    @staticmethod
    def _active_task(entry: _Entry) -> asyncio.Task[AnalysisResult] | None:
        # A task cancelled before its first step never reaches its own cleanup,
        # and one already asked to cancel must not take new waiters.
        task = entry.task
        if task is not None and (task.done() or task.cancelling()):
            entry.task = None
        return entry.task

    def state(self, wallet_address: str) -> CacheState:
        entry = self._entries.get(wallet_address)
        if entry is None:
            return CacheState.EMPTY
        if self._active_task(entry) is not None:
            return CacheState.COMPUTING
        if entry.state is None:
            return CacheState.EMPTY
        if _is_older(entry.state.frontier, entry.latest_known):
            return CacheState.STALE
        return CacheState.READY

    def peek(self, wallet_address: str) -> AnalysisResult | None:
        """Cached result regardless of freshness, without computing."""
        entry = self._entries.get(wallet_address)
        if entry is None or entry.state is None:
            return None
        return entry.state.result

    def wallet_state(self, wallet_address: str) -> WalletState | None:
        entry = self._entries.get(wallet_address)
        return entry.state if entry is not None else None

    def latest_known(self, wallet_address: str) -> OrderingKey | None:
        entry = self._entries.get(wallet_address)
        return entry.latest_known if entry is not None else None

    def observe(self, wallet_address: str, ordering_key: OrderingKey) -> None:
        """Record that an event at ``ordering_key`` exists for a wallet."""
        entry = self._entry(wallet_address)
        if entry.latest_known is None or ordering_key > entry.latest_known:
            entry.latest_known = ordering_key

    def invalidate(self, wallet_address: str) -> None:
        """Drop the cached result. An in-flight computation still completes
        for its waiters but is not installed."""
        entry = self._entries.get(wallet_address)
        if entry is None:
            return
        entry.state = None
        entry.hydrated = True
        entry.generation += 1

    @staticmethod
    def _is_fresh(entry: _Entry, freshness_tolerance: int) -> bool:
        if entry.state is None:
            return False
        computed_at = entry.state.frontier
        if entry.latest_known is None:
            return True
        if computed_at is None:
            return False
        return computed_at.lag_behind(entry.latest_known) <= freshness_tolerance

    def is_fresh(self, wallet_address: str, freshness_tolerance: int) -> bool:
        """Whether ``get`` would return the cached result without computing."""
        entry = self._entries.get(wallet_address)
        if entry is None or self._active_task(entry) is not None:
            return False
        return self._is_fresh(entry, freshness_tolerance)

    async def _hydrate(self, wallet_address: str, entry: _Entry) -> None:
        if self._store is None:
            return
        entry.hydrated = True
        stored = await self._store.load(wallet_address)
        if stored is None or entry.state is not None:
            return
        entry.state = WalletState.from_result(stored)
        if stored.computed_at is not None:
            self.observe(wallet_address, stored.computed_at)
        logger.debug("Hydrated cached analysis for %s at %s", wallet_address, stored.computed_at)

    def _install(self, wallet_address: str, entry: _Entry, new_state: WalletState) -> AnalysisResult:
        current = entry.state
        if current is not None and _is_older(new_state.frontier, current.frontier):
            logger.info(
                "Discarding analysis of %s at %s: cached result is at %s",
                wallet_address,
                new_state.frontier,
                current.frontier,
            )
            return current.result
        entry.state = new_state
        if new_state.frontier is not None:
            self.observe(wallet_address, new_state.frontier)
        return new_state.result

    async def _run(self, wallet_address: str, entry: _Entry, prior: WalletState | None) -> AnalysisResult:
        generation = entry.generation
        try:
            new_state = await self._compute(wallet_address, prior)
        except AnalysisError:
            raise
        except Exception as e:
            logger.exception("Analysis recomputation failed for %s", wallet_address)
            raise CacheComputationFailedError(wallet_address, e) from e
        finally:
            if entry.task is asyncio.current_task():
                entry.task = None

        if generation != entry.generation:
            return new_state.result
        result = self._install(wallet_address, entry, new_state)
        if self._store is not None and result is new_state.result:
            await self._store.save(result)
        return result

    async def get(
        self,
        wallet_address: str,
        freshness_tolerance: int = DEFAULT_FRESHNESS_TOLERANCE_SLOTS,
    ) -> AnalysisResult:
        """Return a result whose frontier lags the newest known event by at
        most ``freshness_tolerance`` slots, recomputing if needed.

        Raises:
            AnalysisError: Typed errors from the computation, unchanged.
            CacheComputationFailedError: Any other computation failure.
        """
        if freshness_tolerance < 0:
            raise ValueError("freshness_tolerance must be >= 0")

        entry = self._entry(wallet_address)
        if self._active_task(entry) is None and self._is_fresh(entry, freshness_tolerance):
            logger.debug("Analysis cache hit for %s", wallet_address)
            return entry.state.result  # type: ignore[union-attr]

        if self._active_task(entry) is None and entry.state is None and not entry.hydrated:
            entry.waiters += 1
            try:
                await self._hydrate(wallet_address, entry)
            finally:
                self._leave(wallet_address, entry)
            if self._active_task(entry) is None and self._is_fresh(entry, freshness_tolerance):
                logger.debug("Analysis cache hit for %s after hydration", wallet_address)
                return entry.state.result  # type: ignore[union-attr]

        task = self._active_task(entry)
        if task is None:
            task = asyncio.create_task(self._run(wallet_address, entry, entry.state))
            entry.task = task

        entry.waiters += 1
        try:
            return await asyncio.shield(task)
        finally:
            self._leave(wallet_address, entry)

    def _leave(self, wallet_address: str, entry: _Entry) -> None:
        entry.waiters -= 1
        task = self._active_task(entry)
        if entry.waiters == 0 and task is not None:
            logger.debug("Last waiter for %s left, cancelling recomputation", wallet_address)
            task.cancel()
