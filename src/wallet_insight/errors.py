"""Exception taxonomy for the analysis core.

Data-integrity errors (malformed, conflicting, or gapped event data) are
raised by the pure pipeline stages and always propagate to the caller.
Transient errors describe I/O that may succeed on a later attempt and are
retried where the I/O is performed.
"""

from __future__ import annotations

from decimal import Decimal


class AnalysisError(Exception):
    """Base exception for every error surfaced by ``analyze``."""


class InvalidWalletAddressError(AnalysisError):
    """Raised when a wallet address is empty or not a string."""


class MalformedEventError(AnalysisError):
    """Raised when a raw chain record is missing a field or has an unparseable value."""

    def __init__(self, message: str, *, event_id: str | None = None) -> None:
        super().__init__(message)
        self.event_id = event_id


class ConflictingEventError(AnalysisError):
    """Raised when two records share an event_id but disagree on immutable fields."""

    def __init__(self, event_id: str, fields: tuple[str, ...]) -> None:
        super().__init__(
            f"Conflicting payloads for event {event_id}: differing fields {', '.join(fields)}"
        )
        self.event_id = event_id
        self.fields = fields


class NegativeHoldingError(AnalysisError):
    """Raised when a debit would drive a holding below zero.

    This signals a missing prior credit (e.g. an untracked airdrop). The
    reconstructor never guesses; callers decide whether to repair the gap.
    """

    def __init__(
        self,
        *,
        wallet_address: str,
        token_mint: str,
        event_id: str,
        available: Decimal,
        requested: Decimal,
    ) -> None:
        super().__init__(
            f"Event {event_id} debits {requested} {token_mint} from wallet {wallet_address} "
            f"but only {available} is held"
        )
        self.wallet_address = wallet_address
        self.token_mint = token_mint
        self.event_id = event_id
        self.available = available
        self.requested = requested

    @property
    def shortfall(self) -> Decimal:
        """Quantity missing for the debit to succeed."""
        return self.requested - self.available


class PriceUnavailableError(AnalysisError):
    """Raised by a price oracle for delisted or unknown mints."""

    def __init__(self, token_mint: str, message: str | None = None) -> None:
        super().__init__(message or f"No price available for {token_mint}")
        self.token_mint = token_mint


class ChainDataUnavailableError(AnalysisError):
    """Raised when the chain data source cannot supply records (transient)."""


class ScoringUnavailableError(AnalysisError):
    """Raised by a scoring capability for transient failures."""


class CacheComputationFailedError(AnalysisError):
    """Raised to cache waiters when a recomputation fails unexpectedly."""

    def __init__(self, wallet_address: str, cause: BaseException) -> None:
        super().__init__(f"Analysis recomputation failed for {wallet_address}: {cause}")
        self.wallet_address = wallet_address
        self.cause = cause
