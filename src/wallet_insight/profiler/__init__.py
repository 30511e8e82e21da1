"""Portfolio profiling layer - Holdings reconstruction and pricing."""

from wallet_insight.profiler.models import Holding, PortfolioSnapshot, RealizedGain
from wallet_insight.profiler.prices import CachingPriceOracle, PriceOracle
from wallet_insight.profiler.reconstructor import opening_balance_snapshot, reconstruct

__all__ = [
    "CachingPriceOracle",
    "Holding",
    "PortfolioSnapshot",
    "PriceOracle",
    "RealizedGain",
    "opening_balance_snapshot",
    "reconstruct",
]
