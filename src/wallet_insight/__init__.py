"""Wallet Insight - Portfolio reconstruction, metrics and risk scoring for crypto wallets."""

__version__ = "0.1.0"
