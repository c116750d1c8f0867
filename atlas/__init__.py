"""Atlas -- multi-account portfolio ledger, valuation and risk engine."""

__version__ = "1.0.0"
