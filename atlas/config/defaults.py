"""Default values for the ledger, valuation and risk engine.

Every value here can be overridden in ``config.yaml``; these are what
the engine uses when no file is present.
"""

# ---------------------------------------------------------------------------
# FX rates, keyed "{from}-{to}"
# ---------------------------------------------------------------------------
# Pairs that are not listed fall back to a rate of 1.0.
FX_RATES = {
    # Base: USD
    "USD-USD": 1.0,
    "JPY-USD": 0.0067,  # 1 USD = ~150 JPY
    "EUR-USD": 1.08,
    "GBP-USD": 1.26,
    "HKD-USD": 0.13,
    # Base: JPY
    "USD-JPY": 150.0,
    "JPY-JPY": 1.0,
    "EUR-JPY": 162.5,
    "GBP-JPY": 189.2,
    "HKD-JPY": 19.2,
}

DEFAULT_FX_RATE = 1.0

# ---------------------------------------------------------------------------
# Risk thresholds
# ---------------------------------------------------------------------------
RISK_THRESHOLDS = {
    "concentration_limit": 0.15,  # 15% in a single asset
    "sector_limit": 0.35,         # 35% in a single sector
    "min_cash_weight": 0.05,
}

RISK_SCORING = {
    "base_score": 10,
    "concentration_penalty": 30,
    "sector_penalty": 20,
    "max_score": 100,
}

NO_HOLDINGS_TICKER = "none"

# ---------------------------------------------------------------------------
# Position derivation
# ---------------------------------------------------------------------------
# Net quantities at or below this are treated as a closed position.
QUANTITY_EPSILON = 1e-4

# Number of recent transactions attached to each enriched position.
RECENT_TRANSACTIONS_WINDOW = 5

# ---------------------------------------------------------------------------
# Snapshot sync (CSV import)
# ---------------------------------------------------------------------------
# Header synonyms tried when an account has no explicit column mapping.
CSV_COLUMN_SYNONYMS = {
    "ticker": ["ticker", "symbol", "代码", "证券代码"],
    "quantity": ["quantity", "qty", "shares", "position", "数量", "持仓"],
    "cost": ["cost basis", "avg cost", "avg price", "cost", "成本", "均价"],
}

# Price given to securities first seen in a snapshot, until a price refresh.
PLACEHOLDER_PRICE = 100.0

SYNC_NOTE_TEMPLATE = "CSV snapshot sync: diff {diff:g}"
