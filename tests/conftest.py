"""Shared test fixtures for Atlas.

Provides reusable fixtures for the database, config and a seeded ledger
across all test modules.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from atlas.config.schema import AtlasConfig, CsvMappingConfig
from atlas.portfolio.ledger import Ledger
from atlas.portfolio.models import SecurityType, Transaction, TransactionType
from atlas.storage.database import Database
from atlas.storage.migrations import ensure_schema

# ---------------------------------------------------------------------------
# Core infrastructure
# ---------------------------------------------------------------------------

@pytest.fixture
def test_config(tmp_path: Path) -> AtlasConfig:
    """Default config with a temp database path."""
    return AtlasConfig(database={"path": str(tmp_path / "test.db")})


@pytest.fixture
def test_db(tmp_path: Path) -> Database:
    """File database with schema applied."""
    db = Database(tmp_path / "test.db")
    ensure_schema(db)
    yield db
    db.close()


@pytest.fixture
def memory_db() -> Database:
    """In-memory database for fast unit tests."""
    db = Database(":memory:")
    ensure_schema(db)
    yield db
    db.close()


@pytest.fixture
def ledger(memory_db: Database) -> Ledger:
    """Empty ledger with one USD organization and one USD account."""
    lg = Ledger(memory_db, AtlasConfig())
    lg.add_organization("org_1", "Alpha Family Trust", "USD")
    lg.add_account("acc_1", "org_1", "IBKR Margin", broker="Interactive Brokers")
    return lg


# ---------------------------------------------------------------------------
# Seeded portfolio
# ---------------------------------------------------------------------------

SEED_SECURITIES = [
    ("sec_nvda", "NVDA", "NVIDIA Corp", SecurityType.STOCK, "Technology",
     "Semiconductors", "United States", "USD", 880.50),
    ("sec_msft", "MSFT", "Microsoft Corp", SecurityType.STOCK, "Technology",
     "Software", "United States", "USD", 415.20),
    ("sec_spy", "SPY", "SPDR S&P 500 ETF", SecurityType.ETF, "Index",
     "Index Fund", "United States", "USD", 510.30),
    ("sec_toyota", "7203.T", "Toyota Motor", SecurityType.STOCK, "Consumer Discretionary",
     "Automobiles", "Japan", "JPY", 3550.0),
    ("sec_cash_usd", "USD.CASH", "US Dollar Cash", SecurityType.CASH, "Cash",
     "Currency", "United States", "USD", 1.0),
]

SEED_TRANSACTIONS = [
    ("tx_1", "acc_1", "sec_nvda", TransactionType.BUY, 100, 400.00, "2023-11-10"),
    ("tx_2", "acc_1", "sec_nvda", TransactionType.BUY, 50, 550.00, "2024-01-10"),
    ("tx_3", "acc_1", "sec_msft", TransactionType.BUY, 50, 380.00, "2024-02-15"),
    ("tx_4", "acc_1", "sec_spy", TransactionType.BUY, 200, 480.00, "2024-03-01"),
    ("tx_5", "acc_2", "sec_cash_usd", TransactionType.ADJUST, 25000, 1.0, "2024-03-14"),
    ("tx_6", "acc_3", "sec_toyota", TransactionType.BUY, 1000, 2800.0, "2024-01-20"),
    ("tx_7", "acc_2", "sec_nvda", TransactionType.BUY, 20, 890.00, "2024-03-20"),
]


@pytest.fixture
def seeded_ledger(memory_db: Database) -> Ledger:
    """Two organizations, three accounts and seven transactions.

    org_1 (USD): acc_1 IBKR with a Symbol/Position/AvgPrice mapping,
    acc_2 Chase with a Ticker/Qty/Cost Basis mapping.
    org_2 (JPY): acc_3 NISA, no mapping.
    """
    lg = Ledger(memory_db, AtlasConfig())
    lg.add_organization("org_1", "Alpha Family Trust", "USD")
    lg.add_organization("org_2", "Personal Trading", "JPY")
    lg.add_account(
        "acc_1", "org_1", "IBKR Margin", broker="Interactive Brokers",
        csv_mapping=CsvMappingConfig(
            ticker_column="Symbol", quantity_column="Position", cost_column="AvgPrice",
        ),
    )
    lg.add_account(
        "acc_2", "org_1", "Chase Checking", broker="Chase",
        csv_mapping=CsvMappingConfig(
            ticker_column="Ticker", quantity_column="Qty", cost_column="Cost Basis",
        ),
    )
    lg.add_account(
        "acc_3", "org_2", "Rakuten NISA", broker="Rakuten Sec",
        currency="JPY", is_tax_advantaged=True,
    )
    for sid, ticker, name, stype, sector, industry, country, ccy, price in SEED_SECURITIES:
        lg.add_security(
            ticker, name=name, type=stype, sector=sector, industry=industry,
            country=country, currency=ccy, current_price=price,
            as_of="2024-03-15", security_id=sid,
        )
    for tid, acc, sid, ttype, qty, price, day in SEED_TRANSACTIONS:
        lg.append(Transaction(tid, acc, sid, ttype, float(qty), price, day))
    return lg
