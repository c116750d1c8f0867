"""Domain records for the ledger, valuation and risk engine.

Securities, accounts and organizations are reference data. Transactions
are the ledger. Everything else (positions, enriched positions, risk
metrics) is derived from those and never stored.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from atlas.config.schema import CsvMappingConfig

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TransactionType(Enum):
    """Kind of ledger entry."""
    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"  # cash dividend, no position effect
    SPLIT = "SPLIT"        # recorded only, no position effect
    ADJUST = "ADJUST"      # correction, e.g. from CSV snapshot sync


class OrgRole(Enum):
    """Advisory role of a member within an organization."""
    OWNER = "OWNER"
    EDITOR = "EDITOR"
    VIEWER = "VIEWER"


class SecurityType(Enum):
    STOCK = "STOCK"
    ETF = "ETF"
    BOND = "BOND"
    CRYPTO = "CRYPTO"
    CASH = "CASH"


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

@dataclass
class Security:
    """A tradable instrument and its latest known price."""
    id: str
    ticker: str
    name: str
    currency: str
    current_price: float
    last_updated: str
    type: SecurityType = SecurityType.STOCK
    sector: str = "Other"
    industry: str = "Unknown"
    country: str = "Global"

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Security:
        return cls(
            id=row["id"],
            ticker=row["ticker"],
            name=row["name"],
            currency=row["currency"],
            current_price=float(row["current_price"]),
            last_updated=row["last_updated"],
            type=SecurityType(row["type"]),
            sector=row["sector"],
            industry=row["industry"],
            country=row["country"],
        )


@dataclass
class Organization:
    id: str
    name: str
    base_currency: str = "USD"

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Organization:
        return cls(id=row["id"], name=row["name"], base_currency=row["base_currency"])


@dataclass
class Member:
    """A user's membership in one organization."""
    id: str
    user_id: str
    org_id: str
    name: str
    role: OrgRole = OrgRole.VIEWER
    email: str = ""
    joined_at: str = ""

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Member:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            org_id=row["org_id"],
            name=row["name"],
            role=OrgRole(row["role"]),
            email=row["email"],
            joined_at=row["joined_at"],
        )


@dataclass
class Account:
    """A brokerage account owned by one organization."""
    id: str
    org_id: str
    name: str
    broker: str = ""
    currency: str = "USD"
    is_tax_advantaged: bool = False
    csv_mapping: CsvMappingConfig | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Account:
        raw_mapping = row.get("csv_mapping_json")
        mapping = (
            CsvMappingConfig.model_validate(json.loads(raw_mapping))
            if raw_mapping else None
        )
        return cls(
            id=row["id"],
            org_id=row["org_id"],
            name=row["name"],
            broker=row["broker"] or "",
            currency=row["currency"],
            is_tax_advantaged=bool(row["is_tax_advantaged"]),
            csv_mapping=mapping,
        )


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Transaction:
    """One append-only ledger entry.

    ``quantity`` is signed by intent: positive for BUY and upward
    ADJUST, negative for SELL and downward ADJUST. Position derivation
    uses the magnitude for SELL regardless of the stored sign.
    """
    id: str
    account_id: str
    security_id: str
    type: TransactionType
    quantity: float
    price: float
    date: str
    note: str | None = None

    @property
    def is_increase(self) -> bool:
        return self.type is TransactionType.BUY or (
            self.type is TransactionType.ADJUST and self.quantity > 0
        )

    @property
    def is_decrease(self) -> bool:
        return self.type is TransactionType.SELL or (
            self.type is TransactionType.ADJUST and self.quantity < 0
        )

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Transaction:
        return cls(
            id=row["id"],
            account_id=row["account_id"],
            security_id=row["security_id"],
            type=TransactionType(row["type"]),
            quantity=float(row["quantity"]),
            price=float(row["price"]),
            date=row["date"],
            note=row.get("note"),
        )


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Position:
    """Net holding of one security in one account, folded from the ledger."""
    account_id: str
    security_id: str
    quantity: float
    cost_basis: float
    """Weighted-average cost per unit, in the security's currency."""
    updated_at: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.account_id, self.security_id)

    @property
    def total_cost(self) -> float:
        return self.cost_basis * self.quantity


@dataclass
class EnrichedPosition:
    """A position joined with its reference data and valued."""
    position: Position
    security: Security
    account: Account
    market_value_local: float
    market_value_base: float
    gain_loss_percent: float
    weight: float = 0.0
    """Share of total portfolio base value (0-1)."""
    recent_transactions: list[Transaction] = field(default_factory=list)

    @property
    def ticker(self) -> str:
        return self.security.ticker

    @property
    def quantity(self) -> float:
        return self.position.quantity

    @property
    def cost_basis(self) -> float:
        return self.position.cost_basis


@dataclass
class Exposure:
    """Aggregate portfolio weight for one sector, currency or country."""
    name: str
    percent: float


@dataclass
class RiskMetric:
    """Risk summary for a set of enriched positions."""
    score: int
    concentration_high: bool
    top_concentration_ticker: str
    sector_concentration: list[Exposure] = field(default_factory=list)
    currency_exposure: list[Exposure] = field(default_factory=list)
    country_exposure: list[Exposure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
