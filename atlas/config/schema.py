"""Pydantic models for config.yaml validation."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from atlas.config.defaults import (
    CSV_COLUMN_SYNONYMS,
    FX_RATES,
    PLACEHOLDER_PRICE,
    RECENT_TRANSACTIONS_WINDOW,
    RISK_THRESHOLDS,
)


# ---------------------------------------------------------------------------
# Risk Config
# ---------------------------------------------------------------------------

class RiskThresholdConfig(BaseModel):
    """Limits read by risk scoring on every call."""

    concentration_limit: float = Field(
        RISK_THRESHOLDS["concentration_limit"], ge=0.0, le=1.0
    )
    sector_limit: float = Field(RISK_THRESHOLDS["sector_limit"], ge=0.0, le=1.0)
    min_cash_weight: float = Field(RISK_THRESHOLDS["min_cash_weight"], ge=0.0, le=1.0)


# ---------------------------------------------------------------------------
# Snapshot Sync Config
# ---------------------------------------------------------------------------

class CsvMappingConfig(BaseModel):
    """Per-account CSV header names for snapshot sync."""

    ticker_column: str
    quantity_column: str
    cost_column: str | None = None

    @field_validator("ticker_column", "quantity_column")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("column name must not be blank")
        return v.strip()

    @field_validator("cost_column")
    @classmethod
    def blank_cost_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()


class SyncConfig(BaseModel):
    ticker_synonyms: list[str] = Field(
        default_factory=lambda: list(CSV_COLUMN_SYNONYMS["ticker"])
    )
    quantity_synonyms: list[str] = Field(
        default_factory=lambda: list(CSV_COLUMN_SYNONYMS["quantity"])
    )
    cost_synonyms: list[str] = Field(
        default_factory=lambda: list(CSV_COLUMN_SYNONYMS["cost"])
    )
    placeholder_price: float = Field(PLACEHOLDER_PRICE, ge=0.0)


# ---------------------------------------------------------------------------
# Reference Data Config
# ---------------------------------------------------------------------------

def _upper_currency(v: str) -> str:
    v = v.strip().upper()
    if len(v) != 3 or not v.isalpha():
        raise ValueError(f"invalid currency code: {v!r}")
    return v


class MemberConfig(BaseModel):
    user_id: str
    name: str
    email: str = ""
    role: Literal["OWNER", "EDITOR", "VIEWER"] = "VIEWER"

    @field_validator("role", mode="before")
    @classmethod
    def upper_role(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v


class OrganizationConfig(BaseModel):
    id: str
    name: str
    base_currency: str = "USD"
    members: list[MemberConfig] = Field(default_factory=list)

    @field_validator("base_currency")
    @classmethod
    def currency_code(cls, v: str) -> str:
        return _upper_currency(v)


class AccountConfig(BaseModel):
    id: str
    org_id: str
    name: str
    broker: str = ""
    currency: str = "USD"
    is_tax_advantaged: bool = False
    csv_mapping: CsvMappingConfig | None = None

    @field_validator("currency")
    @classmethod
    def currency_code(cls, v: str) -> str:
        return _upper_currency(v)


# ---------------------------------------------------------------------------
# Database Config
# ---------------------------------------------------------------------------

class DatabaseConfig(BaseModel):
    path: str = "~/.atlas/atlas.db"


# ---------------------------------------------------------------------------
# Top-Level Config
# ---------------------------------------------------------------------------

class AtlasConfig(BaseModel):
    """Root configuration model for Atlas."""

    version: int = 1
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    fx_rates: dict[str, float] = Field(default_factory=lambda: dict(FX_RATES))
    risk: RiskThresholdConfig = Field(default_factory=RiskThresholdConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    recent_transactions: int = Field(RECENT_TRANSACTIONS_WINDOW, ge=0)
    organizations: list[OrganizationConfig] = Field(default_factory=list)
    accounts: list[AccountConfig] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def coerce_none_to_defaults(cls, data: Any) -> Any:
        """YAML parses empty keys as None. Coerce to proper defaults."""
        if isinstance(data, dict):
            for key in ("organizations", "accounts"):
                if key in data and data[key] is None:
                    data[key] = []
            if "fx_rates" in data and data["fx_rates"] is None:
                data["fx_rates"] = dict(FX_RATES)
        return data

    @field_validator("fx_rates")
    @classmethod
    def normalize_pairs(cls, v: dict[str, float]) -> dict[str, float]:
        pairs: dict[str, float] = {}
        for key, rate in v.items():
            parts = key.strip().upper().split("-")
            if len(parts) != 2 or not all(parts):
                raise ValueError(f"FX pair must look like 'EUR-USD', got {key!r}")
            if rate <= 0:
                raise ValueError(f"FX rate for {key} must be positive, got {rate}")
            pairs["-".join(parts)] = float(rate)
        return pairs

    @model_validator(mode="after")
    def accounts_reference_known_orgs(self) -> "AtlasConfig":
        if self.organizations:
            org_ids = {o.id for o in self.organizations}
            unknown = [a.id for a in self.accounts if a.org_id not in org_ids]
            if unknown:
                raise ValueError(
                    f"Accounts reference unknown organizations: {', '.join(unknown)}"
                )
        return self
