"""Named query functions for database operations.

The transactions table is append-only: there is an insert and there are
reads, nothing else. Triggers in the schema reject UPDATE and DELETE.
"""

from __future__ import annotations

import json
from typing import Any, Iterable

from atlas.config.schema import CsvMappingConfig, RiskThresholdConfig
from atlas.portfolio.models import Member, Security, Transaction
from atlas.storage.database import Database

# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

def upsert_organization(db: Database, id: str, name: str, base_currency: str = "USD") -> None:
    """Insert or update an organization."""
    db.write(
        """INSERT INTO organizations (id, name, base_currency) VALUES (?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            name=excluded.name, base_currency=excluded.base_currency""",
        (id, name, base_currency.upper()),
    )


def get_organization(db: Database, org_id: str) -> dict[str, Any] | None:
    return db.fetchone("SELECT * FROM organizations WHERE id = ?", (org_id,))


def list_organizations(db: Database) -> list[dict[str, Any]]:
    return db.fetchall("SELECT * FROM organizations ORDER BY id")


def set_base_currency(db: Database, org_id: str, base_currency: str) -> bool:
    """Change an organization's reporting currency. Returns True if found."""
    cursor = db.write(
        "UPDATE organizations SET base_currency = ? WHERE id = ?",
        (base_currency.upper(), org_id),
    )
    return cursor.rowcount > 0


def rename_organization(db: Database, org_id: str, name: str) -> bool:
    cursor = db.write("UPDATE organizations SET name = ? WHERE id = ?", (name, org_id))
    return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

def upsert_member(db: Database, member: Member) -> None:
    """Insert a membership, or update it when the user already belongs to the org."""
    db.write(
        """INSERT INTO members (id, user_id, org_id, name, email, role, joined_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(org_id, user_id) DO UPDATE SET
            name=excluded.name, email=excluded.email, role=excluded.role""",
        (
            member.id, member.user_id, member.org_id, member.name,
            member.email, member.role.value, member.joined_at,
        ),
    )


def list_members(db: Database, org_id: str) -> list[dict[str, Any]]:
    return db.fetchall(
        "SELECT * FROM members WHERE org_id = ? ORDER BY joined_at, rowid", (org_id,),
    )


def get_member(db: Database, org_id: str, user_id: str) -> dict[str, Any] | None:
    return db.fetchone(
        "SELECT * FROM members WHERE org_id = ? AND user_id = ?", (org_id, user_id),
    )


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

def _mapping_json(mapping: CsvMappingConfig | None) -> str | None:
    return json.dumps(mapping.model_dump()) if mapping is not None else None


def upsert_account(
    db: Database,
    id: str,
    org_id: str,
    name: str,
    *,
    broker: str = "",
    currency: str = "USD",
    is_tax_advantaged: bool = False,
    csv_mapping: CsvMappingConfig | None = None,
) -> None:
    """Insert or update an account."""
    db.write(
        """INSERT INTO accounts (id, org_id, name, broker, currency,
            is_tax_advantaged, csv_mapping_json)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            org_id=excluded.org_id, name=excluded.name, broker=excluded.broker,
            currency=excluded.currency,
            is_tax_advantaged=excluded.is_tax_advantaged,
            csv_mapping_json=excluded.csv_mapping_json
        """,
        (
            id, org_id, name, broker, currency.upper(),
            int(is_tax_advantaged), _mapping_json(csv_mapping),
        ),
    )


def get_account(db: Database, account_id: str) -> dict[str, Any] | None:
    return db.fetchone("SELECT * FROM accounts WHERE id = ?", (account_id,))


def list_accounts(db: Database, org_id: str | None = None) -> list[dict[str, Any]]:
    """List accounts, optionally restricted to one organization."""
    if org_id is None:
        return db.fetchall("SELECT * FROM accounts ORDER BY id")
    return db.fetchall("SELECT * FROM accounts WHERE org_id = ? ORDER BY id", (org_id,))


def update_account_settings(
    db: Database,
    account_id: str,
    *,
    name: str | None = None,
    broker: str | None = None,
    csv_mapping: CsvMappingConfig | None = None,
    clear_csv_mapping: bool = False,
) -> bool:
    """Update editable account settings. Returns True if the account exists."""
    sets: list[str] = []
    values: list[Any] = []
    if name is not None:
        sets.append("name = ?")
        values.append(name)
    if broker is not None:
        sets.append("broker = ?")
        values.append(broker)
    if csv_mapping is not None or clear_csv_mapping:
        sets.append("csv_mapping_json = ?")
        values.append(_mapping_json(csv_mapping))
    if not sets:
        return get_account(db, account_id) is not None

    cursor = db.write(
        f"UPDATE accounts SET {', '.join(sets)} WHERE id = ?",
        tuple(values + [account_id]),
    )
    return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# Securities
# ---------------------------------------------------------------------------

def insert_security(db: Database, security: Security) -> None:
    """Register a new security. Fails if the id or ticker already exists."""
    db.write(
        """INSERT INTO securities (id, ticker, name, type, sector, industry,
            country, currency, current_price, last_updated)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            security.id, security.ticker, security.name, security.type.value,
            security.sector, security.industry, security.country,
            security.currency, security.current_price, security.last_updated,
        ),
    )


def get_security(db: Database, security_id: str) -> dict[str, Any] | None:
    return db.fetchone("SELECT * FROM securities WHERE id = ?", (security_id,))


def get_security_by_ticker(db: Database, ticker: str) -> dict[str, Any] | None:
    return db.fetchone("SELECT * FROM securities WHERE ticker = ?", (ticker.upper(),))


def list_securities(db: Database) -> list[dict[str, Any]]:
    return db.fetchall("SELECT * FROM securities ORDER BY ticker")


def update_security_price(db: Database, security_id: str, price: float, as_of: str) -> bool:
    """Refresh a security's price. The only mutable part of a security."""
    cursor = db.write(
        "UPDATE securities SET current_price = ?, last_updated = ? WHERE id = ?",
        (price, as_of, security_id),
    )
    return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# Transactions (append-only)
# ---------------------------------------------------------------------------

def insert_transaction(db: Database, tx: Transaction) -> None:
    """Append one entry to the ledger and commit it."""
    db.write(
        """INSERT INTO transactions (id, account_id, security_id, type,
            quantity, price, date, note)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            tx.id, tx.account_id, tx.security_id, tx.type.value,
            tx.quantity, tx.price, tx.date, tx.note,
        ),
    )


def list_transactions(
    db: Database,
    account_ids: Iterable[str] | None = None,
) -> list[dict[str, Any]]:
    """Ledger entries in insertion order, optionally for some accounts only."""
    if account_ids is None:
        return db.fetchall("SELECT * FROM transactions ORDER BY seq")
    ids = list(account_ids)
    if not ids:
        return []
    placeholders = ", ".join(["?"] * len(ids))
    return db.fetchall(
        f"SELECT * FROM transactions WHERE account_id IN ({placeholders}) ORDER BY seq",
        tuple(ids),
    )


def count_transactions(db: Database) -> int:
    row = db.fetchone("SELECT COUNT(*) as cnt FROM transactions")
    return row["cnt"] if row else 0


# ---------------------------------------------------------------------------
# Risk thresholds
# ---------------------------------------------------------------------------

def get_risk_thresholds(db: Database, org_id: str) -> dict[str, Any] | None:
    return db.fetchone("SELECT * FROM risk_thresholds WHERE org_id = ?", (org_id,))


def upsert_risk_thresholds(db: Database, org_id: str, config: RiskThresholdConfig) -> None:
    """Replace an organization's risk thresholds."""
    db.write(
        """INSERT INTO risk_thresholds (org_id, concentration_limit, sector_limit,
            min_cash_weight, updated_at)
        VALUES (?, ?, ?, ?, datetime('now'))
        ON CONFLICT(org_id) DO UPDATE SET
            concentration_limit=excluded.concentration_limit,
            sector_limit=excluded.sector_limit,
            min_cash_weight=excluded.min_cash_weight,
            updated_at=datetime('now')""",
        (org_id, config.concentration_limit, config.sector_limit, config.min_cash_weight),
    )
