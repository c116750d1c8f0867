"""Ledger facade: the one owned, mutable store and its read entry points.

Wraps a :class:`~atlas.storage.database.Database` holding reference data
(organizations, accounts, securities), the append-only transaction log
and per-organization risk thresholds. Every read re-derives positions
from the log; nothing derived is cached.

Writes for an organization are serialized with a per-organization lock
so that a diff-then-append sequence (snapshot sync) never computes its
diff against a baseline another writer is changing. Reads take no lock.

Usage::

    ledger = Ledger(db, config)
    holdings = ledger.get_aggregated_holdings("org_1")
    risk = ledger.calculate_risk("org_1")
"""

from __future__ import annotations

import logging
import re
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Generator, Iterable

from atlas.config.schema import AtlasConfig, CsvMappingConfig, RiskThresholdConfig
from atlas.errors import ReferenceNotFound
from atlas.portfolio.fx import FxRateTable
from atlas.portfolio.models import (
    Account,
    EnrichedPosition,
    Member,
    OrgRole,
    Organization,
    Position,
    RiskMetric,
    Security,
    SecurityType,
    Transaction,
    TransactionType,
)
from atlas.portfolio.positions import derive_positions
from atlas.portfolio.risk import calculate_risk_metrics
from atlas.portfolio.valuation import aggregate_holdings
from atlas.storage import queries
from atlas.storage.database import Database

logger = logging.getLogger(__name__)


def today_iso() -> str:
    return date.today().isoformat()


def new_transaction_id(prefix: str = "tx") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def new_security_id(ticker: str) -> str:
    slug = re.sub(r"\W", "", ticker.lower()) or "x"
    return f"sec_{slug}_{uuid.uuid4().hex[:8]}"


@dataclass
class ManualTransactionInput:
    """A transaction typed in by a user.

    ``price`` is the execution price per unit. ``quantity`` is taken as
    a magnitude for BUY/SELL/DIVIDEND/SPLIT; the sign is set from
    ``type``. ADJUST keeps the sign given.
    """
    ticker: str
    account_id: str
    quantity: float
    price: float
    currency: str | None = None
    type: TransactionType = TransactionType.BUY
    date: str | None = None
    note: str | None = None


class Ledger:
    """Reference data, the transaction log, and the engine's entry points."""

    def __init__(self, db: Database, config: AtlasConfig | None = None) -> None:
        self._db = db
        self._config = config or AtlasConfig()
        self._fx = FxRateTable(self._config.fx_rates)
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._securities_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def db(self) -> Database:
        return self._db

    @property
    def config(self) -> AtlasConfig:
        return self._config

    @property
    def fx(self) -> FxRateTable:
        return self._fx

    @contextmanager
    def write_lock(self, org_id: str) -> Generator[None, None, None]:
        """Hold the organization's writer lock (reentrant)."""
        with self._locks_guard:
            lock = self._locks.setdefault(org_id, threading.RLock())
        with lock:
            yield

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    def add_organization(self, id: str, name: str, base_currency: str = "USD") -> Organization:
        queries.upsert_organization(self._db, id, name, base_currency)
        return self.get_organization(id)

    def get_organization(self, org_id: str) -> Organization:
        row = queries.get_organization(self._db, org_id)
        if row is None:
            raise ReferenceNotFound("organization", org_id)
        return Organization.from_row(row)

    def list_organizations(self) -> list[Organization]:
        return [Organization.from_row(r) for r in queries.list_organizations(self._db)]

    def set_base_currency(self, org_id: str, base_currency: str) -> Organization:
        with self.write_lock(org_id):
            if not queries.set_base_currency(self._db, org_id, base_currency):
                raise ReferenceNotFound("organization", org_id)
        return self.get_organization(org_id)

    def rename_organization(self, org_id: str, name: str) -> Organization:
        name = name.strip()
        if not name:
            raise ValueError("organization name must not be empty")
        with self.write_lock(org_id):
            if not queries.rename_organization(self._db, org_id, name):
                raise ReferenceNotFound("organization", org_id)
        return self.get_organization(org_id)

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def add_member(
        self,
        org_id: str,
        user_id: str,
        name: str,
        *,
        role: OrgRole = OrgRole.VIEWER,
        email: str = "",
        joined_at: str | None = None,
    ) -> Member:
        """Add a user to an organization, or change an existing member's role."""
        self.get_organization(org_id)
        member = Member(
            id=f"mem_{uuid.uuid4().hex[:8]}",
            user_id=user_id,
            org_id=org_id,
            name=name,
            role=role,
            email=email,
            joined_at=joined_at or today_iso(),
        )
        with self.write_lock(org_id):
            queries.upsert_member(self._db, member)
        return Member.from_row(queries.get_member(self._db, org_id, user_id))

    def list_members(self, org_id: str) -> list[Member]:
        self.get_organization(org_id)
        return [Member.from_row(r) for r in queries.list_members(self._db, org_id)]

    def get_user_role(self, org_id: str, user_id: str) -> OrgRole:
        """A user's role in an organization; non-members are viewers.

        Roles are advisory. The ledger records and reports them but never
        refuses a write because of one.
        """
        self.get_organization(org_id)
        row = queries.get_member(self._db, org_id, user_id)
        return OrgRole(row["role"]) if row else OrgRole.VIEWER

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def add_account(
        self,
        id: str,
        org_id: str,
        name: str,
        *,
        broker: str = "",
        currency: str = "USD",
        is_tax_advantaged: bool = False,
        csv_mapping: CsvMappingConfig | None = None,
    ) -> Account:
        self.get_organization(org_id)
        queries.upsert_account(
            self._db, id, org_id, name,
            broker=broker, currency=currency,
            is_tax_advantaged=is_tax_advantaged, csv_mapping=csv_mapping,
        )
        return self.get_account(id)

    def find_account(self, account_id: str) -> Account | None:
        row = queries.get_account(self._db, account_id)
        return Account.from_row(row) if row else None

    def get_account(self, account_id: str) -> Account:
        account = self.find_account(account_id)
        if account is None:
            raise ReferenceNotFound("account", account_id)
        return account

    def list_accounts(self, org_id: str | None = None) -> list[Account]:
        return [Account.from_row(r) for r in queries.list_accounts(self._db, org_id)]

    def update_account(
        self,
        account_id: str,
        *,
        name: str | None = None,
        broker: str | None = None,
        csv_mapping: CsvMappingConfig | None = None,
        clear_csv_mapping: bool = False,
    ) -> Account:
        """Change an account's display settings or CSV column mapping."""
        account = self.get_account(account_id)
        with self.write_lock(account.org_id):
            queries.update_account_settings(
                self._db, account_id, name=name, broker=broker,
                csv_mapping=csv_mapping, clear_csv_mapping=clear_csv_mapping,
            )
        return self.get_account(account_id)

    # ------------------------------------------------------------------
    # Securities
    # ------------------------------------------------------------------

    def add_security(
        self,
        ticker: str,
        *,
        currency: str = "USD",
        current_price: float = 0.0,
        name: str | None = None,
        type: SecurityType = SecurityType.STOCK,
        sector: str = "Other",
        industry: str = "Unknown",
        country: str = "Global",
        as_of: str | None = None,
        security_id: str | None = None,
    ) -> Security:
        ticker = ticker.strip().upper()
        security = Security(
            id=security_id or new_security_id(ticker),
            ticker=ticker,
            name=name or ticker,
            currency=currency.upper(),
            current_price=current_price,
            last_updated=as_of or today_iso(),
            type=type,
            sector=sector,
            industry=industry,
            country=country,
        )
        queries.insert_security(self._db, security)
        logger.info("Registered security %s (%s)", security.ticker, security.id)
        return security

    def get_security(self, security_id: str) -> Security:
        row = queries.get_security(self._db, security_id)
        if row is None:
            raise ReferenceNotFound("security", security_id)
        return Security.from_row(row)

    def find_security_by_ticker(self, ticker: str) -> Security | None:
        row = queries.get_security_by_ticker(self._db, ticker.strip().upper())
        return Security.from_row(row) if row else None

    def securities(self) -> dict[str, Security]:
        """security_id -> Security for every registered security."""
        return {r["id"]: Security.from_row(r) for r in queries.list_securities(self._db)}

    def resolve_security(
        self,
        ticker: str,
        *,
        currency: str,
        placeholder_price: float,
        as_of: str | None = None,
    ) -> tuple[Security, bool]:
        """Find a security by ticker, creating it if unknown.

        New securities get default classification and the placeholder
        price until a price refresh corrects them. Securities are shared by
        every organization, so the lookup and insert run under one
        ledger-wide lock.

        Returns:
            (security, created)
        """
        with self._securities_lock:
            existing = self.find_security_by_ticker(ticker)
            if existing is not None:
                return existing, False
            security = self.add_security(
                ticker, currency=currency, current_price=placeholder_price, as_of=as_of,
            )
        return security, True

    def update_security_price(
        self, security_id: str, price: float, as_of: str | None = None,
    ) -> Security:
        """Refresh a security's price, e.g. from an external quote feed."""
        if price < 0:
            raise ValueError(f"price must be non-negative, got {price}")
        if not queries.update_security_price(self._db, security_id, price, as_of or today_iso()):
            raise ReferenceNotFound("security", security_id)
        return self.get_security(security_id)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def append(self, tx: Transaction) -> Transaction:
        """Append one transaction. Existing entries are never touched."""
        queries.insert_transaction(self._db, tx)
        logger.debug(
            "Appended %s %s %g @ %g to %s",
            tx.type.value, tx.security_id, tx.quantity, tx.price, tx.account_id,
        )
        return tx

    def transactions(self, account_ids: Iterable[str] | None = None) -> list[Transaction]:
        rows = queries.list_transactions(self._db, account_ids)
        return [Transaction.from_row(r) for r in rows]

    def add_manual_transaction(self, entry: ManualTransactionInput) -> Transaction:
        """Record a user-entered transaction.

        Raises:
            ReferenceNotFound: The account does not exist.
        """
        account = self.get_account(entry.account_id)
        ticker = entry.ticker.strip().upper()
        if not ticker:
            raise ValueError("ticker must not be empty")

        tx_date = entry.date or today_iso()
        if entry.type is TransactionType.SELL:
            quantity = -abs(entry.quantity)
        elif entry.type is TransactionType.ADJUST:
            quantity = entry.quantity
        else:
            quantity = abs(entry.quantity)

        with self.write_lock(account.org_id):
            security, _ = self.resolve_security(
                ticker,
                currency=entry.currency or account.currency,
                placeholder_price=entry.price,
                as_of=today_iso(),
            )
            tx = Transaction(
                id=new_transaction_id("tx_man"),
                account_id=account.id,
                security_id=security.id,
                type=entry.type,
                quantity=quantity,
                price=entry.price,
                date=tx_date,
                note=entry.note,
            )
            return self.append(tx)

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def positions(self, account_ids: Iterable[str] | None = None) -> list[Position]:
        """Current positions folded from the ledger."""
        return derive_positions(self.transactions(account_ids))

    def get_aggregated_holdings(
        self, org_id: str, base_currency: str | None = None,
    ) -> list[EnrichedPosition]:
        """Valued, weighted holdings across all of an organization's accounts.

        ``base_currency`` defaults to the organization's own.
        """
        org = self.get_organization(org_id)
        accounts = {a.id: a for a in self.list_accounts(org_id)}
        txs = self.transactions(accounts.keys())
        return aggregate_holdings(
            derive_positions(txs),
            self.securities(),
            accounts,
            (base_currency or org.base_currency).upper(),
            fx=self._fx,
            transactions=txs,
            recent_window=self._config.recent_transactions,
        )

    def calculate_risk(self, org_id: str, base_currency: str | None = None) -> RiskMetric:
        holdings = self.get_aggregated_holdings(org_id, base_currency)
        return calculate_risk_metrics(holdings, self.get_risk_thresholds(org_id))

    # ------------------------------------------------------------------
    # Risk thresholds
    # ------------------------------------------------------------------

    def get_risk_thresholds(self, org_id: str) -> RiskThresholdConfig:
        """Stored thresholds for the organization, else the configured defaults."""
        row = queries.get_risk_thresholds(self._db, org_id)
        if row is None:
            return self._config.risk.model_copy()
        return RiskThresholdConfig(
            concentration_limit=row["concentration_limit"],
            sector_limit=row["sector_limit"],
            min_cash_weight=row["min_cash_weight"],
        )

    def update_risk_thresholds(
        self,
        org_id: str,
        config: RiskThresholdConfig,
        *,
        actor: str | None = None,
    ) -> RiskThresholdConfig:
        """Replace the organization's thresholds.

        Threshold changes belong to owners. When ``actor`` is given and is
        not an owner, the change is still saved and a warning is logged.
        """
        self.get_organization(org_id)
        if actor is not None and self.get_user_role(org_id, actor) is not OrgRole.OWNER:
            logger.warning(
                "%s is not an owner of %s; saving risk thresholds anyway", actor, org_id,
            )
        with self.write_lock(org_id):
            queries.upsert_risk_thresholds(self._db, org_id, config)
        logger.info("Updated risk thresholds for %s: %s", org_id, config.model_dump())
        return self.get_risk_thresholds(org_id)

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def seed_from_config(self) -> tuple[int, int]:
        """Upsert the organizations, their members and the accounts listed in config.

        Returns:
            (organizations, accounts) written.
        """
        for org in self._config.organizations:
            queries.upsert_organization(self._db, org.id, org.name, org.base_currency)
            for m in org.members:
                self.add_member(org.id, m.user_id, m.name, role=OrgRole(m.role), email=m.email)
        for acct in self._config.accounts:
            queries.upsert_account(
                self._db, acct.id, acct.org_id, acct.name,
                broker=acct.broker, currency=acct.currency,
                is_tax_advantaged=acct.is_tax_advantaged,
                csv_mapping=acct.csv_mapping,
            )
        return len(self._config.organizations), len(self._config.accounts)
