"""Snapshot sync: reconcile a broker holdings CSV against the ledger.

The snapshot is treated as the truth for quantities. For every row the
ledger-derived quantity of that ticker in the target account is compared
with the CSV quantity, and one ADJUST transaction covering the
difference is appended. Nothing already in the ledger is changed, so
historical cost data survives and a second run with the same file
appends nothing.

Stages: read header -> resolve columns -> diff each row -> done.
A missing target account or missing ticker/quantity column aborts
before anything is written. Rows that cannot be parsed are skipped.
Fields beyond the header row are ignored.

Each appended adjustment commits on its own. If a later row fails for
a reason other than a parse problem, adjustments from earlier rows stay
in the ledger.
"""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import pandas as pd

from atlas.config.defaults import QUANTITY_EPSILON, SYNC_NOTE_TEMPLATE
from atlas.config.schema import SyncConfig
from atlas.errors import ColumnResolutionError, RowParseSkip, TargetAccountNotFound
from atlas.portfolio.ledger import Ledger, new_transaction_id
from atlas.portfolio.models import Account, Transaction, TransactionType
from atlas.portfolio.positions import positions_by_security

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Column resolution
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ColumnRule:
    """Names a column may go by, matched case-insensitively and exactly."""
    role: str
    names: tuple[str, ...]
    required: bool = True

    def match(self, headers: list[str]) -> int | None:
        """Index of the first header (left to right) carrying one of the names."""
        wanted = {n.strip().lower() for n in self.names}
        for idx, header in enumerate(headers):
            if header.strip().lower() in wanted:
                return idx
        return None


@dataclass(frozen=True)
class ResolvedColumns:
    ticker: int
    quantity: int
    cost: int | None = None


def column_rules(account: Account, sync: SyncConfig) -> list[ColumnRule]:
    """Rules for an account: its own mapping if set, else the synonym lists."""
    mapping = account.csv_mapping
    if mapping is not None:
        rules = [
            ColumnRule("ticker", (mapping.ticker_column,)),
            ColumnRule("quantity", (mapping.quantity_column,)),
        ]
        if mapping.cost_column:
            rules.append(ColumnRule("cost", (mapping.cost_column,), required=False))
        return rules
    return [
        ColumnRule("ticker", tuple(sync.ticker_synonyms)),
        ColumnRule("quantity", tuple(sync.quantity_synonyms)),
        ColumnRule("cost", tuple(sync.cost_synonyms), required=False),
    ]


def _describe_rules(account: Account, rules: list[ColumnRule]) -> dict[str, Any]:
    source = "account mapping" if account.csv_mapping is not None else "default synonyms"
    return {"source": source, **{r.role: list(r.names) for r in rules}}


def resolve_columns(headers: list[str], account: Account, sync: SyncConfig) -> ResolvedColumns:
    """Locate the ticker, quantity and (optional) cost columns.

    Raises:
        ColumnResolutionError: ticker or quantity column not found. The
            error carries the headers and the names that were searched.
    """
    rules = column_rules(account, sync)
    found: dict[str, int | None] = {r.role: r.match(headers) for r in rules}
    missing = [r.role for r in rules if r.required and found[r.role] is None]
    if missing:
        raise ColumnResolutionError(missing, headers, _describe_rules(account, rules))
    return ResolvedColumns(
        ticker=found["ticker"],
        quantity=found["quantity"],
        cost=found.get("cost"),
    )


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _read_snapshot(text: str) -> tuple[list[str], pd.DataFrame]:
    """Split snapshot text into header names and a frame of raw string cells.

    The frame is indexed by 1-based source line. Cells past the header's
    width are cut off; the row itself is kept. Blank lines come through as
    rows with no values.
    """
    body = text.lstrip("\r\n")
    leading_lines = text[: len(text) - len(body)].count("\n")
    options = {"header": None, "dtype": str, "keep_default_na": False, "engine": "python"}

    width = pd.read_csv(io.StringIO(body), nrows=1, **options).shape[1]
    frame = pd.read_csv(
        io.StringIO(body),
        skip_blank_lines=False,
        on_bad_lines=lambda fields: fields[:width],
        **options,
    )
    frame.index = frame.index + leading_lines + 1
    headers = [str(h).strip().lstrip("\ufeff") for h in frame.iloc[0].tolist()]
    return headers, frame.iloc[1:]


def _cell(values: list[Any], idx: int | None) -> str | None:
    if idx is None or idx >= len(values):
        return None
    value = values[idx]
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def parse_number(raw: str | None) -> float | None:
    """Parse a finite float, or None if the text is not a number."""
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _parse_row(values: list[Any], columns: ResolvedColumns) -> tuple[str, float, float | None]:
    """Return (ticker, quantity, cost) or raise RowParseSkip."""
    ticker = _cell(values, columns.ticker)
    raw_qty = _cell(values, columns.quantity)
    if ticker is None or raw_qty is None:
        raise RowParseSkip("missing ticker or quantity")
    quantity = parse_number(raw_qty)
    if quantity is None:
        raise RowParseSkip(f"quantity {raw_qty!r} is not numeric")
    return ticker.upper(), quantity, parse_number(_cell(values, columns.cost))


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------

@dataclass
class SyncResult:
    """Outcome of one snapshot sync."""

    adjustments: list[Transaction] = field(default_factory=list)
    rows_processed: int = 0
    rows_skipped: int = 0
    rows_unchanged: int = 0
    securities_created: list[str] = field(default_factory=list)
    """Tickers registered because the snapshot was the first to mention them."""
    columns: ResolvedColumns | None = None


def sync_holdings_csv(
    ledger: Ledger,
    org_id: str,
    csv_text: str,
    account_id: str,
    *,
    today: str | None = None,
) -> SyncResult:
    """Append ADJUST transactions so the account matches the snapshot.

    Parameters:
        ledger: Ledger to read the baseline from and append to.
        org_id: Organization that must own the target account.
        csv_text: Comma-delimited snapshot, header row first.
        account_id: Account the snapshot describes.
        today: Date stamped on adjustments (YYYY-MM-DD); defaults to today.

    Returns:
        SyncResult listing the adjustments appended.

    Raises:
        TargetAccountNotFound: account missing or not in the organization.
        ColumnResolutionError: ticker or quantity column not found.
    """
    account = ledger.find_account(account_id)
    if account is None or account.org_id != org_id:
        raise TargetAccountNotFound(account_id, org_id)

    sync_cfg = ledger.config.sync
    today = today or date.today().isoformat()
    result = SyncResult()

    if not csv_text.strip():
        logger.info("Empty snapshot for %s, nothing to sync", account_id)
        return result

    with ledger.write_lock(org_id):
        headers, rows = _read_snapshot(csv_text)
        columns = resolve_columns(headers, account, sync_cfg)
        result.columns = columns

        # Baseline is taken once, before any row is applied
        baseline = positions_by_security(ledger.positions([account.id]))

        for line_no, *cells in rows.itertuples(name=None):
            values = list(cells)
            if all(_cell(values, idx) is None for idx in range(len(values))):
                continue
            try:
                ticker, csv_qty, csv_cost = _parse_row(values, columns)
            except RowParseSkip as e:
                logger.debug("Skipping snapshot line %d: %s", line_no, e)
                result.rows_skipped += 1
                continue
            result.rows_processed += 1

            security, created = ledger.resolve_security(
                ticker,
                currency=account.currency,
                placeholder_price=sync_cfg.placeholder_price,
                as_of=today,
            )
            if created:
                result.securities_created.append(security.ticker)

            existing = baseline.get(security.id)
            ledger_qty = existing.quantity if existing else 0.0
            diff = csv_qty - ledger_qty
            if abs(diff) <= QUANTITY_EPSILON:
                result.rows_unchanged += 1
                continue

            if csv_cost is not None:
                price = csv_cost
            elif existing is not None:
                price = existing.cost_basis
            else:
                price = 0.0

            tx = ledger.append(Transaction(
                id=new_transaction_id("tx_sync"),
                account_id=account.id,
                security_id=security.id,
                type=TransactionType.ADJUST,
                quantity=diff,
                price=price,
                date=today,
                note=SYNC_NOTE_TEMPLATE.format(diff=diff),
            ))
            result.adjustments.append(tx)
            logger.info(
                "Snapshot sync %s: %s %+g (ledger %g -> snapshot %g)",
                account.id, ticker, diff, ledger_qty, csv_qty,
            )

    logger.info(
        "Snapshot sync %s: %d adjustment(s), %d row(s) skipped",
        account.id, len(result.adjustments), result.rows_skipped,
    )
    return result
