"""Valuation & aggregation: join positions to reference data and weight them.

Two passes over the positions:
  1. Value each position locally and in the base currency, and accumulate
     the portfolio total.
  2. Divide each base value by the total to get its weight.

The result is sorted by base market value, largest first. Risk scoring
relies on that ordering for its top-concentration check.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Mapping

from atlas.config.defaults import RECENT_TRANSACTIONS_WINDOW
from atlas.errors import ReferenceNotFound
from atlas.portfolio.fx import FxRateTable
from atlas.portfolio.models import (
    Account,
    EnrichedPosition,
    Position,
    Security,
    Transaction,
)

logger = logging.getLogger(__name__)


def gain_loss_percent(market_value: float, cost_value: float) -> float:
    """Unrealized gain/loss in percent; 0 when there is no cost."""
    if cost_value == 0:
        return 0.0
    return (market_value - cost_value) / cost_value * 100


def _recent_by_pair(
    transactions: Iterable[Transaction],
    window: int,
) -> dict[tuple[str, str], list[Transaction]]:
    grouped: dict[tuple[str, str], list[Transaction]] = defaultdict(list)
    for tx in transactions:
        grouped[(tx.account_id, tx.security_id)].append(tx)
    return {
        key: sorted(txs, key=lambda t: t.date, reverse=True)[:window]
        for key, txs in grouped.items()
    }


def aggregate_holdings(
    positions: Iterable[Position],
    securities: Mapping[str, Security],
    accounts: Mapping[str, Account],
    base_currency: str,
    fx: FxRateTable | None = None,
    transactions: Iterable[Transaction] = (),
    recent_window: int = RECENT_TRANSACTIONS_WINDOW,
) -> list[EnrichedPosition]:
    """Value positions in the base currency and compute portfolio weights.

    Parameters:
        positions: Derived positions for the organization's accounts.
        securities: security_id -> Security.
        accounts: account_id -> Account.
        base_currency: Reporting currency, e.g. "USD".
        fx: Rate table; defaults to the built-in table.
        transactions: Ledger entries used to attach the most recent
            transactions to each position (date descending).
        recent_window: How many recent transactions to attach.

    Returns:
        Enriched positions sorted by ``market_value_base`` descending.
        Weights sum to 1.0 when the portfolio total is positive and are
        all 0 otherwise.

    Raises:
        ReferenceNotFound: A position refers to an unknown security or
            account. Prices are never invented here.
    """
    fx = fx or FxRateTable()
    recent = _recent_by_pair(transactions, recent_window)

    enriched: list[EnrichedPosition] = []
    total_base = 0.0

    for pos in positions:
        security = securities.get(pos.security_id)
        if security is None:
            raise ReferenceNotFound("security", pos.security_id)
        account = accounts.get(pos.account_id)
        if account is None:
            raise ReferenceNotFound("account", pos.account_id)

        market_value_local = pos.quantity * security.current_price
        market_value_base = market_value_local * fx.rate(security.currency, base_currency)
        total_base += market_value_base

        enriched.append(EnrichedPosition(
            position=pos,
            security=security,
            account=account,
            market_value_local=market_value_local,
            market_value_base=market_value_base,
            gain_loss_percent=gain_loss_percent(market_value_local, pos.total_cost),
            recent_transactions=recent.get(pos.key, []),
        ))

    for holding in enriched:
        holding.weight = holding.market_value_base / total_base if total_base > 0 else 0.0

    logger.debug(
        "Valued %d positions, total %.2f %s", len(enriched), total_base, base_currency,
    )
    # sorted() is stable, so equal values keep their derivation order
    return sorted(enriched, key=lambda h: h.market_value_base, reverse=True)


def total_market_value(holdings: Iterable[EnrichedPosition]) -> float:
    """Total base-currency market value of enriched positions."""
    return sum(h.market_value_base for h in holdings)
