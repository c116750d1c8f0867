"""Position derivation: fold the transaction ledger into net positions.

Positions are never stored. Every query re-runs this fold over the
ledger, so a position can never drift from the transactions that
produced it.

Cost basis uses the weighted-average method: buys blend into one
running average cost per unit, sells remove quantity at that average.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from atlas.config.defaults import QUANTITY_EPSILON
from atlas.portfolio.models import Position, Transaction


@dataclass
class _Accumulator:
    quantity: float
    total_cost: float
    updated_at: str


def derive_positions(
    transactions: Iterable[Transaction],
    epsilon: float = QUANTITY_EPSILON,
) -> list[Position]:
    """Fold transactions into one Position per (account, security) pair.

    Transactions are stable-sorted by date before folding, so any two
    orderings of the same ledger give the same result. Same-day entries
    keep their input order.

    Parameters:
        transactions: Ledger entries, any account/security mix.
        epsilon: Pairs whose absolute net quantity is at or below this
            are closed and omitted.

    Returns:
        Open positions in order of each pair's first transaction.
        Quantities may be negative: selling more than is held is not
        rejected.
    """
    book: dict[tuple[str, str], _Accumulator] = {}

    for tx in sorted(transactions, key=lambda t: t.date):
        key = (tx.account_id, tx.security_id)
        acc = book.get(key)
        if acc is None:
            acc = book[key] = _Accumulator(0.0, 0.0, tx.date)

        if tx.is_increase:
            acc.quantity += tx.quantity
            acc.total_cost += tx.quantity * tx.price
        elif tx.is_decrease:
            avg_cost = acc.total_cost / acc.quantity if acc.quantity != 0 else 0.0
            sold = abs(tx.quantity)
            acc.quantity -= sold
            acc.total_cost -= sold * avg_cost

        if tx.date > acc.updated_at:
            acc.updated_at = tx.date

    positions: list[Position] = []
    for (account_id, security_id), acc in book.items():
        if abs(acc.quantity) <= epsilon:
            continue
        positions.append(Position(
            account_id=account_id,
            security_id=security_id,
            quantity=acc.quantity,
            cost_basis=acc.total_cost / acc.quantity,
            updated_at=acc.updated_at,
        ))
    return positions


def positions_by_security(positions: Iterable[Position]) -> dict[str, Position]:
    """Index positions of a single account by security id."""
    return {p.security_id: p for p in positions}
