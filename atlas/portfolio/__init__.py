"""Portfolio engine: position derivation, valuation, risk scoring.

Public API::

    from atlas.portfolio import (
        derive_positions,
        aggregate_holdings,
        calculate_risk_metrics,
        FxRateTable,
    )

The stateful :class:`~atlas.portfolio.ledger.Ledger` facade is imported
from ``atlas.portfolio.ledger`` directly.
"""

from atlas.portfolio.fx import FxRateTable
from atlas.portfolio.models import (
    Account,
    EnrichedPosition,
    Exposure,
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

__all__ = [
    "Account",
    "EnrichedPosition",
    "Exposure",
    "FxRateTable",
    "Member",
    "OrgRole",
    "Organization",
    "Position",
    "RiskMetric",
    "Security",
    "SecurityType",
    "Transaction",
    "TransactionType",
    "aggregate_holdings",
    "calculate_risk_metrics",
    "derive_positions",
]
