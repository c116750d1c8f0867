"""Risk scoring from concentration, sector, currency and country exposure.

Score starts at a base of 10 (lower is safer) and is raised by:
  - +30 when the largest holding's weight exceeds the concentration limit
  - +20 when the largest sector's weight exceeds the sector limit

Currency and country breakdowns are informational and never move the
score. The final score is clamped to [0, 100].
"""

from __future__ import annotations

from typing import Sequence

import pandas as pd

from atlas.config.defaults import NO_HOLDINGS_TICKER, RISK_SCORING
from atlas.config.schema import RiskThresholdConfig
from atlas.portfolio.models import EnrichedPosition, Exposure, RiskMetric


def _exposure(frame: pd.DataFrame, column: str, *, ranked: bool = False) -> list[Exposure]:
    """Sum weights per group, in order of first appearance.

    With ``ranked`` the groups are sorted by weight descending; the sort
    is stable so ties keep first-appearance order.
    """
    sums = frame.groupby(column, sort=False)["weight"].sum()
    if ranked:
        sums = sums.sort_values(ascending=False, kind="stable")
    return [Exposure(name=str(name), percent=float(pct)) for name, pct in sums.items()]


def calculate_risk_metrics(
    holdings: Sequence[EnrichedPosition],
    thresholds: RiskThresholdConfig | None = None,
) -> RiskMetric:
    """Score portfolio risk for holdings sorted by base value descending.

    Parameters:
        holdings: Output of ``aggregate_holdings`` (already sorted).
        thresholds: Concentration and sector limits. Defaults apply when
            omitted.

    Returns:
        RiskMetric with score, flags, exposures and warnings.
    """
    thresholds = thresholds or RiskThresholdConfig()
    score = RISK_SCORING["base_score"]
    warnings: list[str] = []

    if not holdings:
        return RiskMetric(
            score=score,
            concentration_high=False,
            top_concentration_ticker=NO_HOLDINGS_TICKER,
        )

    # 1. Single-asset concentration
    top = holdings[0]
    concentration_high = top.weight > thresholds.concentration_limit
    if concentration_high:
        score += RISK_SCORING["concentration_penalty"]
        warnings.append(
            f"Position concentrated in {top.ticker} "
            f"(>{thresholds.concentration_limit:.0%})"
        )

    frame = pd.DataFrame(
        [
            {
                "sector": h.security.sector,
                "currency": h.security.currency,
                "country": h.security.country,
                "weight": h.weight,
            }
            for h in holdings
        ]
    )

    # 2. Sector exposure
    sectors = _exposure(frame, "sector", ranked=True)
    if sectors and sectors[0].percent > thresholds.sector_limit:
        score += RISK_SCORING["sector_penalty"]
        warnings.append(
            f"{sectors[0].name} sector exposure too high "
            f"(>{thresholds.sector_limit:.0%})"
        )

    # 3. Currency / country (informational)
    currencies = _exposure(frame, "currency")
    countries = _exposure(frame, "country")

    score = max(0, min(score, RISK_SCORING["max_score"]))

    return RiskMetric(
        score=score,
        concentration_high=concentration_high,
        top_concentration_ticker=top.ticker,
        sector_concentration=sectors,
        currency_exposure=currencies,
        country_exposure=countries,
        warnings=warnings,
    )
