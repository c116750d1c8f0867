"""FX rate table keyed by "{from}-{to}" currency pair."""

from __future__ import annotations

import logging
from typing import Mapping

from atlas.config.defaults import DEFAULT_FX_RATE, FX_RATES

logger = logging.getLogger(__name__)


def pair_key(from_currency: str, to_currency: str) -> str:
    return f"{from_currency.upper()}-{to_currency.upper()}"


class FxRateTable:
    """Direct-lookup FX table.

    Only the pairs given are known; there is no inversion or
    triangulation through a third currency. An unknown pair converts at
    ``DEFAULT_FX_RATE`` (1.0).

    Usage::

        fx = FxRateTable({"JPY-USD": 0.0067})
        fx.rate("JPY", "USD")   # 0.0067
        fx.rate("CHF", "USD")   # 1.0 (unmodeled)
    """

    def __init__(self, rates: Mapping[str, float] | None = None) -> None:
        source = FX_RATES if rates is None else rates
        self._rates = {k.upper(): float(v) for k, v in source.items()}

    def rate(self, from_currency: str, to_currency: str) -> float:
        key = pair_key(from_currency, to_currency)
        rate = self._rates.get(key)
        if rate is None:
            logger.debug("No FX rate for %s, using %.1f", key, DEFAULT_FX_RATE)
            return DEFAULT_FX_RATE
        return rate

    def has_pair(self, from_currency: str, to_currency: str) -> bool:
        return pair_key(from_currency, to_currency) in self._rates

    def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        return amount * self.rate(from_currency, to_currency)
