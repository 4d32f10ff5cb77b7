"""Deviation evaluator for deviation-triggered updates."""

import logging
import math
from collections.abc import Mapping

from oracle_gateway.coordinators.price_log import PriceLog, TrackedPrice

logger = logging.getLogger(__name__)


def deviation_percent(current: float, last: float) -> float:
    """Return ``|current - last| / last * 100``; undefined (zero base) gives inf."""
    if last == 0:
        return math.inf
    return abs(current - last) / abs(last) * 100


class DeviationEvaluator:
    """Decides whether a freshly attested price warrants an on-chain update."""

    def __init__(
        self,
        price_log: PriceLog,
        thresholds: Mapping[str, float],
        default_threshold: float = 0.5,
    ) -> None:
        self._price_log = price_log
        self._thresholds = {coin.upper(): value for coin, value in thresholds.items()}
        self._default_threshold = default_threshold

    def threshold_for(self, coin: str) -> float:
        return self._thresholds.get(coin.upper(), self._default_threshold)

    def should_update(self, coin: str, current_price: str | float) -> bool:
        """Compare ``current_price`` with the last tracked price for ``coin``."""
        return self.evaluate(coin, current_price, self._price_log.last(coin))

    def evaluate(
        self, coin: str, current_price: str | float, baseline: TrackedPrice | None
    ) -> bool:
        """Compare against an explicit baseline snapshot.

        No baseline (first run) and a zero baseline both mean "update".
        """
        if baseline is None:
            logger.info(f"No tracked price for {coin}. Update needed.")
            return True

        current = float(current_price)
        last = baseline.value
        change = deviation_percent(current, last)
        threshold = self.threshold_for(coin)

        if math.isinf(change):
            logger.info(f"Last tracked price for {coin} is 0. Update needed.")
            return True

        logger.info(
            f"{coin}: last {baseline.price} @ {baseline.timestamp_ms}, current {current_price}, "
            f"change {change:.4f}% (threshold {threshold}%)"
        )
        # Epsilon absorbs float noise so an exact threshold hit counts
        return change + 1e-9 >= threshold
