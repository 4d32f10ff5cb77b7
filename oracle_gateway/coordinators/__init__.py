"""Coordinators shared by every coin's jobs.

- price_log: append-only per-coin price history (deviation baseline)
- deviation: threshold check between the baseline and a new price
"""

from oracle_gateway.coordinators.deviation import DeviationEvaluator, deviation_percent
from oracle_gateway.coordinators.price_log import PriceLog, TrackedPrice

__all__ = [
    "DeviationEvaluator",
    "PriceLog",
    "TrackedPrice",
    "deviation_percent",
]
