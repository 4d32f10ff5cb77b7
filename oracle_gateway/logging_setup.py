"""Logging setup helpers for oracle gateway startup."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Configure base logging and quieten chatty libraries."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def configure_coin_debug_logging(coins_spec: str | None) -> None:
    """Enable DEBUG logs for per-coin job loggers."""
    coins = [coin.upper() for coin in _parse_csv(coins_spec)]
    for coin in coins:
        logging.getLogger(f"oracle_gateway.coins.{coin}").setLevel(logging.DEBUG)
    if coins:
        logger.info("Enabling DEBUG logging for coins: %s", coins)


def _parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]
