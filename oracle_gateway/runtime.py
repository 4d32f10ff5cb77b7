"""Runtime configuration building for oracle gateway startup."""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass

from oracle_gateway.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuntimeConfig:
    """Resolved startup configuration after CLI/ENV merge."""

    coins: list[str]
    debug_coins: str | None
    backend: str
    api_enabled: bool
    host: str
    port: int


def build_runtime_config(args: argparse.Namespace, settings: Settings) -> RuntimeConfig:
    """Resolve final runtime configuration used by main()."""
    supported = settings.coins
    if not supported:
        raise ValueError("SUPPORTED_COINS must list at least one coin")

    coins = _parse_coins_spec(args.coins, set(supported))
    if coins is None:
        coins = supported
    else:
        # Keep the configured order
        coins = [coin for coin in supported if coin in coins]

    debug_coins = args.debug_coins if args.debug_coins is not None else settings.debug_coins
    backend = args.backend if args.backend is not None else settings.submission_backend
    host = args.host if args.host is not None else settings.server.host
    port = args.port if args.port is not None else settings.server.port

    if not 1 <= port <= 65535:
        raise ValueError("port must be between 1 and 65535")

    return RuntimeConfig(
        coins=coins,
        debug_coins=debug_coins,
        backend=backend,
        api_enabled=not args.no_api,
        host=host,
        port=port,
    )


def _parse_coins_spec(coins_spec: str | None, supported: set[str]) -> list[str] | None:
    """Parse and validate comma-separated coins string."""
    if not coins_spec:
        return None

    requested = {item.strip().upper() for item in coins_spec.split(",") if item.strip()}
    if not requested:
        return None

    unknown = requested - supported
    if unknown:
        logger.warning(
            "Unknown coins requested: %s. Supported coins: %s",
            sorted(unknown),
            sorted(supported),
        )

    valid = sorted(requested & supported)
    if valid:
        logger.info("Filtered to %s coin(s): %s", len(valid), valid)
        return valid

    return None
