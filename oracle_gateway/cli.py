"""CLI argument parsing for the oracle gateway."""

from __future__ import annotations

import argparse


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI parser used by the main entrypoint."""
    parser = argparse.ArgumentParser(
        description="Oracle gateway - attested price updates for Aleo programs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run every configured coin with the HTTP control surface (default)
  oracle-gateway

  # Run specific coins
  oracle-gateway --coins BTC,ETH

  # Use delegated proving instead of the local CLI
  oracle-gateway --backend delegated

  # Scheduler only, DEBUG logs for one coin
  oracle-gateway --no-api --debug-coins BTC

Environment Variables:
  SUPPORTED_COINS      Comma-separated list of coins (filtered by --coins)
  DEBUG_COINS          Comma-separated list of coins for DEBUG logging
  SUBMISSION_BACKEND   cli | delegated
  ORACLE_CONFIG_FILE   JSON config file (default: config.json)
        """,
    )

    parser.add_argument(
        "--coins",
        type=str,
        default=None,
        help="Comma-separated list of coins to run (default: all supported).",
    )
    parser.add_argument(
        "--debug-coins",
        type=str,
        default=None,
        help="Comma-separated list of coins for DEBUG logging.",
    )
    parser.add_argument(
        "--backend",
        choices=["cli", "delegated"],
        default=None,
        help="Submission backend (default: from SUBMISSION_BACKEND).",
    )
    parser.add_argument(
        "--no-api",
        action="store_true",
        help="Run the scheduler without the HTTP control surface.",
    )
    parser.add_argument("--host", type=str, default=None, help="HTTP bind host.")
    parser.add_argument("--port", type=int, default=None, help="HTTP bind port.")

    return parser
