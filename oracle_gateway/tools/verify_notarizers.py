"""Notarizer verification CLI."""

import argparse
import asyncio
import sys
import time

from rich.console import Console
from rich.table import Table

from oracle_gateway.attestation import NotarizerClient
from oracle_gateway.attestation.dto import AttestationRequest
from oracle_gateway.attestation.failover import AttemptSuccess, attempt_notarize
from oracle_gateway.attestation.notarizer import resolve_endpoint
from oracle_gateway.settings import Settings

console = Console()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Probe every configured notarizer with a real attestation request"
    )
    parser.add_argument(
        "coin",
        nargs="?",
        help="Coin to request (default: first of SUPPORTED_COINS)",
    )
    parser.add_argument(
        "--info",
        action="store_true",
        help="Also fetch enclave info from each notarizer",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Per-request timeout in seconds (default: 30)",
    )
    return parser


async def verify_notarizers(settings: Settings, coin: str, info: bool, timeout: float) -> bool:
    console.print(f"\n[bold cyan]Verifying notarizers for {coin}[/bold cyan]\n")

    template = settings.attestation_request.to_request()
    request = AttestationRequest(
        url=template.url.format(coin=coin.lower()),
        request_method=template.request_method,
        selector=template.selector,
        response_format=template.response_format,
        encoding_value=template.encoding_value,
        encoding_precision=template.encoding_precision,
        request_headers=template.request_headers,
    )
    console.print(f"  [dim]Request url: {request.url}[/dim]")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Notarizer", style="cyan")
    table.add_column("Status")
    table.add_column("Price", style="yellow", justify="right")
    table.add_column("Timestamp (ms)", justify="right")
    table.add_column("Latency", style="green", justify="right")
    if info:
        table.add_column("Unique ID", style="dim")

    healthy = 0
    total = 0
    for configured in settings.notarizers:
        for endpoint in await resolve_endpoint(configured.to_endpoint()):
            total += 1
            client = NotarizerClient(endpoint, timeout=timeout)
            try:
                started = time.monotonic()
                outcome = await attempt_notarize(client, request, coin)
                latency = f"{(time.monotonic() - started) * 1000:.0f}ms"

                if isinstance(outcome, AttemptSuccess):
                    healthy += 1
                    row = [
                        endpoint.label,
                        "[green]OK[/green]",
                        outcome.result.price,
                        str(outcome.result.timestamp_ms),
                        latency,
                    ]
                else:
                    row = [endpoint.label, f"[red]FAIL[/red] {outcome.error}", "-", "-", latency]

                if info:
                    row.append(await _unique_id(client))
                table.add_row(*row)
            finally:
                await client.close()

    console.print(table)

    if healthy == 0:
        console.print(f"\n[bold red][FAIL] No notarizer answered ({total} tried)[/bold red]\n")
        return False
    console.print(f"\n[bold green][OK] {healthy}/{total} notarizer(s) healthy[/bold green]\n")
    return True


async def _unique_id(client: NotarizerClient) -> str:
    try:
        infos = await client.enclaves_info()
    except Exception as exc:
        return f"error: {exc}"
    if not infos:
        return "-"
    aleo = (infos[0].get("info") or {}).get("aleo") or {}
    return str(aleo.get("uniqueId", "-"))


async def amain(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings()
    except Exception as exc:
        console.print(f"[bold red][FAIL][/bold red] Configuration error: {exc}")
        return 1

    coin = (args.coin or (settings.coins[0] if settings.coins else "")).upper()
    if not coin:
        parser.print_help()
        console.print("\nExample: oracle-gateway-verify BTC")
        return 1

    if args.timeout <= 0:
        console.print("[bold red][FAIL][/bold red] --timeout must be > 0")
        return 1

    success = await verify_notarizers(settings, coin, args.info, args.timeout)
    return 0 if success else 1


def main() -> int:
    return asyncio.run(amain())


def entrypoint() -> None:
    sys.exit(main())
