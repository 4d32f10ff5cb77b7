"""Entry point for the oracle gateway."""

import os

# Force UTC timezone for entire application
os.environ["TZ"] = "UTC"  # noqa: E402

import asyncio
import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from oracle_gateway.api import create_app
from oracle_gateway.bootstrap import Gateway, bootstrap
from oracle_gateway.cli import build_parser
from oracle_gateway.logging_setup import configure_coin_debug_logging, configure_logging
from oracle_gateway.notify import AlertKind
from oracle_gateway.runtime import RuntimeConfig, build_runtime_config
from oracle_gateway.settings import Settings

logger = logging.getLogger(__name__)


def _start(gateway: Gateway) -> None:
    gateway.scheduler.start()
    started = gateway.jobs.start()
    logger.info(f"Scheduler started with {len(started)} job(s), waiting for ticks...")
    gateway.notifications.emit(
        AlertKind.SERVICE_STATUS,
        {
            "service": "Oracle Gateway",
            "status": "online",
            "details": {"coins": ", ".join(gateway.runtime.coins), "backend": gateway.runtime.backend},
        },
    )


async def _stop(gateway: Gateway) -> None:
    gateway.jobs.stop()
    await gateway.aclose()
    logger.info("Oracle gateway stopped")


async def run(settings: Settings, runtime: RuntimeConfig) -> None:
    """Bootstrap and run the scheduler, with the HTTP control surface when enabled."""
    gateway = await bootstrap(settings, runtime)

    if not runtime.api_enabled:
        _start(gateway)
        try:
            # Block forever, keeping the scheduler running
            await asyncio.Event().wait()
        finally:
            await _stop(gateway)
        return

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _start(gateway)
        yield
        await _stop(gateway)

    app = create_app(
        jobs=gateway.jobs,
        orchestrator=gateway.orchestrator,
        settings=settings,
        notifications=gateway.notifications,
        lifespan=lifespan,
    )
    config = uvicorn.Config(
        app,
        host=runtime.host,
        port=runtime.port,
        log_level="warning",
    )
    logger.info(f"Starting HTTP control surface on {runtime.host}:{runtime.port}")
    await uvicorn.Server(config).serve()


def main() -> None:
    """Main entry point for the oracle gateway."""
    args = build_parser().parse_args()

    try:
        settings = Settings()
        runtime = build_runtime_config(args, settings)
    except Exception as e:
        sys.exit(f"Configuration error: {e}")

    configure_logging(settings.log_level)
    configure_coin_debug_logging(runtime.debug_coins)

    logger.info("Starting oracle gateway application...")

    try:
        asyncio.run(run(settings, runtime))
    except KeyboardInterrupt:
        logger.info("Application stopped by user")
    except Exception as e:
        logger.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
