"""Bootstrap function for setting up the oracle gateway.

Builds every shared component once (price log, notarizer retriever, submission
backend and queue, notifier) and wires them into the job scheduler.
"""

import logging
from dataclasses import dataclass
from functools import partial

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from oracle_gateway.attestation import AttestationRetriever
from oracle_gateway.coordinators import DeviationEvaluator, PriceLog
from oracle_gateway.notify import AlertKind, DiscordNotifier, NotificationDispatcher
from oracle_gateway.orchestration import CoinOrchestrator, JobScheduler
from oracle_gateway.runtime import RuntimeConfig
from oracle_gateway.settings import Settings
from oracle_gateway.submission import (
    CommandProvingRequestBuilder,
    DelegatedProvingBackend,
    LeoCliBackend,
    SubmissionBackend,
    SubmissionQueue,
)

logger = logging.getLogger(__name__)


@dataclass
class Gateway:
    """Everything main() and the HTTP routes need at runtime."""

    settings: Settings
    runtime: RuntimeConfig
    scheduler: AsyncIOScheduler
    jobs: JobScheduler
    orchestrator: CoinOrchestrator
    price_log: PriceLog
    notifier: DiscordNotifier
    notifications: NotificationDispatcher

    async def aclose(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        await self.notifications.drain()
        await self.orchestrator.retriever.close()
        await self.notifier.close()
        self.price_log.close()


def build_backend(
    settings: Settings,
    backend: str,
    notifications: NotificationDispatcher | None = None,
) -> SubmissionBackend:
    """Select the submission backend once, from configuration.

    CLI memory alerts are emitted through ``notifications`` when given.
    """
    if backend == "delegated":
        command = settings.delegated.request_builder_command
        return DelegatedProvingBackend(
            program_name=settings.program.name,
            network=settings.leo_cli.network,
            api_key=settings.delegated_api_key,
            consumer_id=settings.delegated_consumer_id,
            request_builder=(
                CommandProvingRequestBuilder(command, settings.leo_private_key)
                if command
                else None
            ),
            prover_url=settings.delegated.prover_url,
            base_fee_credits=settings.delegated.base_fee_credits,
            priority_fee_credits=settings.delegated.priority_fee_credits,
            private_fee=settings.delegated.private_fee,
            broadcast=settings.delegated.broadcast,
        )
    if backend == "cli":
        on_resource_alert = (
            partial(notifications.emit, AlertKind.SYSTEM_HEALTH)
            if notifications is not None
            else None
        )
        return LeoCliBackend(
            program_name=settings.program.name,
            network=settings.leo_cli.network,
            endpoint=settings.leo_cli.endpoint,
            threads=settings.leo_cli.threads,
            executable=settings.leo_cli.executable,
            private_key=settings.leo_private_key,
            attempts=settings.leo_cli.attempts,
            enable_resource_profiling=settings.leo_cli.enable_resource_profiling,
            resource_profiling_interval=settings.leo_cli.resource_profiling_interval,
            memory_alert_mb=settings.leo_cli.memory_alert_mb,
            on_resource_alert=on_resource_alert,
        )
    raise ValueError(f"Unknown submission backend: {backend}")


async def bootstrap(settings: Settings, runtime: RuntimeConfig) -> Gateway:
    """Set up the gateway for the coins selected in ``runtime``.

    Jobs are registered by ``Gateway.jobs.start()``; this function only builds
    the components and the (not yet started) APScheduler instance.

    Raises:
        ValueError: If the backend name or notarizer list is invalid
    """
    logger.info(f"Bootstrapping oracle gateway for coins: {runtime.coins}")

    price_log = PriceLog(settings.prices_dir, runtime.coins)
    price_log.open()

    retriever = AttestationRetriever(
        endpoints=[notarizer.to_endpoint() for notarizer in settings.notarizers],
        request_template=settings.attestation_request.to_request(),
        price_log=price_log,
    )
    evaluator = DeviationEvaluator(
        price_log,
        thresholds={
            coin: settings.jobs_for(coin).deviation.threshold_percent for coin in runtime.coins
        },
    )

    notifier = DiscordNotifier(settings.discord)
    notifications = NotificationDispatcher(notifier)

    backend = build_backend(settings, runtime.backend, notifications)
    queue = SubmissionQueue(backend, concurrency=settings.queue_concurrency)
    logger.debug(
        f"Initialized submission: backend={backend.name}, "
        f"concurrency={settings.queue_concurrency}"
    )

    orchestrator = CoinOrchestrator(
        retriever=retriever,
        evaluator=evaluator,
        price_log=price_log,
        queue=queue,
        functions=settings.program.functions,
        notifications=notifications,
    )

    scheduler = AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,  # Collapse missed runs into one
            "max_instances": 1,  # A job never overlaps itself
            "misfire_grace_time": 60,
        },
    )
    jobs = JobScheduler(
        scheduler=scheduler,
        orchestrator=orchestrator,
        coins=runtime.coins,
        jobs={coin: settings.jobs_for(coin) for coin in runtime.coins},
        notifications=notifications,
    )

    logger.info(
        f"Bootstrap complete: {len(runtime.coins)} coin(s), backend={backend.name}, "
        f"{len(settings.notarizers)} notarizer(s)"
    )

    return Gateway(
        settings=settings,
        runtime=runtime,
        scheduler=scheduler,
        jobs=jobs,
        orchestrator=orchestrator,
        price_log=price_log,
        notifier=notifier,
        notifications=notifications,
    )
