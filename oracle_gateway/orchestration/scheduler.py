"""Per-coin job registry on top of APScheduler.

Each (coin, job-kind) pair is either Stopped (no timer, no stats) or Running
(timer armed, stats present). The registry owns both halves so they are
created and discarded together.
"""

import asyncio
import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from oracle_gateway.exceptions import ConfigurationError
from oracle_gateway.notify.discord import AlertKind
from oracle_gateway.notify.dispatch import NotificationDispatcher
from oracle_gateway.orchestration.coin_orchestrator import CoinOrchestrator, coin_logger
from oracle_gateway.settings import CoinJobs, JobSettings
from oracle_gateway.submission.dto import SubmissionResult
from oracle_gateway.submission.profiling import current_rss_bytes

logger = logging.getLogger(__name__)


class JobKind(str, Enum):
    PERIODIC = "periodic"
    DEVIATION = "deviation"


JobKey = tuple[str, JobKind]


@dataclass
class JobStats:
    """Run counters for one (coin, job-kind); mutated only by that job's runs."""

    schedule_expression: str
    enabled: bool = True
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    last_run_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None

    def record_success(self, started_at: datetime) -> None:
        now = datetime.now(timezone.utc)
        self.last_run_at = started_at
        self.last_success_at = now
        self.successful_runs += 1
        self.total_runs += 1

    def record_failure(self, started_at: datetime, error: str | None) -> None:
        now = datetime.now(timezone.utc)
        self.last_run_at = started_at
        self.last_error_at = now
        self.last_error = error
        self.failed_runs += 1
        self.total_runs += 1

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("last_run_at", "last_success_at", "last_error_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


@dataclass
class _RunningJob:
    job: Job
    stats: JobStats


_CRONTAB_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")


def _crontab_day_of_week(field: str) -> str:
    """Rewrite numeric crontab weekdays (0 and 7 are Sunday) as APScheduler names.

    APScheduler numbers weekdays from Monday, so numeric values are expanded
    to day names before they reach CronTrigger. Named values pass through.
    """
    days: list[str] = []
    for part in field.split(","):
        value, _, step_text = part.partition("/")
        step = int(step_text) if step_text else 1
        if step < 1:
            raise ValueError(f"invalid day_of_week step '{part}'")
        if value == "*":
            if not step_text:
                return field
            first, last = 0, 6
        elif value.replace("-", "").isdigit():
            start, _, end = value.partition("-")
            first = int(start)
            last = int(end) if end else (6 if step_text else first)
        else:
            days.append(part)
            continue
        if first > 7 or last > 7 or first > last:
            raise ValueError(f"invalid day_of_week value '{part}'")
        days.extend(_CRONTAB_WEEKDAYS[day] for day in range(first, last + 1, step))
    return ",".join(dict.fromkeys(days))


def parse_schedule(expression: str) -> CronTrigger:
    """Parse a 5-field crontab or a 6-field expression with leading seconds.

    Day-of-week follows crontab numbering in both forms.

    Raises:
        ConfigurationError: If the expression is not a valid schedule
    """
    fields = expression.split()
    if len(fields) not in (5, 6):
        raise ConfigurationError(
            f"Invalid schedule '{expression}': expected 5 or 6 fields, got {len(fields)}"
        )
    second = fields.pop(0) if len(fields) == 6 else "0"
    minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_crontab_day_of_week(day_of_week),
            timezone="UTC",
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid schedule '{expression}': {e}") from e


class JobScheduler:
    """Starts, stops, runs and reports the per-coin jobs."""

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        orchestrator: CoinOrchestrator,
        coins: Iterable[str],
        jobs: Mapping[str, CoinJobs],
        notifications: NotificationDispatcher,
    ) -> None:
        self._scheduler = scheduler
        self._orchestrator = orchestrator
        self._coins = [coin.upper() for coin in coins]
        self._jobs = {coin.upper(): config for coin, config in jobs.items()}
        self._notifications = notifications
        self._running: dict[JobKey, _RunningJob] = {}
        # Locks outlive stop/start so a restarted job never overlaps an in-flight run
        self._locks: dict[JobKey, asyncio.Lock] = {}
        self._started_at = time.monotonic()

    @property
    def coins(self) -> list[str]:
        return list(self._coins)

    def job_settings(self, coin: str, kind: JobKind) -> JobSettings:
        config = self._jobs.get(coin.upper(), CoinJobs())
        return config.periodic if kind is JobKind.PERIODIC else config.deviation

    def is_running(self, coin: str, kind: JobKind = JobKind.PERIODIC) -> bool:
        return (coin.upper(), kind) in self._running

    def _targets(self, coin: str | None, kind: JobKind | None) -> list[JobKey]:
        coins = [coin.upper()] if coin else self._coins
        for name in coins:
            if name not in self._coins:
                raise ValueError(f"Unsupported coin: {name}")
        kinds = [kind] if kind else list(JobKind)
        return [(name, job_kind) for name in coins for job_kind in kinds]

    def _lock(self, key: JobKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def start(self, coin: str | None = None, kind: JobKind | None = None) -> list[JobKey]:
        """Arm timers for the targeted jobs; returns the keys actually started.

        Already-running jobs are left untouched. Disabled jobs and jobs with
        an invalid schedule stay Stopped. Nothing starts when the submission
        backend is misconfigured.
        """
        targets = self._targets(coin, kind)

        try:
            self._orchestrator.queue.check_configuration()
        except ConfigurationError as e:
            logger.error(f"Refusing to start jobs: {e}")
            self._notifications.emit(
                AlertKind.ERROR, {"error": e, "context": {"operation": "start_jobs"}}
            )
            return []

        started: list[JobKey] = []
        for key in targets:
            name, job_kind = key
            if key in self._running:
                logger.info(f"{job_kind.value} job for {name} already running")
                continue

            config = self.job_settings(name, job_kind)
            if not config.enabled:
                logger.debug(f"{job_kind.value} job for {name} is disabled")
                continue

            try:
                trigger = parse_schedule(config.schedule)
            except ConfigurationError as e:
                logger.error(f"Not starting {job_kind.value} job for {name}: {e}")
                continue

            job = self._scheduler.add_job(
                self._tick,
                trigger=trigger,
                args=[name, job_kind],
                id=self._job_id(key),
                name=f"{name}_{job_kind.value}",
                replace_existing=True,
            )
            self._running[key] = _RunningJob(
                job=job, stats=JobStats(schedule_expression=config.schedule)
            )
            started.append(key)
            logger.info(f"Started {job_kind.value} job for {name} with schedule '{config.schedule}'")

        if started:
            self._notifications.emit(
                AlertKind.SERVICE_STATUS,
                {
                    "service": "Cron Job",
                    "status": "online",
                    "details": {"jobs": ", ".join(self._job_id(key) for key in started)},
                },
            )
        return started

    def stop(self, coin: str | None = None, kind: JobKind | None = None) -> list[JobKey]:
        """Cancel timers and discard stats; in-flight runs finish on their own."""
        stopped: list[JobKey] = []
        for key in self._targets(coin, kind):
            running = self._running.pop(key, None)
            if running is None:
                continue
            try:
                self._scheduler.remove_job(running.job.id)
            except JobLookupError:
                logger.debug(f"Job {running.job.id} already removed from scheduler")
            stopped.append(key)
            logger.info(f"Stopped {key[1].value} job for {key[0]}")
            self._notifications.emit(
                AlertKind.SERVICE_STATUS,
                {
                    "service": "Cron Job",
                    "status": "offline",
                    "details": {"coin": key[0], "kind": key[1].value},
                },
            )
        return stopped

    def status(
        self, coin: str | None = None, kind: JobKind | None = None
    ) -> dict[str, dict[str, dict[str, Any] | None]]:
        """Stats per coin and job-kind; None marks a stopped job."""
        result: dict[str, dict[str, dict[str, Any] | None]] = {}
        for name, job_kind in self._targets(coin, kind):
            running = self._running.get((name, job_kind))
            result.setdefault(name, {})[job_kind.value] = (
                running.stats.to_dict() if running else None
            )
        return result

    def stats_for(self, coin: str, kind: JobKind) -> JobStats | None:
        running = self._running.get((coin.upper(), kind))
        return running.stats if running else None

    def service_stats(self) -> dict[str, Any]:
        rss = current_rss_bytes()
        return {
            "uptime": round(time.monotonic() - self._started_at, 3),
            "memory": {"rss_bytes": rss, "rss_mb": round(rss / 1024 / 1024, 2)},
            "queue": {
                "backend": self._orchestrator.queue.backend.name,
                "concurrency": self._orchestrator.queue.concurrency,
                "running": self._orchestrator.queue.running,
                "waiting": self._orchestrator.queue.waiting,
            },
            "jobs": self.status(),
        }

    async def _tick(self, coin: str, kind: JobKind) -> None:
        """Timer entry point; never raises."""
        lock = self._lock((coin, kind))
        if lock.locked():
            logger.warning(f"Previous {kind.value} run for {coin} still in flight, skipping tick")
            return
        async with lock:
            await self._run(coin, kind)

    async def trigger(self, coin: str) -> SubmissionResult:
        """Run one periodic update now, after any in-flight periodic run finishes."""
        (key,) = self._targets(coin, JobKind.PERIODIC)
        async with self._lock(key):
            result = await self._run(*key)
        assert result is not None
        return result

    async def trigger_all(self) -> dict[str, list[dict[str, Any]]]:
        """Run every coin sequentially; one coin failing never fails the batch."""
        results: list[dict[str, Any]] = []
        errors: list[dict[str, Any]] = []
        for coin in self._coins:
            result = await self.trigger(coin)
            if result.succeeded:
                results.append(result.to_dict())
            else:
                errors.append({"coin_name": coin, "error": result.error_message})
        return {"results": results, "errors": errors}

    async def _run(self, coin: str, kind: JobKind) -> SubmissionResult | None:
        # Captured up front; a stop during the run leaves these stats orphaned
        running = self._running.get((coin, kind))
        stats = running.stats if running else None
        log = coin_logger(coin)
        job_name = f"{kind.value}:{coin}"

        started_at = datetime.now(timezone.utc)
        started = time.monotonic()
        self._notifications.emit(AlertKind.CRON_JOB, {"job": job_name, "status": "started"})

        try:
            if kind is JobKind.PERIODIC:
                result = await self._orchestrator.run_periodic(coin)
            else:
                result = await self._orchestrator.run_deviation(coin)
        except Exception as e:
            log.error(f"[{coin}] {kind.value} run failed: {e}", exc_info=True)
            result = SubmissionResult(coin_name=coin, error_message=str(e) or type(e).__name__)
            self._notifications.emit(
                AlertKind.ERROR,
                {"error": e, "context": {"operation": job_name, "coin": coin}},
            )

        duration_ms = int((time.monotonic() - started) * 1000)
        failed = result is not None and not result.succeeded

        if failed:
            assert result is not None
            if stats is not None:
                stats.record_failure(started_at, result.error_message)
            log.warning(f"[{coin}] {kind.value} run failed in {duration_ms}ms")
            self._notifications.emit(
                AlertKind.CRON_JOB,
                {
                    "job": job_name,
                    "status": "failed",
                    "duration_ms": duration_ms,
                    "error": result.error_message,
                },
            )
        else:
            if stats is not None:
                stats.record_success(started_at)
            log.info(f"[{coin}] {kind.value} run completed in {duration_ms}ms")
            self._notifications.emit(
                AlertKind.CRON_JOB,
                {"job": job_name, "status": "success", "duration_ms": duration_ms},
            )
        return result

    @staticmethod
    def _job_id(key: JobKey) -> str:
        return f"{key[0]}_{key[1].value}"
