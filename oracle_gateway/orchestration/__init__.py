"""Orchestration layer for the oracle gateway.

The job scheduler owns the per-(coin, job-kind) registry and timers; the coin
orchestrator holds the job bodies it runs:
- periodic: retrieve an attestation, submit it
- deviation: retrieve, evaluate against the last tracked price, maybe submit

Example:
    jobs = JobScheduler(scheduler, orchestrator, coins, job_config, notifications)
    jobs.start()                 # arm every enabled job
    await jobs.trigger("BTC")    # one-off periodic update
"""

from oracle_gateway.orchestration.coin_orchestrator import CoinOrchestrator
from oracle_gateway.orchestration.scheduler import JobKind, JobScheduler, JobStats, parse_schedule

__all__ = ["CoinOrchestrator", "JobKind", "JobScheduler", "JobStats", "parse_schedule"]
