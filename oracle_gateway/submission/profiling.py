"""Periodic CPU, memory and disk I/O sampling of a child process."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import psutil

logger = logging.getLogger(__name__)

_BYTES_PER_MB = 1024 * 1024

AlertCallback = Callable[[dict[str, Any]], None]


@dataclass(frozen=True)
class ProcessSample:
    cpu_percent: float
    memory_mb: float
    read_kbps: float | None  # None where the platform hides per-process I/O
    write_kbps: float | None
    elapsed: float


class ProcessProfiler:
    """Samples one process every ``interval`` seconds until it exits.

    When ``memory_alert_mb`` is set, ``on_alert`` is called once per process
    the first time its resident memory reaches the threshold.
    """

    def __init__(
        self,
        pid: int,
        label: str,
        interval: float = 5.0,
        memory_alert_mb: float | None = None,
        on_alert: AlertCallback | None = None,
    ) -> None:
        self.pid = pid
        self._label = label
        self._interval = interval
        self._memory_alert_mb = memory_alert_mb
        self._on_alert = on_alert
        self._process: psutil.Process | None = None
        self._started_at = time.monotonic()
        self._last_io: tuple[float, int, int] | None = None
        self.alerted = False

    def prime(self) -> None:
        """Take the baseline readings that the first sample is measured against."""
        self._process = psutil.Process(self.pid)
        self._process.cpu_percent()
        self._last_io = self._read_io()

    def _read_io(self) -> tuple[float, int, int] | None:
        assert self._process is not None
        io_counters = getattr(self._process, "io_counters", None)
        if io_counters is None:
            return None
        try:
            counters = io_counters()
        except psutil.AccessDenied:
            return None
        return time.monotonic(), counters.read_bytes, counters.write_bytes

    def sample(self) -> ProcessSample:
        if self._process is None:
            self.prime()
        assert self._process is not None

        with self._process.oneshot():
            cpu_percent = self._process.cpu_percent()
            memory_mb = self._process.memory_info().rss / _BYTES_PER_MB
            io = self._read_io()

        read_kbps = write_kbps = None
        if io is not None and self._last_io is not None:
            seconds = max(io[0] - self._last_io[0], 1e-6)
            read_kbps = (io[1] - self._last_io[1]) / 1024 / seconds
            write_kbps = (io[2] - self._last_io[2]) / 1024 / seconds
        self._last_io = io

        return ProcessSample(
            cpu_percent=cpu_percent,
            memory_mb=memory_mb,
            read_kbps=read_kbps,
            write_kbps=write_kbps,
            elapsed=time.monotonic() - self._started_at,
        )

    def record(self, sample: ProcessSample) -> None:
        """Log ``sample`` and raise the memory alert if it crossed the threshold."""
        usage = f"CPU: {sample.cpu_percent:.1f}% | Memory: {sample.memory_mb:.2f} MB"
        if sample.read_kbps is None or sample.write_kbps is None:
            io = "I/O stats not available"
        else:
            io = f"Read: {sample.read_kbps:.2f} KB/s | Write: {sample.write_kbps:.2f} KB/s"
        logger.info(f"{self._label} Leo Cli process {usage} | {io}")
        logger.debug(f"{self._label} Time elapsed: {sample.elapsed:.1f}s")

        threshold = self._memory_alert_mb
        if threshold is None or self.alerted or sample.memory_mb < threshold:
            return
        self.alerted = True
        logger.warning(
            f"{self._label} Leo Cli process memory {sample.memory_mb:.2f} MB "
            f"reached the {threshold} MB alert threshold"
        )
        if self._on_alert is not None:
            self._on_alert(
                {
                    "healthy": False,
                    "process": self._label,
                    "pid": self.pid,
                    "cpu_percent": round(sample.cpu_percent, 1),
                    "memory_mb": round(sample.memory_mb, 2),
                    "memory_alert_mb": threshold,
                    "elapsed_seconds": round(sample.elapsed, 1),
                }
            )

    async def run(self) -> None:
        """Sample until the process disappears; cancel to stop earlier."""
        try:
            self.prime()
            while True:
                await asyncio.sleep(self._interval)
                self.record(self.sample())
        except psutil.NoSuchProcess:
            logger.debug(f"{self._label} Leo Cli process exited, profiling stopped")
        except psutil.AccessDenied as e:
            logger.warning(f"{self._label} Cannot profile Leo Cli process: {e}")


def current_rss_bytes() -> int:
    """Resident memory of the current process."""
    return psutil.Process().memory_info().rss
