"""Append-only per-coin price log.

One text file per coin (``<prices_dir>/<coin>_price.txt``), one
``"<unixMillis> <decimalPrice>"`` line per successful attestation. The last
line is the deviation baseline. Periodic and deviation jobs both append to
the same coin file, so appends are serialized by a per-coin lock.
"""

import asyncio
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

logger = logging.getLogger(__name__)

_TAIL_CHUNK = 4096


@dataclass(frozen=True)
class TrackedPrice:
    timestamp_ms: int
    price: str

    @property
    def value(self) -> float:
        return float(self.price)

    def to_line(self) -> str:
        return f"{self.timestamp_ms} {self.price}\n"

    @classmethod
    def parse(cls, line: str) -> "TrackedPrice":
        timestamp, price = line.split()
        float(price)  # reject non-numeric prices
        return cls(timestamp_ms=int(timestamp), price=price)


class PriceLog:
    """Owns one append handle and the last tracked price for each coin."""

    def __init__(self, prices_dir: Path | str, coins: Iterable[str] = ()) -> None:
        self._prices_dir = Path(prices_dir)
        self._coins = [coin.upper() for coin in coins]
        self._handles: dict[str, TextIO] = {}
        self._last: dict[str, TrackedPrice | None] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def path_for(self, coin: str) -> Path:
        return self._prices_dir / f"{coin.lower()}_price.txt"

    def open(self) -> None:
        """Create the prices directory and open every configured coin file."""
        if not self._prices_dir.exists():
            logger.debug(f"'{self._prices_dir}' directory does not exist. Creating...")
            self._prices_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created '{self._prices_dir}' directory for price tracking files")

        for coin in self._coins:
            self._open_coin(coin)

    def close(self) -> None:
        for handle in self._handles.values():
            handle.close()
        self._handles.clear()

    def _open_coin(self, coin: str) -> TextIO:
        handle = self._handles.get(coin)
        if handle is None:
            path = self.path_for(coin)
            self._prices_dir.mkdir(parents=True, exist_ok=True)
            self._last[coin] = _read_last_entry(path)
            handle = path.open("a", encoding="utf-8")
            self._handles[coin] = handle
            logger.debug(f"Price tracking file opened for {coin}: {path}")
        return handle

    def _lock(self, coin: str) -> asyncio.Lock:
        lock = self._locks.get(coin)
        if lock is None:
            lock = self._locks[coin] = asyncio.Lock()
        return lock

    def last(self, coin: str) -> TrackedPrice | None:
        """Most recent durably recorded price for ``coin``, or None."""
        coin = coin.upper()
        if coin not in self._last:
            self._last[coin] = _read_last_entry(self.path_for(coin))
        return self._last[coin]

    async def load_last(self, coin: str) -> TrackedPrice | None:
        """Like :meth:`last`, but an uncached file is read off the event loop."""
        coin = coin.upper()
        if coin not in self._last:
            entry = await asyncio.to_thread(_read_last_entry, self.path_for(coin))
            self._last.setdefault(coin, entry)
        return self._last[coin]

    async def append(self, coin: str, timestamp_ms: int, price: str) -> TrackedPrice:
        coin = coin.upper()
        entry = TrackedPrice(timestamp_ms=timestamp_ms, price=price)
        async with self._lock(coin):
            await asyncio.to_thread(self._write, coin, entry.to_line())
            self._last[coin] = entry
        logger.debug(f"Tracked {coin} price {price} at {timestamp_ms}")
        return entry

    def _write(self, coin: str, line: str) -> None:
        handle = self._open_coin(coin)
        handle.write(line)
        handle.flush()
        os.fsync(handle.fileno())


def _read_last_entry(path: Path) -> TrackedPrice | None:
    """Parse the last well-formed line of ``path`` by reading backwards."""
    if not path.exists():
        return None

    with path.open("rb") as f:
        f.seek(0, os.SEEK_END)
        position = f.tell()
        buffer = b""
        while position > 0:
            step = min(_TAIL_CHUNK, position)
            position -= step
            f.seek(position)
            buffer = f.read(step) + buffer
            lines = buffer.splitlines()
            # First line may be partial unless we reached the start of the file
            candidates = lines if position == 0 else lines[1:]
            for raw in reversed(candidates):
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                try:
                    return TrackedPrice.parse(line)
                except ValueError:
                    logger.warning(f"Skipping malformed price line in {path}: {line!r}")
            buffer = lines[0] if lines and position > 0 else b""

    return None
