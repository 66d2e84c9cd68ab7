"""Recurring display timer for an active session.

The timer runs as its own asyncio task and recomputes the elapsed duration
from the aggregator's monotonic start time on every tick, so the display keeps
advancing even when the sensor goes quiet.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from repsense.repdetect.baseline import SessionAggregator, SessionSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimerTick:
    elapsed: float
    duration: str
    snapshot: SessionSnapshot


class SessionTimer:
    def __init__(
        self,
        aggregator: SessionAggregator,
        on_tick: Callable[[TimerTick], None],
        *,
        interval: float = 0.25,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._aggregator = aggregator
        self._on_tick = on_tick
        self._interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> Optional[TimerTick]:
        """Emit one tick if the session is active; returns what was emitted."""
        snapshot = self._aggregator.state
        if not snapshot.active:
            return None
        now = self._aggregator.now()
        tick = TimerTick(
            elapsed=snapshot.elapsed(now),
            duration=snapshot.duration_display(now),
            snapshot=snapshot,
        )
        self._on_tick(tick)
        return tick

    async def _run(self) -> None:
        while True:
            try:
                self.tick()
            except Exception:  # noqa: BLE001
                logger.exception("Timer tick callback failed")
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
