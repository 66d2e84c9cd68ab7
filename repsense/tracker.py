"""Wiring between the BLE connection, the rep detector and the display timer."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from repsense.ble.connection import ConnectionManager, ConnectionState
from repsense.config import DetectorConfig, DeviceProfile
from repsense.errors import NotConnectedError
from repsense.repdetect.baseline import SessionAggregator, SessionSnapshot
from repsense.repdetect.timer import SessionTimer, TimerTick

logger = logging.getLogger(__name__)


class Tracker:
    """One connection, one session aggregator, one timer.

    The aggregator only observes the connection's sample channel; it never
    holds the BLE client. Session start is gated on the connection state.
    """

    def __init__(
        self,
        profile: Optional[DeviceProfile] = None,
        config: Optional[DetectorConfig] = None,
        *,
        connection: Optional[ConnectionManager] = None,
        on_tick: Optional[Callable[[TimerTick], None]] = None,
        tick_interval: float = 0.25,
    ) -> None:
        self.connection = connection or ConnectionManager(profile)
        self.aggregator = SessionAggregator(
            config or DetectorConfig(),
            is_connected=lambda: self.connection.is_connected,
        )
        self.timer = SessionTimer(
            self.aggregator, on_tick or (lambda _tick: None), interval=tick_interval
        )
        self._unsubscribers = [
            self.aggregator.attach(self.connection.samples),
            self.connection.states.subscribe(self._on_state),
        ]

    @property
    def snapshot(self) -> SessionSnapshot:
        return self.aggregator.state

    def _on_state(self, state: ConnectionState) -> None:
        if state is ConnectionState.DISCONNECTED and self.aggregator.active:
            logger.warning("Link lost during an active session; waiting for samples to resume")

    async def start_session(self) -> SessionSnapshot:
        """Start aggregating and tell the sensor to stream.

        Raises:
            NotConnectedError: if no device is connected; session state is
                left untouched.
        """
        try:
            snapshot = self.aggregator.start()
        except NotConnectedError as exc:
            self.connection.report_error(exc)
            raise
        await self.connection.start_session()
        self.timer.start()
        return snapshot

    async def stop_session(self) -> SessionSnapshot:
        snapshot = self.aggregator.stop()
        await self.timer.stop()
        await self.connection.stop_session()
        return snapshot

    def reset(self) -> SessionSnapshot:
        return self.aggregator.reset()

    async def close(self) -> None:
        await self.timer.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        await self.connection.close()
