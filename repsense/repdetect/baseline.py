"""Threshold-crossing rep detection over a live acceleration stream.

Each incoming sample is folded into an immutable :class:`SessionSnapshot` by
:func:`ingest`, a pure function, so the detector can be exercised without a
BLE stack or a display. :class:`SessionAggregator` holds the current snapshot,
applies session commands (start/stop/reset) and publishes every new snapshot.

Detection works on the acceleration magnitude:

- a rising edge is the first sample above ``threshold`` after one at or
  below it;
- a rising edge counts as a rep when no earlier peak exists or the previous
  peak is more than ``debounce_s`` seconds old;
- falling edges only re-arm the detector.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from repsense.config import DetectorConfig, Sample
from repsense.errors import NotConnectedError
from repsense.events import Publisher
from repsense.signals.kinematics import (
    format_duration,
    format_peak,
    format_rep_time,
    magnitude,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = DetectorConfig()


def _iso(moment: datetime) -> str:
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class PeakDetectorState:
    """Edge-detection memory; never persisted."""

    was_above_threshold: bool = False
    last_peak_at: Optional[float] = None


@dataclass(frozen=True)
class SessionSnapshot:
    """Complete, immutable view of one exercise session.

    Attributes:
        active: Whether samples are currently being aggregated.
        started_at: Monotonic time the session (or last reset) started.
        started_wall_at: Wall-clock start, used for persisted records.
        stopped_wall_at: Wall-clock stop, set once the session stops.
        frozen_elapsed: Duration captured at stop; reported while inactive.
        rep_count: Reps counted so far.
        peak_magnitude: Largest magnitude seen (m/s^2).
        rep_intervals: Seconds between consecutive counted reps.
        history: Most recent samples with session-relative timestamps.
        detector: Internal edge-detection state.
    """

    active: bool = False
    started_at: Optional[float] = None
    started_wall_at: Optional[datetime] = None
    stopped_wall_at: Optional[datetime] = None
    frozen_elapsed: float = 0.0
    rep_count: int = 0
    peak_magnitude: float = 0.0
    rep_intervals: Tuple[float, ...] = ()
    history: Tuple[Sample, ...] = ()
    detector: PeakDetectorState = field(default_factory=PeakDetectorState)

    def elapsed(self, now: float) -> float:
        """Session duration in seconds as of monotonic time ``now``."""
        if self.active and self.started_at is not None:
            return max(0.0, now - self.started_at)
        return self.frozen_elapsed

    def duration_display(self, now: float) -> str:
        return format_duration(self.elapsed(now))

    @property
    def average_rep_time(self) -> float:
        if not self.rep_intervals:
            return 0.0
        return sum(self.rep_intervals) / len(self.rep_intervals)

    @property
    def average_rep_time_display(self) -> str:
        return format_rep_time(self.average_rep_time)

    @property
    def peak_display(self) -> str:
        return format_peak(self.peak_magnitude)

    def to_session_payload(self, now: float, end_wall: Optional[datetime] = None) -> dict:
        """Build the record expected by ``POST /sessions``."""
        end = self.stopped_wall_at or end_wall or datetime.now(timezone.utc)
        start = self.started_wall_at or end
        return {
            "startTime": _iso(start),
            "endTime": _iso(end),
            "totalReps": self.rep_count,
            "maxAcceleration": self.peak_display,
            "averageRepTime": self.average_rep_time_display,
            "sessionDuration": self.duration_display(now),
            "accelerationData": [s.to_dict() for s in self.history],
        }


def ingest(
    state: SessionSnapshot,
    sample: Sample,
    now: float,
    config: DetectorConfig = DEFAULT_CONFIG,
) -> SessionSnapshot:
    """Fold one sample into ``state`` and return the resulting snapshot.

    Samples are ignored (``state`` is returned unchanged) while the session is
    inactive. ``now`` is the monotonic processing time in seconds; it provides
    both the session-relative sample timestamp and the debounce clock.
    """

    if not state.active or state.started_at is None:
        return state

    timestamp = max(0.0, now - state.started_at)
    history = (state.history + (sample.at(timestamp),))[-config.history_size:]

    mag = magnitude(sample.x, sample.y, sample.z)
    peak = max(state.peak_magnitude, mag)

    rep_count = state.rep_count
    intervals = state.rep_intervals
    detector = state.detector

    if mag > config.threshold:
        if not detector.was_above_threshold:
            last_peak_at = detector.last_peak_at
            counted = last_peak_at is None or now - last_peak_at > config.debounce_s
            if counted:
                rep_count += 1
                if last_peak_at is not None:
                    intervals = intervals + (now - last_peak_at,)
                logger.debug("Rep %d at t=%.3fs (|a|=%.2f)", rep_count, timestamp, mag)
            if counted or config.restart_debounce_on_suppressed_edge:
                last_peak_at = now
            detector = PeakDetectorState(was_above_threshold=True, last_peak_at=last_peak_at)
    elif detector.was_above_threshold:
        detector = replace(detector, was_above_threshold=False)

    return replace(
        state,
        history=history,
        peak_magnitude=peak,
        rep_count=rep_count,
        rep_intervals=intervals,
        detector=detector,
    )


class SessionAggregator:
    """Owns the live :class:`SessionSnapshot` and applies session commands.

    Args:
        config: Detector tuning.
        is_connected: Callable consulted by :meth:`start`; when it returns
            False the start is refused with :class:`NotConnectedError`. Pass
            None to allow offline use (e.g. replaying an export).
        clock: Monotonic clock in seconds.
    """

    def __init__(
        self,
        config: DetectorConfig = DEFAULT_CONFIG,
        *,
        is_connected: Optional[Callable[[], bool]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self._is_connected = is_connected
        self._clock = clock
        self._state = SessionSnapshot()
        self.snapshots: Publisher[SessionSnapshot] = Publisher("snapshots")

    @property
    def state(self) -> SessionSnapshot:
        return self._state

    @property
    def active(self) -> bool:
        return self._state.active

    def now(self) -> float:
        return self._clock()

    def _commit(self, new_state: SessionSnapshot) -> SessionSnapshot:
        if new_state is not self._state:
            self._state = new_state
            self.snapshots.publish(new_state)
        return new_state

    def start(self, now: Optional[float] = None) -> SessionSnapshot:
        """Begin a fresh session; always re-arms the start timestamp."""
        if self._is_connected is not None and not self._is_connected():
            raise NotConnectedError("Please connect to a device first.")
        start = self._clock() if now is None else now
        logger.info("Session started")
        return self._commit(
            SessionSnapshot(
                active=True,
                started_at=start,
                started_wall_at=datetime.now(timezone.utc),
            )
        )

    def stop(self, now: Optional[float] = None) -> SessionSnapshot:
        """Freeze the duration and stop aggregating samples."""
        state = self._state
        if not state.active:
            return state
        at = self._clock() if now is None else now
        logger.info("Session stopped after %d reps", state.rep_count)
        return self._commit(
            replace(
                state,
                active=False,
                frozen_elapsed=state.elapsed(at),
                stopped_wall_at=datetime.now(timezone.utc),
            )
        )

    def reset(self, now: Optional[float] = None) -> SessionSnapshot:
        """Zero all statistics; an active session keeps running from now."""
        state = self._state
        if state.active:
            at = self._clock() if now is None else now
            fresh = SessionSnapshot(
                active=True,
                started_at=at,
                started_wall_at=datetime.now(timezone.utc),
            )
        else:
            fresh = SessionSnapshot()
        return self._commit(fresh)

    def ingest(self, sample: Sample, now: Optional[float] = None) -> SessionSnapshot:
        if not self._state.active:
            return self._state
        at = self._clock() if now is None else now
        return self._commit(ingest(self._state, sample, at, self.config))

    def attach(self, samples: Publisher[Sample]) -> Callable[[], None]:
        """Subscribe to a sample channel; returns the unsubscribe function."""
        return samples.subscribe(self.ingest)

    def duration_display(self, now: Optional[float] = None) -> str:
        return self._state.duration_display(self._clock() if now is None else now)

    def session_payload(self, now: Optional[float] = None) -> dict:
        return self._state.to_session_payload(self._clock() if now is None else now)
