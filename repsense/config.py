"""Shared configuration and data models used across the tracking pipeline."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

ESP32_SERVICE_UUID = "4fafc201-1fb5-459e-8fcc-c5c9c331914b"
ESP32_CHARACTERISTIC_UUID = "beb5483e-36e1-4688-b7f5-ea07361b26a8"

START_COMMAND = b"\x01"
STOP_COMMAND = b"\x00"


@dataclass(frozen=True)
class Sample:
    """Single decoded tri-axial acceleration reading.

    Attributes:
        timestamp: Seconds since the owning session started.
        x: Acceleration along the sensor x axis (m/s^2).
        y: Acceleration along the sensor y axis (m/s^2).
        z: Acceleration along the sensor z axis (m/s^2).
    """

    timestamp: float
    x: float
    y: float
    z: float

    def at(self, timestamp: float) -> "Sample":
        """Return a copy re-stamped with a session-relative timestamp."""
        return Sample(timestamp=timestamp, x=self.x, y=self.y, z=self.z)

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "x": self.x, "y": self.y, "z": self.z}


@dataclass(frozen=True)
class DeviceDescriptor:
    """Peripheral found while scanning."""

    id: str
    name: str


@dataclass(frozen=True)
class DeviceProfile:
    """BLE identifiers and timeouts for the motion sensor firmware.

    The defaults match the ESP32 sketch shipped with the sensor. Values can be
    overridden through ``REPSENSE_*`` environment variables via
    :meth:`from_env` when flashing custom firmware.
    """

    service_uuid: str = ESP32_SERVICE_UUID
    characteristic_uuid: str = ESP32_CHARACTERISTIC_UUID
    scan_timeout: float = 10.0
    connect_timeout: float = 15.0

    def __post_init__(self) -> None:
        if self.scan_timeout <= 0:
            raise ValueError("scan_timeout must be positive")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DeviceProfile":
        env = os.environ if environ is None else environ
        scan_timeout = env.get("REPSENSE_SCAN_TIMEOUT")
        connect_timeout = env.get("REPSENSE_CONNECT_TIMEOUT")
        return cls(
            service_uuid=env.get("REPSENSE_SERVICE_UUID", ESP32_SERVICE_UUID).lower(),
            characteristic_uuid=env.get(
                "REPSENSE_CHARACTERISTIC_UUID", ESP32_CHARACTERISTIC_UUID
            ).lower(),
            scan_timeout=float(scan_timeout) if scan_timeout else cls.scan_timeout,
            connect_timeout=(
                float(connect_timeout) if connect_timeout else cls.connect_timeout
            ),
        )


@dataclass(frozen=True)
class DetectorConfig:
    """Tuning for the threshold-crossing rep detector.

    Attributes:
        threshold: Magnitude (m/s^2) a sample must exceed to count as a peak.
        debounce_s: Minimum spacing between counted reps, in seconds.
        history_size: Capacity of the rolling sample history.
        restart_debounce_on_suppressed_edge: When True, a rising edge inside
            the debounce window still moves the last-peak time forward, so
            the next edge must wait a full window after it.
    """

    threshold: float = 2.0
    debounce_s: float = 0.5
    history_size: int = 100
    restart_debounce_on_suppressed_edge: bool = True

    def __post_init__(self) -> None:
        if self.threshold <= 0:
            raise ValueError("threshold must be positive")
        if self.debounce_s < 0:
            raise ValueError("debounce_s must be non-negative")
        if self.history_size <= 0:
            raise ValueError("history_size must be positive")
