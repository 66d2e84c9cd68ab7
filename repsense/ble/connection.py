"""BLE connection lifecycle for the ESP32 motion sensor.

:class:`ConnectionManager` is the only component that touches the transport.
It scans for peripherals advertising the sensor service, connects, subscribes
to acceleration notifications and writes start/stop commands. Everything it
learns is published on four channels:

- ``samples``: decoded :class:`~repsense.config.Sample` values, stamped with
  the monotonic receive time;
- ``states``: :class:`ConnectionState` transitions;
- ``devices``: the discovery list after every change;
- ``errors``: user-facing failures (scan, connect, write). Cancelled scans and
  malformed frames never appear here.

All methods must be awaited from the same event loop that bleak uses for its
callbacks.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakBluetoothNotAvailableError, BleakError

from repsense.config import (
    START_COMMAND,
    STOP_COMMAND,
    DeviceDescriptor,
    DeviceProfile,
    Sample,
)
from repsense.errors import (
    DecodeError,
    DiscoveryFailure,
    LinkFailure,
    NotConnectedError,
    RepsenseError,
    ScanCancelled,
    ServiceNotFound,
    TransportUnavailable,
    WriteFailure,
)
from repsense.events import Publisher
from repsense.io.decoder import decode_frame

logger = logging.getLogger(__name__)

UNKNOWN_DEVICE_NAME = "Unknown Device"

# Errors the platform raises for a flaky link rather than a programming error.
TRANSPORT_ERRORS = (BleakError, OSError, asyncio.TimeoutError)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionManager:
    def __init__(
        self,
        profile: Optional[DeviceProfile] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.profile = profile or DeviceProfile()
        self._clock = clock

        self.samples: Publisher[Sample] = Publisher("samples")
        self.states: Publisher[ConnectionState] = Publisher("states")
        self.devices: Publisher[List[DeviceDescriptor]] = Publisher("devices")
        self.errors: Publisher[Exception] = Publisher("errors")

        self._state = ConnectionState.DISCONNECTED
        self._discovered: List[DeviceDescriptor] = []
        self._found: Dict[str, Any] = {}
        self._scan_stop: Optional[asyncio.Event] = None

        self._client: Optional[BleakClient] = None
        self._characteristic: Any = None
        self._device: Optional[DeviceDescriptor] = None

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._client is not None

    @property
    def discovered(self) -> List[DeviceDescriptor]:
        return list(self._discovered)

    @property
    def device(self) -> Optional[DeviceDescriptor]:
        """Descriptor of the connected peripheral, if any."""
        return self._device if self.is_connected else None

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.info("Connection state %s -> %s", self._state.value, state.value)
        self._state = state
        self.states.publish(state)

    def _clear_discovered(self) -> None:
        self._discovered = []
        self._found = {}
        self.devices.publish([])

    def report_error(self, exc: Exception) -> None:
        """Send ``exc`` to the user-facing error channel."""
        logger.error("%s: %s", type(exc).__name__, exc)
        self.errors.publish(exc)

    # --------------------------------------------------------------- scanning

    def _on_detection(self, device: Any, advertisement: Any) -> None:
        device_id = getattr(device, "address", None)
        if not device_id or device_id in self._found:
            return
        name = (
            getattr(advertisement, "local_name", None)
            or getattr(device, "name", None)
            or UNKNOWN_DEVICE_NAME
        )
        self._found[device_id] = device
        self._discovered.append(DeviceDescriptor(id=device_id, name=name))
        logger.info("Discovered %s (%s)", name, device_id)
        self.devices.publish(self.discovered)

    async def start_scan(self, timeout: Optional[float] = None) -> List[DeviceDescriptor]:
        """Discover sensors until ``timeout`` elapses or :meth:`stop_scan` is called.

        Returns the devices found. Failures other than cancellation are sent
        to the error channel and yield whatever was found before the failure.
        """

        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            logger.warning("Ignoring scan request while %s", self._state.value)
            return self.discovered
        if self._state is ConnectionState.SCANNING:
            self.stop_scan()

        self._clear_discovered()
        stop = asyncio.Event()
        self._scan_stop = stop
        self._set_state(ConnectionState.SCANNING)

        duration = self.profile.scan_timeout if timeout is None else timeout
        try:
            scanner = BleakScanner(
                detection_callback=self._on_detection,
                service_uuids=[self.profile.service_uuid],
            )
            await scanner.start()
            try:
                await asyncio.wait_for(stop.wait(), timeout=duration)
            except asyncio.TimeoutError:
                logger.info("Scan finished after %.1fs", duration)
            else:
                raise ScanCancelled("Scan stopped before the timeout")
            finally:
                await scanner.stop()
        except ScanCancelled as exc:
            logger.debug("%s", exc)
        except BleakBluetoothNotAvailableError as exc:
            self.report_error(TransportUnavailable(f"Bluetooth is not available: {exc}"))
        except TRANSPORT_ERRORS as exc:
            self.report_error(DiscoveryFailure(f"Device discovery failed: {exc}"))
        finally:
            if self._scan_stop is stop:
                self._scan_stop = None
                if self._state is ConnectionState.SCANNING:
                    self._set_state(ConnectionState.DISCONNECTED)

        return self.discovered

    def stop_scan(self) -> None:
        """Cancel an in-flight scan. Cancelling is not an error."""
        if self._scan_stop is not None:
            logger.info("Scan cancelled")
            self._scan_stop.set()

    # ------------------------------------------------------------- connecting

    async def _resolve_device(self, device_id: str) -> Any:
        device = self._found.get(device_id)
        if device is not None:
            return device
        try:
            device = await BleakScanner.find_device_by_address(
                device_id, timeout=self.profile.scan_timeout
            )
        except BleakBluetoothNotAvailableError as exc:
            raise TransportUnavailable(f"Bluetooth is not available: {exc}") from exc
        except TRANSPORT_ERRORS as exc:
            raise DiscoveryFailure(f"Device discovery failed: {exc}") from exc
        if device is None:
            raise DiscoveryFailure(f"Device {device_id} not found.")
        return device

    async def _open_link(self, device: Any) -> tuple:
        client = BleakClient(
            device,
            disconnected_callback=self._on_disconnected,
            timeout=self.profile.connect_timeout,
        )
        try:
            await client.connect()
        except TRANSPORT_ERRORS as exc:
            raise LinkFailure(f"Failed to connect to GATT server: {exc}") from exc
        except Exception:
            await self._release(client, None)
            raise

        try:
            service = client.services.get_service(self.profile.service_uuid)
            characteristic = client.services.get_characteristic(self.profile.characteristic_uuid)
            if service is None or characteristic is None:
                raise ServiceNotFound(
                    f"Sensor service {self.profile.service_uuid} or characteristic "
                    f"{self.profile.characteristic_uuid} not found."
                )
            await client.start_notify(characteristic, self._handle_notify)
        except TRANSPORT_ERRORS as exc:
            await self._release(client, None)
            raise LinkFailure(f"Failed to subscribe to notifications: {exc}") from exc
        except Exception:
            await self._release(client, None)
            raise
        return client, characteristic

    async def connect(self, device_id: str) -> bool:
        """Connect to ``device_id`` and subscribe to acceleration notifications.

        Returns True once connected. On failure the error is reported, any
        partial link is released and the state is DISCONNECTED.
        """

        if self.is_connected:
            if self._device is not None and self._device.id == device_id:
                return True
            await self.disconnect()
        if self._state is ConnectionState.CONNECTING:
            self.report_error(LinkFailure("A connection attempt is already in progress."))
            return False

        self.stop_scan()
        name = next((d.name for d in self._discovered if d.id == device_id), UNKNOWN_DEVICE_NAME)
        self._set_state(ConnectionState.CONNECTING)
        try:
            device = await self._resolve_device(device_id)
            client, characteristic = await self._open_link(device)
        except RepsenseError as exc:
            self._set_state(ConnectionState.DISCONNECTED)
            self.report_error(exc)
            return False
        except asyncio.CancelledError:
            self._set_state(ConnectionState.DISCONNECTED)
            raise
        except Exception as exc:  # noqa: BLE001 - backend errors outside TRANSPORT_ERRORS
            logger.exception("Unexpected error while connecting to %s", device_id)
            failure = LinkFailure(f"Failed to connect to {device_id}: {exc}")
            failure.__cause__ = exc
            self._set_state(ConnectionState.DISCONNECTED)
            self.report_error(failure)
            return False

        self._client = client
        self._characteristic = characteristic
        self._device = DeviceDescriptor(
            id=device_id, name=getattr(device, "name", None) or name
        )
        self._set_state(ConnectionState.CONNECTED)
        return True

    def _on_disconnected(self, client: Any) -> None:
        if client is not self._client:
            # Our own teardown, or a link we already abandoned.
            return
        logger.info("Link to %s lost", self._device.id if self._device else "device")
        self._client = None
        self._characteristic = None
        self._device = None
        self._clear_discovered()
        self._set_state(ConnectionState.DISCONNECTED)

    # ---------------------------------------------------------------- samples

    def _handle_notify(self, _sender: Any, data: bytearray) -> None:
        self.on_notification(data)

    def on_notification(self, raw: Any) -> Optional[Sample]:
        """Decode one inbound frame and publish it; malformed frames are dropped."""
        try:
            sample = decode_frame(raw, self._clock())
        except DecodeError as exc:
            logger.warning("Dropping malformed frame: %s", exc)
            return None
        self.samples.publish(sample)
        return sample

    # --------------------------------------------------------------- commands

    async def _write(self, payload: bytes) -> bool:
        client, characteristic = self._client, self._characteristic
        try:
            await client.write_gatt_char(characteristic, payload, response=True)
        except TRANSPORT_ERRORS as exc:
            self.report_error(WriteFailure(f"Failed to send command {payload!r}: {exc}"))
            return False
        return True

    async def start_session(self) -> bool:
        """Tell the sensor to start streaming.

        Raises:
            NotConnectedError: if no device is connected (also reported).
        """
        if not self.is_connected:
            exc = NotConnectedError("Please connect to a device first.")
            self.report_error(exc)
            raise exc
        return await self._write(START_COMMAND)

    async def stop_session(self) -> bool:
        """Tell the sensor to stop streaming; a no-op when disconnected."""
        if not self.is_connected:
            return False
        return await self._write(STOP_COMMAND)

    # --------------------------------------------------------------- teardown

    async def _release(self, client: Any, characteristic: Any) -> None:
        # Both steps run even if the first one fails.
        if characteristic is not None:
            try:
                await client.stop_notify(characteristic)
            except Exception as exc:  # noqa: BLE001 - best-effort cleanup
                logger.warning("stop_notify failed during teardown: %s", exc)
        try:
            await client.disconnect()
        except Exception as exc:  # noqa: BLE001 - best-effort cleanup
            logger.warning("disconnect failed during teardown: %s", exc)

    async def disconnect(self) -> None:
        """User-initiated disconnect."""
        client, characteristic = self._client, self._characteristic
        self._client = None
        self._characteristic = None
        self._device = None
        if client is not None:
            await self._release(client, characteristic)
            self._clear_discovered()
        if self._state is not ConnectionState.SCANNING:
            self._set_state(ConnectionState.DISCONNECTED)

    async def close(self) -> None:
        """Dispose of the manager: cancel scanning and release the link."""
        self.stop_scan()
        await self.disconnect()

    async def __aenter__(self) -> "ConnectionManager":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
