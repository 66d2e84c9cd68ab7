"""Exception types raised by the connection and decoding layers."""


class RepsenseError(Exception):
    """Base class for tracker errors."""


class TransportUnavailable(RepsenseError):
    """Raised when no usable BLE adapter or backend is present."""


class ScanCancelled(RepsenseError):
    """Raised inside a scan stopped early by the user; suppressed, never reported."""


class DiscoveryFailure(RepsenseError):
    """Raised when device discovery fails or the device cannot be found."""


class LinkFailure(RepsenseError):
    """Raised when the BLE link cannot be established."""


class ServiceNotFound(RepsenseError):
    """Raised when the sensor service or characteristic is missing."""


class NotConnectedError(RepsenseError):
    """Raised when a session is started without an active connection."""


class WriteFailure(RepsenseError):
    """Raised when a start/stop command cannot be written."""


class DecodeError(RepsenseError, ValueError):
    """Raised when a notification frame cannot be decoded."""
