"""repsense: BLE accelerometer rep tracker.

This package hosts the sensor connection manager, the notification frame
decoder, and the threshold-crossing rep detector that turns a live
acceleration stream into rep counts and session statistics.
"""

__all__ = [
    "cli",
    "config",
    "errors",
    "tracker",
]

__version__ = "0.1.0"
