"""Decoder for acceleration notification frames.

The sensor firmware packs one reading per notification: three little-endian
IEEE-754 float32 values (x, y, z in m/s^2) at byte offsets 0, 4 and 8.
Anything after byte 12 is ignored so newer firmware can append fields.
"""

from __future__ import annotations

import struct
from typing import Union

from repsense.config import Sample
from repsense.errors import DecodeError

FRAME_FORMAT = struct.Struct("<fff")
FRAME_SIZE = FRAME_FORMAT.size

Buffer = Union[bytes, bytearray, memoryview]


def decode_frame(raw: Buffer, timestamp: float = 0.0) -> Sample:
    """Decode a notification payload into a :class:`Sample`.

    Args:
        raw: Notification bytes as delivered by the BLE stack.
        timestamp: Timestamp to attach to the sample; the caller decides
            whether it is session-relative or a receive time.

    Returns:
        Sample with the decoded x, y, z values.

    Raises:
        DecodeError: if the payload is shorter than 12 bytes or cannot be
            unpacked. No partial values are ever returned.
    """

    try:
        length = len(raw)
    except TypeError as exc:
        raise DecodeError(f"Frame is not a byte buffer: {type(raw).__name__}") from exc
    if length < FRAME_SIZE:
        raise DecodeError(f"Frame too short: expected >= {FRAME_SIZE} bytes, got {length}")

    try:
        x, y, z = FRAME_FORMAT.unpack_from(raw, 0)
    except (struct.error, TypeError) as exc:
        raise DecodeError(f"Failed to unpack frame: {exc}") from exc

    return Sample(timestamp=timestamp, x=x, y=y, z=z)


def encode_frame(x: float, y: float, z: float) -> bytes:
    """Pack an (x, y, z) reading the way the firmware does; used by simulators and tests."""
    return FRAME_FORMAT.pack(x, y, z)
