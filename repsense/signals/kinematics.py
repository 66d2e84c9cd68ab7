"""Signal helpers shared by the detector, exports and CLI summaries."""

from __future__ import annotations

import math
from typing import Iterable

from repsense.config import Sample


def _require_numpy():
    """Import numpy lazily so the live pipeline does not pay for it."""
    try:
        import numpy as np  # type: ignore
    except ImportError as exc:  # pragma: no cover - environment dependent
        raise ImportError(
            "numpy is required for batch signal helpers. Install numpy to use them."
        ) from exc
    return np


def magnitude(x: float, y: float, z: float) -> float:
    """Euclidean norm of an acceleration vector."""
    return math.sqrt(x * x + y * y + z * z)


def magnitude_series(samples: Iterable[Sample]):
    """Return the magnitudes of ``samples`` as a float64 numpy array."""
    np = _require_numpy()
    values = np.array([(s.x, s.y, s.z) for s in samples], dtype=np.float64)
    if values.size == 0:
        return np.zeros(0, dtype=np.float64)
    return np.linalg.norm(values, axis=1)


def format_duration(seconds: float) -> str:
    """Format elapsed seconds as ``HH:MM:SS`` (hours are not wrapped)."""
    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_rep_time(seconds: float) -> str:
    return f"{seconds:.1f}s"


def format_peak(value: float) -> str:
    return f"{value:.2f} m/s²"
