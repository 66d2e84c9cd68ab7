"""CSV export and re-import of the rolling acceleration history."""

from __future__ import annotations

import csv
import io
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from repsense.config import Sample
from repsense.signals.kinematics import _require_numpy

CSV_HEADER = ("timestamp", "x-axis", "y-axis", "z-axis")


class ExportError(RuntimeError):
    """Raised when an exported history file cannot be read back."""


def format_number(value: float) -> str:
    """Render a number in plain decimal notation, never in exponent form.

    Integral values drop the trailing ``.0`` (``3.0`` -> ``"3"``) so exports
    match what the dashboard shows. Other values use the shortest digits that
    round-trip (``3e-05`` -> ``"0.00003"``). ``nan`` and ``inf`` keep their
    Python spelling.
    """

    if isinstance(value, bool):
        value = int(value)
    if isinstance(value, int):
        return str(value)
    value = float(value)
    if not math.isfinite(value):
        return repr(value)
    if value == 0:
        return "0"
    np = _require_numpy()
    return np.format_float_positional(value, unique=True, trim="-")


def default_export_filename(now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(timezone.utc)
    stamp = moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return f"acceleration-data-{stamp}.csv"


def _iter_rows(history: Iterable[Sample]) -> Iterator[List[str]]:
    for sample in history:
        yield [format_number(v) for v in (sample.timestamp, sample.x, sample.y, sample.z)]


def history_to_csv(history: Iterable[Sample]) -> str:
    """Serialize samples to CSV text with a header and one row per sample."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    writer.writerows(_iter_rows(history))
    return buffer.getvalue()


def write_history_csv(
    path: str | Path, history: Iterable[Sample], *, overwrite: bool = True
) -> Path:
    """Write the history CSV to ``path`` (a directory gets a timestamped filename)."""

    dest = Path(path)
    if dest.is_dir():
        dest = dest / default_export_filename()
    dest.parent.mkdir(parents=True, exist_ok=True)
    if dest.exists() and not overwrite:
        raise FileExistsError(f"Export already exists: {dest}")

    dest.write_text(history_to_csv(history), encoding="utf-8")
    return dest


def read_history_csv(path: str | Path) -> List[Sample]:
    """Load samples from a CSV produced by :func:`write_history_csv`."""

    with Path(path).open("r", encoding="utf-8", newline="") as fh:
        reader = csv.reader(fh)
        header = next(reader, None)
        if header is None or tuple(h.strip() for h in header) != CSV_HEADER:
            raise ExportError(f"Unexpected CSV header in {path}: {header}")

        samples: List[Sample] = []
        for line_no, row in enumerate(reader, start=2):
            if not row:
                continue
            try:
                t, x, y, z = (float(cell) for cell in row)
            except ValueError as exc:
                raise ExportError(f"{path}:{line_no}: invalid row {row!r}") from exc
            samples.append(Sample(timestamp=t, x=x, y=y, z=z))
    return samples
