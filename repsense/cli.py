"""Command-line interface for the rep tracker.

- ``repsense scan``: list nearby sensors advertising the sensor service.
- ``repsense track DEVICE_ID --duration 60 --csv out.csv``: live session.
- ``repsense replay export.csv``: run an exported history through the detector.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import sys
from typing import List, Optional

from repsense import __version__
from repsense.config import DetectorConfig, DeviceProfile
from repsense.errors import NotConnectedError
from repsense.io.export import ExportError, read_history_csv, write_history_csv
from repsense.repdetect.baseline import SessionAggregator
from repsense.repdetect.timer import TimerTick
from repsense.signals.kinematics import magnitude_series
from repsense.tracker import Tracker

logger = logging.getLogger("repsense")


def eprint(*args: object) -> None:
    print(*args, file=sys.stderr)


def _detector_config(args: argparse.Namespace) -> DetectorConfig:
    return DetectorConfig(threshold=args.threshold, debounce_s=args.debounce)


async def _scan(args: argparse.Namespace) -> int:
    tracker = Tracker(DeviceProfile.from_env())
    tracker.connection.errors.subscribe(lambda exc: eprint(f"error: {exc}"))
    try:
        devices = await tracker.connection.start_scan(timeout=args.timeout)
    finally:
        await tracker.close()
    if not devices:
        print("No sensors found.")
        return 1
    for device in devices:
        print(f"{device.id}\t{device.name}")
    return 0


def _print_tick(tick: TimerTick) -> None:
    snap = tick.snapshot
    print(
        f"\r{tick.duration}  reps={snap.rep_count:3d}  avg={snap.average_rep_time_display:>6}"
        f"  peak={snap.peak_display}",
        end="",
        flush=True,
    )


async def _track(args: argparse.Namespace) -> int:
    failures: List[Exception] = []

    def on_error(exc: Exception) -> None:
        failures.append(exc)
        eprint(f"\nerror: {exc}")

    tracker = Tracker(
        DeviceProfile.from_env(),
        _detector_config(args),
        on_tick=_print_tick,
        tick_interval=0.5,
    )
    tracker.connection.errors.subscribe(on_error)
    try:
        if not await tracker.connection.connect(args.device_id):
            return 1
        try:
            await tracker.start_session()
        except NotConnectedError:
            return 1
        with contextlib.suppress(asyncio.CancelledError):
            if args.duration:
                await asyncio.sleep(args.duration)
            else:
                await asyncio.Event().wait()
    finally:
        snapshot = await tracker.stop_session()
        await tracker.close()
        print()

    if args.csv:
        path = write_history_csv(args.csv, snapshot.history)
        print(f"History written to {path}")
    print(json.dumps(tracker.aggregator.session_payload(), indent=2, ensure_ascii=False))
    return 1 if failures else 0


def _replay(args: argparse.Namespace) -> int:
    try:
        samples = read_history_csv(args.csv_path)
    except (OSError, ExportError) as exc:
        eprint(f"error: {exc}")
        return 1
    if not samples:
        print("No samples to replay.")
        return 1

    aggregator = SessionAggregator(_detector_config(args))
    origin = samples[0].timestamp
    aggregator.start(now=origin)
    for sample in samples:
        aggregator.ingest(sample, now=sample.timestamp)
    snapshot = aggregator.stop(now=samples[-1].timestamp)

    mags = magnitude_series(samples)
    print(f"samples:       {len(samples)}")
    print(f"reps:          {snapshot.rep_count}")
    print(f"duration:      {snapshot.duration_display(samples[-1].timestamp)}")
    print(f"avg rep time:  {snapshot.average_rep_time_display}")
    print(f"peak:          {snapshot.peak_display}")
    print(f"mean |a|:      {float(mags.mean()):.2f} m/s²")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="repsense", description="BLE accelerometer rep tracker.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Discover nearby sensors.")
    scan.add_argument("--timeout", type=float, default=None, help="Scan duration in seconds.")

    detector_opts = argparse.ArgumentParser(add_help=False)
    detector_opts.add_argument("--threshold", type=float, default=DetectorConfig.threshold)
    detector_opts.add_argument("--debounce", type=float, default=DetectorConfig.debounce_s)

    track = sub.add_parser("track", parents=[detector_opts], help="Run a live session.")
    track.add_argument("device_id", help="Device address as printed by `repsense scan`.")
    track.add_argument("--duration", type=float, default=None, help="Stop after N seconds.")
    track.add_argument("--csv", default=None, help="Write the rolling history to this CSV path.")

    replay = sub.add_parser("replay", parents=[detector_opts], help="Replay an exported CSV.")
    replay.add_argument("csv_path")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.command == "scan":
            return asyncio.run(_scan(args))
        if args.command == "track":
            return asyncio.run(_track(args))
        return _replay(args)
    except KeyboardInterrupt:
        return 130
    except ValueError as exc:
        eprint(f"error: {exc}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
