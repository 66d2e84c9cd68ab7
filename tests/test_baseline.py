import random
import unittest

from repsense.config import DetectorConfig, Sample
from repsense.errors import NotConnectedError
from repsense.events import Publisher
from repsense.repdetect import baseline


def _sample(x: float, y: float = 0.0, z: float = 0.0) -> Sample:
    # The aggregator restamps samples, so the receive timestamp is irrelevant.
    return Sample(timestamp=-1.0, x=x, y=y, z=z)


def _feed(aggregator: baseline.SessionAggregator, readings) -> None:
    for now, value in readings:
        aggregator.ingest(_sample(value), now=now)


class IngestTests(unittest.TestCase):
    def setUp(self) -> None:
        self.aggregator = baseline.SessionAggregator()
        self.aggregator.start(now=0.0)

    def test_two_peaks_600ms_apart_count_twice(self) -> None:
        _feed(self.aggregator, [(0.0, 0.0), (0.1, 3.0), (0.2, 0.0), (0.7, 3.0)])
        self.assertEqual(self.aggregator.state.rep_count, 2)

    def test_two_peaks_200ms_apart_are_debounced(self) -> None:
        _feed(self.aggregator, [(0.0, 0.0), (0.1, 3.0), (0.2, 0.0), (0.3, 3.0)])
        self.assertEqual(self.aggregator.state.rep_count, 1)

    def test_sustained_peak_counts_once(self) -> None:
        _feed(self.aggregator, [(t / 10, 3.0) for t in range(20)])
        self.assertEqual(self.aggregator.state.rep_count, 1)

    def test_magnitude_equal_to_threshold_is_not_a_peak(self) -> None:
        _feed(self.aggregator, [(0.0, 2.0), (1.0, 0.0), (2.0, 2.0)])
        self.assertEqual(self.aggregator.state.rep_count, 0)
        self.assertFalse(self.aggregator.state.detector.was_above_threshold)

    def test_magnitude_uses_all_three_axes(self) -> None:
        # Each axis alone is below the threshold, the norm is not.
        self.aggregator.ingest(_sample(1.5, 1.5, 1.5), now=0.1)
        self.assertEqual(self.aggregator.state.rep_count, 1)

    def test_suppressed_edge_restarts_debounce_window(self) -> None:
        readings = [(0.0, 3.0), (0.2, 0.0), (0.4, 3.0), (0.6, 0.0), (0.8, 3.0)]
        _feed(self.aggregator, readings)
        self.assertEqual(self.aggregator.state.rep_count, 1)
        self.assertEqual(self.aggregator.state.detector.last_peak_at, 0.8)

    def test_suppressed_edge_can_leave_window_untouched(self) -> None:
        config = DetectorConfig(restart_debounce_on_suppressed_edge=False)
        aggregator = baseline.SessionAggregator(config)
        aggregator.start(now=0.0)
        _feed(aggregator, [(0.0, 3.0), (0.2, 0.0), (0.4, 3.0), (0.6, 0.0), (0.8, 3.0)])
        self.assertEqual(aggregator.state.rep_count, 2)
        self.assertEqual(aggregator.state.rep_intervals, (0.8,))

    def test_rep_intervals_and_average(self) -> None:
        _feed(
            self.aggregator,
            [(1.0, 3.0), (1.5, 0.0), (2.0, 3.0), (3.0, 0.0), (4.0, 3.0)],
        )
        state = self.aggregator.state
        self.assertEqual(state.rep_count, 3)
        self.assertEqual(state.rep_intervals, (1.0, 2.0))
        self.assertEqual(state.average_rep_time, 1.5)
        self.assertEqual(state.average_rep_time_display, "1.5s")

    def test_first_rep_has_no_interval(self) -> None:
        _feed(self.aggregator, [(0.3, 5.0)])
        self.assertEqual(self.aggregator.state.rep_intervals, ())
        self.assertEqual(self.aggregator.state.average_rep_time_display, "0.0s")

    def test_peak_magnitude_tracks_maximum(self) -> None:
        _feed(self.aggregator, [(0.0, 1.0), (0.1, 5.0), (0.2, 3.0)])
        self.assertEqual(self.aggregator.state.peak_magnitude, 5.0)
        self.assertEqual(self.aggregator.state.peak_display, "5.00 m/s²")

    def test_history_keeps_most_recent_samples_in_order(self) -> None:
        for i in range(150):
            self.aggregator.ingest(_sample(float(i)), now=i * 0.01)
        history = self.aggregator.state.history
        self.assertEqual(len(history), 100)
        self.assertEqual([s.x for s in history], [float(i) for i in range(50, 150)])
        self.assertAlmostEqual(history[0].timestamp, 0.5)
        self.assertAlmostEqual(history[-1].timestamp, 1.49)

    def test_history_timestamps_are_session_relative(self) -> None:
        aggregator = baseline.SessionAggregator()
        aggregator.start(now=100.0)
        aggregator.ingest(Sample(timestamp=42.0, x=1.0, y=2.0, z=3.0), now=100.25)
        self.assertEqual(
            aggregator.state.history,
            (Sample(timestamp=0.25, x=1.0, y=2.0, z=3.0),),
        )

    def test_rep_count_is_monotonic(self) -> None:
        rng = random.Random(7)
        previous = 0
        for i in range(500):
            self.aggregator.ingest(_sample(rng.uniform(0.0, 4.0)), now=i * 0.05)
            current = self.aggregator.state.rep_count
            self.assertGreaterEqual(current, previous)
            previous = current
        self.assertGreater(previous, 0)

    def test_previous_snapshot_is_not_mutated(self) -> None:
        before = self.aggregator.state
        self.aggregator.ingest(_sample(3.0), now=0.1)
        self.assertEqual(before.rep_count, 0)
        self.assertEqual(before.history, ())
        self.assertIsNot(before, self.aggregator.state)

    def test_pure_ingest_ignores_inactive_state(self) -> None:
        idle = baseline.SessionSnapshot()
        self.assertIs(baseline.ingest(idle, _sample(9.0), now=1.0), idle)


class SessionLifecycleTests(unittest.TestCase):
    def test_samples_ignored_before_start_and_after_stop(self) -> None:
        aggregator = baseline.SessionAggregator()
        aggregator.ingest(_sample(5.0), now=0.0)
        self.assertEqual(aggregator.state, baseline.SessionSnapshot())

        aggregator.start(now=1.0)
        aggregator.ingest(_sample(5.0), now=1.1)
        aggregator.stop(now=2.0)
        frozen = aggregator.state
        aggregator.ingest(_sample(0.0), now=2.5)
        aggregator.ingest(_sample(5.0), now=3.5)
        self.assertIs(aggregator.state, frozen)
        self.assertEqual(frozen.rep_count, 1)
        self.assertEqual(len(frozen.history), 1)

    def test_start_is_gated_on_connection(self) -> None:
        aggregator = baseline.SessionAggregator(is_connected=lambda: False)
        before = aggregator.state
        with self.assertRaises(NotConnectedError):
            aggregator.start(now=0.0)
        self.assertIs(aggregator.state, before)
        self.assertFalse(aggregator.active)

    def test_start_allowed_when_connected(self) -> None:
        aggregator = baseline.SessionAggregator(is_connected=lambda: True)
        self.assertTrue(aggregator.start(now=0.0).active)

    def test_restart_creates_fresh_session(self) -> None:
        aggregator = baseline.SessionAggregator()
        aggregator.start(now=0.0)
        _feed(aggregator, [(0.1, 3.0)])
        aggregator.stop(now=1.0)
        restarted = aggregator.start(now=5.0)
        self.assertEqual(restarted.rep_count, 0)
        self.assertEqual(restarted.history, ())
        self.assertEqual(restarted.started_at, 5.0)

    def test_duration_runs_while_active_and_freezes_on_stop(self) -> None:
        aggregator = baseline.SessionAggregator()
        aggregator.start(now=10.0)
        self.assertEqual(aggregator.duration_display(now=10.0 + 3725.0), "01:02:05")
        aggregator.stop(now=20.0)
        self.assertEqual(aggregator.duration_display(now=999.0), "00:00:10")

    def test_reset_zeroes_statistics(self) -> None:
        aggregator = baseline.SessionAggregator()
        aggregator.start(now=0.0)
        _feed(aggregator, [(0.1, 3.0), (0.5, 0.0), (1.2, 7.0)])
        aggregator.stop(now=4.0)

        state = aggregator.reset()
        self.assertEqual(state.rep_count, 0)
        self.assertEqual(state.duration_display(now=50.0), "00:00:00")
        self.assertEqual(state.average_rep_time_display, "0.0s")
        self.assertEqual(state.peak_display, "0.00 m/s²")
        self.assertEqual(state.history, ())
        self.assertFalse(state.active)

    def test_reset_during_active_session_rearms_start(self) -> None:
        aggregator = baseline.SessionAggregator()
        aggregator.start(now=0.0)
        _feed(aggregator, [(0.1, 3.0), (0.2, 0.0)])

        state = aggregator.reset(now=30.0)
        self.assertTrue(state.active)
        self.assertEqual(state.started_at, 30.0)
        self.assertEqual(state.rep_count, 0)
        self.assertEqual(state.detector, baseline.PeakDetectorState())
        self.assertEqual(state.duration_display(now=30.0), "00:00:00")

        aggregator.ingest(_sample(3.0), now=30.1)
        self.assertEqual(aggregator.state.rep_count, 1)
        self.assertAlmostEqual(aggregator.state.history[0].timestamp, 0.1)

    def test_every_change_is_published(self) -> None:
        aggregator = baseline.SessionAggregator()
        seen = []
        aggregator.snapshots.subscribe(seen.append)
        aggregator.start(now=0.0)
        aggregator.ingest(_sample(1.0), now=0.1)
        aggregator.stop(now=0.2)
        aggregator.ingest(_sample(1.0), now=0.3)
        self.assertEqual(len(seen), 3)
        self.assertIs(seen[-1], aggregator.state)

    def test_attach_consumes_published_samples(self) -> None:
        clock = iter([0.0, 0.1, 0.9])
        aggregator = baseline.SessionAggregator(clock=lambda: next(clock))
        samples: Publisher[Sample] = Publisher("samples")
        unsubscribe = aggregator.attach(samples)
        aggregator.start()
        samples.publish(_sample(3.0))
        unsubscribe()
        samples.publish(_sample(3.0))
        self.assertEqual(aggregator.state.rep_count, 1)
        self.assertEqual(len(aggregator.state.history), 1)

    def test_session_payload_fields(self) -> None:
        aggregator = baseline.SessionAggregator()
        aggregator.start(now=0.0)
        _feed(aggregator, [(0.1, 3.0), (0.5, 0.0), (1.1, 4.0)])
        aggregator.stop(now=65.0)

        payload = aggregator.session_payload(now=100.0)
        self.assertEqual(
            set(payload),
            {
                "startTime",
                "endTime",
                "totalReps",
                "maxAcceleration",
                "averageRepTime",
                "sessionDuration",
                "accelerationData",
            },
        )
        self.assertEqual(payload["totalReps"], 2)
        self.assertEqual(payload["maxAcceleration"], "4.00 m/s²")
        self.assertEqual(payload["averageRepTime"], "1.0s")
        self.assertEqual(payload["sessionDuration"], "00:01:05")
        self.assertEqual(len(payload["accelerationData"]), 3)
        self.assertTrue(payload["startTime"].endswith("Z"))
        self.assertLessEqual(payload["startTime"], payload["endTime"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
