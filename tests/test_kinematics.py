import unittest

from repsense.config import Sample
from repsense.signals import kinematics


class KinematicsTests(unittest.TestCase):
    def test_magnitude_is_euclidean_norm(self) -> None:
        self.assertAlmostEqual(kinematics.magnitude(3.0, 4.0, 12.0), 13.0)
        self.assertEqual(kinematics.magnitude(0.0, 0.0, 0.0), 0.0)

    def test_magnitude_series_matches_scalar_helper(self) -> None:
        samples = [Sample(0.0, 3.0, 4.0, 0.0), Sample(0.1, 1.0, 2.0, 2.0)]
        series = kinematics.magnitude_series(samples)
        self.assertEqual(series.shape, (2,))
        self.assertAlmostEqual(float(series[0]), 5.0)
        self.assertAlmostEqual(float(series[1]), 3.0)

    def test_magnitude_series_of_nothing_is_empty(self) -> None:
        self.assertEqual(kinematics.magnitude_series([]).shape, (0,))

    def test_format_duration(self) -> None:
        self.assertEqual(kinematics.format_duration(0), "00:00:00")
        self.assertEqual(kinematics.format_duration(59.99), "00:00:59")
        self.assertEqual(kinematics.format_duration(3 * 3600 + 25 * 60 + 7.5), "03:25:07")
        self.assertEqual(kinematics.format_duration(100 * 3600), "100:00:00")
        self.assertEqual(kinematics.format_duration(-5), "00:00:00")

    def test_display_formats(self) -> None:
        self.assertEqual(kinematics.format_rep_time(1.25), "1.2s")
        self.assertEqual(kinematics.format_rep_time(0.0), "0.0s")
        self.assertEqual(kinematics.format_peak(5.0), "5.00 m/s²")
        self.assertEqual(kinematics.format_peak(12.3456), "12.35 m/s²")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
