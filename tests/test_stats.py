"""Tests for netmetrics.stats -- unit conversion and latency summaries."""

import unittest

from netmetrics.stats import format_mbps, format_ms, summarize_latency, throughput_mbps


class TestThroughputMbps(unittest.TestCase):
    def test_binary_megabits(self):
        # N*8 / (1024*1024*T)
        self.assertAlmostEqual(throughput_mbps(10_000_000, 1.0), 76.2939453125)

    def test_scales_with_time(self):
        self.assertAlmostEqual(throughput_mbps(1_048_576, 2.0), 4.0)

    def test_zero_duration(self):
        self.assertEqual(throughput_mbps(1000, 0.0), 0.0)

    def test_zero_bytes(self):
        self.assertEqual(throughput_mbps(0, 1.0), 0.0)


class TestSummarizeLatency(unittest.TestCase):
    def test_summary(self):
        stats = summarize_latency([20.0, 35.0, 50.0], current=20.0)
        self.assertEqual(stats.current, 20.0)
        self.assertEqual(stats.min, 20.0)
        self.assertEqual(stats.max, 50.0)
        self.assertAlmostEqual(stats.average, 35.0)
        self.assertEqual(stats.samples, (20.0, 35.0, 50.0))

    def test_empty(self):
        stats = summarize_latency([], current=12.0)
        self.assertEqual(stats.current, 0.0)
        self.assertEqual(stats.samples, ())


class TestFormatting(unittest.TestCase):
    def test_format_mbps(self):
        self.assertEqual(format_mbps(76.2939453125), "76.29 Mbps")

    def test_format_mbps_estimated(self):
        self.assertEqual(format_mbps(30.0, estimated=True), "30.00 Mbps (estimated)")

    def test_format_ms(self):
        self.assertEqual(format_ms(20.0), "20.0 ms")

    def test_negative_clamped(self):
        self.assertEqual(format_ms(-1.0), "0.0 ms")
        self.assertEqual(format_mbps(-5.0), "0.00 Mbps")


if __name__ == "__main__":
    unittest.main()
