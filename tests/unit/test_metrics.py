"""Tests for the metrics collector."""

import unittest
from unittest.mock import patch

from contour_tiles.monitoring.metrics import MetricsCollector


class TestMetricsCollector(unittest.TestCase):

    def test_collectors_are_isolated(self):
        first = MetricsCollector()
        second = MetricsCollector()

        first.increment_counter('tile_invocations_total', labels={'status': 'success'})

        self.assertEqual(first.get_value('tile_invocations_total', {'status': 'success'}), 1)
        self.assertIsNone(second.get_value('tile_invocations_total', {'status': 'success'}))

    def test_unknown_metric_type(self):
        with self.assertRaises(ValueError):
            MetricsCollector()._create_metric('meter', 'x_total', 'x')

    def test_push_without_gateway(self):
        self.assertFalse(MetricsCollector().push())

    @patch("contour_tiles.monitoring.metrics.push_to_gateway")
    def test_push_to_gateway(self, mock_push):
        metrics = MetricsCollector(pushgateway="localhost:9091")

        self.assertTrue(metrics.push(job="contours"))
        mock_push.assert_called_once_with("localhost:9091", job="contours", registry=metrics.registry)

    @patch("contour_tiles.monitoring.metrics.push_to_gateway", side_effect=OSError("refused"))
    def test_push_failure_is_reported(self, mock_push):
        self.assertFalse(MetricsCollector(pushgateway="localhost:9091").push())
