"""
Metrics Collection

Prometheus metrics for a batch run: how many tiles were enumerated, how each
worker invocation ended, how long invocations took and how many are in
flight. Every collector owns a private registry so that several runs in one
process (tests, embedding applications) never clash over metric names.
"""

import threading
from typing import Dict, List, Optional, Union

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, push_to_gateway


class MetricsCollector:
    """
    Metrics collection for contour tile batch runs.

    Counters and histograms are kept in a private CollectorRegistry and can
    be pushed to a Prometheus pushgateway once a run is finished.
    """

    def __init__(self, pushgateway: Optional[str] = None):
        """
        Initialize the metrics collector.

        Args:
            pushgateway: Prometheus pushgateway address, or None to keep
                metrics local
        """
        self.pushgateway = pushgateway
        self.registry = CollectorRegistry()
        self.lock = threading.RLock()

        self.logger = structlog.get_logger(collector_type="MetricsCollector")

        self.counters: Dict[str, Counter] = {}
        self.histograms: Dict[str, Histogram] = {}
        self.gauges: Dict[str, Gauge] = {}

        self._create_metric(
            'counter', 'tiles_enumerated_total',
            'Total number of tile addresses enumerated',
            ['zoom_level']
        )

        self._create_metric(
            'counter', 'tile_invocations_total',
            'Total number of worker invocations',
            ['status']
        )

        self._create_metric(
            'histogram', 'tile_invocation_duration_seconds',
            'Duration of worker invocations',
            ['zoom_level']
        )

        self._create_metric(
            'gauge', 'dispatch_in_flight',
            'Number of worker invocations currently running'
        )

        self._create_metric(
            'counter', 'dispatch_runs_total',
            'Total number of dispatch runs',
            ['status']
        )

    def _create_metric(
        self,
        metric_type: str,
        name: str,
        description: str,
        labels: List[str] = None
    ) -> None:
        """Create a Prometheus metric in the private registry."""
        if labels is None:
            labels = []

        if metric_type == 'counter':
            self.counters[name] = Counter(name, description, labels, registry=self.registry)
        elif metric_type == 'histogram':
            self.histograms[name] = Histogram(name, description, labels, registry=self.registry)
        elif metric_type == 'gauge':
            self.gauges[name] = Gauge(name, description, labels, registry=self.registry)
        else:
            raise ValueError(f"Unsupported metric type: {metric_type}")

    def increment_counter(
        self,
        name: str,
        value: Union[int, float] = 1,
        labels: Dict[str, str] = None
    ) -> None:
        """
        Increment a counter metric.

        Args:
            name: Metric name
            value: Value to increment by
            labels: Metric labels
        """
        with self.lock:
            counter = self.counters[name]
            if labels:
                counter.labels(**labels).inc(value)
            else:
                counter.inc(value)

    def record_histogram(
        self,
        name: str,
        value: Union[int, float],
        labels: Dict[str, str] = None
    ) -> None:
        """Record an observation in a histogram metric."""
        with self.lock:
            histogram = self.histograms[name]
            if labels:
                histogram.labels(**labels).observe(value)
            else:
                histogram.observe(value)

    def set_gauge(self, name: str, value: Union[int, float]) -> None:
        with self.lock:
            self.gauges[name].set(value)

    def get_value(self, name: str, labels: Dict[str, str] = None) -> Optional[float]:
        """Current value of a sample, or None if it was never recorded."""
        return self.registry.get_sample_value(name, labels or {})

    def push(self, job: str = "contour_tiles") -> bool:
        """
        Push the registry to the configured pushgateway.

        Returns:
            True if metrics were pushed, False if no gateway is configured or
            the push failed
        """
        if not self.pushgateway:
            return False

        try:
            push_to_gateway(self.pushgateway, job=job, registry=self.registry)
        except OSError as e:
            self.logger.error(
                "Failed to push metrics",
                gateway=self.pushgateway,
                error=str(e)
            )
            return False

        self.logger.info("Metrics pushed", gateway=self.pushgateway, job=job)
        return True
