"""
Monitoring Module

Prometheus metrics for batch runs.
"""

from .metrics import MetricsCollector

__all__ = [
    "MetricsCollector"
]
