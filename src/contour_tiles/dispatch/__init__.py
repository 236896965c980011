"""
Dispatch Module

Bounded-concurrency execution of work units against the external contour
worker.
"""

from .pool import DispatchPool, DispatchReport
from .worker import SubprocessWorker, WorkResult

__all__ = [
    "DispatchPool",
    "DispatchReport",
    "SubprocessWorker",
    "WorkResult"
]
