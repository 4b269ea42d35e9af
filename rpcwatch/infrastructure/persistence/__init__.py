"""Storage and sink adapters."""

from .inmemory_store import InMemoryMetricStore
from .metric_sink import BufferedMetricSink, NullMetricSink

__all__ = ["InMemoryMetricStore", "BufferedMetricSink", "NullMetricSink"]
