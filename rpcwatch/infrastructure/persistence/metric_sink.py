"""
Metric sink adapters

BufferedMetricSink shields the engine from an unavailable downstream sink:
records that cannot be delivered are queued per key (bounded, oldest dropped
first) and retried on the next write for that key.
"""

from collections import deque
from dataclasses import replace
from typing import Deque, Dict, Set, Tuple, Union

from rpcwatch.infrastructure.logging import get_logger
from rpcwatch.models.interfaces import IMetricSink
from rpcwatch.models.sla import BreachEpisode, BreachTransition, MetricKey, SLAMetric

_PendingRecord = Union[SLAMetric, Tuple[BreachEpisode, BreachTransition]]


class NullMetricSink(IMetricSink):
    """Discards everything. Used when no persistence layer is attached."""

    async def write_metric(self, metric: SLAMetric) -> None:
        return None

    async def write_breach(self, episode: BreachEpisode, transition: BreachTransition) -> None:
        return None


class BufferedMetricSink(IMetricSink):
    """Wraps a sink with a bounded per-key retry buffer.

    Ordering per key is preserved: while a key has pending records, new
    records for it are queued behind them.
    """

    def __init__(self, target: IMetricSink, max_pending_per_key: int = 1000):
        self.logger = get_logger(__name__)
        self.target = target
        self.max_pending_per_key = max_pending_per_key
        self._pending: Dict[str, Deque[_PendingRecord]] = {}
        self._draining: Set[str] = set()
        self.dropped = 0

    def pending_count(self, key: MetricKey) -> int:
        return len(self._pending.get(self._bucket(key), ()))

    async def write_metric(self, metric: SLAMetric) -> None:
        await self._submit(metric.key, metric)

    async def write_breach(self, episode: BreachEpisode, transition: BreachTransition) -> None:
        key = MetricKey(episode.org_id, episode.endpoint_id)
        # Episodes are extended in place; queue the state as of this transition
        await self._submit(key, (replace(episode), transition))

    async def flush(self) -> int:
        """Try to deliver every pending record. Returns how many were delivered."""
        delivered = 0
        for bucket in list(self._pending):
            delivered += await self._drain(bucket)
        return delivered

    async def _submit(self, key: MetricKey, record: _PendingRecord) -> None:
        bucket = self._bucket(key)
        queue = self._pending.get(bucket)
        if queue is None:
            queue = deque(maxlen=self.max_pending_per_key)
            self._pending[bucket] = queue

        if len(queue) == queue.maxlen:
            self.dropped += 1
            self.logger.warning(
                "metric_sink_buffer_overflow",
                key=bucket,
                max_pending=self.max_pending_per_key,
                dropped_total=self.dropped,
            )
        queue.append(record)
        await self._drain(bucket)

    async def _drain(self, bucket: str) -> int:
        # One drain per bucket at a time; records queued meanwhile are picked up by it
        if bucket in self._draining:
            return 0
        queue = self._pending.get(bucket)
        delivered = 0
        self._draining.add(bucket)
        try:
            while queue:
                record = queue[0]
                try:
                    await self._deliver(record)
                except Exception as e:
                    self.logger.warning(
                        "metric_sink_unavailable",
                        key=bucket,
                        pending=len(queue),
                        error=str(e),
                    )
                    return delivered
                queue.popleft()
                delivered += 1

            self._pending.pop(bucket, None)
            return delivered
        finally:
            self._draining.discard(bucket)

    async def _deliver(self, record: _PendingRecord) -> None:
        if isinstance(record, SLAMetric):
            await self.target.write_metric(record)
        else:
            episode, transition = record
            await self.target.write_breach(episode, transition)

    @staticmethod
    def _bucket(key: MetricKey) -> str:
        return f"{key.org_id}:{key.scope}"
