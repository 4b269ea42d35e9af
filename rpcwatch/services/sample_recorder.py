"""
Health sample feed

Bridges the prober and the SLA tracker: each HealthSample is folded into a
sliding window per endpoint and turned into the four SLA metrics for the
endpoint's owner.
"""

from collections import deque
from typing import Deque, Dict, List, Optional

from rpcwatch.infrastructure.health.sla_tracker import SLATracker
from rpcwatch.infrastructure.logging import get_logger
from rpcwatch.models.endpoint import EndpointConfig, HealthSample
from rpcwatch.models.sla import MetricType, SLAMetric, SLAThresholds


class HealthSampleRecorder:
    """Converts probe samples into uptime, response_time, error_rate and availability metrics."""

    def __init__(
        self,
        tracker: SLATracker,
        default_thresholds: Optional[SLAThresholds] = None,
        window_size: int = 60,
    ):
        self.logger = get_logger(__name__)
        self.tracker = tracker
        self.default_thresholds = default_thresholds or SLAThresholds()
        self.window_size = window_size
        self._windows: Dict[str, Deque[HealthSample]] = {}
        self._org_thresholds: Dict[str, SLAThresholds] = {}

    def set_thresholds(self, org_id: str, thresholds: SLAThresholds) -> None:
        self._org_thresholds[org_id] = thresholds
        self.logger.info("sla_thresholds_set", org_id=org_id)

    def thresholds_for(self, org_id: str) -> SLAThresholds:
        return self._org_thresholds.get(org_id, self.default_thresholds)

    def forget(self, endpoint_id: str) -> None:
        self._windows.pop(endpoint_id, None)

    async def on_sample(self, endpoint: EndpointConfig, sample: HealthSample) -> List[SLAMetric]:
        window = self._windows.get(endpoint.id)
        if window is None:
            window = deque(maxlen=self.window_size)
            self._windows[endpoint.id] = window
        window.append(sample)

        total = len(window)
        online = sum(1 for s in window if s.online)
        available = sum(1 for s in window if s.online and not s.syncing)
        thresholds = self.thresholds_for(endpoint.owner_id)

        values = (
            (MetricType.UPTIME, online / total * 100),
            (MetricType.RESPONSE_TIME, sample.response_time_ms),
            (MetricType.ERROR_RATE, (total - online) / total * 100),
            (MetricType.AVAILABILITY, available / total * 100),
        )

        metrics = []
        for metric_type, value in values:
            metrics.append(await self.tracker.record_metric(
                endpoint.owner_id,
                endpoint.id,
                metric_type,
                value,
                thresholds.for_metric(metric_type),
            ))
        return metrics
