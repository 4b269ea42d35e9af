"""
SLA Compliance Tracker

Turns metric observations into compliance scores, keeps a bounded history
per (organization, endpoint-or-global) key and runs the periodic rollup that
opens breaches, raises alerts and resolves recovered ones.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Union

from rpcwatch.exceptions import ValidationException
from rpcwatch.infrastructure.locks import KeyedLocks
from rpcwatch.infrastructure.logging import get_logger
from rpcwatch.infrastructure.monitoring.alerting import SLAAlertManager
from rpcwatch.infrastructure.monitoring.breaches import BreachRecorder
from rpcwatch.models.interfaces import IClock, IMetricSink, IMetricStore, IScheduler
from rpcwatch.models.sla import (
    ComplianceStatus,
    MetricKey,
    MetricType,
    SLAMetric,
    classify_compliance,
)

METRIC_NAMESPACE = "metrics"
EVALUATION_JOB = "sla_evaluation"
METRIC_WINDOW = timedelta(seconds=60)


def compute_compliance(metric_type: MetricType, value: float, threshold: float) -> float:
    """
    Compliance percentage of a value against its threshold, clamped to [0, 100].

    uptime/availability are higher-is-better ratios; response_time and
    error_rate lose compliance as the value grows past (or toward) the
    threshold.
    """
    if metric_type in (MetricType.UPTIME, MetricType.AVAILABILITY):
        compliance = min(100.0, value / threshold * 100)
    elif metric_type == MetricType.RESPONSE_TIME:
        compliance = max(0.0, 100 - (value - threshold) / threshold * 100)
    elif metric_type == MetricType.ERROR_RATE:
        compliance = max(0.0, 100 - value / threshold * 100)
    else:
        raise ValidationException(f"Unsupported metric type: {metric_type}")
    return max(0.0, min(100.0, compliance))


@dataclass(frozen=True)
class RollupResult:
    """Outcome of one evaluation for one key and metric type."""
    key: MetricKey
    metric_type: MetricType
    compliance: float
    status: ComplianceStatus
    sample_count: int


class SLATracker:
    """Tracks SLA metrics and compliance per organization and endpoint."""

    def __init__(
        self,
        store: IMetricStore,
        sink: IMetricSink,
        breaches: BreachRecorder,
        alerts: SLAAlertManager,
        clock: IClock,
        scheduler: IScheduler,
        evaluation_interval_seconds: float = 60.0,
        rollup_window_minutes: int = 60,
        history_limit: int = 1000,
        retention_days: int = 30,
    ):
        self.logger = get_logger(__name__)
        self.store = store
        self.sink = sink
        self.breaches = breaches
        self.alerts = alerts
        self.clock = clock
        self.scheduler = scheduler
        self.evaluation_interval_seconds = evaluation_interval_seconds
        self.rollup_window = timedelta(minutes=rollup_window_minutes)
        self.history_limit = history_limit
        self.retention = timedelta(days=retention_days)
        self._locks = KeyedLocks()
        self.last_evaluation_at: Optional[datetime] = None

    async def start(self) -> None:
        self.scheduler.schedule(EVALUATION_JOB, self.evaluation_interval_seconds, self.evaluate)
        self.logger.info("sla_tracker_started", interval_seconds=self.evaluation_interval_seconds)

    async def stop(self) -> None:
        await self.scheduler.cancel(EVALUATION_JOB)
        self.logger.info("sla_tracker_stopped")

    async def record_metric(
        self,
        org_id: str,
        endpoint_id: Optional[str],
        metric_type: Union[MetricType, str],
        value: float,
        threshold: float,
    ) -> SLAMetric:
        """
        Record one metric value.

        A non-compliant observation updates the open alert immediately; a
        breach also opens or extends a breach episode.

        Args:
            org_id: Organization identifier
            endpoint_id: Endpoint identifier, or None for an organization-wide metric
            metric_type: uptime, response_time, error_rate or availability
            value: Observed value in the metric's natural unit
            threshold: Target value; must be positive

        Returns:
            The stored SLAMetric

        Raises:
            ValidationException: Invalid organization or endpoint id, unknown
                metric type or non-positive threshold
        """
        key = MetricKey(org_id, endpoint_id)
        metric_type = self._coerce_metric_type(metric_type)
        if threshold is None or threshold <= 0:
            raise ValidationException(
                f"Threshold must be positive, got {threshold}",
                details={"metric_type": metric_type.value, "threshold": threshold}
            )

        compliance = compute_compliance(metric_type, value, threshold)
        status = classify_compliance(compliance)
        now = self.clock.now()
        metric = SLAMetric(
            org_id=org_id,
            endpoint_id=endpoint_id,
            metric_type=metric_type,
            value=value,
            threshold=threshold,
            compliance=compliance,
            status=status,
            timestamp=now,
            window_start=now - METRIC_WINDOW,
            window_end=now,
        )

        storage_key = key.storage_key(METRIC_NAMESPACE)
        async with self._locks(storage_key):
            evicted = await self.store.append(storage_key, metric, limit=self.history_limit)
            if evicted:
                self.logger.debug("sla_metrics_evicted", key=storage_key, count=len(evicted))

            if status != ComplianceStatus.COMPLIANT:
                await self.alerts.raise_alert(key, metric_type, value, threshold, compliance, status)
                if status == ComplianceStatus.BREACH:
                    await self.breaches.record(key, metric_type, compliance, now)

        try:
            await self.sink.write_metric(metric)
        except Exception as e:
            self.logger.error("metric_sink_write_failed", key=storage_key, error=str(e))

        self.logger.debug(
            "sla_metric_recorded",
            org_id=org_id,
            endpoint_id=endpoint_id,
            metric_type=metric_type.value,
            compliance=compliance,
            status=status.value,
        )
        return metric

    async def evaluate(self) -> List[RollupResult]:
        """
        One evaluation cycle over every key.

        For each key the metrics of the trailing rollup window are averaged per
        metric type. Non-compliant rollups raise (and, for breaches, record)
        against the latest observation; compliant rollups resolve any open
        alert. A failure on one key is logged and does not stop the cycle.
        """
        now = self.clock.now()
        cutoff = now - self.rollup_window
        snapshot = await self.store.scan_prefix(f"{METRIC_NAMESPACE}:")
        results: List[RollupResult] = []

        for storage_key, metrics in snapshot.items():
            key = MetricKey.from_storage_key(storage_key)
            try:
                async with self._locks(storage_key):
                    results.extend(await self._evaluate_key(key, storage_key, metrics, cutoff, now))
            except Exception as e:
                self.logger.error("sla_evaluation_failed", key=storage_key, error=str(e), exc_info=True)

        self.last_evaluation_at = now
        self.logger.info(
            "sla_evaluation_completed",
            keys=len(snapshot),
            rollups=len(results),
            non_compliant=sum(1 for r in results if r.status != ComplianceStatus.COMPLIANT),
        )
        return results

    async def _evaluate_key(
        self,
        key: MetricKey,
        storage_key: str,
        metrics: List[SLAMetric],
        cutoff: datetime,
        now: datetime,
    ) -> List[RollupResult]:
        if len(metrics) >= self.history_limit and metrics[0].timestamp > cutoff:
            self.logger.warning(
                "sla_rollup_window_truncated",
                key=storage_key,
                oldest=metrics[0].timestamp.isoformat(),
                history_limit=self.history_limit,
            )

        by_type: Dict[MetricType, List[SLAMetric]] = defaultdict(list)
        for metric in metrics:
            if metric.timestamp >= cutoff:
                by_type[metric.metric_type].append(metric)

        results = []
        for metric_type, window in by_type.items():
            compliance = sum(m.compliance for m in window) / len(window)
            status = classify_compliance(compliance)

            if status == ComplianceStatus.COMPLIANT:
                await self.alerts.resolve(key, metric_type)
            else:
                latest = max(window, key=lambda m: m.timestamp)
                await self.alerts.raise_alert(
                    key, metric_type, latest.value, latest.threshold, compliance, status
                )
                if status == ComplianceStatus.BREACH:
                    await self.breaches.record(key, metric_type, compliance, now)

            results.append(RollupResult(
                key=key,
                metric_type=metric_type,
                compliance=compliance,
                status=status,
                sample_count=len(window),
            ))
        return results

    async def get_metrics(
        self,
        org_id: str,
        endpoint_id: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[SLAMetric]:
        """Metrics for one key, or every key of the organization when
        endpoint_id is None. Oldest first."""
        if endpoint_id is not None:
            metrics = await self.store.get(MetricKey(org_id, endpoint_id).storage_key(METRIC_NAMESPACE)) or []
        else:
            snapshot = await self.store.scan_prefix(MetricKey.org_prefix(METRIC_NAMESPACE, org_id))
            metrics = [metric for items in snapshot.values() for metric in items]

        if since is not None:
            metrics = [m for m in metrics if m.timestamp >= since]
        return sorted(metrics, key=lambda m: m.timestamp)

    async def get_breaches(self, org_id: str, endpoint_id: Optional[str] = None):
        return await self.breaches.get_breaches(org_id, endpoint_id)

    async def cleanup(self) -> Dict[str, int]:
        """Evict metrics, breach episodes and resolved alerts older than the retention period."""
        cutoff = self.clock.now() - self.retention
        removed = {
            "metrics": await self.store.evict(f"{METRIC_NAMESPACE}:", lambda m: m.timestamp < cutoff),
            "breaches": await self.breaches.evict_before(cutoff),
            "alerts": await self.alerts.evict_before(cutoff),
        }
        self.logger.info("sla_cleanup_completed", cutoff=cutoff.isoformat(), **removed)
        return removed

    async def count_metrics(self) -> int:
        snapshot = await self.store.scan_prefix(f"{METRIC_NAMESPACE}:")
        return sum(len(items) for items in snapshot.values())

    @staticmethod
    def _coerce_metric_type(metric_type: Union[MetricType, str]) -> MetricType:
        try:
            return MetricType(metric_type)
        except ValueError as e:
            raise ValidationException(
                f"Unknown metric type: {metric_type}",
                details={"allowed": [m.value for m in MetricType]}
            ) from e
