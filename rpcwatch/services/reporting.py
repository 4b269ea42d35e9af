"""
SLA Reporting

Aggregates historical metrics and breach episodes into a period report with
recommendations. Reporting is read-only and never raises to its caller.
"""

from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from rpcwatch.infrastructure.health.sla_tracker import METRIC_WINDOW, SLATracker
from rpcwatch.infrastructure.logging import get_logger
from rpcwatch.models.interfaces import IClock
from rpcwatch.models.sla import (
    BreachEpisode,
    ComplianceStatus,
    MetricType,
    ReportPeriod,
    SLAMetric,
    SLAReport,
)

# (value, threshold) used when a metric type has no data in the period
DEFAULT_METRICS: Dict[MetricType, Tuple[float, float]] = {
    MetricType.UPTIME: (100.0, 99.9),
    MetricType.RESPONSE_TIME: (1000.0, 5000.0),
    MetricType.ERROR_RATE: (0.0, 1.0),
    MetricType.AVAILABILITY: (99.9, 99.5),
}

RECOMMENDATIONS: Dict[MetricType, Tuple[str, ...]] = {
    MetricType.UPTIME: (
        "Consider implementing redundancy for critical RPC endpoints",
        "Review and optimize RPC endpoint configurations",
    ),
    MetricType.RESPONSE_TIME: (
        "Optimize RPC endpoint performance and consider load balancing",
        "Review network latency and consider geographic distribution",
    ),
    MetricType.ERROR_RATE: (
        "Implement better error handling and retry mechanisms",
        "Review RPC endpoint stability and monitoring",
    ),
}

FREQUENT_BREACH_RECOMMENDATIONS = (
    "Consider upgrading to a higher SLA tier for better support",
    "Implement proactive monitoring and alerting",
)
FREQUENT_BREACH_COUNT = 5
REVIEW_INTERVAL = timedelta(days=7)


def build_recommendations(breaches: List[BreachEpisode]) -> List[str]:
    breached_types = {episode.metric_type for episode in breaches}
    recommendations: List[str] = []
    for metric_type, suggestions in RECOMMENDATIONS.items():
        if metric_type in breached_types:
            recommendations.extend(suggestions)
    if len(breaches) > FREQUENT_BREACH_COUNT:
        recommendations.extend(FREQUENT_BREACH_RECOMMENDATIONS)
    return recommendations


class SLAReporter:
    """Builds SLA reports from the tracker's history."""

    def __init__(self, tracker: SLATracker, clock: IClock, default_period_days: int = 30):
        self.logger = get_logger(__name__)
        self.tracker = tracker
        self.clock = clock
        self.default_period_days = default_period_days

    async def generate_report(self, org_id: str, period: Optional[ReportPeriod] = None) -> SLAReport:
        """
        Generate the compliance report for an organization.

        Args:
            org_id: Organization identifier
            period: Reporting period; defaults to the trailing 30 days

        Returns:
            SLAReport. With no data the report is fully compliant with default
            metrics and no breaches or recommendations.
        """
        now = self.clock.now()
        period = period or ReportPeriod.trailing(now, days=self.default_period_days)

        try:
            metrics = [m for m in await self.tracker.get_metrics(org_id) if period.contains(m.timestamp)]
            breaches = [b for b in await self.tracker.get_breaches(org_id) if period.contains(b.start_time)]
        except Exception as e:
            self.logger.error("sla_report_data_unavailable", org_id=org_id, error=str(e), exc_info=True)
            metrics, breaches = [], []

        overall = sum(m.compliance for m in metrics) / len(metrics) if metrics else 100.0
        breaches.sort(key=lambda b: b.start_time, reverse=True)

        report = SLAReport(
            org_id=org_id,
            period=period,
            overall_compliance=overall,
            metrics=self._latest_per_type(org_id, metrics, now),
            breaches=breaches,
            recommendations=build_recommendations(breaches),
            next_review_date=now + REVIEW_INTERVAL,
        )
        self.logger.info(
            "sla_report_generated",
            org_id=org_id,
            overall_compliance=round(overall, 2),
            breaches=len(breaches),
        )
        return report

    @staticmethod
    def _latest_per_type(org_id: str, metrics: List[SLAMetric], now) -> Dict[MetricType, SLAMetric]:
        latest: Dict[MetricType, SLAMetric] = {}
        for metric in metrics:
            current = latest.get(metric.metric_type)
            if current is None or metric.timestamp >= current.timestamp:
                latest[metric.metric_type] = metric

        for metric_type, (value, threshold) in DEFAULT_METRICS.items():
            if metric_type not in latest:
                latest[metric_type] = SLAMetric(
                    org_id=org_id,
                    endpoint_id=None,
                    metric_type=metric_type,
                    value=value,
                    threshold=threshold,
                    compliance=100.0,
                    status=ComplianceStatus.COMPLIANT,
                    timestamp=now,
                    window_start=now - METRIC_WINDOW,
                    window_end=now,
                )
        return {metric_type: latest[metric_type] for metric_type in MetricType}
