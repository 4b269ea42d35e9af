"""
SLA domain models

Metric observations, breach episodes, alerts and reports, plus the ordered
policy tables that map compliance percentages onto statuses and severities.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple

from rpcwatch.exceptions import ValidationException


class MetricType(str, Enum):
    """SLA metric types."""
    UPTIME = "uptime"
    RESPONSE_TIME = "response_time"
    ERROR_RATE = "error_rate"
    AVAILABILITY = "availability"

    @property
    def lower_is_better(self) -> bool:
        return self in (MetricType.RESPONSE_TIME, MetricType.ERROR_RATE)


class ComplianceStatus(str, Enum):
    """Compliance classification of a metric or rollup."""
    COMPLIANT = "compliant"
    WARNING = "warning"
    BREACH = "breach"


class BreachSeverity(str, Enum):
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


class AlertSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


# Ordered (minimum compliance, status) pairs; first match wins.
STATUS_POLICY: Tuple[Tuple[float, ComplianceStatus], ...] = (
    (99.0, ComplianceStatus.COMPLIANT),
    (95.0, ComplianceStatus.WARNING),
    (float("-inf"), ComplianceStatus.BREACH),
)

# Severity of a newly opened breach episode by its compliance.
EPISODE_SEVERITY_POLICY: Tuple[Tuple[float, BreachSeverity], ...] = (
    (90.0, BreachSeverity.MAJOR),
    (float("-inf"), BreachSeverity.CRITICAL),
)

ALERT_SEVERITY_BY_STATUS: Dict[ComplianceStatus, AlertSeverity] = {
    ComplianceStatus.WARNING: AlertSeverity.WARNING,
    ComplianceStatus.BREACH: AlertSeverity.CRITICAL,
}


def classify_compliance(compliance: float) -> ComplianceStatus:
    for minimum, status in STATUS_POLICY:
        if compliance >= minimum:
            return status
    return ComplianceStatus.BREACH


def episode_severity(compliance: float) -> BreachSeverity:
    for minimum, severity in EPISODE_SEVERITY_POLICY:
        if compliance >= minimum:
            return severity
    return BreachSeverity.CRITICAL


GLOBAL_SCOPE = "global"
KEY_SEPARATOR = ":"


@dataclass(frozen=True)
class MetricKey:
    """(organization, endpoint-or-global) bucket for metrics, breaches and alerts."""
    org_id: str
    endpoint_id: Optional[str] = None

    def __post_init__(self):
        # org ids are matched by prefix, so they must not contain the separator
        if not self.org_id or KEY_SEPARATOR in self.org_id:
            raise ValidationException(
                f"Invalid organization id: {self.org_id!r}",
                details={"org_id": self.org_id, "reserved": KEY_SEPARATOR}
            )
        if self.endpoint_id is not None and self.endpoint_id in ("", GLOBAL_SCOPE):
            raise ValidationException(
                f"Endpoint id {self.endpoint_id!r} is reserved for organization-wide metrics",
                details={"endpoint_id": self.endpoint_id}
            )

    @property
    def scope(self) -> str:
        return self.endpoint_id or GLOBAL_SCOPE

    def storage_key(self, namespace: str) -> str:
        return KEY_SEPARATOR.join((namespace, self.org_id, self.scope))

    @classmethod
    def org_prefix(cls, namespace: str, org_id: str) -> str:
        key = cls(org_id)
        return KEY_SEPARATOR.join((namespace, key.org_id, ""))

    @classmethod
    def from_storage_key(cls, storage_key: str) -> "MetricKey":
        _, org_id, scope = storage_key.split(KEY_SEPARATOR, 2)
        return cls(org_id=org_id, endpoint_id=None if scope == GLOBAL_SCOPE else scope)


@dataclass(frozen=True)
class SLAMetric:
    """One compliance observation summarizing a one-minute window."""
    org_id: str
    endpoint_id: Optional[str]
    metric_type: MetricType
    value: float
    threshold: float
    compliance: float
    status: ComplianceStatus
    timestamp: datetime
    window_start: datetime
    window_end: datetime

    @property
    def key(self) -> MetricKey:
        return MetricKey(self.org_id, self.endpoint_id)


@dataclass
class BreachEpisode:
    """A merged, continuous span of breach observations for one metric on one key."""
    episode_id: str
    org_id: str
    endpoint_id: Optional[str]
    metric_type: MetricType
    start_time: datetime
    end_time: datetime
    severity: BreachSeverity
    duration_minutes: float = 0.0

    def extend(self, observed_at: datetime) -> None:
        if observed_at > self.end_time:
            self.end_time = observed_at
        self.duration_minutes = (self.end_time - self.start_time).total_seconds() / 60


@dataclass
class SLAAlert:
    """An active or resolved SLA notification."""
    id: str
    org_id: str
    endpoint_id: Optional[str]
    metric_type: MetricType
    current_value: float
    threshold: float
    compliance: float
    severity: AlertSeverity
    message: str
    created_at: datetime
    updated_at: datetime
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    auto_resolved: bool = False

    @property
    def key(self) -> MetricKey:
        return MetricKey(self.org_id, self.endpoint_id)


class AlertEventType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class AlertEvent:
    """Alert lifecycle event delivered to alert sinks."""
    event_type: AlertEventType
    alert: SLAAlert
    occurred_at: datetime


class BreachTransition(str, Enum):
    OPENED = "opened"
    EXTENDED = "extended"


@dataclass
class SLAThresholds:
    """Per-organization SLA targets in each metric's natural unit."""
    uptime: float = 99.9  # Percentage
    response_time: float = 5000.0  # Milliseconds
    error_rate: float = 1.0  # Percentage
    availability: float = 99.5  # Percentage

    def for_metric(self, metric_type: MetricType) -> float:
        return getattr(self, metric_type.value)


@dataclass(frozen=True)
class ReportPeriod:
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    @classmethod
    def trailing(cls, end: datetime, days: int = 30) -> "ReportPeriod":
        return cls(start=end - timedelta(days=days), end=end)


@dataclass
class SLAReport:
    """Period compliance report for one organization."""
    org_id: str
    period: ReportPeriod
    overall_compliance: float
    metrics: Dict[MetricType, SLAMetric]
    breaches: List[BreachEpisode] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    next_review_date: Optional[datetime] = None
