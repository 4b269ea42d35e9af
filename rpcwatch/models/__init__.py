"""Domain models and collaborator interfaces."""

from .endpoint import EndpointConfig, HealthSample, ProbeErrorKind, SyncStatus
from .sla import (
    AlertEvent,
    AlertEventType,
    AlertSeverity,
    BreachEpisode,
    BreachSeverity,
    BreachTransition,
    ComplianceStatus,
    MetricKey,
    MetricType,
    ReportPeriod,
    SLAAlert,
    SLAMetric,
    SLAReport,
    SLAThresholds,
)

__all__ = [
    "AlertEvent",
    "AlertEventType",
    "AlertSeverity",
    "BreachEpisode",
    "BreachSeverity",
    "BreachTransition",
    "ComplianceStatus",
    "EndpointConfig",
    "HealthSample",
    "MetricKey",
    "MetricType",
    "ProbeErrorKind",
    "ReportPeriod",
    "SLAAlert",
    "SLAMetric",
    "SLAReport",
    "SLAThresholds",
    "SyncStatus",
]
