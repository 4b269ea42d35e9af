"""
SLA Alert Manager

Maintains at most one unacknowledged alert per (organization,
endpoint-or-global, metric type). Repeated non-compliant results update that
alert in place; a compliant rollup auto-resolves it. Every lifecycle change
is delivered to the configured alert sinks, whose failures are logged and
never roll back the in-memory alert state.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import aiohttp

from rpcwatch.infrastructure.locks import KeyedLocks
from rpcwatch.infrastructure.logging import get_logger
from rpcwatch.models.conditions import Condition, matches_all
from rpcwatch.models.interfaces import IAlertSink, IClock, IMetricStore
from rpcwatch.models.sla import (
    ALERT_SEVERITY_BY_STATUS,
    AlertEvent,
    AlertEventType,
    AlertSeverity,
    ComplianceStatus,
    MetricKey,
    MetricType,
    SLAAlert,
)

ALERT_NAMESPACE = "alerts"


def format_alert_message(severity: AlertSeverity, metric_type: MetricType, value: float, threshold: float) -> str:
    return f"SLA {severity.value.upper()}: {metric_type.value} is {value} (threshold: {threshold})"


@dataclass
class AlertRoute:
    """An alert sink plus the conditions an alert must meet to reach it."""
    sink: IAlertSink
    conditions: Tuple[Condition, ...] = ()
    events: FrozenSet[AlertEventType] = field(default_factory=lambda: frozenset(AlertEventType))

    def accepts(self, event: AlertEvent) -> bool:
        return event.event_type in self.events and matches_all(self.conditions, event.alert)


class SLAAlertManager:
    """Creates, updates, acknowledges and resolves SLA alerts."""

    def __init__(self, store: IMetricStore, clock: IClock, routes: Optional[List[AlertRoute]] = None):
        self.logger = get_logger(__name__)
        self.store = store
        self.clock = clock
        self.routes: List[AlertRoute] = list(routes or [])
        self._locks = KeyedLocks()
        # alert id -> storage key, for acknowledge_alert()
        self._index: Dict[str, str] = {}
        self.delivery_failures = 0

    def add_route(self, route: AlertRoute) -> None:
        self.routes.append(route)

    async def raise_alert(
        self,
        key: MetricKey,
        metric_type: MetricType,
        value: float,
        threshold: float,
        compliance: float,
        status: ComplianceStatus,
    ) -> SLAAlert:
        """
        Create or update the open alert for (key, metric_type).

        Args:
            status: WARNING or BREACH; selects warning or critical severity

        Returns:
            The created or updated alert
        """
        severity = ALERT_SEVERITY_BY_STATUS[status]
        message = format_alert_message(severity, metric_type, value, threshold)
        storage_key = key.storage_key(ALERT_NAMESPACE)
        now = self.clock.now()

        async with self._locks(storage_key):
            alerts: List[SLAAlert] = await self.store.get(storage_key) or []
            alert = self._find_open(alerts, metric_type)

            if alert is not None:
                alert.current_value = value
                alert.threshold = threshold
                alert.compliance = compliance
                alert.severity = severity
                alert.message = message
                alert.updated_at = now
                await self.store.put(storage_key, alerts)
                event_type = AlertEventType.UPDATED
            else:
                alert = SLAAlert(
                    id=uuid.uuid4().hex,
                    org_id=key.org_id,
                    endpoint_id=key.endpoint_id,
                    metric_type=metric_type,
                    current_value=value,
                    threshold=threshold,
                    compliance=compliance,
                    severity=severity,
                    message=message,
                    created_at=now,
                    updated_at=now,
                )
                alerts.append(alert)
                await self.store.put(storage_key, alerts)
                self._index[alert.id] = storage_key
                event_type = AlertEventType.CREATED
                self.logger.warning(
                    "sla_alert_created",
                    alert_id=alert.id,
                    org_id=key.org_id,
                    endpoint_id=key.endpoint_id,
                    metric_type=metric_type.value,
                    severity=severity.value,
                    compliance=compliance,
                )

            await self._deliver(AlertEvent(event_type=event_type, alert=alert, occurred_at=now))
        return alert

    async def resolve(self, key: MetricKey, metric_type: MetricType) -> Optional[SLAAlert]:
        """Auto-acknowledge the open alert for (key, metric_type), if any."""
        storage_key = key.storage_key(ALERT_NAMESPACE)
        now = self.clock.now()

        async with self._locks(storage_key):
            alerts: List[SLAAlert] = await self.store.get(storage_key) or []
            alert = self._find_open(alerts, metric_type)
            if alert is None:
                return None

            alert.acknowledged = True
            alert.acknowledged_at = now
            alert.auto_resolved = True
            alert.updated_at = now
            await self.store.put(storage_key, alerts)
            self.logger.info(
                "sla_alert_resolved",
                alert_id=alert.id,
                org_id=key.org_id,
                endpoint_id=key.endpoint_id,
                metric_type=metric_type.value,
            )
            await self._deliver(AlertEvent(event_type=AlertEventType.RESOLVED, alert=alert, occurred_at=now))
        return alert

    async def acknowledge_alert(self, alert_id: str, acknowledged_by: str) -> bool:
        """
        Acknowledge an alert on behalf of a user.

        Returns:
            True the first time; False if already acknowledged or unknown
        """
        storage_key = await self._locate(alert_id)
        if storage_key is None:
            return False

        now = self.clock.now()
        async with self._locks(storage_key):
            alerts: List[SLAAlert] = await self.store.get(storage_key) or []
            alert = next((a for a in alerts if a.id == alert_id), None)
            if alert is None or alert.acknowledged:
                return False

            alert.acknowledged = True
            alert.acknowledged_by = acknowledged_by
            alert.acknowledged_at = now
            alert.updated_at = now
            await self.store.put(storage_key, alerts)
            self.logger.info("sla_alert_acknowledged", alert_id=alert_id, acknowledged_by=acknowledged_by)
            await self._deliver(AlertEvent(event_type=AlertEventType.ACKNOWLEDGED, alert=alert, occurred_at=now))
        return True

    async def get_alerts(
        self,
        org_id: str,
        endpoint_id: Optional[str] = None,
        include_acknowledged: bool = True,
    ) -> List[SLAAlert]:
        """Alerts for an organization (optionally one endpoint), newest first."""
        if endpoint_id is not None:
            alerts = await self.store.get(MetricKey(org_id, endpoint_id).storage_key(ALERT_NAMESPACE)) or []
        else:
            snapshot = await self.store.scan_prefix(MetricKey.org_prefix(ALERT_NAMESPACE, org_id))
            alerts = [alert for items in snapshot.values() for alert in items]

        if not include_acknowledged:
            alerts = [alert for alert in alerts if not alert.acknowledged]
        return sorted(alerts, key=lambda a: a.created_at, reverse=True)

    async def stats(self) -> Dict[str, int]:
        snapshot = await self.store.scan_prefix(f"{ALERT_NAMESPACE}:")
        alerts = [alert for items in snapshot.values() for alert in items]
        return {
            "total_alerts": len(alerts),
            "active_alerts": sum(1 for alert in alerts if not alert.acknowledged),
        }

    async def evict_before(self, cutoff: datetime) -> int:
        """Drop acknowledged alerts last touched before cutoff. Open alerts are kept."""
        removed = await self.store.evict(
            f"{ALERT_NAMESPACE}:",
            lambda alert: alert.acknowledged and alert.updated_at < cutoff,
        )
        if removed:
            live = await self.store.scan_prefix(f"{ALERT_NAMESPACE}:")
            live_ids = {alert.id for items in live.values() for alert in items}
            self._index = {alert_id: key for alert_id, key in self._index.items() if alert_id in live_ids}
        return removed

    async def _deliver(self, event: AlertEvent) -> None:
        for route in self.routes:
            if not route.accepts(event):
                continue
            try:
                await route.sink.deliver(event)
            except Exception as e:
                self.delivery_failures += 1
                self.logger.error(
                    "alert_delivery_failed",
                    sink=type(route.sink).__name__,
                    alert_id=event.alert.id,
                    event_type=event.event_type.value,
                    error=str(e),
                )

    async def _locate(self, alert_id: str) -> Optional[str]:
        """Storage key holding alert_id. Alerts written by another manager
        instance are found in the store and indexed on first use."""
        storage_key = self._index.get(alert_id)
        if storage_key is not None:
            return storage_key

        snapshot = await self.store.scan_prefix(f"{ALERT_NAMESPACE}:")
        for key, alerts in snapshot.items():
            if any(alert.id == alert_id for alert in alerts):
                self._index[alert_id] = key
                return key
        return None

    @staticmethod
    def _find_open(alerts: List[SLAAlert], metric_type: MetricType) -> Optional[SLAAlert]:
        for alert in alerts:
            if alert.metric_type == metric_type and not alert.acknowledged:
                return alert
        return None


def alert_payload(event: AlertEvent) -> Dict[str, Any]:
    alert = event.alert
    return {
        "action": event.event_type.value,
        "alert": {
            "id": alert.id,
            "org_id": alert.org_id,
            "endpoint_id": alert.endpoint_id,
            "metric_type": alert.metric_type.value,
            "current_value": alert.current_value,
            "threshold": alert.threshold,
            "compliance": alert.compliance,
            "severity": alert.severity.value,
            "message": alert.message,
            "created_at": alert.created_at.isoformat(),
            "acknowledged": alert.acknowledged,
            "acknowledged_by": alert.acknowledged_by,
            "acknowledged_at": alert.acknowledged_at.isoformat() if alert.acknowledged_at else None,
            "auto_resolved": alert.auto_resolved,
        },
        "timestamp": event.occurred_at.isoformat(),
    }


class LogAlertSink(IAlertSink):
    """Writes alert events to the structured log."""

    def __init__(self):
        self.logger = get_logger("rpcwatch.alerts")

    async def deliver(self, event: AlertEvent) -> None:
        alert = event.alert
        context = {
            "alert_id": alert.id,
            "org_id": alert.org_id,
            "endpoint_id": alert.endpoint_id,
            "metric_type": alert.metric_type.value,
            "compliance": alert.compliance,
            "action": event.event_type.value,
        }
        if event.event_type in (AlertEventType.CREATED, AlertEventType.UPDATED):
            if alert.severity == AlertSeverity.CRITICAL:
                self.logger.critical(alert.message, **context)
            else:
                self.logger.warning(alert.message, **context)
        else:
            self.logger.info(f"SLA alert {event.event_type.value}: {alert.message}", **context)


class WebhookAlertSink(IAlertSink):
    """POSTs alert events as JSON to a webhook URL."""

    def __init__(self, url: str, timeout_seconds: float = 10.0):
        self.logger = get_logger(__name__)
        self.url = url
        self.timeout_seconds = timeout_seconds

    async def deliver(self, event: AlertEvent) -> None:
        """
        Raises:
            aiohttp.ClientError: On transport failure or a non-2xx response
        """
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.url, json=alert_payload(event)) as response:
                response.raise_for_status()
        self.logger.debug("webhook_alert_sent", alert_id=event.alert.id, action=event.event_type.value)
