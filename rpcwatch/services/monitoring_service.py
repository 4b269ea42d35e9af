"""
RPC Monitoring Service

Facade over the registry, prober, SLA tracker, alert manager and reporter.
These are the operations an HTTP or CLI layer calls; the service itself holds
no state beyond its collaborators.
"""

from typing import Any, Dict, List, Optional, Tuple, Union

from rpcwatch.infrastructure.health.prober import HealthProber
from rpcwatch.infrastructure.health.sla_tracker import SLATracker
from rpcwatch.infrastructure.logging import get_logger
from rpcwatch.infrastructure.monitoring.alerting import SLAAlertManager
from rpcwatch.infrastructure.rpc import RpcProbeClient
from rpcwatch.models.endpoint import EndpointConfig, HealthSample
from rpcwatch.models.interfaces import IConfigSource, IScheduler
from rpcwatch.models.sla import MetricType, ReportPeriod, SLAAlert, SLAMetric, SLAReport, SLAThresholds
from rpcwatch.services.endpoint_registry import EndpointRegistry, SyncResult
from rpcwatch.services.reporting import SLAReporter
from rpcwatch.services.sample_recorder import HealthSampleRecorder

CLEANUP_JOB = "sla_cleanup"


class RpcMonitoringService:
    """Operations exposed to the outer (HTTP/UI) layer."""

    def __init__(
        self,
        registry: EndpointRegistry,
        probe_client: RpcProbeClient,
        prober: HealthProber,
        tracker: SLATracker,
        alerts: SLAAlertManager,
        reporter: SLAReporter,
        recorder: HealthSampleRecorder,
        scheduler: IScheduler,
        config_source: Optional[IConfigSource] = None,
        cleanup_interval_seconds: float = 3600.0,
    ):
        self.logger = get_logger(__name__)
        self.registry = registry
        self.probe_client = probe_client
        self.prober = prober
        self.tracker = tracker
        self.alerts = alerts
        self.reporter = reporter
        self.recorder = recorder
        self.scheduler = scheduler
        self.config_source = config_source
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._running = False

    # Lifecycle ---------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Load configured endpoints, then start probing, evaluation and cleanup."""
        if self._running:
            self.logger.warning("monitoring_already_running")
            return

        if self.config_source is not None:
            await self.reload_endpoints()

        await self.prober.start()
        await self.tracker.start()
        self.scheduler.schedule(CLEANUP_JOB, self.cleanup_interval_seconds, self.cleanup)
        self._running = True
        self.logger.info("monitoring_started", endpoints=len(self.registry))

    async def stop(self) -> None:
        """Stop all loops. In-flight probes are allowed to finish."""
        if not self._running:
            return
        await self.prober.stop(drain=True)
        await self.tracker.stop()
        await self.scheduler.cancel(CLEANUP_JOB)
        self._running = False
        self.logger.info("monitoring_stopped")

    async def reload_endpoints(self) -> SyncResult:
        if self.config_source is None:
            return SyncResult()
        records = await self.config_source.load()
        return await self.registry.sync(records)

    async def cleanup(self) -> Dict[str, int]:
        return await self.tracker.cleanup()

    # Endpoints ---------------------------------------------------------

    async def register_endpoint(
        self,
        owner_id: str,
        name: str,
        url: str,
        chain_id: int = 1,
        network: str = "ethereum",
        timeout_ms: Optional[int] = None,
        enabled: bool = True,
        priority: int = 1,
        endpoint_id: Optional[str] = None,
    ) -> EndpointConfig:
        return await self.registry.create(
            owner_id=owner_id,
            name=name,
            url=url,
            chain_id=chain_id,
            network=network,
            timeout_ms=timeout_ms,
            enabled=enabled,
            priority=priority,
            endpoint_id=endpoint_id,
        )

    async def update_endpoint(self, endpoint_id: str, owner_id: str, /, **changes: Any) -> EndpointConfig:
        return await self.registry.update(endpoint_id, owner_id, **changes)

    async def remove_endpoint(self, endpoint_id: str, owner_id: str) -> None:
        await self.registry.delete(endpoint_id, owner_id)

    async def set_endpoint_enabled(self, endpoint_id: str, owner_id: str, enabled: bool) -> EndpointConfig:
        return await self.registry.set_enabled(endpoint_id, owner_id, enabled)

    def get_endpoint(self, endpoint_id: str, owner_id: str) -> EndpointConfig:
        return self.registry.get(endpoint_id, owner_id)

    def list_endpoints(self, owner_id: Optional[str] = None, enabled_only: bool = False) -> List[EndpointConfig]:
        return self.registry.list(owner_id=owner_id, enabled_only=enabled_only)

    async def probe_now(self, endpoint_id: str, owner_id: str) -> Optional[HealthSample]:
        return await self.prober.probe_now(endpoint_id, owner_id)

    async def detect_network(self, url: str) -> Optional[Tuple[int, str]]:
        return await self.probe_client.detect_network(url)

    # SLA ---------------------------------------------------------------

    async def record_metric(
        self,
        org_id: str,
        endpoint_id: Optional[str],
        metric_type: Union[MetricType, str],
        value: float,
        threshold: float,
    ) -> SLAMetric:
        return await self.tracker.record_metric(org_id, endpoint_id, metric_type, value, threshold)

    def set_sla_thresholds(self, org_id: str, thresholds: SLAThresholds) -> None:
        self.recorder.set_thresholds(org_id, thresholds)

    async def get_alerts(
        self,
        org_id: str,
        endpoint_id: Optional[str] = None,
        include_acknowledged: bool = True,
    ) -> List[SLAAlert]:
        return await self.alerts.get_alerts(org_id, endpoint_id, include_acknowledged)

    async def acknowledge_alert(self, alert_id: str, acknowledged_by: str) -> bool:
        return await self.alerts.acknowledge_alert(alert_id, acknowledged_by)

    async def generate_report(self, org_id: str, period: Optional[ReportPeriod] = None) -> SLAReport:
        return await self.reporter.generate_report(org_id, period)

    async def get_service_stats(self) -> Dict[str, Any]:
        alert_stats = await self.alerts.stats()
        endpoints = self.registry.list()
        return {
            "total_metrics": await self.tracker.count_metrics(),
            "total_alerts": alert_stats["total_alerts"],
            "total_breaches": await self.tracker.breaches.count(),
            "active_alerts": alert_stats["active_alerts"],
            "total_endpoints": len(endpoints),
            "healthy_endpoints": sum(1 for ep in endpoints if ep.is_available()),
            "probes_in_flight": self.prober.in_flight,
            "running": self._running,
        }
