"""Dependency Injection Container

Purpose: Builds the rpcwatch object graph from settings

Every collaborator the engine talks to (clock, scheduler, store, sinks,
transport, config source) can be overridden at construction time, which is
how the tests drive the engine without real time or network.
"""

from typing import List, Optional

import httpx

from rpcwatch.config.settings import RpcWatchSettings, get_settings
from rpcwatch.infrastructure.clock import SystemClock
from rpcwatch.infrastructure.config_source import YamlConfigSource
from rpcwatch.infrastructure.health.prober import HealthProber
from rpcwatch.infrastructure.health.sla_tracker import SLATracker
from rpcwatch.infrastructure.logging import configure_logging, get_logger
from rpcwatch.infrastructure.monitoring.alerting import (
    AlertRoute,
    LogAlertSink,
    SLAAlertManager,
    WebhookAlertSink,
)
from rpcwatch.infrastructure.monitoring.breaches import BreachRecorder
from rpcwatch.infrastructure.persistence import BufferedMetricSink, InMemoryMetricStore, NullMetricSink
from rpcwatch.infrastructure.rpc import RpcProbeClient
from rpcwatch.infrastructure.scheduling import AsyncIntervalScheduler
from rpcwatch.models.interfaces import IClock, IConfigSource, IMetricSink, IMetricStore, IScheduler
from rpcwatch.models.sla import SLAThresholds
from rpcwatch.services.endpoint_registry import EndpointRegistry
from rpcwatch.services.monitoring_service import RpcMonitoringService
from rpcwatch.services.reporting import SLAReporter
from rpcwatch.services.sample_recorder import HealthSampleRecorder


class MonitoringContainer:
    """Dependency container for the monitoring engine"""

    def __init__(
        self,
        settings: Optional[RpcWatchSettings] = None,
        clock: Optional[IClock] = None,
        scheduler: Optional[IScheduler] = None,
        store: Optional[IMetricStore] = None,
        metric_sink: Optional[IMetricSink] = None,
        alert_routes: Optional[List[AlertRoute]] = None,
        config_source: Optional[IConfigSource] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        configure_logs: bool = True,
    ):
        self._overrides = {
            "clock": clock,
            "scheduler": scheduler,
            "store": store,
            "metric_sink": metric_sink,
            "alert_routes": alert_routes,
            "config_source": config_source,
            "transport": transport,
        }
        self._settings = settings
        self._configure_logs = configure_logs
        self._initialized = False
        self.logger = get_logger(__name__)

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> "MonitoringContainer":
        """Build every component. Safe to call more than once."""
        if self._initialized:
            self.logger.debug("container_already_initialized")
            return self

        self.settings = self._settings or get_settings()
        if self._configure_logs:
            configure_logging(self.settings.logging)

        self._create_infrastructure_layer()
        self._create_service_layer()

        self._initialized = True
        self.logger.info("container_initialized")
        return self

    def _create_infrastructure_layer(self) -> None:
        settings = self.settings
        overrides = self._overrides

        self.clock = overrides["clock"] or SystemClock()
        self.scheduler = overrides["scheduler"] or AsyncIntervalScheduler()
        self.store = overrides["store"] or InMemoryMetricStore()
        self.metric_sink = BufferedMetricSink(
            overrides["metric_sink"] or NullMetricSink(),
            max_pending_per_key=settings.sla.history_limit,
        )

        self.probe_client = RpcProbeClient(
            self.clock,
            default_timeout_seconds=settings.probe.default_timeout_ms / 1000.0,
            transport=overrides["transport"],
        )

        routes = overrides["alert_routes"]
        if routes is None:
            routes = []
            if settings.alerting.log_alerts:
                routes.append(AlertRoute(sink=LogAlertSink()))
            if settings.alerting.webhook_url:
                routes.append(AlertRoute(sink=WebhookAlertSink(
                    settings.alerting.webhook_url,
                    timeout_seconds=settings.alerting.webhook_timeout_seconds,
                )))
        self.alert_manager = SLAAlertManager(self.store, self.clock, routes)

        self.breach_recorder = BreachRecorder(
            self.store,
            self.metric_sink,
            merge_gap_minutes=settings.sla.breach_merge_gap_minutes,
            history_limit=settings.sla.history_limit,
        )

        self.config_source = overrides["config_source"]
        if self.config_source is None and settings.endpoints.path is not None:
            self.config_source = YamlConfigSource(settings.endpoints.path)

    def _create_service_layer(self) -> None:
        settings = self.settings

        self.registry = EndpointRegistry(self.probe_client, default_timeout_ms=settings.probe.default_timeout_ms)
        self.prober = HealthProber(
            self.registry,
            self.probe_client,
            self.scheduler,
            interval_seconds=settings.probe.interval_seconds,
        )
        self.tracker = SLATracker(
            self.store,
            self.metric_sink,
            self.breach_recorder,
            self.alert_manager,
            self.clock,
            self.scheduler,
            evaluation_interval_seconds=settings.sla.evaluation_interval_seconds,
            rollup_window_minutes=settings.sla.rollup_window_minutes,
            history_limit=settings.sla.history_limit,
            retention_days=settings.sla.retention_days,
        )
        self.recorder = HealthSampleRecorder(
            self.tracker,
            default_thresholds=SLAThresholds(
                uptime=settings.sla.uptime_target,
                response_time=settings.sla.response_time_target_ms,
                error_rate=settings.sla.error_rate_target,
                availability=settings.sla.availability_target,
            ),
            window_size=settings.probe.sample_window,
        )
        self.prober.add_consumer(self.recorder.on_sample)
        self.registry.add_removal_listener(self.recorder.forget)
        self.reporter = SLAReporter(self.tracker, self.clock, default_period_days=settings.sla.retention_days)

        self.monitoring_service = RpcMonitoringService(
            registry=self.registry,
            probe_client=self.probe_client,
            prober=self.prober,
            tracker=self.tracker,
            alerts=self.alert_manager,
            reporter=self.reporter,
            recorder=self.recorder,
            scheduler=self.scheduler,
            config_source=self.config_source,
        )

    async def shutdown(self) -> None:
        """Stop the engine, flush buffered metrics and close network clients."""
        if not self._initialized:
            return
        await self.monitoring_service.stop()
        await self.scheduler.shutdown()
        await self.metric_sink.flush()
        await self.probe_client.aclose()
        self.logger.info("container_shutdown")


_container: Optional[MonitoringContainer] = None


def get_container() -> MonitoringContainer:
    """Process-wide container, initialized on first access."""
    global _container
    if _container is None:
        _container = MonitoringContainer().initialize()
    return _container


def reset_container() -> None:
    global _container
    _container = None
