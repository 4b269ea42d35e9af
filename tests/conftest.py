"""Shared pytest fixtures for rpcwatch tests."""

import pytest

from rpcwatch.config.settings import RpcWatchSettings
from rpcwatch.container import MonitoringContainer
from rpcwatch.infrastructure.health.prober import HealthProber
from rpcwatch.infrastructure.health.sla_tracker import SLATracker
from rpcwatch.infrastructure.monitoring.alerting import AlertRoute, SLAAlertManager
from rpcwatch.infrastructure.monitoring.breaches import BreachRecorder
from rpcwatch.infrastructure.persistence import InMemoryMetricStore, NullMetricSink
from rpcwatch.infrastructure.rpc import RpcProbeClient
from rpcwatch.services.endpoint_registry import EndpointRegistry
from tests.test_doubles import (
    ETH_URL,
    POLYGON_URL,
    FakeRpcNetwork,
    ManualClock,
    ManualScheduler,
    RecordingAlertSink,
)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def store():
    return InMemoryMetricStore()


@pytest.fixture
def rpc_network():
    """Fake RPC network with an Ethereum node and a Polygon node."""
    network = FakeRpcNetwork()
    network.add(ETH_URL)
    network.add(POLYGON_URL).chain_id = 137
    return network


@pytest.fixture
def probe_client(clock, rpc_network):
    return RpcProbeClient(clock, default_timeout_seconds=1.0, transport=rpc_network.transport)


@pytest.fixture
def alert_sink():
    return RecordingAlertSink()


@pytest.fixture
def alert_manager(store, clock, alert_sink):
    return SLAAlertManager(store, clock, [AlertRoute(sink=alert_sink)])


@pytest.fixture
def breach_recorder(store):
    return BreachRecorder(store, NullMetricSink())


@pytest.fixture
def tracker(store, breach_recorder, alert_manager, clock, scheduler):
    return SLATracker(store, NullMetricSink(), breach_recorder, alert_manager, clock, scheduler)


@pytest.fixture
def registry(probe_client):
    return EndpointRegistry(probe_client)


@pytest.fixture
def prober(registry, probe_client, scheduler):
    return HealthProber(registry, probe_client, scheduler, interval_seconds=30)


@pytest.fixture
def settings():
    return RpcWatchSettings()


@pytest.fixture
def container(settings, clock, scheduler, rpc_network, alert_sink):
    """Fully wired engine on manual time and a fake RPC network."""
    return MonitoringContainer(
        settings=settings,
        clock=clock,
        scheduler=scheduler,
        transport=rpc_network.transport,
        alert_routes=[AlertRoute(sink=alert_sink)],
        configure_logs=False,
    ).initialize()
