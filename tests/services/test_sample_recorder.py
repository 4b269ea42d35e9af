"""Tests for turning health samples into SLA metrics."""

import pytest

from rpcwatch.models.endpoint import EndpointConfig, HealthSample
from rpcwatch.models.sla import ComplianceStatus, MetricType, SLAThresholds
from rpcwatch.services.sample_recorder import HealthSampleRecorder
from tests.test_doubles import ETH_URL

ENDPOINT = EndpointConfig(id="eth-1", owner_id="org-1", name="Ethereum", url=ETH_URL)


def sample(clock, online=True, response_time_ms=120.0, syncing=False):
    return HealthSample(
        endpoint_id="eth-1",
        timestamp=clock.now(),
        online=online,
        response_time_ms=response_time_ms,
        syncing=syncing,
        error=None if online else "CONNECTION_REFUSED",
    )


@pytest.fixture
def recorder(tracker):
    return HealthSampleRecorder(tracker, window_size=4)


def by_type(metrics):
    return {m.metric_type: m for m in metrics}


class TestHealthSampleRecorder:

    @pytest.mark.asyncio
    async def test_healthy_sample_records_four_compliant_metrics(self, recorder, tracker, clock):
        metrics = by_type(await recorder.on_sample(ENDPOINT, sample(clock)))

        assert set(metrics) == set(MetricType)
        assert metrics[MetricType.UPTIME].value == 100.0
        assert metrics[MetricType.RESPONSE_TIME].value == 120.0
        assert metrics[MetricType.ERROR_RATE].value == 0.0
        assert metrics[MetricType.AVAILABILITY].value == 100.0
        assert all(m.status == ComplianceStatus.COMPLIANT for m in metrics.values())
        assert len(await tracker.get_metrics("org-1", "eth-1")) == 4

    @pytest.mark.asyncio
    async def test_outage_raises_alerts(self, recorder, alert_manager, clock):
        await recorder.on_sample(ENDPOINT, sample(clock))
        clock.advance(seconds=30)

        metrics = by_type(await recorder.on_sample(ENDPOINT, sample(clock, online=False, response_time_ms=900.0)))

        assert metrics[MetricType.UPTIME].value == 50.0
        assert metrics[MetricType.ERROR_RATE].value == 50.0
        assert metrics[MetricType.ERROR_RATE].status == ComplianceStatus.BREACH
        assert metrics[MetricType.RESPONSE_TIME].status == ComplianceStatus.COMPLIANT
        alerted = {a.metric_type for a in await alert_manager.get_alerts("org-1", "eth-1")}
        assert alerted == {MetricType.UPTIME, MetricType.ERROR_RATE, MetricType.AVAILABILITY}

    @pytest.mark.asyncio
    async def test_syncing_node_is_online_but_not_available(self, recorder, clock):
        metrics = by_type(await recorder.on_sample(ENDPOINT, sample(clock, syncing=True)))

        assert metrics[MetricType.UPTIME].value == 100.0
        assert metrics[MetricType.AVAILABILITY].value == 0.0

    @pytest.mark.asyncio
    async def test_window_is_bounded(self, recorder, clock):
        await recorder.on_sample(ENDPOINT, sample(clock, online=False))
        for _ in range(4):
            clock.advance(seconds=30)
            metrics = by_type(await recorder.on_sample(ENDPOINT, sample(clock)))

        assert metrics[MetricType.UPTIME].value == 100.0

    @pytest.mark.asyncio
    async def test_forget_resets_window(self, recorder, clock):
        await recorder.on_sample(ENDPOINT, sample(clock, online=False))
        recorder.forget("eth-1")

        metrics = by_type(await recorder.on_sample(ENDPOINT, sample(clock)))

        assert metrics[MetricType.UPTIME].value == 100.0

    @pytest.mark.asyncio
    async def test_org_thresholds_override_defaults(self, recorder, clock):
        recorder.set_thresholds("org-1", SLAThresholds(response_time=100.0))

        metrics = by_type(await recorder.on_sample(ENDPOINT, sample(clock, response_time_ms=150.0)))

        assert metrics[MetricType.RESPONSE_TIME].threshold == 100.0
        assert metrics[MetricType.RESPONSE_TIME].compliance == 50.0
        assert recorder.thresholds_for("org-2") == SLAThresholds()
