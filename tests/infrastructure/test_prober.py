"""Tests for the health prober."""

import asyncio

import pytest

from rpcwatch.exceptions import NotFoundException
from rpcwatch.infrastructure.health.prober import PROBE_JOB
from tests.test_doubles import ETH_URL, POLYGON_URL


async def register(registry, endpoint_id="eth-1", url=ETH_URL, chain_id=1, **kwargs):
    return await registry.create(
        owner_id="org-1", name=endpoint_id, url=url, chain_id=chain_id, endpoint_id=endpoint_id, **kwargs
    )


class TestProbeCycle:
    """Tick-driven probing of registered endpoints."""

    @pytest.mark.asyncio
    async def test_tick_probes_enabled_endpoints_and_updates_health(self, prober, registry, scheduler):
        await register(registry, "eth-1")
        await register(registry, "eth-2", enabled=False)
        received = []

        async def consumer(endpoint, sample):
            received.append((endpoint.id, sample.online))

        prober.add_consumer(consumer)
        await prober.start()

        started = await scheduler.tick(PROBE_JOB)
        await prober.wait_idle()

        assert started == 1
        assert received == [("eth-1", True)]
        endpoint = registry.lookup("eth-1")
        assert endpoint.is_healthy is True
        assert endpoint.last_checked_at is not None
        assert registry.lookup("eth-2").last_checked_at is None

    @pytest.mark.asyncio
    async def test_chain_id_mismatch_marks_endpoint_unhealthy(self, prober, registry, rpc_network):
        await register(registry, "eth-1")
        await prober.probe_now("eth-1")
        assert registry.lookup("eth-1").is_healthy is True

        # Same host starts answering with a different chain
        rpc_network.nodes["eth.rpc.test"].chain_id = 137
        sample = await prober.probe_now("eth-1")

        endpoint = registry.lookup("eth-1")
        assert sample.online is False
        assert "mismatch" in sample.error
        assert endpoint.is_healthy is False
        assert endpoint.error_count == 1
        assert endpoint.last_error == sample.error

    @pytest.mark.asyncio
    async def test_failed_probe_still_reaches_consumers(self, prober, registry, rpc_network, clock):
        await register(registry, "eth-1")
        rpc_network.nodes["eth.rpc.test"].status_code = 502
        received = []

        async def consumer(endpoint, sample):
            received.append(sample.error)

        prober.add_consumer(consumer)
        await prober.probe_now("eth-1")
        clock.advance(seconds=30)
        await prober.probe_now("eth-1")

        assert received == ["HTTP_STATUS_502", "HTTP_STATUS_502"]
        assert registry.lookup("eth-1").error_count == 2

    @pytest.mark.asyncio
    async def test_recovery_resets_error_count(self, prober, registry, rpc_network, clock):
        await register(registry, "eth-1")
        node = rpc_network.nodes["eth.rpc.test"]
        node.status_code = 500
        await prober.probe_now("eth-1")

        node.status_code = 200
        clock.advance(seconds=30)
        await prober.probe_now("eth-1")

        endpoint = registry.lookup("eth-1")
        assert endpoint.is_healthy is True
        assert endpoint.error_count == 0
        assert endpoint.last_error is None

    @pytest.mark.asyncio
    async def test_consumer_failure_does_not_stop_probing(self, prober, registry):
        await register(registry, "eth-1")
        received = []

        async def broken(endpoint, sample):
            raise RuntimeError("downstream exploded")

        async def healthy(endpoint, sample):
            received.append(sample)

        prober.add_consumer(broken)
        prober.add_consumer(healthy)

        sample = await prober.probe_now("eth-1")

        assert sample is not None
        assert received == [sample]


class TestConcurrency:
    """At most one probe in flight per endpoint."""

    @pytest.mark.asyncio
    async def test_tick_skips_busy_endpoint(self, prober, registry, rpc_network, scheduler):
        await register(registry, "eth-1")
        node = rpc_network.nodes["eth.rpc.test"]
        node.release = asyncio.Event()
        await prober.start()

        assert await scheduler.tick(PROBE_JOB) == 1
        await asyncio.sleep(0)
        assert prober.is_busy("eth-1")

        assert await scheduler.tick(PROBE_JOB) == 0
        assert prober.probes_skipped == 1

        node.release.set()
        await prober.wait_idle()
        assert not prober.is_busy("eth-1")
        assert registry.lookup("eth-1").is_healthy is True

    @pytest.mark.asyncio
    async def test_slow_endpoint_does_not_block_others(self, prober, registry, rpc_network, scheduler):
        await register(registry, "eth-1")
        await register(registry, "poly-1", url=POLYGON_URL, chain_id=137)
        slow = rpc_network.nodes["eth.rpc.test"]
        slow.release = asyncio.Event()
        await prober.start()

        await scheduler.tick(PROBE_JOB)
        for _ in range(50):
            if registry.lookup("poly-1").last_checked_at is not None:
                break
            await asyncio.sleep(0.01)

        assert registry.lookup("poly-1").is_healthy is True
        assert registry.lookup("eth-1").last_checked_at is None

        slow.release.set()
        await prober.wait_idle()

    @pytest.mark.asyncio
    async def test_probe_now_returns_none_when_busy(self, prober, registry, rpc_network):
        await register(registry, "eth-1")
        node = rpc_network.nodes["eth.rpc.test"]
        node.release = asyncio.Event()

        first = asyncio.create_task(prober.probe_now("eth-1"))
        await asyncio.sleep(0)

        assert await prober.probe_now("eth-1") is None

        node.release.set()
        assert (await first).online is True

    @pytest.mark.asyncio
    async def test_result_for_deleted_endpoint_is_discarded(self, prober, registry, rpc_network):
        await register(registry, "eth-1")
        node = rpc_network.nodes["eth.rpc.test"]
        node.release = asyncio.Event()
        received = []

        async def consumer(endpoint, sample):
            received.append(sample)

        prober.add_consumer(consumer)
        pending = asyncio.create_task(prober.probe_now("eth-1"))
        await asyncio.sleep(0)

        await registry.delete("eth-1", "org-1")
        node.release.set()

        assert await pending is None
        assert received == []
        assert prober.samples_discarded == 1

    @pytest.mark.asyncio
    async def test_stop_cancels_job_and_drains(self, prober, registry, scheduler):
        await register(registry, "eth-1")
        await prober.start()
        await scheduler.tick(PROBE_JOB)

        await prober.stop()

        assert PROBE_JOB not in scheduler.jobs
        assert prober.in_flight == 0
        assert registry.lookup("eth-1").is_healthy is True

    @pytest.mark.asyncio
    async def test_probe_now_unknown_endpoint(self, prober):
        with pytest.raises(NotFoundException):
            await prober.probe_now("missing")

    @pytest.mark.asyncio
    async def test_probe_now_checks_owner(self, prober, registry):
        await register(registry, "eth-1")

        with pytest.raises(NotFoundException):
            await prober.probe_now("eth-1", owner_id="org-2")
