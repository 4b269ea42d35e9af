"""
Health Prober

Periodically probes every enabled endpoint, applies the result to the
endpoint's health fields and fans the HealthSample out to consumers.

Per endpoint the prober cycles Idle -> Probing -> Healthy/Unhealthy -> Idle.
A busy set, checked and updated without yielding to the event loop, keeps at
most one probe in flight per endpoint.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Set

from rpcwatch.exceptions import NotFoundException
from rpcwatch.infrastructure.logging import get_logger
from rpcwatch.infrastructure.rpc import RpcProbeClient
from rpcwatch.models.endpoint import EndpointConfig, HealthSample
from rpcwatch.models.interfaces import IScheduler
from rpcwatch.services.endpoint_registry import EndpointRegistry

SampleConsumer = Callable[[EndpointConfig, HealthSample], Awaitable[None]]

PROBE_JOB = "health_probe"


class HealthProber:
    """Drives health probes for the endpoints in a registry."""

    def __init__(
        self,
        registry: EndpointRegistry,
        probe_client: RpcProbeClient,
        scheduler: IScheduler,
        interval_seconds: float = 30.0,
    ):
        self.logger = get_logger(__name__)
        self.registry = registry
        self.probe_client = probe_client
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds

        self._consumers: List[SampleConsumer] = []
        self._busy: Set[str] = set()
        self._in_flight: Set[asyncio.Task] = set()

        self.probes_started = 0
        self.probes_skipped = 0
        self.samples_discarded = 0

    def add_consumer(self, consumer: SampleConsumer) -> None:
        self._consumers.append(consumer)

    def is_busy(self, endpoint_id: str) -> bool:
        return endpoint_id in self._busy

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def start(self) -> None:
        self.scheduler.schedule(PROBE_JOB, self.interval_seconds, self.probe_all)
        self.logger.info("health_prober_started", interval_seconds=self.interval_seconds)

    async def stop(self, drain: bool = True) -> None:
        """Stop issuing new ticks; optionally wait for in-flight probes to finish."""
        await self.scheduler.cancel(PROBE_JOB)
        if drain:
            await self.wait_idle()
        self.logger.info("health_prober_stopped", drained=drain)

    async def wait_idle(self) -> None:
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def probe_all(self) -> int:
        """
        One tick: start a probe task for every enabled, idle endpoint.

        Endpoints whose previous probe is still running are skipped for this
        tick. Returns the number of probes started; the tick does not wait for
        them.
        """
        started = 0
        for endpoint in self.registry.list(enabled_only=True):
            if endpoint.id in self._busy:
                self.probes_skipped += 1
                self.logger.debug("probe_skipped_busy", endpoint_id=endpoint.id)
                continue

            self._busy.add(endpoint.id)
            task = asyncio.create_task(self._probe(endpoint))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            started += 1

        self.probes_started += started
        return started

    async def probe_now(self, endpoint_id: str, owner_id: Optional[str] = None) -> Optional[HealthSample]:
        """
        Probe one endpoint immediately and wait for the result.

        Returns:
            The applied sample, or None if a probe for the endpoint was already
            in flight or the result was discarded

        Raises:
            NotFoundException: Unknown endpoint (or owner mismatch when owner_id is given)
        """
        if owner_id is not None:
            endpoint = self.registry.get(endpoint_id, owner_id)
        else:
            endpoint = self.registry.lookup(endpoint_id)
            if endpoint is None:
                raise NotFoundException(
                    f"Endpoint {endpoint_id} not found",
                    details={"endpoint_id": endpoint_id}
                )

        if endpoint.id in self._busy:
            self.logger.info("probe_now_skipped_busy", endpoint_id=endpoint.id)
            return None

        self._busy.add(endpoint.id)
        self.probes_started += 1
        return await self._probe(endpoint)

    async def _probe(self, endpoint: EndpointConfig) -> Optional[HealthSample]:
        try:
            sample = await self.probe_client.probe(endpoint)
        finally:
            self._busy.discard(endpoint.id)

        # Re-read: the endpoint may have been removed or reconfigured meanwhile
        current = self.registry.lookup(endpoint.id)
        if current is None or current.url != endpoint.url:
            self.samples_discarded += 1
            self.logger.info(
                "probe_result_discarded",
                endpoint_id=endpoint.id,
                reason="removed" if current is None else "reconfigured",
            )
            return None

        if not current.update_health(sample):
            self.samples_discarded += 1
            self.logger.info(
                "probe_result_stale",
                endpoint_id=endpoint.id,
                sample_timestamp=sample.timestamp.isoformat(),
            )
            return None

        if not sample.online:
            self.logger.warning(
                "endpoint_unhealthy",
                endpoint_id=current.id,
                error=sample.error,
                error_kind=sample.error_kind.value if sample.error_kind else None,
                error_count=current.error_count,
            )

        await self._emit(current, sample)
        return sample

    async def _emit(self, endpoint: EndpointConfig, sample: HealthSample) -> None:
        for consumer in self._consumers:
            try:
                await consumer(endpoint, sample)
            except Exception as e:
                self.logger.error(
                    "sample_consumer_failed",
                    endpoint_id=endpoint.id,
                    consumer=getattr(consumer, "__qualname__", repr(consumer)),
                    error=str(e),
                    exc_info=True,
                )
