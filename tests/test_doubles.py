"""Test doubles for the rpcwatch engine

Lightweight, predictable implementations of the engine's collaborators:
- ManualClock: time only moves when a test says so
- ManualScheduler: jobs run only when a test ticks them
- FakeRpcNetwork: an httpx.MockTransport answering JSON-RPC per host
- RecordingAlertSink / FlakyMetricSink: capture (or refuse) deliveries
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from rpcwatch.models.interfaces import IAlertSink, IClock, IMetricSink, IScheduler, JobCallback
from rpcwatch.models.sla import AlertEvent, BreachEpisode, BreachTransition, SLAMetric

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

ETH_URL = "https://eth.rpc.test"
POLYGON_URL = "https://polygon.rpc.test"


class ManualClock(IClock):
    """Clock that only advances when told to."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class ManualScheduler(IScheduler):
    """Scheduler whose jobs run only through tick()."""

    def __init__(self):
        self.jobs: Dict[str, Tuple[float, JobCallback]] = {}
        self.cancelled: List[str] = []

    def schedule(self, name: str, interval_seconds: float, callback: JobCallback) -> None:
        self.jobs[name] = (interval_seconds, callback)

    async def cancel(self, name: str) -> None:
        if self.jobs.pop(name, None) is not None:
            self.cancelled.append(name)

    async def shutdown(self) -> None:
        for name in list(self.jobs):
            await self.cancel(name)

    async def tick(self, name: str) -> Any:
        _, callback = self.jobs[name]
        return await callback()


class FakeRpcNode:
    """Scriptable JSON-RPC node."""

    def __init__(
        self,
        chain_id: int = 1,
        block_number: int = 19_000_000,
        peer_count: int = 25,
        gas_price: int = 20_000_000_000,
        syncing: Any = False,
    ):
        self.chain_id = chain_id
        self.block_number = block_number
        self.peer_count = peer_count
        self.gas_price = gas_price
        self.syncing = syncing
        self.delay: float = 0.0
        self.fail_with: Optional[Exception] = None
        self.status_code: int = 200
        self.raw_body: Optional[str] = None
        self.rpc_error: Optional[str] = None
        self.methods: List[str] = []
        self.release: Optional[asyncio.Event] = None

    def result_for(self, method: str) -> Any:
        return {
            "eth_chainId": hex(self.chain_id),
            "eth_blockNumber": hex(self.block_number),
            "net_peerCount": hex(self.peer_count),
            "eth_gasPrice": hex(self.gas_price),
            "eth_syncing": self.syncing,
        }[method]

    async def respond(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.methods.append(payload["method"])

        if self.release is not None:
            await self.release.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="upstream error")
        if self.raw_body is not None:
            return httpx.Response(200, text=self.raw_body)
        if self.rpc_error is not None:
            return httpx.Response(200, json={
                "jsonrpc": "2.0",
                "id": payload["id"],
                "error": {"code": -32000, "message": self.rpc_error},
            })
        return httpx.Response(200, json={
            "jsonrpc": "2.0",
            "id": payload["id"],
            "result": self.result_for(payload["method"]),
        })


class FakeRpcNetwork:
    """Routes requests to FakeRpcNodes by host; unknown hosts fail DNS resolution."""

    def __init__(self):
        self.nodes: Dict[str, FakeRpcNode] = {}

    def add(self, url: str, node: Optional[FakeRpcNode] = None) -> FakeRpcNode:
        node = node or FakeRpcNode()
        self.nodes[urlparse(url).hostname] = node
        return node

    async def handler(self, request: httpx.Request) -> httpx.Response:
        node = self.nodes.get(request.url.host)
        if node is None:
            raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)
        return await node.respond(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def syncing_payload(current: int, highest: int, starting: int = 0) -> Dict[str, str]:
    return {
        "currentBlock": hex(current),
        "highestBlock": hex(highest),
        "startingBlock": hex(starting),
    }


class RecordingAlertSink(IAlertSink):
    """Captures alert events; can be switched to fail every delivery."""

    def __init__(self, fail: bool = False):
        self.events: List[AlertEvent] = []
        self.fail = fail

    async def deliver(self, event: AlertEvent) -> None:
        if self.fail:
            raise ConnectionError("alert sink unavailable")
        self.events.append(event)

    @property
    def event_types(self) -> List[str]:
        return [event.event_type.value for event in self.events]


class FlakyMetricSink(IMetricSink):
    """Metric sink that can be taken offline."""

    def __init__(self, available: bool = True):
        self.available = available
        self.metrics: List[SLAMetric] = []
        self.breaches: List[Tuple[BreachEpisode, BreachTransition]] = []

    async def write_metric(self, metric: SLAMetric) -> None:
        if not self.available:
            raise ConnectionError("metric sink offline")
        self.metrics.append(metric)

    async def write_breach(self, episode: BreachEpisode, transition: BreachTransition) -> None:
        if not self.available:
            raise ConnectionError("metric sink offline")
        self.breaches.append((episode, transition))
