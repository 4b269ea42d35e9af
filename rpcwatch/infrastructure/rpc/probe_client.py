"""
JSON-RPC probe client

Issues the chain-introspection calls used to score an endpoint. Probe
failures are returned as values (HealthSample.error) with a normalized error
code; nothing on the probe path raises.
"""

import asyncio
import itertools
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

from rpcwatch.infrastructure.logging import get_logger
from rpcwatch.models.endpoint import EndpointConfig, HealthSample, ProbeErrorKind, SyncStatus
from rpcwatch.models.interfaces import IClock

# Well-known EVM networks by chain id
KNOWN_NETWORKS: Dict[int, str] = {
    1: "ethereum",
    10: "optimism",
    56: "bsc",
    137: "polygon",
    8453: "base",
    42161: "arbitrum",
    43114: "avalanche",
    11155111: "sepolia",
}

PROBE_METHODS: Tuple[str, ...] = (
    "eth_chainId",
    "eth_blockNumber",
    "net_peerCount",
    "eth_gasPrice",
    "eth_syncing",
)


class RpcCallError(Exception):
    """A JSON-RPC call failed with an already-normalized error code."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


def normalize_error(error: Exception) -> str:
    """Map transport exceptions onto stable error codes."""
    if isinstance(error, RpcCallError):
        return error.code

    msg = str(error)
    if "handshake operation timed out" in msg:
        return "TLS_HANDSHAKE_TIMEOUT"
    if "Name or service not known" in msg or "Temporary failure in name resolution" in msg:
        return "DNS_RESOLUTION_FAILED"
    if "Connection refused" in msg:
        return "CONNECTION_REFUSED"
    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)) or "timed out" in msg.lower():
        return "REQUEST_TIMEOUT"
    return f"EXCEPTION: {msg[:400]}"


def parse_quantity(value: Any) -> int:
    """Parse a JSON-RPC hex quantity ("0x1a") or a plain integer."""
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.lower().startswith("0x") else int(value)
    raise RpcCallError(f"INVALID_QUANTITY: {value!r}")


def parse_sync_status(value: Any) -> Optional[SyncStatus]:
    """eth_syncing returns false when in sync, or an object with block numbers."""
    if not value or not isinstance(value, dict):
        return None
    return SyncStatus(
        current_block=parse_quantity(value.get("currentBlock", 0)),
        highest_block=parse_quantity(value.get("highestBlock", 0)),
        starting_block=parse_quantity(value.get("startingBlock", 0)),
    )


class RpcProbeClient:
    """Stateless (apart from its connection pool) JSON-RPC prober.

    Args:
        clock: Source of sample timestamps
        default_timeout_seconds: Timeout for one-shot calls (test_connection, detect_network)
        transport: Optional httpx transport, e.g. httpx.MockTransport in tests
    """

    def __init__(
        self,
        clock: IClock,
        default_timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.logger = get_logger(__name__)
        self.clock = clock
        self.default_timeout_seconds = default_timeout_seconds
        self._client = httpx.AsyncClient(transport=transport)
        self._request_ids = itertools.count(1)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def probe(self, endpoint: EndpointConfig) -> HealthSample:
        """
        Probe one endpoint.

        The five introspection calls run concurrently and the whole probe is
        bounded by endpoint.timeout_ms. The sample timestamp is the probe start
        time.

        Returns:
            HealthSample; online is False on any failure or chain-id mismatch
        """
        started_at = self.clock.now()
        started = time.monotonic()
        timeout = endpoint.timeout_seconds

        try:
            results = await asyncio.wait_for(
                asyncio.gather(*(
                    self._call(endpoint.url, method, timeout) for method in PROBE_METHODS
                )),
                timeout=timeout,
            )
            chain_id = parse_quantity(results[0])
            block_number = parse_quantity(results[1])
            peer_count = parse_quantity(results[2])
            gas_price = parse_quantity(results[3])
            sync = parse_sync_status(results[4])
        except Exception as e:
            error = normalize_error(e)
            self.logger.info(
                "probe_failed",
                endpoint_id=endpoint.id,
                url=endpoint.url,
                error=error,
            )
            return HealthSample(
                endpoint_id=endpoint.id,
                timestamp=started_at,
                online=False,
                response_time_ms=self._elapsed_ms(started),
                error=error,
                error_kind=ProbeErrorKind.CONNECTIVITY,
            )

        response_time_ms = self._elapsed_ms(started)

        if chain_id != endpoint.chain_id:
            error = f"Chain ID mismatch: expected {endpoint.chain_id}, got {chain_id}"
            self.logger.warning(
                "probe_chain_id_mismatch",
                endpoint_id=endpoint.id,
                expected=endpoint.chain_id,
                received=chain_id,
            )
            return HealthSample(
                endpoint_id=endpoint.id,
                timestamp=started_at,
                online=False,
                response_time_ms=response_time_ms,
                chain_id=chain_id,
                block_number=block_number,
                peer_count=peer_count,
                gas_price=gas_price,
                syncing=sync is not None,
                sync=sync,
                error=error,
                error_kind=ProbeErrorKind.CONFIGURATION,
            )

        self.logger.debug(
            "probe_completed",
            endpoint_id=endpoint.id,
            response_time_ms=response_time_ms,
            block_number=block_number,
        )
        return HealthSample(
            endpoint_id=endpoint.id,
            timestamp=started_at,
            online=True,
            response_time_ms=response_time_ms,
            chain_id=chain_id,
            block_number=block_number,
            peer_count=peer_count,
            gas_price=gas_price,
            syncing=sync is not None,
            sync=sync,
        )

    async def test_connection(self, url: str, chain_id: int) -> bool:
        """One-shot check that url answers eth_chainId with the declared chain id. No retry."""
        observed = await self.get_chain_id(url)
        if observed is None:
            return False
        if observed != chain_id:
            self.logger.warning("connection_test_chain_id_mismatch", url=url, expected=chain_id, received=observed)
            return False
        return True

    async def detect_network(self, url: str) -> Optional[Tuple[int, str]]:
        """Identify the network behind url as (chain_id, network name), or None if unreachable."""
        chain_id = await self.get_chain_id(url)
        if chain_id is None:
            return None
        return chain_id, KNOWN_NETWORKS.get(chain_id, f"Chain {chain_id}")

    async def get_chain_id(self, url: str) -> Optional[int]:
        timeout = self.default_timeout_seconds
        try:
            result = await asyncio.wait_for(self._call(url, "eth_chainId", timeout), timeout=timeout)
            return parse_quantity(result)
        except Exception as e:
            self.logger.info("chain_id_request_failed", url=url, error=normalize_error(e))
            return None

    async def _call(self, url: str, method: str, timeout: float, params: Optional[List[Any]] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params or [],
        }
        response = await self._client.post(url, json=payload, timeout=timeout)
        if response.status_code < 200 or response.status_code >= 300:
            raise RpcCallError(f"HTTP_STATUS_{response.status_code}")

        try:
            body = response.json()
        except ValueError:
            raise RpcCallError("INVALID_JSON")

        if not isinstance(body, dict):
            raise RpcCallError("INVALID_JSON")
        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RpcCallError(f"RPC_ERROR: {message}")
        return body.get("result")

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.monotonic() - started) * 1000, 3)
