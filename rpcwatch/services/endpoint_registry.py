"""
Endpoint Registry

Owns the monitored endpoint configurations. Writers serialize on a lock and
publish a fresh mapping on every change (copy-then-swap), so readers such as
the HealthProber always see either the old or the new configuration set, never
a half-applied write.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import ValidationError

from rpcwatch.exceptions import (
    ConfigurationException,
    ConflictException,
    ConnectivityException,
    NotFoundException,
    RpcWatchException,
    ValidationException,
)
from rpcwatch.infrastructure.logging import get_logger
from rpcwatch.infrastructure.rpc import RpcProbeClient
from rpcwatch.models.endpoint import EndpointConfig

# Fields an owner may change through update(); health fields belong to the prober
MUTABLE_FIELDS = frozenset({"name", "url", "network", "chain_id", "timeout_ms", "enabled", "priority"})


@dataclass
class SyncResult:
    """Outcome of reconciling the registry with a config source."""
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


class EndpointRegistry:
    """CRUD for EndpointConfig keyed by id and scoped by owner."""

    def __init__(self, probe_client: RpcProbeClient, default_timeout_ms: int = 10000):
        self.logger = get_logger(__name__)
        self.probe_client = probe_client
        self.default_timeout_ms = default_timeout_ms
        self._endpoints: Dict[str, EndpointConfig] = {}
        self._write_lock = asyncio.Lock()
        # Ids owned by the config source; only these are deleted by sync()
        self._synced_ids: Set[str] = set()
        self._removal_listeners: List[Callable[[str], None]] = []

    # ------------------------------------------------------------------
    # Reads (lock-free, against the current snapshot)
    # ------------------------------------------------------------------

    def lookup(self, endpoint_id: str) -> Optional[EndpointConfig]:
        return self._endpoints.get(endpoint_id)

    def get(self, endpoint_id: str, owner_id: str) -> EndpointConfig:
        """
        Get an endpoint owned by owner_id.

        Raises:
            NotFoundException: Unknown id, or the endpoint belongs to another owner
        """
        endpoint = self._endpoints.get(endpoint_id)
        if endpoint is None or endpoint.owner_id != owner_id:
            raise NotFoundException(
                f"Endpoint {endpoint_id} not found",
                details={"endpoint_id": endpoint_id, "owner_id": owner_id}
            )
        return endpoint

    def list(self, owner_id: Optional[str] = None, enabled_only: bool = False) -> List[EndpointConfig]:
        """Endpoints ordered by priority (lower first), then name."""
        endpoints = [
            ep for ep in self._endpoints.values()
            if (owner_id is None or ep.owner_id == owner_id) and (ep.enabled or not enabled_only)
        ]
        return sorted(endpoints, key=lambda ep: (ep.priority, ep.name))

    def __len__(self) -> int:
        return len(self._endpoints)

    def add_removal_listener(self, listener: Callable[[str], None]) -> None:
        """Call listener(endpoint_id) after every delete, including sync deletions."""
        self._removal_listeners.append(listener)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(
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
        """
        Register an endpoint after a successful trial connection.

        Raises:
            ConfigurationException: Invalid url, chain id or timeout
            ConflictException: endpoint_id already registered
            ConnectivityException: Trial connection failed; nothing is stored
        """
        endpoint = self._build({
            "id": endpoint_id or uuid.uuid4().hex,
            "owner_id": owner_id,
            "name": name,
            "url": url,
            "network": network,
            "chain_id": chain_id,
            "timeout_ms": timeout_ms or self.default_timeout_ms,
            "enabled": enabled,
            "priority": priority,
        })
        self._ensure_unique(endpoint.id)

        if not await self.probe_client.test_connection(endpoint.url, endpoint.chain_id):
            raise ConnectivityException(
                f"Failed to connect to RPC endpoint {endpoint.url}",
                details={"url": endpoint.url, "chain_id": endpoint.chain_id}
            )

        async with self._write_lock:
            self._ensure_unique(endpoint.id)
            self._swap({**self._endpoints, endpoint.id: endpoint})

        self.logger.info(
            "endpoint_created",
            endpoint_id=endpoint.id,
            owner_id=owner_id,
            url=endpoint.url,
            chain_id=endpoint.chain_id,
        )
        return endpoint

    async def update(self, endpoint_id: str, owner_id: str, /, **changes: Any) -> EndpointConfig:
        """
        Apply configuration changes. A changed URL is re-validated first; on
        failure the previous configuration is kept.

        Raises:
            NotFoundException: Unknown id or owner mismatch
            ValidationException: Attempt to change a non-configurable field
            ConfigurationException: Resulting configuration is invalid
            ConnectivityException: New URL failed its trial connection
        """
        current = self.get(endpoint_id, owner_id)

        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise ValidationException(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)}
            )

        candidate = self._build({**current.model_dump(), **changes})

        if candidate.url != current.url:
            if not await self.probe_client.test_connection(candidate.url, candidate.chain_id):
                raise ConnectivityException(
                    f"Failed to connect to RPC endpoint {candidate.url}",
                    details={"url": candidate.url, "chain_id": candidate.chain_id}
                )

        async with self._write_lock:
            latest = self.get(endpoint_id, owner_id)
            # Re-apply onto the latest state so writes committed meanwhile and
            # health from the prober are kept
            updated = self._build({**latest.model_dump(), **changes})
            self._swap({**self._endpoints, endpoint_id: updated})

        self.logger.info("endpoint_updated", endpoint_id=endpoint_id, fields=sorted(changes))
        return updated

    async def set_enabled(self, endpoint_id: str, owner_id: str, enabled: bool) -> EndpointConfig:
        """Toggle monitoring without re-validating the endpoint."""
        async with self._write_lock:
            current = self.get(endpoint_id, owner_id)
            updated = current.model_copy(update={"enabled": enabled})
            self._swap({**self._endpoints, endpoint_id: updated})

        self.logger.info("endpoint_enabled_changed", endpoint_id=endpoint_id, enabled=enabled)
        return updated

    async def delete(self, endpoint_id: str, owner_id: str) -> None:
        """Remove an endpoint. Probes already in flight for it are discarded on completion."""
        async with self._write_lock:
            self.get(endpoint_id, owner_id)
            remaining = dict(self._endpoints)
            del remaining[endpoint_id]
            self._swap(remaining)
            self._synced_ids.discard(endpoint_id)

        for listener in self._removal_listeners:
            listener(endpoint_id)

        self.logger.info("endpoint_deleted", endpoint_id=endpoint_id, owner_id=owner_id)

    async def sync(self, records: List[Dict[str, Any]]) -> SyncResult:
        """
        Reconcile with config-source records: create missing endpoints, update
        changed ones and delete previously synced endpoints that are no longer
        listed. Records that fail validation or their trial connection are
        logged and skipped.
        """
        result = SyncResult()
        seen: Set[str] = set()

        for record in records:
            endpoint_id = record.get("id")
            owner_id = record.get("owner_id")
            if not endpoint_id or not owner_id:
                result.failed[str(endpoint_id)] = "record requires id and owner_id"
                self.logger.warning("endpoint_sync_record_invalid", record=record)
                continue
            seen.add(endpoint_id)

            try:
                existing = self.lookup(endpoint_id)
                if existing is None:
                    await self.create(
                        owner_id=owner_id,
                        name=record.get("name", endpoint_id),
                        url=record.get("url", ""),
                        chain_id=record.get("chain_id", 1),
                        network=record.get("network", "ethereum"),
                        timeout_ms=record.get("timeout_ms"),
                        enabled=record.get("enabled", True),
                        priority=record.get("priority", 1),
                        endpoint_id=endpoint_id,
                    )
                    result.created.append(endpoint_id)
                else:
                    changes = {
                        key: value for key, value in record.items()
                        if key in MUTABLE_FIELDS and getattr(existing, key) != value
                    }
                    if changes:
                        await self.update(endpoint_id, owner_id, **changes)
                        result.updated.append(endpoint_id)
                self._synced_ids.add(endpoint_id)
            except RpcWatchException as e:
                result.failed[endpoint_id] = str(e)
                self.logger.warning("endpoint_sync_failed", endpoint_id=endpoint_id, error=str(e))

        for endpoint_id in sorted(self._synced_ids - seen):
            endpoint = self.lookup(endpoint_id)
            if endpoint is not None:
                await self.delete(endpoint_id, endpoint.owner_id)
                result.deleted.append(endpoint_id)
            self._synced_ids.discard(endpoint_id)

        self.logger.info(
            "endpoint_sync_completed",
            created=len(result.created),
            updated=len(result.updated),
            deleted=len(result.deleted),
            failed=len(result.failed),
        )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _swap(self, endpoints: Dict[str, EndpointConfig]) -> None:
        self._endpoints = endpoints

    def _ensure_unique(self, endpoint_id: str) -> None:
        if endpoint_id in self._endpoints:
            raise ConflictException(
                f"Endpoint {endpoint_id} already exists",
                details={"endpoint_id": endpoint_id}
            )

    @staticmethod
    def _build(data: Dict[str, Any]) -> EndpointConfig:
        try:
            return EndpointConfig(**data)
        except ValidationError as e:
            raise ConfigurationException(
                f"Invalid endpoint configuration: {e}",
                details={"errors": e.errors()}
            ) from e
