"""Endpoint configuration and health sample models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from rpcwatch.models.sla import GLOBAL_SCOPE, KEY_SEPARATOR


class ProbeErrorKind(str, Enum):
    """Why a probe attempt did not produce a healthy sample."""
    CONNECTIVITY = "connectivity"
    CONFIGURATION = "configuration"


class EndpointConfig(BaseModel):
    """A monitored JSON-RPC endpoint.

    The identity fields are set at registration. The health fields below them
    are written only by the HealthProber through update_health().
    """

    id: str = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    url: str
    network: str = "ethereum"
    chain_id: int = Field(default=1, gt=0)
    timeout_ms: int = Field(default=10000, gt=0)
    enabled: bool = True
    priority: int = 1

    last_checked_at: Optional[datetime] = None
    is_healthy: bool = False
    response_time_ms: Optional[float] = None
    error_count: int = 0
    last_error: Optional[str] = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if v == GLOBAL_SCOPE:
            raise ValueError(f"endpoint id {GLOBAL_SCOPE!r} is reserved")
        return v

    @field_validator("owner_id")
    @classmethod
    def validate_owner_id(cls, v: str) -> str:
        if KEY_SEPARATOR in v:
            raise ValueError(f"owner id must not contain {KEY_SEPARATOR!r}")
        return v

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"RPC url must be an http(s) URL with a host, got {v!r}")
        return v

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    def is_available(self) -> bool:
        return self.enabled and self.is_healthy

    def update_health(self, sample: "HealthSample") -> bool:
        """Apply a probe result to the health fields.

        Samples older than the stored last_checked_at are ignored so a slow
        probe never overwrites a newer result.

        Returns:
            True if the sample was applied, False if it was stale
        """
        if self.last_checked_at is not None and sample.timestamp < self.last_checked_at:
            return False

        self.is_healthy = sample.online
        self.response_time_ms = sample.response_time_ms
        self.last_checked_at = sample.timestamp

        if sample.online:
            self.error_count = 0
            self.last_error = None
        else:
            self.error_count += 1
            self.last_error = sample.error
        return True


@dataclass(frozen=True)
class SyncStatus:
    """Node sync progress reported by eth_syncing."""
    current_block: int
    highest_block: int
    starting_block: int

    @property
    def progress(self) -> int:
        if self.highest_block == 0:
            return 0
        return round(self.current_block / self.highest_block * 100)


@dataclass(frozen=True)
class HealthSample:
    """Result of a single probe attempt. Never mutated after creation."""
    endpoint_id: str
    timestamp: datetime
    online: bool
    response_time_ms: float
    chain_id: Optional[int] = None
    block_number: Optional[int] = None
    peer_count: Optional[int] = None
    gas_price: Optional[int] = None
    syncing: bool = False
    sync: Optional[SyncStatus] = None
    error: Optional[str] = None
    error_kind: Optional[ProbeErrorKind] = None

    @property
    def sync_progress(self) -> Optional[int]:
        return self.sync.progress if self.sync else None
