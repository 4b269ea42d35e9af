"""JSON-RPC transport."""

from .probe_client import KNOWN_NETWORKS, RpcProbeClient, normalize_error

__all__ = ["KNOWN_NETWORKS", "RpcProbeClient", "normalize_error"]
