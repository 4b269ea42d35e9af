"""rpcwatch: health monitoring and SLA compliance for blockchain JSON-RPC endpoints."""

__version__ = "0.1.0"
