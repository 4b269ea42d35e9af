"""Custom exceptions for the rpcwatch monitoring engine."""

from typing import Any, Dict, Optional


class RpcWatchException(Exception):
    """Base exception for all rpcwatch errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConnectivityException(RpcWatchException):
    """Raised when an endpoint cannot be reached or fails its trial probe."""
    pass


class ConfigurationException(RpcWatchException):
    """Raised when endpoint or engine configuration is invalid."""
    pass


class NotFoundException(RpcWatchException):
    """Raised when an endpoint or alert id is unknown."""
    pass


class ConflictException(RpcWatchException):
    """Raised when a write would violate a uniqueness constraint."""
    pass


class ValidationException(RpcWatchException):
    """Raised when input validation fails."""
    pass
