"""Structured logging for rpcwatch."""

from .config import RpcWatchLogger, configure_logging, get_logger

__all__ = ["RpcWatchLogger", "configure_logging", "get_logger"]
