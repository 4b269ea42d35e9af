"""Configuration for rpcwatch."""

from .settings import RpcWatchSettings, get_settings, reset_settings

__all__ = ["RpcWatchSettings", "get_settings", "reset_settings"]
