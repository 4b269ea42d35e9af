"""
Unified Configuration System for rpcwatch

Single source of truth for engine configuration using pydantic-settings.

ARCHITECTURAL PRINCIPLES:
- Only this module accesses environment variables directly
- All other modules receive configuration via dependency injection
- Type-safe validation with automatic conversion
"""

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings


# =============================================================================
# ENUMS
# =============================================================================

class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogRenderer(str, Enum):
    JSON = "json"
    CONSOLE = "console"


# =============================================================================
# NESTED CONFIGURATION SECTIONS
# =============================================================================

class ProbeSettings(BaseSettings):
    """Health prober cadence and probe defaults"""
    interval_seconds: float = Field(default=30.0, gt=0)
    default_timeout_ms: int = Field(default=10000, gt=0)

    # Samples kept per endpoint when deriving uptime/error-rate metrics
    sample_window: int = Field(default=60, gt=0)

    model_config = {"env_prefix": "PROBE_", "extra": "ignore"}


class SLASettings(BaseSettings):
    """SLA evaluation cycle, history bounds and default targets"""
    evaluation_interval_seconds: float = Field(default=60.0, gt=0)
    rollup_window_minutes: int = Field(default=60, gt=0)
    history_limit: int = Field(default=1000, gt=0)
    breach_merge_gap_minutes: float = Field(default=5.0, ge=0)
    retention_days: int = Field(default=30, gt=0)

    # Default per-organization targets
    uptime_target: float = Field(default=99.9, gt=0)
    response_time_target_ms: float = Field(default=5000.0, gt=0)
    error_rate_target: float = Field(default=1.0, gt=0)
    availability_target: float = Field(default=99.5, gt=0)

    model_config = {"env_prefix": "SLA_", "extra": "ignore"}


class AlertingSettings(BaseSettings):
    """Webhook alert delivery configuration"""
    webhook_url: Optional[str] = Field(default=None)
    webhook_timeout_seconds: float = Field(default=10.0, gt=0)
    log_alerts: bool = Field(default=True)

    model_config = {"env_prefix": "ALERT_", "extra": "ignore"}

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("webhook_url must be an http(s) URL")
        return v


class LoggingSettings(BaseSettings):
    """Logging configuration"""
    level: LogLevel = Field(default=LogLevel.INFO)
    renderer: LogRenderer = Field(default=LogRenderer.JSON)

    model_config = {"env_prefix": "LOG_", "extra": "ignore"}


class ConfigSourceSettings(BaseSettings):
    """Where endpoint definitions are loaded from at startup"""
    path: Optional[Path] = Field(default=None)

    model_config = {"env_prefix": "ENDPOINTS_", "extra": "ignore"}


# =============================================================================
# ROOT SETTINGS
# =============================================================================

class RpcWatchSettings(BaseSettings):
    """
    Unified configuration for the rpcwatch engine.

    All configuration access should go through this class via dependency injection.
    """

    probe: ProbeSettings = Field(default_factory=ProbeSettings)
    sla: SLASettings = Field(default_factory=SLASettings)
    alerting: AlertingSettings = Field(default_factory=AlertingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    endpoints: ConfigSourceSettings = Field(default_factory=ConfigSourceSettings)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"
    }


# =============================================================================
# SETTINGS ACCESS
# =============================================================================

_settings_instance: Optional[RpcWatchSettings] = None


def get_settings() -> RpcWatchSettings:
    """
    Get global settings instance (singleton pattern).

    Raises:
        ConfigurationException: If settings validation fails
    """
    global _settings_instance
    if _settings_instance is None:
        from dotenv import load_dotenv

        load_dotenv()
        try:
            _settings_instance = RpcWatchSettings()
        except ValidationError as e:
            from rpcwatch.exceptions import ConfigurationException
            raise ConfigurationException(
                f"Invalid rpcwatch settings: {e}",
                details={"errors": e.errors()}
            ) from e
    return _settings_instance


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings_instance
    _settings_instance = None
