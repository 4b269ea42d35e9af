"""
rpcwatch Logging Configuration

Configures structlog with JSON (or console) rendering and OpenTelemetry trace
context injection so probe and SLA events can be correlated with traces.
"""

import logging
from typing import Any, Dict, Optional

import structlog
from opentelemetry import trace

from rpcwatch.config.settings import LoggingSettings, LogRenderer


class RpcWatchLogger:
    """
    Structured logging configuration.

    Sets up the structlog processor chain once per process: log level
    filtering, logger name and level, ISO timestamps, exception formatting,
    trace context and final rendering.
    """

    def __init__(self, settings: Optional[LoggingSettings] = None):
        self.settings = settings or LoggingSettings()
        self.configure_structlog()

    def configure_structlog(self) -> None:
        level = getattr(logging, self.settings.level.value)
        logging.basicConfig(format="%(message)s", level=level)
        logging.getLogger("rpcwatch").setLevel(level)

        if self.settings.renderer == LogRenderer.CONSOLE:
            renderer = structlog.dev.ConsoleRenderer()
        else:
            renderer = structlog.processors.JSONRenderer()

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                self.add_trace_context,
                renderer,
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    @staticmethod
    def add_trace_context(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Add OpenTelemetry trace context to log entries.

        Args:
            logger: Logger instance
            method_name: Log method name
            event_dict: Event dictionary to process

        Returns:
            Event dictionary with trace_id/span_id when a span is recording
        """
        span = trace.get_current_span()
        if span and span.is_recording():
            span_context = span.get_span_context()
            if 'trace_id' not in event_dict:
                event_dict['trace_id'] = format(span_context.trace_id, '032x')
            if 'span_id' not in event_dict:
                event_dict['span_id'] = format(span_context.span_id, '016x')
        return event_dict


_logger_config: Optional[RpcWatchLogger] = None


def configure_logging(settings: Optional[LoggingSettings] = None) -> RpcWatchLogger:
    """(Re)configure structlog from logging settings."""
    global _logger_config
    _logger_config = RpcWatchLogger(settings)
    return _logger_config


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name, typically the module name

    Returns:
        Configured structlog BoundLogger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("probe_completed", endpoint_id="eth-main", online=True)
    """
    global _logger_config
    if _logger_config is None:
        _logger_config = RpcWatchLogger()
    return structlog.get_logger(name)
