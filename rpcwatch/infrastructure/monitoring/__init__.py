"""Breach and alert management."""

from .alerting import AlertRoute, LogAlertSink, SLAAlertManager, WebhookAlertSink
from .breaches import BreachRecorder

__all__ = ["AlertRoute", "BreachRecorder", "LogAlertSink", "SLAAlertManager", "WebhookAlertSink"]
