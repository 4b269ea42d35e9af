"""Endpoint health probing and SLA compliance tracking."""

from .prober import HealthProber
from .sla_tracker import SLATracker, compute_compliance

__all__ = ["HealthProber", "SLATracker", "compute_compliance"]
