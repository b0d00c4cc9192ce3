"""Monitoring for the publication gate"""

from .metrics import GateMetrics

__all__ = ["GateMetrics"]
