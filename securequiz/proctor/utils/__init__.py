"""Utility modules"""

from .logging import log_critical_event, log_proctor_event

__all__ = ["log_critical_event", "log_proctor_event"]
