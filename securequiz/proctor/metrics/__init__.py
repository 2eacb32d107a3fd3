"""Signal corroboration"""

from .aggregator import CorroborationAggregator, GracePeriods

__all__ = ["CorroborationAggregator", "GracePeriods"]
