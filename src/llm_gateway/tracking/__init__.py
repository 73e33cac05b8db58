"""
Usage tracking and cost reporting.
"""

from .cost_tracker import CostTracker
from .store import InMemoryUsageStore, PostgresUsageStore, UsageStore

__all__ = [
    "CostTracker",
    "InMemoryUsageStore",
    "PostgresUsageStore",
    "UsageStore",
]
