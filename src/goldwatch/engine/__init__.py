"""Aggregation store, scheduler, and the PriceEngine facade."""

from goldwatch.engine.engine import PriceEngine
from goldwatch.engine.scheduler import Scheduler
from goldwatch.engine.store import AggregationStore

__all__ = [
    "AggregationStore",
    "PriceEngine",
    "Scheduler",
]
