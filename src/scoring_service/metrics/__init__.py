"""
Evaluation metrics over a test pass.

A test pass produces a BatchPayload; a MetricRequest selects which
metrics to compute. `measure` assembles them into a metric record and
`aggregate_multiple_testsets` averages records across test sets.
"""

from scoring_service.metrics.data_models import (
    BatchPayload,
    DetectionStats,
    SampleRecord,
)
from scoring_service.metrics.engine import (
    aggregate_multiple_testsets,
    compute_measures,
    measure,
)
from scoring_service.metrics.request import MetricRequest

__all__ = [
    # Data models
    "BatchPayload",
    "DetectionStats",
    "SampleRecord",
    "MetricRequest",
    # Engine
    "compute_measures",
    "measure",
    "aggregate_multiple_testsets",
]
