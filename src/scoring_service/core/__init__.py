"""
Core shared types for the scoring service.

Holds the schema constants, the error taxonomy and the settings used by
both the result-aggregation side and the metric engine.
"""

from scoring_service.core.config import ScoringSettings, get_settings
from scoring_service.core.exceptions import (
    BadParameterError,
    ErrorKind,
    InternalError,
    ScoringError,
    SimilarityIndexError,
)
from scoring_service.core.version import get_version

__all__ = [
    "BadParameterError",
    "ErrorKind",
    "InternalError",
    "ScoringError",
    "ScoringSettings",
    "SimilarityIndexError",
    "get_settings",
    "get_version",
]
