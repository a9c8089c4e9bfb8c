"""
Result aggregation and output shaping.

This module provides tools for:
- Aggregating per-sample backend responses into a deduplicated ResultSet
- Reducing a ResultSet to a bounded, task-aware top-k subset
- Indexing and searching results through an optional similarity index
- Serializing results into the external response shape
"""

from scoring_service.results.aggregation import ResultAggregator
from scoring_service.results.connector import SupervisedOutput
from scoring_service.results.data_models import (
    BoundingBox,
    NeighborRef,
    OutputParameters,
    PredictionRecord,
    RankedEntries,
    ResultSet,
    RoiVector,
    ScoreRecord,
    SeriesOutput,
    TaskFlags,
)
from scoring_service.results.formatting import to_ad
from scoring_service.results.selection import best_cats
from scoring_service.results.similarity import (
    SimilarityIndex,
    SimilaritySearch,
    index_results,
    search_results,
)

__all__ = [
    # Data models
    "BoundingBox",
    "NeighborRef",
    "OutputParameters",
    "PredictionRecord",
    "RankedEntries",
    "ResultSet",
    "RoiVector",
    "ScoreRecord",
    "SeriesOutput",
    "TaskFlags",
    # Aggregation
    "ResultAggregator",
    "SupervisedOutput",
    # Selection
    "best_cats",
    # Similarity search
    "SimilarityIndex",
    "SimilaritySearch",
    "index_results",
    "search_results",
    # Formatting
    "to_ad",
]
