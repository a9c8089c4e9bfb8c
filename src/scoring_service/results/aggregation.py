"""
Aggregation of per-sample backend responses into a ResultSet.
"""

import logging
from collections.abc import Iterable, Mapping, Sized
from typing import Any

from pydantic import ValidationError

from scoring_service.core.exceptions import BadParameterError
from scoring_service.results.data_models import (
    PredictionRecord,
    ResultSet,
    ScoreRecord,
)

logger = logging.getLogger(__name__)


def _check_parallel_lengths(record: PredictionRecord) -> None:
    """Every populated payload list must have one entry per score."""
    n_probs = len(record.probs)
    payloads: dict[str, Sized | None] = {
        "cats": record.cats,
        "bboxes": record.bboxes,
        "vals": record.vals,
        "series": record.series,
        "masks": record.masks,
    }
    for name, values in payloads.items():
        if values and len(values) != n_probs:
            raise BadParameterError(
                f"Result {record.uri} has {len(values)} {name} "
                f"for {n_probs} scores"
            )


def build_score_record(record: PredictionRecord) -> ScoreRecord:
    """Populate the ranked collections of a new ScoreRecord in parallel."""
    _check_parallel_lengths(record)

    result = ScoreRecord(
        uri=record.uri, loss=record.loss, index_uri=record.index_uri
    )
    for i, prob in enumerate(record.probs):
        if record.cats:
            result.cats.insert(prob, record.cats[i])
        if record.bboxes:
            result.bboxes.insert(prob, record.bboxes[i])
        if record.vals:
            result.rois.insert(prob, record.vals[i])
        if record.series:
            result.series.insert(prob, record.series[i])
        if record.masks:
            result.masks.insert(prob, record.masks[i])
    return result


class ResultAggregator:
    """
    Collect backend responses, one ScoreRecord per sample id.

    A response whose id has already been seen is dropped: the first
    occurrence wins.
    """

    def __init__(self) -> None:
        self.results = ResultSet()

    def add_results(
        self, records: Iterable[PredictionRecord | Mapping[str, Any]]
    ) -> None:
        for raw in records:
            if isinstance(raw, PredictionRecord):
                record = raw
            else:
                try:
                    record = PredictionRecord.model_validate(raw)
                except ValidationError as e:
                    raise BadParameterError(
                        f"Malformed prediction result: {e}"
                    ) from e
            if record.uri in self.results:
                logger.debug(f"Dropping duplicate result for {record.uri}")
                continue
            self.results.add(build_score_record(record))
