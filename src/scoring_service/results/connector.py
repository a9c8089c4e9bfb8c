"""
Supervised output connector: from backend responses to the response object.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from scoring_service.core.config import get_settings
from scoring_service.results.aggregation import ResultAggregator
from scoring_service.results.data_models import (
    OutputParameters,
    PredictionRecord,
    ResultSet,
    TaskFlags,
)
from scoring_service.results.formatting import to_ad
from scoring_service.results.selection import UNBOUNDED_BEST, best_cats
from scoring_service.results.similarity import (
    SimilaritySearch,
    index_results,
    search_results,
)

logger = logging.getLogger(__name__)


class SupervisedOutput:
    """
    Collect prediction results and shape them into a response.

    Typical use is one `add_results` call per prediction batch followed
    by a single `finalize`.
    """

    def __init__(self, best: int | None = None) -> None:
        settings = get_settings()
        self.best = best if best is not None else settings.default_best
        self.search_nn = settings.search_nn
        self._aggregator = ResultAggregator()

    @property
    def results(self) -> ResultSet:
        return self._aggregator.results

    def init(self, params: OutputParameters) -> None:
        if params.best is not None:
            self.best = params.best

    def add_results(
        self, records: Iterable[PredictionRecord | Mapping[str, Any]]
    ) -> None:
        self._aggregator.add_results(records)

    def finalize(
        self,
        params: OutputParameters,
        flags: TaskFlags,
        similarity: SimilaritySearch | None = None,
    ) -> dict[str, Any]:
        """
        Select, optionally index/search, and serialize the results.

        Args:
            params: Output parameters of the request.
            flags: Task flags of the backend.
            similarity: Optional similarity index handle. Index, build
                and search requests are skipped when absent.

        Returns:
            The response object (see `to_ad`).
        """
        if flags.regression:
            self.best = flags.nclasses
        if flags.autoencoder:
            self.best = 1

        best = params.best if params.best is not None else self.best

        if flags.timeseries:
            # series are kept whole
            selected = best_cats(
                self.results, UNBOUNDED_BEST, flags.nclasses, False, False, False
            )
        else:
            selected = best_cats(
                self.results,
                best,
                flags.nclasses,
                flags.bbox,
                flags.roi,
                flags.mask,
            )

        indexed_uris: set[str] = set()
        if similarity is None:
            if params.index or params.build_index or params.search:
                logger.debug("No similarity index configured, skipping")
        else:
            if params.index:
                indexed_uris = index_results(
                    similarity, selected, params, best, flags.roi
                )
            if params.build_index:
                similarity.build_index()
            if params.search:
                search_results(
                    similarity,
                    selected,
                    params,
                    best,
                    flags.roi,
                    self.search_nn,
                )

        has_roi = flags.roi and not flags.has_multibox_rois
        return to_ad(selected, flags, has_roi, indexed_uris)
