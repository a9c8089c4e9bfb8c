"""
Optional similarity-search integration.

The index itself is an external service reached through the narrow
SimilarityIndex protocol. SimilaritySearch owns its lifecycle: the
index is created lazily on first use and every call is serialized.
"""

import logging
import threading
from collections.abc import Callable, Sequence
from typing import Protocol

from scoring_service.core.exceptions import SimilarityIndexError
from scoring_service.results.data_models import (
    NeighborRef,
    OutputParameters,
    ResultSet,
    ScoreRecord,
)

logger = logging.getLogger(__name__)


class SimilarityIndex(Protocol):
    def index(
        self, refs: Sequence[NeighborRef], vectors: Sequence[Sequence[float]]
    ) -> None: ...

    def build_index(self) -> None: ...

    def search(
        self, vector: Sequence[float], k: int
    ) -> list[tuple[NeighborRef, float]]: ...


IndexFactory = Callable[[int, OutputParameters], SimilarityIndex]


class SimilaritySearch:
    """Lazily-created, lock-protected handle on an external index."""

    def __init__(self, index_factory: IndexFactory) -> None:
        self._index_factory = index_factory
        self._index: SimilarityIndex | None = None
        self._lock = threading.Lock()

    @property
    def created(self) -> bool:
        return self._index is not None

    def create(self, dim: int, params: OutputParameters) -> None:
        with self._lock:
            if self._index is None:
                logger.info(f"Creating similarity index of dimension {dim}")
                self._index = self._index_factory(dim, params)

    def _require_index(self) -> SimilarityIndex:
        if self._index is None:
            raise SimilarityIndexError("Similarity index has not been created")
        return self._index

    def index(
        self, refs: Sequence[NeighborRef], vectors: Sequence[Sequence[float]]
    ) -> None:
        with self._lock:
            self._require_index().index(refs, vectors)

    def build_index(self) -> None:
        with self._lock:
            if self._index is None:
                raise SimilarityIndexError("Cannot build index if not created")
            logger.info("Building similarity index")
            self._index.build_index()

    def search(
        self, vector: Sequence[float], k: int
    ) -> list[tuple[NeighborRef, float]]:
        with self._lock:
            return self._require_index().search(vector, k)


def _first_roi_dim(results: ResultSet) -> int | None:
    """Dimension of the first roi vector, None when there is none."""
    if len(results) == 0:
        return None
    first = results[0]
    if not first.rois:
        return None
    return len(first.rois[0][1].vals)


def _roi_refs(record: ScoreRecord) -> list[tuple[NeighborRef, list[float]]]:
    refs: list[tuple[NeighborRef, list[float]]] = []
    for (prob, cat), (_, bbox), (_, roi) in zip(
        record.cats, record.bboxes, record.rois
    ):
        ref = NeighborRef(uri=record.uri, bbox=bbox, prob=prob, cat=cat)
        refs.append((ref, roi.vals))
    return refs


def index_results(
    search: SimilaritySearch,
    results: ResultSet,
    params: OutputParameters,
    best: int,
    has_roi: bool,
) -> set[str]:
    """
    Add results to the index, creating it first if needed.

    Plain results are indexed by their score vector; roi results are
    indexed one detection at a time by their roi vector.

    Returns:
        The set of uris that were indexed.
    """
    if not search.created:
        index_dim: int | None = best
        if has_roi:
            index_dim = _first_roi_dim(results)
        if index_dim is None:
            logger.debug("No roi vector to size the index, skipping creation")
        else:
            search.create(index_dim, params)

    if not search.created:
        return set()

    indexed_uris: set[str] = set()
    if not has_roi:
        refs = [NeighborRef(uri=record.uri) for record in results]
        vectors = [record.cats.scores() for record in results]
        if refs:
            search.index(refs, vectors)
        indexed_uris.update(ref.uri for ref in refs)
    else:
        for record in results:
            pairs = _roi_refs(record)
            if not pairs:
                continue
            search.index([p[0] for p in pairs], [p[1] for p in pairs])
            indexed_uris.add(record.uri)
    return indexed_uris


def multibox_distance(distance: float, prob: float | None) -> float:
    # Detection probability does not weight the distance yet
    return distance


def search_results(
    search: SimilaritySearch,
    results: ResultSet,
    params: OutputParameters,
    best: int,
    has_roi: bool,
    default_search_nn: int,
) -> None:
    """
    Attach nearest neighbors to every record of `results` in place.

    - Plain results: neighbors of the score vector, under `nns`.
    - Roi results: neighbors of each roi vector, one list per box.
    - Multibox rois: per-neighbor-uri mean distance over all boxes of
      the sample, under `nns`.
    """
    if not search.created and has_roi:
        index_dim = _first_roi_dim(results)
        if index_dim is not None:
            search.create(index_dim, params)
    if not search.created:
        raise SimilarityIndexError("Cannot search index if not created")

    search_nn = default_search_nn if has_roi else best
    if params.search_nn:
        search_nn = params.search_nn

    for record in results:
        if not has_roi:
            for ref, dist in search.search(record.cats.scores(), search_nn):
                record.add_nn(dist, ref)
        elif params.multibox_rois:
            totals: dict[str, tuple[float, int]] = {}
            for _, roi in record.rois:
                for ref, dist in search.search(roi.vals, search_nn):
                    mb_dist = multibox_distance(dist, ref.prob)
                    total, count = totals.get(ref.uri, (0.0, 0))
                    totals[ref.uri] = (total + mb_dist, count + 1)
            for uri, (total, count) in totals.items():
                record.add_nn(total / count, NeighborRef(uri=uri))
        else:
            for bbox_idx, (_, roi) in enumerate(record.rois):
                for ref, dist in search.search(roi.vals, search_nn):
                    record.add_bbox_nn(bbox_idx, dist, ref)
