"""
Serialization of a ResultSet into the external response shape.
"""

from typing import Any

from scoring_service.core.constants import (
    BBOX_KEY,
    CAT_KEY,
    CLASSES_KEY,
    DIST_KEY,
    INDEX_URI_KEY,
    INDEXED_KEY,
    LAST_KEY,
    LOSS_KEY,
    LOSSES_KEY,
    MASK_KEY,
    NNS_KEY,
    OUT_KEY,
    PREDICTIONS_KEY,
    PROB_KEY,
    ROIS_KEY,
    SERIES_KEY,
    URI_KEY,
    VAL_KEY,
    VALS_KEY,
    VECTOR_KEY,
)
from scoring_service.results.data_models import (
    NeighborRef,
    RankedEntries,
    ResultSet,
    ScoreRecord,
    TaskFlags,
)


def payload_key(flags: TaskFlags, has_roi: bool) -> str:
    """Name of the per-sample entry list for this task."""
    if flags.timeseries:
        return SERIES_KEY
    if flags.regression:
        return VECTOR_KEY
    if flags.autoencoder:
        return LOSSES_KEY
    if has_roi:
        return ROIS_KEY
    return CLASSES_KEY


def _neighbors_to_ad(
    nns: RankedEntries[NeighborRef], with_detection: bool
) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for dist, ref in nns:
        nn: dict[str, Any] = {URI_KEY: ref.uri, DIST_KEY: dist}
        if with_detection:
            nn[PROB_KEY] = ref.prob
            nn[CAT_KEY] = ref.cat
            if ref.bbox is not None:
                nn[BBOX_KEY] = ref.bbox.model_dump()
        out.append(nn)
    return out


def _entries_to_ad(
    record: ScoreRecord, flags: TaskFlags, has_roi: bool
) -> list[dict[str, Any]]:
    entries: list[dict[str, Any]] = []
    with_box = flags.bbox or has_roi or flags.mask
    n_cats = len(record.cats)

    for idx, (score, cat) in enumerate(record.cats):
        entry: dict[str, Any] = {}
        if not flags.autoencoder:
            entry[CAT_KEY] = cat
        if flags.regression:
            entry[VAL_KEY] = score
        elif flags.autoencoder:
            entry[LOSS_KEY] = score
        else:
            entry[PROB_KEY] = score
        if with_box and idx < len(record.bboxes):
            entry[BBOX_KEY] = record.bboxes[idx][1].model_dump()
        if has_roi and idx < len(record.rois):
            entry[VALS_KEY] = list(record.rois[idx][1].vals)
        if flags.mask and idx < len(record.masks):
            entry[MASK_KEY] = record.masks[idx][1]
        if has_roi and idx < len(record.bbox_nns):
            entry[NNS_KEY] = _neighbors_to_ad(
                record.bbox_nns[idx], with_detection=True
            )
        if idx == n_cats - 1:
            entry[LAST_KEY] = True
        entries.append(entry)

    n_series = len(record.series)
    for idx, (_, serie) in enumerate(record.series):
        entry = {OUT_KEY: list(serie.out)}
        if idx == n_series - 1:
            entry[LAST_KEY] = True
        entries.append(entry)

    return entries


def to_ad(
    results: ResultSet,
    flags: TaskFlags,
    has_roi: bool | None = None,
    indexed_uris: set[str] | None = None,
) -> dict[str, Any]:
    """
    Convert a ResultSet into the nested response object.

    Args:
        results: Results to serialize, usually already top-k reduced.
        flags: Task flags selecting the payload key and entry fields.
        has_roi: Overrides flags.roi (multibox rois format as classes).
        indexed_uris: Uris added to the similarity index by this call.

    Returns:
        Response object with one prediction per sample under
        "predictions", each entry list ending with a `last` marker.
    """
    if has_roi is None:
        has_roi = flags.roi
    key = payload_key(flags, has_roi)

    predictions: list[dict[str, Any]] = []
    for record in results:
        pred: dict[str, Any] = {}
        # loss is only meaningful when the backend reports it
        if record.loss > 0.0:
            pred[LOSS_KEY] = record.loss
        pred[URI_KEY] = record.uri
        if record.index_uri:
            pred[INDEX_URI_KEY] = record.index_uri
        if indexed_uris and record.uri in indexed_uris:
            pred[INDEXED_KEY] = True
        if record.nns and not has_roi:
            pred[NNS_KEY] = _neighbors_to_ad(record.nns, with_detection=False)
        pred[key] = _entries_to_ad(record, flags, has_roi)
        predictions.append(pred)

    return {PREDICTIONS_KEY: predictions}
