"""
Assembly of metric records from a batch payload and a request.

`measure` runs every metric the request selects for the payload's task
and appends the resulting record to the output object.
`aggregate_multiple_testsets` folds the records of several test sets
into a single one.
"""

import logging
from collections.abc import Callable, MutableMapping
from typing import Any

from scoring_service.core.constants import (
    MEASURE_KEY,
    MEASURES_KEY,
    SOFT_DELTAS,
    TEST_ID_KEY,
    TEST_NAME_KEY,
    UNSET_THRESHOLD,
)
from scoring_service.metrics import (
    classification,
    detection,
    multilabel,
    regression,
    segmentation,
    timeseries,
)
from scoring_service.metrics.data_models import BatchPayload
from scoring_service.metrics.request import MetricRequest

logger = logging.getLogger(__name__)

MetricRecord = dict[str, Any]

SoftMetric = Callable[[BatchPayload, float], float]

# token fragment -> (output key, metric)
SOFT_METRICS: dict[str, tuple[str, SoftMetric]] = {
    "kl": ("kl_divergence", multilabel.soft_kl),
    "js": ("js_divergence", multilabel.soft_js),
    "was": ("wasserstein", multilabel.soft_wasserstein),
    "ks": ("kolmogorov_smirnov", multilabel.soft_kolmogorov_smirnov),
    "dc": ("distance_correlation", multilabel.soft_distance_correlation),
    "r2": ("r2", multilabel.soft_r2),
}

PASS_THROUGH_FIELDS = ("loss", "train_loss", "iteration", "learning_rate")


def _thres_suffix(thres: float) -> str:
    return f"{thres:f}"


def _soft_thresholds(
    batch: BatchPayload, request: MetricRequest
) -> dict[str, float]:
    """Soft metric fragment -> threshold, for the requested soft metrics."""
    if not (batch.multilabel and batch.regression):
        return {}
    fragments = [*SOFT_METRICS, "deltas"]
    if request.has("acc"):
        return {fragment: UNSET_THRESHOLD for fragment in fragments}
    selected: dict[str, float] = {}
    for fragment in fragments:
        thres = request.threshold(fragment)
        if thres is not None:
            selected[fragment] = thres
    return selected


def _detection_measures(
    batch: BatchPayload, request: MetricRequest, meas: MetricRecord
) -> None:
    if request.has("map"):
        overall, per_label = detection.mean_average_precision(batch)
        meas["map"] = overall
        for label, ap in per_label.items():
            meas[f"map_{label}"] = ap
    if request.has("raw"):
        meas["raw"] = detection.raw_detection_results(batch)


def _soft_measures(
    batch: BatchPayload, thresholds: dict[str, float], meas: MetricRecord
) -> None:
    for fragment, (key, metric) in SOFT_METRICS.items():
        if fragment not in thresholds:
            continue
        thres = thresholds[fragment]
        meas[key] = metric(batch, UNSET_THRESHOLD)
        meas[f"{key}_no_{_thres_suffix(thres)}"] = metric(batch, thres)

    if "deltas" in thresholds:
        thres = thresholds["deltas"]
        scores = multilabel.soft_deltas(batch, UNSET_THRESHOLD)
        scores_thres = multilabel.soft_deltas(batch, thres)
        for delta, score, score_thres in zip(SOFT_DELTAS, scores, scores_thres):
            meas[f"delta_score_{delta:g}"] = score
            meas[f"delta_score_{delta:g}_no_{thres:g}"] = score_thres


def _f1_measures(
    batch: BatchPayload, request: MetricRequest, meas: MetricRecord
) -> None:
    result = classification.multiclass_f1(batch)
    meas["f1"] = result.f1
    meas["precision"] = result.precision
    meas["recall"] = result.recall
    meas["accp"] = result.accp
    labels = list(batch.clnames) if batch.clnames is not None else []
    if request.has("f1full"):
        meas["precisions"] = result.precisions.tolist()
        meas["recalls"] = result.recalls.tolist()
        meas["f1s"] = result.f1s.tolist()
        if not request.has("cmdiag"):
            meas["labels"] = labels
    if request.has("cmdiag"):
        meas["cmdiag"] = result.conf_diag.tolist()
        meas["labels"] = labels
    if request.has("cmfull"):
        meas["cmfull"] = classification.full_confusion_matrix(result, batch)


def _distance_measures(
    batch: BatchPayload, request: MetricRequest, meas: MetricRecord
) -> None:
    eucll_thres = request.threshold("eucll")
    want_l1 = request.has("l1")
    want_percent = request.has("percent")
    compute_all = (
        eucll_thres is not None or want_l1 or want_percent
    ) and not batch.autoencoder

    if eucll_thres is not None:
        eucll, per_dim = regression.distance_loss(
            batch, UNSET_THRESHOLD, compute_all, l1=False
        )
        meas["eucll"] = eucll
        if len(per_dim) > 1:
            for i, value in enumerate(per_dim):
                meas[f"eucll_{i}"] = value
        if eucll_thres > 0:
            suffix = _thres_suffix(eucll_thres)
            eucll_t, per_dim_t = regression.distance_loss(
                batch, eucll_thres, compute_all, l1=False
            )
            meas[f"eucll_no_{suffix}"] = eucll_t
            if len(per_dim_t) > 1:
                for i, value in enumerate(per_dim_t):
                    meas[f"eucll_no_{i}_{suffix}"] = value

    if want_l1:
        l1, per_dim = regression.distance_loss(
            batch, UNSET_THRESHOLD, compute_all, l1=True
        )
        meas["l1"] = l1
        for i, value in enumerate(per_dim):
            meas[f"l1_{i}"] = value

    if want_percent:
        percent, per_dim = regression.percent_error(batch, compute_all)
        meas["percent"] = percent
        for i, value in enumerate(per_dim):
            meas[f"percent_{i}"] = value


def _timeseries_measures(
    batch: BatchPayload, request: MetricRequest, meas: MetricRecord
) -> None:
    n_series = batch.timeseries
    assert n_series is not None
    aggregate, per_series = request.timeseries_selection()

    for norm, is_l1 in (("L1", True), ("L2", False)):
        if norm not in aggregate and norm not in per_series:
            continue
        errors = timeseries.timeseries_errors(batch, n_series, l1=is_l1)
        if norm in per_series:
            for i in range(n_series):
                meas[f"{norm}_max_error_{i}"] = errors.max_errors[i]
                meas[f"{norm}_max_error_{i}_date"] = float(
                    errors.max_error_indexes[i]
                )
                meas[f"{norm}_mean_error_{i}"] = errors.mean_errors[i]
        meas[f"{norm}_max_error"] = errors.max_error
        meas[f"{norm}_mean_error"] = errors.mean_error
        # L2 takes precedence for eucll when both are requested
        if not is_l1 or not ({"L2"} & (aggregate | per_series)):
            meas["eucll"] = errors.mean_error

    names = {
        "mape": "MAPE",
        "smape": "sMAPE",
        "mase": "MASE",
        "owa": "OWA",
        "mae": "MAE",
        "mse": "MSE",
    }
    if not (set(names) & (aggregate | per_series)):
        return
    result = timeseries.timeseries_metrics(batch, n_series)
    for name, key in names.items():
        values: list[float] = getattr(result, name)
        if name in per_series:
            for i, value in enumerate(values):
                meas[f"{key}_{i}"] = value
        if name in aggregate:
            meas[key] = sum(values) / n_series


def compute_measures(
    batch: BatchPayload, request: MetricRequest
) -> MetricRecord:
    """
    Compute every metric `request` selects for `batch`'s task.

    Raises:
        BadParameterError: If a request or payload value is invalid.
    """
    meas: MetricRecord = {}
    plain = not (batch.multilabel or batch.segmentation or batch.bbox)

    if batch.bbox:
        _detection_measures(batch, request, meas)
    if batch.net_meas:
        meas["acc"] = classification.straight_measure(batch)
    if request.has("auc"):
        meas["auc"] = classification.auc(batch)
    if plain and not batch.net_meas and request.contains("acc"):
        meas.update(classification.accuracy_at_k(batch, request.accuracy_ks()))
    if batch.segmentation and request.has("acc"):
        seg = segmentation.segmentation_accuracy(batch)
        meas["acc"] = seg.acc
        meas["meanacc"] = seg.meanacc
        meas["meaniou"] = seg.meaniou
        meas["clacc"] = seg.clacc
        meas["cliou"] = seg.cliou
    if batch.multilabel and not batch.regression and request.has("acc"):
        ml = multilabel.multilabel_accuracy(batch)
        meas["f1"] = ml.f1
        meas["precision"] = ml.precision
        meas["sensitivity"] = ml.sensitivity
        meas["specificity"] = ml.specificity
        meas["harmmean"] = ml.harmmean
    _soft_measures(batch, _soft_thresholds(batch, request), meas)

    if plain and (request.has("f1") or request.has("f1full")):
        _f1_measures(batch, request, meas)
    if plain and request.has("mcll"):
        meas["mcll"] = classification.multiclass_log_loss(batch)
    if request.has("gini"):
        meas["gini"] = regression.gini(batch)
    _distance_measures(batch, request, meas)
    if request.has("mcc"):
        meas["mcc"] = classification.mcc(batch)
    if request.has("raw") and not batch.bbox:
        meas["raw"] = classification.raw_results(batch)
    if batch.timeseries is not None:
        _timeseries_measures(batch, request, meas)
    return meas


def measure(
    batch: BatchPayload,
    request: MetricRequest | None,
    out: MutableMapping[str, Any],
    test_id: int = 0,
    test_name: str = "",
) -> MetricRecord:
    """
    Compute one test set's metric record and add it to `out`.

    The record is appended to out["measures"]; the first test set's
    record is also stored as out["measure"].

    Args:
        batch: The test pass payload.
        request: Requested metrics. None computes no metric but still
            records pass-through values.
        out: Output object, updated in place.
        test_id: Index of the test set.
        test_name: Name of the test set.

    Returns:
        The metric record.
    """
    meas = compute_measures(batch, request) if request is not None else {}

    for name in PASS_THROUGH_FIELDS:
        value = getattr(batch, name)
        if value is not None:
            meas[name] = float(value)
    meas[TEST_ID_KEY] = test_id
    meas[TEST_NAME_KEY] = test_name

    logger.debug(f"Computed {len(meas)} measures for test set {test_id}")
    out.setdefault(MEASURES_KEY, []).append(meas)
    if test_id == 0:
        out[MEASURE_KEY] = meas
    return meas


def aggregate_multiple_testsets(out: MutableMapping[str, Any]) -> MetricRecord:
    """
    Average every float-valued field over all test-set records.

    Fields that are not floats in a record (lists, names, test ids) are
    not aggregated. The result replaces out["measure"].
    """
    records: list[MetricRecord] = out.get(MEASURES_KEY, [])
    # mean taken as offsets from the first value, exact for equal records
    firsts: dict[str, float] = {}
    offsets: dict[str, float] = {}
    for record in records:
        for key, value in record.items():
            if not isinstance(value, float):
                continue
            if key not in firsts:
                firsts[key] = value
                offsets[key] = 0.0
            else:
                offsets[key] += value - firsts[key]

    aggregated = {
        key: first + offsets[key] / len(records)
        for key, first in firsts.items()
    }
    out[MEASURE_KEY] = aggregated
    return aggregated
