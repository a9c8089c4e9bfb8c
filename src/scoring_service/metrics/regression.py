"""
Regression metrics: distance losses, relative error and Gini.
"""

import numpy as np
from numpy.typing import NDArray

from scoring_service.core.constants import (
    IGNORE_LABEL_TOLERANCE,
    PERCENT_EPSILON,
)
from scoring_service.core.exceptions import BadParameterError
from scoring_service.metrics.data_models import BatchPayload, SampleRecord


def _regression_pair(
    sample: SampleRecord, idx: int
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    # Single-output regression carries a scalar target
    target = sample.target if sample.pred.size > 1 else sample.target[:1]
    if target.size > sample.pred.size:
        raise BadParameterError(
            f"Sample {idx} has {target.size} targets "
            f"for {sample.pred.size} predictions"
        )
    return target, sample.pred[: target.size]


def _kept(batch: BatchPayload, target: NDArray[np.float64]) -> NDArray[np.bool_]:
    if batch.ignore_label is None:
        return np.ones(target.size, dtype=bool)
    return np.abs(target - batch.ignore_label) >= IGNORE_LABEL_TOLERANCE


def distance_loss(
    batch: BatchPayload,
    thres: float = -1.0,
    compute_all: bool = False,
    l1: bool = False,
) -> tuple[float, list[float]]:
    """
    Mean L2 (or L1) distance between predictions and targets.

    Each sample's distance is divided by its output dimension, then the
    result is averaged over the batch. Targets equal to ignore_label are
    skipped. With thres >= 0 only differences >= thres are counted.

    Returns:
        (distance, per_dimension). The per-dimension list is empty unless
        compute_all is set; L1 gives the mean absolute difference per
        dimension and L2 the root mean squared difference.
    """
    if batch.batch_size == 0:
        return 0.0, []
    dim = batch.samples[0].pred.size
    per_dim = np.zeros(dim)
    distance = 0.0

    for i, sample in enumerate(batch.samples):
        target, pred = _regression_pair(sample, i)
        diff = np.abs(pred - target)
        kept = _kept(batch, target)
        if thres >= 0:
            kept &= diff >= thres
        diff = np.where(kept, diff, 0.0)
        reg_dim = sample.pred.size
        if l1:
            distance += float(diff.sum()) / reg_dim
        else:
            distance += float(np.sqrt(np.sum(diff * diff))) / reg_dim
        if compute_all:
            n = min(diff.size, dim)
            per_dim[:n] += diff[:n] if l1 else diff[:n] ** 2

    distance /= batch.batch_size
    if not compute_all:
        return distance, []
    per_dim /= batch.batch_size
    if not l1:
        per_dim = np.sqrt(per_dim)
    return distance, per_dim.tolist()


def percent_error(
    batch: BatchPayload, compute_all: bool = False
) -> tuple[float, list[float]]:
    """
    Mean relative error in percent.

    Returns:
        (percent, per_dimension), the list being empty unless compute_all.
    """
    if batch.batch_size == 0:
        return 0.0, []
    dim = batch.samples[0].pred.size
    per_dim = np.zeros(dim)
    percent = 0.0

    for i, sample in enumerate(batch.samples):
        target, pred = _regression_pair(sample, i)
        reldiff = np.abs(pred - target) / (np.abs(target) + PERCENT_EPSILON)
        reldiff = np.where(_kept(batch, target), reldiff, 0.0)
        percent += float(reldiff.sum()) / sample.pred.size
        if compute_all:
            n = min(reldiff.size, dim)
            per_dim[:n] += reldiff[:n]

    percent = percent * 100.0 / batch.batch_size
    if not compute_all:
        return percent, []
    return percent, (per_dim * 100.0 / batch.batch_size).tolist()


def _gini(actual: NDArray[np.float64], predicted: NDArray[np.float64]) -> float:
    n = actual.size
    total = actual.sum()
    if n == 0 or total == 0:
        return 0.0
    order = np.argsort(-predicted, kind="stable")
    acc_loss = np.cumsum(actual[order] / total)
    acc_pop = np.arange(1, n + 1) / n
    return float(np.sum(acc_loss - acc_pop) / n)


def normalized_gini(
    actual: NDArray[np.float64], predicted: NDArray[np.float64]
) -> float:
    """Gini of `predicted` ranking `actual`, relative to the perfect ranking."""
    best = _gini(actual, actual)
    if best == 0.0:
        return 0.0
    return _gini(actual, predicted) / best


def gini(batch: BatchPayload) -> float:
    """
    Normalized Gini coefficient.

    Regression ranks samples by their first prediction. Classification
    ranks them by predicted class id against the target class id.
    """
    actual = np.array([s.target_value for s in batch.samples])
    if batch.regression:
        predicted = np.array([s.pred[0] for s in batch.samples])
    else:
        predicted = np.array(
            [float(np.argmax(s.pred)) for s in batch.samples]
        )
    return normalized_gini(actual, predicted)
