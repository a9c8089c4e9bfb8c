"""
Multi-label metrics.

Hard multi-label accuracy treats each (sample, class) entry as a binary
decision. The soft family compares per-sample target distributions with
predicted ones over the "active" entries: targets above the threshold,
or every non-negative target when the threshold is unset (negative).
"""

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from scoring_service.core.constants import (
    MASKED_DELTA_FILL,
    SOFT_DELTAS,
    SOFT_DIVERGENCE_EPSILON,
)
from scoring_service.metrics.data_models import BatchPayload
from scoring_service.metrics.kernels import distance_correlation


@dataclass(frozen=True)
class MultilabelAccuracy:
    f1: float
    precision: float
    sensitivity: float
    specificity: float
    harmmean: float


def multilabel_accuracy(batch: BatchPayload) -> MultilabelAccuracy:
    """
    Binary decision quality over every (sample, class) entry.

    Targets >= 0.5 are positives, targets in [0, 0.5) negatives and
    negative targets are ignored. A prediction >= 0 means "present".
    The harmonic mean of sensitivity and specificity is 0 when either
    has no hit.
    """
    tp = fp = tn = fn = 0
    for target, pred in batch.paired_vectors:
        considered = target >= 0
        positive = considered & (target >= 0.5)
        negative = considered & (target < 0.5)
        predicted = pred >= 0
        tp += int(np.count_nonzero(positive & predicted))
        fn += int(np.count_nonzero(positive & ~predicted))
        tn += int(np.count_nonzero(negative & ~predicted))
        fp += int(np.count_nonzero(negative & predicted))

    count_pos = tp + fn
    count_neg = tn + fp
    sensitivity = tp / count_pos if count_pos > 0 else 0.0
    specificity = tn / count_neg if count_neg > 0 else 0.0
    if tp > 0 and tn > 0:
        harmmean = 2.0 / (count_pos / tp + count_neg / tn)
    else:
        harmmean = 0.0
    precision = tp / (tp + fp) if tp > 0 else 0.0
    f1 = 2.0 * tp / (2.0 * tp + fp + fn) if tp > 0 else 0.0
    return MultilabelAccuracy(
        f1=f1,
        precision=precision,
        sensitivity=sensitivity,
        specificity=specificity,
        harmmean=harmmean,
    )


def active_mask(target: NDArray[np.float64], thres: float) -> NDArray[np.bool_]:
    if thres >= 0:
        return target > thres
    return target >= 0


def _clamped(values: NDArray[np.float64]) -> NDArray[np.float64]:
    return np.maximum(values, SOFT_DIVERGENCE_EPSILON)


def soft_kl(batch: BatchPayload, thres: float) -> float:
    """KL divergence of predictions from targets, per active entry."""
    total = 0.0
    count = 0
    for target, pred in batch.paired_vectors:
        mask = active_mask(target, thres)
        t = _clamped(target[mask])
        p = _clamped(pred[mask])
        total += float(np.sum(np.log(t / p) * t))
        count += int(np.count_nonzero(mask))
    return total / count if count else 0.0


def soft_js(batch: BatchPayload, thres: float) -> float:
    """Jensen-Shannon divergence, per active entry."""
    total = 0.0
    count = 0
    for target, pred in batch.paired_vectors:
        mask = active_mask(target, thres)
        t = _clamped(target[mask])
        p = _clamped(pred[mask])
        inv = 1.0 / (t + p)
        js = np.log(inv * t * 2) * t * 0.5 + np.log(inv * p * 2) * p * 0.5
        total += float(js.sum())
        count += int(np.count_nonzero(mask))
    return total / count if count else 0.0


def soft_wasserstein(batch: BatchPayload, thres: float) -> float:
    """Root of the summed squared differences over sqrt(active entries)."""
    squares = 0.0
    count = 0
    for target, pred in batch.paired_vectors:
        mask = active_mask(target, thres)
        diff = target[mask] - pred[mask]
        squares += float(np.sum(diff * diff))
        count += int(np.count_nonzero(mask))
    return float(np.sqrt(squares) / np.sqrt(count)) if count else 0.0


def soft_kolmogorov_smirnov(batch: BatchPayload, thres: float) -> float:
    """Largest absolute difference over every active entry of the batch."""
    ks = 0.0
    for target, pred in batch.paired_vectors:
        mask = active_mask(target, thres)
        if np.any(mask):
            ks = max(ks, float(np.max(np.abs(target[mask] - pred[mask]))))
    return ks


def soft_distance_correlation(batch: BatchPayload, thres: float) -> float:
    """
    Distance correlation between target and prediction within a sample.

    Computed over each sample's active classes and averaged over the
    whole batch; samples without active classes contribute 0.
    """
    if batch.batch_size == 0:
        return 0.0
    total = 0.0
    for target, pred in batch.paired_vectors:
        mask = active_mask(target, thres)
        if not np.any(mask):
            continue
        total += float(
            distance_correlation(
                np.ascontiguousarray(target[mask]),
                np.ascontiguousarray(pred[mask]),
            )
        )
    return total / batch.batch_size


def soft_r2(batch: BatchPayload, thres: float) -> float:
    """
    Coefficient of determination over active entries.

    Constant active targets give 1.0 for a perfect fit and 0.0 otherwise.
    """
    actives: list[NDArray[np.float64]] = []
    ssres = 0.0
    for target, pred in batch.paired_vectors:
        mask = active_mask(target, thres)
        diff = target[mask] - pred[mask]
        ssres += float(np.sum(diff * diff))
        actives.append(target[mask])
    if not actives:
        return 0.0
    all_active = np.concatenate(actives)
    if all_active.size == 0:
        return 0.0
    sstot = float(np.sum((all_active - all_active.mean()) ** 2))
    if sstot == 0.0:
        return 1.0 if ssres == 0.0 else 0.0
    return 1.0 - ssres / sstot


def soft_deltas(
    batch: BatchPayload,
    thres: float,
    deltas: Sequence[float] = SOFT_DELTAS,
) -> list[float]:
    """Fraction of active entries with |target - pred| below each delta."""
    hits = np.zeros(len(deltas))
    count = 0
    for target, pred in batch.paired_vectors:
        mask = active_mask(target, thres)
        diff = np.where(mask, np.abs(target - pred), MASKED_DELTA_FILL)
        for k, delta in enumerate(deltas):
            hits[k] += np.count_nonzero(diff < delta)
        count += int(np.count_nonzero(mask))
    if count == 0:
        return [0.0] * len(deltas)
    return (hits / count).tolist()
