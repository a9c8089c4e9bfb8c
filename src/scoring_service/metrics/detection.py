"""
Object detection metrics: average precision and raw per-box outcomes.
"""

from typing import Any

import numpy as np
from numpy.typing import NDArray

from scoring_service.core.constants import (
    AP_RECALL_EPSILON,
    NO_DETECTION,
    UNDEFINED_GT,
)
from scoring_service.metrics.data_models import BatchPayload, DetectionStats
from scoring_service.metrics.kernels import envelope_ap


def _cumsum_by_score(
    scores: NDArray[np.float64], flags: NDArray[np.int64]
) -> NDArray[np.float64]:
    order = np.argsort(-scores, kind="stable")
    return np.cumsum(flags[order]).astype(np.float64)


def compute_ap(stats: DetectionStats) -> float:
    """
    Average precision of one class.

    Detections are ranked by descending score. A false-positive list
    shorter than the true-positive list is extended with its last
    cumulative count.
    """
    num = len(stats.tp_d)
    if num == 0 or stats.num_pos == 0:
        return 0.0
    tp_cum = _cumsum_by_score(stats.tp_d, stats.tp_i)
    fp_cum = _cumsum_by_score(stats.fp_d, stats.fp_i)
    if fp_cum.size < num:
        last = fp_cum[-1] if fp_cum.size else 0.0
        fp_cum = np.concatenate([fp_cum, np.full(num - fp_cum.size, last)])
    fp_cum = fp_cum[:num]

    detected = tp_cum + fp_cum
    precision = np.divide(
        tp_cum, detected, out=np.zeros(num), where=detected > 0
    )
    recall = tp_cum / stats.num_pos
    return float(envelope_ap(precision, recall, AP_RECALL_EPSILON))


def mean_average_precision(
    batch: BatchPayload,
) -> tuple[float, dict[int, float]]:
    """
    Mean AP over every (group, class) entry with data.

    Returns:
        (map, per_label). per_label averages a class's AP over the groups
        where it has detections or ground truth, and is 0 for classes that
        never have any.
    """
    ap_sums: dict[int, float] = {}
    ap_counts: dict[int, int] = {}
    total = 0.0
    count_all = 0
    for group in batch.detections:
        for stats in group:
            if len(stats.tp_d) or len(stats.fp_d) or stats.num_pos > 0:
                local_ap = compute_ap(stats)
                ap_sums[stats.label] = ap_sums.get(stats.label, 0.0) + local_ap
                ap_counts[stats.label] = ap_counts.get(stats.label, 0) + 1
                total += local_ap
                count_all += 1
            elif stats.label not in ap_sums:
                ap_sums[stats.label] = 0.0
                ap_counts[stats.label] = 0

    per_label = {
        label: ap_sums[label] / ap_counts[label] if ap_counts[label] else 0.0
        for label in sorted(ap_sums)
    }
    if count_all == 0:
        return 0.0, per_label
    return total / count_all, per_label


def _background_logits(nclasses: int) -> list[float]:
    # background dominates, the rest share what is left evenly
    return [0.5 + 0.5 / nclasses] + [0.5 / nclasses] * (nclasses - 1)


def raw_detection_results(batch: BatchPayload) -> dict[str, Any]:
    """
    Flat per-box outcomes for downstream confusion analysis.

    True positives pair the class with itself, false positives pair it
    with UNDEFINED_GT, and missed ground-truth boxes pair NO_DETECTION
    with the class at confidence 1.
    """
    truths: list[str] = []
    estimations: list[str] = []
    confidences: list[float] = []
    all_logits: list[dict[str, list[float]]] = []
    output_logits = False
    n_names = len(batch.clnames) if batch.clnames else 0

    for group in batch.detections:
        for stats in group:
            name = batch.class_name(stats.label)
            # tp and fp arrays are parallel per detection, as are all_logits
            n_dets = max(stats.tp_i.size, stats.fp_i.size)
            for k in range(n_dets):
                if k < stats.tp_i.size and stats.tp_i[k] == 1:
                    truths.append(name)
                    estimations.append(name)
                    confidences.append(float(stats.tp_d[k]))
                if k < stats.fp_i.size and stats.fp_i[k] == 1:
                    truths.append(UNDEFINED_GT)
                    estimations.append(name)
                    confidences.append(float(stats.fp_d[k]))

            missed = max(stats.num_pos - int(np.sum(stats.tp_i == 1)), 0)
            for _ in range(missed):
                truths.append(name)
                estimations.append(NO_DETECTION)
                confidences.append(1.0)

            if stats.all_logits is not None:
                output_logits = True
                all_logits.extend(
                    {"logits": list(logits)} for logits in stats.all_logits
                )
                all_logits.extend(
                    {"logits": _background_logits(n_names)}
                    for _ in range(missed)
                )

    raw: dict[str, Any] = {
        "truths": truths,
        "estimations": estimations,
        "confidences": confidences,
    }
    if output_logits:
        raw["all_logits"] = all_logits
    return raw
