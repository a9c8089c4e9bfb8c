"""
Pixel-wise segmentation accuracy.
"""

from dataclasses import dataclass

import numpy as np

from scoring_service.metrics.data_models import BatchPayload


@dataclass(frozen=True)
class SegmentationResult:
    """
    Attributes:
        acc: Pixel accuracy averaged over samples.
        meanacc: Mean of per-class accuracy over classes seen in targets.
        meaniou: Mean of per-class IoU over classes seen in targets.
        clacc: Per-class accuracy (0 for classes never seen).
        cliou: Per-class IoU (0 for classes never seen).
    """

    acc: float
    meanacc: float
    meaniou: float
    clacc: list[float]
    cliou: list[float]


def segmentation_accuracy(batch: BatchPayload) -> SegmentationResult:
    """
    Accuracy and IoU of per-pixel class predictions.

    Per-class values are averaged over the samples whose target contains
    the class. A class predicted but absent from a sample's target adds
    an IoU of 0 to that class without counting the sample.
    """
    nclasses = batch.nclasses
    class_acc = np.zeros(nclasses)
    class_iou = np.zeros(nclasses)
    seen = np.zeros(nclasses)
    acc = 0.0

    for target, pred in batch.paired_vectors:
        acc += float(np.mean(pred == target))
        for c in range(nclasses):
            is_pred = pred == c
            is_targ = target == c
            hits = int(np.count_nonzero(is_pred & is_targ))
            false_neg = int(np.count_nonzero(~is_pred & is_targ))
            false_pos = int(np.count_nonzero(is_pred & ~is_targ))
            total_targ = int(np.count_nonzero(is_targ))
            if total_targ:
                class_acc[c] += hits / total_targ
                seen[c] += 1
            if hits:
                class_iou[c] += hits / (false_pos + hits + false_neg)

    present = seen > 0
    class_acc[present] /= seen[present]
    class_iou[present] /= seen[present]
    n_present = int(np.count_nonzero(present))

    meanacc = float(class_acc.sum())
    meaniou = float(class_iou.sum())
    if n_present:
        meanacc /= n_present
        meaniou /= n_present

    return SegmentationResult(
        acc=acc / batch.batch_size if batch.batch_size else 0.0,
        meanacc=meanacc,
        meaniou=meaniou,
        clacc=class_acc.tolist(),
        cliou=class_iou.tolist(),
    )
