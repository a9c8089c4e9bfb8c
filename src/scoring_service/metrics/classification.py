"""
Single-label classification metrics.

All functions read a BatchPayload and never modify it. Metrics that
index classes by target go through `BatchPayload.class_targets`, which
validates the target range once per payload.
"""

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from scoring_service.core.constants import F1_EPSILON
from scoring_service.core.exceptions import BadParameterError
from scoring_service.metrics.data_models import BatchPayload, stack_predictions
from scoring_service.metrics.kernels import rank_auc


def accuracy_key(k: int) -> str:
    return "acc" if k == 1 else f"acc-{k}"


def accuracy_at_k(batch: BatchPayload, ks: list[int]) -> dict[str, float]:
    """
    Top-k accuracy for each k.

    A sample counts as a success when its target index is among the k
    highest-scoring predictions, ties broken by index. When k is at least
    the number of predictions every sample is a success, so accuracy is
    non-decreasing in k.

    Returns:
        Mapping "acc" (k=1) or "acc-k" to accuracy in [0, 1].
    """
    accs: dict[str, float] = {}
    for k in ks:
        if batch.batch_size == 0:
            accs[accuracy_key(k)] = 0.0
            continue
        hits = 0
        for sample in batch.samples:
            order = np.argsort(-sample.pred, kind="stable")[:k]
            if np.any(order == sample.target_value):
                hits += 1
        accs[accuracy_key(k)] = hits / batch.batch_size
    return accs


def confusion_matrix(batch: BatchPayload) -> NDArray[np.float64]:
    """
    Raw count confusion matrix of shape (nclasses, nclasses).

    Rows are argmax predictions, columns are true classes.
    """
    targets = batch.class_targets
    conf = np.zeros((batch.nclasses, batch.nclasses), dtype=np.float64)
    for sample, target in zip(batch.samples, targets):
        predicted = int(np.argmax(sample.pred))
        if predicted >= batch.nclasses:
            raise BadParameterError(
                f"prediction vector of length {sample.pred.size} exceeds "
                f"nclasses {batch.nclasses}"
            )
        conf[predicted, target] += 1.0
    return conf


@dataclass(frozen=True)
class F1Result:
    """
    Macro-averaged F1 and its breakdown.

    Attributes:
        f1: Macro F1 over all nclasses.
        precision: Macro precision.
        recall: Macro recall.
        accp: Fraction of samples on the diagonal.
        precisions: Per-class precision.
        recalls: Per-class recall.
        f1s: Per-class F1.
        conf_diag: Diagonal normalized by true-class counts.
        conf_matrix: Confusion matrix with columns normalized by
            true-class counts (columns with no sample stay zero).
    """

    f1: float
    precision: float
    recall: float
    accp: float
    precisions: NDArray[np.float64]
    recalls: NDArray[np.float64]
    f1s: NDArray[np.float64]
    conf_diag: NDArray[np.float64]
    conf_matrix: NDArray[np.float64]


def multiclass_f1(batch: BatchPayload) -> F1Result:
    conf = confusion_matrix(batch)
    diag = np.diag(conf).copy()
    col_sum = conf.sum(axis=0)
    row_sum = conf.sum(axis=1)
    total = conf.sum()

    recalls = diag / (col_sum + F1_EPSILON)
    precisions = diag / (row_sum + F1_EPSILON)
    f1s = 2.0 * precisions * recalls / (precisions + recalls + F1_EPSILON)

    normalized = conf.copy()
    nonzero = col_sum > 0
    normalized[:, nonzero] /= col_sum[nonzero]

    nclasses = float(batch.nclasses)
    return F1Result(
        f1=float(f1s.sum() / nclasses),
        precision=float(precisions.sum() / nclasses),
        recall=float(recalls.sum() / nclasses),
        accp=float(diag.sum() / total) if total > 0 else 0.0,
        precisions=precisions,
        recalls=recalls,
        f1s=f1s,
        conf_diag=diag / (col_sum + F1_EPSILON),
        conf_matrix=normalized,
    )


def full_confusion_matrix(
    result: F1Result, batch: BatchPayload
) -> list[dict[str, list[float]]]:
    """One {class name: column} entry per true class."""
    return [
        {batch.class_name(i): result.conf_matrix[:, i].tolist()}
        for i in range(result.conf_matrix.shape[1])
    ]


def multiclass_log_loss(batch: BatchPayload) -> float:
    """Mean negative log-probability of the true class."""
    if batch.batch_size == 0:
        return 0.0
    targets = batch.class_targets
    loss = 0.0
    for sample, target in zip(batch.samples, targets):
        if target >= sample.pred.size:
            raise BadParameterError(
                f"target {target} out of range for a prediction "
                f"of length {sample.pred.size}"
            )
        loss -= float(np.log(sample.pred[target]))
    return loss / batch.batch_size


def mcc(batch: BatchPayload) -> float:
    """
    Matthews correlation coefficient of a binary problem.

    Class 0 is the positive class. A zero denominator is replaced by 1,
    so degenerate matrices yield 0.
    """
    if batch.nclasses < 2:
        raise BadParameterError(
            f"mcc requires at least 2 classes, got {batch.nclasses}"
        )
    conf = confusion_matrix(batch)
    tp = conf[0, 0]
    tn = conf[1, 1]
    fn = conf[0, 1]
    fp = conf[1, 0]
    den = (tp + fp) * (tp + fn) * (tn + fp) * (tn + fn)
    if den == 0.0:
        den = 1.0
    return float((tp * tn - fp * fn) / np.sqrt(den))


def auc(batch: BatchPayload) -> float:
    """
    Rank-based AUC of a binary problem, scoring with the class-1 output.

    Batches where every target is the same class return 1.
    """
    preds = stack_predictions(batch.samples)
    if preds.shape[0] == 0:
        return 1.0
    if preds.shape[1] < 2:
        raise BadParameterError("auc requires two prediction scores per sample")
    scores = preds[:, 1]
    answers = np.array(
        [int(s.target_value) for s in batch.samples], dtype=np.int64
    )
    order = np.argsort(scores, kind="stable")
    return float(
        rank_auc(np.ascontiguousarray(scores[order]), answers[order])
    )


def raw_results(batch: BatchPayload) -> dict[str, Any]:
    """Per-sample true class name, argmax class name and confidence."""
    targets = batch.class_targets
    truths: list[str] = []
    estimations: list[str] = []
    confidences: list[float] = []
    logits: list[dict[str, list[float]]] = []
    for sample, target in zip(batch.samples, targets):
        best_cat = int(np.argmax(sample.pred))
        truths.append(batch.class_name(int(target)))
        estimations.append(batch.class_name(best_cat))
        confidences.append(float(sample.pred[best_cat]))
        if sample.logits is not None:
            logits.append({"logits": sample.logits.tolist()})

    raw: dict[str, Any] = {
        "truths": truths,
        "estimations": estimations,
        "confidences": confidences,
    }
    if logits:
        raw["all_logits"] = logits
    return raw


def straight_measure(batch: BatchPayload) -> float:
    """Accuracy reported by the network itself as sample 0's first output."""
    if batch.batch_size == 0:
        return 0.0
    return float(batch.samples[0].pred[0])
