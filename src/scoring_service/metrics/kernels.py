import numpy as np
from numba import njit  # type: ignore
from numpy.typing import NDArray


@njit  # type: ignore
def rank_auc(
    predictions: NDArray[np.float64], answers: NDArray[np.int64]
) -> float:
    """
    Mann-Whitney AUC over predictions sorted ascending.

    Trapezoids are accumulated between groups of tied scores. A batch
    containing a single class returns 1.
    """
    count = predictions.shape[0]
    ones = 0
    for i in range(count):
        ones += answers[i]
    if ones == 0 or ones == count:
        return 1.0

    true_pos = ones
    tp0 = ones
    accum = 0
    tn = 0
    threshold = predictions[0]
    for i in range(count):
        if predictions[i] != threshold:
            threshold = predictions[i]
            # twice the trapezoid area
            accum += tn * (true_pos + tp0)
            tp0 = true_pos
            tn = 0
        tn += 1 - answers[i]
        true_pos -= answers[i]
    accum += tn * (true_pos + tp0)
    return accum / (2.0 * ones * (count - ones))


@njit  # type: ignore
def envelope_ap(
    precision: NDArray[np.float64], recall: NDArray[np.float64], eps: float
) -> float:
    """
    Integrate a precision/recall curve under its monotonic envelope.

    Walks recall from the last point backwards, keeping the running max
    precision, and sums max precision times each recall step above eps.
    """
    num = precision.shape[0]
    cur_rec = recall[num - 1]
    cur_prec = precision[num - 1]
    ap = 0.0
    for i in range(num - 2, -1, -1):
        cur_prec = max(precision[i], cur_prec)
        step = abs(cur_rec - recall[i])
        if step > eps:
            ap += cur_prec * step
        cur_rec = recall[i]
    ap += cur_rec * cur_prec
    return ap


@njit  # type: ignore
def distance_correlation(
    targets: NDArray[np.float64], predictions: NDArray[np.float64]
) -> float:
    """
    Sample distance correlation between two equal-length vectors.

    Returns 0 when either distance variance vanishes.
    """
    n = targets.shape[0]
    t_dist = np.abs(targets.reshape(n, 1) - targets.reshape(1, n))
    p_dist = np.abs(predictions.reshape(n, 1) - predictions.reshape(1, n))

    t_row = np.zeros(n)
    p_row = np.zeros(n)
    for j in range(n):
        t_row[j] = t_dist[j].mean()
        p_row[j] = p_dist[j].mean()
    t_mean = t_row.mean()
    p_mean = p_row.mean()

    dcov = 0.0
    dvart = 0.0
    dvarp = 0.0
    for j in range(n):
        for k in range(n):
            t = t_dist[j, k] - t_row[j] - t_row[k] + t_mean
            p = p_dist[j, k] - p_row[j] - p_row[k] + p_mean
            dcov += p * t
            dvart += t * t
            dvarp += p * p
    size = n * n
    dcov = np.sqrt(max(dcov / size, 0.0))
    dvart = np.sqrt(dvart / size)
    dvarp = np.sqrt(dvarp / size)
    if dvart == 0.0 or dvarp == 0.0:
        return 0.0
    return dcov / np.sqrt(dvart * dvarp)
