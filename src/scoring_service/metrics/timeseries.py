"""
Time-series forecast errors.

Each sample's pred/target vectors hold `duration x n_series` values,
timestep-major: value (t, s) sits at index t * n_series + s.
"""

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from scoring_service.core.constants import TS_METRICS_EPSILON
from scoring_service.core.exceptions import BadParameterError
from scoring_service.metrics.data_models import BatchPayload


def as_series(
    values: NDArray[np.float64], n_series: int, name: str = "values"
) -> NDArray[np.float64]:
    """
    View a flat buffer as a (duration, n_series) matrix.

    Raises:
        BadParameterError: If the length is not a positive multiple of
            n_series.
    """
    if values.size == 0 or values.size % n_series != 0:
        raise BadParameterError(
            f"{name} of length {values.size} cannot hold "
            f"{n_series} interleaved series"
        )
    return values.reshape(values.size // n_series, n_series)


def _series_pair(
    pred: NDArray[np.float64], target: NDArray[np.float64], n_series: int
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    if pred.size != target.size:
        raise BadParameterError(
            f"pred of length {pred.size} does not match "
            f"target of length {target.size}"
        )
    return as_series(pred, n_series, "pred"), as_series(target, n_series, "target")


@dataclass(frozen=True)
class TimeseriesErrors:
    """
    Attributes:
        max_errors: Per-series maximum error over the batch.
        max_error_indexes: Timestep of each per-series maximum, within
            the sample where it occurred.
        mean_errors: Per-series mean error (RMSE for L2).
        max_error: Largest per-series maximum.
        mean_error: Mean of the per-series means.
    """

    max_errors: list[float]
    max_error_indexes: list[int]
    mean_errors: list[float]
    max_error: float
    mean_error: float


def timeseries_errors(
    batch: BatchPayload, n_series: int, l1: bool = True
) -> TimeseriesErrors:
    """
    L1 (absolute) or L2 (squared) forecast errors per series.

    The first timestep of every sample is excluded, since its prediction
    has no history to start from.
    """
    if batch.batch_size == 0:
        zeros = [0.0] * n_series
        return TimeseriesErrors(zeros, [0] * n_series, zeros, 0.0, 0.0)

    sums = np.zeros(n_series)
    max_errors = np.zeros(n_series)
    max_indexes = np.zeros(n_series, dtype=np.int64)
    steps = 0

    for i, sample in enumerate(batch.samples):
        pred, target = _series_pair(sample.pred, sample.target, n_series)
        error = np.abs(pred - target)
        error[0, :] = 0.0
        if not l1:
            error = error * error
        sample_max = error.max(axis=0)
        sample_idx = error.argmax(axis=0)
        if i == 0:
            max_errors = sample_max
            max_indexes = sample_idx
        else:
            better = sample_max > max_errors
            max_errors = np.where(better, sample_max, max_errors)
            max_indexes = np.where(better, sample_idx, max_indexes)
        sums += error.sum(axis=0)
        steps += error.shape[0]

    mean_errors = sums / steps
    if not l1:
        mean_errors = np.sqrt(mean_errors)

    return TimeseriesErrors(
        max_errors=max_errors.tolist(),
        max_error_indexes=[int(v) for v in max_indexes],
        mean_errors=mean_errors.tolist(),
        max_error=float(max_errors.max()),
        mean_error=float(mean_errors.mean()),
    )


@dataclass(frozen=True)
class TimeseriesMetrics:
    """Per-series forecast quality, one value per series in each list."""

    mape: list[float]
    smape: list[float]
    mase: list[float]
    owa: list[float]
    mae: list[float]
    mse: list[float]


def timeseries_metrics(batch: BatchPayload, n_series: int) -> TimeseriesMetrics:
    """
    MAPE, sMAPE, MASE, OWA, MAE and MSE per series.

    MASE and OWA compare against a naive forecast repeating the previous
    target. MAE and MSE use unscaled values when the samples carry them.
    """
    eps = TS_METRICS_EPSILON
    mape = np.zeros(n_series)
    smape = np.zeros(n_series)
    mase = np.zeros(n_series)
    smape_naive = np.zeros(n_series)
    mae = np.zeros(n_series)
    mse = np.zeros(n_series)

    for sample in batch.samples:
        pred, target = _series_pair(sample.pred, sample.target, n_series)
        duration = pred.shape[0]

        pred_raw = sample.pred if sample.pred_unscaled is None else sample.pred_unscaled
        target_raw = (
            sample.target if sample.target_unscaled is None else sample.target_unscaled
        )
        pred_u, target_u = _series_pair(pred_raw, target_raw, n_series)
        error_u = np.abs(pred_u - target_u)
        mae += error_u.sum(axis=0) / sample.target.size
        mse += (error_u * error_u).sum(axis=0) / sample.target.size

        error = np.abs(pred - target)
        error[0, :] = 0.0

        naive = np.vstack([target[:1], target[:-1]])
        error_naive = np.abs(naive - target)
        target_abs = np.abs(target)

        mape += (error / (target_abs + eps)).sum(axis=0) / duration
        smape += (error / (np.abs(pred) + target_abs + eps)).sum(axis=0) / duration

        mean_naive = error_naive.sum(axis=0) / duration
        mean_error = error.sum(axis=0) / duration
        mase += mean_error / (mean_naive + eps) / duration

        smape_naive += (
            error_naive / (target_abs + np.abs(naive) + eps)
        ).sum(axis=0) / duration

    n = max(batch.batch_size, 1)
    mape = mape / n * 100.0
    smape = smape / n * 200.0
    mase = mase / n
    smape_naive = smape_naive / n * 200.0
    owa = (smape / (smape_naive + eps) + mase) / 2.0

    return TimeseriesMetrics(
        mape=mape.tolist(),
        smape=smape.tolist(),
        mase=mase.tolist(),
        owa=owa.tolist(),
        mae=(mae / n).tolist(),
        mse=(mse / n).tolist(),
    )
