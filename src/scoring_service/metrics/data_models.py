"""
Data models for metric computation input.

This module defines the data structures for:
- SampleRecord: one sample's predictions and targets
- DetectionStats: per-class true/false positive lists of a detector
- BatchPayload: everything one evaluation pass hands to the metric engine
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

import numpy as np
from numpy.typing import NDArray

from scoring_service.core.exceptions import BadParameterError


def _as_vector(value: Any, name: str) -> NDArray[np.float64]:
    try:
        result: NDArray[np.float64] = np.atleast_1d(
            np.asarray(value, dtype=np.float64)
        ).ravel()
    except (TypeError, ValueError) as e:
        raise BadParameterError(f"{name} must be numeric, got {value!r}") from e
    return result


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise BadParameterError(f"{name} must be an integer, got {value!r}") from e


def _as_float(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise BadParameterError(f"{name} must be a number, got {value!r}") from e


def _as_flags(value: Any, name: str) -> NDArray[np.int64]:
    try:
        return np.atleast_1d(np.asarray(value, dtype=np.int64)).ravel()
    except (TypeError, ValueError) as e:
        raise BadParameterError(f"{name} must be 0/1 flags, got {value!r}") from e


def _optional_vector(value: Any, name: str) -> NDArray[np.float64] | None:
    if value is None:
        return None
    return _as_vector(value, name)


def _get_indexed(data: Mapping[Any, Any], idx: int) -> Any:
    """Look up a key-indexed entry stored under either "i" or i."""
    if not isinstance(data, Mapping):
        raise BadParameterError(
            f"Expected a key-indexed mapping, got {type(data).__name__}"
        )
    if str(idx) in data:
        return data[str(idx)]
    if idx in data:
        return data[idx]
    raise BadParameterError(f"Batch payload is missing entry {idx}")


@dataclass(frozen=True)
class SampleRecord:
    """
    Predictions and targets of one sample.

    Attributes:
        pred: Prediction vector (class scores, regression outputs, or a
            flattened duration x series buffer for time series).
        target: Target, stored as a vector; scalar class ids have shape (1,).
        logits: Raw logits, when the backend reports them.
        pred_unscaled: Predictions before output scaling (time series).
        target_unscaled: Targets before output scaling (time series).
    """

    pred: NDArray[np.float64]
    target: NDArray[np.float64]
    logits: NDArray[np.float64] | None = None
    pred_unscaled: NDArray[np.float64] | None = None
    target_unscaled: NDArray[np.float64] | None = None

    @property
    def target_value(self) -> float:
        """Scalar target (class id or single regression value)."""
        return float(self.target[0])

    @classmethod
    def from_api(cls, data: Mapping[str, Any], idx: int) -> "SampleRecord":
        if not isinstance(data, Mapping):
            raise BadParameterError(f"Sample {idx} must be a mapping")
        if "pred" not in data or "target" not in data:
            raise BadParameterError(
                f"Sample {idx} must have 'pred' and 'target'"
            )
        return cls(
            pred=_as_vector(data["pred"], f"pred of sample {idx}"),
            target=_as_vector(data["target"], f"target of sample {idx}"),
            logits=_optional_vector(data.get("logits"), "logits"),
            pred_unscaled=_optional_vector(
                data.get("pred_unscaled"), "pred_unscaled"
            ),
            target_unscaled=_optional_vector(
                data.get("target_unscaled"), "target_unscaled"
            ),
        )


@dataclass(frozen=True)
class DetectionStats:
    """
    True/false positive lists of one class, as produced by a detector.

    Attributes:
        label: Class id.
        num_pos: Number of ground-truth boxes of this class.
        tp_d: Scores of the detections, paired with tp_i.
        tp_i: 1 where the detection is a true positive.
        fp_d: Scores of the detections, paired with fp_i.
        fp_i: 1 where the detection is a false positive.
        all_logits: Per-detection logits, when reported.
    """

    label: int
    num_pos: int
    tp_d: NDArray[np.float64]
    tp_i: NDArray[np.int64]
    fp_d: NDArray[np.float64]
    fp_i: NDArray[np.int64]
    all_logits: tuple[tuple[float, ...], ...] | None = None

    def __post_init__(self) -> None:
        if len(self.tp_d) != len(self.tp_i):
            raise BadParameterError(
                f"tp_d and tp_i lengths differ for label {self.label}: "
                f"{len(self.tp_d)} != {len(self.tp_i)}"
            )
        if len(self.fp_d) != len(self.fp_i):
            raise BadParameterError(
                f"fp_d and fp_i lengths differ for label {self.label}: "
                f"{len(self.fp_d)} != {len(self.fp_i)}"
            )
        if self.num_pos < 0:
            raise BadParameterError(
                f"num_pos must be >= 0, got {self.num_pos}"
            )

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "DetectionStats":
        """
        Raises:
            BadParameterError: If `label` or `num_pos` is missing, or a
                value is not numeric.
        """
        if not isinstance(data, Mapping):
            raise BadParameterError("Detection stats must be a mapping")
        for key in ("label", "num_pos"):
            if key not in data:
                raise BadParameterError(f"Detection stats must have '{key}'")
        label = _as_int(data["label"], "label")

        all_logits = None
        if "all_logits" in data:
            try:
                all_logits = tuple(
                    tuple(float(v) for v in entry["logits"])
                    for entry in data["all_logits"]
                )
            except (KeyError, TypeError, ValueError) as e:
                raise BadParameterError(
                    f"all_logits of label {label} must be a list of "
                    "{'logits': [numbers]} entries"
                ) from e
        return cls(
            label=label,
            num_pos=_as_int(data["num_pos"], "num_pos"),
            tp_d=_as_vector(data.get("tp_d", []), "tp_d"),
            tp_i=_as_flags(data.get("tp_i", []), "tp_i"),
            fp_d=_as_vector(data.get("fp_d", []), "fp_d"),
            fp_i=_as_flags(data.get("fp_i", []), "fp_i"),
            all_logits=all_logits,
        )


@dataclass(frozen=True)
class BatchPayload:
    """
    One evaluation pass, consumed read-only by every metric.

    Attributes:
        samples: Per-sample predictions and targets, in batch order.
        nclasses: Number of classes (-1 when not applicable).
        regression: Targets are continuous values.
        multilabel: Targets are per-class vectors.
        segmentation: Predictions and targets are per-pixel class ids.
        bbox: Payload carries detection statistics instead of samples.
        timeseries: Number of interleaved series, None when not a
            time-series task.
        net_meas: The network reports its own accuracy in sample 0.
        autoencoder: The model is an autoencoder.
        ignore_label: Target value excluded from distance metrics.
        clnames: Class-id to name mapping.
        detections: Detection statistics, one group per image.
        loss: Test loss, passed through to the measure record.
        train_loss: Training loss, passed through.
        iteration: Training iteration, passed through.
        learning_rate: Learning rate, passed through.
    """

    samples: tuple[SampleRecord, ...]
    nclasses: int = -1
    regression: bool = False
    multilabel: bool = False
    segmentation: bool = False
    bbox: bool = False
    timeseries: int | None = None
    net_meas: bool = False
    autoencoder: bool = False
    ignore_label: int | None = None
    clnames: tuple[str, ...] | None = None
    detections: tuple[tuple[DetectionStats, ...], ...] = field(
        default_factory=tuple
    )
    loss: float | None = None
    train_loss: float | None = None
    iteration: float | None = None
    learning_rate: float | None = None

    def __post_init__(self) -> None:
        if self.timeseries is not None and self.timeseries < 1:
            raise BadParameterError(
                f"timeseries must be >= 1, got {self.timeseries}"
            )
        for i, sample in enumerate(self.samples):
            if sample.pred.size == 0:
                raise BadParameterError(f"Sample {i} has an empty pred")

    @property
    def batch_size(self) -> int:
        return len(self.samples)

    @cached_property
    def class_targets(self) -> NDArray[np.int64]:
        """
        Scalar class-id targets, validated against [0, nclasses).

        This is the single validation shared by every metric that
        indexes classes by target; it runs once per payload.

        Raises:
            BadParameterError: If a target is negative or >= nclasses.
        """
        targets = np.array(
            [s.target_value for s in self.samples], dtype=np.float64
        )
        for target in targets:
            if target < 0:
                raise BadParameterError(
                    "negative supervised discrete target "
                    "(e.g. wrong use of label_offset ?)"
                )
            if target >= self.nclasses:
                raise BadParameterError(
                    f"target class has id {target:g} is higher than the "
                    f"number of classes {self.nclasses} (e.g. wrong number "
                    "of classes specified with nclasses)"
                )
        return targets.astype(np.int64)

    @cached_property
    def paired_vectors(
        self,
    ) -> tuple[tuple[NDArray[np.float64], NDArray[np.float64]], ...]:
        """
        (target, pred) vector pairs of equal length.

        Raises:
            BadParameterError: If a sample's target and pred lengths differ.
        """
        pairs = []
        for i, sample in enumerate(self.samples):
            if sample.target.size != sample.pred.size:
                raise BadParameterError(
                    f"Sample {i} has {sample.target.size} targets "
                    f"for {sample.pred.size} predictions"
                )
            pairs.append((sample.target, sample.pred))
        return tuple(pairs)

    def class_name(self, class_id: int) -> str:
        if self.clnames is None:
            raise BadParameterError("clnames are required for this measure")
        if not 0 <= class_id < len(self.clnames):
            raise BadParameterError(
                f"class id {class_id} has no name among "
                f"{len(self.clnames)} clnames"
            )
        return self.clnames[class_id]

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "BatchPayload":
        """
        Parse the key-indexed payload produced by a test pass.

        Samples live under keys "0" .. "batch_size - 1". For detection
        payloads, key "0" instead holds groups "0" .. "pos_count - 1",
        each a list of per-class statistics.

        Raises:
            BadParameterError: If the payload is malformed.
        """
        if "batch_size" not in data:
            raise BadParameterError("Batch payload must have 'batch_size'")
        batch_size = _as_int(data["batch_size"], "batch_size")
        if batch_size < 0:
            raise BadParameterError(
                f"batch_size must be >= 0, got {batch_size}"
            )

        bbox = bool(data.get("bbox", False))

        timeseries = data.get("timeseries")
        if isinstance(timeseries, bool) or not data.get("timeserie", True):
            if timeseries is True:
                raise BadParameterError(
                    "timeseries flag requires the number of series"
                )
            timeseries = None

        samples: list[SampleRecord] = []
        detections: list[tuple[DetectionStats, ...]] = []
        if bbox:
            pos_count = _as_int(data.get("pos_count", 0), "pos_count")
            if pos_count > 0:
                group = _get_indexed(data, 0)
                for i in range(pos_count):
                    entries = _get_indexed(group, i)
                    if not isinstance(entries, Sequence) or isinstance(
                        entries, str
                    ):
                        raise BadParameterError(
                            f"Detection group {i} must be a list of stats"
                        )
                    detections.append(
                        tuple(DetectionStats.from_api(s) for s in entries)
                    )
        else:
            for i in range(batch_size):
                samples.append(SampleRecord.from_api(_get_indexed(data, i), i))

        clnames = data.get("clnames")
        ignore_label = data.get("ignore_label")

        def _optional_float(key: str) -> float | None:
            value = data.get(key)
            return None if value is None else _as_float(value, key)

        return cls(
            samples=tuple(samples),
            nclasses=_as_int(data.get("nclasses", -1), "nclasses"),
            regression=bool(data.get("regression", False)),
            multilabel=bool(data.get("multilabel", False)),
            segmentation=bool(data.get("segmentation", False)),
            bbox=bbox,
            timeseries=(
                None if timeseries is None else _as_int(timeseries, "timeseries")
            ),
            net_meas=bool(data.get("net_meas", False)),
            autoencoder=bool(data.get("autoencoder", False)),
            ignore_label=(
                None
                if ignore_label is None
                else _as_int(ignore_label, "ignore_label")
            ),
            clnames=None if clnames is None else tuple(clnames),
            detections=tuple(detections),
            loss=_optional_float("loss"),
            train_loss=_optional_float("train_loss"),
            iteration=_optional_float("iteration"),
            learning_rate=_optional_float("learning_rate"),
        )


def stack_predictions(
    samples: Sequence[SampleRecord],
) -> NDArray[np.float64]:
    """Stack per-sample prediction vectors into a (batch, n) matrix."""
    if not samples:
        return np.zeros((0, 0), dtype=np.float64)
    sizes = {s.pred.size for s in samples}
    if len(sizes) != 1:
        raise BadParameterError(
            f"Prediction vectors differ in length: {sorted(sizes)}"
        )
    return np.vstack([s.pred for s in samples])
