"""Tests for metric input data models."""

import numpy as np
import pytest

from scoring_service.core.exceptions import BadParameterError
from scoring_service.metrics.data_models import (
    BatchPayload,
    DetectionStats,
    SampleRecord,
    stack_predictions,
)


def _classification_payload(targets: list[float], nclasses: int = 3) -> dict:
    data: dict = {"batch_size": len(targets), "nclasses": nclasses}
    for i, target in enumerate(targets):
        data[str(i)] = {"pred": [1.0 / nclasses] * nclasses, "target": target}
    return data


class TestBatchPayloadFromApi:
    def test_parses_samples_and_flags(self) -> None:
        data = _classification_payload([0, 2])
        data["clnames"] = ["a", "b", "c"]
        data["loss"] = 0.25
        batch = BatchPayload.from_api(data)
        assert batch.batch_size == 2
        assert batch.nclasses == 3
        assert batch.clnames == ("a", "b", "c")
        assert batch.loss == 0.25
        assert batch.samples[1].target_value == 2.0
        assert not batch.regression

    def test_integer_keys_accepted(self) -> None:
        batch = BatchPayload.from_api(
            {"batch_size": 1, 0: {"pred": [0.5], "target": 1.0}}
        )
        assert batch.samples[0].pred.tolist() == [0.5]

    def test_missing_batch_size(self) -> None:
        with pytest.raises(BadParameterError, match="batch_size"):
            BatchPayload.from_api({"0": {"pred": [1.0], "target": 0}})

    def test_missing_sample(self) -> None:
        with pytest.raises(BadParameterError, match="missing entry 1"):
            BatchPayload.from_api(
                {"batch_size": 2, "0": {"pred": [1.0], "target": 0}}
            )

    def test_sample_without_target(self) -> None:
        with pytest.raises(BadParameterError, match="'pred' and 'target'"):
            BatchPayload.from_api({"batch_size": 1, "0": {"pred": [1.0]}})

    def test_non_numeric_pred(self) -> None:
        with pytest.raises(BadParameterError, match="numeric"):
            BatchPayload.from_api(
                {"batch_size": 1, "0": {"pred": ["x"], "target": 0}}
            )

    def test_non_numeric_batch_size(self) -> None:
        with pytest.raises(BadParameterError, match="batch_size must be an integer"):
            BatchPayload.from_api({"batch_size": "two"})

    def test_non_numeric_pass_through(self) -> None:
        data = _classification_payload([0])
        data["loss"] = "high"
        with pytest.raises(BadParameterError, match="loss must be a number"):
            BatchPayload.from_api(data)

    def test_timeseries_count(self) -> None:
        data = {
            "batch_size": 1,
            "timeserie": True,
            "timeseries": 2,
            "0": {"pred": [0.0] * 4, "target": [0.0] * 4},
        }
        assert BatchPayload.from_api(data).timeseries == 2

    def test_timeseries_flag_without_count(self) -> None:
        data = {
            "batch_size": 1,
            "timeseries": True,
            "0": {"pred": [0.0], "target": [0.0]},
        }
        with pytest.raises(BadParameterError, match="number of series"):
            BatchPayload.from_api(data)

    def test_detection_groups(self) -> None:
        stats = {
            "label": 1,
            "num_pos": 1,
            "tp_d": [0.8],
            "tp_i": [1],
            "fp_d": [],
            "fp_i": [],
        }
        data = {
            "batch_size": 1,
            "bbox": True,
            "pos_count": 1,
            "0": {"0": [stats]},
        }
        batch = BatchPayload.from_api(data)
        assert batch.samples == ()
        (group,) = batch.detections
        assert group[0].label == 1
        assert group[0].tp_i.tolist() == [1]


class TestClassTargets:
    def test_valid(self) -> None:
        batch = BatchPayload.from_api(_classification_payload([0, 1, 2]))
        assert batch.class_targets.tolist() == [0, 1, 2]

    def test_negative_target(self) -> None:
        batch = BatchPayload.from_api(_classification_payload([0, -1]))
        with pytest.raises(BadParameterError, match="negative supervised"):
            _ = batch.class_targets

    def test_target_above_nclasses(self) -> None:
        batch = BatchPayload.from_api(_classification_payload([3]))
        with pytest.raises(BadParameterError, match="higher than the number"):
            _ = batch.class_targets

    def test_cached(self) -> None:
        batch = BatchPayload.from_api(_classification_payload([1]))
        assert batch.class_targets is batch.class_targets


class TestPairedVectors:
    def test_length_mismatch(self) -> None:
        batch = BatchPayload(
            samples=(
                SampleRecord(pred=np.array([0.1, 0.2]), target=np.array([1.0])),
            )
        )
        with pytest.raises(BadParameterError, match="1 targets for 2"):
            _ = batch.paired_vectors


class TestDetectionStats:
    def test_mismatched_tp(self) -> None:
        with pytest.raises(BadParameterError, match="tp_d and tp_i"):
            DetectionStats(
                label=0,
                num_pos=1,
                tp_d=np.array([0.5, 0.4]),
                tp_i=np.array([1]),
                fp_d=np.array([]),
                fp_i=np.array([]),
            )

    def test_missing_label(self) -> None:
        with pytest.raises(BadParameterError, match="'label'"):
            DetectionStats.from_api({"num_pos": 1, "tp_d": [0.5], "tp_i": [1]})

    def test_non_numeric_scores(self) -> None:
        with pytest.raises(BadParameterError, match="tp_d must be numeric"):
            DetectionStats.from_api(
                {"label": 0, "num_pos": 1, "tp_d": ["x"], "tp_i": [1]}
            )

    def test_malformed_group_in_payload(self) -> None:
        data = {"batch_size": 1, "bbox": True, "pos_count": 1, "0": {"0": 3}}
        with pytest.raises(BadParameterError, match="list of stats"):
            BatchPayload.from_api(data)

    def test_all_logits(self) -> None:
        stats = DetectionStats.from_api(
            {
                "label": 0,
                "num_pos": 0,
                "all_logits": [{"logits": [0.1, 0.9]}],
            }
        )
        assert stats.all_logits == ((0.1, 0.9),)


def test_stack_predictions_ragged() -> None:
    samples = [
        SampleRecord(pred=np.array([0.1, 0.9]), target=np.array([0.0])),
        SampleRecord(pred=np.array([1.0]), target=np.array([0.0])),
    ]
    with pytest.raises(BadParameterError, match="differ in length"):
        stack_predictions(samples)
