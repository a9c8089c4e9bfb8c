import numpy as np
import pytest

from scoring_service.metrics.data_models import BatchPayload, SampleRecord
from scoring_service.metrics.segmentation import segmentation_accuracy


def _batch(pairs: list[tuple[list[int], list[int]]], nclasses: int) -> BatchPayload:
    samples = tuple(
        SampleRecord(
            pred=np.array(pred, dtype=np.float64),
            target=np.array(target, dtype=np.float64),
        )
        for target, pred in pairs
    )
    return BatchPayload(samples=samples, nclasses=nclasses, segmentation=True)


class TestSegmentationAccuracy:
    def test_single_image(self) -> None:
        result = segmentation_accuracy(_batch([([0, 0, 1, 1], [0, 1, 1, 1])], 2))
        assert result.acc == pytest.approx(0.75)
        assert result.clacc == pytest.approx([0.5, 1.0])
        assert result.cliou == pytest.approx([0.5, 2 / 3])
        assert result.meanacc == pytest.approx(0.75)
        assert result.meaniou == pytest.approx(7 / 12)

    def test_absent_class_excluded_from_means(self) -> None:
        result = segmentation_accuracy(_batch([([0, 1], [0, 1])], 3))
        assert result.clacc == [1.0, 1.0, 0.0]
        assert result.meanacc == pytest.approx(1.0)
        assert result.meaniou == pytest.approx(1.0)

    def test_per_class_averaged_over_images_with_class(self) -> None:
        result = segmentation_accuracy(
            _batch([([0, 0], [0, 0]), ([1, 1], [0, 1])], 2)
        )
        assert result.acc == pytest.approx(0.75)
        # class 0 only appears in the first image
        assert result.clacc[0] == pytest.approx(1.0)
        assert result.clacc[1] == pytest.approx(0.5)

    def test_empty_batch(self) -> None:
        result = segmentation_accuracy(BatchPayload(samples=(), nclasses=2))
        assert result.acc == 0.0
        assert result.meanacc == 0.0
