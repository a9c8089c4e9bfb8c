"""
Integration tests for the prediction output path.

Backend responses go through aggregation, top-k selection, a numpy
nearest-neighbor index and serialization.
"""

from collections.abc import Sequence

import numpy as np
import pytest

from scoring_service.core.config import get_settings
from scoring_service.results import (
    NeighborRef,
    OutputParameters,
    SimilaritySearch,
    SupervisedOutput,
    TaskFlags,
)


class EuclideanIndex:
    """Brute-force L2 index over stored vectors."""

    def __init__(self, dim: int) -> None:
        self.dim = dim
        self.refs: list[NeighborRef] = []
        self.vectors = np.zeros((0, dim))
        self.built = False

    def index(
        self, refs: Sequence[NeighborRef], vectors: Sequence[Sequence[float]]
    ) -> None:
        self.refs.extend(refs)
        self.vectors = np.vstack([self.vectors, np.asarray(vectors)])

    def build_index(self) -> None:
        self.built = True

    def search(
        self, vector: Sequence[float], k: int
    ) -> list[tuple[NeighborRef, float]]:
        dists = np.linalg.norm(self.vectors - np.asarray(vector), axis=1)
        order = np.argsort(dists, kind="stable")[:k]
        return [(self.refs[i], float(dists[i])) for i in order]


@pytest.fixture(autouse=True)
def _fresh_settings() -> None:
    get_settings.cache_clear()


def test_classification_with_similarity_search() -> None:
    indexes: list[EuclideanIndex] = []

    def factory(dim: int, params: OutputParameters) -> EuclideanIndex:
        indexes.append(EuclideanIndex(dim))
        return indexes[-1]

    output = SupervisedOutput()
    output.add_results(
        [
            {"uri": "a", "probs": [0.7, 0.2, 0.1], "cats": ["x", "y", "z"]},
            {"uri": "b", "probs": [0.3, 0.6, 0.1], "cats": ["x", "y", "z"]},
        ]
    )
    output.add_results(
        [{"uri": "a", "probs": [0.0, 0.0, 1.0], "cats": ["x", "y", "z"]}]
    )
    params = OutputParameters(best=2, index=True, build_index=True, search=True)
    out = output.finalize(
        params, TaskFlags(nclasses=3), SimilaritySearch(factory)
    )

    (index,) = indexes
    assert index.dim == 2
    assert index.built

    first, second = out["predictions"]
    assert first["uri"] == "a"
    assert first["indexed"] is True
    assert first["classes"] == [
        {"cat": "x", "prob": 0.7},
        {"cat": "y", "prob": 0.2, "last": True},
    ]
    assert [nn["uri"] for nn in first["nns"]] == ["a", "b"]
    assert first["nns"][0]["dist"] == 0.0
    assert second["nns"][1]["dist"] == pytest.approx(np.sqrt(0.02))


def test_detection_boxes_deduplicated() -> None:
    box = {"xmin": 0, "ymin": 0, "xmax": 10, "ymax": 10}
    other = {"xmin": 5, "ymin": 5, "xmax": 20, "ymax": 20}
    output = SupervisedOutput(best=1)
    output.add_results(
        [
            {
                "uri": "img",
                "probs": [0.9, 0.8, 0.3],
                "cats": ["car", "car", "person"],
                "bboxes": [box, box, other],
            }
        ]
    )
    out = output.finalize(OutputParameters(), TaskFlags(nclasses=3, bbox=True))

    (pred,) = out["predictions"]
    assert [(e["cat"], e["prob"]) for e in pred["classes"]] == [
        ("car", 0.9),
        ("person", 0.3),
    ]
    assert pred["classes"][1]["bbox"] == other
    assert pred["classes"][1]["last"] is True
