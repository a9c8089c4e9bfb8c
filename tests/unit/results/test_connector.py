"""Tests for the supervised output connector."""

from collections.abc import Iterator, Sequence

import pytest

from scoring_service.core.config import get_settings
from scoring_service.results.connector import SupervisedOutput
from scoring_service.results.data_models import (
    NeighborRef,
    OutputParameters,
    TaskFlags,
)
from scoring_service.results.similarity import SimilaritySearch


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class RecordingIndex:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.refs: list[NeighborRef] = []

    def index(
        self, refs: Sequence[NeighborRef], vectors: Sequence[Sequence[float]]
    ) -> None:
        self.calls.append("index")
        self.refs.extend(refs)

    def build_index(self) -> None:
        self.calls.append("build_index")

    def search(
        self, vector: Sequence[float], k: int
    ) -> list[tuple[NeighborRef, float]]:
        self.calls.append("search")
        return [(ref, 0.0) for ref in self.refs[:k]]


def _classification_output(best: int | None = None) -> SupervisedOutput:
    output = SupervisedOutput(best=best)
    output.add_results(
        [
            {"uri": "a", "probs": [0.7, 0.2, 0.1], "cats": ["x", "y", "z"]},
            {"uri": "b", "probs": [0.1, 0.3, 0.6], "cats": ["x", "y", "z"]},
        ]
    )
    return output


class TestSupervisedOutput:
    def test_default_best_from_settings(self) -> None:
        out = _classification_output().finalize(
            OutputParameters(), TaskFlags(nclasses=3)
        )
        assert [len(p["classes"]) for p in out["predictions"]] == [1, 1]
        assert out["predictions"][1]["classes"][0]["cat"] == "z"

    def test_default_best_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCORING_DEFAULT_BEST", "2")
        get_settings.cache_clear()
        out = _classification_output().finalize(
            OutputParameters(), TaskFlags(nclasses=3)
        )
        assert [len(p["classes"]) for p in out["predictions"]] == [2, 2]

    def test_request_best_overrides(self) -> None:
        out = _classification_output().finalize(
            OutputParameters(best=3), TaskFlags(nclasses=3)
        )
        assert len(out["predictions"][0]["classes"]) == 3

    def test_init_reads_best(self) -> None:
        output = _classification_output()
        output.init(OutputParameters(best=2))
        assert output.best == 2
        output.init(OutputParameters())
        assert output.best == 2

    def test_regression_keeps_all_outputs(self) -> None:
        output = SupervisedOutput()
        output.add_results(
            [{"uri": "r", "probs": [1.5, -2.0], "cats": ["0", "1"]}]
        )
        out = output.finalize(
            OutputParameters(), TaskFlags(nclasses=2, regression=True)
        )
        (pred,) = out["predictions"]
        assert [e["val"] for e in pred["vector"]] == [1.5, -2.0]

    def test_index_skipped_without_similarity(self) -> None:
        out = _classification_output().finalize(
            OutputParameters(index=True, search=True), TaskFlags(nclasses=3)
        )
        assert all("indexed" not in p for p in out["predictions"])

    def test_index_build_and_search(self) -> None:
        index = RecordingIndex()
        similarity = SimilaritySearch(lambda dim, params: index)
        params = OutputParameters(index=True, build_index=True, search=True)
        out = _classification_output(best=3).finalize(
            params, TaskFlags(nclasses=3), similarity
        )
        assert index.calls[:2] == ["index", "build_index"]
        assert index.calls.count("search") == 2
        for pred in out["predictions"]:
            assert pred["indexed"] is True
            assert [nn["uri"] for nn in pred["nns"]] == ["a", "b"]

    def test_duplicates_dropped_before_finalize(self) -> None:
        output = _classification_output()
        output.add_results([{"uri": "a", "probs": [1.0], "cats": ["w"]}])
        out = output.finalize(OutputParameters(), TaskFlags(nclasses=3))
        assert [p["uri"] for p in out["predictions"]] == ["a", "b"]
        assert out["predictions"][0]["classes"][0]["cat"] == "x"

    def test_timeseries_search_leaves_results_untouched(self) -> None:
        output = SupervisedOutput()
        output.add_results(
            [
                {
                    "uri": "s1",
                    "probs": [1.0],
                    "cats": ["0"],
                    "series": [{"out": [0.1, 0.2]}],
                },
                {
                    "uri": "s2",
                    "probs": [1.0],
                    "cats": ["0"],
                    "series": [{"out": [0.3, 0.4]}],
                },
            ]
        )
        index = RecordingIndex()
        similarity = SimilaritySearch(lambda dim, params: index)
        flags = TaskFlags(nclasses=1, timeseries=True)
        output.finalize(OutputParameters(index=True), flags, similarity)

        params = OutputParameters(search=True, search_nn=2)
        first = output.finalize(params, flags, similarity)
        second = output.finalize(params, flags, similarity)
        assert first == second
        assert [len(p["nns"]) for p in second["predictions"]] == [2, 2]
        assert all(not record.nns for record in output.results)
