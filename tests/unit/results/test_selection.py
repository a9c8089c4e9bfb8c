"""Tests for top-k selection."""

from scoring_service.results.data_models import (
    BoundingBox,
    ResultSet,
    RoiVector,
    ScoreRecord,
)
from scoring_service.results.selection import best_cats


def _classification_results() -> ResultSet:
    results = ResultSet()
    for uri, scores in (("a", [0.5, 0.3, 0.2]), ("b", [0.1, 0.6, 0.3])):
        record = ScoreRecord(uri=uri)
        for i, score in enumerate(scores):
            record.cats.insert(score, f"c{i}")
        results.add(record)
    return results


def _box(x: float) -> BoundingBox:
    return BoundingBox(xmin=x, ymin=x, xmax=x + 1, ymax=x + 1)


def _detection_record(boxes: list[tuple[float, str, float]]) -> ScoreRecord:
    record = ScoreRecord(uri="img")
    for score, cat, x in boxes:
        record.cats.insert(score, cat)
        record.bboxes.insert(score, _box(x))
        record.rois.insert(score, RoiVector(vals=[x, score]))
    return record


def _as_tuples(results: ResultSet) -> list[tuple[str, list[tuple[float, str]]]]:
    return [(r.uri, list(r.cats)) for r in results]


class TestBestCatsClassification:
    def test_keeps_top_k(self) -> None:
        selected = best_cats(
            _classification_results(), 2, 3, False, False, False
        )
        a = selected.get("a")
        b = selected.get("b")
        assert a is not None and b is not None
        assert a.cats.payloads() == ["c0", "c1"]
        assert b.cats.payloads() == ["c1", "c2"]

    def test_unbounded_is_noop(self) -> None:
        results = _classification_results()
        selected = best_cats(results, -1, 3, False, False, False)
        assert _as_tuples(selected) == _as_tuples(results)

    def test_best_above_available_is_noop(self) -> None:
        results = _classification_results()
        selected = best_cats(results, 10, 3, False, False, False)
        assert _as_tuples(selected) == _as_tuples(results)

    def test_does_not_mutate_input(self) -> None:
        results = _classification_results()
        best_cats(results, 1, 3, False, False, False)
        a = results.get("a")
        assert a is not None
        assert len(a.cats) == 3

    def test_preserves_order_of_ids(self) -> None:
        selected = best_cats(
            _classification_results(), 1, 3, False, False, False
        )
        assert selected.ids == ["a", "b"]


class TestBestCatsDetection:
    def test_best_equal_nclasses_keeps_all(self) -> None:
        results = ResultSet()
        results.add(
            _detection_record([(0.9, "a", 0), (0.8, "b", 0), (0.7, "c", 1)])
        )
        selected = best_cats(results, 3, 3, True, False, False)
        assert len(selected[0].cats) == 3

    def test_dedup_caps_repeated_boxes(self) -> None:
        """Each distinct box is kept at most `best` times."""
        results = ResultSet()
        results.add(
            _detection_record(
                [
                    (0.9, "dog", 0),
                    (0.8, "cat", 0),
                    (0.7, "bird", 1),
                    (0.6, "fox", 2),
                ]
            )
        )
        selected = best_cats(results, 1, 5, True, False, False)
        record = selected[0]
        assert record.cats.payloads() == ["dog", "bird", "fox"]
        assert [b.xmin for b in record.bboxes.payloads()] == [0, 1, 2]
        assert len(record.rois) == 0

    def test_dedup_keeps_rois_in_lockstep(self) -> None:
        results = ResultSet()
        results.add(
            _detection_record([(0.9, "dog", 0), (0.8, "cat", 0), (0.7, "b", 1)])
        )
        selected = best_cats(results, 1, 5, True, True, False)
        record = selected[0]
        record.check_lockstep()
        assert [r.vals for r in record.rois.payloads()] == [[0, 0.9], [1, 0.7]]

    def test_missing_rois_skipped(self) -> None:
        results = ResultSet()
        record = ScoreRecord(uri="img")
        record.cats.insert(0.9, "dog")
        record.bboxes.insert(0.9, _box(0))
        results.add(record)
        selected = best_cats(results, 1, 5, True, True, False)
        assert selected[0].cats.payloads() == ["dog"]
        assert len(selected[0].rois) == 0
