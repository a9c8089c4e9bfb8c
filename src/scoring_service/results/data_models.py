"""
Data models for per-sample prediction results.

This module defines the data structures for:
- PredictionRecord: one raw per-sample response from a model backend
- ScoreRecord: one sample's ranked (score, payload) collections
- ResultSet: the ordered, deduplicated set of ScoreRecords
"""

from bisect import insort
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from scoring_service.core.exceptions import InternalError

T = TypeVar("T")


class BoundingBox(BaseModel):
    """Axis-aligned detection box."""

    xmin: float
    ymin: float
    xmax: float
    ymax: float
    model_config = ConfigDict(frozen=True)

    def key(self) -> str:
        """Identity key built from the four coordinates at six decimals."""
        return (
            f"{self.xmin:.6f}-{self.ymin:.6f}-"
            f"{self.xmax:.6f}-{self.ymax:.6f}"
        )


class RoiVector(BaseModel):
    """Region-of-interest feature vector attached to a detection."""

    vals: list[float]
    model_config = ConfigDict(frozen=True)


class SeriesOutput(BaseModel):
    """One time-series output produced for a sample."""

    out: list[float]
    model_config = ConfigDict(frozen=True)


class RankedEntries(Generic[T]):
    """
    Vector of (score, payload) pairs kept sorted by score.

    Entries with equal scores keep their insertion order, so iteration
    is deterministic even when a backend emits duplicate scores.
    """

    def __init__(self, descending: bool = True) -> None:
        self._descending = descending
        self._entries: list[tuple[float, T]] = []

    def _sort_key(self, entry: tuple[float, T]) -> float:
        return -entry[0] if self._descending else entry[0]

    def insert(self, score: float, payload: T) -> None:
        # insort places new items after existing equal keys
        insort(self._entries, (score, payload), key=self._sort_key)

    def head(self, n: int | None = None) -> list[tuple[float, T]]:
        """Return the first n entries (all of them when n is None)."""
        if n is None:
            return list(self._entries)
        return self._entries[: max(n, 0)]

    def scores(self) -> list[float]:
        return [score for score, _ in self._entries]

    def payloads(self) -> list[T]:
        return [payload for _, payload in self._entries]

    def __iter__(self) -> Iterator[tuple[float, T]]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __getitem__(self, idx: int) -> tuple[float, T]:
        return self._entries[idx]

    def __repr__(self) -> str:
        return f"RankedEntries({self._entries!r})"


@dataclass(frozen=True)
class NeighborRef:
    """
    A reference stored in, or returned by, the similarity index.

    Attributes:
        uri: Identifier of the indexed sample.
        bbox: Box of the indexed detection, for roi indexing.
        prob: Score of the indexed detection, for roi indexing.
        cat: Category of the indexed detection, for roi indexing.
    """

    uri: str
    bbox: BoundingBox | None = None
    prob: float | None = None
    cat: str | None = None


@dataclass
class ScoreRecord:
    """
    One sample's ranked results.

    The populated collections among cats, bboxes, rois, masks and series
    have equal length and are iterated in lock-step: the same index
    refers to the same detection.
    """

    uri: str
    loss: float = 0.0
    index_uri: str | None = None
    cats: RankedEntries[str] = field(default_factory=RankedEntries)
    bboxes: RankedEntries[BoundingBox] = field(default_factory=RankedEntries)
    rois: RankedEntries[RoiVector] = field(default_factory=RankedEntries)
    masks: RankedEntries[dict[str, Any]] = field(
        default_factory=RankedEntries
    )
    series: RankedEntries[SeriesOutput] = field(default_factory=RankedEntries)
    nns: RankedEntries[NeighborRef] = field(
        default_factory=lambda: RankedEntries(descending=False)
    )
    bbox_nns: list[RankedEntries[NeighborRef]] = field(default_factory=list)

    def empty_copy(self) -> "ScoreRecord":
        """New record with the same identity and no entries."""
        return ScoreRecord(
            uri=self.uri, loss=self.loss, index_uri=self.index_uri
        )

    def add_nn(self, distance: float, ref: NeighborRef) -> None:
        self.nns.insert(distance, ref)

    def add_bbox_nn(
        self, bbox_idx: int, distance: float, ref: NeighborRef
    ) -> None:
        if not self.bbox_nns:
            self.bbox_nns = [
                RankedEntries(descending=False)
                for _ in range(len(self.bboxes))
            ]
        self.bbox_nns[bbox_idx].insert(distance, ref)

    def check_lockstep(self) -> None:
        """Raise if populated collections have diverging lengths."""
        lengths = {
            name: len(entries)
            for name, entries in (
                ("cats", self.cats),
                ("bboxes", self.bboxes),
                ("rois", self.rois),
                ("masks", self.masks),
                ("series", self.series),
            )
            if entries
        }
        if len(set(lengths.values())) > 1:
            raise InternalError(
                f"Collections of {self.uri} diverge in length: {lengths}"
            )


class ResultSet:
    """
    Mapping from sample id to ScoreRecord, in first-insertion order.

    Adding an id that is already present is a no-op: the first
    occurrence is kept.
    """

    def __init__(self) -> None:
        self._records: dict[str, ScoreRecord] = {}

    def add(self, record: ScoreRecord) -> bool:
        """Insert a record. Returns False if its id was already present."""
        if record.uri in self._records:
            return False
        self._records[record.uri] = record
        return True

    def get(self, uri: str) -> ScoreRecord | None:
        return self._records.get(uri)

    @property
    def ids(self) -> list[str]:
        return list(self._records)

    def __contains__(self, uri: object) -> bool:
        return uri in self._records

    def __iter__(self) -> Iterator[ScoreRecord]:
        return iter(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, idx: int) -> ScoreRecord:
        return list(self._records.values())[idx]


class PredictionRecord(BaseModel):
    """Raw per-sample response from a model backend."""

    uri: str
    loss: float = 0.0
    probs: list[float]
    cats: list[str] | None = None
    bboxes: list[BoundingBox] | None = None
    vals: list[RoiVector] | None = None
    series: list[SeriesOutput] | None = None
    masks: list[dict[str, Any]] | None = None
    index_uri: str | None = None
    model_config = ConfigDict(frozen=True)


class OutputParameters(BaseModel):
    """Output shaping parameters of a prediction request."""

    best: int | None = None
    index: bool = False
    build_index: bool = False
    search: bool = False
    search_nn: int | None = Field(default=None, gt=0)
    multibox_rois: bool = False


@dataclass(frozen=True)
class TaskFlags:
    """Task description of the backend that produced the results."""

    nclasses: int = -1
    regression: bool = False
    autoencoder: bool = False
    bbox: bool = False
    roi: bool = False
    mask: bool = False
    multibox_rois: bool = False
    timeseries: bool = False

    @property
    def has_multibox_rois(self) -> bool:
        return self.roi and self.multibox_rois
