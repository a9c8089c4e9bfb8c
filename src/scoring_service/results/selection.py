"""
Top-k selection over a ResultSet.
"""

import logging

from scoring_service.results.data_models import ResultSet, ScoreRecord

logger = logging.getLogger(__name__)

UNBOUNDED_BEST = -1


def _copy_head(
    source: ScoreRecord, target: ScoreRecord, n: int | None
) -> None:
    """Copy the n highest-score entries of every populated collection."""
    for score, cat in source.cats.head(n):
        target.cats.insert(score, cat)
    for score, bbox in source.bboxes.head(n):
        target.bboxes.insert(score, bbox)
    for score, roi in source.rois.head(n):
        target.rois.insert(score, roi)
    for score, mask in source.masks.head(n):
        target.masks.insert(score, mask)
    for score, serie in source.series.head(n):
        target.series.insert(score, serie)


def _dedup_boxes(
    source: ScoreRecord,
    target: ScoreRecord,
    best: int,
    has_roi: bool,
    has_mask: bool,
) -> None:
    """
    Keep each detection while its box key has been seen at most `best` times.

    This caps repeated occurrences of the same box, not the total number
    of boxes retained for the sample.
    """
    use_rois = has_roi and bool(source.rois)
    use_masks = has_mask and bool(source.masks)
    if has_roi and not use_rois:
        logger.debug(f"No roi entries for {source.uri}, skipping rois")
    if has_mask and not use_masks:
        logger.debug(f"No mask entries for {source.uri}, skipping masks")

    box_counts: dict[str, int] = {}
    for idx, (bbox_score, bbox) in enumerate(source.bboxes):
        key = bbox.key()
        box_counts[key] = box_counts.get(key, 0) + 1
        if box_counts[key] > best:
            continue

        if idx < len(source.cats):
            cat_score, cat = source.cats[idx]
            target.cats.insert(cat_score, cat)
        target.bboxes.insert(bbox_score, bbox)
        if use_rois:
            roi_score, roi = source.rois[idx]
            target.rois.insert(roi_score, roi)
        if use_masks:
            mask_score, mask = source.masks[idx]
            target.masks.insert(mask_score, mask)


def best_cats(
    results: ResultSet,
    best: int,
    nclasses: int,
    has_bbox: bool,
    has_roi: bool,
    has_mask: bool,
) -> ResultSet:
    """
    Reduce a ResultSet to a bounded, task-aware subset.

    Without bbox/roi/mask, keep the `best` highest-score entries of each
    collection (`best == -1` keeps everything). With detections, either
    keep everything (`best == -1` or `best == nclasses`) or deduplicate
    by box key, keeping at most `best` occurrences of each distinct box.

    Args:
        results: ResultSet to reduce. Never mutated.
        best: Number of entries to keep, -1 for all.
        nclasses: Number of classes of the model.
        has_bbox: Whether results carry detection boxes.
        has_roi: Whether results carry roi vectors.
        has_mask: Whether results carry masks.

    Returns:
        A new ResultSet with the same ids in the same order.
    """
    unbounded = best == UNBOUNDED_BEST
    detection = has_bbox or has_roi or has_mask

    selected = ResultSet()
    for record in results:
        reduced = record.empty_copy()
        if not detection:
            _copy_head(record, reduced, None if unbounded else best)
        elif unbounded or best == nclasses:
            _copy_head(record, reduced, None)
        else:
            _dedup_boxes(record, reduced, best, has_roi, has_mask)
        selected.add(reduced)
    return selected
