# bubble_detector.py
"""
Hierarchical shape detection inside the answer region.

Three cascaded contour passes, each run on the region of interest found by
the previous one: answer blocks (tall rectangles), question rows (wide
rectangles) and bubbles (near-circular blobs). All coordinates returned are
in answer-region coordinates.
"""
import logging
from dataclasses import replace

import cv2
import numpy as np

from . import geometry
from .calibration import calibrate_spacing
from .errors import BlockCountMismatch, BubbleCountMismatch, RowCountMismatch
from .grid_mapper import assign_row_indices, group_into_rows, question_number
from .models import Block, Bubble, QuestionRow

logger = logging.getLogger(__name__)


def _inset_roi(binary, rect, inset):
    """Crop of `rect` shrunk by `inset`, with the crop's offset."""
    h, w = binary.shape[:2]
    x, y, rw, rh = geometry.clip_rect(geometry.shrink_rect(rect, inset), w, h)
    return binary[y:y + rh, x:x + rw], (x, y)


def detect_blocks(binary, block_config, exclude=()):
    """
    Finds the tall answer-block rectangles, sorted left to right.

    Only external contours are considered; anything overlapping a box in
    `exclude` (known fiducial positions) is ignored.
    """
    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    blocks = []
    for contour in contours:
        if cv2.contourArea(contour) <= block_config.min_area:
            continue
        rect = cv2.boundingRect(contour)
        _, _, w, h = rect
        if w == 0 or h / float(w) < block_config.min_aspect:
            continue
        if any(geometry.rects_overlap(rect, box) for box in exclude):
            continue
        blocks.append(rect)
    blocks.sort(key=lambda r: r[0])
    logger.info("Found %d answer blocks among %d contours.", len(blocks), len(contours))
    return blocks


def require_block_count(blocks, layout_config, source_id=None):
    if len(blocks) != layout_config.block_count:
        raise BlockCountMismatch(
            "wrong number of answer blocks",
            expected=layout_config.block_count, actual=len(blocks), source=source_id,
        )


def _dedupe_rows(rects, max_dy, max_dx):
    kept = []
    for rect in rects:
        cx, cy = geometry.rect_center(rect)
        for i, other in enumerate(kept):
            ox, oy = geometry.rect_center(other)
            if abs(cy - oy) < max_dy and abs(cx - ox) < max_dx:
                if rect[2] * rect[3] > other[2] * other[3]:
                    kept[i] = rect
                break
        else:
            kept.append(rect)
    return kept


def _nested_contours(roi):
    """
    Every contour of `roi`, holes and nested shapes included.

    Printed frames are thicker than any fixed inset can clear, so the shapes
    inside a frame are children of the frame contour, not external contours.
    """
    contours, hierarchy = cv2.findContours(roi, cv2.RETR_TREE, cv2.CHAIN_APPROX_SIMPLE)
    if hierarchy is None:
        return []
    return list(contours)


def detect_rows(binary, block_rect, row_config):
    """
    Finds the wide question-row rectangles of one block, sorted top to bottom.

    A printed row frame yields an outer and an inner contour; the pair
    collapses into the larger one.
    """
    roi, (ox, oy) = _inset_roi(binary, block_rect, row_config.inset)
    contours = _nested_contours(roi)
    rows = []
    for contour in contours:
        area = cv2.contourArea(contour)
        if not row_config.min_area <= area <= row_config.max_area:
            continue
        x, y, w, h = cv2.boundingRect(contour)
        if h == 0 or w / float(h) <= row_config.min_aspect:
            continue
        rows.append((x + ox, y + oy, w, h))
    rows.sort(key=lambda r: r[1])
    return _dedupe_rows(rows, row_config.dedupe_dy, row_config.dedupe_dx)


def _is_valid_bubble(contour, bubble_config):
    """Whether a contour passes the configured bubble shape filters."""
    area = cv2.contourArea(contour)
    if not (bubble_config.min_area < area < bubble_config.max_area):
        return False

    if geometry.contour_circularity(contour) < bubble_config.min_circularity:
        return False

    x, y, w, h = cv2.boundingRect(contour)
    aspect_ratio = float(w) / h
    min_ratio, max_ratio = bubble_config.aspect_range
    return min_ratio <= aspect_ratio <= max_ratio


def _dedupe_concentric(bubbles):
    # an empty ring gives an outer and an inner circle around the same center
    kept = []
    for bubble in sorted(bubbles, key=lambda b: -b.radius):
        if all(geometry.distance(bubble.center, k.center) >= k.radius for k in kept):
            kept.append(bubble)
    return kept


def find_bubbles(roi, bubble_config, offset=(0, 0)):
    """Bubbles among all contours of `roi`, nested ones included, by circularity."""
    contours = _nested_contours(roi)
    bubbles = []
    for contour in contours:
        if not _is_valid_bubble(contour, bubble_config):
            continue
        M = cv2.moments(contour)
        if M['m00'] == 0:
            continue
        cx = M['m10'] / M['m00'] + offset[0]
        cy = M['m01'] / M['m00'] + offset[1]
        _, radius = cv2.minEnclosingCircle(contour)
        bubbles.append(Bubble(center=(cx, cy), radius=float(radius), contour=contour + np.array(offset, dtype=np.int32)))
    return sorted(_dedupe_concentric(bubbles), key=lambda b: b.center[0])


def find_bubbles_hough(roi, bubble_config, offset=(0, 0)):
    """Bubbles found with a circle Hough transform tuned to the expected size."""
    if roi.size == 0:
        return []
    blurred = cv2.GaussianBlur(roi, (5, 5), 0)
    radius = bubble_config.expected_radius
    circles = cv2.HoughCircles(
        blurred, cv2.HOUGH_GRADIENT, dp=1,
        minDist=bubble_config.expected_spacing * 0.6,
        param1=bubble_config.hough_param1,
        param2=bubble_config.hough_param2,
        minRadius=int(radius * 0.6),
        maxRadius=int(radius * 1.4),
    )
    if circles is None:
        return []
    bubbles = [
        Bubble(center=(float(x) + offset[0], float(y) + offset[1]), radius=float(r))
        for x, y, r in circles[0]
    ]
    return sorted(bubbles, key=lambda b: b.center[0])


def detect_bubbles(binary, row_rect, row_config, bubble_config):
    """Bubbles of one question row, sorted left to right (choices A, B, C, D)."""
    roi, offset = _inset_roi(binary, row_rect, row_config.inset)
    if bubble_config.method == 'hough':
        return find_bubbles_hough(roi, bubble_config, offset)
    return find_bubbles(roi, bubble_config, offset)


def detect_block_bubbles(binary, block_rect, block_config, bubble_config):
    """Every bubble inside a block, for sheets whose rows have no printed frame."""
    roi, offset = _inset_roi(binary, block_rect, block_config.inset)
    if bubble_config.method == 'hough':
        return find_bubbles_hough(roi, bubble_config, offset)
    return find_bubbles(roi, bubble_config, offset)


def build_row(bbox, block_index, row_index, bubbles, layout_config, source_id=None):
    """
    QuestionRow with choices assigned left to right.

    A row without exactly one bubble per choice is unreadable; the missing
    bubble is never guessed.
    """
    number = question_number(block_index, row_index, layout_config.rows_per_block)
    bubbles = sorted(bubbles, key=lambda b: b.center[0])
    if len(bubbles) != layout_config.choices_per_question:
        error = BubbleCountMismatch(
            f"question {number} row has the wrong number of bubbles",
            expected=layout_config.choices_per_question, actual=len(bubbles), source=source_id,
        )
        logger.warning(str(error))
        return QuestionRow(
            bbox=tuple(int(v) for v in bbox), block_index=block_index, row_index=row_index,
            question_number=number, bubbles=tuple(bubbles), readable=False, note=str(error),
        )
    return QuestionRow(
        bbox=tuple(int(v) for v in bbox), block_index=block_index, row_index=row_index,
        question_number=number,
        bubbles=tuple(replace(b, choice_index=i) for i, b in enumerate(bubbles)),
    )


def _rows_from_rectangles(binary, block_index, row_rects, config, source_id):
    centers = [geometry.rect_center(r)[1] for r in row_rects]
    calibration = calibrate_spacing(centers, config.calibration)
    indices = assign_row_indices(centers, calibration, config.layout.rows_per_block)
    rows = []
    for rect, index in zip(row_rects, indices):
        if index is None:
            continue
        bubbles = detect_bubbles(binary, rect, config.rows, config.bubbles)
        rows.append(build_row(rect, block_index, index, bubbles, config.layout, source_id))
    return rows, calibration


def _rows_from_bubbles(binary, block_index, block_rect, config, source_id):
    bubbles = detect_block_bubbles(binary, block_rect, config.blocks, config.bubbles)
    calibration = calibrate_spacing([b.center[1] for b in bubbles], config.calibration)
    groups = group_into_rows(bubbles, calibration.tolerance)
    centers = [float(np.mean([b.center[1] for b in group])) for group in groups]
    indices = assign_row_indices(centers, calibration, config.layout.rows_per_block)
    rows = []
    for group, index in zip(groups, indices):
        if index is None:
            continue
        points = [(b.center[0] - b.radius, b.center[1] - b.radius) for b in group]
        points += [(b.center[0] + b.radius, b.center[1] + b.radius) for b in group]
        rows.append(build_row(geometry.rect_from_corners(points), block_index, index, group, config.layout, source_id))
    return rows, calibration


def detect_layout(binary, config, exclude=(), source_id=None):
    """
    Runs the block, row and bubble passes over a binarized answer region.

    Raises BlockCountMismatch when the block count is wrong. A block whose
    rows are not printed as rectangles falls back to clustering its bubbles
    by the calibrated row spacing. Returns the blocks (bubbles not yet
    measured) and the warnings collected on the way.
    """
    block_rects = detect_blocks(binary, config.blocks, exclude)
    require_block_count(block_rects, config.layout, source_id)

    blocks = []
    warnings = []
    for block_index, block_rect in enumerate(block_rects):
        row_rects = detect_rows(binary, block_rect, config.rows)
        if row_rects:
            rows, calibration = _rows_from_rectangles(binary, block_index, row_rects, config, source_id)
        else:
            logger.info("Block %d has no row frames; grouping its bubbles into rows.", block_index)
            rows, calibration = _rows_from_bubbles(binary, block_index, block_rect, config, source_id)

        if calibration.message:
            warnings.append(f"[calibration] block {block_index}: {calibration.message}")
        if len(rows) != config.layout.rows_per_block:
            warning = RowCountMismatch(
                f"block {block_index} has the wrong number of question rows",
                expected=config.layout.rows_per_block, actual=len(rows), source=source_id,
            )
            logger.warning(str(warning))
            warnings.append(str(warning))
        warnings.extend(row.note for row in rows if not row.readable)
        blocks.append(Block(bbox=tuple(block_rect), column_index=block_index, rows=tuple(rows)))

    logger.info("Detected %d question rows in %d blocks.", sum(len(b.rows) for b in blocks), len(blocks))
    return blocks, warnings
