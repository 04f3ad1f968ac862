# strategies.py
"""
Interchangeable ways of reading the marks in an answer region.

Every strategy finds the four answer blocks first and returns a SheetReading
whose rows carry measured bubbles; the decision rule is applied afterwards,
the same way for all of them. Select one with `pipeline.strategy`.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import replace

import cv2

from .bubble_detector import build_row, detect_blocks, detect_layout, require_block_count
from .mark_recognizer import measure_fill, recognize_row
from .models import Block, Bubble, SheetReading

logger = logging.getLogger(__name__)


class MarkExtractionStrategy(ABC):
    """Reads bubble marks from a binarized answer region."""

    name = ''

    @abstractmethod
    def extract(self, binary, config, exclude=(), source_id=None):
        """Returns a SheetReading; raises BlockCountMismatch."""

    def __repr__(self):
        return f"{type(self).__name__}()"


class ContourStrategy(MarkExtractionStrategy):
    """Blocks, printed row frames and bubble contours, then fill ratios."""

    name = 'contour'

    def extract(self, binary, config, exclude=(), source_id=None):
        blocks, warnings = detect_layout(binary, config, exclude, source_id)
        measured = []
        for block in blocks:
            rows = tuple(recognize_row(binary, row, config.marks, config.layout) for row in block.rows)
            measured.append(Block(bbox=block.bbox, column_index=block.column_index, rows=rows))
        warnings.extend(_newly_unreadable(blocks, measured))
        return SheetReading(strategy=self.name, blocks=tuple(measured), warnings=tuple(warnings))


def _newly_unreadable(before, after):
    notes = []
    for old, new in zip(before, after):
        for old_row, new_row in zip(old.rows, new.rows):
            if old_row.readable and not new_row.readable:
                notes.append(new_row.note)
    return notes


def grid_rows(block_rect, config):
    """
    Nominal row boxes and bubble centers of a block on the printed template.

    Yields (row_index, row_bbox, centers); the rows split the block height
    left after the top and bottom margins evenly.
    """
    x, y, w, h = block_rect
    rows = config.layout.rows_per_block
    margin = h * config.grid.vertical_margin_ratio
    pitch = (h - 2 * margin) / rows
    for index in range(rows):
        top = y + margin + pitch * index
        cy = top + pitch / 2.0
        centers = [(x + w * ratio, cy) for ratio in config.grid.choice_center_ratios]
        yield index, (x, int(round(top)), w, int(round(pitch))), centers


class GridStrategy(MarkExtractionStrategy):
    """Samples fixed positions of the sheet template inside each block."""

    name = 'grid'

    def extract(self, binary, config, exclude=(), source_id=None):
        block_rects = detect_blocks(binary, config.blocks, exclude)
        require_block_count(block_rects, config.layout, source_id)

        radius = config.bubbles.expected_radius
        blocks = []
        warnings = []
        for block_index, block_rect in enumerate(block_rects):
            rows = []
            for row_index, bbox, centers in grid_rows(block_rect, config):
                bubbles = [Bubble(center=c, radius=radius) for c in centers]
                row = build_row(bbox, block_index, row_index, bubbles, config.layout, source_id)
                row = recognize_row(binary, row, config.marks, config.layout)
                if not row.readable:
                    warnings.append(row.note)
                rows.append(row)
            blocks.append(Block(bbox=tuple(block_rect), column_index=block_index, rows=tuple(rows)))
        return SheetReading(strategy=self.name, blocks=tuple(blocks), warnings=tuple(warnings))


class MorphologicalStrategy(MarkExtractionStrategy):
    """
    Erodes the printed outlines away and treats surviving blobs as marks.

    Empty bubble rings disappear under erosion and what is left of the
    frames is dropped by shape, while filled bubbles shrink but survive.
    Each blob is snapped to the nearest template position of its block.
    """

    name = 'morphological'

    def extract(self, binary, config, exclude=(), source_id=None):
        block_rects = detect_blocks(binary, config.blocks, exclude)
        require_block_count(block_rects, config.layout, source_id)

        marks = self._find_mark_blobs(binary, config.morphology)
        logger.info("Found %d mark blobs after erosion.", len(marks))

        radius = config.bubbles.expected_radius
        max_dx = config.bubbles.expected_spacing / 2.0
        blocks = []
        warnings = []
        for block_index, block_rect in enumerate(block_rects):
            bx, by, bw, bh = block_rect
            inside = [m for m in marks if bx <= m[0] < bx + bw and by <= m[1] < by + bh]
            rows = []
            for row_index, bbox, centers in grid_rows(block_rect, config):
                _, top, _, pitch = bbox
                row_marks = [m for m in inside if top <= m[1] < top + pitch]
                marked = set()
                for mx, _ in row_marks:
                    nearest = min(range(len(centers)), key=lambda i: abs(centers[i][0] - mx))
                    if abs(centers[nearest][0] - mx) <= max_dx:
                        marked.add(nearest)

                bubbles = []
                unreadable = None
                for choice, center in enumerate(centers):
                    fill = measure_fill(binary, center, radius * config.marks.sample_radius_ratio, config.marks.sample_shape)
                    if fill is None:
                        unreadable = (
                            f"sample area of choice {config.layout.choice_labels[choice]} "
                            f"in row {row_index} of block {block_index} falls outside the image"
                        )
                        break
                    bubbles.append(Bubble(center=center, radius=radius, fill_ratio=fill, marked=choice in marked))

                row = build_row(bbox, block_index, row_index, bubbles if unreadable is None else [], config.layout, source_id)
                if unreadable is not None:
                    row = replace(row, note=unreadable)
                if not row.readable:
                    warnings.append(row.note)
                rows.append(row)
            blocks.append(Block(bbox=tuple(block_rect), column_index=block_index, rows=tuple(rows)))
        return SheetReading(strategy=self.name, blocks=tuple(blocks), warnings=tuple(warnings))

    @staticmethod
    def _find_mark_blobs(binary, morphology_config):
        """
        Centroids of the compact blobs left after erosion.

        Frame remnants survive erosion as thin hollow outlines; they are
        dropped by their bounding-box aspect and extent.
        """
        k = morphology_config.kernel_size
        kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (k, k))
        eroded = cv2.erode(binary, kernel, iterations=morphology_config.iterations)
        count, _, stats, centroids = cv2.connectedComponentsWithStats(eroded, connectivity=8)
        low, high = morphology_config.blob_area_range
        min_aspect, max_aspect = morphology_config.blob_aspect_range
        blobs = []
        for label in range(1, count):
            area = stats[label, cv2.CC_STAT_AREA]
            w = stats[label, cv2.CC_STAT_WIDTH]
            h = stats[label, cv2.CC_STAT_HEIGHT]
            if not low <= area <= high:
                continue
            if not min_aspect <= w / float(h) <= max_aspect:
                continue
            if area / float(w * h) < morphology_config.min_blob_extent:
                continue
            blobs.append((float(centroids[label][0]), float(centroids[label][1])))
        return blobs


STRATEGIES = {
    strategy.name: strategy
    for strategy in (ContourStrategy(), GridStrategy(), MorphologicalStrategy())
}


def get_strategy(name):
    """Looks up a mark extraction strategy by its configured name."""
    try:
        return STRATEGIES[name]
    except KeyError:
        raise ValueError(f"Unknown mark extraction strategy {name!r}; choose from {sorted(STRATEGIES)}") from None
