# grid_mapper.py
"""
Functions to map detected rows and bubbles to a logical question grid.
"""
import logging

from . import config

logger = logging.getLogger(__name__)


def question_number(block_index, row_index, rows_per_block=config.ROWS_PER_BLOCK):
    """1-based question number of a row; blocks are numbered left to right."""
    return block_index * rows_per_block + row_index + 1


def group_into_rows(bubbles, tolerance):
    """
    Clusters bubbles into rows by their y-coordinate.

    A bubble joins the current row while it stays within `tolerance` of the
    row's running mean. Each row is returned sorted left to right.
    """
    rows = []
    current = []
    mean_y = None
    for bubble in sorted(bubbles, key=lambda b: b.center[1]):
        y = bubble.center[1]
        if current and abs(y - mean_y) <= tolerance:
            current.append(bubble)
            mean_y += (y - mean_y) / len(current)
        else:
            if current:
                rows.append(current)
            current = [bubble]
            mean_y = y
    if current:
        rows.append(current)
    return [sorted(row, key=lambda b: b.center[0]) for row in rows]


def assign_row_indices(centers, calibration, expected_rows):
    """
    Row index for each y-center (sorted top to bottom), or None past the layout.

    With the expected number of rows they are simply enumerated. Otherwise,
    when the spacing calibration is valid, gaps left by undetected rows are
    kept by measuring every row against the first one in units of the mean
    spacing.
    """
    if len(centers) == expected_rows or not calibration.is_valid or calibration.mean <= 0:
        indices = list(range(len(centers)))
    else:
        indices = []
        previous = -1
        for y in centers:
            index = int(round((y - centers[0]) / calibration.mean))
            if index <= previous:
                index = previous + 1
            indices.append(index)
            previous = index

    dropped = sum(1 for i in indices if i >= expected_rows)
    if dropped:
        logger.warning("Dropping %d row(s) beyond the %d expected.", dropped, expected_rows)
    return [i if i < expected_rows else None for i in indices]
