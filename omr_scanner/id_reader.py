# id_reader.py
"""
Reading of the student and test ID grids printed above the answer area.

Each ID box holds one column per digit and ten rows labelled 1 to 9 then 0.
"""
import logging

import cv2

from . import geometry
from .fiducials import approximate_polygon
from .mark_recognizer import measure_fill
from .models import IdReading

logger = logging.getLogger(__name__)


def row_digit(row_index):
    """Digit printed on a grid row: rows are labelled 1..9, then 0."""
    return (row_index + 1) % 10


def find_id_sections(binary, region_top, id_config, epsilon_ratio=0.02):
    """
    Boxes of the ID grids above `region_top`, sorted left to right.

    The two largest rectangular frames are kept: the student ID grid comes
    first and the test ID grid second.
    """
    header = binary[:max(0, int(region_top))]
    if header.size == 0:
        return []
    contours, _ = cv2.findContours(header, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    boxes = []
    for contour in contours:
        area = cv2.contourArea(contour)
        if area < id_config.min_box_area:
            continue
        if len(approximate_polygon(contour, epsilon_ratio)) != 4:
            continue
        boxes.append((area, cv2.boundingRect(contour)))
    boxes.sort(key=lambda item: item[0], reverse=True)
    return sorted((rect for _, rect in boxes[:2]), key=lambda r: r[0])


def read_digit_grid(binary, box_rect, digits, id_config):
    """
    Reads one ID grid by sampling the center of every cell.

    A column with exactly one marked cell yields its digit; a blank or
    ambiguous column yields None.
    """
    x, y, w, h = geometry.shrink_rect(box_rect, id_config.inset)
    cell_w = w / float(digits)
    cell_h = h / float(id_config.rows)
    radius = min(cell_w, cell_h) * id_config.sample_radius_ratio

    values = []
    for column in range(digits):
        cx = x + cell_w * (column + 0.5)
        marked = []
        for row in range(id_config.rows):
            cy = y + cell_h * (row + 0.5)
            fill = measure_fill(binary, (cx, cy), radius)
            if fill is not None and fill >= id_config.fill_threshold:
                marked.append(row)
        values.append(row_digit(marked[0]) if len(marked) == 1 else None)
    return IdReading(digits=tuple(values))


def read_ids(binary, region_top, id_config):
    """
    Student and test ID readings from a deskewed, binarized page.

    Returns (student_id, test_id, warnings); a reading is None when its grid
    was not found.
    """
    boxes = find_id_sections(binary, region_top, id_config)
    warnings = []
    if len(boxes) < 2:
        warnings.append(f"[ids] found {len(boxes)} ID grid(s) (expected 2)")
        logger.warning(warnings[-1])
    student = read_digit_grid(binary, boxes[0], id_config.student_digits, id_config) if boxes else None
    test = read_digit_grid(binary, boxes[1], id_config.test_digits, id_config) if len(boxes) > 1 else None
    for label, reading in (('student', student), ('test', test)):
        if reading is not None and not reading.valid:
            warnings.append(f"[ids] {label} ID is incomplete: {reading.value}")
    return student, test, warnings
