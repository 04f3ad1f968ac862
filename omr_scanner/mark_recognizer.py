# mark_recognizer.py
"""
Fill-ratio measurement and marked/unmarked classification of bubbles.
"""
import logging
import math
from dataclasses import replace

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def measure_fill(binary, center, radius, shape='circle'):
    """
    Fraction of foreground pixels inside a sample area around `center`.

    `shape` is 'circle' (radius `radius`) or 'square' (the square inscribed in
    that circle). Returns None when any part of the sample lies outside the
    image.
    """
    h, w = binary.shape[:2]
    cx, cy = int(round(center[0])), int(round(center[1]))
    r = max(1, int(round(radius)))

    if shape == 'square':
        half = max(1, int(round(radius / math.sqrt(2))))
        if cx - half < 0 or cy - half < 0 or cx + half >= w or cy + half >= h:
            return None
        patch = binary[cy - half:cy + half + 1, cx - half:cx + half + 1]
        return cv2.countNonZero(patch) / float(patch.size)

    if cx - r < 0 or cy - r < 0 or cx + r >= w or cy + r >= h:
        return None
    patch = binary[cy - r:cy + r + 1, cx - r:cx + r + 1]
    mask = np.zeros(patch.shape, dtype=np.uint8)
    cv2.circle(mask, (r, r), r, 255, -1)
    area = cv2.countNonZero(mask)
    filled = cv2.countNonZero(cv2.bitwise_and(patch, patch, mask=mask))
    return filled / float(area)


def recognize_row(binary, row, mark_config, layout_config=None):
    """
    Measures every bubble of a readable row and flags it as marked.

    A bubble whose sample area leaves the image makes the whole row
    unreadable; nothing is guessed for it.
    """
    if not row.readable:
        return row

    bubbles = []
    for bubble in row.bubbles:
        fill = measure_fill(
            binary, bubble.center, bubble.radius * mark_config.sample_radius_ratio, mark_config.sample_shape,
        )
        if fill is None:
            label = _choice_label(bubble.choice_index, layout_config)
            note = f"sample area of choice {label} in question {row.question_number} falls outside the image"
            logger.warning(note)
            return replace(row, readable=False, note=note)
        bubbles.append(replace(bubble, fill_ratio=fill, marked=fill >= mark_config.fill_threshold))
    return replace(row, bubbles=tuple(bubbles))


def _choice_label(index, layout_config):
    if layout_config is not None and 0 <= index < len(layout_config.choice_labels):
        return layout_config.choice_labels[index]
    return str(index)
