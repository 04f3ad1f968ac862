# region.py
"""
Crops the answer area framed by the rectangular fiducials.
"""
import logging
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

from . import geometry
from .errors import InsufficientFiducials
from .fiducials import RectangularFiducial, RegionCorners, assign_region_corners, detect_rect_fiducials
from .models import Rect

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnswerRegion:
    image: np.ndarray = field(repr=False)
    binary: np.ndarray = field(repr=False)
    rect: Rect  # position of the crop in the page
    corners: RegionCorners
    fiducials: Tuple[RectangularFiducial, ...]
    exclusions: Tuple[Rect, ...] = ()  # fiducial boxes in region coordinates


def extract_answer_region(image, binary, config, source_id=None):
    """
    Finds the rectangular fiducials and crops the area between them.

    The bounding rectangle of the four (possibly estimated) corners is shrunk
    by `region.margin` so block borders are not clipped, then both the image
    and its binarized form are cropped. Raises InsufficientFiducials.
    """
    marks = detect_rect_fiducials(binary, config.fiducials)
    try:
        corners, _ = assign_region_corners(marks, binary.shape, config.fiducials)
    except InsufficientFiducials as e:
        raise e.with_source(source_id)

    h, w = binary.shape[:2]
    rect = geometry.shrink_rect(corners.bounding_rect(), config.region.margin)
    rect = geometry.clip_rect(rect, w, h)
    x, y, rw, rh = rect
    if rw == 0 or rh == 0:
        raise InsufficientFiducials(
            "answer region is empty once the margin is applied",
            expected="non-empty region", actual=f"{rw}x{rh}", source=source_id,
        )

    exclusions = tuple(
        (bx - x, by - y, bw, bh) for (bx, by, bw, bh) in (m.bounding_box for m in marks)
    )
    logger.info("Extracted answer region %s from %d rectangular fiducials.", rect, len(marks))
    return AnswerRegion(
        image=image[y:y + rh, x:x + rw].copy(),
        binary=binary[y:y + rh, x:x + rw].copy(),
        rect=rect,
        corners=corners,
        fiducials=tuple(marks),
        exclusions=exclusions,
    )
