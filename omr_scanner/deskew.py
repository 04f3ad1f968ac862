# deskew.py
"""
Deskewing of the full page from its four L-shaped corner marks.

For every L mark the sharpest vertex of its simplified polygon is taken as
the page corner. Those points are mapped onto their own axis-aligned bounding
box, which removes rotation and perspective while keeping the page scale.
Failure is reported through DeskewResult; this module never raises.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import cv2
import numpy as np

from . import geometry
from .errors import DeskewFailed
from .fiducials import CornerRole, PageCorners, assign_page_corners, detect_l_fiducials
from .models import Point

logger = logging.getLogger(__name__)

_TARGET_ORDER = (CornerRole.TOP_LEFT, CornerRole.TOP_RIGHT, CornerRole.BOTTOM_RIGHT, CornerRole.BOTTOM_LEFT)


@dataclass(frozen=True)
class DeskewResult:
    image: np.ndarray = field(repr=False)
    success: bool
    transform: Optional[np.ndarray] = field(default=None, repr=False)
    corners: Dict[CornerRole, Point] = field(default_factory=dict)
    page_corners: PageCorners = field(default_factory=PageCorners)
    l_fiducials_found: int = 0
    sharp_corners_found: int = 0
    error: Optional[DeskewFailed] = None


def find_sharpest_vertex(polygon, image_center, deskew_config):
    """
    Returns (vertex, angle) for the sharpest corner of a polygon, or None.

    All vertices of a clean L measure about 90 degrees, so every vertex within
    `angle_tolerance` of the minimum is a candidate and the one farthest from
    the image center wins; for a mark sitting in a page corner that is its
    outer corner.
    """
    pts = [tuple(map(float, p)) for p in np.asarray(polygon).reshape(-1, 2)]
    n = len(pts)
    if n < 3:
        return None

    angles = [geometry.calculate_angle(pts[i - 1], pts[i], pts[(i + 1) % n]) for i in range(n)]
    sharpest = min(angles)
    if sharpest > deskew_config.max_sharp_angle:
        return None

    candidates = [i for i in range(n) if angles[i] <= sharpest + deskew_config.angle_tolerance]
    best = max(candidates, key=lambda i: geometry.distance(pts[i], image_center))
    return pts[best], angles[best]


def compute_deskew_transform(points_by_role):
    """
    3x3 matrix mapping the detected corners onto their bounding box.

    Four corners give a perspective transform, three an affine one.
    """
    if len(points_by_role) == 4:
        tl, tr, br, bl = geometry.order_corners(list(points_by_role.values()))
        src = np.array([tl, tr, br, bl], dtype=np.float32)
    elif len(points_by_role) == 3:
        roles = [r for r in _TARGET_ORDER if r in points_by_role]
        src = np.array([points_by_role[r] for r in roles], dtype=np.float32)
    else:
        raise ValueError(f"need 3 or 4 corner points, got {len(points_by_role)}")

    min_x, min_y, max_x, max_y = geometry.bounding_box(src)
    if max_x - min_x < 1 or max_y - min_y < 1:
        raise ValueError("corner points are degenerate")
    target = {
        CornerRole.TOP_LEFT: (min_x, min_y),
        CornerRole.TOP_RIGHT: (max_x, min_y),
        CornerRole.BOTTOM_RIGHT: (max_x, max_y),
        CornerRole.BOTTOM_LEFT: (min_x, max_y),
    }

    if len(points_by_role) == 4:
        dst = np.array([target[r] for r in _TARGET_ORDER], dtype=np.float32)
        return cv2.getPerspectiveTransform(src, dst)

    dst = np.array([target[r] for r in roles], dtype=np.float32)
    affine = cv2.getAffineTransform(src, dst)
    return np.vstack([affine, [0.0, 0.0, 1.0]])


def _failed(image, message, page_corners, l_found, sharp, expected, actual):
    logger.warning("Deskew failed: %s", message)
    return DeskewResult(
        image=image.copy(),
        success=False,
        corners=sharp,
        page_corners=page_corners,
        l_fiducials_found=l_found,
        sharp_corners_found=len(sharp),
        error=DeskewFailed(message, expected=expected, actual=actual),
    )


def deskew_image(image, binary, config):
    """
    Straightens `image` using the L marks found in its binarized form.

    On failure the returned image is an untouched copy of the input.
    """
    marks = detect_l_fiducials(binary, config.fiducials)
    page_corners = assign_page_corners(marks, binary.shape)
    if not page_corners.is_complete:
        return _failed(
            image, f"only {page_corners.count} page corners have an L-shaped fiducial",
            page_corners, len(marks), {}, expected=4, actual=page_corners.count,
        )

    h, w = binary.shape[:2]
    center = (w / 2.0, h / 2.0)
    sharp = {}
    for role, mark in page_corners.present().items():
        vertex = find_sharpest_vertex(mark.polygon, center, config.deskew)
        if vertex is not None:
            sharp[role] = vertex[0]

    if len(sharp) < 3:
        return _failed(
            image, f"only {len(sharp)} L-shaped fiducials have a usable sharp vertex",
            page_corners, len(marks), sharp, expected=">=3", actual=len(sharp),
        )

    try:
        transform = compute_deskew_transform(sharp)
    except (ValueError, cv2.error) as e:
        return _failed(
            image, f"could not compute the deskew transform: {e}",
            page_corners, len(marks), sharp, expected="non-degenerate corners", actual=len(sharp),
        )

    border = (255,) * (1 if image.ndim == 2 else image.shape[2])
    warped = cv2.warpPerspective(
        image, transform, (w, h),
        flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_CONSTANT, borderValue=border,
    )
    logger.info("Deskewed page using %d corner vertices.", len(sharp))
    return DeskewResult(
        image=warped,
        success=True,
        transform=transform,
        corners=sharp,
        page_corners=page_corners,
        l_fiducials_found=len(marks),
        sharp_corners_found=len(sharp),
    )
