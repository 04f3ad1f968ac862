# fiducials.py
"""
Functions to detect the two families of registration marks on the sheet.

L-shaped marks sit at the four page corners and drive deskewing. Small solid
squares frame the answer area and drive region extraction. Both are found by
filtering external contours on their simplified polygon; corner roles come
from the mark's position, never from its shape.
"""
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from . import geometry
from .errors import InsufficientFiducials
from .models import Point, Rect

logger = logging.getLogger(__name__)


class CornerRole(str, Enum):
    TOP_LEFT = 'TopLeft'
    TOP_RIGHT = 'TopRight'
    BOTTOM_LEFT = 'BottomLeft'
    BOTTOM_RIGHT = 'BottomRight'
    UNKNOWN = 'Unknown'


CORNER_ROLES = (CornerRole.TOP_LEFT, CornerRole.TOP_RIGHT, CornerRole.BOTTOM_LEFT, CornerRole.BOTTOM_RIGHT)

_DIAGONAL = {
    CornerRole.TOP_LEFT: CornerRole.BOTTOM_RIGHT,
    CornerRole.BOTTOM_RIGHT: CornerRole.TOP_LEFT,
    CornerRole.TOP_RIGHT: CornerRole.BOTTOM_LEFT,
    CornerRole.BOTTOM_LEFT: CornerRole.TOP_RIGHT,
}


@dataclass(frozen=True)
class LShapedFiducial:
    polygon: np.ndarray = field(compare=False, repr=False)  # simplified vertices, Nx2
    inner_corner: Point
    arm_endpoints: Tuple[Point, Point]
    area: float
    solidity: float
    bounding_box: Rect
    role: CornerRole = CornerRole.UNKNOWN

    @property
    def center(self) -> Point:
        return geometry.rect_center(self.bounding_box)


@dataclass(frozen=True)
class RectangularFiducial:
    center: Point
    width: int
    height: int
    bounding_box: Rect
    area: float
    role: CornerRole = CornerRole.UNKNOWN


@dataclass(frozen=True)
class PageCorners:
    """The L-shaped mark found in each page quadrant, if any."""
    top_left: Optional[LShapedFiducial] = None
    top_right: Optional[LShapedFiducial] = None
    bottom_left: Optional[LShapedFiducial] = None
    bottom_right: Optional[LShapedFiducial] = None

    def get(self, role):
        return getattr(self, _ATTR[role])

    def present(self) -> Dict[CornerRole, LShapedFiducial]:
        return {role: self.get(role) for role in CORNER_ROLES if self.get(role) is not None}

    @property
    def count(self) -> int:
        return len(self.present())

    @property
    def is_complete(self) -> bool:
        return self.count == 4


@dataclass(frozen=True)
class RegionCorners:
    """
    Corner points of the answer-area frame.

    Roles listed in `estimated` were not detected and have been completed
    from the detected ones.
    """
    top_left: Optional[Point] = None
    top_right: Optional[Point] = None
    bottom_left: Optional[Point] = None
    bottom_right: Optional[Point] = None
    estimated: Tuple[CornerRole, ...] = ()

    def get(self, role):
        return getattr(self, _ATTR[role])

    @property
    def is_complete(self) -> bool:
        return all(self.get(role) is not None for role in CORNER_ROLES)

    def points(self):
        """(top-left, top-right, bottom-right, bottom-left)."""
        return self.top_left, self.top_right, self.bottom_right, self.bottom_left

    def bounding_rect(self) -> Rect:
        if not self.is_complete:
            raise ValueError("region corners are incomplete; complete them before taking the bounding rectangle")
        return geometry.rect_from_corners(self.points())


_ATTR = {
    CornerRole.TOP_LEFT: 'top_left',
    CornerRole.TOP_RIGHT: 'top_right',
    CornerRole.BOTTOM_LEFT: 'bottom_left',
    CornerRole.BOTTOM_RIGHT: 'bottom_right',
}


def approximate_polygon(contour, epsilon_ratio):
    """Douglas-Peucker simplification with a tolerance relative to the perimeter."""
    epsilon = epsilon_ratio * cv2.arcLength(contour, True)
    return cv2.approxPolyDP(contour, epsilon, True).reshape(-1, 2)


def _in_range(value, value_range):
    low, high = value_range
    return low <= value <= high


def _find_inner_corner(polygon, bbox):
    """The reflex vertex of an L; falls back to the box center."""
    if len(polygon) < 3:
        return geometry.rect_center(bbox)
    clockwise = geometry.polygon_is_clockwise(polygon)
    n = len(polygon)
    reflex = [
        tuple(map(float, polygon[i])) for i in range(n)
        if not geometry.is_convex_vertex(polygon[i - 1], polygon[i], polygon[(i + 1) % n], clockwise)
    ]
    if not reflex:
        return geometry.rect_center(bbox)
    center = geometry.rect_center(bbox)
    return min(reflex, key=lambda p: geometry.distance(p, center))


def _find_arm_endpoints(polygon, inner_corner):
    vertices = [tuple(map(float, p)) for p in polygon]
    first = max(vertices, key=lambda p: geometry.distance(p, inner_corner))
    second = max(vertices, key=lambda p: geometry.distance(p, first))
    return first, second


def classify_l_shape(contour, fiducial_config):
    """Returns an LShapedFiducial when the contour looks like an L corner mark."""
    area = cv2.contourArea(contour)
    if not fiducial_config.l_min_area <= area <= fiducial_config.l_max_area:
        return None

    polygon = approximate_polygon(contour, fiducial_config.epsilon_ratio)
    if len(polygon) < fiducial_config.l_min_vertices:
        return None

    # L-shapes are non-convex
    solidity = geometry.contour_solidity(contour)
    if not _in_range(solidity, fiducial_config.l_solidity_range):
        return None

    x, y, w, h = cv2.boundingRect(contour)
    if h == 0 or not _in_range(w / float(h), fiducial_config.aspect_range):
        return None

    bbox = (x, y, w, h)
    inner = _find_inner_corner(polygon, bbox)
    return LShapedFiducial(
        polygon=polygon,
        inner_corner=inner,
        arm_endpoints=_find_arm_endpoints(polygon, inner),
        area=float(area),
        solidity=float(solidity),
        bounding_box=bbox,
    )


def classify_rectangle(contour, fiducial_config):
    """Returns a RectangularFiducial when the contour looks like a small square mark."""
    area = cv2.contourArea(contour)
    if not fiducial_config.rect_min_area <= area <= fiducial_config.rect_max_area:
        return None

    polygon = approximate_polygon(contour, fiducial_config.epsilon_ratio)
    if len(polygon) != fiducial_config.rect_vertices:
        return None

    x, y, w, h = cv2.boundingRect(contour)
    if h == 0 or not _in_range(w / float(h), fiducial_config.aspect_range):
        return None

    return RectangularFiducial(
        center=(x + w / 2.0, y + h / 2.0),
        width=w,
        height=h,
        bounding_box=(x, y, w, h),
        area=float(area),
    )


def detect_l_fiducials(binary, fiducial_config):
    """Finds every L-shaped corner mark in a binarized page."""
    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    marks = []
    for contour in contours:
        mark = classify_l_shape(contour, fiducial_config)
        if mark is not None:
            marks.append(mark)
    logger.info("Found %d L-shaped fiducials among %d contours.", len(marks), len(contours))
    return marks


def detect_rect_fiducials(binary, fiducial_config):
    """Finds every rectangular region mark in a binarized page."""
    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    marks = []
    for contour in contours:
        mark = classify_rectangle(contour, fiducial_config)
        if mark is not None:
            marks.append(mark)

    if fiducial_config.header_exclusion_ratio > 0:
        min_y = binary.shape[0] * fiducial_config.header_exclusion_ratio
        below_header = [m for m in marks if m.center[1] > min_y]
        # Fall back to every mark if the header filter leaves too few
        if len(below_header) >= 2:
            marks = below_header

    logger.info("Found %d rectangular fiducials among %d contours.", len(marks), len(contours))
    return marks


def _quadrant(point, mid_x, mid_y):
    x, y = point
    if y < mid_y:
        return CornerRole.TOP_LEFT if x < mid_x else CornerRole.TOP_RIGHT
    return CornerRole.BOTTOM_LEFT if x < mid_x else CornerRole.BOTTOM_RIGHT


def _keep_largest_per_role(marks, position, mid_x, mid_y):
    by_role = {}
    for mark in marks:
        role = _quadrant(position(mark), mid_x, mid_y)
        current = by_role.get(role)
        if current is None or mark.area > current.area:
            by_role[role] = replace(mark, role=role)
    return by_role


def assign_page_corners(marks, image_shape):
    """Assigns L marks to page corners by image quadrant."""
    h, w = image_shape[:2]
    by_role = _keep_largest_per_role(marks, lambda m: m.center, w / 2.0, h / 2.0)
    return PageCorners(**{_ATTR[role]: mark for role, mark in by_role.items()})


def _complete_corners(points, aspect_ratio):
    """Fills in missing frame corners from 2 or 3 detected ones."""
    tl = CornerRole.TOP_LEFT
    tr = CornerRole.TOP_RIGHT
    bl = CornerRole.BOTTOM_LEFT
    br = CornerRole.BOTTOM_RIGHT
    completed = dict(points)
    missing = [role for role in CORNER_ROLES if role not in points]

    if len(missing) == 1:
        role = missing[0]
        opposite = _DIAGONAL[role]
        a, c = [r for r in CORNER_ROLES if r not in (role, opposite)]
        completed[role] = geometry.complete_parallelogram(points[a], points[opposite], points[c])
        return completed

    if set(points) == {tl, br}:
        completed[tr] = (points[br][0], points[tl][1])
        completed[bl] = (points[tl][0], points[br][1])
    elif set(points) == {tr, bl}:
        completed[tl] = (points[bl][0], points[tr][1])
        completed[br] = (points[tr][0], points[bl][1])
    elif set(points) == {tl, tr}:
        dx, dy = points[tr][0] - points[tl][0], points[tr][1] - points[tl][1]
        down = (-dy * aspect_ratio, dx * aspect_ratio)
        completed[bl] = (points[tl][0] + down[0], points[tl][1] + down[1])
        completed[br] = (points[tr][0] + down[0], points[tr][1] + down[1])
    elif set(points) == {bl, br}:
        dx, dy = points[br][0] - points[bl][0], points[br][1] - points[bl][1]
        up = (dy * aspect_ratio, -dx * aspect_ratio)
        completed[tl] = (points[bl][0] + up[0], points[bl][1] + up[1])
        completed[tr] = (points[br][0] + up[0], points[br][1] + up[1])
    elif set(points) == {tl, bl}:
        dx, dy = points[bl][0] - points[tl][0], points[bl][1] - points[tl][1]
        right = (dy / aspect_ratio, -dx / aspect_ratio)
        completed[tr] = (points[tl][0] + right[0], points[tl][1] + right[1])
        completed[br] = (points[bl][0] + right[0], points[bl][1] + right[1])
    elif set(points) == {tr, br}:
        dx, dy = points[br][0] - points[tr][0], points[br][1] - points[tr][1]
        left = (-dy / aspect_ratio, dx / aspect_ratio)
        completed[tl] = (points[tr][0] + left[0], points[tr][1] + left[1])
        completed[bl] = (points[br][0] + left[0], points[br][1] + left[1])
    return completed


def assign_region_corners(marks, image_shape, fiducial_config):
    """
    Assigns rectangular marks to the corners of the answer frame and
    estimates missing corners.

    Marks are split by the midpoint of their own extent, so the frame does not
    have to be centered on the page. Along an axis where all marks line up
    (spread below `min_corner_spread`) the image midline is used instead.

    Returns the RegionCorners and the role-tagged marks that were used.
    Raises InsufficientFiducials when fewer than 2 corners can be assigned.
    """
    if len(marks) < 2:
        raise InsufficientFiducials(
            "not enough rectangular fiducials to locate the answer region",
            expected=">=2", actual=len(marks),
        )

    h, w = image_shape[:2]
    xs = [m.center[0] for m in marks]
    ys = [m.center[1] for m in marks]
    spread = fiducial_config.min_corner_spread
    mid_x = (min(xs) + max(xs)) / 2.0 if max(xs) - min(xs) >= spread else w / 2.0
    mid_y = (min(ys) + max(ys)) / 2.0 if max(ys) - min(ys) >= spread else h / 2.0

    by_role = _keep_largest_per_role(marks, lambda m: m.center, mid_x, mid_y)
    if len(by_role) < 2:
        raise InsufficientFiducials(
            "rectangular fiducials all fall in one corner of the answer region",
            expected=">=2 distinct corners", actual=len(by_role),
        )

    points = {role: mark.center for role, mark in by_role.items()}
    estimated = tuple(role for role in CORNER_ROLES if role not in points)
    if estimated:
        logger.warning(
            "Estimating %d missing region corner(s): %s",
            len(estimated), ', '.join(role.value for role in estimated),
        )
        points = _complete_corners(points, fiducial_config.region_aspect_ratio)

    corners = RegionCorners(estimated=estimated, **{_ATTR[role]: p for role, p in points.items()})
    return corners, tuple(by_role.values())
