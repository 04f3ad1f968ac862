# geometry.py
"""
Small geometry helpers: angles, corner ordering and rectangle math.

Points are (x, y) tuples in image coordinates; rectangles are (x, y, w, h).
"""
import math

import cv2
import numpy as np


def calculate_angle(prev, curr, nxt):
    """
    Angle in degrees at `curr` formed by the segments to `prev` and `nxt`.

    Always in [0, 180]. A zero-length segment has no direction and is
    reported as 180 (a straight line, never a sharp corner).
    """
    v1 = np.array(prev, dtype=float) - np.array(curr, dtype=float)
    v2 = np.array(nxt, dtype=float) - np.array(curr, dtype=float)
    n1 = np.linalg.norm(v1)
    n2 = np.linalg.norm(v2)
    if n1 == 0 or n2 == 0:
        return 180.0
    cos_angle = np.clip(np.dot(v1, v2) / (n1 * n2), -1.0, 1.0)
    return float(math.degrees(math.acos(cos_angle)))


def is_convex_vertex(prev, curr, nxt, clockwise):
    """True when the turn at `curr` follows the polygon's winding."""
    cross = (curr[0] - prev[0]) * (nxt[1] - curr[1]) - (curr[1] - prev[1]) * (nxt[0] - curr[0])
    return cross > 0 if clockwise else cross < 0


def polygon_is_clockwise(points):
    """Winding of a polygon in image coordinates (y grows downwards)."""
    pts = np.asarray(points, dtype=float)
    x, y = pts[:, 0], pts[:, 1]
    signed_area = np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y)
    return signed_area > 0


def order_corners(points):
    """
    Orders 4 points as (top-left, top-right, bottom-right, bottom-left).

    The top-left corner has the smallest x + y and the bottom-right the
    largest; top-right has the smallest y - x and bottom-left the largest.
    """
    pts = np.asarray(points, dtype=np.float32).reshape(4, 2)
    s = pts.sum(axis=1)
    diff = pts[:, 1] - pts[:, 0]
    return (
        tuple(pts[np.argmin(s)]),
        tuple(pts[np.argmin(diff)]),
        tuple(pts[np.argmax(s)]),
        tuple(pts[np.argmax(diff)]),
    )


def bounding_box(points):
    """Axis-aligned extent (min_x, min_y, max_x, max_y) of a point set."""
    pts = np.asarray(points, dtype=float).reshape(-1, 2)
    return (float(pts[:, 0].min()), float(pts[:, 1].min()),
            float(pts[:, 0].max()), float(pts[:, 1].max()))


def rect_from_corners(points):
    """Integer (x, y, w, h) rectangle spanning the given points."""
    min_x, min_y, max_x, max_y = bounding_box(points)
    x, y = int(math.floor(min_x)), int(math.floor(min_y))
    return x, y, int(math.ceil(max_x)) - x, int(math.ceil(max_y)) - y


def shrink_rect(rect, margin):
    """Moves every side of a rectangle inward by `margin` pixels."""
    x, y, w, h = rect
    return x + margin, y + margin, max(0, w - 2 * margin), max(0, h - 2 * margin)


def clip_rect(rect, width, height):
    """Clips a rectangle to the image bounds."""
    x, y, w, h = rect
    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(width, x + w), min(height, y + h)
    return x0, y0, max(0, x1 - x0), max(0, y1 - y0)


def rects_overlap(a, b):
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    return ax < bx + bw and bx < ax + aw and ay < by + bh and by < ay + ah


def rect_center(rect):
    x, y, w, h = rect
    return x + w / 2.0, y + h / 2.0


def complete_parallelogram(a, b, c):
    """The fourth vertex of the parallelogram a-b-c-d, opposite to `b`."""
    return a[0] + c[0] - b[0], a[1] + c[1] - b[1]


def contour_solidity(contour):
    """Contour area divided by the area of its convex hull."""
    area = cv2.contourArea(contour)
    hull_area = cv2.contourArea(cv2.convexHull(contour))
    if hull_area == 0:
        return 0.0
    return area / hull_area


def contour_circularity(contour):
    """4*pi*area / perimeter^2; 1.0 for a perfect circle."""
    perimeter = cv2.arcLength(contour, True)
    if perimeter == 0:
        return 0.0
    return 4 * np.pi * cv2.contourArea(contour) / (perimeter * perimeter)


def distance(p, q):
    return math.hypot(p[0] - q[0], p[1] - q[1])
