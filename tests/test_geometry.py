"""Tests for the geometry helpers."""

import numpy as np
import pytest

from omr_scanner import geometry


class TestCalculateAngle:
    """Tests for calculate_angle."""

    def test_right_angle(self):
        """Perpendicular arms measure 90 degrees."""
        assert geometry.calculate_angle((10, 0), (0, 0), (0, 10)) == pytest.approx(90.0)

    def test_collinear_opposite(self):
        """A straight line through the vertex is 180."""
        assert geometry.calculate_angle((-5, 0), (0, 0), (7, 0)) == pytest.approx(180.0)

    def test_collinear_same_direction(self):
        """Both arms pointing the same way is 0."""
        assert geometry.calculate_angle((5, 5), (0, 0), (10, 10)) == pytest.approx(0.0, abs=1e-6)

    def test_degenerate_arm(self):
        """A zero-length arm is reported as a straight line."""
        assert geometry.calculate_angle((0, 0), (0, 0), (3, 4)) == 180.0

    def test_range_for_random_triples(self):
        """Any triple gives a value in [0, 180]."""
        rng = np.random.default_rng(3)
        for _ in range(500):
            a, b, c = rng.uniform(-1000, 1000, size=(3, 2))
            angle = geometry.calculate_angle(tuple(a), tuple(b), tuple(c))
            assert 0.0 <= angle <= 180.0

    def test_nearly_collinear_does_not_leave_domain(self):
        """Rounding that pushes the cosine past 1 is clipped."""
        angle = geometry.calculate_angle((1e9, 1), (0, 0), (1e9, 1 + 1e-7))
        assert 0.0 <= angle < 1e-3


class TestOrderCorners:
    """Tests for order_corners."""

    def test_shuffled_rectangle(self):
        """Corners come back as TL, TR, BR, BL."""
        tl, tr, br, bl = geometry.order_corners([(90, 10), (10, 80), (10, 10), (90, 80)])
        assert tl == (10, 10)
        assert tr == (90, 10)
        assert br == (90, 80)
        assert bl == (10, 80)

    def test_slightly_rotated(self):
        """A few degrees of rotation keep the roles."""
        points = [(12, 5), (98, 9), (95, 88), (8, 84)]
        tl, tr, br, bl = geometry.order_corners(points)
        assert (tl, tr, br, bl) == ((12, 5), (98, 9), (95, 88), (8, 84))


class TestRectangles:
    """Tests for the rectangle helpers."""

    def test_shrink_rect(self):
        """Each side moves inward by the margin."""
        assert geometry.shrink_rect((100, 200, 300, 400), 10) == (110, 210, 280, 380)

    def test_shrink_never_negative(self):
        """A margin larger than the rectangle gives an empty one."""
        assert geometry.shrink_rect((0, 0, 10, 10), 20)[2:] == (0, 0)

    def test_overlap(self):
        """Touching edges do not overlap, shared area does."""
        assert geometry.rects_overlap((0, 0, 10, 10), (5, 5, 10, 10))
        assert not geometry.rects_overlap((0, 0, 10, 10), (10, 0, 10, 10))

    def test_complete_parallelogram(self):
        """The missing vertex is a + c - b."""
        assert geometry.complete_parallelogram((10, 0), (10, 10), (0, 10)) == (0, 0)

    def test_rect_from_corners(self):
        """Spanning rectangle of float points."""
        assert geometry.rect_from_corners([(10.2, 20.0), (50.0, 60.7)]) == (10, 20, 40, 41)

    def test_clip_rect(self):
        """Parts outside the image are cut off."""
        assert geometry.clip_rect((-5, -5, 20, 20), 10, 10) == (0, 0, 10, 10)

    def test_winding(self):
        """Clockwise on screen has a positive signed area in image coordinates."""
        assert geometry.polygon_is_clockwise([(0, 0), (10, 0), (10, 10), (0, 10)])
        assert not geometry.polygon_is_clockwise([(0, 0), (0, 10), (10, 10), (10, 0)])
