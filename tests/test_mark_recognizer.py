"""Tests for fill measurement and row recognition."""

from dataclasses import replace

import cv2
import pytest

from omr_scanner.mark_recognizer import measure_fill, recognize_row
from omr_scanner.models import Bubble, QuestionRow


def _row(centers, radius=12):
    bubbles = tuple(Bubble(center=c, radius=radius, choice_index=i) for i, c in enumerate(centers))
    return QuestionRow(bbox=(0, 0, 200, 50), block_index=0, row_index=0, question_number=1, bubbles=bubbles)


class TestMeasureFill:
    """Tests for measure_fill."""

    def test_empty_area(self, blank_binary):
        assert measure_fill(blank_binary, (100, 100), 8) == 0.0

    def test_filled_disk(self, blank_binary):
        cv2.circle(blank_binary, (100, 100), 12, 255, -1)
        assert measure_fill(blank_binary, (100, 100), 8) == pytest.approx(1.0)

    def test_ring_is_mostly_empty(self, blank_binary):
        """The sample circle sits inside an unfilled bubble outline."""
        cv2.circle(blank_binary, (100, 100), 12, 255, 3)
        assert measure_fill(blank_binary, (100, 100), 8) < 0.1

    def test_square_sample(self, blank_binary):
        cv2.rectangle(blank_binary, (90, 90), (110, 110), 255, -1)
        assert measure_fill(blank_binary, (100, 100), 8, shape='square') == pytest.approx(1.0)

    @pytest.mark.parametrize("center", [(3, 100), (100, 3), (998, 100), (100, 798)])
    def test_outside_image(self, blank_binary, center):
        """Samples crossing the border have no fill ratio."""
        assert measure_fill(blank_binary, center, 8) is None


class TestRecognizeRow:
    """Tests for recognize_row."""

    def test_marks_filled_bubbles(self, blank_binary, config):
        centers = [(40, 25), (72, 25), (104, 25), (136, 25)]
        for c in centers:
            cv2.circle(blank_binary, c, 12, 255, 3)
        cv2.circle(blank_binary, centers[2], 12, 255, -1)
        row = recognize_row(blank_binary, _row(centers), config.marks, config.layout)
        assert row.readable
        assert [b.marked for b in row.bubbles] == [False, False, True, False]
        assert row.bubbles[2].fill_ratio == pytest.approx(1.0)
        assert row.marked_bubbles == (row.bubbles[2],)

    def test_threshold_is_inclusive(self, blank_binary, config):
        """A fill exactly at the threshold counts as marked."""
        cv2.circle(blank_binary, (40, 25), 12, 255, -1)
        strict = config.override("marks", fill_threshold=1.0)
        row = recognize_row(blank_binary, _row([(40, 25)]), strict.marks, config.layout)
        assert row.bubbles[0].marked

    def test_sample_outside_makes_row_unreadable(self, blank_binary, config):
        row = recognize_row(blank_binary, _row([(40, 25), (995, 25)]), config.marks, config.layout)
        assert not row.readable
        assert "choice B" in row.note
        assert all(b.fill_ratio == 0 for b in row.bubbles)

    def test_unreadable_row_is_untouched(self, blank_binary, config):
        row = _row([(40, 25)])
        unreadable = replace(row, readable=False, note="bubbles missing")
        assert recognize_row(blank_binary, unreadable, config.marks) is unreadable
