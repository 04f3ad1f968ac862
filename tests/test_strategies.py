"""Tests for the interchangeable mark extraction strategies."""

import cv2
import pytest

from omr_scanner.models import QuestionStatus
from omr_scanner.pipeline import process_sheet
from omr_scanner.strategies import STRATEGIES, GridStrategy, MorphologicalStrategy, get_strategy, grid_rows

EXPECTED = {1: "A", 2: "C", 3: None, 4: None, 16: "D", 30: "B", 45: "C", 60: "D"}


class TestRegistry:
    """Tests for strategy lookup."""

    def test_known_names(self):
        assert sorted(STRATEGIES) == ["contour", "grid", "morphological"]
        assert isinstance(get_strategy("grid"), GridStrategy)

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="bogus"):
            get_strategy("bogus")


class TestGridRows:
    """Tests for the nominal template grid."""

    def test_rows_cover_the_block(self, config):
        rows = list(grid_rows((0, 0, 170, 800), config))
        assert len(rows) == 15
        index, bbox, centers = rows[0]
        assert index == 0
        assert bbox[1] == 10
        assert len(centers) == 4
        assert [round(c[0]) for c in centers] == [42, 74, 106, 138]
        assert rows[-1][1][1] + rows[-1][1][3] <= 800


class TestMarkBlobs:
    """Tests for the erosion pass of the morphological strategy."""

    def test_frames_do_not_survive_as_marks(self, blank_binary, config):
        """Only the filled bubble is left; the row frame and empty rings are dropped."""
        cv2.rectangle(blank_binary, (100, 100), (254, 144), 255, 5)
        for choice in range(4):
            cv2.circle(blank_binary, (134 + 32 * choice, 122), 12, 255, 3)
        cv2.circle(blank_binary, (166, 122), 12, 255, -1)
        blobs = MorphologicalStrategy._find_mark_blobs(blank_binary, config.morphology)
        assert len(blobs) == 1
        assert blobs[0] == pytest.approx((166, 122), abs=2)

    def test_thin_bar_is_not_a_mark(self, blank_binary, config):
        cv2.rectangle(blank_binary, (100, 100), (300, 114), 255, -1)
        assert MorphologicalStrategy._find_mark_blobs(blank_binary, config.morphology) == []

    def test_single_mark_on_sheet(self, sheet_factory, config):
        """One filled bubble reads as that answer; blank rows stay skipped."""
        result = process_sheet(sheet_factory(marks={1: "A"}), config.override("pipeline", strategy="morphological"))
        assert result.success, result.failure
        assert result.answers[1] == "A"
        assert result.statuses[1] is QuestionStatus.ANSWERED
        assert result.statuses[3] is QuestionStatus.SKIPPED
        assert result.counts["multiple"] == 0


@pytest.mark.parametrize("strategy", ["contour", "grid", "morphological"])
class TestStrategiesAgree:
    """All strategies read the same answers from a clean sheet."""

    def test_scenario_answers(self, strategy, scenario_sheet, config):
        result = process_sheet(scenario_sheet, config.override("pipeline", strategy=strategy))
        assert result.success, result.failure
        assert result.stages.strategy == strategy
        for number, answer in EXPECTED.items():
            assert result.answers[number] == answer, number
        assert result.statuses[3] is QuestionStatus.SKIPPED
        assert result.statuses[4] is QuestionStatus.MULTIPLE_MARKS
        assert result.counts == {"answered": 6, "skipped": 53, "multiple": 1, "unreadable": 0}
