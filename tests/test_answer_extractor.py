"""Tests for the per-question decision rule."""

import pytest

from omr_scanner.answer_extractor import decide, extract_answers
from omr_scanner.models import Block, Bubble, QuestionRow, QuestionStatus, SheetReading


def _row(fills, question=1, threshold=0.45):
    bubbles = tuple(
        Bubble(center=(34 + 32 * i, 22), radius=12, choice_index=i, fill_ratio=f, marked=f >= threshold)
        for i, f in enumerate(fills)
    )
    return QuestionRow(
        bbox=(0, 0, 160, 44), block_index=(question - 1) // 15, row_index=(question - 1) % 15,
        question_number=question, bubbles=bubbles,
    )


class TestDecide:
    """Tests for decide."""

    def test_single_mark(self, config):
        """One marked bubble is the answer."""
        result = decide(_row([0.02, 0.91, 0.03, 0.0]), config)
        assert result.status is QuestionStatus.ANSWERED
        assert result.answer == "B"
        assert result.fill_ratios == (0.02, 0.91, 0.03, 0.0)
        assert result.confidence == pytest.approx(0.88)

    def test_no_mark_is_skipped(self, config):
        result = decide(_row([0.05, 0.0, 0.1, 0.0]), config)
        assert result.status is QuestionStatus.SKIPPED
        assert result.answer is None
        assert 0 < result.confidence <= 1

    def test_multiple_marks_rejected(self, config):
        """Two marks give no answer under the default policy."""
        result = decide(_row([0.9, 0.8, 0.0, 0.0]), config)
        assert result.status is QuestionStatus.MULTIPLE_MARKS
        assert result.answer is None
        assert "A, B" in result.note

    def test_multiple_marks_highest_fill(self, config):
        """The highest-fill policy reports the darkest choice but keeps the status."""
        lenient = config.override("marks", multiple_marks_policy="highest_fill")
        result = decide(_row([0.6, 0.95, 0.0, 0.5]), lenient)
        assert result.status is QuestionStatus.MULTIPLE_MARKS
        assert result.answer == "B"

    def test_unreadable_row(self, config):
        """A row without four bubbles is never decided."""
        row = QuestionRow(
            bbox=(0, 0, 160, 44), block_index=0, row_index=2, question_number=3,
            bubbles=tuple(Bubble(center=(34 + 32 * i, 22), radius=12) for i in range(3)),
            readable=False, note="three bubbles",
        )
        result = decide(row, config)
        assert result.status is QuestionStatus.UNREADABLE
        assert result.answer is None
        assert result.note == "three bubbles"


class TestExtractAnswers:
    """Tests for extract_answers."""

    def test_every_question_has_a_result(self, config):
        """Questions whose rows were not found are Unreadable."""
        rows = (_row([0.9, 0, 0, 0], question=1), _row([0, 0, 0, 0.9], question=2))
        reading = SheetReading(strategy="contour", blocks=(Block(bbox=(0, 0, 170, 800), column_index=0, rows=rows),))
        results = extract_answers(reading, config)
        assert list(results) == list(range(1, 61))
        assert results[1].answer == "A"
        assert results[2].answer == "D"
        assert results[3].status is QuestionStatus.UNREADABLE
        assert results[60].note == "question row not detected"

    def test_duplicate_rows_keep_first(self, config):
        rows = (_row([0.9, 0, 0, 0], question=5), _row([0, 0.9, 0, 0], question=5))
        reading = SheetReading(strategy="contour", blocks=(Block(bbox=(0, 0, 170, 800), column_index=0, rows=rows),))
        assert extract_answers(reading, config)[5].answer == "A"
