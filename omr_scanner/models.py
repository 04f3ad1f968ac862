# models.py
"""
Data model shared by the pipeline stages.

Everything here is created fresh for each processed sheet. Detection entities
are frozen; OMRResult is assembled by the pipeline and handed to the caller.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np

from .errors import FailureReason

Point = Tuple[float, float]
Rect = Tuple[int, int, int, int]  # x, y, w, h


class QuestionStatus(str, Enum):
    ANSWERED = 'Answered'
    SKIPPED = 'Skipped'
    MULTIPLE_MARKS = 'MultipleMarks'
    UNREADABLE = 'Unreadable'
    CORRECT = 'Correct'
    INCORRECT = 'Incorrect'


@dataclass(frozen=True)
class Bubble:
    center: Point
    radius: float
    choice_index: int = -1
    fill_ratio: float = 0.0
    marked: bool = False
    contour: Optional[np.ndarray] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class QuestionRow:
    """A question row in region coordinates; bubbles are ordered A to D."""
    bbox: Rect
    block_index: int
    row_index: int
    question_number: int
    bubbles: Tuple[Bubble, ...] = ()
    readable: bool = True
    note: Optional[str] = None

    @property
    def marked_bubbles(self) -> Tuple[Bubble, ...]:
        return tuple(b for b in self.bubbles if b.marked)


@dataclass(frozen=True)
class Block:
    bbox: Rect
    column_index: int
    rows: Tuple[QuestionRow, ...] = ()

    @property
    def aspect_ratio(self) -> float:
        _, _, w, h = self.bbox
        return h / float(w) if w else 0.0


@dataclass(frozen=True)
class SheetReading:
    """Output of a mark extraction strategy for one answer region."""
    strategy: str
    blocks: Tuple[Block, ...]
    warnings: Tuple[str, ...] = ()

    def iter_rows(self) -> Iterator[QuestionRow]:
        for block in self.blocks:
            yield from block.rows

    @property
    def rows_found(self) -> Tuple[int, ...]:
        return tuple(len(block.rows) for block in self.blocks)


@dataclass(frozen=True)
class QuestionResult:
    number: int
    answer: Optional[str]
    status: QuestionStatus
    fill_ratios: Tuple[float, ...] = ()
    confidence: float = 0.0
    note: Optional[str] = None
    correct_answer: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'question': self.number,
            'answer': self.answer,
            'status': self.status.value,
            'fill_ratios': [round(r, 4) for r in self.fill_ratios],
            'confidence': round(self.confidence, 4),
            'note': self.note,
            'correct_answer': self.correct_answer,
        }


@dataclass(frozen=True)
class GradeSummary:
    total: int
    correct: int
    incorrect: int
    unanswered: int
    invalid: int
    percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'correct': self.correct,
            'incorrect': self.incorrect,
            'unanswered': self.unanswered,
            'invalid': self.invalid,
            'percentage': round(self.percentage, 2),
        }


@dataclass(frozen=True)
class IdReading:
    """Digits read from an ID grid; unreadable columns hold None and show as '?'."""
    digits: Tuple[Optional[int], ...]

    @property
    def value(self) -> str:
        return ''.join('?' if d is None else str(d) for d in self.digits)

    @property
    def valid(self) -> bool:
        return bool(self.digits) and all(d is not None for d in self.digits)


@dataclass
class StageReport:
    """Pass/fail flags and counts for each pipeline stage."""
    input_valid: bool = False
    deskew_succeeded: bool = False
    l_fiducials_found: int = 0
    sharp_corners_found: int = 0
    rect_fiducials_found: int = 0
    estimated_corners: Tuple[str, ...] = ()
    region_extracted: bool = False
    strategy: str = ''
    blocks_found: int = 0
    rows_found: Tuple[int, ...] = ()
    unreadable_rows: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'input_valid': self.input_valid,
            'deskew_succeeded': self.deskew_succeeded,
            'l_fiducials_found': self.l_fiducials_found,
            'sharp_corners_found': self.sharp_corners_found,
            'rect_fiducials_found': self.rect_fiducials_found,
            'estimated_corners': list(self.estimated_corners),
            'region_extracted': self.region_extracted,
            'strategy': self.strategy,
            'blocks_found': self.blocks_found,
            'rows_found': list(self.rows_found),
            'unreadable_rows': self.unreadable_rows,
        }


@dataclass
class OMRResult:
    """Result of processing one sheet."""

    source: str
    success: bool = False
    questions: Dict[int, QuestionResult] = field(default_factory=dict)
    stages: StageReport = field(default_factory=StageReport)
    warnings: List[str] = field(default_factory=list)
    failure: Optional[FailureReason] = None
    grade: Optional[GradeSummary] = None
    student_id: Optional[IdReading] = None
    test_id: Optional[IdReading] = None
    processing_time_ms: float = 0.0

    @property
    def answers(self) -> Dict[int, Optional[str]]:
        return {n: q.answer for n, q in sorted(self.questions.items())}

    @property
    def statuses(self) -> Dict[int, QuestionStatus]:
        return {n: q.status for n, q in sorted(self.questions.items())}

    @property
    def counts(self) -> Dict[str, int]:
        counts = {'answered': 0, 'skipped': 0, 'multiple': 0, 'unreadable': 0}
        for q in self.questions.values():
            if q.status in (QuestionStatus.ANSWERED, QuestionStatus.CORRECT, QuestionStatus.INCORRECT):
                counts['answered'] += 1
            elif q.status is QuestionStatus.SKIPPED:
                counts['skipped'] += 1
            elif q.status is QuestionStatus.MULTIPLE_MARKS:
                counts['multiple'] += 1
            else:
                counts['unreadable'] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'source': self.source,
            'success': self.success,
            'questions': {str(n): q.to_dict() for n, q in sorted(self.questions.items())},
            'counts': self.counts,
            'stages': self.stages.to_dict(),
            'warnings': list(self.warnings),
            'failure': None if self.failure is None else self.failure.to_dict(),
            'grade': None if self.grade is None else self.grade.to_dict(),
            'student_id': None if self.student_id is None else self.student_id.value,
            'test_id': None if self.test_id is None else self.test_id.value,
            'processing_time_ms': round(self.processing_time_ms, 2),
        }
