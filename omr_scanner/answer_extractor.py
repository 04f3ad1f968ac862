# answer_extractor.py
"""
Functions to turn measured question rows into per-question answers.
"""
import logging

from .models import QuestionResult, QuestionStatus

logger = logging.getLogger(__name__)


def _confidence(fills, threshold, marked_count):
    """
    How clear-cut the decision is, in [0, 1].

    For a single mark this is the gap to the runner-up; for an empty row the
    margin by which the darkest bubble stays under the threshold.
    """
    if not fills:
        return 0.0
    ordered = sorted(fills, reverse=True)
    if marked_count == 0:
        return max(0.0, min(1.0, (threshold - ordered[0]) / threshold))
    runner_up = ordered[1] if len(ordered) > 1 else 0.0
    return max(0.0, min(1.0, ordered[0] - runner_up))


def decide(row, config):
    """
    Applies the 0 / 1 / 2+ marks rule to one question row.

    With two or more marks the answer is None under the 'reject' policy; the
    'highest_fill' policy reports the most filled marked choice instead. The
    status is MultipleMarks either way.
    """
    labels = config.layout.choice_labels
    if not row.readable:
        return QuestionResult(
            number=row.question_number, answer=None, status=QuestionStatus.UNREADABLE, note=row.note,
        )

    fills = tuple(b.fill_ratio for b in row.bubbles)
    marked = row.marked_bubbles
    confidence = _confidence(fills, config.marks.fill_threshold, len(marked))

    if not marked:
        return QuestionResult(
            number=row.question_number, answer=None, status=QuestionStatus.SKIPPED,
            fill_ratios=fills, confidence=confidence,
        )

    if len(marked) == 1:
        return QuestionResult(
            number=row.question_number, answer=labels[marked[0].choice_index], status=QuestionStatus.ANSWERED,
            fill_ratios=fills, confidence=confidence,
        )

    chosen = ', '.join(labels[b.choice_index] for b in marked)
    if config.marks.multiple_marks_policy == 'highest_fill':
        best = max(marked, key=lambda b: b.fill_ratio)
        return QuestionResult(
            number=row.question_number, answer=labels[best.choice_index], status=QuestionStatus.MULTIPLE_MARKS,
            fill_ratios=fills, confidence=0.0,
            note=f"multiple marks ({chosen}); kept the most filled choice",
        )
    return QuestionResult(
        number=row.question_number, answer=None, status=QuestionStatus.MULTIPLE_MARKS,
        fill_ratios=fills, confidence=0.0, note=f"multiple marks ({chosen})",
    )


def extract_answers(reading, config):
    """
    Decides every question of the sheet.

    Returns {question number: QuestionResult} for all questions of the
    layout; a question whose row was never detected is Unreadable.
    """
    results = {}
    for row in reading.iter_rows():
        if row.question_number in results:
            logger.warning("Question %d was detected twice; keeping the first row.", row.question_number)
            continue
        results[row.question_number] = decide(row, config)

    for number in range(1, config.layout.total_questions + 1):
        if number not in results:
            results[number] = QuestionResult(
                number=number, answer=None, status=QuestionStatus.UNREADABLE,
                note="question row not detected",
            )

    logger.info("Extracted answers for %d questions.", len(results))
    return dict(sorted(results.items()))
