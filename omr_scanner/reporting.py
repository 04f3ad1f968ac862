# /omr_scanner/reporting.py
"""
Functions for generating reports: overlay images and CSV files.
"""
import logging

import cv2
import numpy as np
import pandas as pd

from . import config
from .models import QuestionStatus

logger = logging.getLogger(__name__)


def _to_bgr(image):
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    if image.shape[2] == 1:
        return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 2:
        return cv2.cvtColor(np.ascontiguousarray(image[:, :, 0]), cv2.COLOR_GRAY2BGR)
    return image.copy()


def _pt(point, offset=(0, 0)):
    return int(round(point[0] + offset[0])), int(round(point[1] + offset[1]))


def draw_fiducials(image, deskew_result):
    """L marks with their chosen sharp vertices, drawn on the input page."""
    vis_image = _to_bgr(image)
    for role, mark in deskew_result.page_corners.present().items():
        cv2.polylines(vis_image, [mark.polygon.reshape(-1, 1, 2).astype(np.int32)], True,
                      config.VIS_FIDUCIAL_COLOR, config.VIS_THICKNESS_BUBBLE)
        x, y, _, _ = mark.bounding_box
        cv2.putText(vis_image, role.value, (x, max(12, y - 6)), config.VIS_INFO_FONT, 0.5,
                    config.VIS_FIDUCIAL_COLOR, 1)
    for point in deskew_result.corners.values():
        cv2.circle(vis_image, _pt(point), 8, config.VIS_WRONG_ANSWER_COLOR, config.VIS_THICKNESS_ANSWER)
    return vis_image


def draw_region(image, region):
    """Answer-region frame with detected and estimated corners on the deskewed page."""
    vis_image = _to_bgr(image)
    for mark in region.fiducials:
        x, y, w, h = mark.bounding_box
        cv2.rectangle(vis_image, (x, y), (x + w, y + h), config.VIS_FIDUCIAL_COLOR, config.VIS_THICKNESS_BUBBLE)
    for role in region.corners.estimated:
        cv2.drawMarker(vis_image, _pt(region.corners.get(role)), config.VIS_ESTIMATED_COLOR,
                       cv2.MARKER_CROSS, 20, config.VIS_THICKNESS_BUBBLE)
    x, y, w, h = region.rect
    cv2.rectangle(vis_image, (x, y), (x + w, y + h), config.VIS_BLOCK_COLOR, config.VIS_THICKNESS_BUBBLE)
    return vis_image


def draw_layout(region_image, reading):
    """Blocks, rows and bubbles as detected inside the answer region."""
    vis_image = _to_bgr(region_image)
    for block in reading.blocks:
        x, y, w, h = block.bbox
        cv2.rectangle(vis_image, (x, y), (x + w, y + h), config.VIS_BLOCK_COLOR, config.VIS_THICKNESS_BUBBLE)
        for row in block.rows:
            rx, ry, rw, rh = row.bbox
            color = config.VIS_ROW_OVERLAY_COLOR if row.readable else config.VIS_WRONG_ANSWER_COLOR
            cv2.rectangle(vis_image, (rx, ry), (rx + rw, ry + rh), color, 1)
            for bubble in row.bubbles:
                thickness = config.VIS_THICKNESS_ANSWER if bubble.marked else 1
                cv2.circle(vis_image, _pt(bubble.center), int(round(bubble.radius)),
                           config.VIS_DEFAULT_BUBBLE_COLOR, thickness)
    return vis_image


def _bubble_color(question, choice_label):
    """Color and thickness of one bubble in the graded overlay."""
    if question is None or question.answer != choice_label:
        return config.VIS_DEFAULT_BUBBLE_COLOR, config.VIS_THICKNESS_BUBBLE
    if question.status is QuestionStatus.CORRECT:
        return config.VIS_CORRECT_ANSWER_COLOR, config.VIS_THICKNESS_ANSWER
    if question.status is QuestionStatus.INCORRECT:
        return config.VIS_WRONG_ANSWER_COLOR, config.VIS_THICKNESS_ANSWER
    return config.VIS_MARKED_COLOR, config.VIS_THICKNESS_ANSWER


def create_visual_feedback(base_image, result, reading, region_offset=(0, 0), labels=config.CHOICE_LABELS):
    """
    Draws feedback onto the deskewed page: header info, row highlights and answers.
    """
    vis_image = _to_bgr(base_image)

    # Row highlights
    overlay = vis_image.copy()
    for row in reading.iter_rows():
        x, y, w, h = row.bbox
        color = config.VIS_ROW_OVERLAY_COLOR if row.readable else config.VIS_WRONG_ANSWER_COLOR
        cv2.rectangle(overlay, _pt((x, y), region_offset), _pt((x + w, y + h), region_offset), color, -1)
    cv2.addWeighted(overlay, config.VIS_ROW_OVERLAY_ALPHA, vis_image, 1 - config.VIS_ROW_OVERLAY_ALPHA, 0, vis_image)

    # Feedback on each bubble
    for row in reading.iter_rows():
        question = result.questions.get(row.question_number)
        for bubble in row.bubbles:
            if not 0 <= bubble.choice_index < len(labels):
                continue
            color, thickness = _bubble_color(question, labels[bubble.choice_index])
            cv2.circle(vis_image, _pt(bubble.center, region_offset), int(round(bubble.radius)), color, thickness)

    # Name and score at the top of the sheet
    lines = [f"Sheet: {result.source}"]
    if result.grade is not None:
        g = result.grade
        lines.append(f"Score: {g.correct} / {g.total} ({g.percentage:.1f}%)")
    else:
        counts = result.counts
        lines.append(
            f"Answered {counts['answered']}, skipped {counts['skipped']}, "
            f"multiple {counts['multiple']}, unreadable {counts['unreadable']}"
        )
    for i, text in enumerate(lines):
        cv2.putText(vis_image, text, (20, 30 + 30 * i), config.VIS_INFO_FONT, config.VIS_INFO_FONT_SCALE * 0.7,
                    config.VIS_TEXT_COLOR, config.VIS_INFO_FONT_THICKNESS)

    logger.debug("Visual feedback image created for %s.", result.source)
    return vis_image


def results_dataframe(result):
    """One row per question: answer, status, key answer and mark."""
    records = []
    for number, question in sorted(result.questions.items()):
        records.append({
            'question_number': number,
            'student_answer': question.answer or '',
            'status': question.status.value,
            'correct_answer': question.correct_answer or '',
            'marks': 1 if question.status is QuestionStatus.CORRECT else 0,
        })
    return pd.DataFrame(records, columns=['question_number', 'student_answer', 'status', 'correct_answer', 'marks'])


def save_results_csv(result, output_path):
    """Saves the per-question results of one sheet, followed by summary rows."""
    df = results_dataframe(result)
    counts = result.counts
    summary_rows = [
        {'question_number': 'Answered', 'marks': counts['answered']},
        {'question_number': 'Skipped', 'marks': counts['skipped']},
        {'question_number': 'MultipleMarks', 'marks': counts['multiple']},
        {'question_number': 'Unreadable', 'marks': counts['unreadable']},
    ]
    if result.grade is not None:
        summary_rows += [
            {'question_number': 'Total', 'correct_answer': result.grade.total, 'marks': result.grade.correct},
            {'question_number': 'Percentage', 'marks': f"{result.grade.percentage:.2f}%"},
        ]
    df = pd.concat([df, pd.DataFrame(summary_rows)], ignore_index=True)

    try:
        df.to_csv(output_path, index=False)
        logger.info("Results successfully saved to %s", output_path)
    except IOError as e:
        logger.error("Could not write result file to %s: %s", output_path, e)
        raise


def summary_dataframe(results):
    """One line per processed sheet."""
    records = []
    for result in results:
        counts = result.counts
        records.append({
            'source': result.source,
            'success': result.success,
            'student_id': result.student_id.value if result.student_id else '',
            'answered': counts['answered'],
            'skipped': counts['skipped'],
            'multiple': counts['multiple'],
            'unreadable': counts['unreadable'],
            'correct': result.grade.correct if result.grade else None,
            'percentage_score': result.grade.percentage if result.grade else None,
            'failure': str(result.failure.message) if result.failure else '',
            'processing_time_ms': round(result.processing_time_ms, 1),
        })
    return pd.DataFrame(records)


def create_summary_report(results, output_path):
    """
    Compiles all sheet results into one CSV, followed by overall statistics
    of the graded sheets.
    """
    if not results:
        logger.warning("No sheet results to summarize. Summary report will not be created.")
        return None

    summary_df = summary_dataframe(results)
    scores = summary_df['percentage_score'].dropna().astype(float)
    stats_df = pd.DataFrame({
        'Statistic': ['Number of Sheets', 'Failed Sheets', 'Graded Sheets', 'Average Score (%)',
                      'Highest Score (%)', 'Lowest Score (%)', 'Std Deviation'],
        'Value': [
            len(summary_df),
            int((~summary_df['success']).sum()),
            len(scores),
            f"{scores.mean():.2f}" if len(scores) else '',
            f"{scores.max():.2f}" if len(scores) else '',
            f"{scores.min():.2f}" if len(scores) else '',
            f"{scores.std():.2f}" if len(scores) > 1 else '',
        ],
    })

    with open(output_path, 'w', newline='') as f:
        summary_df.to_csv(f, index=False)
        f.write('\n--- Overall Statistics ---\n')
        stats_df.to_csv(f, index=False)
    logger.info("Successfully created summary report at: %s", output_path)
    return summary_df
