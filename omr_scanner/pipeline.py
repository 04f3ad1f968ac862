# pipeline.py
"""
Single-sheet OMR pipeline.

load -> validate -> preprocess -> deskew -> preprocess -> answer region ->
mark extraction -> decision rule -> (ID grids) -> (grading)

Each stage is a pure function of the previous stage's output and the
immutable configuration, so sheets can be processed concurrently. Page-level
failures end the run with a structured FailureReason on the result.
"""
import logging
import os
import time

from . import reporting
from .answer_extractor import extract_answers
from .config import DEFAULT_CONFIG
from .deskew import deskew_image
from .diagnostics import NullSink
from .errors import BlockCountMismatch, OMRError
from .grader import grade_answers
from .id_reader import read_ids
from .image_processing import load_image, preprocess_for_omr, validate_image
from .models import OMRResult, QuestionStatus
from .region import extract_answer_region
from .strategies import get_strategy

logger = logging.getLogger(__name__)


def _describe(source):
    if isinstance(source, (str, os.PathLike)):
        return os.fspath(source)
    if isinstance(source, (bytes, bytearray, memoryview)):
        return '<bytes>'
    if hasattr(source, 'shape'):
        return '<array>'
    return f"<{type(source).__name__}>"


def process_sheet(source, config=DEFAULT_CONFIG, answer_key=None, sink=None, source_id=None):
    """
    Processes one sheet image (path, bytes or array) into an OMRResult.

    `answer_key` maps question numbers to choice labels; `sink` receives the
    intermediate overlays. Errors of the OMRError family become a failed
    result; anything else propagates.
    """
    sink = sink or NullSink()
    result = OMRResult(source=source_id or _describe(source))
    start = time.perf_counter()
    try:
        _run(source, config, answer_key, sink, result)
        result.success = True
    except OMRError as e:
        e.with_source(result.source)
        if isinstance(e, BlockCountMismatch) and isinstance(e.actual, int):
            result.stages.blocks_found = e.actual
        result.failure = e.to_failure()
        logger.error("Sheet %s failed: %s", result.source, e)
    finally:
        result.processing_time_ms = (time.perf_counter() - start) * 1000.0
    return result


def _run(source, config, answer_key, sink, result):
    stages = result.stages

    image, source_id = load_image(source, result.source)
    result.source = source_id
    validate_image(image, source_id, config.preprocess)
    stages.input_valid = True

    _, binary = preprocess_for_omr(image, config.preprocess)
    deskewed = deskew_image(image, binary, config)
    stages.deskew_succeeded = deskewed.success
    stages.l_fiducials_found = deskewed.l_fiducials_found
    stages.sharp_corners_found = deskewed.sharp_corners_found
    if sink.enabled:
        sink.emit('fiducials', reporting.draw_fiducials(image, deskewed))
    if not deskewed.success:
        error = deskewed.error.with_source(source_id)
        if config.pipeline.require_deskew:
            raise error
        result.warnings.append(f"{error}; continuing without deskew")

    _, binary = preprocess_for_omr(deskewed.image, config.preprocess)
    region = extract_answer_region(deskewed.image, binary, config, source_id)
    stages.rect_fiducials_found = len(region.fiducials)
    stages.estimated_corners = tuple(role.value for role in region.corners.estimated)
    stages.region_extracted = True
    if region.corners.estimated:
        result.warnings.append(
            f"[region] estimated corner(s) {', '.join(stages.estimated_corners)} [source: {source_id}]"
        )
    if sink.enabled:
        sink.emit('region', reporting.draw_region(deskewed.image, region))

    strategy = get_strategy(config.pipeline.strategy)
    stages.strategy = strategy.name
    reading = strategy.extract(region.binary, config, region.exclusions, source_id)
    stages.blocks_found = len(reading.blocks)
    stages.rows_found = reading.rows_found
    stages.unreadable_rows = sum(1 for row in reading.iter_rows() if not row.readable)
    result.warnings.extend(reading.warnings)
    if sink.enabled:
        sink.emit('layout', reporting.draw_layout(region.image, reading))

    questions = extract_answers(reading, config)

    if config.ids.enabled:
        student, test, warnings = read_ids(binary, region.rect[1], config.ids)
        result.student_id, result.test_id = student, test
        result.warnings.extend(warnings)

    if answer_key:
        questions, result.grade = grade_answers(questions, answer_key)
    result.questions = questions

    if sink.enabled:
        offset = region.rect[:2]
        sink.emit('graded', reporting.create_visual_feedback(deskewed.image, result, reading, offset,
                                                             config.layout.choice_labels))

    unreadable = sum(1 for q in questions.values() if q.status is QuestionStatus.UNREADABLE)
    logger.info("Processed %s: %s (%d unreadable)", source_id, result.counts, unreadable)
