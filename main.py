# /main.py
"""
Main script to run the OMR scanner in batch mode.

Finds all images in the given files/directories, processes each sheet on a
worker thread, and saves the graded image and results CSV for every sheet
plus a summary report for the batch.
"""
import argparse
import glob
import logging
import os
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed

import cv2

from omr_scanner import grader, reporting
from omr_scanner.config import DEFAULT_CONFIG, load_config
from omr_scanner.diagnostics import CollectingSink, DirectorySink
from omr_scanner.errors import FailureReason
from omr_scanner.image_processing import is_valid_image_file
from omr_scanner.models import OMRResult
from omr_scanner.pipeline import process_sheet

logger = logging.getLogger("omr_scanner.batch")


class _TeeSink:
    """Keeps the graded overlay in memory and forwards everything to an optional debug sink."""

    enabled = True

    def __init__(self, debug_sink=None):
        self.collector = CollectingSink()
        self.debug_sink = debug_sink

    def emit(self, stage, image):
        if stage == 'graded':
            self.collector.emit(stage, image)
        if self.debug_sink is not None:
            self.debug_sink.emit(stage, image)


def collect_images(inputs):
    """Expands files and directories into a sorted list of image paths."""
    paths = []
    for item in inputs:
        if os.path.isdir(item):
            paths.extend(p for p in glob.glob(os.path.join(item, '*')) if is_valid_image_file(p))
        elif is_valid_image_file(item):
            paths.append(item)
        else:
            logger.warning("Skipping %s: not a supported image file", item)
    return sorted(set(paths))


def setup_directories(output_dir):
    """Create output directories if they don't exist."""
    visual_dir = os.path.join(output_dir, 'graded_output')
    results_dir = os.path.join(output_dir, 'student_results')
    os.makedirs(visual_dir, exist_ok=True)
    os.makedirs(results_dir, exist_ok=True)
    return visual_dir, results_dir


def process_single_sheet(image_path, omr_config, master_answers, debug_dir=None):
    """Runs the pipeline for one sheet; returns the result and the graded overlay."""
    name = os.path.splitext(os.path.basename(image_path))[0]
    debug_sink = DirectorySink(debug_dir, prefix=name) if debug_dir else None
    sink = _TeeSink(debug_sink)
    result = process_sheet(image_path, omr_config, answer_key=master_answers, sink=sink)
    return result, sink.collector.get('graded')


def write_sheet_outputs(image_path, result, graded_image, visual_dir, results_dir):
    name = os.path.splitext(os.path.basename(image_path))[0]
    reporting.save_results_csv(result, os.path.join(results_dir, f"{name}.csv"))
    if graded_image is not None:
        visual_output_path = os.path.join(visual_dir, f"{name}_graded.png")
        cv2.imwrite(visual_output_path, graded_image)
        logger.info("Saved graded image to %s", visual_output_path)


def _failed_result(path, stage, error):
    return OMRResult(
        source=path,
        failure=FailureReason(kind=type(error).__name__, stage=stage, message=str(error), source=path),
    )


def run_batch(paths, omr_config, master_answers, output_dir, workers=4, debug_dir=None):
    """
    Processes sheets concurrently, one pipeline run per worker.

    A sheet whose run or outputs raise is logged and recorded as failed;
    the rest of the batch carries on. Interrupting the batch cancels
    sheets that have not started; sheets in flight finish normally.
    """
    visual_dir, results_dir = setup_directories(output_dir)
    results = []
    executor = ThreadPoolExecutor(max_workers=max(1, workers))
    futures = {
        executor.submit(process_single_sheet, path, omr_config, master_answers, debug_dir): path
        for path in paths
    }
    try:
        for future in as_completed(futures):
            path = futures[future]
            stage = 'pipeline'
            try:
                result, graded_image = future.result()
                stage = 'output'
                write_sheet_outputs(path, result, graded_image, visual_dir, results_dir)
            except Exception as e:
                logger.exception("Sheet %s failed during %s", path, stage)
                result = _failed_result(path, stage, e)
            results.append(result)
            status = "ok" if result.success else f"FAILED ({result.failure.message})"
            print(f"[{len(results)}/{len(paths)}] {os.path.basename(path)}: {status}")
    except KeyboardInterrupt:
        print("Interrupted: cancelling sheets that have not started.", file=sys.stderr)
        for future in futures:
            future.cancel()
        raise
    finally:
        executor.shutdown(wait=True)
    return results


def build_parser():
    parser = argparse.ArgumentParser(description="Read 60-question OMR bubble sheets in batch.")
    parser.add_argument('inputs', nargs='+', help="Image files or directories of images")
    parser.add_argument('--answer-key', help="CSV of question,answer rows used for grading")
    parser.add_argument('--output-dir', default='omr_output', help="Where CSVs and graded images are written")
    parser.add_argument('--config', help="JSON file of per-section configuration overrides")
    parser.add_argument('--strategy', choices=('contour', 'grid', 'morphological'),
                        help="Mark extraction strategy (overrides the config)")
    parser.add_argument('--read-ids', action='store_true', help="Also read the student and test ID grids")
    parser.add_argument('--workers', type=int, default=4, help="Number of sheets processed in parallel")
    parser.add_argument('--debug-dir', help="Write intermediate overlay images to this directory")
    parser.add_argument('-v', '--verbose', action='store_true', help="Verbose logging")
    return parser


def main(argv=None):
    """Main function to orchestrate the batch processing."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    omr_config = load_config(args.config) if args.config else DEFAULT_CONFIG
    if args.strategy:
        omr_config = omr_config.override('pipeline', strategy=args.strategy)
    if args.read_ids:
        omr_config = omr_config.override('ids', enabled=True)

    master_answers = None
    if args.answer_key:
        try:
            master_answers = grader.load_master_answers(args.answer_key, omr_config.layout.choice_labels)
        except (FileNotFoundError, ValueError) as e:
            print(f"FATAL ERROR: {e}. Cannot grade without a valid answer key.", file=sys.stderr)
            return 1

    paths = collect_images(args.inputs)
    if not paths:
        print(f"No images found in: {', '.join(args.inputs)}")
        return 1

    print(f"Found {len(paths)} image(s) to process.")
    results = run_batch(paths, omr_config, master_answers, args.output_dir,
                        workers=args.workers, debug_dir=args.debug_dir)

    print("\n--- Creating summary report of all sheets ---")
    reporting.create_summary_report(results, os.path.join(args.output_dir, 'summary_report.csv'))
    print(f"\n--- Batch processing complete: {sum(r.success for r in results)}/{len(paths)} sheets read. ---")
    return 0


if __name__ == '__main__':
    sys.exit(main())
