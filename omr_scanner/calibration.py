# calibration.py
"""
Adaptive calibration of row spacing.

The vertical distance between consecutive rows is measured on the sheet
itself, so the tolerance used to group bubbles into rows follows the scan
resolution and survives mild skew or noise.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToleranceResult:
    tolerance: float
    is_valid: bool
    message: Optional[str] = None
    mean: float = 0.0
    std: float = 0.0
    samples: int = 0


def _invalid(calibration_config, message, mean=0.0, std=0.0, samples=0):
    logger.warning("Spacing calibration invalid: %s", message)
    return ToleranceResult(
        tolerance=calibration_config.default_tolerance,
        is_valid=False,
        message=message,
        mean=mean,
        std=std,
        samples=samples,
    )


def calibrate_spacing(positions, calibration_config):
    """
    Computes the row-grouping tolerance from y-coordinates of rows or bubbles.

    Consecutive differences below `min_spacing` are jitter within one row and
    are not spacing samples. Samples farther than `outlier_sigma` standard
    deviations from the mean are dropped before the final statistics. A
    coefficient of variation above `warn_cv` keeps the result valid with a
    warning; above `max_cv` the result is invalid and carries the default
    tolerance.
    """
    values = np.sort(np.asarray(list(positions), dtype=float))
    if len(values) < 2:
        return _invalid(calibration_config, f"need at least 2 samples, got {len(values)}", samples=len(values))

    diffs = np.diff(values)
    spacings = diffs[diffs > calibration_config.min_spacing]
    if len(spacings) == 0:
        return _invalid(calibration_config, "no row-to-row spacing found among the samples", samples=len(values))

    mean = float(np.mean(spacings))
    std = float(np.std(spacings))
    if std > 0 and len(spacings) > 2:
        kept = spacings[np.abs(spacings - mean) <= calibration_config.outlier_sigma * std]
        if len(kept) and len(kept) < len(spacings):
            logger.debug("Rejected %d spacing outlier(s).", len(spacings) - len(kept))
            spacings = kept
            mean = float(np.mean(spacings))
            std = float(np.std(spacings))

    cv = std / mean if mean > 0 else float('inf')
    if cv > calibration_config.max_cv:
        return _invalid(
            calibration_config,
            f"spacing too irregular (std/mean {cv:.2f} > {calibration_config.max_cv:.2f})",
            mean=mean, std=std, samples=len(spacings),
        )

    tolerance = mean * calibration_config.tolerance_ratio
    low, high = calibration_config.tolerance_range
    if not low <= tolerance <= high:
        return _invalid(
            calibration_config,
            f"tolerance {tolerance:.1f} outside the sane range [{low}, {high}]",
            mean=mean, std=std, samples=len(spacings),
        )

    message = None
    if cv > calibration_config.warn_cv:
        message = f"spacing is irregular (std/mean {cv:.2f} > {calibration_config.warn_cv:.2f})"
        logger.warning("Spacing calibration: %s", message)

    return ToleranceResult(
        tolerance=tolerance,
        is_valid=True,
        message=message,
        mean=mean,
        std=std,
        samples=len(spacings),
    )
