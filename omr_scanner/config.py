# /omr_scanner/config.py
"""
Configuration for the OMR sheet scanner.

The module-level constants hold the calibrated defaults for the canonical
60-question sheet. They are grouped into frozen dataclasses below; an
OMRConfig instance is built once per run and passed explicitly into every
stage, so nothing in the pipeline reads mutable globals.
"""
import json
from dataclasses import dataclass, field, fields, replace, asdict
from typing import Any, Dict, Mapping, Tuple

import cv2


# --- Sheet Layout ---
TOTAL_QUESTIONS = 60
BLOCK_COUNT = 4
ROWS_PER_BLOCK = 15
CHOICES_PER_QUESTION = 4
CHOICE_LABELS = ('A', 'B', 'C', 'D')


# --- Input Validation ---
MIN_IMAGE_WIDTH = 640
MIN_IMAGE_HEIGHT = 480
VALID_IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.bmp', '.tiff', '.tif')


# --- Preprocessing ---
NORMALIZE_INTENSITY = True
BLUR_KERNEL_SIZE = 5
CLOSE_KERNEL_SIZE = 3  # 0 disables the closing pass


# --- Fiducial Detection ---
POLY_EPSILON_RATIO = 0.02  # fraction of the contour perimeter
L_MIN_AREA = 500
L_MAX_AREA = 15000
L_MIN_VERTICES = 5
L_SOLIDITY_RANGE = (0.3, 0.75)
RECT_MIN_AREA = 100
RECT_MAX_AREA = 3000
RECT_VERTICES = 4
FIDUCIAL_ASPECT_RANGE = (0.5, 2.0)
MIN_CORNER_SPREAD = 50  # px; below this the image midline splits the corners
REGION_ASPECT_RATIO = 1.1  # height / width of the rectangular-mark frame
HEADER_EXCLUSION_RATIO = 0.0


# --- Deskew ---
SHARP_ANGLE_TOLERANCE = 15.0  # degrees
MAX_SHARP_ANGLE = 120.0
REQUIRE_DESKEW = False


# --- Region Extraction ---
REGION_MARGIN = 10


# --- Block Detection ---
BLOCK_MIN_AREA = 20000
BLOCK_MIN_ASPECT = 4.0  # height / width
BLOCK_INSET = 4


# --- Row Detection ---
ROW_MIN_AREA = 2000
ROW_MAX_AREA = 30000
ROW_MIN_ASPECT = 3.0  # width / height
ROW_INSET = 4
ROW_DEDUPE_DY = 10
ROW_DEDUPE_DX = 50


# --- Bubble Detection Parameters ---
BUBBLE_METHOD = 'contour'  # or 'hough'
BUBBLE_MIN_AREA = 150
BUBBLE_MAX_AREA = 2500
BUBBLE_MIN_CIRCULARITY = 0.7
BUBBLE_ASPECT_RATIO_RANGE = (0.7, 1.3)
BUBBLE_EXPECTED_RADIUS = 13
BUBBLE_EXPECTED_SPACING = 32
HOUGH_PARAM1 = 50
HOUGH_PARAM2 = 15


# --- Spacing Calibration ---
CALIBRATION_MIN_SPACING = 5.0
CALIBRATION_OUTLIER_SIGMA = 2.0
CALIBRATION_WARN_CV = 0.30
CALIBRATION_MAX_CV = 0.50
CALIBRATION_TOLERANCE_RATIO = 0.45
CALIBRATION_DEFAULT_TOLERANCE = 20.0
CALIBRATION_TOLERANCE_RANGE = (2.0, 500.0)


# --- Mark Recognition ---
# Single authority for the fill-ratio threshold; see DESIGN.md.
FILL_THRESHOLD = 0.45
SAMPLE_SHAPE = 'circle'  # or 'square'
SAMPLE_RADIUS_RATIO = 0.65
MULTIPLE_MARKS_POLICY = 'reject'  # or 'highest_fill'


# --- Static Grid Sampling ---
GRID_VERTICAL_MARGIN_RATIO = 0.0125
GRID_CHOICE_CENTER_RATIOS = (0.247, 0.435, 0.624, 0.812)


# --- Morphological Extraction ---
ERODE_KERNEL_SIZE = 3
ERODE_ITERATIONS = 2
MARK_BLOB_AREA_RANGE = (100, 3000)
MARK_BLOB_ASPECT_RANGE = (0.6, 1.6)  # bbox width / height
MARK_BLOB_MIN_EXTENT = 0.5  # blob area / bbox area


# --- ID Grids ---
ID_ENABLED = False
STUDENT_ID_DIGITS = 10
TEST_ID_DIGITS = 4
ID_ROWS = 10
ID_BOX_INSET = 5
ID_MIN_BOX_AREA = 10000
ID_FILL_THRESHOLD = 0.45
ID_SAMPLE_RADIUS_RATIO = 0.25  # fraction of the smaller cell side


# --- Pipeline ---
STRATEGY = 'contour'


# --- Visualization Parameters ---
VIS_ROW_OVERLAY_COLOR = (255, 0, 0)      # Blue for row highlight
VIS_CORRECT_ANSWER_COLOR = (0, 255, 0)   # Green
VIS_WRONG_ANSWER_COLOR = (0, 0, 255)     # Red
VIS_MARKED_COLOR = (0, 165, 255)         # Orange when no key is supplied
VIS_DEFAULT_BUBBLE_COLOR = (255, 0, 0)   # Blue for all detected bubbles
VIS_FIDUCIAL_COLOR = (255, 0, 255)
VIS_ESTIMATED_COLOR = (0, 255, 255)
VIS_BLOCK_COLOR = (0, 128, 0)
VIS_TEXT_COLOR = (0, 0, 0)               # Black
VIS_ROW_OVERLAY_ALPHA = 0.15
VIS_THICKNESS_BUBBLE = 2
VIS_THICKNESS_ANSWER = 4
VIS_INFO_FONT = cv2.FONT_HERSHEY_SIMPLEX
VIS_INFO_FONT_SCALE = 0.9
VIS_INFO_FONT_THICKNESS = 2


def _check_range(name, value_range):
    low, high = value_range
    if low > high:
        raise ValueError(f"{name}: lower bound {low} is above upper bound {high}")


@dataclass(frozen=True)
class LayoutConfig:
    total_questions: int = TOTAL_QUESTIONS
    block_count: int = BLOCK_COUNT
    rows_per_block: int = ROWS_PER_BLOCK
    choices_per_question: int = CHOICES_PER_QUESTION
    choice_labels: Tuple[str, ...] = CHOICE_LABELS

    def __post_init__(self):
        if self.block_count * self.rows_per_block != self.total_questions:
            raise ValueError(
                f"layout: {self.block_count} blocks x {self.rows_per_block} rows "
                f"does not give {self.total_questions} questions"
            )
        if len(self.choice_labels) != self.choices_per_question:
            raise ValueError(
                f"layout: {len(self.choice_labels)} choice labels for "
                f"{self.choices_per_question} choices"
            )


@dataclass(frozen=True)
class PreprocessConfig:
    min_width: int = MIN_IMAGE_WIDTH
    min_height: int = MIN_IMAGE_HEIGHT
    normalize: bool = NORMALIZE_INTENSITY
    blur_kernel: int = BLUR_KERNEL_SIZE
    close_kernel: int = CLOSE_KERNEL_SIZE

    def __post_init__(self):
        if self.blur_kernel < 1 or self.blur_kernel % 2 == 0:
            raise ValueError(f"preprocess: blur kernel must be odd and positive, got {self.blur_kernel}")


@dataclass(frozen=True)
class FiducialConfig:
    epsilon_ratio: float = POLY_EPSILON_RATIO
    l_min_area: float = L_MIN_AREA
    l_max_area: float = L_MAX_AREA
    l_min_vertices: int = L_MIN_VERTICES
    l_solidity_range: Tuple[float, float] = L_SOLIDITY_RANGE
    rect_min_area: float = RECT_MIN_AREA
    rect_max_area: float = RECT_MAX_AREA
    rect_vertices: int = RECT_VERTICES
    aspect_range: Tuple[float, float] = FIDUCIAL_ASPECT_RANGE
    min_corner_spread: float = MIN_CORNER_SPREAD
    region_aspect_ratio: float = REGION_ASPECT_RATIO
    header_exclusion_ratio: float = HEADER_EXCLUSION_RATIO

    def __post_init__(self):
        _check_range('fiducials.l_area', (self.l_min_area, self.l_max_area))
        _check_range('fiducials.rect_area', (self.rect_min_area, self.rect_max_area))
        _check_range('fiducials.l_solidity_range', self.l_solidity_range)
        _check_range('fiducials.aspect_range', self.aspect_range)


@dataclass(frozen=True)
class DeskewConfig:
    angle_tolerance: float = SHARP_ANGLE_TOLERANCE
    max_sharp_angle: float = MAX_SHARP_ANGLE


@dataclass(frozen=True)
class RegionConfig:
    margin: int = REGION_MARGIN


@dataclass(frozen=True)
class BlockConfig:
    min_area: float = BLOCK_MIN_AREA
    min_aspect: float = BLOCK_MIN_ASPECT
    inset: int = BLOCK_INSET


@dataclass(frozen=True)
class RowConfig:
    min_area: float = ROW_MIN_AREA
    max_area: float = ROW_MAX_AREA
    min_aspect: float = ROW_MIN_ASPECT
    inset: int = ROW_INSET
    dedupe_dy: float = ROW_DEDUPE_DY
    dedupe_dx: float = ROW_DEDUPE_DX

    def __post_init__(self):
        _check_range('rows.area', (self.min_area, self.max_area))


@dataclass(frozen=True)
class BubbleConfig:
    method: str = BUBBLE_METHOD
    min_area: float = BUBBLE_MIN_AREA
    max_area: float = BUBBLE_MAX_AREA
    min_circularity: float = BUBBLE_MIN_CIRCULARITY
    aspect_range: Tuple[float, float] = BUBBLE_ASPECT_RATIO_RANGE
    expected_radius: float = BUBBLE_EXPECTED_RADIUS
    expected_spacing: float = BUBBLE_EXPECTED_SPACING
    hough_param1: float = HOUGH_PARAM1
    hough_param2: float = HOUGH_PARAM2

    def __post_init__(self):
        if self.method not in ('contour', 'hough'):
            raise ValueError(f"bubbles.method must be 'contour' or 'hough', got {self.method!r}")
        _check_range('bubbles.area', (self.min_area, self.max_area))
        _check_range('bubbles.aspect_range', self.aspect_range)


@dataclass(frozen=True)
class CalibrationConfig:
    min_spacing: float = CALIBRATION_MIN_SPACING
    outlier_sigma: float = CALIBRATION_OUTLIER_SIGMA
    warn_cv: float = CALIBRATION_WARN_CV
    max_cv: float = CALIBRATION_MAX_CV
    tolerance_ratio: float = CALIBRATION_TOLERANCE_RATIO
    default_tolerance: float = CALIBRATION_DEFAULT_TOLERANCE
    tolerance_range: Tuple[float, float] = CALIBRATION_TOLERANCE_RANGE

    def __post_init__(self):
        if self.warn_cv > self.max_cv:
            raise ValueError(f"calibration: warn_cv {self.warn_cv} is above max_cv {self.max_cv}")
        _check_range('calibration.tolerance_range', self.tolerance_range)


@dataclass(frozen=True)
class MarkConfig:
    fill_threshold: float = FILL_THRESHOLD
    sample_shape: str = SAMPLE_SHAPE
    sample_radius_ratio: float = SAMPLE_RADIUS_RATIO
    multiple_marks_policy: str = MULTIPLE_MARKS_POLICY

    def __post_init__(self):
        if not 0.0 < self.fill_threshold <= 1.0:
            raise ValueError(f"marks.fill_threshold must be in (0, 1], got {self.fill_threshold}")
        if self.sample_shape not in ('circle', 'square'):
            raise ValueError(f"marks.sample_shape must be 'circle' or 'square', got {self.sample_shape!r}")
        if self.multiple_marks_policy not in ('reject', 'highest_fill'):
            raise ValueError(
                f"marks.multiple_marks_policy must be 'reject' or 'highest_fill', "
                f"got {self.multiple_marks_policy!r}"
            )


@dataclass(frozen=True)
class GridConfig:
    vertical_margin_ratio: float = GRID_VERTICAL_MARGIN_RATIO
    choice_center_ratios: Tuple[float, ...] = GRID_CHOICE_CENTER_RATIOS


@dataclass(frozen=True)
class MorphologyConfig:
    kernel_size: int = ERODE_KERNEL_SIZE
    iterations: int = ERODE_ITERATIONS
    blob_area_range: Tuple[float, float] = MARK_BLOB_AREA_RANGE
    blob_aspect_range: Tuple[float, float] = MARK_BLOB_ASPECT_RANGE
    min_blob_extent: float = MARK_BLOB_MIN_EXTENT

    def __post_init__(self):
        _check_range('morphology.blob_area_range', self.blob_area_range)
        _check_range('morphology.blob_aspect_range', self.blob_aspect_range)


@dataclass(frozen=True)
class IdConfig:
    enabled: bool = ID_ENABLED
    student_digits: int = STUDENT_ID_DIGITS
    test_digits: int = TEST_ID_DIGITS
    rows: int = ID_ROWS
    inset: int = ID_BOX_INSET
    min_box_area: float = ID_MIN_BOX_AREA
    fill_threshold: float = ID_FILL_THRESHOLD
    sample_radius_ratio: float = ID_SAMPLE_RADIUS_RATIO


@dataclass(frozen=True)
class PipelineConfig:
    strategy: str = STRATEGY
    require_deskew: bool = REQUIRE_DESKEW


@dataclass(frozen=True)
class OMRConfig:
    """Immutable bundle of every tunable used by the pipeline."""
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    preprocess: PreprocessConfig = field(default_factory=PreprocessConfig)
    fiducials: FiducialConfig = field(default_factory=FiducialConfig)
    deskew: DeskewConfig = field(default_factory=DeskewConfig)
    region: RegionConfig = field(default_factory=RegionConfig)
    blocks: BlockConfig = field(default_factory=BlockConfig)
    rows: RowConfig = field(default_factory=RowConfig)
    bubbles: BubbleConfig = field(default_factory=BubbleConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    marks: MarkConfig = field(default_factory=MarkConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    morphology: MorphologyConfig = field(default_factory=MorphologyConfig)
    ids: IdConfig = field(default_factory=IdConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    def override(self, section: str, **changes: Any) -> 'OMRConfig':
        """Returns a copy with fields of one section replaced."""
        current = getattr(self, section, None)
        if current is None or section not in {f.name for f in fields(self)}:
            raise ValueError(f"Unknown config section: {section!r}")
        return replace(self, **{section: replace(current, **changes)})

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, Any]]) -> 'OMRConfig':
        sections = {f.name: f for f in fields(cls)}
        built = {}
        for name, values in data.items():
            if name not in sections:
                raise ValueError(f"Unknown config section: {name!r}")
            section_cls = sections[name].default_factory
            known = {f.name: f for f in fields(section_cls)}
            unknown = set(values) - set(known)
            if unknown:
                raise ValueError(f"Unknown keys in config section {name!r}: {sorted(unknown)}")
            # JSON has no tuples
            coerced = {k: tuple(v) if isinstance(v, list) else v for k, v in values.items()}
            built[name] = section_cls(**coerced)
        return cls(**built)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return asdict(self)


def load_config(path) -> OMRConfig:
    """Loads an OMRConfig from a JSON file of per-section overrides."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return OMRConfig.from_dict(data)


DEFAULT_CONFIG = OMRConfig()
