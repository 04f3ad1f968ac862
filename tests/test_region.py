"""Tests for answer region extraction."""

import pytest

from omr_scanner.errors import InsufficientFiducials
from omr_scanner.fiducials import CornerRole
from omr_scanner.image_processing import preprocess_for_omr
from omr_scanner.region import extract_answer_region


class TestExtractAnswerRegion:
    """Tests for extract_answer_region."""

    def test_crop_between_fiducials(self, sheet_factory, config):
        """The crop spans the fiducial centers minus the margin."""
        image = sheet_factory()
        _, binary = preprocess_for_omr(image, config.preprocess)
        region = extract_answer_region(image, binary, config)
        x, y, w, h = region.rect
        assert abs(x - 110) <= 2 and abs(y - 430) <= 2
        assert abs(w - 779) <= 3 and abs(h - 859) <= 3
        assert region.image.shape[:2] == (h, w)
        assert region.binary.shape == (h, w)
        assert region.corners.estimated == ()
        assert len(region.fiducials) == 4
        assert len(region.exclusions) == 4

    def test_crop_is_a_copy(self, sheet_factory, config):
        """Writing to the crop leaves the page untouched."""
        image = sheet_factory()
        _, binary = preprocess_for_omr(image, config.preprocess)
        region = extract_answer_region(image, binary, config)
        region.binary[:] = 0
        assert binary.any()

    def test_missing_mark_is_estimated(self, sheet_factory, config):
        """Three marks still give the full region, flagged as estimated."""
        image = sheet_factory(rect_marks=("TopRight", "BottomLeft", "BottomRight"))
        _, binary = preprocess_for_omr(image, config.preprocess)
        region = extract_answer_region(image, binary, config)
        assert region.corners.estimated == (CornerRole.TOP_LEFT,)
        x, y, _, _ = region.rect
        assert abs(x - 110) <= 2 and abs(y - 430) <= 2

    def test_single_mark_raises(self, sheet_factory, config):
        """One mark cannot frame the region; the source is attached to the error."""
        image = sheet_factory(rect_marks=("TopLeft",))
        _, binary = preprocess_for_omr(image, config.preprocess)
        with pytest.raises(InsufficientFiducials) as exc_info:
            extract_answer_region(image, binary, config, source_id="sheet-7")
        assert exc_info.value.source == "sheet-7"
        assert exc_info.value.stage == "region"
        assert "sheet-7" in str(exc_info.value)
