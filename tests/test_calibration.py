"""Tests for adaptive row-spacing calibration."""

import pytest

from omr_scanner.calibration import calibrate_spacing


class TestCalibrateSpacing:
    """Tests for calibrate_spacing."""

    @pytest.mark.parametrize("positions", [[], [100]])
    def test_too_few_samples(self, positions, config):
        """Fewer than two positions fall back to the default tolerance."""
        result = calibrate_spacing(positions, config.calibration)
        assert not result.is_valid
        assert result.tolerance == config.calibration.default_tolerance
        assert result.message

    def test_regular_spacing(self, config):
        """Evenly spaced rows give mean * 0.45."""
        result = calibrate_spacing([52 * i for i in range(15)], config.calibration)
        assert result.is_valid
        assert result.mean == pytest.approx(52.0)
        assert result.tolerance == pytest.approx(23.4)
        assert result.message is None
        assert result.samples == 14

    def test_unsorted_input(self, config):
        """Positions are sorted before differencing."""
        result = calibrate_spacing([104, 0, 52, 156], config.calibration)
        assert result.is_valid
        assert result.mean == pytest.approx(52.0)

    def test_missing_row_is_an_outlier(self, config):
        """A double gap is rejected and does not skew the mean."""
        positions = [52 * i for i in range(15) if i != 7]
        result = calibrate_spacing(positions, config.calibration)
        assert result.is_valid
        assert result.mean == pytest.approx(52.0)
        assert result.samples == 12

    def test_jitter_is_not_spacing(self, config):
        """Bubbles on the same row contribute no spacing samples."""
        result = calibrate_spacing([100, 102, 103], config.calibration)
        assert not result.is_valid
        assert result.tolerance == config.calibration.default_tolerance

    def test_irregular_spacing_warns(self, config):
        """Variation between the warning and failure levels stays valid."""
        result = calibrate_spacing([0, 30, 100, 130, 200], config.calibration)
        assert result.is_valid
        assert result.mean == pytest.approx(50.0)
        assert result.tolerance == pytest.approx(22.5)
        assert "irregular" in result.message

    def test_chaotic_spacing_is_invalid(self, config):
        """Variation above the failure level gives the default tolerance."""
        result = calibrate_spacing([0, 10, 100, 110, 300], config.calibration)
        assert not result.is_valid
        assert result.tolerance == config.calibration.default_tolerance

    def test_tolerance_out_of_range(self, config):
        """A tolerance beyond the sane range is rejected."""
        result = calibrate_spacing([0, 2000], config.calibration)
        assert not result.is_valid
        assert "outside" in result.message
