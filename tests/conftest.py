"""Pytest configuration and fixtures for omr_scanner tests."""

import numpy as np
import pytest

from omr_scanner.config import DEFAULT_CONFIG
from omr_scanner.pipeline import process_sheet
from sheets import render_sheet

SCENARIO_MARKS = {1: "A", 2: "C", 3: "", 4: "AB", 16: "D", 30: "B", 45: "C", 60: "D"}


@pytest.fixture
def sheet_factory():
    """Return the synthetic sheet renderer."""
    return render_sheet


@pytest.fixture(scope="session")
def scenario_sheet():
    """Sheet with Q1=A, Q2=C, Q3 blank, Q4=A+B and a few answers in later blocks."""
    return render_sheet(marks=SCENARIO_MARKS)


@pytest.fixture(scope="session")
def scenario_result(scenario_sheet):
    """Scenario sheet processed with the default configuration."""
    return process_sheet(scenario_sheet, DEFAULT_CONFIG, source_id="scenario")


@pytest.fixture
def config():
    """Default configuration."""
    return DEFAULT_CONFIG


@pytest.fixture
def blank_binary():
    """Empty 800x1000 binary canvas."""
    return np.zeros((800, 1000), dtype=np.uint8)
