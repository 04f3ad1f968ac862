"""Tests for CSV reports and overlay images."""

import pandas as pd

from omr_scanner.reporting import (
    create_summary_report,
    results_dataframe,
    save_results_csv,
    summary_dataframe,
)
from omr_scanner.pipeline import process_sheet


class TestPerSheetCsv:
    """Tests for the per-sheet results file."""

    def test_dataframe_has_a_row_per_question(self, scenario_result):
        df = results_dataframe(scenario_result)
        assert len(df) == 60
        assert list(df.columns) == ["question_number", "student_answer", "status", "correct_answer", "marks"]
        first = df.iloc[0]
        assert first["student_answer"] == "A"
        assert first["status"] == "Answered"

    def test_csv_with_grade(self, scenario_sheet, tmp_path):
        result = process_sheet(scenario_sheet, answer_key={1: "A", 2: "C"})
        path = tmp_path / "sheet.csv"
        save_results_csv(result, str(path))
        df = pd.read_csv(path)
        assert len(df) == 60 + 6
        assert df.iloc[-2]["question_number"] == "Total"
        assert df.iloc[-1]["marks"] == "100.00%"

    def test_csv_without_grade(self, scenario_result, tmp_path):
        path = tmp_path / "sheet.csv"
        save_results_csv(scenario_result, str(path))
        df = pd.read_csv(path)
        assert len(df) == 64
        assert df.iloc[-1]["question_number"] == "Unreadable"


class TestSummaryReport:
    """Tests for the batch summary."""

    def test_summary_lists_every_sheet(self, scenario_result, sheet_factory):
        failed = process_sheet(sheet_factory(blocks=3), source_id="broken")
        df = summary_dataframe([scenario_result, failed])
        assert list(df["source"]) == ["scenario", "broken"]
        assert list(df["success"]) == [True, False]
        assert "answer blocks" in df.iloc[1]["failure"]

    def test_report_file(self, scenario_sheet, tmp_path):
        results = [
            process_sheet(scenario_sheet, answer_key={1: "A", 2: "C"}, source_id="a"),
            process_sheet(scenario_sheet, answer_key={1: "B", 2: "C"}, source_id="b"),
        ]
        path = tmp_path / "summary.csv"
        df = create_summary_report(results, str(path))
        assert list(df["percentage_score"]) == [100.0, 50.0]
        text = path.read_text()
        assert "--- Overall Statistics ---" in text
        assert "Average Score (%),75.00" in text

    def test_no_results(self, tmp_path):
        path = tmp_path / "summary.csv"
        assert create_summary_report([], str(path)) is None
        assert not path.exists()
