# tests/test_report.py
from __future__ import annotations

import csv
import io
import logging
from pathlib import Path

import pytest

from csbench.pool import Outcome
from csbench.report import COLUMNS, build_rows, generate_report, render, rows_dataframe


def _results() -> dict[str, list[Outcome]]:
    return {
        "domain": [Outcome(True, 0.501), Outcome(True, 0.499), Outcome(False, 1.200)],
        "vm": [Outcome(True, 0.1 * n) for n in range(1, 6)],
    }


def test_rows_for_domain_with_failures() -> None:
    rows = build_rows({"domain": _results()["domain"]})

    assert [row.label for row in rows] == [
        "domain - All",
        "domain - Successful",
        "domain - Failed",
    ]
    all_row, ok_row, failed_row = rows
    assert (all_row.count, all_row.min, all_row.max, all_row.mean) == (3, 0.499, 1.2, 0.733)
    assert (ok_row.count, ok_row.mean) == (2, 0.5)
    assert (failed_row.count, failed_row.mean) == (1, 1.2)


def test_successful_and_failed_rows_suppressed_without_failures() -> None:
    rows = build_rows({"vm": _results()["vm"]})

    assert [row.label for row in rows] == ["vm - All"]
    assert rows[0].count == 5


def test_all_failed_category_has_no_successful_row() -> None:
    rows = build_rows({"volume": [Outcome(False, 0.2), Outcome(False, 0.4)]})

    assert [row.label for row in rows] == ["volume - All", "volume - Failed"]


def test_empty_category_yields_no_rows(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="csbench.report"):
        rows = build_rows({"network": []})

    assert rows == []
    assert "No outcomes recorded for network" in caplog.text


def test_columns_are_fixed() -> None:
    df = rows_dataframe(build_rows(_results()))

    assert tuple(df.columns) == COLUMNS
    assert df["Type"].tolist() == ["domain - All", "domain - Successful", "domain - Failed", "vm - All"]


def test_csv_round_trip_matches_table() -> None:
    rows = build_rows(_results())

    parsed = list(csv.reader(io.StringIO(render(rows, "csv"))))
    table_lines = render(rows, "table").splitlines()

    assert tuple(parsed[0]) == COLUMNS
    assert len(parsed) - 1 == len(table_lines) - 1 == len(rows)

    header = table_lines[0]
    positions = [header.index(column) for column in COLUMNS]
    assert positions == sorted(positions)
    for line, row in zip(table_lines[1:], rows):
        assert row.label in line


def test_tsv_uses_tabs() -> None:
    lines = render(build_rows(_results()), "tsv").splitlines()

    assert lines[0].split("\t") == list(COLUMNS)
    assert lines[1].split("\t")[:2] == ["domain - All", "3"]


def test_render_rejects_unknown_format() -> None:
    with pytest.raises(ValueError):
        render([], "xml")


def test_render_table_without_rows() -> None:
    assert render([], "table").startswith("Type")


def test_generate_report_mirrors_to_file(tmp_path: Path) -> None:
    out = io.StringIO()
    destination = tmp_path / "report.csv"

    rows = generate_report(_results(), "csv", destination, stream=out)

    printed = out.getvalue()
    assert printed.startswith("Generating report\n")
    assert destination.read_text(encoding="utf-8") == printed[len("Generating report\n"):]
    assert len(rows) == 4


def test_generate_report_survives_bad_destination(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    caplog: pytest.LogCaptureFixture,
) -> None:
    destination = tmp_path / "missing-dir" / "report.csv"

    with caplog.at_level(logging.ERROR, logger="csbench.report"):
        rows = generate_report(_results(), "table", destination)

    out = capsys.readouterr().out
    assert "domain - Failed" in out
    assert "vm - All" in out
    assert len(rows) == 4
    assert not destination.exists()
    assert "Error creating file" in caplog.text
