"""Tabular latency reports for a provisioning run.

Every category produces an ``All`` row. Categories with at least one failed
task additionally produce ``Successful`` and ``Failed`` rows so latencies of
the two populations can be compared.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Mapping, Sequence, TextIO

import pandas as pd

from .collector import build_samples
from .pool import Outcome
from .stats import StatRow, compute_row

LOGGER = logging.getLogger("csbench.report")

COLUMNS = (
    "Type",
    "Count",
    "Min",
    "Max",
    "Avg",
    "Median",
    "90th percentile",
    "95th percentile",
    "99th percentile",
)

REPORT_FORMATS = ("csv", "tsv", "table")


def build_rows(results: Mapping[str, Sequence[Outcome]]) -> list[StatRow]:
    rows: list[StatRow] = []
    for category, samples in build_samples(results).items():
        if not samples.all:
            LOGGER.warning("No outcomes recorded for %s", category)
            continue

        rows.append(compute_row(f"{category} - All", samples.all))

        if samples.failed:
            if samples.successful:
                rows.append(compute_row(f"{category} - Successful", samples.successful))
            rows.append(compute_row(f"{category} - Failed", samples.failed))
    return rows


def rows_dataframe(rows: Sequence[StatRow]) -> pd.DataFrame:
    return pd.DataFrame([row.as_tuple() for row in rows], columns=list(COLUMNS))


def render(rows: Sequence[StatRow], fmt: str) -> str:
    df = rows_dataframe(rows)
    if fmt == "csv":
        return df.to_csv(index=False, lineterminator="\n")
    if fmt == "tsv":
        return df.to_csv(index=False, sep="\t", lineterminator="\n")
    if fmt == "table":
        if df.empty:
            return "  ".join(COLUMNS) + "\n"
        return df.to_string(index=False) + "\n"
    raise ValueError(f"Unknown report format: {fmt}")


def generate_report(
    results: Mapping[str, Sequence[Outcome]],
    fmt: str,
    output_file: str | Path | None = None,
    stream: TextIO | None = None,
) -> list[StatRow]:
    stream = stream or sys.stdout
    print("Generating report", file=stream)

    rows = build_rows(results)
    text = render(rows, fmt)
    stream.write(text)

    if output_file:
        try:
            with open(output_file, "w", encoding="utf-8") as f:
                f.write(text)
        except OSError as exc:
            LOGGER.error("Error creating file %s: %s", output_file, exc)
        else:
            LOGGER.info("Report written to %s", output_file)

    return rows
