from __future__ import annotations

import math
from dataclasses import astuple, dataclass
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class StatRow:
    label: str
    count: int
    min: float
    max: float
    mean: float
    median: float
    p90: float
    p95: float
    p99: float

    def as_tuple(self) -> tuple:
        return astuple(self)


def round3(value: float) -> float:
    """Round half away from zero to three decimals."""
    return math.copysign(math.floor(abs(value) * 1000 + 0.5) / 1000, value)


def compute_row(label: str, sample: Sequence[float]) -> StatRow:
    if len(sample) == 0:
        raise ValueError(f"cannot compute statistics for {label!r}: empty sample")

    data = np.asarray(sample, dtype=float)
    p90, p95, p99 = np.percentile(data, [90, 95, 99])

    return StatRow(
        label=label,
        count=len(data),
        min=round3(float(data.min())),
        max=round3(float(data.max())),
        mean=round3(float(data.mean())),
        median=round3(float(np.median(data))),
        p90=round3(float(p90)),
        p95=round3(float(p95)),
        p99=round3(float(p99)),
    )
