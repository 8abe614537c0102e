from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

import pandas as pd

from .pool import Outcome
from .stats import round3

OUTCOME_COLUMNS = ["category", "success", "duration_s"]


@dataclass
class Samples:
    """Durations of one category split by success flag."""

    all: list[float] = field(default_factory=list)
    successful: list[float] = field(default_factory=list)
    failed: list[float] = field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[Outcome]) -> Samples:
        samples = cls()
        for outcome in outcomes:
            duration = round3(outcome.duration_s)
            samples.all.append(duration)
            if outcome.success:
                samples.successful.append(duration)
            else:
                samples.failed.append(duration)
        return samples


def build_samples(results: Mapping[str, Sequence[Outcome]]) -> dict[str, Samples]:
    return {category: Samples.from_outcomes(outcomes) for category, outcomes in results.items()}


def outcomes_dataframe(results: Mapping[str, Sequence[Outcome]]) -> pd.DataFrame:
    rows = [
        {
            "category": category,
            "success": outcome.success,
            "duration_s": round3(outcome.duration_s),
        }
        for category, outcomes in results.items()
        for outcome in outcomes
    ]

    if not rows:
        return pd.DataFrame(columns=OUTCOME_COLUMNS)

    return pd.DataFrame(rows, columns=OUTCOME_COLUMNS)
