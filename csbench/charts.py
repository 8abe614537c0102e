from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Sequence

import matplotlib.pyplot as plt
import seaborn as sns

from .collector import outcomes_dataframe
from .pool import Outcome

LOGGER = logging.getLogger("csbench.charts")

sns.set_style("whitegrid")
plt.rcParams["figure.dpi"] = 100
plt.rcParams["savefig.dpi"] = 150
plt.rcParams["font.size"] = 10
plt.rcParams["axes.labelsize"] = 11
plt.rcParams["axes.titlesize"] = 13

STATUS_COLORS = {
    "Successful": "#2E86AB",
    "Failed": "#C73E1D",
}


def render_latency_chart(
    results: Mapping[str, Sequence[Outcome]],
    chart_path: Path,
    title: str = "Call Latency by Category",
) -> Path | None:
    """Box plot of task durations per category, split by success flag."""
    df = outcomes_dataframe(results)
    if df.empty:
        LOGGER.warning("No outcomes available for latency chart")
        return None

    df["status"] = df["success"].map(lambda ok: "Successful" if ok else "Failed")
    status_order = [status for status in STATUS_COLORS if status in set(df["status"])]

    chart_path = Path(chart_path)
    chart_path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(max(6, 2 * df["category"].nunique() + 4), 6))
    sns.boxplot(
        data=df,
        x="category",
        y="duration_s",
        hue="status",
        order=list(results.keys()),
        hue_order=status_order,
        palette=[STATUS_COLORS[status] for status in status_order],
        ax=ax,
        linewidth=1.5,
        width=0.7,
    )

    ax.set_xlabel("Category", fontweight="semibold", labelpad=10)
    ax.set_ylabel("Duration (seconds)", fontweight="semibold", labelpad=10)
    ax.set_ylim(bottom=0)
    ax.set_title(title, fontweight="bold", pad=15)
    ax.grid(True, alpha=0.3, linestyle="--", linewidth=0.5, axis="y")
    ax.set_axisbelow(True)
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)

    plt.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path
