from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import matplotlib.pyplot as plt
import numpy as np

if TYPE_CHECKING:
    from mfsbench.runner import ComparisonReport


def plot_results(report: ComparisonReport, output_dir: Path) -> Path:
    """Bar chart of every iteration's duration, grouped by iteration, one bar per strategy."""
    output_dir.mkdir(parents=True, exist_ok=True)

    colors = ["#2ecc71", "#3498db", "#e74c3c", "#9b59b6", "#f39c12"]
    results = report.results
    x = np.arange(report.iterations)
    width = 0.8 / len(results)

    fig, ax = plt.subplots(figsize=(10, 5))

    for j, result in enumerate(results):
        times = result.times + [0.0] * (report.iterations - len(result.times))
        offset = (j - len(results) / 2 + 0.5) * width
        color = colors[j % len(colors)]
        bars = ax.bar(x + offset, times, width, label=result.label, color=color)

        for bar, t in zip(bars, times):
            if t > 0:
                ax.annotate(f"{t:.2f}s", xy=(bar.get_x() + bar.get_width() / 2, bar.get_height()),
                           xytext=(0, 2), textcoords="offset points", ha="center", va="bottom", fontsize=8)

        ax.axhline(result.avg_time, color=color, linestyle="--", linewidth=1,
                   label=f"{result.label} mean ({result.avg_time:.2f}s)")

    ax.set_ylabel("Time (seconds)")
    ax.set_xlabel("Iteration")
    ax.set_xticks(x)
    ax.set_xticklabels([str(i + 1) for i in range(report.iterations)])
    ax.legend(loc="upper left", fontsize=8)
    ax.set_title(f"{report.num_files} files, {report.iterations} iterations")

    plt.suptitle("MFS ingestion: bulk add + cp vs individual writes", fontsize=14, fontweight="bold")
    plt.tight_layout()
    output_path = output_dir / "benchmark_times.png"
    plt.savefig(output_path, dpi=150)
    plt.close(fig)

    print(f"Saved plot to {output_path}")
    return output_path


def save_results(report: ComparisonReport, output_path: Path) -> None:
    """Save benchmark results to JSON."""
    fastest = report.fastest
    data = {
        "num_files": report.num_files,
        "iterations": report.iterations,
        "file_count": report.file_count,
        "results": [
            {
                "strategy": r.strategy,
                "label": r.label,
                "times": r.times,
                "avg_time": r.avg_time,
                "min_time": r.min_time,
                "max_time": r.max_time,
                "final_cid": r.final_cid,
            }
            for r in report.results
        ],
        "comparison": {
            "fastest": fastest.strategy,
            "slowest": report.slowest.strategy,
            "difference": report.difference,
            "percent_faster": report.percent_faster,
        },
    }

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(data, indent=2))
    print(f"Saved results to {output_path}")
