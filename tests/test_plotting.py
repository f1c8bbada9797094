import json

import pytest

from mfsbench.plotting import plot_results, save_results
from mfsbench.runner import BenchmarkResult, ComparisonReport


def _report():
    return ComparisonReport(
        results=[
            BenchmarkResult(strategy="addall", label="addAll + cp", times=[0.5, 0.7, 0.6], final_cid="QmRoot"),
            BenchmarkResult(strategy="write", label="Individual writes", times=[1.2, 1.0, 1.1]),
        ],
        num_files=50,
        iterations=3,
        file_count=50,
    )


def test_save_results(tmp_path):
    path = tmp_path / "nested" / "benchmark.json"
    save_results(_report(), path)

    data = json.loads(path.read_text())
    assert data["num_files"] == 50
    assert data["file_count"] == 50
    assert data["results"][0]["times"] == [0.5, 0.7, 0.6]
    assert data["results"][0]["final_cid"] == "QmRoot"
    assert data["results"][1]["avg_time"] == pytest.approx(1.1)
    assert data["comparison"]["fastest"] == "addall"
    assert data["comparison"]["slowest"] == "write"
    assert 45 < data["comparison"]["percent_faster"] < 46


def test_plot_results(tmp_path):
    output = plot_results(_report(), tmp_path / "plots")
    assert output == tmp_path / "plots" / "benchmark_times.png"
    assert output.stat().st_size > 0


def test_plot_single_strategy_with_missing_iteration(tmp_path):
    report = ComparisonReport(
        results=[BenchmarkResult(strategy="write", label="Individual writes", times=[1.0])],
        num_files=5,
        iterations=2,
    )
    assert plot_results(report, tmp_path).exists()
