from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from mfsbench.errors import MissingRootError, NotFoundError

if TYPE_CHECKING:
    from mfsbench.generator import FilePathSpec
    from mfsbench.kubo import KuboClient, StatResult
    from mfsbench.strategies import IngestStrategy

logger = logging.getLogger(__name__)


@dataclass
class BenchmarkResult:
    strategy: str
    label: str
    times: list[float] = field(default_factory=list)
    final_cid: str | None = None

    @property
    def avg_time(self) -> float:
        return sum(self.times) / len(self.times) if self.times else 0.0

    @property
    def min_time(self) -> float:
        return min(self.times) if self.times else 0.0

    @property
    def max_time(self) -> float:
        return max(self.times) if self.times else 0.0


def percent_faster(mean_a: float, mean_b: float) -> float:
    """Percentage by which the smaller mean beats the larger one."""
    slower = max(mean_a, mean_b)
    if slower == 0:
        return 0.0
    return abs(mean_a - mean_b) / slower * 100


@dataclass
class ComparisonReport:
    results: list[BenchmarkResult]
    num_files: int
    iterations: int
    file_count: int | None = None

    @property
    def fastest(self) -> BenchmarkResult:
        return min(self.results, key=lambda r: r.avg_time)

    @property
    def slowest(self) -> BenchmarkResult:
        return max(self.results, key=lambda r: r.avg_time)

    @property
    def difference(self) -> float:
        return abs(self.slowest.avg_time - self.fastest.avg_time)

    @property
    def percent_faster(self) -> float:
        return percent_faster(self.fastest.avg_time, self.slowest.avg_time)

    def method_number(self, result: BenchmarkResult) -> int:
        return self.results.index(result) + 1


def ensure_root_exists(client: KuboClient, root: str) -> StatResult:
    try:
        return client.stat(root)
    except NotFoundError as e:
        raise MissingRootError(
            "files/stat",
            f"Test directory {root} doesn't exist. Please run 'mfsbench setup' first.",
            e.status_code,
        ) from e


def count_files(client: KuboClient, path: str) -> int:
    """Count the files below an MFS directory."""
    total = 0
    pending = [path.rstrip("/") or "/"]
    while pending:
        current = pending.pop()
        for entry in client.ls(current):
            child = f"{current.rstrip('/')}/{entry.name}"
            if entry.is_dir:
                pending.append(child)
            else:
                total += 1
    return total


def time_strategy(
    strategy: IngestStrategy,
    client: KuboClient,
    root: str,
    paths: list[FilePathSpec],
    iterations: int,
) -> BenchmarkResult:
    """Run one strategy `iterations` times against the same workload."""
    result = BenchmarkResult(strategy=strategy.name, label=strategy.describe())

    for i in range(iterations):
        print(f"Iteration {i + 1}/{iterations}")
        start = time.perf_counter()
        stat = strategy.run(client, root, paths)
        elapsed = time.perf_counter() - start
        result.times.append(elapsed)
        if stat is not None:
            result.final_cid = stat.cid
        print(f"Completed in {elapsed:.2f} seconds")

    return result


def run_benchmark(
    strategies: list[IngestStrategy],
    iterations: int,
    workload: list[FilePathSpec],
    client: KuboClient,
    root: str,
    verify: bool = False,
) -> ComparisonReport:
    """Time every strategy in turn; any failure aborts the whole run."""
    if not strategies:
        raise ValueError("At least one strategy is required")

    results = []
    for n, strategy in enumerate(strategies, start=1):
        print(f"\n=== Testing Method {n}: {strategy.describe()} ===")
        results.append(time_strategy(strategy, client, root, workload, iterations))

    report = ComparisonReport(results=results, num_files=len(workload), iterations=iterations)
    if verify:
        report.file_count = count_files(client, root)
        logger.info("%d files below %s after the last run", report.file_count, root)
    return report


def print_comparison(report: ComparisonReport) -> None:
    print("\n=== Results ===")
    for n, result in enumerate(report.results, start=1):
        print(f"Method {n} ({result.label}): {result.avg_time:.2f} seconds average")

    if report.file_count is not None:
        print(f"Files in destination: {report.file_count}")

    if len(report.results) < 2:
        return

    fastest = report.fastest
    print(f"Difference: {report.difference:.2f} seconds")
    print(
        f"Method {report.method_number(fastest)} ({fastest.label}) is faster by {report.percent_faster:.2f}%"
    )
