#!/usr/bin/env python3
"""
MFS ingestion benchmark

Usage:
    mfsbench setup                              # Seed /mfs-test with 5000 files (in-memory)
    mfsbench setup --approach disk --files 10000

    mfsbench run                                # 50 files, 3 iterations per method
    mfsbench run --files 200 --iterations 5 --layout mirror
    mfsbench run --parent-policy mkdir --verify

    mfsbench generate --output /tmp/corpus --files 100   # Write a workload locally only
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from mfsbench.config import (
    DEFAULT_API_URL,
    DEFAULT_FILE_SIZE,
    DEFAULT_ITERATIONS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MFS_ROOT,
    DEFAULT_MIN_DEPTH,
    DEFAULT_NUM_FILES,
    DEFAULT_RESULTS_DIR,
    LAYOUTS,
    PARENT_POLICIES,
    SETUP_APPROACHES,
    SETUP_BATCH_SIZE,
    SETUP_MAX_DEPTH,
    SETUP_TOTAL_FILES,
    BenchConfig,
    SetupConfig,
)
from mfsbench.errors import MfsBenchError
from mfsbench.generator import generate_dataset, generate_paths, parse_size
from mfsbench.kubo import KuboClient
from mfsbench.plotting import plot_results, save_results
from mfsbench.runner import ensure_root_exists, print_comparison, run_benchmark
from mfsbench.setup_mfs import report_final_stats, setup_mfs_directory
from mfsbench.strategies import ALL_STRATEGIES, build_strategies


def cmd_run(args):
    """Compare bulk add + cp against individual writes."""
    config = BenchConfig(
        api_url=args.api_url,
        mfs_root=args.root,
        num_files=args.files,
        iterations=args.iterations,
        min_depth=args.min_depth,
        max_depth=args.max_depth,
        file_size=parse_size(args.file_size),
        layout=args.layout,
        parent_policy=args.parent_policy,
        results_dir=Path(args.results),
        timeout=args.timeout,
    )

    strategies = build_strategies(config.layout, config.parent_policy, config.file_size)
    if args.only:
        strategies = [s for s in strategies if s.name in args.only]

    with KuboClient(config.api_url, timeout=config.timeout) as client:
        print("Checking if the test directory exists...")
        ensure_root_exists(client, config.mfs_root)
        print(f"Test directory {config.mfs_root} exists. Ready to run tests.")

        paths = generate_paths(config.mfs_root, config.num_files, config.min_depth, config.max_depth)
        print(f"Generated {len(paths)} file paths (depth {config.min_depth}-{config.max_depth})")

        report = run_benchmark(
            strategies, config.iterations, paths, client, config.mfs_root, verify=args.verify
        )

    print_comparison(report)

    if not args.no_save:
        save_results(report, config.results_dir / "benchmark.json")
        plot_results(report, config.results_dir)


def cmd_setup(args):
    """Seed the MFS root with a baseline corpus."""
    config = SetupConfig(
        api_url=args.api_url,
        mfs_root=args.root,
        total_files=args.files,
        max_depth=args.max_depth,
        file_size=parse_size(args.file_size),
        approach=args.approach,
        batch_size=args.batch_size,
        ipfs_bin=args.ipfs_bin,
        timeout=args.timeout,
    )

    with KuboClient(config.api_url, timeout=config.timeout) as client:
        report = setup_mfs_directory(client, config)
    report_final_stats(report)


def cmd_generate(args):
    """Write a workload to a local directory without contacting the daemon."""
    output_dir = Path(args.output)

    print("Generating workload:")
    print(f"  Output: {output_dir}")
    print(f"  Files: {args.files}")
    print(f"  Depth: {args.min_depth}-{args.max_depth}")

    generate_dataset(
        output_dir=output_dir,
        count=args.files,
        file_size=parse_size(args.file_size),
        min_depth=args.min_depth,
        max_depth=args.max_depth,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MFS ingestion benchmark")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    daemon = argparse.ArgumentParser(add_help=False)
    daemon.add_argument("--api-url", default=DEFAULT_API_URL, help="Kubo RPC API URL")
    daemon.add_argument("--root", default=DEFAULT_MFS_ROOT, help="MFS directory to populate")
    daemon.add_argument(
        "--timeout", type=float, default=None, help="HTTP timeout in seconds (default: none)"
    )
    daemon.add_argument(
        "--file-size", default=str(DEFAULT_FILE_SIZE), help="Size of each file (e.g. 1K, 4K)"
    )

    # Run subcommand
    run_parser = subparsers.add_parser("run", parents=[daemon], help="Run the benchmark")
    run_parser.add_argument("--files", "-n", type=int, default=DEFAULT_NUM_FILES, help="Files per iteration")
    run_parser.add_argument(
        "--iterations", "-i", type=int, default=DEFAULT_ITERATIONS, help="Runs per method"
    )
    run_parser.add_argument("--min-depth", type=int, default=DEFAULT_MIN_DEPTH)
    run_parser.add_argument("--max-depth", type=int, default=DEFAULT_MAX_DEPTH)
    run_parser.add_argument(
        "--layout", choices=LAYOUTS, default="flat", help="Staging layout for addAll + cp"
    )
    run_parser.add_argument(
        "--parent-policy",
        choices=PARENT_POLICIES,
        default="write",
        help="How individual writes create parent directories",
    )
    run_parser.add_argument(
        "--only",
        nargs="+",
        choices=[s.name for s in ALL_STRATEGIES],
        help="Run only these methods",
    )
    run_parser.add_argument("--verify", action="store_true", help="Count files in the root afterwards")
    run_parser.add_argument("--results", default=str(DEFAULT_RESULTS_DIR), help="Results directory")
    run_parser.add_argument("--no-save", action="store_true", help="Do not write JSON and plot")

    # Setup subcommand
    setup_parser = subparsers.add_parser(
        "setup", parents=[daemon], help="Seed the MFS root with a baseline corpus"
    )
    setup_parser.add_argument(
        "--approach", "-a", choices=SETUP_APPROACHES, default="memory", help="Ingestion technique"
    )
    setup_parser.add_argument("--files", "-n", type=int, default=SETUP_TOTAL_FILES)
    setup_parser.add_argument("--max-depth", type=int, default=SETUP_MAX_DEPTH)
    setup_parser.add_argument(
        "--batch-size", type=int, default=SETUP_BATCH_SIZE, help="Parallel file writes per batch"
    )
    setup_parser.add_argument("--ipfs-bin", default="ipfs", help="ipfs binary for --approach cli")

    # Generate subcommand
    gen_parser = subparsers.add_parser(
        "generate", help="Write a workload locally without contacting the daemon"
    )
    gen_parser.add_argument(
        "--output", "-o", required=True, help="Output directory for generated files"
    )
    gen_parser.add_argument("--files", "-n", type=int, default=DEFAULT_NUM_FILES)
    gen_parser.add_argument("--min-depth", type=int, default=DEFAULT_MIN_DEPTH)
    gen_parser.add_argument("--max-depth", type=int, default=DEFAULT_MAX_DEPTH)
    gen_parser.add_argument("--file-size", default=str(DEFAULT_FILE_SIZE))

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    commands = {"run": cmd_run, "setup": cmd_setup, "generate": cmd_generate}
    if args.command not in commands:
        parser.print_help()
        return

    try:
        commands[args.command](args)
    except (MfsBenchError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
