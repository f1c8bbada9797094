"""
One-shot provisioning of the benchmark root.

Before benchmarking, the MFS root is filled with a baseline corpus so the
strategies do not run against an empty namespace. Three techniques are
available, each linking its root directory at `<root>/files`:

* ``disk``: stage files on local disk, then one streamed `add` call.
* ``cli``: stage files on local disk, then shell out to `ipfs add -r -w`.
  The wrapper keeps the staging directory's name, so the corpus lands one
  level deeper, under `<root>/files/ipfs-mfs-test-*/`.
* ``memory``: generate everything in memory and stream it to `add`.
"""

from __future__ import annotations

import ipaddress
import logging
import re
import subprocess
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from tqdm import tqdm

from mfsbench.config import CID_LINE_PATTERN
from mfsbench.errors import CliIngestError, NotFoundError
from mfsbench.generator import (
    generate_file,
    generate_random_file_path,
    make_staging_dir,
    random_depth,
    remove_staging_dir,
)
from mfsbench.kubo import (
    AddEntry,
    PullSource,
    disk_source,
    ipfs_path,
    iter_with_parents,
    sort_entries,
    wrapper_entry,
)

if TYPE_CHECKING:
    from mfsbench.config import SetupConfig
    from mfsbench.kubo import AddResult, KuboClient

logger = logging.getLogger(__name__)

CID_LINE = re.compile(CID_LINE_PATTERN)

APPROACH_NAMES = {
    "disk": "Disk-based",
    "cli": "Command line",
    "memory": "In-memory",
}


@dataclass
class SetupReport:
    approach: str
    total_files: int
    duration: float
    cid: str
    size: int
    cumulative_size: int

    @property
    def avg_time_per_file(self) -> float:
        return self.duration / self.total_files if self.total_files else 0.0


@dataclass
class AddProgress:
    """Running byte count and peak throughput of a bulk add."""

    start: float
    processed_bytes: int = 0
    max_rate: float = 0.0

    def update(self, nbytes: int, now: float | None = None) -> float:
        self.processed_bytes += nbytes
        elapsed = (time.perf_counter() if now is None else now) - self.start
        rate = self.processed_bytes / elapsed if elapsed > 0 else 0.0
        if rate > self.max_rate:
            self.max_rate = rate
        return rate


def cleanup_existing_mfs_directory(client: KuboClient, root: str) -> None:
    print(f"Removing existing MFS directory {root} if it exists...")
    try:
        client.rm(root, recursive=True)
    except NotFoundError:
        pass


def copy_to_mfs(client: KuboClient, config: SetupConfig, cid: str) -> None:
    print(f"Copying to MFS: {ipfs_path(cid)} -> {config.files_dir}")
    start = time.perf_counter()
    client.mkdir(config.mfs_root, parents=True)
    client.cp(ipfs_path(cid), config.files_dir)
    print(f"Copied to MFS in {time.perf_counter() - start:.2f} seconds")


# -- disk staging, shared by the disk and cli approaches --


def plan_files(staging: Path, total_files: int, max_depth: int) -> tuple[dict[Path, list[Path]], list[Path]]:
    """Generate local file paths, grouped by directory."""
    dir_map: dict[Path, list[Path]] = {}
    file_paths = []
    for _ in range(total_files):
        spec = generate_random_file_path("/", random_depth(1, max_depth))
        full_path = staging.joinpath(*spec.dirs, spec.name)
        dir_map.setdefault(full_path.parent, []).append(full_path)
        file_paths.append(full_path)
    return dir_map, file_paths


def create_directories(dir_map: dict[Path, list[Path]]) -> None:
    print(f"Creating {len(dir_map)} directories...")
    for dir_name in dir_map:
        dir_name.mkdir(parents=True, exist_ok=True)


def create_files(file_paths: list[Path], file_size: int, batch_size: int, progress_bar: tqdm) -> None:
    """Write files in parallel batches; each batch is joined before the next starts."""
    print(f"Creating {len(file_paths)} files...")

    def write_one(full_path: Path) -> None:
        full_path.write_bytes(generate_file(file_size))

    with ThreadPoolExecutor(max_workers=min(32, batch_size)) as pool:
        for i in range(0, len(file_paths), batch_size):
            batch = file_paths[i : i + batch_size]
            for _ in pool.map(write_one, batch):
                progress_bar.update(1)


def create_files_on_disk(staging: Path, config: SetupConfig) -> float:
    print(f"Creating {config.total_files} files on disk...")
    start = time.perf_counter()
    dir_map, file_paths = plan_files(staging, config.total_files, config.max_depth)
    create_directories(dir_map)
    with tqdm(total=config.total_files, unit="file", desc="Creating files") as pbar:
        create_files(file_paths, config.file_size, config.batch_size, pbar)
    return time.perf_counter() - start


def add_files_to_ipfs(client: KuboClient, staging: Path, config: SetupConfig) -> tuple[list[AddResult], float, AddProgress]:
    print("Adding files to IPFS from disk...")
    progress = AddProgress(start=time.perf_counter())

    with tqdm(
        total=config.total_files * config.file_size,
        unit="B",
        unit_scale=True,
        unit_divisor=1024,
        desc="Adding to IPFS",
    ) as pbar:

        def on_progress(nbytes: int, name: str) -> None:
            rate = progress.update(nbytes)
            pbar.set_postfix(rate=f"{rate / 1024:.1f} KB/s", refresh=False)
            pbar.update(nbytes)

        files = client.add_all(
            disk_source(staging),
            wrap_with_directory=True,
            pin=False,
            progress=on_progress,
        )

    add_time = time.perf_counter() - progress.start
    print(f"Added files to IPFS in {add_time:.2f} seconds")
    return files, add_time, progress


def run_disk_approach(client: KuboClient, config: SetupConfig) -> str:
    staging = make_staging_dir()
    print(f"Created temporary directory at {staging}")
    try:
        file_creation_time = create_files_on_disk(staging, config)
        files, add_time, progress = add_files_to_ipfs(client, staging, config)
        cid = wrapper_entry(files).cid
        copy_to_mfs(client, config, cid)

        print(f"Created {config.total_files} files on disk in {file_creation_time:.2f} seconds")
        if add_time > 0:
            print(f"Average speed: {progress.processed_bytes / add_time / 1024:.2f} KB/s")
        print(f"Max throughput: {progress.max_rate / 1024:.2f} KB/s")
        return cid
    finally:
        print(f"Cleaning up temporary directory {staging}...")
        remove_staging_dir(staging)


# -- external `ipfs add` process --


def multiaddr_from_url(api_url: str) -> str:
    """Turn `http://127.0.0.1:15001/api/v0` into `/ip4/127.0.0.1/tcp/15001`."""
    parts = urlsplit(api_url)
    host = parts.hostname or "127.0.0.1"
    if host == "localhost":
        host = "127.0.0.1"
    port = parts.port or 5001
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return f"/dns/{host}/tcp/{port}"
    return f"/ip{address.version}/{host}/tcp/{port}"


def cli_add_command(config: SetupConfig, staging: Path) -> list[str]:
    return [
        config.ipfs_bin,
        f"--api={multiaddr_from_url(config.api_url)}",
        "add",
        "-r",
        "-w",
        "--progress=false",
        "--quiet",
        "--pin=false",
        str(staging),
    ]


def read_cli_output(lines: Iterable[str], on_cid: Callable[[str], None] | None = None) -> tuple[str | None, int]:
    """Return the last CID-shaped line and how many were seen."""
    last_cid = None
    count = 0
    for line in lines:
        token = line.strip()
        if not token or not CID_LINE.match(token):
            continue
        last_cid = token
        count += 1
        if on_cid is not None:
            on_cid(token)
    return last_cid, count


def _drain_stderr(stream) -> None:
    for line in stream:
        text = line.strip()
        if text:
            logger.error("ipfs: %s", text)


def run_cli_add(cmd: list[str], total_files: int) -> str:
    """Run `ipfs add` and return the root CID it printed last."""
    logger.debug("Running %s", " ".join(cmd))
    try:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except FileNotFoundError as e:
        raise CliIngestError(f"{cmd[0]} not found") from e

    stderr_thread = threading.Thread(target=_drain_stderr, args=(proc.stderr,), daemon=True)
    stderr_thread.start()

    try:
        with tqdm(total=total_files, unit="file", desc="IPFS CLI") as pbar:
            last_cid, count = read_cli_output(proc.stdout, on_cid=lambda _: pbar.update(1))
    except BaseException:
        proc.kill()
        raise
    finally:
        returncode = proc.wait()
        stderr_thread.join()
        proc.stdout.close()
        proc.stderr.close()

    logger.debug("ipfs add printed %d CIDs", count)

    if returncode != 0:
        raise CliIngestError(f"IPFS CLI command failed with exit code {returncode}")
    if not last_cid:
        raise CliIngestError("Failed to extract root CID from command output")
    return last_cid


def run_cli_approach(client: KuboClient, config: SetupConfig) -> str:
    staging = make_staging_dir()
    print(f"Created temporary directory at {staging}")
    try:
        file_creation_time = create_files_on_disk(staging, config)

        print("Adding files to IPFS using command line tool...")
        start = time.perf_counter()
        cid = run_cli_add(cli_add_command(config, staging), config.total_files)
        add_time = time.perf_counter() - start
        print(f"Added files to IPFS in {add_time:.2f} seconds")
        print(f"Root directory CID: {cid}")

        copy_to_mfs(client, config, cid)
        print(f"Created {config.total_files} files on disk in {file_creation_time:.2f} seconds")
        print(f"Added via CLI in {add_time:.2f} seconds")
        return cid
    finally:
        print(f"Cleaning up temporary directory {staging}...")
        remove_staging_dir(staging)


# -- in-memory --


def generate_entries(config: SetupConfig) -> list[AddEntry]:
    print("Pre-generating all file objects in memory...")
    entries = []
    for _ in tqdm(range(config.total_files), unit="file", desc="Generating"):
        spec = generate_random_file_path("/", random_depth(1, config.max_depth))
        entries.append(AddEntry(path=spec.relative, content=generate_file(config.file_size)))
    return sort_entries(entries)


def run_memory_approach(client: KuboClient, config: SetupConfig) -> str:
    print(f"Creating {config.total_files} files and adding to IPFS (in-memory)...")
    entries = generate_entries(config)
    print(f"{config.total_files} files generated, now adding to IPFS...")

    with tqdm(total=len(entries), unit="file", desc="Adding to IPFS") as pbar:
        source = PullSource(entries, on_pull=lambda _: pbar.update(1))
        files = client.add_all(iter_with_parents(source), wrap_with_directory=True, pin=False)

    cid = wrapper_entry(files).cid
    copy_to_mfs(client, config, cid)
    return cid


APPROACHES: dict[str, Callable[[KuboClient, SetupConfig], str]] = {
    "disk": run_disk_approach,
    "cli": run_cli_approach,
    "memory": run_memory_approach,
}


def setup_mfs_directory(client: KuboClient, config: SetupConfig) -> SetupReport:
    """Replace the MFS root with a fresh baseline corpus."""
    print("Setting up MFS test directory...")
    cleanup_existing_mfs_directory(client, config.mfs_root)

    start = time.perf_counter()
    APPROACHES[config.approach](client, config)
    duration = time.perf_counter() - start

    stat = client.stat(config.mfs_root)
    return SetupReport(
        approach=config.approach,
        total_files=config.total_files,
        duration=duration,
        cid=stat.cid,
        size=stat.size,
        cumulative_size=stat.cumulative_size,
    )


def report_final_stats(report: SetupReport) -> None:
    name = APPROACH_NAMES.get(report.approach, report.approach)
    print(f"\nSetup complete! {name} approach finished in {report.duration:.2f} seconds")
    print(f"Average time per file: {report.avg_time_per_file:.4f} seconds")
    print(f"Directory CID: {report.cid}")
    print(f"Directory size: {report.size} bytes (cumulative {report.cumulative_size} bytes)")
