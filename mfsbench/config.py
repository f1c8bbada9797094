from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_API_URL = "http://localhost:15001/api/v0"
DEFAULT_MFS_ROOT = "/mfs-test"
DEFAULT_RESULTS_DIR = Path("results")

# Benchmark workload
DEFAULT_NUM_FILES = 50
DEFAULT_ITERATIONS = 3
DEFAULT_MIN_DEPTH = 1
DEFAULT_MAX_DEPTH = 100
DEFAULT_FILE_SIZE = 1024

# Baseline corpus created by `mfsbench setup`
SETUP_TOTAL_FILES = 5000
SETUP_MAX_DEPTH = 2
SETUP_BATCH_SIZE = 1000
SETUP_FILES_DIR = "files"

LAYOUTS = ["flat", "mirror"]
PARENT_POLICIES = ["write", "mkdir"]
SETUP_APPROACHES = ["memory", "disk", "cli"]

# Lines printed by `ipfs add --quiet` that look like a CID
CID_LINE_PATTERN = r"^[a-zA-Z0-9]{46,59}$"

STAGING_PREFIX = "ipfs-mfs-test-"


def _check_choice(name: str, value: str, choices: list[str]) -> None:
    if value not in choices:
        raise ValueError(f"{name} must be one of {', '.join(choices)}, got {value!r}")


@dataclass(frozen=True)
class BenchConfig:
    """Parameters of one `mfsbench run`."""

    api_url: str = DEFAULT_API_URL
    mfs_root: str = DEFAULT_MFS_ROOT
    num_files: int = DEFAULT_NUM_FILES
    iterations: int = DEFAULT_ITERATIONS
    min_depth: int = DEFAULT_MIN_DEPTH
    max_depth: int = DEFAULT_MAX_DEPTH
    file_size: int = DEFAULT_FILE_SIZE
    layout: str = "flat"
    parent_policy: str = "write"
    results_dir: Path = field(default=DEFAULT_RESULTS_DIR)
    timeout: float | None = None

    def __post_init__(self):
        if self.num_files < 1:
            raise ValueError("num_files must be at least 1")
        if self.iterations < 1:
            raise ValueError("iterations must be at least 1")
        if not 0 <= self.min_depth <= self.max_depth:
            raise ValueError("depth range must satisfy 0 <= min_depth <= max_depth")
        if self.file_size < 0:
            raise ValueError("file_size must not be negative")
        if not self.mfs_root.startswith("/") or self.mfs_root == "/":
            raise ValueError("mfs_root must be an absolute path below /")
        _check_choice("layout", self.layout, LAYOUTS)
        _check_choice("parent_policy", self.parent_policy, PARENT_POLICIES)


@dataclass(frozen=True)
class SetupConfig:
    """Parameters of the one-shot baseline provisioning."""

    api_url: str = DEFAULT_API_URL
    mfs_root: str = DEFAULT_MFS_ROOT
    total_files: int = SETUP_TOTAL_FILES
    max_depth: int = SETUP_MAX_DEPTH
    file_size: int = DEFAULT_FILE_SIZE
    approach: str = "memory"
    batch_size: int = SETUP_BATCH_SIZE
    ipfs_bin: str = "ipfs"
    timeout: float | None = None

    def __post_init__(self):
        if self.total_files < 1:
            raise ValueError("total_files must be at least 1")
        if self.max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.file_size < 0:
            raise ValueError("file_size must not be negative")
        if not self.mfs_root.startswith("/") or self.mfs_root == "/":
            raise ValueError("mfs_root must be an absolute path below /")
        _check_choice("approach", self.approach, SETUP_APPROACHES)

    @property
    def files_dir(self) -> str:
        return f"{self.mfs_root.rstrip('/')}/{SETUP_FILES_DIR}"
