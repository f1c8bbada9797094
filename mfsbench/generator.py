from __future__ import annotations

import json
import logging
import secrets
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from tqdm import tqdm

from mfsbench.config import DEFAULT_MAX_DEPTH, DEFAULT_MIN_DEPTH, STAGING_PREFIX

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilePathSpec:
    """Destination of one generated file inside MFS."""

    root: str
    dirs: tuple[str, ...]
    name: str

    @property
    def depth(self) -> int:
        return len(self.dirs)

    @property
    def relative(self) -> str:
        return "/".join(self.dirs + (self.name,))

    @property
    def parent(self) -> str:
        return "/".join((self.root.rstrip("/"),) + self.dirs) or "/"

    @property
    def path(self) -> str:
        return f"{self.root.rstrip('/')}/{self.relative}"

    def __str__(self) -> str:
        return self.path


def parse_size(size_str: str) -> int:
    """Parse size string like '1K', '2M' into bytes."""
    size_str = size_str.strip().upper()
    multipliers = {"B": 1, "K": 1024, "M": 1024**2, "G": 1024**3}
    if size_str[-1] in multipliers:
        return int(float(size_str[:-1]) * multipliers[size_str[-1]])
    return int(size_str)


def generate_file(size: int) -> bytes:
    """Return `size` cryptographically random bytes."""
    return secrets.token_bytes(size)


def random_depth(min_depth: int = DEFAULT_MIN_DEPTH, max_depth: int = DEFAULT_MAX_DEPTH) -> int:
    return min_depth + secrets.randbelow(max_depth - min_depth + 1)


def generate_random_file_path(root: str, depth: int) -> FilePathSpec:
    dirs = tuple(f"dir_{secrets.token_hex(4)}" for _ in range(depth))
    return FilePathSpec(root=root, dirs=dirs, name=f"file_{secrets.token_hex(8)}.dat")


def generate_paths(
    root: str,
    count: int,
    min_depth: int = DEFAULT_MIN_DEPTH,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> list[FilePathSpec]:
    """Generate `count` random destinations below `root`, each at a random depth."""
    return [
        generate_random_file_path(root, random_depth(min_depth, max_depth))
        for _ in range(count)
    ]


def make_staging_dir() -> Path:
    staging = Path(tempfile.mkdtemp(prefix=STAGING_PREFIX))
    logger.debug("Created staging directory %s", staging)
    return staging


def remove_staging_dir(staging: Path) -> None:
    """Remove a staging directory, logging instead of raising on failure."""
    try:
        shutil.rmtree(staging)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error("Error cleaning up %s: %s", staging, e)


def generate_dataset(
    output_dir: Path,
    count: int,
    file_size: int,
    min_depth: int = DEFAULT_MIN_DEPTH,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> dict:
    """Write a workload to a local directory, mirroring the MFS layout."""
    if output_dir.resolve() in (Path("/").resolve(), Path.home().resolve()):
        raise ValueError("Output directory is too dangerous to delete")

    if output_dir.exists():
        shutil.rmtree(output_dir)
    output_dir.mkdir(parents=True)

    paths = generate_paths("/", count, min_depth, max_depth)
    for spec in tqdm(paths, desc="Generating test files", unit="file"):
        file_path = output_dir.joinpath(*spec.dirs, spec.name)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(generate_file(file_size))

    depths = [spec.depth for spec in paths]
    metadata = {
        "total_files": count,
        "total_bytes": count * file_size,
        "file_size": file_size,
        "min_depth": min(depths),
        "max_depth": max(depths),
        "paths": [spec.relative for spec in paths],
    }

    (output_dir / "metadata.json").write_text(json.dumps(metadata, indent=2))
    print(
        f"Created {count} files ({count * file_size / 1024:.1f} KB), depth {metadata['min_depth']}-{metadata['max_depth']}"
    )

    return metadata
