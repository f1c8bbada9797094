from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

from mfsbench.config import DEFAULT_FILE_SIZE, LAYOUTS, PARENT_POLICIES
from mfsbench.errors import NotFoundError
from mfsbench.generator import generate_file, make_staging_dir, remove_staging_dir
from mfsbench.kubo import disk_source, ipfs_path, wrapper_entry

if TYPE_CHECKING:
    from typing import ClassVar

    from mfsbench.generator import FilePathSpec
    from mfsbench.kubo import AddResult, KuboClient, StatResult

logger = logging.getLogger(__name__)


class IngestStrategy(ABC):
    """Base class for ways of getting a workload into MFS."""

    name: ClassVar[str]
    label: ClassVar[str]

    def __init__(self, file_size: int = DEFAULT_FILE_SIZE):
        self.file_size = file_size

    @abstractmethod
    def run(self, client: KuboClient, root: str, paths: list[FilePathSpec]) -> StatResult | None:
        pass

    def describe(self) -> str:
        return self.label


class AddAllStrategy(IngestStrategy):
    """Stage files locally, add them in one call, then link them into MFS."""

    name = "addall"
    label = "addAll + cp"

    def __init__(self, layout: str = "flat", file_size: int = DEFAULT_FILE_SIZE):
        super().__init__(file_size)
        if layout not in LAYOUTS:
            raise ValueError(f"Unknown layout {layout!r}")
        self.layout = layout

    def describe(self) -> str:
        return f"{self.label}, {self.layout}"

    def run(self, client: KuboClient, root: str, paths: list[FilePathSpec]) -> StatResult:
        staging = make_staging_dir()
        try:
            print(f"  Creating {len(paths)} files in temp directory...")
            local_names: dict[str, FilePathSpec] = {}
            if self.layout == "mirror":
                self._stage_mirrored(staging, paths)
            else:
                local_names = self._stage_flat(staging, paths)

            print("  Adding files to IPFS...")
            start = time.perf_counter()
            files = client.add_all(disk_source(staging), wrap_with_directory=True, pin=False)
            print(f"  Added files in {time.perf_counter() - start:.2f} seconds")

            start = time.perf_counter()
            if self.layout == "mirror":
                self._link_mirrored(client, root, files)
            else:
                self._link_flat(client, files, local_names)

            client.flush(root)
            stat = client.stat(root)
            print(f"  Linked into {root} in {time.perf_counter() - start:.2f} seconds")
            return stat
        finally:
            remove_staging_dir(staging)

    def _stage_mirrored(self, staging: Path, paths: list[FilePathSpec]) -> None:
        for spec in paths:
            full_path = staging.joinpath(*spec.dirs, spec.name)
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(generate_file(self.file_size))

    def _stage_flat(self, staging: Path, paths: list[FilePathSpec]) -> dict[str, FilePathSpec]:
        local_names = {}
        for index, spec in enumerate(paths):
            local_name = f"file_{index}"
            (staging / local_name).write_bytes(generate_file(self.file_size))
            local_names[local_name] = spec
        return local_names

    def _link_mirrored(self, client: KuboClient, root: str, files: list[AddResult]) -> None:
        wrapper = wrapper_entry(files)
        print(f"  Copying directory to MFS: {ipfs_path(wrapper.cid)} -> {root}")
        try:
            client.rm(root, recursive=True)
        except NotFoundError:
            pass
        client.cp(ipfs_path(wrapper.cid), root)

    def _link_flat(
        self,
        client: KuboClient,
        files: list[AddResult],
        local_names: dict[str, FilePathSpec],
    ) -> None:
        cids = {f.name: f.cid for f in files}
        print(f"  Linking {len(local_names)} files into MFS...")
        for local_name, spec in local_names.items():
            try:
                cid = cids[local_name]
            except KeyError:
                raise ValueError(f"add did not report a CID for {local_name}") from None

            dest = spec.path
            try:
                client.stat(dest)
            except NotFoundError:
                pass
            else:
                client.rm(dest, recursive=True)
            client.cp(ipfs_path(cid), dest, parents=True, flush=False)


class WriteIndividualStrategy(IngestStrategy):
    """Write each file straight into MFS, one call per file."""

    name = "write"
    label = "Individual writes"

    def __init__(self, parent_policy: str = "write", file_size: int = DEFAULT_FILE_SIZE):
        super().__init__(file_size)
        if parent_policy not in PARENT_POLICIES:
            raise ValueError(f"Unknown parent policy {parent_policy!r}")
        self.parent_policy = parent_policy

    def describe(self) -> str:
        return f"{self.label}, parents via {self.parent_policy}"

    def run(self, client: KuboClient, root: str, paths: list[FilePathSpec]) -> None:
        print(f"  Writing {len(paths)} files individually...")
        for spec in paths:
            content = generate_file(self.file_size)
            if self.parent_policy == "mkdir":
                try:
                    client.stat(spec.parent)
                except NotFoundError:
                    client.mkdir(spec.parent, parents=True)
                client.write(spec.path, content, create=True, parents=False, truncate=True)
            else:
                client.write(spec.path, content, create=True, parents=True, truncate=True)
        print("  All files written individually")
        return None


ALL_STRATEGIES: list[type[IngestStrategy]] = [AddAllStrategy, WriteIndividualStrategy]


def build_strategies(
    layout: str = "flat",
    parent_policy: str = "write",
    file_size: int = DEFAULT_FILE_SIZE,
) -> list[IngestStrategy]:
    return [
        AddAllStrategy(layout=layout, file_size=file_size),
        WriteIndividualStrategy(parent_policy=parent_policy, file_size=file_size),
    ]
