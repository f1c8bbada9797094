"""
Minimal client for the Kubo (IPFS) HTTP RPC API.

Only the calls the benchmark needs are wrapped: the `files/*` MFS commands
and the bulk `add`. Every command is a POST to `<api_url>/<command>` with
`arg` query parameters. Failures come back as HTTP 500 with a JSON body of
the form `{"Message": ..., "Code": ..., "Type": "error"}`.
"""

from __future__ import annotations

import json
import logging
import secrets
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

import httpx

from mfsbench.errors import DaemonUnavailableError, NotFoundError, RpcError

logger = logging.getLogger(__name__)

_NOT_FOUND_MARKERS = ("does not exist", "no link named", "not found")
_READ_CHUNK = 64 * 1024

ProgressCallback = Callable[[int, str], None]


@dataclass(frozen=True)
class AddEntry:
    """One item of a bulk-add source. No content and no source means a directory."""

    path: str
    content: bytes | None = None
    source: Path | None = None

    @property
    def is_dir(self) -> bool:
        return self.content is None and self.source is None


@dataclass(frozen=True)
class AddResult:
    name: str
    cid: str
    size: int


@dataclass(frozen=True)
class StatResult:
    cid: str
    size: int
    cumulative_size: int
    type: str


@dataclass(frozen=True)
class LsEntry:
    name: str
    type: int
    size: int
    cid: str

    @property
    def is_dir(self) -> bool:
        return self.type == 1


def ipfs_path(cid: str) -> str:
    return f"/ipfs/{cid}"


def wrapper_entry(files: Iterable[AddResult]) -> AddResult:
    """Pick the wrapping directory out of an `add` result list."""
    for entry in files:
        if entry.name == "":
            return entry
    raise ValueError("add did not report a wrapping directory")


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _split(path: str) -> tuple[str, ...]:
    return tuple(part for part in path.split("/") if part)


def sort_entries(entries: Iterable[AddEntry]) -> list[AddEntry]:
    """Order entries so that the children of each directory are contiguous."""
    return sorted(entries, key=lambda entry: _split(entry.path))


def iter_with_parents(entries: Iterable[AddEntry]) -> Iterator[AddEntry]:
    """Yield `entries`, preceding each one with directory entries for unseen parents."""
    seen: set[tuple[str, ...]] = set()
    for entry in entries:
        parts = _split(entry.path)
        for i in range(1, len(parts)):
            parent = parts[:i]
            if parent not in seen:
                seen.add(parent)
                yield AddEntry(path="/".join(parent))
        if entry.is_dir:
            if parts in seen:
                continue
            seen.add(parts)
        yield entry


def disk_source(root: Path) -> Iterator[AddEntry]:
    """Walk a local directory and yield its files (and directories) for `add_all`."""
    files = [
        AddEntry(path=p.relative_to(root).as_posix(), source=p)
        for p in root.rglob("*")
        if p.is_file()
    ]
    return iter_with_parents(sort_entries(files))


class PullSource:
    """Single-pass iterator over pre-built entries, handed out one pull at a time."""

    def __init__(self, entries: list[AddEntry], on_pull: Callable[[AddEntry], None] | None = None):
        self._entries = entries
        self._index = 0
        self._on_pull = on_pull

    def __iter__(self):
        return self

    def __next__(self) -> AddEntry:
        if self._index >= len(self._entries):
            raise StopIteration
        entry = self._entries[self._index]
        self._index += 1
        if self._on_pull is not None:
            self._on_pull(entry)
        return entry

    def __len__(self) -> int:
        return len(self._entries) - self._index


def encode_multipart(entries: Iterable[AddEntry], boundary: str) -> Iterator[bytes]:
    """Lazily encode `entries` as a multipart/form-data body."""
    for entry in entries:
        content_type = "application/x-directory" if entry.is_dir else "application/octet-stream"
        yield (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="file"; filename="{quote(entry.path, safe="")}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n"
        ).encode()
        if entry.source is not None:
            with open(entry.source, "rb") as f:
                while chunk := f.read(_READ_CHUNK):
                    yield chunk
        elif entry.content is not None:
            yield entry.content
        yield b"\r\n"
    yield f"--{boundary}--\r\n".encode()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("Message"):
        return body["Message"]
    return response.text.strip()


def _rpc_error(command: str, message: str, status_code: int | None = None) -> RpcError:
    lowered = message.lower()
    if any(marker in lowered for marker in _NOT_FOUND_MARKERS):
        return NotFoundError(command, message, status_code)
    return RpcError(command, message, status_code)


class KuboClient:
    """Blocking client for one Kubo daemon."""

    def __init__(
        self,
        api_url: str,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.api_url + "/", timeout=timeout, transport=transport
        )

    def __enter__(self) -> KuboClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _post(self, command: str, params: list[tuple[str, str]], **kwargs) -> httpx.Response:
        logger.debug("POST %s %s", command, params)
        try:
            response = self._client.post(command, params=params, **kwargs)
        except httpx.TransportError as e:
            raise DaemonUnavailableError(command, str(e)) from e
        if response.is_error:
            raise _rpc_error(command, _error_message(response), response.status_code)
        return response

    def stat(self, path: str) -> StatResult:
        body = self._post("files/stat", [("arg", path)]).json()
        return StatResult(
            cid=body["Hash"],
            size=int(body.get("Size", 0)),
            cumulative_size=int(body.get("CumulativeSize", 0)),
            type=body.get("Type", ""),
        )

    def exists(self, path: str) -> bool:
        try:
            self.stat(path)
        except NotFoundError:
            return False
        return True

    def mkdir(self, path: str, parents: bool = False) -> None:
        self._post("files/mkdir", [("arg", path), ("parents", _flag(parents))])

    def rm(self, path: str, recursive: bool = False) -> None:
        self._post("files/rm", [("arg", path), ("recursive", _flag(recursive))])

    def write(
        self,
        path: str,
        data: bytes,
        create: bool = False,
        parents: bool = False,
        truncate: bool = False,
    ) -> None:
        params = [
            ("arg", path),
            ("create", _flag(create)),
            ("parents", _flag(parents)),
            ("truncate", _flag(truncate)),
        ]
        self._post(
            "files/write",
            params,
            files={"file": ("data", data, "application/octet-stream")},
        )

    def cp(self, source: str, dest: str, parents: bool = False, flush: bool = True) -> None:
        params = [
            ("arg", source),
            ("arg", dest),
            ("parents", _flag(parents)),
            ("flush", _flag(flush)),
        ]
        self._post("files/cp", params)

    def flush(self, path: str = "/") -> str:
        return self._post("files/flush", [("arg", path)]).json()["Cid"]

    def ls(self, path: str) -> list[LsEntry]:
        body = self._post("files/ls", [("arg", path), ("long", "true")]).json()
        return [
            LsEntry(
                name=item["Name"],
                type=int(item.get("Type", 0)),
                size=int(item.get("Size", 0)),
                cid=item.get("Hash", ""),
            )
            for item in body.get("Entries") or []
        ]

    def add_all(
        self,
        entries: Iterable[AddEntry],
        wrap_with_directory: bool = True,
        pin: bool = False,
        progress: ProgressCallback | None = None,
    ) -> list[AddResult]:
        """
        Add every entry in one `add` call and return the reported handles.

        The request body is streamed, so `entries` is consumed one item at a
        time while the upload is in flight. The daemon reports progress as a
        running byte count per file; `progress` receives the increments.
        """
        boundary = secrets.token_hex(16)
        params = [
            ("wrap-with-directory", _flag(wrap_with_directory)),
            ("pin", _flag(pin)),
            ("progress", _flag(progress is not None)),
            ("stream-channels", "true"),
        ]
        headers = {"Content-Type": f"multipart/form-data; boundary={boundary}"}
        logger.debug("POST add %s", params)

        results: list[AddResult] = []
        reported: dict[str, int] = {}
        try:
            with self._client.stream(
                "POST",
                "add",
                params=params,
                headers=headers,
                content=encode_multipart(entries, boundary),
            ) as response:
                if response.is_error:
                    response.read()
                    raise _rpc_error("add", _error_message(response), response.status_code)

                for line in response.iter_lines():
                    if not line.strip():
                        continue
                    item = json.loads(line)
                    if item.get("Type") == "error":
                        raise _rpc_error("add", item.get("Message", "unknown error"))
                    if "Hash" in item:
                        results.append(
                            AddResult(
                                name=item.get("Name", ""),
                                cid=item["Hash"],
                                size=int(item.get("Size") or 0),
                            )
                        )
                    elif progress is not None and "Bytes" in item:
                        name = item.get("Name", "")
                        total = int(item["Bytes"])
                        delta = total - reported.get(name, 0)
                        reported[name] = total
                        if delta > 0:
                            progress(delta, name)
        except httpx.TransportError as e:
            raise DaemonUnavailableError("add", str(e)) from e

        return results
