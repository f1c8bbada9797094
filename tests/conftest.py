# ============================================================================
# conftest.py -- shared fixtures for the mfsbench test suite
# ============================================================================
#
# The Kubo daemon is replaced by FakeKubo: an in-memory MFS served through
# httpx.MockTransport. Requests go through the real KuboClient, so query
# parameters, multipart bodies and NDJSON replies are all exercised.
#
# FakeKubo is stricter than it needs to be in a few places on purpose:
#   - files/cp refuses to overwrite an existing entry (as Kubo does)
#   - add refuses a file whose parent directory part was not sent first
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import copy
import hashlib
import json
import os
import re
from urllib.parse import unquote

os.environ.setdefault("MPLBACKEND", "Agg")

import httpx
import pytest

from mfsbench.kubo import KuboClient

API_URL = "http://127.0.0.1:15001/api/v0"


class FakeError(Exception):
    def __init__(self, message):
        super().__init__(message)
        self.message = message


def parse_multipart(body: bytes, content_type: str) -> list[tuple[str, str, bytes]]:
    """Split a multipart body into (filename, content type, content) parts."""
    boundary = content_type.split("boundary=", 1)[1].strip('"')
    delimiter = b"--" + boundary.encode()
    parts = []
    for chunk in body.split(delimiter)[1:]:
        if chunk.startswith(b"--"):
            break
        head, _, content = chunk[2:].partition(b"\r\n\r\n")
        if content.endswith(b"\r\n"):
            content = content[:-2]
        headers = {}
        for line in head.decode().split("\r\n"):
            key, _, value = line.partition(":")
            headers[key.strip().lower()] = value.strip()
        match = re.search(r'filename="([^"]*)"', headers.get("content-disposition", ""))
        filename = unquote(match.group(1)) if match else ""
        parts.append((filename, headers.get("content-type", ""), content))
    return parts


def _parts(path: str) -> list[str]:
    return [p for p in path.split("/") if p]


class FakeKubo:
    """In-memory stand-in for the subset of the Kubo RPC API mfsbench uses."""

    def __init__(self):
        self.root: dict = {}
        self.blocks: dict[str, object] = {}
        self.calls: list[tuple[str, httpx.QueryParams]] = []
        self.fail: dict[str, str] = {}

    # -- plumbing --

    def handler(self, request: httpx.Request) -> httpx.Response:
        command = request.url.path.split("/api/v0/", 1)[1]
        params = request.url.params
        self.calls.append((command, params))
        if command in self.fail:
            return self._error(self.fail[command])
        method = getattr(self, "_cmd_" + command.replace("/", "_"), None)
        if method is None:
            return httpx.Response(404, text="404 page not found")
        try:
            return method(request, params)
        except FakeError as e:
            return self._error(e.message)

    def _error(self, message: str) -> httpx.Response:
        return httpx.Response(500, json={"Message": message, "Code": 0, "Type": "error"})

    def client(self) -> KuboClient:
        return KuboClient(API_URL, transport=httpx.MockTransport(self.handler))

    def commands(self, name: str) -> list[httpx.QueryParams]:
        return [params for command, params in self.calls if command == name]

    # -- content addressing --

    def cid(self, node, register: bool = False) -> str:
        """Content hash of a node. Files are always retrievable by CID, directories once added."""
        if isinstance(node, dict):
            h = hashlib.sha256(b"dir")
            for name in sorted(node):
                h.update(name.encode() + b"\0" + self.cid(node[name], register).encode())
        else:
            h = hashlib.sha256(b"file" + node)
        cid = "Qm" + h.hexdigest()[:44]
        if register or not isinstance(node, dict):
            self.blocks[cid] = node
        return cid

    def _size(self, node) -> int:
        if isinstance(node, dict):
            return sum(self._size(child) for child in node.values())
        return len(node)

    # -- namespace helpers --

    def lookup(self, path: str):
        node = self.root
        for part in _parts(path):
            if not isinstance(node, dict) or part not in node:
                raise FakeError("file does not exist")
            node = node[part]
        return node

    def _parent(self, path: str, parents: bool) -> tuple[dict, str]:
        parts = _parts(path)
        if not parts:
            raise FakeError("cannot operate on root")
        node = self.root
        for part in parts[:-1]:
            if part not in node:
                if not parents:
                    raise FakeError("file does not exist")
                node[part] = {}
            node = node[part]
            if not isinstance(node, dict):
                raise FakeError(f"{part} is not a directory")
        return node, parts[-1]

    def put(self, path: str, content: bytes) -> None:
        parent, name = self._parent(path, parents=True)
        parent[name] = content

    def read(self, path: str) -> bytes:
        node = self.lookup(path)
        assert isinstance(node, bytes)
        return node

    def file_count(self, path: str = "/") -> int:
        node = self.lookup(path)
        if isinstance(node, dict):
            return sum(self.file_count(f"{path.rstrip('/')}/{name}") for name in node)
        return 1

    # -- files/* --

    def _cmd_files_stat(self, request, params):
        node = self.lookup(params["arg"])
        return httpx.Response(
            200,
            json={
                "Hash": self.cid(node),
                "Size": 0 if isinstance(node, dict) else len(node),
                "CumulativeSize": self._size(node),
                "Blocks": len(node) if isinstance(node, dict) else 0,
                "Type": "directory" if isinstance(node, dict) else "file",
            },
        )

    def _cmd_files_mkdir(self, request, params):
        parents = params.get("parents") == "true"
        parent, name = self._parent(params["arg"], parents)
        if name in parent:
            if not parents:
                raise FakeError("file already exists")
        else:
            parent[name] = {}
        return httpx.Response(200, text="")

    def _cmd_files_rm(self, request, params):
        parent, name = self._parent(params["arg"], parents=False)
        if name not in parent:
            raise FakeError("file does not exist")
        if isinstance(parent[name], dict) and params.get("recursive") != "true":
            raise FakeError(f"{name} is a directory, use -r to remove directories")
        del parent[name]
        return httpx.Response(200, text="")

    def _cmd_files_write(self, request, params):
        parent, name = self._parent(params["arg"], params.get("parents") == "true")
        [(_, _, data)] = parse_multipart(request.content, request.headers["content-type"])
        existing = parent.get(name)
        if existing is None:
            if params.get("create") != "true":
                raise FakeError("file does not exist")
            existing = b""
        if isinstance(existing, dict):
            raise FakeError(f"{name} is a directory")
        if params.get("truncate") == "true":
            parent[name] = data
        else:
            parent[name] = data + existing[len(data):]
        return httpx.Response(200, text="")

    def _cmd_files_cp(self, request, params):
        source, dest = params.get_list("arg")
        if source.startswith("/ipfs/"):
            cid = source[len("/ipfs/"):]
            if cid not in self.blocks:
                raise FakeError(f"block {cid} not found")
            node = self.blocks[cid]
        else:
            node = self.lookup(source)
        parent, name = self._parent(dest, params.get("parents") == "true")
        if name in parent:
            raise FakeError("directory already has entry by that name")
        parent[name] = copy.deepcopy(node)
        return httpx.Response(200, text="")

    def _cmd_files_flush(self, request, params):
        return httpx.Response(200, json={"Cid": self.cid(self.lookup(params["arg"]))})

    def _cmd_files_ls(self, request, params):
        node = self.lookup(params["arg"])
        if not isinstance(node, dict):
            return httpx.Response(200, json={"Entries": [{"Name": _parts(params["arg"])[-1], "Type": 0, "Size": len(node), "Hash": self.cid(node)}]})
        entries = [
            {
                "Name": name,
                "Type": 1 if isinstance(child, dict) else 0,
                "Size": 0 if isinstance(child, dict) else len(child),
                "Hash": self.cid(child),
            }
            for name, child in sorted(node.items())
        ]
        return httpx.Response(200, json={"Entries": entries or None})

    # -- add --

    def _cmd_add(self, request, params):
        parts = parse_multipart(request.content, request.headers["content-type"])
        progress = params.get("progress") == "true"
        wrapper: dict = {}
        dirs: list[str] = []
        lines = []

        for filename, content_type, content in parts:
            segments = _parts(filename)
            node = wrapper
            for segment in segments[:-1]:
                if segment not in node:
                    raise FakeError(f"unexpected file: {filename}")
                node = node[segment]
            if content_type == "application/x-directory":
                node.setdefault(segments[-1], {})
                dirs.append(filename)
                continue
            node[segments[-1]] = content
            if progress:
                lines.append({"Name": filename, "Bytes": len(content) // 2})
                lines.append({"Name": filename, "Bytes": len(content)})
            lines.append({"Name": filename, "Hash": self.cid(content, register=True), "Size": str(len(content))})

        for dirname in sorted(dirs, key=lambda d: len(_parts(d)), reverse=True):
            node = wrapper
            for segment in _parts(dirname):
                node = node[segment]
            lines.append({"Name": dirname, "Hash": self.cid(node, register=True), "Size": str(self._size(node))})

        if params.get("wrap-with-directory") == "true":
            lines.append({"Name": "", "Hash": self.cid(wrapper, register=True), "Size": str(self._size(wrapper))})

        body = "".join(json.dumps(line) + "\n" for line in lines)
        return httpx.Response(200, text=body, headers={"Content-Type": "application/json"})


@pytest.fixture
def fake_kubo():
    return FakeKubo()


@pytest.fixture
def client(fake_kubo):
    kubo = fake_kubo.client()
    yield kubo
    kubo.close()


@pytest.fixture
def mfs_root(client):
    client.mkdir("/mfs-test", parents=True)
    return "/mfs-test"
