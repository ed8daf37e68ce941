"""Shared fixtures: packument builders and a scripted container runtime."""

import json
import os
import threading
from typing import Dict, Iterator, List, Optional

import pytest

from cli_config import restore, snapshot
from common.errors import SandboxProcessError
from registry.npm.catalog import VersionCatalog
from sandbox.docker import ContainerRuntime


def make_packument(name: str, versions: Dict[str, dict], latest: Optional[str] = None) -> dict:
    """Build a minimal registry packument for ``versions`` ({version: {deps}})."""
    data = {
        "name": name,
        "versions": {
            v: {"name": name, "version": v, "dependencies": deps} for v, deps in versions.items()
        },
        "time": {v: "2024-01-0%dT00:00:00.000Z" % (i + 1) for i, v in enumerate(list(versions)[:9])},
    }
    if latest is not None:
        data["dist-tags"] = {"latest": latest}
    return data


def make_catalog(name: str, versions: Dict[str, dict], latest: Optional[str] = None) -> VersionCatalog:
    return VersionCatalog.from_packument(make_packument(name, versions, latest), name=name)


class FakeRuntime(ContainerRuntime):
    """ContainerRuntime that records calls and fakes ``npm install`` output.

    ``installs`` maps the last token of the command (``name@version`` or
    ``npm``-less bare install) to a callable writing files into the mounted
    working directory.
    """

    def __init__(self, exit_code: int = 0, installs=None, log_error: bool = False):
        self.exit_code = exit_code
        self.installs = installs or {}
        self.log_error = log_error
        self.calls: List[tuple] = []
        self.created: Dict[str, tuple] = {}
        self.removed: List[str] = []
        self.fail_on: Dict[str, Exception] = {}
        self._lock = threading.Lock()
        self._counter = 0

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)

    def pull(self, image: str) -> None:
        self._record("pull", image)
        if "pull" in self.fail_on:
            raise self.fail_on["pull"]

    def create(self, image, command, mounts, workdir) -> str:
        self._record("create", image, tuple(command))
        if "create" in self.fail_on:
            raise self.fail_on["create"]
        with self._lock:
            self._counter += 1
            container_id = "c%011d" % self._counter
            self.created[container_id] = (list(command), list(mounts))
        return container_id

    def start(self, container_id: str) -> None:
        self._record("start", container_id)
        if "start" in self.fail_on:
            raise self.fail_on["start"]

    def stream_logs(self, container_id: str) -> Iterator[bytes]:
        self._record("logs", container_id)
        yield b"npm verbose cli node\n"
        if self.log_error:
            raise SandboxProcessError("log stream broke", container_id)

    def wait(self, container_id: str, timeout=None) -> int:
        self._record("wait", container_id)
        if "wait" in self.fail_on:
            raise self.fail_on["wait"]
        command, mounts = self.created[container_id]
        host_dir = mounts[0].source
        target = command[-1] if command[-1] != "verbose" else ""
        writer = self.installs.get(target)
        if writer is not None:
            writer(host_dir)
        return self.exit_code

    def remove(self, container_id: str) -> None:
        self._record("remove", container_id)
        with self._lock:
            self.removed.append(container_id)
        if "remove" in self.fail_on:
            raise self.fail_on["remove"]


def write_install(host_dir: str, packages: Dict[str, str], payload: int = 100, lockfile_version: int = 3):
    """Lay down a node_modules tree and a v3 lockfile listing ``packages``."""
    lock_packages = {"": {"name": "sandbox"}}
    for name, version in packages.items():
        pkg_dir = os.path.join(host_dir, "node_modules", name)
        os.makedirs(pkg_dir, exist_ok=True)
        with open(os.path.join(pkg_dir, "index.js"), "wb") as f:
            f.write(b"x" * payload)
        lock_packages["node_modules/" + name] = {"version": version}
    with open(os.path.join(host_dir, "package-lock.json"), "w", encoding="utf-8") as f:
        json.dump({"lockfileVersion": lockfile_version, "packages": lock_packages}, f)


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture(autouse=True)
def _restore_constants():
    """Keep Constants overrides from leaking between tests."""
    saved = snapshot()
    yield
    restore(saved)
