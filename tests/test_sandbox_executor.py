"""Tests for the sandbox executor lifecycle, using a scripted runtime."""

import io
import json
import os
import subprocess
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from common.errors import SandboxCreationError, SandboxProcessError
from registry.npm.catalog import VersionCatalog
from registry.npm.manifest import Manifest
from sandbox.docker import DockerCli, Mount, SandboxExecutor, SandboxState, prepare_image
from versioning.models import ResolvedDependency

from conftest import FakeRuntime, make_packument, write_install

DEP = ResolvedDependency("left-pad", "1.3.0")


@pytest.fixture(autouse=True)
def _temp_root(tmp_path, monkeypatch):
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))


def _executor(runtime, **kwargs):
    kwargs.setdefault("log_sink", io.StringIO())
    return SandboxExecutor(runtime, image="node:test", **kwargs)


def test_install_lifecycle():
    runtime = FakeRuntime(installs={DEP.key: lambda d: write_install(d, {"left-pad": "1.3.0"})})
    sink = io.StringIO()
    sandbox = _executor(runtime, log_sink=sink).install(DEP)

    assert sandbox.state == SandboxState.REMOVED
    assert sandbox.exit_code == 0
    assert sandbox.succeeded
    assert os.path.isfile(sandbox.lockfile_path)
    assert os.path.basename(sandbox.path.path).startswith("package_size_left-pad@1.3.0_")

    names = [c[0] for c in runtime.calls if c[0] != "logs"]
    assert names == ["create", "start", "wait", "remove"]
    create = runtime.calls[0]
    assert create[1] == "node:test"
    assert create[2] == ("npm", "install", "--loglevel", "verbose", "left-pad@1.3.0")
    assert runtime.removed == [sandbox.container_id]
    assert "npm verbose" in sink.getvalue()


def test_workdir_mounted_at_app():
    runtime = FakeRuntime()
    sandbox = _executor(runtime).install(DEP)
    _, mounts = runtime.created[sandbox.container_id]
    assert mounts == [Mount(source=sandbox.path.path, target="/app")]


def test_npm_cache_mounted_readonly(tmp_path):
    runtime = FakeRuntime()
    sandbox = _executor(runtime, npm_cache=str(tmp_path)).install(DEP)
    _, mounts = runtime.created[sandbox.container_id]
    assert mounts[1] == Mount(source=str(tmp_path), target="/root/.npm", read_only=True)
    assert mounts[1].as_cli_arg().endswith(",readonly")


def test_relative_cache_fails_before_create(tmp_path):
    runtime = FakeRuntime()
    with pytest.raises(SandboxCreationError):
        _executor(runtime, npm_cache="relative/cache").install(DEP)
    assert runtime.calls == []
    # temp dir removed
    assert not [p for p in os.listdir(str(tmp_path)) if p.startswith("package_size_")]


def test_nonzero_exit_is_not_fatal(caplog):
    runtime = FakeRuntime(exit_code=1)
    sandbox = _executor(runtime).install(DEP)
    assert sandbox.exit_code == 1
    assert not sandbox.succeeded
    assert sandbox.state == SandboxState.REMOVED
    assert "exited with status 1" in caplog.text


def test_wait_failure_still_removes_container():
    runtime = FakeRuntime()
    runtime.fail_on["wait"] = SandboxProcessError("wait broke", "c1")
    with pytest.raises(SandboxProcessError):
        _executor(runtime).install(DEP)
    assert len(runtime.removed) == 1


def test_remove_failure_only_logged(caplog):
    runtime = FakeRuntime()
    runtime.fail_on["remove"] = SandboxProcessError("rm broke")
    sandbox = _executor(runtime).install(DEP)
    assert sandbox.exit_code == 0
    assert "Failed to remove container" in caplog.text


def test_log_stream_failure_not_propagated(caplog):
    runtime = FakeRuntime(log_error=True)
    sandbox = _executor(runtime).install(DEP)
    assert sandbox.exit_code == 0
    assert "Failed to copy logs" in caplog.text


def test_create_failure():
    runtime = FakeRuntime()
    runtime.fail_on["create"] = SandboxCreationError("no daemon")
    with pytest.raises(SandboxCreationError):
        _executor(runtime).install(DEP)


def test_install_manifest_writes_package_json():
    seen = {}

    def capture(host_dir):
        with open(os.path.join(host_dir, "package.json"), encoding="utf-8") as f:
            seen.update(json.load(f))

    runtime = FakeRuntime(installs={"": capture})
    manifest = Manifest.from_dict({"name": "app", "version": "1.0.0", "dependencies": {"a": "^1.0.0"}})
    sandbox = _executor(runtime).install_manifest(manifest)

    assert seen == {"name": "app", "version": "1.0.0", "dependencies": {"a": "^1.0.0"}}
    assert runtime.calls[0][2] == ("npm", "install", "--loglevel", "verbose")
    assert sandbox.dependency == ResolvedDependency("app", "1.0.0")


def test_install_manifest_skips_dev_dependencies():
    seen = {}

    def capture(host_dir):
        with open(os.path.join(host_dir, "package.json"), encoding="utf-8") as f:
            seen.update(json.load(f))

    packument = make_packument("app", {"1.0.0": {"a": "^1.0.0"}}, "1.0.0")
    packument["versions"]["1.0.0"]["devDependencies"] = {"jest": "^29.0.0"}
    manifest = VersionCatalog.from_packument(packument, name="app").get("1.0.0").manifest

    runtime = FakeRuntime(installs={"": capture})
    _executor(runtime).install_manifest(manifest.with_changes([], ["a"]))

    assert "devDependencies" not in seen
    assert seen == {"name": "app", "version": "1.0.0", "dependencies": {}}


def test_concurrent_installs_are_isolated():
    scoped = ResolvedDependency("@scope/pkg", "1.0.0")
    flat = ResolvedDependency("scope_pkg", "1.0.0")
    both_running = threading.Barrier(2, timeout=5)

    def marker(name):
        def write(host_dir):
            both_running.wait()
            with open(os.path.join(host_dir, name + ".marker"), "w", encoding="utf-8") as f:
                f.write(name)
        return write

    runtime = FakeRuntime(installs={scoped.key: marker("scoped"), flat.key: marker("flat")})
    executor = _executor(runtime)
    with ThreadPoolExecutor(max_workers=2) as pool:
        first, second = pool.map(executor.install, [scoped, flat])

    assert first.path.path != second.path.path
    assert [p for p in os.listdir(first.path.path) if p.endswith(".marker")] == ["scoped.marker"]
    assert [p for p in os.listdir(second.path.path) if p.endswith(".marker")] == ["flat.marker"]


def test_cleanup_respects_no_cleanup():
    sandbox = _executor(FakeRuntime()).install(DEP)
    sandbox.cleanup(no_cleanup=True)
    assert sandbox.path.exists()
    sandbox.cleanup()
    assert not sandbox.path.exists()


def test_prepare_image_pulls_once():
    runtime = FakeRuntime()
    prepare_image(runtime, "node:22")
    assert runtime.calls == [("pull", "node:22")]


class TestDockerCli:
    """Command lines issued to the container tool."""

    @patch("sandbox.docker.subprocess.run")
    def test_create_returns_last_line(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 0, stdout="pulling...\nabc123\n", stderr="")
        cli = DockerCli("docker")
        container_id = cli.create("node:22", ["npm", "install"], [Mount("/tmp/x", "/app")], "/app")

        assert container_id == "abc123"
        assert mock_run.call_args[0][0] == [
            "docker", "create", "--workdir", "/app",
            "--mount", "type=bind,source=/tmp/x,target=/app",
            "node:22", "npm", "install",
        ]

    @patch("sandbox.docker.subprocess.run")
    def test_wait_parses_status(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 0, stdout="137\n", stderr="")
        assert DockerCli("podman").wait("abc", timeout=5) == 137
        assert mock_run.call_args[0][0] == ["podman", "wait", "abc"]

    @patch("sandbox.docker.subprocess.run")
    def test_wait_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="docker wait", timeout=5)
        with pytest.raises(SandboxProcessError):
            DockerCli().wait("abc", timeout=5)

    @patch("sandbox.docker.subprocess.run")
    def test_pull_failure(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 1)
        with pytest.raises(SandboxCreationError):
            DockerCli().pull("node:22")

    @patch("sandbox.docker.subprocess.run")
    def test_remove_forces(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 0, stdout="", stderr="")
        DockerCli("docker").remove("abc")
        assert mock_run.call_args[0][0] == ["docker", "rm", "--force", "abc"]
