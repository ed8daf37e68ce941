"""Container sandboxes running real ``npm install`` invocations.

Each install gets a fresh host directory bind-mounted as the container's
working directory. Containers are driven through the docker (or podman) CLI
and are always force-removed; the host directory is left for the caller.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import IO, Iterator, List, Optional, Sequence

from constants import Constants
from common.errors import SandboxCreationError, SandboxError, SandboxProcessError
from common.logging_utils import extra_context, is_debug_enabled, Timer
from registry.npm.manifest import Manifest
from versioning.models import ResolvedDependency
from .workdir import TmpDir, sanitize_file_name

logger = logging.getLogger(__name__)

_LOG_JOIN_TIMEOUT = 5.0


@dataclass(frozen=True)
class Mount:
    """A bind mount from the host into the container."""
    source: str
    target: str
    read_only: bool = False

    def as_cli_arg(self) -> str:
        arg = f"type=bind,source={self.source},target={self.target}"
        if self.read_only:
            arg += ",readonly"
        return arg


class ContainerRuntime(ABC):
    """Container-execution capability used by the sandbox executor."""

    @abstractmethod
    def pull(self, image: str) -> None:
        """Fetch ``image`` so later creates do not block on a download."""

    @abstractmethod
    def create(self, image: str, command: Sequence[str], mounts: Sequence[Mount], workdir: str) -> str:
        """Create a container and return its id."""

    @abstractmethod
    def start(self, container_id: str) -> None:
        """Start a created container."""

    @abstractmethod
    def stream_logs(self, container_id: str) -> Iterator[bytes]:
        """Yield combined stdout/stderr chunks until the container stops."""

    @abstractmethod
    def wait(self, container_id: str, timeout: Optional[float] = None) -> int:
        """Block until the container exits and return its exit status."""

    @abstractmethod
    def remove(self, container_id: str) -> None:
        """Force-remove a container."""


class DockerCli(ContainerRuntime):
    """ContainerRuntime backed by the docker/podman command line."""

    def __init__(self, tool: Optional[str] = None):
        self.tool = tool or Constants.CONTAINER_TOOL

    def _run(self, args: List[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        cmd = [self.tool] + args
        if is_debug_enabled(logger):
            logger.debug(
                "Container command",
                extra=extra_context(event="container_command", component="docker", action=args[0]),
            )
        return subprocess.run(  # noqa: S603
            cmd, capture_output=True, text=True, timeout=timeout, check=False
        )

    def pull(self, image: str) -> None:
        try:
            result = subprocess.run([self.tool, "pull", image], check=False)  # noqa: S603
        except OSError as e:
            raise SandboxCreationError(f"Failed to run {self.tool}: {e}") from e
        if result.returncode != 0:
            raise SandboxCreationError(f"Failed to pull image {image} (exit {result.returncode})")

    def create(self, image: str, command: Sequence[str], mounts: Sequence[Mount], workdir: str) -> str:
        args = ["create", "--workdir", workdir]
        for mount in mounts:
            args += ["--mount", mount.as_cli_arg()]
        args += [image] + list(command)
        try:
            result = self._run(args)
        except OSError as e:
            raise SandboxCreationError(f"Failed to run {self.tool}: {e}") from e
        if result.returncode != 0:
            raise SandboxCreationError(f"{self.tool} create failed: {result.stderr.strip()}")
        lines = result.stdout.strip().splitlines()
        if not lines:
            raise SandboxCreationError(f"{self.tool} create returned no container id")
        return lines[-1].strip()

    def start(self, container_id: str) -> None:
        try:
            result = self._run(["start", container_id])
        except OSError as e:
            raise SandboxProcessError(f"Failed to run {self.tool}: {e}", container_id) from e
        if result.returncode != 0:
            raise SandboxProcessError(f"{self.tool} start failed: {result.stderr.strip()}", container_id)

    def stream_logs(self, container_id: str) -> Iterator[bytes]:
        try:
            proc = subprocess.Popen(  # noqa: S603
                [self.tool, "logs", "--follow", container_id],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            raise SandboxProcessError(f"Failed to follow logs: {e}", container_id) from e
        stdout = proc.stdout
        try:
            if stdout is not None:
                for chunk in iter(stdout.readline, b""):
                    yield chunk
        finally:
            if stdout is not None:
                stdout.close()
            proc.wait()

    def wait(self, container_id: str, timeout: Optional[float] = None) -> int:
        try:
            result = self._run(["wait", container_id], timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise SandboxProcessError(f"Container did not exit within {timeout} seconds", container_id) from e
        except OSError as e:
            raise SandboxProcessError(f"Failed to run {self.tool}: {e}", container_id) from e
        if result.returncode != 0:
            raise SandboxProcessError(f"Failed to wait for container: {result.stderr.strip()}", container_id)
        try:
            return int(result.stdout.strip().splitlines()[-1])
        except (IndexError, ValueError) as e:
            raise SandboxProcessError(
                f"Unexpected wait output: {result.stdout.strip()!r}", container_id
            ) from e

    def remove(self, container_id: str) -> None:
        try:
            result = self._run(["rm", "--force", container_id])
        except OSError as e:
            raise SandboxProcessError(f"Failed to run {self.tool}: {e}", container_id) from e
        if result.returncode != 0:
            raise SandboxProcessError(f"{self.tool} rm failed: {result.stderr.strip()}", container_id)


class SandboxState(Enum):
    """Lifecycle of one sandboxed install."""
    PENDING = "pending"
    CREATED = "created"
    STARTED = "started"
    RUNNING = "running"
    EXITED = "exited"
    REMOVED = "removed"


@dataclass
class Sandbox:
    """Handle to a finished sandbox install and its host directory."""
    dependency: ResolvedDependency
    path: TmpDir
    container_id: Optional[str] = None
    exit_code: Optional[int] = None
    state: SandboxState = SandboxState.PENDING

    @property
    def lockfile_path(self) -> str:
        return self.path.join(Constants.PACKAGE_LOCK_FILE)

    @property
    def node_modules_path(self) -> str:
        return self.path.join(Constants.NODE_MODULES_DIR)

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    def cleanup(self, no_cleanup: bool = False) -> None:
        """Remove the host directory unless ``no_cleanup`` is set."""
        if no_cleanup:
            logger.info("Keeping sandbox directory %s", self.path)
            return
        self.path.remove()


def _copy_logs(runtime: ContainerRuntime, container_id: str, sink: Optional[IO[str]]) -> None:
    """Copy container output to ``sink``; failures are logged only."""
    try:
        for chunk in runtime.stream_logs(container_id):
            if sink is not None:
                sink.write(chunk.decode("utf-8", errors="replace"))
                sink.flush()
    except (SandboxError, OSError, ValueError) as e:
        logger.error("Failed to copy logs from %s: %s", container_id[:12], e)


class SandboxExecutor:
    """Runs ``npm install`` for one dependency per disposable container."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        image: Optional[str] = None,
        npm_cache: Optional[str] = None,
        wait_timeout: Optional[float] = None,
        log_sink: Optional[IO[str]] = None,
        no_cleanup: bool = False,
    ):
        self.runtime = runtime
        self.image = image or Constants.BASE_IMAGE
        self.npm_cache = npm_cache if npm_cache is not None else (Constants.NPM_CACHE_DIR or None)
        timeout = wait_timeout if wait_timeout is not None else Constants.SANDBOX_WAIT_TIMEOUT
        self.wait_timeout = timeout if timeout and timeout > 0 else None
        self.log_sink = log_sink if log_sink is not None else sys.stdout
        self.no_cleanup = no_cleanup

    def _mounts(self, path: TmpDir) -> List[Mount]:
        mounts = [Mount(source=path.path, target=Constants.SANDBOX_WORKDIR)]
        if self.npm_cache:
            if not os.path.isabs(self.npm_cache):
                raise SandboxCreationError(
                    f"npm cache mount must be an absolute path: {self.npm_cache}"
                )
            mounts.append(Mount(source=self.npm_cache, target=Constants.SANDBOX_NPM_CACHE, read_only=True))
            logger.info("Mounting readonly npm cache %s", self.npm_cache)
        return mounts

    def _new_dir(self, identity: str) -> TmpDir:
        prefix = f"{Constants.SANDBOX_DIR_PREFIX}{sanitize_file_name(identity)}_"
        try:
            path = TmpDir.create(prefix)
        except OSError as e:
            raise SandboxCreationError(f"Failed to create sandbox directory: {e}") from e
        logger.debug("Created temp dir %s", path)
        return path

    def install(self, dependency: ResolvedDependency) -> Sandbox:
        """Install ``name@version`` into a fresh sandbox.

        Raises:
            SandboxCreationError: Directory, mount validation or container creation failed.
            SandboxProcessError: Start or wait failed.
        """
        sandbox = Sandbox(dependency=dependency, path=self._new_dir(dependency.key))
        command = ["npm", "install", "--loglevel", "verbose", dependency.key]
        self._run(sandbox, command)
        return sandbox

    def install_manifest(self, manifest: Manifest) -> Sandbox:
        """Run a bare ``npm install`` against ``manifest`` written into a fresh sandbox."""
        dependency = manifest.as_dependency()
        sandbox = Sandbox(dependency=dependency, path=self._new_dir(f"{dependency.key}_modified"))
        try:
            sandbox.path.write_json(Constants.PACKAGE_JSON_FILE, manifest.to_dict())
        except OSError as e:
            self._discard(sandbox)
            raise SandboxCreationError(f"Failed to write manifest: {e}") from e
        self._run(sandbox, ["npm", "install", "--loglevel", "verbose"])
        return sandbox

    def _discard(self, sandbox: Sandbox) -> None:
        if not self.no_cleanup:
            sandbox.path.remove()

    def _run(self, sandbox: Sandbox, command: List[str]) -> None:
        try:
            mounts = self._mounts(sandbox.path)
            container_id = self.runtime.create(self.image, command, mounts, Constants.SANDBOX_WORKDIR)
        except SandboxError:
            self._discard(sandbox)
            raise
        sandbox.container_id = container_id
        sandbox.state = SandboxState.CREATED
        logger.debug("Created container %s for %s", container_id[:12], sandbox.dependency)

        log_thread: Optional[threading.Thread] = None
        try:
            with Timer() as timer:
                self.runtime.start(container_id)
                sandbox.state = SandboxState.STARTED
                log_thread = threading.Thread(
                    target=_copy_logs,
                    args=(self.runtime, container_id, self.log_sink),
                    name=f"logs-{container_id[:12]}",
                    daemon=True,
                )
                log_thread.start()
                sandbox.state = SandboxState.RUNNING
                sandbox.exit_code = self.runtime.wait(container_id, self.wait_timeout)
                sandbox.state = SandboxState.EXITED
            if sandbox.exit_code == 0:
                logger.debug(
                    "Container %s exited with status 0 after %d ms",
                    container_id[:12],
                    timer.duration_ms(),
                )
            else:
                logger.warning(
                    "Container %s for %s exited with status %d",
                    container_id[:12],
                    sandbox.dependency,
                    sandbox.exit_code,
                )
        except SandboxError:
            self._discard(sandbox)
            raise
        finally:
            try:
                self.runtime.remove(container_id)
            except (SandboxError, OSError) as e:
                logger.error("Failed to remove container %s: %s", container_id[:12], e)
            sandbox.state = SandboxState.REMOVED
            if log_thread is not None:
                log_thread.join(timeout=_LOG_JOIN_TIMEOUT)


def prepare_image(runtime: ContainerRuntime, image: Optional[str] = None) -> None:
    """Pull the base image once; failures are fatal to the caller."""
    image = image or Constants.BASE_IMAGE
    logger.info("Pulling %s image for measuring package sizes", image)
    runtime.pull(image)
