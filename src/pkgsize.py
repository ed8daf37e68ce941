"""pkgsize - installed size and dependency count estimation for npm packages.

Every mode resolves its input against the registry, installs the resolved
packages in disposable containers and measures the result. This module is
the only place that turns errors into process exit codes.
"""
import contextlib
import logging
import os
import sys
from typing import Any, Dict, Optional, Sequence

from args import parse_args
from cli_config import configure
from constants import Constants, ExitCodes, Modes
from common.errors import InputError, MeasurementError, RegistryError, SandboxError
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from registry.npm.client import NpmClient
from sandbox.docker import DockerCli, SandboxExecutor, prepare_image
from versioning.models import ResolvedDependency
from versioning.resolvers import NpmVersionResolver
from versioning.service import DependencyResolutionService
from analysis.fanout import MeasurementCoordinator
from analysis.report import (
    change_to_dict,
    export_json,
    package_info_lines,
    render_batch_report,
    render_change_report,
    render_version_report,
)
from analysis.stats import version_change

logger = logging.getLogger(__name__)


def _setup_logging(args: Any) -> None:
    """Configure logging from --loglevel and --logfile."""
    configure_logging(getattr(args, "LOG_LEVEL", None))

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def _emit(args: Any, text: str) -> None:
    if not getattr(args, "QUIET", False):
        print(text)


def _build_coordinator(client: NpmClient, log_sink) -> MeasurementCoordinator:
    runtime = DockerCli(Constants.CONTAINER_TOOL)
    prepare_image(runtime, Constants.BASE_IMAGE)
    executor = SandboxExecutor(
        runtime,
        image=Constants.BASE_IMAGE,
        npm_cache=Constants.NPM_CACHE_DIR or None,
        wait_timeout=Constants.SANDBOX_WAIT_TIMEOUT,
        log_sink=log_sink,
        no_cleanup=Constants.NO_CLEANUP,
    )
    return MeasurementCoordinator(
        client,
        executor,
        no_cleanup=Constants.NO_CLEANUP,
        max_workers=Constants.MEASURE_WORKERS or None,
    )


def run_size(args, client: NpmClient, coordinator: MeasurementCoordinator) -> Dict[str, Any]:
    """Measure one package."""
    package = NpmVersionResolver(client).resolve_text(args.SPEC)
    result = coordinator.measure_package(package, strict=True)
    _emit(args, "\n".join([""] + package_info_lines(package, result)))
    data = {"package": package.key}
    data.update(result.to_dict())
    return data


def run_diff(args, client: NpmClient, coordinator: MeasurementCoordinator) -> Dict[str, Any]:
    """Estimate the size change of removing and adding dependencies.

    Removed dependencies are pinned to the highest registry version matching
    the manifest's own range, not to the version npm wrote into the baseline
    lockfile. npm prefers the ``latest`` dist-tag when it satisfies the range,
    so the two can differ when ``latest`` is not the highest match.
    """
    resolver = NpmVersionResolver(client)
    found = resolver.resolve_version(args.SPEC)
    manifest = found.manifest
    package = ResolvedDependency(name=manifest.name, version=str(found.version))

    removed = []
    if args.REMOVE:
        service = DependencyResolutionService(client, Constants.RESOLVER_WORKERS)
        resolved = service.resolve_names(manifest, args.REMOVE)
        for name in args.REMOVE:
            dep_manifest = resolved.get(name)
            if dep_manifest is None:
                logger.warning("Skipping removal of %s: not resolvable from %s", name, package)
                continue
            removed.append(dep_manifest.as_dependency())

    added = [resolver.resolve_text(spec) for spec in args.ADD]

    modified = manifest.with_changes(added, args.REMOVE) if args.VERIFY else None
    change = coordinator.measure_change(package, removed, added, modified_manifest=modified)
    _emit(args, render_change_report(change))
    return change_to_dict(change)


def run_versions(args, client: NpmClient, coordinator: MeasurementCoordinator) -> Dict[str, Any]:
    """Compare two versions of one package."""
    resolver = NpmVersionResolver(client)
    old = resolver.resolve_text(f"{args.NAME} {args.OLD}")
    new = resolver.resolve_text(f"{args.NAME} {args.NEW}")
    old_result, new_result = coordinator.measure_versions(old, new)
    summary = version_change(old_result, new_result)
    _emit(args, render_version_report(old, old_result, new, new_result, summary))
    return {
        "old": dict(package=old.key, **old_result.to_dict()),
        "new": dict(package=new.key, **new_result.to_dict()),
        "newSizePercent": summary.new_size_percent,
        "trafficSaved": summary.traffic_saved,
    }


def run_batch(args, client: NpmClient, coordinator: MeasurementCoordinator) -> Dict[str, Any]:
    """Measure several sibling packages concurrently."""
    resolver = NpmVersionResolver(client)
    packages = [resolver.resolve_text(spec) for spec in args.SPECS]
    results = coordinator.measure_all(packages)
    _emit(args, render_batch_report(results))
    return {key: result.to_dict() for key, result in results.items()}


def run_deps(args, client: NpmClient) -> Dict[str, Any]:
    """Resolve the direct dependencies of a package with the bounded resolver pool."""
    found = NpmVersionResolver(client).resolve_version(args.SPEC)
    manifest = found.manifest
    service = DependencyResolutionService(client, Constants.RESOLVER_WORKERS)
    resolved = service.resolve_manifest(manifest, include_dev=args.INCLUDE_DEV)
    lines = ["", f"Dependencies of {manifest}:"]
    deps = list(manifest.dependencies)
    if args.INCLUDE_DEV:
        deps.extend(manifest.dev_dependencies)
    versions: Dict[str, Optional[str]] = {}
    for dep in deps:
        entry = resolved.get(dep.name)
        versions[dep.name] = entry.version if entry is not None else None
        lines.append(f"  {dep.name} {dep.raw_constraint} -> {versions[dep.name] or 'N/A'}")
    _emit(args, "\n".join(lines))
    return {"package": str(manifest), "dependencies": versions}


def _dispatch(args, stack: contextlib.ExitStack) -> Dict[str, Any]:
    client = NpmClient()
    if args.MODE == Modes.DEPS.value:
        return run_deps(args, client)

    log_sink = None
    if getattr(args, "QUIET", False):
        log_sink = stack.enter_context(open(os.devnull, "w", encoding="utf-8"))
    coordinator = _build_coordinator(client, log_sink)
    handlers = {
        Modes.SIZE.value: run_size,
        Modes.DIFF.value: run_diff,
        Modes.VERSIONS.value: run_versions,
        Modes.BATCH.value: run_batch,
    }
    return handlers[args.MODE](args, client, coordinator)


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Parse arguments, run the selected mode and return the exit code."""
    args = parse_args(argv)
    _setup_logging(args)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="run", mode=args.MODE),
        )

    try:
        configure(args)
        with contextlib.ExitStack() as stack:
            data = _dispatch(args, stack)
        if getattr(args, "OUTPUT", None):
            export_json(data, args.OUTPUT)
    except InputError as e:
        logger.error("Invalid input: %s", e)
        return ExitCodes.INPUT_ERROR.value
    except RegistryError as e:
        logger.error("Registry request failed: %s", e)
        return ExitCodes.CONNECTION_ERROR.value
    except SandboxError as e:
        logger.error("Sandbox failed: %s", e)
        return ExitCodes.SANDBOX_ERROR.value
    except MeasurementError as e:
        logger.error("Measurement failed: %s", e)
        return ExitCodes.FILE_ERROR.value
    except ValueError as e:
        logger.error("Invalid input or configuration: %s", e)
        return ExitCodes.INPUT_ERROR.value
    except OSError as e:
        logger.error("File error: %s", e)
        return ExitCodes.FILE_ERROR.value
    return ExitCodes.SUCCESS.value


def main() -> None:
    """Main function of the program."""
    sys.exit(run())


if __name__ == "__main__":
    main()
