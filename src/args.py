"""Argument parsing functionality for pkgsize."""

import argparse
from typing import Optional, Sequence

from constants import Constants, Modes


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    """Options shared by every subcommand."""
    parser.add_argument("--no-cleanup",
                        dest="NO_CLEANUP",
                        help="Keep sandbox directories on disk after measuring.",
                        action="store_true")
    parser.add_argument("--npm-cache",
                        dest="NPM_CACHE",
                        help="Absolute host path of an npm cache to mount read-only into sandboxes.",
                        action="store",
                        type=str)
    parser.add_argument("--image",
                        dest="IMAGE",
                        help=f"Container image used for installs (default: {Constants.BASE_IMAGE}).",
                        action="store",
                        type=str)
    parser.add_argument("--container-tool",
                        dest="CONTAINER_TOOL",
                        help="Container CLI binary, i.e: docker, podman.",
                        action="store",
                        type=str)
    parser.add_argument("--resolvers",
                        dest="RESOLVERS",
                        help=f"Number of concurrent dependency resolvers (default: {Constants.RESOLVER_WORKERS}).",
                        action="store",
                        type=int)
    parser.add_argument("--timeout",
                        dest="WAIT_TIMEOUT",
                        help="Seconds to wait for one install to finish; 0 waits forever.",
                        action="store",
                        type=int)
    parser.add_argument("--registry",
                        dest="REGISTRY_URL",
                        help="Base URL of the npm registry.",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level (default: PKGSIZE_LOG_LEVEL or INFO)",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML or YML)",
                        action="store",
                        type=str)
    parser.add_argument("-o", "--output",
                        dest="OUTPUT",
                        help="Path to a JSON file receiving the measurements",
                        action="store",
                        type=str)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Do not print the report or install logs to the console.",
                        action="store_true")


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level parser with one subparser per mode."""
    parser = argparse.ArgumentParser(
        prog="pkgsize",
        description="pkgsize - measure installed size and dependency count of npm packages",
        add_help=True,
    )
    subparsers = parser.add_subparsers(dest="MODE", metavar="MODE", required=True)

    size = subparsers.add_parser(Modes.SIZE.value, help="Measure one package.")
    size.add_argument("SPEC", help="Package specifier, i.e: react, react@^18, \"react ^18\"")
    _add_common_options(size)

    diff = subparsers.add_parser(
        Modes.DIFF.value, help="Estimate size change after removing/adding dependencies."
    )
    diff.add_argument("SPEC", help="Package specifier of the package being changed.")
    diff.add_argument("-r", "--remove",
                      dest="REMOVE",
                      help="Name of a dependency to remove (repeatable).",
                      action="append",
                      default=[],
                      type=str)
    diff.add_argument("-a", "--add",
                      dest="ADD",
                      help="Specifier of a dependency to add (repeatable).",
                      action="append",
                      default=[],
                      type=str)
    diff.add_argument("--verify",
                      dest="VERIFY",
                      help="Also install the modified package.json to measure the real result.",
                      action="store_true")
    _add_common_options(diff)

    versions = subparsers.add_parser(
        Modes.VERSIONS.value, help="Compare the size of two versions of a package."
    )
    versions.add_argument("NAME", help="Package name.")
    versions.add_argument("OLD", help="Old version or constraint.")
    versions.add_argument("NEW", help="New version or constraint.")
    _add_common_options(versions)

    batch = subparsers.add_parser(Modes.BATCH.value, help="Measure several packages concurrently.")
    batch.add_argument("SPECS", nargs="+", help="Package specifiers.")
    _add_common_options(batch)

    deps = subparsers.add_parser(Modes.DEPS.value, help="Resolve the direct dependencies of a package.")
    deps.add_argument("SPEC", help="Package specifier.")
    deps.add_argument("--dev",
                      dest="INCLUDE_DEV",
                      help="Include devDependencies.",
                      action="store_true")
    _add_common_options(deps)

    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
