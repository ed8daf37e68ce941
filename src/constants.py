"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    INPUT_ERROR = 4
    SANDBOX_ERROR = 5


class Modes(Enum):
    """Measurement modes offered by the CLI.

    Args:
        Enum (string): Subcommand names.
    """

    SIZE = "size"
    DIFF = "diff"
    VERSIONS = "versions"
    BATCH = "batch"
    DEPS = "deps"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NPM = "https://registry.npmjs.com"
    API_URL_NPM = "https://api.npmjs.org"
    PACKAGE_JSON_FILE = "package.json"
    PACKAGE_LOCK_FILE = "package-lock.json"
    NODE_MODULES_DIR = "node_modules"
    SUPPORTED_LOCKFILE_VERSION = 3
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests

    # Sandbox
    BASE_IMAGE = "node:22"
    CONTAINER_TOOL = "docker"
    SANDBOX_WORKDIR = "/app"
    SANDBOX_NPM_CACHE = "/root/.npm"
    SANDBOX_DIR_PREFIX = "package_size_"
    SANDBOX_WAIT_TIMEOUT = 900  # seconds; 0 disables the limit
    NPM_CACHE_DIR = ""
    NO_CLEANUP = False

    # Resolution
    RESOLVER_WORKERS = 2
    MEASURE_WORKERS = 0  # 0 means one worker per dependency
