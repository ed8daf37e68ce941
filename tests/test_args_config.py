"""Tests for CLI argument parsing and configuration layering."""

import pytest

from args import parse_args
from cli_config import apply_env_overrides, configure, load_config_file
from constants import Constants


def test_parse_diff_args():
    ns = parse_args(
        ["diff", "express@^4", "--remove", "debug", "-r", "qs", "--add", "lodash@4.17.21", "--verify"]
    )
    assert ns.MODE == "diff"
    assert ns.SPEC == "express@^4"
    assert ns.REMOVE == ["debug", "qs"]
    assert ns.ADD == ["lodash@4.17.21"]
    assert ns.VERIFY is True
    assert ns.LOG_LEVEL is None


def test_parse_versions_args():
    ns = parse_args(["versions", "react", "17.0.2", "^18", "--no-cleanup", "--resolvers", "4"])
    assert (ns.NAME, ns.OLD, ns.NEW) == ("react", "17.0.2", "^18")
    assert ns.NO_CLEANUP is True
    assert ns.RESOLVERS == 4


def test_parse_batch_requires_specs():
    with pytest.raises(SystemExit):
        parse_args(["batch"])


def test_mode_required():
    with pytest.raises(SystemExit):
        parse_args([])


def test_config_file_section(tmp_path):
    path = tmp_path / "pkgsize.yml"
    path.write_text("pkgsize:\n  image: node:20\n  resolvers: 5\nother: ignored\n")
    assert load_config_file(str(path)) == {"image": "node:20", "resolvers": 5}


def test_config_file_top_level(tmp_path):
    path = tmp_path / "pkgsize.yml"
    path.write_text("wait_timeout: 60\n")
    assert load_config_file(str(path)) == {"wait_timeout": 60}


def test_config_file_invalid(tmp_path):
    path = tmp_path / "pkgsize.yml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ValueError):
        load_config_file(str(path))


def test_config_file_missing(tmp_path):
    with pytest.raises(OSError):
        load_config_file(str(tmp_path / "nope.yml"))


def test_env_overrides():
    apply_env_overrides({"PKGSIZE_RESOLVERS": "7", "PKGSIZE_NO_CLEANUP": "true", "PKGSIZE_IMAGE": ""})
    assert Constants.RESOLVER_WORKERS == 7
    assert Constants.NO_CLEANUP is True
    assert Constants.BASE_IMAGE == "node:22"


def test_env_override_bad_value():
    with pytest.raises(ValueError):
        apply_env_overrides({"PKGSIZE_WAIT_TIMEOUT": "soon"})


def test_layers_precedence(tmp_path):
    path = tmp_path / "pkgsize.yml"
    path.write_text("pkgsize:\n  image: node:18\n  resolvers: 3\n  container_tool: podman\n")
    args = parse_args(["size", "react", "-c", str(path), "--image", "node:20"])

    configure(args, environ={"PKGSIZE_RESOLVERS": "6"})

    assert Constants.BASE_IMAGE == "node:20"
    assert Constants.RESOLVER_WORKERS == 6
    assert Constants.CONTAINER_TOOL == "podman"
