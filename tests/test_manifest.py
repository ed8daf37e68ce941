"""Tests for the package.json model."""

import logging

import pytest

from registry.npm.manifest import Manifest, is_resolvable_constraint, new_dependency
from versioning.models import ResolvedDependency


@pytest.mark.parametrize(
    "constraint,expected",
    [
        ("^1.0.0", True),
        ("~2", True),
        (">=1 <3", True),
        ("*", True),
        ("latest", False),
        ("git+https://github.com/a/b.git", False),
        ("workspace:*", False),
        ("file:../local", False),
        ("", False),
        (None, False),
    ],
)
def test_is_resolvable_constraint(constraint, expected):
    assert is_resolvable_constraint(constraint) is expected


def test_unparseable_entries_dropped(caplog):
    data = {
        "name": "app",
        "version": "1.0.0",
        "dependencies": {
            "good": "^1.0.0",
            "tagged": "latest",
            "gitdep": "github:user/repo",
            "broken": ">>>1",
            "other": "~2.1.0",
        },
        "devDependencies": {"jest": "^29.0.0"},
    }
    with caplog.at_level(logging.WARNING):
        manifest = Manifest.from_dict(data)

    assert [d.name for d in manifest.dependencies] == ["good", "other"]
    assert [d.name for d in manifest.dev_dependencies] == ["jest"]
    assert "tagged" in caplog.text


def test_new_dependency_parses_spec():
    dep = new_dependency("a", "^1.2.0")
    assert dep is not None
    assert str(dep) == "a ^1.2.0"


def test_with_changes_leaves_original_untouched():
    manifest = Manifest.from_dict(
        {"name": "app", "version": "1.0.0", "dependencies": {"a": "^1.0.0", "b": "^2.0.0"}}
    )
    changed = manifest.with_changes([ResolvedDependency("c", "3.1.0")], ["a"])

    assert [d.name for d in manifest.dependencies] == ["a", "b"]
    assert changed.to_dict()["dependencies"] == {"b": "^2.0.0", "c": "3.1.0"}


def test_add_replaces_existing():
    manifest = Manifest.from_dict({"name": "app", "version": "1.0.0", "dependencies": {"a": "^1.0.0"}})
    manifest.add(ResolvedDependency("a", "1.4.0"))
    assert manifest.to_dict()["dependencies"] == {"a": "1.4.0"}


def test_remove_missing_returns_false():
    manifest = Manifest(name="app", version="1.0.0")
    assert manifest.remove("nothing") is False


def test_as_dependency():
    manifest = Manifest(name="@scope/app", version="2.0.0")
    assert manifest.as_dependency().key == "@scope/app@2.0.0"
    assert str(manifest) == "@scope/app@2.0.0"


def test_to_dict_omits_dev_dependencies_by_default():
    manifest = Manifest.from_dict(
        {"name": "app", "version": "1.0.0", "dependencies": {"a": "^1.0.0"}, "devDependencies": {"jest": "^29.0.0"}}
    )
    assert "devDependencies" not in manifest.to_dict()
    assert manifest.to_dict(include_dev=True)["devDependencies"] == {"jest": "^29.0.0"}
