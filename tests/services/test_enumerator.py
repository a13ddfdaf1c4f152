from __future__ import annotations

import os
from pathlib import Path

import pytest

from credsweep.services.enumerator import enumerate_files


@pytest.fixture
def tree(tmp_path: Path, write_file) -> Path:
    write_file(tmp_path / "README.md", "readme")
    write_file(tmp_path / "app" / "settings.py", "password = 1")
    write_file(tmp_path / "app" / "test_settings.py", "token")
    write_file(tmp_path / "app" / "nested" / "keys.env", "API_KEY=x")
    write_file(tmp_path / "node_modules" / "pkg" / "index.js", "secret")
    return tmp_path


def _relative(candidates):
    return [candidate.relative_path for candidate in candidates]


def test_walks_every_regular_file_in_name_order(tree: Path) -> None:
    candidates = list(enumerate_files(tree))

    assert _relative(candidates) == [
        "README.md",
        "app/settings.py",
        "app/test_settings.py",
        "app/nested/keys.env",
        "node_modules/pkg/index.js",
    ]
    settings = next(candidate for candidate in candidates if candidate.relative_path == "app/settings.py")
    assert settings.size == len("password = 1")
    assert settings.path == tree / "app" / "settings.py"


def test_enumeration_is_lazy(tree: Path) -> None:
    iterator = enumerate_files(tree)

    assert next(iterator).relative_path == "README.md"


def test_include_and_exclude_apply_independently(tree: Path) -> None:
    included = _relative(enumerate_files(tree, include=["*.py"]))
    both = _relative(enumerate_files(tree, include=["*.py"], exclude=["test_*"]))
    excluded = _relative(enumerate_files(tree, exclude=["*.md"]))

    assert included == ["app/settings.py", "app/test_settings.py"]
    assert both == ["app/settings.py"]
    assert "README.md" not in excluded
    assert "app/nested/keys.env" in excluded


def test_include_matches_relative_paths(tree: Path) -> None:
    assert _relative(enumerate_files(tree, include=["app/nested/*"])) == ["app/nested/keys.env"]


def test_excluded_directories_are_pruned(tree: Path) -> None:
    paths = _relative(enumerate_files(tree, exclude=["node_modules"]))

    assert all(not path.startswith("node_modules/") for path in paths)
    assert len(paths) == 4


def test_permission_error_on_a_directory_is_reported_and_skipped(tree: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    real_scandir = os.scandir
    blocked = tree / "app" / "nested"

    def guarded_scandir(path):
        if Path(path) == blocked:
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    monkeypatch.setattr("credsweep.services.enumerator.os.scandir", guarded_scandir)
    errors = []

    paths = _relative(enumerate_files(tree, on_error=errors.append))

    assert "app/nested/keys.env" not in paths
    assert "app/settings.py" in paths
    assert "node_modules/pkg/index.js" in paths
    assert len(errors) == 1
    assert errors[0].path == blocked
    assert isinstance(errors[0].cause, PermissionError)


def test_missing_root_reports_an_error_without_raising(tmp_path: Path) -> None:
    errors = []

    assert list(enumerate_files(tmp_path / "missing", on_error=errors.append)) == []
    assert len(errors) == 1


def test_symlinks_are_skipped_by_default(tmp_path: Path, write_file) -> None:
    target = write_file(tmp_path / "real.txt", "password")
    os.symlink(target, tmp_path / "link.txt")
    os.symlink(tmp_path, tmp_path / "loop")

    assert _relative(enumerate_files(tmp_path)) == ["real.txt"]


def test_followed_symlink_cycles_terminate(tmp_path: Path, write_file) -> None:
    write_file(tmp_path / "sub" / "data.txt", "token")
    os.symlink(tmp_path, tmp_path / "sub" / "back")
    os.symlink(tmp_path / "sub", tmp_path / "alias")
    os.symlink(tmp_path / "nowhere", tmp_path / "broken")

    paths = _relative(enumerate_files(tmp_path, follow_symlinks=True))

    # "alias" sorts first, so the directory is entered through the link once
    assert paths == ["alias/data.txt"]


def test_single_file_root(tmp_path: Path, write_file) -> None:
    target = write_file(tmp_path / "only.txt", "secret")

    assert _relative(enumerate_files(target)) == ["only.txt"]
